"""Notification titles and message text keyed by template.

Names of the doctor and patient are looked up from the directory at render
time; the scheduling core only ships ids.
"""
from typing import Any, Dict, Optional, Tuple

from ...application.ports.directory import DirectoryService

TEMPLATES: Dict[str, Tuple[str, str]] = {
    "appointment.requested": ("New appointment request", "{patient_name} requested an appointment on {appointment_date} at {slot_start_time}."),
    "appointment.confirmed": ("Appointment confirmed", "Dr. {doctor_name} confirmed your appointment on {appointment_date} at {slot_start_time}."),
    "appointment.declined": ("Appointment declined", "Dr. {doctor_name} could not accept your appointment on {appointment_date} at {slot_start_time}."),
    "appointment.cancelled": ("Appointment cancelled", "The appointment on {appointment_date} at {slot_start_time} was cancelled."),
    "appointment.slot_taken": ("Appointment cancelled", "The slot on {appointment_date} at {slot_start_time} was given to another patient."),
    "appointment.expired": ("Appointment request expired", "Dr. {doctor_name} did not respond to your request for {appointment_date} at {slot_start_time}."),
    "appointment.unpaid_cancelled": ("Appointment cancelled", "The appointment on {appointment_date} at {slot_start_time} was cancelled because payment was not received."),
    "appointment.paid": ("Payment received", "{patient_name} paid for the appointment on {appointment_date} at {slot_start_time}."),
    "appointment.completed": ("Consultation completed", "Your consultation with Dr. {doctor_name} is complete. Your prescription is available."),
    "appointment.no_show": ("Missed appointment", "You were marked absent for the appointment on {appointment_date} at {slot_start_time}."),
    "appointment.reminder": ("Appointment reminder", "Reminder: appointment on {appointment_date} at {slot_start_time}."),
    "payment.required": ("Payment required", "Please pay {amount} using challan {challan_number}."),
    "payment.received": ("Payment received", "We received your payment for the appointment on {appointment_date}."),
    "reschedule.requested_by_doctor": ("Reschedule requested", "Dr. {doctor_name} asked to reschedule your appointment on {appointment_date}."),
    "reschedule.requested_by_patient": ("Reschedule requested", "{patient_name} asked to move their appointment to {proposed_date} at {proposed_slot_start_time}."),
    "reschedule.slot_proposed": ("New slot proposed", "{patient_name} picked {proposed_date} at {proposed_slot_start_time}."),
    "reschedule.approved": ("Reschedule approved", "Your appointment is now on {appointment_date} at {slot_start_time}."),
    "reschedule.rejected": ("Reschedule rejected", "Dr. {doctor_name} could not accept the new time. Keep the original slot or cancel."),
    "reschedule.withdrawn": ("Reschedule withdrawn", "Dr. {doctor_name} withdrew the reschedule request for {appointment_date}."),
    "reschedule.original_kept": ("Original slot kept", "{patient_name} kept the appointment on {appointment_date} at {slot_start_time}."),
    "emergency.cancellation_requested": ("Emergency cancellation request", "Emergency cancellation requested for appointment #{appointment_id}."),
    "emergency.cancellation_approved": ("Emergency cancellation approved", "Your appointment was cancelled and {refund_amount} will be refunded."),
    "emergency.cancellation_rejected": ("Emergency cancellation rejected", "Your emergency cancellation request was not approved."),
    "emergency.reschedule_requested": ("Emergency reschedule request", "Dr. {doctor_name} requested an emergency reschedule of appointment #{appointment_id}."),
    "emergency.reschedule_approved": ("Emergency reschedule approved", "Your emergency reschedule request for appointment #{appointment_id} was approved."),
    "emergency.reschedule_rejected": ("Emergency reschedule rejected", "Your emergency reschedule request for appointment #{appointment_id} was not approved."),
}


class _Defaults(dict):
    def __missing__(self, key: str) -> str:
        return ""


def render(template_key: str, payload: Dict[str, Any], directory: Optional[DirectoryService] = None) -> Tuple[str, str]:
    title, body = TEMPLATES.get(template_key, (template_key, ""))
    values = _Defaults(payload)
    if directory is not None:
        doctor = directory.get_doctor(payload["doctor_id"]) if payload.get("doctor_id") else None
        patient = directory.get_patient(payload["patient_id"]) if payload.get("patient_id") else None
        values["doctor_name"] = doctor.name if doctor else ""
        values["patient_name"] = patient.name if patient else ""
    return title, body.format_map(values)
