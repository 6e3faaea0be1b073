"""Reschedule negotiation between patient and doctor.

While an appointment is RESCHEDULE_REQUESTED its ``reschedule_state`` says
whose move it is:

* PROPOSED_BY_PATIENT: patient attached a new slot, doctor approves or rejects.
* PROPOSED_BY_DOCTOR: doctor asked for a new time, patient attaches a slot
  (then the doctor approves), cancels for a full refund, or the doctor withdraws.
* REJECTED_AWAITING_PATIENT_CHOICE / DOCTOR_CANCELLED_AWAITING_PATIENT_CHOICE:
  patient keeps the original slot or cancels with the standard deduction.
"""
import logging
from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Optional

from ...exceptions import InvalidTransition, SlotUnavailable, TimingViolation, ValidationFailed
from ..ports.appointments_repo import (
    Actor,
    AppointmentDto,
    AppointmentStatus,
    PaymentStatus,
    RescheduleState,
)
from ..ports.notifier import Recipient
from .cancellation_policy import RefundPath
from .context import SchedulingContext
from .notify import appointment_payload, notify

logger = logging.getLogger(__name__)

AWAITING_PATIENT_CHOICE = (
    RescheduleState.REJECTED_AWAITING_PATIENT_CHOICE,
    RescheduleState.DOCTOR_CANCELLED_AWAITING_PATIENT_CHOICE,
)


class PatientChoice(str, Enum):
    KEEP_ORIGINAL = "KEEP_ORIGINAL"
    CANCEL = "CANCEL"


@dataclass
class RescheduleService:
    ctx: SchedulingContext

    def request_by_doctor(self, appointment_id: int, doctor_id: int, reason: str) -> AppointmentDto:
        appointment = self.ctx.load_for_doctor(appointment_id, doctor_id)
        if appointment.status != AppointmentStatus.CONFIRMED:
            raise InvalidTransition(
                appointment.status.value,
                AppointmentStatus.RESCHEDULE_REQUESTED.value,
                detail="Only confirmed appointments can be rescheduled",
            )
        self._require_reason(reason)
        updated = self.ctx.lifecycle.transition(
            appointment,
            AppointmentStatus.RESCHEDULE_REQUESTED,
            reschedule_requested_by=Actor.DOCTOR,
            reschedule_reason=reason.strip(),
            reschedule_state=RescheduleState.PROPOSED_BY_DOCTOR,
            reschedule_rejection_reason=None,
            proposed_date=None,
            proposed_slot_start_time=None,
        )
        notify(self.ctx.notifier, Recipient.patient(updated.patient_id), "reschedule.requested_by_doctor", reason=updated.reschedule_reason, **appointment_payload(updated))
        return updated

    def propose_by_patient(self, appointment_id: int, patient_id: int, new_date: date, new_slot_start_time: str, reason: Optional[str] = None) -> AppointmentDto:
        appointment = self.ctx.load_for_patient(appointment_id, patient_id)

        if appointment.status == AppointmentStatus.RESCHEDULE_REQUESTED and appointment.reschedule_state == RescheduleState.PROPOSED_BY_DOCTOR:
            self.ctx.validator.validate_slot_choice(appointment.doctor_id, new_date, new_slot_start_time, appointment.id)
            updated = self.ctx.lifecycle.transition(
                appointment,
                AppointmentStatus.RESCHEDULE_REQUESTED,
                proposed_date=new_date,
                proposed_slot_start_time=new_slot_start_time,
            )
            notify(self.ctx.notifier, Recipient.doctor(updated.doctor_id), "reschedule.slot_proposed", **self._proposal_payload(updated))
            return updated

        if appointment.status != AppointmentStatus.CONFIRMED:
            raise InvalidTransition(
                appointment.status.value,
                AppointmentStatus.RESCHEDULE_REQUESTED.value,
                detail="Only confirmed appointments can be rescheduled",
            )

        if appointment.payment_status == PaymentStatus.PAID:
            if appointment.hours_until_start(self.ctx.clock.now()) < self.ctx.policy.min_patient_cancel_hours:
                raise TimingViolation(f"Cannot reschedule with less than {self.ctx.policy.min_patient_cancel_hours} hours remaining before the appointment")
            self.ctx.validator.validate_slot_choice(appointment.doctor_id, new_date, new_slot_start_time, appointment.id)
            updated = self.ctx.lifecycle.transition(
                appointment,
                AppointmentStatus.RESCHEDULE_REQUESTED,
                reschedule_requested_by=Actor.PATIENT,
                reschedule_reason=reason,
                reschedule_state=RescheduleState.PROPOSED_BY_PATIENT,
                reschedule_rejection_reason=None,
                proposed_date=new_date,
                proposed_slot_start_time=new_slot_start_time,
            )
            notify(self.ctx.notifier, Recipient.doctor(updated.doctor_id), "reschedule.requested_by_patient", **self._proposal_payload(updated))
            return updated

        # unpaid: move straight to the new slot; the doctor gets a fresh confirmation window
        self.ctx.validator.validate_slot_choice(appointment.doctor_id, new_date, new_slot_start_time, appointment.id)
        updated = self.ctx.lifecycle.transition(
            appointment,
            AppointmentStatus.REQUESTED,
            appointment_date=new_date,
            slot_start_time=new_slot_start_time,
            slot_end_time=self.ctx.slot_grid.end_time_for(new_slot_start_time),
            reschedule_requested_by=Actor.PATIENT,
            reschedule_reason=reason,
            reminder_sent=False,
            reminder_sent_at=None,
            requested_at=self.ctx.clock.now(),
        )
        logger.info(f"Unpaid appointment {updated.id} moved to {new_date} {new_slot_start_time} and awaits confirmation again")
        notify(self.ctx.notifier, Recipient.doctor(updated.doctor_id), "appointment.requested", **appointment_payload(updated))
        return updated

    def approve(self, appointment_id: int, doctor_id: int) -> AppointmentDto:
        appointment = self.ctx.load_for_doctor(appointment_id, doctor_id)
        proposable = (RescheduleState.PROPOSED_BY_PATIENT, RescheduleState.PROPOSED_BY_DOCTOR)
        if appointment.status != AppointmentStatus.RESCHEDULE_REQUESTED or appointment.reschedule_state not in proposable or not appointment.has_proposed_slot:
            raise InvalidTransition(
                appointment.status.value,
                AppointmentStatus.CONFIRMED.value,
                detail="There is no proposed slot to approve",
            )

        new_date = appointment.proposed_date
        new_slot = appointment.proposed_slot_start_time
        self.ctx.ensure_not_confirmed_elsewhere(appointment, new_date, new_slot)

        confirmed = self.ctx.lifecycle.transition(
            appointment,
            AppointmentStatus.CONFIRMED,
            appointment_date=new_date,
            slot_start_time=new_slot,
            slot_end_time=self.ctx.slot_grid.end_time_for(new_slot),
            reschedule_state=None,
            proposed_date=None,
            proposed_slot_start_time=None,
            reminder_sent=False,
            reminder_sent_at=None,
        )
        self.ctx.conflicts.resolve(confirmed)
        notify(self.ctx.notifier, Recipient.patient(confirmed.patient_id), "reschedule.approved", **appointment_payload(confirmed))
        return confirmed

    def reject(self, appointment_id: int, doctor_id: int, reason: str) -> AppointmentDto:
        appointment = self.ctx.load_for_doctor(appointment_id, doctor_id)
        self._require_state(appointment, RescheduleState.PROPOSED_BY_PATIENT, "Only a patient's reschedule proposal can be rejected")
        self._require_reason(reason)
        updated = self.ctx.lifecycle.transition(
            appointment,
            AppointmentStatus.RESCHEDULE_REQUESTED,
            reschedule_state=RescheduleState.REJECTED_AWAITING_PATIENT_CHOICE,
            reschedule_rejection_reason=reason.strip(),
            proposed_date=None,
            proposed_slot_start_time=None,
        )
        notify(self.ctx.notifier, Recipient.patient(updated.patient_id), "reschedule.rejected", reason=updated.reschedule_rejection_reason, **appointment_payload(updated))
        return updated

    def withdraw_by_doctor(self, appointment_id: int, doctor_id: int, reason: str) -> AppointmentDto:
        appointment = self.ctx.load_for_doctor(appointment_id, doctor_id)
        self._require_state(appointment, RescheduleState.PROPOSED_BY_DOCTOR, "Only the doctor's own reschedule request can be withdrawn")
        self._require_reason(reason)
        now = self.ctx.clock.now()

        if appointment.has_proposed_slot:
            # patient already picked a slot, so they decide what happens next
            updated = self.ctx.lifecycle.transition(
                appointment,
                AppointmentStatus.RESCHEDULE_REQUESTED,
                reschedule_state=RescheduleState.DOCTOR_CANCELLED_AWAITING_PATIENT_CHOICE,
                doctor_cancellation_reason=reason.strip(),
                doctor_cancelled_at=now,
                proposed_date=None,
                proposed_slot_start_time=None,
            )
        else:
            self.ctx.ensure_not_confirmed_elsewhere(appointment, appointment.appointment_date, appointment.slot_start_time)
            updated = self.ctx.lifecycle.transition(
                appointment,
                AppointmentStatus.CONFIRMED,
                reschedule_state=None,
                doctor_cancellation_reason=reason.strip(),
                doctor_cancelled_at=now,
            )
            self.ctx.conflicts.resolve(updated)

        notify(self.ctx.notifier, Recipient.patient(updated.patient_id), "reschedule.withdrawn", reason=reason.strip(), **appointment_payload(updated))
        return updated

    def respond(self, appointment_id: int, patient_id: int, choice: PatientChoice, reason: Optional[str] = None) -> AppointmentDto:
        appointment = self.ctx.load_for_patient(appointment_id, patient_id)
        if appointment.status != AppointmentStatus.RESCHEDULE_REQUESTED or appointment.reschedule_state not in AWAITING_PATIENT_CHOICE:
            raise InvalidTransition(
                appointment.status.value,
                AppointmentStatus.CONFIRMED.value if choice == PatientChoice.KEEP_ORIGINAL else AppointmentStatus.CANCELLED.value,
                detail="There is no reschedule outcome waiting for your response",
            )

        if choice == PatientChoice.KEEP_ORIGINAL:
            try:
                self.ctx.ensure_not_confirmed_elsewhere(appointment, appointment.appointment_date, appointment.slot_start_time)
            except SlotUnavailable:
                raise SlotUnavailable("The original slot has been taken by another patient; please cancel or pick a new slot")
            kept = self.ctx.lifecycle.transition(appointment, AppointmentStatus.CONFIRMED, reschedule_state=None)
            self.ctx.conflicts.resolve(kept)
            notify(self.ctx.notifier, Recipient.doctor(kept.doctor_id), "reschedule.original_kept", **appointment_payload(kept))
            return kept

        path = (
            RefundPath.AFTER_RESCHEDULE_REJECTED
            if appointment.reschedule_state == RescheduleState.REJECTED_AWAITING_PATIENT_CHOICE
            else RefundPath.AFTER_DOCTOR_WITHDREW_RESCHEDULE
        )
        cancelled, decision = self.ctx.lifecycle.cancel(appointment, Actor.PATIENT, reason or "Cancelled by patient after reschedule outcome", path)
        notify(
            self.ctx.notifier,
            Recipient.doctor(cancelled.doctor_id),
            "appointment.cancelled",
            cancelled_by=Actor.PATIENT.value,
            refund_amount=decision.amount,
            **appointment_payload(cancelled),
        )
        return cancelled

    @staticmethod
    def _require_state(appointment: AppointmentDto, state: RescheduleState, detail: str) -> None:
        if appointment.status != AppointmentStatus.RESCHEDULE_REQUESTED or appointment.reschedule_state != state:
            raise InvalidTransition(appointment.status.value, AppointmentStatus.RESCHEDULE_REQUESTED.value, detail=detail)

    @staticmethod
    def _require_reason(reason: Optional[str]) -> None:
        if not reason or not reason.strip():
            raise ValidationFailed("A reason is required", reason="missing_reason")

    @staticmethod
    def _proposal_payload(appointment: AppointmentDto) -> dict:
        payload = appointment_payload(appointment)
        payload["proposed_date"] = appointment.proposed_date.isoformat()
        payload["proposed_slot_start_time"] = appointment.proposed_slot_start_time
        return payload
