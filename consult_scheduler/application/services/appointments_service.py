import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Any, Dict, Iterable, List, Optional

from ...exceptions import (
    InvalidTransition,
    NotFound,
    PaymentStateConflict,
    TimingViolation,
    ValidationFailed,
)
from ..ports.appointments_repo import (
    Actor,
    AppointmentDto,
    AppointmentStatus,
    AppointmentType,
    PaymentStatus,
    RescheduleState,
)
from ..ports.notifier import Recipient
from ..ports.prescriptions_repo import PrescriptionDto
from .cancellation_policy import RefundPath
from .context import SchedulingContext
from .lifecycle import generate_challan_number
from .notify import appointment_payload, notify
from .slot_grid import Slot

logger = logging.getLogger(__name__)


@dataclass
class Page:
    items: List[AppointmentDto]
    page: int
    size: int
    total_elements: int
    total_pages: int


def paginate(items: List[AppointmentDto], page: int, size: int) -> Page:
    if page < 0:
        raise ValidationFailed("Page index must not be negative", reason="invalid_page")
    if size < 1 or size > 100:
        raise ValidationFailed("Page size must be between 1 and 100", reason="invalid_page_size")
    total = len(items)
    start = page * size
    return Page(
        items=items[start:start + size],
        page=page,
        size=size,
        total_elements=total,
        total_pages=math.ceil(total / size) if total else 0,
    )


@dataclass
class AppointmentsService:
    """Patient and doctor actions on an appointment, plus the payment hooks."""

    ctx: SchedulingContext

    def available_slots(self, doctor_id: int, on_date: date) -> List[Slot]:
        if not self.ctx.directory.get_doctor(doctor_id):
            raise NotFound("Doctor not found")
        return self.ctx.slot_grid.available_slots(doctor_id, on_date)

    def request(self, patient_id: int, doctor_id: int, appointment_date: date, slot_start_time: str, appointment_type: AppointmentType, reason: str, location: Optional[str] = None) -> AppointmentDto:
        if not reason or not reason.strip():
            raise ValidationFailed("Reason for the appointment is required", reason="missing_reason")

        self.ctx.validator.validate_new_booking(patient_id, doctor_id, appointment_date, slot_start_time)

        now = self.ctx.clock.now()
        appointment = self.ctx.appointments.add(AppointmentDto(
            patient_id=patient_id,
            doctor_id=doctor_id,
            appointment_date=appointment_date,
            slot_start_time=slot_start_time,
            slot_end_time=self.ctx.slot_grid.end_time_for(slot_start_time),
            appointment_type=appointment_type,
            reason=reason.strip(),
            payment_amount=self.ctx.policy.appointment_fee,
            location=(location or self.ctx.policy.default_location) if appointment_type == AppointmentType.IN_PERSON else None,
            requested_at=now,
            created_at=now,
            updated_at=now,
        ))
        logger.info(f"Appointment {appointment.id} requested by patient {patient_id} with doctor {doctor_id} on {appointment_date} {slot_start_time}")
        notify(self.ctx.notifier, Recipient.doctor(doctor_id), "appointment.requested", **appointment_payload(appointment))
        return appointment

    def confirm(self, appointment_id: int, doctor_id: int, meeting_link: Optional[str] = None) -> AppointmentDto:
        appointment = self.ctx.load_for_doctor(appointment_id, doctor_id)
        if appointment.status != AppointmentStatus.REQUESTED:
            raise InvalidTransition(appointment.status.value, AppointmentStatus.CONFIRMED.value, detail="Only requested appointments can be confirmed")

        link = meeting_link or appointment.meeting_link
        if appointment.appointment_type == AppointmentType.ONLINE and not link:
            raise ValidationFailed("Meeting link is required for online appointments", reason="missing_meeting_link")

        self.ctx.ensure_not_confirmed_elsewhere(appointment, appointment.appointment_date, appointment.slot_start_time)

        changes: Dict[str, Any] = {"meeting_link": link}
        if not appointment.challan_number:
            changes["challan_number"] = generate_challan_number(self.ctx.policy.challan_prefix, self.ctx.clock.now())

        confirmed = self.ctx.lifecycle.transition(appointment, AppointmentStatus.CONFIRMED, **changes)
        # raises SlotUnavailable if a racing confirmation kept the slot
        self.ctx.conflicts.resolve(confirmed)
        notify(self.ctx.notifier, Recipient.patient(confirmed.patient_id), "appointment.confirmed", **appointment_payload(confirmed))

        if confirmed.payment_status == PaymentStatus.PENDING:
            payment = self.ctx.lifecycle.open_pending_payment(confirmed)
            notify(
                self.ctx.notifier,
                Recipient.patient(confirmed.patient_id),
                "payment.required",
                appointment_id=confirmed.id,
                amount=payment.amount,
                challan_number=confirmed.challan_number,
            )
        return confirmed

    def decline(self, appointment_id: int, doctor_id: int, reason: Optional[str] = None) -> AppointmentDto:
        appointment = self.ctx.load_for_doctor(appointment_id, doctor_id)
        if appointment.status != AppointmentStatus.REQUESTED:
            raise InvalidTransition(appointment.status.value, AppointmentStatus.CANCELLED.value, detail="Only requested appointments can be declined")
        cancelled, _ = self.ctx.lifecycle.cancel(appointment, Actor.DOCTOR, reason or "Declined by doctor", RefundPath.NO_REFUND)
        notify(self.ctx.notifier, Recipient.patient(cancelled.patient_id), "appointment.declined", **appointment_payload(cancelled))
        return cancelled

    def cancel_by_patient(self, appointment_id: int, patient_id: int, reason: Optional[str] = None) -> AppointmentDto:
        appointment = self.ctx.load_for_patient(appointment_id, patient_id)
        reason = reason or "Cancelled by patient"

        if appointment.status == AppointmentStatus.REQUESTED:
            path = RefundPath.NO_REFUND
        elif appointment.status == AppointmentStatus.CONFIRMED:
            self._ensure_patient_cancel_window(appointment)
            path = RefundPath.STANDARD
        elif appointment.status == AppointmentStatus.RESCHEDULE_REQUESTED:
            path = self._reschedule_cancel_path(appointment)
        else:
            raise InvalidTransition(appointment.status.value, AppointmentStatus.CANCELLED.value)

        cancelled, decision = self.ctx.lifecycle.cancel(appointment, Actor.PATIENT, reason, path)
        notify(
            self.ctx.notifier,
            Recipient.doctor(cancelled.doctor_id),
            "appointment.cancelled",
            cancelled_by=Actor.PATIENT.value,
            refund_amount=decision.amount,
            **appointment_payload(cancelled),
        )
        return cancelled

    def cancel_by_doctor(self, appointment_id: int, doctor_id: int, reason: Optional[str] = None) -> AppointmentDto:
        appointment = self.ctx.load_for_doctor(appointment_id, doctor_id)
        if appointment.status == AppointmentStatus.REQUESTED:
            return self.decline(appointment_id, doctor_id, reason)
        if appointment.status != AppointmentStatus.CONFIRMED:
            raise InvalidTransition(appointment.status.value, AppointmentStatus.CANCELLED.value)

        if appointment.payment_status == PaymentStatus.PAID:
            if appointment.hours_until_start(self.ctx.clock.now()) < self.ctx.policy.min_doctor_cancel_hours:
                raise TimingViolation(
                    f"Direct cancellation is not allowed within {self.ctx.policy.min_doctor_cancel_hours} hours of the appointment. "
                    "Please request an emergency reschedule instead.",
                    can_request_emergency_reschedule=True,
                )
            raise InvalidTransition(
                appointment.status.value,
                AppointmentStatus.CANCELLED.value,
                detail="Paid appointments cannot be cancelled by the doctor. Please request a reschedule instead.",
            )

        cancelled, _ = self.ctx.lifecycle.cancel(appointment, Actor.DOCTOR, reason or "Cancelled by doctor", RefundPath.NO_REFUND)
        notify(
            self.ctx.notifier,
            Recipient.patient(cancelled.patient_id),
            "appointment.cancelled",
            cancelled_by=Actor.DOCTOR.value,
            refund_amount=0,
            **appointment_payload(cancelled),
        )
        return cancelled

    def pay(self, appointment_id: int, patient_id: int) -> AppointmentDto:
        appointment = self.ctx.load_for_patient(appointment_id, patient_id)
        if not appointment.challan_number:
            raise PaymentStateConflict("Payment is not available until the doctor confirms the appointment")
        return self.confirm_payment(appointment.challan_number)

    def confirm_payment(self, challan_number: str) -> AppointmentDto:
        """Hook called by the payment provider once a challan has been paid."""
        appointment = self.ctx.appointments.get_by_challan(challan_number)
        if not appointment:
            raise NotFound("No appointment found for this challan")
        if appointment.payment_status == PaymentStatus.PAID:
            raise PaymentStateConflict("Appointment is already paid")
        if appointment.payment_status != PaymentStatus.PENDING:
            raise PaymentStateConflict(f"Cannot accept payment while payment status is {appointment.payment_status.value}")
        if appointment.status != AppointmentStatus.CONFIRMED:
            raise PaymentStateConflict("Payment can only be made for confirmed appointments")

        now = self.ctx.clock.now()
        paid = self.ctx.lifecycle.update(appointment, payment_status=PaymentStatus.PAID, paid_at=now)
        pending = self.ctx.payments.get_pending_payment(paid.id)
        if pending:
            self.ctx.payments.complete(pending.id, now)
        else:
            logger.warning(f"Appointment {paid.id} paid without a pending payment row for challan {challan_number}")

        logger.info(f"Payment received for appointment {paid.id} (challan {challan_number})")
        notify(self.ctx.notifier, Recipient.patient(paid.patient_id), "payment.received", amount=paid.payment_amount, **appointment_payload(paid))
        notify(self.ctx.notifier, Recipient.doctor(paid.doctor_id), "appointment.paid", **appointment_payload(paid))
        return paid

    def complete(self, appointment_id: int, doctor_id: int, instructions: str, medications: Optional[List[Dict[str, Any]]] = None) -> AppointmentDto:
        appointment = self._load_finished(appointment_id, doctor_id, AppointmentStatus.COMPLETED)
        if not instructions or not instructions.strip():
            raise ValidationFailed("Follow-up instructions are required to complete an appointment", reason="missing_instructions")

        now = self.ctx.clock.now()
        completed = self.ctx.lifecycle.transition(
            appointment,
            AppointmentStatus.COMPLETED,
            completed_at=now,
            patient_attended=True,
            chat_enabled=True,
        )
        prescription = self.ctx.prescriptions.add(PrescriptionDto(
            appointment_id=completed.id,
            patient_id=completed.patient_id,
            doctor_id=completed.doctor_id,
            instructions=instructions.strip(),
            medications=list(medications or []),
            created_at=now,
        ))
        completed = self.ctx.lifecycle.update(completed, prescription_id=prescription.id)
        notify(
            self.ctx.notifier,
            Recipient.patient(completed.patient_id),
            "appointment.completed",
            prescription_id=prescription.id,
            **appointment_payload(completed),
        )
        return completed

    def mark_no_show(self, appointment_id: int, doctor_id: int) -> AppointmentDto:
        appointment = self._load_finished(appointment_id, doctor_id, AppointmentStatus.NO_SHOW)
        updated = self.ctx.lifecycle.transition(appointment, AppointmentStatus.NO_SHOW, patient_attended=False)
        notify(self.ctx.notifier, Recipient.patient(updated.patient_id), "appointment.no_show", **appointment_payload(updated))
        return updated

    def get_for_actor(self, appointment_id: int, actor: Actor, profile_id: Optional[int]) -> AppointmentDto:
        if actor == Actor.PATIENT:
            return self.ctx.load_for_patient(appointment_id, profile_id)
        if actor == Actor.DOCTOR:
            return self.ctx.load_for_doctor(appointment_id, profile_id)
        return self.ctx.load(appointment_id)

    def list_for_patient(self, patient_id: int, statuses: Optional[Iterable[AppointmentStatus]] = None, page: int = 0, size: int = 10) -> Page:
        self.refresh_past(self.ctx.appointments.list_for_patient(patient_id, [AppointmentStatus.CONFIRMED]))
        items = self.ctx.appointments.list_for_patient(patient_id, statuses)
        items.sort(key=lambda a: (a.appointment_date, a.slot_start_time), reverse=True)
        return paginate(items, page, size)

    def list_for_doctor(self, doctor_id: int, statuses: Optional[Iterable[AppointmentStatus]] = None, on_date: Optional[date] = None, page: int = 0, size: int = 10) -> Page:
        self.refresh_past(self.ctx.appointments.list_for_doctor(doctor_id, [AppointmentStatus.CONFIRMED]))
        items = self.ctx.appointments.list_for_doctor(doctor_id, statuses, on_date)
        items.sort(key=lambda a: (a.appointment_date, a.slot_start_time))
        return paginate(items, page, size)

    def daily_schedule(self, doctor_id: int, on_date: Optional[date] = None) -> List[AppointmentDto]:
        target = on_date or self.ctx.clock.today()
        items = self.ctx.appointments.list_for_doctor(doctor_id, [AppointmentStatus.CONFIRMED], target)
        return sorted(items, key=lambda a: a.slot_start_time)

    def next_day_schedule(self, doctor_id: int) -> List[AppointmentDto]:
        return self.daily_schedule(doctor_id, self.ctx.clock.today() + timedelta(days=1))

    def refresh_past(self, appointments: Iterable[AppointmentDto]) -> int:
        """Move elapsed CONFIRMED + PAID appointments to PAST before they are read."""
        moved = 0
        for appointment in appointments:
            try:
                if self.ctx.lifecycle.mark_past_if_elapsed(appointment):
                    moved += 1
            except InvalidTransition:
                logger.info(f"Appointment {appointment.id} changed while being marked past, skipping")
        return moved

    def _load_finished(self, appointment_id: int, doctor_id: int, target: AppointmentStatus) -> AppointmentDto:
        appointment = self.ctx.load_for_doctor(appointment_id, doctor_id)
        if appointment.status not in (AppointmentStatus.CONFIRMED, AppointmentStatus.PAST):
            raise InvalidTransition(appointment.status.value, target.value)
        if self.ctx.clock.now() < appointment.ends_at():
            raise TimingViolation(f"Appointment can only be marked {target.value} after its scheduled end time")
        return appointment

    def _ensure_patient_cancel_window(self, appointment: AppointmentDto) -> None:
        if appointment.payment_status != PaymentStatus.PAID:
            return
        if appointment.hours_until_start(self.ctx.clock.now()) < self.ctx.policy.min_patient_cancel_hours:
            raise TimingViolation(f"Cannot cancel with less than {self.ctx.policy.min_patient_cancel_hours} hours remaining before the appointment")

    def _reschedule_cancel_path(self, appointment: AppointmentDto) -> RefundPath:
        state = appointment.reschedule_state
        if state == RescheduleState.PROPOSED_BY_DOCTOR:
            return RefundPath.DOCTOR_RESCHEDULE_DECLINED
        if state == RescheduleState.REJECTED_AWAITING_PATIENT_CHOICE:
            return RefundPath.AFTER_RESCHEDULE_REJECTED
        if state == RescheduleState.DOCTOR_CANCELLED_AWAITING_PATIENT_CHOICE:
            return RefundPath.AFTER_DOCTOR_WITHDREW_RESCHEDULE
        # patient's own pending proposal: same rules as a standard cancellation
        self._ensure_patient_cancel_window(appointment)
        return RefundPath.STANDARD
