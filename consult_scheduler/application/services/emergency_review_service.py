import logging
from dataclasses import dataclass, replace
from datetime import timedelta
from typing import List, Optional

from ...exceptions import InvalidTransition, NotFound, TimingViolation, ValidationFailed
from ..ports.appointments_repo import (
    Actor,
    AppointmentDto,
    AppointmentStatus,
    RescheduleState,
    TERMINAL_STATUSES,
)
from ..ports.emergency_repo import EmergencyCancellationDto, EmergencyRescheduleDto, ReviewStatus
from ..ports.notifier import Recipient
from .cancellation_policy import RefundPath
from .context import SchedulingContext
from .notify import appointment_payload, notify

logger = logging.getLogger(__name__)

EMERGENCY_RESCHEDULE_PREFIX = "Emergency Reschedule: "


@dataclass
class CancellationReview:
    request: EmergencyCancellationDto
    appointment: AppointmentDto
    refund_amount: int = 0


@dataclass
class RescheduleReview:
    request: EmergencyRescheduleDto
    appointment: AppointmentDto


@dataclass
class EmergencyReviewService:
    """Admin-adjudicated exceptions to the 24 hour cancellation and reschedule cutoffs."""

    ctx: SchedulingContext

    def request_cancellation(self, appointment_id: int, patient_id: int, reason: str) -> EmergencyCancellationDto:
        appointment = self.ctx.load_for_patient(appointment_id, patient_id)
        if appointment.status != AppointmentStatus.CONFIRMED:
            raise InvalidTransition(
                appointment.status.value,
                AppointmentStatus.CANCELLED.value,
                detail="Emergency cancellation is only available for confirmed appointments",
            )
        self._require_reason(reason)

        now = self.ctx.clock.now()
        window = timedelta(hours=self.ctx.policy.emergency_review_window_hours)
        starts_at = appointment.starts_at()
        # strictly more than the window; exactly 12h before start is already too late
        if starts_at - now <= window:
            raise TimingViolation(
                f"Emergency cancellation must be requested more than {self.ctx.policy.emergency_review_window_hours} hours before the appointment"
            )

        request = self.ctx.emergency_requests.add_cancellation(EmergencyCancellationDto(
            appointment_id=appointment.id,
            patient_id=patient_id,
            reason=reason.strip(),
            expires_at=starts_at - window,
            created_at=now,
        ))
        logger.info(f"Emergency cancellation {request.id} filed for appointment {appointment.id}")
        notify(self.ctx.notifier, Recipient.admins(), "emergency.cancellation_requested", request_id=request.id, reason=request.reason, **appointment_payload(appointment))
        return request

    def review_cancellation(self, request_id: int, admin_id: int, approved: bool, notes: Optional[str] = None) -> CancellationReview:
        request = self.ctx.emergency_requests.get_cancellation(request_id)
        if not request:
            raise NotFound("Emergency cancellation request not found")
        self._require_pending(request.status)
        appointment = self.ctx.load(request.appointment_id)

        if not approved:
            decided = self._decide_cancellation(request, ReviewStatus.REJECTED, admin_id, notes)
            notify(self.ctx.notifier, Recipient.patient(request.patient_id), "emergency.cancellation_rejected", request_id=request.id, admin_notes=notes, **appointment_payload(appointment))
            return CancellationReview(request=decided, appointment=appointment)

        # re-check before claiming the request so a stale appointment leaves it PENDING
        if appointment.status != AppointmentStatus.CONFIRMED:
            raise InvalidTransition(appointment.status.value, AppointmentStatus.CANCELLED.value, detail="Appointment is no longer confirmed")

        decided = self._decide_cancellation(request, ReviewStatus.APPROVED, admin_id, notes)
        try:
            cancelled, decision = self.ctx.lifecycle.cancel(
                appointment,
                Actor.ADMIN,
                f"Emergency cancellation approved: {request.reason}",
                RefundPath.EMERGENCY,
            )
        except InvalidTransition:
            self.ctx.emergency_requests.save_cancellation(request, ReviewStatus.APPROVED)
            raise

        notify(self.ctx.notifier, Recipient.patient(cancelled.patient_id), "emergency.cancellation_approved", request_id=request.id, refund_amount=decision.amount, admin_notes=notes, **appointment_payload(cancelled))
        notify(self.ctx.notifier, Recipient.doctor(cancelled.doctor_id), "appointment.cancelled", cancelled_by=Actor.ADMIN.value, refund_amount=decision.amount, **appointment_payload(cancelled))
        return CancellationReview(request=decided, appointment=cancelled, refund_amount=decision.amount)

    def pending_cancellations(self) -> List[EmergencyCancellationDto]:
        requests = self.ctx.emergency_requests.list_cancellations(ReviewStatus.PENDING)
        return sorted(requests, key=lambda r: (r.created_at is None, r.created_at))

    def request_reschedule(self, appointment_id: int, doctor_id: int, reason: str) -> EmergencyRescheduleDto:
        appointment = self.ctx.load_for_doctor(appointment_id, doctor_id)
        if appointment.status in TERMINAL_STATUSES or appointment.status == AppointmentStatus.PAST:
            raise InvalidTransition(
                appointment.status.value,
                AppointmentStatus.RESCHEDULE_REQUESTED.value,
                detail="Emergency reschedule is not available for this appointment",
            )
        self._require_reason(reason)

        request = self.ctx.emergency_requests.add_reschedule(EmergencyRescheduleDto(
            appointment_id=appointment.id,
            doctor_id=doctor_id,
            reason=reason.strip(),
            created_at=self.ctx.clock.now(),
        ))
        logger.info(f"Emergency reschedule {request.id} filed by doctor {doctor_id} for appointment {appointment.id}")
        notify(self.ctx.notifier, Recipient.admins(), "emergency.reschedule_requested", request_id=request.id, reason=request.reason, **appointment_payload(appointment))
        return request

    def review_reschedule(self, request_id: int, admin_id: int, approved: bool, notes: Optional[str] = None) -> RescheduleReview:
        request = self.ctx.emergency_requests.get_reschedule(request_id)
        if not request:
            raise NotFound("Emergency reschedule request not found")
        self._require_pending(request.status)
        appointment = self.ctx.load(request.appointment_id)

        if not approved:
            decided = self._decide_reschedule(request, ReviewStatus.REJECTED, admin_id, notes)
            notify(self.ctx.notifier, Recipient.doctor(request.doctor_id), "emergency.reschedule_rejected", request_id=request.id, admin_notes=notes, **appointment_payload(appointment))
            return RescheduleReview(request=decided, appointment=appointment)

        if appointment.status not in (AppointmentStatus.CONFIRMED, AppointmentStatus.RESCHEDULE_REQUESTED):
            raise InvalidTransition(
                appointment.status.value,
                AppointmentStatus.RESCHEDULE_REQUESTED.value,
                detail="Appointment can no longer be rescheduled",
            )

        decided = self._decide_reschedule(request, ReviewStatus.APPROVED, admin_id, notes)
        try:
            updated = self.ctx.lifecycle.transition(
                appointment,
                AppointmentStatus.RESCHEDULE_REQUESTED,
                reschedule_requested_by=Actor.DOCTOR,
                reschedule_reason=f"{EMERGENCY_RESCHEDULE_PREFIX}{request.reason}",
                reschedule_state=RescheduleState.PROPOSED_BY_DOCTOR,
                reschedule_rejection_reason=None,
                proposed_date=None,
                proposed_slot_start_time=None,
            )
        except InvalidTransition:
            self.ctx.emergency_requests.save_reschedule(request, ReviewStatus.APPROVED)
            raise

        notify(self.ctx.notifier, Recipient.doctor(request.doctor_id), "emergency.reschedule_approved", request_id=request.id, admin_notes=notes, **appointment_payload(updated))
        notify(self.ctx.notifier, Recipient.patient(updated.patient_id), "reschedule.requested_by_doctor", reason=updated.reschedule_reason, **appointment_payload(updated))
        return RescheduleReview(request=decided, appointment=updated)

    def reschedule_requests(self, status: Optional[ReviewStatus] = None, doctor_id: Optional[int] = None) -> List[EmergencyRescheduleDto]:
        requests = self.ctx.emergency_requests.list_reschedules(status)
        if doctor_id is not None:
            requests = [r for r in requests if r.doctor_id == doctor_id]
        return sorted(requests, key=lambda r: (r.created_at is None, r.created_at), reverse=True)

    def _decide_cancellation(self, request: EmergencyCancellationDto, status: ReviewStatus, admin_id: int, notes: Optional[str]) -> EmergencyCancellationDto:
        decided = replace(request, status=status, admin_id=admin_id, admin_notes=notes, reviewed_at=self.ctx.clock.now())
        if not self.ctx.emergency_requests.save_cancellation(decided, ReviewStatus.PENDING):
            raise InvalidTransition(request.status.value, status.value, detail="This request has already been reviewed")
        logger.info(f"Emergency cancellation {request.id} {status.value.lower()} by admin {admin_id}")
        return decided

    def _decide_reschedule(self, request: EmergencyRescheduleDto, status: ReviewStatus, admin_id: int, notes: Optional[str]) -> EmergencyRescheduleDto:
        decided = replace(request, status=status, admin_id=admin_id, admin_notes=notes, reviewed_at=self.ctx.clock.now())
        if not self.ctx.emergency_requests.save_reschedule(decided, ReviewStatus.PENDING):
            raise InvalidTransition(request.status.value, status.value, detail="This request has already been reviewed")
        logger.info(f"Emergency reschedule {request.id} {status.value.lower()} by admin {admin_id}")
        return decided

    @staticmethod
    def _require_pending(status: ReviewStatus) -> None:
        if status != ReviewStatus.PENDING:
            raise InvalidTransition(status.value, "REVIEWED", detail="This request has already been reviewed")

    @staticmethod
    def _require_reason(reason: Optional[str]) -> None:
        if not reason or not reason.strip():
            raise ValidationFailed("A reason is required", reason="missing_reason")
