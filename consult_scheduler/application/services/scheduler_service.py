"""Periodic sweeps over the appointment table.

Each sweep re-reads every candidate and re-checks its guard before writing, so
running a sweep twice in a row changes nothing the second time. A failure on
one appointment is logged and counted; the rest of the batch still runs.
"""
import logging
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Callable, List

from ...exceptions import InvalidTransition
from ..ports.appointments_repo import Actor, AppointmentDto, AppointmentStatus, PaymentStatus
from ..ports.notifier import Recipient
from .cancellation_policy import RefundPath
from .context import SchedulingContext
from .notify import appointment_payload, notify

logger = logging.getLogger(__name__)

EXPIRED_REQUEST_REASON = "Doctor did not respond within 24 hours"
UNPAID_REASON = "Payment not received before the appointment"


@dataclass
class SweepResult:
    name: str
    processed: int = 0
    failed: int = 0
    errors: List[str] = field(default_factory=list)


@dataclass
class SchedulerService:
    ctx: SchedulingContext

    def expire_stale_requests(self) -> SweepResult:
        cutoff = self.ctx.clock.now() - timedelta(hours=self.ctx.policy.request_expiry_hours)

        def expire(appointment: AppointmentDto) -> bool:
            if appointment.status != AppointmentStatus.REQUESTED:
                return False
            requested_at = appointment.requested_at or appointment.created_at
            if requested_at is None or requested_at > cutoff:
                return False
            cancelled, _ = self.ctx.lifecycle.cancel(appointment, Actor.SYSTEM, EXPIRED_REQUEST_REASON, RefundPath.NO_REFUND)
            notify(self.ctx.notifier, Recipient.patient(cancelled.patient_id), "appointment.expired", reason=EXPIRED_REQUEST_REASON, **appointment_payload(cancelled))
            return True

        return self._sweep("expire_stale_requests", [AppointmentStatus.REQUESTED], expire)

    def cancel_unpaid(self) -> SweepResult:
        deadline = self.ctx.clock.now() + timedelta(hours=self.ctx.policy.unpaid_auto_cancel_hours)

        def cancel(appointment: AppointmentDto) -> bool:
            if appointment.status != AppointmentStatus.CONFIRMED or appointment.payment_status != PaymentStatus.PENDING:
                return False
            if appointment.starts_at() > deadline:
                return False
            cancelled, _ = self.ctx.lifecycle.cancel(appointment, Actor.SYSTEM, UNPAID_REASON, RefundPath.NO_REFUND)
            payload = appointment_payload(cancelled)
            notify(self.ctx.notifier, Recipient.patient(cancelled.patient_id), "appointment.unpaid_cancelled", reason=UNPAID_REASON, **payload)
            notify(self.ctx.notifier, Recipient.doctor(cancelled.doctor_id), "appointment.unpaid_cancelled", reason=UNPAID_REASON, **payload)
            return True

        return self._sweep("cancel_unpaid", [AppointmentStatus.CONFIRMED], cancel)

    def mark_elapsed_past(self) -> SweepResult:
        return self._sweep("mark_elapsed_past", [AppointmentStatus.CONFIRMED], self.ctx.lifecycle.mark_past_if_elapsed)

    def send_reminders(self) -> SweepResult:
        tomorrow = self.ctx.clock.today() + timedelta(days=1)

        def remind(appointment: AppointmentDto) -> bool:
            if appointment.status != AppointmentStatus.CONFIRMED or appointment.reminder_sent:
                return False
            if appointment.appointment_date != tomorrow:
                return False
            # flag first: a crash after this point loses a reminder rather than sending two
            flagged = self.ctx.lifecycle.update(appointment, reminder_sent=True, reminder_sent_at=self.ctx.clock.now())
            payload = appointment_payload(flagged)
            notify(self.ctx.notifier, Recipient.patient(flagged.patient_id), "appointment.reminder", meeting_link=flagged.meeting_link, location=flagged.location, **payload)
            notify(self.ctx.notifier, Recipient.doctor(flagged.doctor_id), "appointment.reminder", **payload)
            return True

        return self._sweep("send_reminders", [AppointmentStatus.CONFIRMED], remind)

    def run_all(self) -> List[SweepResult]:
        return [
            self.expire_stale_requests(),
            self.cancel_unpaid(),
            self.mark_elapsed_past(),
            self.send_reminders(),
        ]

    def _sweep(self, name: str, statuses: List[AppointmentStatus], handle: Callable[[AppointmentDto], bool]) -> SweepResult:
        result = SweepResult(name=name)
        for appointment in self.ctx.appointments.list_by_status(statuses):
            try:
                if handle(appointment):
                    result.processed += 1
            except InvalidTransition as e:
                # another actor changed the record after we read it
                logger.info(f"{name}: appointment {appointment.id} skipped: {e.detail}")
            except Exception as e:
                result.failed += 1
                result.errors.append(f"{appointment.id}: {e}")
                logger.error(f"{name}: failed on appointment {appointment.id}: {e}", exc_info=True)
        logger.info(f"{name}: processed={result.processed} failed={result.failed}")
        return result
