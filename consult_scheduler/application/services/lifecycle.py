"""Appointment state machine.

Every status change in the system goes through ``AppointmentLifecycle.transition``:
the edge is checked against ``ALLOWED_TRANSITIONS`` and the write is a
compare-and-set on the record's version, so a decision taken on a stale read
never reaches storage.
"""
import logging
import secrets
import string
from dataclasses import replace
from datetime import datetime
from typing import Optional, Tuple

from ...exceptions import InvalidTransition, StaleAppointmentError
from ..ports.appointments_repo import (
    Actor,
    AppointmentDto,
    AppointmentsRepository,
    AppointmentStatus,
    PaymentStatus,
)
from ..ports.clock import Clock
from ..ports.payments_repo import LedgerStatus, PaymentDto, PaymentsRepository, PaymentType
from .cancellation_policy import RefundDecision, RefundPath, compute_refund
from .scheduling_policy import SchedulingPolicy

logger = logging.getLogger(__name__)

S = AppointmentStatus

ALLOWED_TRANSITIONS = {
    S.REQUESTED: {S.CONFIRMED, S.CANCELLED},
    S.CONFIRMED: {S.CANCELLED, S.RESCHEDULE_REQUESTED, S.REQUESTED, S.COMPLETED, S.NO_SHOW, S.PAST},
    S.RESCHEDULE_REQUESTED: {S.CONFIRMED, S.CANCELLED, S.RESCHEDULE_REQUESTED},
    S.PAST: {S.COMPLETED, S.NO_SHOW},
    S.CANCELLED: set(),
    S.COMPLETED: set(),
    S.NO_SHOW: set(),
}

_BASE36 = string.digits + string.ascii_uppercase


def _to_base36(value: int) -> str:
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36[remainder])
    return "".join(reversed(digits)) or "0"


def generate_challan_number(prefix: str = "HLX", issued_at: Optional[datetime] = None) -> str:
    """Challan like HLX-<base36 epoch millis>-<4 random chars>.

    The millis come from ``issued_at`` when given, so a frozen clock gives a fixed stamp.
    """
    issued_at = issued_at or datetime.now()
    stamp = _to_base36(int(issued_at.timestamp() * 1000))
    suffix = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"{prefix}-{stamp}-{suffix}"


def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    return target in ALLOWED_TRANSITIONS.get(current, set())


class AppointmentLifecycle:
    def __init__(self, appointments: AppointmentsRepository, payments: PaymentsRepository, clock: Clock, policy: SchedulingPolicy) -> None:
        self.appointments = appointments
        self.payments = payments
        self.clock = clock
        self.policy = policy

    def ensure_transition(self, appointment: AppointmentDto, target: AppointmentStatus, detail: Optional[str] = None) -> None:
        if not can_transition(appointment.status, target):
            raise InvalidTransition(appointment.status.value, target.value, detail=detail)

    def transition(self, appointment: AppointmentDto, target: AppointmentStatus, **changes) -> AppointmentDto:
        self.ensure_transition(appointment, target)
        updated = replace(appointment, status=target, updated_at=self.clock.now(), **changes)
        try:
            saved = self.appointments.save(updated)
        except StaleAppointmentError:
            raise InvalidTransition(
                appointment.status.value,
                target.value,
                detail="Appointment was changed by another request; reload it and try again",
            )
        logger.info(f"Appointment {appointment.id}: {appointment.status.value} -> {target.value}")
        return saved

    def update(self, appointment: AppointmentDto, **changes) -> AppointmentDto:
        """Write non-status fields with the same compare-and-set guarantee."""
        updated = replace(appointment, updated_at=self.clock.now(), **changes)
        try:
            return self.appointments.save(updated)
        except StaleAppointmentError:
            raise InvalidTransition(
                appointment.status.value,
                appointment.status.value,
                detail="Appointment was changed by another request; reload it and try again",
            )

    def cancel(self, appointment: AppointmentDto, cancelled_by: Actor, reason: str, path: RefundPath, **changes) -> Tuple[AppointmentDto, RefundDecision]:
        decision = compute_refund(
            appointment.payment_amount or self.policy.appointment_fee,
            self.policy.cancellation_deduction,
            appointment.payment_status,
            path,
        )
        now = self.clock.now()
        saved = self.transition(
            appointment,
            S.CANCELLED,
            cancelled_by=cancelled_by,
            cancellation_reason=reason,
            cancelled_at=now,
            refund_amount=decision.amount,
            payment_status=decision.payment_status,
            reschedule_state=None,
            proposed_date=None,
            proposed_slot_start_time=None,
            **changes,
        )
        if decision.is_refund:
            self._record_refund(saved, decision, reason, cancelled_by, path, now)
        return saved, decision

    def _record_refund(self, saved: AppointmentDto, decision: RefundDecision, reason: str, cancelled_by: Actor, path: RefundPath, now: datetime) -> None:
        try:
            self.payments.add(PaymentDto(
                appointment_id=saved.id,
                patient_id=saved.patient_id,
                amount=decision.amount,
                type=PaymentType.REFUND,
                status=LedgerStatus.COMPLETED,
                challan_number=f"{decision.challan_prefix}{saved.challan_number}",
                refund_reason=reason,
                refund_initiated_by=cancelled_by,
                transaction_date=now,
                created_at=now,
            ))
        except Exception as e:
            # appointment is already CANCELLED with refund_amount set; the ledger row must be reconciled by hand
            logger.error(
                f"Refund ledger write failed for appointment {saved.id}: amount={decision.amount} "
                f"challan={decision.challan_prefix}{saved.challan_number} path={path.value}: {e}"
            )
            raise
        logger.info(f"Refund of {decision.amount} recorded for appointment {saved.id} ({path.value})")

    def open_pending_payment(self, appointment: AppointmentDto) -> PaymentDto:
        """PENDING payment row for the appointment's challan; reused if one already exists."""
        existing = self.payments.get_pending_payment(appointment.id)
        if existing:
            return existing
        return self.payments.add(PaymentDto(
            appointment_id=appointment.id,
            patient_id=appointment.patient_id,
            amount=appointment.payment_amount or self.policy.appointment_fee,
            type=PaymentType.PAYMENT,
            status=LedgerStatus.PENDING,
            challan_number=appointment.challan_number,
            created_at=self.clock.now(),
        ))

    def mark_past_if_elapsed(self, appointment: AppointmentDto) -> bool:
        """CONFIRMED + PAID appointments whose end time has passed become PAST."""
        if appointment.status != S.CONFIRMED or appointment.payment_status != PaymentStatus.PAID:
            return False
        if appointment.ends_at() > self.clock.now():
            return False
        self.transition(appointment, S.PAST)
        return True
