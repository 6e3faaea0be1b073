import logging
from typing import List

from ...exceptions import InvalidTransition, SlotUnavailable
from ..ports.appointments_repo import Actor, AppointmentDto, AppointmentsRepository, AppointmentStatus, PaymentStatus
from ..ports.notifier import NotificationDispatcher, Recipient
from .cancellation_policy import RefundPath
from .lifecycle import AppointmentLifecycle
from .notify import notify

logger = logging.getLogger(__name__)

SLOT_OCCUPIED_REASON = "Slot already occupied by another patient"


def _keeper_rank(appointment: AppointmentDto):
    # paid beats unpaid, then the older appointment
    return (appointment.payment_status != PaymentStatus.PAID, appointment.id)


class ConflictResolver:
    """Reconciles a slot after an appointment has just been confirmed into it.

    Contention is optimistic: two REQUESTED appointments may share a slot until
    one is confirmed, at which point the others are cancelled. If two
    confirmations race past the pre-check, the one ranked by ``_keeper_rank``
    keeps the slot and the unpaid loser is released.
    """

    def __init__(self, appointments: AppointmentsRepository, lifecycle: AppointmentLifecycle, notifier: NotificationDispatcher) -> None:
        self.appointments = appointments
        self.lifecycle = lifecycle
        self.notifier = notifier

    def resolve(self, winner: AppointmentDto) -> List[AppointmentDto]:
        cancelled = self._settle_confirmed(winner)

        rivals = self.appointments.find_slot_holders(
            winner.doctor_id,
            winner.appointment_date,
            winner.slot_start_time,
            [AppointmentStatus.REQUESTED],
        )
        for rival in rivals:
            if rival.id == winner.id:
                continue
            released = self._release(rival)
            if released:
                cancelled.append(released)
        if cancelled:
            logger.info(f"Appointment {winner.id} took slot {winner.slot_start_time}; cancelled {len(cancelled)} rival appointment(s)")
        return cancelled

    def _settle_confirmed(self, winner: AppointmentDto) -> List[AppointmentDto]:
        clashes = [
            holder for holder in self.appointments.find_slot_holders(
                winner.doctor_id, winner.appointment_date, winner.slot_start_time, [AppointmentStatus.CONFIRMED]
            )
            if holder.id != winner.id
        ]
        if not clashes:
            return []

        contenders = [winner] + clashes
        keeper = min(contenders, key=_keeper_rank)
        released = []
        for loser in contenders:
            if loser.id == keeper.id:
                continue
            if loser.payment_status == PaymentStatus.PAID:
                logger.warning(f"Paid appointment {loser.id} shares slot {loser.slot_start_time} with appointment {keeper.id}; left for manual review")
                continue
            result = self._release(loser)
            if result:
                released.append(result)

        if keeper.id != winner.id and winner.payment_status != PaymentStatus.PAID:
            raise SlotUnavailable(
                f"Slot {winner.slot_start_time} on {winner.appointment_date.isoformat()} was confirmed for another patient at the same time",
                slot=winner.slot_start_time,
            )
        return released

    def _release(self, appointment: AppointmentDto):
        try:
            saved, _ = self.lifecycle.cancel(appointment, Actor.SYSTEM, SLOT_OCCUPIED_REASON, RefundPath.NO_REFUND)
        except InvalidTransition as e:
            # moved on (withdrawn, cancelled by a racing confirm) between read and write
            logger.info(f"Skipping conflicting appointment {appointment.id}: {e.detail}")
            return None
        notify(
            self.notifier,
            Recipient.patient(saved.patient_id),
            "appointment.slot_taken",
            appointment_id=saved.id,
            doctor_id=saved.doctor_id,
            appointment_date=saved.appointment_date.isoformat(),
            slot_start_time=saved.slot_start_time,
            reason=SLOT_OCCUPIED_REASON,
        )
        return saved
