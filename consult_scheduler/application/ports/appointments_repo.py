from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional, Protocol, Set
from datetime import date, datetime, time


class AppointmentStatus(str, Enum):
    REQUESTED = "REQUESTED"
    CONFIRMED = "CONFIRMED"
    RESCHEDULE_REQUESTED = "RESCHEDULE_REQUESTED"
    CANCELLED = "CANCELLED"
    COMPLETED = "COMPLETED"
    NO_SHOW = "NO_SHOW"
    PAST = "PAST"


# Statuses that hold a slot on the doctor's grid
SLOT_HOLDING_STATUSES = (AppointmentStatus.REQUESTED, AppointmentStatus.CONFIRMED)
TERMINAL_STATUSES = (AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED, AppointmentStatus.NO_SHOW)


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    PAID = "PAID"
    PARTIAL_REFUND = "PARTIAL_REFUND"
    REFUNDED = "REFUNDED"


class AppointmentType(str, Enum):
    ONLINE = "ONLINE"
    IN_PERSON = "IN_PERSON"


class Actor(str, Enum):
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"
    ADMIN = "ADMIN"
    SYSTEM = "SYSTEM"


class RescheduleState(str, Enum):
    """Sub-state of an appointment sitting in RESCHEDULE_REQUESTED."""

    PROPOSED_BY_PATIENT = "PROPOSED_BY_PATIENT"
    PROPOSED_BY_DOCTOR = "PROPOSED_BY_DOCTOR"
    REJECTED_AWAITING_PATIENT_CHOICE = "REJECTED_AWAITING_PATIENT_CHOICE"
    DOCTOR_CANCELLED_AWAITING_PATIENT_CHOICE = "DOCTOR_CANCELLED_AWAITING_PATIENT_CHOICE"


def parse_slot_time(value: str) -> time:
    return datetime.strptime(value, "%H:%M").time()


@dataclass
class AppointmentDto:
    patient_id: int
    doctor_id: int
    appointment_date: date
    slot_start_time: str
    slot_end_time: str
    appointment_type: AppointmentType
    reason: str
    id: Optional[int] = None
    status: AppointmentStatus = AppointmentStatus.REQUESTED
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_amount: int = 0
    refund_amount: int = 0
    challan_number: Optional[str] = None
    paid_at: Optional[datetime] = None
    meeting_link: Optional[str] = None
    location: Optional[str] = None
    cancelled_by: Optional[Actor] = None
    cancellation_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    reschedule_requested_by: Optional[Actor] = None
    reschedule_reason: Optional[str] = None
    reschedule_state: Optional[RescheduleState] = None
    reschedule_rejection_reason: Optional[str] = None
    doctor_cancellation_reason: Optional[str] = None
    doctor_cancelled_at: Optional[datetime] = None
    proposed_date: Optional[date] = None
    proposed_slot_start_time: Optional[str] = None
    completed_at: Optional[datetime] = None
    patient_attended: Optional[bool] = None
    prescription_id: Optional[int] = None
    chat_enabled: bool = False
    reminder_sent: bool = False
    reminder_sent_at: Optional[datetime] = None
    requested_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    version: int = 0

    def starts_at(self) -> datetime:
        return datetime.combine(self.appointment_date, parse_slot_time(self.slot_start_time))

    def ends_at(self) -> datetime:
        return datetime.combine(self.appointment_date, parse_slot_time(self.slot_end_time))

    def hours_until_start(self, now: datetime) -> float:
        return (self.starts_at() - now).total_seconds() / 3600

    @property
    def has_proposed_slot(self) -> bool:
        return self.proposed_date is not None and self.proposed_slot_start_time is not None

    # Read-only views over reschedule_state for consumers of the old flag names
    @property
    def reschedule_rejected(self) -> bool:
        return self.reschedule_state == RescheduleState.REJECTED_AWAITING_PATIENT_CHOICE

    @property
    def doctor_cancelled_reschedule_request(self) -> bool:
        return self.reschedule_state == RescheduleState.DOCTOR_CANCELLED_AWAITING_PATIENT_CHOICE

    @property
    def patient_responded_to_doctor_reschedule(self) -> bool:
        return self.reschedule_state == RescheduleState.PROPOSED_BY_DOCTOR and self.has_proposed_slot


class AppointmentsRepository(Protocol):
    def add(self, appointment: AppointmentDto) -> AppointmentDto:
        ...

    def get_by_id(self, appointment_id: int) -> Optional[AppointmentDto]:
        ...

    def get_by_challan(self, challan_number: str) -> Optional[AppointmentDto]:
        ...

    def save(self, appointment: AppointmentDto) -> AppointmentDto:
        """Persist ``appointment`` if its version still matches the stored one.

        Raises StaleAppointmentError when another writer got there first.
        """
        ...

    def occupied_slots(self, doctor_id: int, on_date: date, exclude_id: Optional[int] = None) -> Set[str]:
        ...

    def find_slot_holders(self, doctor_id: int, on_date: date, slot_start_time: str, statuses: Iterable[AppointmentStatus]) -> List[AppointmentDto]:
        ...

    def list_by_status(self, statuses: Iterable[AppointmentStatus]) -> List[AppointmentDto]:
        ...

    def list_for_patient(self, patient_id: int, statuses: Optional[Iterable[AppointmentStatus]] = None) -> List[AppointmentDto]:
        ...

    def list_for_doctor(self, doctor_id: int, statuses: Optional[Iterable[AppointmentStatus]] = None, on_date: Optional[date] = None) -> List[AppointmentDto]:
        ...
