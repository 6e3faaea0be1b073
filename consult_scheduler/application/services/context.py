from dataclasses import dataclass, field
from datetime import date

from ...exceptions import NotFound, SlotUnavailable, Unauthorized
from ..ports.appointments_repo import AppointmentDto, AppointmentsRepository, AppointmentStatus
from ..ports.clock import Clock
from ..ports.directory import DirectoryService
from ..ports.emergency_repo import EmergencyRequestsRepository
from ..ports.notifier import NotificationDispatcher
from ..ports.payments_repo import PaymentsRepository
from ..ports.prescriptions_repo import PrescriptionsRepository
from .booking_validator import BookingValidator
from .conflict_resolver import ConflictResolver
from .lifecycle import AppointmentLifecycle
from .scheduling_policy import SchedulingPolicy
from .slot_grid import SlotGrid


@dataclass
class SchedulingContext:
    """Repositories and collaborators shared by every scheduling service.

    One context is built per unit of work (an HTTP request or a sweep run), so
    all services in that unit see the same repositories.
    """

    appointments: AppointmentsRepository
    payments: PaymentsRepository
    emergency_requests: EmergencyRequestsRepository
    prescriptions: PrescriptionsRepository
    directory: DirectoryService
    notifier: NotificationDispatcher
    clock: Clock
    policy: SchedulingPolicy = field(default_factory=SchedulingPolicy)

    def __post_init__(self) -> None:
        self.slot_grid = SlotGrid(self.appointments, self.policy)
        self.validator = BookingValidator(self.directory, self.slot_grid, self.clock, self.policy)
        self.lifecycle = AppointmentLifecycle(self.appointments, self.payments, self.clock, self.policy)
        self.conflicts = ConflictResolver(self.appointments, self.lifecycle, self.notifier)

    def load(self, appointment_id: int) -> AppointmentDto:
        appointment = self.appointments.get_by_id(appointment_id)
        if not appointment:
            raise NotFound("Appointment not found")
        return appointment

    def load_for_patient(self, appointment_id: int, patient_id: int) -> AppointmentDto:
        appointment = self.load(appointment_id)
        if appointment.patient_id != patient_id:
            raise Unauthorized("You are not authorized to manage this appointment")
        return appointment

    def load_for_doctor(self, appointment_id: int, doctor_id: int) -> AppointmentDto:
        appointment = self.load(appointment_id)
        if appointment.doctor_id != doctor_id:
            raise Unauthorized("You are not authorized to manage this appointment")
        return appointment

    def ensure_not_confirmed_elsewhere(self, appointment: AppointmentDto, on_date: date, slot_start_time: str) -> None:
        """Only one CONFIRMED appointment may hold a doctor's slot; REQUESTED rivals are left to ConflictResolver."""
        holders = self.appointments.find_slot_holders(
            appointment.doctor_id, on_date, slot_start_time, [AppointmentStatus.CONFIRMED]
        )
        if any(holder.id != appointment.id for holder in holders):
            raise SlotUnavailable(f"Slot {slot_start_time} on {on_date.isoformat()} is already confirmed for another patient", slot=slot_start_time)
