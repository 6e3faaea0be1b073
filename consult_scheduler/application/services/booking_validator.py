from datetime import date
from typing import Optional

from ...exceptions import NotFound, SlotUnavailable, ValidationFailed
from ..ports.clock import Clock
from ..ports.directory import DirectoryService, DoctorDto
from .scheduling_policy import SchedulingPolicy
from .slot_grid import SlotGrid, is_weekend, to_minutes


class BookingValidator:
    def __init__(self, directory: DirectoryService, slot_grid: SlotGrid, clock: Clock, policy: SchedulingPolicy) -> None:
        self.directory = directory
        self.slot_grid = slot_grid
        self.clock = clock
        self.policy = policy

    def validate_new_booking(self, patient_id: int, doctor_id: int, appointment_date: date, slot_start_time: str) -> DoctorDto:
        doctor = self.directory.get_doctor(doctor_id)
        if not doctor:
            raise NotFound("Doctor not found")
        if not doctor.is_approved:
            raise ValidationFailed("Doctor is not available for appointments", reason="doctor_unavailable")

        patient = self.directory.get_patient(patient_id)
        if not patient:
            raise NotFound("Patient not found")
        if not patient.is_active:
            raise ValidationFailed("Patient account is not active", reason="patient_inactive")

        self.validate_slot_choice(doctor_id, appointment_date, slot_start_time)
        return doctor

    def validate_slot_choice(self, doctor_id: int, appointment_date: date, slot_start_time: str, exclude_appointment_id: Optional[int] = None) -> None:
        """Window, weekend and availability checks shared by booking and rescheduling."""
        self.check_booking_window(appointment_date)
        if is_weekend(appointment_date):
            raise ValidationFailed("Appointments are not available on weekends", reason="weekend")
        to_minutes(slot_start_time)
        if not self.slot_grid.is_available(doctor_id, appointment_date, slot_start_time, exclude_appointment_id):
            raise SlotUnavailable(f"Slot {slot_start_time} on {appointment_date.isoformat()} is not available", slot=slot_start_time)

    def check_booking_window(self, appointment_date: date) -> None:
        days_ahead = (appointment_date - self.clock.today()).days
        if days_ahead < self.policy.min_booking_days_advance:
            raise ValidationFailed(
                f"Appointments must be booked at least {self.policy.min_booking_days_advance} days in advance",
                reason="too_soon",
            )
        if days_ahead > self.policy.max_booking_days_advance:
            raise ValidationFailed(
                f"Appointments cannot be booked more than {self.policy.max_booking_days_advance} days in advance",
                reason="too_far",
            )
