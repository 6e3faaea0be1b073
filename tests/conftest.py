import os

# must be set before consult_scheduler.config is imported
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ.setdefault("DATABASE_URL", "sqlite://")

from datetime import date, datetime, timedelta

import pytest

from consult_scheduler.application.ports.appointments_repo import AppointmentDto, AppointmentStatus, AppointmentType, PaymentStatus
from consult_scheduler.application.ports.directory import DoctorDto, PatientDto
from consult_scheduler.application.services.appointments_service import AppointmentsService
from consult_scheduler.application.services.context import SchedulingContext
from consult_scheduler.application.services.emergency_review_service import EmergencyReviewService
from consult_scheduler.application.services.reschedule_service import RescheduleService
from consult_scheduler.application.services.scheduler_service import SchedulerService
from consult_scheduler.application.services.scheduling_policy import SchedulingPolicy
from consult_scheduler.infrastructure.persistence.memory.memory_appointments_repo import InMemoryAppointmentsRepository
from consult_scheduler.infrastructure.persistence.memory.memory_directory import InMemoryDirectory
from consult_scheduler.infrastructure.persistence.memory.memory_emergency_repo import InMemoryEmergencyRequestsRepository
from consult_scheduler.infrastructure.persistence.memory.memory_payments_repo import InMemoryPaymentsRepository
from consult_scheduler.infrastructure.persistence.memory.memory_prescriptions_repo import InMemoryPrescriptionsRepository

# Friday morning; +5 days is Wednesday, +8 is Saturday
NOW = datetime(2025, 6, 6, 8, 0)
APPT_DAY = NOW.date() + timedelta(days=5)

DOCTOR = 1
UNAPPROVED_DOCTOR = 2
PATIENT = 10
OTHER_PATIENT = 11
INACTIVE_PATIENT = 13

MEETING_LINK = "https://meet.example.com/abc"


class FrozenClock:
    def __init__(self, now: datetime):
        self.current = now

    def now(self) -> datetime:
        return self.current

    def today(self) -> date:
        return self.current.date()

    def set(self, when: datetime) -> None:
        self.current = when

    def advance(self, **delta) -> None:
        self.current = self.current + timedelta(**delta)


class RecordingNotifier:
    def __init__(self):
        self.events = []

    def dispatch(self, event):
        self.events.append(event)

    def keys(self):
        return [e.template_key for e in self.events]

    def sent_to(self, role, recipient_id=None):
        return [
            e.template_key for e in self.events
            if e.recipient.role == role and (recipient_id is None or e.recipient.id == recipient_id)
        ]


class FailingNotifier:
    def dispatch(self, event):
        raise RuntimeError("notification channel down")


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def notifier():
    return RecordingNotifier()


@pytest.fixture
def directory():
    d = InMemoryDirectory()
    d.add_doctor(DoctorDto(id=DOCTOR, name="Asha Rao", specialization="Dentist"))
    d.add_doctor(DoctorDto(id=UNAPPROVED_DOCTOR, name="Vikram Sen", is_approved=False))
    d.add_patient(PatientDto(id=PATIENT, name="Ravi Kumar"))
    d.add_patient(PatientDto(id=OTHER_PATIENT, name="Meera Iyer"))
    d.add_patient(PatientDto(id=12, name="John Dsouza"))
    d.add_patient(PatientDto(id=INACTIVE_PATIENT, name="Inactive Person", is_active=False))
    return d


@pytest.fixture
def ctx(clock, notifier, directory):
    return SchedulingContext(
        appointments=InMemoryAppointmentsRepository(),
        payments=InMemoryPaymentsRepository(),
        emergency_requests=InMemoryEmergencyRequestsRepository(),
        prescriptions=InMemoryPrescriptionsRepository(),
        directory=directory,
        notifier=notifier,
        clock=clock,
        policy=SchedulingPolicy(),
    )


@pytest.fixture
def appointments(ctx):
    return AppointmentsService(ctx)


@pytest.fixture
def reschedules(ctx):
    return RescheduleService(ctx)


@pytest.fixture
def emergencies(ctx):
    return EmergencyReviewService(ctx)


@pytest.fixture
def sweeps(ctx):
    return SchedulerService(ctx)


@pytest.fixture
def book(appointments, clock):
    """Request an appointment ``days_ahead`` days from the frozen today."""

    def _book(patient_id=PATIENT, slot="10:00", days_ahead=5, doctor_id=DOCTOR, appointment_type=AppointmentType.ONLINE):
        return appointments.request(
            patient_id=patient_id,
            doctor_id=doctor_id,
            appointment_date=clock.today() + timedelta(days=days_ahead),
            slot_start_time=slot,
            appointment_type=appointment_type,
            reason="Tooth pain",
        )

    return _book


@pytest.fixture
def confirmed(book, appointments):
    def _confirmed(**kwargs):
        appt = book(**kwargs)
        return appointments.confirm(appt.id, appt.doctor_id, MEETING_LINK)

    return _confirmed


@pytest.fixture
def paid(confirmed, appointments):
    def _paid(**kwargs):
        appt = confirmed(**kwargs)
        return appointments.pay(appt.id, appt.patient_id)

    return _paid


def seed_appointment(ctx, **overrides) -> AppointmentDto:
    """Insert a row directly, bypassing the booking checks."""
    values = dict(
        patient_id=PATIENT,
        doctor_id=DOCTOR,
        appointment_date=APPT_DAY,
        slot_start_time="10:00",
        slot_end_time="10:30",
        appointment_type=AppointmentType.ONLINE,
        reason="Tooth pain",
        status=AppointmentStatus.REQUESTED,
        payment_status=PaymentStatus.PENDING,
        payment_amount=1000,
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return ctx.appointments.add(AppointmentDto(**values))
