from dataclasses import replace
from datetime import timedelta

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session, create_engine

from consult_scheduler.database import create_db_and_tables
from consult_scheduler.db.models import Doctor, Patient
from consult_scheduler.exceptions import DuplicateRequest, StaleAppointmentError
from consult_scheduler.application.ports.appointments_repo import (
    Actor,
    AppointmentDto,
    AppointmentStatus,
    AppointmentType,
    RescheduleState,
    SLOT_HOLDING_STATUSES,
)
from consult_scheduler.application.ports.emergency_repo import EmergencyCancellationDto, EmergencyRescheduleDto, ReviewStatus
from consult_scheduler.application.ports.payments_repo import LedgerStatus, PaymentDto, PaymentType
from consult_scheduler.application.ports.prescriptions_repo import PrescriptionDto
from consult_scheduler.infrastructure.persistence.sqlalchemy.repositories.appointments_repository_sql import SqlAppointmentsRepository
from consult_scheduler.infrastructure.persistence.sqlalchemy.repositories.directory_repository_sql import SqlDirectoryRepository
from consult_scheduler.infrastructure.persistence.sqlalchemy.repositories.emergency_requests_repository_sql import SqlEmergencyRequestsRepository
from consult_scheduler.infrastructure.persistence.sqlalchemy.repositories.payments_repository_sql import SqlPaymentsRepository
from consult_scheduler.infrastructure.persistence.sqlalchemy.repositories.prescriptions_repository_sql import SqlPrescriptionsRepository

from conftest import APPT_DAY, DOCTOR, NOW, OTHER_PATIENT, PATIENT


@pytest.fixture
def session():
    engine = create_engine("sqlite://", connect_args={"check_same_thread": False}, poolclass=StaticPool)
    create_db_and_tables(bind=engine)
    with Session(engine) as s:
        s.add(Doctor(id=DOCTOR, name="Asha Rao", specialization="Dentist"))
        s.add(Doctor(id=2, name="Vikram Sen", is_approved=False))
        s.add(Patient(id=PATIENT, name="Ravi Kumar"))
        s.add(Patient(id=OTHER_PATIENT, name="Meera Iyer", is_active=False))
        s.commit()
        yield s


def _appointment(**overrides) -> AppointmentDto:
    values = dict(
        patient_id=PATIENT,
        doctor_id=DOCTOR,
        appointment_date=APPT_DAY,
        slot_start_time="10:00",
        slot_end_time="10:30",
        appointment_type=AppointmentType.ONLINE,
        reason="Tooth pain",
        payment_amount=1000,
        created_at=NOW,
        updated_at=NOW,
    )
    values.update(overrides)
    return AppointmentDto(**values)


def test_appointment_round_trips_enums(session):
    repo = SqlAppointmentsRepository(session)
    stored = repo.add(_appointment(challan_number="HLX-1", requested_at=NOW))

    assert stored.id is not None
    assert stored.version == 0
    assert stored.status == AppointmentStatus.REQUESTED
    assert stored.appointment_type == AppointmentType.ONLINE
    assert stored.reschedule_state is None
    assert stored.requested_at == NOW
    assert repo.get_by_challan("HLX-1").id == stored.id
    assert repo.get_by_id(999) is None


def test_save_bumps_version_and_rejects_stale_copy(session):
    repo = SqlAppointmentsRepository(session)
    stored = repo.add(_appointment())
    stale = replace(stored)

    updated = repo.save(replace(
        stored,
        status=AppointmentStatus.RESCHEDULE_REQUESTED,
        reschedule_state=RescheduleState.PROPOSED_BY_DOCTOR,
        reschedule_requested_by=Actor.DOCTOR,
    ))
    assert updated.version == 1
    assert updated.reschedule_state == RescheduleState.PROPOSED_BY_DOCTOR
    assert updated.reschedule_requested_by == Actor.DOCTOR

    with pytest.raises(StaleAppointmentError):
        repo.save(replace(stale, status=AppointmentStatus.CANCELLED))
    assert repo.get_by_id(stored.id).status == AppointmentStatus.RESCHEDULE_REQUESTED


def test_occupied_slots_only_counts_holding_statuses(session):
    repo = SqlAppointmentsRepository(session)
    held = repo.add(_appointment())
    repo.add(_appointment(slot_start_time="11:00", slot_end_time="11:30", status=AppointmentStatus.CONFIRMED))
    repo.add(_appointment(slot_start_time="12:00", slot_end_time="12:30", status=AppointmentStatus.CANCELLED))
    repo.add(_appointment(slot_start_time="14:00", slot_end_time="14:30", status=AppointmentStatus.RESCHEDULE_REQUESTED))
    repo.add(_appointment(appointment_date=APPT_DAY + timedelta(days=1), slot_start_time="15:00", slot_end_time="15:30"))

    assert repo.occupied_slots(DOCTOR, APPT_DAY) == {"10:00", "11:00"}
    assert repo.occupied_slots(DOCTOR, APPT_DAY, exclude_id=held.id) == {"11:00"}
    assert repo.occupied_slots(2, APPT_DAY) == set()


def test_find_slot_holders_oldest_first(session):
    repo = SqlAppointmentsRepository(session)
    later = repo.add(_appointment(patient_id=OTHER_PATIENT, created_at=NOW + timedelta(minutes=5)))
    earlier = repo.add(_appointment())
    repo.add(_appointment(status=AppointmentStatus.CANCELLED))

    holders = repo.find_slot_holders(DOCTOR, APPT_DAY, "10:00", SLOT_HOLDING_STATUSES)
    assert [h.id for h in holders] == [earlier.id, later.id]


def test_listings_filter_and_order(session):
    repo = SqlAppointmentsRepository(session)
    first = repo.add(_appointment(slot_start_time="09:00", slot_end_time="09:30"))
    second = repo.add(_appointment(slot_start_time="11:00", slot_end_time="11:30", status=AppointmentStatus.CONFIRMED))
    repo.add(_appointment(patient_id=OTHER_PATIENT, appointment_date=APPT_DAY + timedelta(days=1)))

    assert [a.id for a in repo.list_for_patient(PATIENT)] == [second.id, first.id]
    assert [a.id for a in repo.list_for_patient(PATIENT, [AppointmentStatus.CONFIRMED])] == [second.id]
    assert [a.id for a in repo.list_for_doctor(DOCTOR, on_date=APPT_DAY)] == [first.id, second.id]
    assert len(repo.list_by_status([AppointmentStatus.REQUESTED])) == 2


def test_payment_completion_is_one_way(session):
    appointment = SqlAppointmentsRepository(session).add(_appointment())
    repo = SqlPaymentsRepository(session)
    pending = repo.add(PaymentDto(
        appointment_id=appointment.id,
        patient_id=PATIENT,
        amount=1000,
        type=PaymentType.PAYMENT,
        status=LedgerStatus.PENDING,
        challan_number="HLX-1",
    ))
    assert repo.get_pending_payment(appointment.id).id == pending.id

    done = repo.complete(pending.id, NOW)
    assert done.status == LedgerStatus.COMPLETED
    assert done.transaction_date == NOW
    assert repo.complete(pending.id, NOW + timedelta(hours=1)) is None
    assert repo.get_pending_payment(appointment.id) is None

    repo.add(PaymentDto(
        appointment_id=appointment.id,
        patient_id=PATIENT,
        amount=750,
        type=PaymentType.REFUND,
        status=LedgerStatus.COMPLETED,
        challan_number="REF-HLX-1",
        refund_reason="Cancelled by patient",
        refund_initiated_by=Actor.PATIENT,
    ))
    ledger = repo.list_for_appointment(appointment.id)
    assert [p.type for p in ledger] == [PaymentType.PAYMENT, PaymentType.REFUND]
    assert ledger[1].refund_initiated_by == Actor.PATIENT


def test_emergency_cancellation_pending_is_unique(session):
    appointment = SqlAppointmentsRepository(session).add(_appointment(status=AppointmentStatus.CONFIRMED))
    repo = SqlEmergencyRequestsRepository(session)
    request = repo.add_cancellation(EmergencyCancellationDto(
        appointment_id=appointment.id,
        patient_id=PATIENT,
        reason="Hospitalised",
        expires_at=NOW + timedelta(days=4),
        created_at=NOW,
    ))
    with pytest.raises(DuplicateRequest):
        repo.add_cancellation(EmergencyCancellationDto(
            appointment_id=appointment.id,
            patient_id=PATIENT,
            reason="Again",
            expires_at=NOW + timedelta(days=4),
        ))

    approved = replace(request, status=ReviewStatus.APPROVED, admin_id=900, reviewed_at=NOW)
    assert repo.save_cancellation(approved, expected_status=ReviewStatus.PENDING) is True
    assert repo.save_cancellation(approved, expected_status=ReviewStatus.PENDING) is False
    stored = repo.get_cancellation(request.id)
    assert stored.status == ReviewStatus.APPROVED
    assert stored.admin_id == 900
    assert repo.find_pending_cancellation(appointment.id) is None
    assert [r.id for r in repo.list_cancellations(ReviewStatus.APPROVED)] == [request.id]


def test_emergency_reschedule_listing(session):
    appointment = SqlAppointmentsRepository(session).add(_appointment(status=AppointmentStatus.CONFIRMED))
    repo = SqlEmergencyRequestsRepository(session)
    request = repo.add_reschedule(EmergencyRescheduleDto(
        appointment_id=appointment.id,
        doctor_id=DOCTOR,
        reason="Surgery overran",
        created_at=NOW,
    ))
    with pytest.raises(DuplicateRequest):
        repo.add_reschedule(EmergencyRescheduleDto(appointment_id=appointment.id, doctor_id=DOCTOR, reason="Again"))

    assert repo.find_pending_reschedule(appointment.id).id == request.id
    rejected = replace(request, status=ReviewStatus.REJECTED, admin_notes="Find cover")
    assert repo.save_reschedule(rejected, expected_status=ReviewStatus.PENDING)
    assert repo.list_reschedules(ReviewStatus.PENDING) == []
    assert repo.get_reschedule(request.id).admin_notes == "Find cover"


def test_prescription_medications_stored_as_json(session):
    appointment = SqlAppointmentsRepository(session).add(_appointment(status=AppointmentStatus.COMPLETED))
    repo = SqlPrescriptionsRepository(session)
    medications = [{"name": "Amoxicillin", "dosage": "500mg", "frequency": "3x daily", "duration": "5 days"}]
    stored = repo.add(PrescriptionDto(
        appointment_id=appointment.id,
        patient_id=PATIENT,
        doctor_id=DOCTOR,
        instructions="Take after meals",
        medications=medications,
    ))

    loaded = repo.get_by_id(stored.id)
    assert loaded.medications == medications
    assert loaded.instructions == "Take after meals"
    assert repo.get_by_id(999) is None


def test_directory_reads_profiles(session):
    directory = SqlDirectoryRepository(session)
    assert directory.get_doctor(DOCTOR).is_approved is True
    assert directory.get_doctor(2).is_approved is False
    assert directory.get_doctor(404) is None
    assert directory.get_patient(PATIENT).is_active is True
    assert directory.get_patient(OTHER_PATIENT).is_active is False
