from datetime import datetime, timedelta

import pytest

from consult_scheduler.application.ports.appointments_repo import Actor, AppointmentStatus, AppointmentType, PaymentStatus
from consult_scheduler.application.ports.payments_repo import LedgerStatus, PaymentType
from consult_scheduler.application.services.appointments_service import AppointmentsService, paginate
from consult_scheduler.exceptions import (
    InvalidTransition,
    NotFound,
    PaymentStateConflict,
    SlotUnavailable,
    TimingViolation,
    Unauthorized,
    ValidationFailed,
)

from conftest import APPT_DAY, DOCTOR, MEETING_LINK, OTHER_PATIENT, PATIENT, FailingNotifier


def at(hour, minute=0, day=APPT_DAY):
    return datetime.combine(day, datetime.min.time()).replace(hour=hour, minute=minute)


def test_request_creates_pending_appointment(book, notifier):
    appt = book()
    assert appt.id is not None
    assert appt.status == AppointmentStatus.REQUESTED
    assert appt.payment_status == PaymentStatus.PENDING
    assert appt.payment_amount == 1000
    assert appt.slot_end_time == "10:30"
    assert appt.location is None
    assert notifier.sent_to("doctor", DOCTOR) == ["appointment.requested"]


def test_in_person_defaults_to_main_branch(book):
    appt = book(appointment_type=AppointmentType.IN_PERSON)
    assert appt.location == "Main Branch"


def test_request_requires_reason(appointments):
    with pytest.raises(ValidationFailed):
        appointments.request(PATIENT, DOCTOR, APPT_DAY, "10:00", AppointmentType.ONLINE, "   ")


def test_requested_slot_is_held(book):
    book()
    with pytest.raises(SlotUnavailable):
        book(patient_id=OTHER_PATIENT)


def test_available_slots_for_unknown_doctor(appointments):
    with pytest.raises(NotFound):
        appointments.available_slots(999, APPT_DAY)


def test_confirm_assigns_challan_and_pending_payment(book, appointments, ctx, notifier):
    # scenario 1
    appt = book()
    confirmed = appointments.confirm(appt.id, DOCTOR, MEETING_LINK)

    assert confirmed.status == AppointmentStatus.CONFIRMED
    assert confirmed.payment_status == PaymentStatus.PENDING
    assert confirmed.challan_number.startswith("HLX-")
    assert confirmed.meeting_link == MEETING_LINK

    rows = ctx.payments.list_for_appointment(appt.id)
    assert len(rows) == 1
    assert rows[0].status == LedgerStatus.PENDING
    assert rows[0].type == PaymentType.PAYMENT
    assert rows[0].amount == 1000
    assert rows[0].challan_number == confirmed.challan_number
    assert notifier.sent_to("patient", PATIENT) == ["appointment.confirmed", "payment.required"]


def test_online_confirm_needs_meeting_link(book, appointments):
    appt = book()
    with pytest.raises(ValidationFailed):
        appointments.confirm(appt.id, DOCTOR)


def test_in_person_confirm_without_link(book, appointments):
    appt = book(appointment_type=AppointmentType.IN_PERSON)
    assert appointments.confirm(appt.id, DOCTOR).status == AppointmentStatus.CONFIRMED


def test_confirm_is_owner_only_and_once(book, appointments):
    appt = book()
    with pytest.raises(Unauthorized):
        appointments.confirm(appt.id, 2, MEETING_LINK)
    appointments.confirm(appt.id, DOCTOR, MEETING_LINK)
    with pytest.raises(InvalidTransition):
        appointments.confirm(appt.id, DOCTOR, MEETING_LINK)


def test_decline_cancels_without_refund(book, appointments, notifier):
    appt = book()
    declined = appointments.decline(appt.id, DOCTOR, "Fully booked")
    assert declined.status == AppointmentStatus.CANCELLED
    assert declined.cancelled_by == Actor.DOCTOR
    assert declined.cancellation_reason == "Fully booked"
    assert declined.refund_amount == 0
    assert "appointment.declined" in notifier.sent_to("patient", PATIENT)


def test_pay_completes_pending_row(confirmed, appointments, ctx, clock):
    appt = confirmed()
    paid = appointments.pay(appt.id, PATIENT)
    assert paid.payment_status == PaymentStatus.PAID
    assert paid.paid_at == clock.now()
    rows = ctx.payments.list_for_appointment(appt.id)
    assert [r.status for r in rows] == [LedgerStatus.COMPLETED]

    with pytest.raises(PaymentStateConflict):
        appointments.pay(appt.id, PATIENT)


def test_pay_before_confirmation(book, appointments):
    appt = book()
    with pytest.raises(PaymentStateConflict):
        appointments.pay(appt.id, PATIENT)


def test_confirm_payment_unknown_challan(appointments):
    with pytest.raises(NotFound):
        appointments.confirm_payment("HLX-NOPE-0000")


def test_patient_cancel_paid_outside_window_refunds_with_deduction(paid, appointments, ctx, clock):
    # scenario 2
    appt = paid()
    clock.set(at(10) - timedelta(hours=48))
    cancelled = appointments.cancel_by_patient(appt.id, PATIENT, "Travelling")

    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.cancelled_by == Actor.PATIENT
    assert cancelled.payment_status == PaymentStatus.PARTIAL_REFUND
    assert cancelled.refund_amount == 750
    refund = [r for r in ctx.payments.list_for_appointment(appt.id) if r.type == PaymentType.REFUND]
    assert len(refund) == 1
    assert refund[0].status == LedgerStatus.COMPLETED
    assert refund[0].amount == 750
    assert refund[0].challan_number == f"REF-{appt.challan_number}"


def test_patient_cancel_paid_inside_window_is_rejected(paid, appointments, ctx, clock):
    # scenario 3
    appt = paid()
    clock.set(at(0))
    with pytest.raises(TimingViolation) as exc:
        appointments.cancel_by_patient(appt.id, PATIENT)
    assert "24 hours" in exc.value.detail
    assert ctx.appointments.get_by_id(appt.id).status == AppointmentStatus.CONFIRMED


def test_patient_cancel_unpaid_confirmed_anytime(confirmed, appointments, clock):
    appt = confirmed()
    clock.set(at(9))
    cancelled = appointments.cancel_by_patient(appt.id, PATIENT)
    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.refund_amount == 0
    assert cancelled.payment_status == PaymentStatus.PENDING


def test_patient_cancel_requested(book, appointments):
    appt = book()
    cancelled = appointments.cancel_by_patient(appt.id, PATIENT)
    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.refund_amount == 0


def test_patient_cannot_cancel_someone_elses_appointment(book, appointments):
    appt = book()
    with pytest.raises(Unauthorized):
        appointments.cancel_by_patient(appt.id, OTHER_PATIENT)


def test_doctor_cancel_paid_inside_window_points_to_emergency(paid, appointments, clock):
    appt = paid()
    clock.set(at(0))
    with pytest.raises(TimingViolation) as exc:
        appointments.cancel_by_doctor(appt.id, DOCTOR)
    assert exc.value.extra["can_request_emergency_reschedule"] is True


def test_doctor_cancel_paid_outside_window_must_reschedule(paid, appointments):
    appt = paid()
    with pytest.raises(InvalidTransition):
        appointments.cancel_by_doctor(appt.id, DOCTOR)


def test_doctor_cancel_unpaid_confirmed(confirmed, appointments, notifier):
    appt = confirmed()
    cancelled = appointments.cancel_by_doctor(appt.id, DOCTOR, "Clinic closed")
    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.cancelled_by == Actor.DOCTOR
    assert notifier.sent_to("patient", PATIENT)[-1] == "appointment.cancelled"


def test_doctor_cancel_requested_is_a_decline(book, appointments):
    appt = book()
    assert appointments.cancel_by_doctor(appt.id, DOCTOR).status == AppointmentStatus.CANCELLED


def test_complete_only_after_end_time(paid, appointments, ctx, clock):
    appt = paid()
    clock.set(at(10, 15))
    with pytest.raises(TimingViolation):
        appointments.complete(appt.id, DOCTOR, "Rinse twice daily")

    clock.set(at(10, 30))
    with pytest.raises(ValidationFailed):
        appointments.complete(appt.id, DOCTOR, "  ")

    done = appointments.complete(appt.id, DOCTOR, "Rinse twice daily", [{"name": "Ibuprofen", "dosage": "200mg"}])
    assert done.status == AppointmentStatus.COMPLETED
    assert done.patient_attended is True
    assert done.chat_enabled is True
    assert done.completed_at == clock.now()
    prescription = ctx.prescriptions.get_by_id(done.prescription_id)
    assert prescription.instructions == "Rinse twice daily"
    assert prescription.medications[0]["name"] == "Ibuprofen"


def test_complete_from_past(paid, appointments, sweeps, clock):
    appt = paid()
    clock.set(at(11))
    sweeps.mark_elapsed_past()
    done = appointments.complete(appt.id, DOCTOR, "All good")
    assert done.status == AppointmentStatus.COMPLETED


def test_no_show_only_after_end_time(paid, appointments, clock):
    appt = paid()
    with pytest.raises(TimingViolation):
        appointments.mark_no_show(appt.id, DOCTOR)
    clock.set(at(12))
    missed = appointments.mark_no_show(appt.id, DOCTOR)
    assert missed.status == AppointmentStatus.NO_SHOW
    assert missed.patient_attended is False


def test_requested_cannot_be_completed(book, appointments, clock):
    appt = book()
    clock.set(at(12))
    with pytest.raises(InvalidTransition):
        appointments.complete(appt.id, DOCTOR, "n/a")


def test_get_for_actor_checks_ownership(book, appointments):
    appt = book()
    assert appointments.get_for_actor(appt.id, Actor.PATIENT, PATIENT).id == appt.id
    assert appointments.get_for_actor(appt.id, Actor.ADMIN, None).id == appt.id
    with pytest.raises(Unauthorized):
        appointments.get_for_actor(appt.id, Actor.DOCTOR, 2)
    with pytest.raises(NotFound):
        appointments.get_for_actor(999, Actor.ADMIN, None)


def test_patient_listing_is_newest_first_and_paginated(book, appointments):
    book(slot="09:00")
    book(slot="11:00")
    book(slot="10:00", days_ahead=6)

    page = appointments.list_for_patient(PATIENT, page=0, size=2)
    assert page.total_elements == 3
    assert page.total_pages == 2
    assert [a.slot_start_time for a in page.items] == ["10:00", "11:00"]

    second = appointments.list_for_patient(PATIENT, page=1, size=2)
    assert [a.slot_start_time for a in second.items] == ["09:00"]


def test_listing_filters_by_status(book, appointments):
    first = book(slot="09:00")
    book(slot="11:00")
    appointments.confirm(first.id, DOCTOR, MEETING_LINK)

    page = appointments.list_for_doctor(DOCTOR, [AppointmentStatus.CONFIRMED])
    assert [a.id for a in page.items] == [first.id]
    page = appointments.list_for_doctor(DOCTOR, on_date=APPT_DAY)
    assert [a.slot_start_time for a in page.items] == ["09:00", "11:00"]


def test_listing_moves_elapsed_paid_to_past(paid, appointments, clock):
    appt = paid()
    clock.set(at(11))
    page = appointments.list_for_patient(PATIENT)
    assert page.items[0].id == appt.id
    assert page.items[0].status == AppointmentStatus.PAST


def test_paginate_validates_arguments():
    with pytest.raises(ValidationFailed):
        paginate([], -1, 10)
    with pytest.raises(ValidationFailed):
        paginate([], 0, 0)
    with pytest.raises(ValidationFailed):
        paginate([], 0, 101)
    empty = paginate([], 0, 10)
    assert empty.total_pages == 0


def test_daily_schedule_lists_confirmed_only(book, confirmed, appointments, clock):
    confirmed(slot="14:00")
    confirmed(slot="09:30")
    book(slot="11:00")

    schedule = appointments.daily_schedule(DOCTOR, APPT_DAY)
    assert [a.slot_start_time for a in schedule] == ["09:30", "14:00"]

    clock.set(at(8) - timedelta(days=1))
    assert [a.slot_start_time for a in appointments.next_day_schedule(DOCTOR)] == ["09:30", "14:00"]


def test_notification_failure_does_not_undo_transition(ctx, book):
    appt = book()
    ctx.notifier = FailingNotifier()
    service = AppointmentsService(ctx)
    confirmed = service.confirm(appt.id, DOCTOR, MEETING_LINK)
    assert confirmed.status == AppointmentStatus.CONFIRMED
    assert ctx.appointments.get_by_id(appt.id).status == AppointmentStatus.CONFIRMED
