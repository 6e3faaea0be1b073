from datetime import datetime, timedelta

from consult_scheduler.application.ports.appointments_repo import Actor, AppointmentStatus, PaymentStatus
from consult_scheduler.application.services.scheduler_service import EXPIRED_REQUEST_REASON, UNPAID_REASON, SchedulerService

from conftest import APPT_DAY, DOCTOR, NOW, PATIENT, seed_appointment


def test_requests_without_answer_for_25_hours_expire(ctx, sweeps, clock, notifier):
    # scenario 6
    stale = seed_appointment(ctx, created_at=NOW - timedelta(hours=25))
    fresh = seed_appointment(ctx, slot_start_time="11:00", slot_end_time="11:30", created_at=NOW - timedelta(hours=2))

    result = sweeps.expire_stale_requests()

    assert result.processed == 1
    assert result.failed == 0
    expired = ctx.appointments.get_by_id(stale.id)
    assert expired.status == AppointmentStatus.CANCELLED
    assert expired.cancelled_by == Actor.SYSTEM
    assert expired.cancellation_reason == EXPIRED_REQUEST_REASON
    assert ctx.appointments.get_by_id(fresh.id).status == AppointmentStatus.REQUESTED
    assert notifier.sent_to("patient", PATIENT) == ["appointment.expired"]


def test_expiry_sweep_is_idempotent(ctx, sweeps):
    seed_appointment(ctx, created_at=NOW - timedelta(hours=30))
    assert sweeps.expire_stale_requests().processed == 1
    assert sweeps.expire_stale_requests().processed == 0


def test_unpaid_confirmed_cancelled_when_close(ctx, sweeps, clock, notifier):
    close = seed_appointment(ctx, status=AppointmentStatus.CONFIRMED, challan_number="HLX-A-0001")
    later = seed_appointment(
        ctx,
        status=AppointmentStatus.CONFIRMED,
        challan_number="HLX-A-0002",
        appointment_date=APPT_DAY + timedelta(days=1),
    )
    paid = seed_appointment(
        ctx,
        status=AppointmentStatus.CONFIRMED,
        payment_status=PaymentStatus.PAID,
        challan_number="HLX-A-0003",
        slot_start_time="09:00",
        slot_end_time="09:30",
    )

    clock.set(datetime.combine(APPT_DAY, datetime.min.time()).replace(hour=9))
    result = sweeps.cancel_unpaid()

    assert result.processed == 1
    cancelled = ctx.appointments.get_by_id(close.id)
    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.cancellation_reason == UNPAID_REASON
    assert cancelled.refund_amount == 0
    assert ctx.appointments.get_by_id(later.id).status == AppointmentStatus.CONFIRMED
    assert ctx.appointments.get_by_id(paid.id).status == AppointmentStatus.CONFIRMED
    assert "appointment.unpaid_cancelled" in notifier.sent_to("doctor", DOCTOR)


def test_mark_past_sweep_is_idempotent(ctx, sweeps, clock):
    paid = seed_appointment(ctx, status=AppointmentStatus.CONFIRMED, payment_status=PaymentStatus.PAID, challan_number="HLX-A-0001")
    clock.set(paid.ends_at() + timedelta(minutes=1))

    assert sweeps.mark_elapsed_past().processed == 1
    assert ctx.appointments.get_by_id(paid.id).status == AppointmentStatus.PAST
    assert sweeps.mark_elapsed_past().processed == 0


def test_reminders_sent_once_for_tomorrow(ctx, sweeps, clock, notifier):
    tomorrow = seed_appointment(ctx, status=AppointmentStatus.CONFIRMED, payment_status=PaymentStatus.PAID, challan_number="HLX-A-0001")
    seed_appointment(
        ctx,
        status=AppointmentStatus.CONFIRMED,
        payment_status=PaymentStatus.PAID,
        challan_number="HLX-A-0002",
        appointment_date=APPT_DAY + timedelta(days=1),
    )
    clock.set(datetime.combine(APPT_DAY - timedelta(days=1), datetime.min.time()).replace(hour=9))

    assert sweeps.send_reminders().processed == 1
    stored = ctx.appointments.get_by_id(tomorrow.id)
    assert stored.reminder_sent is True
    assert stored.reminder_sent_at == clock.now()
    assert notifier.sent_to("patient", PATIENT).count("appointment.reminder") == 1
    assert notifier.sent_to("doctor", DOCTOR).count("appointment.reminder") == 1

    assert sweeps.send_reminders().processed == 0


class _BrokenLifecycle:
    def __init__(self, real, broken_id):
        self.real = real
        self.broken_id = broken_id

    def cancel(self, appointment, *args, **kwargs):
        if appointment.id == self.broken_id:
            raise RuntimeError("database hiccup")
        return self.real.cancel(appointment, *args, **kwargs)


def test_one_bad_record_does_not_stop_the_sweep(ctx, clock):
    broken = seed_appointment(ctx, created_at=NOW - timedelta(hours=30))
    healthy = seed_appointment(ctx, slot_start_time="11:00", slot_end_time="11:30", created_at=NOW - timedelta(hours=30))
    ctx.lifecycle = _BrokenLifecycle(ctx.lifecycle, broken.id)

    result = SchedulerService(ctx).expire_stale_requests()

    assert result.processed == 1
    assert result.failed == 1
    assert str(broken.id) in result.errors[0]
    assert ctx.appointments.get_by_id(healthy.id).status == AppointmentStatus.CANCELLED
    assert ctx.appointments.get_by_id(broken.id).status == AppointmentStatus.REQUESTED


def test_run_all_reports_every_sweep(sweeps):
    names = [r.name for r in sweeps.run_all()]
    assert names == ["expire_stale_requests", "cancel_unpaid", "mark_elapsed_past", "send_reminders"]


def test_unpaid_reschedule_restarts_the_expiry_clock(confirmed, reschedules, sweeps, ctx, clock):
    appt = confirmed()
    clock.advance(days=2)
    moved = reschedules.propose_by_patient(appt.id, PATIENT, APPT_DAY + timedelta(days=1), "16:00")
    assert moved.status == AppointmentStatus.REQUESTED
    assert moved.requested_at == clock.now()

    clock.advance(minutes=1)
    assert sweeps.expire_stale_requests().processed == 0
    assert ctx.appointments.get_by_id(appt.id).status == AppointmentStatus.REQUESTED


def test_rescheduled_request_expires_a_full_window_after_the_move(confirmed, reschedules, sweeps, ctx, clock):
    appt = confirmed()
    clock.advance(days=2)
    reschedules.propose_by_patient(appt.id, PATIENT, APPT_DAY + timedelta(days=1), "16:00")

    clock.advance(hours=23)
    assert sweeps.expire_stale_requests().processed == 0
    assert ctx.appointments.get_by_id(appt.id).status == AppointmentStatus.REQUESTED

    clock.advance(hours=2)
    assert sweeps.expire_stale_requests().processed == 1
    expired = ctx.appointments.get_by_id(appt.id)
    assert expired.status == AppointmentStatus.CANCELLED
    assert expired.cancellation_reason == EXPIRED_REQUEST_REASON
