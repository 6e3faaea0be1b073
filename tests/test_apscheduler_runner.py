from contextlib import contextmanager

from apscheduler.schedulers.background import BackgroundScheduler

from consult_scheduler.config import settings
from consult_scheduler.application.services.scheduler_service import SchedulerService, SweepResult
from consult_scheduler.infrastructure.scheduler.apscheduler_runner import AppointmentSweepScheduler


def _runner(scope):
    return AppointmentSweepScheduler(scope, settings, scheduler=BackgroundScheduler(timezone="UTC"))


def test_register_jobs_adds_one_job_per_sweep(ctx):
    @contextmanager
    def scope():
        yield SchedulerService(ctx)

    runner = _runner(scope)
    runner.register_jobs()

    jobs = runner.get_jobs()
    assert sorted(j["id"] for j in jobs) == ["cancel_unpaid", "expire_stale_requests", "mark_elapsed_past", "send_reminders"]
    assert all(j["next_run_time"] is None for j in jobs)


def test_run_sweep_uses_a_fresh_scope(ctx):
    opened = []

    @contextmanager
    def scope():
        opened.append(True)
        yield SchedulerService(ctx)

    runner = _runner(scope)
    result = runner.run_sweep("expire_stale_requests")
    runner.run_sweep("send_reminders")

    assert isinstance(result, SweepResult)
    assert result.name == "expire_stale_requests"
    assert len(opened) == 2


def test_run_sweep_survives_a_broken_scope():
    @contextmanager
    def scope():
        raise RuntimeError("database is down")
        yield

    assert _runner(scope).run_sweep("cancel_unpaid") is None


def test_stop_is_safe_when_never_started(ctx):
    runner = _runner(lambda: None)
    runner.stop()
    assert runner.scheduler.running is False
