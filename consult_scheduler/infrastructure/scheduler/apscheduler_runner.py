import logging
from typing import Callable, ContextManager, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ...application.services.scheduler_service import SchedulerService, SweepResult

logger = logging.getLogger(__name__)

ServiceScope = Callable[[], ContextManager[SchedulerService]]


class AppointmentSweepScheduler:
    """Runs the appointment sweeps on background timers.

    ``service_scope`` opens a fresh unit of work (session and repositories) for
    every run, so jobs never share state with requests or with each other.
    """

    def __init__(self, service_scope: ServiceScope, settings, scheduler: Optional[BackgroundScheduler] = None):
        self.service_scope = service_scope
        self.settings = settings
        self.scheduler = scheduler or BackgroundScheduler(timezone=settings.CLINIC_TIMEZONE)

    def register_jobs(self) -> None:
        jobs = [
            ("expire_stale_requests", IntervalTrigger(minutes=self.settings.EXPIRE_REQUESTS_INTERVAL_MINUTES), "Expire Stale Requests"),
            ("cancel_unpaid", IntervalTrigger(hours=self.settings.UNPAID_SWEEP_INTERVAL_HOURS), "Cancel Unpaid Appointments"),
            ("mark_elapsed_past", IntervalTrigger(minutes=self.settings.MARK_PAST_INTERVAL_MINUTES), "Mark Elapsed Appointments Past"),
            ("send_reminders", CronTrigger(hour=self.settings.REMINDER_HOUR, minute=0), "Send Appointment Reminders"),
        ]
        for sweep_name, trigger, title in jobs:
            self.scheduler.add_job(
                self.run_sweep,
                trigger,
                args=[sweep_name],
                id=sweep_name,
                replace_existing=True,
                name=title,
                max_instances=1,
                coalesce=True,
            )

    def start(self) -> None:
        if not self.scheduler.running:
            self.register_jobs()
            self.scheduler.start()
            logger.info("Appointment scheduler started")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Appointment scheduler stopped")

    def get_jobs(self) -> List[Dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run_time": next_run.isoformat() if next_run else None,
                "trigger": str(job.trigger),
            })
        return jobs

    def run_sweep(self, sweep_name: str) -> Optional[SweepResult]:
        try:
            with self.service_scope() as service:
                return getattr(service, sweep_name)()
        except Exception as e:
            # keep the timer alive; the next tick retries
            logger.error(f"Sweep {sweep_name} aborted: {e}", exc_info=True)
            return None
