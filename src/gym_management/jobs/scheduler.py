"""
# Job Scheduler

Runs the periodic tasks in `jobs.tasks` on cron schedules using **APScheduler**'s
`AsyncIOScheduler`, in the gym's timezone (`JOBS_TIMEZONE`, default `Asia/Ho_Chi_Minh`).

| Job id | Default cron | Task |
|---|---|---|
| `booking_reminder` | `*/10 * * * *` | reminders for bookings starting within the hour |
| `class_reminder` | `*/10 * * * *` | reminders for class sessions starting within the hour |
| `booking_status` | `0 */2 * * *` | `booking` to `completed` once the slot has ended |
| `membership_expiring` | `0 5 * * *` | notices at 7/3/1 days before expiry |
| `membership_expired` | `5 5 * * *` | notice for memberships ending today |
| `subscription_sweep` | `15 5 * * *` | expire active subscriptions past their end date |
| `notification_cleanup` | `0 2 * * *` | delete notifications past retention |

Jobs are independent: one tick never waits for another, and a tick that is still running when the
next one fires is skipped (`max_instances=1`).
"""

from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from gym_management.config import Settings, settings as default_settings
from gym_management.managers.logging_manager import get_logger

logger = get_logger(prefix="[JobScheduler]")


class JobScheduler:
    def __init__(self, jobs, settings: Optional[Settings] = None):
        self.settings = settings or default_settings
        self.jobs = jobs
        self.scheduler = AsyncIOScheduler(timezone=self.settings.JOBS_TIMEZONE)
        self._registry: Dict[str, Callable[[], Awaitable[Dict[str, Any]]]] = {}

    def _cron_table(self) -> Dict[str, tuple]:
        cfg = self.settings
        return {
            "booking_reminder": (cfg.BOOKING_REMINDER_CRON, self.jobs.send_booking_reminders),
            "class_reminder": (cfg.CLASS_REMINDER_CRON, self.jobs.send_class_reminders),
            "booking_status": (cfg.BOOKING_STATUS_CRON, self.jobs.complete_finished_bookings),
            "membership_expiring": (cfg.MEMBERSHIP_EXPIRING_CRON, self.jobs.notify_expiring_memberships),
            "membership_expired": (cfg.MEMBERSHIP_EXPIRED_CRON, self.jobs.notify_expired_memberships),
            "subscription_sweep": (cfg.SUBSCRIPTION_SWEEP_CRON, self.jobs.sweep_expired_subscriptions),
            "notification_cleanup": (cfg.NOTIFICATION_CLEANUP_CRON, self.jobs.cleanup_notifications),
        }

    def register_jobs(self):
        for job_id, (cron, func) in self._cron_table().items():
            self.scheduler.add_job(
                func,
                CronTrigger.from_crontab(cron, timezone=self.settings.JOBS_TIMEZONE),
                id=job_id,
                name=job_id,
                replace_existing=True,
                max_instances=1,
                coalesce=True,
            )
            self._registry[job_id] = func
            logger.info(f"Registered job {job_id} ({cron})")

    def start(self):
        """Register the jobs and start the scheduler."""
        if self.scheduler.running:
            return
        self.register_jobs()
        self.scheduler.start()
        logger.info("Job scheduler started")

    def stop(self):
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Job scheduler stopped")

    async def run_now(self, job_id: str) -> Dict[str, Any]:
        """Run a job immediately, outside its schedule."""
        if not self._registry:
            self._registry = {job_id: func for job_id, (_, func) in self._cron_table().items()}
        try:
            func = self._registry[job_id]
        except KeyError:
            raise ValueError(f"Unknown job: {job_id}") from None
        return await func()
