"""
Scheduler infrastructure for running periodic jobs (the nightly repair pass).
"""

import logging
from typing import Any, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from croniter import croniter


logger = logging.getLogger(__name__)


class Scheduler:
    """Async task scheduler wrapper around APScheduler.

    Jobs live in memory: the crawl state worth keeping is in the frontier and
    the record store, and the schedule itself comes from the config file on
    every start.
    """

    def __init__(self, timezone: str = "UTC"):
        job_defaults = {
            'coalesce': True,
            'max_instances': 1,
            'misfire_grace_time': 60  # seconds
        }

        self.timezone = timezone
        self._scheduler = AsyncIOScheduler(job_defaults=job_defaults, timezone=timezone)
        self._started = False

    @property
    def running(self) -> bool:
        return self._started

    async def start(self) -> None:
        """Start the scheduler."""
        if not self._started:
            self._scheduler.start()
            self._started = True
            logger.info("Scheduler started (timezone=%s)", self.timezone)

    async def stop(self) -> None:
        """Stop the scheduler."""
        if self._started:
            self._scheduler.shutdown(wait=False)
            self._started = False
            logger.info("Scheduler stopped")

    def add_cron_job(
        self,
        func: Callable,
        cron_expression: str,
        job_id: Optional[str] = None,
        **kwargs
    ) -> None:
        """Schedule ``func`` on a five-field cron expression, replacing any job with the same id."""
        if not self.validate_cron_expression(cron_expression):
            raise ValueError(f"Invalid cron expression: {cron_expression}")

        if len(cron_expression.split()) != 5:
            raise ValueError("Cron expression must have 5 parts: minute hour day month day_of_week")

        # APScheduler counts weekdays from Monday=0; prefer names (mon-sun) there
        trigger = CronTrigger.from_crontab(cron_expression, timezone=self.timezone)

        self._scheduler.add_job(
            func,
            trigger=trigger,
            id=job_id,
            replace_existing=True,
            **kwargs
        )

        logger.info("Added cron job: %s (%s)", job_id or func.__name__, cron_expression)

    @staticmethod
    def validate_cron_expression(cron_expression: str) -> bool:
        """Validate cron expression using croniter."""
        try:
            croniter(cron_expression)
            return True
        except (ValueError, KeyError) as e:
            logger.error("Invalid cron expression '%s': %s", cron_expression, e)
            return False

    def list_jobs(self) -> Dict[str, Any]:
        """List all scheduled jobs."""
        jobs = {}
        for job in self._scheduler.get_jobs():
            jobs[job.id] = {
                "name": job.name,
                "next_run": job.next_run_time,
                "trigger": str(job.trigger),
            }
        return jobs
