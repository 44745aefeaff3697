# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Periodic enrollment maintenance.

Two jobs keep stored state in line with the clock:

- request expiry: once a day, pending requests whose registration fee
  window lapsed are rejected
- installment due refresh: every few minutes, Pending installments past
  their due date become Unpaid

Jobs run on the API's event loop through APScheduler's AsyncIOScheduler,
each with its own database session.

Example:
    scheduler = await start_scheduler()
    scheduler.status()
    await stop_scheduler()
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.base import BaseTrigger
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from src.core.config.settings import SchedulerSettings, get_settings
from src.infrastructure.database.connection import get_session

logger = logging.getLogger(__name__)

JobFunc = Callable[[], Awaitable[Any]]

EXPIRY_JOB = "expire_stale_requests"
DUE_REFRESH_JOB = "refresh_due_installments"


async def expire_stale_requests_job() -> dict[str, Any]:
    """Reject pending requests whose registration fee window lapsed."""
    from src.domains.enrollment.service import EnrollmentService

    async with get_session() as session:
        expired = await EnrollmentService(session).expire_stale_requests()

    return {"expired": expired}


async def refresh_due_installments_job() -> dict[str, Any]:
    """Flip Pending installments past their due date to Unpaid."""
    from src.domains.payment.service import InstallmentService

    async with get_session() as session:
        updated = await InstallmentService(session).refresh_due_statuses()

    return {"updated": updated}


@dataclass
class JobRecord:
    """Bookkeeping for one registered job."""

    name: str
    func: JobFunc
    trigger: BaseTrigger
    runs: int = 0
    failures: int = 0
    last_run: datetime | None = None
    last_result: Any = None
    last_error: str | None = None


class MaintenanceScheduler:
    """Runs the maintenance jobs on a schedule.

    Jobs may be registered before or after start; the APScheduler instance
    only exists while the scheduler runs, since it binds to the running
    event loop.
    """

    def __init__(self, settings: SchedulerSettings | None = None) -> None:
        self.settings = settings or get_settings().scheduler
        self._jobs: dict[str, JobRecord] = {}
        self._aps: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._aps is not None

    def register(self, name: str, func: JobFunc, trigger: BaseTrigger) -> JobRecord:
        """Register a job under a unique name.

        Raises:
            ValueError: If a job with that name is already registered.
        """
        if name in self._jobs:
            raise ValueError(f"Job already registered: {name}")

        record = JobRecord(name=name, func=func, trigger=trigger)
        self._jobs[name] = record
        if self._aps is not None:
            self._schedule(record)

        logger.info("Registered maintenance job: %s (%s)", name, trigger)
        return record

    def register_maintenance_jobs(self) -> None:
        """Register the request expiry and installment due refresh jobs."""
        self.register(
            EXPIRY_JOB,
            expire_stale_requests_job,
            CronTrigger(hour=self.settings.expiry_cron_hour, minute=0, timezone=timezone.utc),
        )
        self.register(
            DUE_REFRESH_JOB,
            refresh_due_installments_job,
            IntervalTrigger(minutes=self.settings.due_refresh_interval_minutes),
        )

    def unregister(self, name: str) -> bool:
        """Drop a job. Returns False if it was not registered."""
        record = self._jobs.pop(name, None)
        if record is None:
            return False
        if self._aps is not None and self._aps.get_job(name) is not None:
            self._aps.remove_job(name)
        return True

    def get_job(self, name: str) -> JobRecord | None:
        return self._jobs.get(name)

    async def run_job(self, name: str) -> Any:
        """Run a job once now.

        A failure is logged and counted, and the job stays scheduled.

        Returns:
            The job's result, or None if it failed or is unknown.
        """
        record = self._jobs.get(name)
        if record is None:
            logger.warning("Unknown maintenance job: %s", name)
            return None

        record.last_run = datetime.now(timezone.utc)
        try:
            record.last_result = await record.func()
        except Exception as e:
            record.failures += 1
            record.last_error = str(e)
            logger.exception("Maintenance job %s failed", name)
            return None

        record.runs += 1
        record.last_error = None
        logger.debug("Maintenance job %s done: %s", name, record.last_result)
        return record.last_result

    async def start(self) -> None:
        if self._aps is not None:
            return

        self._aps = AsyncIOScheduler(timezone=timezone.utc)
        for record in self._jobs.values():
            self._schedule(record)
        self._aps.start()

        logger.info("Maintenance scheduler started with %d jobs", len(self._jobs))

    async def shutdown(self) -> None:
        if self._aps is None:
            return

        self._aps.shutdown(wait=False)
        self._aps = None
        logger.info("Maintenance scheduler stopped")

    def status(self) -> dict[str, Any]:
        """Describe the scheduler and each job's run history."""
        jobs = {}
        for name, record in self._jobs.items():
            scheduled = self._aps.get_job(name) if self._aps is not None else None
            jobs[name] = {
                "runs": record.runs,
                "failures": record.failures,
                "last_run": record.last_run.isoformat() if record.last_run else None,
                "last_error": record.last_error,
                "next_run": (
                    scheduled.next_run_time.isoformat()
                    if scheduled is not None and scheduled.next_run_time
                    else None
                ),
            }
        return {"running": self.running, "jobs": jobs}

    def _schedule(self, record: JobRecord) -> None:
        self._aps.add_job(
            self.run_job,
            trigger=record.trigger,
            args=[record.name],
            id=record.name,
            name=record.name,
            max_instances=1,
            coalesce=True,
            replace_existing=True,
        )


_scheduler: MaintenanceScheduler | None = None


def get_scheduler() -> MaintenanceScheduler | None:
    """Get the running scheduler, if any."""
    return _scheduler


async def start_scheduler(settings: SchedulerSettings | None = None) -> MaintenanceScheduler:
    """Start the process-wide scheduler with the maintenance jobs."""
    global _scheduler
    if _scheduler is None:
        scheduler = MaintenanceScheduler(settings)
        scheduler.register_maintenance_jobs()
        await scheduler.start()
        _scheduler = scheduler
    return _scheduler


async def stop_scheduler() -> None:
    global _scheduler
    if _scheduler is not None:
        await _scheduler.shutdown()
        _scheduler = None
