# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the maintenance scheduler and its jobs."""

from contextlib import asynccontextmanager
from unittest.mock import patch

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from src.core.config.settings import SchedulerSettings
from src.domains.enrollment.service import EnrollmentService
from src.infrastructure.background import scheduler as scheduler_module
from src.infrastructure.background.scheduler import (
    DUE_REFRESH_JOB,
    EXPIRY_JOB,
    MaintenanceScheduler,
    expire_stale_requests_job,
    get_scheduler,
    refresh_due_installments_job,
    start_scheduler,
    stop_scheduler,
)
from src.models.common import InstallmentStatus, RequestStatus


async def noop() -> dict:
    return {"done": True}


async def boom() -> None:
    raise RuntimeError("job failed")


@pytest.fixture
def scheduler() -> MaintenanceScheduler:
    settings = SchedulerSettings(expiry_cron_hour=3, due_refresh_interval_minutes=15)
    return MaintenanceScheduler(settings)


class TestMaintenanceScheduler:
    """Tests for MaintenanceScheduler."""

    @pytest.mark.asyncio
    async def test_run_job_records_result(self, scheduler) -> None:
        """Test a successful run records its result."""
        record = scheduler.register("noop", noop, IntervalTrigger(minutes=5))

        result = await scheduler.run_job("noop")

        assert result == {"done": True}
        assert (record.runs, record.failures) == (1, 0)
        assert record.last_run is not None

    @pytest.mark.asyncio
    async def test_run_job_counts_failures(self, scheduler) -> None:
        """Test a failing run is counted without raising."""
        record = scheduler.register("boom", boom, IntervalTrigger(seconds=30))

        assert await scheduler.run_job("boom") is None
        assert (record.runs, record.failures) == (0, 1)
        assert scheduler.status()["jobs"]["boom"]["last_error"] == "job failed"

    @pytest.mark.asyncio
    async def test_unknown_job(self, scheduler) -> None:
        """Test running an unregistered job is a no-op."""
        assert await scheduler.run_job("missing") is None

    def test_duplicate_name(self, scheduler) -> None:
        """Test job names are unique."""
        scheduler.register("noop", noop, IntervalTrigger(minutes=1))

        with pytest.raises(ValueError):
            scheduler.register("noop", noop, IntervalTrigger(minutes=2))

    def test_unregister(self, scheduler) -> None:
        """Test jobs can be dropped once."""
        scheduler.register("noop", noop, IntervalTrigger(minutes=1))

        assert scheduler.unregister("noop") is True
        assert scheduler.unregister("noop") is False
        assert scheduler.get_job("noop") is None

    @pytest.mark.asyncio
    async def test_start_schedules_jobs(self, scheduler) -> None:
        """Test registered jobs get a next run once started."""
        scheduler.register_maintenance_jobs()
        assert scheduler.status()["jobs"][EXPIRY_JOB]["next_run"] is None

        await scheduler.start()
        try:
            status = scheduler.status()
            assert status["running"] is True
            assert set(status["jobs"]) == {EXPIRY_JOB, DUE_REFRESH_JOB}
            assert "T03:00:00" in status["jobs"][EXPIRY_JOB]["next_run"]
            assert status["jobs"][DUE_REFRESH_JOB]["next_run"] is not None
        finally:
            await scheduler.shutdown()

        assert scheduler.running is False


class TestStartScheduler:
    """Tests for the process-wide scheduler lifecycle."""

    @pytest.mark.asyncio
    async def test_start_and_stop(self) -> None:
        """Test start registers the maintenance jobs once and stop clears it."""
        settings = SchedulerSettings(enabled=True, due_refresh_interval_minutes=15)

        scheduler = await start_scheduler(settings)
        try:
            assert get_scheduler() is scheduler
            assert await start_scheduler(settings) is scheduler
            assert scheduler.get_job(EXPIRY_JOB) is not None
            assert scheduler.get_job(DUE_REFRESH_JOB) is not None
        finally:
            await stop_scheduler()

        assert get_scheduler() is None


class TestJobs:
    """Tests for the job executors against a real store."""

    @pytest.fixture
    def patched_session(self, session_factory):
        """Point the jobs at the test database."""

        @asynccontextmanager
        async def test_session():
            async with session_factory() as session:
                yield session

        with patch.object(scheduler_module, "get_session", test_session):
            yield

    @pytest.mark.asyncio
    async def test_expire_job(
        self, patched_session, catalog, db_session, sample_student_id, now
    ) -> None:
        """Test the job rejects requests whose window passed long ago."""
        course = await catalog.course()
        request = await EnrollmentService(db_session).create_request(
            sample_student_id, course.id, now=now
        )

        result = await expire_stale_requests_job()

        assert result == {"expired": 1}
        stored = await EnrollmentService(db_session).get_request(request.id)
        assert stored.status == RequestStatus.REJECTED

    @pytest.mark.asyncio
    async def test_refresh_due_job(
        self, patched_session, catalog, db_session, sample_student_id, admin_id, now
    ) -> None:
        """Test the job flips every installment whose due date has passed."""
        course = await catalog.course()
        class_ = await catalog.class_(course)
        service = EnrollmentService(db_session)
        request = await service.create_request(sample_student_id, course.id, now=now)
        await service.approve(request.id, class_.id, admin_id, now=now)

        result = await refresh_due_installments_job()

        assert result == {"updated": 3}
        installments = await service.installments.list_installments(request.id)
        assert {item.status for item in installments} == {InstallmentStatus.UNPAID}
