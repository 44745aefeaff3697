# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background maintenance for CourseFlow.

APScheduler runs the periodic jobs inside the API process:
- Daily expiry of pending requests whose registration fee window lapsed
- Periodic flip of due installments from Pending to Unpaid
"""

from src.infrastructure.background.scheduler import (
    DUE_REFRESH_JOB,
    EXPIRY_JOB,
    JobRecord,
    MaintenanceScheduler,
    expire_stale_requests_job,
    get_scheduler,
    refresh_due_installments_job,
    start_scheduler,
    stop_scheduler,
)

__all__ = [
    "DUE_REFRESH_JOB",
    "EXPIRY_JOB",
    "JobRecord",
    "MaintenanceScheduler",
    "expire_stale_requests_job",
    "get_scheduler",
    "refresh_due_installments_job",
    "start_scheduler",
    "stop_scheduler",
]
