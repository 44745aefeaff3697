# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy ORM models for the enrollment store.

Importing this package registers every table on Base.metadata.
"""

from src.infrastructure.database.models.audit import AuditLog
from src.infrastructure.database.models.base import Base, TimestampMixin, UTCDateTime, new_uuid
from src.infrastructure.database.models.catalog import Class, Course
from src.infrastructure.database.models.enrollment import (
    ClassAssignment,
    ClassAssignmentEntry,
    EnrollmentRequest,
)
from src.infrastructure.database.models.payment import InstallmentTemplate, PaymentInstallment

__all__ = [
    "Base",
    "TimestampMixin",
    "UTCDateTime",
    "new_uuid",
    "Course",
    "Class",
    "EnrollmentRequest",
    "ClassAssignment",
    "ClassAssignmentEntry",
    "InstallmentTemplate",
    "PaymentInstallment",
    "AuditLog",
]
