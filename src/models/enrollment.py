# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment request models."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.models.common import RequestStatus
from src.models.payment import InstallmentResponse

ADMIN_NOTES_MAX_LENGTH = 1000


class CreateEnrollmentRequest(BaseModel):
    """Submit an enrollment request for the calling student."""

    course_id: str = Field(min_length=1, max_length=36)
    preferred_level: str | None = Field(default=None, max_length=50)


class ApproveEnrollmentRequest(BaseModel):
    """Approve a pending request into a class."""

    class_id: str = Field(min_length=1, max_length=36)
    admin_notes: str | None = Field(default=None, max_length=ADMIN_NOTES_MAX_LENGTH)


class RejectEnrollmentRequest(BaseModel):
    """Reject a pending request."""

    admin_notes: str | None = Field(default=None, max_length=ADMIN_NOTES_MAX_LENGTH)


class StudentSummary(BaseModel):
    """Student reference. Profiles live in the identity provider."""

    id: str


class CourseSummary(BaseModel):
    """Course display data."""

    id: str
    title: str
    price: Decimal


class ClassSummary(BaseModel):
    """Class display data."""

    id: str
    name: str
    level: str | None = None
    schedule: str | None = None


class EnrollmentRequestResponse(BaseModel):
    """Enrollment request as stored."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    student_id: str
    course_id: str
    preferred_level: str | None = None
    status: RequestStatus
    request_date: datetime
    approval_date: datetime | None = None
    assigned_class_id: str | None = None
    admin_notes: str | None = None
    registration_fee_paid: bool = False
    payment_date: datetime | None = None
    expires_at: datetime | None = None
    decided_by: str | None = None
    created_at: datetime
    updated_at: datetime


class EnrollmentRequestDetail(EnrollmentRequestResponse):
    """Enrollment request with its related records populated."""

    student: StudentSummary
    course: CourseSummary
    assigned_class: ClassSummary | None = None
    installments: list[InstallmentResponse] = Field(default_factory=list)


class EnrollmentListResponse(BaseModel):
    """List of enrollment requests."""

    items: list[EnrollmentRequestResponse]
    total: int


class EnrollmentStatistics(BaseModel):
    """Request counts per status."""

    total: int = 0
    pending: int = 0
    approved: int = 0
    rejected: int = 0
    unassigned: int = 0


class CourseEnrollmentStatus(BaseModel):
    """A student's standing for one course.

    status is ``not_enrolled`` when the student never applied, otherwise
    the status of the latest request.
    """

    course_id: str
    status: str
    request_id: str | None = None
    request_date: datetime | None = None
    assigned_class_id: str | None = None
    registration_fee_paid: bool = False


class DeletionReceipt(BaseModel):
    """Outcome of deleting a request."""

    request_id: str
    status: RequestStatus
    deleted_by: str
    deleted_at: datetime
    released_class_id: str | None = None
    removed_installments: int = 0
