# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment request and class assignment models."""

from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import Boolean, ForeignKey, Index, String, Text, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import Base, TimestampMixin, new_uuid
from src.utils.datetime import utc_now

if TYPE_CHECKING:
    from src.infrastructure.database.models.payment import PaymentInstallment


class EnrollmentRequest(Base, TimestampMixin):
    """A student's request to join a course.

    status, approval_date and assigned_class_id move together: a request
    is approved exactly when it has both an assigned class and an approval
    date.
    """

    __tablename__ = "enrollment_requests"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    student_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id"),
        nullable=False,
        index=True,
    )
    preferred_level: Mapped[str | None] = mapped_column(String(50), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    request_date: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)
    approval_date: Mapped[datetime | None] = mapped_column(nullable=True)
    assigned_class_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("classes.id", ondelete="SET NULL"),
        nullable=True,
    )
    admin_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    registration_fee_paid: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    payment_date: Mapped[datetime | None] = mapped_column(nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(nullable=True)
    decided_by: Mapped[str | None] = mapped_column(String(36), nullable=True)

    installments: Mapped[list["PaymentInstallment"]] = relationship(
        back_populates="enrollment_request",
        order_by="PaymentInstallment.sequence",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index(
            "uq_enrollment_requests_open_student_course",
            "student_id",
            "course_id",
            unique=True,
            postgresql_where=text("status IN ('pending', 'approved')"),
            sqlite_where=text("status IN ('pending', 'approved')"),
        ),
    )


class ClassAssignment(Base, TimestampMixin):
    """The set of classes a student currently sits in."""

    __tablename__ = "class_assignments"

    student_id: Mapped[str] = mapped_column(String(36), primary_key=True)

    entries: Mapped[list["ClassAssignmentEntry"]] = relationship(
        back_populates="assignment",
        order_by="ClassAssignmentEntry.assigned_at",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class ClassAssignmentEntry(Base):
    """One class in a student's assignment set."""

    __tablename__ = "class_assignment_entries"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    student_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("class_assignments.student_id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    class_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("classes.id", ondelete="CASCADE"),
        nullable=False,
    )
    enrollment_request_id: Mapped[str | None] = mapped_column(
        String(36),
        ForeignKey("enrollment_requests.id", ondelete="SET NULL"),
        nullable=True,
    )
    assigned_at: Mapped[datetime] = mapped_column(nullable=False, default=utc_now)

    assignment: Mapped[ClassAssignment] = relationship(back_populates="entries")

    __table_args__ = (
        UniqueConstraint("student_id", "class_id", name="uq_assignment_entry_student_class"),
    )
