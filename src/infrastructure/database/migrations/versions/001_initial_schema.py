# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Initial enrollment store schema.

Revision ID: 001_initial_schema
Revises: None
Create Date: 2025-06-02
"""

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

revision: str = "001_initial_schema"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
    ]


def upgrade() -> None:
    """Create catalog, workflow, payment and audit tables."""
    # =========================================================================
    # CATALOG
    # =========================================================================

    op.create_table(
        "courses",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("title", sa.String(200), nullable=False),
        sa.Column("description", sa.Text, nullable=True),
        sa.Column("price_minor", sa.Integer, nullable=False),
        sa.Column("levels", sa.JSON, nullable=False),
        *_timestamps(),
        sa.CheckConstraint("price_minor >= 0", name="ck_courses_price_non_negative"),
    )

    op.create_table(
        "classes",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "course_id",
            sa.String(36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("level", sa.String(50), nullable=True),
        sa.Column("schedule", sa.String(200), nullable=True),
        sa.Column("capacity", sa.Integer, nullable=False),
        sa.Column("current_enrollment", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.CheckConstraint("capacity >= 0", name="ck_classes_capacity_non_negative"),
        sa.CheckConstraint(
            "current_enrollment >= 0 AND current_enrollment <= capacity",
            name="ck_classes_enrollment_within_capacity",
        ),
    )
    op.create_index("ix_classes_course_id", "classes", ["course_id"])

    # =========================================================================
    # ENROLLMENT WORKFLOW
    # =========================================================================

    op.create_table(
        "enrollment_requests",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("student_id", sa.String(36), nullable=False),
        sa.Column("course_id", sa.String(36), sa.ForeignKey("courses.id"), nullable=False),
        sa.Column("preferred_level", sa.String(50), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("request_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("approval_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "assigned_class_id",
            sa.String(36),
            sa.ForeignKey("classes.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("admin_notes", sa.Text, nullable=True),
        sa.Column(
            "registration_fee_paid", sa.Boolean, nullable=False, server_default=sa.false()
        ),
        sa.Column("payment_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("decided_by", sa.String(36), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_enrollment_requests_student_id", "enrollment_requests", ["student_id"])
    op.create_index("ix_enrollment_requests_course_id", "enrollment_requests", ["course_id"])
    op.create_index("ix_enrollment_requests_status", "enrollment_requests", ["status"])
    op.create_index(
        "uq_enrollment_requests_open_student_course",
        "enrollment_requests",
        ["student_id", "course_id"],
        unique=True,
        postgresql_where=sa.text("status IN ('pending', 'approved')"),
        sqlite_where=sa.text("status IN ('pending', 'approved')"),
    )

    op.create_table(
        "class_assignments",
        sa.Column("student_id", sa.String(36), primary_key=True),
        *_timestamps(),
    )

    op.create_table(
        "class_assignment_entries",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "student_id",
            sa.String(36),
            sa.ForeignKey("class_assignments.student_id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "class_id",
            sa.String(36),
            sa.ForeignKey("classes.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column(
            "enrollment_request_id",
            sa.String(36),
            sa.ForeignKey("enrollment_requests.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.UniqueConstraint("student_id", "class_id", name="uq_assignment_entry_student_class"),
    )
    op.create_index(
        "ix_class_assignment_entries_student_id", "class_assignment_entries", ["student_id"]
    )

    # =========================================================================
    # PAYMENTS
    # =========================================================================

    op.create_table(
        "installment_templates",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "course_id",
            sa.String(36),
            sa.ForeignKey("courses.id", ondelete="CASCADE"),
            nullable=False,
            unique=True,
        ),
        sa.Column("entries", sa.JSON, nullable=False),
        sa.Column("updated_by", sa.String(36), nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "payment_installments",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column(
            "enrollment_request_id",
            sa.String(36),
            sa.ForeignKey("enrollment_requests.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("sequence", sa.Integer, nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("amount_type", sa.String(20), nullable=False),
        sa.Column("share", sa.Numeric(14, 4), nullable=False),
        sa.Column("amount_minor", sa.Integer, nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="Pending"),
        sa.Column("due_date", sa.DateTime(timezone=True), nullable=False),
        sa.Column("paid_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("refund_reason", sa.Text, nullable=True),
        sa.Column("payment_reference", sa.String(100), nullable=True),
        *_timestamps(),
        sa.UniqueConstraint(
            "enrollment_request_id", "sequence", name="uq_installment_request_sequence"
        ),
        sa.UniqueConstraint(
            "enrollment_request_id",
            "payment_reference",
            name="uq_installment_request_payment_reference",
        ),
    )
    op.create_index(
        "ix_payment_installments_enrollment_request_id",
        "payment_installments",
        ["enrollment_request_id"],
    )
    op.create_index("ix_payment_installments_status", "payment_installments", ["status"])

    # =========================================================================
    # AUDIT
    # =========================================================================

    op.create_table(
        "audit_logs",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("performed_by", sa.String(36), nullable=False),
        sa.Column("target_type", sa.String(50), nullable=False),
        sa.Column("target_id", sa.String(36), nullable=False),
        sa.Column("details", sa.JSON, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index("ix_audit_logs_action", "audit_logs", ["action"])
    op.create_index("ix_audit_logs_target_id", "audit_logs", ["target_id"])


def downgrade() -> None:
    """Drop all enrollment store tables."""
    op.drop_table("audit_logs")
    op.drop_table("payment_installments")
    op.drop_table("installment_templates")
    op.drop_table("class_assignment_entries")
    op.drop_table("class_assignments")
    op.drop_table("enrollment_requests")
    op.drop_table("classes")
    op.drop_table("courses")
