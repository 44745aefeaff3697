# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Installment plan models."""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, ForeignKey, Integer, Numeric, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from src.infrastructure.database.models.base import Base, TimestampMixin, new_uuid
from src.infrastructure.database.models.enrollment import EnrollmentRequest


class InstallmentTemplate(Base, TimestampMixin):
    """Per-course installment plan.

    entries is an ordered list of
    {"name", "amount_type", "amount", "due_offset_days"} objects with
    amounts serialized as decimal strings.
    """

    __tablename__ = "installment_templates"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    entries: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    updated_by: Mapped[str | None] = mapped_column(String(36), nullable=True)


class PaymentInstallment(Base, TimestampMixin):
    """One scheduled installment of an approved request's tuition."""

    __tablename__ = "payment_installments"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    enrollment_request_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("enrollment_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    amount_type: Mapped[str] = mapped_column(String(20), nullable=False)
    share: Mapped[Decimal] = mapped_column(Numeric(14, 4), nullable=False)
    amount_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="Pending", index=True)
    due_date: Mapped[datetime] = mapped_column(nullable=False)
    paid_date: Mapped[datetime | None] = mapped_column(nullable=True)
    refund_date: Mapped[datetime | None] = mapped_column(nullable=True)
    refund_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    enrollment_request: Mapped[EnrollmentRequest] = relationship(back_populates="installments")

    __table_args__ = (
        UniqueConstraint(
            "enrollment_request_id", "sequence", name="uq_installment_request_sequence"
        ),
        UniqueConstraint(
            "enrollment_request_id",
            "payment_reference",
            name="uq_installment_request_payment_reference",
        ),
    )
