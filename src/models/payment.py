# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Payment installment models."""

from datetime import datetime
from decimal import Decimal

from pydantic import BaseModel, ConfigDict, Field

from src.models.common import AmountType, InstallmentStatus, PaymentStatus


class InstallmentTemplateEntry(BaseModel):
    """One entry of a course installment template."""

    name: str = Field(min_length=1, max_length=100)
    amount_type: AmountType
    amount: Decimal = Field(gt=0, description="Percentage or currency amount")
    due_offset_days: int = Field(ge=0, description="Days after approval the installment is due")


class InstallmentTemplateRequest(BaseModel):
    """Replace a course's installment template."""

    entries: list[InstallmentTemplateEntry] = Field(min_length=1, max_length=12)


class InstallmentTemplateResponse(BaseModel):
    """A course's installment template.

    is_default is true when the course has no stored template and the
    configured equal-split plan applies.
    """

    course_id: str
    entries: list[InstallmentTemplateEntry]
    is_default: bool = False
    updated_at: datetime | None = None


class InstallmentResponse(BaseModel):
    """One installment of a request's schedule."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    sequence: int
    name: str
    amount_type: AmountType
    share: Decimal
    amount: Decimal
    status: InstallmentStatus
    due_date: datetime
    paid_date: datetime | None = None
    refund_date: datetime | None = None
    refund_reason: str | None = None
    payment_reference: str | None = None


class PaymentSummary(BaseModel):
    """Installment schedule with totals."""

    request_id: str
    installments: list[InstallmentResponse]
    total_due: Decimal
    total_paid: Decimal
    status: PaymentStatus


class RecordPaymentRequest(BaseModel):
    """Record one installment payment."""

    payment_reference: str | None = Field(
        default=None,
        max_length=100,
        description="Idempotency key of the payment; retries with the same key are no-ops",
    )


class RefundRequest(BaseModel):
    """Refund a paid installment."""

    reason: str = Field(min_length=1, max_length=500)
