# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enumerations and shared response models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class Role(str, Enum):
    """Roles carried in the bearer token."""

    STUDENT = "student"
    ADMIN = "admin"


class RequestStatus(str, Enum):
    """Lifecycle status of an enrollment request."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    UNASSIGNED = "unassigned"


class InstallmentStatus(str, Enum):
    """Status of one payment installment."""

    PENDING = "Pending"
    UNPAID = "Unpaid"
    PAID = "Paid"
    REFUNDED = "Refunded"


class AmountType(str, Enum):
    """How an installment plan entry expresses its amount."""

    FIXED = "fixed"
    PERCENTAGE = "percentage"


class PaymentStatus(str, Enum):
    """Aggregate payment status of a request."""

    PENDING = "pending"
    COMPLETED = "completed"
    REFUNDED = "refunded"


class ErrorDetail(BaseModel):
    """Error payload returned under the ``detail`` key."""

    code: str = Field(description="Stable error code")
    message: str = Field(description="Human-readable message")
    details: dict[str, Any] = Field(default_factory=dict)
