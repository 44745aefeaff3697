# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Payment installment domain package.

This package provides installment tracking:
- Schedule arithmetic in currency minor units
- Course installment templates
- Payment recording and refunds
"""

from src.domains.payment.schedule import (
    MAX_INSTALLMENTS,
    PlanEntry,
    ScheduledInstallment,
    build_schedule,
    default_plan,
    from_minor,
    to_minor,
    validate_plan,
)
from src.domains.payment.service import InstallmentService

__all__ = [
    "InstallmentService",
    "MAX_INSTALLMENTS",
    "PlanEntry",
    "ScheduledInstallment",
    "build_schedule",
    "default_plan",
    "from_minor",
    "to_minor",
    "validate_plan",
]
