# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""API v1 routes package.

This package contains all v1 API endpoint definitions.
Each module provides a FastAPI router for a specific domain.

Modules:
    enrollments: Enrollment request workflow endpoints.
    assignments: Class assignment ledger endpoints.
    payments: Installment schedule and payment endpoints.
"""

from fastapi import APIRouter

from src.api.v1 import assignments, enrollments, payments

# Create the main v1 router
router = APIRouter(prefix="/api/v1")

router.include_router(enrollments.router, prefix="/enrollments", tags=["Enrollments"])
router.include_router(assignments.router, prefix="/assignments", tags=["Assignments"])
router.include_router(payments.router, prefix="/payments", tags=["Payments"])

__all__ = ["router"]
