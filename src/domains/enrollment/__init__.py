# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment domain package.

This package provides the enrollment request workflow:
- Student requests and the duplicate-request guard
- Admin approval into a class, rejection and deletion
- Registration fee recording and stale request expiry
"""

from src.domains.enrollment.service import EnrollmentService

__all__ = [
    "EnrollmentService",
]
