# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Class assignment domain package.

This package provides the class assignment ledger:
- Seat claims and releases on class counters
- Per-student assigned class sets
- Available class lookup
- Admin removal of classes
"""

from src.domains.assignment.service import ClassAssignmentService

__all__ = [
    "ClassAssignmentService",
]
