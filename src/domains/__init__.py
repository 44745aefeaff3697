# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Domain services layer for CourseFlow.

Domains:
    enrollment: Enrollment request lifecycle and its state machine.
    assignment: Class assignment ledger.
    payment: Installment schedules, payments and refunds.
    audit: Audit trail for mutating operations.
    auth: Bearer token verification.
"""
