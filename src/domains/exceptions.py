# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Exceptions shared by the enrollment workflow services.

This module defines the error taxonomy every workflow operation reports:
- WorkflowError: Base exception carrying a stable code and details
- ValidationError: Malformed or inconsistent input
- NotFoundError: Referenced request, course, class or record is missing
- InvalidStateError: Operation not allowed from the entity's current status
- CapacityError: Target class has no free seat
- DuplicateRequestError: Student already has an open request for the course
- AlreadySatisfiedError: Nothing left to settle
- AuthorizationError: Caller's role or identity does not permit the operation
"""

from typing import Any


class WorkflowError(Exception):
    """Base exception for all enrollment workflow errors.

    Attributes:
        code: Stable machine-readable error code.
        message: Human-readable error description.
        details: Dictionary with additional error context.
    """

    code = "workflow_error"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        """Initialize workflow error.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation with details if available."""
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message

    def to_dict(self) -> dict[str, Any]:
        """Serialize for API error payloads."""
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(WorkflowError):
    """Raised when input is missing, malformed or inconsistent."""

    code = "validation_error"


class NotFoundError(WorkflowError):
    """Raised when a referenced entity does not exist."""

    code = "not_found"


class InvalidStateError(WorkflowError):
    """Raised when an operation is not allowed from the current status.

    Also raised when a concurrent writer changed the status first.
    """

    code = "invalid_state"


class CapacityError(WorkflowError):
    """Raised when the target class is full."""

    code = "capacity_exceeded"


class DuplicateRequestError(WorkflowError):
    """Raised when the student already has an open request for the course."""

    code = "duplicate_request"


class AlreadySatisfiedError(WorkflowError):
    """Raised when there is nothing left to pay or record."""

    code = "already_satisfied"


class AuthorizationError(WorkflowError):
    """Raised when the caller may not perform the operation."""

    code = "forbidden"
