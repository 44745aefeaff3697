# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""FastAPI dependency injection definitions.

This module provides dependency functions for FastAPI endpoints.
Dependencies are used to:
- Get database sessions
- Get authenticated users and check their role
- Map workflow errors to HTTP responses

Example:
    @router.get("/mine")
    async def list_my_requests(
        db: AsyncSession = Depends(get_db),
        current_user: CurrentUser = Depends(require_student),
    ):
        ...
"""

import logging
from typing import AsyncGenerator

from fastapi import HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.middleware.auth import CurrentUser, get_current_user
from src.domains.exceptions import (
    AlreadySatisfiedError,
    AuthorizationError,
    CapacityError,
    DuplicateRequestError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
    WorkflowError,
)
from src.infrastructure.database.connection import get_session
from src.models.common import ErrorDetail, Role

logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: dict[type[WorkflowError], int] = {
    ValidationError: status.HTTP_400_BAD_REQUEST,
    AuthorizationError: status.HTTP_403_FORBIDDEN,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    InvalidStateError: status.HTTP_409_CONFLICT,
    DuplicateRequestError: status.HTTP_409_CONFLICT,
    CapacityError: status.HTTP_409_CONFLICT,
    AlreadySatisfiedError: status.HTTP_409_CONFLICT,
}

AUTH_ERROR_MESSAGES = {
    "expired": "Token has expired",
    "invalid": "Invalid token",
}


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Get database session.

    Yields:
        AsyncSession for the enrollment store.
    """
    async with get_session() as session:
        yield session


def to_http_error(error: WorkflowError) -> HTTPException:
    """Map a workflow error to an HTTPException.

    The response body is ``{"detail": {"code", "message", "details"}}``.

    Args:
        error: Error raised by a workflow service.

    Returns:
        HTTPException carrying the error's status and payload.
    """
    status_code = status.HTTP_400_BAD_REQUEST
    for error_type in type(error).__mro__:
        if error_type in ERROR_STATUS_CODES:
            status_code = ERROR_STATUS_CODES[error_type]
            break

    logger.info("Workflow error %s: %s", error.code, error.message)
    return HTTPException(
        status_code=status_code,
        detail=ErrorDetail(**error.to_dict()).model_dump(),
    )


# =========================================================================
# Authentication Dependencies
# =========================================================================


def require_auth(request: Request) -> CurrentUser:
    """Require authenticated user.

    Args:
        request: HTTP request.

    Returns:
        CurrentUser.

    Raises:
        HTTPException: If not authenticated.
    """
    user = get_current_user(request)
    if not user:
        reason = getattr(request.state, "auth_error", None)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=AUTH_ERROR_MESSAGES.get(reason, "Not authenticated"),
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user


class RequireRole:
    """Dependency for requiring specific roles.

    Example:
        @router.post("/{request_id}/approve")
        async def approve(
            user: CurrentUser = Depends(RequireRole(Role.ADMIN)),
        ):
            ...
    """

    def __init__(self, *roles: Role) -> None:
        """Initialize role requirement.

        Args:
            roles: Accepted roles (any of these).
        """
        self.roles = roles

    def __call__(self, request: Request) -> CurrentUser:
        """Check roles and return user.

        Raises:
            HTTPException: If not authenticated or missing the role.
        """
        user = require_auth(request)

        if not user.has_role(*self.roles):
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Requires role: {', '.join(Role(role).value for role in self.roles)}",
            )

        return user


require_admin = RequireRole(Role.ADMIN)
require_student = RequireRole(Role.STUDENT)


def ensure_owner_or_admin(user: CurrentUser, student_id: str) -> None:
    """Allow admins, or the student the data belongs to.

    Raises:
        AuthorizationError: If a student reaches for another student's data.
    """
    if user.is_admin or user.id == student_id:
        return
    raise AuthorizationError(
        "Students can only access their own enrollment data",
        details={"student_id": student_id},
    )
