# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Class assignment API endpoints.

This module provides endpoints for a student's assigned class set:
- GET /{student_id} - Assignment document
- GET /{student_id}/classes - Assigned classes with display data
- GET /{student_id}/count - Number of assigned classes
- GET /{student_id}/available - Classes the student could be placed in
- POST /{student_id}/remove - Remove classes (admin)

Students can read their own data only; admins can read everyone's.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    ensure_owner_or_admin,
    get_db,
    require_admin,
    require_auth,
    to_http_error,
)
from src.api.middleware.auth import CurrentUser
from src.domains.assignment.service import ClassAssignmentService
from src.domains.exceptions import WorkflowError
from src.models.assignment import (
    AssignedClass,
    AssignedCountResponse,
    AvailableClass,
    ClassAssignmentResponse,
    RemoveClassesRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_service(db: AsyncSession) -> ClassAssignmentService:
    """Get class assignment service instance.

    Args:
        db: Database session.

    Returns:
        Configured ClassAssignmentService instance.
    """
    return ClassAssignmentService(db=db)


@router.get(
    "/{student_id}",
    response_model=ClassAssignmentResponse,
    summary="Get class assignment",
)
async def get_assignment(
    student_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
) -> ClassAssignmentResponse:
    """Get the student's class set, empty when there is none."""
    try:
        ensure_owner_or_admin(current_user, student_id)
        return await _get_service(db).get_assignment(student_id)
    except WorkflowError as e:
        raise to_http_error(e)


@router.get(
    "/{student_id}/classes",
    response_model=list[AssignedClass],
    summary="List assigned classes",
)
async def get_assigned_classes(
    student_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
) -> list[AssignedClass]:
    """List the student's classes, oldest assignment first."""
    try:
        ensure_owner_or_admin(current_user, student_id)
        return await _get_service(db).get_student_assigned_classes(student_id)
    except WorkflowError as e:
        raise to_http_error(e)


@router.get(
    "/{student_id}/count",
    response_model=AssignedCountResponse,
    summary="Count assigned classes",
)
async def get_assigned_count(
    student_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
) -> AssignedCountResponse:
    """Count the classes in the student's set."""
    try:
        ensure_owner_or_admin(current_user, student_id)
        count = await _get_service(db).get_assigned_classes_count(student_id)
        return AssignedCountResponse(student_id=student_id, count=count)
    except WorkflowError as e:
        raise to_http_error(e)


@router.get(
    "/{student_id}/available",
    response_model=list[AvailableClass],
    summary="List available classes",
)
async def get_available_classes(
    student_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
) -> list[AvailableClass]:
    """List classes of the student's approved courses that still have seats."""
    try:
        ensure_owner_or_admin(current_user, student_id)
        return await _get_service(db).get_available_classes(student_id)
    except WorkflowError as e:
        raise to_http_error(e)


@router.post(
    "/{student_id}/remove",
    response_model=ClassAssignmentResponse,
    summary="Remove classes",
    description="Remove classes from a student; an empty list removes all.",
)
async def remove_classes(
    student_id: str,
    data: RemoveClassesRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> ClassAssignmentResponse:
    """Remove classes from a student's set."""
    logger.info(
        "Removing classes %s from %s by %s",
        data.class_ids or "all",
        student_id,
        current_user.id,
    )

    try:
        return await _get_service(db).remove_classes(
            student_id,
            data.class_ids,
            removed_by=current_user.id,
        )
    except WorkflowError as e:
        raise to_http_error(e)
