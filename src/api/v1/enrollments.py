# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment request API endpoints.

This module provides endpoints for the enrollment request workflow:
- POST / - Submit a request (student)
- GET / - List requests with filtering (admin)
- GET /mine - List the caller's requests (student)
- GET /statistics - Request counts per status (admin)
- GET /status/{course_id} - Caller's standing for a course (student)
- GET /{request_id} - Request details (admin or owning student)
- POST /{request_id}/approve - Approve into a class (admin)
- POST /{request_id}/reject - Reject (admin)
- POST /{request_id}/registration-fee - Record the registration fee (admin)
- DELETE /{request_id} - Delete a request (admin)
"""

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from src.api.dependencies import (
    ensure_owner_or_admin,
    get_db,
    require_admin,
    require_auth,
    require_student,
    to_http_error,
)
from src.api.middleware.auth import CurrentUser
from src.api.middleware.rate_limit import enrollment_limit, limiter
from src.domains.enrollment.service import EnrollmentService
from src.domains.exceptions import WorkflowError
from src.models.common import RequestStatus
from src.models.enrollment import (
    ApproveEnrollmentRequest,
    CourseEnrollmentStatus,
    CreateEnrollmentRequest,
    DeletionReceipt,
    EnrollmentListResponse,
    EnrollmentRequestDetail,
    EnrollmentRequestResponse,
    EnrollmentStatistics,
    RejectEnrollmentRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_service(db: AsyncSession) -> EnrollmentService:
    """Get enrollment service instance.

    Args:
        db: Database session.

    Returns:
        Configured EnrollmentService instance.
    """
    return EnrollmentService(db=db)


@router.post(
    "",
    response_model=EnrollmentRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit enrollment request",
    description="Apply to a course. The request stays pending until an admin decides.",
)
@limiter.limit(enrollment_limit)
async def create_enrollment(
    request: Request,
    data: CreateEnrollmentRequest,
    current_user: CurrentUser = Depends(require_student),
    db: AsyncSession = Depends(get_db),
) -> EnrollmentRequestResponse:
    """Submit an enrollment request for the calling student."""
    service = _get_service(db)

    try:
        return await service.create_request(
            student_id=current_user.id,
            course_id=data.course_id,
            preferred_level=data.preferred_level,
        )
    except WorkflowError as e:
        raise to_http_error(e)


@router.get(
    "",
    response_model=EnrollmentListResponse,
    summary="List enrollment requests",
)
async def list_enrollments(
    status_filter: RequestStatus | None = Query(default=None, alias="status"),
    course_id: str | None = Query(default=None),
    date_from: datetime | None = Query(default=None),
    date_to: datetime | None = Query(default=None),
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> EnrollmentListResponse:
    """List requests, newest first.

    Args:
        status_filter: Only requests in this status.
        course_id: Only requests for this course.
        date_from: Only requests made at or after this time.
        date_to: Only requests made at or before this time.
        current_user: Authenticated admin.
        db: Database session.
    """
    service = _get_service(db)
    items = await service.list_requests(
        status=status_filter,
        course_id=course_id,
        date_from=date_from,
        date_to=date_to,
    )
    return EnrollmentListResponse(items=items, total=len(items))


@router.get(
    "/mine",
    response_model=EnrollmentListResponse,
    summary="List my enrollment requests",
)
async def list_my_enrollments(
    current_user: CurrentUser = Depends(require_student),
    db: AsyncSession = Depends(get_db),
) -> EnrollmentListResponse:
    """List the calling student's requests, newest first."""
    items = await _get_service(db).list_student_requests(current_user.id)
    return EnrollmentListResponse(items=items, total=len(items))


@router.get(
    "/statistics",
    response_model=EnrollmentStatistics,
    summary="Enrollment statistics",
)
async def get_statistics(
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> EnrollmentStatistics:
    """Count requests per status."""
    return await _get_service(db).get_statistics()


@router.get(
    "/status/{course_id}",
    response_model=CourseEnrollmentStatus,
    summary="My standing for a course",
)
async def get_course_status(
    course_id: str,
    current_user: CurrentUser = Depends(require_student),
    db: AsyncSession = Depends(get_db),
) -> CourseEnrollmentStatus:
    """Get the calling student's latest request status for a course."""
    return await _get_service(db).get_course_status(current_user.id, course_id)


@router.get(
    "/{request_id}",
    response_model=EnrollmentRequestDetail,
    summary="Get enrollment request",
)
async def get_enrollment(
    request_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
) -> EnrollmentRequestDetail:
    """Get a request with its course, class and installments.

    Students can only read their own requests.
    """
    service = _get_service(db)

    try:
        detail = await service.get_request_by_id(request_id)
        ensure_owner_or_admin(current_user, detail.student_id)
        return detail
    except WorkflowError as e:
        raise to_http_error(e)


@router.post(
    "/{request_id}/approve",
    response_model=EnrollmentRequestResponse,
    summary="Approve enrollment request",
    description="Place the student in a class and generate the installment schedule.",
)
async def approve_enrollment(
    request_id: str,
    data: ApproveEnrollmentRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> EnrollmentRequestResponse:
    """Approve a pending request into a class."""
    logger.info("Approving request %s into class %s by %s", request_id, data.class_id, current_user.id)

    service = _get_service(db)

    try:
        return await service.approve(
            request_id=request_id,
            class_id=data.class_id,
            approved_by=current_user.id,
            admin_notes=data.admin_notes,
        )
    except WorkflowError as e:
        raise to_http_error(e)


@router.post(
    "/{request_id}/reject",
    response_model=EnrollmentRequestResponse,
    summary="Reject enrollment request",
)
async def reject_enrollment(
    request_id: str,
    data: RejectEnrollmentRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> EnrollmentRequestResponse:
    """Reject a pending request."""
    service = _get_service(db)

    try:
        return await service.reject(
            request_id=request_id,
            rejected_by=current_user.id,
            admin_notes=data.admin_notes,
        )
    except WorkflowError as e:
        raise to_http_error(e)


@router.post(
    "/{request_id}/registration-fee",
    response_model=EnrollmentRequestResponse,
    summary="Record registration fee",
)
async def record_registration_fee(
    request_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> EnrollmentRequestResponse:
    """Mark a pending request's registration fee as paid."""
    service = _get_service(db)

    try:
        return await service.record_registration_fee(request_id, recorded_by=current_user.id)
    except WorkflowError as e:
        raise to_http_error(e)


@router.delete(
    "/{request_id}",
    response_model=DeletionReceipt,
    summary="Delete enrollment request",
    description="Delete a request, releasing its class seat and installments.",
)
async def delete_enrollment(
    request_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> DeletionReceipt:
    """Delete a request and everything it holds."""
    logger.info("Deleting request %s by %s", request_id, current_user.id)

    service = _get_service(db)

    try:
        return await service.delete_request(request_id, deleted_by=current_user.id)
    except WorkflowError as e:
        raise to_http_error(e)
