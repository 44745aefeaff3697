# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Payment installment API endpoints.

This module provides endpoints for installment schedules:
- GET /templates/{course_id} - Get a course's installment template (admin)
- PUT /templates/{course_id} - Replace a course's installment template (admin)
- GET /{request_id} - Schedule with totals (admin or owning student)
- POST /{request_id}/record - Settle the next outstanding installment (admin)
- POST /{request_id}/installments/{installment_id}/refund - Refund (admin)
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
from src.domains.enrollment.service import EnrollmentService
from src.domains.exceptions import WorkflowError
from src.models.payment import (
    InstallmentResponse,
    InstallmentTemplateRequest,
    InstallmentTemplateResponse,
    PaymentSummary,
    RecordPaymentRequest,
    RefundRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _get_service(db: AsyncSession) -> EnrollmentService:
    """Get enrollment service instance; its installment tracker serves these routes."""
    return EnrollmentService(db=db)


@router.get(
    "/templates/{course_id}",
    response_model=InstallmentTemplateResponse,
    summary="Get installment template",
)
async def get_template(
    course_id: str,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> InstallmentTemplateResponse:
    """Get a course's installment template, or the default equal split."""
    try:
        return await _get_service(db).installments.get_template(course_id)
    except WorkflowError as e:
        raise to_http_error(e)


@router.put(
    "/templates/{course_id}",
    response_model=InstallmentTemplateResponse,
    summary="Set installment template",
    description="Replace the plan used for future approvals of this course.",
)
async def set_template(
    course_id: str,
    data: InstallmentTemplateRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> InstallmentTemplateResponse:
    """Replace a course's installment template."""
    try:
        return await _get_service(db).installments.set_template(
            course_id,
            data.entries,
            updated_by=current_user.id,
        )
    except WorkflowError as e:
        raise to_http_error(e)


@router.get(
    "/{request_id}",
    response_model=PaymentSummary,
    summary="Get payment schedule",
)
async def get_schedule(
    request_id: str,
    current_user: CurrentUser = Depends(require_auth),
    db: AsyncSession = Depends(get_db),
) -> PaymentSummary:
    """Get a request's installments with totals.

    Students can only read schedules of their own requests.
    """
    service = _get_service(db)

    try:
        request = await service.get_request(request_id)
        ensure_owner_or_admin(current_user, request.student_id)
        return await service.installments.get_schedule(request_id)
    except WorkflowError as e:
        raise to_http_error(e)


@router.post(
    "/{request_id}/record",
    response_model=InstallmentResponse,
    summary="Record payment",
    description="Settle the earliest due outstanding installment.",
)
async def record_payment(
    request_id: str,
    data: RecordPaymentRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> InstallmentResponse:
    """Record one installment payment."""
    try:
        return await _get_service(db).record_payment(
            request_id,
            recorded_by=current_user.id,
            payment_reference=data.payment_reference,
        )
    except WorkflowError as e:
        raise to_http_error(e)


@router.post(
    "/{request_id}/installments/{installment_id}/refund",
    response_model=InstallmentResponse,
    summary="Refund installment",
)
async def refund_installment(
    request_id: str,
    installment_id: str,
    data: RefundRequest,
    current_user: CurrentUser = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
) -> InstallmentResponse:
    """Refund a paid installment."""
    logger.info("Refunding installment %s of %s by %s", installment_id, request_id, current_user.id)

    try:
        return await _get_service(db).installments.refund_installment(
            request_id,
            installment_id,
            reason=data.reason,
            refunded_by=current_user.id,
        )
    except WorkflowError as e:
        raise to_http_error(e)
