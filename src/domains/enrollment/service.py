# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment workflow service.

This module provides the EnrollmentService class for:
- Student enrollment requests and the duplicate-request guard
- Admin approval into a class, rejection and deletion
- Registration fee and installment payment recording
- Request listings, per-course status and statistics
- Expiry of stale pending requests

Approval, rejection, deletion and payment on one request are serialized by
the request's lock, and every status write is a compare-and-swap. Each
operation is one transaction: it commits at the end or rolls back entirely.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config.settings import EnrollmentSettings, get_settings
from src.domains.assignment.service import ClassAssignmentService
from src.domains.audit.service import AuditService
from src.domains.exceptions import (
    AlreadySatisfiedError,
    DuplicateRequestError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from src.domains.locks import KeyedLockRegistry, request_locks
from src.domains.payment.schedule import from_minor
from src.domains.payment.service import InstallmentService
from src.domains.request_state import change_status, ensure_transition
from src.infrastructure.database.models import Class, Course, EnrollmentRequest
from src.models.common import RequestStatus
from src.models.enrollment import (
    ADMIN_NOTES_MAX_LENGTH,
    ClassSummary,
    CourseEnrollmentStatus,
    CourseSummary,
    DeletionReceipt,
    EnrollmentRequestDetail,
    EnrollmentRequestResponse,
    EnrollmentStatistics,
    StudentSummary,
)
from src.models.payment import InstallmentResponse
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"
MAX_ID_LENGTH = 36
OPEN_STATUSES = (RequestStatus.PENDING.value, RequestStatus.APPROVED.value)


class EnrollmentService:
    """Service orchestrating the enrollment request lifecycle.

    Attributes:
        db: Async database session.
        settings: Enrollment rule settings.
        assignments: Class assignment ledger on the same session.
        installments: Installment tracker on the same session.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: EnrollmentSettings | None = None,
        locks: KeyedLockRegistry | None = None,
    ) -> None:
        """Initialize enrollment service.

        Args:
            db: Async database session.
            settings: Enrollment settings, defaults to the application settings.
            locks: Per-request lock registry, defaults to the process-wide one.
        """
        self.db = db
        self.settings = settings or get_settings().enrollment
        self.locks = locks or request_locks
        self.assignments = ClassAssignmentService(db, locks=self.locks)
        self.installments = InstallmentService(db, settings=self.settings, locks=self.locks)
        self.audit = AuditService(db)

    # =========================================================================
    # Lifecycle
    # =========================================================================

    async def create_request(
        self,
        student_id: str,
        course_id: str,
        preferred_level: str | None = None,
        now: datetime | None = None,
    ) -> EnrollmentRequestResponse:
        """Submit a pending enrollment request.

        Args:
            student_id: Requesting student.
            course_id: Course applied to.
            preferred_level: Optional level chosen by the student.
            now: Request time, defaults to the current time.

        Returns:
            The new pending request.

        Raises:
            ValidationError: If an id is missing or malformed, or the course
                does not offer the preferred level.
            NotFoundError: If the course does not exist.
            DuplicateRequestError: If the student already has a pending or
                approved request for the course.
        """
        student_id = _require_id(student_id, "student_id")
        course_id = _require_id(course_id, "course_id")
        level = preferred_level.strip() if preferred_level else None
        now = now or utc_now()

        async with self.locks.hold(f"{student_id}:{course_id}"):
            try:
                course = await self.db.get(Course, course_id)
                if course is None:
                    raise NotFoundError("Course not found", details={"course_id": course_id})

                if level and not course.offers_level(level):
                    raise ValidationError(
                        f"Course does not offer level {level}",
                        details={"preferred_level": level, "levels": course.levels},
                    )

                existing = await self._find_open_request(student_id, course_id)
                if existing is not None:
                    raise DuplicateRequestError(
                        f"Student already has a {existing.status} request for this course",
                        details={"request_id": existing.id, "status": existing.status},
                    )

                request = EnrollmentRequest(
                    student_id=student_id,
                    course_id=course_id,
                    preferred_level=level,
                    status=RequestStatus.PENDING.value,
                    request_date=now,
                    expires_at=now + timedelta(hours=self.settings.validity_hours),
                    registration_fee_paid=False,
                )
                self.db.add(request)
                try:
                    await self.db.flush()
                except IntegrityError as e:
                    # Another worker inserted an open request first
                    raise DuplicateRequestError(
                        "Student already has an open request for this course",
                        details={"student_id": student_id, "course_id": course_id},
                    ) from e

                await self.audit.log_action(
                    action="enrollment.created",
                    performed_by=student_id,
                    target_type="enrollment_request",
                    target_id=request.id,
                    details={"course_id": course_id, "preferred_level": level},
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        await self.db.refresh(request)

        logger.info(
            "Created enrollment request: id=%s, student=%s, course=%s",
            request.id,
            student_id,
            course_id,
        )

        return self._to_response(request)

    async def approve(
        self,
        request_id: str,
        class_id: str,
        approved_by: str,
        admin_notes: str | None = None,
        now: datetime | None = None,
    ) -> EnrollmentRequestResponse:
        """Approve a pending request into a class.

        Within one transaction: claim a seat in the class, add the class to
        the student's assignment set, move the request to approved and
        generate its installment schedule.

        Args:
            request_id: Request to approve.
            class_id: Class the student is placed in.
            approved_by: ID of the approving admin.
            admin_notes: Optional notes stored on the request.
            now: Approval time, defaults to the current time.

        Returns:
            The approved request.

        Raises:
            ValidationError: If class_id is missing, the notes are too long,
                or the class belongs to another course.
            NotFoundError: If the request or the class does not exist.
            InvalidStateError: If the request is not pending, or the
                registration fee is required and unpaid.
            CapacityError: If the class is full.
        """
        class_id = _require_id(class_id, "class_id")
        _check_notes(admin_notes)
        now = now or utc_now()

        async with self.locks.hold(request_id):
            try:
                request = await self._get_request(request_id)
                ensure_transition(request.status, RequestStatus.APPROVED, request_id)

                if self.settings.require_registration_fee and not request.registration_fee_paid:
                    raise InvalidStateError(
                        "Registration fee must be paid before approval",
                        details={"request_id": request_id},
                    )

                class_ = await self.db.get(Class, class_id)
                if class_ is None:
                    raise NotFoundError("Class not found", details={"class_id": class_id})
                if class_.course_id != request.course_id:
                    raise ValidationError(
                        "Class does not belong to the requested course",
                        details={"class_id": class_id, "course_id": request.course_id},
                    )

                course = await self.db.get(Course, request.course_id)
                plan = await self.installments.resolve_plan(course)

                await self.assignments.claim_seat(class_id)
                await self.assignments.add_entry(request.student_id, class_id, request_id, now)

                values = {"assigned_class_id": class_id, "approval_date": now, "decided_by": approved_by}
                if admin_notes is not None:
                    values["admin_notes"] = admin_notes
                await change_status(
                    self.db, request_id, RequestStatus.PENDING, RequestStatus.APPROVED, **values
                )

                installments = await self.installments.create_schedule(
                    request_id, course.price_minor, plan, start=now, now=now
                )

                await self.audit.log_action(
                    action="enrollment.approved",
                    performed_by=approved_by,
                    target_type="enrollment_request",
                    target_id=request_id,
                    details={
                        "class_id": class_id,
                        "installments": len(installments),
                        "price_minor": course.price_minor,
                    },
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        await self.db.refresh(request)

        logger.info(
            "Approved enrollment request: id=%s, class=%s, by=%s",
            request_id,
            class_id,
            approved_by,
        )

        return self._to_response(request)

    async def reject(
        self,
        request_id: str,
        rejected_by: str,
        admin_notes: str | None = None,
    ) -> EnrollmentRequestResponse:
        """Reject a pending request.

        Raises:
            ValidationError: If the notes are too long.
            NotFoundError: If the request does not exist.
            InvalidStateError: If the request is not pending.
        """
        _check_notes(admin_notes)

        async with self.locks.hold(request_id):
            try:
                request = await self._get_request(request_id)

                values = {"decided_by": rejected_by}
                if admin_notes is not None:
                    values["admin_notes"] = admin_notes
                await change_status(
                    self.db, request_id, request.status, RequestStatus.REJECTED, **values
                )

                await self.audit.log_action(
                    action="enrollment.rejected",
                    performed_by=rejected_by,
                    target_type="enrollment_request",
                    target_id=request_id,
                    details={"admin_notes": admin_notes},
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        await self.db.refresh(request)

        logger.info("Rejected enrollment request: id=%s, by=%s", request_id, rejected_by)

        return self._to_response(request)

    async def delete_request(
        self,
        request_id: str,
        deleted_by: str,
        now: datetime | None = None,
    ) -> DeletionReceipt:
        """Delete a request and everything it holds.

        For an approved request the class seat is released and the class
        leaves the student's assignment set before the request and its
        installments are removed.

        Raises:
            NotFoundError: If the request does not exist.
            InvalidStateError: If the request changed status concurrently.
        """
        now = now or utc_now()

        async with self.locks.hold(request_id):
            try:
                request = await self._get_request(request_id)
                status = request.status

                released_class_id = None
                if status == RequestStatus.APPROVED.value and request.assigned_class_id:
                    class_id = request.assigned_class_id
                    # The seat goes back only with the entry that held it
                    if await self.assignments.remove_entry(request.student_id, class_id):
                        await self.assignments.release_seat(class_id)
                        released_class_id = class_id

                removed_installments = await self.installments.delete_schedule(request_id)

                result = await self.db.execute(
                    delete(EnrollmentRequest)
                    .where(EnrollmentRequest.id == request_id, EnrollmentRequest.status == status)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise InvalidStateError(
                        "Enrollment request changed while deleting",
                        details={"request_id": request_id},
                    )

                await self.audit.log_action(
                    action="enrollment.deleted",
                    performed_by=deleted_by,
                    target_type="enrollment_request",
                    target_id=request_id,
                    details={
                        "student_id": request.student_id,
                        "course_id": request.course_id,
                        "status": status,
                        "released_class_id": released_class_id,
                        "removed_installments": removed_installments,
                    },
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        self.db.expunge(request)

        logger.info(
            "Deleted enrollment request: id=%s, status=%s, by=%s",
            request_id,
            status,
            deleted_by,
        )

        return DeletionReceipt(
            request_id=request_id,
            status=RequestStatus(status),
            deleted_by=deleted_by,
            deleted_at=now,
            released_class_id=released_class_id,
            removed_installments=removed_installments,
        )

    async def record_payment(
        self,
        request_id: str,
        recorded_by: str,
        payment_reference: str | None = None,
        now: datetime | None = None,
    ) -> InstallmentResponse:
        """Settle the next outstanding installment of an approved request.

        See InstallmentService.record_payment.
        """
        return await self.installments.record_payment(
            request_id,
            recorded_by=recorded_by,
            payment_reference=payment_reference,
            now=now,
        )

    async def record_registration_fee(
        self,
        request_id: str,
        recorded_by: str,
        now: datetime | None = None,
    ) -> EnrollmentRequestResponse:
        """Mark the registration fee of a pending request as paid.

        Raises:
            NotFoundError: If the request does not exist.
            InvalidStateError: If the request is not pending.
            AlreadySatisfiedError: If the fee is already recorded.
        """
        now = now or utc_now()

        async with self.locks.hold(request_id):
            try:
                request = await self._get_request(request_id)
                if request.status != RequestStatus.PENDING.value:
                    raise InvalidStateError(
                        "Registration fee can only be recorded for pending requests",
                        details={"request_id": request_id, "status": request.status},
                    )
                if request.registration_fee_paid:
                    raise AlreadySatisfiedError(
                        "Registration fee already recorded",
                        details={"request_id": request_id},
                    )

                result = await self.db.execute(
                    update(EnrollmentRequest)
                    .where(
                        EnrollmentRequest.id == request_id,
                        EnrollmentRequest.status == RequestStatus.PENDING.value,
                        EnrollmentRequest.registration_fee_paid.is_(False),
                    )
                    .values(registration_fee_paid=True, payment_date=now, updated_at=now)
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise InvalidStateError(
                        "Enrollment request changed while recording the fee",
                        details={"request_id": request_id},
                    )

                await self.audit.log_action(
                    action="enrollment.registration_fee_recorded",
                    performed_by=recorded_by,
                    target_type="enrollment_request",
                    target_id=request_id,
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        await self.db.refresh(request)

        logger.info("Registration fee recorded: request=%s, by=%s", request_id, recorded_by)

        return self._to_response(request)

    async def expire_stale_requests(self, now: datetime | None = None) -> int:
        """Reject pending requests whose validity window has lapsed unpaid.

        Each expiry commits on its own. Requests decided concurrently are
        skipped.

        Returns:
            Number of requests expired.
        """
        now = now or utc_now()

        result = await self.db.execute(
            select(EnrollmentRequest.id).where(
                EnrollmentRequest.status == RequestStatus.PENDING.value,
                EnrollmentRequest.registration_fee_paid.is_(False),
                EnrollmentRequest.expires_at.is_not(None),
                EnrollmentRequest.expires_at < now,
            )
        )
        candidates = list(result.scalars().all())
        note = (
            f"Expired: registration fee not paid within {self.settings.validity_hours} hours"
        )

        expired = 0
        for request_id in candidates:
            async with self.locks.hold(request_id):
                try:
                    await change_status(
                        self.db,
                        request_id,
                        RequestStatus.PENDING,
                        RequestStatus.REJECTED,
                        admin_notes=note,
                        decided_by=SYSTEM_ACTOR,
                    )
                    await self.audit.log_action(
                        action="enrollment.expired",
                        performed_by=SYSTEM_ACTOR,
                        target_type="enrollment_request",
                        target_id=request_id,
                    )
                    await self.db.commit()
                    expired += 1
                except InvalidStateError:
                    await self.db.rollback()
                    logger.debug("Skipped expiry of request decided meanwhile: %s", request_id)

        if expired:
            logger.info("Expired %d stale enrollment requests", expired)
        return expired

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_request_by_id(self, request_id: str) -> EnrollmentRequestDetail:
        """Get a request with its student, course, class and installments.

        Raises:
            NotFoundError: If the request does not exist.
        """
        request = await self._get_request(request_id)
        course = await self.db.get(Course, request.course_id)
        class_ = (
            await self.db.get(Class, request.assigned_class_id)
            if request.assigned_class_id
            else None
        )

        base = self._to_response(request)
        return EnrollmentRequestDetail(
            **base.model_dump(),
            student=StudentSummary(id=request.student_id),
            course=CourseSummary(
                id=course.id,
                title=course.title,
                price=from_minor(course.price_minor, self.settings.currency_minor_digits),
            ),
            assigned_class=(
                ClassSummary(
                    id=class_.id,
                    name=class_.name,
                    level=class_.level,
                    schedule=class_.schedule,
                )
                if class_ is not None
                else None
            ),
            installments=await self.installments.list_installments(request_id),
        )

    async def get_request(self, request_id: str) -> EnrollmentRequestResponse:
        """Get a request without its related records.

        Raises:
            NotFoundError: If the request does not exist.
        """
        return self._to_response(await self._get_request(request_id))

    async def list_student_requests(self, student_id: str) -> list[EnrollmentRequestResponse]:
        """List a student's requests, newest first."""
        return await self.list_requests(student_id=student_id)

    async def list_requests(
        self,
        status: RequestStatus | None = None,
        course_id: str | None = None,
        student_id: str | None = None,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> list[EnrollmentRequestResponse]:
        """List requests matching the filters, newest first.

        Args:
            status: Only requests in this status.
            course_id: Only requests for this course.
            student_id: Only requests of this student.
            date_from: Only requests made at or after this time.
            date_to: Only requests made at or before this time.
        """
        query = select(EnrollmentRequest)
        if status is not None:
            query = query.where(EnrollmentRequest.status == RequestStatus(status).value)
        if course_id:
            query = query.where(EnrollmentRequest.course_id == course_id)
        if student_id:
            query = query.where(EnrollmentRequest.student_id == student_id)
        if date_from:
            query = query.where(EnrollmentRequest.request_date >= date_from)
        if date_to:
            query = query.where(EnrollmentRequest.request_date <= date_to)

        result = await self.db.execute(
            query.order_by(EnrollmentRequest.request_date.desc(), EnrollmentRequest.id)
            .execution_options(populate_existing=True)
        )
        return [self._to_response(request) for request in result.scalars().all()]

    async def get_statistics(self) -> EnrollmentStatistics:
        """Count requests per status."""
        result = await self.db.execute(
            select(EnrollmentRequest.status, func.count(EnrollmentRequest.id)).group_by(
                EnrollmentRequest.status
            )
        )
        counts = {status: count for status, count in result.all()}
        return EnrollmentStatistics(
            total=sum(counts.values()),
            **{status.value: counts.get(status.value, 0) for status in RequestStatus},
        )

    async def get_course_status(self, student_id: str, course_id: str) -> CourseEnrollmentStatus:
        """Get the student's standing for a course from their latest request."""
        latest = await self.db.scalar(
            select(EnrollmentRequest)
            .where(
                EnrollmentRequest.student_id == student_id,
                EnrollmentRequest.course_id == course_id,
            )
            .order_by(EnrollmentRequest.request_date.desc())
            .limit(1)
        )
        if latest is None:
            return CourseEnrollmentStatus(course_id=course_id, status="not_enrolled")

        return CourseEnrollmentStatus(
            course_id=course_id,
            status=latest.status,
            request_id=latest.id,
            request_date=latest.request_date,
            assigned_class_id=latest.assigned_class_id,
            registration_fee_paid=latest.registration_fee_paid,
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _find_open_request(
        self, student_id: str, course_id: str
    ) -> EnrollmentRequest | None:
        return await self.db.scalar(
            select(EnrollmentRequest)
            .where(
                EnrollmentRequest.student_id == student_id,
                EnrollmentRequest.course_id == course_id,
                EnrollmentRequest.status.in_(OPEN_STATUSES),
            )
            .limit(1)
        )

    async def _get_request(self, request_id: str) -> EnrollmentRequest:
        request = await self.db.get(EnrollmentRequest, request_id, populate_existing=True)
        if request is None:
            raise NotFoundError("Enrollment request not found", details={"request_id": request_id})
        return request

    @staticmethod
    def _to_response(request: EnrollmentRequest) -> EnrollmentRequestResponse:
        return EnrollmentRequestResponse.model_validate(request)


def _require_id(value: str | None, field: str) -> str:
    """Strip an identifier, rejecting blanks and oversized values."""
    if value is None or not str(value).strip():
        raise ValidationError(f"{field} is required", details={"field": field})
    value = str(value).strip()
    if len(value) > MAX_ID_LENGTH:
        raise ValidationError(f"{field} is malformed", details={"field": field})
    return value


def _check_notes(admin_notes: str | None) -> None:
    if admin_notes is not None and len(admin_notes) > ADMIN_NOTES_MAX_LENGTH:
        raise ValidationError(
            f"Admin notes cannot exceed {ADMIN_NOTES_MAX_LENGTH} characters",
            details={"length": len(admin_notes)},
        )
