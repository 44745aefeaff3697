# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Payment installment tracker.

This module provides the InstallmentService class for:
- Course installment templates (get / replace)
- Generating a request's schedule on approval
- Recording installment payments, earliest due first
- Refunding paid installments
- Flipping installments to Unpaid once they fall due

Installment lifecycle: Pending (not yet due) -> Unpaid (due) -> Paid ->
Refunded. An installment is only ever paid while its request is approved.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal

from sqlalchemy import delete, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.core.config.settings import EnrollmentSettings, get_settings
from src.domains.audit.service import AuditService
from src.domains.exceptions import (
    AlreadySatisfiedError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from src.domains.locks import KeyedLockRegistry, request_locks
from src.domains.payment.schedule import (
    PlanEntry,
    build_schedule,
    default_plan,
    from_minor,
    validate_plan,
)
from src.infrastructure.database.models import (
    Course,
    EnrollmentRequest,
    InstallmentTemplate,
    PaymentInstallment,
)
from src.models.common import AmountType, InstallmentStatus, PaymentStatus, RequestStatus
from src.models.payment import (
    InstallmentResponse,
    InstallmentTemplateEntry,
    InstallmentTemplateResponse,
    PaymentSummary,
)
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)

OUTSTANDING_STATUSES = (InstallmentStatus.PENDING.value, InstallmentStatus.UNPAID.value)


class InstallmentService:
    """Service for installment schedules and payments.

    create_schedule and delete_schedule only stage changes; they run inside
    the approval and deletion transactions of the enrollment workflow.

    Attributes:
        db: Async database session.
        settings: Enrollment rule settings.
    """

    def __init__(
        self,
        db: AsyncSession,
        settings: EnrollmentSettings | None = None,
        locks: KeyedLockRegistry | None = None,
    ) -> None:
        """Initialize installment service.

        Args:
            db: Async database session.
            settings: Enrollment settings, defaults to the application settings.
            locks: Per-request lock registry, defaults to the process-wide one.
        """
        self.db = db
        self.settings = settings or get_settings().enrollment
        self.locks = locks or request_locks
        self.audit = AuditService(db)

    # =========================================================================
    # Templates
    # =========================================================================

    async def get_template(self, course_id: str) -> InstallmentTemplateResponse:
        """Get a course's installment template.

        Courses without a stored template report the configured equal split.

        Raises:
            NotFoundError: If the course does not exist.
        """
        await self._get_course(course_id)
        template = await self._find_template(course_id)

        if template is None:
            plan = default_plan(
                self.settings.default_installment_count,
                self.settings.installment_interval_days,
            )
            return InstallmentTemplateResponse(
                course_id=course_id,
                entries=[self._entry_model(entry) for entry in plan],
                is_default=True,
            )

        return InstallmentTemplateResponse(
            course_id=course_id,
            entries=[InstallmentTemplateEntry.model_validate(raw) for raw in template.entries],
            updated_at=template.updated_at,
        )

    async def set_template(
        self,
        course_id: str,
        entries: list[InstallmentTemplateEntry],
        updated_by: str,
    ) -> InstallmentTemplateResponse:
        """Replace a course's installment template.

        Schedules already generated for approved requests are left as they are.

        Raises:
            NotFoundError: If the course does not exist.
            ValidationError: If the entries do not form a valid plan for the
                course price.
        """
        course = await self._get_course(course_id)
        plan = [self._plan_entry(entry) for entry in entries]
        validate_plan(plan, course.price_minor, self.settings.currency_minor_digits)

        serialized = [entry.model_dump(mode="json") for entry in entries]
        template = await self._find_template(course_id)
        if template is None:
            template = InstallmentTemplate(course_id=course_id, entries=serialized)
            self.db.add(template)
        else:
            template.entries = serialized
        template.updated_by = updated_by

        await self.audit.log_action(
            action="installment_template.updated",
            performed_by=updated_by,
            target_type="course",
            target_id=course_id,
            details={"entries": serialized},
        )
        await self.db.commit()
        await self.db.refresh(template)

        logger.info(
            "Installment template set: course=%s, entries=%d, by=%s",
            course_id,
            len(entries),
            updated_by,
        )

        return await self.get_template(course_id)

    async def resolve_plan(self, course: Course) -> list[PlanEntry]:
        """Get the plan approval would use for a course.

        Raises:
            ValidationError: If the stored template no longer fits the
                course price.
        """
        template = await self._find_template(course.id)
        if template is None:
            return default_plan(
                self.settings.default_installment_count,
                self.settings.installment_interval_days,
            )

        plan = [
            self._plan_entry(InstallmentTemplateEntry.model_validate(raw))
            for raw in template.entries
        ]
        validate_plan(plan, course.price_minor, self.settings.currency_minor_digits)
        return plan

    # =========================================================================
    # Schedules
    # =========================================================================

    async def create_schedule(
        self,
        enrollment_request_id: str,
        price_minor: int,
        plan: list[PlanEntry],
        start: datetime,
        now: datetime | None = None,
    ) -> list[PaymentInstallment]:
        """Stage the installments of a newly approved request."""
        scheduled = build_schedule(
            price_minor,
            plan,
            start,
            minor_digits=self.settings.currency_minor_digits,
            now=now,
        )

        rows = [
            PaymentInstallment(
                enrollment_request_id=enrollment_request_id,
                sequence=item.sequence,
                name=item.name,
                amount_type=item.amount_type.value,
                share=item.share,
                amount_minor=item.amount_minor,
                status=item.status.value,
                due_date=item.due_date,
            )
            for item in scheduled
        ]
        self.db.add_all(rows)
        await self.db.flush()
        return rows

    async def delete_schedule(self, enrollment_request_id: str) -> int:
        """Stage removal of a request's installments.

        Returns:
            Number of installments removed.
        """
        result = await self.db.execute(
            delete(PaymentInstallment)
            .where(PaymentInstallment.enrollment_request_id == enrollment_request_id)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def cancel_outstanding(self, enrollment_request_id: str) -> int:
        """Stage removal of a request's Pending and Unpaid installments.

        Paid and Refunded installments are kept.
        """
        result = await self.db.execute(
            delete(PaymentInstallment)
            .where(
                PaymentInstallment.enrollment_request_id == enrollment_request_id,
                PaymentInstallment.status.in_(OUTSTANDING_STATUSES),
            )
            .execution_options(synchronize_session=False)
        )
        count = result.rowcount or 0
        if count:
            logger.info(
                "Cancelled outstanding installments: request=%s, count=%d",
                enrollment_request_id,
                count,
            )
        return count

    async def list_installments(self, enrollment_request_id: str) -> list[InstallmentResponse]:
        """List a request's installments in sequence order."""
        rows = await self._get_installments(enrollment_request_id)
        return [self.to_response(row) for row in rows]

    async def get_schedule(self, request_id: str) -> PaymentSummary:
        """Get a request's installments with totals.

        Raises:
            NotFoundError: If the request does not exist.
        """
        request = await self.db.get(EnrollmentRequest, request_id)
        if request is None:
            raise NotFoundError("Enrollment request not found", details={"request_id": request_id})

        rows = await self._get_installments(request_id)
        digits = self.settings.currency_minor_digits

        total_due = sum(row.amount_minor for row in rows)
        total_paid = sum(
            row.amount_minor for row in rows if row.status == InstallmentStatus.PAID.value
        )
        outstanding = [row for row in rows if row.status in OUTSTANDING_STATUSES]

        if outstanding or (not rows and request.status == RequestStatus.PENDING.value):
            status = PaymentStatus.PENDING
        elif any(row.status == InstallmentStatus.REFUNDED.value for row in rows):
            status = PaymentStatus.REFUNDED
        else:
            status = PaymentStatus.COMPLETED

        return PaymentSummary(
            request_id=request_id,
            installments=[self.to_response(row) for row in rows],
            total_due=from_minor(total_due, digits),
            total_paid=from_minor(total_paid, digits),
            status=status,
        )

    # =========================================================================
    # Payments and refunds
    # =========================================================================

    async def record_payment(
        self,
        request_id: str,
        recorded_by: str,
        payment_reference: str | None = None,
        now: datetime | None = None,
    ) -> InstallmentResponse:
        """Mark the next outstanding installment Paid.

        The installment due earliest is settled first; equal due dates go
        by sequence. A payment_reference already recorded on this request
        returns that installment without changing anything.

        Args:
            request_id: Request being paid.
            recorded_by: ID of the user recording the payment.
            payment_reference: Optional idempotency key of the payment.
            now: Payment time, defaults to the current time.

        Returns:
            The settled installment.

        Raises:
            NotFoundError: If the request does not exist.
            InvalidStateError: If the request is not approved.
            AlreadySatisfiedError: If no installment is outstanding.
        """
        now = now or utc_now()

        async with self.locks.hold(request_id):
            try:
                request = await self._get_request(request_id)

                if payment_reference:
                    settled = await self.db.scalar(
                        select(PaymentInstallment).where(
                            PaymentInstallment.enrollment_request_id == request_id,
                            PaymentInstallment.payment_reference == payment_reference,
                        )
                    )
                    if settled is not None:
                        logger.info(
                            "Payment already recorded: request=%s, reference=%s",
                            request_id,
                            payment_reference,
                        )
                        return self.to_response(settled)

                if request.status != RequestStatus.APPROVED.value:
                    raise InvalidStateError(
                        "Payments can only be recorded for approved requests",
                        details={"request_id": request_id, "status": request.status},
                    )

                installment = await self.db.scalar(
                    select(PaymentInstallment)
                    .where(
                        PaymentInstallment.enrollment_request_id == request_id,
                        PaymentInstallment.status.in_(OUTSTANDING_STATUSES),
                    )
                    .order_by(PaymentInstallment.due_date, PaymentInstallment.sequence)
                    .limit(1)
                )
                if installment is None:
                    raise AlreadySatisfiedError(
                        "All installments are already paid",
                        details={"request_id": request_id},
                    )

                result = await self.db.execute(
                    update(PaymentInstallment)
                    .where(
                        PaymentInstallment.id == installment.id,
                        PaymentInstallment.status == installment.status,
                    )
                    .values(
                        status=InstallmentStatus.PAID.value,
                        paid_date=now,
                        payment_reference=payment_reference,
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise InvalidStateError(
                        "Installment changed while recording the payment",
                        details={"installment_id": installment.id},
                    )

                await self.audit.log_action(
                    action="payment.recorded",
                    performed_by=recorded_by,
                    target_type="enrollment_request",
                    target_id=request_id,
                    details={
                        "installment_id": installment.id,
                        "sequence": installment.sequence,
                        "amount_minor": installment.amount_minor,
                        "payment_reference": payment_reference,
                    },
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        await self.db.refresh(installment)

        logger.info(
            "Recorded payment: request=%s, installment=%s, sequence=%d, by=%s",
            request_id,
            installment.id,
            installment.sequence,
            recorded_by,
        )

        return self.to_response(installment)

    async def refund_installment(
        self,
        request_id: str,
        installment_id: str,
        reason: str,
        refunded_by: str,
        now: datetime | None = None,
    ) -> InstallmentResponse:
        """Refund a paid installment.

        Raises:
            ValidationError: If no reason is given.
            NotFoundError: If the installment does not belong to the request.
            InvalidStateError: If the installment is not Paid.
        """
        if not reason or not reason.strip():
            raise ValidationError("A refund reason is required")
        now = now or utc_now()

        async with self.locks.hold(request_id):
            try:
                installment = await self.db.get(
                    PaymentInstallment, installment_id, populate_existing=True
                )
                if installment is None or installment.enrollment_request_id != request_id:
                    raise NotFoundError(
                        "Installment not found",
                        details={"request_id": request_id, "installment_id": installment_id},
                    )

                result = await self.db.execute(
                    update(PaymentInstallment)
                    .where(
                        PaymentInstallment.id == installment_id,
                        PaymentInstallment.status == InstallmentStatus.PAID.value,
                    )
                    .values(
                        status=InstallmentStatus.REFUNDED.value,
                        refund_date=now,
                        refund_reason=reason.strip(),
                        updated_at=now,
                    )
                    .execution_options(synchronize_session=False)
                )
                if result.rowcount != 1:
                    raise InvalidStateError(
                        "Only paid installments can be refunded",
                        details={"installment_id": installment_id, "status": installment.status},
                    )

                await self.audit.log_action(
                    action="payment.refunded",
                    performed_by=refunded_by,
                    target_type="enrollment_request",
                    target_id=request_id,
                    details={"installment_id": installment_id, "reason": reason.strip()},
                )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        await self.db.refresh(installment)

        logger.info(
            "Refunded installment: request=%s, installment=%s, by=%s",
            request_id,
            installment_id,
            refunded_by,
        )

        return self.to_response(installment)

    async def refresh_due_statuses(self, now: datetime | None = None) -> int:
        """Flip Pending installments whose due date has passed to Unpaid.

        Only installments of approved requests fall due.

        Returns:
            Number of installments updated.
        """
        now = now or utc_now()
        approved = select(EnrollmentRequest.id).where(
            EnrollmentRequest.status == RequestStatus.APPROVED.value
        )

        result = await self.db.execute(
            update(PaymentInstallment)
            .where(
                PaymentInstallment.status == InstallmentStatus.PENDING.value,
                PaymentInstallment.due_date <= now,
                PaymentInstallment.enrollment_request_id.in_(approved),
            )
            .values(status=InstallmentStatus.UNPAID.value, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        count = result.rowcount or 0
        if count:
            logger.info("Installments now due: %d", count)
        return count

    # =========================================================================
    # Helpers
    # =========================================================================

    def to_response(self, row: PaymentInstallment) -> InstallmentResponse:
        """Convert an installment row to its API model."""
        return InstallmentResponse(
            id=row.id,
            sequence=row.sequence,
            name=row.name,
            amount_type=AmountType(row.amount_type),
            share=Decimal(row.share),
            amount=from_minor(row.amount_minor, self.settings.currency_minor_digits),
            status=InstallmentStatus(row.status),
            due_date=row.due_date,
            paid_date=row.paid_date,
            refund_date=row.refund_date,
            refund_reason=row.refund_reason,
            payment_reference=row.payment_reference,
        )

    async def _get_request(self, request_id: str) -> EnrollmentRequest:
        request = await self.db.get(EnrollmentRequest, request_id, populate_existing=True)
        if request is None:
            raise NotFoundError("Enrollment request not found", details={"request_id": request_id})
        return request

    async def _get_course(self, course_id: str) -> Course:
        course = await self.db.get(Course, course_id)
        if course is None:
            raise NotFoundError("Course not found", details={"course_id": course_id})
        return course

    async def _find_template(self, course_id: str) -> InstallmentTemplate | None:
        return await self.db.scalar(
            select(InstallmentTemplate).where(InstallmentTemplate.course_id == course_id)
        )

    async def _get_installments(self, enrollment_request_id: str) -> list[PaymentInstallment]:
        result = await self.db.execute(
            select(PaymentInstallment)
            .where(PaymentInstallment.enrollment_request_id == enrollment_request_id)
            .order_by(PaymentInstallment.sequence)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    def _plan_entry(entry: InstallmentTemplateEntry) -> PlanEntry:
        return PlanEntry(
            name=entry.name,
            amount_type=entry.amount_type,
            amount=entry.amount,
            due_offset_days=entry.due_offset_days,
        )

    @staticmethod
    def _entry_model(entry: PlanEntry) -> InstallmentTemplateEntry:
        return InstallmentTemplateEntry(
            name=entry.name,
            amount_type=entry.amount_type,
            amount=entry.amount,
            due_offset_days=entry.due_offset_days,
        )
