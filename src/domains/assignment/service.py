# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Class assignment ledger.

This module provides the ClassAssignmentService class for:
- Claiming and releasing class seats
- Recording which classes a student sits in
- Listing assigned and available classes
- Removing classes from a student (admin)

Seat counters are only ever moved by guarded conditional updates, never
recomputed from the assignment rows.
"""

from __future__ import annotations

import logging
from contextlib import AsyncExitStack
from datetime import datetime

from sqlalchemy import and_, delete, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from src.domains.audit.service import AuditService
from src.domains.exceptions import (
    CapacityError,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from src.domains.locks import KeyedLockRegistry, request_locks
from src.domains.payment.service import InstallmentService
from src.domains.request_state import change_status
from src.infrastructure.database.models import (
    Class,
    ClassAssignment,
    ClassAssignmentEntry,
    Course,
    EnrollmentRequest,
)
from src.models.assignment import AssignedClass, AvailableClass, ClassAssignmentResponse
from src.models.common import RequestStatus
from src.utils.datetime import utc_now

logger = logging.getLogger(__name__)


class ClassAssignmentService:
    """Service for the per-student class assignment ledger.

    The seat and entry helpers (claim_seat, release_seat, add_entry,
    remove_entry) only stage changes in the session; the workflow
    operation that calls them commits.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession, locks: KeyedLockRegistry | None = None) -> None:
        """Initialize assignment service.

        Args:
            db: Async database session.
            locks: Per-request lock registry, defaults to the process-wide one.
        """
        self.db = db
        self.locks = locks or request_locks
        self.audit = AuditService(db)
        self.installments = InstallmentService(db, locks=self.locks)

    # =========================================================================
    # Seats and entries
    # =========================================================================

    async def claim_seat(self, class_id: str) -> None:
        """Take one seat in a class.

        Raises:
            NotFoundError: If the class does not exist.
            CapacityError: If the class is full.
        """
        result = await self.db.execute(
            update(Class)
            .where(Class.id == class_id, Class.current_enrollment < Class.capacity)
            .values(current_enrollment=Class.current_enrollment + 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        class_ = await self.db.get(Class, class_id, populate_existing=True)
        if class_ is None:
            raise NotFoundError("Class not found", details={"class_id": class_id})
        raise CapacityError(
            f"Class {class_.name} is full",
            details={
                "class_id": class_id,
                "capacity": class_.capacity,
                "current_enrollment": class_.current_enrollment,
            },
        )

    async def release_seat(self, class_id: str) -> bool:
        """Give back one seat in a class.

        Returns:
            False when the counter was already zero or the class is gone.
        """
        result = await self.db.execute(
            update(Class)
            .where(Class.id == class_id, Class.current_enrollment > 0)
            .values(current_enrollment=Class.current_enrollment - 1, updated_at=utc_now())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.warning("Seat release had no effect: class=%s", class_id)
            return False
        return True

    async def add_entry(
        self,
        student_id: str,
        class_id: str,
        enrollment_request_id: str,
        assigned_at: datetime,
    ) -> ClassAssignmentEntry:
        """Add a class to the student's set, creating the set if needed.

        Raises:
            InvalidStateError: If the class is already in the set.
        """
        assignment = await self.db.get(ClassAssignment, student_id)
        if assignment is None:
            assignment = ClassAssignment(student_id=student_id)
            self.db.add(assignment)
            await self.db.flush()
        else:
            assignment.updated_at = assigned_at

        existing = await self.db.scalar(
            select(ClassAssignmentEntry.id).where(
                ClassAssignmentEntry.student_id == student_id,
                ClassAssignmentEntry.class_id == class_id,
            )
        )
        if existing is not None:
            raise InvalidStateError(
                "Student is already assigned to this class",
                details={"student_id": student_id, "class_id": class_id},
            )

        entry = ClassAssignmentEntry(
            student_id=student_id,
            class_id=class_id,
            enrollment_request_id=enrollment_request_id,
            assigned_at=assigned_at,
        )
        self.db.add(entry)
        await self.db.flush()
        return entry

    async def remove_entry(self, student_id: str, class_id: str) -> bool:
        """Drop a class from the student's set.

        Returns:
            True if an entry was removed.
        """
        result = await self.db.execute(
            delete(ClassAssignmentEntry)
            .where(
                ClassAssignmentEntry.student_id == student_id,
                ClassAssignmentEntry.class_id == class_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount:
            await self.db.execute(
                update(ClassAssignment)
                .where(ClassAssignment.student_id == student_id)
                .values(updated_at=utc_now())
                .execution_options(synchronize_session=False)
            )
        return bool(result.rowcount)

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_assignment(self, student_id: str) -> ClassAssignmentResponse:
        """Get the student's class set ordered by assignment time.

        A student without a record gets an empty set.
        """
        assignment = await self.db.get(ClassAssignment, student_id, populate_existing=True)
        if assignment is None:
            return ClassAssignmentResponse(student_id=student_id)

        entries = await self._get_entries(student_id)
        return ClassAssignmentResponse(
            student_id=student_id,
            class_ids=[entry.class_id for entry in entries],
            updated_at=assignment.updated_at,
        )

    async def get_assigned_classes_count(self, student_id: str) -> int:
        """Count the classes in the student's set, 0 without a record."""
        count = await self.db.scalar(
            select(func.count(ClassAssignmentEntry.id)).where(
                ClassAssignmentEntry.student_id == student_id
            )
        )
        return count or 0

    async def get_student_assigned_classes(self, student_id: str) -> list[AssignedClass]:
        """List the student's classes with display data, oldest assignment first."""
        result = await self.db.execute(
            select(ClassAssignmentEntry, Class, Course.title)
            .join(Class, Class.id == ClassAssignmentEntry.class_id)
            .join(Course, Course.id == Class.course_id)
            .where(ClassAssignmentEntry.student_id == student_id)
            .order_by(ClassAssignmentEntry.assigned_at, ClassAssignmentEntry.id)
        )
        return [
            AssignedClass(
                id=class_.id,
                name=class_.name,
                level=class_.level,
                schedule=class_.schedule,
                course_id=class_.course_id,
                course_title=title,
                assigned_at=entry.assigned_at,
            )
            for entry, class_, title in result.all()
        ]

    async def get_available_classes(self, student_id: str) -> list[AvailableClass]:
        """List classes the student could be placed in.

        A class qualifies when the student holds an approved request for its
        course, is not already in it, and it has a free seat.
        """
        approved_courses = select(EnrollmentRequest.course_id).where(
            EnrollmentRequest.student_id == student_id,
            EnrollmentRequest.status == RequestStatus.APPROVED.value,
        )
        assigned_classes = select(ClassAssignmentEntry.class_id).where(
            ClassAssignmentEntry.student_id == student_id
        )

        result = await self.db.execute(
            select(Class, Course.title)
            .join(Course, Course.id == Class.course_id)
            .where(
                and_(
                    Class.course_id.in_(approved_courses),
                    Class.id.not_in(assigned_classes),
                    Class.current_enrollment < Class.capacity,
                )
            )
            .order_by(Course.title, Class.name)
        )
        return [
            AvailableClass(
                id=class_.id,
                name=class_.name,
                level=class_.level,
                schedule=class_.schedule,
                course_id=class_.course_id,
                course_title=title,
                capacity=class_.capacity,
                current_enrollment=class_.current_enrollment,
                seats_left=class_.capacity - class_.current_enrollment,
            )
            for class_, title in result.all()
        ]

    # =========================================================================
    # Removal
    # =========================================================================

    async def remove_classes(
        self,
        student_id: str,
        class_ids: list[str],
        removed_by: str,
    ) -> ClassAssignmentResponse:
        """Remove classes from a student's set.

        An empty class_ids removes every class. Each removed class gives its
        seat back, and the approved request that placed the student there
        moves to ``unassigned`` with its unpaid installments cancelled. Ids
        not in the set are skipped, so a retry is harmless.

        Args:
            student_id: Student whose set is edited.
            class_ids: Classes to remove, or empty for all.
            removed_by: ID of the admin performing the removal.

        Returns:
            The updated assignment.

        Raises:
            ValidationError: If student_id is blank.
            NotFoundError: If the student has no assignment record and
                class_ids is non-empty.
        """
        if not student_id or not student_id.strip():
            raise ValidationError("Student ID is required")

        assignment = await self.db.get(ClassAssignment, student_id)
        if assignment is None:
            if class_ids:
                raise NotFoundError(
                    "Student has no class assignments",
                    details={"student_id": student_id},
                )
            return ClassAssignmentResponse(student_id=student_id)

        entries = await self._get_entries(student_id)
        wanted = set(class_ids)
        request_ids = sorted(
            {
                entry.enrollment_request_id
                for entry in entries
                if entry.enrollment_request_id and (not wanted or entry.class_id in wanted)
            }
        )

        async with AsyncExitStack() as stack:
            for request_id in request_ids:
                await stack.enter_async_context(self.locks.hold(request_id))

            # Re-read under the locks; a concurrent delete may have taken entries
            entries = await self._get_entries(student_id)
            targets = [entry for entry in entries if not wanted or entry.class_id in wanted]
            if not targets:
                return await self.get_assignment(student_id)

            try:
                removed = []
                unassigned = []
                for entry in targets:
                    if not await self.remove_entry(student_id, entry.class_id):
                        continue
                    await self.release_seat(entry.class_id)
                    removed.append(entry.class_id)
                    unassigned.extend(await self._unassign_requests(student_id, entry.class_id))

                if removed:
                    await self.audit.log_action(
                        action="assignment.classes_removed",
                        performed_by=removed_by,
                        target_type="class_assignment",
                        target_id=student_id,
                        details={
                            "class_ids": removed,
                            "unassigned_request_ids": unassigned,
                        },
                    )
                await self.db.commit()
            except Exception:
                await self.db.rollback()
                raise

        logger.info(
            "Removed classes: student=%s, classes=%s, by=%s",
            student_id,
            ",".join(removed),
            removed_by,
        )

        return await self.get_assignment(student_id)

    async def _unassign_requests(self, student_id: str, class_id: str) -> list[str]:
        """Move approved requests placed in class_id to unassigned.

        Their outstanding installments are cancelled; paid ones stay on
        record so they can still be refunded.
        """
        result = await self.db.execute(
            select(EnrollmentRequest.id).where(
                EnrollmentRequest.student_id == student_id,
                EnrollmentRequest.assigned_class_id == class_id,
                EnrollmentRequest.status == RequestStatus.APPROVED.value,
            )
        )
        request_ids = list(result.scalars().all())
        for request_id in request_ids:
            await change_status(
                self.db,
                request_id,
                RequestStatus.APPROVED,
                RequestStatus.UNASSIGNED,
                assigned_class_id=None,
                approval_date=None,
            )
            await self.installments.cancel_outstanding(request_id)
        return request_ids

    async def _get_entries(self, student_id: str) -> list[ClassAssignmentEntry]:
        result = await self.db.execute(
            select(ClassAssignmentEntry)
            .where(ClassAssignmentEntry.student_id == student_id)
            .order_by(ClassAssignmentEntry.assigned_at, ClassAssignmentEntry.id)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())
