# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Enrollment request state machine.

The lifecycle is a fixed table:

    pending  -> approved    (approve)
    pending  -> rejected    (reject, expiry sweep)
    approved -> unassigned  (the assigned class is removed)

rejected and unassigned are terminal. A decided request never returns to
pending.

Every status write goes through change_status: a table check followed by a
compare-and-swap update on the stored status.
"""

from typing import Any

from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from src.domains.exceptions import InvalidStateError
from src.infrastructure.database.models import EnrollmentRequest
from src.models.common import RequestStatus
from src.utils.datetime import utc_now

TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({RequestStatus.APPROVED, RequestStatus.REJECTED}),
    RequestStatus.APPROVED: frozenset({RequestStatus.UNASSIGNED}),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.UNASSIGNED: frozenset(),
}


def can_transition(current: RequestStatus | str, target: RequestStatus | str) -> bool:
    """Check whether the table allows moving from current to target."""
    return RequestStatus(target) in TRANSITIONS[RequestStatus(current)]


def ensure_transition(
    current: RequestStatus | str,
    target: RequestStatus | str,
    request_id: str | None = None,
) -> None:
    """Raise unless the table allows moving from current to target.

    Raises:
        InvalidStateError: If the transition is not in the table.
    """
    if not can_transition(current, target):
        raise InvalidStateError(
            f"Cannot move enrollment request from {RequestStatus(current).value} "
            f"to {RequestStatus(target).value}",
            details={
                "request_id": request_id,
                "current_status": RequestStatus(current).value,
                "target_status": RequestStatus(target).value,
            },
        )


def is_terminal(status: RequestStatus | str) -> bool:
    """Check whether no transition leaves status."""
    return not TRANSITIONS[RequestStatus(status)]


async def change_status(
    db: AsyncSession,
    request_id: str,
    expected: RequestStatus | str,
    target: RequestStatus | str,
    **values: Any,
) -> None:
    """Move a request from expected to target status in the current transaction.

    The update only matches while the stored status still equals expected.
    Callers refresh any loaded EnrollmentRequest afterwards.

    Args:
        db: Session whose transaction the update joins.
        request_id: Request to move.
        expected: Status the caller last observed.
        target: Status to move to.
        **values: Further columns to set in the same statement.

    Raises:
        InvalidStateError: If the table forbids the move or another writer
            changed the status first.
    """
    ensure_transition(expected, target, request_id)

    result = await db.execute(
        update(EnrollmentRequest)
        .where(
            EnrollmentRequest.id == request_id,
            EnrollmentRequest.status == RequestStatus(expected).value,
        )
        .values(status=RequestStatus(target).value, updated_at=utc_now(), **values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidStateError(
            "Enrollment request is no longer "
            f"{RequestStatus(expected).value}",
            details={"request_id": request_id, "expected_status": RequestStatus(expected).value},
        )
