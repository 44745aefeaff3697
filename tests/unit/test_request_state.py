# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the enrollment request state machine."""

import pytest
from sqlalchemy import update

from src.domains.exceptions import InvalidStateError
from src.domains.request_state import (
    TRANSITIONS,
    can_transition,
    change_status,
    ensure_transition,
    is_terminal,
)
from src.infrastructure.database.models import EnrollmentRequest
from src.models.common import RequestStatus


class TestTransitionTable:
    """Tests for the static transition table."""

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (RequestStatus.PENDING, RequestStatus.APPROVED),
            (RequestStatus.PENDING, RequestStatus.REJECTED),
            (RequestStatus.APPROVED, RequestStatus.UNASSIGNED),
        ],
    )
    def test_allowed_transitions(self, current: RequestStatus, target: RequestStatus) -> None:
        """Test the three lifecycle moves are allowed."""
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        ("current", "target"),
        [
            (RequestStatus.APPROVED, RequestStatus.PENDING),
            (RequestStatus.APPROVED, RequestStatus.REJECTED),
            (RequestStatus.REJECTED, RequestStatus.PENDING),
            (RequestStatus.REJECTED, RequestStatus.APPROVED),
            (RequestStatus.UNASSIGNED, RequestStatus.PENDING),
            (RequestStatus.UNASSIGNED, RequestStatus.APPROVED),
            (RequestStatus.PENDING, RequestStatus.UNASSIGNED),
            (RequestStatus.PENDING, RequestStatus.PENDING),
        ],
    )
    def test_forbidden_transitions(self, current: RequestStatus, target: RequestStatus) -> None:
        """Test decided requests never move back and no state skips ahead."""
        assert not can_transition(current, target)

    def test_accepts_plain_strings(self) -> None:
        """Test stored string statuses are understood."""
        assert can_transition("pending", "approved")
        assert not can_transition("rejected", "approved")

    def test_terminal_states(self) -> None:
        """Test rejected and unassigned are terminal."""
        assert is_terminal(RequestStatus.REJECTED)
        assert is_terminal(RequestStatus.UNASSIGNED)
        assert not is_terminal(RequestStatus.PENDING)
        assert not is_terminal(RequestStatus.APPROVED)

    def test_every_status_has_a_row(self) -> None:
        """Test the table covers every status."""
        assert set(TRANSITIONS) == set(RequestStatus)

    def test_ensure_transition_raises_with_details(self) -> None:
        """Test a forbidden move reports both statuses."""
        with pytest.raises(InvalidStateError) as exc_info:
            ensure_transition("approved", "pending", "req-1")

        assert exc_info.value.details == {
            "request_id": "req-1",
            "current_status": "approved",
            "target_status": "pending",
        }
        assert exc_info.value.code == "invalid_state"


class TestChangeStatus:
    """Tests for the compare-and-swap status write."""

    @pytest.mark.asyncio
    async def test_moves_status_and_sets_columns(self, db_session, catalog, now) -> None:
        """Test a matching expected status is swapped with extra values."""
        course = await catalog.course()
        request = EnrollmentRequest(student_id="s-1", course_id=course.id, request_date=now)
        db_session.add(request)
        await db_session.commit()

        await change_status(
            db_session,
            request.id,
            RequestStatus.PENDING,
            RequestStatus.REJECTED,
            admin_notes="No seats this term",
        )
        await db_session.commit()
        await db_session.refresh(request)

        assert request.status == "rejected"
        assert request.admin_notes == "No seats this term"

    @pytest.mark.asyncio
    async def test_stale_expected_status_is_rejected(self, db_session, catalog, now) -> None:
        """Test a concurrent writer's change makes the swap fail."""
        course = await catalog.course()
        request = EnrollmentRequest(student_id="s-1", course_id=course.id, request_date=now)
        db_session.add(request)
        await db_session.commit()

        # Another writer rejects the request behind our back
        await db_session.execute(
            update(EnrollmentRequest)
            .where(EnrollmentRequest.id == request.id)
            .values(status="rejected")
        )
        await db_session.commit()

        with pytest.raises(InvalidStateError):
            await change_status(
                db_session, request.id, RequestStatus.PENDING, RequestStatus.APPROVED
            )

    @pytest.mark.asyncio
    async def test_table_is_checked_before_writing(self, db_session) -> None:
        """Test a forbidden move fails without touching the database."""
        with pytest.raises(InvalidStateError):
            await change_status(
                db_session, "missing", RequestStatus.REJECTED, RequestStatus.PENDING
            )
