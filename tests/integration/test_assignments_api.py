# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for Assignments API endpoints."""

import pytest

from src.infrastructure.database.models import Course


class TestAssignmentsAPI:
    """Tests for the class assignment endpoints."""

    @pytest.mark.asyncio
    async def test_own_assignment(
        self, client, api_flow, seeded, sample_student_id, student_headers
    ):
        """Test a student reads their class set, classes and count."""
        await api_flow.approved_request_id()
        base = f"/api/v1/assignments/{sample_student_id}"

        assignment = await client.get(base, headers=student_headers)
        classes = await client.get(f"{base}/classes", headers=student_headers)
        count = await client.get(f"{base}/count", headers=student_headers)

        assert assignment.json()["class_ids"] == [seeded["class_id"]]
        assert [item["name"] for item in classes.json()] == ["Morning Group"]
        assert count.json() == {"student_id": sample_student_id, "count": 1}

    @pytest.mark.asyncio
    async def test_empty_assignment(self, client, sample_student_id, student_headers):
        """Test a student never placed has an empty set."""
        response = await client.get(
            f"/api/v1/assignments/{sample_student_id}", headers=student_headers
        )

        assert response.status_code == 200
        assert response.json()["class_ids"] == []

    @pytest.mark.asyncio
    async def test_other_student_forbidden(
        self, client, sample_student_id, other_student_headers
    ):
        """Test students cannot read another student's set."""
        response = await client.get(
            f"/api/v1/assignments/{sample_student_id}/count", headers=other_student_headers
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_available_classes(
        self, client, api_flow, catalog, db_session, seeded, sample_student_id, admin_headers
    ):
        """Test admins see the open classes the student could join."""
        await api_flow.approved_request_id()
        course = await db_session.get(Course, seeded["course_id"])
        extra = await catalog.class_(course, name="Afternoon Group", capacity=4)

        response = await client.get(
            f"/api/v1/assignments/{sample_student_id}/available", headers=admin_headers
        )

        assert [item["id"] for item in response.json()] == [extra.id]
        assert response.json()[0]["seats_left"] == 4

    @pytest.mark.asyncio
    async def test_remove_classes(
        self, client, api_flow, seeded, sample_student_id, admin_headers
    ):
        """Test removal empties the set and unassigns the request."""
        request_id = await api_flow.approved_request_id()

        response = await client.post(
            f"/api/v1/assignments/{sample_student_id}/remove",
            json={"class_ids": [seeded["class_id"]]},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["class_ids"] == []
        request = await client.get(f"/api/v1/enrollments/{request_id}", headers=admin_headers)
        assert request.json()["status"] == "unassigned"
        assert request.json()["assigned_class_id"] is None

    @pytest.mark.asyncio
    async def test_remove_without_record(self, client, other_student_id, admin_headers):
        """Test naming classes for a student never placed is 404."""
        response = await client.post(
            f"/api/v1/assignments/{other_student_id}/remove",
            json={"class_ids": ["some-class"]},
            headers=admin_headers,
        )

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_student_cannot_remove(self, client, sample_student_id, student_headers):
        """Test removal is admin only."""
        response = await client.post(
            f"/api/v1/assignments/{sample_student_id}/remove",
            json={"class_ids": []},
            headers=student_headers,
        )

        assert response.status_code == 403
