# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for Enrollments API endpoints."""

import pytest


class TestEnrollmentsAPIRouting:
    """Tests for enrollments API routing."""

    def test_routes_registered(self, app):
        """Test that enrollment routes are registered."""
        routes = [route.path for route in app.routes]

        assert "/api/v1/enrollments" in routes
        assert "/api/v1/enrollments/mine" in routes
        assert "/api/v1/enrollments/statistics" in routes
        assert "/api/v1/enrollments/status/{course_id}" in routes
        assert "/api/v1/enrollments/{request_id}" in routes
        assert "/api/v1/enrollments/{request_id}/approve" in routes
        assert "/api/v1/enrollments/{request_id}/reject" in routes
        assert "/api/v1/enrollments/{request_id}/registration-fee" in routes


class TestCreateEnrollment:
    """Tests for POST /enrollments."""

    @pytest.mark.asyncio
    async def test_create_success(self, api_flow, seeded, sample_student_id):
        """Test a student submits a pending request."""
        response = await api_flow.create(preferred_level="A1")

        assert response.status_code == 201
        body = response.json()
        assert body["status"] == "pending"
        assert body["student_id"] == sample_student_id
        assert body["course_id"] == seeded["course_id"]
        assert body["preferred_level"] == "A1"

    @pytest.mark.asyncio
    async def test_requires_authentication(self, client, seeded):
        """Test anonymous callers get 401."""
        response = await client.post(
            "/api/v1/enrollments", json={"course_id": seeded["course_id"]}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_token(self, client, seeded):
        """Test a garbage token counts as anonymous."""
        response = await client.post(
            "/api/v1/enrollments",
            json={"course_id": seeded["course_id"]},
            headers={"Authorization": "Bearer not-a-jwt"},
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_admin_cannot_apply(self, api_flow, admin_headers):
        """Test only students submit requests."""
        response = await api_flow.create(headers=admin_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_duplicate_request(self, api_flow):
        """Test a second open request is a conflict."""
        first = await api_flow.create()

        response = await api_flow.create()

        assert response.status_code == 409
        detail = response.json()["detail"]
        assert detail["code"] == "duplicate_request"
        assert detail["details"]["request_id"] == first.json()["id"]

    @pytest.mark.asyncio
    async def test_unknown_course(self, client, student_headers):
        """Test requests for a missing course are 404."""
        response = await client.post(
            "/api/v1/enrollments", json={"course_id": "no-such-course"}, headers=student_headers
        )

        assert response.status_code == 404
        assert response.json()["detail"]["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_level_not_offered(self, api_flow):
        """Test workflow validation errors map to 400."""
        response = await api_flow.create(preferred_level="C2")

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_malformed_body(self, client, student_headers):
        """Test request bodies are validated."""
        response = await client.post("/api/v1/enrollments", json={}, headers=student_headers)

        assert response.status_code == 422


class TestDecisions:
    """Tests for approve, reject, fee and delete."""

    @pytest.mark.asyncio
    async def test_approve(self, api_flow, seeded):
        """Test an admin approves a request into a class."""
        created = await api_flow.create()

        response = await api_flow.approve(created.json()["id"])

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "approved"
        assert body["assigned_class_id"] == seeded["class_id"]
        assert body["approval_date"] is not None

    @pytest.mark.asyncio
    async def test_approve_into_full_class(self, api_flow, seeded):
        """Test a full class is a conflict."""
        created = await api_flow.create()

        response = await api_flow.approve(created.json()["id"], seeded["full_class_id"])

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "capacity_exceeded"

    @pytest.mark.asyncio
    async def test_approve_twice(self, api_flow):
        """Test approving a decided request is a conflict."""
        request_id = await api_flow.approved_request_id()

        response = await api_flow.approve(request_id)

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "invalid_state"

    @pytest.mark.asyncio
    async def test_student_cannot_approve(self, client, api_flow, seeded, student_headers):
        """Test approval is admin only."""
        created = await api_flow.create()

        response = await client.post(
            f"/api/v1/enrollments/{created.json()['id']}/approve",
            json={"class_id": seeded["class_id"]},
            headers=student_headers,
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_approve_unknown_request(self, api_flow):
        """Test approving a missing request is 404."""
        response = await api_flow.approve("no-such-request")

        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_notes_too_long(self, client, api_flow, admin_headers):
        """Test admin notes over 1000 characters are refused."""
        created = await api_flow.create()

        response = await client.post(
            f"/api/v1/enrollments/{created.json()['id']}/reject",
            json={"admin_notes": "x" * 1001},
            headers=admin_headers,
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_reject(self, client, api_flow, admin_headers):
        """Test an admin rejects a request."""
        created = await api_flow.create()

        response = await client.post(
            f"/api/v1/enrollments/{created.json()['id']}/reject",
            json={"admin_notes": "Prerequisites missing"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "rejected"
        assert response.json()["admin_notes"] == "Prerequisites missing"

    @pytest.mark.asyncio
    async def test_registration_fee(self, client, api_flow, admin_headers):
        """Test recording the fee, then recording it again."""
        created = await api_flow.create()
        url = f"/api/v1/enrollments/{created.json()['id']}/registration-fee"

        first = await client.post(url, headers=admin_headers)
        second = await client.post(url, headers=admin_headers)

        assert first.status_code == 200
        assert first.json()["registration_fee_paid"] is True
        assert second.status_code == 409
        assert second.json()["detail"]["code"] == "already_satisfied"

    @pytest.mark.asyncio
    async def test_delete_approved(self, client, api_flow, seeded, admin_headers):
        """Test deletion returns a receipt and frees the seat."""
        request_id = await api_flow.approved_request_id()

        response = await client.delete(f"/api/v1/enrollments/{request_id}", headers=admin_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["request_id"] == request_id
        assert body["released_class_id"] == seeded["class_id"]
        assert body["removed_installments"] == 3

        missing = await client.get(f"/api/v1/enrollments/{request_id}", headers=admin_headers)
        assert missing.status_code == 404


class TestReads:
    """Tests for listing and reading requests."""

    @pytest.mark.asyncio
    async def test_get_own_request(self, client, api_flow, student_headers):
        """Test a student reads their request with its installments."""
        request_id = await api_flow.approved_request_id()

        response = await client.get(f"/api/v1/enrollments/{request_id}", headers=student_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["course"]["price"] == "300.00"
        assert body["assigned_class"]["name"] == "Morning Group"
        assert [item["amount"] for item in body["installments"]] == ["100.00"] * 3

    @pytest.mark.asyncio
    async def test_other_student_forbidden(self, client, api_flow, other_student_headers):
        """Test students cannot read each other's requests."""
        created = await api_flow.create()

        response = await client.get(
            f"/api/v1/enrollments/{created.json()['id']}", headers=other_student_headers
        )

        assert response.status_code == 403
        assert response.json()["detail"]["code"] == "forbidden"

    @pytest.mark.asyncio
    async def test_list_for_admin(self, client, api_flow, admin_headers, other_student_headers):
        """Test admins list and filter requests."""
        first = await api_flow.create()
        await api_flow.create(headers=other_student_headers)
        await api_flow.approve(first.json()["id"])

        everything = await client.get("/api/v1/enrollments", headers=admin_headers)
        approved = await client.get(
            "/api/v1/enrollments", params={"status": "approved"}, headers=admin_headers
        )

        assert everything.status_code == 200
        assert everything.json()["total"] == 2
        assert [item["id"] for item in approved.json()["items"]] == [first.json()["id"]]

    @pytest.mark.asyncio
    async def test_list_is_admin_only(self, client, student_headers):
        """Test students cannot list every request."""
        response = await client.get("/api/v1/enrollments", headers=student_headers)

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_status_filter(self, client, admin_headers):
        """Test the status filter only takes known statuses."""
        response = await client.get(
            "/api/v1/enrollments", params={"status": "archived"}, headers=admin_headers
        )

        assert response.status_code == 422

    @pytest.mark.asyncio
    async def test_mine(self, client, api_flow, student_headers, other_student_headers):
        """Test students list only their own requests."""
        mine = await api_flow.create()
        await api_flow.create(headers=other_student_headers)

        response = await client.get("/api/v1/enrollments/mine", headers=student_headers)

        assert [item["id"] for item in response.json()["items"]] == [mine.json()["id"]]

    @pytest.mark.asyncio
    async def test_statistics(self, client, api_flow, admin_headers, other_student_headers):
        """Test admins read counts per status."""
        await api_flow.approved_request_id()
        await api_flow.create(headers=other_student_headers)

        response = await client.get("/api/v1/enrollments/statistics", headers=admin_headers)

        assert response.json() == {
            "total": 2,
            "pending": 1,
            "approved": 1,
            "rejected": 0,
            "unassigned": 0,
        }

    @pytest.mark.asyncio
    async def test_course_status(self, client, api_flow, seeded, student_headers):
        """Test a student's standing before and after applying."""
        url = f"/api/v1/enrollments/status/{seeded['course_id']}"

        before = await client.get(url, headers=student_headers)
        await api_flow.create()
        after = await client.get(url, headers=student_headers)

        assert before.json()["status"] == "not_enrolled"
        assert after.json()["status"] == "pending"
