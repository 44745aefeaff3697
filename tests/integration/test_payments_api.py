# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Integration tests for Payments API endpoints."""

import pytest


class TestPaymentsAPIRouting:
    """Tests for payments API routing."""

    def test_routes_registered(self, app):
        """Test that payment routes are registered."""
        routes = [route.path for route in app.routes]

        assert "/api/v1/payments/templates/{course_id}" in routes
        assert "/api/v1/payments/{request_id}" in routes
        assert "/api/v1/payments/{request_id}/record" in routes
        assert "/api/v1/payments/{request_id}/installments/{installment_id}/refund" in routes


class TestSchedule:
    """Tests for reading payment schedules."""

    @pytest.mark.asyncio
    async def test_owner_reads_schedule(self, client, api_flow, student_headers):
        """Test the student sees their installments and totals."""
        request_id = await api_flow.approved_request_id()

        response = await client.get(f"/api/v1/payments/{request_id}", headers=student_headers)

        assert response.status_code == 200
        body = response.json()
        assert body["total_due"] == "300.00"
        assert body["total_paid"] == "0.00"
        assert body["status"] == "pending"
        assert [item["status"] for item in body["installments"]] == ["Pending"] * 3

    @pytest.mark.asyncio
    async def test_other_student_forbidden(self, client, api_flow, other_student_headers):
        """Test students cannot read another student's schedule."""
        request_id = await api_flow.approved_request_id()

        response = await client.get(
            f"/api/v1/payments/{request_id}", headers=other_student_headers
        )

        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_unknown_request(self, client, admin_headers):
        """Test a missing request is 404."""
        response = await client.get("/api/v1/payments/no-such-request", headers=admin_headers)

        assert response.status_code == 404


class TestRecordPayment:
    """Tests for recording payments."""

    @pytest.mark.asyncio
    async def test_record_until_settled(self, client, api_flow, admin_headers):
        """Test three payments settle the schedule and a fourth is a conflict."""
        request_id = await api_flow.approved_request_id()
        url = f"/api/v1/payments/{request_id}/record"

        sequences = []
        for index in range(3):
            response = await client.post(
                url, json={"payment_reference": f"txn-{index}"}, headers=admin_headers
            )
            assert response.status_code == 200
            sequences.append(response.json()["sequence"])
        extra = await client.post(url, json={}, headers=admin_headers)

        assert sequences == [1, 2, 3]
        assert extra.status_code == 409
        assert extra.json()["detail"]["code"] == "already_satisfied"

        summary = await client.get(f"/api/v1/payments/{request_id}", headers=admin_headers)
        assert summary.json()["status"] == "completed"
        assert summary.json()["total_paid"] == "300.00"

    @pytest.mark.asyncio
    async def test_retry_with_same_reference(self, client, api_flow, admin_headers):
        """Test a retried payment returns the same installment."""
        request_id = await api_flow.approved_request_id()
        url = f"/api/v1/payments/{request_id}/record"

        first = await client.post(url, json={"payment_reference": "txn-1"}, headers=admin_headers)
        retry = await client.post(url, json={"payment_reference": "txn-1"}, headers=admin_headers)

        assert retry.json()["id"] == first.json()["id"]

    @pytest.mark.asyncio
    async def test_pending_request(self, client, api_flow, admin_headers):
        """Test payments on a pending request are a conflict."""
        created = await api_flow.create()

        response = await client.post(
            f"/api/v1/payments/{created.json()['id']}/record", json={}, headers=admin_headers
        )

        assert response.status_code == 409
        assert response.json()["detail"]["code"] == "invalid_state"

    @pytest.mark.asyncio
    async def test_student_cannot_record(self, client, api_flow, student_headers):
        """Test recording payments is admin only."""
        request_id = await api_flow.approved_request_id()

        response = await client.post(
            f"/api/v1/payments/{request_id}/record", json={}, headers=student_headers
        )

        assert response.status_code == 403


class TestRefund:
    """Tests for refunding installments."""

    @pytest.mark.asyncio
    async def test_refund(self, client, api_flow, admin_headers):
        """Test a paid installment is refunded with its reason."""
        request_id = await api_flow.approved_request_id()
        paid = await client.post(
            f"/api/v1/payments/{request_id}/record", json={}, headers=admin_headers
        )
        installment_id = paid.json()["id"]

        response = await client.post(
            f"/api/v1/payments/{request_id}/installments/{installment_id}/refund",
            json={"reason": "Dropped the course"},
            headers=admin_headers,
        )
        again = await client.post(
            f"/api/v1/payments/{request_id}/installments/{installment_id}/refund",
            json={"reason": "Dropped the course"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        assert response.json()["status"] == "Refunded"
        assert response.json()["refund_reason"] == "Dropped the course"
        assert again.status_code == 409

    @pytest.mark.asyncio
    async def test_refund_requires_reason(self, client, api_flow, admin_headers):
        """Test the reason is mandatory."""
        request_id = await api_flow.approved_request_id()

        response = await client.post(
            f"/api/v1/payments/{request_id}/installments/any/refund",
            json={},
            headers=admin_headers,
        )

        assert response.status_code == 422


class TestTemplates:
    """Tests for installment templates."""

    @pytest.mark.asyncio
    async def test_default_template(self, client, seeded, admin_headers):
        """Test a course without a template reports the equal split."""
        response = await client.get(
            f"/api/v1/payments/templates/{seeded['course_id']}", headers=admin_headers
        )

        assert response.status_code == 200
        assert response.json()["is_default"] is True
        assert len(response.json()["entries"]) == 3

    @pytest.mark.asyncio
    async def test_set_template_then_approve(self, client, api_flow, seeded, admin_headers):
        """Test approvals follow the stored template."""
        entries = [
            {"name": "Deposit", "amount_type": "percentage", "amount": "25", "due_offset_days": 0},
            {"name": "Balance", "amount_type": "percentage", "amount": "75", "due_offset_days": 30},
        ]
        stored = await client.put(
            f"/api/v1/payments/templates/{seeded['course_id']}",
            json={"entries": entries},
            headers=admin_headers,
        )
        assert stored.status_code == 200
        assert stored.json()["is_default"] is False

        request_id = await api_flow.approved_request_id()
        summary = await client.get(f"/api/v1/payments/{request_id}", headers=admin_headers)

        installments = summary.json()["installments"]
        assert [item["amount"] for item in installments] == ["75.00", "225.00"]
        assert installments[0]["status"] == "Unpaid"

    @pytest.mark.asyncio
    async def test_template_must_cover_price(self, client, seeded, admin_headers):
        """Test a template short of 100 percent is a 400."""
        response = await client.put(
            f"/api/v1/payments/templates/{seeded['course_id']}",
            json={
                "entries": [
                    {"name": "Half", "amount_type": "percentage", "amount": "50", "due_offset_days": 0}
                ]
            },
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["detail"]["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_templates_are_admin_only(self, client, seeded, student_headers):
        """Test students cannot read templates."""
        response = await client.get(
            f"/api/v1/payments/templates/{seeded['course_id']}", headers=student_headers
        )

        assert response.status_code == 403
