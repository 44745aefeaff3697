# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest fixtures for API integration tests.

The full application runs in-process over httpx's ASGI transport, on the
same event loop as the SQLite test store.
"""

from collections.abc import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from fastapi import FastAPI

from src.api.app import create_app
from src.api.dependencies import get_db
from src.core.config.settings import get_settings
from src.domains.auth.jwt import JWTManager
from src.models.common import Role


@pytest.fixture
def app(session_factory) -> FastAPI:
    """Create the application bound to the test database."""
    app = create_app()

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    return app


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Create an async HTTP client for the application."""
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def jwt_manager() -> JWTManager:
    """Create a JWT manager sharing the application's secret."""
    return JWTManager(get_settings().jwt)


@pytest.fixture
def make_headers(jwt_manager: JWTManager) -> Callable[[str, Role], dict[str, str]]:
    """Build bearer headers for a user and role."""

    def make(user_id: str, role: Role) -> dict[str, str]:
        token = jwt_manager.create_access_token(user_id=user_id, role=role)
        return {"Authorization": f"Bearer {token}"}

    return make


@pytest.fixture
def student_headers(make_headers, sample_student_id) -> dict[str, str]:
    """Headers of the sample student."""
    return make_headers(sample_student_id, Role.STUDENT)


@pytest.fixture
def other_student_headers(make_headers, other_student_id) -> dict[str, str]:
    """Headers of a second student."""
    return make_headers(other_student_id, Role.STUDENT)


@pytest.fixture
def admin_headers(make_headers, admin_id) -> dict[str, str]:
    """Headers of an admin."""
    return make_headers(admin_id, Role.ADMIN)


@pytest_asyncio.fixture
async def seeded(catalog) -> dict[str, str]:
    """Seed a 300.00 course with two classes, one of them full."""
    course = await catalog.course(levels=["A1", "A2"])
    open_class = await catalog.class_(course, name="Morning Group", capacity=10, current_enrollment=9)
    full_class = await catalog.class_(course, name="Evening Group", capacity=1, current_enrollment=1)
    return {"course_id": course.id, "class_id": open_class.id, "full_class_id": full_class.id}


@pytest.fixture
def api_flow(client, student_headers, admin_headers, seeded):
    """Drive the common request and approval calls."""

    class Flow:
        async def create(self, headers=None, **body) -> httpx.Response:
            payload = {"course_id": seeded["course_id"], **body}
            return await client.post(
                "/api/v1/enrollments", json=payload, headers=headers or student_headers
            )

        async def approve(self, request_id: str, class_id: str | None = None) -> httpx.Response:
            return await client.post(
                f"/api/v1/enrollments/{request_id}/approve",
                json={"class_id": class_id or seeded["class_id"]},
                headers=admin_headers,
            )

        async def approved_request_id(self) -> str:
            created = await self.create()
            request_id = created.json()["id"]
            response = await self.approve(request_id)
            assert response.status_code == 200
            return request_id

    return Flow()
