# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

This module provides fixtures used across all test types:
- A throwaway SQLite enrollment store per test
- Catalog seeding helpers
- Fixed clocks and settings for the workflow services
"""

import os

# Settings are cached on first use; the test environment must be in place
# before any src module is imported.
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-for-testing-only")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")

from collections.abc import AsyncGenerator
from datetime import datetime, timezone
from pathlib import Path

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from src.core.config.settings import DatabaseSettings, EnrollmentSettings
from src.domains.locks import KeyedLockRegistry
from src.infrastructure.database.connection import (
    create_engine_from_settings,
    create_sessionmaker,
)
from src.infrastructure.database.models import Base, Class, Course


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest.fixture
def db_url(tmp_path: Path) -> str:
    """Provide a file-backed SQLite URL unique to the test."""
    return f"sqlite+aiosqlite:///{tmp_path / 'courseflow.db'}"


@pytest_asyncio.fixture
async def db_engine(db_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Create an engine with every table in place."""
    engine = create_engine_from_settings(DatabaseSettings(DATABASE_URL=db_url))

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(db_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Provide the session factory used by the application."""
    return create_sessionmaker(db_engine)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create an async session for service tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


# =============================================================================
# Workflow Fixtures
# =============================================================================


@pytest.fixture
def now() -> datetime:
    """Provide a fixed clock reading."""
    return datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def enrollment_settings() -> EnrollmentSettings:
    """Provide default enrollment rules independent of the environment."""
    return EnrollmentSettings(
        validity_hours=48,
        require_registration_fee=False,
        default_installment_count=3,
        installment_interval_days=30,
        currency_minor_digits=2,
    )


@pytest.fixture
def locks() -> KeyedLockRegistry:
    """Provide a lock registry private to the test."""
    return KeyedLockRegistry()


class CatalogSeeder:
    """Inserts courses and classes directly, bypassing the workflow."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def course(
        self,
        title: str = "Spanish for Beginners",
        price_minor: int = 30000,
        levels: list[str] | None = None,
    ) -> Course:
        course = Course(title=title, price_minor=price_minor, levels=levels or [])
        self.session.add(course)
        await self.session.commit()
        return course

    async def class_(
        self,
        course: Course,
        name: str = "Morning Group",
        capacity: int = 10,
        current_enrollment: int = 0,
        level: str | None = None,
        schedule: str | None = "Mon/Wed 09:00",
    ) -> Class:
        class_ = Class(
            course_id=course.id,
            name=name,
            capacity=capacity,
            current_enrollment=current_enrollment,
            level=level,
            schedule=schedule,
        )
        self.session.add(class_)
        await self.session.commit()
        return class_


@pytest.fixture
def catalog(db_session: AsyncSession) -> CatalogSeeder:
    """Provide a catalog seeder bound to the test session."""
    return CatalogSeeder(db_session)


# =============================================================================
# Helper Fixtures
# =============================================================================


@pytest.fixture
def sample_student_id() -> str:
    """Provide a sample student ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440001"


@pytest.fixture
def other_student_id() -> str:
    """Provide a second student ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440002"


@pytest.fixture
def admin_id() -> str:
    """Provide a sample admin ID for testing."""
    return "550e8400-e29b-41d4-a716-446655440099"
