# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Declarative base, shared column types and mixins for ORM models."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from src.utils.datetime import ensure_utc, utc_now


def new_uuid() -> str:
    """Generate a new opaque identifier."""
    return str(uuid4())


class UTCDateTime(TypeDecorator):
    """Timezone-aware UTC timestamp.

    Values are normalized to UTC on the way in and come back aware on the
    way out, including on backends (SQLite) that drop the offset.
    """

    impl = DateTime(timezone=True)
    cache_ok = True

    def process_bind_param(self, value: datetime | None, dialect) -> datetime | None:
        return ensure_utc(value)

    def process_result_value(self, value: datetime | None, dialect) -> datetime | None:
        return ensure_utc(value)


class Base(DeclarativeBase):
    """Declarative base for all CourseFlow tables."""

    type_annotation_map = {
        datetime: UTCDateTime,
    }


class TimestampMixin:
    """Adds created_at and updated_at columns maintained on write."""

    created_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
    )
    updated_at: Mapped[datetime] = mapped_column(
        UTCDateTime,
        nullable=False,
        default=utc_now,
        onupdate=utc_now,
    )
