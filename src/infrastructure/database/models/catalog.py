# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Course catalog models.

Courses and their class sections are owned by the catalog. The workflow
reads them and only ever changes Class.current_enrollment, through guarded
conditional updates.
"""

from sqlalchemy import JSON, CheckConstraint, ForeignKey, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from src.infrastructure.database.models.base import Base, TimestampMixin, new_uuid


class Course(Base, TimestampMixin):
    """A course students apply to.

    Attributes:
        title: Display title.
        price_minor: Tuition price in currency minor units.
        levels: Levels offered, e.g. ["A1", "A2"]. Empty means any level.
    """

    __tablename__ = "courses"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    price_minor: Mapped[int] = mapped_column(Integer, nullable=False)
    levels: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    __table_args__ = (
        CheckConstraint("price_minor >= 0", name="ck_courses_price_non_negative"),
    )

    def offers_level(self, level: str) -> bool:
        """Check whether the course accepts a preferred level."""
        return not self.levels or level in self.levels


class Class(Base, TimestampMixin):
    """A concrete section of a course with bounded capacity."""

    __tablename__ = "classes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_uuid)
    course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    level: Mapped[str | None] = mapped_column(String(50), nullable=True)
    schedule: Mapped[str | None] = mapped_column(String(200), nullable=True)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    current_enrollment: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    __table_args__ = (
        CheckConstraint("capacity >= 0", name="ck_classes_capacity_non_negative"),
        CheckConstraint(
            "current_enrollment >= 0 AND current_enrollment <= capacity",
            name="ck_classes_enrollment_within_capacity",
        ),
    )

    @property
    def has_space(self) -> bool:
        """Check whether a seat is free."""
        return self.current_enrollment < self.capacity
