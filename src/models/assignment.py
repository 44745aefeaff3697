# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Class assignment ledger models."""

from datetime import datetime

from pydantic import BaseModel, Field


class ClassAssignmentResponse(BaseModel):
    """A student's assigned class set, ordered by assignment time."""

    student_id: str
    class_ids: list[str] = Field(default_factory=list)
    updated_at: datetime | None = None


class AssignedClass(BaseModel):
    """An assigned class with display data."""

    id: str
    name: str
    level: str | None = None
    schedule: str | None = None
    course_id: str
    course_title: str
    assigned_at: datetime


class AvailableClass(BaseModel):
    """A class the student could be placed in."""

    id: str
    name: str
    level: str | None = None
    schedule: str | None = None
    course_id: str
    course_title: str
    capacity: int
    current_enrollment: int
    seats_left: int


class AssignedCountResponse(BaseModel):
    """Number of classes assigned to a student."""

    student_id: str
    count: int


class RemoveClassesRequest(BaseModel):
    """Remove classes from a student's set; an empty list removes all."""

    class_ids: list[str] = Field(default_factory=list)
