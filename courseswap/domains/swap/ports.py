# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Interfaces the swap engine consumes from the surrounding application.

The schedule store and student directory are owned by the course catalog,
enrollment and profile features. The swap engine only reads from them.
SQL implementations live in courseswap.infrastructure.database.schedule_store.
"""

from typing import Protocol, runtime_checkable

from courseswap.domains.swap.models import ContactInfo, CourseSummary, TimeSlot


@runtime_checkable
class ScheduleStore(Protocol):
    """Read access to enrolled courses and their weekly time slots."""

    async def get_enrolled_time_slots(self, student_id: str) -> list[TimeSlot]:
        """Return every slot of every course the student is enrolled in."""
        ...

    async def get_course_time_slots(self, course_id: str) -> list[TimeSlot]:
        """Return the slots of one course.

        Raises:
            LookupError: If the course does not exist.
        """
        ...

    async def is_enrolled(self, student_id: str, course_id: str) -> bool:
        ...


@runtime_checkable
class StudentDirectory(Protocol):
    """Read access to student contact details and course labels."""

    async def get_contact_info(self, student_id: str) -> ContactInfo:
        """Raises LookupError if the student has no profile."""
        ...

    async def get_course_summary(self, course_id: str) -> CourseSummary:
        """Raises LookupError if the course does not exist."""
        ...
