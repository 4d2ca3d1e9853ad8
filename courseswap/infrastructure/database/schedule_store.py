# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQL implementations of the schedule store and student directory.

Both read the profile, course, time slot and enrollment tables. Only
enrollments with status "enrolled" count towards a student's schedule.
"""

import logging

from sqlalchemy import Executable, Result, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from courseswap.domains.swap.models import ContactInfo, CourseSummary, TimeSlot
from courseswap.infrastructure.database.connection import DatabaseError
from courseswap.infrastructure.database.models import (
    Course,
    CourseTimeSlot,
    Enrollment,
    Profile,
)

logger = logging.getLogger(__name__)

ENROLLED = "enrolled"


def _to_slot(record: CourseTimeSlot) -> TimeSlot:
    return TimeSlot(
        course_id=record.course_id,
        day_of_week=record.day_of_week,
        start_time=record.start_time,
        end_time=record.end_time,
        location=record.location,
    )


class SqlScheduleStore:
    """Schedule store backed by the enrollments and time_slots tables.

    A failed read rolls the session back before raising, so later queries
    on the same session still run after the conflict checker skips the
    candidate.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _execute(self, statement: Executable, message: str) -> Result:
        try:
            return await self.db.execute(statement)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(message, e) from e

    async def get_enrolled_time_slots(self, student_id: str) -> list[TimeSlot]:
        result = await self._execute(
            select(CourseTimeSlot)
            .join(Enrollment, Enrollment.course_id == CourseTimeSlot.course_id)
            .where(
                Enrollment.student_id == student_id,
                Enrollment.enrollment_status == ENROLLED,
            )
            .order_by(CourseTimeSlot.day_of_week, CourseTimeSlot.start_time),
            "Failed to load enrolled time slots",
        )
        return [_to_slot(r) for r in result.scalars().all()]

    async def get_course_time_slots(self, course_id: str) -> list[TimeSlot]:
        course_count = await self._execute(
            select(func.count()).select_from(Course).where(Course.id == course_id),
            "Failed to load course",
        )
        if course_count.scalar_one() == 0:
            raise LookupError(f"Course not found: {course_id}")

        result = await self._execute(
            select(CourseTimeSlot)
            .where(CourseTimeSlot.course_id == course_id)
            .order_by(CourseTimeSlot.day_of_week, CourseTimeSlot.start_time),
            "Failed to load course time slots",
        )
        return [_to_slot(r) for r in result.scalars().all()]

    async def is_enrolled(self, student_id: str, course_id: str) -> bool:
        result = await self._execute(
            select(func.count())
            .select_from(Enrollment)
            .where(
                Enrollment.student_id == student_id,
                Enrollment.course_id == course_id,
                Enrollment.enrollment_status == ENROLLED,
            ),
            "Failed to check enrollment",
        )
        return result.scalar_one() > 0


class SqlStudentDirectory:
    """Student directory backed by the profiles and courses tables."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def get_contact_info(self, student_id: str) -> ContactInfo:
        try:
            profile = await self.db.get(Profile, student_id)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError("Failed to load profile", e) from e
        if profile is None:
            raise LookupError(f"Profile not found: {student_id}")
        return ContactInfo(
            name=profile.full_name,
            email=profile.email,
            student_id=profile.student_id,
        )

    async def get_course_summary(self, course_id: str) -> CourseSummary:
        try:
            course = await self.db.get(Course, course_id)
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError("Failed to load course", e) from e
        if course is None:
            raise LookupError(f"Course not found: {course_id}")
        return CourseSummary(id=course.id, code=course.course_code, title=course.course_title)
