# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""SQLAlchemy ORM models for CourseSwap.

Swap tables:
- swap_requests: One row per (requester, offered course, desired course) offer
- swap_matches: Pairings of two mirror requests, one column set per side

Tables owned by the surrounding application and read by the swap engine:
- profiles, courses, time_slots, enrollments

Identifiers are UUID strings so the same models run on PostgreSQL and on
the SQLite database used by the unit tests.
"""

from datetime import datetime, time
from uuid import uuid4

from sqlalchemy import (
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from courseswap.utils.datetime import utc_now


def _new_id() -> str:
    return str(uuid4())


class Base(DeclarativeBase):
    """Declarative base for all CourseSwap tables."""

    pass


class TimestampMixin:
    """Adds created_at / updated_at columns maintained on the Python side."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        onupdate=utc_now,
        nullable=False,
    )


class Profile(TimestampMixin, Base):
    """Student profile. The swap engine only reads contact fields."""

    __tablename__ = "profiles"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    # School-issued student number, shown to the counterpart after confirmation
    student_id: Mapped[str | None] = mapped_column(String(50), nullable=True, index=True)


class Course(TimestampMixin, Base):
    """Catalog course."""

    __tablename__ = "courses"
    __table_args__ = (UniqueConstraint("course_code", "semester", "year"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    course_code: Mapped[str] = mapped_column(String(20), nullable=False)
    course_title: Mapped[str] = mapped_column(String(255), nullable=False)
    department: Mapped[str | None] = mapped_column(String(100), nullable=True)
    semester: Mapped[str | None] = mapped_column(String(20), nullable=True)
    year: Mapped[int | None] = mapped_column(Integer, nullable=True)

    time_slots: Mapped[list["CourseTimeSlot"]] = relationship(
        back_populates="course",
        cascade="all, delete-orphan",
    )


class CourseTimeSlot(Base):
    """Weekly meeting of a course. day_of_week: 0 = Sunday .. 6 = Saturday."""

    __tablename__ = "time_slots"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)

    course: Mapped[Course] = relationship(back_populates="time_slots")


class Enrollment(Base):
    """A student's enrollment in a course."""

    __tablename__ = "enrollments"
    __table_args__ = (UniqueConstraint("student_id", "course_id"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    student_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    # enrolled, dropped, waitlist
    enrollment_status: Mapped[str] = mapped_column(String(20), default="enrolled", nullable=False)
    enrolled_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )


class SwapRequestRecord(TimestampMixin, Base):
    """A student's offer to trade offered_course for desired_course."""

    __tablename__ = "swap_requests"
    __table_args__ = (
        Index("idx_swap_requests_courses", "from_course_id", "desired_course_id"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    requester_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    offered_course_id: Mapped[str] = mapped_column(
        "from_course_id",
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
    )
    desired_course_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
    )
    # active, matched, completed, cancelled, expired
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False, index=True)
    priority: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class SwapMatchRecord(Base):
    """Pairing of two mirror swap requests.

    Every per-student field exists once per side (a / b) so each student's
    flags can be written with a conditional update that never touches the
    other student's columns.
    """

    __tablename__ = "swap_matches"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_new_id)
    request_a_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("swap_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    request_b_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("swap_requests.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    student_a_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    student_b_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("profiles.id", ondelete="CASCADE"),
        nullable=False,
    )
    # course_a is what student A gives, course_b what student B gives
    course_a_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
    )
    course_b_id: Mapped[str] = mapped_column(
        String(36),
        ForeignKey("courses.id", ondelete="CASCADE"),
        nullable=False,
    )
    # pending, confirmed, rejected, completed
    match_status: Mapped[str] = mapped_column(
        String(20),
        default="pending",
        nullable=False,
        index=True,
    )

    student_a_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    student_b_confirmed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    student_a_confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    student_b_confirmed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    student_a_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    student_b_completed: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    student_a_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    student_b_completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    matched_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utc_now,
        nullable=False,
    )
    contact_shared_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
