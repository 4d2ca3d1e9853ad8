# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Data models for the swap domain.

This module defines Pydantic models and enums for:
- Weekly time slots and their overlap arithmetic
- Swap requests and their lifecycle states
- Swap matches as a two-slot structure indexed by Side
- Results returned to the calling routes

The ORM records in courseswap.infrastructure.database.models are mapped
to these models by the registry, so services never touch SQLAlchemy rows.
"""

from datetime import datetime, time
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from courseswap.domains.swap.exceptions import NotParticipantError


class SwapRequestStatus(str, Enum):
    """Lifecycle states of a swap request.

    - ACTIVE: In the pool, eligible for matching
    - MATCHED: Paired by a pending or confirmed match
    - COMPLETED: Its match was completed by both students
    - CANCELLED: Withdrawn by the requester while active
    - EXPIRED: Still active when its expiry passed
    """

    ACTIVE = "active"
    MATCHED = "matched"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    EXPIRED = "expired"


class MatchStatus(str, Enum):
    """Lifecycle states of a swap match.

    pending -> confirmed -> completed, or pending -> rejected.
    """

    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        """Whether no transition leaves this state."""
        return self in (MatchStatus.REJECTED, MatchStatus.COMPLETED)


class Side(str, Enum):
    """Which half of a match a student occupies."""

    A = "a"
    B = "b"

    @property
    def other(self) -> "Side":
        """The opposite side."""
        return Side.B if self is Side.A else Side.A


class TimeSlot(BaseModel):
    """One weekly meeting of a course.

    The interval is half-open: [start_time, end_time). A slot that ends
    exactly when another starts does not overlap it.

    Attributes:
        course_id: Course this slot belongs to.
        day_of_week: 0 = Sunday .. 6 = Saturday.
        start_time: Start of the meeting (minute resolution).
        end_time: End of the meeting (minute resolution).
        location: Opaque room/building label.
    """

    model_config = ConfigDict(frozen=True)

    course_id: str
    day_of_week: int = Field(ge=0, le=6)
    start_time: time
    end_time: time
    location: str | None = None

    @field_validator("start_time", "end_time")
    @classmethod
    def truncate_to_minute(cls, value: time) -> time:
        return value.replace(second=0, microsecond=0)

    @model_validator(mode="after")
    def validate_interval(self) -> "TimeSlot":
        if self.end_minute <= self.start_minute:
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def start_minute(self) -> int:
        """Minutes since midnight at which the slot starts."""
        return self.start_time.hour * 60 + self.start_time.minute

    @property
    def end_minute(self) -> int:
        """Minutes since midnight at which the slot ends."""
        return self.end_time.hour * 60 + self.end_time.minute

    def overlaps(self, other: "TimeSlot") -> bool:
        """Check overlap on the same weekday under half-open semantics."""
        if self.day_of_week != other.day_of_week:
            return False
        return other.start_minute < self.end_minute and other.end_minute > self.start_minute


class ContactInfo(BaseModel):
    """Contact details released after both students confirm."""

    name: str
    email: str
    student_id: str | None = None


class CourseSummary(BaseModel):
    """Course label used in swap descriptions."""

    id: str
    code: str
    title: str


class SwapRequest(BaseModel):
    """A student's standing offer to trade one course for another.

    Attributes:
        id: Request identifier.
        requester_id: Student who created the request.
        offered_course_id: Course the requester holds and gives up.
        desired_course_id: Course the requester wants.
        priority: Higher is more urgent.
        notes: Free-text note.
        status: Lifecycle state.
        created_at: Creation time.
        updated_at: Last modification time.
        expires_at: When an unmatched request lapses.
    """

    model_config = ConfigDict(from_attributes=True)

    id: str
    requester_id: str
    offered_course_id: str
    desired_course_id: str
    priority: int = 1
    notes: str | None = None
    status: SwapRequestStatus = SwapRequestStatus.ACTIVE
    created_at: datetime
    updated_at: datetime | None = None
    expires_at: datetime

    @model_validator(mode="after")
    def validate_distinct_courses(self) -> "SwapRequest":
        if self.offered_course_id == self.desired_course_id:
            raise ValueError("offered_course_id and desired_course_id must differ")
        return self

    def is_mirror_of(self, other: "SwapRequest") -> bool:
        """Check whether other offers exactly what this wants and vice versa."""
        return (
            self.offered_course_id == other.desired_course_id
            and self.desired_course_id == other.offered_course_id
        )


class MatchParticipant(BaseModel):
    """One side of a swap match.

    Attributes:
        student_id: The participating student.
        request_id: The student's originating swap request.
        course_id: The course this student gives up.
        confirmed: Whether the student agreed to share contact details.
        confirmed_at: When the student first confirmed.
        completed: Whether the student reported the swap as done.
        completed_at: When the student first reported completion.
    """

    student_id: str
    request_id: str
    course_id: str
    confirmed: bool = False
    confirmed_at: datetime | None = None
    completed: bool = False
    completed_at: datetime | None = None


class SwapMatch(BaseModel):
    """A pairing of two mirror requests awaiting both students' consent.

    Student A receives b.course_id and student B receives a.course_id.
    """

    id: str
    status: MatchStatus = MatchStatus.PENDING
    a: MatchParticipant
    b: MatchParticipant
    matched_at: datetime
    contact_shared_at: datetime | None = None
    completed_at: datetime | None = None

    def participant(self, side: Side) -> MatchParticipant:
        return self.a if side is Side.A else self.b

    def side_of(self, student_id: str) -> Side | None:
        """Resolve which side the student occupies, if any."""
        if self.a.student_id == student_id:
            return Side.A
        if self.b.student_id == student_id:
            return Side.B
        return None

    def require_side(self, student_id: str) -> Side:
        """Resolve the caller's side or raise NotParticipantError."""
        side = self.side_of(student_id)
        if side is None:
            raise NotParticipantError(self.id, student_id)
        return side

    @property
    def request_ids(self) -> tuple[str, str]:
        return (self.a.request_id, self.b.request_id)


class MatchResult(BaseModel):
    """Outcome of one match attempt for a request."""

    matched: bool
    match: SwapMatch | None = None
    matched_with: SwapRequest | None = None
    error: str | None = None


class CreateSwapResult(BaseModel):
    """Returned by request creation: the stored request and its match attempt."""

    request: SwapRequest
    match_result: MatchResult


class ConfirmationStatus(str, Enum):
    WAITING_FOR_OTHER_CONFIRMATION = "waiting_for_other_confirmation"
    CONFIRMED = "confirmed"


class ConfirmResult(BaseModel):
    """Result of a confirmation call.

    contact_info is only present once both students confirmed.
    """

    status: ConfirmationStatus
    message: str
    contact_info: ContactInfo | None = None


class RejectResult(BaseModel):
    ok: bool = True
    message: str = "Swap match rejected successfully"


class SwapDetails(BaseModel):
    """Which course each side gives and receives, from the caller's view."""

    your_course: CourseSummary
    their_course: CourseSummary


class ContactDetails(BaseModel):
    """Counterpart details for a confirmed match."""

    match_id: str
    contact_info: ContactInfo
    swap_details: SwapDetails
    contact_shared_at: datetime | None = None
    instructions: str = (
        "Contact this student to arrange the course swap through your "
        "school's enrollment system."
    )


class CompletionStatus(str, Enum):
    WAITING_FOR_OTHER_COMPLETION = "waiting_for_other_completion"
    COMPLETED = "completed"


class CompletionResult(BaseModel):
    status: CompletionStatus
    message: str


class SweepItemResult(BaseModel):
    """Per-request outcome of a sweep."""

    request_id: str
    matched: bool
    match_id: str | None = None
    error: str | None = None


class SweepReport(BaseModel):
    """Summary of one sweep run."""

    started_at: datetime
    finished_at: datetime | None = None
    expired_request_ids: list[str] = Field(default_factory=list)
    results: list[SweepItemResult] = Field(default_factory=list)
    expiry_errors: list[SweepItemResult] = Field(default_factory=list)

    @property
    def matched_count(self) -> int:
        return sum(1 for r in self.results if r.matched)

    @property
    def error_count(self) -> int:
        return len(self.expiry_errors) + sum(1 for r in self.results if r.error is not None)

    def to_summary(self) -> dict[str, Any]:
        return {
            "processed": len(self.results),
            "matched": self.matched_count,
            "errors": self.error_count,
            "expired": len(self.expired_request_ids),
        }
