# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Custom exceptions for the swap domain.

This module defines the exception hierarchy for swap operations:
- SwapError: Base exception for all swap-related errors
- NotFoundError: Request or match missing, or in the wrong state
- ForbiddenError: Caller is not allowed to act on the record
- InvalidInputError: Malformed request input
- ConflictError: Duplicate request, schedule clash or lost update race
- DependencyError: Schedule store or registry unreachable
"""


class SwapError(Exception):
    """Base exception for all swap-related errors.

    Attributes:
        message: Human-readable error description.
        details: Optional dictionary with additional error context.
    """

    def __init__(self, message: str, details: dict | None = None):
        """Initialize swap error.

        Args:
            message: Human-readable error description.
            details: Optional dictionary with additional error context.
        """
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        """Return string representation with details if available."""
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class NotFoundError(SwapError):
    """Record missing, or not in the state the operation needs."""

    pass


class SwapRequestNotFoundError(NotFoundError):
    """Raised when a swap request is missing or not active."""

    def __init__(self, request_id: str, reason: str = "Swap request not found or inactive"):
        self.request_id = request_id
        super().__init__(reason, {"request_id": request_id})


class SwapMatchNotFoundError(NotFoundError):
    """Raised when a swap match is missing or already processed."""

    def __init__(self, match_id: str, reason: str = "Swap match not found or already processed"):
        self.match_id = match_id
        super().__init__(reason, {"match_id": match_id})


class ForbiddenError(SwapError):
    """Caller may not act on this record."""

    pass


class NotParticipantError(ForbiddenError):
    """Raised when the caller is neither student of a match."""

    def __init__(self, match_id: str, student_id: str):
        self.match_id = match_id
        self.student_id = student_id
        super().__init__(
            "Student not part of this match",
            {"match_id": match_id, "student_id": student_id},
        )


class NotRequestOwnerError(ForbiddenError):
    """Raised when the caller does not own the swap request."""

    def __init__(self, request_id: str, student_id: str):
        self.request_id = request_id
        self.student_id = student_id
        super().__init__(
            "Swap request belongs to another student",
            {"request_id": request_id, "student_id": student_id},
        )


class InvalidInputError(SwapError):
    """Request input failed validation."""

    pass


class MissingCourseError(InvalidInputError):
    """Raised when the offered or desired course id is missing."""

    def __init__(self) -> None:
        super().__init__("Both offered and desired course ids are required")


class SelfSwapError(InvalidInputError):
    """Raised when a student tries to swap a course for itself."""

    def __init__(self, course_id: str):
        super().__init__("Cannot swap a course for itself", {"course_id": course_id})


class InvalidPriorityError(InvalidInputError):
    """Raised when the priority is outside the configured bounds."""

    def __init__(self, priority: int, minimum: int, maximum: int):
        super().__init__(
            f"Priority must be between {minimum} and {maximum}",
            {"priority": priority},
        )


class NotEnrolledError(InvalidInputError):
    """Raised when the requester is not enrolled in the offered course."""

    def __init__(self, student_id: str, course_id: str):
        super().__init__(
            "You must be enrolled in the course you want to swap from",
            {"student_id": student_id, "course_id": course_id},
        )


class ConflictError(SwapError):
    """Operation clashes with existing state."""

    pass


class DuplicateSwapRequestError(ConflictError):
    """Raised when an active request for the same course pair exists."""

    def __init__(self, existing_request_id: str):
        self.existing_request_id = existing_request_id
        super().__init__(
            "You already have an active swap request for these courses",
            {"existing_request_id": existing_request_id},
        )


class ScheduleConflictError(ConflictError):
    """Raised when a swap would create overlapping class times."""

    pass


class StaleStateError(ConflictError):
    """Raised when a conditional update found the record already changed.

    Attributes:
        record_id: Id of the request or match whose precondition failed.
    """

    def __init__(self, record_id: str, expected: str):
        self.record_id = record_id
        self.expected = expected
        super().__init__(
            "Record changed concurrently",
            {"record_id": record_id, "expected": expected},
        )


class DependencyError(SwapError):
    """Raised when the schedule store or registry cannot be reached."""

    pass
