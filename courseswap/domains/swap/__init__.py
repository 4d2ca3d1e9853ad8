# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Course swap domain package.

This package provides the swap matching engine:
- Schedule conflict detection between two students' timetables
- Mutual match finding over the active request pool
- The match lifecycle (confirm, reject, contact exchange, completion)
- The batch sweep that expires and re-matches requests

SwapService, the facade used by routes and tasks, lives in
courseswap.domains.swap.service:

    from courseswap.domains.swap.service import SwapService

    service = SwapService(db)
    result = await service.create_swap_request(student_id, "cs101", "math201")
"""

from courseswap.domains.swap.exceptions import (
    ConflictError,
    DependencyError,
    DuplicateSwapRequestError,
    ForbiddenError,
    InvalidInputError,
    InvalidPriorityError,
    MissingCourseError,
    NotEnrolledError,
    NotFoundError,
    NotParticipantError,
    NotRequestOwnerError,
    ScheduleConflictError,
    SelfSwapError,
    StaleStateError,
    SwapError,
    SwapMatchNotFoundError,
    SwapRequestNotFoundError,
)
from courseswap.domains.swap.models import (
    CompletionResult,
    CompletionStatus,
    ConfirmationStatus,
    ConfirmResult,
    ContactDetails,
    ContactInfo,
    CourseSummary,
    CreateSwapResult,
    MatchParticipant,
    MatchResult,
    MatchStatus,
    RejectResult,
    Side,
    SwapDetails,
    SwapMatch,
    SwapRequest,
    SwapRequestStatus,
    SweepItemResult,
    SweepReport,
    TimeSlot,
)
from courseswap.domains.swap.ports import ScheduleStore, StudentDirectory
from courseswap.domains.swap.conflicts import (
    ConflictChecker,
    find_conflicting_pairs,
    has_conflict,
)
from courseswap.domains.swap.lifecycle import MatchLifecycle
from courseswap.domains.swap.matcher import MutualMatchFinder, rank_candidates
from courseswap.domains.swap.sweeper import SwapSweeper

__all__ = [
    # Components
    "ConflictChecker",
    "MatchLifecycle",
    "MutualMatchFinder",
    "SwapSweeper",
    "has_conflict",
    "find_conflicting_pairs",
    "rank_candidates",
    # Ports
    "ScheduleStore",
    "StudentDirectory",
    # Models
    "TimeSlot",
    "SwapRequest",
    "SwapRequestStatus",
    "SwapMatch",
    "MatchParticipant",
    "MatchStatus",
    "Side",
    "ContactInfo",
    "CourseSummary",
    "MatchResult",
    "CreateSwapResult",
    "ConfirmResult",
    "ConfirmationStatus",
    "RejectResult",
    "SwapDetails",
    "ContactDetails",
    "CompletionResult",
    "CompletionStatus",
    "SweepItemResult",
    "SweepReport",
    # Exceptions
    "SwapError",
    "NotFoundError",
    "SwapRequestNotFoundError",
    "SwapMatchNotFoundError",
    "ForbiddenError",
    "NotParticipantError",
    "NotRequestOwnerError",
    "InvalidInputError",
    "MissingCourseError",
    "SelfSwapError",
    "InvalidPriorityError",
    "NotEnrolledError",
    "ConflictError",
    "DuplicateSwapRequestError",
    "ScheduleConflictError",
    "StaleStateError",
    "DependencyError",
]
