# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Swap match lifecycle.

State machine of a match:

    pending --both confirm--> confirmed --both complete--> completed
    pending --either rejects--> rejected

Every transition is a conditional registry update. A student's call only
ever writes that student's own flag, selected through Side, and promotions
to confirmed/completed apply at most once per match. Contact details are
released only while the match is confirmed and only to its participants.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from courseswap.domains.swap.exceptions import (
    DependencyError,
    InvalidInputError,
    SwapMatchNotFoundError,
)
from courseswap.domains.swap.models import (
    CompletionResult,
    CompletionStatus,
    ConfirmationStatus,
    ConfirmResult,
    ContactDetails,
    ContactInfo,
    MatchStatus,
    RejectResult,
    Side,
    SwapDetails,
    SwapMatch,
    SwapRequest,
)
from courseswap.domains.swap.ports import StudentDirectory
from courseswap.infrastructure.events import EventBus, EventTypes, get_event_bus
from courseswap.utils.datetime import format_iso, utc_now

if TYPE_CHECKING:
    from courseswap.infrastructure.database.registry import SwapRegistry

logger = logging.getLogger(__name__)


class MatchLifecycle:
    """Drives swap matches through confirmation, rejection and completion.

    Attributes:
        registry: Swap request/match registry.
        directory: Source of contact details and course labels.
        event_bus: Bus receiving lifecycle events.
    """

    def __init__(
        self,
        registry: SwapRegistry,
        directory: StudentDirectory,
        event_bus: EventBus | None = None,
    ) -> None:
        self.registry = registry
        self.directory = directory
        self.event_bus = event_bus or get_event_bus()

    async def create(self, request_a: SwapRequest, request_b: SwapRequest) -> SwapMatch:
        """Pair two mirror requests in a new pending match.

        Both requests move active -> matched together with the insert.

        Raises:
            InvalidInputError: If the requests are not mirrors of each other.
            StaleStateError: If either request stopped being active.
        """
        if not request_a.is_mirror_of(request_b):
            raise InvalidInputError(
                "Requests are not mirror swaps",
                {"request_a_id": request_a.id, "request_b_id": request_b.id},
            )

        match = await self.registry.create_match(request_a, request_b)

        logger.info(
            "Created swap match %s: %s (%s) <-> %s (%s)",
            match.id,
            match.a.student_id,
            match.a.request_id,
            match.b.student_id,
            match.b.request_id,
        )
        await self._publish(
            EventTypes.SwapMatch.CREATED,
            match,
            [match.a.student_id, match.b.student_id],
        )
        return match

    async def confirm(self, match_id: str, student_id: str) -> ConfirmResult:
        """Record the student's agreement to exchange contact details.

        Repeating the call as the same student changes nothing. The call
        that completes the pair of confirmations promotes the match and
        is the only one that publishes the confirmed event.

        Returns:
            ConfirmResult with the counterpart's contact info once both
            students have confirmed.

        Raises:
            SwapMatchNotFoundError: If the match is missing or not pending.
            NotParticipantError: If the student is not part of the match.
        """
        match, side = await self._load(match_id, student_id, MatchStatus.PENDING)
        now = utc_now()

        if await self.registry.record_confirmation(match_id, side, now):
            logger.info("Student %s confirmed swap match %s", student_id, match_id)
            await self._publish(
                EventTypes.SwapMatch.CONFIRMATION_RECORDED,
                match,
                [match.participant(side.other).student_id],
                side=side.value,
            )

        if await self.registry.promote_to_confirmed(match_id, now):
            logger.info("Swap match %s confirmed by both students", match_id)
            await self._publish(
                EventTypes.SwapMatch.CONFIRMED,
                match,
                [match.a.student_id, match.b.student_id],
                contact_shared_at=format_iso(now),
            )

        current = await self.registry.get_match(match_id)
        if current is None or current.status is MatchStatus.REJECTED:
            raise SwapMatchNotFoundError(match_id)

        if current.status is MatchStatus.PENDING:
            return ConfirmResult(
                status=ConfirmationStatus.WAITING_FOR_OTHER_CONFIRMATION,
                message="Confirmation recorded. Waiting for the other student to confirm.",
            )

        contact_info = await self._contact_of(current.participant(side.other).student_id)
        return ConfirmResult(
            status=ConfirmationStatus.CONFIRMED,
            message="Both students confirmed! Contact information is now available.",
            contact_info=contact_info,
        )

    async def reject(self, match_id: str, student_id: str) -> RejectResult:
        """Reject a pending match and return both requests to the pool.

        Raises:
            SwapMatchNotFoundError: If the match is missing or not pending.
            NotParticipantError: If the student is not part of the match.
        """
        match, side = await self._load(match_id, student_id, MatchStatus.PENDING)

        if not await self.registry.reject_match(match):
            raise SwapMatchNotFoundError(match_id)

        logger.info("Student %s rejected swap match %s", student_id, match_id)
        await self._publish(
            EventTypes.SwapMatch.REJECTED,
            match,
            [match.participant(side.other).student_id],
            rejected_by=side.value,
        )
        return RejectResult()

    async def get_contact_info(self, match_id: str, student_id: str) -> ContactDetails:
        """Return the counterpart's contact details and the swap summary.

        Raises:
            SwapMatchNotFoundError: If the match is missing or not confirmed.
            NotParticipantError: If the student is not part of the match.
        """
        match, side = await self._load(
            match_id,
            student_id,
            MatchStatus.CONFIRMED,
            reason="Swap match not found or not confirmed",
        )
        mine = match.participant(side)
        theirs = match.participant(side.other)

        contact_info = await self._contact_of(theirs.student_id)
        try:
            your_course = await self.directory.get_course_summary(mine.course_id)
            their_course = await self.directory.get_course_summary(theirs.course_id)
        except LookupError as e:
            raise DependencyError("Course details unavailable", {"match_id": match_id}) from e

        return ContactDetails(
            match_id=match.id,
            contact_info=contact_info,
            swap_details=SwapDetails(your_course=your_course, their_course=their_course),
            contact_shared_at=match.contact_shared_at,
        )

    async def mark_completed(self, match_id: str, student_id: str) -> CompletionResult:
        """Record that the student finished the swap in the enrollment system.

        When both students have reported completion the match becomes
        completed and both originating requests move to completed.

        Raises:
            SwapMatchNotFoundError: If the match is missing or not confirmed.
            NotParticipantError: If the student is not part of the match.
        """
        match, side = await self._load(
            match_id,
            student_id,
            MatchStatus.CONFIRMED,
            reason="Swap match not found or not confirmed",
        )
        now = utc_now()

        if await self.registry.record_completion(match_id, side, now):
            logger.info("Student %s marked swap match %s completed", student_id, match_id)
            await self._publish(
                EventTypes.SwapMatch.COMPLETION_RECORDED,
                match,
                [match.participant(side.other).student_id],
                side=side.value,
            )

        if await self.registry.promote_to_completed(match, now):
            logger.info("Swap match %s completed by both students", match_id)
            await self._publish(
                EventTypes.SwapMatch.COMPLETED,
                match,
                [match.a.student_id, match.b.student_id],
                completed_at=format_iso(now),
            )

        current = await self.registry.get_match(match_id)
        if current is not None and current.status is MatchStatus.COMPLETED:
            return CompletionResult(
                status=CompletionStatus.COMPLETED,
                message="Swap marked as completed by both students!",
            )
        return CompletionResult(
            status=CompletionStatus.WAITING_FOR_OTHER_COMPLETION,
            message="Completion recorded. Waiting for the other student to confirm completion.",
        )

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _load(
        self,
        match_id: str,
        student_id: str,
        expected: MatchStatus,
        reason: str = "Swap match not found or already processed",
    ) -> tuple[SwapMatch, Side]:
        match = await self.registry.get_match(match_id)
        if match is None:
            raise SwapMatchNotFoundError(match_id, "Swap match not found")
        side = match.require_side(student_id)
        if match.status is not expected:
            raise SwapMatchNotFoundError(match_id, reason)
        return match, side

    async def _contact_of(self, student_id: str) -> ContactInfo:
        try:
            return await self.directory.get_contact_info(student_id)
        except LookupError as e:
            raise DependencyError(
                "Contact information unavailable",
                {"student_id": student_id},
            ) from e

    async def _publish(
        self,
        event_type: str,
        match: SwapMatch,
        recipients: list[str],
        **extra: Any,
    ) -> None:
        payload = {
            "match_id": match.id,
            "request_ids": list(match.request_ids),
            **extra,
        }
        await self.event_bus.publish(event_type, payload, recipients=recipients)
