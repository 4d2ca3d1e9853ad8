# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Mutual match finder.

Pairs a swap request with an active mirror request from another student:
the candidate offers exactly the course the request desires and desires
exactly the course the request offers. Candidates that would give either
student overlapping classes, or that already sit in a pending match, are
dropped. The survivors are ranked by priority (highest first), then by
age (oldest first), and the first one still claimable becomes the match.

Matching is greedy and pairwise; there is no global optimisation.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from courseswap.domains.swap.conflicts import ConflictChecker
from courseswap.domains.swap.exceptions import StaleStateError, SwapRequestNotFoundError
from courseswap.domains.swap.lifecycle import MatchLifecycle
from courseswap.domains.swap.models import MatchResult, SwapRequest, SwapRequestStatus

if TYPE_CHECKING:
    from courseswap.infrastructure.database.registry import SwapRegistry

logger = logging.getLogger(__name__)


def rank_candidates(candidates: Iterable[SwapRequest]) -> list[SwapRequest]:
    """Order candidates by priority descending, then creation time ascending.

    The request id breaks remaining ties so the order is deterministic.
    """
    return sorted(candidates, key=lambda r: (-r.priority, r.created_at, r.id))


class MutualMatchFinder:
    """Finds and claims mutual swap partners for a request.

    Attributes:
        registry: Swap request/match registry.
        conflict_checker: Schedule safety check for a candidate pair.
        lifecycle: Creates the match once a partner is chosen.
    """

    def __init__(
        self,
        registry: SwapRegistry,
        conflict_checker: ConflictChecker,
        lifecycle: MatchLifecycle,
    ) -> None:
        self.registry = registry
        self.conflict_checker = conflict_checker
        self.lifecycle = lifecycle

    async def find_mutual_matches(self, request_id: str) -> list[SwapRequest]:
        """List eligible partners for an active request, unranked.

        Raises:
            SwapRequestNotFoundError: If the request is missing or not active.
        """
        request = await self._load_active(request_id)
        return await self._eligible_candidates(request)

    def rank_candidates(self, candidates: Iterable[SwapRequest]) -> list[SwapRequest]:
        """Order candidates best first. See the module-level rank_candidates()."""
        return rank_candidates(candidates)

    async def process_swap_request(self, request_id: str) -> MatchResult:
        """Try to match a request with its best eligible partner.

        Candidates are tried in rank order. A candidate claimed by a
        concurrent match is skipped in favour of the next one. If the
        request itself was claimed or withdrawn meanwhile, nothing is
        created.

        Returns:
            MatchResult with the new pending match, or matched=False.

        Raises:
            SwapRequestNotFoundError: If the request is missing or not active.
        """
        request = await self._load_active(request_id)
        candidates = await self._eligible_candidates(request)

        if not candidates:
            logger.debug("No mutual match for swap request %s", request_id)
            return MatchResult(matched=False)

        for candidate in self.rank_candidates(candidates):
            try:
                match = await self.lifecycle.create(request, candidate)
            except StaleStateError as e:
                if e.record_id == request.id:
                    logger.info(
                        "Swap request %s changed while matching, skipping",
                        request_id,
                    )
                    return MatchResult(matched=False)
                logger.info(
                    "Candidate %s for swap request %s was claimed concurrently, trying next",
                    candidate.id,
                    request_id,
                )
                continue

            return MatchResult(matched=True, match=match, matched_with=candidate)

        logger.info("All candidates for swap request %s were claimed", request_id)
        return MatchResult(matched=False)

    async def _load_active(self, request_id: str) -> SwapRequest:
        request = await self.registry.get_request(request_id)
        if request is None or request.status is not SwapRequestStatus.ACTIVE:
            raise SwapRequestNotFoundError(request_id)
        return request

    async def _eligible_candidates(self, request: SwapRequest) -> list[SwapRequest]:
        mirrors = await self.registry.find_mirror_requests(request)

        eligible: list[SwapRequest] = []
        for candidate in mirrors:
            safe = await self.conflict_checker.can_swap_without_conflicts(
                request.requester_id,
                candidate.requester_id,
                request.offered_course_id,
                candidate.offered_course_id,
            )
            if not safe:
                continue
            if await self.registry.has_pending_match([request.id, candidate.id]):
                logger.debug(
                    "Pending match already covers %s or %s, skipping",
                    request.id,
                    candidate.id,
                )
                continue
            eligible.append(candidate)

        logger.debug(
            "Swap request %s: %d mirror requests, %d eligible",
            request.id,
            len(mirrors),
            len(eligible),
        )
        return eligible
