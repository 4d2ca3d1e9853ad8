# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for SwapRegistry against an in-memory SQLite database."""

from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from courseswap.domains.swap.exceptions import StaleStateError
from courseswap.domains.swap.models import (
    MatchStatus,
    Side,
    SwapRequest,
    SwapRequestStatus,
)
from courseswap.infrastructure.database.registry import SwapRegistry
from courseswap.utils.datetime import days_from_now, utc_now


@pytest.fixture
def registry(db_session: AsyncSession) -> SwapRegistry:
    return SwapRegistry(db_session)


@pytest_asyncio.fixture
async def people(seed) -> dict[str, str]:
    """Two students and two courses, without schedules."""
    return {
        "alice": await seed.student("Alice"),
        "bob": await seed.student("Bob"),
        "carol": await seed.student("Carol"),
        "cs101": await seed.course("CS101"),
        "math201": await seed.course("MATH201"),
        "phys101": await seed.course("PHYS101"),
    }


async def add(
    registry: SwapRegistry,
    requester: str,
    offered: str,
    desired: str,
    priority: int = 1,
    ttl_days: int = 30,
) -> SwapRequest:
    return await registry.add_request(
        requester_id=requester,
        offered_course_id=offered,
        desired_course_id=desired,
        priority=priority,
        expires_at=days_from_now(ttl_days),
    )


class TestRequests:
    """Tests for request reads and writes."""

    @pytest.mark.asyncio
    async def test_add_and_get(self, registry, people) -> None:
        created = await registry.add_request(
            requester_id=people["alice"],
            offered_course_id=people["cs101"],
            desired_course_id=people["math201"],
            priority=3,
            expires_at=days_from_now(30),
            notes="Morning section please",
        )

        loaded = await registry.get_request(created.id)

        assert loaded is not None
        assert loaded.status is SwapRequestStatus.ACTIVE
        assert loaded.priority == 3
        assert loaded.notes == "Morning section please"
        assert loaded.created_at.tzinfo is not None
        assert loaded.expires_at > utc_now()

    @pytest.mark.asyncio
    async def test_get_missing_returns_none(self, registry) -> None:
        assert await registry.get_request("nope") is None
        assert await registry.get_match("nope") is None

    @pytest.mark.asyncio
    async def test_find_mirror_requests_only_returns_exact_mirrors(self, registry, people) -> None:
        mine = await add(registry, people["alice"], people["cs101"], people["math201"])
        mirror = await add(registry, people["bob"], people["math201"], people["cs101"])
        await add(registry, people["carol"], people["math201"], people["phys101"])
        # Same student offering the mirror never matches itself
        await add(registry, people["alice"], people["math201"], people["cs101"])

        mirrors = await registry.find_mirror_requests(mine)

        assert [m.id for m in mirrors] == [mirror.id]

    @pytest.mark.asyncio
    async def test_find_mirror_requests_skips_inactive(self, registry, people) -> None:
        mine = await add(registry, people["alice"], people["cs101"], people["math201"])
        mirror = await add(registry, people["bob"], people["math201"], people["cs101"])
        await registry.transition_request(
            mirror.id, SwapRequestStatus.ACTIVE, SwapRequestStatus.CANCELLED
        )

        assert await registry.find_mirror_requests(mine) == []

    @pytest.mark.asyncio
    async def test_find_active_request(self, registry, people) -> None:
        created = await add(registry, people["alice"], people["cs101"], people["math201"])

        found = await registry.find_active_request(
            people["alice"], people["cs101"], people["math201"]
        )
        other_pair = await registry.find_active_request(
            people["alice"], people["cs101"], people["phys101"]
        )

        assert found is not None and found.id == created.id
        assert other_pair is None

    @pytest.mark.asyncio
    async def test_transition_is_conditional(self, registry, people) -> None:
        request = await add(registry, people["alice"], people["cs101"], people["math201"])

        first = await registry.transition_request(
            request.id, SwapRequestStatus.ACTIVE, SwapRequestStatus.CANCELLED
        )
        second = await registry.transition_request(
            request.id, SwapRequestStatus.ACTIVE, SwapRequestStatus.EXPIRED
        )

        assert first is True
        assert second is False
        assert (await registry.get_request(request.id)).status is SwapRequestStatus.CANCELLED

    @pytest.mark.asyncio
    async def test_update_fields_only_while_active(self, registry, people) -> None:
        request = await add(registry, people["alice"], people["cs101"], people["math201"])

        assert await registry.update_request_fields(request.id, priority=4, notes="flexible")
        loaded = await registry.get_request(request.id)
        assert loaded.priority == 4
        assert loaded.notes == "flexible"

        await registry.transition_request(
            request.id, SwapRequestStatus.ACTIVE, SwapRequestStatus.CANCELLED
        )
        assert not await registry.update_request_fields(request.id, priority=2)

    @pytest.mark.asyncio
    async def test_update_without_changes_is_noop(self, registry, people) -> None:
        request = await add(registry, people["alice"], people["cs101"], people["math201"])

        assert await registry.update_request_fields(request.id)

    @pytest.mark.asyncio
    async def test_list_requests_paginates_newest_first(self, registry, people) -> None:
        created = [
            await add(registry, people["alice"], people["cs101"], course)
            for course in (people["math201"], people["phys101"])
        ]
        created.append(await add(registry, people["alice"], people["math201"], people["phys101"]))
        await add(registry, people["bob"], people["math201"], people["cs101"])

        page_one, total = await registry.list_requests(people["alice"], offset=0, limit=2)
        page_two, _ = await registry.list_requests(people["alice"], offset=2, limit=2)

        assert total == 3
        assert [r.id for r in page_one + page_two] == [r.id for r in reversed(created)]

    @pytest.mark.asyncio
    async def test_list_requests_filters_by_status(self, registry, people) -> None:
        keep = await add(registry, people["alice"], people["cs101"], people["math201"])
        gone = await add(registry, people["alice"], people["cs101"], people["phys101"])
        await registry.transition_request(
            gone.id, SwapRequestStatus.ACTIVE, SwapRequestStatus.CANCELLED
        )

        active, total = await registry.list_requests(
            people["alice"], status=SwapRequestStatus.ACTIVE
        )

        assert total == 1
        assert [r.id for r in active] == [keep.id]

    @pytest.mark.asyncio
    async def test_expired_and_active_ids(self, registry, people) -> None:
        fresh = await add(registry, people["alice"], people["cs101"], people["math201"])
        stale = await add(registry, people["bob"], people["math201"], people["cs101"], ttl_days=1)

        expired = await registry.list_expired_request_ids(utc_now() + timedelta(days=2))
        active = await registry.list_active_request_ids()

        assert expired == [stale.id]
        assert active == [fresh.id, stale.id]


class TestMatches:
    """Tests for match creation and the conditional match transitions."""

    @pytest_asyncio.fixture
    async def pair(self, registry, people) -> tuple[SwapRequest, SwapRequest]:
        a = await add(registry, people["alice"], people["cs101"], people["math201"])
        b = await add(registry, people["bob"], people["math201"], people["cs101"])
        return a, b

    @pytest.mark.asyncio
    async def test_create_match_claims_both_requests(self, registry, pair, people) -> None:
        a, b = pair

        match = await registry.create_match(a, b)

        assert match.status is MatchStatus.PENDING
        assert match.a.student_id == people["alice"]
        assert match.a.course_id == people["cs101"]
        assert match.b.course_id == people["math201"]
        assert (await registry.get_request(a.id)).status is SwapRequestStatus.MATCHED
        assert (await registry.get_request(b.id)).status is SwapRequestStatus.MATCHED
        assert await registry.has_pending_match([a.id])

    @pytest.mark.asyncio
    async def test_create_match_on_claimed_request_writes_nothing(self, registry, pair) -> None:
        a, b = pair
        await registry.transition_request(
            b.id, SwapRequestStatus.ACTIVE, SwapRequestStatus.CANCELLED
        )

        with pytest.raises(StaleStateError) as exc_info:
            await registry.create_match(a, b)

        assert exc_info.value.record_id == b.id
        # The claim on a was rolled back with the failed transaction
        assert (await registry.get_request(a.id)).status is SwapRequestStatus.ACTIVE
        assert not await registry.has_pending_match([a.id, b.id])

    @pytest.mark.asyncio
    async def test_record_confirmation_applies_once(self, registry, pair) -> None:
        match = await registry.create_match(*pair)
        first_at = utc_now()

        assert await registry.record_confirmation(match.id, Side.A, first_at)
        assert not await registry.record_confirmation(match.id, Side.A, first_at + timedelta(hours=1))

        loaded = await registry.get_match(match.id)
        assert loaded.a.confirmed is True
        assert loaded.b.confirmed is False
        assert loaded.a.confirmed_at == first_at

    @pytest.mark.asyncio
    async def test_promotion_needs_both_confirmations(self, registry, pair) -> None:
        match = await registry.create_match(*pair)
        now = utc_now()

        await registry.record_confirmation(match.id, Side.B, now)
        assert not await registry.promote_to_confirmed(match.id, now)

        await registry.record_confirmation(match.id, Side.A, now)
        assert await registry.promote_to_confirmed(match.id, now)
        assert not await registry.promote_to_confirmed(match.id, now)

        loaded = await registry.get_match(match.id)
        assert loaded.status is MatchStatus.CONFIRMED
        assert loaded.contact_shared_at == now

    @pytest.mark.asyncio
    async def test_reject_returns_requests_to_pool(self, registry, pair) -> None:
        a, b = pair
        match = await registry.create_match(a, b)

        assert await registry.reject_match(match)
        assert not await registry.reject_match(match)

        assert (await registry.get_match(match.id)).status is MatchStatus.REJECTED
        assert (await registry.get_request(a.id)).status is SwapRequestStatus.ACTIVE
        assert (await registry.get_request(b.id)).status is SwapRequestStatus.ACTIVE
        assert not await registry.has_pending_match([a.id, b.id])

    @pytest.mark.asyncio
    async def test_confirmation_after_reject_is_refused(self, registry, pair) -> None:
        match = await registry.create_match(*pair)
        await registry.reject_match(match)

        assert not await registry.record_confirmation(match.id, Side.A, utc_now())

    @pytest.mark.asyncio
    async def test_completion_moves_requests_to_completed(self, registry, pair) -> None:
        a, b = pair
        match = await registry.create_match(a, b)
        now = utc_now()
        await registry.record_confirmation(match.id, Side.A, now)
        await registry.record_confirmation(match.id, Side.B, now)
        await registry.promote_to_confirmed(match.id, now)

        assert await registry.record_completion(match.id, Side.A, now)
        assert not await registry.promote_to_completed(match, now)
        assert await registry.record_completion(match.id, Side.B, now)
        assert await registry.promote_to_completed(match, now)

        loaded = await registry.get_match(match.id)
        assert loaded.status is MatchStatus.COMPLETED
        assert loaded.completed_at == now
        assert (await registry.get_request(a.id)).status is SwapRequestStatus.COMPLETED
        assert (await registry.get_request(b.id)).status is SwapRequestStatus.COMPLETED

    @pytest.mark.asyncio
    async def test_completion_requires_confirmed_match(self, registry, pair) -> None:
        match = await registry.create_match(*pair)

        assert not await registry.record_completion(match.id, Side.A, utc_now())

    @pytest.mark.asyncio
    async def test_list_matches_for_participant(self, registry, pair, people) -> None:
        match = await registry.create_match(*pair)

        for_bob, total = await registry.list_matches(people["bob"])
        for_carol, none = await registry.list_matches(people["carol"])
        confirmed, zero = await registry.list_matches(
            people["alice"], status=MatchStatus.CONFIRMED
        )

        assert total == 1 and for_bob[0].id == match.id
        assert none == 0 and for_carol == []
        assert zero == 0 and confirmed == []
