# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for SwapService."""

from unittest.mock import AsyncMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from courseswap.domains.swap.exceptions import (
    ConflictError,
    DependencyError,
    DuplicateSwapRequestError,
    InvalidInputError,
    InvalidPriorityError,
    MissingCourseError,
    NotEnrolledError,
    NotParticipantError,
    NotRequestOwnerError,
    SelfSwapError,
    SwapRequestNotFoundError,
)
from courseswap.domains.swap.models import (
    ConfirmationStatus,
    MatchStatus,
    SwapRequestStatus,
)
from courseswap.domains.swap.service import SwapService
from courseswap.infrastructure.database.connection import DatabaseError
from courseswap.infrastructure.events import EventTypes


@pytest_asyncio.fixture
async def ids(seed) -> dict[str, str]:
    """Alice holds CS101 (Mon 09:00), Bob holds MATH201 (Wed 14:00)."""
    ids = {
        "alice": await seed.student("Alice Smith", "S20001"),
        "bob": await seed.student("Bob Jones", "S20002"),
        "carol": await seed.student("Carol White", "S20003"),
        "cs101": await seed.course("CS101", [(1, "09:00", "10:30")]),
        "math201": await seed.course("MATH201", [(3, "14:00", "15:30")]),
        "chem110": await seed.course("CHEM110", [(3, "14:30", "16:00")]),
        "phys101": await seed.course("PHYS101", [(5, "10:00", "11:00")]),
    }
    await seed.enroll(ids["alice"], ids["cs101"])
    await seed.enroll(ids["bob"], ids["math201"])
    await seed.enroll(ids["carol"], ids["phys101"])
    return ids


@pytest.fixture
def service(db_session: AsyncSession, event_bus, swap_settings) -> SwapService:
    return SwapService(db_session, event_bus=event_bus, settings=swap_settings)


class TestCreateValidation:
    """Tests for input validation on request creation."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize("offered,desired", [(None, "x"), ("x", None), ("", "x")])
    async def test_missing_course(self, service, offered, desired) -> None:
        with pytest.raises(MissingCourseError):
            await service.create_swap_request("alice", offered, desired)

    @pytest.mark.asyncio
    async def test_self_swap(self, service) -> None:
        with pytest.raises(SelfSwapError):
            await service.create_swap_request("alice", "cs101", "cs101")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("priority", [0, 6, -1])
    async def test_priority_out_of_bounds(self, service, priority) -> None:
        with pytest.raises(InvalidPriorityError):
            await service.create_swap_request("alice", "cs101", "math201", priority=priority)

    @pytest.mark.asyncio
    async def test_notes_too_long(self, service) -> None:
        with pytest.raises(InvalidInputError):
            await service.create_swap_request("alice", "cs101", "math201", notes="x" * 501)

    @pytest.mark.asyncio
    async def test_must_be_enrolled_in_offered_course(self, service, ids) -> None:
        with pytest.raises(NotEnrolledError):
            await service.create_swap_request(ids["alice"], ids["math201"], ids["cs101"])

    @pytest.mark.asyncio
    async def test_duplicate_active_request(self, service, ids) -> None:
        first = await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])

        with pytest.raises(DuplicateSwapRequestError) as exc_info:
            await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])

        assert exc_info.value.existing_request_id == first.request.id
        assert isinstance(exc_info.value, ConflictError)


class TestCreateAndMatch:
    """Tests for request creation with immediate matching."""

    @pytest.mark.asyncio
    async def test_unmatched_request_is_stored_active(self, service, ids, recorded_events) -> None:
        result = await service.create_swap_request(
            ids["alice"], ids["cs101"], ids["math201"], notes="  any section  "
        )

        assert result.match_result.matched is False
        assert result.request.status is SwapRequestStatus.ACTIVE
        assert result.request.priority == 1
        assert result.request.notes == "any section"
        assert [e.event_type for e in recorded_events] == [EventTypes.SwapRequest.CREATED]

    @pytest.mark.asyncio
    async def test_mirror_request_matches_immediately(self, service, ids) -> None:
        theirs = await service.create_swap_request(ids["bob"], ids["math201"], ids["cs101"])

        mine = await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])

        assert mine.match_result.matched is True
        assert mine.request.status is SwapRequestStatus.MATCHED
        match = mine.match_result.match
        assert match.status is MatchStatus.PENDING
        assert set(match.request_ids) == {mine.request.id, theirs.request.id}
        assert mine.match_result.matched_with.id == theirs.request.id

        stored = await service.get_swap_request(theirs.request.id, ids["bob"])
        assert stored.status is SwapRequestStatus.MATCHED

    @pytest.mark.asyncio
    async def test_schedule_conflict_keeps_request_active(self, service, ids, seed) -> None:
        await seed.enroll(ids["alice"], ids["chem110"])
        await service.create_swap_request(ids["bob"], ids["math201"], ids["cs101"])

        mine = await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])

        assert mine.match_result.matched is False
        assert mine.match_result.error is None
        stored = await service.get_swap_request(mine.request.id, ids["alice"])
        assert stored.status is SwapRequestStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_matching_failure_keeps_request(self, service, ids) -> None:
        service.registry.find_mirror_requests = AsyncMock(
            side_effect=DatabaseError("Registry query failed")
        )

        result = await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])

        assert result.match_result.matched is False
        assert result.match_result.error == "Registry query failed"
        stored = await service.get_swap_request(result.request.id, ids["alice"])
        assert stored.status is SwapRequestStatus.ACTIVE


class TestRequestManagement:
    """Tests for update, cancel, get and list."""

    @pytest.mark.asyncio
    async def test_update_priority_and_notes(self, service, ids) -> None:
        created = await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])

        updated = await service.update_swap_request(
            created.request.id, ids["alice"], priority=3, notes="afternoons"
        )

        assert updated.priority == 3
        assert updated.notes == "afternoons"

    @pytest.mark.asyncio
    async def test_update_by_other_student_is_forbidden(self, service, ids) -> None:
        created = await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])

        with pytest.raises(NotRequestOwnerError):
            await service.update_swap_request(created.request.id, ids["bob"], priority=2)

    @pytest.mark.asyncio
    async def test_cancel(self, service, ids, recorded_events) -> None:
        created = await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])

        cancelled = await service.cancel_swap_request(created.request.id, ids["alice"])

        assert cancelled.status is SwapRequestStatus.CANCELLED
        assert recorded_events[-1].event_type == EventTypes.SwapRequest.CANCELLED

        with pytest.raises(ConflictError):
            await service.cancel_swap_request(created.request.id, ids["alice"])
        with pytest.raises(SwapRequestNotFoundError):
            await service.update_swap_request(created.request.id, ids["alice"], priority=2)

    @pytest.mark.asyncio
    async def test_cancel_matched_request_is_refused(self, service, ids) -> None:
        await service.create_swap_request(ids["bob"], ids["math201"], ids["cs101"])
        mine = await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])

        with pytest.raises(ConflictError):
            await service.cancel_swap_request(mine.request.id, ids["alice"])

    @pytest.mark.asyncio
    async def test_get_unknown_request(self, service, ids) -> None:
        with pytest.raises(SwapRequestNotFoundError):
            await service.get_swap_request("missing", ids["alice"])

    @pytest.mark.asyncio
    async def test_cancelled_request_can_be_created_again(self, service, ids) -> None:
        first = await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])
        await service.cancel_swap_request(first.request.id, ids["alice"])

        second = await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])

        assert second.request.id != first.request.id

    @pytest.mark.asyncio
    async def test_list_requests_clamps_page_size(self, service, ids, swap_settings) -> None:
        await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])
        await service.create_swap_request(ids["alice"], ids["cs101"], ids["phys101"])

        requests, total = await service.list_swap_requests(ids["alice"], page=0, limit=10_000)
        first_page, _ = await service.list_swap_requests(ids["alice"], page=1, limit=1)
        second_page, _ = await service.list_swap_requests(ids["alice"], page=2, limit=1)

        assert total == 2
        assert len(requests) == 2
        assert {first_page[0].id, second_page[0].id} == {r.id for r in requests}


class TestMatchFlow:
    """End-to-end match handling through the service."""

    @pytest_asyncio.fixture
    async def match_id(self, service, ids) -> str:
        await service.create_swap_request(ids["bob"], ids["math201"], ids["cs101"])
        mine = await service.create_swap_request(ids["alice"], ids["cs101"], ids["math201"])
        return mine.match_result.match.id

    @pytest.mark.asyncio
    async def test_confirm_then_contact_then_complete(self, service, ids, match_id) -> None:
        waiting = await service.confirm_match(match_id, ids["alice"])
        confirmed = await service.confirm_match(match_id, ids["bob"])

        assert waiting.status is ConfirmationStatus.WAITING_FOR_OTHER_CONFIRMATION
        assert confirmed.contact_info.email.startswith("alice.smith")

        details = await service.get_contact_info(match_id, ids["bob"])
        assert details.contact_info.name == "Alice Smith"
        assert details.swap_details.your_course.code == "MATH201"

        await service.mark_completed(match_id, ids["bob"])
        done = await service.mark_completed(match_id, ids["alice"])
        assert done.status.value == "completed"

        matches, total = await service.list_matches(ids["alice"], status=MatchStatus.COMPLETED)
        assert total == 1 and matches[0].id == match_id

    @pytest.mark.asyncio
    async def test_reject_returns_both_requests(self, service, ids, match_id) -> None:
        await service.reject_match(match_id, ids["alice"])

        requests, _ = await service.list_swap_requests(ids["bob"], status=SwapRequestStatus.ACTIVE)
        assert len(requests) == 1

    @pytest.mark.asyncio
    async def test_outsider_is_forbidden(self, service, ids, match_id) -> None:
        with pytest.raises(NotParticipantError):
            await service.confirm_match(match_id, ids["carol"])

    @pytest.mark.asyncio
    async def test_sweep_after_reject_rematches(self, service, ids, match_id) -> None:
        await service.reject_match(match_id, ids["bob"])

        report = await service.sweep()

        assert report.matched_count == 2
        assert report.error_count == 0


class TestDependencyFailures:
    """Registry failures surface as DependencyError."""

    @pytest.mark.asyncio
    async def test_list_failure(self, service) -> None:
        service.registry.list_requests = AsyncMock(side_effect=DatabaseError("down"))

        with pytest.raises(DependencyError):
            await service.list_swap_requests("alice")

    @pytest.mark.asyncio
    async def test_confirm_failure(self, service) -> None:
        service.registry.get_match = AsyncMock(side_effect=DatabaseError("down"))

        with pytest.raises(DependencyError):
            await service.confirm_match("m1", "alice")
