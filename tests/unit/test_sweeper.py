# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Unit tests for the batch sweeper."""

from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from courseswap.domains.swap.conflicts import ConflictChecker
from courseswap.domains.swap.exceptions import SwapRequestNotFoundError
from courseswap.domains.swap.lifecycle import MatchLifecycle
from courseswap.domains.swap.matcher import MutualMatchFinder
from courseswap.domains.swap.models import MatchResult, SwapRequestStatus
from courseswap.domains.swap.sweeper import SwapSweeper
from courseswap.infrastructure.database.connection import DatabaseError
from courseswap.infrastructure.database.registry import SwapRegistry
from courseswap.infrastructure.database.schedule_store import (
    SqlScheduleStore,
    SqlStudentDirectory,
)
from courseswap.infrastructure.events import EventTypes
from courseswap.utils.datetime import days_from_now, utc_now


@pytest_asyncio.fixture
async def sql_sweeper(db_session: AsyncSession, seed, event_bus):
    ids = {
        "alice": await seed.student("Alice"),
        "bob": await seed.student("Bob"),
        "carol": await seed.student("Carol"),
        "cs101": await seed.course("CS101", [(1, "09:00", "10:30")]),
        "math201": await seed.course("MATH201", [(3, "14:00", "15:30")]),
        "phys101": await seed.course("PHYS101", [(5, "10:00", "11:00")]),
    }
    await seed.enroll(ids["alice"], ids["cs101"])
    await seed.enroll(ids["bob"], ids["math201"])
    await seed.enroll(ids["carol"], ids["phys101"])

    registry = SwapRegistry(db_session)
    lifecycle = MatchLifecycle(registry, SqlStudentDirectory(db_session), event_bus)
    finder = MutualMatchFinder(registry, ConflictChecker(SqlScheduleStore(db_session)), lifecycle)
    return SwapSweeper(registry, finder, event_bus), registry, ids


class TestExpireOverdue:
    """Tests for expiry of stale requests."""

    @pytest.mark.asyncio
    async def test_expires_only_overdue_active_requests(self, sql_sweeper, recorded_events) -> None:
        sweeper, registry, ids = sql_sweeper
        overdue = await registry.add_request(
            ids["carol"], ids["phys101"], ids["cs101"], 1, utc_now() - timedelta(minutes=1)
        )
        fresh = await registry.add_request(
            ids["alice"], ids["cs101"], ids["phys101"], 1, days_from_now(30)
        )

        expired = await sweeper.expire_overdue()

        assert expired == [overdue.id]
        assert (await registry.get_request(overdue.id)).status is SwapRequestStatus.EXPIRED
        assert (await registry.get_request(fresh.id)).status is SwapRequestStatus.ACTIVE

        assert [e.event_type for e in recorded_events] == [EventTypes.SwapRequest.EXPIRED]
        assert recorded_events[0].recipients == [ids["carol"]]

    @pytest.mark.asyncio
    async def test_cancelled_requests_are_not_expired(self, sql_sweeper) -> None:
        sweeper, registry, ids = sql_sweeper
        request = await registry.add_request(
            ids["carol"], ids["phys101"], ids["cs101"], 1, utc_now() - timedelta(minutes=1)
        )
        await registry.transition_request(
            request.id, SwapRequestStatus.ACTIVE, SwapRequestStatus.CANCELLED
        )

        assert await sweeper.expire_overdue() == []


class TestSweep:
    """Tests for full sweeps."""

    @pytest.mark.asyncio
    async def test_sweep_pairs_requests_that_were_never_matched(self, sql_sweeper) -> None:
        sweeper, registry, ids = sql_sweeper
        # Stored directly, so no creation-time matching ran
        a = await registry.add_request(ids["alice"], ids["cs101"], ids["math201"], 1, days_from_now(30))
        b = await registry.add_request(ids["bob"], ids["math201"], ids["cs101"], 1, days_from_now(30))
        lonely = await registry.add_request(
            ids["carol"], ids["phys101"], ids["math201"], 1, days_from_now(30)
        )

        report = await sweeper.sweep()

        by_id = {r.request_id: r for r in report.results}
        assert by_id[a.id].matched and by_id[b.id].matched
        assert by_id[a.id].match_id == by_id[b.id].match_id
        assert by_id[lonely.id].matched is False
        assert report.to_summary() == {"processed": 3, "matched": 2, "errors": 0, "expired": 0}
        assert report.finished_at is not None

        match = await registry.get_match(by_id[a.id].match_id)
        assert set(match.request_ids) == {a.id, b.id}

    @pytest.mark.asyncio
    async def test_sweep_expires_before_matching(self, sql_sweeper) -> None:
        sweeper, registry, ids = sql_sweeper
        await registry.add_request(ids["alice"], ids["cs101"], ids["math201"], 1, days_from_now(30))
        stale = await registry.add_request(
            ids["bob"], ids["math201"], ids["cs101"], 1, utc_now() - timedelta(seconds=1)
        )

        report = await sweeper.sweep()

        assert report.expired_request_ids == [stale.id]
        assert report.matched_count == 0
        assert stale.id not in {r.request_id for r in report.results}

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_sweep(self) -> None:
        registry = MagicMock()
        registry.list_expired_request_ids = AsyncMock(return_value=[])
        registry.list_active_request_ids = AsyncMock(return_value=["r1", "r2", "r3"])
        registry.rollback = AsyncMock()

        finder = MagicMock()
        finder.process_swap_request = AsyncMock(
            side_effect=[
                RuntimeError("schedule store unreachable"),
                SwapRequestNotFoundError("r2"),
                MatchResult(matched=False),
            ]
        )
        sweeper = SwapSweeper(registry, finder, MagicMock(publish=AsyncMock()))

        report = await sweeper.sweep()

        assert [r.request_id for r in report.results] == ["r1", "r2", "r3"]
        assert report.results[0].error == "schedule store unreachable"
        assert report.results[1].error is None
        assert report.error_count == 1
        registry.rollback.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_expiry_does_not_stop_the_sweep(self) -> None:
        registry = MagicMock()
        registry.list_expired_request_ids = AsyncMock(return_value=["r1", "r2"])
        registry.transition_request = AsyncMock(
            side_effect=[DatabaseError("Failed to transition swap request"), True]
        )
        registry.get_request = AsyncMock(return_value=None)
        registry.list_active_request_ids = AsyncMock(return_value=["r3"])
        registry.rollback = AsyncMock()

        finder = MagicMock()
        finder.process_swap_request = AsyncMock(return_value=MatchResult(matched=False))
        event_bus = MagicMock(publish=AsyncMock())
        sweeper = SwapSweeper(registry, finder, event_bus)

        report = await sweeper.sweep()

        assert report.expired_request_ids == ["r2"]
        assert [e.request_id for e in report.expiry_errors] == ["r1"]
        assert report.expiry_errors[0].error == "Failed to transition swap request"
        assert [r.request_id for r in report.results] == ["r3"]
        assert report.to_summary() == {"processed": 1, "matched": 0, "errors": 1, "expired": 1}
        registry.rollback.assert_awaited_once()
        finder.process_swap_request.assert_awaited_once_with("r3")
        event_bus.publish.assert_awaited_once()
