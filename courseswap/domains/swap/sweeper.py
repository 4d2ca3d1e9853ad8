# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Batch sweeper for swap requests.

A sweep first expires active requests whose expiry has passed, then runs
the match finder over every remaining active request, oldest first. One
failing request never stops the sweep; its error is recorded in the report.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import TYPE_CHECKING

from courseswap.domains.swap.exceptions import SwapRequestNotFoundError
from courseswap.domains.swap.matcher import MutualMatchFinder
from courseswap.domains.swap.models import SwapRequestStatus, SweepItemResult, SweepReport
from courseswap.infrastructure.events import EventBus, EventTypes, get_event_bus
from courseswap.utils.datetime import utc_now

if TYPE_CHECKING:
    from courseswap.infrastructure.database.registry import SwapRegistry

logger = logging.getLogger(__name__)


class SwapSweeper:
    """Periodic re-scan of the active request pool."""

    def __init__(
        self,
        registry: SwapRegistry,
        finder: MutualMatchFinder,
        event_bus: EventBus | None = None,
    ) -> None:
        self.registry = registry
        self.finder = finder
        self.event_bus = event_bus or get_event_bus()

    async def expire_overdue(
        self,
        now: datetime | None = None,
        errors: list[SweepItemResult] | None = None,
    ) -> list[str]:
        """Move active requests past their expiry to expired.

        A request whose expiry fails is rolled back and skipped.

        Args:
            now: Reference time, defaults to the current time.
            errors: Optional list that collects failed expiries.

        Returns:
            Ids of the requests this call expired.
        """
        now = now or utc_now()
        expired: list[str] = []

        for request_id in await self.registry.list_expired_request_ids(now):
            try:
                applied = await self.registry.transition_request(
                    request_id,
                    SwapRequestStatus.ACTIVE,
                    SwapRequestStatus.EXPIRED,
                )
                if not applied:
                    continue
            except Exception as e:
                logger.error(
                    "Failed to expire swap request %s: %s",
                    request_id,
                    str(e),
                    exc_info=True,
                )
                await self.registry.rollback()
                if errors is not None:
                    errors.append(
                        SweepItemResult(request_id=request_id, matched=False, error=str(e))
                    )
                continue

            expired.append(request_id)
            await self._publish_expired(request_id)

        if expired:
            logger.info("Expired %d swap requests", len(expired))
        return expired

    async def _publish_expired(self, request_id: str) -> None:
        try:
            request = await self.registry.get_request(request_id)
        except Exception as e:
            # The expiry is already committed; notify without recipients
            logger.warning("Could not load expired swap request %s: %s", request_id, e)
            await self.registry.rollback()
            request = None

        await self.event_bus.publish(
            EventTypes.SwapRequest.EXPIRED,
            {"request_id": request_id},
            recipients=[request.requester_id] if request else [],
        )

    async def sweep(self) -> SweepReport:
        """Expire overdue requests, then attempt a match for every active one."""
        report = SweepReport(started_at=utc_now())
        report.expired_request_ids = await self.expire_overdue(
            report.started_at, errors=report.expiry_errors
        )

        request_ids = await self.registry.list_active_request_ids()
        logger.info("Sweeping %d active swap requests", len(request_ids))

        # request id -> match id for requests paired earlier in this sweep
        paired: dict[str, str] = {}

        for request_id in request_ids:
            if request_id in paired:
                report.results.append(
                    SweepItemResult(request_id=request_id, matched=True, match_id=paired[request_id])
                )
                continue

            try:
                result = await self.finder.process_swap_request(request_id)
            except SwapRequestNotFoundError:
                # Cancelled or claimed by a concurrent caller since the listing
                report.results.append(SweepItemResult(request_id=request_id, matched=False))
                continue
            except Exception as e:
                logger.error(
                    "Sweep failed for swap request %s: %s",
                    request_id,
                    str(e),
                    exc_info=True,
                )
                await self.registry.rollback()
                report.results.append(
                    SweepItemResult(request_id=request_id, matched=False, error=str(e))
                )
                continue

            if result.matched and result.match is not None:
                for paired_id in result.match.request_ids:
                    paired[paired_id] = result.match.id
                report.results.append(
                    SweepItemResult(request_id=request_id, matched=True, match_id=result.match.id)
                )
            else:
                report.results.append(SweepItemResult(request_id=request_id, matched=False))

        report.finished_at = utc_now()
        logger.info("Swap sweep finished: %s", report.to_summary())
        return report
