# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Swap request and match registry.

All state changes are conditional updates: an UPDATE only applies while the
row still holds the expected status (or the caller's own flag is still
unset), and the method reports whether it applied. Concurrent handlers
therefore cannot overwrite each other's transitions.

Each write method is its own transaction: it commits on success and rolls
back on any failure. SQLAlchemy failures surface as DatabaseError.

Example:
    registry = SwapRegistry(session)
    request = await registry.get_request(request_id)
    applied = await registry.transition_request(
        request_id, SwapRequestStatus.ACTIVE, SwapRequestStatus.CANCELLED
    )
"""

import logging
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import Select, and_, func, or_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from courseswap.domains.swap.exceptions import StaleStateError
from courseswap.domains.swap.models import (
    MatchParticipant,
    MatchStatus,
    Side,
    SwapMatch,
    SwapRequest,
    SwapRequestStatus,
)
from courseswap.infrastructure.database.connection import DatabaseError
from courseswap.infrastructure.database.models import SwapMatchRecord, SwapRequestRecord
from courseswap.utils.datetime import ensure_utc, utc_now

logger = logging.getLogger(__name__)

# Per-side columns of swap_matches, selected through Side
_CONFIRMED = {
    Side.A: SwapMatchRecord.student_a_confirmed,
    Side.B: SwapMatchRecord.student_b_confirmed,
}
_CONFIRMED_AT = {
    Side.A: SwapMatchRecord.student_a_confirmed_at,
    Side.B: SwapMatchRecord.student_b_confirmed_at,
}
_COMPLETED = {
    Side.A: SwapMatchRecord.student_a_completed,
    Side.B: SwapMatchRecord.student_b_completed,
}
_COMPLETED_AT = {
    Side.A: SwapMatchRecord.student_a_completed_at,
    Side.B: SwapMatchRecord.student_b_completed_at,
}


def _to_request(record: SwapRequestRecord) -> SwapRequest:
    return SwapRequest(
        id=record.id,
        requester_id=record.requester_id,
        offered_course_id=record.offered_course_id,
        desired_course_id=record.desired_course_id,
        priority=record.priority,
        notes=record.notes,
        status=SwapRequestStatus(record.status),
        created_at=ensure_utc(record.created_at),
        updated_at=ensure_utc(record.updated_at),
        expires_at=ensure_utc(record.expires_at),
    )


def _to_match(record: SwapMatchRecord) -> SwapMatch:
    return SwapMatch(
        id=record.id,
        status=MatchStatus(record.match_status),
        a=MatchParticipant(
            student_id=record.student_a_id,
            request_id=record.request_a_id,
            course_id=record.course_a_id,
            confirmed=record.student_a_confirmed,
            confirmed_at=ensure_utc(record.student_a_confirmed_at),
            completed=record.student_a_completed,
            completed_at=ensure_utc(record.student_a_completed_at),
        ),
        b=MatchParticipant(
            student_id=record.student_b_id,
            request_id=record.request_b_id,
            course_id=record.course_b_id,
            confirmed=record.student_b_confirmed,
            confirmed_at=ensure_utc(record.student_b_confirmed_at),
            completed=record.student_b_completed,
            completed_at=ensure_utc(record.student_b_completed_at),
        ),
        matched_at=ensure_utc(record.matched_at),
        contact_shared_at=ensure_utc(record.contact_shared_at),
        completed_at=ensure_utc(record.completed_at),
    )


class SwapRegistry:
    """Data access for swap requests and swap matches.

    Attributes:
        db: Async database session.
    """

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    # =========================================================================
    # Internal helpers
    # =========================================================================

    async def _scalars(self, stmt: Select) -> list[Any]:
        # populate_existing refreshes rows already in the identity map, which
        # may be stale after a conditional UPDATE in this session
        try:
            result = await self.db.execute(stmt.execution_options(populate_existing=True))
        except SQLAlchemyError as e:
            raise DatabaseError("Registry query failed", e) from e
        return list(result.scalars().all())

    async def _count(self, stmt: Select) -> int:
        try:
            result = await self.db.execute(stmt)
        except SQLAlchemyError as e:
            raise DatabaseError("Registry count failed", e) from e
        return int(result.scalar_one())

    async def _update(self, model: type, *criteria: Any, **values: Any) -> int:
        """Run a conditional UPDATE and return the number of rows it changed."""
        stmt = (
            update(model)
            .where(*criteria)
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await self.db.execute(stmt)
        return result.rowcount

    @asynccontextmanager
    async def _transaction(self, action: str) -> AsyncIterator[None]:
        try:
            yield
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            raise DatabaseError(f"Failed to {action}", e) from e
        except Exception:
            await self.db.rollback()
            raise

    async def rollback(self) -> None:
        """Discard the session's open transaction after a failed operation."""
        await self.db.rollback()

    async def _move_request(
        self,
        request_id: str,
        expected: SwapRequestStatus,
        new: SwapRequestStatus,
    ) -> bool:
        count = await self._update(
            SwapRequestRecord,
            SwapRequestRecord.id == request_id,
            SwapRequestRecord.status == expected.value,
            status=new.value,
        )
        return count == 1

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_request(self, request_id: str) -> SwapRequest | None:
        records = await self._scalars(
            select(SwapRequestRecord).where(SwapRequestRecord.id == request_id)
        )
        return _to_request(records[0]) if records else None

    async def get_match(self, match_id: str) -> SwapMatch | None:
        records = await self._scalars(
            select(SwapMatchRecord).where(SwapMatchRecord.id == match_id)
        )
        return _to_match(records[0]) if records else None

    async def find_mirror_requests(self, request: SwapRequest) -> list[SwapRequest]:
        """Find active requests from other students offering the exact mirror swap."""
        records = await self._scalars(
            select(SwapRequestRecord).where(
                SwapRequestRecord.offered_course_id == request.desired_course_id,
                SwapRequestRecord.desired_course_id == request.offered_course_id,
                SwapRequestRecord.status == SwapRequestStatus.ACTIVE.value,
                SwapRequestRecord.requester_id != request.requester_id,
            )
        )
        return [_to_request(r) for r in records]

    async def find_active_request(
        self,
        requester_id: str,
        offered_course_id: str,
        desired_course_id: str,
    ) -> SwapRequest | None:
        """Find the requester's active request for one course pair, if any."""
        records = await self._scalars(
            select(SwapRequestRecord)
            .where(
                SwapRequestRecord.requester_id == requester_id,
                SwapRequestRecord.offered_course_id == offered_course_id,
                SwapRequestRecord.desired_course_id == desired_course_id,
                SwapRequestRecord.status == SwapRequestStatus.ACTIVE.value,
            )
            .limit(1)
        )
        return _to_request(records[0]) if records else None

    async def has_pending_match(self, request_ids: Iterable[str]) -> bool:
        """Check whether a pending match references any of the requests."""
        ids = list(request_ids)
        if not ids:
            return False
        count = await self._count(
            select(func.count())
            .select_from(SwapMatchRecord)
            .where(
                SwapMatchRecord.match_status == MatchStatus.PENDING.value,
                or_(
                    SwapMatchRecord.request_a_id.in_(ids),
                    SwapMatchRecord.request_b_id.in_(ids),
                ),
            )
        )
        return count > 0

    async def list_requests(
        self,
        requester_id: str,
        status: SwapRequestStatus | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[SwapRequest], int]:
        """List a student's requests, newest first, with the total count."""
        criteria = [SwapRequestRecord.requester_id == requester_id]
        if status is not None:
            criteria.append(SwapRequestRecord.status == status.value)

        total = await self._count(
            select(func.count()).select_from(SwapRequestRecord).where(*criteria)
        )
        records = await self._scalars(
            select(SwapRequestRecord)
            .where(*criteria)
            .order_by(SwapRequestRecord.created_at.desc(), SwapRequestRecord.id)
            .offset(offset)
            .limit(limit)
        )
        return [_to_request(r) for r in records], total

    async def list_matches(
        self,
        student_id: str,
        status: MatchStatus | None = None,
        offset: int = 0,
        limit: int = 20,
    ) -> tuple[list[SwapMatch], int]:
        """List matches the student takes part in, newest first, with the total count."""
        criteria = [
            or_(
                SwapMatchRecord.student_a_id == student_id,
                SwapMatchRecord.student_b_id == student_id,
            )
        ]
        if status is not None:
            criteria.append(SwapMatchRecord.match_status == status.value)

        total = await self._count(
            select(func.count()).select_from(SwapMatchRecord).where(*criteria)
        )
        records = await self._scalars(
            select(SwapMatchRecord)
            .where(*criteria)
            .order_by(SwapMatchRecord.matched_at.desc(), SwapMatchRecord.id)
            .offset(offset)
            .limit(limit)
        )
        return [_to_match(r) for r in records], total

    async def list_active_request_ids(self) -> list[str]:
        """Ids of every active request, oldest first."""
        try:
            result = await self.db.execute(
                select(SwapRequestRecord.id)
                .where(SwapRequestRecord.status == SwapRequestStatus.ACTIVE.value)
                .order_by(SwapRequestRecord.created_at, SwapRequestRecord.id)
            )
        except SQLAlchemyError as e:
            raise DatabaseError("Registry query failed", e) from e
        return list(result.scalars().all())

    async def list_expired_request_ids(self, now: datetime | None = None) -> list[str]:
        """Ids of active requests whose expiry is at or before now."""
        now = now or utc_now()
        try:
            result = await self.db.execute(
                select(SwapRequestRecord.id)
                .where(
                    SwapRequestRecord.status == SwapRequestStatus.ACTIVE.value,
                    SwapRequestRecord.expires_at <= now,
                )
                .order_by(SwapRequestRecord.expires_at, SwapRequestRecord.id)
            )
        except SQLAlchemyError as e:
            raise DatabaseError("Registry query failed", e) from e
        return list(result.scalars().all())

    # =========================================================================
    # Writes
    # =========================================================================

    async def add_request(
        self,
        requester_id: str,
        offered_course_id: str,
        desired_course_id: str,
        priority: int,
        expires_at: datetime,
        notes: str | None = None,
    ) -> SwapRequest:
        """Insert a new active request and commit it."""
        record = SwapRequestRecord(
            requester_id=requester_id,
            offered_course_id=offered_course_id,
            desired_course_id=desired_course_id,
            priority=priority,
            notes=notes,
            status=SwapRequestStatus.ACTIVE.value,
            expires_at=expires_at,
        )
        async with self._transaction("add swap request"):
            self.db.add(record)
            await self.db.flush()
            request = _to_request(record)
        return request

    async def create_match(self, request_a: SwapRequest, request_b: SwapRequest) -> SwapMatch:
        """Claim both requests and insert a pending match, atomically.

        request_a's requester becomes side A, request_b's side B.

        Raises:
            StaleStateError: If either request is no longer active. Nothing
                is written in that case; record_id names the request.
        """
        record = SwapMatchRecord(
            request_a_id=request_a.id,
            request_b_id=request_b.id,
            student_a_id=request_a.requester_id,
            student_b_id=request_b.requester_id,
            course_a_id=request_a.offered_course_id,
            course_b_id=request_b.offered_course_id,
            match_status=MatchStatus.PENDING.value,
            matched_at=utc_now(),
        )
        async with self._transaction("create swap match"):
            for request in (request_a, request_b):
                claimed = await self._move_request(
                    request.id, SwapRequestStatus.ACTIVE, SwapRequestStatus.MATCHED
                )
                if not claimed:
                    raise StaleStateError(request.id, SwapRequestStatus.ACTIVE.value)
            self.db.add(record)
            await self.db.flush()
            match = _to_match(record)
        return match

    async def transition_request(
        self,
        request_id: str,
        expected: SwapRequestStatus,
        new: SwapRequestStatus,
    ) -> bool:
        """Move a request from expected to new status if it is still expected."""
        async with self._transaction("transition swap request"):
            applied = await self._move_request(request_id, expected, new)
        return applied

    async def update_request_fields(
        self,
        request_id: str,
        priority: int | None = None,
        notes: str | None = None,
    ) -> bool:
        """Update priority and/or notes of a request that is still active."""
        values: dict[str, Any] = {}
        if priority is not None:
            values["priority"] = priority
        if notes is not None:
            values["notes"] = notes
        if not values:
            return True

        async with self._transaction("update swap request"):
            count = await self._update(
                SwapRequestRecord,
                SwapRequestRecord.id == request_id,
                SwapRequestRecord.status == SwapRequestStatus.ACTIVE.value,
                **values,
            )
        return count == 1

    async def record_confirmation(self, match_id: str, side: Side, at: datetime) -> bool:
        """Set the side's confirmed flag if the match is pending and the flag unset."""
        async with self._transaction("record confirmation"):
            count = await self._update(
                SwapMatchRecord,
                SwapMatchRecord.id == match_id,
                SwapMatchRecord.match_status == MatchStatus.PENDING.value,
                _CONFIRMED[side].is_(False),
                **{_CONFIRMED[side].key: True, _CONFIRMED_AT[side].key: at},
            )
        return count == 1

    async def promote_to_confirmed(self, match_id: str, at: datetime) -> bool:
        """Move a pending match with both flags set to confirmed.

        Stamps contact_shared_at. Applies at most once per match.
        """
        async with self._transaction("confirm swap match"):
            count = await self._update(
                SwapMatchRecord,
                SwapMatchRecord.id == match_id,
                SwapMatchRecord.match_status == MatchStatus.PENDING.value,
                and_(_CONFIRMED[Side.A].is_(True), _CONFIRMED[Side.B].is_(True)),
                match_status=MatchStatus.CONFIRMED.value,
                contact_shared_at=at,
            )
        return count == 1

    async def reject_match(self, match: SwapMatch) -> bool:
        """Reject a pending match and return both requests to active."""
        async with self._transaction("reject swap match"):
            count = await self._update(
                SwapMatchRecord,
                SwapMatchRecord.id == match.id,
                SwapMatchRecord.match_status == MatchStatus.PENDING.value,
                match_status=MatchStatus.REJECTED.value,
            )
            if count != 1:
                return False
            for request_id in match.request_ids:
                reverted = await self._move_request(
                    request_id, SwapRequestStatus.MATCHED, SwapRequestStatus.ACTIVE
                )
                if not reverted:
                    logger.warning(
                        "Request %s of rejected match %s was not matched, left unchanged",
                        request_id,
                        match.id,
                    )
        return True

    async def record_completion(self, match_id: str, side: Side, at: datetime) -> bool:
        """Set the side's completed flag if the match is confirmed and the flag unset."""
        async with self._transaction("record completion"):
            count = await self._update(
                SwapMatchRecord,
                SwapMatchRecord.id == match_id,
                SwapMatchRecord.match_status == MatchStatus.CONFIRMED.value,
                _COMPLETED[side].is_(False),
                **{_COMPLETED[side].key: True, _COMPLETED_AT[side].key: at},
            )
        return count == 1

    async def promote_to_completed(self, match: SwapMatch, at: datetime) -> bool:
        """Complete a confirmed match whose both completion flags are set.

        Both originating requests move matched -> completed in the same
        transaction.
        """
        async with self._transaction("complete swap match"):
            count = await self._update(
                SwapMatchRecord,
                SwapMatchRecord.id == match.id,
                SwapMatchRecord.match_status == MatchStatus.CONFIRMED.value,
                and_(_COMPLETED[Side.A].is_(True), _COMPLETED[Side.B].is_(True)),
                match_status=MatchStatus.COMPLETED.value,
                completed_at=at,
            )
            if count != 1:
                return False
            for request_id in match.request_ids:
                moved = await self._move_request(
                    request_id, SwapRequestStatus.MATCHED, SwapRequestStatus.COMPLETED
                )
                if not moved:
                    raise StaleStateError(request_id, SwapRequestStatus.MATCHED.value)
        return True
