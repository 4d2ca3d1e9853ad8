# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Swap service: the entry point used by routes and background tasks.

This module provides the SwapService class for:
- Creating swap requests and matching them immediately
- Updating, cancelling and listing a student's requests
- Confirming, rejecting and completing matches
- Releasing contact details after mutual confirmation
- Running the batch sweep

The caller's identity is always passed in as student_id; authentication
happens before the service is reached.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy.ext.asyncio import AsyncSession

from courseswap.core.config import SwapSettings, get_settings
from courseswap.domains.swap.conflicts import ConflictChecker
from courseswap.domains.swap.exceptions import (
    ConflictError,
    DependencyError,
    DuplicateSwapRequestError,
    InvalidInputError,
    InvalidPriorityError,
    MissingCourseError,
    NotEnrolledError,
    NotRequestOwnerError,
    SelfSwapError,
    StaleStateError,
    SwapRequestNotFoundError,
)
from courseswap.domains.swap.lifecycle import MatchLifecycle
from courseswap.domains.swap.matcher import MutualMatchFinder
from courseswap.domains.swap.models import (
    CompletionResult,
    ConfirmResult,
    ContactDetails,
    CreateSwapResult,
    MatchResult,
    MatchStatus,
    RejectResult,
    SwapMatch,
    SwapRequest,
    SwapRequestStatus,
    SweepReport,
)
from courseswap.domains.swap.ports import ScheduleStore, StudentDirectory
from courseswap.domains.swap.sweeper import SwapSweeper
from courseswap.infrastructure.database.connection import DatabaseError
from courseswap.infrastructure.database.registry import SwapRegistry
from courseswap.infrastructure.database.schedule_store import (
    SqlScheduleStore,
    SqlStudentDirectory,
)
from courseswap.infrastructure.events import EventBus, EventTypes, get_event_bus
from courseswap.utils.datetime import days_from_now

logger = logging.getLogger(__name__)


class SwapService:
    """Service for course swap requests and matches.

    Attributes:
        db: Async database session.
        settings: Swap engine settings.
        registry: Swap request/match registry on db.
        lifecycle: Match state machine.
        finder: Mutual match finder.
        sweeper: Batch sweeper.
    """

    def __init__(
        self,
        db: AsyncSession,
        schedule_store: ScheduleStore | None = None,
        directory: StudentDirectory | None = None,
        event_bus: EventBus | None = None,
        settings: SwapSettings | None = None,
    ) -> None:
        """Initialize swap service.

        Args:
            db: Async database session.
            schedule_store: Schedule source, defaults to the SQL store on db.
            directory: Contact/course source, defaults to the SQL directory on db.
            event_bus: Event bus, defaults to the process singleton.
            settings: Swap settings, defaults to the application settings.
        """
        self.db = db
        self.settings = settings or get_settings().swap
        self.event_bus = event_bus or get_event_bus()
        self.schedule_store = schedule_store or SqlScheduleStore(db)
        self.directory = directory or SqlStudentDirectory(db)

        self.registry = SwapRegistry(db)
        self.lifecycle = MatchLifecycle(self.registry, self.directory, self.event_bus)
        self.finder = MutualMatchFinder(
            self.registry,
            ConflictChecker(self.schedule_store),
            self.lifecycle,
        )
        self.sweeper = SwapSweeper(self.registry, self.finder, self.event_bus)

    # =========================================================================
    # Swap requests
    # =========================================================================

    async def create_swap_request(
        self,
        requester_id: str,
        offered_course_id: str | None,
        desired_course_id: str | None,
        priority: int | None = None,
        notes: str | None = None,
    ) -> CreateSwapResult:
        """Create a swap request and try to match it right away.

        The request is stored before matching starts. If matching fails
        on an unavailable dependency the request stays active and the
        failure is reported in match_result.error.

        Args:
            requester_id: Student creating the request.
            offered_course_id: Course the student holds and gives up.
            desired_course_id: Course the student wants.
            priority: Urgency, defaults to the configured default.
            notes: Optional free-text note.

        Returns:
            The stored request and the outcome of the match attempt.

        Raises:
            MissingCourseError: If a course id is missing.
            SelfSwapError: If both course ids are the same.
            InvalidPriorityError: If priority is out of bounds.
            InvalidInputError: If notes are too long.
            NotEnrolledError: If the student is not enrolled in the offered course.
            DuplicateSwapRequestError: If an active request for the pair exists.
            DependencyError: If the registry or schedule store is unreachable.
        """
        if not offered_course_id or not desired_course_id:
            raise MissingCourseError()
        if offered_course_id == desired_course_id:
            raise SelfSwapError(offered_course_id)

        priority = self.settings.default_priority if priority is None else priority
        self._validate_priority(priority)
        notes = self._clean_notes(notes)

        async with self._dependency_guard("create swap request"):
            if not await self.schedule_store.is_enrolled(requester_id, offered_course_id):
                raise NotEnrolledError(requester_id, offered_course_id)

            existing = await self.registry.find_active_request(
                requester_id, offered_course_id, desired_course_id
            )
            if existing is not None:
                raise DuplicateSwapRequestError(existing.id)

            request = await self.registry.add_request(
                requester_id=requester_id,
                offered_course_id=offered_course_id,
                desired_course_id=desired_course_id,
                priority=priority,
                expires_at=days_from_now(self.settings.request_ttl_days),
                notes=notes,
            )

        logger.info(
            "Created swap request %s: student=%s, %s -> %s, priority=%s",
            request.id,
            requester_id,
            offered_course_id,
            desired_course_id,
            priority,
        )
        await self.event_bus.publish(
            EventTypes.SwapRequest.CREATED,
            {"request_id": request.id},
            recipients=[requester_id],
        )

        match_result = await self._match_new_request(request)
        if match_result.matched:
            request = request.model_copy(update={"status": SwapRequestStatus.MATCHED})

        return CreateSwapResult(request=request, match_result=match_result)

    async def update_swap_request(
        self,
        request_id: str,
        requester_id: str,
        priority: int | None = None,
        notes: str | None = None,
    ) -> SwapRequest:
        """Change the priority and/or notes of the student's active request.

        Raises:
            SwapRequestNotFoundError: If missing or no longer active.
            NotRequestOwnerError: If the request belongs to another student.
            InvalidPriorityError: If priority is out of bounds.
        """
        if priority is not None:
            self._validate_priority(priority)
        notes = self._clean_notes(notes)

        async with self._dependency_guard("update swap request"):
            request = await self._get_owned_request(request_id, requester_id)
            if request.status is not SwapRequestStatus.ACTIVE:
                raise SwapRequestNotFoundError(request_id)

            if not await self.registry.update_request_fields(request_id, priority, notes):
                raise SwapRequestNotFoundError(request_id)

            updated = await self.registry.get_request(request_id)

        logger.info("Updated swap request %s", request_id)
        return updated or request

    async def cancel_swap_request(self, request_id: str, requester_id: str) -> SwapRequest:
        """Withdraw the student's active request from the pool.

        Raises:
            SwapRequestNotFoundError: If the request does not exist.
            NotRequestOwnerError: If the request belongs to another student.
            ConflictError: If the request is not active (e.g. already matched).
        """
        async with self._dependency_guard("cancel swap request"):
            request = await self._get_owned_request(request_id, requester_id)
            if request.status is not SwapRequestStatus.ACTIVE:
                raise ConflictError(
                    "Only active swap requests can be cancelled",
                    {"request_id": request_id, "status": request.status.value},
                )

            cancelled = await self.registry.transition_request(
                request_id,
                SwapRequestStatus.ACTIVE,
                SwapRequestStatus.CANCELLED,
            )
            if not cancelled:
                raise StaleStateError(request_id, SwapRequestStatus.ACTIVE.value)

        logger.info("Cancelled swap request %s", request_id)
        await self.event_bus.publish(
            EventTypes.SwapRequest.CANCELLED,
            {"request_id": request_id},
            recipients=[requester_id],
        )
        return request.model_copy(update={"status": SwapRequestStatus.CANCELLED})

    async def get_swap_request(self, request_id: str, requester_id: str) -> SwapRequest:
        """Get one of the student's requests.

        Raises:
            SwapRequestNotFoundError: If the request does not exist.
            NotRequestOwnerError: If the request belongs to another student.
        """
        async with self._dependency_guard("get swap request"):
            return await self._get_owned_request(request_id, requester_id)

    async def list_swap_requests(
        self,
        requester_id: str,
        status: SwapRequestStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[SwapRequest], int]:
        """List the student's requests, newest first.

        Returns:
            Tuple of (requests on the page, total matching requests).
        """
        offset, limit = self._paginate(page, limit)
        async with self._dependency_guard("list swap requests"):
            return await self.registry.list_requests(requester_id, status, offset, limit)

    # =========================================================================
    # Swap matches
    # =========================================================================

    async def list_matches(
        self,
        student_id: str,
        status: MatchStatus | None = None,
        page: int = 1,
        limit: int = 20,
    ) -> tuple[list[SwapMatch], int]:
        """List matches the student takes part in, newest first.

        Returns:
            Tuple of (matches on the page, total matching matches).
        """
        offset, limit = self._paginate(page, limit)
        async with self._dependency_guard("list swap matches"):
            return await self.registry.list_matches(student_id, status, offset, limit)

    async def confirm_match(self, match_id: str, student_id: str) -> ConfirmResult:
        async with self._dependency_guard("confirm swap match"):
            return await self.lifecycle.confirm(match_id, student_id)

    async def reject_match(self, match_id: str, student_id: str) -> RejectResult:
        async with self._dependency_guard("reject swap match"):
            return await self.lifecycle.reject(match_id, student_id)

    async def get_contact_info(self, match_id: str, student_id: str) -> ContactDetails:
        async with self._dependency_guard("get contact info"):
            return await self.lifecycle.get_contact_info(match_id, student_id)

    async def mark_completed(self, match_id: str, student_id: str) -> CompletionResult:
        async with self._dependency_guard("complete swap match"):
            return await self.lifecycle.mark_completed(match_id, student_id)

    async def sweep(self) -> SweepReport:
        """Expire overdue requests and re-run matching over the active pool."""
        async with self._dependency_guard("sweep swap requests"):
            return await self.sweeper.sweep()

    # =========================================================================
    # Helpers
    # =========================================================================

    @asynccontextmanager
    async def _dependency_guard(self, action: str) -> AsyncIterator[None]:
        """Translate database failures into DependencyError."""
        try:
            yield
        except DatabaseError as e:
            logger.error("Failed to %s: %s", action, e)
            await self.registry.rollback()
            raise DependencyError(f"Failed to {action}", {"error": str(e)}) from e

    async def _match_new_request(self, request: SwapRequest) -> MatchResult:
        try:
            return await self.finder.process_swap_request(request.id)
        except SwapRequestNotFoundError:
            # Cancelled or claimed by a concurrent caller since it was stored
            return MatchResult(matched=False)
        except (DatabaseError, DependencyError) as e:
            logger.error("Matching failed for swap request %s: %s", request.id, e)
            await self.registry.rollback()
            return MatchResult(matched=False, error=str(e))

    async def _get_owned_request(self, request_id: str, requester_id: str) -> SwapRequest:
        request = await self.registry.get_request(request_id)
        if request is None:
            raise SwapRequestNotFoundError(request_id, "Swap request not found")
        if request.requester_id != requester_id:
            raise NotRequestOwnerError(request_id, requester_id)
        return request

    def _validate_priority(self, priority: int) -> None:
        if not self.settings.min_priority <= priority <= self.settings.max_priority:
            raise InvalidPriorityError(
                priority,
                self.settings.min_priority,
                self.settings.max_priority,
            )

    def _clean_notes(self, notes: str | None) -> str | None:
        if notes is None:
            return None
        notes = notes.strip()
        if len(notes) > self.settings.notes_max_length:
            raise InvalidInputError(
                f"Notes must be at most {self.settings.notes_max_length} characters",
                {"length": len(notes)},
            )
        return notes

    def _paginate(self, page: int, limit: int) -> tuple[int, int]:
        page = max(page, 1)
        limit = min(max(limit, 1), self.settings.page_size_max)
        return (page - 1) * limit, limit
