# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Schedule conflict detection for course swaps.

Overlap rule, per weekday, on half-open intervals:
    candidate.start < existing.end AND candidate.end > existing.start

Slots that merely touch (one ends when the other starts) do not conflict.
"""

import logging
from collections.abc import Iterable

from courseswap.domains.swap.exceptions import ScheduleConflictError
from courseswap.domains.swap.models import TimeSlot
from courseswap.domains.swap.ports import ScheduleStore

logger = logging.getLogger(__name__)


def has_conflict(existing_slots: Iterable[TimeSlot], candidate_slots: Iterable[TimeSlot]) -> bool:
    """Check whether any candidate slot overlaps any existing slot.

    Returns on the first overlapping pair. Empty inputs never conflict.

    Args:
        existing_slots: Slots the student already attends.
        candidate_slots: Slots of the course the student would gain.

    Returns:
        True if at least one pair overlaps.
    """
    candidates = list(candidate_slots)
    if not candidates:
        return False

    for existing in existing_slots:
        for candidate in candidates:
            if existing.overlaps(candidate):
                return True
    return False


def find_conflicting_pairs(
    existing_slots: Iterable[TimeSlot],
    candidate_slots: Iterable[TimeSlot],
) -> list[tuple[TimeSlot, TimeSlot]]:
    """Find every overlapping (existing, candidate) pair.

    Used to explain a rejected swap; matching itself only needs has_conflict().
    """
    candidates = list(candidate_slots)
    return [
        (existing, candidate)
        for existing in existing_slots
        for candidate in candidates
        if existing.overlaps(candidate)
    ]


def _describe(slot: TimeSlot) -> dict[str, object]:
    return {
        "course_id": slot.course_id,
        "day_of_week": slot.day_of_week,
        "start_time": slot.start_time.strftime("%H:%M"),
        "end_time": slot.end_time.strftime("%H:%M"),
    }


class ConflictChecker:
    """Decides whether two students can trade courses without clashes.

    Attributes:
        schedule_store: Source of enrolled and per-course time slots.
    """

    def __init__(self, schedule_store: ScheduleStore) -> None:
        self.schedule_store = schedule_store

    async def check_swap(
        self,
        student_a_id: str,
        student_b_id: str,
        course_a_id: str,
        course_b_id: str,
    ) -> None:
        """Verify the swap is safe for both students.

        Student A gives course_a and gains course_b; student B gives
        course_b and gains course_a. Each student's schedule loses the
        slots of the course they give up before the check.

        Raises:
            ScheduleConflictError: If either student would end up with
                overlapping classes.
            LookupError: If a course or schedule cannot be loaded.
        """
        # Sequential: SQL stores share one AsyncSession, which forbids
        # concurrent operations
        schedule_a = await self.schedule_store.get_enrolled_time_slots(student_a_id)
        schedule_b = await self.schedule_store.get_enrolled_time_slots(student_b_id)
        slots_a = await self.schedule_store.get_course_time_slots(course_a_id)
        slots_b = await self.schedule_store.get_course_time_slots(course_b_id)

        remaining_a = [slot for slot in schedule_a if slot.course_id != course_a_id]
        remaining_b = [slot for slot in schedule_b if slot.course_id != course_b_id]

        clashes_a = find_conflicting_pairs(remaining_a, slots_b)
        clashes_b = find_conflicting_pairs(remaining_b, slots_a)

        if clashes_a or clashes_b:
            raise ScheduleConflictError(
                "Swap would create overlapping class times",
                {
                    "student_a": [
                        {"existing": _describe(e), "incoming": _describe(c)} for e, c in clashes_a
                    ],
                    "student_b": [
                        {"existing": _describe(e), "incoming": _describe(c)} for e, c in clashes_b
                    ],
                },
            )

    async def can_swap_without_conflicts(
        self,
        student_a_id: str,
        student_b_id: str,
        course_a_id: str,
        course_b_id: str,
    ) -> bool:
        """Boolean form of check_swap() used by the matching pipeline.

        Lookup failures count as unsafe: the candidate is skipped rather
        than failing the whole match attempt.

        Returns:
            True only if neither student would have a conflict.
        """
        try:
            await self.check_swap(student_a_id, student_b_id, course_a_id, course_b_id)
        except ScheduleConflictError as e:
            logger.debug(
                "Swap %s<->%s blocked by schedule conflict: %s",
                student_a_id,
                student_b_id,
                e.details,
            )
            return False
        except Exception as e:
            logger.warning(
                "Conflict check failed for %s<->%s (courses %s/%s), treating as unsafe: %s",
                student_a_id,
                student_b_id,
                course_a_id,
                course_b_id,
                e,
            )
            return False

        return True
