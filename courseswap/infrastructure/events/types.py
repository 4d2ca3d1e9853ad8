# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Centralized event type definitions for CourseSwap.

The notification transport subscribes to these events and forwards them
to the students named in each event's recipients.

Adding a new event:
1. Add constant to the appropriate class here
2. If students should be notified, add it to NOTIFY_EVENTS
"""


class EventTypes:
    """All event types in CourseSwap organized by record."""

    class SwapRequest:
        """Swap request lifecycle events."""

        CREATED = "swap.request.created"
        CANCELLED = "swap.request.cancelled"
        EXPIRED = "swap.request.expired"

    class SwapMatch:
        """Swap match lifecycle events."""

        CREATED = "swap.match.created"
        CONFIRMATION_RECORDED = "swap.match.confirmation_recorded"
        CONFIRMED = "swap.match.confirmed"
        REJECTED = "swap.match.rejected"
        COMPLETION_RECORDED = "swap.match.completion_recorded"
        COMPLETED = "swap.match.completed"


class EventPatterns:
    """Wildcard patterns for subscribing to groups of events."""

    ALL_REQUEST = "swap.request.*"
    ALL_MATCH = "swap.match.*"
    ALL = "swap.*"


# Events that produce a student-facing notification
NOTIFY_EVENTS = frozenset(
    {
        EventTypes.SwapRequest.EXPIRED,
        EventTypes.SwapMatch.CREATED,
        EventTypes.SwapMatch.CONFIRMED,
        EventTypes.SwapMatch.REJECTED,
        EventTypes.SwapMatch.COMPLETED,
    }
)
