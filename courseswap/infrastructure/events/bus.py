# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""In-memory event bus for CourseSwap.

Swap components publish lifecycle events here; the notification transport
and any other listeners subscribe by event type string.

The EventBus supports:
- Exact event type matching (e.g., "swap.match.confirmed")
- Wildcard pattern matching (e.g., "swap.match.*")
- Async handlers, several per event type

Example:
    from courseswap.infrastructure.events import get_event_bus, EventTypes

    event_bus = get_event_bus()

    async def on_match_created(event):
        for student_id in event.recipients:
            await notify(student_id, "You have a new swap match!")

    event_bus.subscribe(EventTypes.SwapMatch.CREATED, on_match_created)

    await event_bus.publish(
        EventTypes.SwapMatch.CREATED,
        {"match_id": "m1"},
        recipients=["student-a", "student-b"],
    )
"""

import asyncio
import fnmatch
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable
from uuid import uuid4

from courseswap.utils.datetime import utc_now

logger = logging.getLogger(__name__)

# Type alias for event handlers
EventHandler = Callable[["EventData"], Awaitable[None]]


@dataclass
class EventData:
    """Container for event data with metadata.

    Attributes:
        event_type: The event type string.
        payload: The event payload data.
        recipients: Students the event concerns.
        event_id: Unique event identifier.
        timestamp: When the event was published.
    """

    event_type: str
    payload: dict[str, Any]
    recipients: list[str] = field(default_factory=list)
    event_id: str = field(default_factory=lambda: str(uuid4()))
    timestamp: datetime = field(default_factory=utc_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "event_id": self.event_id,
            "event_type": self.event_type,
            "payload": self.payload,
            "recipients": list(self.recipients),
            "timestamp": self.timestamp.isoformat(),
        }


def _is_pattern(event_type: str) -> bool:
    return "*" in event_type or "?" in event_type


class EventBus:
    """In-memory async event bus with pattern matching support.

    Designed for single-threaded async use within one process. Each
    Dramatiq worker thread publishes to the bus of its own process.

    Example:
        bus = EventBus()
        bus.subscribe("swap.match.created", handler)
        bus.subscribe("swap.*", audit_handler)
        await bus.publish("swap.match.created", {"match_id": "m1"})
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._pattern_handlers: dict[str, list[EventHandler]] = {}
        self._event_count = 0

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Subscribe a handler to an event type or wildcard pattern."""
        registry = self._pattern_handlers if _is_pattern(event_type) else self._handlers
        registry.setdefault(event_type, []).append(handler)
        logger.debug("Subscribed handler to: %s", event_type)

    def unsubscribe(self, event_type: str, handler: EventHandler) -> bool:
        """Unsubscribe a handler.

        Returns:
            True if handler was found and removed, False otherwise.
        """
        registry = self._pattern_handlers if _is_pattern(event_type) else self._handlers
        handlers = registry.get(event_type)
        if not handlers or handler not in handlers:
            return False
        handlers.remove(handler)
        if not handlers:
            del registry[event_type]
        return True

    async def publish(
        self,
        event_type: str,
        payload: dict[str, Any],
        recipients: list[str] | None = None,
    ) -> EventData:
        """Publish an event to all matching subscribers.

        Handlers run concurrently. A failing handler is logged and does
        not affect the others or the publisher.

        Args:
            event_type: The event type string.
            payload: Event data dictionary.
            recipients: Students the event concerns.

        Returns:
            EventData object with event metadata.
        """
        event = EventData(
            event_type=event_type,
            payload=payload,
            recipients=list(recipients or []),
        )
        self._event_count += 1

        handlers_to_call: list[EventHandler] = list(self._handlers.get(event_type, []))
        for pattern, pattern_handlers in self._pattern_handlers.items():
            if fnmatch.fnmatch(event_type, pattern):
                handlers_to_call.extend(pattern_handlers)

        if not handlers_to_call:
            logger.debug("No handlers for event: %s", event_type)
            return event

        logger.debug("Publishing event %s to %d handlers", event_type, len(handlers_to_call))

        async def safe_call(handler: EventHandler) -> None:
            try:
                await handler(event)
            except Exception as e:
                logger.error(
                    "Handler error for event %s: %s",
                    event_type,
                    str(e),
                    exc_info=True,
                )

        await asyncio.gather(*[safe_call(handler) for handler in handlers_to_call])
        return event

    def clear(self) -> None:
        """Remove all subscriptions."""
        self._handlers.clear()
        self._pattern_handlers.clear()

    def get_stats(self) -> dict[str, Any]:
        """Get subscription and event counts."""
        return {
            "exact_subscriptions": len(self._handlers),
            "pattern_subscriptions": len(self._pattern_handlers),
            "total_handlers": sum(len(h) for h in self._handlers.values())
            + sum(len(h) for h in self._pattern_handlers.values()),
            "events_published": self._event_count,
        }


# Singleton instance
_event_bus: EventBus | None = None


def get_event_bus() -> EventBus:
    """Get the singleton event bus instance."""
    global _event_bus
    if _event_bus is None:
        _event_bus = EventBus()
    return _event_bus


def reset_event_bus() -> None:
    """Reset the event bus singleton.

    Useful for testing to ensure clean state between tests.
    """
    global _event_bus
    if _event_bus is not None:
        _event_bus.clear()
    _event_bus = None
