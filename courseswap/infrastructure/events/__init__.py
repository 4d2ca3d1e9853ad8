# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Event infrastructure for CourseSwap.

Components:
- EventBus: In-memory pub/sub with pattern matching
- EventTypes: Swap request and swap match event constants

Quick Start:
    from courseswap.infrastructure.events import get_event_bus, EventTypes

    event_bus = get_event_bus()
    event_bus.subscribe(EventTypes.SwapMatch.CONFIRMED, my_handler)
"""

from courseswap.infrastructure.events.bus import (
    EventBus,
    EventData,
    EventHandler,
    get_event_bus,
    reset_event_bus,
)
from courseswap.infrastructure.events.types import NOTIFY_EVENTS, EventPatterns, EventTypes

__all__ = [
    # Event Bus
    "EventBus",
    "EventData",
    "EventHandler",
    "get_event_bus",
    "reset_event_bus",
    # Event Types
    "EventTypes",
    "EventPatterns",
    "NOTIFY_EVENTS",
]
