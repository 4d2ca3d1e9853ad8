# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task infrastructure for CourseSwap.

Provides background processing with Dramatiq:
- Redis broker for message persistence and durability
- The swap sweep actor
- APScheduler integration for the periodic sweep

Quick Start:
    from courseswap.infrastructure.background import setup_dramatiq, start_scheduler

    setup_dramatiq()
    await start_scheduler()

Running Workers:
    dramatiq courseswap.infrastructure.background.tasks --processes 2 --threads 4
"""

from courseswap.infrastructure.background.broker import (
    BrokerManager,
    Priority,
    Queues,
    get_broker,
    get_broker_manager,
    setup_dramatiq,
    shutdown_dramatiq,
)
from courseswap.infrastructure.background.scheduler import (
    DramatiqScheduler,
    ScheduledTask,
    get_scheduler,
    start_scheduler,
    stop_scheduler,
)

# Task actors are imported lazily to avoid setting up the broker on import
# Use: from courseswap.infrastructure.background.tasks import sweep_swap_requests

__all__ = [
    # Broker
    "BrokerManager",
    "Priority",
    "Queues",
    "get_broker",
    "get_broker_manager",
    "setup_dramatiq",
    "shutdown_dramatiq",
    # Scheduler
    "DramatiqScheduler",
    "ScheduledTask",
    "get_scheduler",
    "start_scheduler",
    "stop_scheduler",
]
