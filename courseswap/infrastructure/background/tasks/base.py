# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Base utilities for Dramatiq tasks.

Thread-Local Event Loop Management:
    Dramatiq workers run several threads per process. SQLAlchemy async
    engines are bound to the event loop they were created in, so each
    worker thread keeps one persistent event loop and reuses it for every
    task it runs. When a thread gets a fresh loop its cached engine is
    dropped and rebuilt on first use.
"""

import asyncio
import logging
import threading
from typing import Any, Coroutine, TypeVar

from courseswap.infrastructure.database.connection import clear_thread_db_connections

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Thread-local storage for event loops
_thread_local = threading.local()


def _get_thread_event_loop() -> asyncio.AbstractEventLoop:
    """Get or create a persistent event loop for the current thread."""
    loop = getattr(_thread_local, "event_loop", None)

    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.event_loop = loop

        # Engines cached for this thread belong to the previous loop
        clear_thread_db_connections()

        logger.debug(
            "Created new event loop for thread %s",
            threading.current_thread().name,
        )

    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run async coroutine in sync Dramatiq worker context.

    Args:
        coro: Coroutine to run.

    Returns:
        Result of coroutine.

    Example:
        @dramatiq.actor
        def my_task():
            async def _process():
                async with get_worker_sessionmaker()() as session:
                    ...
            return run_async(_process())
    """
    loop = _get_thread_event_loop()
    return loop.run_until_complete(coro)
