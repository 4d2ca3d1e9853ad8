# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Swap background tasks for CourseSwap.

Tasks that re-scan the swap request pool outside the request path.
"""

import logging
from typing import Any

import dramatiq

from courseswap.infrastructure.background.broker import Priority, Queues, setup_dramatiq
from courseswap.infrastructure.background.tasks.base import run_async
from courseswap.utils.logging import bind_context, clear_context

# Setup broker before defining actors
setup_dramatiq()

logger = logging.getLogger(__name__)


@dramatiq.actor(
    queue_name=Queues.SWAPS,
    max_retries=1,
    time_limit=600000,  # 10 minutes
    priority=Priority.NORMAL,
)
def sweep_swap_requests() -> dict[str, Any]:
    """Expire overdue swap requests and re-run matching over the pool.

    Returns:
        Sweep summary with processed/matched/errors/expired counts.
    """

    async def _sweep() -> dict[str, Any]:
        from courseswap.domains.swap.service import SwapService
        from courseswap.infrastructure.database.connection import get_worker_sessionmaker

        bind_context(task="sweep_swap_requests")
        try:
            sessionmaker = get_worker_sessionmaker()
            async with sessionmaker() as session:
                report = await SwapService(session).sweep()

            summary = report.to_summary()
            logger.info("Swap sweep task finished: %s", summary)
            return {
                **summary,
                "started_at": report.started_at.isoformat(),
                "finished_at": report.finished_at.isoformat() if report.finished_at else None,
            }

        except Exception as e:
            logger.error("Swap sweep task failed: %s", str(e), exc_info=True)
            return {"error": str(e)}
        finally:
            clear_context()

    return run_async(_sweep())


def get_swap_actors() -> list:
    """Get all swap actors."""
    return [
        sweep_swap_requests,
    ]
