# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Background task actors for CourseSwap.

Usage:
    from courseswap.infrastructure.background.tasks import sweep_swap_requests

    sweep_swap_requests.send()

Running Workers:
    dramatiq courseswap.infrastructure.background.tasks --processes 2 --threads 4
"""

from courseswap.core.config import get_settings
from courseswap.infrastructure.background.tasks.base import run_async
from courseswap.infrastructure.background.tasks.swaps import (
    get_swap_actors,
    sweep_swap_requests,
)
from courseswap.utils.logging import setup_logging

# Worker processes import this package first
setup_logging(get_settings())


def get_all_actors() -> list:
    """Get every actor for worker registration."""
    return [*get_swap_actors()]


__all__ = [
    "sweep_swap_requests",
    "get_swap_actors",
    "get_all_actors",
    "run_async",
]
