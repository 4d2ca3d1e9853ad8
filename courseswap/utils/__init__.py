# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Utility functions and helpers for CourseSwap.

This package contains cross-cutting utilities:
- logging: Structured logging with structlog
- datetime: Timezone-aware datetime operations
"""

from courseswap.utils.datetime import (
    days_from_now,
    ensure_utc,
    format_iso,
    is_expired,
    now,
    utc_now,
)
from courseswap.utils.logging import bind_context, clear_context, get_logger, setup_logging

__all__ = [
    # Logging
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    # Datetime
    "utc_now",
    "now",
    "ensure_utc",
    "days_from_now",
    "is_expired",
    "format_iso",
]
