# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""DateTime utilities for CourseSwap.

Design Decisions:
-----------------
1. All timestamps are stored in UTC (PostgreSQL TIMESTAMPTZ)
2. All Python datetimes are timezone-aware (with timezone.utc)
3. Values read back from drivers that drop tzinfo (SQLite) pass through
   ensure_utc() before they are compared

Usage:
------
    from courseswap.utils.datetime import utc_now

    now = utc_now()
    expires_at = days_from_now(30)
"""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    """Get current UTC time as timezone-aware datetime.

    Returns:
        Timezone-aware datetime representing current UTC time.
    """
    return datetime.now(timezone.utc)


def ensure_utc(dt: datetime | None) -> datetime | None:
    """Ensure a datetime is timezone-aware UTC.

    Args:
        dt: A datetime object (naive or aware) or None.

    Returns:
        Timezone-aware UTC datetime or None.

    Note:
        - If dt is None, returns None
        - If dt is naive, assumes UTC and adds tzinfo
        - If dt is aware, converts to UTC
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    return dt.astimezone(timezone.utc)


def days_from_now(days: int, start: datetime | None = None) -> datetime:
    """Get a datetime N days after start (defaults to now).

    Args:
        days: Number of days to add.
        start: Optional reference point.

    Returns:
        Timezone-aware UTC datetime.
    """
    base = ensure_utc(start) if start is not None else utc_now()
    return base + timedelta(days=days)


def is_expired(expiry: datetime | None, now: datetime | None = None) -> bool:
    """Check if a datetime has passed (is expired).

    Args:
        expiry: The expiry datetime to check.
        now: Optional reference point, defaults to the current time.

    Returns:
        True if expired or expiry is None, False otherwise.
    """
    if expiry is None:
        return True

    reference = ensure_utc(now) if now is not None else utc_now()
    return reference > ensure_utc(expiry)


def format_iso(dt: datetime | None) -> str | None:
    """Format a datetime as ISO 8601 string.

    Args:
        dt: Datetime to format.

    Returns:
        ISO 8601 formatted string or None.
    """
    if dt is None:
        return None

    return ensure_utc(dt).isoformat()


# Aliases for convenience
now = utc_now
