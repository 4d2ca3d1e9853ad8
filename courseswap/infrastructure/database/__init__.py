# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Database infrastructure for the swap engine.

This package provides:
- connection: Async engine/session lifecycle and worker-thread sessions
- models: ORM tables for swap requests, swap matches and the schedule data
- registry: Conditional-update data access for requests and matches
- schedule_store: SQL schedule store and student directory

Example:
    from courseswap.infrastructure.database import get_session, SwapRegistry

    async with get_session() as session:
        registry = SwapRegistry(session)
        request = await registry.get_request(request_id)
"""

from courseswap.infrastructure.database.connection import (
    DatabaseError,
    check_database_connection,
    clear_thread_db_connections,
    close_database,
    create_schema,
    get_engine,
    get_session,
    get_sessionmaker,
    get_worker_sessionmaker,
    init_database,
)
from courseswap.infrastructure.database.models import (
    Base,
    Course,
    CourseTimeSlot,
    Enrollment,
    Profile,
    SwapMatchRecord,
    SwapRequestRecord,
)
from courseswap.infrastructure.database.registry import SwapRegistry
from courseswap.infrastructure.database.schedule_store import (
    SqlScheduleStore,
    SqlStudentDirectory,
)

__all__ = [
    # Connection
    "DatabaseError",
    "check_database_connection",
    "clear_thread_db_connections",
    "close_database",
    "create_schema",
    "get_engine",
    "get_session",
    "get_sessionmaker",
    "get_worker_sessionmaker",
    "init_database",
    # Models
    "Base",
    "Course",
    "CourseTimeSlot",
    "Enrollment",
    "Profile",
    "SwapMatchRecord",
    "SwapRequestRecord",
    # Data access
    "SwapRegistry",
    "SqlScheduleStore",
    "SqlStudentDirectory",
]
