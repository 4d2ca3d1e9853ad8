# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Pytest configuration and shared fixtures.

Database-backed tests run against an in-memory SQLite database through
aiosqlite, with the real ORM models and registry.
"""

import os
from collections.abc import AsyncGenerator
from datetime import time

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from courseswap.core.config import SwapSettings
from courseswap.infrastructure.database.models import (
    Base,
    Course,
    CourseTimeSlot,
    Enrollment,
    Profile,
)
from courseswap.infrastructure.events import EventBus, EventData

# Actors must bind to the in-memory StubBroker, never Redis
os.environ.setdefault("DRAMATIQ_TEST_MODE", "true")


# =============================================================================
# Marker Configuration
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: mark test as a unit test")
    config.addinivalue_line("markers", "slow: mark test as slow running")


# =============================================================================
# Database Fixtures
# =============================================================================


@pytest_asyncio.fixture(scope="function")
async def db_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create an in-memory SQLite engine with all tables."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """Create an async session on the test engine."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


# =============================================================================
# Seed Helpers
# =============================================================================


class Seeder:
    """Inserts profiles, courses, time slots and enrollments."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self._counter = 0

    async def student(self, name: str, school_id: str | None = None) -> str:
        self._counter += 1
        profile = Profile(
            full_name=name,
            email=f"{name.lower().replace(' ', '.')}{self._counter}@school.edu",
            student_id=school_id or f"S{self._counter:05d}",
        )
        self.session.add(profile)
        await self.session.commit()
        return profile.id

    async def course(
        self,
        code: str,
        slots: list[tuple[int, str, str]] | None = None,
        title: str | None = None,
    ) -> str:
        """Create a course with (day_of_week, "HH:MM", "HH:MM") slots."""
        course = Course(course_code=code, course_title=title or f"{code} Title")
        self.session.add(course)
        await self.session.flush()
        for day, start, end in slots or []:
            self.session.add(
                CourseTimeSlot(
                    course_id=course.id,
                    day_of_week=day,
                    start_time=time.fromisoformat(start),
                    end_time=time.fromisoformat(end),
                )
            )
        await self.session.commit()
        return course.id

    async def enroll(self, student_id: str, course_id: str, status: str = "enrolled") -> None:
        self.session.add(
            Enrollment(student_id=student_id, course_id=course_id, enrollment_status=status)
        )
        await self.session.commit()


@pytest_asyncio.fixture
async def seed(db_session: AsyncSession) -> Seeder:
    return Seeder(db_session)


# =============================================================================
# Event and Settings Fixtures
# =============================================================================


@pytest.fixture
def event_bus() -> EventBus:
    """Provide a fresh event bus per test."""
    return EventBus()


@pytest.fixture
def recorded_events(event_bus: EventBus) -> list[EventData]:
    """Capture every event published on the test bus."""
    events: list[EventData] = []

    async def record(event: EventData) -> None:
        events.append(event)

    event_bus.subscribe("*", record)
    return events


@pytest.fixture
def swap_settings() -> SwapSettings:
    return SwapSettings(
        request_ttl_days=30,
        default_priority=1,
        min_priority=1,
        max_priority=5,
        notes_max_length=500,
        page_size_max=100,
    )

