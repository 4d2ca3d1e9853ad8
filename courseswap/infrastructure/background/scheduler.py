# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Scheduler for periodic Dramatiq tasks.

Uses APScheduler to send Dramatiq actors on interval triggers.
The default job is the swap sweep, every SWAP_SWEEP_INTERVAL_MINUTES.

Example:
    from courseswap.infrastructure.background.scheduler import start_scheduler

    # Start scheduler with default jobs (inside the running event loop)
    scheduler = await start_scheduler()
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable
from uuid import uuid4

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from courseswap.core.config import get_settings
from courseswap.utils.datetime import utc_now

logger = logging.getLogger(__name__)

SWEEP_TASK_NAME = "Swap Request Sweep"


@dataclass
class ScheduledTask:
    """Configuration for a scheduled Dramatiq task.

    Attributes:
        name: Human-readable task name.
        actor_name: Name of the Dramatiq actor to send.
        args: Positional arguments for the actor.
        kwargs: Keyword arguments for the actor.
        id: Unique task identifier.
        enabled: Whether the task is enabled.
        last_run: Last time the actor was sent.
        run_count: Total number of sends.
        error_count: Number of failed sends.
    """

    name: str
    actor_name: str
    args: tuple = field(default_factory=tuple)
    kwargs: dict[str, Any] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid4()))
    enabled: bool = True
    last_run: datetime | None = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary representation."""
        return {
            "id": self.id,
            "name": self.name,
            "actor_name": self.actor_name,
            "enabled": self.enabled,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class DramatiqScheduler:
    """Sends Dramatiq actors on interval schedules.

    Jobs are only registered with APScheduler while the scheduler is
    running; tasks added before start() are recorded but not triggered.

    Attributes:
        _scheduler: APScheduler instance.
        _tasks: Dictionary of scheduled tasks.
        _running: Whether scheduler is running.
    """

    def __init__(self) -> None:
        self._scheduler: AsyncIOScheduler | None = None
        self._tasks: dict[str, ScheduledTask] = {}
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    def _get_actor(self, actor_name: str) -> Callable[..., Any] | None:
        """Look up a Dramatiq actor by name in the tasks package."""
        from courseswap.infrastructure.background import tasks

        return getattr(tasks, actor_name, None)

    def _register(
        self,
        name: str,
        actor_name: str,
        args: tuple,
        kwargs: dict[str, Any] | None,
        enabled: bool,
    ) -> ScheduledTask:
        task = ScheduledTask(
            name=name,
            actor_name=actor_name,
            args=args,
            kwargs=kwargs or {},
            enabled=enabled,
        )
        self._tasks[task.id] = task
        return task

    def add_interval_task(
        self,
        name: str,
        actor_name: str,
        seconds: int = 0,
        minutes: int = 0,
        hours: int = 0,
        args: tuple = (),
        kwargs: dict[str, Any] | None = None,
        enabled: bool = True,
        start_immediately: bool = False,
    ) -> ScheduledTask:
        """Add an interval-scheduled task.

        Args:
            name: Task name.
            actor_name: Dramatiq actor to send.
            seconds: Interval seconds.
            minutes: Interval minutes.
            hours: Interval hours.
            args: Actor arguments.
            kwargs: Actor keyword arguments.
            enabled: Whether task is enabled.
            start_immediately: Run once right away.
        """
        task = self._register(name, actor_name, args, kwargs, enabled)

        if self._scheduler and enabled:
            trigger = IntervalTrigger(seconds=seconds, minutes=minutes, hours=hours)
            job_options: dict[str, Any] = {}
            # An explicit next_run_time of None would add the job paused
            if start_immediately:
                job_options["next_run_time"] = utc_now()
            self._scheduler.add_job(
                self._execute_task,
                trigger=trigger,
                args=[task.id],
                id=task.id,
                name=name,
                **job_options,
            )

        logger.info(
            "Added interval task: %s (every %dh %dm %ds)",
            name,
            hours,
            minutes,
            seconds,
        )
        return task

    async def _execute_task(self, task_id: str) -> None:
        """Send the task's actor to its queue."""
        task = self._tasks.get(task_id)
        if not task or not task.enabled:
            return

        logger.debug("Executing scheduled task: %s", task.name)

        try:
            actor = self._get_actor(task.actor_name)
            if actor is None:
                raise ValueError(f"Actor not found: {task.actor_name}")

            actor.send(*task.args, **task.kwargs)

            task.last_run = utc_now()
            task.run_count += 1
        except Exception as e:
            task.error_count += 1
            logger.error("Scheduled task %s failed: %s", task.name, str(e))

    def list_tasks(self) -> list[ScheduledTask]:
        return list(self._tasks.values())

    async def start(self) -> None:
        """Start the scheduler on the running event loop."""
        if self._running:
            return

        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._scheduler.start()
        self._running = True

        logger.info("Dramatiq scheduler started")

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        if self._scheduler:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None

        self._running = False
        logger.info("Dramatiq scheduler stopped")

    def get_stats(self) -> dict[str, Any]:
        """Get scheduler statistics."""
        return {
            "is_running": self._running,
            "task_count": len(self._tasks),
            "enabled_count": sum(1 for t in self._tasks.values() if t.enabled),
            "total_runs": sum(t.run_count for t in self._tasks.values()),
            "total_errors": sum(t.error_count for t in self._tasks.values()),
            "tasks": [t.to_dict() for t in self._tasks.values()],
        }


# Singleton instance
_scheduler: DramatiqScheduler | None = None


def get_scheduler() -> DramatiqScheduler:
    """Get the singleton scheduler instance."""
    global _scheduler
    if _scheduler is None:
        _scheduler = DramatiqScheduler()
    return _scheduler


async def start_scheduler() -> DramatiqScheduler:
    """Start the scheduler and register the default jobs.

    Returns:
        Started scheduler instance.
    """
    scheduler = get_scheduler()
    await scheduler.start()

    swap_settings = get_settings().swap
    if swap_settings.sweep_enabled:
        scheduler.add_interval_task(
            name=SWEEP_TASK_NAME,
            actor_name="sweep_swap_requests",
            minutes=swap_settings.sweep_interval_minutes,
        )
    else:
        logger.info("Swap sweep disabled (SWAP_SWEEP_ENABLED=false)")

    logger.info("Registered %d default scheduled tasks", len(scheduler.list_tasks()))
    return scheduler


async def stop_scheduler() -> None:
    """Stop the scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
