"""
Scheduler module for the propsim simulation engine.

Delay-based one-shot task registry. Tasks are keyed by id, counted down by
`update(delta)` once per engine tick and fired when their delay runs out.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable

logger = logging.getLogger(__name__)

# Slack for float drift when many fractional deltas sum to a whole delay.
DUE_EPSILON = 1e-9


@dataclass
class ScheduledTask:
    """A pending one-shot task."""

    task_id: str
    callback: Callable[[], None]
    remaining: float


class Scheduler:
    """
    Cooperative one-shot timer registry.

    Due tasks fire in insertion order. Rescheduling an existing id replaces
    the pending task and moves it to the end of the order.

    Example:
        >>> scheduler = Scheduler()
        >>> fired = []
        >>> scheduler.schedule("weekly", lambda: fired.append("weekly"), 7)
        >>> scheduler.update(7)
        >>> fired
        ['weekly']
    """

    def __init__(self) -> None:
        self._tasks: dict[str, ScheduledTask] = {}

    def schedule(self, task_id: str, callback: Callable[[], None], delay: float) -> None:
        """
        Register a task to fire after `delay` ticks.

        Args:
            task_id: Unique task identifier
            callback: Zero-argument callable
            delay: Delay in the same unit passed to `update`
        """
        self._tasks.pop(task_id, None)
        self._tasks[task_id] = ScheduledTask(task_id=task_id, callback=callback, remaining=float(delay))

    def cancel(self, task_id: str) -> bool:
        """Remove a pending task. Returns True if it existed."""
        return self._tasks.pop(task_id, None) is not None

    def update(self, delta: float) -> list[str]:
        """
        Advance every pending task by `delta` and fire the ones that are due.

        The due set is computed before any callback runs, so callbacks may
        schedule or cancel tasks without affecting this pass.

        Args:
            delta: Elapsed ticks since the previous update

        Returns:
            Ids of the tasks that fired, in firing order
        """
        due: list[ScheduledTask] = []
        for task in self._tasks.values():
            task.remaining -= delta
            if task.remaining <= DUE_EPSILON:
                due.append(task)

        fired: list[str] = []
        for task in due:
            # A previous callback may have cancelled or replaced this task.
            if self._tasks.get(task.task_id) is not task:
                continue
            del self._tasks[task.task_id]
            try:
                task.callback()
            except Exception:
                logger.exception("Scheduled task '%s' failed", task.task_id)
            fired.append(task.task_id)
        return fired

    def is_scheduled(self, task_id: str) -> bool:
        return task_id in self._tasks

    def remaining(self, task_id: str) -> float | None:
        task = self._tasks.get(task_id)
        return task.remaining if task else None

    def pending(self) -> list[str]:
        return list(self._tasks.keys())

    def clear(self) -> None:
        self._tasks.clear()

    def __len__(self) -> int:
        return len(self._tasks)
