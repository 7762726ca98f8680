"""
EventBus module for the propsim simulation engine.

This module provides the synchronous publish/subscribe primitive that every
engine component uses to announce and react to domain events such as
`tenant:rent_paid` or `achievement:completed`.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

logger = logging.getLogger(__name__)

EventHandler = Callable[[Any], None]


class EventBus:
    """
    Synchronous event bus with per-handler isolation.

    Responsibilities:
    - Handler registration and removal by reference
    - Synchronous dispatch in registration order
    - Isolation of failing handlers so siblings still run
    - Dropping re-entrant emits of an event name that is already dispatching

    Example:
        >>> bus = EventBus()
        >>> seen = []
        >>> bus.on("day:advanced", seen.append)
        >>> bus.emit("day:advanced", {"day": 2})
        >>> seen
        [{'day': 2}]
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}
        self._dispatching: set[str] = set()

    def on(self, name: str, handler: EventHandler) -> None:
        """
        Register a handler for an event name.

        Args:
            name: Event name, e.g. "tenant:added"
            handler: Callable receiving the event payload
        """
        self._handlers.setdefault(name, []).append(handler)

    def off(self, name: str, handler: EventHandler) -> bool:
        """
        Remove a previously registered handler.

        Args:
            name: Event name
            handler: The exact handler object passed to `on`

        Returns:
            True if the handler was registered and has been removed
        """
        handlers = self._handlers.get(name)
        if not handlers:
            return False
        try:
            handlers.remove(handler)
        except ValueError:
            return False
        if not handlers:
            del self._handlers[name]
        return True

    def emit(self, name: str, payload: Any = None) -> None:
        """
        Dispatch an event to all handlers registered for `name`.

        Handlers run in registration order. An exception raised by one handler
        is logged and does not prevent the remaining handlers from running.
        Emitting `name` again from inside one of its own handlers is dropped.

        Args:
            name: Event name
            payload: Event payload passed to every handler
        """
        if name in self._dispatching:
            logger.warning("Dropping re-entrant emit of '%s' while its handlers are running", name)
            return
        handlers = list(self._handlers.get(name, ()))
        if not handlers:
            return
        self._dispatching.add(name)
        try:
            for handler in handlers:
                try:
                    handler(payload)
                except Exception:
                    logger.exception("Handler %r failed for event '%s'", handler, name)
        finally:
            self._dispatching.discard(name)

    def handler_count(self, name: str) -> int:
        return len(self._handlers.get(name, ()))

    def clear(self) -> None:
        self._handlers.clear()
