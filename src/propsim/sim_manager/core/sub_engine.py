"""
SubEngine contract.

Every domain engine plugged into the orchestrator implements
`initialize(game_state, event_bus)`, `update(delta_time)` and `cleanup()`.
Subscriptions made through `subscribe` are remembered by reference so
`cleanup` can remove exactly those handlers.
"""

from __future__ import annotations

import random
from abc import ABC, abstractmethod

from .event_bus import EventBus, EventHandler
from .game_state import GameState
from .scheduler import Scheduler


class SubEngine(ABC):
    """
    Base class for domain engines driven by the orchestrator tick.

    Args:
        rng: Injected random source; share one seeded instance for
            reproducible runs
    """

    name = "sub_engine"

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()
        self.scheduler = Scheduler()
        self._state: GameState | None = None
        self._bus: EventBus | None = None
        self._subscriptions: list[tuple[str, EventHandler]] = []

    @property
    def state(self) -> GameState:
        if self._state is None:
            raise RuntimeError(f"{self.name} engine is not initialized")
        return self._state

    @property
    def bus(self) -> EventBus:
        if self._bus is None:
            raise RuntimeError(f"{self.name} engine is not initialized")
        return self._bus

    @property
    def initialized(self) -> bool:
        return self._state is not None

    def initialize(self, game_state: GameState, event_bus: EventBus) -> None:
        if self.initialized:
            self.cleanup()
        self._state = game_state
        self._bus = event_bus
        self.on_initialize()

    def subscribe(self, name: str, handler: EventHandler) -> None:
        self.bus.on(name, handler)
        self._subscriptions.append((name, handler))

    def emit(self, name: str, payload: dict | None = None) -> None:
        self.bus.emit(name, payload or {})

    @abstractmethod
    def on_initialize(self) -> None:
        """Register listeners and seed the private scheduler."""

    @abstractmethod
    def update(self, delta_time: float) -> None:
        """Advance the engine by `delta_time` simulated days."""

    def cleanup(self) -> None:
        if self._bus is not None:
            for name, handler in self._subscriptions:
                self._bus.off(name, handler)
        self._subscriptions.clear()
        self.scheduler.clear()
        self._state = None
        self._bus = None
