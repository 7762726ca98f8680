import random

import pytest

from propsim.sim_manager.core import EventBus
from propsim.sim_manager.engine import new_game_state


class EventRecorder:
    """Collects (name, payload) pairs for the events it watches."""

    def __init__(self, bus: EventBus):
        self.bus = bus
        self.events: list[tuple[str, object]] = []

    def watch(self, *names: str) -> "EventRecorder":
        for name in names:
            self.bus.on(name, lambda payload, name=name: self.events.append((name, payload)))
        return self

    def named(self, name: str) -> list:
        return [payload for event_name, payload in self.events if event_name == name]


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def bus():
    return EventBus()


@pytest.fixture
def recorder(bus):
    return EventRecorder(bus)


@pytest.fixture
def state():
    return new_game_state(player_name="Tester", starting_cash=10000.0)


@pytest.fixture
def make_recorder():
    return EventRecorder
