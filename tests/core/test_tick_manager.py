"""
Tests for TickManager module.

Tests clock conversions, interval validation, and auto-tick threading.
"""

import threading
from datetime import datetime, timezone
from unittest.mock import Mock

import pytest

from propsim.sim_manager.core import TickManager
from propsim.sim_manager.core.game_state import SIM_EPOCH


class TestTimeConversions:
    """Test clock format conversions."""

    def test_tick_delta(self):
        assert TickManager(ticks_per_day=24).tick_delta == pytest.approx(1 / 24)
        assert TickManager(ticks_per_day=1).tick_delta == 1.0

    def test_format_sim_time_start(self):
        assert TickManager().format_sim_time(0) == "Day 1 00:00"

    def test_format_sim_time_midday(self):
        assert TickManager().format_sim_time(1.5) == "Day 2 12:00"

    def test_format_sim_time_rounds_to_next_day(self):
        # 0.99999 days rounds to 24:00, which is the next day's midnight
        assert TickManager().format_sim_time(0.999999) == "Day 2 00:00"

    def test_format_sim_time_negative_clock(self):
        assert TickManager().format_sim_time(-3) == "Day 1 00:00"

    def test_day_index(self):
        tm = TickManager()
        assert tm.day_index(0) == 1
        assert tm.day_index(0.5) == 1
        assert tm.day_index(2.0) == 3

    def test_sim_datetime_default_base(self):
        assert TickManager().sim_datetime(0) == SIM_EPOCH

    def test_sim_datetime_with_base(self):
        base = datetime(2030, 6, 1, 8, 0, tzinfo=timezone.utc)
        tm = TickManager(base_datetime=base)
        assert tm.sim_datetime(0.5) == datetime(2030, 6, 1, 20, 0, tzinfo=timezone.utc)

    def test_set_base_datetime(self):
        tm = TickManager()
        base = datetime(2031, 1, 1, tzinfo=timezone.utc)
        tm.set_base_datetime(base)
        assert tm.sim_datetime(1) == datetime(2031, 1, 2, tzinfo=timezone.utc)

    def test_minutes_to_days(self):
        assert TickManager().minutes_to_days(720) == 0.5


class TestTickInterval:
    """Test interval validation."""

    def test_set_valid_interval(self):
        tm = TickManager()
        tm.set_tick_interval(0)
        assert tm.get_tick_interval() == 0.0
        tm.set_tick_interval(60)
        assert tm.get_tick_interval() == 60.0

    def test_negative_interval_rejected(self):
        with pytest.raises(ValueError, match="non-negative"):
            TickManager().set_tick_interval(-1)

    def test_interval_above_maximum_rejected(self):
        with pytest.raises(ValueError, match="must not exceed"):
            TickManager().set_tick_interval(61)

    def test_constructor_validates_interval(self):
        with pytest.raises(ValueError):
            TickManager(tick_interval_seconds=120)

    def test_ticks_per_day_must_be_positive(self):
        with pytest.raises(ValueError):
            TickManager(ticks_per_day=0)


class TestAutoTick:
    """Test auto-tick threading functionality."""

    def test_start_auto_tick_not_running(self):
        tm = TickManager(tick_interval_seconds=0.1)
        with pytest.raises(RuntimeError, match="must be running"):
            tm.start_auto_tick(is_running=False, advance_callback=Mock())

    def test_start_and_stop_thread(self):
        tm = TickManager(tick_interval_seconds=0.1)
        tm.start_auto_tick(is_running=True, advance_callback=Mock())

        assert tm.is_auto_ticking()

        tm.stop_auto_tick()
        assert not tm.is_auto_ticking()
        assert tm._auto_tick_thread is None
        assert tm._auto_tick_stop is None

    def test_auto_tick_loop_passes_tick_delta(self):
        tm = TickManager(ticks_per_day=4, tick_interval_seconds=0.01)
        called = threading.Event()
        deltas = []

        def advance(delta):
            deltas.append(delta)
            called.set()

        tm.start_auto_tick(is_running=True, advance_callback=advance)
        try:
            assert called.wait(timeout=2.0)
        finally:
            tm.stop_auto_tick()
        assert deltas[0] == 0.25

    def test_auto_tick_loop_stops_when_not_running(self):
        tm = TickManager(tick_interval_seconds=0.01)
        advance = Mock()

        tm.start_auto_tick(is_running=True, advance_callback=advance, should_continue=lambda: False)
        thread = tm._auto_tick_thread
        thread.join(timeout=2.0)

        assert not thread.is_alive()
        advance.assert_not_called()
        tm.stop_auto_tick()

    def test_auto_tick_handles_advance_failure(self):
        tm = TickManager(tick_interval_seconds=0.01)
        advance = Mock(side_effect=RuntimeError("boom"))

        tm.start_auto_tick(is_running=True, advance_callback=advance)
        thread = tm._auto_tick_thread
        thread.join(timeout=2.0)

        assert not thread.is_alive()
        assert advance.call_count == 1
        tm.stop_auto_tick()

    def test_start_twice_keeps_single_thread(self):
        tm = TickManager(tick_interval_seconds=0.5)
        tm.start_auto_tick(is_running=True, advance_callback=Mock())
        first = tm._auto_tick_thread
        tm.start_auto_tick(is_running=True, advance_callback=Mock())
        try:
            assert tm._auto_tick_thread is first
        finally:
            tm.stop_auto_tick()

    def test_advance_lock_is_reentrant(self):
        lock = TickManager().get_advance_lock()
        with lock:
            assert lock.acquire(blocking=False)
            lock.release()
