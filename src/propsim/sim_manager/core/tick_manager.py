"""
Tick Management Module.

This module handles the simulated clock: conversions between elapsed
simulated days, calendar datetimes and human-readable labels, plus the
optional auto-tick thread that drives the engine from wall-clock time.
"""

from __future__ import annotations

import logging
import math
import threading
from datetime import datetime, timedelta
from typing import Callable

from .game_state import SIM_EPOCH

logger = logging.getLogger(__name__)

MINUTES_PER_DAY = 24 * 60
MAX_TICK_INTERVAL_SECONDS = 60.0


class TickManager:
    """
    Manages the simulated clock and auto-tick threading.

    This class encapsulates:
    - Time conversions (clock days <-> datetime <-> "Day X HH:MM")
    - Tick delta configuration (simulated days advanced per tick)
    - Auto-tick thread management

    Example:
        >>> tick_manager = TickManager(ticks_per_day=24)
        >>> tick_manager.tick_delta
        0.041666666666666664
        >>> tick_manager.format_sim_time(1.5)
        'Day 2 12:00'
    """

    def __init__(
        self,
        ticks_per_day: int = 24,
        tick_interval_seconds: float = 1.0,
        base_datetime: datetime | None = None,
    ) -> None:
        """
        Initialize tick manager.

        Args:
            ticks_per_day: Auto-ticks per simulated day
            tick_interval_seconds: Wall-clock seconds between auto-ticks
            base_datetime: Calendar datetime at clock 0
        """
        if ticks_per_day < 1:
            raise ValueError("ticks_per_day must be at least 1")
        self.ticks_per_day = ticks_per_day
        self._tick_interval_seconds = 1.0
        self.set_tick_interval(tick_interval_seconds)
        self._sim_base_dt = base_datetime or SIM_EPOCH

        self._auto_tick_thread: threading.Thread | None = None
        self._auto_tick_stop: threading.Event | None = None
        self._advance_lock = threading.RLock()

    @property
    def tick_delta(self) -> float:
        """Simulated days advanced by one auto-tick."""
        return 1.0 / self.ticks_per_day

    def set_base_datetime(self, base_dt: datetime) -> None:
        self._sim_base_dt = base_dt

    def sim_datetime(self, clock: float) -> datetime:
        """
        Convert elapsed simulated days to a calendar datetime.

        Args:
            clock: Elapsed simulated days since the start of the game

        Returns:
            Base datetime shifted by `clock` days
        """
        return self._sim_base_dt + timedelta(days=max(0.0, clock))

    def day_index(self, clock: float) -> int:
        """1-indexed simulated day for a clock value."""
        return int(math.floor(max(0.0, clock))) + 1

    def format_sim_time(self, clock: float) -> str:
        """
        Format a clock value as "Day X HH:MM".

        Example:
            >>> TickManager().format_sim_time(0)
            'Day 1 00:00'
        """
        clock = max(0.0, clock)
        minutes_into_day = int(round((clock - math.floor(clock)) * MINUTES_PER_DAY))
        day = self.day_index(clock)
        if minutes_into_day >= MINUTES_PER_DAY:
            day += 1
            minutes_into_day = 0
        return f"Day {day} {minutes_into_day // 60:02d}:{minutes_into_day % 60:02d}"

    def minutes_to_days(self, minutes: float) -> float:
        return minutes / MINUTES_PER_DAY

    def start_auto_tick(
        self,
        is_running: bool,
        advance_callback: Callable[[float], None],
        should_continue: Callable[[], bool] | None = None,
    ) -> None:
        """
        Start the auto-tick thread.

        Args:
            is_running: Whether the engine is running
            advance_callback: Called with `tick_delta` once per interval
            should_continue: Optional predicate checked before every tick

        Raises:
            RuntimeError: If the engine is not running
        """
        if not is_running:
            raise RuntimeError("Engine must be running before enabling automatic ticks")

        thread = self._auto_tick_thread
        if thread is None or not thread.is_alive():
            stop_event = threading.Event()
            self._auto_tick_stop = stop_event
            thread = threading.Thread(
                target=self._run_auto_tick_loop,
                args=(stop_event, advance_callback, should_continue),
                name="propsim-auto-tick",
                daemon=True,
            )
            self._auto_tick_thread = thread
            thread.start()

    def stop_auto_tick(self) -> None:
        stop_event = self._auto_tick_stop
        if stop_event is not None:
            stop_event.set()
        thread = self._auto_tick_thread
        if thread is not None and thread.is_alive() and thread is not threading.current_thread():
            thread.join(timeout=2.0)
            if thread.is_alive():
                logger.warning("Automatic tick thread did not exit cleanly within timeout")
        self._auto_tick_thread = None
        self._auto_tick_stop = None

    def is_auto_ticking(self) -> bool:
        thread = self._auto_tick_thread
        return thread is not None and thread.is_alive()

    def _run_auto_tick_loop(
        self,
        stop_event: threading.Event,
        advance_callback: Callable[[float], None],
        should_continue: Callable[[], bool] | None,
    ) -> None:
        while not stop_event.wait(self._tick_interval_seconds):
            if should_continue is not None and not should_continue():
                logger.debug("Auto-tick loop stopping: engine no longer running")
                break
            try:
                # advance_callback takes the advance lock itself.
                advance_callback(self.tick_delta)
            except Exception:
                logger.exception("Automatic tick failed; disabling auto ticks.")
                break

    def get_advance_lock(self) -> threading.RLock:
        """
        Get the advance lock for thread-safe tick advancement.

        Returns:
            Threading lock
        """
        return self._advance_lock

    def set_tick_interval(self, interval_seconds: float) -> None:
        """
        Set the auto-tick interval.

        Args:
            interval_seconds: Seconds between auto-ticks (0 for maximum speed)

        Raises:
            ValueError: If interval is outside 0-60 seconds
        """
        if interval_seconds < 0:
            raise ValueError("Tick interval must be non-negative")
        if interval_seconds > MAX_TICK_INTERVAL_SECONDS:
            raise ValueError(f"Tick interval must not exceed {MAX_TICK_INTERVAL_SECONDS:.0f} seconds")
        self._tick_interval_seconds = float(interval_seconds)
        logger.info("Auto-tick interval set to %.2f seconds", interval_seconds)

    def get_tick_interval(self) -> float:
        return self._tick_interval_seconds
