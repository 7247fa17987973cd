"""Time-of-day anchored recurring scheduler.

Every handle owns a single worker thread. The thread sleeps until the next
firing, runs the callback inline and only then computes the following firing,
so two firings of the same handle never overlap.
"""

from __future__ import annotations

import re
import threading
import time
from datetime import datetime, timedelta
from enum import StrEnum
from logging import getLogger
from typing import TYPE_CHECKING, ClassVar, Final

from syncdock.config.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Callable

log = getLogger(__name__)

TIME_OF_DAY_PATTERN: Final = re.compile(r"^([01]?[0-9]|2[0-3])h[0-5][0-9]$")
MINIMUM_INTERVAL: Final = timedelta(minutes=5)
MINUTES_PER_DAY: Final = 24 * 60


class InvalidScheduleError(ConfigurationError):
    """Raised when a start time or interval cannot be scheduled."""


class ScheduleState(StrEnum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    FIRING = "firing"
    CANCELLED = "cancelled"


def parse_time_of_day(value: str) -> tuple[int, int]:
    """Return ``(hour, minute)`` for a ``HHhMM`` string."""

    if not TIME_OF_DAY_PATTERN.match(value):
        raise InvalidScheduleError(f"Invalid start time {value!r}, expected HHhMM (e.g. 04h30)")
    hours, minutes = value.split("h")
    return int(hours), int(minutes)


def minutes_until(time_of_day: str, now: datetime) -> int:
    """Whole minutes from ``now`` until the next ``time_of_day``, in ``[0, 1440)``."""

    hour, minute = parse_time_of_day(time_of_day)
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target < now:
        target += timedelta(days=1)
    return int((target - now).total_seconds() // 60) % MINUTES_PER_DAY


def _local_now() -> datetime:
    return datetime.now().astimezone()


class ScheduleHandle:
    """Cancellable handle for one recurring job."""

    def __init__(
        self,
        name: str,
        *,
        initial_delay: timedelta,
        interval: timedelta,
        callback: Callable[[], object],
    ) -> None:
        self.name = name
        self.initial_delay = initial_delay
        self.interval = interval
        self._callback = callback
        self._cancelled = threading.Event()
        self._lock = threading.Lock()
        self._state = ScheduleState.IDLE
        self._fire_count = 0
        self._thread = threading.Thread(target=self._run, name=f"scheduler-{name}", daemon=True)

    @property
    def state(self) -> ScheduleState:
        with self._lock:
            return self._state

    @property
    def fire_count(self) -> int:
        with self._lock:
            return self._fire_count

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def start(self) -> None:
        with self._lock:
            if self._state is not ScheduleState.IDLE:
                return
            self._state = ScheduleState.SCHEDULED
        self._thread.start()

    def cancel(self) -> None:
        """Stop future firings; a callback already running is left to finish."""

        with self._lock:
            if self._cancelled.is_set():
                return
            self._cancelled.set()
            if self._state is not ScheduleState.FIRING:
                self._state = ScheduleState.CANCELLED
        log.info("Cancelled schedule %s", self.name)

    def join(self, timeout: float | None = None) -> None:
        if self._thread.is_alive():
            self._thread.join(timeout)

    def _run(self) -> None:
        interval = self.interval.total_seconds()
        next_fire = time.monotonic() + self.initial_delay.total_seconds()
        while not self._cancelled.wait(max(0.0, next_fire - time.monotonic())):
            with self._lock:
                if self._cancelled.is_set():
                    break
                self._state = ScheduleState.FIRING
            try:
                self._callback()
            except Exception:
                log.exception("Scheduled job %s failed; next run stays scheduled", self.name)
            finally:
                with self._lock:
                    self._fire_count += 1
                    self._state = (
                        ScheduleState.CANCELLED
                        if self._cancelled.is_set()
                        else ScheduleState.SCHEDULED
                    )
            # a run longer than the interval delays the next tick instead of stacking ticks
            next_fire = max(next_fire + interval, time.monotonic())
        with self._lock:
            self._state = ScheduleState.CANCELLED


class Scheduler:
    """Starts daily and recurring jobs, never more often than every five minutes."""

    minimum_interval: ClassVar[timedelta] = MINIMUM_INTERVAL

    def __init__(self, *, now: Callable[[], datetime] = _local_now) -> None:
        self._now = now

    def schedule_daily(
        self,
        time_of_day: str,
        interval: timedelta,
        callback: Callable[[], object],
        *,
        name: str = "daily",
    ) -> ScheduleHandle:
        """Fire at the next ``time_of_day`` (``HHhMM``), then every ``interval``."""

        self._check_interval(interval)
        delay = timedelta(minutes=minutes_until(time_of_day, self._now()))
        log.info(
            "Scheduling %s at %s (in %s), then every %s", name, time_of_day, delay, interval
        )
        return self.schedule_recurring(delay, interval, callback, name=name)

    def schedule_recurring(
        self,
        initial_delay: timedelta,
        interval: timedelta,
        callback: Callable[[], object],
        *,
        name: str = "recurring",
    ) -> ScheduleHandle:
        self._check_interval(interval)
        if initial_delay < timedelta(0):
            raise InvalidScheduleError(f"Initial delay must not be negative, got {initial_delay}")
        handle = ScheduleHandle(
            name, initial_delay=initial_delay, interval=interval, callback=callback
        )
        handle.start()
        return handle

    @staticmethod
    def cancel(handle: ScheduleHandle) -> None:
        handle.cancel()

    def validate(self, time_of_day: str, interval: timedelta) -> None:
        """Raise ``InvalidScheduleError`` for parameters ``schedule_daily`` would reject."""

        self._check_interval(interval)
        parse_time_of_day(time_of_day)

    def _check_interval(self, interval: timedelta) -> None:
        if interval <= timedelta(0) or interval < self.minimum_interval:
            raise InvalidScheduleError(
                f"Interval {interval} is below the minimum of {self.minimum_interval}"
            )
