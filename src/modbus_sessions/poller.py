"""PollController: one repeating operation with non-overlapping ticks."""

import logging
import threading
from typing import Any, Callable

from .scheduler import Scheduler, TimerHandle

logger = logging.getLogger(__name__)

MIN_POLL_INTERVAL = 0.1


def clamp_interval(seconds: float) -> float:
    """Raise sub-floor intervals to MIN_POLL_INTERVAL; never rejects."""
    return seconds if seconds >= MIN_POLL_INTERVAL else MIN_POLL_INTERVAL


class PollController:
    """
    Owns the schedule for one repeating action.

    The next tick is armed only after the current action returns, so ticks
    never overlap; a slow action simply delays the next tick. `stop` cancels
    the pending timer; an action already running finishes but is not re-armed.
    A generation counter keeps a tick from an earlier start/stop cycle from
    re-arming after a restart.
    """

    def __init__(self, name: str, scheduler: Scheduler, interval: float = 1.0) -> None:
        self.name = name
        self.interval = interval
        self._scheduler = scheduler
        self._lock = threading.Lock()
        self._active = False
        self._generation = 0
        self._handle: TimerHandle | None = None
        self._action: Callable[[], Any] | None = None
        self._params: Any = None
        self._ticks = 0

    @property
    def active(self) -> bool:
        return self._active

    @property
    def params(self) -> Any:
        """Arguments captured at start; fixed until the poll is stopped and restarted."""
        return self._params

    @property
    def ticks(self) -> int:
        return self._ticks

    def start(self, action: Callable[[], Any], params: Any = None) -> float | None:
        """Arm the timer at the clamped interval. Returns it, or None if already active."""
        with self._lock:
            if self._active:
                return None
            self._generation += 1
            self._active = True
            self._action = action
            self._params = params
            interval = clamp_interval(self.interval)
            self._arm(self._generation, interval)
        logger.debug("%s poll armed every %ss", self.name, interval)
        return interval

    def stop(self) -> bool:
        """Cancel future ticks. Safe on a stopped controller; returns whether it was active."""
        with self._lock:
            was_active = self._active
            self._active = False
            self._generation += 1
            handle, self._handle = self._handle, None
        if handle is not None:
            handle.cancel()
        if was_active:
            logger.debug("%s poll stopped", self.name)
        return was_active

    def _arm(self, generation: int, interval: float) -> None:
        self._handle = self._scheduler.call_later(interval, lambda: self._fire(generation, interval))

    def _fire(self, generation: int, interval: float) -> None:
        with self._lock:
            if not self._active or generation != self._generation:
                return
            self._handle = None
            action = self._action
            self._ticks += 1
        try:
            if action is not None:
                action()
        except Exception:
            logger.exception("%s poll tick failed", self.name)
        finally:
            with self._lock:
                if self._active and generation == self._generation:
                    self._arm(generation, interval)
