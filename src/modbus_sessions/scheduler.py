"""Scheduler seam used by poll controllers: call_later(delay, callback) -> cancellable handle."""

import threading
from typing import Callable, Protocol


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class Scheduler(Protocol):
    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle: ...


class ThreadScheduler:
    """Runs each callback on its own daemon threading.Timer."""

    def __init__(self, name: str = "poll") -> None:
        self._name = name

    def call_later(self, delay: float, callback: Callable[[], None]) -> threading.Timer:
        timer = threading.Timer(delay, callback)
        timer.name = f"{self._name}-timer"
        timer.daemon = True
        timer.start()
        return timer
