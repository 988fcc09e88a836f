"""EventLog: bounded, thread-safe, append-only log of tagged entries."""

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Callable

from .types import EventEntry, EventTag

logger = logging.getLogger(__name__)

SESSION_LOG_CAPACITY = 500
GLOBAL_LOG_CAPACITY = 1000

_LEVELS: dict[EventTag, int] = {
    EventTag.ERROR: logging.ERROR,
    EventTag.WARN: logging.WARNING,
    EventTag.OK: logging.INFO,
    EventTag.INFO: logging.INFO,
    EventTag.DATA: logging.DEBUG,
}

EntryListener = Callable[[EventEntry], None]


class EventLog:
    """
    Ordered log capped at `capacity` entries; appending past capacity evicts the
    oldest entry. Entries are never edited or reordered. With `echo`, each
    entry is also emitted to the `logging` module at a level derived from its tag.
    """

    def __init__(self, capacity: int, name: str = "log", echo: bool = False) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self._capacity = capacity
        self._name = name
        self._echo = echo
        self._entries: deque[EventEntry] = deque(maxlen=capacity)
        self._lock = threading.Lock()
        self._listeners: list[EntryListener] = []

    def append(self, message: str, tag: EventTag | str = EventTag.DATA, source: str | None = None) -> EventEntry:
        """Append one entry and return it; never raises for listener failures."""
        tag = EventTag(tag)
        with self._lock:
            now = datetime.now()
            if self._entries and now < self._entries[-1].timestamp:
                # wall clock stepped back
                now = self._entries[-1].timestamp
            entry = EventEntry(timestamp=now, message=message, tag=tag, source=source)
            self._entries.append(entry)
            listeners = list(self._listeners)
        if self._echo:
            logger.log(_LEVELS[tag], "[%s] %s", source or "-", message)
        for listener in listeners:
            try:
                listener(entry)
            except Exception:
                logger.exception("Listener on %s log failed", self._name)
        return entry

    def snapshot(self) -> tuple[EventEntry, ...]:
        """Current entries, oldest first."""
        with self._lock:
            return tuple(self._entries)

    def add_listener(self, listener: EntryListener) -> Callable[[], None]:
        """Call `listener(entry)` after every append. Returns a function that removes it."""
        with self._lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def echo(self) -> bool:
        return self._echo

    @property
    def name(self) -> str:
        return self._name

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:
        return f"EventLog(name={self._name!r}, len={len(self)}, capacity={self._capacity})"
