"""Shared fixtures: a manually advanced scheduler and an in-memory ModbusLink."""

from typing import Callable

import pytest

from modbus_sessions import SessionConfig, SessionRegistry
from modbus_sessions.link import ModbusLink
from modbus_sessions.session import Session
from modbus_sessions.types import RegisterKind


class ManualHandle:
    def __init__(self, when: float, seq: int, callback: Callable[[], None]) -> None:
        self.when = when
        self.seq = seq
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualScheduler:
    """Scheduler driven by advance(); callbacks run synchronously in the caller's thread."""

    def __init__(self) -> None:
        self.now = 0.0
        self._seq = 0
        self._queue: list[ManualHandle] = []

    def call_later(self, delay: float, callback: Callable[[], None]) -> ManualHandle:
        self._seq += 1
        handle = ManualHandle(self.now + delay, self._seq, callback)
        self._queue.append(handle)
        return handle

    def advance(self, seconds: float) -> None:
        target = self.now + seconds
        while True:
            due = [h for h in self._queue if not h.cancelled and h.when <= target + 1e-9]
            if not due:
                break
            handle = min(due, key=lambda h: (h.when, h.seq))
            self._queue.remove(handle)
            self.now = handle.when
            handle.callback()
        self.now = target

    @property
    def pending(self) -> int:
        return sum(1 for h in self._queue if not h.cancelled)


class FakeLink(ModbusLink):
    """Records every call; failures are configured per operation or per address."""

    def __init__(self) -> None:
        self.calls: list[tuple] = []
        self.connect_error: Exception | None = None
        self.read_error: Exception | None = None
        self.write_errors: dict[int, Exception] = {}
        self.on_disconnect: Callable[[], None] | None = None
        self.on_write: Callable[[int], None] | None = None
        self._connected = False

    def connect(self) -> None:
        self.calls.append(("connect",))
        if self.connect_error is not None:
            raise self.connect_error
        self._connected = True

    def disconnect(self) -> None:
        self.calls.append(("disconnect",))
        if self.on_disconnect is not None:
            self.on_disconnect()
        self._connected = False

    def drop(self) -> None:
        """Simulate the transport going away underneath the session."""
        self._connected = False

    def read_block(self, start: int, count: int, kind: RegisterKind, unit_id: int) -> list[int]:
        self.calls.append(("read", start, count, kind, unit_id))
        if self.read_error is not None:
            raise self.read_error
        if kind.is_bit:
            return [(start + i) % 2 for i in range(count)]
        return [(start + i) * 10 for i in range(count)]

    def write_single(self, address: int, kind: RegisterKind, value: int, unit_id: int) -> None:
        self.calls.append(("write", address, kind, value, unit_id))
        if self.on_write is not None:
            self.on_write(address)
        if address in self.write_errors:
            raise self.write_errors[address]

    @property
    def connected(self) -> bool:
        return self._connected

    def count(self, op: str) -> int:
        return sum(1 for c in self.calls if c[0] == op)


@pytest.fixture
def scheduler() -> ManualScheduler:
    return ManualScheduler()


@pytest.fixture
def link() -> FakeLink:
    return FakeLink()


@pytest.fixture
def config() -> SessionConfig:
    return SessionConfig(host="10.0.0.5", port=502, unit_id=1, label="PLC-A")


@pytest.fixture
def session(config: SessionConfig, scheduler: ManualScheduler, link: FakeLink) -> Session:
    return Session(config, scheduler=scheduler, link_factory=lambda cfg: link)


@pytest.fixture
def connected_session(session: Session) -> Session:
    assert session.connect()
    return session


@pytest.fixture
def registry(scheduler: ManualScheduler, link: FakeLink) -> SessionRegistry:
    return SessionRegistry(scheduler=scheduler, link_factory=lambda cfg: link)


def messages(session_or_log) -> list[str]:
    log = getattr(session_or_log, "log", session_or_log)
    return [e.message for e in log.snapshot()]
