"""SessionRegistry: owns all sessions, routes commands by id, and keeps the global log."""

import logging
import threading
from typing import Callable

from .errors import UnknownSessionError
from .eventlog import GLOBAL_LOG_CAPACITY, EventLog
from .scheduler import Scheduler, ThreadScheduler
from .session import LinkFactory, Session
from .types import EventTag, PollRole, ReadRequest, RegisterKind, SessionConfig, WriteEntry, WriteRequest

logger = logging.getLogger(__name__)

ChangeListener = Callable[[], None]


class SessionRegistry:
    """
    The single mutation point for presentation code.

    Sessions keep creation order. Every session-level log entry is mirrored into
    `global_log`, and listeners registered with `subscribe` are called after
    any change. Listeners run on the thread that made the change and must not
    block. With `echo` off the global log is not forwarded to `logging`; use it
    when the caller already prints the log itself.
    """

    def __init__(
        self,
        *,
        scheduler: Scheduler | None = None,
        link_factory: LinkFactory | None = None,
        echo: bool = True,
    ) -> None:
        self.global_log = EventLog(GLOBAL_LOG_CAPACITY, name="global", echo=echo)
        self._scheduler = scheduler or ThreadScheduler()
        self._link_factory = link_factory
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()
        self._listeners: list[ChangeListener] = []

    # -- observation --------------------------------------------------------

    @property
    def sessions(self) -> tuple[Session, ...]:
        with self._lock:
            return tuple(self._sessions.values())

    def get(self, session_id: str) -> Session:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise UnknownSessionError(session_id)
        return session

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._sessions

    def subscribe(self, listener: ChangeListener) -> Callable[[], None]:
        """Call `listener()` after every change. Returns a function that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def _notify(self) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener()
            except Exception:
                logger.exception("Registry listener failed")

    # -- session set --------------------------------------------------------

    def add_session(self, config: SessionConfig) -> str:
        """Create a session for `config` and return its id."""
        session = Session(
            config,
            global_log=self.global_log,
            scheduler=self._scheduler,
            link_factory=self._link_factory,
            on_change=self._notify,
        )
        with self._lock:
            self._sessions[session.id] = session
        self.global_log.append(f"Session '{session.label}' added.", EventTag.INFO)
        self._notify()
        return session.id

    def remove_session(self, session_id: str) -> None:
        """Disconnect (stopping every poll first), then drop the session."""
        session = self.get(session_id)
        session.disconnect()
        with self._lock:
            self._sessions.pop(session_id, None)
        self.global_log.append(f"Session '{session.label}' removed.", EventTag.WARN)
        self._notify()

    def close(self) -> None:
        """Disconnect every session; used at process shutdown."""
        for session in self.sessions:
            session.disconnect()

    # -- routed commands ----------------------------------------------------

    def connect(self, session_id: str) -> bool:
        return self.get(session_id).connect()

    def disconnect(self, session_id: str) -> bool:
        return self.get(session_id).disconnect()

    def execute_read(
        self,
        session_id: str,
        address: int,
        count: int,
        kind: RegisterKind | str = RegisterKind.HOLDING_REGISTER,
        unit_id: int | None = None,
    ) -> bool:
        return self.get(session_id).execute_read(address, count, kind, unit_id)

    def execute_write(
        self,
        session_id: str,
        address: int,
        value: int,
        kind: RegisterKind | str = RegisterKind.HOLDING_REGISTER,
        unit_id: int | None = None,
    ) -> bool:
        return self.get(session_id).execute_write(address, value, kind, unit_id)

    def execute_multi_write(self, session_id: str) -> bool:
        return self.get(session_id).execute_multi_write()

    def add_write_entry(self, session_id: str, entry: WriteEntry) -> None:
        self.get(session_id).add_write_entry(entry)

    def remove_write_entry(self, session_id: str, entry: WriteEntry) -> bool:
        return self.get(session_id).remove_write_entry(entry)

    def set_poll_interval(self, session_id: str, role: PollRole | str, seconds: float) -> None:
        self.get(session_id).set_poll_interval(role, seconds)

    def start_poll(
        self, session_id: str, role: PollRole | str, params: ReadRequest | WriteRequest | None = None
    ) -> bool:
        return self.get(session_id).start_poll(role, params)

    def stop_poll(self, session_id: str, role: PollRole | str) -> bool:
        return self.get(session_id).stop_poll(role)

    def toggle_poll(
        self, session_id: str, role: PollRole | str, params: ReadRequest | WriteRequest | None = None
    ) -> bool:
        return self.get(session_id).toggle_poll(role, params)
