"""Session: one device endpoint with its link, logs, write queue and three poll controllers."""

import logging
import threading
import uuid
from typing import Callable

from .errors import NotConnectedError
from .eventlog import SESSION_LOG_CAPACITY, EventLog
from .link import ModbusLink, PymodbusLink, check_request_limit
from .poller import PollController
from .scheduler import Scheduler, ThreadScheduler
from .types import (
    EventTag,
    PollRole,
    ReadRequest,
    ReadResultRow,
    RegisterKind,
    SessionConfig,
    SessionState,
    WriteEntry,
    WriteRequest,
)

logger = logging.getLogger(__name__)

LinkFactory = Callable[[SessionConfig], ModbusLink]


def default_link_factory(config: SessionConfig) -> ModbusLink:
    return PymodbusLink(config.host, port=config.port, timeout=config.timeout, retries=config.retries)


class Session:
    """
    A named Modbus TCP endpoint.

    Every command and every poll tick runs under the session's re-entrant lock,
    so operations on one session are serialized while different sessions run
    in parallel. Operations never raise device errors: failures are written to
    the session log (mirrored into `global_log` when given) and reported as a
    False return value.
    """

    def __init__(
        self,
        config: SessionConfig,
        *,
        global_log: EventLog | None = None,
        scheduler: Scheduler | None = None,
        link_factory: LinkFactory | None = None,
        on_change: Callable[[], None] | None = None,
    ) -> None:
        self.id = uuid.uuid4().hex
        self.config = config
        self.log = EventLog(SESSION_LOG_CAPACITY, name=config.label)
        self._global_log = global_log
        self._link_factory = link_factory or default_link_factory
        self._on_change = on_change
        self._lock = threading.RLock()
        self._state = SessionState.DISCONNECTED
        self._link: ModbusLink | None = None
        self._write_entries: list[WriteEntry] = []
        self._last_read_results: list[ReadResultRow] = []

        scheduler = scheduler or ThreadScheduler(name=config.label)
        self._polls: dict[PollRole, PollController] = {
            role: PollController(role.loop_name, scheduler, interval=config.poll_interval) for role in PollRole
        }

    # -- observable state ---------------------------------------------------

    @property
    def label(self) -> str:
        return self.config.label

    @property
    def host(self) -> str:
        return self.config.host

    @property
    def port(self) -> int:
        return self.config.port

    @property
    def unit_id(self) -> int:
        return self.config.unit_id

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def connected(self) -> bool:
        return self._state == SessionState.CONNECTED

    @property
    def link(self) -> ModbusLink | None:
        return self._link

    @property
    def write_entries(self) -> tuple[WriteEntry, ...]:
        with self._lock:
            return tuple(self._write_entries)

    @property
    def last_read_results(self) -> tuple[ReadResultRow, ...]:
        with self._lock:
            return tuple(self._last_read_results)

    def poll(self, role: PollRole | str) -> PollController:
        return self._polls[PollRole(role)]

    @property
    def read_poll(self) -> PollController:
        return self._polls[PollRole.READ]

    @property
    def write_poll(self) -> PollController:
        return self._polls[PollRole.WRITE]

    @property
    def multi_write_poll(self) -> PollController:
        return self._polls[PollRole.MULTI_WRITE]

    # -- internals ----------------------------------------------------------

    def _notify(self) -> None:
        if self._on_change is not None:
            try:
                self._on_change()
            except Exception:
                logger.exception("Change listener for session %s failed", self.label)

    def _log(self, message: str, tag: EventTag) -> None:
        self.log.append(message, tag, source=self.label)
        if self._global_log is not None:
            self._global_log.append(message, tag, source=self.label)
        self._notify()

    def _connected_link(self) -> ModbusLink:
        if not self.connected or self._link is None:
            raise NotConnectedError(f"Session {self.label!r} is not connected")
        return self._link

    def _link_alive(self) -> bool:
        """False once the session is disconnected or the transport dropped underneath it."""
        if not self.connected:
            return False
        if self._link is not None and not self._link.connected:
            self._state = SessionState.DISCONNECTED
            self._link.disconnect()
            self._log("Connection lost.", EventTag.ERROR)
            return False
        return True

    def _halt_polls(self) -> None:
        for controller in self._polls.values():
            controller.stop()

    def _resolve_unit(self, unit_id: int | None) -> int:
        return self.config.unit_id if unit_id is None else unit_id

    # -- lifecycle ----------------------------------------------------------

    def connect(self) -> bool:
        """Connect the link (creating it on first use). Logs the outcome; never raises."""
        with self._lock:
            if self.connected:
                return True
            self._state = SessionState.CONNECTING
            self._log(f"Connecting to {self.host}:{self.port}...", EventTag.INFO)
            try:
                if self._link is None:
                    self._link = self._link_factory(self.config)
                self._link.connect()
            except Exception as e:
                self._state = SessionState.DISCONNECTED
                self._log(f"Connection failed: {e}", EventTag.ERROR)
                return False
            self._state = SessionState.CONNECTED
            self._log("Connected.", EventTag.OK)
            return True

    def disconnect(self) -> bool:
        """
        Force-stop all pollers, then close the link. Logs "Disconnected." only when
        the session was connected; repeated calls are silent no-ops.
        """
        with self._lock:
            self._halt_polls()
            was_connected = self.connected
            if was_connected:
                self._state = SessionState.DISCONNECTING
            if self._link is not None:
                self._link.disconnect()
            self._state = SessionState.DISCONNECTED
            if was_connected:
                self._log("Disconnected.", EventTag.WARN)
            else:
                self._notify()
            return was_connected

    # -- operations ---------------------------------------------------------

    def execute_read(
        self,
        address: int,
        count: int,
        kind: RegisterKind | str = RegisterKind.HOLDING_REGISTER,
        unit_id: int | None = None,
    ) -> bool:
        """
        Read `count` contiguous values starting at `address` in one request.

        On success the cached read results are replaced wholesale; on any failure
        they are left exactly as they were.
        """
        with self._lock:
            try:
                link = self._connected_link()
            except NotConnectedError:
                self._log("Cannot read: Not connected.", EventTag.ERROR)
                return False
            try:
                resolved = RegisterKind.parse(kind)
                check_request_limit(count, resolved, address)
                values = link.read_block(address, count, resolved, self._resolve_unit(unit_id))
            except Exception as e:
                self._log(f"Read exception: {e}", EventTag.ERROR)
                self._link_alive()
                return False
            self._last_read_results = [
                ReadResultRow(address=address + i, value=(1 if v else 0) if resolved.is_bit else int(v), is_bit=resolved.is_bit)
                for i, v in enumerate(values)
            ]
            self._log(f"✓ {count} value(s) read from addr {address}", EventTag.OK)
            return True

    def execute_write(
        self,
        address: int,
        value: int,
        kind: RegisterKind | str = RegisterKind.HOLDING_REGISTER,
        unit_id: int | None = None,
    ) -> bool:
        """Write one holding register or one coil (value != 0)."""
        with self._lock:
            try:
                link = self._connected_link()
            except NotConnectedError:
                self._log("Cannot write: Not connected.", EventTag.ERROR)
                return False
            try:
                entry = WriteEntry(label="", address=address, kind=kind, values=(value,))
                link.write_single(entry.address, entry.kind, entry.values[0], self._resolve_unit(unit_id))
            except Exception as e:
                self._log(f"Write exception: {e}", EventTag.ERROR)
                self._link_alive()
                return False
            self._log(f"✓ addr={address} written: {value}", EventTag.OK)
            return True

    def execute_multi_write(self) -> bool:
        """
        Send every queued write entry, one at a time, in insertion order.

        A failing entry is logged and the batch moves on; losing the connection
        aborts the remaining entries without logging them. Silent no-op when the
        session is not connected. Returns True only if every entry succeeded.
        """
        with self._lock:
            if not self.connected:
                return False
            entries = list(self._write_entries)
            total = len(entries)
            ok_count = 0
            self._log(f"MULTI-WRITE: sending {total} entries", EventTag.INFO)
            for entry in entries:
                if not self._link_alive():
                    break
                try:
                    self._connected_link().write_single(entry.address, entry.kind, entry.values[0], self.unit_id)
                except Exception as e:
                    self._log(f"  ✗ addr={entry.address} [{entry.label}]: exception: {e}", EventTag.ERROR)
                    continue
                self._log(f"  ✓ addr={entry.address} [{entry.label}]: {list(entry.values)}", EventTag.OK)
                ok_count += 1
            self._log(
                f"Multi-write complete: {ok_count}/{total} succeeded.",
                EventTag.OK if ok_count == total else EventTag.WARN,
            )
            return ok_count == total

    def add_write_entry(self, entry: WriteEntry) -> None:
        with self._lock:
            self._write_entries.append(entry)
        self._notify()

    def remove_write_entry(self, entry: WriteEntry) -> bool:
        """Remove the first queued entry equal to `entry`."""
        with self._lock:
            try:
                self._write_entries.remove(entry)
            except ValueError:
                return False
        self._notify()
        return True

    # -- polling ------------------------------------------------------------

    def set_poll_interval(self, role: PollRole | str, seconds: float) -> None:
        """Set the interval used by the next start; a running poll keeps its own."""
        with self._lock:
            self.poll(role).interval = seconds
        self._notify()

    def start_poll(self, role: PollRole | str, params: ReadRequest | WriteRequest | None = None) -> bool:
        role = PollRole(role)
        with self._lock:
            controller = self._polls[role]
            needed = {PollRole.READ: ReadRequest, PollRole.WRITE: WriteRequest}.get(role)
            if needed is not None and not isinstance(params, needed):
                self._log(f"{role.loop_name} polling not started: needs a {needed.__name__}.", EventTag.ERROR)
                return False
            if controller.active or not self.connected:
                return False
            if role == PollRole.MULTI_WRITE and not self._write_entries:
                return False
            interval = controller.start(lambda: self._poll_tick(role), params)
            self._log(f"{role.loop_name} polling started ({interval}s).", EventTag.INFO)
            return True

    def stop_poll(self, role: PollRole | str) -> bool:
        """User-initiated stop; logged. Forced stops on disconnect are silent."""
        role = PollRole(role)
        with self._lock:
            if not self._polls[role].stop():
                return False
            self._log(f"{role.loop_name} polling stopped.", EventTag.INFO)
            return True

    def toggle_poll(self, role: PollRole | str, params: ReadRequest | WriteRequest | None = None) -> bool:
        """Stop the poll if it is running, else start it. Returns the new active flag."""
        with self._lock:
            if self.poll(role).active:
                self.stop_poll(role)
            else:
                self.start_poll(role, params)
            return self.poll(role).active

    def _poll_tick(self, role: PollRole) -> None:
        with self._lock:
            controller = self._polls[role]
            if not self.connected:
                controller.stop()
                self._notify()
                return
            params = controller.params
            if role == PollRole.READ:
                self.execute_read(params.address, params.count, params.kind, params.unit_id)
            elif role == PollRole.WRITE:
                self.execute_write(params.address, params.value, params.kind, params.unit_id)
            else:
                self.execute_multi_write()

    def __repr__(self) -> str:
        return f"Session(label={self.label!r}, host={self.host!r}, port={self.port}, state={self._state.value})"
