"""Core data model: register kinds, event entries, write entries, read rows and session config."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .errors import UnsupportedTypeError

MAX_BITS_PER_REQUEST = 2000
MAX_REGISTERS_PER_REQUEST = 125


class RegisterKind(str, Enum):
    """Modbus data categories used for link dispatch and request limits."""

    COIL = "coil"
    DISCRETE_INPUT = "discrete_input"
    INPUT_REGISTER = "input_register"
    HOLDING_REGISTER = "holding_register"

    @property
    def is_bit(self) -> bool:
        return self in (RegisterKind.COIL, RegisterKind.DISCRETE_INPUT)

    @property
    def limit(self) -> int:
        """Maximum number of values one read request may ask for."""
        return MAX_BITS_PER_REQUEST if self.is_bit else MAX_REGISTERS_PER_REQUEST

    @property
    def writable(self) -> bool:
        return self in (RegisterKind.COIL, RegisterKind.HOLDING_REGISTER)

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, raw: "RegisterKind | str") -> "RegisterKind":
        """
        Accept an enum member, an enum value ("holding_register") or a display
        name in singular or plural form ("Holding Registers", "coil").

        Raises UnsupportedTypeError for anything else.
        """
        if isinstance(raw, RegisterKind):
            return raw
        key = str(raw).strip().lower().replace("-", " ").replace("_", " ")
        kind = _ALIASES.get(key)
        if kind is None:
            raise UnsupportedTypeError(raw)
        return kind


_DISPLAY_NAMES: dict[RegisterKind, str] = {
    RegisterKind.COIL: "Coils",
    RegisterKind.DISCRETE_INPUT: "Discrete Inputs",
    RegisterKind.INPUT_REGISTER: "Input Registers",
    RegisterKind.HOLDING_REGISTER: "Holding Registers",
}

_ALIASES: dict[str, RegisterKind] = {}
for _kind, _name in _DISPLAY_NAMES.items():
    _ALIASES[_name.lower()] = _kind
    _ALIASES[_name.lower()[:-1]] = _kind
    _ALIASES[_kind.value.replace("_", " ")] = _kind
# Short forms accepted on the command line
_ALIASES.update(
    {
        "hr": RegisterKind.HOLDING_REGISTER,
        "ir": RegisterKind.INPUT_REGISTER,
        "co": RegisterKind.COIL,
        "di": RegisterKind.DISCRETE_INPUT,
    }
)


class EventTag(str, Enum):
    """Severity/category tag carried by every log entry."""

    INFO = "info"
    OK = "ok"
    WARN = "warn"
    ERROR = "error"
    DATA = "data"


class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"


class PollRole(str, Enum):
    """The three repeating operations a session can poll."""

    READ = "read"
    WRITE = "write"
    MULTI_WRITE = "multi_write"

    @property
    def loop_name(self) -> str:
        return {"read": "Read", "write": "Write", "multi_write": "Write All"}[self.value]


@dataclass(frozen=True)
class EventEntry:
    """One immutable log line."""

    timestamp: datetime
    message: str
    tag: EventTag = EventTag.DATA
    source: str | None = None

    @property
    def time_string(self) -> str:
        return self.timestamp.strftime("%H:%M:%S")

    def format(self) -> str:
        prefix = f"{self.time_string} [{self.tag.value}]"
        if self.source:
            prefix = f"{prefix} {self.source}:"
        return f"{prefix} {self.message}"


@dataclass(frozen=True)
class WriteEntry:
    """User-authored queued write; values[0] is the value sent for single writes."""

    label: str
    address: int
    kind: RegisterKind
    values: tuple[int, ...]

    def __post_init__(self) -> None:
        kind = RegisterKind.parse(self.kind)
        if not kind.writable:
            raise UnsupportedTypeError(kind.value, f"Write not supported for {kind.display_name}")
        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "values", tuple(int(v) for v in self.values))
        if not 0 <= self.address <= 0xFFFF:
            raise ValueError(f"address must be 0..65535, got {self.address}")
        if not self.values:
            raise ValueError("values must not be empty")
        if kind == RegisterKind.HOLDING_REGISTER:
            for v in self.values:
                if not 0 <= v <= 0xFFFF:
                    raise ValueError(f"Register value out of range 0..65535: {v}")


@dataclass(frozen=True)
class ReadResultRow:
    address: int
    value: int
    is_bit: bool = False


@dataclass(frozen=True)
class ReadRequest:
    """Arguments bound to a read poll when it starts."""

    address: int
    count: int
    kind: RegisterKind | str = RegisterKind.HOLDING_REGISTER
    unit_id: int | None = None


@dataclass(frozen=True)
class WriteRequest:
    """Arguments bound to a single-address write poll when it starts."""

    address: int
    value: int
    kind: RegisterKind | str = RegisterKind.HOLDING_REGISTER
    unit_id: int | None = None


@dataclass
class SessionConfig:
    """Endpoint and transport settings for one device."""

    host: str
    port: int = 502
    unit_id: int = 1
    label: str = "New PLC"
    timeout: float = 3.0
    retries: int = 3
    poll_interval: float = 1.0

    def __post_init__(self) -> None:
        if not 0 < self.port <= 0xFFFF:
            raise ValueError(f"port must be 1..65535, got {self.port}")
        if not 0 <= self.unit_id <= 0xFF:
            raise ValueError(f"unit_id must be 0..255, got {self.unit_id}")
