"""modbus-sessions: concurrent Modbus TCP device sessions with polling and bounded event logs."""

__version__ = "0.1.0"

from .errors import (
    ModbusConnectionError,
    ModbusSessionError,
    NotConnectedError,
    RequestError,
    RequestLimitExceeded,
    UnknownSessionError,
    UnsupportedTypeError,
)
from .eventlog import EventLog
from .link import ModbusLink, PymodbusLink
from .poller import PollController
from .registry import SessionRegistry
from .session import Session
from .types import (
    EventEntry,
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

__all__ = [
    "__version__",
    "ModbusConnectionError",
    "ModbusSessionError",
    "NotConnectedError",
    "RequestError",
    "RequestLimitExceeded",
    "UnknownSessionError",
    "UnsupportedTypeError",
    "EventLog",
    "ModbusLink",
    "PymodbusLink",
    "PollController",
    "SessionRegistry",
    "Session",
    "EventEntry",
    "EventTag",
    "PollRole",
    "ReadRequest",
    "ReadResultRow",
    "RegisterKind",
    "SessionConfig",
    "SessionState",
    "WriteEntry",
    "WriteRequest",
]
