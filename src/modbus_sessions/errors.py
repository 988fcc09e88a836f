"""Exceptions for modbus-sessions: connection, request, kind and session lookup errors."""


class ModbusSessionError(Exception):
    """Base exception for modbus-sessions."""

    pass


class ModbusConnectionError(ModbusSessionError):
    """Raised when a link cannot connect to its device."""

    def __init__(
        self,
        message: str,
        *,
        host: str | None = None,
        port: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.cause = cause
        super().__init__(message)


class RequestError(ModbusSessionError):
    """Raised when a single read/write fails (transport, protocol or client-side guard)."""

    def __init__(
        self,
        message: str,
        *,
        address: int | None = None,
        kind: str | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.address = address
        self.kind = kind
        self.cause = cause
        super().__init__(message)


class RequestLimitExceeded(RequestError):
    """Raised before any network call when a read asks for more values than the kind allows."""

    def __init__(self, count: int, limit: int, *, kind: str | None = None, address: int | None = None) -> None:
        self.count = count
        self.limit = limit
        noun = "coils" if limit == 2000 else "registers"
        super().__init__(f"Max {limit} {noun} per request (got {count})", address=address, kind=kind)


class UnsupportedTypeError(ModbusSessionError):
    """Raised for a register kind that is unknown or not valid for the operation."""

    def __init__(self, kind: object, message: str | None = None) -> None:
        self.kind = kind
        super().__init__(message or f"Unsupported register type: {kind!r}")


class NotConnectedError(ModbusSessionError):
    """Raised when an operation needs a connected session."""

    pass


class UnknownSessionError(ModbusSessionError, KeyError):
    """Raised when a session id is not in the registry."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._msg = f"Unknown session: {session_id!r}"
        super().__init__(self._msg)

    def __str__(self) -> str:
        return self._msg
