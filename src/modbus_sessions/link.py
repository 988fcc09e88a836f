"""ModbusLink contract and PymodbusLink, its pymodbus TCP implementation."""

import logging
from abc import ABC, abstractmethod

from pymodbus.client import ModbusTcpClient
from pymodbus.exceptions import ModbusException as PymodbusException

from .errors import ModbusConnectionError, RequestError, RequestLimitExceeded, UnsupportedTypeError
from .types import RegisterKind

logger = logging.getLogger(__name__)


def check_request_limit(count: int, kind: RegisterKind, address: int | None = None) -> None:
    """Raise before any I/O if `count` is not a valid request size for `kind`."""
    if count < 1:
        raise RequestError(f"Count must be at least 1 (got {count})", address=address, kind=kind.value)
    if count > kind.limit:
        raise RequestLimitExceeded(count, kind.limit, kind=kind.value, address=address)


class ModbusLink(ABC):
    """
    One TCP connection to one device. All calls block; callers never issue two
    calls concurrently on the same link.
    """

    @abstractmethod
    def connect(self) -> None:
        """Open the connection; raise ModbusConnectionError on failure."""

    @abstractmethod
    def disconnect(self) -> None:
        """Release the socket. Idempotent, never raises."""

    @abstractmethod
    def read_block(self, start: int, count: int, kind: RegisterKind, unit_id: int) -> list[int]:
        """Read `count` contiguous values; bits are returned as 0/1."""

    @abstractmethod
    def write_single(self, address: int, kind: RegisterKind, value: int, unit_id: int) -> None:
        """Write one coil (value != 0) or one holding register."""

    @property
    @abstractmethod
    def connected(self) -> bool: ...


class PymodbusLink(ModbusLink):
    """ModbusLink over pymodbus' synchronous ModbusTcpClient."""

    def __init__(self, host: str, port: int = 502, timeout: float = 3.0, retries: int = 3) -> None:
        self._host = host
        self._port = port
        self._timeout = timeout
        self._retries = retries
        self._client: ModbusTcpClient | None = None

    def _get_client(self) -> ModbusTcpClient:
        if self._client is None:
            raise RequestError(f"Link to {self._host}:{self._port} is not open")
        return self._client

    def connect(self) -> None:
        if self.connected:
            return
        if self._client is not None:
            # socket dropped since the last connect; start over with a fresh client
            self.disconnect()
        client = ModbusTcpClient(
            host=self._host,
            port=self._port,
            timeout=self._timeout,
            retries=self._retries,
        )
        try:
            ok = client.connect()
        except (PymodbusException, OSError) as e:
            raise ModbusConnectionError(str(e), host=self._host, port=self._port, cause=e) from e
        if not ok:
            client.close()
            raise ModbusConnectionError(
                f"Failed to connect to {self._host}:{self._port}",
                host=self._host,
                port=self._port,
            )
        self._client = client
        logger.debug("Link open: %s:%s", self._host, self._port)

    def disconnect(self) -> None:
        if self._client is not None:
            try:
                self._client.close()
            except Exception as e:
                logger.warning("Error closing Modbus client: %s", e)
            self._client = None
            logger.debug("Link closed: %s:%s", self._host, self._port)

    @property
    def connected(self) -> bool:
        return self._client is not None and bool(self._client.connected)

    def read_block(self, start: int, count: int, kind: RegisterKind, unit_id: int) -> list[int]:
        check_request_limit(count, kind, start)
        client = self._get_client()
        try:
            if kind == RegisterKind.COIL:
                rr = client.read_coils(start, count=count, device_id=unit_id)
            elif kind == RegisterKind.DISCRETE_INPUT:
                rr = client.read_discrete_inputs(start, count=count, device_id=unit_id)
            elif kind == RegisterKind.INPUT_REGISTER:
                rr = client.read_input_registers(start, count=count, device_id=unit_id)
            elif kind == RegisterKind.HOLDING_REGISTER:
                rr = client.read_holding_registers(start, count=count, device_id=unit_id)
            else:
                raise UnsupportedTypeError(kind)
        except PymodbusException as e:
            raise RequestError(str(e), address=start, kind=kind.value, cause=e) from e

        if rr.isError():
            raise RequestError(
                str(rr),
                address=start,
                kind=kind.value,
                cause=getattr(rr, "exception", None),
            )
        if kind.is_bit:
            bits = getattr(rr, "bits", None)
            # bit responses are padded to a whole byte
            if not bits or len(bits) < count:
                raise RequestError("Short bit response", address=start, kind=kind.value)
            return [1 if b else 0 for b in bits[:count]]
        registers = getattr(rr, "registers", None)
        if not registers or len(registers) < count:
            raise RequestError("Short register response", address=start, kind=kind.value)
        return [int(r) for r in registers[:count]]

    def write_single(self, address: int, kind: RegisterKind, value: int, unit_id: int) -> None:
        client = self._get_client()
        try:
            if kind == RegisterKind.COIL:
                rr = client.write_coil(address, value != 0, device_id=unit_id)
            elif kind == RegisterKind.HOLDING_REGISTER:
                if not 0 <= int(value) <= 0xFFFF:
                    raise RequestError(
                        f"Register value out of range 0..65535: {value}", address=address, kind=kind.value
                    )
                rr = client.write_register(address, int(value), device_id=unit_id)
            else:
                raise UnsupportedTypeError(kind.value, f"Write not supported for {kind.display_name}")
        except PymodbusException as e:
            raise RequestError(str(e), address=address, kind=kind.value, cause=e) from e
        if rr.isError():
            raise RequestError(
                str(rr),
                address=address,
                kind=kind.value,
                cause=getattr(rr, "exception", None),
            )

    def __repr__(self) -> str:
        return f"PymodbusLink({self._host!r}, port={self._port})"
