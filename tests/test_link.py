"""Tests for PymodbusLink dispatch, limits and error wrapping (mocked pymodbus client)."""

from unittest.mock import MagicMock, patch

import pytest
from pymodbus.exceptions import ModbusException

from modbus_sessions import ModbusConnectionError, PymodbusLink, RequestError, RequestLimitExceeded
from modbus_sessions.session import Session
from modbus_sessions.types import RegisterKind, SessionConfig


@pytest.fixture
def mock_modbus_client() -> MagicMock:
    client = MagicMock()
    client.connect.return_value = True
    client.read_coils.return_value = MagicMock(isError=lambda: False, bits=[True, False, True, False, False, False, False, False])
    client.read_discrete_inputs.return_value = MagicMock(isError=lambda: False, bits=[False, True, False, False, False, False, False, False])
    client.read_input_registers.return_value = MagicMock(isError=lambda: False, registers=[100, 101])
    client.read_holding_registers.return_value = MagicMock(isError=lambda: False, registers=[42, 43, 44])
    client.write_coil.return_value = MagicMock(isError=lambda: False)
    client.write_register.return_value = MagicMock(isError=lambda: False)
    return client


@pytest.fixture
def link(mock_modbus_client: MagicMock) -> PymodbusLink:
    with patch("modbus_sessions.link.ModbusTcpClient", return_value=mock_modbus_client):
        link = PymodbusLink(host="127.0.0.1")
        link.connect()
    return link


def test_connect_builds_client_with_settings(mock_modbus_client: MagicMock) -> None:
    with patch("modbus_sessions.link.ModbusTcpClient", return_value=mock_modbus_client) as cls:
        link = PymodbusLink(host="10.1.1.1", port=1502, timeout=2.0, retries=1)
        link.connect()
    cls.assert_called_once_with(host="10.1.1.1", port=1502, timeout=2.0, retries=1)
    assert link.connected


def test_connect_failure_raises_connection_error(mock_modbus_client: MagicMock) -> None:
    mock_modbus_client.connect.return_value = False
    with patch("modbus_sessions.link.ModbusTcpClient", return_value=mock_modbus_client):
        link = PymodbusLink(host="10.1.1.1")
        with pytest.raises(ModbusConnectionError, match="Failed to connect to 10.1.1.1:502"):
            link.connect()
    assert not link.connected
    mock_modbus_client.close.assert_called_once()


def test_reconnect_after_drop_opens_fresh_client(mock_modbus_client: MagicMock) -> None:
    with patch("modbus_sessions.link.ModbusTcpClient", return_value=mock_modbus_client) as cls:
        link = PymodbusLink(host="10.1.1.1")
        link.connect()
        mock_modbus_client.connected = False
        mock_modbus_client.connect.return_value = False
        with pytest.raises(ModbusConnectionError, match="Failed to connect"):
            link.connect()
    assert cls.call_count == 2
    assert mock_modbus_client.connect.call_count == 2
    assert not link.connected


def test_disconnect_is_idempotent(link: PymodbusLink, mock_modbus_client: MagicMock) -> None:
    link.disconnect()
    link.disconnect()
    mock_modbus_client.close.assert_called_once()
    assert not link.connected


def test_disconnect_never_raises(link: PymodbusLink, mock_modbus_client: MagicMock) -> None:
    mock_modbus_client.close.side_effect = OSError("socket gone")
    link.disconnect()
    assert not link.connected


def test_read_holding_registers_dispatch(link: PymodbusLink, mock_modbus_client: MagicMock) -> None:
    values = link.read_block(7, 3, RegisterKind.HOLDING_REGISTER, unit_id=2)
    assert values == [42, 43, 44]
    mock_modbus_client.read_holding_registers.assert_called_once_with(7, count=3, device_id=2)


def test_read_input_registers_dispatch(link: PymodbusLink, mock_modbus_client: MagicMock) -> None:
    assert link.read_block(0, 2, RegisterKind.INPUT_REGISTER, unit_id=1) == [100, 101]
    mock_modbus_client.read_input_registers.assert_called_once_with(0, count=2, device_id=1)


def test_read_coils_truncates_padded_bits(link: PymodbusLink, mock_modbus_client: MagicMock) -> None:
    assert link.read_block(12, 3, RegisterKind.COIL, unit_id=1) == [1, 0, 1]
    mock_modbus_client.read_coils.assert_called_once_with(12, count=3, device_id=1)


def test_read_discrete_inputs_dispatch(link: PymodbusLink, mock_modbus_client: MagicMock) -> None:
    assert link.read_block(0, 2, RegisterKind.DISCRETE_INPUT, unit_id=1) == [0, 1]


def test_read_over_limit_raises_before_io(link: PymodbusLink, mock_modbus_client: MagicMock) -> None:
    with pytest.raises(RequestLimitExceeded) as exc_info:
        link.read_block(0, 126, RegisterKind.HOLDING_REGISTER, unit_id=1)
    assert exc_info.value.limit == 125
    assert isinstance(exc_info.value, RequestError)
    mock_modbus_client.read_holding_registers.assert_not_called()


def test_read_error_response_raises(link: PymodbusLink, mock_modbus_client: MagicMock) -> None:
    mock_modbus_client.read_holding_registers.return_value = MagicMock(isError=lambda: True)
    with pytest.raises(RequestError):
        link.read_block(0, 1, RegisterKind.HOLDING_REGISTER, unit_id=1)


def test_read_short_response_raises(link: PymodbusLink, mock_modbus_client: MagicMock) -> None:
    with pytest.raises(RequestError, match="Short register response"):
        link.read_block(0, 5, RegisterKind.HOLDING_REGISTER, unit_id=1)


def test_pymodbus_exception_is_wrapped(link: PymodbusLink, mock_modbus_client: MagicMock) -> None:
    err = ModbusException("timeout")
    mock_modbus_client.read_coils.side_effect = err
    with pytest.raises(RequestError) as exc_info:
        link.read_block(0, 1, RegisterKind.COIL, unit_id=1)
    assert exc_info.value.cause is err


def test_write_coil_dispatch(link: PymodbusLink, mock_modbus_client: MagicMock) -> None:
    link.write_single(12, RegisterKind.COIL, 5, unit_id=1)
    mock_modbus_client.write_coil.assert_called_once_with(12, True, device_id=1)


def test_write_register_dispatch(link: PymodbusLink, mock_modbus_client: MagicMock) -> None:
    link.write_single(7, RegisterKind.HOLDING_REGISTER, 100, unit_id=3)
    mock_modbus_client.write_register.assert_called_once_with(7, 100, device_id=3)


@pytest.mark.parametrize("value", [70000, -1])
def test_write_register_out_of_range_rejected(link: PymodbusLink, mock_modbus_client: MagicMock, value: int) -> None:
    with pytest.raises(RequestError, match="out of range"):
        link.write_single(7, RegisterKind.HOLDING_REGISTER, value, unit_id=1)
    mock_modbus_client.write_register.assert_not_called()


def test_write_read_only_kind_rejected(link: PymodbusLink) -> None:
    with pytest.raises(Exception, match="Write not supported"):
        link.write_single(0, RegisterKind.INPUT_REGISTER, 1, unit_id=1)


def test_read_without_connect_raises() -> None:
    with pytest.raises(RequestError, match="not open"):
        PymodbusLink(host="127.0.0.1").read_block(0, 1, RegisterKind.HOLDING_REGISTER, unit_id=1)


def test_session_reconnect_after_lost_connection_reports_failure(mock_modbus_client: MagicMock) -> None:
    with patch("modbus_sessions.link.ModbusTcpClient", return_value=mock_modbus_client):
        session = Session(SessionConfig(host="10.1.1.1", label="PLC"))
        assert session.connect()
        mock_modbus_client.read_holding_registers.return_value = MagicMock(isError=lambda: True)
        mock_modbus_client.connected = False
        assert session.execute_read(0, 1) is False
        assert session.log.snapshot()[-1].message == "Connection lost."

        mock_modbus_client.connect.return_value = False
        assert session.connect() is False
    last = session.log.snapshot()[-1].message
    assert last.startswith("Connection failed")
    assert "Connected." not in [e.message for e in session.log.snapshot()[-2:]]
