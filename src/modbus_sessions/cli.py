#!/usr/bin/env python3
"""Command-line front end for modbus-sessions using Typer."""

import csv
import json
import logging
import time
from pathlib import Path
from typing import Any, Optional

import typer
from typing_extensions import Annotated

from . import __version__  # type: ignore
from .errors import ModbusSessionError
from .link import ModbusLink, PymodbusLink
from .registry import SessionRegistry
from .types import EventEntry, PollRole, ReadRequest, RegisterKind, SessionConfig, WriteEntry

app = typer.Typer(
    name="modbus-sessions",
    help="Read, write and poll Modbus TCP devices through managed sessions.",
    no_args_is_help=True,
)

logger = logging.getLogger(__name__)

# ============================================================================
# Shared options and helpers
# ============================================================================

HostOption = Annotated[
    Optional[str],
    typer.Option("--host", "-h", help="Device hostname or IP address", envvar="MODBUS_SESSIONS_HOST"),
]
PortOption = Annotated[
    int,
    typer.Option("--port", "-p", help="Modbus TCP port", envvar="MODBUS_SESSIONS_PORT"),
]
UnitIdOption = Annotated[
    int,
    typer.Option("--unit-id", "-u", help="Modbus unit ID", envvar="MODBUS_SESSIONS_UNIT_ID"),
]
TimeoutOption = Annotated[
    float,
    typer.Option("--timeout", "-t", help="Transport timeout in seconds", envvar="MODBUS_SESSIONS_TIMEOUT"),
]
RetriesOption = Annotated[
    int,
    typer.Option("--retries", "-r", help="Transport retries per request", envvar="MODBUS_SESSIONS_RETRIES"),
]
KindOption = Annotated[
    str,
    typer.Option("--kind", "-k", help="Register kind: holding_register, input_register, coil, discrete_input"),
]
VerboseOption = Annotated[
    bool,
    typer.Option("--verbose", "-v", help="Enable debug logging"),
]
JsonOption = Annotated[
    bool,
    typer.Option("--json", help="Output as JSON"),
]
PollOption = Annotated[
    bool,
    typer.Option("--poll", help="Repeat the operation every --interval seconds"),
]
IntervalOption = Annotated[
    float,
    typer.Option("--interval", "-i", help="Polling interval in seconds (minimum 0.1)"),
]
DurationOption = Annotated[
    Optional[float],
    typer.Option("--duration", "-d", help="Stop polling after this many seconds (default: until Ctrl+C)"),
]


def setup_logging(verbose: bool) -> None:
    """Configure logging based on verbose flag."""
    level = logging.DEBUG if verbose else logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(levelname)s: %(message)s" if not verbose else "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def make_link(config: SessionConfig) -> ModbusLink:
    return PymodbusLink(config.host, port=config.port, timeout=config.timeout, retries=config.retries)


def echo_entry(entry: EventEntry) -> None:
    typer.echo(entry.format(), err=True)


def create_registry() -> SessionRegistry:
    """Registry whose global log is echoed to stderr (once) as it grows."""
    registry = SessionRegistry(link_factory=make_link, echo=False)
    registry.global_log.add_listener(echo_entry)
    return registry


def require_host(host: Optional[str]) -> str:
    if not host:
        typer.echo("Error: --host is required for this command", err=True)
        raise typer.Exit(2)
    return host


def parse_kind(value: str) -> RegisterKind:
    try:
        return RegisterKind.parse(value)
    except ModbusSessionError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)


def parse_bool(value: str) -> bool:
    """Parse boolean value from string."""
    v = value.lower().strip()
    if v in ("true", "1", "on", "yes"):
        return True
    if v in ("false", "0", "off", "no"):
        return False
    raise ValueError(f"Invalid boolean value: {value!r}")


def parse_int(value: str) -> int:
    """Parse an unsigned 16-bit integer, decimal or 0x hex."""
    v = value.strip()
    num = int(v, 16) if v.lower().startswith("0x") else int(v)
    if not (0 <= num <= 65535):
        raise ValueError(f"Unsigned 16-bit integer out of range: {num}")
    return num


def parse_value(value: str, kind: RegisterKind) -> int:
    """Coils take boolean words or 0/1; registers take integers."""
    if kind == RegisterKind.COIL:
        return int(parse_bool(value))
    return parse_int(value)


def load_write_entries(csv_path: Path) -> list[WriteEntry]:
    """
    Load write entries from a CSV with columns (label, kind, address, value, ...).
    Extra columns are further values; rows starting with '#' and blank rows are skipped.
    """
    entries: list[WriteEntry] = []
    with open(csv_path, newline="", encoding="utf-8") as f:
        reader = csv.reader(f)
        for line_no, row in enumerate(reader, start=1):
            if not row or not (row[0] or "").strip() or row[0].lstrip().startswith("#"):
                continue
            if len(row) < 4:
                raise ValueError(f"{csv_path}:{line_no}: expected label,kind,address,value[,value...]")
            label = row[0].strip()
            kind = RegisterKind.parse(row[1])
            address = parse_int(row[2])
            values = [parse_value(v, kind) for v in row[3:] if v.strip()]
            entries.append(WriteEntry(label=label, address=address, kind=kind, values=tuple(values)))
    return entries


def load_devices(json_path: Path) -> list[tuple[SessionConfig, ReadRequest]]:
    """
    Load a device list for `watch`: a JSON array of objects with host and optional
    port, unit_id, label, address, count, kind and interval.
    """
    with open(json_path, encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict) and "devices" in data:
        data = data["devices"]
    if not isinstance(data, list):
        raise ValueError(f"{json_path}: expected a list of devices")

    devices: list[tuple[SessionConfig, ReadRequest]] = []
    for i, raw in enumerate(data):
        if not isinstance(raw, dict) or "host" not in raw:
            raise ValueError(f"{json_path}: device #{i} needs a 'host'")
        config = SessionConfig(
            host=raw["host"],
            port=int(raw.get("port", 502)),
            unit_id=int(raw.get("unit_id", 1)),
            label=raw.get("label") or f"{raw['host']}:{raw.get('port', 502)}",
            timeout=float(raw.get("timeout", 3.0)),
            retries=int(raw.get("retries", 3)),
            poll_interval=float(raw.get("interval", 1.0)),
        )
        request = ReadRequest(
            address=int(raw.get("address", 0)),
            count=int(raw.get("count", 10)),
            kind=RegisterKind.parse(raw.get("kind", "holding_register")),
        )
        devices.append((config, request))
    return devices


def wait_for(duration: Optional[float]) -> None:
    """Sleep for `duration` seconds, or until Ctrl+C when None."""
    if duration is not None:
        time.sleep(duration)
        return
    while True:
        time.sleep(0.5)


def results_payload(registry: SessionRegistry, session_id: str) -> list[dict[str, Any]]:
    session = registry.get(session_id)
    return [{"address": r.address, "value": r.value} for r in session.last_read_results]


def echo_results(registry: SessionRegistry, session_id: str, json_output: bool) -> None:
    rows = results_payload(registry, session_id)
    if json_output:
        typer.echo(json.dumps(rows, indent=2))
    else:
        for row in rows:
            typer.echo(f"{row['address']}={row['value']}")


def open_session(registry: SessionRegistry, config: SessionConfig) -> str:
    """Add and connect a session; exits with status 3 if the device is unreachable."""
    session_id = registry.add_session(config)
    if not registry.connect(session_id):
        registry.close()
        raise typer.Exit(3)
    return session_id


# ============================================================================
# Commands
# ============================================================================

@app.command()
def info(json_output: JsonOption = False) -> None:
    """Show package version and request limits."""
    info_data = {
        "version": __version__,
        "limits": {kind.value: kind.limit for kind in RegisterKind},
    }
    if json_output:
        typer.echo(json.dumps(info_data, indent=2))
    else:
        typer.echo(f"modbus-sessions version: {info_data['version']}")
        for kind in RegisterKind:
            typer.echo(f"{kind.display_name}: max {kind.limit} per request")


@app.command()
def read(
    address: Annotated[int, typer.Argument(help="First address to read (0-based)")],
    count: Annotated[int, typer.Option("--count", "-c", help="Number of contiguous values")] = 1,
    kind: KindOption = "holding_register",
    host: HostOption = None,
    port: PortOption = 502,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 3.0,
    retries: RetriesOption = 1,
    verbose: VerboseOption = False,
    json_output: JsonOption = False,
    poll: PollOption = False,
    interval: IntervalOption = 1.0,
    duration: DurationOption = None,
) -> None:
    """
    Read a block of values from one device.

    With --poll, keeps reading every --interval seconds until --duration elapses
    or Ctrl+C, then prints the last successful result.
    """
    setup_logging(verbose)
    resolved = parse_kind(kind)
    config = SessionConfig(
        host=require_host(host), port=port, unit_id=unit_id, timeout=timeout, retries=retries, poll_interval=interval
    )

    registry = create_registry()
    session_id = open_session(registry, config)
    try:
        if poll:
            registry.start_poll(session_id, PollRole.READ, ReadRequest(address, count, resolved))
            try:
                wait_for(duration)
            except KeyboardInterrupt:
                typer.echo("\nStopped by user", err=True)
            registry.stop_poll(session_id, PollRole.READ)
            ok = bool(registry.get(session_id).last_read_results)
        else:
            ok = registry.execute_read(session_id, address, count, resolved)
        if not ok:
            raise typer.Exit(3)
        echo_results(registry, session_id, json_output)
    finally:
        registry.close()


@app.command()
def write(
    address: Annotated[int, typer.Argument(help="Address to write (0-based)")],
    value: Annotated[str, typer.Argument(help="Value (coil: true/false/1/0/on/off; register: decimal or 0x hex)")],
    kind: KindOption = "holding_register",
    host: HostOption = None,
    port: PortOption = 502,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 3.0,
    retries: RetriesOption = 1,
    verbose: VerboseOption = False,
) -> None:
    """Write a single holding register or coil."""
    setup_logging(verbose)
    resolved = parse_kind(kind)
    try:
        parsed = parse_value(value, resolved)
    except ValueError as e:
        typer.echo(f"Error: Invalid value: {e}", err=True)
        raise typer.Exit(2)
    config = SessionConfig(host=require_host(host), port=port, unit_id=unit_id, timeout=timeout, retries=retries)

    registry = create_registry()
    session_id = open_session(registry, config)
    try:
        if not registry.execute_write(session_id, address, parsed, resolved):
            raise typer.Exit(3)
        typer.echo(f"OK: Wrote {address} = {parsed}")
    finally:
        registry.close()


@app.command(name="multi-write")
def multi_write(
    entries_csv: Annotated[Path, typer.Argument(help="CSV of label,kind,address,value[,value...] rows")],
    host: HostOption = None,
    port: PortOption = 502,
    unit_id: UnitIdOption = 1,
    timeout: TimeoutOption = 3.0,
    retries: RetriesOption = 1,
    verbose: VerboseOption = False,
    poll: PollOption = False,
    interval: IntervalOption = 1.0,
    duration: DurationOption = None,
) -> None:
    """
    Send a queue of writes sequentially, in file order.

    A failing entry does not stop the batch. With --poll, the whole queue is
    re-sent every --interval seconds.
    """
    setup_logging(verbose)
    if not entries_csv.is_file():
        typer.echo(f"Error: Entries file not found: {entries_csv}", err=True)
        raise typer.Exit(2)
    try:
        entries = load_write_entries(entries_csv)
    except (ValueError, ModbusSessionError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)
    if not entries:
        typer.echo("Error: No write entries in file", err=True)
        raise typer.Exit(2)
    config = SessionConfig(
        host=require_host(host), port=port, unit_id=unit_id, timeout=timeout, retries=retries, poll_interval=interval
    )

    registry = create_registry()
    session_id = open_session(registry, config)
    try:
        for entry in entries:
            registry.add_write_entry(session_id, entry)
        if poll:
            registry.start_poll(session_id, PollRole.MULTI_WRITE)
            try:
                wait_for(duration)
            except KeyboardInterrupt:
                typer.echo("\nStopped by user", err=True)
            registry.stop_poll(session_id, PollRole.MULTI_WRITE)
        elif not registry.execute_multi_write(session_id):
            raise typer.Exit(3)
    finally:
        registry.close()


@app.command()
def watch(
    devices_json: Annotated[Path, typer.Argument(help="JSON list of devices to read-poll concurrently")],
    verbose: VerboseOption = False,
    duration: DurationOption = None,
    json_output: JsonOption = False,
) -> None:
    """
    Read-poll several devices at once, each on its own interval.

    Devices that fail to connect are reported and skipped; the rest keep polling
    until --duration elapses or Ctrl+C.
    """
    setup_logging(verbose)
    if not devices_json.is_file():
        typer.echo(f"Error: Devices file not found: {devices_json}", err=True)
        raise typer.Exit(2)
    try:
        devices = load_devices(devices_json)
    except (ValueError, KeyError, ModbusSessionError) as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(2)

    registry = create_registry()
    polling: list[str] = []
    try:
        for config, request in devices:
            session_id = registry.add_session(config)
            if registry.connect(session_id) and registry.start_poll(session_id, PollRole.READ, request):
                polling.append(session_id)
        if not polling:
            typer.echo("Error: No device could be polled", err=True)
            raise typer.Exit(3)
        try:
            wait_for(duration)
        except KeyboardInterrupt:
            typer.echo("\nStopped by user", err=True)
        summary = {registry.get(sid).label: results_payload(registry, sid) for sid in polling}
        if json_output:
            typer.echo(json.dumps(summary, indent=2))
        else:
            for label, rows in summary.items():
                values = " ".join(f"{row['address']}={row['value']}" for row in rows)
                typer.echo(f"{label}: {values}")
    finally:
        registry.close()


def version_callback(value: bool) -> None:
    """Show version and exit."""
    if value:
        typer.echo(f"modbus-sessions {__version__}")
        raise typer.Exit(0)


@app.callback()
def main(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", callback=version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """modbus-sessions - managed Modbus TCP sessions from the command line."""
    pass


if __name__ == "__main__":
    app()
