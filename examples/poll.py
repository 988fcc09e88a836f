#!/usr/bin/env python3
"""Example: read-poll two devices concurrently and push a setpoint queue; Ctrl+C to stop."""

import time

from modbus_sessions import PollRole, ReadRequest, SessionConfig, SessionRegistry, WriteEntry


def main() -> None:
    registry = SessionRegistry()
    registry.global_log.add_listener(lambda entry: print(entry.format()))

    line1 = registry.add_session(SessionConfig(host="192.168.1.10", label="Line 1"))  # change to your device IPs
    line2 = registry.add_session(SessionConfig(host="192.168.1.11", label="Line 2", poll_interval=0.5))

    registry.add_write_entry(line1, WriteEntry("setpoint", 100, "holding_register", (42,)))
    registry.add_write_entry(line1, WriteEntry("run", 0, "coil", (1,)))

    try:
        for sid in (line1, line2):
            registry.connect(sid)
        registry.start_poll(line1, PollRole.READ, ReadRequest(address=0, count=10))
        registry.start_poll(line2, PollRole.READ, ReadRequest(address=0, count=16, kind="Coils"))
        registry.execute_multi_write(line1)
        while True:
            time.sleep(1.0)
    except KeyboardInterrupt:
        print("\nStopped.")
    finally:
        registry.close()
        for session in registry.sessions:
            print(session.label, [(r.address, r.value) for r in session.last_read_results])


if __name__ == "__main__":
    main()
