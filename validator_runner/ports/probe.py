"""OS-level port probes.

A port is "free" when a TCP socket can bind it on the loopback interface.
These probes are only a snapshot: another process may bind the port right
after the check, so callers pair them with the in-process registry.
"""
from __future__ import annotations

import asyncio
import socket
import time

LOCALHOST = "127.0.0.1"


def is_port_free(port: int, host: str = LOCALHOST) -> bool:
    """Check whether a port can currently be bound on `host`."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            s.bind((host, port))
            return True
    except OSError:
        return False


def is_port_listening(port: int, host: str = LOCALHOST, timeout: float = 0.1) -> bool:
    """Check whether something is accepting connections on a port."""
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
            s.settimeout(timeout)
            s.connect((host, port))
            return True
    except (socket.timeout, ConnectionRefusedError, OSError):
        return False


async def wait_for_port_listen(
    port: int,
    host: str = LOCALHOST,
    timeout: float | None = None,
    initial_delay: float = 0.01,
    max_delay: float = 0.5,
) -> bool:
    """Poll until a service listens on `port`.

    Backs off exponentially between probes (10ms, 20ms, ... capped at
    `max_delay`). With `timeout=None` this waits indefinitely.

    Returns:
        True once listening, False if `timeout` elapsed first.
    """
    deadline = None if timeout is None else time.monotonic() + timeout
    backoff = initial_delay

    while True:
        if is_port_listening(port, host):
            return True
        if deadline is not None:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False
            await asyncio.sleep(min(backoff, remaining))
        else:
            await asyncio.sleep(backoff)
        backoff = min(backoff * 2, max_delay)
