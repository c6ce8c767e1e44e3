"""Redis health checking: send PING and expect PONG."""

from __future__ import annotations

import socket
import time

from samaritan.hc.atcp import (
    CheckTimeoutError,
    _SocketStream,
    _split_address,
    expect_bytes_with_deadline,
    send_bytes_with_deadline,
)

PING = b"*1\r\n$4\r\nPING\r\n"
PONG = b"+PONG\r\n"


class Checker:
    """Checks a Redis server with a PING command."""

    def check(self, addr: str, timeout: float) -> None:
        """Send PING to ``addr`` and expect PONG within ``timeout`` seconds."""
        deadline = time.monotonic() + timeout
        try:
            sock = socket.create_connection(_split_address(addr), timeout=timeout)
        except TimeoutError:
            raise CheckTimeoutError() from None
        stream = _SocketStream(sock)
        try:
            send_bytes_with_deadline(stream, PING, deadline)
            expect_bytes_with_deadline(stream, PONG, deadline)
        except TimeoutError:
            raise CheckTimeoutError() from None
        finally:
            stream.close()