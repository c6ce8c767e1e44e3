"""A socket wrapper with per-operation timeouts, byte statistics and TCP options."""

from __future__ import annotations

import socket
import threading
import time
from dataclasses import dataclass, field
from typing import Callable

_TCP_USER_TIMEOUT = getattr(socket, "TCP_USER_TIMEOUT", None)


@dataclass
class ConnStats:
    """Bytes read and written and the lifetimes (in whole seconds) of closed connections."""

    read_total: int = 0
    write_total: int = 0
    durations: list[int] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    def add_read(self, n: int) -> None:
        with self._lock:
            self.read_total += n

    def add_write(self, n: int) -> None:
        with self._lock:
            self.write_total += n

    def record_duration(self, seconds: int) -> None:
        with self._lock:
            self.durations.append(seconds)


class Conn:
    """Wraps a connected socket.

    ``read_timeout`` and ``write_timeout`` are in seconds; zero means no timeout.
    ``on_bytes_in`` and ``on_bytes_out`` are called with the size of every
    successful transfer.
    """

    def __init__(self, sock: socket.socket) -> None:
        self.sock = sock
        self.stats: ConnStats | None = None
        self.read_timeout = 0.0
        self.write_timeout = 0.0
        self.on_bytes_in: Callable[[int], None] | None = None
        self.on_bytes_out: Callable[[int], None] | None = None
        self.created_at = time.monotonic()
        self._closed = False
        self._close_lock = threading.Lock()

    def __enter__(self) -> Conn:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def local_address(self) -> object:
        return self.sock.getsockname()

    @property
    def remote_address(self) -> object:
        return self.sock.getpeername()

    @property
    def closed(self) -> bool:
        return self._closed

    def read(self, n: int) -> bytes:
        """Receive up to ``n`` bytes; empty bytes mean the peer closed."""
        self.sock.settimeout(self.read_timeout if self.read_timeout > 0 else None)
        data = self.sock.recv(n)
        if data:
            if self.stats is not None:
                self.stats.add_read(len(data))
            if self.on_bytes_in is not None:
                self.on_bytes_in(len(data))
        return data

    def write(self, data: bytes) -> int:
        """Send all of ``data`` and return its length."""
        self.sock.settimeout(self.write_timeout if self.write_timeout > 0 else None)
        self.sock.sendall(data)
        n = len(data)
        if self.stats is not None:
            self.stats.add_write(n)
        if n > 0 and self.on_bytes_out is not None:
            self.on_bytes_out(n)
        return n

    def close(self) -> None:
        """Close the socket once, recording the connection's lifetime."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        if self.stats is not None:
            self.stats.record_duration(int(time.monotonic() - self.created_at))
        self.sock.close()

    def close_write(self) -> None:
        """Shut down the writing side, if the socket supports it."""
        shutdown = getattr(self.sock, "shutdown", None)
        if shutdown is not None:
            shutdown(socket.SHUT_WR)

    def close_read(self) -> None:
        """Shut down the reading side, if the socket supports it."""
        shutdown = getattr(self.sock, "shutdown", None)
        if shutdown is not None:
            shutdown(socket.SHUT_RD)


def wrap(sock: socket.socket | Conn) -> Conn:
    """Wrap ``sock`` in a :class:`Conn`; a ``Conn`` is returned unchanged."""
    if isinstance(sock, Conn):
        return sock
    return Conn(sock)


def _parse_address(address: str | tuple[str, int]) -> tuple[str, int]:
    if isinstance(address, tuple):
        return address
    host, sep, port = address.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid address: {address!r}")
    return host.strip("[]") or "localhost", int(port)


def dial(address: str | tuple[str, int], timeout: float) -> Conn:
    """Open a TCP connection, waiting at most ``timeout`` seconds to connect."""
    sock = socket.create_connection(_parse_address(address), timeout=timeout)
    sock.settimeout(None)
    return Conn(sock)


def _raw(sock: socket.socket | Conn) -> socket.socket:
    return sock.sock if isinstance(sock, Conn) else sock


def _is_tcp(sock: object) -> bool:
    return (
        isinstance(sock, socket.socket)
        and sock.family in (socket.AF_INET, socket.AF_INET6)
        and sock.type == socket.SOCK_STREAM
    )


def set_tcp_user_timeout(sock: socket.socket | Conn, timeout: float) -> None:
    """Set TCP_USER_TIMEOUT (``timeout`` seconds) where the platform has it.

    Non-TCP sockets and platforms without the option are left alone.
    """
    if _TCP_USER_TIMEOUT is None:
        return
    raw = _raw(sock)
    if not _is_tcp(raw):
        return
    raw.setsockopt(socket.IPPROTO_TCP, _TCP_USER_TIMEOUT, int(timeout * 1000))


def get_tcp_user_timeout(sock: socket.socket | Conn) -> int:
    """Return TCP_USER_TIMEOUT in milliseconds, or -1 where it is unsupported."""
    if _TCP_USER_TIMEOUT is None:
        return -1
    raw = _raw(sock)
    if not _is_tcp(raw):
        raise TypeError(f"conn is not a TCP socket, got {type(raw).__name__}")
    return raw.getsockopt(socket.IPPROTO_TCP, _TCP_USER_TIMEOUT)