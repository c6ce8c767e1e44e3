"""MySQL health checking: log in with a bare handshake response and expect an OK packet."""

from __future__ import annotations

import socket
import struct
import time
from dataclasses import dataclass, field
from typing import Protocol

from samaritan.hc.atcp import (
    CheckTimeoutError,
    HealthCheckError,
    UnexpectedResponseError,
    _split_address,
)

# Capability flags.
CLIENT_PROTOCOL_41 = 0x00000200
CLIENT_PLUGIN_AUTH = 0x00008000

# Character sets.
UTF8_GENERAL_CI = 0x21

MAX_PACKET_SIZE = 16777216
MAX_PAYLOAD_LENGTH = (1 << 24) - 1

# A complete COM_QUIT packet.
COM_QUIT = bytes([1, 0, 0, 0, 1])

_RESERVED_LEN = 23
_HEADER_LEN = 4


class _Readable(Protocol):
    def read(self, n: int) -> bytes: ...


@dataclass
class HandshakeResponse:
    """The client's HandshakeResponse41 payload, without password or database."""

    capability_flags: int
    max_packet_size: int
    character_set: int
    username: str
    reserved: bytes = field(default=bytes(_RESERVED_LEN))
    auth_response: int = 0

    def to_bytes(self) -> bytes:
        """Return the payload as bytes."""
        reserved = self.reserved[:_RESERVED_LEN].ljust(_RESERVED_LEN, b"\0")
        return b"".join(
            (
                struct.pack("<IIB", self.capability_flags, self.max_packet_size, self.character_set),
                reserved,
                self.username.encode("utf-8"),
                b"\0",
                bytes([self.auth_response]),
            )
        )


def build_packet(payload: bytes, seq: int) -> bytes:
    """Frame ``payload`` as a MySQL packet with sequence id ``seq``."""
    if len(payload) > MAX_PAYLOAD_LENGTH:
        raise ValueError("payload too large for a single MySQL packet")
    return len(payload).to_bytes(3, "little") + bytes([seq & 0xFF]) + payload


def new_health_check_packet(username: str) -> bytes:
    """Return a HandshakeResponse packet followed by a COM_QUIT packet."""
    response = HandshakeResponse(
        capability_flags=CLIENT_PROTOCOL_41 | CLIENT_PLUGIN_AUTH,
        max_packet_size=MAX_PACKET_SIZE,
        character_set=UTF8_GENERAL_CI,
        username=username,
    )
    return build_packet(response.to_bytes(), 1) + COM_QUIT


@dataclass(frozen=True)
class Header:
    """The four-byte header of a MySQL packet."""

    payload_len: bytes
    sequence_id: int

    def payload_length(self) -> int:
        """Return the length of the payload following the header."""
        return int.from_bytes(self.payload_len[:3], "little")


def _read_exact(reader: _Readable, n: int) -> bytes:
    data = bytearray()
    while len(data) < n:
        chunk = reader.read(n - len(data))
        if not chunk:
            raise EOFError("unexpected end of stream")
        data += chunk
    return bytes(data)


def read_header(reader: _Readable) -> Header:
    """Read a packet header from ``reader``."""
    try:
        data = _read_exact(reader, _HEADER_LEN)
    except (EOFError, OSError) as exc:
        raise HealthCheckError(f"read packet header error: {exc}") from exc
    return Header(payload_len=data[:3], sequence_id=data[3])


class _DeadlineReader:
    """Reads from a socket, never waiting past a monotonic deadline."""

    def __init__(self, sock: socket.socket, deadline: float) -> None:
        self._sock = sock
        self._deadline = deadline

    def read(self, n: int) -> bytes:
        remaining = self._deadline - time.monotonic()
        if remaining <= 0:
            raise CheckTimeoutError()
        self._sock.settimeout(remaining)
        try:
            return self._sock.recv(n)
        except TimeoutError:
            raise CheckTimeoutError() from None


class Checker:
    """Checks a MySQL server by logging in and expecting an OK packet."""

    def __init__(self, username: str) -> None:
        if not username:
            raise ValueError("username must not be empty")
        self.username = username
        self.handshake = new_health_check_packet(username)

    def check(self, addr: str, timeout: float) -> None:
        """Check the server at ``addr`` within ``timeout`` seconds."""
        deadline = time.monotonic() + timeout
        try:
            sock = socket.create_connection(_split_address(addr), timeout=timeout)
        except TimeoutError:
            raise CheckTimeoutError() from None
        with sock:
            self._send_handshake(sock, deadline)
            reader = _DeadlineReader(sock, deadline)
            try:
                self._expect_greeting(reader)
                self._expect_ok(reader)
            except EOFError as exc:
                raise UnexpectedResponseError(
                    "connection closed before the response was complete"
                ) from exc
        if time.monotonic() > deadline:
            raise CheckTimeoutError()

    def _send_handshake(self, sock: socket.socket, deadline: float) -> None:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise CheckTimeoutError()
        sock.settimeout(remaining)
        try:
            sock.sendall(self.handshake)
        except TimeoutError:
            raise CheckTimeoutError() from None
        except OSError as exc:
            raise HealthCheckError(f"write error: {exc}") from exc

    @staticmethod
    def _expect_greeting(reader: _DeadlineReader) -> None:
        header = read_header(reader)
        _read_exact(reader, header.payload_length())

    @staticmethod
    def _expect_ok(reader: _DeadlineReader) -> None:
        read_header(reader)
        # Four more bytes are read as a header before the status byte is inspected.
        _read_exact(reader, _HEADER_LEN)
        status = _read_exact(reader, 1)[0]
        if status not in (0x00, 0xFE):
            raise UnexpectedResponseError(
                f"unexpected payload header[{status:#x}] for an OK packet"
            )