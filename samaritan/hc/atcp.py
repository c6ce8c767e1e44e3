"""Advanced TCP health checking: scripted send and expect actions over one connection."""

from __future__ import annotations

import binascii
import logging
import queue
import socket
import string
import threading
import time
from typing import Callable, Iterable, Protocol

logger = logging.getLogger(__name__)

MAX_BUFFER_SIZE = 2048

_SIMPLE_ESCAPES = {
    "a": 0x07,
    "b": 0x08,
    "f": 0x0C,
    "n": 0x0A,
    "r": 0x0D,
    "t": 0x09,
    "v": 0x0B,
    "\\": 0x5C,
}
_OCTAL_DIGITS = "01234567"


class HealthCheckError(Exception):
    """Base class of errors reported by a health check."""


class CheckTimeoutError(HealthCheckError):
    """The health check did not finish before its deadline."""

    def __init__(self, message: str = "health check timed out") -> None:
        super().__init__(message)


class UnexpectedResponseError(HealthCheckError):
    """The server answered with something other than what was expected."""

    def __init__(self, message: str = "unexpected response") -> None:
        super().__init__(message)


class PayloadError(ValueError):
    """A configured payload is malformed, empty or too large."""


class SkippedTooFarError(Exception):
    """:meth:`BufferedConn.skip_buffer` was asked to skip beyond the buffered data."""

    def __init__(self, message: str = "skipped beyond buffer size") -> None:
        super().__init__(message)


class Stream(Protocol):
    """A byte stream with ``read``, ``write`` and ``close``."""

    def read(self, n: int) -> bytes: ...

    def write(self, data: bytes) -> int | None: ...

    def close(self) -> object: ...


class _EndOfStream:
    """Marker stored as the connection state once the peer has closed."""


_EOF = _EndOfStream()


class BufferedConn:
    """A connection with a read buffer shared among the actions of one check."""

    def __init__(self, conn: Stream) -> None:
        self._conn = conn
        self._buf = bytearray(MAX_BUFFER_SIZE)
        self._start = 0
        self._end = 0
        self._err: BaseException | _EndOfStream | None = None

    def buffer(self) -> bytes:
        """Return the unread buffered data, reading more first if there is none."""
        if self._start == self._end:
            self.read_more()
        logger.debug("buffer: %d, %d", self._start, self._end)
        return bytes(self._buf[self._start:self._end])

    def _set_err(self, err: BaseException | _EndOfStream) -> None:
        logger.debug("error: %s", err)
        if self._err is None or self._err is _EOF:
            self._err = err

    def error(self) -> BaseException | None:
        """Return the first error met other than end of stream, if any."""
        if isinstance(self._err, BaseException):
            return self._err
        return None

    def at_eof(self) -> bool:
        """True once the stream has ended or failed."""
        return self._err is not None

    def skip_buffer(self, n: int) -> None:
        """Discard the first ``n`` buffered bytes."""
        if n <= 0:
            return
        if self._start + n > self._end:
            raise SkippedTooFarError()
        self._start += n
        if self._start == self._end:
            self._start = self._end = 0

    def _shift_if_needed(self) -> None:
        if self._end >= len(self._buf):
            pending = self._end - self._start
            self._buf[:pending] = self._buf[self._start:self._end]
            logger.debug("shift: %d, %d -> 0, %d", self._start, self._end, pending)
            self._start, self._end = 0, pending

    def read_more(self) -> None:
        """Read more data from the stream into the buffer, recording any error."""
        self._shift_if_needed()
        space = len(self._buf) - self._end
        if space == 0:
            return
        try:
            data = self._conn.read(space)
        except OSError as exc:
            self._set_err(exc)
            return
        if not data:
            self._set_err(_EOF)
            return
        data = bytes(data[:space])
        self._buf[self._end:self._end + len(data)] = data
        self._end += len(data)

    def read(self, n: int) -> bytes:
        """Read directly from the underlying stream, bypassing the buffer."""
        return self._conn.read(n)

    def write(self, data: bytes) -> int | None:
        """Write to the underlying stream."""
        return self._conn.write(data)

    def close(self) -> None:
        """Close the underlying stream."""
        self._conn.close()


def _unescape(body: str, i: int, quote: str) -> tuple[int, bytes]:
    if i >= len(body):
        raise PayloadError("invalid escape at end of string")
    c = body[i]
    if c in _SIMPLE_ESCAPES:
        return i + 1, bytes([_SIMPLE_ESCAPES[c]])
    if c == quote:
        return i + 1, c.encode("ascii")
    if c == "x":
        digits = body[i + 1:i + 3]
        if len(digits) != 2 or not all(d in string.hexdigits for d in digits):
            raise PayloadError("invalid \\x escape")
        return i + 3, bytes([int(digits, 16)])
    if c in "uU":
        width = 4 if c == "u" else 8
        digits = body[i + 1:i + 1 + width]
        if len(digits) != width or not all(d in string.hexdigits for d in digits):
            raise PayloadError(f"invalid \\{c} escape")
        value = int(digits, 16)
        if value > 0x10FFFF or 0xD800 <= value <= 0xDFFF:
            raise PayloadError(f"invalid code point in \\{c} escape")
        return i + 1 + width, chr(value).encode("utf-8")
    if c in _OCTAL_DIGITS:
        digits = body[i:i + 3]
        if len(digits) != 3 or not all(d in _OCTAL_DIGITS for d in digits):
            raise PayloadError("invalid octal escape")
        value = int(digits, 8)
        if value > 0xFF:
            raise PayloadError("octal escape out of range")
        return i + 3, bytes([value])
    raise PayloadError(f"unknown escape \\{c}")


def _unquote(raw: bytes) -> bytes:
    """Interpret a double-quoted, single-quoted or backquoted string literal."""
    text = raw.decode("utf-8", "surrogateescape")
    if len(text) < 2 or text[0] != text[-1]:
        raise PayloadError("invalid quoted string")
    quote, body = text[0], text[1:-1]
    if quote == "`":
        if "`" in body:
            raise PayloadError("invalid raw string")
        return body.replace("\r", "").encode("utf-8", "surrogateescape")
    if quote not in "\"'":
        raise PayloadError("invalid quoted string")
    if "\n" in body:
        raise PayloadError("newline in quoted string")
    out = bytearray()
    units = 0
    i = 0
    while i < len(body):
        c = body[i]
        if c == quote:
            raise PayloadError("unescaped quote in string")
        if c == "\\":
            i, chunk = _unescape(body, i + 1, quote)
            out += chunk
        else:
            out += c.encode("utf-8", "surrogateescape")
            i += 1
        units += 1
    if quote == "'" and units != 1:
        raise PayloadError("character literal must hold exactly one character")
    return bytes(out)


def decode_payload(raw: bytes) -> bytes:
    """Decode a quoted payload; a leading ``b`` marks a quoted hex string."""
    if not raw:
        raise PayloadError("payload can not be empty")
    if raw[0] != ord("b"):
        return _unquote(raw)
    hex_text = _unquote(raw[1:])
    try:
        return binascii.unhexlify(hex_text)
    except (binascii.Error, ValueError) as exc:
        raise PayloadError(f"invalid hex payload: {exc}") from None


def _validate_payload(payload: bytes) -> None:
    if not payload:
        raise PayloadError("payload can not be empty")
    if len(payload) > MAX_BUFFER_SIZE:
        raise PayloadError("payload too large")


def _decode_and_validate(raw: bytes | str) -> bytes:
    if isinstance(raw, str):
        raw = raw.encode("utf-8")
    payload = decode_payload(raw)
    _validate_payload(payload)
    return payload


def _do_with_deadline(deadline: float, fn: Callable[[], None]) -> None:
    """Run ``fn`` in a worker thread; raise :class:`CheckTimeoutError` if the
    monotonic ``deadline`` passes first, else whatever ``fn`` raised."""
    outcome: queue.Queue[BaseException | None] = queue.Queue(maxsize=1)

    def run() -> None:
        try:
            fn()
        except Exception as exc:  # handed back to the caller
            outcome.put(exc)
            return
        outcome.put(None)

    threading.Thread(target=run, daemon=True).start()
    try:
        err = outcome.get(timeout=max(0.0, deadline - time.monotonic()))
    except queue.Empty:
        raise CheckTimeoutError() from None
    if err is not None:
        raise err


def send_bytes_with_deadline(writer: Stream | BufferedConn, payload: bytes, deadline: float) -> None:
    """Write ``payload`` before the monotonic ``deadline``."""

    def send() -> None:
        written = writer.write(payload)
        if written is not None and written != len(payload):
            raise OSError("short write")

    _do_with_deadline(deadline, send)


def expect_bytes_with_deadline(reader: Stream | BufferedConn, payload: bytes, deadline: float) -> None:
    """Read exactly ``len(payload)`` bytes before the deadline and compare them."""

    def expect() -> None:
        received = bytearray()
        while len(received) < len(payload):
            chunk = reader.read(len(payload) - len(received))
            if not chunk:
                raise EOFError("unexpected end of stream")
            received += chunk
        if bytes(received) != payload:
            raise UnexpectedResponseError()

    _do_with_deadline(deadline, expect)


class TCPSend:
    """Action sending a fixed payload."""

    def __init__(self, raw: bytes | str) -> None:
        self.payload = _decode_and_validate(raw)

    def perform(self, conn: BufferedConn, deadline: float) -> None:
        """Send the payload before the deadline."""
        send_bytes_with_deadline(conn, self.payload, deadline)


def _ends_with_partially(buf: bytes, payload: bytes) -> int:
    """Return where a proper prefix of ``payload`` starts as a suffix of ``buf``, or -1."""
    for i in range(len(payload) - 1, 0, -1):
        if buf.endswith(payload[:i]):
            return len(buf) - i
    return -1


class TCPExpect:
    """Action waiting for a fixed payload to appear in the incoming data."""

    def __init__(self, raw: bytes | str) -> None:
        self.payload = _decode_and_validate(raw)

    def _search(self, buf: bytes, at_eof: bool) -> tuple[int, bool]:
        index = buf.find(self.payload)
        if index != -1:
            logger.debug("expect: found at %d", index)
            return index + len(self.payload), True
        if at_eof:
            logger.debug("expect: not found at all")
            return -1, False
        partial = _ends_with_partially(buf, self.payload)
        if partial != -1:
            logger.debug("expect: prefix found at %d", partial)
            return partial, False
        return len(buf), False

    def perform(self, conn: BufferedConn, deadline: float) -> None:
        """Consume incoming data until the payload has been seen."""
        err = conn.error()
        if err is not None:
            raise err

        def expect() -> None:
            while True:
                skip, found = self._search(conn.buffer(), conn.at_eof())
                if skip > 0:
                    conn.skip_buffer(skip)
                if found:
                    return
                if skip == -1:
                    raise UnexpectedResponseError()
                conn.read_more()
                failure = conn.error()
                if failure is not None:
                    raise failure

        _do_with_deadline(deadline, expect)


class _SocketStream:
    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    def read(self, n: int) -> bytes:
        return self._sock.recv(n)

    def write(self, data: bytes) -> int:
        self._sock.sendall(data)
        return len(data)

    def close(self) -> None:
        self._sock.close()


def _split_address(addr: str) -> tuple[str, int]:
    host, sep, port = addr.rpartition(":")
    if not sep or not port.isdigit():
        raise ValueError(f"invalid address: {addr!r}")
    host = host.strip("[]") or "localhost"
    return host, int(port)


class Checker:
    """Runs a scripted list of send/expect actions against a TCP server."""

    def __init__(self, actions: Iterable[tuple[bytes | str, bytes | str]]) -> None:
        self.actions: list[TCPSend | TCPExpect] = []
        for send, expect in actions:
            self.actions.append(TCPSend(send))
            self.actions.append(TCPExpect(expect))
        if not self.actions:
            raise ValueError("at least one action is required")

    def check(self, addr: str, timeout: float) -> None:
        """Connect to ``addr`` and run every action within ``timeout`` seconds."""
        deadline = time.monotonic() + timeout
        sock = socket.create_connection(_split_address(addr), timeout=timeout)
        conn = BufferedConn(_SocketStream(sock))
        try:
            for action in self.actions:
                action.perform(conn, deadline)
        finally:
            conn.close()