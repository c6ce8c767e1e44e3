"""RESP (Redis serialization protocol) values, decoder and encoder."""

from __future__ import annotations

import io
import re
from dataclasses import dataclass
from enum import Enum
from typing import BinaryIO, Protocol

from samaritan.bufreader import DEFAULT_BUFFER_SIZE, BufferFullError, Reader

MAX_ARRAY_LEN = 1024 * 1024
MAX_BULK_STRING_LEN = 1024 * 1024 * 512

CR = ord("\r")
LF = ord("\n")
CRLF = b"\r\n"

_INT64_MIN = -(1 << 63)
_INT64_MAX = (1 << 63) - 1
_INT_RE = re.compile(rb"[+-]?[0-9]+")


class RespType(Enum):
    """Type marker byte of a RESP value."""

    SIMPLE_STRING = ord("+")
    ERROR = ord("-")
    INTEGER = ord(":")
    BULK_STRING = ord("$")
    ARRAY = ord("*")


@dataclass
class RespValue:
    """A RESP value. ``None`` text or array stands for the protocol's null."""

    type: RespType
    text: bytes | None = None
    integer: int = 0
    array: list[RespValue] | None = None


class ProtocolError(ValueError):
    """Malformed RESP data."""


def parse_int(b: bytes) -> int:
    """Parse a signed decimal 64-bit integer."""
    if not _INT_RE.fullmatch(b):
        raise ProtocolError(f"invalid integer: {bytes(b)!r}")
    value = int(b)
    if not _INT64_MIN <= value <= _INT64_MAX:
        raise ProtocolError(f"integer out of range: {bytes(b)!r}")
    return value


def format_int(i: int) -> str:
    """Format an integer in decimal."""
    return str(int(i))


class _Writable(Protocol):
    def write(self, data: bytes) -> object: ...


class Decoder:
    """Decodes RESP values from a byte stream; the first error is sticky."""

    def __init__(self, stream: BinaryIO, buf_size: int = DEFAULT_BUFFER_SIZE) -> None:
        self._reader = Reader(stream, buf_size)
        self._err: BaseException | None = None

    def decode(self) -> RespValue:
        """Decode the next value."""
        if self._err is not None:
            raise self._err
        try:
            return self._decode()
        except (ProtocolError, BufferFullError, EOFError, OSError) as exc:
            self._err = exc
            raise

    def _decode(self) -> RespValue:
        b = self._reader.peek_byte()
        try:
            typ = RespType(b)
        except ValueError:
            return self._decode_inline()
        self._reader.read_byte()
        if typ is RespType.INTEGER:
            return RespValue(typ, integer=self._decode_int())
        if typ in (RespType.SIMPLE_STRING, RespType.ERROR):
            return RespValue(typ, text=self._decode_text())
        if typ is RespType.BULK_STRING:
            return RespValue(typ, text=self._decode_bulk_string())
        return RespValue(typ, array=self._decode_array())

    def _decode_inline(self) -> RespValue:
        line = self._decode_text()
        parts = [RespValue(RespType.BULK_STRING, text=p) for p in line.split(b" ") if p]
        if not parts:
            raise ProtocolError("bad multi-bulk len")
        return RespValue(RespType.ARRAY, array=parts)

    def _decode_int(self) -> int:
        line = self._reader.read_slice(LF)
        if len(line) < 2 or line[-2] != CR:
            raise ProtocolError("bad CRLF end")
        return parse_int(line[:-2])

    def _decode_text(self) -> bytes:
        line = self._reader.read_bytes(LF)
        if len(line) < 2 or line[-2] != CR:
            raise ProtocolError("bad CRLF end")
        return line[:-2]

    def _decode_bulk_string(self) -> bytes | None:
        n = self._decode_int()
        if n < -1:
            raise ProtocolError("bad bulk string len")
        if n > MAX_BULK_STRING_LEN:
            raise ProtocolError("bad bulk string len, too long")
        if n == -1:
            return None
        data = self._reader.read_full(n + 2)
        if data[n] != CR or data[n + 1] != LF:
            raise ProtocolError("bad CRLF end")
        return data[:n]

    def _decode_array(self) -> list[RespValue] | None:
        n = self._decode_int()
        if n < -1:
            raise ProtocolError("bad array len")
        if n > MAX_ARRAY_LEN:
            raise ProtocolError("bad array len, too long")
        if n == -1:
            return None
        return [self._decode() for _ in range(n)]


class Encoder:
    """Encodes RESP values into a buffered byte stream; the first error is sticky."""

    def __init__(self, stream: _Writable, buf_size: int = DEFAULT_BUFFER_SIZE) -> None:
        self._stream = stream
        self._size = buf_size if buf_size > 0 else DEFAULT_BUFFER_SIZE
        self._buf = bytearray()
        self._err: BaseException | None = None

    def encode(self, value: RespValue) -> None:
        """Append one value to the output buffer."""
        if self._err is not None:
            raise self._err
        try:
            self._encode(value)
        except (ProtocolError, OSError) as exc:
            self._err = exc
            raise

    def flush(self) -> None:
        """Write out everything buffered."""
        if self._err is not None:
            raise self._err
        try:
            self._flush_buffer()
        except OSError as exc:
            self._err = exc
            raise

    def _flush_buffer(self) -> None:
        if self._buf:
            self._stream.write(bytes(self._buf))
            self._buf.clear()

    def _write(self, data: bytes) -> None:
        self._buf += data
        if len(self._buf) >= self._size:
            self._flush_buffer()

    def _write_line(self, data: bytes) -> None:
        self._write(data)
        self._write(CRLF)

    def _write_int(self, i: int) -> None:
        self._write_line(format_int(i).encode("ascii"))

    def _encode(self, value: RespValue) -> None:
        if not isinstance(value.type, RespType):
            raise ProtocolError("bad resp type")
        self._write(bytes([value.type.value]))
        if value.type is RespType.INTEGER:
            self._write_int(value.integer)
        elif value.type in (RespType.SIMPLE_STRING, RespType.ERROR):
            self._write_line(value.text or b"")
        elif value.type is RespType.BULK_STRING:
            if value.text is None:
                self._write_int(-1)
            else:
                self._write_int(len(value.text))
                self._write_line(value.text)
        elif value.array is None:
            self._write_int(-1)
        else:
            self._write_int(len(value.array))
            for item in value.array:
                self._encode(item)


def encode_value(value: RespValue) -> bytes:
    """Return the RESP encoding of a single value."""
    out = io.BytesIO()
    encoder = Encoder(out)
    encoder.encode(value)
    encoder.flush()
    return out.getvalue()