"""Buffered reader offering byte, delimiter and fixed-length reads over a stream."""

from __future__ import annotations

from typing import NoReturn, Protocol

DEFAULT_BUFFER_SIZE = 4096

_CHUNK_SIZE = 8192
_LARGE_SLICE = 512


class RawReader(Protocol):
    """Anything with a ``read(n)`` method returning bytes (empty at end of stream)."""

    def read(self, n: int) -> bytes: ...


class BufferFullError(Exception):
    """Raised by :meth:`Reader.read_slice` when no delimiter fits in the buffer.

    ``data`` holds the whole buffer content, which has been consumed.
    """

    def __init__(self, data: bytes) -> None:
        super().__init__("buffer full")
        self.data = data


class SliceAllocator:
    """Hands out small writable slices carved from shared chunks.

    ``allocs`` counts how many fresh allocations were needed.
    """

    def __init__(self) -> None:
        self.allocs = 0
        self._chunk = memoryview(bytearray())

    def make(self, n: int) -> memoryview:
        """Return a writable view of exactly ``n`` bytes."""
        if n == 0:
            return memoryview(bytearray())
        if n >= _LARGE_SLICE:
            return self._alloc(n)
        if len(self._chunk) < n:
            self._chunk = self._alloc(_CHUNK_SIZE)
        view, self._chunk = self._chunk[:n], self._chunk[n:]
        return view

    def _alloc(self, n: int) -> memoryview:
        self.allocs += 1
        return memoryview(bytearray(n))


def _delimiter(delim: int | bytes) -> int:
    if isinstance(delim, int):
        return delim
    if len(delim) != 1:
        raise ValueError("delimiter must be a single byte")
    return delim[0]


class Reader:
    """A buffered reader whose first error is sticky: it is raised on every later call."""

    def __init__(self, raw: RawReader, size: int = DEFAULT_BUFFER_SIZE) -> None:
        if size <= 0:
            size = DEFAULT_BUFFER_SIZE
        self._raw = raw
        self._buf = bytearray(size)
        self._r = 0
        self._w = 0
        self._err: BaseException | None = None
        self._slices = SliceAllocator()

    @property
    def buffered(self) -> int:
        """Number of bytes held in the buffer and not yet consumed."""
        return self._w - self._r

    def _check(self) -> None:
        if self._err is not None:
            raise self._err

    def _fail(self, exc: BaseException) -> NoReturn:
        self._err = exc
        raise exc

    def _raw_read(self, n: int) -> bytes:
        try:
            data = self._raw.read(n)
        except OSError as exc:
            self._fail(exc)
        if not data:
            self._fail(EOFError("end of stream"))
        return bytes(data)

    def _fill(self) -> None:
        self._check()
        if self._r > 0:
            n = self._w - self._r
            self._buf[:n] = self._buf[self._r:self._w]
            self._r, self._w = 0, n
        space = len(self._buf) - self._w
        data = self._raw_read(space)[:space]
        self._buf[self._w:self._w + len(data)] = data
        self._w += len(data)

    def read(self, n: int) -> bytes:
        """Read up to ``n`` bytes; at most one read is made on the raw stream."""
        self._check()
        if n <= 0:
            return b""
        if self.buffered == 0:
            if n >= len(self._buf):
                return self._raw_read(n)
            self._fill()
        k = min(n, self.buffered)
        data = bytes(self._buf[self._r:self._r + k])
        self._r += k
        return data

    def read_byte(self) -> int:
        """Read and consume one byte."""
        self._check()
        if self.buffered == 0:
            self._fill()
        c = self._buf[self._r]
        self._r += 1
        return c

    def peek_byte(self) -> int:
        """Return the next byte without consuming it."""
        self._check()
        if self.buffered == 0:
            self._fill()
        return self._buf[self._r]

    def read_slice(self, delim: int | bytes) -> bytes:
        """Read up to and including ``delim``, which must fit in the buffer."""
        d = _delimiter(delim)
        self._check()
        while True:
            index = self._buf.find(d, self._r, self._w)
            if index >= 0:
                data = bytes(self._buf[self._r:index + 1])
                self._r = index + 1
                return data
            if self.buffered == len(self._buf):
                self._r = self._w
                raise BufferFullError(bytes(self._buf))
            self._fill()

    def read_bytes(self, delim: int | bytes) -> bytes:
        """Read up to and including ``delim``, however long the data is."""
        fragments: list[bytes] = []
        while True:
            try:
                last = self.read_slice(delim)
            except BufferFullError as full:
                fragments.append(full.data)
                continue
            fragments.append(last)
            return b"".join(fragments)

    def read_full(self, n: int) -> bytes:
        """Read exactly ``n`` bytes or raise :class:`EOFError`."""
        self._check()
        if n == 0:
            return b""
        out = self._slices.make(n)
        pos = 0
        while pos < n:
            try:
                chunk = self.read(n - pos)
            except EOFError:
                if pos == 0:
                    raise
                raise EOFError("unexpected end of stream") from None
            out[pos:pos + len(chunk)] = chunk
            pos += len(chunk)
        return out.tobytes()