"""Adapters between zero-copy readers/writers and Python binary streams."""

from __future__ import annotations

import io
from typing import Optional

from .linkbuffer import LinkBuffer
from .nocopy import BLOCK_4K, BufferEOFError, BytesLike, Reader, ReadWriter, Writer

MAX_READ_CYCLE = 16


def _as_view(data: BytesLike) -> memoryview:
    view = data if isinstance(data, memoryview) else memoryview(data)
    if view.ndim != 1 or view.format != "B":
        view = view.cast("B")
    return view


class ZCReader(Reader):
    """Zero-copy reader over a stream that offers ``readinto``.

    A ``readinto`` returning 0 marks the end of the stream.
    """

    def __init__(self, r) -> None:
        self.r = r
        self.buf = LinkBuffer()

    def __len__(self) -> int:
        return len(self.buf)

    def next(self, n: int) -> memoryview:
        self._wait_read(n)
        return self.buf.next(n)

    def peek(self, n: int) -> memoryview:
        self._wait_read(n)
        return self.buf.peek(n)

    def skip(self, n: int) -> None:
        self._wait_read(n)
        self.buf.skip(n)

    def release(self) -> None:
        self.buf.release()

    def slice(self, n: int) -> Reader:
        self._wait_read(n)
        return self.buf.slice(n)

    def read_string(self, n: int) -> str:
        self._wait_read(n)
        return self.buf.read_string(n)

    def read_binary(self, n: int) -> bytes:
        self._wait_read(n)
        return self.buf.read_binary(n)

    def read_byte(self) -> int:
        self._wait_read(1)
        return self.buf.read_byte()

    def until(self, delim: int) -> memoryview:
        """Search only the data already buffered."""
        return self.buf.until(delim)

    def _wait_read(self, n: int) -> None:
        while len(self.buf) < n:
            self._fill(n)

    def _fill(self, n: int) -> None:
        """Read from the stream until ``n`` bytes are buffered, at most 16 times."""
        for _ in range(MAX_READ_CYCLE):
            if len(self.buf) >= n:
                return
            view = self.buf.malloc(BLOCK_4K)
            try:
                num = self.r.readinto(view)
            except BaseException:
                self.buf.malloc_ack(0)
                self.buf.flush()
                raise
            if num is None:
                num = 0
            elif num < 0:
                self.buf.malloc_ack(0)
                self.buf.flush()
                raise ValueError(f"zcReader fill negative count[{num}]")
            eof = num == 0
            self.buf.malloc_ack(num)
            self.buf.flush()
            if eof:
                raise BufferEOFError("stream ended before enough data was read")


class ZCWriter(Writer):
    """Zero-copy writer whose ``flush`` hands the data to a stream's ``write``."""

    def __init__(self, w) -> None:
        self.w = w
        self.buf = LinkBuffer()

    def malloc(self, n: int) -> memoryview:
        return self.buf.malloc(n)

    def malloc_len(self) -> int:
        return self.buf.malloc_len()

    def flush(self) -> None:
        self.buf.flush()
        written = self.w.write(self.buf.bytes())
        if written:
            self.buf.skip(written)
            self.buf.release()

    def malloc_ack(self, n: int) -> None:
        self.buf.malloc_ack(n)

    def append(self, writer: Optional[Writer]) -> None:
        self.buf.append(writer)

    def write_string(self, s: str) -> int:
        return self.buf.write_string(s)

    def write_binary(self, data: BytesLike) -> int:
        return self.buf.write_binary(data)

    def write_direct(self, extra: BytesLike, remain_len: int) -> None:
        self.buf.write_direct(extra, remain_len)

    def write_byte(self, value: int) -> None:
        self.buf.write_byte(value)


class ZCReadWriter(ReadWriter):
    """A zero-copy reader and writer over one duplex stream."""

    def __init__(self, rw) -> None:
        self.reader = ZCReader(rw)
        self.writer = ZCWriter(rw)

    def __len__(self) -> int:
        return len(self.reader)

    def next(self, n: int) -> memoryview:
        return self.reader.next(n)

    def peek(self, n: int) -> memoryview:
        return self.reader.peek(n)

    def skip(self, n: int) -> None:
        self.reader.skip(n)

    def until(self, delim: int) -> memoryview:
        return self.reader.until(delim)

    def read_string(self, n: int) -> str:
        return self.reader.read_string(n)

    def read_binary(self, n: int) -> bytes:
        return self.reader.read_binary(n)

    def read_byte(self) -> int:
        return self.reader.read_byte()

    def slice(self, n: int) -> Reader:
        return self.reader.slice(n)

    def release(self) -> None:
        self.reader.release()

    def malloc(self, n: int) -> memoryview:
        return self.writer.malloc(n)

    def write_string(self, s: str) -> int:
        return self.writer.write_string(s)

    def write_binary(self, data: BytesLike) -> int:
        return self.writer.write_binary(data)

    def write_byte(self, value: int) -> None:
        self.writer.write_byte(value)

    def write_direct(self, extra: BytesLike, remain_len: int) -> None:
        self.writer.write_direct(extra, remain_len)

    def malloc_ack(self, n: int) -> None:
        self.writer.malloc_ack(n)

    def append(self, writer: Optional[Writer]) -> None:
        self.writer.append(writer)

    def flush(self) -> None:
        self.writer.flush()

    def malloc_len(self) -> int:
        return self.writer.malloc_len()


class IOReader(io.RawIOBase):
    """Binary stream reading from a zero-copy Reader.

    Each read releases the reader, invalidating views it handed out before.
    """

    def __init__(self, r: Reader) -> None:
        super().__init__()
        self.r = r

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        out = _as_view(buffer)
        size = min(len(out), len(self.r))
        if size == 0:
            return 0
        out[:size] = self.r.next(size)
        self.r.release()
        return size


class IOWriter(io.RawIOBase):
    """Binary stream writing into a zero-copy Writer, flushing on every write."""

    def __init__(self, w: Writer) -> None:
        super().__init__()
        self.w = w

    def writable(self) -> bool:
        return True

    def write(self, data) -> int:
        view = _as_view(data)
        n = len(view)
        dst = self.w.malloc(n)
        if n:
            dst[:n] = view
        self.w.flush()
        return n


class IOReadWriter(io.RawIOBase):
    """Binary stream combining a readable and a writable stream."""

    def __init__(self, reader, writer) -> None:
        super().__init__()
        self.reader = reader
        self.writer = writer

    def readable(self) -> bool:
        return True

    def writable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        return self.reader.readinto(buffer)

    def write(self, data) -> int:
        return self.writer.write(data)


def new_reader(r) -> ZCReader:
    """Wrap a stream with ``readinto`` as a zero-copy Reader."""
    return ZCReader(r)


def new_writer(w) -> ZCWriter:
    """Wrap a stream with ``write`` as a zero-copy Writer."""
    return ZCWriter(w)


def new_read_writer(rw) -> ZCReadWriter:
    """Wrap a duplex stream as a zero-copy ReadWriter."""
    return ZCReadWriter(rw)


def new_io_reader(r):
    """Return ``r`` if it is already a binary stream, else wrap it."""
    if isinstance(r, io.IOBase):
        return r
    return IOReader(r)


def new_io_writer(w):
    """Return ``w`` if it is already a binary stream, else wrap it."""
    if isinstance(w, io.IOBase):
        return w
    return IOWriter(w)


def new_io_read_writer(rw):
    """Return ``rw`` if it is already a binary stream, else wrap it."""
    if isinstance(rw, io.IOBase):
        return rw
    return IOReadWriter(new_io_reader(rw), new_io_writer(rw))