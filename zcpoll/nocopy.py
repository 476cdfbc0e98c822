"""Zero-copy reader and writer interfaces and the pooled byte allocator."""

from __future__ import annotations

import threading
from abc import ABC, abstractmethod
from typing import Union

BLOCK_1K = 1 * 1024
BLOCK_2K = 2 * 1024
BLOCK_4K = 4 * 1024
BLOCK_8K = 8 * 1024
BLOCK_32K = 32 * 1024

PAGESIZE = BLOCK_8K
# Largest capacity served from (and returned to) the pool: 8 MiB.
MALLOC_MAX = BLOCK_8K * BLOCK_1K

BytesLike = Union[bytes, bytearray, memoryview]

_POOL_LIMIT = 64
_pool_lock = threading.Lock()
_pools: dict[int, list[bytearray]] = {}


class BufferEOFError(EOFError):
    """Raised when a stream ends before the requested bytes arrived."""


def _size_class(capacity: int) -> int:
    return 1 << (capacity - 1).bit_length()


def malloc(size: int, capacity: int) -> memoryview:
    """Return a view of ``size`` bytes over storage of at least ``capacity`` bytes.

    The storage is available as ``view.obj``. Capacities up to ``MALLOC_MAX``
    are rounded up to a power of two and may be recycled from earlier ``free``
    calls, so their contents are not cleared.
    """
    if size < 0 or capacity < 0:
        raise ValueError(f"invalid allocation size={size} capacity={capacity}")
    capacity = max(size, capacity)
    if capacity == 0:
        return memoryview(bytearray())
    if capacity > MALLOC_MAX:
        return memoryview(bytearray(capacity))[:size]
    granted = _size_class(capacity)
    with _pool_lock:
        bucket = _pools.get(granted)
        storage = bucket.pop() if bucket else None
    if storage is None:
        storage = bytearray(granted)
    return memoryview(storage)[:size]


def free(buf: BytesLike) -> None:
    """Hand storage obtained from ``malloc`` back to the pool.

    Storage that the pool did not produce (immutable data, oversized or
    irregular capacities) is left alone.
    """
    storage = buf.obj if isinstance(buf, memoryview) else buf
    if not isinstance(storage, bytearray):
        return
    capacity = len(storage)
    if capacity == 0 or capacity > MALLOC_MAX or capacity & (capacity - 1):
        return
    with _pool_lock:
        bucket = _pools.setdefault(capacity, [])
        if len(bucket) < _POOL_LIMIT and not any(s is storage for s in bucket):
            bucket.append(storage)


class Reader(ABC):
    """Operations for reading without copying.

    Reads are expected to be blocking: asking for ``n`` bytes either yields
    exactly ``n`` bytes or raises.
    """

    @abstractmethod
    def __len__(self) -> int:
        """Number of readable bytes."""

    @abstractmethod
    def next(self, n: int) -> memoryview:
        """Return the next ``n`` bytes and advance; valid until ``release``."""

    @abstractmethod
    def peek(self, n: int) -> memoryview:
        """Return the next ``n`` bytes without advancing."""

    @abstractmethod
    def skip(self, n: int) -> None:
        """Advance past the next ``n`` bytes."""

    @abstractmethod
    def until(self, delim: int) -> memoryview:
        """Return the bytes up to and including the first ``delim``."""

    @abstractmethod
    def read_string(self, n: int) -> str:
        """Read ``n`` bytes as a string."""

    @abstractmethod
    def read_binary(self, n: int) -> bytes:
        """Read ``n`` bytes into an independent copy."""

    @abstractmethod
    def read_byte(self) -> int:
        """Read a single byte."""

    @abstractmethod
    def slice(self, n: int) -> "Reader":
        """Return a new reader over the next ``n`` bytes and release this one."""

    @abstractmethod
    def release(self) -> None:
        """Recycle the memory of everything read so far."""


class Writer(ABC):
    """Operations for writing without copying: allocate, fill, then flush."""

    @abstractmethod
    def malloc(self, n: int) -> memoryview:
        """Reserve ``n`` writable bytes, submitted by the next ``flush``."""

    @abstractmethod
    def write_string(self, s: str) -> int:
        """Append a string and return the number of bytes written."""

    @abstractmethod
    def write_binary(self, data: BytesLike) -> int:
        """Append bytes, possibly by reference, and return their count."""

    @abstractmethod
    def write_byte(self, value: int) -> None:
        """Append a single byte."""

    @abstractmethod
    def write_direct(self, extra: BytesLike, remain_len: int) -> None:
        """Insert ``extra`` before the last ``remain_len`` reserved bytes."""

    @abstractmethod
    def malloc_ack(self, n: int) -> None:
        """Keep the first ``n`` reserved bytes and discard the rest."""

    @abstractmethod
    def append(self, writer: "Writer") -> None:
        """Move the contents of ``writer`` onto the end of this writer."""

    @abstractmethod
    def flush(self) -> None:
        """Submit all reserved bytes."""

    @abstractmethod
    def malloc_len(self) -> int:
        """Number of reserved bytes not yet submitted."""


class ReadWriter(Reader, Writer):
    """Both a zero-copy reader and a zero-copy writer."""