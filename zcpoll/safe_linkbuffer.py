"""A LinkBuffer whose operations are serialised by a lock."""

from __future__ import annotations

import threading
from typing import Optional

from .linkbuffer import LinkBuffer
from .nocopy import BytesLike, Writer


class SafeLinkBuffer(LinkBuffer):
    """LinkBuffer that holds a re-entrant lock around every operation.

    Meant for one reading thread and one writing thread sharing a buffer.
    """

    def __init__(self, size: int = 0) -> None:
        self._lock = threading.RLock()
        super().__init__(size)

    # ------------------------------------------------------- copy reader

    def readinto(self, buffer) -> int:
        with self._lock:
            return super().readinto(buffer)

    # -------------------------------------------------- zero-copy reader

    def next(self, n: int) -> memoryview:
        with self._lock:
            return super().next(n)

    def peek(self, n: int) -> memoryview:
        with self._lock:
            return super().peek(n)

    def skip(self, n: int) -> None:
        with self._lock:
            super().skip(n)

    def until(self, delim: int) -> memoryview:
        with self._lock:
            return super().until(delim)

    def release(self) -> None:
        with self._lock:
            super().release()

    def read_string(self, n: int) -> str:
        with self._lock:
            return super().read_string(n)

    def read_binary(self, n: int) -> bytes:
        with self._lock:
            return super().read_binary(n)

    def read_byte(self) -> int:
        with self._lock:
            return super().read_byte()

    def slice(self, n: int) -> LinkBuffer:
        with self._lock:
            return super().slice(n)

    # -------------------------------------------------- zero-copy writer

    def malloc(self, n: int) -> memoryview:
        with self._lock:
            return super().malloc(n)

    def malloc_len(self) -> int:
        with self._lock:
            return super().malloc_len()

    def read_offset(self) -> int:
        with self._lock:
            return super().read_offset()

    def seek_read(self, offset: int) -> None:
        with self._lock:
            super().seek_read(offset)

    def write_offset(self) -> int:
        with self._lock:
            return super().write_offset()

    def resize_pending(self, n: int) -> None:
        with self._lock:
            super().resize_pending(n)

    def malloc_ack(self, n: int) -> None:
        with self._lock:
            super().malloc_ack(n)

    def flush(self) -> None:
        with self._lock:
            super().flush()

    def append(self, writer: Optional[Writer]) -> None:
        with self._lock:
            super().append(writer)

    def write_buffer(self, buf: Optional[LinkBuffer]) -> None:
        with self._lock:
            super().write_buffer(buf)

    def write_string(self, s: str) -> int:
        with self._lock:
            return super().write_string(s)

    def write_binary(self, data: BytesLike) -> int:
        with self._lock:
            return super().write_binary(data)

    def write_direct(self, extra: BytesLike, remain_len: int) -> None:
        with self._lock:
            super().write_direct(extra, remain_len)

    def write_byte(self, value: int) -> None:
        with self._lock:
            super().write_byte(value)

    def close(self) -> None:
        with self._lock:
            super().close()

    # ------------------------------------------------ connection support

    def bytes(self) -> memoryview:
        with self._lock:
            return super().bytes()

    def get_bytes(self, limit: Optional[int] = None) -> list[memoryview]:
        with self._lock:
            return super().get_bytes(limit)

    def book(self, book_size: int, max_size: int) -> memoryview:
        with self._lock:
            return super().book(book_size, max_size)

    def book_ack(self, n: int) -> int:
        with self._lock:
            return super().book_ack(n)

    def calc_max_size(self) -> int:
        with self._lock:
            return super().calc_max_size()

    def reset_tail(self, max_size: int) -> None:
        with self._lock:
            super().reset_tail(max_size)

    def index_byte(self, c: int, skip: int) -> int:
        with self._lock:
            return super().index_byte(c, skip)