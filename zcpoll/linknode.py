"""Nodes of the linked byte buffer."""

from __future__ import annotations

import enum
import threading
from dataclasses import dataclass, field
from typing import Optional

from .nocopy import BLOCK_4K, BytesLike, free, malloc

# Minimum capacity of a managed node; adjustable at run time.
link_buffer_cap = BLOCK_4K

_EMPTY = memoryview(b"")
_refs_lock = threading.Lock()


class NodeFlag(enum.IntFlag):
    """State bits of a node."""

    NONE = 0
    # The memory was not allocated by the buffer (user data or zero-size node);
    # it is never recycled and never grown into.
    UNMANAGED = 1 << 0
    # The memory was handed to user code by a zero-copy read and may still be
    # referenced until the next release.
    READ_EXPOSED = 1 << 1


@dataclass(eq=False)
class LinkBufferNode:
    """A window of memory with read and write offsets, linked to the next node.

    ``data`` spans the whole capacity; ``length`` bytes of it are readable
    data, of which the first ``off`` have been consumed. ``malloc_off`` marks
    the end of the space handed out for writing.
    """

    data: memoryview = field(default=_EMPTY, repr=False)
    length: int = 0
    off: int = 0
    malloc_off: int = 0
    refs: int = 1
    mode: NodeFlag = NodeFlag.NONE
    origin: Optional[LinkBufferNode] = field(default=None, repr=False)
    next_node: Optional[LinkBufferNode] = field(default=None, repr=False)

    @property
    def buf(self) -> memoryview:
        """The readable data, consumed part included."""
        return self.data[: self.length]

    @property
    def capacity(self) -> int:
        return len(self.data)

    def assign(self, data: BytesLike, length: int = 0) -> None:
        """Point the node at ``data`` with ``length`` bytes already readable."""
        view = data if isinstance(data, memoryview) else memoryview(data)
        if view.ndim != 1 or view.format != "B":
            view = view.cast("B")
        if not 0 <= length <= len(view):
            raise ValueError(f"length {length} outside buffer of {len(view)} bytes")
        self.data = view
        self.length = length

    def __len__(self) -> int:
        return self.length - self.off

    def is_empty(self) -> bool:
        return self.off == self.length

    def reset(self) -> None:
        """Rewind an unshared node so its memory can be written again."""
        if self.origin is not None or self.refs != 1:
            return
        self.off = self.malloc_off = 0
        self.length = 0

    def _window(self, start: int, n: int) -> memoryview:
        if n < 0 or start + n > self.capacity:
            raise IndexError(
                f"range [{start}:{start + n}] outside node capacity {self.capacity}"
            )
        return self.data[start : start + n]

    def next(self, n: int) -> memoryview:
        """Return ``n`` bytes from the read offset and advance past them."""
        view = self._window(self.off, n)
        self.off += n
        return view

    def peek(self, n: int) -> memoryview:
        """Return ``n`` bytes from the read offset without advancing."""
        return self._window(self.off, n)

    def malloc(self, n: int) -> memoryview:
        """Hand out ``n`` writable bytes after the previous allocation."""
        view = self._window(self.malloc_off, n)
        self.malloc_off += n
        return view

    def refer(self, n: int) -> LinkBufferNode:
        """Consume ``n`` bytes into a read-only node that shares this memory.

        The root node is kept alive until every node referring to it is released.
        """
        child = new_link_buffer_node(0)
        child.assign(self.next(n), n)
        child.origin = self.origin if self.origin is not None else self
        with _refs_lock:
            child.origin.refs += 1
        return child

    def release(self) -> None:
        """Drop one reference to this node and its origin, recycling at zero."""
        if self.origin is not None:
            self.origin.release()
        with _refs_lock:
            self.refs -= 1
            dead = self.refs == 0
        if dead:
            if self.reusable():
                free(self.data)
            self.data = _EMPTY
            self.length = self.off = self.malloc_off = 0
            self.origin = None
            self.next_node = None

    def get_flag(self, flag: NodeFlag) -> bool:
        return bool(self.mode & flag)

    def set_flag(self, flag: NodeFlag) -> None:
        self.mode |= flag

    def unset_flag(self, flag: NodeFlag) -> None:
        self.mode &= ~flag

    def reusable(self) -> bool:
        """Whether the memory belongs to the buffer and may be recycled."""
        return not self.mode & NodeFlag.UNMANAGED

    def read_exposed(self) -> bool:
        """Whether the memory was handed out by a zero-copy read."""
        return bool(self.mode & NodeFlag.READ_EXPOSED)


def new_link_buffer_node(size: int) -> LinkBufferNode:
    """Create a node with at least ``size`` bytes of pooled memory.

    A size of zero or less gives an unmanaged node without memory of its own.
    """
    node = LinkBufferNode()
    if size <= 0:
        node.set_flag(NodeFlag.UNMANAGED)
        return node
    size = max(size, link_buffer_cap)
    node.data = memoryview(malloc(0, size).obj)
    return node