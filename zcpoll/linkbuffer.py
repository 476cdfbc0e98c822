"""A linked list of byte blocks that supports zero-copy reads and writes."""

from __future__ import annotations

from typing import Iterator, Optional

from .linknode import LinkBufferNode, NodeFlag, new_link_buffer_node
from .nocopy import (
    BLOCK_1K,
    BLOCK_4K,
    MALLOC_MAX,
    PAGESIZE,
    BytesLike,
    Reader,
    ReadWriter,
    Writer,
    free,
    malloc,
)

# Data written with write_binary larger than this is linked in, not copied.
BINARY_INPLACE_THRESHOLD = BLOCK_4K

_EMPTY = memoryview(b"")


def _as_view(data: BytesLike) -> memoryview:
    view = data if isinstance(data, memoryview) else memoryview(data)
    if view.ndim != 1 or view.format != "B":
        view = view.cast("B")
    return view


def _normalize_read(
    read: Optional[LinkBufferNode], flush: Optional[LinkBufferNode]
) -> Optional[LinkBufferNode]:
    if read is None:
        return None
    while read is not flush and len(read) == 0 and read.next_node is not None:
        read = read.next_node
    return read


class LinkBuffer(ReadWriter):
    """A chain of nodes: ``head`` .. ``read_node`` .. ``flush_node`` .. ``write_node``.

    Nodes before ``read_node`` are consumed and wait for ``release``; data up
    to ``flush_node`` is readable; nodes after it hold reserved space that
    ``flush`` turns into readable data.
    """

    def __init__(self, size: int = 0) -> None:
        node = new_link_buffer_node(size)
        self._length = 0
        self._malloc_size = 0
        self.head: Optional[LinkBufferNode] = node
        self.read_node: Optional[LinkBufferNode] = node
        self.flush_node: Optional[LinkBufferNode] = node
        self.write_node: Optional[LinkBufferNode] = node
        self._caches: list[memoryview] = []
        self.cache_peek: Optional[bytes] = None

    @classmethod
    def _blank(cls) -> "LinkBuffer":
        buf = LinkBuffer.__new__(LinkBuffer)
        buf._length = 0
        buf._malloc_size = 0
        buf.head = buf.read_node = buf.flush_node = buf.write_node = None
        buf._caches = []
        buf.cache_peek = None
        return buf

    def __len__(self) -> int:
        return self._length

    def is_empty(self) -> bool:
        return self._length == 0

    def _nodes(self) -> Iterator[LinkBufferNode]:
        cur = self.head
        while cur is not None:
            yield cur
            cur = cur.next_node

    # ----------------------------------------------------------- offsets

    def _read_upper_bound(self) -> int:
        total = 0
        for cur in self._nodes():
            total += cur.length
            if cur is self.flush_node:
                break
        return total

    def read_offset(self) -> int:
        """The read cursor as a byte offset from ``head``."""
        if self.head is None:
            return 0
        r = _normalize_read(self.read_node, self.flush_node)
        if r is None:
            return 0
        total = 0
        for cur in self._nodes():
            if cur is r:
                return total + r.off
            total += cur.length
        return 0

    def seek_read(self, offset: int) -> None:
        """Move the read cursor to ``offset`` bytes from ``head``."""
        if self.head is None:
            raise RuntimeError("link buffer is closed")
        if offset < 0:
            raise ValueError("link buffer read offset: negative")
        if offset > self._read_upper_bound():
            raise ValueError("link buffer read offset: beyond flush")
        old_len = len(self)
        cum = 0
        for cur in self._nodes():
            lb = cur.length
            if cur is self.flush_node or offset < cum + lb:
                self.read_node = cur
                cur.off = offset - cum
                self._finish_seek(old_len)
                return
            if offset == cum + lb:
                nxt = cur.next_node
                if nxt is None:
                    raise ValueError("link buffer read offset: invalid chain")
                self.read_node = nxt
                nxt.off = 0
                self._finish_seek(old_len)
                return
            cum += lb
        raise ValueError("link buffer read offset: flush not found")

    def _finish_seek(self, old_len: int) -> None:
        while (
            self.read_node is not self.flush_node
            and len(self.read_node) == 0
            and self.read_node.next_node is not None
        ):
            self.read_node = self.read_node.next_node
        self._recal_len(self._readable_from(self.read_node, self.read_node.off) - old_len)
        if self.cache_peek is not None:
            self.cache_peek = b""

    def _readable_from(self, node: LinkBufferNode, off: int) -> int:
        flush = self.flush_node
        if node is flush:
            return 0 if off > flush.length else flush.length - off
        total = node.length - off
        cur = node.next_node
        while cur is not flush:
            if cur is None:
                return 0
            total += len(cur)
            cur = cur.next_node
        return total + flush.length - flush.off

    def write_offset(self) -> int:
        """The number of reserved bytes not yet flushed."""
        return self._malloc_size

    def resize_pending(self, n: int) -> None:
        """Truncate the reserved bytes to ``n`` or grow them with zeros."""
        if self.head is None:
            raise RuntimeError("link buffer is closed")
        if n < 0:
            raise ValueError("link buffer write offset: negative")
        if n == self._malloc_size:
            return
        if n < self._malloc_size:
            self.malloc_ack(n)
            return
        view = self.malloc(n - self._malloc_size)
        view[:] = bytes(len(view))

    # ------------------------------------------------------- copy reader

    def readinto(self, buffer) -> int:
        """Copy up to ``len(buffer)`` bytes out without exposing node memory."""
        out = _as_view(buffer)
        size = min(len(out), len(self))
        if size == 0:
            return 0
        self._recal_len(-size)
        n, ack = 0, size
        while ack > 0:
            r = self.read_node
            rd = len(r)
            if rd == 0:
                self.read_node = r.next_node
                continue
            if rd >= ack:
                out[n : n + ack] = r.data[r.off : r.off + ack]
                r.off += ack
                n += ack
                break
            out[n : n + rd] = r.data[r.off : r.length]
            n += rd
            ack -= rd
            self.read_node = r.next_node
        while self.read_node is not self.flush_node and len(self.read_node) == 0:
            self.read_node = self.read_node.next_node
        prev: Optional[LinkBufferNode] = None
        new_head = self.read_node
        cur = self.head
        while cur is not self.read_node:
            nxt = cur.next_node
            if cur.read_exposed():
                if prev is None:
                    new_head = cur
                prev = cur
            else:
                cur.release()
                if prev is not None:
                    prev.next_node = nxt
            cur = nxt
        self.head = new_head
        return n

    # -------------------------------------------------- zero-copy reader

    def _check(self, n: int, what: str) -> None:
        if len(self) < n:
            raise ValueError(f"link buffer {what}[{n}] not enough")

    def _copy_out(self, out: memoryview, n: int) -> None:
        idx, ack = 0, n
        while ack > 0:
            node = self.read_node
            size = len(node)
            if size >= ack:
                out[idx : idx + ack] = node.next(ack)
                return
            if size > 0:
                out[idx : idx + size] = node.next(size)
                idx += size
                ack -= size
            self.read_node = node.next_node

    def next(self, n: int) -> memoryview:
        if n <= 0:
            return _EMPTY
        self._check(n, "next")
        self._recal_len(-n)
        if self.is_single_node(n):
            self.read_node.set_flag(NodeFlag.READ_EXPOSED)
            return self.read_node.next(n)
        if BLOCK_1K < n <= MALLOC_MAX:
            out = malloc(n, n)
            self._caches.append(out)
        else:
            out = memoryview(bytearray(n))
        self._copy_out(out, n)
        return out

    def peek(self, n: int) -> memoryview:
        if n <= 0:
            return _EMPTY
        self._check(n, "peek")
        if self.is_single_node(n):
            self.read_node.set_flag(NodeFlag.READ_EXPOSED)
            return self.read_node.peek(n)
        cache = self.cache_peek or b""
        if len(cache) >= n:
            return memoryview(cache)[:n]
        parts = [cache]
        have, scanned = len(cache), 0
        node = self.read_node
        while have < n:
            size = len(node)
            if scanned + size > have:
                start = have - scanned
                count = min(n - have, size - start)
                parts.append(bytes(node.peek(size)[start : start + count]))
                have += count
            scanned += size
            node = node.next_node
        self.cache_peek = b"".join(parts)
        return memoryview(self.cache_peek)[:n]

    def skip(self, n: int) -> None:
        if n <= 0:
            return
        self._check(n, "skip")
        self._recal_len(-n)
        ack = n
        while ack > 0:
            size = len(self.read_node)
            if size >= ack:
                self.read_node.off += ack
                return
            ack -= size
            self.read_node = self.read_node.next_node

    def release(self) -> None:
        while self.read_node is not self.flush_node and len(self.read_node) == 0:
            self.read_node = self.read_node.next_node
        while self.head is not self.read_node:
            node = self.head
            self.head = node.next_node
            node.release()
        for cached in self._caches:
            free(cached)
        self._caches.clear()
        self.cache_peek = None

    def read_string(self, n: int) -> str:
        if n <= 0:
            return ""
        self._check(n, "read string")
        return self._read_binary(n).decode("utf-8", "surrogateescape")

    def read_binary(self, n: int) -> bytes:
        if n <= 0:
            return b""
        self._check(n, "read binary")
        return self._read_binary(n)

    def _read_binary(self, n: int) -> bytes:
        self._recal_len(-n)
        if self.is_single_node(n):
            return bytes(self.read_node.next(n))
        out = memoryview(bytearray(n))
        self._copy_out(out, n)
        return bytes(out)

    def read_byte(self) -> int:
        if len(self) < 1:
            raise ValueError("link buffer read byte is empty")
        self._recal_len(-1)
        while len(self.read_node) < 1:
            self.read_node = self.read_node.next_node
        return self.read_node.next(1)[0]

    def until(self, delim: int) -> memoryview:
        n = self.index_byte(delim, 0)
        if n < 0:
            raise ValueError("link buffer read slice cannot find delim")
        return self.next(n + 1)

    def slice(self, n: int) -> "LinkBuffer":
        """Hand the next ``n`` bytes to a new read-only buffer sharing memory."""
        if n <= 0:
            return LinkBuffer(0)
        self._check(n, "readv")
        self._recal_len(-n)
        part = LinkBuffer._blank()
        part._length = n
        multi = not self.is_single_node(n)
        if not multi:
            self.read_node.set_flag(NodeFlag.READ_EXPOSED)
            node = self.read_node.refer(n)
            part.head = part.read_node = part.flush_node = node
        else:
            size = len(self.read_node)
            self.read_node.set_flag(NodeFlag.READ_EXPOSED)
            node = self.read_node.refer(size)
            self.read_node = self.read_node.next_node
            part.head = part.read_node = part.flush_node = node
            ack = n - size
            while ack > 0:
                src = self.read_node
                size = len(src)
                if size >= ack:
                    src.set_flag(NodeFlag.READ_EXPOSED)
                    part.flush_node.next_node = src.refer(ack)
                    part.flush_node = part.flush_node.next_node
                    break
                if size > 0:
                    src.set_flag(NodeFlag.READ_EXPOSED)
                    part.flush_node.next_node = src.refer(size)
                    part.flush_node = part.flush_node.next_node
                self.read_node = src.next_node
                ack -= size
        part.flush_node = part.flush_node.next_node
        part.write_node = part.flush_node
        if multi:
            self.release()
        return part

    # -------------------------------------------------- zero-copy writer

    def malloc(self, n: int) -> memoryview:
        if n <= 0:
            return _EMPTY
        self._malloc_size += n
        self._growth(n)
        return self.write_node.malloc(n)

    def malloc_len(self) -> int:
        return self._malloc_size

    def malloc_ack(self, n: int) -> None:
        if n < 0:
            raise ValueError(f"link buffer malloc ack[{n}] invalid")
        self._malloc_size = n
        self.write_node = self.flush_node
        ack = n
        while ack > 0:
            w = self.write_node
            size = w.malloc_off - w.length
            if size >= ack:
                w.malloc_off = ack + w.length
                break
            ack -= size
            self.write_node = w.next_node
        if n == 0:
            node = self.flush_node
            while node is not None:
                node.malloc_off = min(node.malloc_off, node.length) if node.malloc_off > node.length else node.malloc_off
                node = node.next_node
        node = self.write_node.next_node
        while node is not None:
            node.malloc_off = node.off
            node.refs = 1
            node.length = node.off
            node = node.next_node

    def flush(self) -> None:
        self._malloc_size = 0
        if self.write_node.capacity > PAGESIZE:
            self.write_node.next_node = new_link_buffer_node(0)
            self.write_node = self.write_node.next_node
        added = 0
        stop = self.write_node.next_node
        node = self.flush_node
        while node is not stop:
            delta = node.malloc_off - node.length
            if delta > 0:
                added += delta
                node.length = node.malloc_off
            node = node.next_node
        self.flush_node = self.write_node
        self._recal_len(added)

    def append(self, writer: Optional[Writer]) -> None:
        if writer is not None and not isinstance(writer, LinkBuffer):
            raise TypeError("unsupported writer which is not LinkBuffer")
        self.write_buffer(writer)

    def write_buffer(self, buf: Optional["LinkBuffer"]) -> None:
        """Link the nodes of ``buf`` onto this buffer without flushing; ``buf`` is closed."""
        if buf is None:
            return
        buf_len, buf_malloc = len(buf), buf.malloc_len()
        if buf_len + buf_malloc <= 0:
            return
        self.write_node.next_node = buf.read_node
        self.write_node = buf.write_node
        while buf.head is not buf.read_node:
            node = buf.head
            buf.head = node.next_node
            node.release()
        node = buf.write_node.next_node
        while node is not None:
            nxt = node.next_node
            node.release()
            node = nxt
        buf._length = buf._malloc_size = 0
        buf.head = buf.read_node = buf.flush_node = buf.write_node = None
        self.write_node.next_node = None
        if buf_len > 0:
            self._recal_len(buf_len)
        self._malloc_size += buf_malloc

    def write_string(self, s: str) -> int:
        if not s:
            return 0
        return self.write_binary(s.encode("utf-8", "surrogateescape"))

    def write_binary(self, data: BytesLike) -> int:
        view = _as_view(data)
        n = len(view)
        if n == 0:
            return 0
        self._malloc_size += n
        if n > BINARY_INPLACE_THRESHOLD:
            node = new_link_buffer_node(0)
            node.assign(view, 0)
            node.malloc_off = n
            self.write_node.next_node = node
            self.write_node = node
            return n
        self._growth(n)
        self.write_node.malloc(n)[:] = view
        return n

    def write_direct(self, extra: BytesLike, remain_len: int) -> None:
        view = _as_view(extra) if extra is not None else _EMPTY
        n = len(view)
        if n == 0 or remain_len < 0:
            return
        origin = self.flush_node
        offset = self._malloc_size - remain_len
        pending = origin.malloc_off - origin.length
        while pending < offset:
            offset -= pending
            origin = origin.next_node
            pending = origin.malloc_off - origin.length
        offset += origin.length

        data_node = new_link_buffer_node(0)
        data_node.assign(view, 0)
        data_node.malloc_off = n
        if remain_len > 0:
            tail = new_link_buffer_node(0)
            tail.data = origin.data
            tail.length = offset
            tail.off = offset
            tail.malloc_off = origin.malloc_off
            tail.unset_flag(NodeFlag.UNMANAGED)
            origin.malloc_off = offset
            origin.set_flag(NodeFlag.UNMANAGED)
            data_node.next_node = tail
            tail.next_node = origin.next_node
            origin.next_node = data_node
        else:
            data_node.next_node = origin.next_node
            origin.next_node = data_node
        while self.write_node.next_node is not None:
            self.write_node = self.write_node.next_node
        self._malloc_size += n

    def write_byte(self, value: int) -> None:
        self.malloc(1)[0] = value

    def close(self) -> None:
        """Recycle every node; the buffer cannot be used afterwards."""
        self._length = 0
        self._malloc_size = 0
        self.release()
        node = self.head
        while node is not None:
            nxt = node.next_node
            node.release()
            node = nxt
        self.head = self.read_node = self.flush_node = self.write_node = None

    # ------------------------------------------------ connection support

    def bytes(self) -> memoryview:
        """All readable bytes, copied only when they span several nodes."""
        node, flush = self.read_node, self.flush_node
        if node is flush:
            return node.buf[node.off :]
        parts = []
        while node is not flush:
            if len(node) > 0:
                parts.append(node.buf[node.off :])
            node = node.next_node
        if flush is not None:
            parts.append(flush.buf[flush.off :])
        return memoryview(b"".join(parts))

    def get_bytes(self, limit: Optional[int] = None) -> list[memoryview]:
        """Views of the readable data node by node, at most ``limit`` of them."""
        node, flush = self.read_node, self.flush_node
        if not limit:
            limit = 0
            cur = node
            while cur is not flush:
                limit += 1
                cur = cur.next_node
        out: list[memoryview] = []
        while node is not flush and len(out) < limit:
            if len(node) > 0:
                node.set_flag(NodeFlag.READ_EXPOSED)
                out.append(node.buf[node.off :])
            node = node.next_node
        if len(out) < limit:
            flush.set_flag(NodeFlag.READ_EXPOSED)
            out.append(flush.buf[flush.off :])
        return out

    def book(self, book_size: int, max_size: int) -> memoryview:
        """Reserve up to ``book_size`` bytes, growing by ``max_size`` if full."""
        size = self.write_node.capacity - self.write_node.malloc_off
        if size == 0:
            size = max_size
            self.write_node.next_node = new_link_buffer_node(max_size)
            self.write_node = self.write_node.next_node
        return self.write_node.malloc(min(size, book_size))

    def book_ack(self, n: int) -> int:
        """Keep ``n`` booked bytes as readable data and return the new length."""
        w = self.write_node
        w.malloc_off = n + w.length
        w.length = w.malloc_off
        self.flush_node = w
        return self._recal_len(n)

    def calc_max_size(self) -> int:
        total = 0
        node = self.head
        while node is not self.read_node:
            total += node.length
            node = node.next_node
        return total + self.read_node.length

    def reset_tail(self, max_size: int) -> None:
        if max_size <= PAGESIZE:
            return
        self.write_node.next_node = new_link_buffer_node(0)
        self.write_node = self.write_node.next_node
        self.flush_node = self.write_node

    def index_byte(self, c: int, skip: int) -> int:
        """Index of the first ``c`` at or after ``skip`` in the readable data, or -1."""
        size = len(self)
        if skip >= size:
            return -1
        unread = size
        node = self.read_node
        while unread > 0:
            n = min(len(node), unread)
            if skip >= n:
                skip -= n
            else:
                i = bytes(node.peek(n)[skip:]).find(c)
                if i >= 0:
                    return (size - unread) + skip + i
                skip = 0
            unread -= n
            node = node.next_node
        return -1

    def is_single_node(self, n: int) -> bool:
        """Whether ``n`` bytes can be read from one node; skips empty nodes."""
        if n <= 0:
            return True
        size = len(self.read_node)
        while size == 0 and self.read_node is not self.flush_node:
            self.read_node = self.read_node.next_node
            size = len(self.read_node)
        return size >= n

    def memory_size(self) -> int:
        """Bytes of memory held by nodes and caches."""
        total = sum(node.capacity for node in self._nodes())
        total += sum(len(c.obj) for c in self._caches)
        return total + len(self.cache_peek or b"")

    def _recal_len(self, delta: int) -> int:
        if delta < 0 and self.cache_peek:
            self.cache_peek = b""
        self._length += delta
        return self._length

    def _growth(self, n: int) -> None:
        if n <= 0:
            return
        while (
            self.write_node.get_flag(NodeFlag.UNMANAGED)
            or self.write_node.capacity - self.write_node.malloc_off < n
        ):
            if self.write_node.next_node is None:
                self.write_node.next_node = new_link_buffer_node(n)
                self.write_node = self.write_node.next_node
                return
            self.write_node = self.write_node.next_node


Reader.register  # keep the base classes imported for type checkers