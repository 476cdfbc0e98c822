import struct

import pytest

from zcpoll import linknode
from zcpoll.linkbuffer import LinkBuffer
from zcpoll.nocopy import BLOCK_1K, BLOCK_4K, BLOCK_8K


@pytest.fixture
def cap(monkeypatch):
    def setter(value):
        monkeypatch.setattr(linknode, "link_buffer_cap", value)

    return setter


def test_link_buffer(cap):
    cap(128)
    buf = LinkBuffer()
    assert len(buf) == 0 and buf.is_empty()
    head = buf.head
    with pytest.raises(ValueError):
        buf.next(10)
    buf.malloc(128)
    assert buf.is_empty()
    with pytest.raises(ValueError):
        buf.peek(10)
    buf.flush()
    assert len(buf) == 128
    p = buf.next(28)
    assert len(p) == 28 and len(buf) == 100
    assert buf.read_node.read_exposed()
    p = buf.peek(90)
    assert len(p) == 90 and len(buf) == 100
    read = buf.read_node
    assert buf.head is head
    buf.release()
    assert buf.head is read
    inputs = buf.book(BLOCK_1K, BLOCK_8K)
    assert len(inputs) == BLOCK_1K
    buf.malloc_ack(BLOCK_1K)
    assert len(buf) == 100 and buf.malloc_len() == BLOCK_1K
    buf.flush()
    assert len(buf) == 100 + BLOCK_1K and buf.malloc_len() == 0
    assert len(buf.get_bytes(16)) == 2
    buf.skip(BLOCK_1K)
    assert len(buf) == 100


def test_get_bytes():
    buf = LinkBuffer()
    expected, b = 0, 1
    for _ in range(6):
        expected += b
        assert buf.write_binary(bytes(b)) == b
        b *= 10
    buf.flush()
    assert len(buf) == expected
    assert sum(len(v) for v in buf.get_bytes()) == expected


@pytest.mark.parametrize("n", [0, -1, -2, -3, -4])
def test_invalid_sizes(cap, n):
    cap(128)
    buf = LinkBuffer()
    assert len(buf.malloc(n)) == 0
    assert buf.write_string("") == 0
    assert buf.write_binary(b"") == 0
    buf.write_direct(b"", n)
    buf.append(None)
    if n == 0:
        buf.malloc_ack(n)
    else:
        with pytest.raises(ValueError):
            buf.malloc_ack(n)
    assert buf.malloc_len() == 0 and len(buf) == 0
    buf.flush()
    assert len(buf.next(n)) == 0
    assert len(buf.peek(n)) == 0
    buf.skip(n)
    assert buf.read_string(n) == ""
    assert buf.read_binary(n) == b""
    assert len(buf.slice(n)) == 0


def test_multi_node(cap):
    cap(8)
    buf = LinkBuffer()
    p = buf.malloc(15)
    p[:] = bytes(range(15))
    assert buf.read_node is buf.flush_node
    assert buf.write_node.malloc_off == 15
    assert buf.write_node.capacity == 16
    p = buf.malloc(7)
    p[:] = bytes(range(15, 22))
    assert buf.write_node.malloc_off == 7 and buf.write_node.capacity == 8
    buf.flush()
    assert buf.read_node is not buf.flush_node
    assert buf.flush_node is buf.write_node
    assert buf.read_node.next_node.length == 15
    assert buf.flush_node.length == 7

    p = buf.next(13)
    assert p[0] == 0 and p[12] == 12
    assert buf.read_node.off == 13 and len(buf.read_node) == 2
    assert buf.read_node.read_exposed()
    assert not buf.flush_node.read_exposed()

    assert bytes(buf.peek(4)) == bytes([13, 14, 15, 16])
    assert len(buf.cache_peek) == 4
    assert bytes(buf.peek(3)) == bytes([13, 14, 15])
    assert len(buf.cache_peek) == 4
    p = buf.peek(5)
    assert p[4] == 17 and len(buf.cache_peek) == 5
    p = buf.peek(6)
    assert p[5] == 18 and len(buf.cache_peek) == 6
    assert not buf.flush_node.read_exposed()

    buf.book(BLOCK_8K, BLOCK_8K)
    assert buf.flush_node is buf.write_node
    assert buf.flush_node.malloc_off == 8 and len(buf.flush_node) == 7
    buf.book(BLOCK_8K, BLOCK_8K)
    assert buf.flush_node is not buf.write_node
    assert buf.write_node.malloc_off == 8192 and len(buf.write_node) == 0

    buf.malloc_ack(5)
    assert buf.write_node.malloc_off == 4
    assert buf.write_node.next_node is None
    buf.flush()

    assert len(buf.next(8)) == 8
    assert buf.read_node.off == 6 and len(buf.read_node) == 2
    assert buf.flush_node.malloc_off == 4 and len(buf.flush_node) == 4
    buf.skip(3)
    assert buf.read_node is buf.flush_node
    assert buf.read_node.off == 1 and len(buf.read_node) == 3


def test_refer(cap):
    cap(8)
    wbuf = LinkBuffer()
    wbuf.book(BLOCK_8K, BLOCK_8K)
    wbuf.malloc(7)
    wbuf.flush()
    assert len(wbuf) == BLOCK_8K + 7

    buf = LinkBuffer()
    buf.write_buffer(wbuf)
    buf.flush()
    assert len(buf) == BLOCK_8K + 7
    assert len(buf.next(5)) == 5
    assert buf.read_node.off == 5
    assert buf.flush_node.malloc_off == 7 and buf.flush_node.capacity == 8

    rbuf = buf.slice(4)
    assert len(rbuf) == 4
    assert rbuf.read_node is not rbuf.flush_node
    assert len(rbuf.read_node) == 4
    assert buf.head is not buf.read_node
    assert len(buf) == BLOCK_8K - 2
    assert buf.read_node.off == 9

    node1, node2 = rbuf.head, buf.head
    rbuf.skip(len(rbuf))
    rbuf.release()
    assert rbuf.head is not node1
    assert buf.head is node2
    buf.release()
    assert buf.head is not node2 and buf.head is buf.read_node
    assert buf.read_node.off == 9 and buf.read_node.malloc_off == BLOCK_8K
    assert buf.read_node.refs == 1
    assert len(buf.read_node) == BLOCK_8K - 9


def test_reset_tail(cap):
    cap(8)
    buf = LinkBuffer()
    buf.write_byte(1)
    buf.flush()
    r1 = buf.slice(1)
    buf.reset_tail(8)
    buf.write_byte(2)
    assert r1.read_byte() == 1


def test_write_buffer():
    buf1, buf2, buf3 = LinkBuffer(), LinkBuffer(), LinkBuffer()
    buf2.malloc(1)[0] = 2
    buf2.flush()
    buf3.malloc(1)[0] = 3
    buf3.flush()
    buf1.write_buffer(buf2)
    buf1.write_buffer(buf3)
    buf1.flush()
    assert bytes(buf1.bytes()) == b"\x02\x03"


def test_check_single_node():
    buf = LinkBuffer(BLOCK_4K)
    buf.malloc(BLOCK_8K)
    buf.flush()
    assert len(buf.read_node) == 0
    assert buf.is_single_node(BLOCK_8K)
    assert len(buf.read_node) == BLOCK_8K
    assert not buf.is_single_node(BLOCK_8K + 1)
    buf = LinkBuffer(BLOCK_4K)
    buf.malloc(BLOCK_8K)
    assert not buf.is_single_node(1)


def test_write_multi_flush():
    buf = LinkBuffer()
    b1 = buf.malloc(4)
    b1[:] = b"\x01\x00\x02\x00"
    buf.flush()
    buf.flush()
    assert bytes(buf.bytes()) == b"\x01\x00\x02\x00"
    buf.skip(2)
    assert bytes(buf.bytes()) == b"\x02\x00"
    buf.flush()
    assert bytes(buf.bytes()) == b"\x02\x00"
    b2 = buf.malloc(2)
    b2[:] = b"\x03\x00"
    buf.flush()
    assert bytes(buf.bytes()) == b"\x02\x00\x03\x00"


def test_write_binary_does_not_hold_tail(cap):
    cap(8)
    b = bytearray(16)
    buf = LinkBuffer()
    buf.write_binary(memoryview(b)[:9])
    buf.flush()
    buf.write_binary(b"\x01")
    assert b[9] == 0
    buf.malloc(1)[0] = 2
    buf.flush()
    assert b[9] == 0
    assert bytes(buf.bytes())[-2:] == b"\x01\x02"


def test_write_direct(cap):
    cap(32)
    buf = LinkBuffer()
    bt = buf.malloc(32)
    bt[0:2] = b"ab"
    buf.write_direct(b"cdef", 30)
    bt[2] = ord("g")
    buf.write_direct(b"hijkl", 29)
    bt[3] = ord("m")
    buf.write_direct(b"nopqrst", 28)
    bt[4] = ord("u")
    buf.write_direct(b"vwxyz", 27)
    bt[5:] = b"abcdefghijklmnopqrstuvwxyza"
    buf.write_direct(b"abcdefghijklmnopqrstuvwxyz", 0)
    buf.flush()
    expected = b"abcdefghijklmnopqrstuvwxyzabcdefghijklmnopqrstuvwxyzaabcdefghijklmnopqrstuvwxyz"
    assert bytes(buf.bytes())[: len(expected)] == expected


def test_readinto_single_node(cap):
    cap(128)
    buf = LinkBuffer(128)
    buf.malloc(16)[:] = bytes(range(16))
    buf.flush()
    dst = bytearray(10)
    assert buf.readinto(dst) == 10
    assert dst == bytes(range(10))
    assert len(buf) == 6
    assert not buf.read_node.read_exposed()


def test_readinto_multi_node(cap):
    cap(8)
    buf = LinkBuffer(8)
    buf.malloc(8)[:] = bytes(range(8))
    buf.flush()
    buf.malloc(8)[:] = bytes(range(8, 16))
    buf.flush()
    dst = bytearray(16)
    assert buf.readinto(dst) == 16
    assert dst == bytes(range(16))
    assert len(buf) == 0


def test_readinto_partial(cap):
    cap(128)
    buf = LinkBuffer(128)
    buf.malloc(4)[:] = b"\x01\x02\x03\x04"
    buf.flush()
    dst = bytearray(16)
    assert buf.readinto(dst) == 4
    assert dst[:4] == b"\x01\x02\x03\x04"
    assert len(buf) == 0


def test_readinto_releases_non_exposed(cap):
    cap(8)
    buf = LinkBuffer(8)
    buf.malloc(8)
    buf.flush()
    buf.malloc(8)
    buf.flush()
    node1 = buf.read_node
    assert buf.readinto(bytearray(16)) == 16
    assert buf.head is not node1


def test_readinto_keeps_exposed(cap):
    cap(8)
    buf = LinkBuffer(8)
    buf.malloc(8)[:] = bytes(range(8))
    buf.flush()
    buf.malloc(8)
    buf.flush()
    buf.peek(4)
    node1 = buf.read_node
    assert node1.read_exposed()
    dst = bytearray(16)
    assert buf.readinto(dst) == 16
    assert dst[0] == 0
    assert buf.head is node1
    buf.release()
    assert buf.head is not node1


def test_readinto_exposed_then_plain_then_partial(cap):
    cap(8)
    buf = LinkBuffer(8)
    for start in (0, 8, 16):
        buf.malloc(8)[:] = bytes(range(start, start + 8))
        buf.flush()
    buf.peek(4)
    node1 = buf.read_node
    node2 = node1.next_node
    assert node1.read_exposed() and not node2.read_exposed()
    dst = bytearray(20)
    assert buf.readinto(dst) == 20
    assert dst == bytes(range(20))
    assert len(buf) == 4
    assert buf.head is node1
    assert node1.next_node is buf.read_node
    buf.release()
    assert buf.head is buf.read_node


def test_index_byte(cap):
    cap(128)
    lb = LinkBuffer()
    for i in range(20):
        chunk = bytearray(1002)
        chunk[500] = chunk[1001] = ord("\n")
        lb.malloc(1002)[:] = chunk
        lb.flush()
        last = i * 1002
        assert lb.index_byte(ord("\n"), last) == 500 + last
        assert lb.index_byte(ord("\n"), 500 + last) == 500 + last
        assert lb.index_byte(ord("\n"), 501 + last) == 1001 + last


def test_until():
    buf = LinkBuffer()
    buf.write_string("ab\ncd")
    buf.flush()
    assert bytes(buf.until(ord("\n"))) == b"ab\n"
    with pytest.raises(ValueError):
        buf.until(ord("\n"))
    assert buf.read_string(2) == "cd"
    with pytest.raises(ValueError):
        buf.read_byte()


def test_peek_memory_is_stable():
    buf_cap, nodes, magic = BLOCK_8K, 4, 2024
    buf = LinkBuffer(buf_cap)
    assert buf.write_node.capacity == buf_cap
    assert buf.memory_size() == buf_cap
    for _ in range(nodes):
        p = buf.malloc(buf_cap)
        p[:8] = struct.pack(">Q", magic)
    assert buf.malloc_len() == buf_cap * nodes
    buf.flush()
    assert buf.malloc_len() == 0
    for _ in range(10):
        p = buf.peek(buf_cap)
        assert struct.unpack(">Q", p[:8])[0] == magic
        assert buf.memory_size() == buf_cap * nodes
    size = None
    for _ in range(20):
        p = buf.peek(buf_cap + 1)
        assert len(p) == buf_cap + 1
        assert struct.unpack(">Q", p[:8])[0] == magic
        if size is None:
            size = buf.memory_size()
        assert buf.memory_size() == size


def test_malloc_ack_with_write_direct():
    s_len = 1024 * 7
    buf1, buf2 = b"\x01\x02\x03\x04", b"\x05\x06\x07\x08"
    lb = LinkBuffer(0)
    buf = lb.malloc(4 + s_len)
    buf[:4] = buf1
    s = bytes(s_len)
    lb.write_direct(s, s_len)
    lb.malloc_ack(4 + s_len)
    lb.flush()
    lb.malloc(4)[:] = buf2
    lb.flush()
    assert bytes(lb.next(8 + s_len)) == buf1 + s + buf2


def test_read_write_offsets():
    buf = LinkBuffer()
    buf.seek_read(buf.read_offset())
    buf.write_binary(b"hello")
    buf.flush()
    pos = buf.read_offset()
    buf.skip(3)
    assert len(buf) == 2
    buf.seek_read(pos)
    assert len(buf) == 5
    assert buf.read_binary(5) == b"hello"

    buf2 = LinkBuffer()
    buf2.malloc(4)
    assert buf2.write_offset() == 4
    buf2.resize_pending(4)
    buf2.malloc(4)
    assert buf2.write_offset() == 8
    buf2.resize_pending(4)
    assert buf2.write_offset() == 4

    grow = LinkBuffer()
    grow.resize_pending(16)
    assert grow.malloc_len() == 16
    grow.flush()
    assert len(grow) == 16
    assert bytes(grow.peek(16)) == bytes(16)

    closed = LinkBuffer()
    closed.close()
    with pytest.raises(RuntimeError):
        closed.seek_read(0)
    with pytest.raises(RuntimeError):
        closed.resize_pending(0)


def test_resize_pending_zero_then_rewrite():
    buf = LinkBuffer()
    buf.write_byte(123)
    buf.resize_pending(0)
    buf.write_byte(234)
    buf.flush()
    assert buf.read_byte() == 234


def test_append_rejects_foreign_writer():
    with pytest.raises(TypeError):
        LinkBuffer().append(object())