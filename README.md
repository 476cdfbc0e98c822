# zcpoll

Building blocks for buffered network I/O on POSIX systems.

## What is in the package

- **`zcpoll.linkbuffer.LinkBuffer`** is a chain of nodes that hold bytes.
  - To write, reserve space with `malloc(n)`, fill the writable
    `memoryview` it returns, and make the data readable with `flush()`.
    `write_binary`, `write_string`, `write_byte` and `write_direct` also
    write, `malloc_ack(n)` keeps only the first `n` reserved bytes, and
    `write_buffer` / `append` move another `LinkBuffer`'s nodes onto this
    one.
  - To read, use `next`, `peek`, `skip`, `until`, `read_binary`,
    `read_string`, `read_byte`, `slice` (a new buffer that shares memory
    with this one) or `readinto` (copies into a buffer you supply).
  - `release()` recycles nodes that have already been read. After it runs,
    views returned by `next`/`peek` are no longer valid.
  - `seek_read` / `read_offset` move the read cursor, and `resize_pending`
    truncates the reserved bytes or pads them with zeros.
- **`zcpoll.safe_linkbuffer.SafeLinkBuffer`** has the same operations, each
  one run under a re-entrant lock.
- **`zcpoll.linknode`** holds the nodes (`LinkBufferNode`, `NodeFlag`,
  `new_link_buffer_node`). **`zcpoll.nocopy`** holds the abstract
  `Reader`, `Writer` and `ReadWriter` interfaces, `BufferEOFError`, and a
  small pooled allocator (`malloc`, `free`) that rounds capacities up to
  powers of two.
- **`zcpoll.readwriter`** has adapters in both directions:
  - `new_reader`, `new_writer` and `new_read_writer` wrap file-like objects
    (`readinto` / `write`) as nocopy readers and writers. These are
    `ZCReader`, `ZCWriter` and `ZCReadWriter`.
  - `new_io_reader`, `new_io_writer` and `new_io_read_writer` turn nocopy
    readers and writers into `io.RawIOBase` streams. These are `IOReader`,
    `IOWriter` and `IOReadWriter`. An object that is already an
    `io.IOBase` is returned unchanged.
- **`zcpoll.poll`** defines the abstract `Poll` interface (`wait`, `close`,
  `trigger`, `control`, `alloc`, `free`) and the `PollEvent` values.
- **`zcpoll.loadbalance`** provides `RoundRobinLB` and `RandomLB`, and
  `new_loadbalance` to build one from a `LoadBalance` value.
- **`zcpoll.manager.Manager`** keeps `num_loops` pollers. It creates them
  with a `poll_factory` you supply and runs each one's `wait` in a daemon
  thread. Pollers are opened or closed on the first `pick()` after
  `set_num_loops`.
- **`zcpoll.sysio`** provides `get_sys_fd_pairs`, `sys_socket` (a
  non-blocking socket), `set_tcp_no_delay`, and vectored `readv`, `writev`
  and `sendmsg`. `iovecs` caps the total size of one call at 2**31 - 1
  bytes.
- **`zcpoll.sockopts`** provides `set_keep_alive` and
  `set_default_sockopts`. `set_keep_alive` does nothing on OpenBSD.

## What it does not do

The package has no concrete poller. Nothing here wraps epoll or kqueue, so
you must pass `Manager` a factory that makes your own `Poll` implementation.
It also has no connections, listeners, dialers or event-loop server. It has
no command-line tool.

## Installation

```
pip install .
```

To run the tests:

```
pip install .[test]
pytest
```

## Example

```python
from zcpoll.linkbuffer import LinkBuffer

buf = LinkBuffer(0)
buf.write_string("hello\nworld")
buf.flush()

line = buf.until(ord("\n"))       # b"hello\n"
rest = buf.read_string(len(buf))  # "world"
buf.release()
```

`malloc` returns a writable view. Whatever you put into it becomes readable
after `flush`:

```python
view = buf.malloc(4)
view[:] = b"ping"
buf.flush()
assert buf.next(4) == b"ping"
```

Reading from a file-like object:

```python
import io
from zcpoll.readwriter import new_reader

reader = new_reader(io.BytesIO(b"abcdef"))
assert reader.peek(3) == b"abc"
reader.skip(3)
assert reader.read_binary(3) == b"def"
```

Reads never return a short result. When a `LinkBuffer` holds fewer bytes
than a read asks for, the read raises `ValueError`. When the stream behind
a `ZCReader` ends too early, the read raises `BufferEOFError`.