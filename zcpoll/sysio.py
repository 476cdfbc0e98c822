"""Socket creation and vectored I/O on raw file descriptors."""

from __future__ import annotations

import os
import socket
from contextlib import contextmanager
from typing import Iterable, Iterator

from .nocopy import BytesLike

# Vectored calls move at most this many bytes at once.
MAX_IOV_BYTES = 2**31 - 1


def _as_view(data: BytesLike) -> memoryview:
    view = data if isinstance(data, memoryview) else memoryview(data)
    if view.ndim != 1 or view.format != "B":
        view = view.cast("B")
    return view


@contextmanager
def _borrowed(fd: int) -> Iterator[socket.socket]:
    """Wrap ``fd`` in a socket object for the duration of the block.

    The descriptor is left open afterwards.
    """
    sock = socket.socket(fileno=fd)
    try:
        yield sock
    finally:
        sock.detach()


def get_sys_fd_pairs() -> tuple[int, int]:
    """Create a connected pair of Unix stream sockets and return their descriptors."""
    left, right = socket.socketpair(socket.AF_UNIX, socket.SOCK_STREAM)
    return left.detach(), right.detach()


def set_tcp_no_delay(fd: int, enabled: bool) -> None:
    """Turn TCP_NODELAY on or off for the socket ``fd``."""
    with _borrowed(fd) as sock:
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, int(bool(enabled)))


def sys_socket(family: int, sotype: int, proto: int) -> int:
    """Create a non-blocking, close-on-exec socket and return its descriptor."""
    sock = socket.socket(family, sotype, proto)
    try:
        sock.setblocking(False)
    except OSError:
        sock.close()
        raise
    return sock.detach()


def iovecs(bufs: Iterable[BytesLike], limit: int = MAX_IOV_BYTES) -> list[memoryview]:
    """Views of the non-empty chunks of ``bufs``, cut so their total stays within ``limit``."""
    vecs: list[memoryview] = []
    total = 0
    for chunk in bufs:
        view = _as_view(chunk)
        size = len(view)
        if size == 0:
            continue
        total += size
        if total < limit:
            vecs.append(view)
        else:
            vecs.append(view[: limit - total + size])
            break
    return vecs


def writev(fd: int, bufs: Iterable[BytesLike]) -> int:
    """Write the chunks of ``bufs`` in one call and return the bytes written."""
    vecs = iovecs(bufs)
    if not vecs:
        return 0
    return os.writev(fd, vecs)


def readv(fd: int, bufs: Iterable[BytesLike]) -> int:
    """Fill the writable chunks of ``bufs`` in one call; 0 means end of stream."""
    vecs = iovecs(bufs)
    if not vecs:
        return 0
    return os.readv(fd, vecs)


def sendmsg(fd: int, bufs: Iterable[BytesLike], zerocopy: bool = False) -> int:
    """Send the chunks of ``bufs`` as one message and return the bytes sent.

    ``zerocopy`` is accepted for symmetry and has no effect.
    """
    vecs = iovecs(bufs)
    if not vecs:
        return 0
    with _borrowed(fd) as sock:
        return sock.sendmsg(vecs)