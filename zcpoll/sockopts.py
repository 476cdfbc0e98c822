"""Keep-alive and default socket options applied to raw descriptors."""

from __future__ import annotations

import errno
import socket
import sys
from contextlib import suppress

from .sysio import _borrowed

_PLATFORM = sys.platform
_IS_DARWIN = _PLATFORM == "darwin"
_IS_OPENBSD = _PLATFORM.startswith("openbsd")
_IS_DRAGONFLY = _PLATFORM.startswith("dragonfly")
_IS_BSD = _IS_DARWIN or _PLATFORM.startswith(("freebsd", "netbsd", "openbsd", "dragonfly"))

# Darwin option numbers that the socket module may not expose.
_DARWIN_TCP_KEEPINTVL = 0x101
_DARWIN_TCP_KEEPALIVE = getattr(socket, "TCP_KEEPALIVE", 0x10)

# BSD ephemeral port range options.
_IP_PORTRANGE = getattr(socket, "IP_PORTRANGE", 19)
_IP_PORTRANGE_HIGH = getattr(socket, "IP_PORTRANGE_HIGH", 1)
_IPV6_PORTRANGE = getattr(socket, "IPV6_PORTRANGE", 14)
_IPV6_PORTRANGE_HIGH = getattr(socket, "IPV6_PORTRANGE_HIGH", 1)


def set_keep_alive(fd: int, secs: int) -> None:
    """Enable TCP keep-alive on ``fd`` with idle time and probe interval of ``secs``.

    OpenBSD has no per-socket keep-alive settings, so nothing is done there.
    """
    if _IS_OPENBSD:
        return
    with _borrowed(fd) as sock:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)
        if _IS_DARWIN:
            try:
                sock.setsockopt(socket.IPPROTO_TCP, _DARWIN_TCP_KEEPINTVL, secs)
            except OSError as exc:
                # Older releases do not know this option.
                if exc.errno != errno.ENOPROTOOPT:
                    raise
            sock.setsockopt(socket.IPPROTO_TCP, _DARWIN_TCP_KEEPALIVE, secs)
            return
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPINTVL, secs)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_KEEPIDLE, secs)


def set_default_sockopts(fd: int, family: int, sotype: int, ipv6only: bool) -> None:
    """Apply the options every new socket gets, ending with allowing broadcast."""
    with _borrowed(fd) as sock:
        if _IS_BSD:
            if _IS_DRAGONFLY and sotype != socket.SOCK_RAW:
                # Widen the narrow default ephemeral port range.
                with suppress(OSError):
                    if family == socket.AF_INET:
                        sock.setsockopt(socket.IPPROTO_IP, _IP_PORTRANGE, _IP_PORTRANGE_HIGH)
                    elif family == socket.AF_INET6:
                        sock.setsockopt(
                            socket.IPPROTO_IPV6, _IPV6_PORTRANGE, _IPV6_PORTRANGE_HIGH
                        )
        elif family == socket.AF_INET6 and sotype != socket.SOCK_RAW:
            # Some systems never admit this option; that is not an error.
            with suppress(OSError):
                sock.setsockopt(socket.IPPROTO_IPV6, socket.IPV6_V6ONLY, int(bool(ipv6only)))
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)