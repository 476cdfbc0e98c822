"""Zero-copy linked buffers, nocopy I/O adapters, poller management and socket helpers."""

__version__ = "0.1.0"

__all__ = [
    "linkbuffer",
    "linknode",
    "loadbalance",
    "manager",
    "nocopy",
    "poll",
    "readwriter",
    "safe_linkbuffer",
    "sockopts",
    "sysio",
]