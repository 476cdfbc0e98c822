"""The poller interface and the events it can be asked to watch for."""

from __future__ import annotations

import enum
from abc import ABC, abstractmethod
from typing import Any


class PollEvent(enum.IntEnum):
    """What ``Poll.control`` should do with an operator's descriptor."""

    # Watch a listener or connection for being readable or closed.
    READABLE = 0x1
    # Watch a dialing descriptor for being writable or closed (edge triggered).
    WRITABLE = 0x2
    # Remove the descriptor from the poller.
    DETACH = 0x3
    # Also watch for writable, used when the socket send buffer is full.
    R2RW = 0x5
    # Stop watching for writable again, the counterpart of R2RW.
    RW2R = 0x6


class Poll(ABC):
    """Watches file descriptors and dispatches their events to operators."""

    @abstractmethod
    def wait(self) -> None:
        """Poll registered descriptors and handle events until closed; blocks."""

    @abstractmethod
    def close(self) -> None:
        """Close the poller and make ``wait`` return."""

    @abstractmethod
    def trigger(self) -> None:
        """Wake up the loop running ``wait`` even when no event occurred."""

    @abstractmethod
    def control(self, operator: Any, event: PollEvent) -> None:
        """Change what is watched on the operator's descriptor."""

    @abstractmethod
    def alloc(self) -> Any:
        """Take an operator from the poller's cache."""

    @abstractmethod
    def free(self, operator: Any) -> None:
        """Give an operator back to the poller's cache."""