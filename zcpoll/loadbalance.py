"""Ways of choosing one poller among several."""

from __future__ import annotations

import enum
import random
import threading
from typing import Sequence, Union

from .poll import Poll


class LoadBalance(enum.IntEnum):
    """How connections are spread over pollers."""

    ROUND_ROBIN = 0
    RANDOM = 1


def _require(polls: Sequence[Poll]) -> None:
    if not polls:
        raise IndexError("no polls to pick from")


class RandomLB:
    """Picks a poller uniformly at random."""

    def __init__(self, polls: Sequence[Poll]) -> None:
        self.polls = list(polls)

    def load_balance(self) -> LoadBalance:
        return LoadBalance.RANDOM

    def pick(self) -> Poll:
        _require(self.polls)
        return self.polls[random.randrange(len(self.polls))]

    def rebalance(self, polls: Sequence[Poll]) -> None:
        self.polls = list(polls)


class RoundRobinLB:
    """Picks pollers in turn; the counter is bumped before each pick."""

    def __init__(self, polls: Sequence[Poll]) -> None:
        self.polls = list(polls)
        self._accepted = 0
        self._lock = threading.Lock()

    def load_balance(self) -> LoadBalance:
        return LoadBalance.ROUND_ROBIN

    def pick(self) -> Poll:
        polls = self.polls
        _require(polls)
        with self._lock:
            self._accepted += 1
            accepted = self._accepted
        return polls[accepted % len(polls)]

    def rebalance(self, polls: Sequence[Poll]) -> None:
        self.polls = list(polls)


def new_loadbalance(
    lb: Union[LoadBalance, int], polls: Sequence[Poll]
) -> Union[RandomLB, RoundRobinLB]:
    """Build the balancer for ``lb``; anything unknown falls back to round robin."""
    if lb == LoadBalance.RANDOM:
        return RandomLB(polls)
    return RoundRobinLB(polls)