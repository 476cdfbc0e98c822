"""Keeps a set of running pollers and hands them out through a load balancer."""

from __future__ import annotations

import enum
import logging
import threading
import time
from typing import Callable, Optional, Union

from .loadbalance import LoadBalance, RandomLB, RoundRobinLB, new_loadbalance
from .poll import Poll

logger = logging.getLogger(__name__)


class ManagerStatus(enum.IntEnum):
    """Whether the pollers match the requested number of loops."""

    UNINITIALIZED = 0
    INITIALIZING = 1
    INITIALIZED = 2


class Manager:
    """Runs ``num_loops`` pollers made by ``poll_factory``, each in its own thread.

    The pollers are created or closed lazily by the first ``pick`` after the
    number of loops changes.
    """

    def __init__(self, num_loops: int, poll_factory: Callable[[], Poll]) -> None:
        self.poll_factory = poll_factory
        self.polls: list[Poll] = []
        self.num_loops = 0
        self.status = ManagerStatus.UNINITIALIZED
        self._status_lock = threading.Lock()
        self._balance: Optional[Union[RandomLB, RoundRobinLB]] = None
        self.set_load_balance(LoadBalance.ROUND_ROBIN)
        self.set_num_loops(num_loops)

    @property
    def balance(self) -> Optional[Union[RandomLB, RoundRobinLB]]:
        return self._balance

    def _swap_status(self, old: ManagerStatus, new: ManagerStatus) -> bool:
        with self._status_lock:
            if self.status != old:
                return False
            self.status = new
            return True

    def set_num_loops(self, num_loops: int) -> None:
        """Ask for ``num_loops`` pollers; applied by the next ``pick``."""
        if num_loops < 1:
            raise ValueError(f"set invalid numLoops[{num_loops}]")
        with self._status_lock:
            self.num_loops = num_loops
            self.status = ManagerStatus.UNINITIALIZED

    def set_load_balance(self, lb: Union[LoadBalance, int]) -> None:
        if self._balance is not None and self._balance.load_balance() == lb:
            return
        self._balance = new_loadbalance(lb, self.polls)

    def close(self) -> None:
        """Close every poller; the last close error, if any, is raised."""
        error: Optional[BaseException] = None
        for poll in self.polls:
            try:
                poll.close()
            except Exception as exc:  # keep closing the others
                error = exc
        self.num_loops = 0
        self._balance = None
        self.polls = []
        if error is not None:
            raise error

    def run(self) -> None:
        """Open or close pollers until there are ``num_loops`` of them.

        On failure every poller is closed and the error is raised.
        """
        num_loops = self.num_loops
        if num_loops == len(self.polls):
            return
        if num_loops < len(self.polls):
            polls = self.polls[:num_loops]
            for poll in self.polls[num_loops:]:
                try:
                    poll.close()
                except Exception as exc:
                    logger.error("NETPOLL: poller close failed: %s", exc)
        else:
            polls = list(self.polls)
            opened: list[Poll] = []
            try:
                for _ in range(len(self.polls), num_loops):
                    poll = self.poll_factory()
                    opened.append(poll)
                    polls.append(poll)
                    threading.Thread(
                        target=poll.wait, name="poller", daemon=True
                    ).start()
            except Exception:
                for poll in opened:
                    try:
                        poll.close()
                    except Exception as exc:
                        logger.error("NETPOLL: poller close failed: %s", exc)
                try:
                    self.close()
                except Exception as exc:
                    logger.error("NETPOLL: manager close failed: %s", exc)
                raise
        self.polls = polls
        if self._balance is None:
            raise RuntimeError("load balance must be set before run")
        self._balance.rebalance(self.polls)

    def reset(self) -> None:
        """Close all pollers and start fresh ones."""
        for poll in self.polls:
            try:
                poll.close()
            except Exception as exc:
                logger.error("NETPOLL: poller close failed: %s", exc)
        self.polls = []
        self.run()

    def pick(self) -> Poll:
        """Return a poller, first adjusting the pollers if the loop count changed."""
        while True:
            if self.status == ManagerStatus.INITIALIZED:
                return self._balance.pick()
            if self._swap_status(
                ManagerStatus.UNINITIALIZED, ManagerStatus.INITIALIZING
            ):
                break
            time.sleep(0)
        try:
            self.run()
        except Exception:
            self._swap_status(ManagerStatus.INITIALIZING, ManagerStatus.UNINITIALIZED)
            raise
        # If set_num_loops ran meanwhile, the swap fails and the next pick adjusts.
        self._swap_status(ManagerStatus.INITIALIZING, ManagerStatus.INITIALIZED)
        return self._balance.pick()