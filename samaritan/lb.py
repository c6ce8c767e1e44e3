"""Load balancers that pick one host out of a list."""

from __future__ import annotations

import random
import threading
from enum import Enum
from typing import Callable, Protocol, Sequence, TypeVar, Union


class _Host(Protocol):
    @property
    def conn_count(self) -> int: ...


H = TypeVar("H", bound=_Host)


def _default_rand_int() -> int:
    return random.getrandbits(63)


class LoadBalancePolicy(Enum):
    """How a balancer chooses among hosts."""

    ROUND_ROBIN = 0
    LEAST_CONNECTION = 1
    RANDOM = 2


class RoundRobinBalancer:
    """Cycles through the hosts in order; safe to share between threads."""

    name = "RoundRobin"

    def __init__(self) -> None:
        self._index = 0
        self._lock = threading.Lock()

    @property
    def index(self) -> int:
        """Number of picks made so far."""
        with self._lock:
            return self._index

    def pick_host(self, hosts: Sequence[H]) -> H | None:
        """Return the next host, or ``None`` if there are none."""
        if not hosts:
            return None
        with self._lock:
            self._index += 1
            index = self._index
        return hosts[index % len(hosts)]


class RandomBalancer:
    """Picks a host at random."""

    name = "Random"

    def __init__(self, rand_int: Callable[[], int] | None = None) -> None:
        self._rand_int = rand_int or _default_rand_int

    def pick_host(self, hosts: Sequence[H]) -> H | None:
        """Return a random host, or ``None`` if there are none."""
        if not hosts:
            return None
        return hosts[self._rand_int() % len(hosts)]


class LeastConnBalancer:
    """Picks the less loaded of two randomly chosen hosts."""

    name = "LeastConnection"

    def __init__(self, rand_int: Callable[[], int] | None = None) -> None:
        self._rand_int = rand_int or _default_rand_int

    def pick_host(self, hosts: Sequence[H]) -> H | None:
        """Return the host with fewer connections of two random candidates."""
        if not hosts:
            return None
        first = hosts[self._rand_int() % len(hosts)]
        second = hosts[self._rand_int() % len(hosts)]
        if first.conn_count < second.conn_count:
            return first
        return second


Balancer = Union[RoundRobinBalancer, RandomBalancer, LeastConnBalancer]


def new_balancer(policy: LoadBalancePolicy) -> Balancer:
    """Create a balancer for ``policy``; round robin is the default."""
    if policy is LoadBalancePolicy.LEAST_CONNECTION:
        return LeastConnBalancer()
    if policy is LoadBalancePolicy.RANDOM:
        return RandomBalancer()
    return RoundRobinBalancer()