import threading
from dataclasses import dataclass

import pytest

from samaritan.lb import (
    LeastConnBalancer,
    LoadBalancePolicy,
    RandomBalancer,
    RoundRobinBalancer,
    new_balancer,
)


@dataclass(eq=False)
class FakeHost:
    addr: str
    conn_count: int = 0


@pytest.fixture
def hosts():
    return [FakeHost(":1234"), FakeHost(":1235"), FakeHost(":1236")]


def test_round_robin_name_and_empty():
    rrb = RoundRobinBalancer()
    assert rrb.name == "RoundRobin"
    assert rrb.pick_host([]) is None


def test_round_robin_order(hosts):
    rrb = RoundRobinBalancer()
    h1, h2, h3 = hosts
    assert rrb.pick_host(hosts) is h2
    assert rrb.pick_host(hosts) is h3
    assert rrb.pick_host(hosts) is h1


def test_round_robin_concurrency(hosts):
    rrb = RoundRobinBalancer()
    threads = [threading.Thread(target=rrb.pick_host, args=(hosts,)) for _ in range(10)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert rrb.index == 10
    assert rrb.pick_host(hosts) is hosts[2]


def test_random_balancer(hosts):
    rb = RandomBalancer(rand_int=lambda: 4)
    assert rb.name == "Random"
    assert rb.pick_host([]) is None
    assert rb.pick_host(hosts) is hosts[1]


def test_random_balancer_default_picks_member(hosts):
    rb = RandomBalancer()
    for _ in range(20):
        assert rb.pick_host(hosts) in hosts


def test_least_conn_balancer():
    lcb = LeastConnBalancer()
    assert lcb.name == "LeastConnection"
    assert lcb.pick_host([]) is None
    h1 = FakeHost(":1234")
    assert lcb.pick_host([h1]) is h1


def test_least_conn_prefers_fewer_connections():
    counter = iter(range(1, 100))
    lcb = LeastConnBalancer(rand_int=lambda: next(counter))
    h1 = FakeHost(":1234")
    h2 = FakeHost(":1235", conn_count=1)
    assert lcb.pick_host([h1, h2]) is h1


@pytest.mark.parametrize(
    "policy, name",
    [
        (LoadBalancePolicy.LEAST_CONNECTION, "LeastConnection"),
        (LoadBalancePolicy.RANDOM, "Random"),
        (LoadBalancePolicy.ROUND_ROBIN, "RoundRobin"),
    ],
)
def test_new_balancer(policy, name):
    assert new_balancer(policy).name == name