from __future__ import annotations

import pytest

from stochdecomp.core.datatypes import Scenario
from stochdecomp.partitions.workers import WorkerPool


class CountingGenerator:
    """Deterministic generator: scenario k carries data {"k": k}."""

    def __init__(self, start: int = 0):
        self.next = start

    def generate(self, probability: float) -> Scenario:
        s = Scenario(probability=probability, data={"k": float(self.next)})
        self.next += 1
        return s


def make_batch(k: int) -> list[Scenario]:
    return [Scenario(probability=1.0 / k, data={"demand": float(10 * i), "i": float(i)}) for i in range(k)]


@pytest.fixture
def pool():
    p = WorkerPool(3, backend="thread")
    yield p
    p.shutdown()


@pytest.fixture
def batch10():
    return make_batch(10)
