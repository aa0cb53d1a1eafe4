# stochdecomp/core/errors.py
from __future__ import annotations
from typing import Optional


class StageRangeError(ValueError):
    """Stage index outside the declared stages of a structure."""


class UninitializedPartitionError(RuntimeError):
    """Distributed partition has no shards to talk to."""

    def __init__(self, message: str = "No remote scenario problems."):
        super().__init__(message)


class IndexOutOfRangeError(IndexError):
    def __init__(self, index: int, count: int, what: str = "scenario"):
        self.index = index
        self.count = count
        super().__init__(f"{what} index {index} out of range [0, {count})")


class InconsistentAggregationError(ValueError):
    def __init__(self, initial: int, final: int):
        self.initial = initial
        self.final = final
        super().__init__(
            f"Inconsistent number of theta variables in hybrid aggregation: {initial} != {final}"
        )


class AggregateFailure(RuntimeError):
    """A shard failed during a fan-out call. The shard error is chained as __cause__."""

    def __init__(self, shard: int, operation: str, worker: Optional[int] = None):
        self.shard = shard
        self.operation = operation
        self.worker = worker
        super().__init__(f"Shard {shard} failed during '{operation}'")
