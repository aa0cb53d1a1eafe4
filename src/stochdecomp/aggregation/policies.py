
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Dict
from loguru import logger

from ..core.datatypes import AggregatedCut, Cut
from ..core.errors import IndexOutOfRangeError
from ..core.interfaces import AnyCut, CutSink
from .specs import AggregationSpec, CompleteAggregate, NoAggregate, PartialAggregate


class AggregationPolicy(ABC):
    """
    How cuts from subproblem solves reach the master problem.

    The outer decomposition loop sizes the master with ``num_aggregate_vars``,
    hands every fresh cut to ``submit_cut`` and calls ``flush(gap)`` once per
    iteration. The gap is always passed in, never read from shared state, so a
    policy behaves the same next to the master and on a worker.
    """

    @abstractmethod
    def num_aggregate_vars(self, subproblem_count: int) -> int: ...

    @abstractmethod
    def submit_cut(self, cut: Cut) -> None: ...

    @abstractmethod
    def flush(self, gap: float) -> bool: ...

    @abstractmethod
    def remote_descriptor(self) -> AggregationSpec: ...


class NoAggregation(AggregationPolicy):
    """One theta per subproblem; every cut goes straight to the sink."""

    def __init__(self, num_subproblems: int, sink: CutSink):
        self.num_subproblems = num_subproblems
        self.sink = sink

    def num_aggregate_vars(self, subproblem_count: int) -> int:
        return subproblem_count

    def submit_cut(self, cut: Cut) -> None:
        if not 0 <= cut.subproblem < self.num_subproblems:
            raise IndexOutOfRangeError(cut.subproblem, self.num_subproblems, "subproblem")
        self.sink.add_cut(cut.subproblem, cut)

    def flush(self, gap: float) -> bool:
        return False

    def remote_descriptor(self) -> AggregationSpec:
        return NoAggregate()


class PartialAggregation(AggregationPolicy):
    """
    Sum cuts over contiguous groups of ``size`` subproblems, one theta per group.

    A group is released as soon as every member has reported, or on flush.
    A subproblem reporting twice before release replaces its earlier cut.
    Feasibility cuts bypass the buffer.
    """

    def __init__(self, size: int, num_subproblems: int, sink: CutSink):
        if size < 1:
            raise ValueError(f"Aggregation size must be positive, got {size}")
        self.size = size
        self.num_subproblems = num_subproblems
        self.sink = sink
        self._buffers: Dict[int, Dict[int, Cut]] = {}

    def num_aggregate_vars(self, subproblem_count: int) -> int:
        return -(-subproblem_count // self.size)

    def _group_size(self, g: int) -> int:
        return min(self.size, self.num_subproblems - g * self.size)

    def submit_cut(self, cut: Cut) -> None:
        if not 0 <= cut.subproblem < self.num_subproblems:
            raise IndexOutOfRangeError(cut.subproblem, self.num_subproblems, "subproblem")
        g = cut.subproblem // self.size
        if cut.feasibility:
            self.sink.add_cut(g, cut)
            return
        buf = self._buffers.setdefault(g, {})
        buf[cut.subproblem] = cut
        if len(buf) == self._group_size(g):
            self._release(g)

    def _release(self, g: int) -> bool:
        cuts = [c for _, c in sorted(self._buffers.pop(g).items())]
        out: AnyCut = cuts[0] if len(cuts) == 1 else AggregatedCut.combine(cuts)
        return bool(self.sink.add_cut(g, out))

    @property
    def pending(self) -> int:
        return sum(len(b) for b in self._buffers.values())

    def flush(self, gap: float) -> bool:
        if not self._buffers:
            return False
        logger.trace("Flushing {} buffered groups (gap={})", len(self._buffers), gap)
        added = [self._release(g) for g in sorted(self._buffers)]
        return any(added)

    def remote_descriptor(self) -> AggregationSpec:
        return PartialAggregate(size=self.size)


class CompleteAggregation(PartialAggregation):
    """A single theta carrying the sum of every subproblem's cut."""

    def __init__(self, num_subproblems: int, sink: CutSink):
        super().__init__(max(num_subproblems, 1), num_subproblems, sink)

    def num_aggregate_vars(self, subproblem_count: int) -> int:
        return 1 if subproblem_count > 0 else 0

    def remote_descriptor(self) -> AggregationSpec:
        return CompleteAggregate()
