
from __future__ import annotations
from enum import Enum
from loguru import logger

from ..core.datatypes import Cut
from ..core.errors import InconsistentAggregationError
from .policies import AggregationPolicy
from .specs import AggregationSpec, HybridAggregate


class Active(str, Enum):
    INITIAL = "initial"
    FINAL = "final"


class HybridAggregation(AggregationPolicy):
    """
    Runs ``initial`` until a flush observes ``gap <= tau``, then ``final`` for good.

    Both inner policies must need the same number of aggregate variables for
    ``num_subproblems``, otherwise the master would change shape at the switch.
    The check is done here once. The activation state is local: the remote
    descriptor carries only the inner descriptors and tau.
    """

    def __init__(self, initial: AggregationPolicy, final: AggregationPolicy, tau: float, num_subproblems: int):
        n1 = initial.num_aggregate_vars(num_subproblems)
        n2 = final.num_aggregate_vars(num_subproblems)
        if n1 != n2:
            raise InconsistentAggregationError(n1, n2)
        self.initial = initial
        self.final = final
        self.tau = float(tau)
        self.state = Active.INITIAL

    @property
    def active(self) -> AggregationPolicy:
        return self.initial if self.state is Active.INITIAL else self.final

    def num_aggregate_vars(self, subproblem_count: int) -> int:
        return self.active.num_aggregate_vars(subproblem_count)

    def submit_cut(self, cut: Cut) -> None:
        self.active.submit_cut(cut)

    def flush(self, gap: float) -> bool:
        added = self.active.flush(gap)
        if self.state is Active.INITIAL and gap <= self.tau:
            self.state = Active.FINAL
            logger.info("Hybrid aggregation switched to final policy (gap={:.3g} <= tau={:.3g})", gap, self.tau)
        return added

    def remote_descriptor(self) -> AggregationSpec:
        return HybridAggregate(
            initial=self.initial.remote_descriptor(),
            final=self.final.remote_descriptor(),
            tau=self.tau,
        )
