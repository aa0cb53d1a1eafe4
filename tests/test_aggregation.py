from __future__ import annotations

import pickle

import pytest
from pydantic import TypeAdapter

from stochdecomp.aggregation.channel import CutChannel, CutCollector
from stochdecomp.aggregation.hybrid import Active, HybridAggregation
from stochdecomp.aggregation.policies import CompleteAggregation, NoAggregation, PartialAggregation
from stochdecomp.aggregation.specs import (
    AggregationSpec,
    CompleteAggregate,
    HybridAggregate,
    NoAggregate,
    PartialAggregate,
)
from stochdecomp.core.datatypes import AggregatedCut, Cut
from stochdecomp.core.errors import InconsistentAggregationError, IndexOutOfRangeError


def cut(i: int, coef=(1.0, 2.0), intercept: float = 1.0, feasibility: bool = False) -> Cut:
    return Cut(coefficients=coef, intercept=intercept, subproblem=i, feasibility=feasibility)


def test_cut_is_immutable_and_evaluates():
    c = cut(0, (2.0, -1.0), 3.0)
    assert c.evaluate([1.0, 4.0]) == pytest.approx(1.0)
    with pytest.raises(Exception):
        c.intercept = 0.0


def test_aggregated_cut_sums_hyperplanes():
    agg = AggregatedCut.combine([cut(0, (1.0, 0.0), 1.0), cut(3, (0.5, 2.0), -2.0)])
    assert agg.coefficients == (1.5, 2.0)
    assert agg.intercept == -1.0
    assert agg.origins == (0, 3)
    with pytest.raises(ValueError):
        AggregatedCut.combine([cut(0, (1.0,)), cut(1, (1.0, 2.0))])


def test_no_aggregation_forwards_immediately():
    sink = CutCollector()
    policy = NoAggregation(4, sink)
    assert policy.num_aggregate_vars(4) == 4
    policy.submit_cut(cut(2))
    assert sink.cuts == [(2, cut(2))]
    assert policy.flush(1.0) is False


def test_partial_aggregation_releases_complete_groups():
    sink = CutCollector()
    policy = PartialAggregation(2, 5, sink)
    assert policy.num_aggregate_vars(5) == 3
    policy.submit_cut(cut(0))
    assert len(sink) == 0
    policy.submit_cut(cut(1))
    assert len(sink) == 1
    index, released = sink.cuts[0]
    assert index == 0
    assert released.origins == (0, 1)
    assert released.intercept == 2.0
    # last group has a single member
    policy.submit_cut(cut(4))
    assert sink.cuts[-1] == (2, cut(4))
    policy.submit_cut(cut(3))
    assert policy.pending == 1
    assert policy.flush(0.5) is True
    assert sink.cuts[-1] == (1, cut(3))
    assert policy.pending == 0
    assert policy.flush(0.5) is False


def test_partial_aggregation_replaces_repeated_reports():
    sink = CutCollector()
    policy = PartialAggregation(3, 3, sink)
    policy.submit_cut(cut(0, intercept=1.0))
    policy.submit_cut(cut(0, intercept=5.0))
    assert policy.pending == 1
    policy.flush(0.0)
    assert sink.cuts == [(0, cut(0, intercept=5.0))]


def test_feasibility_cuts_bypass_the_buffer():
    sink = CutCollector()
    policy = PartialAggregation(4, 8, sink)
    policy.submit_cut(cut(5, feasibility=True))
    assert sink.cuts == [(1, cut(5, feasibility=True))]
    assert policy.pending == 0


def test_partial_rejects_unknown_subproblem():
    policy = PartialAggregation(2, 4, CutCollector())
    with pytest.raises(IndexOutOfRangeError):
        policy.submit_cut(cut(4))
    with pytest.raises(ValueError):
        PartialAggregation(0, 4, CutCollector())


def test_complete_aggregation_uses_one_theta():
    sink = CutCollector()
    policy = CompleteAggregation(3, sink)
    assert policy.num_aggregate_vars(3) == 1
    assert policy.num_aggregate_vars(0) == 0
    for i in range(3):
        policy.submit_cut(cut(i))
    assert len(sink) == 1
    assert sink.cuts[0][1].origins == (0, 1, 2)
    assert sink.cuts[0][1].coefficients == (3.0, 6.0)


def test_hybrid_rejects_inconsistent_theta_counts():
    sink = CutCollector()
    initial = PartialAggregation(2, 10, sink)   # 5 thetas
    final = PartialAggregation(3, 10, sink)     # 4 thetas
    with pytest.raises(InconsistentAggregationError) as info:
        HybridAggregation(initial, final, 0.1, 10)
    assert (info.value.initial, info.value.final) == (5, 4)
    with pytest.raises(InconsistentAggregationError):
        HybridAggregate(initial=PartialAggregate(size=2), final=PartialAggregate(size=3), tau=0.1).build(10, sink)


def test_hybrid_switches_once_and_stays_final():
    sink = CutCollector()
    hybrid = HybridAggregation(NoAggregation(4, sink), PartialAggregation(1, 4, sink), 0.1, 4)
    assert hybrid.state is Active.INITIAL
    for gap in (0.5, 0.2):
        hybrid.flush(gap)
        assert hybrid.state is Active.INITIAL
    hybrid.flush(0.05)
    assert hybrid.state is Active.FINAL
    hybrid.flush(0.9)
    assert hybrid.state is Active.FINAL
    assert hybrid.active is hybrid.final


def test_hybrid_flush_returns_inner_result_and_delegates():
    sink = CutCollector()
    hybrid = HybridAggregation(CompleteAggregation(3, sink), PartialAggregation(3, 3, sink), 1e-3, 3)
    assert hybrid.num_aggregate_vars(3) == 1
    hybrid.submit_cut(cut(0))
    assert len(sink) == 0
    # switching does not change what the flush reports
    assert hybrid.flush(0.0) is True
    assert hybrid.state is Active.FINAL
    hybrid.submit_cut(cut(1))
    assert hybrid.final.pending == 1
    assert hybrid.initial.pending == 0
    assert hybrid.flush(0.0) is True
    assert hybrid.num_aggregate_vars(3) == 1


def test_hybrid_switches_exactly_at_tau():
    hybrid = HybridAggregation(NoAggregation(2, CutCollector()), NoAggregation(2, CutCollector()), 0.1, 2)
    hybrid.flush(0.1)
    assert hybrid.state is Active.FINAL


def test_remote_descriptor_carries_construction_only():
    sink = CutCollector()
    hybrid = HybridAggregate(initial=PartialAggregate(size=2), final=CompleteAggregate(), tau=0.2).build(2, sink)
    hybrid.flush(0.01)
    assert hybrid.state is Active.FINAL

    spec = hybrid.remote_descriptor()
    assert spec == HybridAggregate(initial=PartialAggregate(size=2), final=CompleteAggregate(), tau=0.2)
    shipped = pickle.loads(pickle.dumps(spec))
    remote = shipped.build(2, CutChannel())
    assert remote.state is Active.INITIAL
    assert isinstance(remote.initial, PartialAggregation)
    assert str(spec) == "hybrid aggregation consisting of partial aggregation of size 2 and complete aggregation"


def test_specs_validate_from_plain_data():
    adapter = TypeAdapter(AggregationSpec)
    spec = adapter.validate_python({
        "kind": "hybrid",
        "initial": {"kind": "none"},
        "final": {"kind": "partial", "size": 1},
        "tau": 0.5,
    })
    assert spec == HybridAggregate(initial=NoAggregate(), final=PartialAggregate(size=1), tau=0.5)
    assert adapter.validate_python(spec.model_dump()) == spec


def test_channel_path_matches_in_process_path():
    cuts = [cut(i, (float(i), 1.0), float(i)) for i in range(4)]
    spec = PartialAggregate(size=2)

    master = CutCollector()
    local = spec.build(4, master)
    channel = CutChannel()
    remote = pickle.loads(pickle.dumps(spec)).build(4, channel)
    for c in cuts:
        local.submit_cut(c)
        remote.submit_cut(c)
    assert local.flush(0.3) == remote.flush(0.3)

    drained = CutCollector()
    assert channel.drain(drained) == 2
    assert drained.cuts == master.cuts


def test_no_aggregation_rejects_unknown_subproblem():
    policy = NoAggregation(2, CutCollector())
    with pytest.raises(IndexOutOfRangeError):
        policy.submit_cut(cut(2))


def test_spec_base_cannot_be_built_directly():
    from stochdecomp.aggregation.specs import _Spec

    with pytest.raises(TypeError):
        _Spec()
