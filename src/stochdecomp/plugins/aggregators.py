
from __future__ import annotations
from typing import Any, Dict, Optional
from .registry import register, get
from ..aggregation.specs import AggregationSpec, CompleteAggregate, HybridAggregate, NoAggregate, PartialAggregate


@register("none")
def no_aggregation() -> AggregationSpec:
    return NoAggregate()

@register("partial")
def partial_aggregation(*, size: int) -> AggregationSpec:
    return PartialAggregate(size=int(size))

@register("complete")
def complete_aggregation() -> AggregationSpec:
    return CompleteAggregate()

@register("hybrid")
def hybrid_aggregation(*, initial: Dict[str, Any], final: Dict[str, Any], tau: float) -> AggregationSpec:
    # inner policies use the same {name, params} shape as the top level
    return HybridAggregate(
        initial=resolve_aggregation(initial.get("name", "none"), initial.get("params")),
        final=resolve_aggregation(final.get("name", "none"), final.get("params")),
        tau=float(tau),
    )


def resolve_aggregation(name: str, params: Optional[Dict[str, Any]] = None) -> AggregationSpec:
    return get(name)(**(params or {}))
