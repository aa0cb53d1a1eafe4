
from __future__ import annotations
from typing import Any, Protocol, Union
from .datatypes import AggregatedCut, Cut, DecisionVariables, Scenario

AnyCut = Union[Cut, AggregatedCut]


class ScenarioGenerator(Protocol):
    """Produces one new scenario carrying the requested probability weight."""
    def generate(self, probability: float) -> Scenario: ...


# Samplers are generators driven by ``sample``; same capability.
Sampler = ScenarioGenerator


class SubproblemGenerator(Protocol):
    """Builds the subproblem model of one scenario (model generation is external)."""
    def __call__(self, decision_variables: DecisionVariables, scenario: Scenario) -> Any: ...


class CutSink(Protocol):
    """Destination of cuts released by an aggregation policy (master or channel)."""
    def add_cut(self, index: int, cut: AnyCut) -> bool: ...
