
from __future__ import annotations
from abc import ABC, abstractmethod
from typing import Annotated, Literal, Union
from pydantic import BaseModel, ConfigDict, Field

from ..core.interfaces import CutSink


class _Spec(BaseModel, ABC):
    """Construction parameters of a policy; enough to rebuild it on another worker."""
    model_config = ConfigDict(frozen=True)

    @abstractmethod
    def build(self, num_subproblems: int, sink: CutSink): ...


class NoAggregate(_Spec):
    kind: Literal["none"] = "none"

    def build(self, num_subproblems: int, sink: CutSink):
        from .policies import NoAggregation
        return NoAggregation(num_subproblems, sink)

    def __str__(self) -> str:
        return "no aggregation"


class PartialAggregate(_Spec):
    kind: Literal["partial"] = "partial"
    size: int = Field(ge=1)

    def build(self, num_subproblems: int, sink: CutSink):
        from .policies import PartialAggregation
        return PartialAggregation(self.size, num_subproblems, sink)

    def __str__(self) -> str:
        return f"partial aggregation of size {self.size}"


class CompleteAggregate(_Spec):
    kind: Literal["complete"] = "complete"

    def build(self, num_subproblems: int, sink: CutSink):
        from .policies import CompleteAggregation
        return CompleteAggregation(num_subproblems, sink)

    def __str__(self) -> str:
        return "complete aggregation"


class HybridAggregate(_Spec):
    kind: Literal["hybrid"] = "hybrid"
    initial: "AggregationSpec"
    final: "AggregationSpec"
    tau: float = Field(ge=0.0)

    def build(self, num_subproblems: int, sink: CutSink):
        from .hybrid import HybridAggregation
        return HybridAggregation(
            self.initial.build(num_subproblems, sink),
            self.final.build(num_subproblems, sink),
            self.tau,
            num_subproblems,
        )

    def __str__(self) -> str:
        return f"hybrid aggregation consisting of {self.initial} and {self.final}"


AggregationSpec = Annotated[
    Union[NoAggregate, PartialAggregate, CompleteAggregate, HybridAggregate],
    Field(discriminator="kind"),
]

HybridAggregate.model_rebuild()
