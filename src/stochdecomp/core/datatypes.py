
from __future__ import annotations
from numbers import Real
from typing import Any, Dict, Iterable, List, Sequence, Tuple
from pydantic import BaseModel, ConfigDict, Field


class Scenario(BaseModel):
    """A weighted outcome of second-stage uncertainty.

    ``probability`` is rescaled in place by sampling; ``data`` is opaque to the
    partitions. Subclass to declare a scenario kind.
    """
    probability: float = 1.0
    data: Dict[str, Any] = Field(default_factory=dict)

    def set_probability(self, p: float) -> None:
        self.probability = float(p)

    @classmethod
    def expected(cls, scenarios: Iterable["Scenario"]) -> "Scenario":
        """Probability-weighted reduction.

        The result carries the total mass, so reducing per-shard partial
        expectations equals reducing every scenario at once. Numeric keys are
        taken from every scenario; a scenario without a key adds nothing to
        that key's sum, which is still divided by the total mass.
        """
        # empty partials (mass 0, no data) carry nothing
        items = [s for s in scenarios if s.data or s.probability > 0]
        total = sum(s.probability for s in items)
        if not items or total <= 0:
            return cls(probability=total, data={})
        sums: Dict[str, float] = {}
        for s in items:
            for k, v in s.data.items():
                if isinstance(v, Real) and not isinstance(v, bool):
                    sums[k] = sums.get(k, 0.0) + s.probability * float(v)
        data = {k: v / total for k, v in sums.items()}
        return cls(probability=total, data=data)


class DecisionVariables(BaseModel):
    """First-stage decision schema shared by the subproblems of one partition."""
    names: List[str] = Field(default_factory=list)
    values: List[float] = Field(default_factory=list)

    def __len__(self) -> int:
        return len(self.names)

    def set_names(self, names: Sequence[str]) -> None:
        self.names = list(names)
        self.values = [0.0] * len(self.names)

    def update(self, x: Sequence[float]) -> None:
        if len(x) != len(self.names):
            raise ValueError(f"Expected {len(self.names)} decision values, got {len(x)}")
        self.values = [float(v) for v in x]

    def clear(self) -> None:
        self.names = []
        self.values = []


class Cut(BaseModel):
    """Hyperplane theta >= coefficients . x + intercept produced by one subproblem solve."""
    model_config = ConfigDict(frozen=True)

    coefficients: Tuple[float, ...]
    intercept: float
    subproblem: int
    feasibility: bool = False

    def evaluate(self, x: Sequence[float]) -> float:
        return sum(c * v for c, v in zip(self.coefficients, x)) + self.intercept

    @property
    def origins(self) -> Tuple[int, ...]:
        return (self.subproblem,)


class AggregatedCut(BaseModel):
    model_config = ConfigDict(frozen=True)

    coefficients: Tuple[float, ...]
    intercept: float
    origins: Tuple[int, ...]
    feasibility: bool = False

    def evaluate(self, x: Sequence[float]) -> float:
        return sum(c * v for c, v in zip(self.coefficients, x)) + self.intercept

    @classmethod
    def combine(cls, cuts: Sequence[Cut]) -> "AggregatedCut":
        if not cuts:
            raise ValueError("Cannot aggregate an empty set of cuts")
        n = len(cuts[0].coefficients)
        if any(len(c.coefficients) != n for c in cuts):
            raise ValueError("Cuts in one aggregate must share the decision dimension")
        coefficients = tuple(sum(c.coefficients[j] for c in cuts) for j in range(n))
        return cls(
            coefficients=coefficients,
            intercept=sum(c.intercept for c in cuts),
            origins=tuple(o for c in cuts for o in c.origins),
        )
