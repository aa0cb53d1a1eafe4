
from __future__ import annotations
from typing import Any, Iterable, List, Optional, Sequence, Type
from loguru import logger

from ..core.datatypes import DecisionVariables, Scenario
from ..core.errors import IndexOutOfRangeError
from ..core.interfaces import Sampler, ScenarioGenerator, SubproblemGenerator
from ..models.subproblems import fix_decisions, num_variables


class ScenarioPartition:
    """
    Ordered (scenario, subproblem) pairs living in one address space.

    Subproblems are generated on demand and may lag the scenarios, never
    outnumber them. All subproblems share one decision schema.
    """

    def __init__(self, scenario_type: Type[Scenario] = Scenario,
                 scenarios: Optional[Iterable[Scenario]] = None,
                 decision_variables: Optional[DecisionVariables] = None):
        self.scenario_type = scenario_type
        self.decision_variables = decision_variables or DecisionVariables()
        self._scenarios: List[Scenario] = []
        self._problems: List[Any] = []
        if scenarios is not None:
            self.add_scenarios(scenarios)

    # ---------- getters ----------
    def _check(self, i: int, count: int, what: str) -> None:
        if not 0 <= i < count:
            raise IndexOutOfRangeError(i, count, what)

    def scenario(self, i: int) -> Scenario:
        self._check(i, len(self._scenarios), "scenario")
        return self._scenarios[i]

    def scenarios(self) -> List[Scenario]:
        return list(self._scenarios)

    def subproblem(self, i: int) -> Any:
        self._check(i, len(self._problems), "subproblem")
        return self._problems[i]

    def subproblems(self) -> List[Any]:
        return list(self._problems)

    @property
    def nscenarios(self) -> int:
        return len(self._scenarios)

    @property
    def nsubproblems(self) -> int:
        return len(self._problems)

    def probability(self, i: Optional[int] = None) -> float:
        """Probability of scenario ``i``, or the total mass when ``i`` is None."""
        if i is None:
            return float(sum(s.probability for s in self._scenarios))
        return self.scenario(i).probability

    def expected(self) -> Scenario:
        return self.scenario_type.expected(self._scenarios)

    def recourse_length(self) -> int:
        if not self._problems:
            raise IndexOutOfRangeError(0, 0, "subproblem")
        return num_variables(self._problems[0])

    def is_distributed(self) -> bool:
        return False

    # ---------- setters ----------
    def _typecheck(self, scenario: Scenario) -> Scenario:
        if not isinstance(scenario, self.scenario_type):
            raise TypeError(
                f"Expected scenario of type {self.scenario_type.__name__}, got {type(scenario).__name__}"
            )
        return scenario

    def add_scenario(self, scenario: Scenario) -> None:
        self._scenarios.append(self._typecheck(scenario))

    def add_scenarios(self, scenarios: Iterable[Scenario]) -> None:
        batch = [self._typecheck(s) for s in scenarios]
        self._scenarios.extend(batch)

    def add_generated_scenario(self, generator: ScenarioGenerator, probability: float = 1.0) -> None:
        self.add_scenario(generator.generate(probability))

    def add_generated_scenarios(self, generator: ScenarioGenerator, n: int, probability: float = 1.0) -> None:
        for _ in range(n):
            self.add_generated_scenario(generator, probability)

    def set_decision_variables(self, names: Sequence[str]) -> None:
        self.decision_variables.set_names(names)

    def update_decision_variables(self, x: Sequence[float]) -> None:
        """New first-stage values, pushed into every subproblem already built."""
        self.decision_variables.update(x)
        for p in self._problems:
            fix_decisions(p, self.decision_variables)

    def generate(self, generator: SubproblemGenerator) -> int:
        """Build subproblems for scenarios that do not have one yet. Returns how many were built."""
        missing = self._scenarios[len(self._problems):]
        for s in missing:
            self._problems.append(generator(self.decision_variables, s))
        if missing:
            logger.debug("Generated {} subproblems ({} total)", len(missing), len(self._problems))
        return len(missing)

    def clear(self) -> None:
        """Dispose subproblems and reset the decision schema; scenarios are kept."""
        self.decision_variables.clear()
        self._problems.clear()

    def clear_scenarios(self) -> None:
        self._scenarios.clear()
        self._problems.clear()

    # ---------- sampling ----------
    def sample(self, sampler: Sampler, n: int) -> None:
        self.sample_share(sampler, n, self.nscenarios, n)

    def sample_share(self, sampler: Sampler, count: int, population: int, total: int) -> None:
        """
        Draw ``count`` of ``total`` new scenarios of a population of ``population``.

        Existing scenarios are rescaled by population/(population+total) and the
        new ones get 1/(population+total). With count == total and population ==
        len(self) this is plain sampling; a shard of a distributed partition gets
        the global population and total so that every shard rescales alike.
        """
        if count < 0 or total < 0 or count > total:
            raise ValueError(f"Invalid sampling share: count={count}, total={total}")
        if population + total == 0:
            return
        denom = population + total
        if population > 0:
            scale = population / denom
            for s in self._scenarios:
                s.set_probability(s.probability * scale)
        pi = 1.0 / denom
        for _ in range(count):
            self.add_scenario(sampler.generate(pi))
        logger.debug("Sampled {} of {} scenarios (population {}), pi={:.3g}", count, total, population, pi)

    def __len__(self) -> int:
        return len(self._scenarios)
