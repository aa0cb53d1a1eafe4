
from __future__ import annotations
from typing import Any, List, Optional, Sequence, Type, Union
from loguru import logger

from .config import DecompConfig
from .datatypes import DecisionVariables, Scenario
from .errors import StageRangeError
from .interfaces import Sampler, ScenarioGenerator, SubproblemGenerator
from ..partitions.distributed import DistributedScenarioPartition
from ..partitions.local import ScenarioPartition
from ..partitions.workers import WorkerPool

Partition = Union[ScenarioPartition, DistributedScenarioPartition]


class BlockStructure:
    """
    Block-structured N-stage program: one scenario partition per stage 2..N.

    Every accessor takes ``stage`` (default 2). Stage 1 carries the first-stage
    decisions only and has no scenario problems.
    """

    def __init__(self, stages: int = 2,
                 scenario_types: Union[Type[Scenario], Sequence[Type[Scenario]]] = Scenario,
                 pool: Optional[WorkerPool] = None,
                 scenarios: Optional[Sequence[Sequence[Scenario]]] = None):
        if stages < 2:
            raise StageRangeError(f"A block structure needs at least 2 stages, got {stages}")
        self.nstages = stages
        if isinstance(scenario_types, type):
            scenario_types = [scenario_types] * (stages - 1)
        if len(scenario_types) != stages - 1:
            raise StageRangeError(f"Expected {stages - 1} scenario types, got {len(scenario_types)}")
        batches = list(scenarios) if scenarios is not None else [None] * (stages - 1)
        if len(batches) != stages - 1:
            raise StageRangeError(f"Expected scenarios for {stages - 1} stages, got {len(batches)}")

        self.decision_variables = DecisionVariables()
        self._partitions: List[Partition] = []
        for stype, batch in zip(scenario_types, batches):
            if pool is not None and len(pool) > 0:
                self._partitions.append(DistributedScenarioPartition(pool, stype, batch))
            else:
                self._partitions.append(ScenarioPartition(stype, batch))
        logger.info("Block structure: {} stages, distributed={}", stages, self.is_distributed())

    @classmethod
    def from_config(cls, cfg: DecompConfig, pool: Optional[WorkerPool] = None,
                    scenario_types: Union[Type[Scenario], Sequence[Type[Scenario]]] = Scenario) -> "BlockStructure":
        return cls(stages=cfg.stages, scenario_types=scenario_types, pool=pool if cfg.distributed else None)

    # ---------- stage resolution ----------
    def scenarioproblems(self, stage: int = 2) -> Partition:
        if stage == 1:
            raise StageRangeError("Stage 1 does not have scenario problems.")
        if self.nstages == 2 and stage != 2:
            raise StageRangeError(f"Stage {stage} not available in two-stage model.")
        if not 1 < stage <= self.nstages:
            raise StageRangeError(f"Stage {stage} not in range 2 to {self.nstages}.")
        return self._partitions[stage - 2]

    # ---------- getters ----------
    def scenario(self, i: int, stage: int = 2) -> Scenario:
        return self.scenarioproblems(stage).scenario(i)

    def scenarios(self, stage: int = 2) -> List[Scenario]:
        return self.scenarioproblems(stage).scenarios()

    def expected(self, stage: int = 2) -> Scenario:
        return self.scenarioproblems(stage).expected()

    def scenario_type(self, stage: int = 2) -> Type[Scenario]:
        return self.scenarioproblems(stage).scenario_type

    def probability(self, i: int, stage: int = 2) -> float:
        return self.scenarioproblems(stage).probability(i)

    def stage_probability(self, stage: int = 2) -> float:
        return self.scenarioproblems(stage).probability()

    def subproblem(self, i: int, stage: int = 2) -> Any:
        return self.scenarioproblems(stage).subproblem(i)

    def subproblems(self, stage: int = 2) -> List[Any]:
        return self.scenarioproblems(stage).subproblems()

    def nsubproblems(self, stage: int = 2) -> int:
        return self.scenarioproblems(stage).nsubproblems

    def nscenarios(self, stage: int = 2) -> int:
        return self.scenarioproblems(stage).nscenarios

    def is_distributed(self) -> bool:
        return any(p.is_distributed() for p in self._partitions)

    def deferred_first_stage(self) -> bool:
        return len(self.decision_variables) == 0

    def deferred_stage(self, stage: int) -> bool:
        if not 1 <= stage <= self.nstages:
            raise StageRangeError(f"Stage {stage} not in range 1 to {self.nstages}.")
        if stage == 1:
            return self.deferred_first_stage()
        return self.nsubproblems(stage) < self.nscenarios(stage)

    def deferred(self) -> bool:
        return any(self.deferred_stage(s) for s in range(self.nstages, 0, -1))

    # ---------- setters ----------
    def _worker_partition(self, stage: int) -> DistributedScenarioPartition:
        sp = self.scenarioproblems(stage)
        if not isinstance(sp, DistributedScenarioPartition):
            raise TypeError("Worker-targeted adds need a distributed structure")
        return sp

    def add_scenario(self, scenario: Scenario, stage: int = 2) -> None:
        self.scenarioproblems(stage).add_scenario(scenario)

    def add_worker_scenario(self, scenario: Scenario, w: int, stage: int = 2) -> None:
        self._worker_partition(stage).add_scenario(scenario, shard=w)

    def add_scenarios(self, scenarios: Sequence[Scenario], stage: int = 2) -> None:
        self.scenarioproblems(stage).add_scenarios(scenarios)

    def add_worker_scenarios(self, scenarios: Sequence[Scenario], w: int, stage: int = 2) -> None:
        self._worker_partition(stage).add_scenarios(scenarios, shard=w)

    def add_generated_scenario(self, generator: ScenarioGenerator, stage: int = 2, probability: float = 1.0) -> None:
        self.scenarioproblems(stage).add_generated_scenario(generator, probability=probability)

    def add_worker_generated_scenario(self, generator: ScenarioGenerator, w: int, stage: int = 2,
                                      probability: float = 1.0) -> None:
        self._worker_partition(stage).add_generated_scenario(generator, shard=w, probability=probability)

    def add_generated_scenarios(self, generator: ScenarioGenerator, n: int, stage: int = 2,
                                probability: float = 1.0) -> None:
        self.scenarioproblems(stage).add_generated_scenarios(generator, n, probability=probability)

    def sample(self, sampler: Sampler, n: int, stage: int = 2) -> None:
        self.scenarioproblems(stage).sample(sampler, n)

    def set_decision_variables(self, names: Sequence[str]) -> None:
        """First-stage decision names, pushed to every stage's subproblem schema."""
        self.decision_variables.set_names(names)
        for p in self._partitions:
            p.set_decision_variables(names)

    def update_decision_variables(self, x: Sequence[float]) -> None:
        self.decision_variables.update(x)
        for p in self._partitions:
            p.update_decision_variables(x)

    def generate(self, generator: SubproblemGenerator, stage: int = 2) -> int:
        return self.scenarioproblems(stage).generate(generator)

    def clear(self) -> None:
        self.decision_variables.clear()
        for p in self._partitions:
            p.clear()

    def close(self) -> None:
        for p in self._partitions:
            if isinstance(p, DistributedScenarioPartition):
                p.close()
