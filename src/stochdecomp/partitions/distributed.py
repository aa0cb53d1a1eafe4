
from __future__ import annotations
from typing import Any, List, Optional, Sequence, Tuple, Type
from loguru import logger

from ..core.datatypes import Scenario
from ..core.errors import IndexOutOfRangeError, UninitializedPartitionError
from ..core.interfaces import Sampler, ScenarioGenerator, SubproblemGenerator
from .workers import ShardHandle, WorkerPool, gather


def split_counts(total: int, parts: int) -> List[int]:
    """Remainder-aware division: the first ``total % parts`` parts get one extra."""
    if parts <= 0:
        return []
    base, extra = divmod(total, parts)
    return [base + (1 if i < extra else 0) for i in range(parts)]


class DistributedScenarioPartition:
    """
    Scenario partition sharded over a fixed worker pool.

    One shard per worker, in worker order, never reordered. ``distribution``
    mirrors the per-shard scenario counts and drives routing and
    least-loaded assignment. Collectives fan out one request per shard and
    combine the responses in worker order, so the result matches what a
    single ScenarioPartition holding the concatenated shards would return.

    Fan-out mutations are not atomic: after an AggregateFailure call
    ``sync_distribution()`` before trusting the counts.
    """

    def __init__(self, pool: WorkerPool, scenario_type: Type[Scenario] = Scenario,
                 scenarios: Optional[Sequence[Scenario]] = None):
        self.scenario_type = scenario_type
        self.pool = pool
        self.shards: List[ShardHandle] = []
        self.distribution: List[int] = []

        batch = list(scenarios or [])
        if batch and len(pool) == 0:
            raise UninitializedPartitionError("Cannot distribute scenarios over an empty worker pool.")
        counts = split_counts(len(batch), len(pool))
        futures, start = [], 0
        for worker, n in zip(pool.workers, counts):
            handle = ShardHandle.new(worker)
            futures.append(handle.create(scenario_type, batch[start:start + n]))
            self.shards.append(handle)
            self.distribution.append(n)
            start += n
        gather(futures, "create", self.shards)
        logger.info("Distributed {} scenarios over {} workers: {}", len(batch), len(pool), self.distribution)

    # ---------- plumbing ----------
    def _require_shards(self) -> None:
        if not self.shards:
            raise UninitializedPartitionError()

    def _route(self, i: int, what: str = "scenario") -> Tuple[int, int]:
        """Global index -> (shard, local index), scanning shards in worker order."""
        self._require_shards()
        if i >= 0:
            j = 0
            for k, n in enumerate(self.distribution):
                if i < j + n:
                    return k, i - j
                j += n
        raise IndexOutOfRangeError(i, sum(self.distribution), what)

    def _fanout(self, op: str, *args, **kwargs) -> List[Any]:
        self._require_shards()
        futures = [h.request(op, *args, **kwargs) for h in self.shards]
        return gather(futures, op, self.shards)

    def _least_loaded(self) -> int:
        self._require_shards()
        return min(range(len(self.distribution)), key=lambda k: self.distribution[k])

    def _target(self, shard: Optional[int]) -> int:
        if shard is None:
            return self._least_loaded()
        self._require_shards()
        if not 0 <= shard < len(self.shards):
            raise IndexOutOfRangeError(shard, len(self.shards), "shard")
        return shard

    # ---------- getters ----------
    def scenario(self, i: int) -> Scenario:
        k, local = self._route(i)
        return self.shards[k].fetch("scenario", local)

    def scenarios(self) -> List[Scenario]:
        return [s for part in self._fanout("scenarios") for s in part]

    def subproblem(self, i: int) -> Any:
        k, local = self._route(i, "subproblem")
        return self.shards[k].fetch("subproblem", local)

    def subproblems(self) -> List[Any]:
        return [p for part in self._fanout("subproblems") for p in part]

    @property
    def nscenarios(self) -> int:
        return sum(self.distribution)

    @property
    def nsubproblems(self) -> int:
        return sum(self._fanout("nsubproblems"))

    def probability(self, i: Optional[int] = None) -> float:
        if i is None:
            return float(sum(self._fanout("probability")))
        k, local = self._route(i)
        return self.shards[k].fetch("probability", local)

    def expected(self) -> Scenario:
        return self.scenario_type.expected(self._fanout("expected"))

    def recourse_length(self) -> int:
        self._require_shards()
        for k, n in enumerate(self._fanout("nsubproblems")):
            if n > 0:
                return self.shards[k].fetch("recourse_length")
        raise IndexOutOfRangeError(0, 0, "subproblem")

    def is_distributed(self) -> bool:
        return True

    def sync_distribution(self) -> List[int]:
        """Re-query every shard count (use after a failed fan-out mutation)."""
        self.distribution = list(self._fanout("nscenarios"))
        return list(self.distribution)

    # ---------- setters ----------
    def add_scenario(self, scenario: Scenario, shard: Optional[int] = None) -> int:
        """Add to ``shard`` or to the least-loaded shard. Returns the shard used."""
        if not isinstance(scenario, self.scenario_type):
            raise TypeError(
                f"Expected scenario of type {self.scenario_type.__name__}, got {type(scenario).__name__}"
            )
        k = self._target(shard)
        self.shards[k].fetch("add_scenario", scenario)
        self.distribution[k] += 1
        logger.debug("Added scenario to shard {} (distribution={})", k, self.distribution)
        return k

    def add_generated_scenario(self, generator: ScenarioGenerator, shard: Optional[int] = None,
                               probability: float = 1.0) -> int:
        k = self._target(shard)
        self.shards[k].fetch("add_generated_scenario", _share(generator, k, 1), probability)
        self.distribution[k] += 1
        return k

    def add_scenarios(self, scenarios: Sequence[Scenario], shard: Optional[int] = None) -> None:
        batch = list(scenarios)
        if shard is not None:
            k = self._target(shard)
            self.shards[k].fetch("add_scenarios", batch)
            self.distribution[k] += len(batch)
            return
        self._require_shards()
        counts = split_counts(len(batch), len(self.shards))
        futures, start = [], 0
        for h, n in zip(self.shards, counts):
            futures.append(h.request("add_scenarios", batch[start:start + n]))
            start += n
        gather(futures, "add_scenarios", self.shards)
        self.distribution = [d + n for d, n in zip(self.distribution, counts)]

    def add_generated_scenarios(self, generator: ScenarioGenerator, n: int, shard: Optional[int] = None,
                                probability: float = 1.0) -> None:
        if shard is not None:
            k = self._target(shard)
            self.shards[k].fetch("add_generated_scenarios", _share(generator, k, n), n, probability)
            self.distribution[k] += n
            return
        self._require_shards()
        counts = split_counts(n, len(self.shards))
        futures = [
            h.request("add_generated_scenarios", _share(generator, k, d), d, probability)
            for k, (h, d) in enumerate(zip(self.shards, counts))
        ]
        gather(futures, "add_generated_scenarios", self.shards)
        self.distribution = [d + c for d, c in zip(self.distribution, counts)]

    def set_decision_variables(self, names: Sequence[str]) -> None:
        self._fanout("set_decision_variables", list(names))

    def update_decision_variables(self, x: Sequence[float]) -> None:
        self._fanout("update_decision_variables", [float(v) for v in x])

    def generate(self, generator: SubproblemGenerator) -> int:
        return sum(self._fanout("generate", generator))

    def clear(self) -> None:
        self._fanout("clear")

    def clear_scenarios(self) -> None:
        self._fanout("clear_scenarios")
        self.distribution = [0] * len(self.shards)

    def close(self) -> None:
        """Drop every shard from its worker. The partition is unusable afterwards."""
        if self.shards:
            gather([h.release() for h in self.shards], "close", self.shards)
        self.shards = []
        self.distribution = []

    # ---------- sampling ----------
    def sample(self, sampler: Sampler, n: int) -> None:
        """
        Draw ``n`` scenarios spread over the shards.

        Every shard, including one drawing nothing, gets the global population
        and the global ``n`` so it rescales by m/(m+n) and assigns 1/(m+n).
        """
        self._require_shards()
        m = self.nscenarios
        counts = split_counts(n, len(self.shards))
        futures = [
            h.request("sample_share", _share(sampler, k, d), d, m, n)
            for k, (h, d) in enumerate(zip(self.shards, counts))
        ]
        gather(futures, "sample", self.shards)
        self.distribution = [c + d for c, d in zip(self.distribution, counts)]
        logger.info("Sampled {} scenarios over {} shards (population {} -> {})", n, len(self.shards), m, self.nscenarios)

    def __len__(self) -> int:
        return self.nscenarios


class _Prepared:
    """Scenarios drawn by the caller's generator, handed out again by one shard."""

    def __init__(self, scenarios: Sequence[Scenario]):
        self.scenarios = list(scenarios)

    def generate(self, probability: float) -> Scenario:
        scenario = self.scenarios.pop(0)
        scenario.set_probability(probability)
        return scenario


def _share(generator: Any, key: int, count: int) -> Any:
    """
    What shard ``key`` generates ``count`` scenarios from.

    A generator that can fork sends a fresh fork (its own stream advances, so
    the next call forks differently). Any other generator runs here, in the
    caller, and the shard replays its draws. Either way the caller's
    generator moves on exactly as it would for a single partition.
    """
    fork = getattr(generator, "fork", None)
    if callable(fork):
        return fork(key)
    return _Prepared([generator.generate(1.0) for _ in range(count)])
