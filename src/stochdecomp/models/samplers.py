
from __future__ import annotations
import random
from abc import ABC, abstractmethod
from typing import Dict, Optional, Tuple, Type

from ..core.datatypes import Scenario


class _SeededSampler(ABC):
    """Shared seeding for the built-in samplers.

    ``fork(key)`` returns an independent copy for shard ``key``. The copy is
    seeded from this sampler's own stream, which advances on every fork, so
    shards sampling in parallel and repeated fan-outs never replay a stream.
    """

    def __init__(self, seed: Optional[int] = None, scenario_type: Type[Scenario] = Scenario):
        self.seed = seed
        self.scenario_type = scenario_type
        self._rng = random.Random(seed)

    def fork(self, key: int):
        clone = self.__class__.__new__(self.__class__)
        clone.__dict__.update(self.__dict__)
        base = self._rng.randrange(2**31)
        clone.seed = hash((base, int(key))) & 0x7FFFFFFF
        clone._rng = random.Random(clone.seed)
        return clone

    @abstractmethod
    def _draw(self) -> Dict[str, float]: ...

    def generate(self, probability: float) -> Scenario:
        return self.scenario_type(probability=probability, data=self._draw())


class NormalSampler(_SeededSampler):
    def __init__(self, mean: Dict[str, float], std: Dict[str, float] | None = None,
                 seed: Optional[int] = None, scenario_type: Type[Scenario] = Scenario,
                 nonnegative: bool = True):
        super().__init__(seed=seed, scenario_type=scenario_type)
        self.mean = {k: float(v) for k, v in mean.items()}
        self.std = {k: float((std or {}).get(k, 1.0)) for k in self.mean}
        self.nonnegative = nonnegative

    def _draw(self) -> Dict[str, float]:
        out = {k: self._rng.gauss(mu, self.std[k]) for k, mu in self.mean.items()}
        if self.nonnegative:
            out = {k: max(v, 0.0) for k, v in out.items()}
        return out


class UniformSampler(_SeededSampler):
    def __init__(self, bounds: Dict[str, Tuple[float, float]], seed: Optional[int] = None,
                 scenario_type: Type[Scenario] = Scenario):
        super().__init__(seed=seed, scenario_type=scenario_type)
        self.bounds = {k: (float(lo), float(hi)) for k, (lo, hi) in bounds.items()}

    def _draw(self) -> Dict[str, float]:
        return {k: self._rng.uniform(lo, hi) for k, (lo, hi) in self.bounds.items()}


_SAMPLERS = {"normal": NormalSampler, "uniform": UniformSampler}


def make_sampler(name: str, seed: Optional[int] = None, **params) -> _SeededSampler:
    """Build a built-in sampler from config (``sampling.sampler`` / ``sampling.params``)."""
    try:
        cls = _SAMPLERS[name]
    except KeyError:
        raise ValueError(f"Unknown sampler {name!r} (expected one of {sorted(_SAMPLERS)})") from None
    if cls is UniformSampler and "bounds" in params:
        params["bounds"] = {k: tuple(v) for k, v in params["bounds"].items()}
    return cls(seed=seed, **params)
