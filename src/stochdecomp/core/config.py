# stochdecomp/core/config.py
from __future__ import annotations
from dataclasses import dataclass, field
from typing import Any, Dict, Optional
import pathlib
import yaml

# ---------- leaf configs ----------
@dataclass
class WorkersConfig:
    count: int = 0           # 0 keeps every stage in a local partition
    backend: str = "thread"  # "thread" | "process"

@dataclass
class AggregationConfig:
    name: str = "none"
    params: Dict[str, Any] = field(default_factory=dict)

@dataclass
class SamplingConfig:
    sampler: str = "normal"
    seed: Optional[int] = 42
    params: Dict[str, Any] = field(default_factory=dict)

@dataclass
class RunConfig:
    log_level: str = "INFO"

# ---------- helpers ----------
def _as(cls, obj, defaults: Optional[Dict[str, Any]] = None):
    """Coerce a possibly-dict `obj` into dataclass `cls` (overlaying defaults)."""
    if isinstance(obj, cls):
        return obj
    if isinstance(obj, dict):
        base = {} if defaults is None else dict(defaults)
        base.update(obj)
        return cls(**base)  # type: ignore[arg-type]
    return cls(**({} if defaults is None else defaults))  # type: ignore[arg-type]

# ---------- top-level ----------
@dataclass
class DecompConfig:
    stages: int = 2
    workers: WorkersConfig = field(default_factory=WorkersConfig)
    aggregation: AggregationConfig = field(default_factory=AggregationConfig)
    sampling: SamplingConfig = field(default_factory=SamplingConfig)
    run: RunConfig = field(default_factory=RunConfig)
    data_path: Optional[str] = None

    def __post_init__(self):
        self.workers = _as(WorkersConfig, self.workers, WorkersConfig().__dict__)
        self.aggregation = _as(AggregationConfig, self.aggregation, AggregationConfig().__dict__)
        self.sampling = _as(SamplingConfig, self.sampling, SamplingConfig().__dict__)
        self.run = _as(RunConfig, self.run, RunConfig().__dict__)
        if self.stages < 2:
            raise ValueError(f"A stochastic structure needs at least 2 stages, got {self.stages}")
        if self.workers.count < 0:
            raise ValueError("workers.count must be non-negative")

    @property
    def distributed(self) -> bool:
        return self.workers.count > 0

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "DecompConfig":
        d = d or {}
        return cls(
            stages=int(d.get("stages", 2)),
            workers=_as(WorkersConfig, d.get("workers"), WorkersConfig().__dict__),
            aggregation=_as(AggregationConfig, d.get("aggregation"), AggregationConfig().__dict__),
            sampling=_as(SamplingConfig, d.get("sampling"), SamplingConfig().__dict__),
            run=_as(RunConfig, d.get("run"), RunConfig().__dict__),
            data_path=d.get("data_path"),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stages": self.stages,
            "workers": dict(self.workers.__dict__),
            "aggregation": dict(self.aggregation.__dict__),
            "sampling": dict(self.sampling.__dict__),
            "run": dict(self.run.__dict__),
            "data_path": self.data_path,
        }

def load_config(path_or_dict: str | Dict[str, Any] | DecompConfig) -> DecompConfig:
    """Accept YAML path, dict, or DecompConfig; always return a fully-typed DecompConfig."""
    if isinstance(path_or_dict, DecompConfig):
        return DecompConfig.from_dict(path_or_dict.__dict__)
    if isinstance(path_or_dict, dict):
        return DecompConfig.from_dict(path_or_dict)
    path = pathlib.Path(path_or_dict)
    with path.open("r") as f:
        d = yaml.safe_load(f) or {}
    return DecompConfig.from_dict(d)
