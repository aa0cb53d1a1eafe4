# stochdecomp/partitions/workers.py
"""
Worker pool and shard handles.

A shard lives inside one worker and is only reachable through its handle:
every operation is a request carrying (shard id, operation, arguments) and a
response future. Each worker runs a single-slot executor, so two requests to
the same worker never run concurrently inside it.

Backends:
  - "process": one dedicated process per worker (ProcessPoolExecutor(1));
    shard state lives in that process.
  - "thread":  one dedicated thread per worker (ThreadPoolExecutor(1));
    requests and responses are deep-copied so the caller never holds a
    reference into shard state.
"""
from __future__ import annotations
import copy
import uuid
from concurrent.futures import FIRST_EXCEPTION, Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence
from loguru import logger

from ..core.errors import AggregateFailure
from .local import ScenarioPartition

BACKENDS = ("process", "thread")

# Shards owned by this process, keyed by shard id.
_SHARDS: Dict[str, ScenarioPartition] = {}


def _dispatch(shard_id: str, op: str, args: tuple, kwargs: dict) -> Any:
    if op == "__create__":
        _SHARDS[shard_id] = ScenarioPartition(*args, **kwargs)
        return None
    if op == "__drop__":
        _SHARDS.pop(shard_id, None)
        return None
    try:
        partition = _SHARDS[shard_id]
    except KeyError:
        raise LookupError(f"Unknown shard {shard_id}") from None
    attr = getattr(partition, op)
    return attr(*args, **kwargs) if callable(attr) else attr


def _dispatch_isolated(shard_id: str, op: str, args: tuple, kwargs: dict) -> Any:
    return copy.deepcopy(_dispatch(shard_id, op, args, kwargs))


class Worker:
    def __init__(self, wid: int, backend: str = "thread"):
        if backend not in BACKENDS:
            raise ValueError(f"Unknown worker backend: {backend!r} (expected one of {BACKENDS})")
        self.id = wid
        self.backend = backend
        if backend == "process":
            self._executor: Executor = ProcessPoolExecutor(max_workers=1)
        else:
            self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix=f"stochdecomp-w{wid}")

    def submit(self, shard_id: str, op: str, *args, **kwargs) -> Future:
        if self.backend == "thread":
            return self._executor.submit(_dispatch_isolated, shard_id, op,
                                         copy.deepcopy(args), copy.deepcopy(kwargs))
        return self._executor.submit(_dispatch, shard_id, op, args, kwargs)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)

    def __repr__(self) -> str:
        return f"Worker(id={self.id}, backend={self.backend!r})"


@dataclass(frozen=True)
class ShardHandle:
    """Remote reference to one ScenarioPartition: destination worker plus shard id."""
    worker: Worker
    shard_id: str

    @classmethod
    def new(cls, worker: Worker) -> "ShardHandle":
        return cls(worker=worker, shard_id=uuid.uuid4().hex)

    def create(self, *args, **kwargs) -> Future:
        """Ask the worker to build the ScenarioPartition behind this handle."""
        return self.request("__create__", *args, **kwargs)

    def request(self, op: str, *args, **kwargs) -> Future:
        return self.worker.submit(self.shard_id, op, *args, **kwargs)

    def fetch(self, op: str, *args, **kwargs) -> Any:
        return self.request(op, *args, **kwargs).result()

    def release(self) -> Future:
        return self.request("__drop__")


def gather(futures: Sequence[Future], op: str, shards: Optional[Sequence["ShardHandle"]] = None) -> List[Any]:
    """
    Wait for every future; the first failure aborts the call with AggregateFailure.

    ``shards`` lines up with ``futures`` and names the failing worker in the error.
    """
    position = {f: i for i, f in enumerate(futures)}
    pending = set(futures)
    while pending:
        done, pending = wait(pending, return_when=FIRST_EXCEPTION)
        for f in done:
            exc = f.exception()
            if exc is not None:
                for p in pending:
                    p.cancel()
                k = position[f]
                worker = shards[k].worker.id if shards is not None else None
                logger.warning("Shard {} (worker {}) failed during '{}': {}", k, worker, op, exc)
                raise AggregateFailure(k, op, worker=worker) from exc
    return [f.result() for f in futures]


class WorkerPool:
    """Fixed-size pool of workers; one shard per worker per distributed partition."""

    def __init__(self, size: int, backend: str = "thread"):
        if size < 0:
            raise ValueError("Worker pool size must be non-negative")
        self.backend = backend
        self.workers: List[Worker] = [Worker(w, backend) for w in range(size)]
        logger.debug("Started {} {} workers", size, backend)

    def __len__(self) -> int:
        return len(self.workers)

    def __iter__(self):
        return iter(self.workers)

    def shutdown(self, wait: bool = True) -> None:
        for w in self.workers:
            w.shutdown(wait=wait)
        logger.debug("Stopped {} workers", len(self.workers))

    def __enter__(self) -> "WorkerPool":
        return self

    def __exit__(self, *exc) -> None:
        self.shutdown()
