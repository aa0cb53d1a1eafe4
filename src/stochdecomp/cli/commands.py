
from __future__ import annotations
import sys
import typer
from pathlib import Path
from typing import Optional
from rich import print
from rich.table import Table
from loguru import logger
from ..aggregation.channel import CutCollector
from ..core.config import DecompConfig, load_config
from ..core.errors import InconsistentAggregationError
from ..core.structure import BlockStructure
from ..io.csv_loader import load_scenarios_from_csv
from ..models.samplers import make_sampler
from ..partitions.workers import WorkerPool
from ..plugins.aggregators import resolve_aggregation

app = typer.Typer(no_args_is_help=True, help="stochdecomp — scenario partitioning and cut aggregation for L-shaped decomposition")


def _logging(verbose: bool, quiet: bool, level: str = "INFO") -> None:
    logger.remove()
    if verbose:
        level = "DEBUG"
    elif quiet:
        level = "WARNING"
    logger.add(lambda m: sys.stderr.write(m), level=level)


@app.command("init")
def init_cmd(target: str = typer.Argument("examples/minimal", help="Write an example config and scenario file to target")):
    import yaml
    dst = Path(target)
    dst.mkdir(parents=True, exist_ok=True)
    cfg = DecompConfig.from_dict({
        "data_path": str(dst / "scenarios.csv"),
        "workers": {"count": 3, "backend": "thread"},
        "aggregation": {
            "name": "hybrid",
            "params": {
                "initial": {"name": "partial", "params": {"size": 4}},
                "final": {"name": "partial", "params": {"size": 4}},
                "tau": 0.05,
            },
        },
        "sampling": {"sampler": "normal", "seed": 42, "params": {"mean": {"demand": 100.0}, "std": {"demand": 15.0}}},
    })
    (dst / "config.yaml").write_text(yaml.safe_dump(cfg.to_dict(), sort_keys=False))
    rows = ["demand,price"] + [f"{80 + 5 * i},{10 + i % 3}" for i in range(10)]
    (dst / "scenarios.csv").write_text("\n".join(rows) + "\n")
    print(f"[green]Initialized example at {dst}[/green]")


@app.command("partition")
def partition_cmd(config: str = typer.Option(..., "--config", "-c", help="Path to YAML config"),
                  scenarios: Optional[str] = typer.Option(None, "--scenarios", "-s", help="Scenario CSV (overrides data_path)"),
                  sample: int = typer.Option(0, "--sample", "-n", help="Scenarios to sample on top of the loaded ones"),
                  stage: int = typer.Option(2, "--stage", help="Stage to populate"),
                  verbose: bool = typer.Option(False, "--verbose", "-v", help="DEBUG logging"),
                  quiet: bool = typer.Option(False, "--quiet", "-q", help="Only WARN+")):
    cfg = load_config(config)
    _logging(verbose, quiet, cfg.run.log_level)

    pool = WorkerPool(cfg.workers.count, cfg.workers.backend) if cfg.distributed else None
    try:
        structure = BlockStructure.from_config(cfg, pool)
        src = scenarios or cfg.data_path
        if src:
            structure.add_scenarios(load_scenarios_from_csv(src), stage=stage)
        if sample > 0:
            sampler = make_sampler(cfg.sampling.sampler, cfg.sampling.seed, **cfg.sampling.params)
            structure.sample(sampler, sample, stage=stage)

        sp = structure.scenarioproblems(stage)
        table = Table(title=f"Stage {stage} scenarios")
        table.add_column("shard")
        table.add_column("scenarios", justify="right")
        counts = sp.distribution if structure.is_distributed() else [sp.nscenarios]
        for k, n in enumerate(counts):
            table.add_row(str(k), str(n))
        print(table)
        print(f"total={structure.nscenarios(stage)} probability={structure.stage_probability(stage):.9f}")
        print("expected:", structure.expected(stage).data)
        structure.close()
    finally:
        if pool is not None:
            pool.shutdown()
    logger.success("Partition complete.")


@app.command("aggregation")
def aggregation_cmd(config: str = typer.Option(..., "--config", "-c", help="Path to YAML config"),
                    subproblems: int = typer.Option(..., "--subproblems", "-n", help="Number of subproblems"),
                    verbose: bool = typer.Option(False, "--verbose", "-v", help="DEBUG logging"),
                    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only WARN+")):
    cfg = load_config(config)
    _logging(verbose, quiet, cfg.run.log_level)
    spec = resolve_aggregation(cfg.aggregation.name, cfg.aggregation.params)
    try:
        policy = spec.build(subproblems, CutCollector())
    except InconsistentAggregationError as e:
        print(f"[bold red]{e}[/bold red]")
        raise typer.Exit(code=1)
    print(f"[bold green]{spec}[/bold green]")
    print(f"aggregate variables: {policy.num_aggregate_vars(subproblems)} for {subproblems} subproblems")


def main():
    app()
