from __future__ import annotations

import pytest
import yaml
from typer.testing import CliRunner

from stochdecomp.aggregation.specs import HybridAggregate, NoAggregate, PartialAggregate
from stochdecomp.cli.commands import app
from stochdecomp.core.config import DecompConfig, WorkersConfig, load_config
from stochdecomp.io.csv_loader import load_scenarios_from_csv
from stochdecomp.models.samplers import NormalSampler, UniformSampler, make_sampler
from stochdecomp.plugins.aggregators import resolve_aggregation

runner = CliRunner()


def test_config_defaults_and_coercion(tmp_path):
    cfg = load_config({"workers": {"count": 2}, "aggregation": {"name": "partial", "params": {"size": 3}}})
    assert isinstance(cfg.workers, WorkersConfig)
    assert cfg.workers.backend == "thread"
    assert cfg.distributed
    assert cfg.stages == 2

    path = tmp_path / "cfg.yaml"
    path.write_text(yaml.safe_dump(cfg.to_dict()))
    again = load_config(path)
    assert again.to_dict() == cfg.to_dict()
    assert load_config(again).to_dict() == cfg.to_dict()


def test_config_rejects_bad_values():
    with pytest.raises(ValueError):
        DecompConfig(stages=1)
    with pytest.raises(ValueError):
        load_config({"workers": {"count": -1}})


def test_resolve_aggregation_from_plugin_names():
    assert resolve_aggregation("none") == NoAggregate()
    assert resolve_aggregation("partial", {"size": 4}) == PartialAggregate(size=4)
    spec = resolve_aggregation("hybrid", {
        "initial": {"name": "partial", "params": {"size": 2}},
        "final": {"name": "none"},
        "tau": 0.01,
    })
    assert isinstance(spec, HybridAggregate)
    assert spec.final == NoAggregate()
    with pytest.raises(KeyError):
        resolve_aggregation("dynamic")


def test_make_sampler():
    assert isinstance(make_sampler("normal", 1, mean={"d": 1.0}), NormalSampler)
    uniform = make_sampler("uniform", 1, bounds={"d": [0.0, 2.0]})
    assert isinstance(uniform, UniformSampler)
    assert 0.0 <= uniform.generate(0.5).data["d"] <= 2.0
    with pytest.raises(ValueError):
        make_sampler("lognormal")


def test_sampler_base_requires_a_draw():
    from stochdecomp.models.samplers import _SeededSampler

    with pytest.raises(TypeError):
        _SeededSampler(seed=1)


def test_csv_loader_fills_missing_probabilities(tmp_path):
    path = tmp_path / "scenarios.csv"
    path.write_text("probability,demand,label\n0.5,10,a\n,20,b\n,30,c\n")
    scenarios = load_scenarios_from_csv(path)
    assert [s.probability for s in scenarios] == pytest.approx([0.5, 0.25, 0.25])
    assert scenarios[1].data == {"demand": 20.0, "label": "b"}


def test_cli_init_partition_and_aggregation(tmp_path):
    target = tmp_path / "example"
    result = runner.invoke(app, ["init", str(target)])
    assert result.exit_code == 0, result.output
    config = target / "config.yaml"
    assert config.exists()

    result = runner.invoke(app, ["partition", "-c", str(config), "--sample", "5", "-q"])
    assert result.exit_code == 0, result.output
    assert "total=15" in result.output
    assert "probability=1.000000000" in result.output

    result = runner.invoke(app, ["aggregation", "-c", str(config), "-n", "12", "-q"])
    assert result.exit_code == 0, result.output
    assert "aggregate variables: 3" in result.output


def test_cli_aggregation_reports_inconsistent_hybrid(tmp_path):
    config = tmp_path / "bad.yaml"
    config.write_text(yaml.safe_dump({
        "aggregation": {
            "name": "hybrid",
            "params": {
                "initial": {"name": "partial", "params": {"size": 2}},
                "final": {"name": "partial", "params": {"size": 3}},
                "tau": 0.1,
            },
        },
    }))
    result = runner.invoke(app, ["aggregation", "-c", str(config), "-n", "10", "-q"])
    assert result.exit_code == 1
    assert "Inconsistent number of theta variables" in result.output
