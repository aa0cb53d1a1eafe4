# stochdecomp/io/csv_loader.py
from __future__ import annotations
import csv
from pathlib import Path
from typing import List, Type
from loguru import logger
from ..core.datatypes import Scenario

def _read_csv(path: Path) -> list[dict]:
    with path.open(newline="", encoding="utf-8") as f:
        rdr = csv.DictReader(f)
        return [dict(r) for r in rdr]

def _parse(value: str):
    try:
        return float(value)
    except (TypeError, ValueError):
        return value

def load_scenarios_from_csv(path: str | Path, scenario_type: Type[Scenario] = Scenario) -> List[Scenario]:
    """
    scenarios.csv: one scenario per row.
      - optional `probability` column; rows without one share the remaining mass uniformly
      - every other column goes into `data` (numeric where it parses)
    """
    p = Path(path)
    rows = _read_csv(p)
    given = [r.get("probability") not in (None, "") for r in rows]
    fixed_mass = sum(float(r["probability"]) for r, g in zip(rows, given) if g)
    n_free = sum(1 for g in given if not g)
    free_p = max(1.0 - fixed_mass, 0.0) / n_free if n_free else 0.0

    scenarios = []
    for r, g in zip(rows, given):
        prob = float(r["probability"]) if g else free_p
        data = {k: _parse(v) for k, v in r.items() if k != "probability" and k is not None}
        scenarios.append(scenario_type(probability=prob, data=data))

    total = sum(s.probability for s in scenarios)
    logger.info("Loaded {} scenarios from {} (total probability {:.6f})", len(scenarios), p, total)
    if scenarios and abs(total - 1.0) > 1e-9:
        logger.warning("Scenario probabilities in {} sum to {:.6f}, not 1", p, total)
    return scenarios
