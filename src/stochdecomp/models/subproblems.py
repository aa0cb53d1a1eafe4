
from __future__ import annotations
from numbers import Real
from typing import Any
import pyomo.environ as pyo
from loguru import logger

from ..core.datatypes import DecisionVariables, Scenario


def num_variables(model: Any) -> int:
    """Decision-variable count of a subproblem handle; the only thing this layer asks of it."""
    if model is None:
        return 0
    if hasattr(model, "component_data_objects"):
        return sum(1 for _ in model.component_data_objects(pyo.Var, descend_into=True))
    n = getattr(model, "num_variables", None)
    if n is None:
        raise TypeError(f"Cannot count decision variables of {type(model).__name__}")
    return int(n() if callable(n) else n)


def fix_decisions(model: Any, decision_variables: DecisionVariables) -> None:
    """Refix the first-stage values ``x[j]`` of a Pyomo subproblem. Other handles are left alone."""
    if not isinstance(model, pyo.Block) or not hasattr(model, "x"):
        return
    for j, val in zip(decision_variables.names, decision_variables.values):
        model.x[j].fix(val)


class RecourseGenerator:
    """
    Simple recourse model for one scenario.

    Decisions:
      - x[j]  first-stage decisions, fixed from the partition's decision schema
      - y[k]  recourse on each numeric scenario entry k, 0 <= y[k] <= data[k]

    Constraints:
      - Linking: sum_k y[k] <= sum_j x[j]

    Objective:
      - Minimize  -revenue * sum_k y[k] + penalty * sum_k (data[k] - y[k])

    Built without rule callbacks so that the model pickles across worker processes.
    """

    def __init__(self, revenue: float = 1.0, penalty: float = 0.0):
        self.revenue = float(revenue)
        self.penalty = float(penalty)

    def __call__(self, decision_variables: DecisionVariables, scenario: Scenario) -> pyo.ConcreteModel:
        m = pyo.ConcreteModel(name="recourse")
        keys = [k for k, v in scenario.data.items() if isinstance(v, Real) and not isinstance(v, bool)]
        names = list(decision_variables.names)
        m.J = pyo.Set(initialize=names, ordered=True)
        m.K = pyo.Set(initialize=keys, ordered=True)

        m.x = pyo.Var(m.J, domain=pyo.Reals)
        for j, val in zip(names, decision_variables.values):
            m.x[j].fix(val)
        m.y = pyo.Var(m.K, domain=pyo.NonNegativeReals)
        for k in keys:
            m.y[k].setub(float(scenario.data[k]))

        m.Link = pyo.ConstraintList()
        if names and keys:
            m.Link.add(sum(m.y[k] for k in keys) <= sum(m.x[j] for j in names))

        if keys:
            served = sum(m.y[k] for k in keys)
            shortfall = sum(float(scenario.data[k]) - m.y[k] for k in keys)
            m.obj = pyo.Objective(expr=-self.revenue * served + self.penalty * shortfall, sense=pyo.minimize)
        logger.trace("Built recourse model: |x|={} |y|={}", len(names), len(keys))
        return m
