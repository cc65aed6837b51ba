"""
Mapping of raw simplex output back onto the model's variables.
"""
import logging
import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Dict, Mapping, Optional

import numpy as np

from multiplant.errors import InternalInconsistency
from multiplant.model import LinearModel
from multiplant.simplex import SimplexResult, SolutionStatus, SolverOptions
from multiplant.standard_form import StandardFormProgram

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Solution:
    """
    Result of one solve.

    Attributes:
        status: Optimal, infeasible or unbounded
        objective_value: Objective in the model's own sense (None unless optimal)
        values: Variable index -> value (empty unless optimal)
        duals: Constraint index -> shadow price (None unless requested and optimal)
        iterations: Pivots performed
    """
    status: SolutionStatus
    objective_value: Optional[float] = None
    values: Mapping[int, float] = field(default_factory=lambda: MappingProxyType({}))
    duals: Optional[Mapping[int, float]] = None
    iterations: int = 0

    @property
    def is_optimal(self) -> bool:
        return self.status == SolutionStatus.OPTIMAL

    def value(self, index: int) -> float:
        return self.values.get(index, 0.0)


def _snap(value: float, lower: float, upper: float, threshold: float) -> float:
    """Pull values sitting within the threshold of a bound onto it."""
    if abs(value) <= threshold:
        value = 0.0
    if math.isfinite(lower) and abs(value - lower) <= threshold:
        return lower
    if math.isfinite(upper) and abs(value - upper) <= threshold:
        return upper
    return value


def extract_solution(model: LinearModel, program: StandardFormProgram, result: SimplexResult,
                     options: SolverOptions) -> Solution:
    """
    Build the user-facing Solution from the solver's column values.

    Slack, surplus and artificial columns are dropped. The objective is
    recomputed from the model's own coefficients and compared with the
    tableau's; a mismatch means the solver went wrong and is raised.

    Args:
        model: The model that was solved
        program: Its standard form
        result: Raw solver output
        options: Options the solve ran with

    Returns:
        Solution (without duals; see sensitivity.shadow_prices)
    """
    if result.status != SolutionStatus.OPTIMAL:
        return Solution(status=result.status, iterations=result.iterations)

    tolerance = options.tolerance
    scale = max(1.0, float(np.abs(program.b).max())) if program.row_count else 1.0
    threshold = tolerance * scale

    raw: Dict[int, float] = {variable.index: program.variable_shifts[variable.index]
                             for variable in model.variables}
    for index, columns in program.structural_columns().items():
        for j in columns:
            raw[index] += program.columns[j].sign * float(result.x[j])

    values: Dict[int, float] = {}
    for variable in model.variables:
        value = _snap(raw[variable.index], variable.lower, variable.upper, threshold)
        if value < variable.lower - threshold or value > variable.upper + threshold:
            raise InternalInconsistency(
                f"variable {variable.label!r} = {value} lies outside [{variable.lower}, {variable.upper}]",
                {"variable": variable.index, "value": value},
            )
        values[variable.index] = value

    for position, constraint in enumerate(model.constraints):
        if not constraint.is_satisfied(values, threshold):
            raise InternalInconsistency(
                f"constraint {constraint.name or position} is violated by the extracted solution",
                {"constraint": position, "activity": constraint.activity(values), "rhs": constraint.rhs},
            )

    recomputed = model.objective.evaluate(raw)
    tableau_objective = -result.objective if program.maximize else result.objective
    if abs(recomputed - tableau_objective) > threshold * max(1.0, abs(recomputed)):
        raise InternalInconsistency(
            f"objective cross-check failed: recomputed {recomputed}, tableau {tableau_objective}",
            {"recomputed": recomputed, "tableau": tableau_objective},
        )
    objective_value = model.objective.evaluate(values)
    logger.debug("extracted %d variable values, objective %.10g", len(values), objective_value)
    return Solution(
        status=SolutionStatus.OPTIMAL,
        objective_value=objective_value,
        values=MappingProxyType(values),
        iterations=result.iterations,
    )
