"""
Shadow prices read off the final tableau.

A shadow price here is the improvement of the objective per unit increase of
a constraint's right-hand side: a cost saving when minimizing, a gain when
maximizing. Binding capacity (<=) rows of a cost minimization therefore price
non-negative and binding demand (>=) rows non-positive.
"""
from typing import Dict

from multiplant.errors import InternalInconsistency
from multiplant.simplex import SimplexResult, SolutionStatus
from multiplant.standard_form import StandardFormProgram


def shadow_prices(program: StandardFormProgram, result: SimplexResult) -> Dict[int, float]:
    """
    Dual value of every model constraint.

    Row i started from the unit column k = initial_basis[i], so its internal
    dual is y_i = c_k - r_k where r is the final reduced cost row. Rows that
    only bound a variable are left out.

    Args:
        program: Standard form the solver ran on
        result: An optimal SimplexResult

    Returns:
        Constraint index -> shadow price
    """
    if result.status != SolutionStatus.OPTIMAL:
        raise InternalInconsistency(f"shadow prices requested for a {result.status.value} result")
    prices: Dict[int, float] = {}
    for row in range(program.constraint_count):
        column = program.initial_basis[row]
        internal_dual = float(program.c[column] - result.reduced_costs[column])
        # y is d(internal objective)/d(rhs) of a minimization, so -y is the
        # improvement in either sense; negated rows flip it back
        price = -internal_dual * float(program.row_signs[row])
        prices[row] = price + 0.0  # no -0.0 in reports
    return prices
