"""
Two-phase tableau simplex on a StandardFormProgram.

Pivoting follows Dantzig's rule and falls back to Bland's rule for the rest of
a phase once degeneracy shows up, which keeps results deterministic and rules
out cycling.
"""
import logging
from dataclasses import dataclass, fields
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import numpy as np

from multiplant.errors import ConfigError, InternalInconsistency, SolverLimitExceeded
from multiplant.standard_form import StandardFormProgram

logger = logging.getLogger(__name__)

# Numerical tolerance for floating-point comparisons
DEFAULT_TOLERANCE = 1e-9
DEFAULT_ITERATION_FACTOR = 50
DEFAULT_STALL_LIMIT = 50
MIN_ITERATION_LIMIT = 100


class SolutionStatus(str, Enum):
    OPTIMAL = "optimal"
    INFEASIBLE = "infeasible"
    UNBOUNDED = "unbounded"


@dataclass(frozen=True)
class SolverOptions:
    """
    Caller-supplied solver configuration.

    Attributes:
        tolerance: Threshold under which a coefficient counts as zero
        max_iterations: Hard pivot cap; derived from the problem size when None
        iteration_factor: Pivots allowed per (row x column) when max_iterations is None
        stall_limit: Consecutive non-improving pivots before switching to Bland's rule
        compute_sensitivity: Whether to report shadow prices
    """
    tolerance: float = DEFAULT_TOLERANCE
    max_iterations: Optional[int] = None
    iteration_factor: int = DEFAULT_ITERATION_FACTOR
    stall_limit: int = DEFAULT_STALL_LIMIT
    compute_sensitivity: bool = False

    def __post_init__(self):
        if not self.tolerance > 0:
            raise ConfigError(f"tolerance must be positive, got {self.tolerance}")
        if self.max_iterations is not None and self.max_iterations < 0:
            raise ConfigError(f"max_iterations must be non-negative, got {self.max_iterations}")
        if self.iteration_factor < 1:
            raise ConfigError(f"iteration_factor must be at least 1, got {self.iteration_factor}")
        if self.stall_limit < 1:
            raise ConfigError(f"stall_limit must be at least 1, got {self.stall_limit}")
        if not isinstance(self.compute_sensitivity, bool):
            raise ConfigError(f"compute_sensitivity must be true or false, got {self.compute_sensitivity!r}")

    @classmethod
    def from_dict(cls, d: Optional[Dict[str, Any]]) -> "SolverOptions":
        if not d:
            return cls()
        known = {f.name for f in fields(cls)}
        try:
            return cls(**{k: v for k, v in d.items() if k in known})
        except TypeError as e:
            raise ConfigError(f"invalid solver options: {e}") from e

    def iteration_limit(self, rows: int, columns: int) -> int:
        if self.max_iterations is not None:
            return self.max_iterations
        return max(MIN_ITERATION_LIMIT, self.iteration_factor * max(rows, 1) * max(columns, 1))


@dataclass
class SimplexResult:
    """
    Raw solver output in standard-form coordinates.

    Attributes:
        status: Optimal, infeasible or unbounded
        x: Value of every standard-form column (None unless optimal)
        objective: Internal minimization objective read off the tableau, offset included (None unless optimal)
        reduced_costs: Final reduced cost of every column
        basis: Basic column of every row
        iterations: Pivots performed across both phases
    """
    status: SolutionStatus
    x: Optional[np.ndarray]
    objective: Optional[float]
    reduced_costs: np.ndarray
    basis: np.ndarray
    iterations: int


class SimplexSolver:
    """
    Two-phase simplex solver for a standard-form program.

    Solves: minimize c^T x
    Subject to: A x = b, x >= 0

    The tableau is a single (rows + 1) x (columns + 1) buffer owned by this
    instance: constraint rows first with the right-hand side in the last
    column, reduced costs in the last row. Each call to solve() rebuilds it.
    """

    def __init__(self, program: StandardFormProgram, options: Optional[SolverOptions] = None):
        self.program = program
        self.options = options or SolverOptions()
        self.row_count = program.row_count
        self.column_count = program.column_count
        self.iteration_limit = self.options.iteration_limit(self.row_count, self.column_count)
        self.is_artificial = np.zeros(self.column_count, dtype=bool)
        if program.artificial_columns:
            self.is_artificial[np.array(program.artificial_columns, dtype=np.intp)] = True
        self.tableau = np.zeros((self.row_count + 1, self.column_count + 1))
        self.basis = np.zeros(self.row_count, dtype=np.intp)
        self.iterations = 0

    @property
    def scale(self) -> float:
        """Magnitude used to turn the tolerance into an absolute threshold."""
        if self.row_count == 0:
            return 1.0
        return max(1.0, float(np.abs(self.program.b).max()))

    def solve(self) -> SimplexResult:
        """
        Execute the two-phase simplex algorithm.

        Phase I: drive the artificial columns to zero from the unit basis
        Phase II: optimize the true costs with artificial columns locked out

        Returns:
            SimplexResult with the verdict and, when optimal, the column values
        """
        tolerance = self.options.tolerance
        self._load_initial_tableau()

        if self.program.artificial_columns:
            phase1_costs = np.zeros(self.column_count)
            phase1_costs[self.program.artificial_columns] = 1.0
            self._price_out(phase1_costs)
            status = self._run_simplex_iterations(np.ones(self.column_count, dtype=bool), "phase 1")
            if status != SolutionStatus.OPTIMAL:
                # the phase 1 objective is bounded below by zero
                raise InternalInconsistency("phase 1 reported an unbounded sum of artificials")
            infeasibility = -self.tableau[-1, -1]
            if infeasibility > tolerance * self.scale:
                logger.info("phase 1 ended with artificial sum %.6g: infeasible", infeasibility)
                return self._result(SolutionStatus.INFEASIBLE)
            self._drive_out_artificials()

        self._price_out(self.program.c)
        status = self._run_simplex_iterations(~self.is_artificial, "phase 2")
        if status == SolutionStatus.UNBOUNDED:
            logger.info("phase 2 found an unbounded direction after %d pivots", self.iterations)
            return self._result(SolutionStatus.UNBOUNDED)

        x = self._basic_solution()
        self._check_invariants(x)
        x = np.maximum(x, 0.0)
        # the objective cell holds -c_B^T x_B after pricing and every pivot
        objective = -float(self.tableau[-1, -1]) + self.program.objective_offset
        logger.info("optimal after %d pivots, internal objective %.10g", self.iterations, objective)
        return self._result(SolutionStatus.OPTIMAL, x, objective)

    def _load_initial_tableau(self) -> None:
        rows, columns = self.row_count, self.column_count
        self.tableau = np.zeros((rows + 1, columns + 1))
        self.tableau[:rows, :columns] = self.program.A
        self.tableau[:rows, -1] = self.program.b
        self.basis = np.array(self.program.initial_basis, dtype=np.intp)
        self.iterations = 0
        for row, column in enumerate(self.basis):
            if self.tableau[row, column] != 1.0 or np.count_nonzero(self.tableau[:rows, column]) != 1:
                raise InternalInconsistency(
                    f"initial basic column {column} is not the unit vector of row {row}")

    def _price_out(self, costs: np.ndarray) -> None:
        """Write the reduced cost row of `costs` for the current basis."""
        reduced_cost_row = np.zeros(self.column_count + 1)
        reduced_cost_row[:-1] = costs
        for row, column in enumerate(self.basis):
            basic_cost = costs[column]
            if basic_cost != 0:
                reduced_cost_row -= basic_cost * self.tableau[row]
        self.tableau[-1] = reduced_cost_row

    def _run_simplex_iterations(self, allowed: np.ndarray, phase: str) -> SolutionStatus:
        """
        Pivot until no allowed column improves the objective.

        Args:
            allowed: Mask of columns that may enter the basis
            phase: Name used in log messages

        Returns:
            OPTIMAL or UNBOUNDED
        """
        tolerance = self.options.tolerance
        use_bland = False
        stalled_pivots = 0
        objective = -self.tableau[-1, -1]

        while True:
            entering = self._select_entering(allowed, use_bland)
            if entering is None:
                logger.debug("%s optimal, objective %.10g", phase, objective)
                return SolutionStatus.OPTIMAL

            leaving, tied = self._select_leaving(entering, use_bland)
            if leaving is None:
                return SolutionStatus.UNBOUNDED

            if self.iterations >= self.iteration_limit:
                raise SolverLimitExceeded(self.iterations, self.iteration_limit)
            if logger.isEnabledFor(logging.DEBUG):
                logger.debug(
                    "%s pivot %d: column %d enters, column %d leaves (row %d)",
                    phase, self.iterations, entering, self.basis[leaving], leaving,
                )
            self._perform_pivot(leaving, entering)
            self.iterations += 1

            new_objective = -self.tableau[-1, -1]
            if new_objective < objective - tolerance * max(1.0, abs(objective)):
                stalled_pivots = 0
            else:
                stalled_pivots += 1
            objective = new_objective

            if not use_bland and (tied or stalled_pivots >= self.options.stall_limit):
                logger.debug("%s degenerate at pivot %d, switching to Bland's rule", phase, self.iterations)
                use_bland = True

    def _select_entering(self, allowed: np.ndarray, use_bland: bool) -> Optional[int]:
        reduced_costs = self.tableau[-1, :-1]
        candidates = np.flatnonzero(allowed & (reduced_costs < -self.options.tolerance))
        if candidates.size == 0:
            return None
        if use_bland:
            return int(candidates[0])
        # argmin keeps the first occurrence, so ties go to the lowest index
        return int(candidates[np.argmin(reduced_costs[candidates])])

    def _select_leaving(self, entering: int, use_bland: bool) -> Tuple[Optional[int], bool]:
        """
        Minimum ratio test on the entering column.

        Returns:
            (row index or None when unbounded, whether several rows tied)
        """
        tolerance = self.options.tolerance
        column = self.tableau[:self.row_count, entering]
        rows = np.flatnonzero(column > tolerance)
        if rows.size == 0:
            return None, False
        ratios = self.tableau[rows, -1] / column[rows]
        best_ratio = ratios.min()
        tied_rows = rows[ratios <= best_ratio + tolerance * max(1.0, abs(best_ratio))]
        if use_bland:
            leaving = tied_rows[np.argmin(self.basis[tied_rows])]
        else:
            leaving = tied_rows[0]
        return int(leaving), tied_rows.size > 1

    def _perform_pivot(self, leaving_row: int, entering_column: int) -> None:
        """
        Perform a simplex pivot operation in place.

        Args:
            leaving_row: Row whose basic column leaves
            entering_column: Column entering the basis
        """
        tableau = self.tableau
        pivot_row = tableau[leaving_row] / tableau[leaving_row, entering_column]
        multipliers = tableau[:, entering_column].copy()
        multipliers[leaving_row] = 0.0
        tableau -= np.outer(multipliers, pivot_row)
        tableau[leaving_row] = pivot_row
        tableau[:, entering_column] = 0.0
        tableau[leaving_row, entering_column] = 1.0

        # round-off can push a degenerate right-hand side just below zero
        rhs = tableau[:self.row_count, -1]
        rhs[(rhs < 0) & (rhs > -self.options.tolerance * self.scale)] = 0.0
        self.basis[leaving_row] = entering_column

    def _drive_out_artificials(self) -> None:
        """
        Replace zero-level artificial basics by real columns.

        A row whose entries are zero in every non-artificial column is
        redundant; it keeps its artificial, which can never leave or grow.
        """
        tolerance = self.options.tolerance
        for row in range(self.row_count):
            if not self.is_artificial[self.basis[row]]:
                continue
            candidates = np.flatnonzero(~self.is_artificial & (np.abs(self.tableau[row, :-1]) > tolerance))
            if candidates.size == 0:
                logger.debug("row %d is redundant, artificial column %d stays basic at zero",
                             row, self.basis[row])
                continue
            self.tableau[row, -1] = 0.0
            self._perform_pivot(row, int(candidates[0]))

    def _basic_solution(self) -> np.ndarray:
        x = np.zeros(self.column_count)
        x[self.basis] = self.tableau[:self.row_count, -1]
        return x

    def _check_invariants(self, x: np.ndarray) -> None:
        threshold = self.options.tolerance * self.scale
        if len(set(self.basis.tolist())) != self.row_count:
            raise InternalInconsistency("basis holds a column twice", {"basis": self.basis.tolist()})
        if np.any(x < -threshold):
            raise InternalInconsistency("basic solution has a negative component",
                                        {"min_value": float(x.min())})
        if self.row_count:
            residual = float(np.abs(self.program.A @ x - self.program.b).max())
            magnitude = max(1.0, float(np.abs(self.program.A).max()))
            if residual > threshold * magnitude:
                raise InternalInconsistency("basic solution violates A x = b",
                                            {"residual": residual})
        if np.any(x[self.is_artificial] > threshold):
            raise InternalInconsistency("artificial column left at a positive level")

    def _result(self, status: SolutionStatus, x: Optional[np.ndarray] = None,
                objective: Optional[float] = None) -> SimplexResult:
        return SimplexResult(
            status=status,
            x=x,
            objective=objective,
            reduced_costs=self.tableau[-1, :-1].copy(),
            basis=self.basis.copy(),
            iterations=self.iterations,
        )
