"""
Conversion of a LinearModel into equality standard form.

    minimize    c^T x + offset
    subject to  A x = b,  b >= 0,  x >= 0

Every row of the result comes with a column that is a unit vector for that
row, so the simplex solver can start from an explicit basis without any
search.
"""
import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Set

import numpy as np

from multiplant.model import LinearModel, Relation, Sense

logger = logging.getLogger(__name__)


class ColumnKind(str, Enum):
    STRUCTURAL = "structural"
    SLACK = "slack"
    SURPLUS = "surplus"
    ARTIFICIAL = "artificial"


@dataclass(frozen=True)
class ColumnRecord:
    """
    Provenance of one standard-form column.

    Attributes:
        kind: Structural, slack, surplus or artificial
        source: Variable index for structural columns, row index otherwise
        sign: +1 or -1; a structural column contributes sign * value to its variable
    """
    kind: ColumnKind
    source: int
    sign: float = 1.0


@dataclass
class StandardFormProgram:
    """
    A fresh standard-form program derived from a model.

    Rows 0..constraint_count-1 are the model's constraints in order; the rows
    after them bound the variables listed in bound_rows.
    """
    A: np.ndarray
    b: np.ndarray
    c: np.ndarray
    objective_offset: float
    maximize: bool
    columns: List[ColumnRecord]
    row_signs: np.ndarray
    initial_basis: List[int]
    artificial_columns: List[int]
    constraint_count: int
    bound_rows: List[int]
    variable_shifts: List[float]

    @property
    def row_count(self) -> int:
        return self.A.shape[0]

    @property
    def column_count(self) -> int:
        return self.A.shape[1]

    def columns_of_kind(self, kind: ColumnKind) -> List[int]:
        return [j for j, record in enumerate(self.columns) if record.kind == kind]

    def structural_columns(self) -> Dict[int, List[int]]:
        """Map each variable index to the standard-form columns that encode it."""
        mapping: Dict[int, List[int]] = {}
        for j, record in enumerate(self.columns):
            if record.kind == ColumnKind.STRUCTURAL:
                mapping.setdefault(record.source, []).append(j)
        return mapping


def _find_unit_column(A: np.ndarray, row: int, candidates: List[int], claimed: Set[int]) -> Optional[int]:
    """Lowest-index column equal to the unit vector of `row`, or None."""
    for j in candidates:
        if j in claimed or A[row, j] != 1.0:
            continue
        column = A[:, j]
        if np.count_nonzero(column) == 1:
            return j
    return None


def to_standard_form(model: LinearModel) -> StandardFormProgram:
    """
    Build the standard-form program of a model without mutating it.

    Rows follow the model's constraints one to one, except that every
    variable with both bounds finite adds one `x' <= upper - lower` row after
    them. row_count is therefore constraint_count + len(bound_rows).

    Args:
        model: A validated LinearModel

    Returns:
        StandardFormProgram with slack, surplus and artificial columns added
    """
    maximize = model.objective.sense == Sense.MAXIMIZE
    sense_sign = -1.0 if maximize else 1.0

    # ---- Structural columns: shift, mirror or split every variable ----
    columns: List[ColumnRecord] = []
    variable_shifts: List[float] = []
    bound_rows: List[int] = []
    bound_widths: List[float] = []
    for variable in model.variables:
        if math.isfinite(variable.lower):
            columns.append(ColumnRecord(ColumnKind.STRUCTURAL, variable.index, 1.0))
            variable_shifts.append(variable.lower)
            if math.isfinite(variable.upper):
                bound_rows.append(variable.index)
                bound_widths.append(variable.upper - variable.lower)
        elif math.isfinite(variable.upper):
            columns.append(ColumnRecord(ColumnKind.STRUCTURAL, variable.index, -1.0))
            variable_shifts.append(variable.upper)
        else:
            columns.append(ColumnRecord(ColumnKind.STRUCTURAL, variable.index, 1.0))
            columns.append(ColumnRecord(ColumnKind.STRUCTURAL, variable.index, -1.0))
            variable_shifts.append(0.0)
    structural_count = len(columns)
    columns_by_variable: Dict[int, List[int]] = {}
    for j, record in enumerate(columns):
        columns_by_variable.setdefault(record.source, []).append(j)

    constraint_count = len(model.constraints)
    row_count = constraint_count + len(bound_rows)
    structural = np.zeros((row_count, structural_count))
    rhs = np.zeros(row_count)
    relations: List[Relation] = []

    for i, constraint in enumerate(model.constraints):
        shifted_rhs = constraint.rhs
        for index, coeff in constraint.coefficients.items():
            for j in columns_by_variable[index]:
                structural[i, j] = coeff * columns[j].sign
            shifted_rhs -= coeff * variable_shifts[index]
        rhs[i] = shifted_rhs
        relations.append(constraint.relation)
    for position, (index, width) in enumerate(zip(bound_rows, bound_widths)):
        row = constraint_count + position
        structural[row, columns_by_variable[index][0]] = 1.0
        rhs[row] = width
        relations.append(Relation.LE)

    # ---- Make every right-hand side non-negative ----
    row_signs = np.ones(row_count)
    for i in range(row_count):
        if rhs[i] < 0:
            structural[i, :] *= -1.0
            rhs[i] = -rhs[i]
            row_signs[i] = -1.0
            if relations[i] == Relation.LE:
                relations[i] = Relation.GE
            elif relations[i] == Relation.GE:
                relations[i] = Relation.LE

    # ---- Slack/surplus columns, then artificial columns ----
    auxiliary: List[ColumnRecord] = []
    needs_artificial: List[int] = []
    # equality rows that can start from one of the model's own columns
    structural_basis: Dict[int, int] = {}
    for i, relation in enumerate(relations):
        if relation == Relation.LE:
            auxiliary.append(ColumnRecord(ColumnKind.SLACK, i, 1.0))
        elif relation == Relation.GE:
            auxiliary.append(ColumnRecord(ColumnKind.SURPLUS, i, -1.0))
            needs_artificial.append(i)
        else:
            unit = _find_unit_column(structural, i, list(range(structural_count)),
                                     set(structural_basis.values()))
            if unit is None:
                needs_artificial.append(i)
            else:
                structural_basis[i] = unit
    artificial = [ColumnRecord(ColumnKind.ARTIFICIAL, i, 1.0) for i in needs_artificial]

    all_columns = columns + auxiliary + artificial
    A = np.zeros((row_count, len(all_columns)))
    A[:, :structural_count] = structural
    initial_basis: List[int] = [-1] * row_count
    for j, record in enumerate(all_columns[structural_count:], start=structural_count):
        A[record.source, j] = record.sign
        if record.kind in (ColumnKind.SLACK, ColumnKind.ARTIFICIAL):
            initial_basis[record.source] = j
    for i, j in structural_basis.items():
        initial_basis[i] = j

    c = np.zeros(len(all_columns))
    offset = 0.0
    for index, coeff in model.objective.coefficients.items():
        for j in columns_by_variable[index]:
            c[j] = sense_sign * coeff * columns[j].sign
        offset += sense_sign * coeff * variable_shifts[index]

    artificial_columns = [j for j, record in enumerate(all_columns) if record.kind == ColumnKind.ARTIFICIAL]
    logger.debug(
        "standard form for %r: %d rows, %d columns (%d structural, %d artificial)",
        model.name, row_count, len(all_columns), structural_count, len(artificial_columns),
    )
    return StandardFormProgram(
        A=A,
        b=rhs,
        c=c,
        objective_offset=offset,
        maximize=maximize,
        columns=all_columns,
        row_signs=row_signs,
        initial_basis=initial_basis,
        artificial_columns=artificial_columns,
        constraint_count=constraint_count,
        bound_rows=bound_rows,
        variable_shifts=variable_shifts,
    )
