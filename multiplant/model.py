"""
Domain-agnostic linear model: decision variables, linear constraints and a
linear objective. Variables are referenced by index everywhere outside this
module.
"""
import math
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional

from multiplant.errors import InvalidProblem


class Relation(str, Enum):
    LE = "<="
    GE = ">="
    EQ = "="


class Sense(str, Enum):
    MINIMIZE = "min"
    MAXIMIZE = "max"


@dataclass(frozen=True)
class Variable:
    """
    A decision variable.

    Attributes:
        index: Stable position in the owning model
        label: Human-readable name, e.g. "plant A -> product X"
        lower: Lower bound (-inf allowed)
        upper: Upper bound (+inf allowed)
    """
    index: int
    label: str
    lower: float = 0.0
    upper: float = math.inf

    @property
    def is_free(self) -> bool:
        return math.isinf(self.lower) and math.isinf(self.upper)


@dataclass(frozen=True)
class Constraint:
    """
    A linear constraint sum(coefficients[j] * x_j) <relation> rhs.

    Coefficients are stored sparsely in ascending variable order; zero
    coefficients are dropped.
    """
    coefficients: Mapping[int, float]
    relation: Relation
    rhs: float
    name: Optional[str] = None

    def activity(self, values: Mapping[int, float]) -> float:
        """Evaluate the left-hand side at the given variable values."""
        return sum(coeff * values.get(index, 0.0) for index, coeff in self.coefficients.items())

    def is_satisfied(self, values: Mapping[int, float], tolerance: float) -> bool:
        lhs = self.activity(values)
        slack = tolerance * max(1.0, abs(self.rhs))
        if self.relation == Relation.LE:
            return lhs <= self.rhs + slack
        if self.relation == Relation.GE:
            return lhs >= self.rhs - slack
        return abs(lhs - self.rhs) <= slack


@dataclass(frozen=True)
class Objective:
    coefficients: Mapping[int, float] = field(default_factory=lambda: MappingProxyType({}))
    sense: Sense = Sense.MINIMIZE

    def evaluate(self, values: Mapping[int, float]) -> float:
        return sum(coeff * values.get(index, 0.0) for index, coeff in self.coefficients.items())


def _sparse(coefficients: Mapping[int, float]) -> Mapping[int, float]:
    """Drop zero entries, order by variable index and freeze."""
    kept = {int(index): float(value) for index, value in coefficients.items() if value != 0}
    return MappingProxyType(dict(sorted(kept.items())))


class LinearModel:
    """
    Owns the variable list, the constraint list and the objective.

    Every coefficient key of every constraint and of the objective refers to
    an existing variable; the mutators reject anything else with
    InvalidProblem.
    """

    def __init__(self, name: str = "model"):
        self.name = name
        self.variables: List[Variable] = []
        self.constraints: List[Constraint] = []
        self.objective = Objective()

    def add_variable(self, label: str, lower: float = 0.0, upper: float = math.inf) -> int:
        """
        Append a variable and return its index.

        Args:
            label: Human-readable name
            lower: Lower bound
            upper: Upper bound

        Returns:
            Index of the new variable
        """
        lower = float(lower)
        upper = float(upper)
        if math.isnan(lower) or math.isnan(upper):
            raise InvalidProblem(f"variable {label!r} has a NaN bound")
        if lower > upper:
            raise InvalidProblem(
                f"variable {label!r} has lower bound {lower} above upper bound {upper}",
                {"variable": label},
            )
        if lower == math.inf or upper == -math.inf:
            raise InvalidProblem(f"variable {label!r} has an empty domain", {"variable": label})
        index = len(self.variables)
        self.variables.append(Variable(index, label, lower, upper))
        return index

    def add_constraint(self, coefficients: Mapping[int, float], relation: Relation, rhs: float,
                       name: Optional[str] = None) -> int:
        """
        Append a constraint and return its index.

        Args:
            coefficients: Variable index -> coefficient
            relation: LE, GE or EQ (the plain strings "<=", ">=", "=" work too)
            rhs: Right-hand side
            name: Optional label used in diagnostics

        Returns:
            Index of the new constraint
        """
        self._check_references(coefficients, name or f"constraint {len(self.constraints)}")
        self.constraints.append(Constraint(_sparse(coefficients), Relation(relation), float(rhs), name))
        return len(self.constraints) - 1

    def set_objective(self, coefficients: Mapping[int, float], sense: Sense = Sense.MINIMIZE) -> None:
        self._check_references(coefficients, "objective")
        self.objective = Objective(_sparse(coefficients), Sense(sense))

    def _check_references(self, coefficients: Mapping[int, float], owner: str) -> None:
        for index, value in coefficients.items():
            if not isinstance(index, int) or not 0 <= index < len(self.variables):
                raise InvalidProblem(f"{owner} references unknown variable {index!r}", {"owner": owner})
            if not math.isfinite(value):
                raise InvalidProblem(f"{owner} has non-finite coefficient for variable {index}",
                                     {"owner": owner})

    def validate(self) -> None:
        """Reject models the solver cannot accept. Called before every solve."""
        if not self.variables:
            raise InvalidProblem(f"model {self.name!r} has no variables")
        for position, constraint in enumerate(self.constraints):
            if not math.isfinite(constraint.rhs):
                raise InvalidProblem(f"constraint {constraint.name or position} has a non-finite right-hand side")
            self._check_references(constraint.coefficients, constraint.name or f"constraint {position}")
        self._check_references(self.objective.coefficients, "objective")

    def label_of(self, index: int) -> str:
        return self.variables[index].label

    def index_by_label(self) -> Dict[str, int]:
        return {variable.label: variable.index for variable in self.variables}
