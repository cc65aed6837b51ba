"""Tests for the linear model container."""
import math

import pytest

from multiplant.errors import InvalidProblem
from multiplant.model import LinearModel, Relation, Sense


def small_model():
    model = LinearModel("small")
    x = model.add_variable("x")
    y = model.add_variable("y", lower=-math.inf)
    model.add_constraint({x: 1.0, y: 2.0}, Relation.LE, 10.0, name="first")
    model.set_objective({x: 1.0, y: -1.0}, Sense.MAXIMIZE)
    return model


class TestVariables:
    """Variable creation and bounds."""

    def test_indices_are_positional(self):
        model = small_model()
        assert [v.index for v in model.variables] == [0, 1]
        assert model.index_by_label() == {"x": 0, "y": 1}
        assert model.label_of(1) == "y"

    def test_default_bounds(self):
        variable = small_model().variables[0]
        assert variable.lower == 0.0
        assert math.isinf(variable.upper)
        assert not variable.is_free

    def test_inverted_bounds_rejected(self):
        model = LinearModel()
        with pytest.raises(InvalidProblem, match="above upper bound"):
            model.add_variable("x", lower=5, upper=1)

    def test_free_variable(self):
        model = LinearModel()
        index = model.add_variable("z", lower=-math.inf, upper=math.inf)
        assert model.variables[index].is_free


class TestConstraints:
    """Sparse storage and reference checks."""

    def test_zero_coefficients_dropped_and_sorted(self):
        model = LinearModel()
        for label in "abc":
            model.add_variable(label)
        model.add_constraint({2: 3.0, 0: 1.0, 1: 0.0}, "<=", 4)
        constraint = model.constraints[0]
        assert list(constraint.coefficients.items()) == [(0, 1.0), (2, 3.0)]
        assert constraint.relation == Relation.LE

    def test_constraints_are_immutable(self):
        constraint = small_model().constraints[0]
        with pytest.raises(TypeError):
            constraint.coefficients[0] = 5.0

    def test_dangling_reference_rejected(self):
        model = small_model()
        with pytest.raises(InvalidProblem, match="unknown variable 7"):
            model.add_constraint({7: 1.0}, Relation.EQ, 1.0)

    def test_objective_dangling_reference_rejected(self):
        model = small_model()
        with pytest.raises(InvalidProblem, match="objective"):
            model.set_objective({3: 1.0})

    def test_non_finite_coefficient_rejected(self):
        model = small_model()
        with pytest.raises(InvalidProblem, match="non-finite"):
            model.add_constraint({0: math.nan}, Relation.GE, 1.0)

    def test_satisfaction_checks(self):
        constraint = small_model().constraints[0]
        assert constraint.activity({0: 2.0, 1: 4.0}) == 10.0
        assert constraint.is_satisfied({0: 2.0, 1: 4.0}, 1e-9)
        assert not constraint.is_satisfied({0: 3.0, 1: 4.0}, 1e-9)


class TestValidate:

    def test_empty_model_rejected(self):
        with pytest.raises(InvalidProblem, match="no variables"):
            LinearModel("empty").validate()

    def test_infinite_rhs_rejected(self):
        model = small_model()
        model.add_constraint({0: 1.0}, Relation.LE, math.inf, name="open")
        with pytest.raises(InvalidProblem, match="open"):
            model.validate()

    def test_valid_model_passes(self):
        small_model().validate()
