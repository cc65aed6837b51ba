import pytest

from multiplant.builder import MultiPlantProblem, build_model
from multiplant.errors import ConfigError, InvalidProblem
from multiplant.main import solve_multiplant, solve_plan
from multiplant.model import Relation
from multiplant.simplex import SolutionStatus, SolverOptions


def two_plant_problem(demand=150.0, relation="="):
    return {
        "plants": [{"name": "A", "capacity": 100}, {"name": "B", "capacity": 80}],
        "production_costs": {"A": {"widget": 5}, "B": {"widget": 7}},
        "demands": [{"product": "widget", "quantity": demand}],
        "demand_relation": relation,
    }


def allocation_of(out, plant, product, destination=None):
    """Quantity allocated on one route, 0 when the route is unused."""
    for allocation in out["allocations"]:
        if (allocation["plant"], allocation["product"], allocation["destination"]) == (plant, product, destination):
            return allocation["quantity"]
    return 0.0


def test_cheapest_plant_is_filled_first():
    """Test 2 plants, 1 product: plant A runs at capacity, B covers the rest."""
    out = solve_multiplant(two_plant_problem())
    assert out["status"] == "ok"
    assert abs(out["total_cost"] - 850.0) < 1e-6
    assert abs(allocation_of(out, "A", "widget") - 100.0) < 1e-6
    assert abs(allocation_of(out, "B", "widget") - 50.0) < 1e-6
    assert out["plant_utilization"] == pytest.approx({"A": 100.0, "B": 50.0})


def test_demand_above_total_capacity_is_infeasible():
    """Test equality demand of 200 against 180 units of capacity."""
    out = solve_multiplant(two_plant_problem(demand=200.0))
    assert out["status"] == "infeasible"
    # both plants saturate, so 180 is the most that can be delivered
    assert abs(out["max_deliverable"] - 180.0) < 1e-6
    assert out["bottleneck_hint"] == ["A capacity", "B capacity", "widget demand"]


def test_at_least_demand_does_not_overproduce():
    """Test that ">=" demand with positive costs produces exactly the demand."""
    out = solve_multiplant(two_plant_problem(relation=">="))
    assert out["status"] == "ok"
    assert abs(out["total_cost"] - 850.0) < 1e-6
    assert abs(sum(out["plant_utilization"].values()) - 150.0) < 1e-6


def test_two_plants_two_products():
    """Test hand-computed allocation where plant P1 is the bottleneck."""
    data = {
        "plants": [{"name": "P1", "capacity": 30}, {"name": "P2", "capacity": 70}],
        "production_costs": {"P1": {"x": 2, "y": 4}, "P2": {"x": 3, "y": 3}},
        "demands": [{"product": "x", "quantity": 40}, {"product": "y", "quantity": 50}],
    }
    out = solve_multiplant(data)
    assert out["status"] == "ok"
    # P1 makes 30 x at 2; P2 makes the remaining 10 x and all 50 y at 3
    assert abs(out["total_cost"] - 240.0) < 1e-6
    assert abs(allocation_of(out, "P1", "x") - 30.0) < 1e-6
    assert abs(allocation_of(out, "P2", "x") - 10.0) < 1e-6
    assert abs(allocation_of(out, "P2", "y") - 50.0) < 1e-6
    assert allocation_of(out, "P1", "y") == 0.0


def test_shipping_costs_pick_closest_plant():
    """Test per-route shipment costs added on top of production costs."""
    data = {
        "plants": [{"name": "A", "capacity": 100}, {"name": "B", "capacity": 100}],
        "production_costs": {"A": {"widget": 5}, "B": {"widget": 6}},
        "shipping_costs": {"A": {"east": 1, "west": 4}, "B": {"east": 3, "west": 1}},
        "demands": [
            {"product": "widget", "destination": "east", "quantity": 30},
            {"product": "widget", "destination": "west", "quantity": 40},
        ],
    }
    out = solve_multiplant(data)
    assert out["status"] == "ok"
    # east from A at 5+1, west from B at 6+1
    assert abs(out["total_cost"] - (30 * 6 + 40 * 7)) < 1e-6
    assert abs(allocation_of(out, "A", "widget", "east") - 30.0) < 1e-6
    assert abs(allocation_of(out, "B", "widget", "west") - 40.0) < 1e-6
    unit_costs = {(a["plant"], a["destination"]): a["unit_cost"] for a in out["allocations"]}
    assert unit_costs == {("A", "east"): 6.0, ("B", "west"): 7.0}


def test_sensitivity_reports_capacity_and_demand_prices():
    """Test shadow prices requested through the options object."""
    data = dict(two_plant_problem(), options={"compute_sensitivity": True})
    out = solve_multiplant(data)
    assert out["status"] == "ok"
    # one more unit at A replaces a unit from B: saves 7 - 5
    assert out["capacity_shadow_prices"] == pytest.approx({"A": 2.0, "B": 0.0}, abs=1e-9)
    # one more unit of demand is served by B at 7
    assert out["demand_shadow_prices"] == pytest.approx({"widget": -7.0}, abs=1e-9)


def test_sensitivity_with_at_least_demand():
    """Test that a >= demand row prices non-positive: more demand costs 7 per unit."""
    data = dict(two_plant_problem(relation=">="), options={"compute_sensitivity": True})
    out = solve_multiplant(data)
    assert out["status"] == "ok"
    assert abs(out["total_cost"] - 850.0) < 1e-6
    assert out["capacity_shadow_prices"] == pytest.approx({"A": 2.0, "B": 0.0}, abs=1e-9)
    assert out["demand_shadow_prices"] == pytest.approx({"widget": -7.0}, abs=1e-9)


def test_sensitivity_option_rejects_strings():
    """Test that "false" from a JSON document is not read as true."""
    data = dict(two_plant_problem(), options={"compute_sensitivity": "false"})
    with pytest.raises(ConfigError):
        solve_multiplant(data)


def test_sensitivity_not_computed_by_default():
    out = solve_multiplant(two_plant_problem())
    assert "capacity_shadow_prices" not in out
    assert "demand_shadow_prices" not in out


def test_zero_demand_feasible():
    """Test that zero demand is always feasible, even with zero capacity."""
    data = {
        "plants": [{"name": "A", "capacity": 0}],
        "production_costs": {"A": {"widget": 5}},
        "demands": [{"product": "widget", "quantity": 0}],
    }
    out = solve_multiplant(data)
    assert out["status"] == "ok"
    assert abs(out["total_cost"]) < 1e-9
    assert out["allocations"] == []


def test_repeated_solves_are_identical():
    """Test determinism: fresh solves of the same data agree exactly."""
    data = {
        "plants": [{"name": n, "capacity": 50} for n in ("A", "B", "C")],
        "production_costs": {"A": {"x": 1, "y": 1}, "B": {"x": 1, "y": 1}, "C": {"x": 1, "y": 1}},
        "demands": [{"product": "x", "quantity": 60}, {"product": "y", "quantity": 60}],
    }
    first = solve_multiplant(data)
    second = solve_multiplant(data)
    assert first == second
    assert abs(first["total_cost"] - 120.0) < 1e-6


def test_negative_capacity_rejected():
    data = two_plant_problem()
    data["plants"][1]["capacity"] = -1
    with pytest.raises(InvalidProblem, match="capacity of plant 'B'"):
        solve_multiplant(data)


def test_negative_demand_rejected():
    with pytest.raises(InvalidProblem, match="non-negative"):
        solve_multiplant(two_plant_problem(demand=-5.0))


def test_unserved_demand_rejected_before_solving():
    """Test that a product no plant makes fails structurally."""
    data = two_plant_problem()
    data["demands"].append({"product": "gadget", "quantity": 10})
    with pytest.raises(InvalidProblem) as excinfo:
        solve_multiplant(data)
    assert excinfo.value.details["unserved"] == ["gadget"]


def test_destination_without_route_is_unserved():
    data = two_plant_problem()
    data["shipping_costs"] = {"A": {"east": 1}}
    data["demands"] = [{"product": "widget", "destination": "north", "quantity": 10}]
    with pytest.raises(InvalidProblem) as excinfo:
        solve_multiplant(data)
    assert excinfo.value.details["unserved"] == ["widget@north"]


def test_cost_for_unknown_plant_rejected():
    data = two_plant_problem()
    data["production_costs"]["Z"] = {"widget": 1}
    with pytest.raises(InvalidProblem, match="unknown plant 'Z'"):
        solve_multiplant(data)


def test_duplicate_plant_rejected():
    data = two_plant_problem()
    data["plants"].append({"name": "A", "capacity": 10})
    with pytest.raises(InvalidProblem, match="listed twice"):
        solve_multiplant(data)


def test_empty_problem_rejected():
    data = two_plant_problem()
    data["plants"] = []
    with pytest.raises(InvalidProblem, match="no plants"):
        solve_multiplant(data)


def test_schema_errors_become_invalid_problem():
    with pytest.raises(InvalidProblem) as excinfo:
        solve_multiplant({"plants": [{"name": "A"}], "production_costs": {}, "demands": []})
    assert excinfo.value.details["errors"]


def test_build_model_shape():
    """Test one variable per route, one row per plant and per demand point."""
    problem = MultiPlantProblem.parse(two_plant_problem())
    built = build_model(problem)
    assert [v.label for v in built.model.variables] == ["A -> widget", "B -> widget"]
    assert built.capacity_rows == {"A": 0, "B": 1}
    assert built.demand_rows == {("widget", None): 2}
    demand_row = built.model.constraints[2]
    assert demand_row.relation == Relation.EQ
    assert dict(demand_row.coefficients) == {0: 1.0, 1: 1.0}
    assert dict(built.model.objective.coefficients) == {0: 5.0, 1: 7.0}


def test_solve_plan_returns_typed_plan():
    plan = solve_plan(MultiPlantProblem.parse(two_plant_problem()), SolverOptions(compute_sensitivity=True))
    assert plan.status == SolutionStatus.OPTIMAL
    assert [(a.plant, a.quantity) for a in plan.allocations] == [("A", 100.0), ("B", 50.0)]
    assert plan.capacity_shadow_prices["A"] == pytest.approx(2.0)
