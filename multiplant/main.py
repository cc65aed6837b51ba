"""
Multi-plant production optimizer.

Allocates production across several plants to meet product demand at minimum
cost: domain data is lowered to a linear model, brought into standard form,
solved with a two-phase simplex and mapped back onto plant allocations. When
demand cannot be met, the most deliverable quantity and the saturated plants
are reported instead.
"""
import argparse
import dataclasses
import json
import logging
import sys
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, List, Optional, Sequence, Tuple

from multiplant.builder import BuiltProblem, MultiPlantProblem, build_model, build_relaxed_model
from multiplant.errors import ConfigError, InvalidProblem, OptimizerError
from multiplant.extract import Solution, extract_solution
from multiplant.model import LinearModel
from multiplant.sensitivity import shadow_prices
from multiplant.simplex import SimplexSolver, SolutionStatus, SolverOptions
from multiplant.standard_form import to_standard_form

logger = logging.getLogger(__name__)

# Relative slack under which a capacity or demand row counts as binding
SATURATION_TOLERANCE = 1e-7


def solve_model(model: LinearModel, options: Optional[SolverOptions] = None) -> Solution:
    """
    Solve one linear model.

    Args:
        model: The model; it is validated and never mutated
        options: Solver configuration, defaults when omitted

    Returns:
        Solution carrying the verdict, values, objective and optional duals
    """
    options = options or SolverOptions()
    model.validate()
    program = to_standard_form(model)
    result = SimplexSolver(program, options).solve()
    solution = extract_solution(model, program, result, options)
    if options.compute_sensitivity and solution.is_optimal:
        solution = dataclasses.replace(solution, duals=MappingProxyType(shadow_prices(program, result)))
    return solution


@dataclass(frozen=True)
class Allocation:
    plant: str
    product: str
    destination: Optional[str]
    quantity: float
    unit_cost: float


@dataclass(frozen=True)
class AllocationPlan:
    """
    Domain-shaped result of a multi-plant solve.

    Attributes:
        status: Optimal, infeasible or unbounded
        total_cost: Minimum total cost (optimal only)
        allocations: Non-zero plant -> product[@destination] quantities (optimal only)
        plant_utilization: Quantity produced per plant (optimal only)
        capacity_shadow_prices: plant -> saving per extra unit of capacity (on request)
        demand_shadow_prices: demand label -> saving per extra unit of demand (on request)
        max_deliverable: Most demand the plants can cover (infeasible only)
        bottleneck_hint: Saturated plants and short demand points (infeasible only)
        iterations: Simplex pivots of the main solve
    """
    status: SolutionStatus
    total_cost: Optional[float] = None
    allocations: List[Allocation] = field(default_factory=list)
    plant_utilization: Dict[str, float] = field(default_factory=dict)
    capacity_shadow_prices: Optional[Dict[str, float]] = None
    demand_shadow_prices: Optional[Dict[str, float]] = None
    max_deliverable: Optional[float] = None
    bottleneck_hint: List[str] = field(default_factory=list)
    iterations: int = 0

    def to_dict(self) -> Dict[str, Any]:
        if self.status == SolutionStatus.INFEASIBLE:
            return {
                "status": "infeasible",
                "max_deliverable": float(self.max_deliverable or 0.0),
                "bottleneck_hint": list(self.bottleneck_hint),
            }
        if self.status == SolutionStatus.UNBOUNDED:
            return {"status": "unbounded"}
        payload: Dict[str, Any] = {
            "status": "ok",
            "total_cost": float(self.total_cost),
            "allocations": [dataclasses.asdict(allocation) for allocation in self.allocations],
            "plant_utilization": dict(self.plant_utilization),
            "iterations": self.iterations,
        }
        if self.capacity_shadow_prices is not None:
            payload["capacity_shadow_prices"] = dict(self.capacity_shadow_prices)
        if self.demand_shadow_prices is not None:
            payload["demand_shadow_prices"] = dict(self.demand_shadow_prices)
        return payload


def _is_binding(activity: float, rhs: float) -> bool:
    return rhs - activity <= SATURATION_TOLERANCE * max(1.0, abs(rhs))


def diagnose_shortfall(built: BuiltProblem, options: SolverOptions) -> Tuple[float, List[str]]:
    """
    Explain an infeasible plan.

    Solves the relaxed model (deliver as much of every demand as capacity
    allows) and names the plants it saturates and the demand points it
    leaves short.

    Returns:
        (maximum deliverable quantity, sorted bottleneck descriptions)
    """
    relaxed = build_relaxed_model(built)
    solution = solve_model(relaxed, dataclasses.replace(options, compute_sensitivity=False))
    if not solution.is_optimal:
        return 0.0, []

    bottleneck_descriptions = []
    for plant_name, row in built.capacity_rows.items():
        constraint = relaxed.constraints[row]
        if _is_binding(constraint.activity(solution.values), constraint.rhs):
            bottleneck_descriptions.append(f"{plant_name} capacity")
    for demand in built.problem.demands:
        constraint = relaxed.constraints[built.demand_rows[demand.key]]
        if not _is_binding(constraint.activity(solution.values), constraint.rhs):
            bottleneck_descriptions.append(f"{demand.label} demand")
    return float(solution.objective_value), sorted(set(bottleneck_descriptions))


def solve_plan(problem: MultiPlantProblem, options: Optional[SolverOptions] = None) -> AllocationPlan:
    """
    Solve a multi-plant allocation problem.

    Args:
        problem: Validated domain data
        options: Solver configuration

    Returns:
        AllocationPlan for the verdict the solver reached
    """
    options = options or SolverOptions()
    built = build_model(problem)
    solution = solve_model(built.model, options)

    if solution.status == SolutionStatus.INFEASIBLE:
        max_deliverable, hints = diagnose_shortfall(built, options)
        logger.info("demand cannot be met; at most %.6g deliverable", max_deliverable)
        return AllocationPlan(status=SolutionStatus.INFEASIBLE, max_deliverable=max_deliverable,
                              bottleneck_hint=hints, iterations=solution.iterations)
    if solution.status == SolutionStatus.UNBOUNDED:
        return AllocationPlan(status=SolutionStatus.UNBOUNDED, iterations=solution.iterations)

    allocations = []
    plant_utilization = {plant.name: 0.0 for plant in problem.plants}
    for index, key in enumerate(built.allocations):
        quantity = solution.value(index)
        plant_utilization[key.plant] += quantity
        if quantity > 0:
            allocations.append(Allocation(key.plant, key.product, key.destination, quantity, key.unit_cost))

    capacity_prices = demand_prices = None
    if solution.duals is not None:
        capacity_prices = {plant: solution.duals[row] for plant, row in sorted(built.capacity_rows.items())}
        demand_prices = {demand.label: solution.duals[built.demand_rows[demand.key]]
                         for demand in problem.demands}

    return AllocationPlan(
        status=SolutionStatus.OPTIMAL,
        total_cost=solution.objective_value,
        allocations=allocations,
        plant_utilization=dict(sorted(plant_utilization.items())),
        capacity_shadow_prices=capacity_prices,
        demand_shadow_prices=demand_prices,
        iterations=solution.iterations,
    )


def solve_multiplant(input_data: dict) -> dict:
    """
    Solve a problem given as a JSON-style document.

    Args:
        input_data: Dictionary with plants, production_costs, optional
            shipping_costs, demands, optional demand_relation and options

    Returns:
        JSON-ready dictionary with the plan or the infeasibility analysis
    """
    options_data = input_data.get("options") or {}
    if not isinstance(options_data, dict):
        raise ConfigError("options must be an object")
    problem = MultiPlantProblem.parse(input_data)
    return solve_plan(problem, SolverOptions.from_dict(options_data)).to_dict()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="multiplant",
        description="Allocate production across plants at minimum cost (JSON in, JSON out).",
    )
    parser.add_argument("input", nargs="?", help="Problem JSON file (default: stdin)")
    parser.add_argument("--sensitivity", action="store_true", help="Report shadow prices")
    parser.add_argument("--tolerance", type=float, help="Numerical zero tolerance")
    parser.add_argument("--max-iterations", type=int, help="Hard cap on simplex pivots")
    parser.add_argument("--verbose", action="store_true", help="Log solver progress to stderr")
    return parser


def _load_input(path: Optional[str]) -> dict:
    try:
        if path:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        else:
            data = json.load(sys.stdin)
    except json.JSONDecodeError as e:
        raise InvalidProblem(f"input is not valid JSON: {e}") from e
    except OSError as e:
        raise InvalidProblem(f"cannot read input: {e}", {"path": path}) from e
    if not isinstance(data, dict):
        raise InvalidProblem("input must be a JSON object")
    return data


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Entry point: read problem JSON, solve it, write result JSON to stdout.
    """
    args = _build_parser().parse_args(argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, stream=sys.stderr,
                            format="%(levelname)s %(name)s: %(message)s")
    try:
        input_data = _load_input(args.input)
        options = input_data.get("options") or {}
        if not isinstance(options, dict):
            raise ConfigError("options must be an object")
        options = dict(options)
        if args.sensitivity:
            options["compute_sensitivity"] = True
        if args.tolerance is not None:
            options["tolerance"] = args.tolerance
        if args.max_iterations is not None:
            options["max_iterations"] = args.max_iterations
        output_result = solve_multiplant(dict(input_data, options=options))
        exit_code = 0
    except OptimizerError as e:
        logger.debug("solve failed: %s", e.message)
        output_result = e.to_dict()
        exit_code = 1

    # Ensure deterministic output by sorting dictionary keys
    json.dump(output_result, sys.stdout, separators=(",", ":"), ensure_ascii=False, sort_keys=True)
    sys.stdout.write("\n")
    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
