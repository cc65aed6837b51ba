"""
Translation of multi-plant production data into a LinearModel.

One variable per (plant, product[, destination]) route that can actually
serve a demand point, one capacity row per plant, one row per demand point,
and a total-cost objective.
"""
import logging
import math
from dataclasses import dataclass
from typing import Dict, List, Literal, Optional, Tuple

from pydantic import BaseModel, Field, ValidationError

from multiplant.errors import InvalidProblem
from multiplant.model import LinearModel, Relation, Sense

logger = logging.getLogger(__name__)


class Plant(BaseModel):
    name: str
    capacity: float


class DemandPoint(BaseModel):
    product: str
    quantity: float
    destination: Optional[str] = None

    @property
    def key(self) -> Tuple[str, Optional[str]]:
        return self.product, self.destination

    @property
    def label(self) -> str:
        if self.destination is None:
            return self.product
        return f"{self.product}@{self.destination}"


class MultiPlantProblem(BaseModel):
    """
    Domain description of a multi-plant allocation problem.

    Attributes:
        plants: Plants and their production capacities
        production_costs: plant -> product -> unit production cost
        shipping_costs: plant -> destination -> unit shipment cost
        demands: Quantities to meet, per product and optional destination
        demand_relation: "=" to meet demand exactly, ">=" to allow over-supply
    """
    plants: List[Plant]
    production_costs: Dict[str, Dict[str, float]]
    shipping_costs: Dict[str, Dict[str, float]] = Field(default_factory=dict)
    demands: List[DemandPoint]
    demand_relation: Literal["=", ">="] = "="

    @classmethod
    def parse(cls, data: dict) -> "MultiPlantProblem":
        """Validate a raw document, reporting schema errors as InvalidProblem."""
        try:
            return cls.model_validate(data)
        except ValidationError as e:
            raise InvalidProblem(
                f"problem document does not match the schema ({e.error_count()} errors)",
                {"errors": [{"loc": list(err["loc"]), "msg": err["msg"]} for err in e.errors()]},
            ) from e


@dataclass(frozen=True)
class AllocationKey:
    plant: str
    product: str
    destination: Optional[str]
    unit_cost: float

    @property
    def label(self) -> str:
        if self.destination is None:
            return f"{self.plant} -> {self.product}"
        return f"{self.plant} -> {self.product} @ {self.destination}"


@dataclass
class BuiltProblem:
    """
    A multi-plant problem lowered to a LinearModel.

    Attributes:
        problem: The validated input
        model: The linear model
        allocations: AllocationKey of every variable, by variable index
        capacity_rows: plant -> constraint index
        demand_rows: (product, destination) -> constraint index
    """
    problem: MultiPlantProblem
    model: LinearModel
    allocations: List[AllocationKey]
    capacity_rows: Dict[str, int]
    demand_rows: Dict[Tuple[str, Optional[str]], int]


def _check_quantity(value: float, what: str) -> None:
    if not math.isfinite(value):
        raise InvalidProblem(f"{what} must be finite, got {value}")
    if value < 0:
        raise InvalidProblem(f"{what} must be non-negative, got {value}")


def _validate(problem: MultiPlantProblem) -> None:
    """Structural checks that must pass before any variable is created."""
    if not problem.plants:
        raise InvalidProblem("problem has no plants")
    if not problem.demands:
        raise InvalidProblem("problem has no demand points")

    plant_names = set()
    for plant in problem.plants:
        if plant.name in plant_names:
            raise InvalidProblem(f"plant {plant.name!r} is listed twice", {"plant": plant.name})
        plant_names.add(plant.name)
        _check_quantity(plant.capacity, f"capacity of plant {plant.name!r}")

    demand_keys = set()
    for demand in problem.demands:
        if demand.key in demand_keys:
            raise InvalidProblem(f"demand point {demand.label!r} is listed twice", {"demand": demand.label})
        demand_keys.add(demand.key)
        _check_quantity(demand.quantity, f"demand for {demand.label!r}")

    for table_name, table in (("production_costs", problem.production_costs),
                              ("shipping_costs", problem.shipping_costs)):
        for plant_name, costs in table.items():
            if plant_name not in plant_names:
                raise InvalidProblem(f"{table_name} references unknown plant {plant_name!r}",
                                     {"plant": plant_name})
            for item, cost in costs.items():
                if not math.isfinite(cost):
                    raise InvalidProblem(f"{table_name}[{plant_name!r}][{item!r}] must be finite")


def build_model(problem: MultiPlantProblem) -> BuiltProblem:
    """
    Construct the linear model of a multi-plant problem.

    Args:
        problem: Validated domain data

    Returns:
        BuiltProblem holding the model and the variable/constraint bookkeeping

    Raises:
        InvalidProblem: negative or non-finite quantities, duplicates, unknown
            plants, or a demand point that no plant can serve
    """
    _validate(problem)
    model = LinearModel("multiplant")
    allocations: List[AllocationKey] = []
    variables_by_plant: Dict[str, List[int]] = {plant.name: [] for plant in problem.plants}
    variables_by_demand: Dict[Tuple[str, Optional[str]], List[int]] = {}

    # Ensure deterministic variable order: plants as listed, then demand points as listed
    for plant in problem.plants:
        production = problem.production_costs.get(plant.name, {})
        routes = problem.shipping_costs.get(plant.name, {})
        for demand in problem.demands:
            if demand.product not in production:
                continue
            unit_cost = float(production[demand.product])
            if demand.destination is not None:
                if demand.destination not in routes:
                    continue
                unit_cost += float(routes[demand.destination])
            key = AllocationKey(plant.name, demand.product, demand.destination, unit_cost)
            index = model.add_variable(key.label)
            allocations.append(key)
            variables_by_plant[plant.name].append(index)
            variables_by_demand.setdefault(demand.key, []).append(index)

    unserved = [demand.label for demand in problem.demands if demand.key not in variables_by_demand]
    if unserved:
        raise InvalidProblem(
            f"no plant can serve demand point(s): {', '.join(unserved)}",
            {"unserved": unserved},
        )

    capacity_rows: Dict[str, int] = {}
    for plant in problem.plants:
        capacity_rows[plant.name] = model.add_constraint(
            {index: 1.0 for index in variables_by_plant[plant.name]},
            Relation.LE, plant.capacity, name=f"{plant.name} capacity",
        )

    demand_relation = Relation(problem.demand_relation)
    demand_rows: Dict[Tuple[str, Optional[str]], int] = {}
    for demand in problem.demands:
        demand_rows[demand.key] = model.add_constraint(
            {index: 1.0 for index in variables_by_demand[demand.key]},
            demand_relation, demand.quantity, name=f"{demand.label} demand",
        )

    model.set_objective({index: key.unit_cost for index, key in enumerate(allocations)}, Sense.MINIMIZE)
    logger.debug("built model with %d allocation variables, %d plants, %d demand points",
                 len(allocations), len(problem.plants), len(problem.demands))
    return BuiltProblem(problem, model, allocations, capacity_rows, demand_rows)


def build_relaxed_model(built: BuiltProblem) -> LinearModel:
    """
    Model of the most demand the plants can deliver.

    Same variables and capacity rows as `built`, demand rows relaxed to "at
    most the demand", objective maximizes the total delivered quantity.
    """
    model = LinearModel("multiplant-deliverable")
    for key in built.allocations:
        model.add_variable(key.label)
    for constraint in built.model.constraints:
        model.add_constraint(constraint.coefficients, Relation.LE, constraint.rhs, name=constraint.name)
    model.set_objective({index: 1.0 for index in range(len(built.allocations))}, Sense.MAXIMIZE)
    return model
