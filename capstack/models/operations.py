"""Operating assumptions and the complete model input."""

import copy
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from capstack.errors import ConfigurationError
from capstack.models.base import get_field
from capstack.models.capital import CapitalStructure
from capstack.models.waterfall import WaterfallConfig


def _flat_occupancy() -> List[float]:
    return [0.70] * 12


@dataclass
class Operation:
    """A revenue-generating operation (hotel rooms, villas, rentals).

    Revenue is units × occupancy × average rate × days, grown annually.
    """
    id: str
    name: str = ""
    units: int = 0
    occupancy_by_month: List[float] = field(default_factory=_flat_occupancy)
    average_rate: float = 0.0               # Per occupied unit per night
    ancillary_revenue_pct: float = 0.0      # Other revenue as % of unit revenue
    variable_cost_pct: float = 0.0          # % of total revenue
    fixed_costs_annual: float = 0.0
    rate_growth: float = 0.0
    cost_growth: float = 0.0

    def validate(self) -> None:
        """Reject malformed occupancy curves."""
        if len(self.occupancy_by_month) != 12:
            raise ConfigurationError(
                f"Invalid operation '{self.id}': occupancyByMonth must have 12 values "
                f"(got {len(self.occupancy_by_month)})",
                field="occupancy_by_month",
            )
        if any(o < 0 or o > 1 for o in self.occupancy_by_month):
            raise ConfigurationError(
                f"Invalid operation '{self.id}': occupancyByMonth values must be in [0, 1]",
                field="occupancy_by_month",
            )
        if self.units < 0 or self.average_rate < 0:
            raise ConfigurationError(
                f"Invalid operation '{self.id}': units and averageRate cannot be negative",
                field="units",
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Operation":
        """Build an operation from a scenario payload."""
        return cls(
            id=str(get_field(data, "id")),
            name=get_field(data, "name", ""),
            units=int(get_field(data, "units", 0)),
            occupancy_by_month=list(get_field(data, "occupancy_by_month", _flat_occupancy())),
            average_rate=float(get_field(data, "average_rate", 0.0)),
            ancillary_revenue_pct=float(get_field(data, "ancillary_revenue_pct", 0.0)),
            variable_cost_pct=float(get_field(data, "variable_cost_pct", 0.0)),
            fixed_costs_annual=float(get_field(data, "fixed_costs_annual", 0.0)),
            rate_growth=float(get_field(data, "rate_growth", 0.0)),
            cost_growth=float(get_field(data, "cost_growth", 0.0)),
        )


@dataclass
class ProjectConfig:
    """Project-level assumptions."""
    horizon_years: int = 10
    discount_rate: float = 0.10
    tax_rate: float = 0.0                   # Used for the debt tax shield in WACC only
    capex_reserve_pct: float = 0.0          # FF&E reserve as % of revenue
    exit_cap_rate: Optional[float] = None   # None = no terminal value
    selling_cost_pct: float = 0.0

    def validate(self) -> None:
        """Reject impossible project settings."""
        if self.horizon_years <= 0:
            raise ConfigurationError(
                f"horizonYears must be > 0 (got {self.horizon_years})",
                field="horizon_years",
            )
        if self.exit_cap_rate is not None and self.exit_cap_rate <= 0:
            raise ConfigurationError(
                f"exitCapRate must be > 0 (got {self.exit_cap_rate})",
                field="exit_cap_rate",
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ProjectConfig":
        """Build project settings from a scenario payload."""
        return cls(
            horizon_years=int(get_field(data, "horizon_years", 10)),
            discount_rate=float(get_field(data, "discount_rate", 0.10)),
            tax_rate=float(get_field(data, "tax_rate", 0.0)),
            capex_reserve_pct=float(get_field(data, "capex_reserve_pct", 0.0)),
            exit_cap_rate=get_field(data, "exit_cap_rate", None),
            selling_cost_pct=float(get_field(data, "selling_cost_pct", 0.0)),
        )


@dataclass
class ModelInput:
    """Everything one pipeline run needs.

    Engines never mutate a ModelInput; perturbations work on a clone.
    """
    project: ProjectConfig
    operations: List[Operation]
    capital: CapitalStructure
    waterfall: WaterfallConfig = field(default_factory=WaterfallConfig)

    def clone(self) -> "ModelInput":
        """Independent deep copy for one scenario or iteration."""
        return copy.deepcopy(self)

    def validate(self) -> None:
        """Validate project, operations and capital structure."""
        self.project.validate()
        for operation in self.operations:
            operation.validate()
        self.capital.validate()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ModelInput":
        """Build a model input from a scenario payload."""
        return cls(
            project=ProjectConfig.from_dict(get_field(data, "project", {})),
            operations=[Operation.from_dict(o) for o in get_field(data, "operations", [])],
            capital=CapitalStructure.from_dict(get_field(data, "capital")),
            waterfall=WaterfallConfig.from_dict(get_field(data, "waterfall", {})),
        )
