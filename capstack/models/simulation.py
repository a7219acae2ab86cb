"""Monte Carlo simulation configuration."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from capstack.errors import ConfigurationError
from capstack.models.base import get_field, parse_enum

# Fixed driver order for correlated sampling
DRIVERS = ("occupancy", "adr", "interestRate")


class DistributionType(str, Enum):
    """Supported multiplier distributions."""
    NORMAL = "normal"         # 1 + N(0, sigma)
    LOGNORMAL = "lognormal"   # exp(N(0, sigma)), always positive
    PERT = "pert"             # Sampled as normal


@dataclass
class CorrelationMatrix:
    """Correlation between drivers, in the order given by ``variables``."""
    variables: List[str]
    matrix: List[List[float]]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CorrelationMatrix":
        return cls(
            variables=list(get_field(data, "variables")),
            matrix=[list(row) for row in get_field(data, "matrix")],
        )


@dataclass
class SimulationConfig:
    """Configuration for a Monte Carlo run.

    Attributes:
        iterations: Number of perturbed runs
        occupancy_std: Std dev of the occupancy multiplier
        adr_std: Std dev of the average rate multiplier
        interest_rate_std: Std dev of the interest rate multiplier
        occupancy_distribution: Distribution of the occupancy multiplier
        adr_distribution: Distribution of the average rate multiplier
        interest_rate_distribution: Distribution of the interest rate multiplier
        correlation_matrix: Optional correlation over occupancy/adr/interestRate
        seed: Random seed for reproducibility
        parallel: Run iterations on a thread pool
        max_workers: Max parallel workers (None = CPU count, capped at 8)
        progress_interval: Report progress every N iterations
    """
    iterations: int = 1000
    occupancy_std: float = 0.05
    adr_std: float = 0.10
    interest_rate_std: float = 0.01
    occupancy_distribution: DistributionType = DistributionType.NORMAL
    adr_distribution: DistributionType = DistributionType.NORMAL
    interest_rate_distribution: DistributionType = DistributionType.NORMAL
    correlation_matrix: Optional[CorrelationMatrix] = None
    seed: Optional[int] = None
    parallel: bool = False
    max_workers: Optional[int] = None
    progress_interval: int = 50

    @property
    def distributions(self) -> Dict[str, DistributionType]:
        """Configured distribution per driver."""
        return {
            "occupancy": self.occupancy_distribution,
            "adr": self.adr_distribution,
            "interestRate": self.interest_rate_distribution,
        }

    @property
    def std_devs(self) -> Dict[str, float]:
        """Configured standard deviation per driver."""
        return {
            "occupancy": self.occupancy_std,
            "adr": self.adr_std,
            "interestRate": self.interest_rate_std,
        }

    def validate(self) -> None:
        if self.iterations < 0:
            raise ConfigurationError(
                f"iterations cannot be negative (got {self.iterations})", field="iterations"
            )
        for name, std in self.std_devs.items():
            if std < 0:
                raise ConfigurationError(
                    f"{name} standard deviation cannot be negative (got {std})",
                    field=f"{name}_std",
                )
        if self.progress_interval <= 0:
            raise ConfigurationError(
                f"progressInterval must be > 0 (got {self.progress_interval})",
                field="progress_interval",
            )

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationConfig":
        """Build a simulation config from a task payload."""
        matrix = get_field(data, "correlation_matrix", None)
        return cls(
            iterations=int(get_field(data, "iterations", 1000)),
            occupancy_std=float(get_field(data, "occupancy_std", 0.05)),
            adr_std=float(get_field(data, "adr_std", 0.10)),
            interest_rate_std=float(get_field(data, "interest_rate_std", 0.01)),
            occupancy_distribution=parse_enum(
                DistributionType, get_field(data, "occupancy_distribution", "normal"),
                "occupancy_distribution",
            ),
            adr_distribution=parse_enum(
                DistributionType, get_field(data, "adr_distribution", "normal"),
                "adr_distribution",
            ),
            interest_rate_distribution=parse_enum(
                DistributionType, get_field(data, "interest_rate_distribution", "normal"),
                "interest_rate_distribution",
            ),
            correlation_matrix=CorrelationMatrix.from_dict(matrix) if matrix else None,
            seed=get_field(data, "seed", None),
            parallel=bool(get_field(data, "parallel", False)),
            max_workers=get_field(data, "max_workers", None),
            progress_interval=int(get_field(data, "progress_interval", 50)),
        )
