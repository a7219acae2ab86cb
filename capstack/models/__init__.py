"""Input models for the capital and waterfall engines."""

from .capital import (
    AmortizationType,
    CapitalStructure,
    DebtTranche,
    Seniority,
    TrancheType,
)
from .waterfall import (
    AccrualMethod,
    ClawbackMethod,
    ClawbackTrigger,
    EquityClass,
    TierType,
    WaterfallConfig,
    WaterfallTier,
)
from .operations import ModelInput, Operation, ProjectConfig
from .simulation import (
    CorrelationMatrix,
    DistributionType,
    SimulationConfig,
)

__all__ = [
    # Capital
    "AmortizationType",
    "CapitalStructure",
    "DebtTranche",
    "Seniority",
    "TrancheType",
    # Waterfall
    "AccrualMethod",
    "ClawbackMethod",
    "ClawbackTrigger",
    "EquityClass",
    "TierType",
    "WaterfallConfig",
    "WaterfallTier",
    # Operations
    "ModelInput",
    "Operation",
    "ProjectConfig",
    # Simulation
    "CorrelationMatrix",
    "DistributionType",
    "SimulationConfig",
]
