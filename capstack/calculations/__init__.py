"""Calculation engines for the capital and waterfall model."""

from .financial import npv, irr, equity_multiple, payback_period
from .debt import (
    DebtScheduleEntry,
    MonthlyDebtScheduleEntry,
    TrancheSchedule,
    level_payment,
    reconcile_schedule,
    schedule,
    schedule_tranche,
    schedule_tranche_entries,
)
from .capital import (
    CapitalEngineResult,
    DebtKpi,
    LeveredFcfEntry,
    MonthlyCashFlowEntry,
    MonthlyDebtKpi,
    WaccMetrics,
    calculate_wacc,
    run_capital,
    run_capital_engine,
)
from .waterfall import (
    AnnualWaterfallRow,
    PartnerResult,
    WaterfallResult,
    distribute,
    run_waterfall,
    run_waterfall_config,
    validate_waterfall,
)
from .revenue import RevenueResult, run_revenue_engine
from .statistics import KpiStatistics, calculate_kpi_statistics, cholesky


__all__ = [
    # Financial
    "npv",
    "irr",
    "equity_multiple",
    "payback_period",
    # Debt
    "DebtScheduleEntry",
    "MonthlyDebtScheduleEntry",
    "TrancheSchedule",
    "level_payment",
    "reconcile_schedule",
    "schedule",
    "schedule_tranche",
    "schedule_tranche_entries",
    # Capital
    "CapitalEngineResult",
    "DebtKpi",
    "LeveredFcfEntry",
    "MonthlyCashFlowEntry",
    "MonthlyDebtKpi",
    "WaccMetrics",
    "calculate_wacc",
    "run_capital",
    "run_capital_engine",
    # Waterfall
    "AnnualWaterfallRow",
    "PartnerResult",
    "WaterfallResult",
    "distribute",
    "run_waterfall",
    "run_waterfall_config",
    "validate_waterfall",
    # Revenue
    "RevenueResult",
    "run_revenue_engine",
    # Statistics
    "KpiStatistics",
    "calculate_kpi_statistics",
    "cholesky",
]
