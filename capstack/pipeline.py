"""Full model pipeline: revenue -> capital -> waterfall -> valuation."""

from dataclasses import dataclass
from typing import List, Optional

from capstack.calculations.capital import (
    CapitalEngineResult,
    WaccMetrics,
    calculate_wacc,
    run_capital_engine,
)
from capstack.calculations.financial import equity_multiple, irr, npv, payback_period
from capstack.calculations.revenue import RevenueResult, run_revenue_engine
from capstack.calculations.waterfall import WaterfallResult, run_waterfall_config
from capstack.models.operations import ModelInput
from capstack.result import EngineResult, capture


@dataclass
class ProjectKpis:
    """Unlevered project returns."""
    npv: float
    unlevered_irr: Optional[float]
    equity_multiple: Optional[float]
    payback_period: Optional[float]
    wacc: float


@dataclass(frozen=True)
class KpiSnapshot:
    """The KPIs kept per scenario or simulation iteration."""
    npv: float
    unlevered_irr: Optional[float]
    levered_irr: Optional[float]
    moic: Optional[float]
    equity_multiple: Optional[float]
    wacc: float


KPI_NAMES = ("npv", "unlevered_irr", "levered_irr", "moic", "equity_multiple", "wacc")


@dataclass
class ModelOutput:
    """Everything one pipeline run produces."""
    revenue: RevenueResult
    project_cash_flows: List[float]
    project_kpis: ProjectKpis
    wacc: WaccMetrics
    capital: CapitalEngineResult
    waterfall: WaterfallResult


def run_full_model(model_input: ModelInput, monthly: bool = False) -> ModelOutput:
    """Run every engine for one scenario.

    Args:
        model_input: Scenario to evaluate (not modified)
        monthly: Also build monthly debt schedules

    Returns:
        ModelOutput

    Raises:
        ConfigurationError: if any part of the input is invalid
    """
    model_input.validate()
    project = model_input.project

    revenue = run_revenue_engine(model_input.operations, project)
    capital = run_capital_engine(
        revenue.unlevered_fcf, revenue.noi, model_input.capital, monthly=monthly
    )
    waterfall = run_waterfall_config(capital.owner_levered_cash_flows, model_input.waterfall)

    project_cash_flows = [-model_input.capital.initial_investment] + list(revenue.unlevered_fcf)
    wacc = calculate_wacc(model_input.capital, project.discount_rate, project.tax_rate)
    kpis = ProjectKpis(
        npv=npv(project.discount_rate, project_cash_flows),
        unlevered_irr=irr(project_cash_flows),
        equity_multiple=equity_multiple(project_cash_flows),
        payback_period=payback_period(project_cash_flows),
        wacc=wacc.wacc,
    )

    return ModelOutput(
        revenue=revenue,
        project_cash_flows=project_cash_flows,
        project_kpis=kpis,
        wacc=wacc,
        capital=capital,
        waterfall=waterfall,
    )


def extract_kpis(output: ModelOutput) -> KpiSnapshot:
    """Reduce a model output to its headline KPIs.

    Levered IRR and MOIC come from the owner-level levered cash flows and
    are None when undefined.
    """
    owner = output.capital.owner_levered_cash_flows
    return KpiSnapshot(
        npv=output.project_kpis.npv,
        unlevered_irr=output.project_kpis.unlevered_irr,
        levered_irr=irr(owner),
        moic=equity_multiple(owner),
        equity_multiple=output.project_kpis.equity_multiple,
        wacc=output.project_kpis.wacc,
    )


def run_model_kpis(model_input: ModelInput) -> KpiSnapshot:
    """Run the pipeline and keep only the KPIs."""
    return extract_kpis(run_full_model(model_input))


def run_model(model_input: ModelInput, monthly: bool = False) -> EngineResult:
    """Run the pipeline, returning EngineSuccess or EngineFailure."""
    return capture(run_full_model, model_input, monthly=monthly)
