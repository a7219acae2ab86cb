"""Capital engine: debt schedules, levered cash flow and coverage ratios."""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from capstack.calculations.debt import (
    DebtScheduleEntry,
    MonthlyDebtScheduleEntry,
    TrancheSchedule,
    schedule_tranche,
)
from capstack.errors import ConfigurationError
from capstack.models.capital import CapitalStructure, DebtTranche, Seniority
from capstack.result import EngineResult, capture


@dataclass
class LeveredFcfEntry:
    """Levered free cash flow for one year.

    levered_fcf == unlevered_fcf - (interest + principal + transaction_costs)
    """
    year: int
    unlevered_fcf: float
    interest: float
    principal: float
    transaction_costs: float
    levered_fcf: float

    @property
    def debt_service(self) -> float:
        """Interest plus principal."""
        return self.interest + self.principal


@dataclass
class DebtKpi:
    """Coverage and leverage for one year."""
    year: int
    dscr: Optional[float]           # None when there is no debt service
    ltv: Optional[float]            # None when undefined
    senior_dscr: Optional[float] = None


@dataclass
class MonthlyDebtKpi:
    """Coverage and leverage for one month, with NOI spread evenly over the year."""
    month: int
    year: int
    dscr: Optional[float]
    ltv: Optional[float]


@dataclass
class MonthlyCashFlowEntry:
    """Unlevered cash after debt service for one month.

    Annual NOI and unlevered FCF are spread evenly over the months.
    Transaction costs stay in the annual levered FCF, so the months of a
    year sum to levered_fcf + transaction_costs.
    """
    month: int
    year: int
    noi: float
    unlevered_fcf: float
    debt_service: float
    cash_flow: float
    cumulative_cash_flow: float


@dataclass
class WaccMetrics:
    """Weighted average cost of capital and its inputs."""
    wacc: float
    equity_weight: float
    debt_weight: float
    cost_of_equity: float
    cost_of_debt: float
    after_tax_cost_of_debt: float


@dataclass
class CapitalEngineResult:
    """Output of the capital engine.

    Attributes:
        tranche_schedules: Per-tranche schedules, in configuration order
        aggregate_schedule: Annual totals across tranches
        levered_fcf: Levered free cash flow per year
        debt_kpis: DSCR and LTV per year
        owner_levered_cash_flows: Equity cash flows, index 0 = closing,
            index t + 1 = year t
        monthly_schedule: Aggregate monthly schedule (when requested)
        monthly_debt_kpis: DSCR and LTV per month (when requested)
        monthly_cash_flow: Cash after debt service per month (when requested)
        total_debt: Principal across tranches
        total_origination_fees: Origination fees across tranches
    """
    tranche_schedules: List[TrancheSchedule]
    aggregate_schedule: List[DebtScheduleEntry]
    levered_fcf: List[LeveredFcfEntry]
    debt_kpis: List[DebtKpi]
    owner_levered_cash_flows: List[float]
    monthly_schedule: List[MonthlyDebtScheduleEntry] = field(default_factory=list)
    monthly_debt_kpis: List[MonthlyDebtKpi] = field(default_factory=list)
    monthly_cash_flow: List[MonthlyCashFlowEntry] = field(default_factory=list)
    total_debt: float = 0.0
    total_origination_fees: float = 0.0

    @property
    def has_debt(self) -> bool:
        return bool(self.tranche_schedules)

    @property
    def min_dscr(self) -> Optional[float]:
        """Lowest DSCR over years with debt service."""
        values = [k.dscr for k in self.debt_kpis if k.dscr is not None]
        return min(values) if values else None

    @property
    def min_monthly_dscr(self) -> Optional[float]:
        values = [k.dscr for k in self.monthly_debt_kpis if k.dscr is not None]
        return min(values) if values else None

    def schedule_for(self, tranche_id: str) -> TrancheSchedule:
        """Schedule of a single tranche."""
        for schedule in self.tranche_schedules:
            if schedule.tranche_id == tranche_id:
                return schedule
        raise KeyError(tranche_id)


def _aggregate(schedules: List[TrancheSchedule], horizon_years: int) -> List[DebtScheduleEntry]:
    aggregate = [DebtScheduleEntry(year=y) for y in range(horizon_years)]
    for schedule in schedules:
        for entry in schedule.entries:
            row = aggregate[entry.year]
            row.beginning_balance += entry.beginning_balance
            row.interest += entry.interest
            row.principal += entry.principal
            row.ending_balance += entry.ending_balance
    return aggregate


def _aggregate_monthly(schedules: List[TrancheSchedule]) -> List[MonthlyDebtScheduleEntry]:
    if not schedules:
        return []
    aggregate = [
        MonthlyDebtScheduleEntry(month=m.month, year=m.year) for m in schedules[0].monthly
    ]
    for schedule in schedules:
        for i, entry in enumerate(schedule.monthly):
            row = aggregate[i]
            row.beginning_balance += entry.beginning_balance
            row.interest += entry.interest
            row.principal += entry.principal
            row.ending_balance += entry.ending_balance
    return aggregate


def _ratio(numerator: float, denominator: float) -> Optional[float]:
    if abs(denominator) < 1e-9:
        return None
    return numerator / denominator


def _monthly_views(
    unlevered_fcf: Sequence[float],
    noi: Sequence[float],
    capital: CapitalStructure,
    monthly_schedule: List[MonthlyDebtScheduleEntry],
) -> Tuple[List[MonthlyDebtKpi], List[MonthlyCashFlowEntry]]:
    """Monthly DSCR, LTV and cash after debt service.

    An all-equity deal has no monthly schedule; its debt service is zero and
    its ratios are None.
    """
    kpis: List[MonthlyDebtKpi] = []
    flows: List[MonthlyCashFlowEntry] = []
    cumulative = 0.0
    for month in range(len(unlevered_fcf) * 12):
        year = month // 12
        debt = monthly_schedule[month] if monthly_schedule else None
        debt_service = debt.payment if debt is not None else 0.0
        monthly_noi = noi[year] / 12
        monthly_fcf = unlevered_fcf[year] / 12

        ltv = None
        if debt is not None and capital.initial_investment > 0:
            ltv = debt.beginning_balance / capital.initial_investment
        kpis.append(MonthlyDebtKpi(
            month=month,
            year=year,
            dscr=_ratio(monthly_noi, debt_service),
            ltv=ltv,
        ))

        cash_flow = monthly_fcf - debt_service
        cumulative += cash_flow
        flows.append(MonthlyCashFlowEntry(
            month=month,
            year=year,
            noi=monthly_noi,
            unlevered_fcf=monthly_fcf,
            debt_service=debt_service,
            cash_flow=cash_flow,
            cumulative_cash_flow=cumulative,
        ))
    return kpis, flows


def run_capital_engine(
    unlevered_fcf: Sequence[float],
    noi: Sequence[float],
    capital: CapitalStructure,
    monthly: bool = False,
) -> CapitalEngineResult:
    """Turn unlevered cash flow and debt terms into levered cash flow.

    Args:
        unlevered_fcf: Unlevered free cash flow per year
        noi: Net operating income per year (same length)
        capital: Initial investment and debt tranches
        monthly: Also build the aggregate monthly schedule, monthly DSCR/LTV
            and monthly cash after debt service

    Returns:
        CapitalEngineResult

    Raises:
        ConfigurationError: for any invalid tranche, before anything is computed
    """
    horizon_years = len(unlevered_fcf)
    if len(noi) != horizon_years:
        raise ConfigurationError(
            f"NOI series has {len(noi)} years but unlevered FCF has {horizon_years}",
            field="noi",
        )
    capital.validate()

    schedules = [schedule_tranche(t, horizon_years, monthly=monthly) for t in capital.tranches]
    aggregate = _aggregate(schedules, horizon_years)
    senior_ids = {
        t.id for t in capital.tranches if t.effective_seniority == Seniority.SENIOR
    }

    levered: List[LeveredFcfEntry] = []
    kpis: List[DebtKpi] = []
    for year in range(horizon_years):
        row = aggregate[year]
        costs = sum(s.transaction_costs(year) for s in schedules)
        levered.append(LeveredFcfEntry(
            year=year,
            unlevered_fcf=unlevered_fcf[year],
            interest=row.interest,
            principal=row.principal,
            transaction_costs=costs,
            levered_fcf=unlevered_fcf[year] - (row.interest + row.principal + costs),
        ))

        if not schedules:
            kpis.append(DebtKpi(year=year, dscr=None, ltv=None))
            continue
        senior_service = sum(
            s.entries[year].debt_service for s in schedules if s.tranche_id in senior_ids
        )
        ltv = None
        if capital.initial_investment > 0:
            ltv = row.beginning_balance / capital.initial_investment
        kpis.append(DebtKpi(
            year=year,
            dscr=_ratio(noi[year], row.debt_service),
            ltv=ltv,
            senior_dscr=_ratio(noi[year], senior_service),
        ))

    owner = _owner_cash_flows(capital, levered, aggregate)

    monthly_schedule: List[MonthlyDebtScheduleEntry] = []
    monthly_kpis: List[MonthlyDebtKpi] = []
    monthly_flows: List[MonthlyCashFlowEntry] = []
    if monthly:
        monthly_schedule = _aggregate_monthly(schedules)
        monthly_kpis, monthly_flows = _monthly_views(unlevered_fcf, noi, capital, monthly_schedule)

    return CapitalEngineResult(
        tranche_schedules=schedules,
        aggregate_schedule=aggregate,
        levered_fcf=levered,
        debt_kpis=kpis,
        owner_levered_cash_flows=owner,
        monthly_schedule=monthly_schedule,
        monthly_debt_kpis=monthly_kpis,
        monthly_cash_flow=monthly_flows,
        total_debt=capital.total_debt,
        total_origination_fees=sum(sum(s.origination_fees) for s in schedules),
    )


def run_capital(
    unlevered_fcf: Sequence[float],
    noi: Sequence[float],
    capital: CapitalStructure,
    monthly: bool = False,
) -> EngineResult:
    """Run the capital engine, returning EngineSuccess or EngineFailure."""
    return capture(run_capital_engine, unlevered_fcf, noi, capital, monthly=monthly)


def _owner_cash_flows(
    capital: CapitalStructure,
    levered: List[LeveredFcfEntry],
    aggregate: List[DebtScheduleEntry],
) -> List[float]:
    """Equity cash flows: closing equity, then levered FCF plus later draws."""
    horizon_years = len(levered)
    closing_debt = sum(t.principal for t in capital.tranches if t.start_year == 0)
    owner = [-(capital.initial_investment - closing_debt)]
    for year in range(horizon_years):
        draws = sum(
            t.principal for t in capital.tranches if t.start_year == year and year > 0
        )
        owner.append(levered[year].levered_fcf + draws)
    if capital.repay_debt_at_exit and horizon_years:
        owner[-1] -= aggregate[-1].ending_balance
    return owner


def _weighted_cost_of_debt(tranches: List[DebtTranche]) -> float:
    total = sum(t.principal for t in tranches)
    if total <= 0:
        return 0.0
    return sum(t.principal * t.interest_rate for t in tranches) / total


def calculate_wacc(
    capital: CapitalStructure,
    cost_of_equity: float,
    tax_rate: float = 0.0,
) -> WaccMetrics:
    """Weighted average cost of capital.

    WACC = E% x cost of equity + D% x cost of debt x (1 - tax rate), with
    weights taken against the initial investment and the cost of debt
    weighted by tranche principal.

    Args:
        capital: Capital structure
        cost_of_equity: Required equity return (the project discount rate)
        tax_rate: Rate applied to the interest tax shield

    Returns:
        WaccMetrics
    """
    investment = capital.initial_investment
    debt = capital.total_debt
    if investment <= 0:
        debt_weight = 0.0
    else:
        debt_weight = min(debt / investment, 1.0)
    equity_weight = 1.0 - debt_weight
    cost_of_debt = _weighted_cost_of_debt(capital.tranches)
    after_tax = cost_of_debt * (1 - tax_rate)

    return WaccMetrics(
        wacc=equity_weight * cost_of_equity + debt_weight * after_tax,
        equity_weight=equity_weight,
        debt_weight=debt_weight,
        cost_of_equity=cost_of_equity,
        cost_of_debt=cost_of_debt,
        after_tax_cost_of_debt=after_tax,
    )
