"""Debt amortization and refinancing schedules.

Every tranche is scheduled month by month; the annual schedule is the
roll-up of the monthly one, so the two always agree. Supported policies:

- interest_only: interest each month, full balance repaid in the last term month
- mortgage: level payment over the amortization period after any
  interest-only months; balloons at term end when amortization > term
- bullet: interest only, principal repaid in full at term end

A refinance at year Y repays ``refinance_amount_pct`` of the balance
outstanding at the start of Y in the last month of Y. The year before that
repayment is interest-only, so it carries a full year of interest.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy_financial as npf

from capstack.errors import ConfigurationError, ScheduleReconciliationError
from capstack.models.capital import AmortizationType, DebtTranche
from capstack.result import EngineResult, capture

RECONCILIATION_TOLERANCE = 0.01


@dataclass
class DebtScheduleEntry:
    """One year of a tranche's (or the aggregate) debt schedule."""
    year: int
    beginning_balance: float = 0.0
    interest: float = 0.0
    principal: float = 0.0
    ending_balance: float = 0.0

    @property
    def debt_service(self) -> float:
        """Interest plus principal."""
        return self.interest + self.principal


@dataclass
class MonthlyDebtScheduleEntry:
    """One month of a tranche's (or the aggregate) debt schedule."""
    month: int          # Months since closing, 0-based
    year: int
    beginning_balance: float = 0.0
    interest: float = 0.0
    principal: float = 0.0
    ending_balance: float = 0.0

    @property
    def payment(self) -> float:
        """Interest plus principal."""
        return self.interest + self.principal


@dataclass
class TrancheSchedule:
    """Full schedule for one tranche over the model horizon."""
    tranche_id: str
    initial_principal: float
    entries: List[DebtScheduleEntry]
    origination_fees: List[float]
    exit_fees: List[float]
    monthly: List[MonthlyDebtScheduleEntry] = field(default_factory=list)

    @property
    def total_principal(self) -> float:
        return sum(e.principal for e in self.entries)

    @property
    def total_interest(self) -> float:
        return sum(e.interest for e in self.entries)

    @property
    def final_balance(self) -> float:
        return self.entries[-1].ending_balance if self.entries else 0.0

    def transaction_costs(self, year: int) -> float:
        """Origination plus exit fees charged in ``year``."""
        return self.origination_fees[year] + self.exit_fees[year]


def level_payment(balance: float, annual_rate: float, months: int) -> float:
    """Monthly payment that fully amortizes ``balance`` over ``months``.

    Args:
        balance: Balance to amortize
        annual_rate: Annual interest rate
        months: Number of monthly payments

    Returns:
        Level monthly payment (balance / months when the rate is zero)
    """
    if months <= 0:
        return balance
    monthly_rate = annual_rate / 12
    if abs(monthly_rate) < 1e-12:
        return balance / months
    return float(-npf.pmt(monthly_rate, months, balance))


def _schedule_months(
    tranche: DebtTranche, horizon_years: int
) -> Tuple[List[MonthlyDebtScheduleEntry], List[float]]:
    """Run the monthly engine.

    Returns:
        Monthly entries and, per year, the principal repaid by maturity or
        refinance events (the exit fee base).
    """
    rate = tranche.interest_rate
    monthly_rate = rate / 12
    start_month = tranche.start_year * 12
    term_months = tranche.term_years * 12
    maturity_month = start_month + term_months - 1
    amortization_start = start_month + tranche.io_years * 12
    amortization_months = tranche.effective_amortization_years * 12
    # Repaid at the end of the refinance year; interest accrues on the full
    # beginning balance until then
    refinance_year = tranche.refinance_at_year
    refinance_month = refinance_year * 12 + 11 if refinance_year is not None else None
    is_mortgage = tranche.amortization_type == AmortizationType.MORTGAGE

    entries: List[MonthlyDebtScheduleEntry] = []
    event_repayments = [0.0] * horizon_years
    balance = 0.0
    payment: Optional[float] = None

    for month in range(horizon_years * 12):
        year = month // 12
        if month == start_month:
            balance = tranche.principal

        if not (start_month <= month <= maturity_month) or balance <= 0:
            entries.append(MonthlyDebtScheduleEntry(
                month=month, year=year, beginning_balance=balance, ending_balance=balance,
            ))
            continue

        beginning = balance
        interest = beginning * monthly_rate

        if month == refinance_month and month < maturity_month:
            if tranche.refinance_amount_pct >= 1:
                principal = beginning
            else:
                principal = beginning * tranche.refinance_amount_pct
                payment = None
            event_repayments[year] += principal
        elif month == maturity_month:
            principal = beginning
            event_repayments[year] += principal
        elif not is_mortgage or month < amortization_start or year == refinance_year:
            principal = 0.0
        else:
            if payment is None:
                remaining = amortization_months - (month - amortization_start)
                payment = level_payment(beginning, rate, max(remaining, 1))
            principal = min(max(payment - interest, 0.0), beginning)

        ending = beginning - principal
        if principal == beginning:
            ending = 0.0
        balance = ending

        entries.append(MonthlyDebtScheduleEntry(
            month=month,
            year=year,
            beginning_balance=beginning,
            interest=interest,
            principal=principal,
            ending_balance=ending,
        ))

    return entries, event_repayments


def _roll_up(monthly: List[MonthlyDebtScheduleEntry], horizon_years: int) -> List[DebtScheduleEntry]:
    annual = []
    for year in range(horizon_years):
        months = monthly[year * 12:(year + 1) * 12]
        annual.append(DebtScheduleEntry(
            year=year,
            beginning_balance=months[0].beginning_balance,
            interest=sum(m.interest for m in months),
            principal=sum(m.principal for m in months),
            ending_balance=months[-1].ending_balance,
        ))
    return annual


def reconcile_schedule(tranche: DebtTranche, entries: List[DebtScheduleEntry]) -> None:
    """Check that principal repaid plus the final balance equals the loan.

    Tranches drawn after the horizon have no entries to reconcile.

    Raises:
        ScheduleReconciliationError: if off by more than 0.01
    """
    if not entries or tranche.start_year >= len(entries):
        return
    repaid = sum(e.principal for e in entries) + entries[-1].ending_balance
    difference = tranche.principal - repaid
    if abs(difference) > RECONCILIATION_TOLERANCE:
        raise ScheduleReconciliationError(tranche.id, difference)


def schedule_tranche(
    tranche: DebtTranche,
    horizon_years: int,
    monthly: bool = False,
) -> TrancheSchedule:
    """Schedule one tranche over the model horizon.

    Args:
        tranche: Tranche terms
        horizon_years: Number of annual periods to produce
        monthly: Keep the monthly entries on the result

    Returns:
        TrancheSchedule with annual entries, fees and optional monthly entries

    Raises:
        ConfigurationError: if the tranche is invalid (no periods computed)
    """
    if horizon_years < 0:
        raise ConfigurationError(
            f"horizonYears cannot be negative (got {horizon_years})",
            field="horizon_years",
            tranche_id=tranche.id,
        )
    tranche.validate()

    monthly_entries, event_repayments = _schedule_months(tranche, horizon_years)
    entries = _roll_up(monthly_entries, horizon_years)
    reconcile_schedule(tranche, entries)

    origination_fees = [0.0] * horizon_years
    if tranche.start_year < horizon_years:
        origination_fees[tranche.start_year] = tranche.principal * tranche.origination_fee_pct
    exit_fees = [amount * tranche.exit_fee_pct for amount in event_repayments]

    return TrancheSchedule(
        tranche_id=tranche.id,
        initial_principal=tranche.principal,
        entries=entries,
        origination_fees=origination_fees,
        exit_fees=exit_fees,
        monthly=monthly_entries if monthly else [],
    )


def schedule_tranche_entries(tranche: DebtTranche, horizon_years: int) -> List[DebtScheduleEntry]:
    """Annual schedule entries for one tranche."""
    return schedule_tranche(tranche, horizon_years).entries


def schedule(tranche: DebtTranche, horizon_years: int) -> EngineResult:
    """Annual entries wrapped as EngineSuccess, or EngineFailure for invalid terms."""
    return capture(schedule_tranche_entries, tranche, horizon_years)
