"""Tests for debt schedules including refinance and balloon repayment."""

import pytest

from capstack.calculations.debt import (
    DebtScheduleEntry,
    level_payment,
    reconcile_schedule,
    schedule,
    schedule_tranche,
    schedule_tranche_entries,
)
from capstack.errors import ConfigurationError, ScheduleReconciliationError
from capstack.models import AmortizationType, DebtTranche
from capstack.result import EngineFailure, EngineSuccess


def make_tranche(**overrides) -> DebtTranche:
    params = dict(
        id="loan",
        initial_principal=1_000_000,
        interest_rate=0.06,
        term_years=5,
        amortization_type=AmortizationType.MORTGAGE,
        amortization_years=5,
    )
    params.update(overrides)
    return DebtTranche(**params)


class TestLevelPayment:
    """Tests for the monthly level payment."""

    def test_standard_mortgage_payment(self):
        """100k over 30 years at 6% pays ~599.55 per month."""
        assert level_payment(100_000, 0.06, 360) == pytest.approx(599.55, abs=0.01)

    def test_zero_rate_is_linear(self):
        """Zero rate splits the balance evenly without dividing by zero."""
        assert level_payment(12_000, 0.0, 12) == pytest.approx(1_000)

    def test_no_months_repays_everything(self):
        assert level_payment(5_000, 0.05, 0) == 5_000


class TestPrincipalReconciliation:
    """Principal repaid plus final balance always equals the loan."""

    @pytest.mark.parametrize("overrides", [
        dict(amortization_type=AmortizationType.INTEREST_ONLY),
        dict(amortization_type=AmortizationType.MORTGAGE),
        dict(amortization_type=AmortizationType.BULLET),
        dict(amortization_type=AmortizationType.MORTGAGE, amortization_years=30),
        dict(amortization_type=AmortizationType.MORTGAGE, amortization_years=25, io_years=2),
        dict(amortization_type=AmortizationType.MORTGAGE, interest_rate=0.0),
        dict(amortization_type=AmortizationType.MORTGAGE, start_year=2),
    ])
    def test_reconciles_within_one_cent(self, overrides):
        tranche = make_tranche(**overrides)
        entries = schedule_tranche_entries(tranche, horizon_years=10)

        repaid = sum(e.principal for e in entries) + entries[-1].ending_balance
        assert repaid == pytest.approx(tranche.initial_principal, abs=0.01)

    def test_term_beyond_horizon_leaves_balance(self):
        """A loan maturing after the horizon reconciles through its final balance."""
        tranche = make_tranche(term_years=10, amortization_years=30)
        entries = schedule_tranche_entries(tranche, horizon_years=4)

        assert entries[-1].ending_balance > 0
        repaid = sum(e.principal for e in entries) + entries[-1].ending_balance
        assert repaid == pytest.approx(1_000_000, abs=0.01)

    def test_each_year_rolls_forward(self):
        """beginning - principal == ending, and ending feeds next beginning."""
        entries = schedule_tranche_entries(make_tranche(amortization_years=20), horizon_years=5)

        for prev, entry in zip(entries, entries[1:]):
            assert entry.beginning_balance == pytest.approx(prev.ending_balance)
        for entry in entries:
            assert entry.beginning_balance - entry.principal == pytest.approx(entry.ending_balance)

    def test_reconcile_rejects_mismatch(self):
        tranche = make_tranche()
        entries = [DebtScheduleEntry(year=0, beginning_balance=1_000_000,
                                     principal=10, ending_balance=900_000)]
        with pytest.raises(ScheduleReconciliationError, match="loan"):
            reconcile_schedule(tranche, entries)


class TestAmortizationPolicies:
    """Tests for interest-only, mortgage and bullet repayment."""

    def test_interest_only_balloons_at_term_end(self):
        tranche = make_tranche(amortization_type=AmortizationType.INTEREST_ONLY, term_years=3)
        entries = schedule_tranche_entries(tranche, horizon_years=5)

        assert [e.principal for e in entries[:2]] == [0.0, 0.0]
        assert entries[2].principal == pytest.approx(1_000_000)
        assert entries[2].ending_balance == 0.0
        assert entries[0].interest == pytest.approx(60_000)
        assert entries[3].interest == 0.0
        assert entries[4].beginning_balance == 0.0

    def test_bullet_repaid_in_full_at_term_end(self):
        tranche = make_tranche(amortization_type=AmortizationType.BULLET, term_years=2)
        entries = schedule_tranche_entries(tranche, horizon_years=3)

        assert entries[0].principal == 0.0
        assert entries[1].principal == pytest.approx(1_000_000)
        assert entries[1].ending_balance == 0.0

    def test_mortgage_balloon_when_amortization_exceeds_term(self):
        """Final term year repays the full remaining balance."""
        tranche = make_tranche(term_years=5, amortization_years=25)
        entries = schedule_tranche_entries(tranche, horizon_years=7)

        assert entries[3].ending_balance > 800_000
        assert entries[4].principal == pytest.approx(entries[4].beginning_balance)
        assert entries[4].ending_balance == 0.0
        assert entries[5].debt_service == 0.0

    def test_mortgage_interest_only_period(self):
        tranche = make_tranche(term_years=5, amortization_years=25, io_years=2)
        entries = schedule_tranche_entries(tranche, horizon_years=5)

        assert entries[0].principal == 0.0
        assert entries[1].principal == 0.0
        assert entries[2].principal > 0.0

    def test_zero_rate_mortgage_monthly(self):
        """12,000 at 0% over one year amortizes fully month by month."""
        tranche = make_tranche(
            initial_principal=12_000, interest_rate=0.0, term_years=1, amortization_years=1
        )
        schedule = schedule_tranche(tranche, horizon_years=1, monthly=True)

        assert len(schedule.monthly) == 12
        assert sum(m.principal for m in schedule.monthly) == pytest.approx(12_000, abs=1e-4)
        assert schedule.monthly[-1].ending_balance == pytest.approx(0.0, abs=1e-4)
        assert all(m.interest == 0.0 for m in schedule.monthly)
        assert schedule.monthly[0].principal == pytest.approx(1_000)

    def test_start_year_delays_drawdown(self):
        tranche = make_tranche(start_year=2, term_years=3)
        entries = schedule_tranche_entries(tranche, horizon_years=6)

        assert entries[0].beginning_balance == 0.0
        assert entries[1].debt_service == 0.0
        assert entries[2].beginning_balance == pytest.approx(1_000_000)
        assert entries[4].ending_balance == 0.0

    def test_unfunded_tranche_is_all_zero(self):
        tranche = make_tranche(initial_principal=0, term_years=0, amortization_years=None)
        entries = schedule_tranche_entries(tranche, horizon_years=3)

        assert all(e.debt_service == 0.0 for e in entries)


class TestMonthlySchedule:
    """Monthly schedules aggregate to the annual schedule."""

    def test_monthly_totals_match_annual(self):
        tranche = make_tranche(term_years=7, amortization_years=20, io_years=1, refinance_at_year=5)
        schedule = schedule_tranche(tranche, horizon_years=8, monthly=True)

        for entry in schedule.entries:
            months = [m for m in schedule.monthly if m.year == entry.year]
            assert sum(m.principal for m in months) == pytest.approx(entry.principal)
            assert sum(m.interest for m in months) == pytest.approx(entry.interest)
            assert months[-1].ending_balance == pytest.approx(entry.ending_balance)

    def test_monthly_omitted_by_default(self):
        assert schedule_tranche(make_tranche(), horizon_years=5).monthly == []


class TestRefinance:
    """Tests for forced repayment at the refinance year."""

    def test_full_refinance_zeroes_balance(self):
        tranche = make_tranche(term_years=10, amortization_years=25, refinance_at_year=3)
        entries = schedule_tranche_entries(tranche, horizon_years=10)

        assert entries[3].ending_balance == 0.0
        assert entries[3].principal == pytest.approx(entries[3].beginning_balance)
        assert all(e.debt_service == 0.0 for e in entries[4:])

    def test_full_refinance_in_final_horizon_year(self):
        tranche = make_tranche(term_years=10, amortization_years=25, refinance_at_year=4)
        entries = schedule_tranche_entries(tranche, horizon_years=5)

        assert entries[4].ending_balance == 0.0
        assert entries[4].principal == pytest.approx(entries[4].beginning_balance)

    def test_partial_refinance_repays_fraction(self):
        tranche = make_tranche(
            term_years=10, amortization_years=25, refinance_at_year=2, refinance_amount_pct=0.4
        )
        entries = schedule_tranche_entries(tranche, horizon_years=6)

        refi = entries[2]
        assert refi.principal == pytest.approx(0.4 * refi.beginning_balance)
        assert refi.ending_balance == pytest.approx(0.6 * refi.beginning_balance)
        # Amortization resumes on the reduced balance
        assert 0 < entries[3].principal < entries[1].principal

    def test_refinance_overrides_interest_only(self):
        tranche = make_tranche(
            amortization_type=AmortizationType.INTEREST_ONLY, term_years=5, refinance_at_year=1
        )
        entries = schedule_tranche_entries(tranche, horizon_years=5)

        assert entries[1].principal == pytest.approx(1_000_000)
        assert entries[1].ending_balance == 0.0

    def test_refinance_year_charges_full_year_interest(self):
        """1,000 interest-only at 10% refinanced in year 2 still pays 100 of interest."""
        tranche = make_tranche(
            initial_principal=1_000,
            interest_rate=0.10,
            amortization_type=AmortizationType.INTEREST_ONLY,
            term_years=5,
            refinance_at_year=2,
        )
        entries = schedule_tranche_entries(tranche, horizon_years=5)

        assert entries[2].beginning_balance == pytest.approx(1_000)
        assert entries[2].interest == pytest.approx(100.0)
        assert entries[2].principal == pytest.approx(1_000)
        assert entries[2].ending_balance == 0.0
        assert entries[3].interest == 0.0

    def test_partial_refinance_year_interest_on_beginning_balance(self):
        tranche = make_tranche(
            term_years=10, amortization_years=25, refinance_at_year=2, refinance_amount_pct=0.4
        )
        entries = schedule_tranche_entries(tranche, horizon_years=6)

        refi = entries[2]
        assert refi.interest == pytest.approx(refi.beginning_balance * 0.06)

    def test_refinance_repayment_in_last_month_of_year(self):
        tranche = make_tranche(term_years=10, amortization_years=25, refinance_at_year=3)
        schedule = schedule_tranche(tranche, horizon_years=5, monthly=True)

        refi_months = schedule.monthly[36:48]
        assert all(m.principal == 0.0 for m in refi_months[:-1])
        assert refi_months[-1].principal == pytest.approx(refi_months[0].beginning_balance)


class TestFees:
    """Tests for origination and exit fees."""

    def test_origination_fee_at_drawdown(self):
        tranche = make_tranche(start_year=1, origination_fee_pct=0.01)
        schedule = schedule_tranche(tranche, horizon_years=6)

        assert schedule.origination_fees[0] == 0.0
        assert schedule.origination_fees[1] == pytest.approx(10_000)

    def test_exit_fee_on_refinance(self):
        tranche = make_tranche(
            term_years=10, amortization_years=25, refinance_at_year=2, exit_fee_pct=0.02
        )
        schedule = schedule_tranche(tranche, horizon_years=5)

        expected = 0.02 * schedule.entries[2].beginning_balance
        assert schedule.exit_fees[2] == pytest.approx(expected)
        assert sum(schedule.exit_fees) == pytest.approx(expected)

    def test_exit_fee_on_maturity_repayment(self):
        tranche = make_tranche(
            amortization_type=AmortizationType.INTEREST_ONLY, term_years=3, exit_fee_pct=0.01
        )
        schedule = schedule_tranche(tranche, horizon_years=4)

        assert schedule.exit_fees[2] == pytest.approx(10_000)
        assert schedule.transaction_costs(2) == pytest.approx(10_000)

    def test_no_exit_fee_when_maturity_beyond_horizon(self):
        tranche = make_tranche(term_years=10, exit_fee_pct=0.01)
        schedule = schedule_tranche(tranche, horizon_years=5)

        assert sum(schedule.exit_fees) == 0.0


class TestValidation:
    """Invalid tranches are rejected before any period is computed."""

    def test_zero_amortization_years_rejected(self):
        tranche = make_tranche(amortization_years=0)

        with pytest.raises(ConfigurationError, match=r"amortizationYears must be > 0") as exc:
            schedule_tranche_entries(tranche, horizon_years=5)

        assert exc.value.tranche_id == "loan"
        assert exc.value.field == "amortization_years"

    def test_negative_principal_rejected(self):
        with pytest.raises(ConfigurationError, match="cannot be negative"):
            schedule_tranche(make_tranche(initial_principal=-1), horizon_years=3)

    def test_missing_principal_rejected(self):
        with pytest.raises(ConfigurationError, match="initialPrincipal"):
            schedule_tranche(make_tranche(initial_principal=None), horizon_years=3)

    def test_funded_tranche_needs_term(self):
        with pytest.raises(ConfigurationError, match="termYears must be > 0"):
            schedule_tranche(make_tranche(term_years=0), horizon_years=3)

    def test_refinance_pct_out_of_range(self):
        with pytest.raises(ConfigurationError, match="refinanceAmountPct"):
            schedule_tranche(make_tranche(refinance_amount_pct=1.5), horizon_years=3)

    def test_interest_only_ignores_amortization_years(self):
        tranche = make_tranche(amortization_type=AmortizationType.INTEREST_ONLY, amortization_years=0)
        assert len(schedule_tranche_entries(tranche, horizon_years=5)) == 5


class TestScheduleResult:
    """The schedule entry point returns a result value instead of raising."""

    def test_valid_tranche_succeeds(self):
        result = schedule(make_tranche(), horizon_years=5)

        assert isinstance(result, EngineSuccess)
        assert len(result.data) == 5
        assert result.data[-1].ending_balance == 0.0

    def test_invalid_tranche_fails_with_details(self):
        result = schedule(make_tranche(amortization_years=0), horizon_years=5)

        assert isinstance(result, EngineFailure)
        assert result.code == "CONFIGURATION_ERROR"
        assert "amortizationYears must be > 0" in result.message
        assert result.details == {"field": "amortization_years", "tranche_id": "loan"}
