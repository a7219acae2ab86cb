"""Tests for building input models from scenario payloads."""

import pytest

from capstack.errors import ConfigurationError
from capstack.models import (
    AccrualMethod,
    AmortizationType,
    ClawbackMethod,
    DebtTranche,
    DistributionType,
    ModelInput,
    Seniority,
    SimulationConfig,
    TierType,
    TrancheType,
    WaterfallTier,
)
from capstack.models.base import camel_case, get_field


def scenario_payload() -> dict:
    return {
        "project": {"horizonYears": 5, "discountRate": 0.09, "exitCapRate": 0.065},
        "operations": [{
            "id": "villas",
            "units": 12,
            "occupancyByMonth": [0.6] * 12,
            "averageRate": 450,
            "variableCostPct": 0.35,
        }],
        "capital": {
            "initialInvestment": 4_000_000,
            "tranches": [{
                "id": "senior",
                "type": "senior",
                "initialPrincipal": 2_400_000,
                "interestRate": 0.065,
                "termYears": 5,
                "amortizationType": "mortgage",
                "amortizationYears": 25,
                "refinanceAtYear": 3,
                "refinanceAmountPct": 0.5,
            }],
        },
        "waterfall": {
            "equityClasses": [
                {"id": "lp", "name": "LP", "contributionPct": 0.9},
                {"id": "gp", "name": "GP", "contributionPct": 0.1},
            ],
            "tiers": [
                {"id": "roc", "type": "return_of_capital", "distributionSplits": {"lp": 0.9, "gp": 0.1}},
                {
                    "id": "promote",
                    "type": "promote",
                    "distributionSplits": {"lp": 0.7, "gp": 0.3},
                    "enableClawback": True,
                    "clawbackMethod": "lookback",
                },
            ],
        },
    }


class TestPayloadHelpers:
    def test_camel_case(self):
        assert camel_case("amortization_years") == "amortizationYears"
        assert camel_case("id") == "id"

    def test_get_field_accepts_both_spellings(self):
        assert get_field({"term_years": 5}, "term_years") == 5
        assert get_field({"termYears": 7}, "term_years") == 7
        assert get_field({}, "term_years", 0) == 0

    def test_missing_required_field(self):
        with pytest.raises(ConfigurationError, match="Missing required field 'initialInvestment'"):
            get_field({}, "initial_investment")


class TestModelInputFromDict:
    """Full scenario payloads."""

    def test_builds_every_section(self):
        model_input = ModelInput.from_dict(scenario_payload())

        assert model_input.project.horizon_years == 5
        assert model_input.operations[0].average_rate == 450.0
        tranche = model_input.capital.tranches[0]
        assert tranche.amortization_type == AmortizationType.MORTGAGE
        assert tranche.amortization_years == 25
        assert tranche.refinance_amount_pct == 0.5
        tiers = model_input.waterfall.tiers
        assert tiers[0].tier_type == TierType.RETURN_OF_CAPITAL
        assert tiers[1].clawback_method == ClawbackMethod.LOOKBACK
        model_input.validate()

    def test_missing_capital_rejected(self):
        payload = scenario_payload()
        del payload["capital"]
        with pytest.raises(ConfigurationError, match="capital"):
            ModelInput.from_dict(payload)

    def test_clone_is_independent(self):
        model_input = ModelInput.from_dict(scenario_payload())
        clone = model_input.clone()
        clone.operations[0].occupancy_by_month[0] = 0.0

        assert model_input.operations[0].occupancy_by_month[0] == 0.6


class TestDebtTrancheModel:
    def test_enum_names_accepted(self):
        tranche = DebtTranche.from_dict({
            "id": "m", "initialPrincipal": 1, "termYears": 1,
            "amortizationType": "INTEREST_ONLY", "trancheType": "mezz",
        })
        assert tranche.amortization_type == AmortizationType.INTEREST_ONLY
        assert tranche.effective_seniority == Seniority.MEZZANINE

    def test_invalid_enum(self):
        with pytest.raises(ConfigurationError, match="Invalid amortizationType 'balloon'"):
            DebtTranche.from_dict({"id": "x", "initialPrincipal": 1, "amortizationType": "balloon"})

    def test_amortization_defaults_to_term(self):
        tranche = DebtTranche(id="t", initial_principal=100, term_years=7)
        assert tranche.effective_amortization_years == 7
        assert tranche.maturity_year == 7

    def test_explicit_seniority_wins(self):
        tranche = DebtTranche(
            id="t", initial_principal=1, tranche_type=TrancheType.BRIDGE,
            seniority=Seniority.SUBORDINATE,
        )
        assert tranche.effective_seniority == Seniority.SUBORDINATE


class TestWaterfallTierModel:
    def test_accrual_rate_for_irr_hurdle(self):
        tier = WaterfallTier(
            id="pref", tier_type=TierType.PREFERRED_RETURN, pref_rate=0.08,
            hurdle_irr=0.12, accrual_method=AccrualMethod.IRR_HURDLE,
        )
        assert tier.accrual_rate == 0.12
        assert tier.compounds

    def test_simple_accrual_does_not_compound(self):
        tier = WaterfallTier(id="pref", tier_type=TierType.PREFERRED_RETURN, pref_rate=0.08)
        assert not tier.compounds

    def test_catch_up_rate_range(self):
        tier = WaterfallTier(
            id="promote", tier_type=TierType.PROMOTE, distribution_splits={"gp": 1.0},
            enable_catch_up=True, catch_up_target_split={"gp": 1.0}, catch_up_rate=1.5,
        )
        with pytest.raises(ConfigurationError, match="catchUpRate"):
            tier.validate(["gp"])


class TestSimulationConfigModel:
    def test_from_dict(self):
        config = SimulationConfig.from_dict({
            "iterations": 250,
            "adrStd": 0.2,
            "interestRateDistribution": "lognormal",
            "correlationMatrix": {
                "variables": ["occupancy", "adr", "interestRate"],
                "matrix": [[1, 0, 0], [0, 1, 0], [0, 0, 1]],
            },
            "seed": 3,
        })

        assert config.iterations == 250
        assert config.std_devs["adr"] == 0.2
        assert config.distributions["interestRate"] == DistributionType.LOGNORMAL
        assert config.correlation_matrix.variables[2] == "interestRate"

    def test_negative_iterations(self):
        with pytest.raises(ConfigurationError, match="iterations"):
            SimulationConfig(iterations=-1).validate()
