#!/usr/bin/env python3
"""Example script to run the capital stack model on a sample hotel deal."""

import logging
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from capstack.models import ModelInput
from capstack.pipeline import run_full_model
from capstack.reporting import debt_kpi_frame, levered_fcf_frame
from capstack.scenarios import format_triad_table, run_scenario_triad


def get_sample_payload() -> dict:
    """Scenario payload in the camelCase form the scenario editor produces."""
    return {
        "project": {
            "horizonYears": 10,
            "discountRate": 0.10,
            "taxRate": 0.21,
            "capexReservePct": 0.04,
            "exitCapRate": 0.07,
            "sellingCostPct": 0.02,
        },
        "operations": [
            {
                "id": "rooms",
                "name": "Hotel Rooms",
                "units": 120,
                "occupancyByMonth": [0.58, 0.60, 0.66, 0.72, 0.76, 0.82,
                                     0.88, 0.88, 0.76, 0.70, 0.60, 0.64],
                "averageRate": 210,
                "ancillaryRevenuePct": 0.30,
                "variableCostPct": 0.45,
                "fixedCostsAnnual": 1_400_000,
                "rateGrowth": 0.03,
                "costGrowth": 0.03,
            },
        ],
        "capital": {
            "initialInvestment": 36_000_000,
            "tranches": [
                {
                    "id": "senior",
                    "label": "Senior Mortgage",
                    "type": "senior",
                    "initialPrincipal": 21_600_000,
                    "interestRate": 0.062,
                    "termYears": 10,
                    "amortizationType": "mortgage",
                    "amortizationYears": 25,
                    "ioYears": 2,
                    "refinanceAtYear": 7,
                    "refinanceAmountPct": 0.5,
                    "originationFeePct": 0.01,
                },
                {
                    "id": "mezz",
                    "label": "Mezzanine",
                    "type": "mezz",
                    "initialPrincipal": 3_600_000,
                    "interestRate": 0.11,
                    "termYears": 5,
                    "amortizationType": "interest_only",
                    "exitFeePct": 0.01,
                },
            ],
        },
        "waterfall": {
            "equityClasses": [
                {"id": "lp", "name": "Limited Partner", "contributionPct": 0.9},
                {"id": "gp", "name": "General Partner", "contributionPct": 0.1},
            ],
            "tiers": [
                {"id": "roc", "type": "return_of_capital",
                 "distributionSplits": {"lp": 0.9, "gp": 0.1}},
                {"id": "pref", "type": "preferred_return",
                 "distributionSplits": {"lp": 0.9, "gp": 0.1},
                 "prefRate": 0.08, "accrualMethod": "compound_interest"},
                {"id": "promote", "type": "promote",
                 "distributionSplits": {"lp": 0.8, "gp": 0.2},
                 "enableCatchUp": True,
                 "catchUpTargetSplit": {"lp": 0.8, "gp": 0.2},
                 "enableClawback": True},
            ],
        },
    }


def main():
    """Run the base case and a +/-20% scenario triad."""
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    print("\n" + "=" * 60)
    print("CAPITAL STACK MODEL")
    print("Sample Hotel Deal")
    print("=" * 60 + "\n")

    model_input = ModelInput.from_dict(get_sample_payload())
    output = run_full_model(model_input)

    kpis = output.project_kpis
    print(f"Project NPV:        ${kpis.npv:,.0f}")
    print(f"Unlevered IRR:      {kpis.unlevered_irr:.2%}" if kpis.unlevered_irr is not None
          else "Unlevered IRR:      n/a")
    print(f"WACC:               {output.wacc.wacc:.2%}")
    print(f"Total debt:         ${output.capital.total_debt:,.0f}")
    min_dscr = output.capital.min_dscr
    print(f"Minimum DSCR:       {min_dscr:.2f}x" if min_dscr is not None else "Minimum DSCR:       n/a")
    print()

    print("Levered cash flow:")
    print(levered_fcf_frame(output.capital).round(0).to_string())
    print()
    print("Coverage and leverage:")
    print(debt_kpi_frame(output.capital).round(3).to_string())
    print()

    print(output.waterfall.summary())
    print()

    print(format_triad_table(run_scenario_triad(model_input, stress_pct=0.2)))


if __name__ == "__main__":
    main()
