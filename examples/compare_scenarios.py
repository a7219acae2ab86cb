#!/usr/bin/env python3
"""Compare capital structures for the sample deal.

Runs the same operations under all-equity, senior-only and senior plus
mezzanine financing and prints the KPIs side by side.

Usage:
    python examples/compare_scenarios.py
"""

import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from capstack.models import ModelInput
from capstack.scenarios import NamedScenario, compare_scenarios, format_comparison_table

from run_example import get_sample_payload


def build_scenarios():
    """Three leverage levels over identical operations."""
    levered = ModelInput.from_dict(get_sample_payload())

    senior_only = levered.clone()
    senior_only.capital.tranches = [t for t in senior_only.capital.tranches if t.id == "senior"]

    all_equity = levered.clone()
    all_equity.capital.tranches = []

    return [
        NamedScenario(id="equity", name="All Equity", model_input=all_equity),
        NamedScenario(id="senior", name="Senior Only", model_input=senior_only),
        NamedScenario(id="stack", name="Senior + Mezz", model_input=levered),
    ]


def main():
    print("=" * 80)
    print("CAPITAL STRUCTURE COMPARISON")
    print("=" * 80)
    print()

    results = compare_scenarios(build_scenarios())
    print(format_comparison_table(results))


if __name__ == "__main__":
    main()
