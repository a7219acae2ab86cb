"""Base / Stress / Upside scenario comparison.

Every scenario is a perturbed clone of the base input run through the full
pipeline; the base input itself is never modified.
"""

from dataclasses import dataclass
from typing import List, Optional

from .models.operations import ModelInput
from .pipeline import KpiSnapshot, run_model_kpis


@dataclass
class NamedScenario:
    """A scenario to compare."""
    id: str
    name: str
    model_input: ModelInput


@dataclass
class ScenarioKpis:
    """KPIs of one named scenario."""
    id: str
    name: str
    kpis: KpiSnapshot


@dataclass
class ScenarioTriadResult:
    """Base, stress and upside KPIs for one stress factor."""
    stress_pct: float
    base: KpiSnapshot
    stress: KpiSnapshot
    upside: KpiSnapshot

    def as_list(self) -> List[ScenarioKpis]:
        return [
            ScenarioKpis(id="base", name="Base", kpis=self.base),
            ScenarioKpis(id="stress", name="Stress", kpis=self.stress),
            ScenarioKpis(id="upside", name="Upside", kpis=self.upside),
        ]


def apply_revenue_multipliers(
    model_input: ModelInput,
    occupancy_multiplier: float,
    rate_multiplier: float,
) -> ModelInput:
    """Clone the input and scale its revenue drivers.

    Occupancy is clamped to [0, 1]; the average rate is floored at 0.
    """
    scenario = model_input.clone()
    for operation in scenario.operations:
        operation.occupancy_by_month = [
            min(1.0, max(0.0, o * occupancy_multiplier)) for o in operation.occupancy_by_month
        ]
        operation.average_rate = max(0.0, operation.average_rate * rate_multiplier)
    return scenario


def run_scenario_triad(base_input: ModelInput, stress_pct: float = 0.2) -> ScenarioTriadResult:
    """Run Base, Stress (drivers x (1 - s)) and Upside (drivers x (1 + s)).

    Args:
        base_input: Base scenario
        stress_pct: Stress factor applied to occupancy and average rate

    Returns:
        ScenarioTriadResult
    """
    down = 1 - stress_pct
    up = 1 + stress_pct
    return ScenarioTriadResult(
        stress_pct=stress_pct,
        base=run_model_kpis(base_input.clone()),
        stress=run_model_kpis(apply_revenue_multipliers(base_input, down, down)),
        upside=run_model_kpis(apply_revenue_multipliers(base_input, up, up)),
    )


def compare_scenarios(scenarios: List[NamedScenario]) -> List[ScenarioKpis]:
    """Run each scenario and collect its KPIs, in input order."""
    return [
        ScenarioKpis(id=s.id, name=s.name, kpis=run_model_kpis(s.model_input.clone()))
        for s in scenarios
    ]


def _pct(value: Optional[float]) -> str:
    return f"{value:>9.2%}" if value is not None else f"{'n/a':>9}"


def _multiple(value: Optional[float]) -> str:
    return f"{value:>7.2f}x" if value is not None else f"{'n/a':>8}"


def format_comparison_table(results: List[ScenarioKpis]) -> str:
    """Format scenario KPIs as a text table.

    Args:
        results: Scenario KPIs, one row each

    Returns:
        Formatted string table
    """
    lines = [
        "=" * 80,
        "SCENARIO COMPARISON",
        "=" * 80,
        f"{'Scenario':<16} {'NPV':>14} {'Unlev IRR':>9} {'Lev IRR':>9} {'MOIC':>8} {'WACC':>9}",
        "-" * 80,
    ]
    for result in results:
        k = result.kpis
        lines.append(
            f"{result.name:<16} {k.npv:>14,.0f} {_pct(k.unlevered_irr)} "
            f"{_pct(k.levered_irr)} {_multiple(k.moic)} {_pct(k.wacc)}"
        )
    lines.append("=" * 80)
    return "\n".join(lines)


def format_triad_table(result: ScenarioTriadResult) -> str:
    """Format a Base/Stress/Upside triad as a text table."""
    return format_comparison_table(result.as_list())
