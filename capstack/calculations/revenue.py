"""Driver-based operating P&L feeding the capital engine.

Produces the NOI and unlevered free cash flow series the capital engine
consumes. Revenue is units x occupancy x rate x days.
"""

from dataclasses import dataclass
from typing import List

from capstack.models.operations import Operation, ProjectConfig

DAYS_IN_MONTH = [31, 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31]


@dataclass
class RevenueResult:
    """Annual operating series, index 0 = first operating year."""
    revenue: List[float]
    operating_costs: List[float]
    noi: List[float]
    capex_reserve: List[float]
    exit_value: float
    unlevered_fcf: List[float]

    @property
    def horizon_years(self) -> int:
        return len(self.noi)


def operation_revenue(operation: Operation, year: int) -> float:
    """Annual revenue of one operation, including ancillary revenue."""
    rate = operation.average_rate * (1 + operation.rate_growth) ** year
    unit_revenue = sum(
        operation.units * occupancy * rate * days
        for occupancy, days in zip(operation.occupancy_by_month, DAYS_IN_MONTH)
    )
    return unit_revenue * (1 + operation.ancillary_revenue_pct)


def operation_costs(operation: Operation, revenue: float, year: int) -> float:
    """Variable plus fixed operating costs of one operation."""
    fixed = operation.fixed_costs_annual * (1 + operation.cost_growth) ** year
    return revenue * operation.variable_cost_pct + fixed


def run_revenue_engine(operations: List[Operation], project: ProjectConfig) -> RevenueResult:
    """Build the annual operating series for the project horizon.

    Args:
        operations: Revenue-generating operations
        project: Horizon, reserve and exit assumptions

    Returns:
        RevenueResult with NOI and unlevered FCF. The exit value (final
        NOI capitalized at the exit cap rate, net of selling costs) is added
        to the final year's FCF.
    """
    revenue, costs, noi, reserve, fcf = [], [], [], [], []
    for year in range(project.horizon_years):
        year_revenue = 0.0
        year_costs = 0.0
        for operation in operations:
            op_revenue = operation_revenue(operation, year)
            year_revenue += op_revenue
            year_costs += operation_costs(operation, op_revenue, year)
        year_noi = year_revenue - year_costs
        year_reserve = year_revenue * project.capex_reserve_pct

        revenue.append(year_revenue)
        costs.append(year_costs)
        noi.append(year_noi)
        reserve.append(year_reserve)
        fcf.append(year_noi - year_reserve)

    exit_value = 0.0
    if project.exit_cap_rate and noi:
        exit_value = noi[-1] / project.exit_cap_rate * (1 - project.selling_cost_pct)
        fcf[-1] += exit_value

    return RevenueResult(
        revenue=revenue,
        operating_costs=costs,
        noi=noi,
        capex_reserve=reserve,
        exit_value=exit_value,
        unlevered_fcf=fcf,
    )
