"""Tabular views of engine results for reporting and export collaborators."""

from typing import List

import pandas as pd

from .calculations.capital import CapitalEngineResult
from .calculations.debt import TrancheSchedule
from .calculations.waterfall import WaterfallResult
from .monte_carlo import SimulationResult
from .pipeline import KPI_NAMES


def debt_schedule_frame(result: CapitalEngineResult) -> pd.DataFrame:
    """One row per tranche and year, plus fees."""
    rows = []
    for schedule in result.tranche_schedules:
        for entry in schedule.entries:
            rows.append({
                "tranche_id": schedule.tranche_id,
                "year": entry.year,
                "beginning_balance": entry.beginning_balance,
                "interest": entry.interest,
                "principal": entry.principal,
                "ending_balance": entry.ending_balance,
                "transaction_costs": schedule.transaction_costs(entry.year),
            })
    columns = [
        "tranche_id", "year", "beginning_balance", "interest",
        "principal", "ending_balance", "transaction_costs",
    ]
    return pd.DataFrame(rows, columns=columns)


def monthly_schedule_frame(schedule: TrancheSchedule) -> pd.DataFrame:
    """Monthly entries of one tranche (empty unless scheduled monthly)."""
    return pd.DataFrame({
        "month": [m.month for m in schedule.monthly],
        "year": [m.year for m in schedule.monthly],
        "beginning_balance": [m.beginning_balance for m in schedule.monthly],
        "interest": [m.interest for m in schedule.monthly],
        "principal": [m.principal for m in schedule.monthly],
        "ending_balance": [m.ending_balance for m in schedule.monthly],
    })


def levered_fcf_frame(result: CapitalEngineResult) -> pd.DataFrame:
    """Levered free cash flow bridge, indexed by year."""
    return pd.DataFrame({
        "unlevered_fcf": [e.unlevered_fcf for e in result.levered_fcf],
        "interest": [e.interest for e in result.levered_fcf],
        "principal": [e.principal for e in result.levered_fcf],
        "transaction_costs": [e.transaction_costs for e in result.levered_fcf],
        "levered_fcf": [e.levered_fcf for e in result.levered_fcf],
    }, index=pd.Index([e.year for e in result.levered_fcf], name="year"))


def debt_kpi_frame(result: CapitalEngineResult) -> pd.DataFrame:
    """DSCR, senior DSCR and LTV by year (NaN where undefined)."""
    return pd.DataFrame({
        "dscr": [k.dscr for k in result.debt_kpis],
        "senior_dscr": [k.senior_dscr for k in result.debt_kpis],
        "ltv": [k.ltv for k in result.debt_kpis],
    }, index=pd.Index([k.year for k in result.debt_kpis], name="year"), dtype=float)


def monthly_cash_flow_frame(result: CapitalEngineResult) -> pd.DataFrame:
    """Monthly cash after debt service with DSCR and LTV (empty unless run monthly)."""
    kpis = result.monthly_debt_kpis
    flows = result.monthly_cash_flow
    frame = pd.DataFrame({
        "year": [f.year for f in flows],
        "noi": [f.noi for f in flows],
        "debt_service": [f.debt_service for f in flows],
        "cash_flow": [f.cash_flow for f in flows],
        "cumulative_cash_flow": [f.cumulative_cash_flow for f in flows],
        "dscr": [k.dscr for k in kpis],
        "ltv": [k.ltv for k in kpis],
    }, index=pd.Index([f.month for f in flows], name="month"))
    frame[["dscr", "ltv"]] = frame[["dscr", "ltv"]].astype(float)
    return frame


def waterfall_frame(result: WaterfallResult) -> pd.DataFrame:
    """Owner cash flow and each partner's cash flow by year."""
    data = {"owner_cash_flow": result.owner_cash_flows}
    for partner in result.partners:
        data[partner.partner_id] = partner.cash_flows
    data["clawback"] = [
        sum(v for v in (row.clawback_adjustments or {}).values() if v > 0)
        for row in result.annual_rows
    ]
    return pd.DataFrame(data, index=pd.Index(range(len(result.owner_cash_flows)), name="year"))


def simulation_frame(result: SimulationResult) -> pd.DataFrame:
    """One row per iteration: multipliers and KPIs."""
    rows: List[dict] = []
    for record in result.iterations:
        row = {"iteration": record.iteration}
        row.update({f"{k}_multiplier": v for k, v in record.multipliers.items()})
        row.update({name: getattr(record.kpis, name) for name in KPI_NAMES})
        rows.append(row)
    return pd.DataFrame(rows)


def statistics_frame(result: SimulationResult) -> pd.DataFrame:
    """KPI statistics, one row per KPI."""
    return pd.DataFrame(
        [
            {
                "kpi": name,
                "mean": stats.mean,
                "p10": stats.p10,
                "p50": stats.p50,
                "p90": stats.p90,
                "std": stats.std,
                "count": stats.count,
            }
            for name, stats in result.statistics.items()
        ]
    ).set_index("kpi")
