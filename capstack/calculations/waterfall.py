"""Multi-tier equity waterfall with preferred return, catch-up and clawback.

Owner-level levered cash flows are allocated among partners one year at a
time. Negative cash flows are capital calls split by contribution; positive
cash flows run through the configured tiers in order:

1. return_of_capital: up to each partner's unreturned contribution
2. preferred_return: up to each partner's accrued and unpaid pref
3. promote: optional catch-up to a target profit split, then the tier split

Clawback is a second pass over the finished allocation. It never changes the
allocation itself; corrections are reported per year in a separate
adjustment map that always nets to zero.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from capstack.calculations.financial import cumulative_sum, equity_multiple, irr
from capstack.errors import ConfigurationError
from capstack.models.waterfall import (
    AccrualMethod,
    ClawbackMethod,
    ClawbackTrigger,
    EquityClass,
    TierType,
    WaterfallConfig,
    WaterfallTier,
)
from capstack.result import EngineResult, capture

logger = logging.getLogger(__name__)

EPSILON = 1e-9
CLAWBACK_THRESHOLD = 1e-6
RESIDUAL_TIER = "residual"
CAPITAL_CALL = "capital_call"


@dataclass
class PartnerResult:
    """One partner's cash flows and returns.

    ``cash_flows`` is negative when the partner contributes and includes
    clawback adjustments.
    """
    partner_id: str
    name: str
    contribution_pct: float
    cash_flows: List[float]
    cumulative: List[float]
    total_contributed: float
    total_distributed: float
    irr: Optional[float]
    moic: Optional[float]
    by_tier: Dict[str, float] = field(default_factory=dict)


@dataclass
class AnnualWaterfallRow:
    """Allocation of one year's owner cash flow."""
    year: int
    owner_cash_flow: float
    partner_distributions: Dict[str, float]
    tier_distributions: Dict[str, Dict[str, float]] = field(default_factory=dict)
    clawback_adjustments: Optional[Dict[str, float]] = None

    @property
    def adjustment_total(self) -> float:
        if not self.clawback_adjustments:
            return 0.0
        return sum(self.clawback_adjustments.values())


@dataclass
class WaterfallResult:
    """Output of the waterfall engine."""
    owner_cash_flows: List[float]
    partners: List[PartnerResult]
    annual_rows: List[AnnualWaterfallRow]

    def partner(self, partner_id: str) -> PartnerResult:
        for partner in self.partners:
            if partner.partner_id == partner_id:
                return partner
        raise KeyError(partner_id)

    @property
    def total_clawback(self) -> float:
        """Sum of positive adjustments (cash moved between partners)."""
        total = 0.0
        for row in self.annual_rows:
            if row.clawback_adjustments:
                total += sum(v for v in row.clawback_adjustments.values() if v > 0)
        return total

    def check_conservation(self, tolerance: float = 1e-6) -> List[int]:
        """Years whose distributions plus adjustments miss the owner cash flow."""
        violations = []
        for row in self.annual_rows:
            allocated = sum(row.partner_distributions.values()) + row.adjustment_total
            if abs(allocated - row.owner_cash_flow) > tolerance:
                violations.append(row.year)
        return violations

    def summary(self) -> str:
        """Return a formatted summary of partner returns."""
        lines = [
            "=" * 60,
            "EQUITY WATERFALL",
            "=" * 60,
            f"{'Partner':<20} {'Contributed':>12} {'Distributed':>12} {'IRR':>7} {'MOIC':>6}",
            "-" * 60,
        ]
        for p in self.partners:
            irr_text = f"{p.irr:>7.2%}" if p.irr is not None else f"{'n/a':>7}"
            moic_text = f"{p.moic:>5.2f}x" if p.moic is not None else f"{'n/a':>6}"
            lines.append(
                f"{(p.name or p.partner_id):<20} {p.total_contributed:>12,.0f} "
                f"{p.total_distributed:>12,.0f} {irr_text} {moic_text}"
            )
        if self.total_clawback > 0:
            lines.append(f"Clawback moved between partners: {self.total_clawback:,.2f}")
        lines.append("=" * 60)
        return "\n".join(lines)


@dataclass
class _PartnerState:
    contributed: float = 0.0
    unreturned: float = 0.0
    profit_received: float = 0.0
    pref_balance: Dict[str, float] = field(default_factory=dict)


@dataclass
class _YearAllocation:
    partner: Dict[str, float]
    by_tier: Dict[str, Dict[str, float]]
    promote: Dict[str, float]
    last_credit: Optional[Tuple[str, str]] = None  # (tier id, partner id)


def _normalize(values: Dict[str, float]) -> Dict[str, float]:
    total = sum(values.values())
    if total <= 0:
        return {key: 1.0 / len(values) for key in values}
    return {key: value / total for key, value in values.items()}


def _split(amount: float, weights: Dict[str, float]) -> Dict[str, float]:
    """Split ``amount`` by normalized weights; the last partner takes the remainder."""
    result = {pid: 0.0 for pid in weights}
    receivers = [pid for pid, w in weights.items() if w > 0]
    if not receivers:
        return result
    allocated = 0.0
    for pid in receivers[:-1]:
        share = amount * weights[pid]
        result[pid] = share
        allocated += share
    result[receivers[-1]] = amount - allocated
    return result


def _water_fill(
    amount: float, weights: Dict[str, float], needs: Dict[str, float]
) -> Dict[str, float]:
    """Allocate ``amount`` by weight, capping each partner at their need.

    Cash a capped partner cannot take is reallocated among the partners
    that still have need.
    """
    allocation = {pid: 0.0 for pid in weights}
    remaining = amount
    active = [pid for pid, w in weights.items() if w > 0 and needs.get(pid, 0.0) > EPSILON]
    while remaining > EPSILON and active:
        total_weight = sum(weights[pid] for pid in active)
        still_active = []
        distributed = 0.0
        for pid in active:
            room = needs[pid] - allocation[pid]
            give = min(remaining * weights[pid] / total_weight, room)
            allocation[pid] += give
            distributed += give
            if room - give > EPSILON:
                still_active.append(pid)
        remaining -= distributed
        if len(still_active) == len(active):
            break
        active = still_active
    return allocation


def _resolve_classes(equity_classes: Sequence[EquityClass]) -> List[EquityClass]:
    if not equity_classes:
        return [EquityClass(id="owner", name="Owner", contribution_pct=1.0)]
    return list(equity_classes)


def validate_waterfall(equity_classes: Sequence[EquityClass], tiers: Sequence[WaterfallTier]) -> None:
    """Reject invalid partner or tier configuration before any year is computed.

    Raises:
        ConfigurationError: naming the tier or partner at fault
    """
    ids = [c.id for c in equity_classes]
    if len(set(ids)) != len(ids):
        raise ConfigurationError("Duplicate equity class id", field="equity_classes")
    for equity_class in equity_classes:
        if equity_class.contribution_pct < 0:
            raise ConfigurationError(
                f"Invalid equity class '{equity_class.id}': contributionPct cannot be negative",
                field="contribution_pct",
            )
    for tier in tiers:
        tier.validate(ids)


class _WaterfallLedger:
    """Causal, year-by-year allocation state."""

    def __init__(self, classes: List[EquityClass], tiers: List[WaterfallTier]):
        self.classes = classes
        self.tiers = tiers
        self.ids = [c.id for c in classes]
        self.contribution_weights = _normalize({c.id: c.contribution_pct for c in classes})
        self.lead_id = max(classes, key=lambda c: c.contribution_pct).id
        self.state = {pid: _PartnerState() for pid in self.ids}
        for tier in tiers:
            if tier.tier_type == TierType.PREFERRED_RETURN:
                for pid in self.ids:
                    self.state[pid].pref_balance[tier.id] = 0.0
        # Amount the lead investor still needs to reach each promote hurdle
        self.hurdle_accounts = {
            t.id: 0.0 for t in tiers
            if t.tier_type == TierType.PROMOTE and t.hurdle_irr is not None
        }

    def allocate(self, year: int, cash: float) -> _YearAllocation:
        if year > 0:
            self._accrue()

        allocation = _YearAllocation(
            partner={pid: 0.0 for pid in self.ids}, by_tier={}, promote={pid: 0.0 for pid in self.ids}
        )
        if cash < 0:
            calls = _split(cash, self.contribution_weights)
            for pid, amount in calls.items():
                self.state[pid].contributed -= amount
                self.state[pid].unreturned -= amount
                allocation.partner[pid] = amount
            allocation.by_tier[CAPITAL_CALL] = calls
            for tier_id in self.hurdle_accounts:
                self.hurdle_accounts[tier_id] -= calls[self.lead_id]
        elif cash > 0:
            self._distribute(cash, allocation)
            for tier_id in self.hurdle_accounts:
                self.hurdle_accounts[tier_id] -= allocation.partner[self.lead_id]

        self._forfeit_non_cumulative()
        return allocation

    def _accrue(self) -> None:
        for tier in self.tiers:
            if tier.tier_type != TierType.PREFERRED_RETURN:
                continue
            rate = tier.accrual_rate or 0.0
            for pid, share in tier.distribution_splits.items():
                if share <= 0:
                    continue
                state = self.state[pid]
                base = state.unreturned
                if tier.compounds:
                    base += state.pref_balance[tier.id]
                state.pref_balance[tier.id] += base * rate
        for tier in self.tiers:
            if tier.id in self.hurdle_accounts:
                self.hurdle_accounts[tier.id] *= 1 + tier.hurdle_irr

    def _forfeit_non_cumulative(self) -> None:
        for tier in self.tiers:
            if tier.accrual_method != AccrualMethod.NON_CUMULATIVE:
                continue
            if tier.tier_type == TierType.PREFERRED_RETURN:
                for pid in self.ids:
                    self.state[pid].pref_balance[tier.id] = 0.0

    def _credit(self, allocation: _YearAllocation, tier_id: str, amounts: Dict[str, float],
                is_profit: bool = True, is_promote: bool = False) -> float:
        bucket = allocation.by_tier.setdefault(tier_id, {pid: 0.0 for pid in self.ids})
        total = 0.0
        for pid, amount in amounts.items():
            if amount == 0:
                continue
            bucket[pid] += amount
            allocation.partner[pid] += amount
            allocation.last_credit = (tier_id, pid)
            if is_profit:
                self.state[pid].profit_received += amount
            if is_promote:
                allocation.promote[pid] += amount
            total += amount
        return total

    def _distribute(self, cash: float, allocation: _YearAllocation) -> None:
        remaining = cash
        last_index = len(self.tiers) - 1
        for index, tier in enumerate(self.tiers):
            if remaining <= EPSILON:
                break
            if tier.tier_type == TierType.RETURN_OF_CAPITAL:
                needs = {pid: self.state[pid].unreturned for pid in self.ids}
                amounts = _water_fill(remaining, tier.distribution_splits, needs)
                for pid, amount in amounts.items():
                    self.state[pid].unreturned -= amount
                remaining -= self._credit(allocation, tier.id, amounts, is_profit=False)
            elif tier.tier_type == TierType.PREFERRED_RETURN:
                needs = {pid: self.state[pid].pref_balance[tier.id] for pid in self.ids}
                amounts = _water_fill(remaining, tier.distribution_splits, needs)
                for pid, amount in amounts.items():
                    self.state[pid].pref_balance[tier.id] -= amount
                remaining -= self._credit(allocation, tier.id, amounts)
            elif tier.tier_type == TierType.PROMOTE:
                budget = self._promote_budget(tier, remaining, allocation, index == last_index)
                spent = 0.0
                if tier.enable_catch_up:
                    catch_up = self._catch_up(tier, budget)
                    spent += self._credit(
                        allocation, f"{tier.id}:catch_up", catch_up, is_promote=True
                    )
                if budget - spent > EPSILON:
                    amounts = _split(budget - spent, tier.distribution_splits)
                    spent += self._credit(allocation, tier.id, amounts, is_promote=True)
                remaining -= spent
            else:
                raise ConfigurationError(
                    f"Unsupported tier type '{tier.tier_type}'", field="tier_type", tier_id=tier.id
                )

        leftover = cash - sum(allocation.partner.values())
        if leftover > EPSILON or (leftover != 0 and allocation.last_credit is None):
            logger.debug("%.2f left after all tiers; split by contribution", leftover)
            self._credit(allocation, RESIDUAL_TIER, _split(leftover, self.contribution_weights))
        elif leftover != 0:
            # Rounding remainder closes onto the last partner paid
            tier_id, pid = allocation.last_credit
            allocation.by_tier[tier_id][pid] += leftover
            allocation.partner[pid] += leftover

    def _promote_budget(self, tier: WaterfallTier, remaining: float,
                        allocation: _YearAllocation, is_last: bool) -> float:
        """Cash this promote tier may use before its hurdle is met."""
        if tier.hurdle_irr is None or is_last:
            return remaining
        lead_share = tier.distribution_splits.get(self.lead_id, 0.0)
        if lead_share <= 0:
            return remaining
        lead_need = self.hurdle_accounts[tier.id] - allocation.partner[self.lead_id]
        return min(remaining, max(lead_need, 0.0) / lead_share)

    def _catch_up(self, tier: WaterfallTier, budget: float) -> Dict[str, float]:
        """Cash routed to promote partners until they reach the target split."""
        target = tier.catch_up_target_split
        recipients = [
            pid for pid, share in target.items()
            if share > self.contribution_weights.get(pid, 0.0)
        ]
        if not recipients or budget <= EPSILON:
            return {}
        others = [pid for pid, share in target.items() if share > 0 and pid not in recipients]

        target_share = sum(target[pid] for pid in recipients)
        received = sum(self.state[pid].profit_received for pid in recipients)
        total = sum(s.profit_received for s in self.state.values())
        rate = tier.catch_up_rate if others else 1.0

        if rate > target_share:
            needed = (target_share * total - received) / (rate - target_share)
            amount = min(budget, max(needed, 0.0))
        else:
            amount = budget
        if amount <= EPSILON:
            return {}

        result = _split(amount * rate, _normalize({pid: target[pid] for pid in recipients}))
        if others:
            result.update(
                _split(amount * (1 - rate), _normalize({pid: target[pid] for pid in others}))
            )
        return result


def _allocate(
    cash_flows: Sequence[float], classes: List[EquityClass], tiers: List[WaterfallTier]
) -> List[_YearAllocation]:
    if not tiers:
        return _allocate_pro_rata(cash_flows, classes)
    ledger = _WaterfallLedger(classes, tiers)
    return [ledger.allocate(year, cash) for year, cash in enumerate(cash_flows)]


def _allocate_pro_rata(cash_flows: Sequence[float], classes: List[EquityClass]) -> List[_YearAllocation]:
    contribution = _normalize({c.id: c.contribution_pct for c in classes})
    distribution = _normalize({
        c.id: c.distribution_pct if c.distribution_pct is not None else c.contribution_pct
        for c in classes
    })
    allocations = []
    for cash in cash_flows:
        amounts = _split(cash, contribution if cash < 0 else distribution)
        key = CAPITAL_CALL if cash < 0 else RESIDUAL_TIER
        allocations.append(_YearAllocation(
            partner=amounts,
            by_tier={key: dict(amounts)},
            promote={c.id: 0.0 for c in classes},
        ))
    return allocations


def _net_later_calls(cash_flows: Sequence[float]) -> List[float]:
    """Net capital calls against earlier distributions, latest first."""
    netted = list(cash_flows)
    for t, cash in enumerate(netted):
        if cash >= 0:
            continue
        deficit = -cash
        for s in range(t - 1, -1, -1):
            if deficit <= 0:
                break
            if netted[s] > 0:
                taken = min(netted[s], deficit)
                netted[s] -= taken
                deficit -= taken
        netted[t] = -deficit
    return netted


def _promote_partner(classes: List[EquityClass]) -> str:
    """Partner with the smallest contribution (the last one on ties)."""
    smallest = min(c.contribution_pct for c in classes)
    return [c.id for c in classes if c.contribution_pct == smallest][-1]


def _zero_sum(adjustments: Dict[str, float], anchor: str) -> Dict[str, float]:
    others = sum(v for pid, v in adjustments.items() if pid != anchor)
    adjustments[anchor] = -others
    return adjustments


class _ClawbackPass:
    """Evaluates clawback over a finished allocation."""

    def __init__(self, cash_flows: Sequence[float], classes: List[EquityClass],
                 tiers: List[WaterfallTier], allocations: List[_YearAllocation]):
        self.cash_flows = list(cash_flows)
        self.classes = classes
        self.tiers = tiers
        self.allocations = allocations
        self.ids = [c.id for c in classes]
        self.promote_partner = _promote_partner(classes)
        self.adjustments: List[Dict[str, float]] = [{} for _ in cash_flows]
        self.clawed_promote = 0.0

    def run(self) -> List[Dict[str, float]]:
        last_year = len(self.cash_flows) - 1
        if last_year < 1:
            return self.adjustments
        for tier in self.tiers:
            if not tier.enable_clawback:
                continue
            if tier.clawback_trigger == ClawbackTrigger.FINAL_PERIOD:
                years = [last_year]
            elif tier.clawback_trigger == ClawbackTrigger.ANNUAL:
                years = list(range(1, last_year + 1))
            else:
                raise ConfigurationError(
                    f"Unsupported clawback trigger '{tier.clawback_trigger}'",
                    field="clawback_trigger", tier_id=tier.id,
                )
            for year in years:
                self._evaluate(tier, year)
        return self.adjustments

    def _actual_to_date(self, year: int) -> Dict[str, float]:
        totals = {pid: 0.0 for pid in self.ids}
        for t in range(year + 1):
            for pid in self.ids:
                totals[pid] += self.allocations[t].partner[pid]
                totals[pid] += self.adjustments[t].get(pid, 0.0)
        return totals

    def _record(self, year: int, adjustments: Dict[str, float]) -> None:
        if all(abs(v) <= CLAWBACK_THRESHOLD for v in adjustments.values()):
            return
        row = self.adjustments[year]
        for pid, amount in adjustments.items():
            row[pid] = row.get(pid, 0.0) + amount
        logger.info(
            "Clawback in year %d moved %.2f between partners",
            year, sum(v for v in adjustments.values() if v > 0),
        )

    def _evaluate(self, tier: WaterfallTier, year: int) -> None:
        if tier.clawback_method == ClawbackMethod.HYPOTHETICAL_LIQUIDATION:
            self._hypothetical_liquidation(year)
        elif tier.clawback_method == ClawbackMethod.LOOKBACK:
            self._lookback(tier, year)
        else:
            raise ConfigurationError(
                f"Unsupported clawback method '{tier.clawback_method}'",
                field="clawback_method", tier_id=tier.id,
            )

    def _hypothetical_liquidation(self, year: int) -> None:
        netted = _net_later_calls(self.cash_flows[:year + 1])
        hypothetical = _allocate(netted, self.classes, self.tiers)
        actual = self._actual_to_date(year)
        adjustments = {
            pid: sum(a.partner[pid] for a in hypothetical) - actual[pid] for pid in self.ids
        }
        self._record(year, _zero_sum(adjustments, self.ids[-1]))

    def _lookback(self, tier: WaterfallTier, year: int) -> None:
        gp = self.promote_partner
        if tier.tier_type == TierType.PROMOTE:
            promote_pct = tier.distribution_splits.get(gp, 0.0)
        else:
            promote_tiers = [t for t in self.tiers if t.tier_type == TierType.PROMOTE]
            promote_pct = promote_tiers[-1].distribution_splits.get(gp, 0.0) if promote_tiers else 0.0

        profit = max(sum(self.cash_flows[:year + 1]), 0.0)
        received = sum(a.promote[gp] for a in self.allocations[:year + 1]) - self.clawed_promote
        excess = received - promote_pct * profit
        if excess <= CLAWBACK_THRESHOLD:
            return

        others = {c.id: c.contribution_pct for c in self.classes if c.id != gp}
        if not others:
            return
        adjustments = _split(excess, _normalize(others))
        adjustments[gp] = -excess
        self.clawed_promote += excess
        self._record(year, adjustments)


def run_waterfall(
    owner_cash_flows: Sequence[float],
    equity_classes: Sequence[EquityClass],
    tiers: Sequence[WaterfallTier],
) -> WaterfallResult:
    """Allocate owner-level levered cash flows among partners.

    Args:
        owner_cash_flows: Equity cash flows, index 0 = closing
        equity_classes: Partners (empty = a single owner at 100%)
        tiers: Ordered tiers (empty = pro-rata split)

    Returns:
        WaterfallResult with annual rows and per-partner series

    Raises:
        ConfigurationError: for invalid splits or rates, before any year is computed
    """
    classes = _resolve_classes(equity_classes)
    tiers = list(tiers)
    validate_waterfall(classes, tiers)

    flows = [float(cf) for cf in owner_cash_flows]
    allocations = _allocate(flows, classes, tiers)
    adjustments = _ClawbackPass(flows, classes, tiers, allocations).run()

    rows = []
    for year, (cash, allocation) in enumerate(zip(flows, allocations)):
        rows.append(AnnualWaterfallRow(
            year=year,
            owner_cash_flow=cash,
            partner_distributions=dict(allocation.partner),
            tier_distributions={k: dict(v) for k, v in allocation.by_tier.items()},
            clawback_adjustments=dict(adjustments[year]) if adjustments[year] else None,
        ))

    contribution = _normalize({c.id: c.contribution_pct for c in classes})
    partners = []
    for equity_class in classes:
        pid = equity_class.id
        series = [
            allocation.partner[pid] + adjustments[year].get(pid, 0.0)
            for year, allocation in enumerate(allocations)
        ]
        by_tier: Dict[str, float] = {}
        for allocation in allocations:
            for tier_id, amounts in allocation.by_tier.items():
                by_tier[tier_id] = by_tier.get(tier_id, 0.0) + amounts.get(pid, 0.0)
        partners.append(PartnerResult(
            partner_id=pid,
            name=equity_class.name,
            contribution_pct=contribution[pid],
            cash_flows=series,
            cumulative=cumulative_sum(series),
            total_contributed=-sum(cf for cf in series if cf < 0),
            total_distributed=sum(cf for cf in series if cf > 0),
            irr=irr(series),
            moic=equity_multiple(series),
            by_tier=by_tier,
        ))

    return WaterfallResult(owner_cash_flows=flows, partners=partners, annual_rows=rows)


def run_waterfall_config(owner_cash_flows: Sequence[float], config: WaterfallConfig) -> WaterfallResult:
    """Run the waterfall from a WaterfallConfig."""
    return run_waterfall(owner_cash_flows, config.equity_classes, config.tiers)


def distribute(
    owner_cash_flows: Sequence[float],
    equity_classes: Sequence[EquityClass],
    tiers: Sequence[WaterfallTier],
) -> EngineResult:
    """Run the waterfall, returning EngineSuccess or EngineFailure."""
    return capture(run_waterfall, owner_cash_flows, equity_classes, tiers)
