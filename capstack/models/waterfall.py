"""Equity classes and waterfall tier configuration."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from capstack.errors import ConfigurationError
from capstack.models.base import get_field, parse_enum

SPLIT_TOLERANCE = 1e-6


class TierType(str, Enum):
    """Kind of waterfall tier."""
    RETURN_OF_CAPITAL = "return_of_capital"
    PREFERRED_RETURN = "preferred_return"
    PROMOTE = "promote"


class AccrualMethod(str, Enum):
    """How the preferred return accrues."""
    CUMULATIVE = "CUMULATIVE"                 # Simple, unpaid pref carries forward
    NON_CUMULATIVE = "NON_CUMULATIVE"         # Simple, unpaid pref forfeited at year end
    IRR_HURDLE = "irr_hurdle"                 # Compounds at the hurdle IRR
    COMPOUND_INTEREST = "compound_interest"   # Compounds at the pref rate


class ClawbackTrigger(str, Enum):
    """When clawback is evaluated."""
    FINAL_PERIOD = "final_period"
    ANNUAL = "annual"


class ClawbackMethod(str, Enum):
    """How over-distribution is measured."""
    HYPOTHETICAL_LIQUIDATION = "hypothetical_liquidation"
    LOOKBACK = "lookback"


@dataclass
class EquityClass:
    """An equity partner (or class of partners).

    Attributes:
        id: Partner identifier referenced by tier splits
        name: Display name
        contribution_pct: Share of total equity contributed
        distribution_pct: Optional override of the pro-rata split when no
            tiers are configured
    """
    id: str
    name: str = ""
    contribution_pct: float = 1.0
    distribution_pct: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "EquityClass":
        """Build an equity class from a scenario payload."""
        return cls(
            id=str(get_field(data, "id")),
            name=get_field(data, "name", ""),
            contribution_pct=float(get_field(data, "contribution_pct", 1.0)),
            distribution_pct=get_field(data, "distribution_pct", None),
        )


@dataclass
class WaterfallTier:
    """One ordered allocation rule.

    Attributes:
        id: Tier identifier
        tier_type: Return of capital, preferred return or promote
        distribution_splits: Partner id -> share of this tier's cash
        hurdle_irr: Hurdle for promote tiers (and rate for irr_hurdle pref)
        pref_rate: Preferred return rate
        accrual_method: Preferred return accrual method
        compound_pref: Compound accrued-on-accrued regardless of method
        enable_catch_up: Route cash to promote partners before the split
        catch_up_target_split: Partner id -> target cumulative profit share
        catch_up_rate: Share of catch-up cash going to catch-up recipients
        enable_clawback: Evaluate clawback for this tier
        clawback_trigger: When to evaluate
        clawback_method: How to measure over-distribution
    """
    id: str
    tier_type: TierType
    distribution_splits: Dict[str, float] = field(default_factory=dict)
    hurdle_irr: Optional[float] = None
    pref_rate: Optional[float] = None
    accrual_method: AccrualMethod = AccrualMethod.CUMULATIVE
    compound_pref: bool = False
    enable_catch_up: bool = False
    catch_up_target_split: Dict[str, float] = field(default_factory=dict)
    catch_up_rate: float = 1.0
    enable_clawback: bool = False
    clawback_trigger: ClawbackTrigger = ClawbackTrigger.FINAL_PERIOD
    clawback_method: ClawbackMethod = ClawbackMethod.HYPOTHETICAL_LIQUIDATION

    @property
    def accrual_rate(self) -> Optional[float]:
        """Rate at which the preferred balance accrues."""
        if self.accrual_method == AccrualMethod.IRR_HURDLE:
            return self.hurdle_irr if self.hurdle_irr is not None else self.pref_rate
        return self.pref_rate if self.pref_rate is not None else self.hurdle_irr

    @property
    def compounds(self) -> bool:
        """Whether accrued pref itself earns pref."""
        return self.compound_pref or self.accrual_method in (
            AccrualMethod.COMPOUND_INTEREST,
            AccrualMethod.IRR_HURDLE,
        )

    def _invalid(self, field_name: str, reason: str) -> ConfigurationError:
        return ConfigurationError(
            f"Invalid tier '{self.id}': {reason}", field=field_name, tier_id=self.id
        )

    def validate(self, partner_ids: List[str]) -> None:
        """Check splits and rates against the configured partners.

        Raises:
            ConfigurationError: naming the tier and field at fault
        """
        _check_split(self, "distribution_splits", self.distribution_splits, partner_ids)

        if self.tier_type == TierType.PREFERRED_RETURN:
            rate = self.accrual_rate
            if rate is None:
                raise self._invalid(
                    "pref_rate", "preferred_return tier requires prefRate or hurdleIrr"
                )
            if rate < 0:
                raise self._invalid("pref_rate", f"prefRate cannot be negative (got {rate})")

        if self.enable_catch_up:
            if self.tier_type != TierType.PROMOTE:
                raise self._invalid(
                    "enable_catch_up", "catch-up is only supported on promote tiers"
                )
            _check_split(
                self, "catch_up_target_split", self.catch_up_target_split, partner_ids
            )
            if not 0 < self.catch_up_rate <= 1:
                raise self._invalid(
                    "catch_up_rate",
                    f"catchUpRate must be in (0, 1] (got {self.catch_up_rate})",
                )

        if self.hurdle_irr is not None and self.hurdle_irr <= -1:
            raise self._invalid("hurdle_irr", f"hurdleIrr must be > -1 (got {self.hurdle_irr})")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WaterfallTier":
        """Build a tier from a scenario payload."""
        return cls(
            id=str(get_field(data, "id")),
            tier_type=parse_enum(
                TierType, get_field(data, "tier_type", get_field(data, "type", None)), "tier_type"
            ),
            distribution_splits=dict(get_field(data, "distribution_splits", {})),
            hurdle_irr=get_field(data, "hurdle_irr", None),
            pref_rate=get_field(data, "pref_rate", None),
            accrual_method=parse_enum(
                AccrualMethod, get_field(data, "accrual_method", "CUMULATIVE"), "accrual_method"
            ),
            compound_pref=bool(get_field(data, "compound_pref", False)),
            enable_catch_up=bool(get_field(data, "enable_catch_up", False)),
            catch_up_target_split=dict(get_field(data, "catch_up_target_split", {}) or {}),
            catch_up_rate=float(get_field(data, "catch_up_rate", 1.0)),
            enable_clawback=bool(get_field(data, "enable_clawback", False)),
            clawback_trigger=parse_enum(
                ClawbackTrigger, get_field(data, "clawback_trigger", "final_period"), "clawback_trigger"
            ),
            clawback_method=parse_enum(
                ClawbackMethod,
                get_field(data, "clawback_method", "hypothetical_liquidation"),
                "clawback_method",
            ),
        )


def _check_split(
    tier: WaterfallTier, field_name: str, split: Dict[str, float], partner_ids: List[str]
) -> None:
    unknown = [pid for pid in split if pid not in partner_ids]
    if unknown:
        raise ConfigurationError(
            f"Invalid tier '{tier.id}': {field_name} references unknown partner(s) "
            f"{', '.join(sorted(unknown))}",
            field=field_name,
            tier_id=tier.id,
        )
    if any(share < 0 for share in split.values()):
        raise ConfigurationError(
            f"Invalid tier '{tier.id}': {field_name} cannot contain negative shares",
            field=field_name,
            tier_id=tier.id,
        )
    total = sum(split.values())
    if abs(total - 1.0) > SPLIT_TOLERANCE:
        raise ConfigurationError(
            f"Invalid tier '{tier.id}': {field_name} must sum to 1.0 (got {total:.6f})",
            field=field_name,
            tier_id=tier.id,
        )


@dataclass
class WaterfallConfig:
    """Partners and ordered tiers."""
    equity_classes: List[EquityClass] = field(default_factory=list)
    tiers: List[WaterfallTier] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WaterfallConfig":
        """Build a waterfall configuration from a scenario payload."""
        return cls(
            equity_classes=[
                EquityClass.from_dict(e) for e in get_field(data, "equity_classes", [])
            ],
            tiers=[WaterfallTier.from_dict(t) for t in get_field(data, "tiers", [])],
        )
