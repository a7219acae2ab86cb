"""Debt tranche and capital structure inputs."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from capstack.errors import ConfigurationError
from capstack.models.base import get_field, parse_enum


class TrancheType(str, Enum):
    """Seniority class of a debt tranche."""
    SENIOR = "senior"
    MEZZ = "mezz"
    BRIDGE = "bridge"
    OTHER = "other"


class Seniority(str, Enum):
    """Explicit lien position, used for senior-only coverage ratios."""
    SENIOR = "senior"
    MEZZANINE = "mezzanine"
    SUBORDINATE = "subordinate"


class AmortizationType(str, Enum):
    """How principal is repaid over the life of a tranche."""
    INTEREST_ONLY = "interest_only"   # Interest only, balloon at term end
    MORTGAGE = "mortgage"             # Level payment over amortization period
    BULLET = "bullet"                 # Interest only, principal repaid at term end


@dataclass
class DebtTranche:
    """A single slice of debt financing.

    Attributes:
        id: Unique tranche identifier
        label: Display name
        tranche_type: Seniority class
        initial_principal: Amount funded at drawdown
        interest_rate: Annual interest rate
        term_years: Years from drawdown to maturity
        amortization_type: Repayment policy
        amortization_years: Amortization period for mortgages (None = term).
            A period longer than the term balloons at maturity.
        io_years: Interest-only years before mortgage amortization starts
        start_year: Year of drawdown (0 = at closing)
        refinance_at_year: Year in which the tranche is refinanced (optional)
        refinance_amount_pct: Share of outstanding balance repaid at refinance
        origination_fee_pct: Fee on principal, charged at drawdown
        exit_fee_pct: Fee on the amount repaid at maturity or refinance
        seniority: Explicit lien position (None = derived from tranche_type)
    """
    id: str
    initial_principal: Optional[float]
    interest_rate: float = 0.0
    term_years: int = 0
    amortization_type: AmortizationType = AmortizationType.MORTGAGE
    amortization_years: Optional[int] = None
    io_years: int = 0
    start_year: int = 0
    refinance_at_year: Optional[int] = None
    refinance_amount_pct: float = 1.0
    origination_fee_pct: float = 0.0
    exit_fee_pct: float = 0.0
    tranche_type: TrancheType = TrancheType.SENIOR
    seniority: Optional[Seniority] = None
    label: str = ""

    @property
    def principal(self) -> float:
        """Funded principal (0 when unset)."""
        return self.initial_principal or 0.0

    @property
    def effective_amortization_years(self) -> int:
        """Amortization period, defaulting to the term."""
        if self.amortization_years is None:
            return self.term_years
        return self.amortization_years

    @property
    def effective_seniority(self) -> Seniority:
        """Lien position used for senior DSCR."""
        if self.seniority is not None:
            return self.seniority
        if self.tranche_type == TrancheType.MEZZ:
            return Seniority.MEZZANINE
        return Seniority.SENIOR

    @property
    def maturity_year(self) -> int:
        """First year after the active window."""
        return self.start_year + self.term_years

    def _invalid(self, field_name: str, reason: str) -> ConfigurationError:
        return ConfigurationError(
            f"Invalid tranche '{self.id}': {reason}",
            field=field_name,
            tranche_id=self.id,
        )

    def validate(self) -> None:
        """Reject configurations that cannot be scheduled.

        Raises:
            ConfigurationError: naming the tranche and field at fault
        """
        if self.initial_principal is None:
            raise self._invalid(
                "initial_principal", "missing required initialPrincipal"
            )
        if self.initial_principal < 0:
            raise self._invalid(
                "initial_principal",
                f"initial principal cannot be negative (got {self.initial_principal})",
            )
        funded = self.initial_principal > 0
        if funded and self.term_years <= 0:
            raise self._invalid(
                "term_years",
                f"termYears must be > 0 when principal is funded (got {self.term_years})",
            )
        explicit = self.amortization_years is not None
        if (
            (funded or explicit)
            and self.amortization_type == AmortizationType.MORTGAGE
            and self.effective_amortization_years <= 0
        ):
            raise self._invalid(
                "amortization_years",
                "amortizationYears must be > 0 for mortgage amortization "
                f"(got {self.effective_amortization_years})",
            )
        if self.io_years < 0:
            raise self._invalid(
                "io_years", f"ioYears cannot be negative (got {self.io_years})"
            )
        if self.start_year < 0:
            raise self._invalid(
                "start_year", f"startYear cannot be negative (got {self.start_year})"
            )
        if not 0 < self.refinance_amount_pct <= 1:
            raise self._invalid(
                "refinance_amount_pct",
                "refinanceAmountPct must be in (0, 1] "
                f"(got {self.refinance_amount_pct})",
            )
        if self.origination_fee_pct < 0 or self.exit_fee_pct < 0:
            raise self._invalid("origination_fee_pct", "fee percentages cannot be negative")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DebtTranche":
        """Build a tranche from a scenario payload."""
        seniority = get_field(data, "seniority", None)
        return cls(
            id=str(get_field(data, "id")),
            label=get_field(data, "label", ""),
            tranche_type=parse_enum(
                TrancheType, get_field(data, "tranche_type", get_field(data, "type", "senior")),
                "tranche_type",
            ),
            initial_principal=get_field(data, "initial_principal", None),
            interest_rate=float(get_field(data, "interest_rate", 0.0)),
            term_years=int(get_field(data, "term_years", 0)),
            amortization_type=parse_enum(
                AmortizationType,
                get_field(data, "amortization_type", "mortgage"),
                "amortization_type",
            ),
            amortization_years=get_field(data, "amortization_years", None),
            io_years=int(get_field(data, "io_years", 0)),
            start_year=int(get_field(data, "start_year", 0)),
            refinance_at_year=get_field(data, "refinance_at_year", None),
            refinance_amount_pct=float(get_field(data, "refinance_amount_pct", 1.0)),
            origination_fee_pct=float(get_field(data, "origination_fee_pct", 0.0)),
            exit_fee_pct=float(get_field(data, "exit_fee_pct", 0.0)),
            seniority=parse_enum(Seniority, seniority, "seniority") if seniority else None,
        )


@dataclass
class CapitalStructure:
    """Total project cost and the debt that funds part of it."""
    initial_investment: float
    tranches: List[DebtTranche] = field(default_factory=list)
    repay_debt_at_exit: bool = True

    @property
    def total_debt(self) -> float:
        """Sum of tranche principal."""
        return sum(t.principal for t in self.tranches)

    def validate(self) -> None:
        """Validate every tranche, then the structure itself."""
        seen = set()
        for tranche in self.tranches:
            tranche.validate()
            if tranche.id in seen:
                raise ConfigurationError(
                    f"Duplicate tranche id '{tranche.id}'",
                    field="id",
                    tranche_id=tranche.id,
                )
            seen.add(tranche.id)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "CapitalStructure":
        """Build a capital structure from a scenario payload."""
        return cls(
            initial_investment=float(get_field(data, "initial_investment")),
            tranches=[
                DebtTranche.from_dict(t) for t in get_field(data, "tranches", get_field(data, "debt_tranches", []))
            ],
            repay_debt_at_exit=bool(get_field(data, "repay_debt_at_exit", True)),
        )
