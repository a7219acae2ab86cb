"""Error taxonomy for the capital and waterfall engines."""

from typing import Optional


class CapstackError(Exception):
    """Base class for all engine errors."""


class ConfigurationError(CapstackError, ValueError):
    """Fatal, non-retryable configuration problem.

    Raised before any period is computed. The message always names the
    offending field and the tranche or tier it belongs to.
    """

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        tranche_id: Optional[str] = None,
        tier_id: Optional[str] = None,
    ):
        super().__init__(message)
        self.field = field
        self.tranche_id = tranche_id
        self.tier_id = tier_id


class ScheduleReconciliationError(CapstackError, ArithmeticError):
    """A debt schedule whose principal does not reconcile to the loan amount."""

    def __init__(self, tranche_id: str, difference: float):
        super().__init__(
            f"Tranche '{tranche_id}' principal does not reconcile: "
            f"off by {difference:,.4f}"
        )
        self.tranche_id = tranche_id
        self.difference = difference


class SimulationFailure(CapstackError, RuntimeError):
    """A Monte Carlo iteration failed and the whole run was aborted."""

    def __init__(self, iteration: int, original_message: str):
        super().__init__(f"Iteration {iteration} failed: {original_message}")
        self.iteration = iteration
        self.original_message = original_message
