"""Success/failure result type for the public engine boundary."""

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, List, TypeVar, Union

from capstack.errors import (
    CapstackError,
    ConfigurationError,
    ScheduleReconciliationError,
    SimulationFailure,
)

T = TypeVar("T")


@dataclass
class EngineSuccess(Generic[T]):
    """A completed engine run."""
    data: T
    warnings: List[str] = field(default_factory=list)
    ok: bool = True


@dataclass
class EngineFailure:
    """A run rejected or aborted by the engine."""
    code: str
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    ok: bool = False


EngineResult = Union[EngineSuccess, EngineFailure]


def failure_from_error(error: CapstackError) -> EngineFailure:
    """Translate an engine error into an EngineFailure."""
    if isinstance(error, ConfigurationError):
        details = {
            key: value for key, value in (
                ("field", error.field),
                ("tranche_id", error.tranche_id),
                ("tier_id", error.tier_id),
            ) if value is not None
        }
        return EngineFailure(code="CONFIGURATION_ERROR", message=str(error), details=details)
    if isinstance(error, SimulationFailure):
        return EngineFailure(
            code="SIMULATION_FAILURE",
            message=str(error),
            details={"iteration": error.iteration, "original_message": error.original_message},
        )
    if isinstance(error, ScheduleReconciliationError):
        return EngineFailure(
            code="RECONCILIATION_ERROR",
            message=str(error),
            details={"tranche_id": error.tranche_id, "difference": error.difference},
        )
    return EngineFailure(code="ENGINE_ERROR", message=str(error))


def capture(fn: Callable[..., T], *args: Any, **kwargs: Any) -> EngineResult:
    """Call ``fn`` and wrap its outcome.

    Engine errors become an EngineFailure; anything else propagates.
    """
    try:
        data = fn(*args, **kwargs)
    except CapstackError as e:
        return failure_from_error(e)
    return EngineSuccess(data=data, warnings=list(getattr(data, "warnings", []) or []))
