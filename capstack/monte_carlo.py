"""Monte Carlo risk engine over the full model pipeline.

Each iteration clones the base scenario, draws one multiplier per driver
(occupancy, average rate, interest rate) and re-runs revenue, capital,
waterfall and valuation. Only the KPI snapshot of each iteration is kept.

Typical usage:
    from capstack.monte_carlo import run_monte_carlo
    from capstack.models import SimulationConfig

    config = SimulationConfig(iterations=1000, seed=42)
    result = run_monte_carlo(base_input, config)
    print(result.summary())
"""

import concurrent.futures
import logging
import multiprocessing
import threading
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Tuple

import numpy as np

from capstack.calculations.statistics import (
    KpiStatistics,
    calculate_kpi_statistics,
    cholesky,
    correlated_normals,
    correlation,
    valid_values,
)
from capstack.errors import ConfigurationError, SimulationFailure
from capstack.models.base import camel_case
from capstack.models.operations import ModelInput
from capstack.models.simulation import DRIVERS, DistributionType, SimulationConfig
from capstack.pipeline import KPI_NAMES, KpiSnapshot, run_model_kpis
from capstack.scenarios import apply_revenue_multipliers

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]


@dataclass
class IterationRecord:
    """Sampled multipliers and resulting KPIs of one iteration."""
    iteration: int
    multipliers: Dict[str, float]
    kpis: KpiSnapshot


@dataclass
class SensitivityResult:
    """Correlation of one driver's multiplier with the IRRs."""
    parameter: str
    correlation_unlevered: float
    correlation_levered: float


@dataclass
class SimulationResult:
    """Complete Monte Carlo results.

    Attributes:
        config: Configuration the run used
        base_case: KPIs of the unperturbed scenario
        iterations: One record per completed iteration, in iteration order
        statistics: KPI name -> distribution summary over the iterations
        effective_distributions: Distribution actually sampled per driver
        correlation_applied: Whether correlated sampling was used
        sensitivities: Driver correlation with unlevered and levered IRR
        warnings: Fallbacks taken during the run
        cancelled: True when the run stopped early on request
    """
    config: SimulationConfig
    base_case: KpiSnapshot
    iterations: List[IterationRecord]
    statistics: Dict[str, KpiStatistics]
    effective_distributions: Dict[str, DistributionType]
    correlation_applied: bool = False
    sensitivities: List[SensitivityResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cancelled: bool = False

    @property
    def completed_iterations(self) -> int:
        return len(self.iterations)

    def kpi_values(self, name: str) -> List[Optional[float]]:
        """All iteration values of one KPI, including None."""
        return [getattr(r.kpis, name) for r in self.iterations]

    def get_levered_irr_distribution(self) -> np.ndarray:
        """Array of valid levered IRR values."""
        return np.array(valid_values(self.kpi_values("levered_irr")))

    def summary(self) -> str:
        """Return a formatted summary of results."""
        lines = [
            "=" * 60,
            "MONTE CARLO SIMULATION RESULTS",
            "=" * 60,
            f"Iterations: {self.completed_iterations:,} of {self.config.iterations:,}"
            + (" (cancelled)" if self.cancelled else ""),
            f"Correlated sampling: {'yes' if self.correlation_applied else 'no'}",
            "",
            f"{'KPI':<18} {'Mean':>12} {'P10':>12} {'P50':>12} {'P90':>12}",
            "-" * 60,
        ]
        for name in KPI_NAMES:
            stats = self.statistics[name]
            if stats.count == 0:
                lines.append(f"{name:<18} {'n/a':>12}")
                continue
            fmt = "{:>12,.0f}" if name == "npv" else "{:>12.4f}"
            lines.append(
                f"{name:<18} " + " ".join(
                    fmt.format(v) for v in (stats.mean, stats.p10, stats.p50, stats.p90)
                )
            )

        if self.sensitivities:
            lines.extend(["", "SENSITIVITY (Correlation with Levered IRR)", "-" * 40])
            for s in sorted(self.sensitivities, key=lambda s: abs(s.correlation_levered), reverse=True):
                lines.append(f"  {s.parameter:<30} {s.correlation_levered:>+6.3f}")

        for warning in self.warnings:
            lines.append(f"WARNING: {warning}")
        lines.append("=" * 60)
        return "\n".join(lines)


def resolve_distributions(config: SimulationConfig) -> Tuple[Dict[str, DistributionType], List[str]]:
    """Distribution actually sampled per driver.

    PERT has no parameterization here and is sampled as normal; the
    substitution is reported so callers know what was used.
    """
    effective = {}
    warnings = []
    for driver, distribution in config.distributions.items():
        if distribution == DistributionType.PERT:
            effective[driver] = DistributionType.NORMAL
            warnings.append(f"{driver}: pert distribution sampled as normal")
        elif distribution in (DistributionType.NORMAL, DistributionType.LOGNORMAL):
            effective[driver] = distribution
        else:
            raise ConfigurationError(
                f"Unsupported distribution '{distribution}' for {driver}",
                field=f"{driver}_distribution",
            )
    for warning in warnings:
        logger.warning(warning)
    return effective, warnings


def resolve_correlation(config: SimulationConfig) -> Tuple[Optional[np.ndarray], List[str]]:
    """Cholesky factor for correlated sampling, or None to sample independently.

    The matrix is reordered to occupancy, adr, interestRate. Any driver with
    a non-normal configured distribution, or a matrix that cannot be
    decomposed, falls back to independent sampling with a warning.
    """
    matrix_config = config.correlation_matrix
    if matrix_config is None:
        return None, []

    reason = None
    factor = None
    if any(d != DistributionType.NORMAL for d in config.distributions.values()):
        reason = "correlated sampling requires normal distributions for all drivers"
    else:
        names = [camel_case(v) for v in matrix_config.variables]
        if sorted(names) != sorted(DRIVERS):
            reason = f"variables must be {', '.join(DRIVERS)} (got {', '.join(matrix_config.variables)})"
        else:
            try:
                data = np.array(matrix_config.matrix, dtype=float)
                if data.shape != (3, 3):
                    raise ConfigurationError(
                        f"Correlation matrix must be 3x3 (got shape {data.shape})",
                        field="correlation_matrix",
                    )
                order = [names.index(d) for d in DRIVERS]
                data = data[np.ix_(order, order)]
                if not np.allclose(np.diag(data), 1.0):
                    raise ConfigurationError(
                        "Correlation matrix must have a unit diagonal",
                        field="correlation_matrix",
                    )
                factor = cholesky(data)
            except ValueError as e:  # includes ConfigurationError
                reason = str(e)

    if reason is not None:
        warning = f"Correlation matrix ignored, sampling independently: {reason}"
        logger.warning(warning)
        return None, [warning]
    return factor, []


def sample_multipliers(
    rng: np.random.Generator,
    config: SimulationConfig,
    distributions: Dict[str, DistributionType],
    factor: Optional[np.ndarray] = None,
) -> Dict[str, float]:
    """Draw one multiplier per driver.

    normal: 1 + N(0, sigma); lognormal: exp(N(0, sigma)). With a Cholesky
    factor the normal deviates are drawn jointly.
    """
    std_devs = config.std_devs
    if factor is not None:
        deviates = correlated_normals(rng, factor, [std_devs[d] for d in DRIVERS])
        return {driver: 1.0 + float(z) for driver, z in zip(DRIVERS, deviates)}

    multipliers = {}
    for driver in DRIVERS:
        z = float(rng.normal(0.0, std_devs[driver]))
        if distributions[driver] == DistributionType.LOGNORMAL:
            multipliers[driver] = float(np.exp(z))
        else:
            multipliers[driver] = 1.0 + z
    return multipliers


def apply_multipliers(model_input: ModelInput, multipliers: Dict[str, float]) -> ModelInput:
    """Clone the scenario and apply one iteration's multipliers.

    Occupancy is clamped to [0, 1]; rates are floored at 0.
    """
    perturbed = apply_revenue_multipliers(
        model_input,
        multipliers.get("occupancy", 1.0),
        multipliers.get("adr", 1.0),
    )
    interest = multipliers.get("interestRate", 1.0)
    for tranche in perturbed.capital.tranches:
        tranche.interest_rate = max(0.0, tranche.interest_rate * interest)
    return perturbed


def _run_single_iteration(
    iteration: int,
    base_input: ModelInput,
    config: SimulationConfig,
    distributions: Dict[str, DistributionType],
    factor: Optional[np.ndarray],
    seed: int,
) -> IterationRecord:
    """Run one iteration.

    Raises:
        SimulationFailure: wrapping whatever the pipeline raised
    """
    rng = np.random.default_rng(seed)
    multipliers = sample_multipliers(rng, config, distributions, factor)
    try:
        kpis = run_model_kpis(apply_multipliers(base_input, multipliers))
    except Exception as e:
        raise SimulationFailure(iteration, str(e)) from e
    return IterationRecord(iteration=iteration, multipliers=multipliers, kpis=kpis)


def _sensitivities(records: List[IterationRecord]) -> List[SensitivityResult]:
    results = []
    for driver in DRIVERS:
        unlevered = [
            (r.multipliers[driver], r.kpis.unlevered_irr)
            for r in records if r.kpis.unlevered_irr is not None
        ]
        levered = [
            (r.multipliers[driver], r.kpis.levered_irr)
            for r in records if r.kpis.levered_irr is not None
        ]
        results.append(SensitivityResult(
            parameter=driver,
            correlation_unlevered=correlation(*zip(*unlevered)) if len(unlevered) > 1 else 0.0,
            correlation_levered=correlation(*zip(*levered)) if len(levered) > 1 else 0.0,
        ))
    return results


def run_monte_carlo(
    base_input: ModelInput,
    config: SimulationConfig,
    progress_callback: Optional[ProgressCallback] = None,
    rng: Optional[np.random.Generator] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SimulationResult:
    """Run Monte Carlo simulation.

    Args:
        base_input: Base scenario (never modified)
        config: Simulation configuration
        progress_callback: Optional callback(completed, total), called every
            ``config.progress_interval`` iterations and once at completion
        rng: Random source (default: seeded from ``config.seed``)
        cancel_event: Checked before each iteration; when set, the run stops
            and returns the iterations completed so far

    Returns:
        SimulationResult

    Raises:
        ConfigurationError: if the base scenario or config is invalid
        SimulationFailure: if any iteration fails; no partial data is returned
    """
    config.validate()
    distributions, warnings = resolve_distributions(config)
    factor, correlation_warnings = resolve_correlation(config)
    warnings.extend(correlation_warnings)

    base_case = run_model_kpis(base_input)

    master_rng = rng if rng is not None else np.random.default_rng(config.seed)
    total = config.iterations
    iteration_seeds = master_rng.integers(0, 2**31, size=total)

    def cancelled() -> bool:
        return cancel_event is not None and cancel_event.is_set()

    def report(completed: int) -> None:
        if progress_callback and (completed % config.progress_interval == 0 or completed == total):
            progress_callback(completed, total)

    logger.info("Starting Monte Carlo run: %d iterations", total)
    records: List[IterationRecord] = []

    if config.parallel and total > 1:
        max_workers = config.max_workers or min(multiprocessing.cpu_count(), 8)

        def guarded(i: int) -> Optional[IterationRecord]:
            if cancelled():
                return None
            return _run_single_iteration(
                i, base_input, config, distributions, factor, int(iteration_seeds[i])
            )

        with concurrent.futures.ThreadPoolExecutor(max_workers=max_workers) as executor:
            futures = [executor.submit(guarded, i) for i in range(total)]
            try:
                for future in concurrent.futures.as_completed(futures):
                    record = future.result()
                    if record is None:
                        continue
                    records.append(record)
                    if not cancelled():
                        report(len(records))
            except SimulationFailure:
                for pending in futures:
                    pending.cancel()
                raise
    else:
        for i in range(total):
            if cancelled():
                break
            records.append(_run_single_iteration(
                i, base_input, config, distributions, factor, int(iteration_seeds[i])
            ))
            report(i + 1)

    records.sort(key=lambda r: r.iteration)
    was_cancelled = len(records) < total
    if was_cancelled:
        logger.info("Monte Carlo run cancelled after %d of %d iterations", len(records), total)
    else:
        logger.info("Monte Carlo run finished: %d iterations", total)

    statistics = {
        name: calculate_kpi_statistics(getattr(r.kpis, name) for r in records)
        for name in KPI_NAMES
    }

    return SimulationResult(
        config=config,
        base_case=base_case,
        iterations=records,
        statistics=statistics,
        effective_distributions=distributions,
        correlation_applied=factor is not None,
        sensitivities=_sensitivities(records),
        warnings=warnings,
        cancelled=was_cancelled,
    )
