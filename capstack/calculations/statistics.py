"""Summary statistics and correlated sampling helpers."""

import math
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence

import numpy as np

from capstack.errors import ConfigurationError


@dataclass
class KpiStatistics:
    """Distribution summary for one KPI (None when no valid samples)."""
    mean: Optional[float]
    p10: Optional[float]
    p50: Optional[float]
    p90: Optional[float]
    std: Optional[float] = None
    min: Optional[float] = None
    max: Optional[float] = None
    count: int = 0


def valid_values(values: Iterable[Optional[float]]) -> List[float]:
    """Drop None, NaN and infinite values."""
    return [
        float(v) for v in values
        if v is not None and not math.isnan(v) and not math.isinf(v)
    ]


def calculate_kpi_statistics(values: Iterable[Optional[float]]) -> KpiStatistics:
    """Mean, P10/P50/P90 and spread of the valid values.

    Percentiles interpolate linearly between order statistics.
    """
    clean = valid_values(values)
    if not clean:
        return KpiStatistics(mean=None, p10=None, p50=None, p90=None, count=0)

    data = np.array(clean)
    p10, p50, p90 = np.percentile(data, [10, 50, 90], method="linear")
    return KpiStatistics(
        mean=float(np.mean(data)),
        p10=float(p10),
        p50=float(p50),
        p90=float(p90),
        std=float(np.std(data)),
        min=float(np.min(data)),
        max=float(np.max(data)),
        count=len(clean),
    )


def cholesky(matrix: Sequence[Sequence[float]]) -> np.ndarray:
    """Lower-triangular Cholesky factor of a correlation matrix.

    Raises:
        ConfigurationError: if the matrix is not square, not symmetric, or
            not positive definite
    """
    data = np.array(matrix, dtype=float)
    if data.ndim != 2 or data.shape[0] != data.shape[1]:
        raise ConfigurationError(
            f"Correlation matrix must be square (got shape {data.shape})",
            field="correlation_matrix",
        )
    if not np.allclose(data, data.T):
        raise ConfigurationError(
            "Correlation matrix must be symmetric", field="correlation_matrix"
        )
    try:
        return np.linalg.cholesky(data)
    except np.linalg.LinAlgError as e:
        raise ConfigurationError(
            f"Correlation matrix is not positive definite: {e}",
            field="correlation_matrix",
        ) from e


def correlated_normals(
    rng: np.random.Generator,
    factor: np.ndarray,
    std_devs: Sequence[float],
) -> np.ndarray:
    """One draw of zero-mean correlated normals scaled by ``std_devs``."""
    z = rng.standard_normal(factor.shape[0])
    return (factor @ z) * np.asarray(std_devs, dtype=float)


def correlation(x: Sequence[float], y: Sequence[float]) -> float:
    """Pearson correlation, 0.0 when either series is constant."""
    if len(x) < 2 or np.std(x) == 0 or np.std(y) == 0:
        return 0.0
    return float(np.corrcoef(x, y)[0, 1])
