"""Discounted cash flow primitives shared by every engine."""

import math
from typing import List, Optional, Sequence

import numpy as np
import numpy_financial as npf

# IRR bisection bracket and stopping rules
IRR_LOWER_BOUND = -0.99
IRR_UPPER_BOUND = 10.0
IRR_TOLERANCE = 1e-6
IRR_MAX_ITERATIONS = 200


def npv(rate: float, cash_flows: Sequence[float]) -> float:
    """Net present value with the first cash flow at t = 0."""
    if not cash_flows:
        return 0.0
    return float(npf.npv(rate, list(cash_flows)))


def irr(cash_flows: Sequence[float]) -> Optional[float]:
    """Internal rate of return by bisection.

    Searches [-99%, 1000%] and stops when the bracket is narrower than
    1e-6 or after 200 halvings.

    Args:
        cash_flows: Periodic cash flows, first at t = 0

    Returns:
        IRR, or None when undefined (empty, all zero, no sign change, or
        no root inside the bracket)
    """
    flows = [float(cf) for cf in cash_flows]
    if not flows or all(abs(cf) < 1e-12 for cf in flows):
        return None
    if not (any(cf > 0 for cf in flows) and any(cf < 0 for cf in flows)):
        return None

    low, high = IRR_LOWER_BOUND, IRR_UPPER_BOUND
    npv_low = npv(low, flows)
    npv_high = npv(high, flows)
    if npv_low == 0:
        return low
    if npv_high == 0:
        return high
    if (npv_low > 0) == (npv_high > 0):
        return None

    mid = (low + high) / 2
    for _ in range(IRR_MAX_ITERATIONS):
        mid = (low + high) / 2
        npv_mid = npv(mid, flows)
        if npv_mid == 0 or (high - low) / 2 < IRR_TOLERANCE:
            break
        if (npv_mid > 0) == (npv_low > 0):
            low, npv_low = mid, npv_mid
        else:
            high = mid

    if math.isnan(mid) or math.isinf(mid):
        return None
    return mid


def equity_multiple(cash_flows: Sequence[float]) -> Optional[float]:
    """Total inflows divided by total outflows (MOIC).

    Returns None when nothing was contributed.
    """
    contributed = -sum(cf for cf in cash_flows if cf < 0)
    distributed = sum(cf for cf in cash_flows if cf > 0)
    if contributed <= 0:
        return None
    return distributed / contributed


def payback_period(cash_flows: Sequence[float]) -> Optional[float]:
    """Years until cumulative cash flow turns non-negative.

    Interpolates linearly within the year in which it crosses zero.
    """
    cumulative = 0.0
    for t, cf in enumerate(cash_flows):
        previous = cumulative
        cumulative += cf
        if t > 0 and previous < 0 <= cumulative:
            return (t - 1) + (-previous / cf)
    return None


def cumulative_sum(values: Sequence[float]) -> List[float]:
    """Running total of ``values``."""
    return np.cumsum(np.asarray(values, dtype=float)).tolist()
