"""
Band arithmetic shared by the estimator and the snapshot recompute.

Functions:
    quantile: Linear-interpolated quantile at position (n-1)*q
    clamp: Restrict a value to [low, high]
    repair_crossing: Re-center a crossed band inside its safety bounds
    compute_band: Quantiles, margin, clamp and repair in one step
"""

import math
from typing import Optional, Sequence, Tuple

from farmwatch.models.thresholds import SafetyBounds


def quantile(values: Sequence[float], q: float) -> Optional[float]:
    """
    Compute the q-quantile with linear interpolation between order statistics.

    The position is (n-1)*q in the sorted sample, so q=0 is the minimum and
    q=1 the maximum. The input order does not matter.

    Args:
        values: Sample values.
        q: Quantile in [0, 1].

    Returns:
        Optional[float]: The quantile, or None for an empty sample.

    Example:
        >>> quantile([4.0, 1.0, 3.0, 2.0], 0.5)
        2.5
    """
    if not values:
        return None
    if not 0.0 <= q <= 1.0:
        raise ValueError(f"quantile must be in [0, 1], got {q}")

    ordered = sorted(values)
    position = (len(ordered) - 1) * q
    base = math.floor(position)
    rest = position - base
    if base + 1 < len(ordered):
        return ordered[base] + rest * (ordered[base + 1] - ordered[base])
    return ordered[base]


def clamp(value: float, low: float, high: float) -> float:
    """Restrict value to [low, high]."""
    return max(low, min(high, value))


def repair_crossing(
    low: float,
    high: float,
    bounds: SafetyBounds,
    unit: float = 1.0,
) -> Tuple[float, float]:
    """
    Repair a band whose low exceeds its high.

    The band is centered on the midpoint, re-expanded by unit on each side and
    clamped back into the safety bounds. Ordered bands are returned clamped
    but otherwise untouched.

    Args:
        low: Candidate lower bound.
        high: Candidate upper bound.
        bounds: Safety bounds for the metric.
        unit: Half-width of the repaired band.

    Returns:
        Tuple[float, float]: (low, high) with low <= high inside bounds.
    """
    low = clamp(low, bounds.low, bounds.high)
    high = clamp(high, bounds.low, bounds.high)
    if low <= high:
        return low, high

    mid = (low + high) / 2.0
    return (
        clamp(mid - unit, bounds.low, bounds.high),
        clamp(mid + unit, bounds.low, bounds.high),
    )


def compute_band(
    values: Sequence[float],
    q_low: float,
    q_high: float,
    margin: float,
    bounds: SafetyBounds,
    repair_unit: float = 1.0,
) -> Optional[Tuple[float, float]]:
    """
    Build a raw (unsmoothed) band from a sample.

    The quantile pair is widened outward by margin, clamped to the safety
    bounds and repaired if it crossed.

    Returns:
        Optional[Tuple[float, float]]: (low, high), None for an empty sample.
    """
    raw_low = quantile(values, q_low)
    raw_high = quantile(values, q_high)
    if raw_low is None or raw_high is None:
        return None

    low = clamp(raw_low - margin, bounds.low, bounds.high)
    high = clamp(raw_high + margin, bounds.low, bounds.high)
    return repair_crossing(low, high, bounds, repair_unit)
