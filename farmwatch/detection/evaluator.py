"""
Breach evaluation against a threshold band.

This module holds the stateless part of the alert decision: whether a value
breaches its band and how the resulting alert message reads. Debouncing and
cooldown live in the engine.

Example:
    >>> is_breach(31.0, band)
    True
    >>> build_message(ThresholdMethod.STATIC, Metric.TEMP_F, 31.0, band)
    'STATIC breach on temp_f: value=31.00 limits=[40.00, 90.00]'
"""

from typing import Optional

from farmwatch.models.readings import Metric
from farmwatch.models.thresholds import ThresholdBand, ThresholdMethod


def is_breach(value: Optional[float], band: Optional[ThresholdBand]) -> bool:
    """
    Check whether a value lies outside its band.

    A missing band or a missing value never breaches.

    Args:
        value: Observed value.
        band: Active band.

    Returns:
        bool: True if value < band.low or value > band.high.
    """
    if band is None or value is None:
        return False
    return not band.contains(value)


def build_message(
    rule_type: ThresholdMethod,
    metric: Metric,
    value: float,
    band: ThresholdBand,
) -> str:
    """
    Build a human-readable alert message.

    Encodes rule type, metric, observed value and the band bounds.
    """
    return (
        f"{ThresholdMethod(rule_type).value.upper()} breach on {Metric(metric).value}: "
        f"value={value:.2f} limits=[{band.low:.2f}, {band.high:.2f}]"
    )
