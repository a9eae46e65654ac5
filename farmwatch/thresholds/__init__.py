"""
Threshold estimation for the threshold lab.

Modules:
    bands: Quantile, clamp and crossing repair
    smoothing: Bounded-step and EMA smoothing policies
    estimator: DynamicThresholdEstimator (rolling quantiles, cached)
    provider: Static and dynamic ThresholdProvider variants
    recompute: Periodic dynamic snapshot persisted to the threshold store

Example:
    >>> from farmwatch.thresholds import DynamicThresholdEstimator, EmaSmoother
    >>> estimator = DynamicThresholdEstimator(smoother=EmaSmoother(alpha=0.35))
"""

from farmwatch.thresholds.bands import clamp, compute_band, quantile, repair_crossing
from farmwatch.thresholds.estimator import DynamicThresholdEstimator, EstimatorStatus
from farmwatch.thresholds.provider import (
    DynamicThresholdProvider,
    StaticThresholdProvider,
    ThresholdProvider,
    build_threshold_provider,
)
from farmwatch.thresholds.recompute import ThresholdRecomputer
from farmwatch.thresholds.smoothing import BandSmoother, BoundedStepSmoother, EmaSmoother

__all__: list[str] = [
    # Band arithmetic
    "quantile",
    "clamp",
    "repair_crossing",
    "compute_band",
    # Smoothing
    "BandSmoother",
    "BoundedStepSmoother",
    "EmaSmoother",
    # Estimator
    "DynamicThresholdEstimator",
    "EstimatorStatus",
    # Providers
    "ThresholdProvider",
    "StaticThresholdProvider",
    "DynamicThresholdProvider",
    "build_threshold_provider",
    # Recompute
    "ThresholdRecomputer",
]
