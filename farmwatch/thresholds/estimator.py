"""
Dynamic threshold estimator.

Computes adaptive bands from rolling quantiles of a reading history, widened
by a margin, clamped to safety bounds and smoothed against the previous
estimate.

Key Safety Features:
    - Returns None when the window holds fewer than min_history_points
      samples; callers fall back to static bands
    - Every band produced satisfies low <= high inside the safety bounds
    - Results are cached per (farm, metric) until update_every_minutes elapse

Classes:
    EstimatorStatus: Snapshot of the estimator's cache
    DynamicThresholdEstimator: Rolling-quantile band estimator
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Mapping, Optional, Sequence, Tuple

import structlog

from farmwatch.config.models import ExperimentConfig, SnapshotConfig
from farmwatch.models.readings import Metric, Reading
from farmwatch.models.thresholds import (
    DEFAULT_SAFETY_BOUNDS,
    SafetyBounds,
    ThresholdBand,
    ThresholdMethod,
)
from farmwatch.thresholds.bands import compute_band, repair_crossing
from farmwatch.thresholds.smoothing import BandSmoother, BoundedStepSmoother, EmaSmoother

logger = structlog.get_logger(__name__)

BandKey = Tuple[str, Metric]


@dataclass
class EstimatorStatus:
    """
    Status information about the estimator.

    Attributes:
        cached_keys: Number of (farm, metric) pairs with a cached band.
        smoothed_keys: Number of pairs with smoothing state.
        min_history_points: Samples required in the window.
        update_every_minutes: Cache lifetime.
    """

    cached_keys: int
    smoothed_keys: int
    min_history_points: int
    update_every_minutes: float


class DynamicThresholdEstimator:
    """
    Rolling-quantile band estimator with caching and smoothing.

    Pipeline per recompute:
        1. Keep samples with as_of - window <= timestamp <= as_of
        2. Fewer than min_history_points samples -> None (not cached)
        3. (quantile(q_low) - margin, quantile(q_high) + margin)
        4. Clamp to safety bounds, repair if crossed
        5. Smooth against the previous smoothed band
        6. Cache and return

    A new instance holds no state; offline runs build one per run and drop it
    afterwards.

    Example:
        >>> estimator = DynamicThresholdEstimator(
        ...     smoother=EmaSmoother(alpha=0.35),
        ...     quantiles={Metric.TEMP_F: (0.10, 0.90)},
        ...     margins={Metric.TEMP_F: 2.0},
        ...     update_every_minutes=30,
        ...     min_history_points=30,
        ... )
        >>> band = estimator.estimate("farm_global_2", Metric.TEMP_F, history, ts)
        >>> if band is None:
        ...     print("Not enough history, use the static band")
    """

    def __init__(
        self,
        smoother: BandSmoother,
        window_hours: float = 24,
        quantiles: Optional[Mapping[Metric, Tuple[float, float]]] = None,
        default_quantiles: Tuple[float, float] = (0.15, 0.85),
        margins: Optional[Mapping[Metric, float]] = None,
        default_margin: float = 0.0,
        safety_bounds: Optional[Mapping[Metric, SafetyBounds]] = None,
        min_history_points: int = 20,
        update_every_minutes: float = 0,
        repair_unit: float = 1.0,
    ) -> None:
        """
        Initialize the estimator.

        Args:
            smoother: Smoothing policy applied to consecutive estimates.
            window_hours: History window length.
            quantiles: Per-metric (q_low, q_high) overrides.
            default_quantiles: Quantile pair for metrics without override.
            margins: Per-metric outward margin overrides.
            default_margin: Margin for metrics without override.
            safety_bounds: Guardrails per metric (defaults to the built-ins).
            min_history_points: Samples required in the window.
            update_every_minutes: Cache lifetime; 0 recomputes every call.
            repair_unit: Half-width of a repaired band.

        Raises:
            ValueError: If window_hours or min_history_points is not positive.
        """
        if window_hours <= 0:
            raise ValueError(f"window_hours must be positive, got {window_hours}")
        if min_history_points < 1:
            raise ValueError(f"min_history_points must be >= 1, got {min_history_points}")

        self.smoother = smoother
        self.window = timedelta(hours=window_hours)
        self.window_hours = window_hours
        self.quantiles: Dict[Metric, Tuple[float, float]] = dict(quantiles or {})
        self.default_quantiles = default_quantiles
        self.margins: Dict[Metric, float] = dict(margins or {})
        self.default_margin = default_margin
        self.safety_bounds: Dict[Metric, SafetyBounds] = dict(DEFAULT_SAFETY_BOUNDS)
        if safety_bounds:
            self.safety_bounds.update(safety_bounds)
        self.min_history_points = min_history_points
        self.update_every_minutes = update_every_minutes
        self.update_interval = timedelta(minutes=update_every_minutes)
        self.repair_unit = repair_unit

        self._last_update: Dict[BandKey, datetime] = {}
        self._cached: Dict[BandKey, ThresholdBand] = {}
        self._smoothed: Dict[BandKey, Tuple[float, float]] = {}

    @classmethod
    def for_snapshot(
        cls,
        config: SnapshotConfig,
        safety_bounds: Optional[Mapping[Metric, SafetyBounds]] = None,
    ) -> "DynamicThresholdEstimator":
        """Build the periodic snapshot estimator (bounded-step smoothing)."""
        return cls(
            smoother=BoundedStepSmoother(max_step=config.max_step),
            window_hours=config.window_hours,
            default_quantiles=(config.q_low, config.q_high),
            margins=config.margins,
            safety_bounds=safety_bounds,
            min_history_points=config.min_history_points,
            update_every_minutes=0,
            repair_unit=config.repair_unit,
        )

    @classmethod
    def for_experiment(
        cls,
        config: ExperimentConfig,
        safety_bounds: Optional[Mapping[Metric, SafetyBounds]] = None,
    ) -> "DynamicThresholdEstimator":
        """Build a backtest estimator (EMA smoothing, cached between updates)."""
        return cls(
            smoother=EmaSmoother(alpha=config.ema_alpha),
            window_hours=config.window_hours,
            quantiles=config.quantiles_by_metric,
            default_quantiles=(config.q_low, config.q_high),
            margins=config.margins_by_metric,
            default_margin=config.margin,
            safety_bounds=safety_bounds,
            min_history_points=config.min_history_points,
            update_every_minutes=config.update_every_minutes,
        )

    def estimate(
        self,
        farm_id: str,
        metric: Metric,
        history: Sequence[Reading],
        as_of: datetime,
    ) -> Optional[ThresholdBand]:
        """
        Estimate the band for one (farm, metric) at as_of.

        Args:
            farm_id: Farm identifier.
            metric: Metric to estimate.
            history: Readings in ascending order; samples outside the window
                are ignored.
            as_of: Evaluation time.

        Returns:
            Optional[ThresholdBand]: The band, or None when the window holds
                too few samples.
        """
        metric = Metric(metric)
        key = (farm_id, metric)

        last_update = self._last_update.get(key)
        if last_update is not None and as_of - last_update < self.update_interval:
            return self._cached[key]

        window_start = as_of - self.window
        values = []
        for reading in history:
            if window_start <= reading.timestamp <= as_of:
                value = reading.value(metric)
                if value is not None:
                    values.append(value)

        if len(values) < self.min_history_points:
            logger.debug(
                "estimate_unavailable",
                farm_id=farm_id,
                metric=metric.value,
                samples=len(values),
                required=self.min_history_points,
            )
            return None

        bounds = self.safety_bounds[metric]
        q_low, q_high = self.quantiles.get(metric, self.default_quantiles)
        margin = self.margins.get(metric, self.default_margin)

        candidate = compute_band(values, q_low, q_high, margin, bounds, self.repair_unit)
        if candidate is None:
            return None

        low, high = self.smoother.smooth_band(self._smoothed.get(key), candidate)
        # Smoothed values can only leave the bounds when primed from an
        # out-of-bounds persisted band.
        low, high = repair_crossing(low, high, bounds, self.repair_unit)

        band = ThresholdBand(
            farm_id=farm_id,
            metric=metric,
            low=low,
            high=high,
            method=ThresholdMethod.DYNAMIC,
            as_of=as_of,
            window_hours=self.window_hours,
        )

        self._last_update[key] = as_of
        self._cached[key] = band
        self._smoothed[key] = (low, high)
        return band

    def prime(self, band: ThresholdBand) -> None:
        """
        Seed the smoothing state with a previously persisted band.

        Does not populate the cache; the next estimate recomputes.
        """
        self._smoothed[(band.farm_id, Metric(band.metric))] = (band.low, band.high)

    def reset(self) -> None:
        """Drop cached bands and smoothing state."""
        self._last_update.clear()
        self._cached.clear()
        self._smoothed.clear()

    @property
    def status(self) -> EstimatorStatus:
        """Get the current status of the estimator."""
        return EstimatorStatus(
            cached_keys=len(self._cached),
            smoothed_keys=len(self._smoothed),
            min_history_points=self.min_history_points,
            update_every_minutes=self.update_every_minutes,
        )

    def __repr__(self) -> str:
        return (
            f"DynamicThresholdEstimator(window_hours={self.window_hours}, "
            f"smoother={self.smoother!r}, min_history_points={self.min_history_points})"
        )
