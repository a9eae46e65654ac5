"""
Tests for the dynamic threshold estimator and threshold providers.

Covers:
  - Unavailability below min_history_points
  - Window filtering and future readings
  - Cache lifetime (update_every_minutes)
  - Safety-bound invariants
  - Provider fallback and configuration-time variant selection
"""

from datetime import timedelta

import pytest

from farmwatch.config.models import ExperimentConfig, ExperimentKind, SnapshotConfig
from farmwatch.models.readings import Metric
from farmwatch.models.thresholds import DEFAULT_SAFETY_BOUNDS, ThresholdMethod
from farmwatch.thresholds.estimator import DynamicThresholdEstimator
from farmwatch.thresholds.provider import (
    DynamicThresholdProvider,
    StaticThresholdProvider,
    build_threshold_provider,
)
from farmwatch.thresholds.smoothing import BoundedStepSmoother, EmaSmoother
from tests.conftest import FARM_ID, T0, make_band, make_reading


def _estimator(**overrides) -> DynamicThresholdEstimator:
    params = dict(
        smoother=EmaSmoother(alpha=1.0),
        window_hours=24,
        default_quantiles=(0.0, 1.0),
        min_history_points=10,
        update_every_minutes=0,
    )
    params.update(overrides)
    return DynamicThresholdEstimator(**params)


class TestEstimatorAvailability:
    def test_insufficient_history_returns_none(self):
        history = [make_reading(i) for i in range(9)]
        band = _estimator().estimate(FARM_ID, Metric.TEMP_F, history, history[-1].timestamp)
        assert band is None

    def test_insufficient_history_not_cached(self):
        estimator = _estimator(update_every_minutes=60)
        history = [make_reading(i) for i in range(9)]
        assert estimator.estimate(FARM_ID, Metric.TEMP_F, history, history[-1].timestamp) is None
        assert estimator.status.cached_keys == 0

    def test_band_produced_at_threshold(self):
        history = [make_reading(i, temp_f=60.0 + i) for i in range(10)]
        band = _estimator().estimate(FARM_ID, Metric.TEMP_F, history, history[-1].timestamp)
        assert band is not None
        assert band.method == ThresholdMethod.DYNAMIC
        assert (band.low, band.high) == (60.0, 69.0)
        assert band.window_hours == 24

    def test_future_readings_ignored(self):
        history = [make_reading(i, temp_f=60.0 + i) for i in range(20)]
        as_of = history[9].timestamp
        band = _estimator().estimate(FARM_ID, Metric.TEMP_F, history, as_of)
        assert band.high == 69.0

    def test_readings_outside_window_ignored(self):
        old = [make_reading(i, temp_f=40.0, step_minutes=1) for i in range(10)]
        recent_start = T0 + timedelta(hours=30)
        recent = [make_reading(i, temp_f=70.0, start=recent_start) for i in range(10)]
        band = _estimator().estimate(FARM_ID, Metric.TEMP_F, old + recent, recent[-1].timestamp)
        assert band.low == 70.0


class TestEstimatorCache:
    def test_cached_until_interval_elapses(self):
        estimator = _estimator(update_every_minutes=30)
        history = [make_reading(i, temp_f=60.0 + (i % 10)) for i in range(40)]

        first = estimator.estimate(FARM_ID, Metric.TEMP_F, history, history[19].timestamp)
        # 10 minutes later: served from cache even though new data arrived
        cached = estimator.estimate(FARM_ID, Metric.TEMP_F, history, history[21].timestamp)
        assert cached is first

        refreshed = estimator.estimate(FARM_ID, Metric.TEMP_F, history, history[25].timestamp)
        assert refreshed is not first
        assert refreshed.as_of == history[25].timestamp

    def test_reset_drops_state(self):
        estimator = _estimator(update_every_minutes=30)
        history = [make_reading(i) for i in range(20)]
        estimator.estimate(FARM_ID, Metric.TEMP_F, history, history[-1].timestamp)
        estimator.reset()
        assert estimator.status.cached_keys == 0
        assert estimator.status.smoothed_keys == 0

    def test_keys_are_independent_per_metric(self):
        estimator = _estimator(update_every_minutes=30)
        history = [make_reading(i) for i in range(20)]
        estimator.estimate(FARM_ID, Metric.TEMP_F, history, history[-1].timestamp)
        estimator.estimate(FARM_ID, Metric.RH_PCT, history, history[-1].timestamp)
        assert estimator.status.cached_keys == 2


class TestEstimatorInvariants:
    def test_band_within_safety_bounds(self):
        history = [make_reading(i, temp_f=20.0 + 10 * (i % 12)) for i in range(60)]
        estimator = _estimator(default_margin=15.0)
        bounds = DEFAULT_SAFETY_BOUNDS[Metric.TEMP_F]
        for i in range(10, 60):
            band = estimator.estimate(FARM_ID, Metric.TEMP_F, history, history[i].timestamp)
            assert band.low <= band.high
            assert bounds.low <= band.low and band.high <= bounds.high

    def test_bounded_step_limits_movement(self):
        estimator = _estimator(smoother=BoundedStepSmoother(max_step=2.0))
        calm = [make_reading(i, temp_f=60.0) for i in range(10)]
        first = estimator.estimate(FARM_ID, Metric.TEMP_F, calm, calm[-1].timestamp)

        hot = calm + [make_reading(10 + i, temp_f=90.0) for i in range(10)]
        second = estimator.estimate(FARM_ID, Metric.TEMP_F, hot, hot[-1].timestamp)
        assert second.high - first.high == pytest.approx(2.0)

    def test_prime_seeds_smoothing(self):
        estimator = _estimator(smoother=BoundedStepSmoother(max_step=2.0))
        estimator.prime(make_band(low=50.0, high=60.0, method=ThresholdMethod.DYNAMIC))
        history = [make_reading(i, temp_f=70.0) for i in range(10)]
        band = estimator.estimate(FARM_ID, Metric.TEMP_F, history, history[-1].timestamp)
        assert (band.low, band.high) == (52.0, 62.0)

    def test_from_snapshot_config(self):
        estimator = DynamicThresholdEstimator.for_snapshot(SnapshotConfig(min_history_points=5))
        assert isinstance(estimator.smoother, BoundedStepSmoother)
        assert estimator.update_every_minutes == 0


class TestThresholdProviders:
    def test_static_provider(self):
        band = make_band()
        provider = StaticThresholdProvider({Metric.TEMP_F: band})
        assert provider.rule_type == ThresholdMethod.STATIC
        assert provider.band_for(FARM_ID, Metric.TEMP_F, T0, []) is band
        assert provider.band_for(FARM_ID, Metric.RH_PCT, T0, []) is None

    def test_dynamic_falls_back_to_static(self):
        static = make_band()
        provider = DynamicThresholdProvider(_estimator(), fallback={Metric.TEMP_F: static})
        history = [make_reading(i) for i in range(3)]
        assert provider.band_for(FARM_ID, Metric.TEMP_F, history[-1].timestamp, history) is static

    def test_dynamic_uses_estimate_when_available(self):
        provider = DynamicThresholdProvider(_estimator(), fallback={Metric.TEMP_F: make_band()})
        history = [make_reading(i) for i in range(12)]
        band = provider.band_for(FARM_ID, Metric.TEMP_F, history[-1].timestamp, history)
        assert band.method == ThresholdMethod.DYNAMIC

    def test_variant_resolved_from_config(self):
        static_cfg = ExperimentConfig(
            experiment_id="exp_static_v1", name="Static", method="static", kind=ExperimentKind.STATIC
        )
        dynamic_cfg = ExperimentConfig(
            experiment_id="exp_dynamic_v1", name="Dynamic", method="rolling_quantile"
        )
        assert isinstance(build_threshold_provider(static_cfg, {}), StaticThresholdProvider)
        provider = build_threshold_provider(dynamic_cfg, {})
        assert isinstance(provider, DynamicThresholdProvider)
        assert isinstance(provider.estimator.smoother, EmaSmoother)
