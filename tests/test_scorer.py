"""
Tests for the alert quality scorer.

Covers:
  - Match rule (metric mapping, lead window, event end)
  - TP/FP/FN counting with one alert claimed per event
  - Derived rates, lead time sign and window labels
  - evaluate_experiment against the in-memory store
"""

from datetime import timedelta

import pytest

from farmwatch.evaluation.scorer import (
    alert_matches_event,
    build_metrics_record,
    classify_window,
    evaluate_experiment,
    score,
)
from farmwatch.exceptions import ConfigurationError, DataInsufficiencyError
from farmwatch.models.alerts import Alert, Severity
from farmwatch.models.events import GroundTruthEvent
from farmwatch.models.experiments import WindowLabel
from farmwatch.models.readings import Metric
from farmwatch.models.thresholds import ThresholdMethod
from tests.conftest import FARM_ID, T0, make_reading

WINDOW_END = T0 + timedelta(hours=24)


def _alert(minute: float, metric: Metric = Metric.TEMP_F, experiment_id=None) -> Alert:
    return Alert(
        farm_id=FARM_ID,
        timestamp=T0 + timedelta(minutes=minute),
        metric=metric,
        severity=Severity.HIGH,
        rule_type=ThresholdMethod.STATIC,
        message="test",
        value=0.0,
        experiment_id=experiment_id,
    )


def _event(start_min: float, end_min: float, event_type: str = "cold_shock") -> GroundTruthEvent:
    return GroundTruthEvent(
        farm_id=FARM_ID,
        start=T0 + timedelta(minutes=start_min),
        end=T0 + timedelta(minutes=end_min),
        event_type=event_type,
    )


# ── Match rule ───────────────────────────────────────────────────────────


class TestAlertMatchesEvent:
    def test_inside_event(self):
        assert alert_matches_event(_alert(70), _event(60, 80), timedelta(minutes=30))

    def test_at_lead_window_edge(self):
        assert alert_matches_event(_alert(30), _event(60, 80), timedelta(minutes=30))

    def test_before_lead_window(self):
        assert not alert_matches_event(_alert(29), _event(60, 80), timedelta(minutes=30))

    def test_at_event_end(self):
        assert alert_matches_event(_alert(80), _event(60, 80), timedelta(minutes=30))

    def test_after_event(self):
        assert not alert_matches_event(_alert(81), _event(60, 80), timedelta(minutes=30))

    def test_wrong_metric(self):
        assert not alert_matches_event(_alert(70, Metric.RH_PCT), _event(60, 80), timedelta(0))

    def test_unmapped_event(self):
        assert not alert_matches_event(_alert(70), _event(60, 80, "frost_warning"), timedelta(0))


# ── Counting ─────────────────────────────────────────────────────────────


class TestScore:
    def test_earliest_alert_claims_event(self):
        result = score([_alert(10), _alert(5)], [_event(0, 20)], T0, WINDOW_END)
        assert (result.tp, result.fp, result.fn) == (1, 0, 0)
        assert result.lead_time_min == pytest.approx(-5.0)

    def test_early_warning_is_positive_lead(self):
        result = score([_alert(50)], [_event(60, 80)], T0, WINDOW_END)
        assert result.lead_time_min == pytest.approx(10.0)

    def test_missed_event(self):
        result = score([], [_event(0, 20)], T0, WINDOW_END)
        assert (result.tp, result.fp, result.fn) == (0, 0, 1)
        assert result.precision is None
        assert result.recall == 0.0
        assert result.miss_rate == 1.0
        assert result.false_alert_rate == 0.0
        assert result.lead_time_min is None

    def test_unmatched_alert_is_false_positive(self):
        result = score([_alert(10, Metric.SOIL_MOISTURE_PCT)], [_event(0, 20)], T0, WINDOW_END)
        assert (result.tp, result.fp, result.fn) == (0, 1, 1)
        assert result.precision == 0.0
        assert result.false_alert_rate == 1.0

    def test_one_alert_can_detect_two_events(self):
        events = [_event(0, 20), _event(25, 40, "heat_stress")]
        result = score([_alert(15)], events, T0, WINDOW_END)
        assert result.tp == 2
        assert result.fp == 0

    def test_rates(self):
        alerts = [_alert(10), _alert(300), _alert(600)]
        events = [_event(0, 20), _event(900, 920)]
        result = score(alerts, events, T0, WINDOW_END)
        assert (result.tp, result.fp, result.fn) == (1, 2, 1)
        assert result.precision == pytest.approx(1 / 3)
        assert result.recall == pytest.approx(0.5)
        assert result.false_alert_rate == pytest.approx(2 / 3)
        assert result.miss_rate == pytest.approx(0.5)
        assert result.alerts_per_day == pytest.approx(3.0)

    def test_unmapped_events_ignored(self):
        result = score([], [_event(0, 20, "frost_warning")], T0, WINDOW_END)
        assert (result.tp, result.fp, result.fn) == (0, 0, 0)
        assert result.recall is None
        assert result.miss_rate == 0.0
        assert result.ignored_event_count == 1
        assert result.window_label == WindowLabel.STABLE_PERIOD

    def test_short_window_counts_as_one_day(self):
        result = score([_alert(10), _alert(20)], [], T0, T0 + timedelta(hours=2))
        assert result.alerts_per_day == 2.0

    def test_long_window(self):
        result = score([_alert(10)] * 4, [], T0, T0 + timedelta(days=2))
        assert result.alerts_per_day == 2.0


class TestClassifyWindow:
    def test_stable(self):
        assert classify_window(0, 0) == WindowLabel.STABLE_PERIOD

    def test_event_window(self):
        assert classify_window(0, 1) == WindowLabel.EVENT_WINDOW
        assert classify_window(5, 2) == WindowLabel.EVENT_WINDOW

    def test_alerts_without_events(self):
        assert classify_window(3, 0) == WindowLabel.NO_EVENT_ALERT_WINDOW


class TestBuildMetricsRecord:
    def test_copies_counts(self):
        result = score([_alert(10)], [_event(0, 20)], T0, WINDOW_END)
        record = build_metrics_record(result, FARM_ID, T0, WINDOW_END, "exp_static_v1")
        assert record.experiment_id == "exp_static_v1"
        assert (record.tp, record.fp, record.fn) == (1, 0, 0)
        assert record.window_label == WindowLabel.EVENT_WINDOW
        assert record.mapped_event_count == 1


# ── Stored evaluation ────────────────────────────────────────────────────


class TestEvaluateExperiment:
    async def test_scores_only_selected_experiment(self, store):
        for i in range(0, 289):
            await store.insert_reading(make_reading(i))
        await store.replace_events(FARM_ID, [_event(600, 620)])
        await store.insert_alert(_alert(605, experiment_id="exp_a"))
        await store.insert_alert(_alert(100, experiment_id="exp_b"))
        await store.insert_alert(_alert(200))

        record = await evaluate_experiment(
            FARM_ID, store, store, store, store, experiment_id="exp_a"
        )

        assert (record.tp, record.fp, record.fn) == (1, 0, 0)
        assert record.window_end == T0 + timedelta(minutes=5 * 288)
        assert await store.get_latest_metrics(FARM_ID) == [record]

    async def test_live_alerts(self, store):
        for i in range(0, 289):
            await store.insert_reading(make_reading(i))
        await store.insert_alert(_alert(200))

        record = await evaluate_experiment(FARM_ID, store, store, store, store)

        assert record.experiment_id is None
        assert record.fp == 1
        assert record.window_label == WindowLabel.NO_EVENT_ALERT_WINDOW

    async def test_no_readings(self, store):
        with pytest.raises(DataInsufficiencyError):
            await evaluate_experiment(FARM_ID, store, store, store, store)

    async def test_unknown_farm(self, store):
        with pytest.raises(ConfigurationError):
            await evaluate_experiment("farm_missing", store, store, store, store, farm_store=store)

    async def test_unknown_farm_checked_before_readings(self, store):
        await store.insert_reading(make_reading(0, farm_id="farm_missing"))
        with pytest.raises(ConfigurationError):
            await evaluate_experiment("farm_missing", store, store, store, store, farm_store=store)
        assert await store.get_latest_metrics("farm_missing") == []
