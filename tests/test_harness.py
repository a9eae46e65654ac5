"""
Tests for the experiment harness.

Covers:
  - A cold dip detected by both the static and the dynamic strategy
  - Fresh state per configuration and per run
  - Validation before the first write
  - Alerts and metrics records appended per configuration
"""

from datetime import timedelta

import pytest

from farmwatch.config.models import ExperimentConfig, ExperimentKind, ExperimentsConfig
from farmwatch.evaluation.harness import (
    ExperimentHarness,
    build_backtest_engine,
    run_configuration,
)
from farmwatch.evaluation.scorer import score
from farmwatch.exceptions import ConfigurationError, DataInsufficiencyError
from farmwatch.models.events import GroundTruthEvent
from farmwatch.models.readings import Metric
from farmwatch.models.thresholds import ThresholdMethod
from tests.conftest import FARM_ID, T0, cold_dip_series, make_band

STATIC_CONFIG = ExperimentConfig(
    experiment_id="exp_static_test",
    name="Static",
    method="static",
    kind=ExperimentKind.STATIC,
    min_consecutive_breaches=2,
)

DYNAMIC_CONFIG = ExperimentConfig(
    experiment_id="exp_dynamic_test",
    name="Dynamic",
    method="rolling_quantile_ema_cooldown",
    kind=ExperimentKind.DYNAMIC,
    q_low=0.10,
    q_high=0.90,
    margin=0.5,
    min_consecutive_breaches=2,
    update_every_minutes=0,
    min_history_points=40,
)

# Dip readings 50..55 sit at 38 F, below the static low of 45.
COLD_EVENT = GroundTruthEvent(
    farm_id=FARM_ID,
    start=T0 + timedelta(minutes=250),
    end=T0 + timedelta(minutes=270),
    event_type="cold_shock",
)


def _static_bands():
    return {
        Metric.TEMP_F: make_band(Metric.TEMP_F, 45.0, 90.0),
        Metric.RH_PCT: make_band(Metric.RH_PCT, 30.0, 90.0),
        Metric.SOIL_MOISTURE_PCT: make_band(Metric.SOIL_MOISTURE_PCT, 20.0, 60.0),
    }


def _experiments(**overrides) -> ExperimentsConfig:
    values = {
        "min_readings": 30,
        "experiments": [STATIC_CONFIG, DYNAMIC_CONFIG],
    }
    values.update(overrides)
    return ExperimentsConfig(**values)


async def _populate(store, readings=None):
    for reading in readings if readings is not None else cold_dip_series():
        await store.insert_reading(reading)
    for band in _static_bands().values():
        await store.insert_static_band(band)
    await store.replace_events(FARM_ID, [COLD_EVENT])


# ── Simulation ───────────────────────────────────────────────────────────


class TestRunConfiguration:
    def test_static_detects_cold_dip(self):
        readings = cold_dip_series()
        alerts = run_configuration(STATIC_CONFIG, readings, _static_bands())

        assert len(alerts) == 1
        assert alerts[0].timestamp == T0 + timedelta(minutes=255)
        assert alerts[0].rule_type == ThresholdMethod.STATIC
        assert alerts[0].experiment_id == "exp_static_test"

        result = score(alerts, [COLD_EVENT], readings[0].timestamp, readings[-1].timestamp)
        assert (result.tp, result.fp, result.fn) == (1, 0, 0)
        assert result.lead_time_min == pytest.approx(-5.0)

    def test_dynamic_detects_cold_dip(self):
        readings = cold_dip_series()
        alerts = run_configuration(DYNAMIC_CONFIG, readings, _static_bands())

        assert [a.metric for a in alerts] == [Metric.TEMP_F]
        assert alerts[0].rule_type == ThresholdMethod.DYNAMIC
        assert alerts[0].timestamp == T0 + timedelta(minutes=255)
        assert alerts[0].low == pytest.approx(69.5)

        result = score(alerts, [COLD_EVENT], readings[0].timestamp, readings[-1].timestamp)
        assert result.tp == 1
        assert result.fp == 0

    def test_dynamic_falls_back_to_static_during_warmup(self):
        # Dip at reading 10, before the estimator has 40 samples.
        readings = cold_dip_series(count=30, dip_start=10)
        alerts = run_configuration(DYNAMIC_CONFIG, readings, _static_bands())

        assert len(alerts) == 1
        assert alerts[0].low == 45.0
        assert alerts[0].rule_type == ThresholdMethod.DYNAMIC

    def test_identical_runs(self):
        readings = cold_dip_series()
        first = run_configuration(DYNAMIC_CONFIG, readings, _static_bands())
        second = run_configuration(DYNAMIC_CONFIG, readings, _static_bands())
        assert [(a.timestamp, a.metric, a.value) for a in first] == [
            (a.timestamp, a.metric, a.value) for a in second
        ]

    def test_per_metric_debounce(self):
        config = STATIC_CONFIG.model_copy(
            update={"min_consecutive_by_metric": {Metric.TEMP_F: 10}}
        )
        engine = build_backtest_engine(config)
        assert engine.required_for(Metric.TEMP_F) == 10
        assert engine.required_for(Metric.RH_PCT) == 2
        assert engine.experiment_id == "exp_static_test"

        alerts = run_configuration(config, cold_dip_series(), _static_bands())
        assert alerts == []


# ── Harness ──────────────────────────────────────────────────────────────


class TestExperimentHarness:
    async def test_runs_every_configuration(self, store):
        await _populate(store)
        harness = ExperimentHarness(store, _experiments())

        outcomes = await harness.run(FARM_ID, lookback_hours=24)

        assert [o.config.experiment_id for o in outcomes] == [
            "exp_static_test",
            "exp_dynamic_test",
        ]
        for outcome in outcomes:
            assert outcome.record.tp == 1
            assert outcome.record.fn == 0
            assert outcome.record.experiment_id == outcome.config.experiment_id

    async def test_appends_alerts_and_metrics(self, store):
        await _populate(store)
        harness = ExperimentHarness(store, _experiments())
        outcomes = await harness.run(FARM_ID)

        window_end = T0 + timedelta(minutes=495)
        for outcome in outcomes:
            stored = await store.get_alerts(
                FARM_ID, T0, window_end, experiment_id=outcome.config.experiment_id
            )
            assert len(stored) == len(outcome.alerts)

        assert await store.get_alerts(FARM_ID, T0, window_end) == []
        latest = await store.get_latest_metrics(FARM_ID)
        assert {r.experiment_id for r in latest} == {"exp_static_test", "exp_dynamic_test"}

    async def test_registers_experiments(self, store):
        await _populate(store)
        await ExperimentHarness(store, _experiments()).run(FARM_ID)

        experiment = await store.get_experiment("exp_dynamic_test")
        assert experiment is not None
        assert experiment.params["min_history_points"] == 40

    async def test_alerts_not_persisted_when_disabled(self, store):
        await _populate(store)
        harness = ExperimentHarness(store, _experiments(persist_alerts=False))
        outcomes = await harness.run(FARM_ID)

        assert all(o.alerts for o in outcomes)
        assert await store.get_recent_alerts(FARM_ID) == []

    async def test_selected_experiments_only(self, store):
        await _populate(store)
        outcomes = await ExperimentHarness(store, _experiments()).run(
            FARM_ID, experiment_ids=["exp_dynamic_test"]
        )
        assert [o.config.experiment_id for o in outcomes] == ["exp_dynamic_test"]

    async def test_unknown_experiment_writes_nothing(self, store):
        await _populate(store)
        with pytest.raises(ConfigurationError):
            await ExperimentHarness(store, _experiments()).run(
                FARM_ID, experiment_ids=["exp_missing"]
            )
        assert await store.get_experiment("exp_static_test") is None
        assert await store.get_latest_metrics(FARM_ID) == []

    async def test_unknown_farm(self, store):
        with pytest.raises(ConfigurationError):
            await ExperimentHarness(store, _experiments()).run("farm_missing")

    async def test_empty_suite(self, store):
        await _populate(store)
        with pytest.raises(ConfigurationError):
            await ExperimentHarness(store, _experiments(experiments=[])).run(FARM_ID)

    async def test_no_readings(self, store):
        with pytest.raises(DataInsufficiencyError) as exc:
            await ExperimentHarness(store, _experiments()).run(FARM_ID)
        assert exc.value.available == 0

    async def test_too_few_readings(self, store):
        await _populate(store, cold_dip_series(count=20, dip_start=5))
        with pytest.raises(DataInsufficiencyError) as exc:
            await ExperimentHarness(store, _experiments()).run(FARM_ID)
        assert exc.value.available == 20
        assert exc.value.required == 30
        assert await store.get_latest_metrics(FARM_ID) == []
