"""
Experiment harness.

Replays a farm's reading window through every configured alerting strategy
(static baseline and dynamic variants), scores each one against the stored
ground truth and appends one MetricsRecord per configuration.

Every configuration runs against fresh state: a new DebounceState, a new
estimator and a new provider. Nothing carries over between configurations or
between runs.

Example:
    >>> harness = ExperimentHarness(store, config.experiments)
    >>> outcomes = await harness.run("farm_global_2", lookback_hours=24)
    >>> for outcome in outcomes:
    ...     print(outcome.config.experiment_id, outcome.record.precision)
"""

from dataclasses import dataclass
from datetime import timedelta
from typing import List, Mapping, Optional, Sequence

import structlog

from farmwatch.config.models import ExperimentConfig, ExperimentsConfig
from farmwatch.detection.engine import AlertDecisionEngine
from farmwatch.exceptions import ConfigurationError, DataInsufficiencyError
from farmwatch.interfaces.stores import DataStore
from farmwatch.models.alerts import Alert, Severity
from farmwatch.models.experiments import Experiment, MetricsRecord
from farmwatch.models.readings import DEFAULT_MONITORED_METRICS, Metric, Reading
from farmwatch.models.thresholds import SafetyBounds, ThresholdBand
from farmwatch.thresholds.provider import ThresholdProvider, build_threshold_provider
from farmwatch.evaluation.scorer import ScoreResult, build_metrics_record, score

logger = structlog.get_logger(__name__)


@dataclass
class ExperimentOutcome:
    """
    Result of running one configuration.

    Attributes:
        config: The configuration that was run.
        alerts: Alerts the configuration produced.
        result: Scoring result.
        record: The MetricsRecord appended for the run.
    """

    config: ExperimentConfig
    alerts: List[Alert]
    result: ScoreResult
    record: MetricsRecord


def build_backtest_engine(
    config: ExperimentConfig,
    metrics: Sequence[Metric] = DEFAULT_MONITORED_METRICS,
    severities: Optional[Mapping[Metric, Severity]] = None,
) -> AlertDecisionEngine:
    """Build a fresh engine carrying the configuration's debounce and cooldown."""
    return AlertDecisionEngine(
        required_consecutive={m: config.min_consecutive_for(m) for m in metrics},
        cooldown_minutes={m: config.cooldown_for(m) for m in metrics},
        severities=severities,
        metrics=metrics,
        experiment_id=config.experiment_id,
        default_required_consecutive=config.min_consecutive_breaches,
        default_cooldown_minutes=config.cooldown_minutes,
    )


def simulate_alerts(
    readings: Sequence[Reading],
    provider: ThresholdProvider,
    engine: AlertDecisionEngine,
) -> List[Alert]:
    """
    Replay readings in order through a provider and an engine.

    The provider sees the full series but only uses readings at or before
    each evaluation time.

    Returns:
        List[Alert]: Alerts in the order they fired.
    """
    alerts: List[Alert] = []
    for reading in readings:
        for metric in engine.metrics:
            band = provider.band_for(reading.farm_id, metric, reading.timestamp, readings)
            alert = engine.evaluate(
                farm_id=reading.farm_id,
                timestamp=reading.timestamp,
                metric=metric,
                value=reading.value(metric),
                band=band,
                rule_type=provider.rule_type,
            )
            if alert is not None:
                alerts.append(alert)
    return alerts


def run_configuration(
    config: ExperimentConfig,
    readings: Sequence[Reading],
    static_bands: Mapping[Metric, ThresholdBand],
    safety_bounds: Optional[Mapping[Metric, SafetyBounds]] = None,
    metrics: Sequence[Metric] = DEFAULT_MONITORED_METRICS,
    severities: Optional[Mapping[Metric, Severity]] = None,
) -> List[Alert]:
    """Run one configuration over a series with fresh state and return its alerts."""
    provider = build_threshold_provider(config, static_bands, safety_bounds)
    engine = build_backtest_engine(config, metrics, severities)
    return simulate_alerts(readings, provider, engine)


class ExperimentHarness:
    """
    Drives every configured strategy through the engine and the scorer.

    Attributes:
        store: DataStore providing readings, bands, events and sinks.
        experiments: Backtest suite and scoring settings.
    """

    def __init__(
        self,
        store: DataStore,
        experiments: ExperimentsConfig,
        safety_bounds: Optional[Mapping[Metric, SafetyBounds]] = None,
        severities: Optional[Mapping[Metric, Severity]] = None,
        metrics: Sequence[Metric] = DEFAULT_MONITORED_METRICS,
    ) -> None:
        self.store = store
        self.experiments = experiments
        self.safety_bounds = safety_bounds
        self.severities = severities
        self.metrics = [Metric(m) for m in metrics]

    async def run(
        self,
        farm_id: str,
        lookback_hours: Optional[float] = None,
        experiment_ids: Optional[Sequence[str]] = None,
    ) -> List[ExperimentOutcome]:
        """
        Run the suite for one farm.

        The window ends at the farm's newest reading and spans lookback_hours.
        All checks happen before the first write.

        Args:
            farm_id: Farm identifier.
            lookback_hours: Window length (default from configuration).
            experiment_ids: Restrict the run to these configurations.

        Returns:
            List[ExperimentOutcome]: One outcome per configuration run.

        Raises:
            ConfigurationError: Unknown farm, unknown experiment id or empty suite.
            DataInsufficiencyError: Too few readings in the window.
        """
        if not farm_id:
            raise ConfigurationError("farm_id is required")
        if lookback_hours is None:
            lookback_hours = self.experiments.default_lookback_hours

        configs = self._select(experiment_ids)

        if await self.store.get_farm(farm_id) is None:
            raise ConfigurationError(f"Unknown farm: {farm_id}", farm_id=farm_id)

        window_end = await self.store.get_latest_reading_time(farm_id)
        if window_end is None:
            raise DataInsufficiencyError(
                f"No readings found for {farm_id}; import or generate data first",
                available=0,
                required=self.experiments.min_readings,
            )
        window_start = window_end - timedelta(hours=lookback_hours)

        readings = await self.store.get_readings(farm_id, window_start, window_end)
        if len(readings) < self.experiments.min_readings:
            raise DataInsufficiencyError(
                f"Not enough readings in window for {farm_id} ({len(readings)}); "
                "increase lookback or import more data",
                available=len(readings),
                required=self.experiments.min_readings,
            )

        events = await self.store.get_events(farm_id, window_start, window_end)
        static_bands = await self.store.get_static_bands(farm_id, as_of=window_end)

        logger.info(
            "experiment_run_started",
            farm_id=farm_id,
            window_start=window_start.isoformat(),
            window_end=window_end.isoformat(),
            readings=len(readings),
            events=len(events),
            configurations=len(configs),
        )

        outcomes: List[ExperimentOutcome] = []
        for config in configs:
            await self.store.ensure_experiment(
                Experiment(
                    experiment_id=config.experiment_id,
                    name=config.name,
                    method=config.method,
                    params=config.to_params(),
                )
            )

            alerts = run_configuration(
                config,
                readings,
                static_bands,
                safety_bounds=self.safety_bounds,
                metrics=self.metrics,
                severities=self.severities,
            )
            if self.experiments.persist_alerts:
                for alert in alerts:
                    await self.store.insert_alert(alert)

            result = score(
                alerts,
                events,
                window_start,
                window_end,
                self.experiments.lead_window_minutes,
            )
            record = build_metrics_record(
                result, farm_id, window_start, window_end, config.experiment_id
            )
            await self.store.insert_metrics(record)

            logger.info(
                "experiment_scored",
                farm_id=farm_id,
                experiment_id=config.experiment_id,
                alerts=len(alerts),
                tp=result.tp,
                fp=result.fp,
                fn=result.fn,
                precision=result.precision,
                recall=result.recall,
                lead_time_min=result.lead_time_min,
            )
            outcomes.append(ExperimentOutcome(config=config, alerts=alerts, result=result, record=record))

        return outcomes

    def _select(self, experiment_ids: Optional[Sequence[str]]) -> List[ExperimentConfig]:
        if not self.experiments.experiments:
            raise ConfigurationError("No experiments configured")
        if experiment_ids is None:
            return list(self.experiments.experiments)

        selected: List[ExperimentConfig] = []
        for experiment_id in experiment_ids:
            config = self.experiments.get_experiment(experiment_id)
            if config is None:
                raise ConfigurationError(f"Unknown experiment: {experiment_id}")
            selected.append(config)
        return selected
