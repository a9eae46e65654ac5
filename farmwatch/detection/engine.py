"""
Alert decision engine.

This module provides the AlertDecisionEngine class which turns a stream of
readings plus their active bands into Alert records.

Key Features:
    - Consecutive-breach debouncing per (farm, metric, rule_type)
    - Per-key cooldown between alerts
    - Static and dynamic rules evaluated independently on every reading
    - Optional persistence of emitted alerts to an AlertStore

Decision rule (per key, per reading):
    breach      -> streak += 1
    no breach   -> streak = 0
    fire when streak >= required AND (never fired OR ts - last >= cooldown)
    firing stamps the cooldown only; the streak keeps counting

Example:
    >>> engine = create_alert_engine(config.alerts, alert_store=store)
    >>> alerts = await engine.process_reading(
    ...     reading,
    ...     {ThresholdMethod.STATIC: static_bands, ThresholdMethod.DYNAMIC: dynamic_bands},
    ... )
"""

from datetime import datetime, timedelta
from typing import Dict, List, Mapping, Optional, Sequence, Union

import structlog

from farmwatch.config.models import AlertsConfig
from farmwatch.detection.evaluator import build_message, is_breach
from farmwatch.detection.state import DebounceState, build_debounce_key
from farmwatch.interfaces.stores import AlertStore
from farmwatch.models.alerts import Alert, Severity
from farmwatch.models.readings import DEFAULT_MONITORED_METRICS, Metric, Reading
from farmwatch.models.thresholds import ThresholdBand, ThresholdMethod

logger = structlog.get_logger(__name__)


# Default configuration values
DEFAULT_REQUIRED_CONSECUTIVE = 2
DEFAULT_COOLDOWN_MINUTES = 5.0

BandsByRule = Mapping[ThresholdMethod, Mapping[Metric, ThresholdBand]]


class AlertDecisionEngine:
    """
    Debounces breaches and applies cooldowns.

    Each engine owns its DebounceState. Live monitoring keeps one engine for
    the life of the process; every backtest run builds a fresh one.

    Attributes:
        state: DebounceState owned by this engine.
        alert_store: Where process_reading appends alerts (optional).
        metrics: Metrics evaluated by evaluate_reading.
        experiment_id: Stamped on every alert (None for live alerts).

    Example:
        >>> engine = AlertDecisionEngine(required_consecutive=2, cooldown_minutes=5)
        >>> engine.evaluate("farm_global_2", t0, Metric.TEMP_F, 31.0, band, ThresholdMethod.STATIC)
        >>> alert = engine.evaluate("farm_global_2", t1, Metric.TEMP_F, 30.5, band, ThresholdMethod.STATIC)
        >>> alert.message
        'STATIC breach on temp_f: value=30.50 limits=[40.00, 90.00]'
    """

    def __init__(
        self,
        alert_store: Optional[AlertStore] = None,
        state: Optional[DebounceState] = None,
        required_consecutive: Union[int, Mapping[Metric, int]] = DEFAULT_REQUIRED_CONSECUTIVE,
        cooldown_minutes: Union[float, Mapping[Metric, float]] = DEFAULT_COOLDOWN_MINUTES,
        severities: Optional[Mapping[Metric, Severity]] = None,
        metrics: Sequence[Metric] = DEFAULT_MONITORED_METRICS,
        experiment_id: Optional[str] = None,
        default_required_consecutive: int = DEFAULT_REQUIRED_CONSECUTIVE,
        default_cooldown_minutes: float = DEFAULT_COOLDOWN_MINUTES,
    ) -> None:
        """
        Initialize the engine.

        Args:
            alert_store: AlertStore used by process_reading.
            state: Debounce state (a new one by default).
            required_consecutive: Breaches required before firing, either
                one value or a per-metric map.
            cooldown_minutes: Minimum minutes between alerts of the same key,
                either one value or a per-metric map.
            severities: Severity per metric (default: temp_f high, others
                medium).
            metrics: Metrics evaluated by evaluate_reading.
            experiment_id: Stamped on every alert.
            default_required_consecutive: Used for metrics missing from a
                per-metric map.
            default_cooldown_minutes: Used for metrics missing from a
                per-metric map.
        """
        self.alert_store = alert_store
        self.state = state if state is not None else DebounceState()
        self.metrics = [Metric(m) for m in metrics]
        self.experiment_id = experiment_id

        if isinstance(required_consecutive, Mapping):
            self._required = {Metric(k): int(v) for k, v in required_consecutive.items()}
            self._default_required = default_required_consecutive
        else:
            self._required = {}
            self._default_required = int(required_consecutive)

        if isinstance(cooldown_minutes, Mapping):
            self._cooldowns = {Metric(k): float(v) for k, v in cooldown_minutes.items()}
            self._default_cooldown = default_cooldown_minutes
        else:
            self._cooldowns = {}
            self._default_cooldown = float(cooldown_minutes)

        if severities is None:
            severities = {Metric.TEMP_F: Severity.HIGH}
        self._severities: Dict[Metric, Severity] = {Metric(k): v for k, v in severities.items()}

        for metric in self.metrics:
            if self.required_for(metric) < 1:
                raise ValueError(f"required consecutive breaches for {metric.value} must be >= 1")
            if self.cooldown_for(metric) < timedelta(0):
                raise ValueError(f"cooldown for {metric.value} must be >= 0")

    def required_for(self, metric: Metric) -> int:
        """Consecutive breaches required for a metric."""
        return self._required.get(Metric(metric), self._default_required)

    def cooldown_for(self, metric: Metric) -> timedelta:
        """Cooldown for a metric."""
        return timedelta(minutes=self._cooldowns.get(Metric(metric), self._default_cooldown))

    def severity_for(self, metric: Metric) -> Severity:
        """Severity of alerts on a metric."""
        return self._severities.get(Metric(metric), Severity.MEDIUM)

    def evaluate(
        self,
        farm_id: str,
        timestamp: datetime,
        metric: Metric,
        value: Optional[float],
        band: Optional[ThresholdBand],
        rule_type: ThresholdMethod,
    ) -> Optional[Alert]:
        """
        Evaluate one value against one band for one rule type.

        Args:
            farm_id: Farm identifier.
            timestamp: Reading timestamp.
            metric: Metric being evaluated.
            value: Observed value.
            band: Active band (None means no breach).
            rule_type: static or dynamic.

        Returns:
            Optional[Alert]: The alert if one fires, None otherwise.
        """
        metric = Metric(metric)
        key = build_debounce_key(farm_id, metric, rule_type)

        breached = is_breach(value, band)
        streak = self.state.record(key, breached)
        if not breached or streak < self.required_for(metric):
            return None

        if not self.state.cooldown_elapsed(key, timestamp, self.cooldown_for(metric)):
            logger.debug(
                "alert_suppressed_cooldown",
                farm_id=farm_id,
                metric=metric.value,
                rule_type=ThresholdMethod(rule_type).value,
                streak=streak,
            )
            return None

        alert = Alert(
            farm_id=farm_id,
            timestamp=timestamp,
            metric=metric,
            severity=self.severity_for(metric),
            rule_type=rule_type,
            message=build_message(rule_type, metric, value, band),
            value=value,
            low=band.low,
            high=band.high,
            experiment_id=self.experiment_id,
        )
        self.state.stamp(key, timestamp)

        logger.info(
            "alert_triggered",
            farm_id=farm_id,
            metric=metric.value,
            rule_type=ThresholdMethod(rule_type).value,
            value=round(value, 2),
            low=band.low,
            high=band.high,
            streak=streak,
            experiment_id=self.experiment_id,
        )
        return alert

    def evaluate_reading(self, reading: Reading, bands_by_rule: BandsByRule) -> List[Alert]:
        """
        Evaluate every monitored metric of a reading under every rule type.

        Rule types are independent: static and dynamic may both fire on the
        same reading.

        Args:
            reading: The reading.
            bands_by_rule: Active bands per rule type, then per metric.

        Returns:
            List[Alert]: Alerts fired by this reading.
        """
        alerts: List[Alert] = []
        for metric in self.metrics:
            value = reading.value(metric)
            for rule_type, bands in bands_by_rule.items():
                alert = self.evaluate(
                    farm_id=reading.farm_id,
                    timestamp=reading.timestamp,
                    metric=metric,
                    value=value,
                    band=bands.get(metric),
                    rule_type=rule_type,
                )
                if alert is not None:
                    alerts.append(alert)
        return alerts

    async def process_reading(self, reading: Reading, bands_by_rule: BandsByRule) -> List[Alert]:
        """
        Evaluate a reading and append the resulting alerts to the store.

        Raises:
            RuntimeError: If the engine was built without an alert store.
        """
        if self.alert_store is None:
            raise RuntimeError("process_reading requires an alert store")

        alerts = self.evaluate_reading(reading, bands_by_rule)
        for alert in alerts:
            await self.alert_store.insert_alert(alert)
        return alerts

    def reset(self) -> None:
        """Drop all debounce state."""
        self.state.clear_all()


def create_alert_engine(
    config: Optional[AlertsConfig] = None,
    alert_store: Optional[AlertStore] = None,
) -> AlertDecisionEngine:
    """
    Factory function to create the live AlertDecisionEngine.

    Args:
        config: Live alert settings (defaults when None).
        alert_store: Where process_reading appends alerts.

    Returns:
        AlertDecisionEngine: A new engine with empty debounce state.

    Example:
        >>> engine = create_alert_engine(config.alerts, alert_store=store)
    """
    if config is None:
        config = AlertsConfig()
    return AlertDecisionEngine(
        alert_store=alert_store,
        required_consecutive=config.required_consecutive_breaches,
        cooldown_minutes=config.cooldown_minutes,
        severities=config.severities,
        metrics=config.monitored_metrics,
    )
