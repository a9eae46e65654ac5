"""
Alert quality scorer.

Matches alerts against ground-truth events over a window and derives
precision, recall, false-alert rate, miss rate, lead time and alert volume.

Match rule:
    alert.metric == mapped metric of the event
    AND event.start - lead_window <= alert.timestamp <= event.end

Counting:
    - Each mapped event claims at most one alert: the earliest match (TP).
    - A mapped event with no match is a false negative.
    - An alert matching no mapped event is a false positive.
    - Events with an unmapped type are ignored.

Sign conventions:
    lead_time_min = mean(event.start - alert.timestamp) in minutes over
    matched events. Positive means early warning; negative means the alert
    fired after the event had started.
    false_alert_rate = fp / total alerts.

Classes:
    ScoreResult: Counts and derived statistics for one window

Functions:
    score: Score alerts against events
    build_metrics_record: Turn a ScoreResult into a MetricsRecord
    evaluate_experiment: Score stored alerts and append a MetricsRecord
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import List, Optional, Sequence

import structlog

from farmwatch.exceptions import ConfigurationError, DataInsufficiencyError
from farmwatch.interfaces.stores import (
    AlertStore,
    EventStore,
    FarmStore,
    MetricsStore,
    ReadingStore,
)
from farmwatch.models.alerts import Alert
from farmwatch.models.events import GroundTruthEvent
from farmwatch.models.experiments import MetricsRecord, WindowLabel

logger = structlog.get_logger(__name__)


DEFAULT_LEAD_WINDOW_MINUTES = 30.0


@dataclass
class ScoreResult:
    """
    Scoring outcome for one window.

    Attributes:
        tp: Mapped events detected by at least one alert.
        fp: Alerts matching no mapped event.
        fn: Mapped events with no matching alert.
        precision: tp / (tp + fp), None when no alerts were counted.
        recall: tp / (tp + fn), None when there were no mapped events.
        false_alert_rate: fp / total alerts, 0.0 with no alerts.
        miss_rate: fn / (tp + fn), 0.0 with no mapped events.
        lead_time_min: Mean lead time over matched events, None when none matched.
        alerts_per_day: Total alerts divided by max(window days, 1).
        window_label: Classification of the window.
        total_alerts: Alerts considered.
        mapped_event_count: Events with a mapped metric.
        ignored_event_count: Events with an unmapped type.
    """

    tp: int
    fp: int
    fn: int
    precision: Optional[float]
    recall: Optional[float]
    false_alert_rate: float
    miss_rate: float
    lead_time_min: Optional[float]
    alerts_per_day: float
    window_label: WindowLabel
    total_alerts: int
    mapped_event_count: int
    ignored_event_count: int


def alert_matches_event(
    alert: Alert,
    event: GroundTruthEvent,
    lead_window: timedelta,
) -> bool:
    """
    Check whether an alert detects an event.

    Unmapped events never match.
    """
    mapped = event.mapped_metric
    if mapped is None or alert.metric != mapped:
        return False
    return event.start - lead_window <= alert.timestamp <= event.end


def classify_window(total_alerts: int, mapped_events: int) -> WindowLabel:
    """Label a window from its alert and mapped-event counts."""
    if mapped_events > 0:
        return WindowLabel.EVENT_WINDOW
    if total_alerts == 0:
        return WindowLabel.STABLE_PERIOD
    return WindowLabel.NO_EVENT_ALERT_WINDOW


def score(
    alerts: Sequence[Alert],
    events: Sequence[GroundTruthEvent],
    window_start: datetime,
    window_end: datetime,
    lead_window_minutes: float = DEFAULT_LEAD_WINDOW_MINUTES,
) -> ScoreResult:
    """
    Score alerts against ground-truth events.

    Inputs are expected to be restricted to one farm and window already.

    Args:
        alerts: Alerts in the window.
        events: Events overlapping the window.
        window_start: Window start.
        window_end: Window end.
        lead_window_minutes: How early an alert may fire and still count.

    Returns:
        ScoreResult: Counts and derived statistics.

    Example:
        >>> result = score(alerts, events, start, end)
        >>> print(f"precision={result.precision} recall={result.recall}")
    """
    lead_window = timedelta(minutes=lead_window_minutes)
    mapped_events = [e for e in events if e.mapped_metric is not None]
    ordered_alerts = sorted(alerts, key=lambda a: a.timestamp)

    tp = 0
    fn = 0
    lead_times: List[float] = []

    for event in mapped_events:
        first_match = next(
            (a for a in ordered_alerts if alert_matches_event(a, event, lead_window)),
            None,
        )
        if first_match is None:
            fn += 1
            continue
        tp += 1
        lead_times.append((event.start - first_match.timestamp).total_seconds() / 60.0)

    fp = sum(
        1
        for alert in ordered_alerts
        if not any(alert_matches_event(alert, e, lead_window) for e in mapped_events)
    )

    total_alerts = len(ordered_alerts)
    window_days = (window_end - window_start).total_seconds() / 86400.0

    return ScoreResult(
        tp=tp,
        fp=fp,
        fn=fn,
        precision=tp / (tp + fp) if tp + fp > 0 else None,
        recall=tp / (tp + fn) if tp + fn > 0 else None,
        false_alert_rate=fp / total_alerts if total_alerts > 0 else 0.0,
        miss_rate=fn / (tp + fn) if tp + fn > 0 else 0.0,
        lead_time_min=sum(lead_times) / len(lead_times) if lead_times else None,
        alerts_per_day=total_alerts / max(window_days, 1.0),
        window_label=classify_window(total_alerts, len(mapped_events)),
        total_alerts=total_alerts,
        mapped_event_count=len(mapped_events),
        ignored_event_count=len(events) - len(mapped_events),
    )


def build_metrics_record(
    result: ScoreResult,
    farm_id: str,
    window_start: datetime,
    window_end: datetime,
    experiment_id: Optional[str] = None,
) -> MetricsRecord:
    """Convert a ScoreResult into an append-only MetricsRecord."""
    return MetricsRecord(
        experiment_id=experiment_id,
        farm_id=farm_id,
        window_start=window_start,
        window_end=window_end,
        tp=result.tp,
        fp=result.fp,
        fn=result.fn,
        precision=result.precision,
        recall=result.recall,
        false_alert_rate=result.false_alert_rate,
        miss_rate=result.miss_rate,
        lead_time_min=result.lead_time_min,
        alerts_per_day=result.alerts_per_day,
        window_label=result.window_label,
        mapped_event_count=result.mapped_event_count,
        ignored_event_count=result.ignored_event_count,
    )


async def evaluate_experiment(
    farm_id: str,
    reading_store: ReadingStore,
    alert_store: AlertStore,
    event_store: EventStore,
    metrics_store: MetricsStore,
    experiment_id: Optional[str] = None,
    lookback_hours: float = 24,
    lead_window_minutes: float = DEFAULT_LEAD_WINDOW_MINUTES,
    farm_store: Optional[FarmStore] = None,
) -> MetricsRecord:
    """
    Score alerts already stored for a farm and append a MetricsRecord.

    The window ends at the farm's newest reading. With experiment_id the
    backtest alerts of that experiment are scored; without it, live alerts.

    Raises:
        ConfigurationError: If farm_id is empty, or farm_store is given and
            the farm is unknown.
        DataInsufficiencyError: If the farm has no readings.
    """
    if not farm_id:
        raise ConfigurationError("farm_id is required")
    if farm_store is not None and await farm_store.get_farm(farm_id) is None:
        raise ConfigurationError(f"Unknown farm: {farm_id}", farm_id=farm_id)

    window_end = await reading_store.get_latest_reading_time(farm_id)
    if window_end is None:
        raise DataInsufficiencyError(
            f"No readings found for {farm_id}; nothing to evaluate",
            available=0,
            required=1,
        )
    window_start = window_end - timedelta(hours=lookback_hours)

    alerts = await alert_store.get_alerts(farm_id, window_start, window_end, experiment_id)
    events = await event_store.get_events(farm_id, window_start, window_end)

    result = score(alerts, events, window_start, window_end, lead_window_minutes)
    record = build_metrics_record(result, farm_id, window_start, window_end, experiment_id)
    await metrics_store.insert_metrics(record)

    logger.info(
        "experiment_evaluated",
        farm_id=farm_id,
        experiment_id=experiment_id,
        tp=result.tp,
        fp=result.fp,
        fn=result.fn,
        window_label=result.window_label.value,
    )
    return record
