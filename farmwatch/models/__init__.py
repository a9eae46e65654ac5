"""
Shared Pydantic data models for the threshold lab.

Modules:
    readings: Farms, readings and the Metric enum
    thresholds: Safety bounds and threshold bands
    alerts: Alert records and severities
    events: Ground-truth events and the event-to-metric map
    experiments: Experiments and metrics records

Example:
    >>> from farmwatch.models import Reading, Metric, ThresholdBand
    >>> from farmwatch.models import Alert, GroundTruthEvent, MetricsRecord
"""

from farmwatch.models.readings import (
    DEFAULT_MONITORED_METRICS,
    Farm,
    Metric,
    Reading,
)
from farmwatch.models.thresholds import (
    DEFAULT_SAFETY_BOUNDS,
    SafetyBounds,
    ThresholdBand,
    ThresholdMethod,
)
from farmwatch.models.alerts import Alert, Severity
from farmwatch.models.events import (
    EVENT_METRIC_MAP,
    EventType,
    GroundTruthEvent,
    event_mapped_metric,
)
from farmwatch.models.experiments import Experiment, MetricsRecord, WindowLabel

__all__: list[str] = [
    # Readings
    "Metric",
    "Farm",
    "Reading",
    "DEFAULT_MONITORED_METRICS",
    # Thresholds
    "ThresholdMethod",
    "SafetyBounds",
    "ThresholdBand",
    "DEFAULT_SAFETY_BOUNDS",
    # Alerts
    "Severity",
    "Alert",
    # Events
    "EventType",
    "GroundTruthEvent",
    "EVENT_METRIC_MAP",
    "event_mapped_metric",
    # Experiments
    "Experiment",
    "MetricsRecord",
    "WindowLabel",
]
