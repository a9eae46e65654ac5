"""
Ground-truth event models.

Ground-truth events are labelled anomaly intervals used only for evaluation,
never for live alerting. Every known event type maps to exactly one metric.
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional
from uuid import uuid4

from pydantic import BaseModel, Field, model_validator

from farmwatch.models.alerts import Severity
from farmwatch.models.readings import Metric


class EventType(str, Enum):
    """Closed set of synthesized anomaly archetypes."""

    COLD_SHOCK = "cold_shock"
    HEAT_STRESS = "heat_stress"
    HUMIDITY_ANOMALY = "humidity_anomaly"
    IRRIGATION_FAILURE = "irrigation_failure"
    RECOVERY_EVENT = "recovery_event"


# One event type maps to one metric so an event is never scored twice.
EVENT_METRIC_MAP: Dict[str, Metric] = {
    EventType.COLD_SHOCK.value: Metric.TEMP_F,
    EventType.HEAT_STRESS.value: Metric.TEMP_F,
    EventType.HUMIDITY_ANOMALY.value: Metric.RH_PCT,
    EventType.IRRIGATION_FAILURE.value: Metric.SOIL_MOISTURE_PCT,
    EventType.RECOVERY_EVENT.value: Metric.SOIL_MOISTURE_PCT,
}


def event_mapped_metric(event_type: str) -> Optional[Metric]:
    """Return the metric an event type is scored against, or None if unmapped."""
    return EVENT_METRIC_MAP.get(event_type)


class GroundTruthEvent(BaseModel):
    """
    A labelled anomaly interval.

    event_type is a plain string so rows with labels outside EventType can be
    loaded from the store; those are excluded from scoring.

    Attributes:
        event_id: Unique identifier.
        farm_id: Farm the event belongs to.
        start: Interval start (inclusive).
        end: Interval end (inclusive).
        event_type: Archetype label.
        severity: Event severity.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    event_id: str = Field(default_factory=lambda: str(uuid4()))
    farm_id: str = Field(..., min_length=1)
    start: datetime
    end: datetime
    event_type: str = Field(..., min_length=1)
    severity: Severity = Severity.MEDIUM

    @model_validator(mode="after")
    def validate_interval(self) -> "GroundTruthEvent":
        if self.end < self.start:
            raise ValueError("event end precedes start")
        return self

    @property
    def mapped_metric(self) -> Optional[Metric]:
        """Metric this event is scored against, None when unmapped."""
        return event_mapped_metric(self.event_type)

    @property
    def duration_minutes(self) -> float:
        """Interval length in minutes."""
        return (self.end - self.start).total_seconds() / 60.0
