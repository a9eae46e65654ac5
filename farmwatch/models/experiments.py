"""
Experiment and evaluation result models.

Models:
    Experiment: A named alerting configuration, immutable once created
    WindowLabel: Classification of a scored window
    MetricsRecord: One scored (experiment, farm, window) result
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


class Experiment(BaseModel):
    """
    A named alerting configuration.

    Attributes:
        experiment_id: Unique identifier (e.g., "exp_static_v1").
        name: Human-readable name.
        method: Method label (e.g., "rolling_quantile_ema_cooldown").
        params: Parameter set the experiment was run with.
        created_at: Registration time.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    experiment_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    method: str = Field(..., min_length=1)
    params: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class WindowLabel(str, Enum):
    """
    Classification of a scored window.

    Attributes:
        STABLE_PERIOD: No alerts and no mapped events.
        EVENT_WINDOW: At least one mapped event.
        NO_EVENT_ALERT_WINDOW: Alerts but no mapped events.
    """

    STABLE_PERIOD = "stable_period"
    EVENT_WINDOW = "event_window"
    NO_EVENT_ALERT_WINDOW = "no_event_alert_window"


class MetricsRecord(BaseModel):
    """
    Alert quality statistics for one experiment, farm and window.

    Records are append-only; every scoring run inserts exactly one.

    Sign conventions:
        lead_time_min is the mean of (event.start - alert.timestamp) in
        minutes over matched events. Positive means the alert fired before
        the event started; negative means it fired after.
        false_alert_rate is fp divided by the total alert count.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    experiment_id: Optional[str] = None
    farm_id: str = Field(..., min_length=1)
    window_start: datetime
    window_end: datetime
    tp: int = Field(..., ge=0)
    fp: int = Field(..., ge=0)
    fn: int = Field(..., ge=0)
    precision: Optional[float] = None
    recall: Optional[float] = None
    false_alert_rate: float = 0.0
    miss_rate: float = 0.0
    lead_time_min: Optional[float] = None
    alerts_per_day: float = 0.0
    window_label: WindowLabel
    mapped_event_count: int = 0
    ignored_event_count: int = 0
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
