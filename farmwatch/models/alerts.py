"""
Alert data models.

Models:
    Severity: Severity levels shared by alerts and ground-truth events
    Alert: An append-only record emitted by the alert decision engine
"""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field

from farmwatch.models.readings import Metric
from farmwatch.models.thresholds import ThresholdMethod


class Severity(str, Enum):
    """
    Severity levels.

    Attributes:
        HIGH: Crop or equipment at risk, act now.
        MEDIUM: Investigate soon.
        LOW: Awareness only.
    """

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class Alert(BaseModel):
    """
    Alert emitted when a debounced breach clears its cooldown.

    Alerts are never mutated after insert. Backtest alerts carry the id of
    the experiment that produced them; live alerts carry none.

    Example:
        >>> alert = Alert(
        ...     farm_id="farm_global_2",
        ...     timestamp=ts,
        ...     metric=Metric.TEMP_F,
        ...     severity=Severity.HIGH,
        ...     rule_type=ThresholdMethod.STATIC,
        ...     message="STATIC breach on temp_f: value=31.00 limits=[40.00, 90.00]",
        ...     value=31.0,
        ...     low=40.0,
        ...     high=90.0,
        ... )
    """

    model_config = {"frozen": True, "extra": "forbid"}

    alert_id: str = Field(default_factory=lambda: str(uuid4()))
    farm_id: str = Field(..., min_length=1)
    timestamp: datetime
    metric: Metric
    severity: Severity
    rule_type: ThresholdMethod
    message: str
    value: float
    low: Optional[float] = None
    high: Optional[float] = None
    experiment_id: Optional[str] = None
