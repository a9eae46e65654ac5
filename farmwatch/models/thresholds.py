"""
Threshold band data models.

Models:
    ThresholdMethod: static or dynamic
    SafetyBounds: Absolute guardrail interval for a metric
    ThresholdBand: Per-metric [low, high] interval used to decide breaches
"""

from datetime import datetime
from enum import Enum
from typing import Dict, Optional

from pydantic import BaseModel, Field, model_validator

from farmwatch.models.readings import Metric


class ThresholdMethod(str, Enum):
    """How a band was produced. Doubles as the alert rule type."""

    STATIC = "static"
    DYNAMIC = "dynamic"


class SafetyBounds(BaseModel):
    """Absolute guardrail interval; no band may leave it."""

    model_config = {"frozen": True, "extra": "forbid"}

    low: float
    high: float

    @model_validator(mode="after")
    def validate_order(self) -> "SafetyBounds":
        if self.low > self.high:
            raise ValueError(f"safety bounds low ({self.low}) > high ({self.high})")
        return self


DEFAULT_SAFETY_BOUNDS: Dict[Metric, SafetyBounds] = {
    Metric.TEMP_F: SafetyBounds(low=35, high=95),
    Metric.RH_PCT: SafetyBounds(low=30, high=95),
    Metric.SOIL_MOISTURE_PCT: SafetyBounds(low=20, high=60),
    Metric.TANK_PCT: SafetyBounds(low=0, high=100),
}


class ThresholdBand(BaseModel):
    """
    Per-metric band used to decide breaches.

    Static bands are effective-dated (as_of is effective_from); dynamic bands
    are appended on every recompute (as_of is updated_at).

    Attributes:
        farm_id: Farm the band applies to.
        metric: Metric the band applies to.
        low: Lower bound (inclusive).
        high: Upper bound (inclusive).
        method: static or dynamic.
        as_of: effective_from for static bands, updated_at for dynamic ones.
        window_hours: History window used by dynamic bands.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    farm_id: str = Field(..., min_length=1)
    metric: Metric
    low: float
    high: float
    method: ThresholdMethod
    as_of: datetime
    window_hours: Optional[float] = Field(default=None, gt=0)

    @model_validator(mode="after")
    def validate_order(self) -> "ThresholdBand":
        if self.low > self.high:
            raise ValueError(f"band low ({self.low}) > high ({self.high}) for {self.metric.value}")
        return self

    def contains(self, value: float) -> bool:
        """Check if a value lies inside the band."""
        return self.low <= value <= self.high
