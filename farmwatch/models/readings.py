"""
Reading and farm data models.

Models:
    Metric: Closed set of monitored sensor metrics
    Farm: A monitored farm site
    Reading: One telemetry sample for a farm
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Metric(str, Enum):
    """
    Sensor metrics carried by every reading.

    Attributes:
        TEMP_F: Air temperature in degrees Fahrenheit.
        RH_PCT: Relative humidity in percent.
        SOIL_MOISTURE_PCT: Volumetric soil moisture in percent.
        TANK_PCT: Water tank fill level in percent.
    """

    TEMP_F = "temp_f"
    RH_PCT = "rh_pct"
    SOIL_MOISTURE_PCT = "soil_moisture_pct"
    TANK_PCT = "tank_pct"


# Metrics evaluated by default by the alert engine and the recompute loop.
DEFAULT_MONITORED_METRICS = (
    Metric.TEMP_F,
    Metric.RH_PCT,
    Metric.SOIL_MOISTURE_PCT,
)


class Farm(BaseModel):
    """
    A monitored farm site.

    Attributes:
        farm_id: Unique farm identifier (e.g., "farm_global_2").
        name: Human-readable name.
        latitude: Site latitude, used by the weather importer.
        longitude: Site longitude, used by the weather importer.
    """

    model_config = {"frozen": True, "extra": "forbid"}

    farm_id: str = Field(..., min_length=1, description="Unique farm identifier")
    name: str = Field(..., min_length=1, description="Human-readable name")
    latitude: Optional[float] = Field(default=None, ge=-90, le=90)
    longitude: Optional[float] = Field(default=None, ge=-180, le=180)


class Reading(BaseModel):
    """
    One telemetry sample for a farm.

    Readings are immutable and ordered by timestamp per farm.

    Example:
        >>> reading = Reading(
        ...     farm_id="farm_global_1",
        ...     timestamp=datetime(2025, 6, 1, 12, 0, tzinfo=timezone.utc),
        ...     temp_f=71.2,
        ...     rh_pct=58.0,
        ...     soil_moisture_pct=41.5,
        ...     tank_pct=70.0,
        ... )
        >>> reading.value(Metric.TEMP_F)
        71.2
    """

    model_config = {"frozen": True, "extra": "forbid"}

    farm_id: str = Field(..., min_length=1)
    timestamp: datetime
    temp_f: float
    rh_pct: float
    soil_moisture_pct: float
    tank_pct: Optional[float] = None
    sensor_health: int = Field(default=1, ge=0, le=1)

    def value(self, metric: Metric) -> Optional[float]:
        """Return the value of a metric for this reading."""
        return getattr(self, Metric(metric).value)
