"""
Test configuration: shared builders for readings, bands and stores.

Every test runs against InMemoryStore; no database is required.
"""

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, List, Optional

import pytest

from farmwatch.models.readings import Farm, Metric, Reading
from farmwatch.models.thresholds import ThresholdBand, ThresholdMethod
from farmwatch.storage.memory import InMemoryStore

T0 = datetime(2025, 6, 1, 0, 0, tzinfo=timezone.utc)
FARM_ID = "farm_global_2"
REPO_CONFIG = Path(__file__).resolve().parent.parent / "config"


def make_reading(
    i: int = 0,
    temp_f: float = 70.0,
    rh_pct: float = 60.0,
    soil_moisture_pct: float = 40.0,
    tank_pct: Optional[float] = 70.0,
    farm_id: str = FARM_ID,
    step_minutes: float = 5,
    start: datetime = T0,
) -> Reading:
    return Reading(
        farm_id=farm_id,
        timestamp=start + timedelta(minutes=step_minutes * i),
        temp_f=temp_f,
        rh_pct=rh_pct,
        soil_moisture_pct=soil_moisture_pct,
        tank_pct=tank_pct,
    )


def make_band(
    metric: Metric = Metric.TEMP_F,
    low: float = 40.0,
    high: float = 90.0,
    method: ThresholdMethod = ThresholdMethod.STATIC,
    farm_id: str = FARM_ID,
    as_of: datetime = T0,
) -> ThresholdBand:
    return ThresholdBand(
        farm_id=farm_id,
        metric=metric,
        low=low,
        high=high,
        method=method,
        as_of=as_of,
    )


def cold_dip_series(count: int = 100, dip_start: int = 50, dip_len: int = 6) -> List[Reading]:
    """
    Readings at 5-minute spacing cycling temp_f through 70..72, with a
    30-minute dip to 38 F starting at dip_start.
    """
    readings = []
    for i in range(count):
        temp = 38.0 if dip_start <= i < dip_start + dip_len else 70.0 + (i % 5) * 0.5
        readings.append(make_reading(i, temp_f=temp))
    return readings


@pytest.fixture
def reading_factory() -> Callable[..., Reading]:
    return make_reading


@pytest.fixture
def band_factory() -> Callable[..., ThresholdBand]:
    return make_band


@pytest.fixture
async def store() -> InMemoryStore:
    """Empty in-memory store with one registered farm."""
    s = InMemoryStore()
    await s.upsert_farm(Farm(farm_id=FARM_ID, name="Farm Global 2", latitude=36.7, longitude=-119.8))
    return s
