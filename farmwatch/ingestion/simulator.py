"""
Synthetic reading generator for the live monitor.

Each farm follows a daily sinusoidal baseline chosen by the last character
of its id, plus uniform noise and occasional stress spikes (heat, cold and
soil drying). Humidity, soil moisture and tank level are clamped to
physically plausible ranges.
"""

import math
import random
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from farmwatch.models.readings import Reading


@dataclass(frozen=True)
class Baseline:
    temp_f: float
    rh_pct: float
    soil_moisture_pct: float
    tank_pct: float


def seasonal_baseline(ts: datetime, farm_id: str) -> Baseline:
    """Daily baseline for a farm at a point in time."""
    phase = (ts.hour / 24.0) * math.pi * 2

    if farm_id.endswith("1"):
        return Baseline(
            temp_f=68 + 14 * math.sin(phase - 0.4),
            rh_pct=66 + 12 * math.cos(phase + 0.3),
            soil_moisture_pct=42 - 8 * math.sin(phase + 0.2),
            tank_pct=72 - 3 * math.sin(phase),
        )
    if farm_id.endswith("2"):
        return Baseline(
            temp_f=78 + 16 * math.sin(phase - 0.3),
            rh_pct=40 + 10 * math.cos(phase + 0.4),
            soil_moisture_pct=34 - 10 * math.sin(phase + 0.1),
            tank_pct=64 - 4 * math.sin(phase + 0.2),
        )
    if farm_id.endswith("3"):
        return Baseline(
            temp_f=82 + 10 * math.sin(phase - 0.5),
            rh_pct=80 + 9 * math.cos(phase + 0.2),
            soil_moisture_pct=46 - 6 * math.sin(phase + 0.4),
            tank_pct=70 - 2 * math.sin(phase),
        )
    return Baseline(
        temp_f=58 + 18 * math.sin(phase - 0.6),
        rh_pct=62 + 14 * math.cos(phase + 0.1),
        soil_moisture_pct=40 - 9 * math.sin(phase + 0.3),
        tank_pct=74 - 3 * math.sin(phase - 0.1),
    )


class ReadingSimulator:
    """
    Generates one reading per farm per tick.

    Attributes:
        rng: Random source; pass a seeded Random for reproducible series.
        stress_probability: Chance of a heat spike and, separately, a cold dip.
        soil_drop_probability: Chance of a soil-moisture drop.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        stress_probability: float = 0.03,
        soil_drop_probability: float = 0.08,
    ) -> None:
        self.rng = rng or random.Random()
        self.stress_probability = stress_probability
        self.soil_drop_probability = soil_drop_probability

    def _noise(self, scale: float) -> float:
        return (self.rng.random() - 0.5) * 2 * scale

    def _inject_stress(self, values: Dict[str, float]) -> Dict[str, float]:
        p = self.rng.random()
        if p < self.stress_probability:
            values["temp_f"] += 15
            values["rh_pct"] += 10
        elif p > 1 - self.stress_probability:
            values["temp_f"] -= 18

        if self.rng.random() < self.soil_drop_probability:
            values["soil_moisture_pct"] -= 8
        return values

    def generate(self, farm_id: str, ts: datetime) -> Reading:
        """Generate a reading for a farm at ts."""
        base = seasonal_baseline(ts, farm_id)
        values = self._inject_stress(
            {
                "temp_f": base.temp_f + self._noise(2.5),
                "rh_pct": base.rh_pct + self._noise(3.5),
                "soil_moisture_pct": base.soil_moisture_pct + self._noise(2),
                "tank_pct": base.tank_pct + self._noise(1.5),
            }
        )

        return Reading(
            farm_id=farm_id,
            timestamp=ts,
            temp_f=values["temp_f"],
            rh_pct=max(15.0, min(99.0, values["rh_pct"])),
            soil_moisture_pct=max(5.0, min(90.0, values["soil_moisture_pct"])),
            tank_pct=max(0.0, min(100.0, values["tank_pct"])),
        )

    def generate_series(
        self,
        farm_id: str,
        start: datetime,
        count: int,
        step: timedelta = timedelta(minutes=10),
    ) -> List[Reading]:
        """Generate count readings spaced by step, starting at start."""
        return [self.generate(farm_id, start + step * i) for i in range(count)]
