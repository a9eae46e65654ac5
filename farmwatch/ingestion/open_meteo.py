"""
Open-Meteo archive importer.

Fetches hourly temperature, relative humidity and precipitation from the
Open-Meteo historical archive and turns them into readings. Soil moisture
and tank level are not observed by the archive and are derived:

    soil = clamp(38 + 2.4*precip_mm + 0.15*(rh - 50) - max(0, 0.7*(temp_c - 20)), 10, 85)
    tank = clamp(previous_tank + 0.8*precip_mm - 0.35, 0, 100), starting at 70

Endpoint:
    https://archive-api.open-meteo.com/v1/archive
"""

import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

import aiohttp
import pandas as pd
import structlog

from farmwatch.exceptions import ConfigurationError
from farmwatch.ingestion.csv_importer import celsius_to_fahrenheit
from farmwatch.interfaces.stores import FarmStore, ReadingStore
from farmwatch.models.readings import Reading

logger = structlog.get_logger(__name__)


ARCHIVE_URL = "https://archive-api.open-meteo.com/v1/archive"
HOURLY_FIELDS = ("temperature_2m", "relative_humidity_2m", "precipitation")
INITIAL_TANK_PCT = 70.0


class OpenMeteoError(Exception):
    """Raised when the archive request fails or returns no data."""

    pass


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def derive_soil_moisture(temp_c: float, rh: float, precipitation_mm: float) -> float:
    rain_boost = (precipitation_mm or 0.0) * 2.4
    evaporation = max(0.0, (temp_c - 20.0) * 0.7)
    humidity_boost = (rh - 50.0) * 0.15
    return _clamp(38.0 + rain_boost + humidity_boost - evaporation, 10.0, 85.0)


def derive_tank_pct(precipitation_mm: float, previous_tank: Optional[float]) -> float:
    inflow = (precipitation_mm or 0.0) * 0.8
    outflow = 0.35
    start = INITIAL_TANK_PCT if previous_tank is None else previous_tank
    return _clamp(start + inflow - outflow, 0.0, 100.0)


def _value(series: Optional[Sequence[Any]], index: int) -> Optional[float]:
    if series is None or index >= len(series):
        return None
    value = pd.to_numeric(series[index], errors="coerce")
    return None if pd.isna(value) else float(value)


def _timestamp(value: Any, tz: str) -> Optional[datetime]:
    ts = pd.to_datetime(value, errors="coerce")
    if pd.isna(ts):
        return None
    if ts.tzinfo is None:
        ts = ts.tz_localize(tz)
    return ts.tz_convert("UTC").to_pydatetime()


def readings_from_hourly(
    farm_id: str,
    hourly: Dict[str, Any],
    timezone: str = "UTC",
) -> Tuple[List[Reading], int]:
    """
    Convert an Open-Meteo hourly block into readings.

    Hours without a timestamp, temperature or humidity are skipped; missing
    precipitation counts as zero.

    Returns:
        Tuple[List[Reading], int]: (readings in order, skipped count)
    """
    times = hourly.get("time") or []
    readings: List[Reading] = []
    skipped = 0
    tank_pct = INITIAL_TANK_PCT

    for i, raw_time in enumerate(times):
        ts = _timestamp(raw_time, timezone)
        temp_c = _value(hourly.get("temperature_2m"), i)
        rh = _value(hourly.get("relative_humidity_2m"), i)
        precipitation = _value(hourly.get("precipitation"), i) or 0.0

        if ts is None or temp_c is None or rh is None:
            skipped += 1
            continue

        tank_pct = derive_tank_pct(precipitation, tank_pct)
        readings.append(
            Reading(
                farm_id=farm_id,
                timestamp=ts,
                temp_f=celsius_to_fahrenheit(temp_c),
                rh_pct=rh,
                soil_moisture_pct=derive_soil_moisture(temp_c, rh, precipitation),
                tank_pct=tank_pct,
            )
        )

    return readings, skipped


async def fetch_archive(
    session: aiohttp.ClientSession,
    latitude: float,
    longitude: float,
    start_date: str,
    end_date: str,
    timezone: str = "UTC",
) -> Dict[str, Any]:
    """
    Request the hourly archive block.

    Raises:
        OpenMeteoError: On HTTP errors, timeouts or an empty response.
    """
    params = {
        "latitude": str(latitude),
        "longitude": str(longitude),
        "start_date": start_date,
        "end_date": end_date,
        "timezone": timezone,
        "hourly": ",".join(HOURLY_FIELDS),
    }

    try:
        async with session.get(ARCHIVE_URL, params=params) as response:
            if response.status >= 400:
                error_text = await response.text()
                logger.error(
                    "open_meteo_request_failed",
                    status=response.status,
                    error=error_text,
                )
                raise OpenMeteoError(f"open-meteo request failed: {response.status}")
            payload = await response.json()
    except aiohttp.ClientError as e:
        logger.error("open_meteo_client_error", error=str(e))
        raise OpenMeteoError(f"open-meteo request failed: {e}") from e
    except asyncio.TimeoutError as e:
        logger.error("open_meteo_timeout")
        raise OpenMeteoError("open-meteo request timed out") from e

    hourly = (payload or {}).get("hourly") or {}
    if not hourly.get("time"):
        raise OpenMeteoError("open-meteo returned no hourly data")
    return hourly


async def import_open_meteo_archive(
    farm_id: str,
    reading_store: ReadingStore,
    farm_store: FarmStore,
    start_date: str,
    end_date: str,
    latitude: Optional[float] = None,
    longitude: Optional[float] = None,
    timezone: str = "UTC",
    session: Optional[aiohttp.ClientSession] = None,
    timeout_seconds: int = 30,
) -> Dict[str, int]:
    """
    Import hourly archive weather for a farm.

    Latitude and longitude default to the farm's stored coordinates.

    Returns:
        Dict[str, int]: {"inserted": n, "skipped": n, "errors": n}

    Raises:
        ConfigurationError: Missing arguments, unknown farm or no coordinates.
        OpenMeteoError: If the archive request fails.
    """
    if not farm_id:
        raise ConfigurationError("farm_id is required")
    if not start_date or not end_date:
        raise ConfigurationError("start_date and end_date are required")

    farm = await farm_store.get_farm(farm_id)
    if farm is None:
        raise ConfigurationError(f"Unknown farm: {farm_id}", farm_id=farm_id)

    latitude = farm.latitude if latitude is None else latitude
    longitude = farm.longitude if longitude is None else longitude
    if latitude is None or longitude is None:
        raise ConfigurationError(
            f"latitude and longitude are required for {farm_id}", farm_id=farm_id
        )

    owns_session = session is None
    if session is None:
        session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=timeout_seconds),
            headers={"User-Agent": "farmwatch/0.1"},
        )

    try:
        hourly = await fetch_archive(session, latitude, longitude, start_date, end_date, timezone)
    finally:
        if owns_session:
            await session.close()

    readings, skipped = readings_from_hourly(farm_id, hourly, timezone)
    stats = {"inserted": 0, "skipped": skipped, "errors": 0}

    for reading in readings:
        try:
            await reading_store.insert_reading(reading)
            stats["inserted"] += 1
        except Exception as e:
            stats["errors"] += 1
            logger.warning("open_meteo_row_import_failed", farm_id=farm_id, error=str(e))

    logger.info(
        "open_meteo_import_completed",
        farm_id=farm_id,
        start_date=start_date,
        end_date=end_date,
        **stats,
    )
    return stats
