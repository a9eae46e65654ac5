"""
CSV reading importer.

Loads historical telemetry from a CSV file into the reading store. Columns
are resolved per logical field through an optional mapping:

    timestamp, temp, rh, soil_moisture, tank

A field without a mapping entry falls back to a column of the same name.
Files without a header expose their columns as "0", "1", ... so mappings
refer to positions.

Rows with an unparseable timestamp or a missing temp, rh or soil moisture
value are skipped. Insert failures are counted and the batch continues.
"""

from pathlib import Path
from typing import Dict, Mapping, Optional

import pandas as pd
import structlog

from farmwatch.exceptions import ConfigurationError
from farmwatch.interfaces.stores import FarmStore, ReadingStore
from farmwatch.models.readings import Reading

logger = structlog.get_logger(__name__)


CSV_FIELDS = ("timestamp", "temp", "rh", "soil_moisture", "tank")
REQUIRED_FIELDS = ("timestamp", "temp", "rh", "soil_moisture")


def celsius_to_fahrenheit(celsius: float) -> float:
    return celsius * 9.0 / 5.0 + 32.0


def resolve_columns(
    columns: pd.Index,
    mapping: Optional[Mapping[str, str]] = None,
) -> Dict[str, Optional[str]]:
    """Map each logical field to the CSV column holding it, None if absent."""
    available = {str(c) for c in columns}
    resolved: Dict[str, Optional[str]] = {}
    for field in CSV_FIELDS:
        column = (mapping or {}).get(field)
        if column is not None and str(column) in available:
            resolved[field] = str(column)
        elif field in available:
            resolved[field] = field
        else:
            resolved[field] = None
    return resolved


def parse_readings_frame(
    frame: pd.DataFrame,
    mapping: Optional[Mapping[str, str]] = None,
    temp_unit: str = "f",
) -> pd.DataFrame:
    """
    Normalize a raw CSV frame into reading columns.

    Returns:
        pd.DataFrame: Columns ts, temp_f, rh_pct, soil_moisture_pct, tank_pct
        and a boolean "valid" column marking rows that can be imported.
    """
    frame = frame.rename(columns=lambda c: str(c))
    columns = resolve_columns(frame.columns, mapping)

    def column(field: str) -> pd.Series:
        name = columns[field]
        if name is None:
            return pd.Series([None] * len(frame), index=frame.index, dtype="object")
        return frame[name]

    out = pd.DataFrame(index=frame.index)
    out["ts"] = pd.to_datetime(column("timestamp"), utc=True, errors="coerce", format="mixed")
    out["temp_f"] = pd.to_numeric(column("temp"), errors="coerce")
    out["rh_pct"] = pd.to_numeric(column("rh"), errors="coerce")
    out["soil_moisture_pct"] = pd.to_numeric(column("soil_moisture"), errors="coerce")
    out["tank_pct"] = pd.to_numeric(column("tank"), errors="coerce")

    if temp_unit.lower() == "c":
        out["temp_f"] = out["temp_f"].map(celsius_to_fahrenheit)

    out["valid"] = out[["ts", "temp_f", "rh_pct", "soil_moisture_pct"]].notna().all(axis=1)
    return out


async def import_readings_csv(
    file_path: Path | str,
    farm_id: str,
    reading_store: ReadingStore,
    farm_store: FarmStore,
    mapping: Optional[Mapping[str, str]] = None,
    has_header: bool = True,
    delimiter: str = ",",
    temp_unit: str = "f",
) -> Dict[str, int]:
    """
    Import readings from a CSV file for one farm.

    Args:
        file_path: CSV file to read.
        farm_id: Farm the readings belong to.
        reading_store: Destination store.
        farm_store: Used to reject unknown farms.
        mapping: Logical field -> CSV column name.
        has_header: Whether the first line is a header.
        delimiter: Field delimiter.
        temp_unit: "f" or "c"; Celsius values are converted.

    Returns:
        Dict[str, int]: {"inserted": n, "skipped": n, "errors": n}

    Raises:
        ConfigurationError: Missing arguments, unknown farm, missing or empty file.
    """
    if not file_path or not farm_id:
        raise ConfigurationError("file path and farm_id are required")
    if temp_unit.lower() not in ("f", "c"):
        raise ConfigurationError(f"Unsupported temperature unit: {temp_unit}")
    if await farm_store.get_farm(farm_id) is None:
        raise ConfigurationError(f"Unknown farm: {farm_id}", farm_id=farm_id)

    path = Path(file_path).resolve()
    if not path.exists():
        raise ConfigurationError(f"File not found: {path}")

    try:
        frame = pd.read_csv(
            path,
            sep=delimiter,
            header=0 if has_header else None,
            dtype=str,
            skip_blank_lines=True,
            skipinitialspace=True,
        )
    except pd.errors.EmptyDataError as e:
        raise ConfigurationError(f"Empty CSV file: {path}") from e

    if frame.empty:
        raise ConfigurationError(f"Empty CSV file: {path}")

    parsed = parse_readings_frame(frame, mapping, temp_unit)
    stats = {"inserted": 0, "skipped": 0, "errors": 0}

    for row in parsed.itertuples(index=False):
        if not row.valid:
            stats["skipped"] += 1
            continue

        try:
            reading = Reading(
                farm_id=farm_id,
                timestamp=row.ts.to_pydatetime(),
                temp_f=float(row.temp_f),
                rh_pct=float(row.rh_pct),
                soil_moisture_pct=float(row.soil_moisture_pct),
                tank_pct=None if pd.isna(row.tank_pct) else float(row.tank_pct),
            )
            await reading_store.insert_reading(reading)
            stats["inserted"] += 1
        except Exception as e:
            stats["errors"] += 1
            logger.warning("csv_row_import_failed", farm_id=farm_id, error=str(e))

    logger.info("csv_import_completed", farm_id=farm_id, file=str(path), **stats)
    return stats
