"""
Tests for the CSV reading importer.

Covers:
  - Default and mapped columns, header-less files
  - Celsius conversion
  - Skipped rows and import statistics
  - Argument and file validation
"""

from datetime import datetime, timedelta, timezone

import pandas as pd
import pytest

from farmwatch.exceptions import ConfigurationError
from farmwatch.ingestion.csv_importer import (
    celsius_to_fahrenheit,
    import_readings_csv,
    parse_readings_frame,
    resolve_columns,
)
from tests.conftest import FARM_ID, T0

STANDARD_CSV = (
    "timestamp,temp,rh,soil_moisture,tank\n"
    "2025-06-01T00:00:00Z,70.5,60,40,71\n"
    "2025-06-01T00:10:00Z,71.0,61,39.5,\n"
    "2025-06-01T00:20:00Z,bad,61,39,70\n"
    "not-a-date,70,60,40,70\n"
)


def _write(tmp_path, text, name="readings.csv"):
    path = tmp_path / name
    path.write_text(text)
    return path


class TestHelpers:
    def test_celsius_to_fahrenheit(self):
        assert celsius_to_fahrenheit(0) == 32.0
        assert celsius_to_fahrenheit(100) == 212.0
        assert celsius_to_fahrenheit(-40) == -40.0

    def test_resolve_default_columns(self):
        resolved = resolve_columns(pd.Index(["timestamp", "temp", "rh", "soil_moisture"]))
        assert resolved["temp"] == "temp"
        assert resolved["tank"] is None

    def test_resolve_mapping(self):
        resolved = resolve_columns(pd.Index(["when", "t"]), {"timestamp": "when", "temp": "t"})
        assert resolved["timestamp"] == "when"
        assert resolved["temp"] == "t"
        assert resolved["rh"] is None

    def test_mapping_to_missing_column_falls_back(self):
        resolved = resolve_columns(pd.Index(["temp"]), {"temp": "nope"})
        assert resolved["temp"] == "temp"

    def test_parse_marks_invalid_rows(self):
        frame = pd.DataFrame(
            {
                "timestamp": ["2025-06-01T00:00:00Z", "2025-06-01T00:10:00Z"],
                "temp": ["70", None],
                "rh": ["60", "60"],
                "soil_moisture": ["40", "40"],
            }
        )
        parsed = parse_readings_frame(frame)
        assert parsed["valid"].tolist() == [True, False]


class TestImportReadingsCsv:
    async def test_standard_file(self, store, tmp_path):
        path = _write(tmp_path, STANDARD_CSV)

        stats = await import_readings_csv(path, FARM_ID, store, store)

        assert stats == {"inserted": 2, "skipped": 2, "errors": 0}
        readings = await store.get_readings(FARM_ID, T0, T0 + timedelta(hours=1))
        assert [r.timestamp for r in readings] == [T0, T0 + timedelta(minutes=10)]
        assert readings[0].temp_f == 70.5
        assert readings[0].tank_pct == 71.0
        assert readings[1].tank_pct is None

    async def test_celsius(self, store, tmp_path):
        path = _write(
            tmp_path,
            "timestamp,temp,rh,soil_moisture\n2025-06-01T00:00:00Z,20,55,38\n",
        )

        await import_readings_csv(path, FARM_ID, store, store, temp_unit="c")

        readings = await store.get_readings(FARM_ID, T0, T0)
        assert readings[0].temp_f == pytest.approx(68.0)

    async def test_mapping_and_delimiter(self, store, tmp_path):
        path = _write(
            tmp_path,
            "ts;air;hum;soil\n2025-06-01 00:00:00+00:00;65;70;35\n",
        )

        stats = await import_readings_csv(
            path,
            FARM_ID,
            store,
            store,
            mapping={"timestamp": "ts", "temp": "air", "rh": "hum", "soil_moisture": "soil"},
            delimiter=";",
        )

        assert stats["inserted"] == 1
        reading = (await store.get_readings(FARM_ID, T0, T0))[0]
        assert (reading.temp_f, reading.rh_pct, reading.soil_moisture_pct) == (65.0, 70.0, 35.0)
        assert reading.tank_pct is None

    async def test_no_header(self, store, tmp_path):
        path = _write(
            tmp_path,
            "2025-06-01T00:00:00Z,66,58,41\n2025-06-01T00:05:00Z,67,57,41\n",
        )

        stats = await import_readings_csv(
            path,
            FARM_ID,
            store,
            store,
            mapping={"timestamp": "0", "temp": "1", "rh": "2", "soil_moisture": "3"},
            has_header=False,
        )

        assert stats["inserted"] == 2
        assert await store.get_latest_reading_time(FARM_ID) == datetime(
            2025, 6, 1, 0, 5, tzinfo=timezone.utc
        )

    async def test_missing_required_column_skips_everything(self, store, tmp_path):
        path = _write(tmp_path, "timestamp,temp,rh\n2025-06-01T00:00:00Z,70,60\n")
        stats = await import_readings_csv(path, FARM_ID, store, store)
        assert stats == {"inserted": 0, "skipped": 1, "errors": 0}

    async def test_unknown_farm(self, store, tmp_path):
        path = _write(tmp_path, STANDARD_CSV)
        with pytest.raises(ConfigurationError):
            await import_readings_csv(path, "farm_missing", store, store)

    async def test_missing_file(self, store, tmp_path):
        with pytest.raises(ConfigurationError, match="not found"):
            await import_readings_csv(tmp_path / "absent.csv", FARM_ID, store, store)

    async def test_empty_file(self, store, tmp_path):
        path = _write(tmp_path, "")
        with pytest.raises(ConfigurationError, match="Empty"):
            await import_readings_csv(path, FARM_ID, store, store)

    async def test_header_only(self, store, tmp_path):
        path = _write(tmp_path, "timestamp,temp,rh,soil_moisture\n")
        with pytest.raises(ConfigurationError, match="Empty"):
            await import_readings_csv(path, FARM_ID, store, store)

    async def test_unsupported_unit(self, store, tmp_path):
        path = _write(tmp_path, STANDARD_CSV)
        with pytest.raises(ConfigurationError):
            await import_readings_csv(path, FARM_ID, store, store, temp_unit="k")

    async def test_missing_farm_id(self, store, tmp_path):
        path = _write(tmp_path, STANDARD_CSV)
        with pytest.raises(ConfigurationError):
            await import_readings_csv(path, "", store, store)
