"""
Reading ingestion.

Modules:
    csv_importer: Bulk import from CSV files (pandas)
    open_meteo: Hourly weather archive import (aiohttp)
    simulator: Synthetic readings for the live monitor
"""

from farmwatch.ingestion.csv_importer import import_readings_csv, parse_readings_frame
from farmwatch.ingestion.open_meteo import (
    OpenMeteoError,
    derive_soil_moisture,
    derive_tank_pct,
    import_open_meteo_archive,
    readings_from_hourly,
)
from farmwatch.ingestion.simulator import ReadingSimulator, seasonal_baseline

__all__: list[str] = [
    # CSV
    "import_readings_csv",
    "parse_readings_frame",
    # Open-Meteo
    "OpenMeteoError",
    "import_open_meteo_archive",
    "readings_from_hourly",
    "derive_soil_moisture",
    "derive_tank_pct",
    # Simulator
    "ReadingSimulator",
    "seasonal_baseline",
]
