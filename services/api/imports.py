"""
Import endpoints.

Provides:
    POST /api/import/csv - Import readings from a CSV file on the server
    POST /api/import/open-meteo - Import hourly archive weather for a farm

Both return the importer's row counts. Importer errors (unknown farm,
missing file, failed archive request) become a 400 with the message.
"""

from typing import Dict, Optional

import structlog
from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from farmwatch.exceptions import ConfigurationError
from farmwatch.ingestion.csv_importer import import_readings_csv
from farmwatch.ingestion.open_meteo import OpenMeteoError, import_open_meteo_archive
from farmwatch.interfaces.stores import DataStore
from services.api.dependencies import get_store

logger = structlog.get_logger(__name__)

router = APIRouter()


class CsvImportRequest(BaseModel):
    file_path: str = ""
    farm_id: str = ""
    mapping: Optional[Dict[str, str]] = None
    has_header: bool = True
    delimiter: str = ","
    temp_unit: str = "f"


class OpenMeteoImportRequest(BaseModel):
    farm_id: str = ""
    start_date: str = ""
    end_date: str = ""
    latitude: Optional[float] = None
    longitude: Optional[float] = None
    timezone: str = "UTC"


class ImportResponse(BaseModel):
    ok: bool = True
    inserted: int = Field(0, description="Readings written")
    skipped: int = Field(0, description="Rows missing a timestamp or required value")
    errors: int = Field(0, description="Rows that failed to insert")

    model_config = {
        "json_schema_extra": {
            "example": {"ok": True, "inserted": 288, "skipped": 2, "errors": 0}
        }
    }


def _import_failed(source: str, error: Exception) -> JSONResponse:
    logger.warning("api_import_failed", source=source, error=str(error))
    return JSONResponse(status_code=400, content={"ok": False, "error": str(error)})


@router.post(
    "/import/csv",
    response_model=ImportResponse,
    responses={400: {"description": "Import rejected"}},
    summary="Import readings from a CSV file",
)
async def import_csv(
    body: CsvImportRequest,
    store: DataStore = Depends(get_store),
):
    try:
        stats = await import_readings_csv(
            body.file_path,
            body.farm_id,
            reading_store=store,
            farm_store=store,
            mapping=body.mapping,
            has_header=body.has_header,
            delimiter=body.delimiter,
            temp_unit=body.temp_unit,
        )
    except ConfigurationError as e:
        return _import_failed("csv", e)
    return ImportResponse(**stats)


@router.post(
    "/import/open-meteo",
    response_model=ImportResponse,
    responses={400: {"description": "Import rejected"}},
    summary="Import hourly archive weather",
)
async def import_open_meteo(
    body: OpenMeteoImportRequest,
    store: DataStore = Depends(get_store),
):
    try:
        stats = await import_open_meteo_archive(
            body.farm_id,
            reading_store=store,
            farm_store=store,
            start_date=body.start_date,
            end_date=body.end_date,
            latitude=body.latitude,
            longitude=body.longitude,
            timezone=body.timezone,
        )
    except (ConfigurationError, OpenMeteoError) as e:
        return _import_failed("open_meteo", e)
    return ImportResponse(**stats)
