"""
Readings endpoint.

Provides:
    GET /api/readings - Newest readings for a farm, newest first
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from farmwatch.interfaces.stores import DataStore
from farmwatch.models.readings import Reading
from services.api.dependencies import get_store, require_farm_id

router = APIRouter()


class ReadingsResponse(BaseModel):
    farm_id: str
    readings: List[Reading]


@router.get(
    "/readings",
    response_model=ReadingsResponse,
    summary="Recent readings for a farm",
)
async def recent_readings(
    farm_id: Optional[str] = Query(None, description="Farm identifier"),
    limit: int = Query(120, ge=1, le=5000, description="Maximum readings returned"),
    store: DataStore = Depends(get_store),
) -> ReadingsResponse:
    farm_id = require_farm_id(farm_id)
    readings = await store.get_recent_readings(farm_id, limit=limit)
    return ReadingsResponse(farm_id=farm_id, readings=readings)
