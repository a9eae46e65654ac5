"""
Farm, threshold and ground-truth endpoints.

Provides:
    GET /api/farms - Monitored farms
    GET /api/thresholds/latest - Effective static and latest dynamic bands
    GET /api/events - Stored ground-truth events for a farm
"""

from datetime import datetime, timezone
from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from farmwatch.interfaces.stores import DataStore
from farmwatch.models.events import GroundTruthEvent
from farmwatch.models.readings import Farm
from farmwatch.models.thresholds import ThresholdBand
from services.api.dependencies import get_store, require_farm_id

router = APIRouter()

# Events are stored for bounded windows; this range covers every stored row.
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_FAR_FUTURE = datetime(9999, 12, 31, tzinfo=timezone.utc)


class FarmsResponse(BaseModel):
    farms: List[Farm]


class ThresholdsResponse(BaseModel):
    """Effective static and latest dynamic bands for one farm."""

    farm_id: str
    static: List[ThresholdBand]
    dynamic: List[ThresholdBand]


class EventsResponse(BaseModel):
    farm_id: str
    events: List[GroundTruthEvent]


@router.get("/farms", response_model=FarmsResponse, summary="List farms")
async def list_farms(store: DataStore = Depends(get_store)) -> FarmsResponse:
    return FarmsResponse(farms=await store.list_farms())


@router.get(
    "/thresholds/latest",
    response_model=ThresholdsResponse,
    summary="Latest thresholds for a farm",
)
async def latest_thresholds(
    farm_id: Optional[str] = Query(None, description="Farm identifier"),
    store: DataStore = Depends(get_store),
) -> ThresholdsResponse:
    farm_id = require_farm_id(farm_id)
    static = await store.get_static_bands(farm_id)
    dynamic = await store.get_latest_dynamic_bands(farm_id)
    return ThresholdsResponse(
        farm_id=farm_id,
        static=sorted(static.values(), key=lambda b: b.metric.value),
        dynamic=sorted(dynamic.values(), key=lambda b: b.metric.value),
    )


@router.get("/events", response_model=EventsResponse, summary="Ground-truth events")
async def list_events(
    farm_id: Optional[str] = Query(None, description="Farm identifier"),
    store: DataStore = Depends(get_store),
) -> EventsResponse:
    farm_id = require_farm_id(farm_id)
    events = await store.get_events(farm_id, _EPOCH, _FAR_FUTURE)
    return EventsResponse(farm_id=farm_id, events=events)
