"""
Evaluation metrics endpoint.

Provides:
    GET /api/metrics/latest - Newest metrics record per experiment for a farm
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from farmwatch.interfaces.stores import DataStore
from farmwatch.models.experiments import MetricsRecord
from services.api.dependencies import get_store, require_farm_id

router = APIRouter()


class MetricsResponse(BaseModel):
    farm_id: str
    metrics: List[MetricsRecord]


@router.get(
    "/metrics/latest",
    response_model=MetricsResponse,
    summary="Latest scoring results for a farm",
)
async def latest_metrics(
    farm_id: Optional[str] = Query(None, description="Farm identifier"),
    store: DataStore = Depends(get_store),
) -> MetricsResponse:
    farm_id = require_farm_id(farm_id)
    return MetricsResponse(farm_id=farm_id, metrics=await store.get_latest_metrics(farm_id))
