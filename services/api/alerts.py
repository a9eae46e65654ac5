"""
Alerts endpoint.

Provides:
    GET /api/alerts - Most recent alerts, newest first
"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from farmwatch.interfaces.stores import DataStore
from farmwatch.models.alerts import Alert
from services.api.dependencies import get_store

router = APIRouter()


class AlertCounts(BaseModel):
    """Alert counts by rule type."""

    static: int = 0
    dynamic: int = 0
    total: int = 0


class AlertsResponse(BaseModel):
    alerts: List[Alert]
    counts: AlertCounts

    model_config = {
        "json_schema_extra": {
            "example": {
                "alerts": [
                    {
                        "alert_id": "7b0c7d2e-3f4e-4a51-9a8e-0f1f2b3c4d5e",
                        "farm_id": "farm_global_2",
                        "timestamp": "2025-06-01T04:20:00Z",
                        "metric": "temp_f",
                        "severity": "high",
                        "rule_type": "static",
                        "message": "STATIC breach on temp_f: value=41.20 limits=[45.00, 92.00]",
                        "value": 41.2,
                        "low": 45.0,
                        "high": 92.0,
                        "experiment_id": None,
                    }
                ],
                "counts": {"static": 1, "dynamic": 0, "total": 1},
            }
        }
    }


@router.get(
    "/alerts",
    response_model=AlertsResponse,
    summary="Recent alerts",
    description="Most recent alerts, optionally for one farm.",
)
async def get_alerts(
    farm_id: Optional[str] = Query(None, description="Farm identifier"),
    limit: int = Query(50, ge=1, le=1000, description="Maximum alerts returned"),
    store: DataStore = Depends(get_store),
) -> AlertsResponse:
    alerts = await store.get_recent_alerts(farm_id=farm_id, limit=limit)
    counts = AlertCounts(
        static=sum(1 for a in alerts if a.rule_type.value == "static"),
        dynamic=sum(1 for a in alerts if a.rule_type.value == "dynamic"),
        total=len(alerts),
    )
    return AlertsResponse(alerts=alerts, counts=counts)
