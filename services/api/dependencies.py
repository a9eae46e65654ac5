"""Request-scoped helpers shared by the API routers."""

from typing import Optional

from fastapi import HTTPException, Request

from farmwatch.interfaces.stores import DataStore


def get_store(request: Request) -> DataStore:
    """Return the store attached to the application, 503 when there is none."""
    store: Optional[DataStore] = getattr(request.app.state, "store", None)
    if store is None:
        raise HTTPException(status_code=503, detail="store unavailable")
    return store


def require_farm_id(farm_id: Optional[str]) -> str:
    if not farm_id:
        raise HTTPException(status_code=400, detail="farm_id is required")
    return farm_id
