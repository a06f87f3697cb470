"""Health check endpoints."""

import sqlite3
from datetime import datetime, timezone
from typing import Dict

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from api.services.dependencies import get_pipeline_services
from core import __version__
from core.services import Services


router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    timestamp: str
    version: str
    services: Dict[str, str]


@router.get("/health", response_model=HealthResponse)
async def health_check(services: Services = Depends(get_pipeline_services)) -> HealthResponse:
    """Health check endpoint."""
    try:
        services.store.list_companies()
        storage = "up"
    except sqlite3.Error:
        storage = "down"

    return HealthResponse(
        status="healthy" if storage == "up" else "degraded",
        timestamp=datetime.now(timezone.utc).isoformat(),
        version=__version__,
        services={
            "api": "up",
            "storage": storage,
        },
    )

