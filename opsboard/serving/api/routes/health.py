"""
Health Check Endpoints

Liveness and readiness probes for the process manager.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from opsboard.config import get_settings
from opsboard.database.connection import check_database_health
from opsboard.serving.api.routes.deps import session_factory_dependency

settings = get_settings()
router = APIRouter()


class HealthResponse(BaseModel):
    """Health check response"""
    status: str
    version: str
    environment: str
    timestamp: datetime
    checks: Dict[str, Any]


@router.get("/health", response_model=HealthResponse)
async def health_check(session_factory=Depends(session_factory_dependency)) -> HealthResponse:
    """
    Application status plus database connectivity.
    """
    db_health = await check_database_health(session_factory)
    status = "healthy" if db_health.get("status") == "healthy" else "degraded"

    return HealthResponse(
        status=status,
        version=settings.version,
        environment=settings.app_env,
        timestamp=datetime.now(timezone.utc),
        checks={"database": db_health},
    )


@router.get("/health/live")
async def liveness_check() -> Dict[str, str]:
    """Returns 200 while the process is running."""
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness_check(response: Response, session_factory=Depends(session_factory_dependency)) -> Dict[str, str]:
    """
    Returns 200 once the database answers, 503 otherwise.
    """
    db_health = await check_database_health(session_factory)
    if db_health.get("status") != "healthy":
        response.status_code = 503
        return {"status": "not_ready", "reason": "database_unavailable"}
    return {"status": "ready"}
