"""
Rollup API Endpoints

Manual trigger for the rollup materializer. The nightly run lives in
workflows/rollup_scheduler.py.
"""

from typing import Any, Dict, List
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import Field
import structlog

from opsboard.analytics.ranges import DateRange
from opsboard.analytics.results import ApiModel
from opsboard.analytics.rollups import RollupMaterializer
from opsboard.serving.api.routes.deps import session_factory_dependency

router = APIRouter()
logger = structlog.get_logger(__name__)


class MaterializeRequest(ApiModel):
    start: str = Field(alias="from")
    end: str = Field(alias="to")


class MaterializeResponse(ApiModel):
    workspace_id: str
    range: dict
    days: List[Dict[str, Any]]
    note: str = (
        "Each day was recomputed from orders, items, fees, refunds and the current inventory snapshot "
        "and replaced in full; re-running a range gives the same rows."
    )


@router.post("/materialize", response_model=MaterializeResponse)
async def materialize(
    workspace_id: UUID,
    body: MaterializeRequest,
    session_factory=Depends(session_factory_dependency),
) -> MaterializeResponse:
    """Recompute DailyMetric and SkuDailyMetric for every day of the range."""
    window = DateRange.parse(body.start, body.end)
    results = await RollupMaterializer(session_factory).materialize_range(workspace_id, window)
    logger.info("Rollups materialized on request", workspace_id=str(workspace_id), days=len(results))
    return MaterializeResponse(
        workspace_id=str(workspace_id),
        range=window.as_dict(),
        days=[r.to_dict() for r in results],
    )
