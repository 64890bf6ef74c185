"""
Forecast API Endpoints
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends
from pydantic import Field

from opsboard.analytics.forecast import ForecastService, ForecastView
from opsboard.analytics.ranges import DateRange
from opsboard.analytics.results import ApiModel, NotFoundResult
from opsboard.serving.api.routes.deps import not_found, session_factory_dependency

router = APIRouter()


class CreateForecastRequest(ApiModel):
    """Training range, horizon (1-365, default 14) and an optional SKU or product id"""
    start: str = Field(alias="from")
    end: str = Field(alias="to")
    horizon_days: Optional[int] = None
    sku: Optional[str] = None
    product_id: Optional[UUID] = None


@router.post("/forecasts", response_model=ForecastView, status_code=201)
async def create_forecast(
    workspace_id: UUID,
    body: CreateForecastRequest,
    session_factory=Depends(session_factory_dependency),
):
    window = DateRange.parse(body.start, body.end)
    result = await ForecastService(session_factory).create_forecast(
        workspace_id, window, body.horizon_days, body.sku, body.product_id
    )
    if isinstance(result, NotFoundResult):
        return not_found(result)
    return result


@router.get("/forecasts/{forecast_id}", response_model=ForecastView)
async def get_forecast(
    workspace_id: UUID,
    forecast_id: UUID,
    session_factory=Depends(session_factory_dependency),
):
    result = await ForecastService(session_factory).get_forecast(workspace_id, forecast_id)
    if isinstance(result, NotFoundResult):
        return not_found(result)
    return result
