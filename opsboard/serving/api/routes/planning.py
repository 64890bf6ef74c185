"""
Planning API Endpoints

The synthesized planning document and its persisted snapshots (plans).
"""

from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from pydantic import Field

from opsboard.analytics.planning import PlanningOutput, PlanningSynthesizer, PlanPage, PlanService, PlanView
from opsboard.analytics.ranges import DateRange
from opsboard.analytics.results import ApiModel, NotFoundResult
from opsboard.serving.api.routes.deps import date_range, not_found, session_factory_dependency

router = APIRouter()


class CreatePlanRequest(ApiModel):
    """Body of POST /plans"""
    start: str = Field(alias="from")
    end: str = Field(alias="to")
    title: Optional[str] = None


@router.get("/planning/output", response_model=PlanningOutput)
async def planning_output(
    workspace_id: UUID,
    window: DateRange = Depends(date_range),
    session_factory=Depends(session_factory_dependency),
) -> PlanningOutput:
    """
    Status bullets, ranked risks and opportunities, a seven-day plan and
    the assumptions behind them. Spike checks compare with the preceding
    range of the same length.
    """
    return await PlanningSynthesizer(session_factory).synthesize(workspace_id, window)


@router.post("/plans", response_model=PlanView, status_code=201)
async def create_plan(
    workspace_id: UUID,
    body: CreatePlanRequest,
    session_factory=Depends(session_factory_dependency),
) -> PlanView:
    window = DateRange.parse(body.start, body.end)
    return await PlanService(session_factory).create_plan(workspace_id, window, body.title)


@router.get("/plans", response_model=PlanPage)
async def list_plans(
    workspace_id: UUID,
    created_from: Optional[date] = Query(None, alias="from"),
    created_to: Optional[date] = Query(None, alias="to"),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, alias="pageSize", ge=1, le=200),
    session_factory=Depends(session_factory_dependency),
) -> PlanPage:
    """Plans created within the inclusive day range, newest first."""
    return await PlanService(session_factory).list_plans(workspace_id, created_from, created_to, page, page_size)


@router.get("/plans/{plan_id}", response_model=PlanView)
async def get_plan(
    workspace_id: UUID,
    plan_id: UUID,
    session_factory=Depends(session_factory_dependency),
):
    result = await PlanService(session_factory).get_plan(workspace_id, plan_id)
    if isinstance(result, NotFoundResult):
        return not_found(result)
    return result
