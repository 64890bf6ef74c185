"""
Analytics API Endpoints

KPI summaries, comparisons, trends, breakdowns and top movers for one
workspace. Every response echoes the resolved range and carries a note
describing how it was computed.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
import structlog

from opsboard.analytics.aggregation import AggregationEngine, KpiDeltas, KpiSummary, Trends
from opsboard.analytics.breakdown import Breakdown, BreakdownEngine
from opsboard.analytics.metrics import BreakdownDimension, Direction, MoverMetric
from opsboard.analytics.movers import TopMovers, TopMoversRanker
from opsboard.analytics.ranges import ComparativeRange, DateRange
from opsboard.serving.api.routes.deps import comparative_range, date_range, session_factory_dependency

router = APIRouter()
logger = structlog.get_logger(__name__)


@router.get("/kpis/summary", response_model=KpiSummary)
async def kpi_summary(
    workspace_id: UUID,
    window: DateRange = Depends(date_range),
    session_factory=Depends(session_factory_dependency),
) -> KpiSummary:
    """Range totals and derived ratios, from rollups when present and raw tables otherwise."""
    return await AggregationEngine(session_factory).kpi_summary(workspace_id, window)


@router.get("/kpis/deltas", response_model=KpiDeltas)
async def kpi_deltas(
    workspace_id: UUID,
    ranges: ComparativeRange = Depends(comparative_range),
    session_factory=Depends(session_factory_dependency),
) -> KpiDeltas:
    """
    Compare the range with compareFrom/compareTo, or with the preceding
    range of the same length when no comparison is given.
    """
    return await AggregationEngine(session_factory).kpi_deltas(workspace_id, ranges)


@router.get("/kpis/trends", response_model=Trends)
async def kpi_trends(
    workspace_id: UUID,
    window: DateRange = Depends(date_range),
    metrics: Optional[str] = Query(None, description="Comma-separated metric keys"),
    session_factory=Depends(session_factory_dependency),
) -> Trends:
    keys = [key.strip() for key in metrics.split(",")] if metrics else None
    return await AggregationEngine(session_factory).trends(workspace_id, window, keys)


@router.get("/breakdown", response_model=Breakdown)
async def breakdown(
    workspace_id: UUID,
    by: BreakdownDimension,
    window: DateRange = Depends(date_range),
    limit: Optional[int] = None,
    session_factory=Depends(session_factory_dependency),
) -> Breakdown:
    """Rows ranked by revenue; limit is clamped to 1-200."""
    logger.debug("Breakdown requested", workspace_id=str(workspace_id), by=by.value, range=str(window))
    return await BreakdownEngine(session_factory).breakdown(workspace_id, window, by, limit)


@router.get("/top-movers", response_model=TopMovers)
async def top_movers(
    workspace_id: UUID,
    ranges: ComparativeRange = Depends(comparative_range),
    metric: MoverMetric = MoverMetric.REVENUE,
    direction: Direction = Direction.UP,
    limit: Optional[int] = None,
    session_factory=Depends(session_factory_dependency),
) -> TopMovers:
    return await TopMoversRanker(session_factory).top_movers(workspace_id, ranges, metric, direction, limit)
