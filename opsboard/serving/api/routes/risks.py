"""
Risk API Endpoints

Order data quality, inventory, refund/fee spikes, margin leakage and the
combined operational risk level.
"""

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query

from opsboard.analytics.ranges import ComparativeRange, DateRange
from opsboard.analytics.risk import (
    LowStockRisk,
    MarginLeakage,
    OpsRisk,
    OrderIssues,
    RiskService,
    SpikeRisk,
    StockoutRisk,
)
from opsboard.serving.api.routes.deps import comparative_range, date_range, session_factory_dependency

router = APIRouter()


@router.get("/order-issues", response_model=OrderIssues)
async def order_issues(
    workspace_id: UUID,
    window: DateRange = Depends(date_range),
    limit: Optional[int] = None,
    session_factory=Depends(session_factory_dependency),
) -> OrderIssues:
    """Structural checks over the range's orders; only failing checks are listed."""
    return await RiskService(session_factory).order_issues(workspace_id, window, limit)


@router.get("/stockout", response_model=StockoutRisk)
async def stockout_risk(
    workspace_id: UUID,
    window: DateRange = Depends(date_range),
    horizon_days: Optional[int] = Query(None, alias="horizonDays"),
    limit: Optional[int] = None,
    session_factory=Depends(session_factory_dependency),
) -> StockoutRisk:
    """horizonDays is clamped to 1-90 (default 14)."""
    return await RiskService(session_factory).stockout_risk(workspace_id, window, horizon_days, limit)


@router.get("/low-stock", response_model=LowStockRisk)
async def low_stock_risk(
    workspace_id: UUID,
    window: DateRange = Depends(date_range),
    threshold: Optional[int] = None,
    limit: Optional[int] = None,
    session_factory=Depends(session_factory_dependency),
) -> LowStockRisk:
    """threshold is clamped to 1-100000 (default 10)."""
    return await RiskService(session_factory).low_stock_risk(workspace_id, window, threshold, limit)


@router.get("/refund-spike", response_model=SpikeRisk)
async def refund_spike(
    workspace_id: UUID,
    ranges: ComparativeRange = Depends(comparative_range),
    session_factory=Depends(session_factory_dependency),
) -> SpikeRisk:
    return await RiskService(session_factory).refund_spike(workspace_id, ranges)


@router.get("/fee-spike", response_model=SpikeRisk)
async def fee_spike(
    workspace_id: UUID,
    ranges: ComparativeRange = Depends(comparative_range),
    session_factory=Depends(session_factory_dependency),
) -> SpikeRisk:
    return await RiskService(session_factory).fee_spike(workspace_id, ranges)


@router.get("/margin-leakage", response_model=MarginLeakage)
async def margin_leakage(
    workspace_id: UUID,
    ranges: ComparativeRange = Depends(comparative_range),
    session_factory=Depends(session_factory_dependency),
) -> MarginLeakage:
    return await RiskService(session_factory).margin_leakage(workspace_id, ranges)


@router.get("/ops", response_model=OpsRisk)
async def ops_risk(
    workspace_id: UUID,
    window: DateRange = Depends(date_range),
    session_factory=Depends(session_factory_dependency),
) -> OpsRisk:
    """Highest severity across order issues, stockout and low-stock risk."""
    return await RiskService(session_factory).ops_risk(workspace_id, window)
