"""
Aggregation Engine

KPI totals, period-over-period deltas and daily trends for a workspace.
Reads DailyMetric rollups; when a range has no rollup rows the same figures
are derived from the transactional tables instead.
"""

import asyncio
import uuid
from decimal import Decimal
from enum import Enum
from typing import Dict, Iterable, List, Optional, Tuple

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsboard.analytics.metrics import (
    DAY_ACCESSORS,
    DayFigures,
    DeltaMetric,
    KpiTotals,
    TrendMetric,
    resolve_trend_metrics,
)
from opsboard.analytics.deltas import compare_totals
from opsboard.analytics.numbers import to_decimal
from opsboard.analytics.queries import derive_day_figures
from opsboard.analytics.ranges import ComparativeRange, DateRange
from opsboard.analytics.results import ApiModel, RangedResult, ValueDelta
from opsboard.config import RiskThresholds, get_settings
from opsboard.database.models import DailyMetric

logger = structlog.get_logger(__name__)


class DataSource(str, Enum):
    DAILY_METRIC = "daily_metric"
    RAW = "raw"


class TotalsView(ApiModel):
    revenue: Decimal
    orders: int
    units: int
    refunds_amount: Decimal
    fees_amount: Decimal
    cogs_amount: Decimal
    gross_margin_amount: Decimal
    stockouts_count: int
    low_stock_count: int
    avg_order_value: Optional[Decimal] = None
    revenue_per_unit: Optional[Decimal] = None
    refund_rate: Optional[Decimal] = None
    fee_rate: Optional[Decimal] = None
    cogs_rate: Optional[Decimal] = None
    gross_margin_percent: Optional[Decimal] = None
    avg_daily_gross_margin_percent: Optional[Decimal] = None
    days: int

    @classmethod
    def from_totals(cls, totals: KpiTotals) -> "TotalsView":
        return cls(
            revenue=totals.revenue,
            orders=totals.orders,
            units=totals.units,
            refunds_amount=totals.refunds_amount,
            fees_amount=totals.fees_amount,
            cogs_amount=totals.cogs_amount,
            gross_margin_amount=totals.gross_margin_amount,
            stockouts_count=totals.stockouts_count,
            low_stock_count=totals.low_stock_count,
            avg_order_value=totals.avg_order_value,
            revenue_per_unit=totals.revenue_per_unit,
            refund_rate=totals.refund_rate,
            fee_rate=totals.fee_rate,
            cogs_rate=totals.cogs_rate,
            gross_margin_percent=totals.gross_margin_percent,
            avg_daily_gross_margin_percent=totals.avg_daily_gross_margin_percent,
            days=totals.days,
        )


class KpiSummary(RangedResult):
    source: DataSource
    days_inclusive: int
    totals: TotalsView


class KpiDeltas(RangedResult):
    compare_to: Dict[str, str]
    metrics: Dict[DeltaMetric, ValueDelta]


class TrendPoint(ApiModel):
    day: str
    values: Dict[TrendMetric, Optional[Decimal]]


class Trends(RangedResult):
    source: DataSource
    metrics: List[TrendMetric]
    points: List[TrendPoint]


def trend_points(days: Iterable[DayFigures], metrics: List[TrendMetric]) -> List[TrendPoint]:
    """One point per stored day; missing calendar days are not filled."""
    return [
        TrendPoint(
            day=figures.day.isoformat(),
            values={metric: to_decimal(DAY_ACCESSORS[metric](figures)) for metric in metrics},
        )
        for figures in days
    ]


def _row_to_figures(row: DailyMetric) -> DayFigures:
    return DayFigures(
        day=row.day,
        revenue=to_decimal(row.revenue),
        orders=row.orders_count or 0,
        units=row.units or 0,
        refunds_amount=to_decimal(row.refunds_amount),
        fees_amount=to_decimal(row.fees_amount),
        cogs_amount=to_decimal(row.cogs_amount),
        gross_margin_amount=to_decimal(row.gross_margin_amount),
        gross_margin_percent=to_decimal(row.gross_margin_percent),
        stockouts_count=row.stockouts_count or 0,
        low_stock_count=row.low_stock_count or 0,
    )


class AggregationEngine:
    """
    Workspace-level KPI reads.

    Each public call opens its own session so callers may gather several
    calls concurrently.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        thresholds: Optional[RiskThresholds] = None,
    ):
        self._session_factory = session_factory
        self._thresholds = thresholds or get_settings().risk

    async def load_days(self, workspace_id: uuid.UUID, window: DateRange) -> Tuple[List[DayFigures], DataSource]:
        async with self._session_factory() as session:
            stmt = (
                select(DailyMetric)
                .where(
                    DailyMetric.workspace_id == workspace_id,
                    DailyMetric.day >= window.start,
                    DailyMetric.day <= window.end,
                )
                .order_by(DailyMetric.day)
            )
            rows = (await session.execute(stmt)).scalars().all()
            if rows:
                return [_row_to_figures(row) for row in rows], DataSource.DAILY_METRIC

            logger.info(
                "No rollups in range, deriving from raw tables",
                workspace_id=str(workspace_id),
                range=str(window),
            )
            days = await derive_day_figures(
                session, workspace_id, window, low_stock_level=self._thresholds.rollup_low_stock_level
            )
            return days, DataSource.RAW

    async def kpi_totals(self, workspace_id: uuid.UUID, window: DateRange) -> KpiTotals:
        days, _ = await self.load_days(workspace_id, window)
        return KpiTotals.fold(days)

    async def kpi_summary(self, workspace_id: uuid.UUID, window: DateRange) -> KpiSummary:
        days, source = await self.load_days(workspace_id, window)
        totals = KpiTotals.fold(days)
        return KpiSummary(
            workspace_id=str(workspace_id),
            range=window.as_dict(),
            note=(
                "Totals are sums of daily rollups over the inclusive UTC range"
                if source is DataSource.DAILY_METRIC
                else "No daily rollups in range; totals derived from orders, items, fees and refunds"
            )
            + ". Rates are 0-1 ratios; grossMarginPercent is totals-based on a 0-100 scale and "
            "avgDailyGrossMarginPercent is the unweighted mean of stored daily percentages.",
            source=source,
            days_inclusive=window.days_inclusive,
            totals=TotalsView.from_totals(totals),
        )

    async def kpi_deltas(self, workspace_id: uuid.UUID, ranges: ComparativeRange) -> KpiDeltas:
        """Compare two ranges; without an explicit comparison the preceding range is used."""
        if not ranges.is_comparative:
            ranges = ComparativeRange.with_preceding(ranges.primary)

        current, previous = await asyncio.gather(
            self.kpi_totals(workspace_id, ranges.primary),
            self.kpi_totals(workspace_id, ranges.comparison),
        )
        return KpiDeltas(
            workspace_id=str(workspace_id),
            range=ranges.primary.as_dict(),
            compare_to=ranges.comparison.as_dict(),
            note="delta = current - previous; deltaPct = delta / previous, null when previous is 0 or missing.",
            metrics=compare_totals(current, previous),
        )

    async def trends(
        self, workspace_id: uuid.UUID, window: DateRange, metric_keys: Optional[Iterable[str]] = None
    ) -> Trends:
        metrics = resolve_trend_metrics(metric_keys)
        days, source = await self.load_days(workspace_id, window)
        return Trends(
            workspace_id=str(workspace_id),
            range=window.as_dict(),
            note="One point per day with stored data; days without data are omitted, not zero-filled.",
            source=source,
            metrics=metrics,
            points=trend_points(days, metrics),
        )
