"""
Rollup Materializer

Recomputes DailyMetric and SkuDailyMetric for one (workspace, day) from the
transactional tables and upserts them. Each run derives the full aggregate
from source rows, so repeated or concurrent runs for the same key converge
to the same stored values.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional

import structlog
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsboard.analytics.metrics import DayFigures
from opsboard.analytics.numbers import ZERO, allocate_proportionally, quantize_money, safe_div
from opsboard.analytics.queries import derive_day_figures, fetch_items, stock_by_product
from opsboard.analytics.ranges import DateRange
from opsboard.config import RiskThresholds, get_settings
from opsboard.database.bulk import upsert_rows
from opsboard.database.models import DailyMetric, SkuDailyMetric

logger = structlog.get_logger(__name__)


@dataclass
class SkuDayFigures:
    product_id: uuid.UUID
    units_sold: int
    revenue: Decimal
    refunds_amount: Decimal
    fees_amount: Decimal
    avg_price: Decimal
    stock_end: int


@dataclass
class RollupResult:
    """Outcome of materializing one day"""
    workspace_id: uuid.UUID
    day: date
    daily: DayFigures
    skus_upserted: int

    def to_dict(self) -> dict:
        return {
            "workspaceId": str(self.workspace_id),
            "day": self.day.isoformat(),
            "revenue": str(self.daily.revenue),
            "orders": self.daily.orders,
            "units": self.daily.units,
            "skusUpserted": self.skus_upserted,
        }


def build_sku_rows(
    items_by_product: Dict[uuid.UUID, Dict[str, object]],
    day_refunds: Decimal,
    day_fees: Decimal,
    stock: Dict[uuid.UUID, int],
) -> List[SkuDayFigures]:
    """
    Second pass of the SKU rollup: given per-product units/revenue totals,
    allocate the day's refunds and fees by revenue share. Allocated parts
    sum exactly to the day totals.
    """
    if not items_by_product:
        return []

    weights = {pid: agg["revenue"] for pid, agg in items_by_product.items()}
    refunds = allocate_proportionally(day_refunds, weights)
    fees = allocate_proportionally(day_fees, weights)

    rows = []
    for pid, agg in items_by_product.items():
        units = int(agg["units"])
        revenue = agg["revenue"]
        avg_price = safe_div(revenue, units) if units > 0 else None
        rows.append(
            SkuDayFigures(
                product_id=pid,
                units_sold=units,
                revenue=revenue,
                refunds_amount=refunds[pid],
                fees_amount=fees[pid],
                avg_price=quantize_money(avg_price) if avg_price is not None else ZERO,
                stock_end=stock.get(pid, 0),
            )
        )
    return rows


class RollupMaterializer:
    """
    Write path of the engine.

    Both passes for a day run in one transaction: either the day's workspace
    row and its complete set of SKU rows are replaced, or nothing changes.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        thresholds: Optional[RiskThresholds] = None,
    ):
        self._session_factory = session_factory
        self._thresholds = thresholds or get_settings().risk

    async def materialize_day(self, workspace_id: uuid.UUID, day: date) -> RollupResult:
        window = DateRange.single_day(day)
        async with self._session_factory() as session:
            async with session.begin():
                daily = await self._workspace_pass(session, workspace_id, window)
                skus = await self._sku_pass(session, workspace_id, window, daily)

        logger.info(
            "Rollup materialized",
            workspace_id=str(workspace_id),
            day=day.isoformat(),
            revenue=str(daily.revenue),
            orders=daily.orders,
            skus=skus,
        )
        return RollupResult(workspace_id=workspace_id, day=day, daily=daily, skus_upserted=skus)

    async def materialize_range(self, workspace_id: uuid.UUID, window: DateRange) -> List[RollupResult]:
        """Materialize every day of an inclusive range, oldest first."""
        results = []
        for day in window.days():
            results.append(await self.materialize_day(workspace_id, day))
        return results

    async def _workspace_pass(self, session: AsyncSession, workspace_id: uuid.UUID, window: DateRange) -> DayFigures:
        (daily,) = await derive_day_figures(
            session,
            workspace_id,
            window,
            low_stock_level=self._thresholds.rollup_low_stock_level,
            include_empty_days=True,
        )
        await upsert_rows(
            session,
            DailyMetric,
            [{
                "id": uuid.uuid4(),
                "workspace_id": workspace_id,
                "day": daily.day,
                "revenue": daily.revenue,
                "orders_count": daily.orders,
                "units": daily.units,
                "refunds_amount": daily.refunds_amount,
                "fees_amount": daily.fees_amount,
                "cogs_amount": daily.cogs_amount,
                "gross_margin_amount": daily.gross_margin_amount,
                "gross_margin_percent": quantize_money(daily.gross_margin_percent),
                "stockouts_count": daily.stockouts_count,
                "low_stock_count": daily.low_stock_count,
            }],
            conflict_columns=("workspace_id", "day"),
        )
        return daily

    async def _sku_pass(
        self, session: AsyncSession, workspace_id: uuid.UUID, window: DateRange, daily: DayFigures
    ) -> int:
        items = await fetch_items(session, workspace_id, window)

        items_by_product: Dict[uuid.UUID, Dict[str, object]] = defaultdict(lambda: {"units": 0, "revenue": ZERO})
        for item in items:
            items_by_product[item.product_id]["units"] += item.quantity
            items_by_product[item.product_id]["revenue"] += item.total

        # rows for products that no longer sell on this day
        stale = delete(SkuDailyMetric).where(
            SkuDailyMetric.workspace_id == workspace_id,
            SkuDailyMetric.day == window.start,
        )
        if items_by_product:
            stale = stale.where(SkuDailyMetric.product_id.not_in(list(items_by_product)))
        await session.execute(stale)

        if daily.orders == 0:
            return 0

        stock = await stock_by_product(session, workspace_id, list(items_by_product))
        rows = build_sku_rows(dict(items_by_product), daily.refunds_amount, daily.fees_amount, stock)
        return await upsert_rows(
            session,
            SkuDailyMetric,
            [
                {
                    "id": uuid.uuid4(),
                    "workspace_id": workspace_id,
                    "product_id": row.product_id,
                    "day": window.start,
                    "units_sold": row.units_sold,
                    "revenue": row.revenue,
                    "refunds_amount": row.refunds_amount,
                    "fees_amount": row.fees_amount,
                    "avg_price": row.avg_price,
                    "stock_end": row.stock_end,
                }
                for row in rows
            ],
            conflict_columns=("workspace_id", "product_id", "day"),
        )
