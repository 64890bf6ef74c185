"""
Breakdown & Allocation Engine

Groups revenue, units, fees and refunds by SKU, channel, platform or
location. Location breakdowns split each order's money across the
locations its lines ship from, in proportion to units.
"""

import uuid
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Union

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsboard.analytics.metrics import BreakdownDimension, SkuAggregate
from opsboard.analytics.numbers import ZERO, allocate_proportionally, safe_div, to_decimal
from opsboard.analytics.queries import (
    ItemRecord,
    MoneyRecord,
    OrderRecord,
    fetch_fees,
    fetch_items,
    fetch_orders,
    fetch_refunds,
)
from opsboard.analytics.ranges import DateRange
from opsboard.analytics.results import ApiModel, RangedResult
from opsboard.config import AnalyticsSettings, get_settings
from opsboard.database.models import Location, Product, SkuDailyMetric

logger = structlog.get_logger(__name__)

UNKNOWN = "UNKNOWN"

NOTES = {
    BreakdownDimension.SKU: (
        "Sums of SKU daily rollups; avgPrice is the mean of daily average prices and "
        "stockEnd is the latest stored snapshot."
    ),
    BreakdownDimension.CHANNEL: (
        "Orders grouped by their channel (blank channel -> UNKNOWN); fees and refunds are those "
        "linked to in-range orders and created in range."
    ),
    BreakdownDimension.PLATFORM: (
        "Platform is currently derived from the order channel, so this matches the channel breakdown; "
        "fees and refunds are those linked to in-range orders and created in range."
    ),
    BreakdownDimension.LOCATION: (
        "Each order's revenue, fees and refunds are split across the locations of its lines in "
        "proportion to units; an order counts once for every location it touches. Orders without "
        "units, and lines without a location, go to UNKNOWN."
    ),
}


class SkuBreakdownRow(ApiModel):
    key: str
    units_sold: int
    revenue: Decimal
    refunds_amount: Decimal
    fees_amount: Decimal
    avg_price: Optional[Decimal] = None
    stock_end: Optional[int] = None


class OrderBreakdownRow(ApiModel):
    key: str
    orders: int
    revenue: Decimal
    units: int
    refunds_amount: Decimal
    fees_amount: Decimal
    avg_order_value: Optional[Decimal] = None
    refund_rate: Optional[Decimal] = None
    fee_rate: Optional[Decimal] = None
    margin_approx: Decimal


class Breakdown(RangedResult):
    by: BreakdownDimension
    limit: int
    rows: List[Union[SkuBreakdownRow, OrderBreakdownRow]]


@dataclass
class Bucket:
    """Running totals for one breakdown key"""
    orders: int = 0
    revenue: Decimal = ZERO
    units: int = 0
    refunds_amount: Decimal = ZERO
    fees_amount: Decimal = ZERO

    def to_row(self, key: str) -> OrderBreakdownRow:
        return OrderBreakdownRow(
            key=key,
            orders=self.orders,
            revenue=self.revenue,
            units=self.units,
            refunds_amount=self.refunds_amount,
            fees_amount=self.fees_amount,
            avg_order_value=safe_div(self.revenue, self.orders),
            refund_rate=safe_div(self.refunds_amount, self.revenue),
            fee_rate=safe_div(self.fees_amount, self.revenue),
            margin_approx=self.revenue - self.refunds_amount - self.fees_amount,
        )


def linked_totals(records: Iterable[MoneyRecord], order_ids: set) -> Dict[uuid.UUID, Decimal]:
    """Sum fee/refund amounts per order, for records linked to one of ``order_ids``."""
    totals: Dict[uuid.UUID, Decimal] = defaultdict(lambda: ZERO)
    for record in records:
        if record.order_id is not None and record.order_id in order_ids:
            totals[record.order_id] += record.amount
    return totals


def group_by_channel(
    orders: List[OrderRecord],
    items: List[ItemRecord],
    fees: List[MoneyRecord],
    refunds: List[MoneyRecord],
) -> Dict[str, Bucket]:
    order_ids = {o.id for o in orders}
    units = defaultdict(int)
    for item in items:
        units[item.order_id] += item.quantity
    fee_totals = linked_totals(fees, order_ids)
    refund_totals = linked_totals(refunds, order_ids)

    buckets: Dict[str, Bucket] = defaultdict(Bucket)
    for order in orders:
        key = (order.channel or "").strip() or UNKNOWN
        bucket = buckets[key]
        bucket.orders += 1
        bucket.revenue += order.total
        bucket.units += units.get(order.id, 0)
        bucket.fees_amount += fee_totals.get(order.id, ZERO)
        bucket.refunds_amount += refund_totals.get(order.id, ZERO)
    return buckets


def group_by_location(
    orders: List[OrderRecord],
    items: List[ItemRecord],
    fees: List[MoneyRecord],
    refunds: List[MoneyRecord],
    location_codes: Dict[uuid.UUID, str],
) -> Dict[str, Bucket]:
    """
    Split each order across its line locations by unit share.

    Per order, the unit weights are computed first and the money is then
    allocated in one pass, so each order's parts sum exactly to its totals.
    """
    order_ids = {o.id for o in orders}
    fee_totals = linked_totals(fees, order_ids)
    refund_totals = linked_totals(refunds, order_ids)

    units_by_order: Dict[uuid.UUID, Dict[str, int]] = defaultdict(lambda: defaultdict(int))
    for item in items:
        key = location_codes.get(item.location_id, UNKNOWN) if item.location_id else UNKNOWN
        units_by_order[item.order_id][key] += item.quantity

    buckets: Dict[str, Bucket] = defaultdict(Bucket)
    for order in orders:
        weights = {k: u for k, u in units_by_order.get(order.id, {}).items() if u > 0}
        if not weights:
            bucket = buckets[UNKNOWN]
            bucket.orders += 1
            bucket.revenue += order.total
            bucket.fees_amount += fee_totals.get(order.id, ZERO)
            bucket.refunds_amount += refund_totals.get(order.id, ZERO)
            continue

        revenue = allocate_proportionally(order.total, weights)
        order_fees = allocate_proportionally(fee_totals.get(order.id, ZERO), weights)
        order_refunds = allocate_proportionally(refund_totals.get(order.id, ZERO), weights)
        for key, units in weights.items():
            bucket = buckets[key]
            bucket.orders += 1
            bucket.units += units
            bucket.revenue += revenue[key]
            bucket.fees_amount += order_fees[key]
            bucket.refunds_amount += order_refunds[key]
    return buckets


def group_by_sku(rows: Iterable) -> Dict[str, SkuAggregate]:
    """
    Fold (sku, product_id, SkuDailyMetric) rows into per-SKU sums. Rows must
    be ordered by day so the last stock_end seen is the latest snapshot.
    """
    aggregates: Dict[str, SkuAggregate] = {}
    for sku, product_id, metric in rows:
        key = sku or UNKNOWN
        agg = aggregates.get(key)
        if agg is None:
            agg = aggregates[key] = SkuAggregate(sku=key, product_id=product_id)
        agg.units_sold += metric.units_sold or 0
        agg.revenue += to_decimal(metric.revenue)
        agg.refunds_amount += to_decimal(metric.refunds_amount)
        agg.fees_amount += to_decimal(metric.fees_amount)
        agg.daily_avg_prices.append(to_decimal(metric.avg_price))
        agg.stock_end = metric.stock_end
    return aggregates


async def fetch_sku_aggregates(
    session: AsyncSession, workspace_id: uuid.UUID, window: DateRange
) -> Dict[str, SkuAggregate]:
    stmt = (
        select(Product.sku, SkuDailyMetric.product_id, SkuDailyMetric)
        .join(Product, Product.id == SkuDailyMetric.product_id, isouter=True)
        .where(
            SkuDailyMetric.workspace_id == workspace_id,
            SkuDailyMetric.day >= window.start,
            SkuDailyMetric.day <= window.end,
        )
        .order_by(SkuDailyMetric.day, SkuDailyMetric.product_id)
    )
    return group_by_sku((await session.execute(stmt)).all())


def _rank(rows: list, limit: int) -> list:
    return sorted(rows, key=lambda r: (-r.revenue, r.key))[:limit]


class BreakdownEngine:
    """Dimensional breakdowns over a date range"""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[AnalyticsSettings] = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or get_settings().analytics

    async def breakdown(
        self,
        workspace_id: uuid.UUID,
        window: DateRange,
        by: BreakdownDimension,
        limit: Optional[int] = None,
    ) -> Breakdown:
        take = self._settings.clamp_limit(limit)
        async with self._session_factory() as session:
            if by is BreakdownDimension.SKU:
                aggregates = await fetch_sku_aggregates(session, workspace_id, window)
                rows = [
                    SkuBreakdownRow(
                        key=key,
                        units_sold=agg.units_sold,
                        revenue=agg.revenue,
                        refunds_amount=agg.refunds_amount,
                        fees_amount=agg.fees_amount,
                        avg_price=agg.avg_price,
                        stock_end=agg.stock_end,
                    )
                    for key, agg in aggregates.items()
                ]
            else:
                orders = await fetch_orders(session, workspace_id, window)
                items = await fetch_items(session, workspace_id, window)
                fees = await fetch_fees(session, workspace_id, window)
                refunds = await fetch_refunds(session, workspace_id, window)
                if by is BreakdownDimension.LOCATION:
                    result = await session.execute(
                        select(Location.id, Location.code).where(Location.workspace_id == workspace_id)
                    )
                    buckets = group_by_location(orders, items, fees, refunds, dict(result.all()))
                else:
                    buckets = group_by_channel(orders, items, fees, refunds)
                rows = [bucket.to_row(key) for key, bucket in buckets.items()]

        logger.debug("Breakdown computed", workspace_id=str(workspace_id), by=by.value, groups=len(rows))
        return Breakdown(
            workspace_id=str(workspace_id),
            range=window.as_dict(),
            note=NOTES[by],
            by=by,
            limit=take,
            rows=_rank(rows, take),
        )
