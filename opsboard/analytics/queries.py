"""
Shared store queries.

All window filters use half-open [start_at, end_at) bounds. Orders are
placed in a window by ordered_at when present, else by created_at; fees
and refunds by their own created_at.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from typing import Dict, List, Optional
import uuid

from sqlalchemy import and_, case, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.sql.elements import ColumnElement

from opsboard.analytics.numbers import ZERO, safe_div, to_decimal
from opsboard.analytics.metrics import DayFigures
from opsboard.analytics.ranges import DateRange
from opsboard.database.models import Fee, Inventory, Order, OrderItem, Refund


def order_in_window(start_at: datetime, end_at: datetime) -> ColumnElement:
    return or_(
        and_(Order.ordered_at.is_not(None), Order.ordered_at >= start_at, Order.ordered_at < end_at),
        and_(Order.ordered_at.is_(None), Order.created_at >= start_at, Order.created_at < end_at),
    )


@dataclass
class OrderRecord:
    id: uuid.UUID
    channel: Optional[str]
    currency: str
    effective_at: datetime
    total: Decimal
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal


@dataclass
class ItemRecord:
    order_id: uuid.UUID
    product_id: uuid.UUID
    location_id: Optional[uuid.UUID]
    quantity: int
    total: Decimal


@dataclass
class MoneyRecord:
    """A fee or refund row"""
    id: uuid.UUID
    order_id: Optional[uuid.UUID]
    amount: Decimal
    currency: str
    created_at: datetime


async def fetch_orders(session: AsyncSession, workspace_id: uuid.UUID, window: DateRange) -> List[OrderRecord]:
    stmt = (
        select(
            Order.id, Order.channel, Order.currency, Order.ordered_at, Order.created_at,
            Order.total, Order.subtotal, Order.tax, Order.shipping,
        )
        .where(Order.workspace_id == workspace_id, order_in_window(window.start_at, window.end_at))
        .order_by(Order.created_at.desc(), Order.id)
    )
    rows = (await session.execute(stmt)).all()
    return [
        OrderRecord(
            id=r.id,
            channel=r.channel,
            currency=r.currency,
            effective_at=r.ordered_at or r.created_at,
            total=to_decimal(r.total),
            subtotal=to_decimal(r.subtotal),
            tax=to_decimal(r.tax),
            shipping=to_decimal(r.shipping),
        )
        for r in rows
    ]


async def fetch_items(session: AsyncSession, workspace_id: uuid.UUID, window: DateRange) -> List[ItemRecord]:
    """Line items of the orders placed in the window."""
    stmt = (
        select(OrderItem.order_id, OrderItem.product_id, OrderItem.location_id, OrderItem.quantity, OrderItem.total)
        .join(Order, Order.id == OrderItem.order_id)
        .where(Order.workspace_id == workspace_id, order_in_window(window.start_at, window.end_at))
        .order_by(OrderItem.order_id, OrderItem.line_key)
    )
    rows = (await session.execute(stmt)).all()
    return [
        ItemRecord(r.order_id, r.product_id, r.location_id, int(r.quantity or 0), to_decimal(r.total))
        for r in rows
    ]


async def _fetch_money(session: AsyncSession, model, workspace_id: uuid.UUID, window: DateRange) -> List[MoneyRecord]:
    stmt = (
        select(model.id, model.order_id, model.amount, model.currency, model.created_at)
        .where(
            model.workspace_id == workspace_id,
            model.created_at >= window.start_at,
            model.created_at < window.end_at,
        )
        .order_by(model.created_at.desc(), model.id)
    )
    rows = (await session.execute(stmt)).all()
    return [MoneyRecord(r.id, r.order_id, to_decimal(r.amount), r.currency, r.created_at) for r in rows]


async def fetch_fees(session: AsyncSession, workspace_id: uuid.UUID, window: DateRange) -> List[MoneyRecord]:
    return await _fetch_money(session, Fee, workspace_id, window)


async def fetch_refunds(session: AsyncSession, workspace_id: uuid.UUID, window: DateRange) -> List[MoneyRecord]:
    return await _fetch_money(session, Refund, workspace_id, window)


async def inventory_counts(session: AsyncSession, workspace_id: uuid.UUID, low_stock_level: int) -> Dict[str, int]:
    """Stockout (on_hand <= 0) and low-stock (on_hand <= level) rows in the current snapshot."""
    stmt = select(
        func.coalesce(func.sum(case((Inventory.on_hand <= 0, 1), else_=0)), 0),
        func.coalesce(func.sum(case((Inventory.on_hand <= low_stock_level, 1), else_=0)), 0),
    ).where(Inventory.workspace_id == workspace_id)
    stockouts, low_stock = (await session.execute(stmt)).one()
    return {"stockouts": int(stockouts), "low_stock": int(low_stock)}


async def stock_by_product(
    session: AsyncSession, workspace_id: uuid.UUID, product_ids: Optional[List[uuid.UUID]] = None
) -> Dict[uuid.UUID, int]:
    """Cross-location on-hand sum per product."""
    stmt = (
        select(Inventory.product_id, func.sum(Inventory.on_hand))
        .where(Inventory.workspace_id == workspace_id)
        .group_by(Inventory.product_id)
    )
    if product_ids is not None:
        stmt = stmt.where(Inventory.product_id.in_(product_ids))
    return {pid: int(total or 0) for pid, total in (await session.execute(stmt)).all()}


def gross_margin(revenue: Decimal, refunds: Decimal, fees: Decimal, cogs: Decimal = ZERO):
    """(amount, percent) where percent is on the 0-100 scale and 0 without revenue."""
    amount = revenue - refunds - fees - cogs
    ratio = safe_div(amount, revenue) if revenue > 0 else None
    return amount, (ratio * 100 if ratio is not None else ZERO)


async def derive_day_figures(
    session: AsyncSession,
    workspace_id: uuid.UUID,
    window: DateRange,
    low_stock_level: int,
    include_empty_days: bool = False,
) -> List[DayFigures]:
    """
    Per-day workspace figures computed straight from transactional rows.

    Used by the materializer (one day at a time, empty day included) and by
    the aggregation fallback (only days with activity). Inventory counts
    come from the current snapshot.
    """
    orders = await fetch_orders(session, workspace_id, window)
    items = await fetch_items(session, workspace_id, window)
    fees = await fetch_fees(session, workspace_id, window)
    refunds = await fetch_refunds(session, workspace_id, window)
    counts = await inventory_counts(session, workspace_id, low_stock_level)

    units_by_order: Dict[uuid.UUID, int] = defaultdict(int)
    for item in items:
        units_by_order[item.order_id] += item.quantity

    buckets: Dict[date, DayFigures] = {}

    def bucket(day: date) -> DayFigures:
        if day not in buckets:
            buckets[day] = DayFigures(day=day)
        return buckets[day]

    for order in orders:
        figures = bucket(order.effective_at.date())
        figures.revenue += order.total
        figures.orders += 1
        figures.units += units_by_order.get(order.id, 0)
    for fee in fees:
        bucket(fee.created_at.date()).fees_amount += fee.amount
    for refund in refunds:
        bucket(refund.created_at.date()).refunds_amount += refund.amount
    if include_empty_days:
        for day in window.days():
            bucket(day)

    result = []
    for day in sorted(buckets):
        figures = buckets[day]
        figures.gross_margin_amount, figures.gross_margin_percent = gross_margin(
            figures.revenue, figures.refunds_amount, figures.fees_amount, figures.cogs_amount
        )
        figures.stockouts_count = counts["stockouts"]
        figures.low_stock_count = counts["low_stock"]
        result.append(figures)
    return result
