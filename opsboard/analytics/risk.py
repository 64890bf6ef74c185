"""
Risk Detectors

Independent, threshold-driven detectors that each produce a
severity-tagged signal, plus the ops-risk combinator that folds the
order-issue and stock detectors into one composite level.

The classification functions are pure; ``RiskService`` only loads the
inputs they need. All cut-points come from ``RiskThresholds``.
"""

import asyncio
import math
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsboard.analytics.breakdown import linked_totals
from opsboard.analytics.deltas import value_delta
from opsboard.analytics.metrics import Severity
from opsboard.analytics.numbers import ZERO, safe_div, to_decimal
from opsboard.analytics.queries import fetch_fees, fetch_items, fetch_orders, fetch_refunds
from opsboard.analytics.ranges import ComparativeRange, DateRange
from opsboard.analytics.results import ApiModel, RangedResult, ValueDelta
from opsboard.config import AnalyticsSettings, RiskThresholds, get_settings
from opsboard.database.models import Inventory, Location, Product, SkuDailyMetric
from opsboard.quality.order_issues import OrderFrames, OrderIssue, create_order_issue_detector

logger = structlog.get_logger(__name__)

# sort placeholder for rows without a days-left estimate
FAR_DAYS_LEFT = Decimal("999999")
STOCKOUT_SORT_BASE = {Severity.HIGH: 0, Severity.MEDIUM: 1, Severity.LOW: 2}


# =============================================================================
# RESULT MODELS
# =============================================================================

class OrderIssueView(ApiModel):
    code: str
    severity: Severity
    count: int
    message: str
    sample_order_ids: List[str]

    @classmethod
    def from_issue(cls, issue: OrderIssue) -> "OrderIssueView":
        return cls(**issue.__dict__)


class OrderIssues(RangedResult):
    limit: int
    checked_orders: int
    issues: List[OrderIssueView]

    @property
    def high_count(self) -> int:
        return sum(1 for issue in self.issues if issue.severity == Severity.HIGH)


class StockoutItem(ApiModel):
    product_id: str
    sku: str
    location_id: str
    location_code: str
    on_hand: int
    avg_daily_units: Decimal
    days_left: Optional[Decimal] = None
    risk: Severity


class StockoutRisk(RangedResult):
    horizon_days: int
    limit: int
    items: List[StockoutItem]

    @property
    def high_items(self) -> List[StockoutItem]:
        return [item for item in self.items if item.risk == Severity.HIGH]


class LowStockItem(ApiModel):
    product_id: str
    sku: str
    location_id: str
    location_code: str
    on_hand: int
    threshold: int
    risk: Severity


class LowStockRisk(RangedResult):
    threshold: int
    limit: int
    items: List[LowStockItem]

    @property
    def high_items(self) -> List[LowStockItem]:
        return [item for item in self.items if item.risk == Severity.HIGH]


class SpikeRisk(RangedResult):
    kind: str
    compare_to: Dict[str, str]
    rate: ValueDelta
    previous_rate: Optional[Decimal] = None
    risk: Severity


class MarginDriver(ApiModel):
    label: str
    impact: Decimal


class MarginLeakage(RangedResult):
    compare_to: Optional[Dict[str, str]] = None
    revenue: Decimal
    refunds_amount: Decimal
    fees_amount: Decimal
    margin_pct: ValueDelta
    risk: Severity
    drivers: List[MarginDriver]


class OpsSignal(ApiModel):
    code: str
    severity: Severity
    message: str
    value: int


class OpsRisk(RangedResult):
    risk: Severity
    signals: List[OpsSignal]


# =============================================================================
# PURE DETECTORS
# =============================================================================

@dataclass
class InventoryRow:
    product_id: uuid.UUID
    location_id: uuid.UUID
    on_hand: int
    sku: Optional[str] = None
    location_code: Optional[str] = None


def classify_stockout(on_hand: int, days_left: Optional[Decimal], horizon_days: int, thresholds: RiskThresholds) -> Severity:
    """Empty shelves are always high; otherwise judge by runway (equal to the horizon is still medium)."""
    if on_hand <= 0:
        return Severity.HIGH
    if days_left is None:
        return Severity.LOW
    if days_left <= to_decimal(thresholds.stockout_high_days_left):
        return Severity.HIGH
    if days_left <= horizon_days:
        return Severity.MEDIUM
    return Severity.LOW


def detect_stockouts(
    rows: Iterable[InventoryRow],
    units_sold: Dict[uuid.UUID, int],
    days_in_range: int,
    horizon_days: int,
    thresholds: RiskThresholds,
) -> List[StockoutItem]:
    """
    daysLeft = onHand / average daily units, averaged over calendar days in
    the range. Sorted by severity then runway; rows without runway last
    within their severity. Input order breaks remaining ties.
    """
    items = []
    for row in rows:
        avg_daily = to_decimal(units_sold.get(row.product_id, 0)) / max(1, days_in_range)
        days_left = safe_div(row.on_hand, avg_daily) if avg_daily > 0 else None
        items.append(
            StockoutItem(
                product_id=str(row.product_id),
                sku=row.sku or "UNKNOWN",
                location_id=str(row.location_id),
                location_code=row.location_code or "UNKNOWN",
                on_hand=row.on_hand,
                avg_daily_units=avg_daily,
                days_left=days_left,
                risk=classify_stockout(row.on_hand, days_left, horizon_days, thresholds),
            )
        )
    items.sort(key=lambda i: (STOCKOUT_SORT_BASE[i.risk], i.days_left if i.days_left is not None else FAR_DAYS_LEFT))
    return items


def detect_low_stock(rows: Iterable[InventoryRow], threshold: int) -> List[LowStockItem]:
    """0 < onHand < threshold; high at or below half the threshold (rounded up)."""
    high_cutoff = math.ceil(threshold / 2)
    items = [
        LowStockItem(
            product_id=str(row.product_id),
            sku=row.sku or "UNKNOWN",
            location_id=str(row.location_id),
            location_code=row.location_code or "UNKNOWN",
            on_hand=row.on_hand,
            threshold=threshold,
            risk=Severity.HIGH if row.on_hand <= high_cutoff else Severity.MEDIUM,
        )
        for row in rows
        if 0 < row.on_hand < threshold
    ]
    items.sort(key=lambda i: i.on_hand)
    return items


def classify_spike(delta: Optional[Decimal], medium: float, high: float) -> Severity:
    if delta is None:
        return Severity.LOW
    if delta > to_decimal(high):
        return Severity.HIGH
    if delta > to_decimal(medium):
        return Severity.MEDIUM
    return Severity.LOW


def classify_margin(margin_pct: Optional[Decimal], thresholds: RiskThresholds) -> Severity:
    if margin_pct is None:
        return Severity.LOW
    if margin_pct < to_decimal(thresholds.margin_high):
        return Severity.HIGH
    if margin_pct < to_decimal(thresholds.margin_medium):
        return Severity.MEDIUM
    return Severity.LOW


def combine_ops_risk(
    issues: Sequence[OrderIssueView],
    stockouts: Sequence[StockoutItem],
    low_stock: Sequence[LowStockItem],
) -> Tuple[Severity, List[OpsSignal]]:
    """
    Composite level: high if any high-severity order issue or any high
    stockout exists, medium if only high low-stock items exist, else low.
    """
    high_issues = sum(1 for issue in issues if issue.severity == Severity.HIGH)
    high_stockouts = sum(1 for item in stockouts if item.risk == Severity.HIGH)
    high_low_stock = sum(1 for item in low_stock if item.risk == Severity.HIGH)

    signals = [
        OpsSignal(
            code="order_issues_high",
            severity=Severity.HIGH if high_issues else Severity.LOW,
            message=f"{high_issues} high-severity order data issue type(s)",
            value=high_issues,
        ),
        OpsSignal(
            code="stockout_high",
            severity=Severity.HIGH if high_stockouts else Severity.LOW,
            message=f"{high_stockouts} inventory row(s) out of stock or about to run out",
            value=high_stockouts,
        ),
        OpsSignal(
            code="low_stock_high",
            severity=Severity.MEDIUM if high_low_stock else Severity.LOW,
            message=f"{high_low_stock} inventory row(s) at or below half the low-stock threshold",
            value=high_low_stock,
        ),
    ]

    if high_issues or high_stockouts:
        overall = Severity.HIGH
    elif high_low_stock:
        overall = Severity.MEDIUM
    else:
        overall = Severity.LOW
    return overall, signals


@dataclass
class RangeMoney:
    """Order revenue of a range and the fees/refunds linked to those orders"""
    revenue: Decimal = ZERO
    refunds_amount: Decimal = ZERO
    fees_amount: Decimal = ZERO

    @property
    def refund_rate(self) -> Optional[Decimal]:
        return safe_div(self.refunds_amount, self.revenue)

    @property
    def fee_rate(self) -> Optional[Decimal]:
        return safe_div(self.fees_amount, self.revenue)

    @property
    def margin_pct(self) -> Optional[Decimal]:
        return safe_div(self.revenue - self.refunds_amount - self.fees_amount, self.revenue)


# =============================================================================
# SERVICE
# =============================================================================

class RiskService:
    """
    Loads detector inputs from the store. Each call uses its own session,
    so the combinator and the planning synthesizer can gather calls.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        thresholds: Optional[RiskThresholds] = None,
        settings: Optional[AnalyticsSettings] = None,
    ):
        self._session_factory = session_factory
        self.thresholds = thresholds or get_settings().risk
        self._settings = settings or get_settings().analytics

    def _risk_limit(self, limit: Optional[int]) -> int:
        return self._settings.clamp_limit(limit, self._settings.default_risk_limit)

    async def _inventory(self, session: AsyncSession, workspace_id: uuid.UUID) -> List[InventoryRow]:
        stmt = (
            select(Inventory.product_id, Inventory.location_id, Inventory.on_hand, Product.sku, Location.code)
            .join(Product, Product.id == Inventory.product_id, isouter=True)
            .join(Location, Location.id == Inventory.location_id, isouter=True)
            .where(Inventory.workspace_id == workspace_id)
            .order_by(Inventory.updated_at.desc(), Inventory.id)
        )
        return [
            InventoryRow(r.product_id, r.location_id, int(r.on_hand or 0), r.sku, r.code)
            for r in (await session.execute(stmt)).all()
        ]

    async def range_money(self, workspace_id: uuid.UUID, window: DateRange) -> RangeMoney:
        async with self._session_factory() as session:
            orders = await fetch_orders(session, workspace_id, window)
            fees = await fetch_fees(session, workspace_id, window)
            refunds = await fetch_refunds(session, workspace_id, window)
        order_ids = {o.id for o in orders}
        return RangeMoney(
            revenue=sum((o.total for o in orders), ZERO),
            refunds_amount=sum(linked_totals(refunds, order_ids).values(), ZERO),
            fees_amount=sum(linked_totals(fees, order_ids).values(), ZERO),
        )

    async def order_issues(self, workspace_id: uuid.UUID, window: DateRange, limit: Optional[int] = None) -> OrderIssues:
        take = self._risk_limit(limit)
        async with self._session_factory() as session:
            orders = await fetch_orders(session, workspace_id, window)
            items = await fetch_items(session, workspace_id, window)
            fees = await fetch_fees(session, workspace_id, window)
            refunds = await fetch_refunds(session, workspace_id, window)

        detector = create_order_issue_detector(sample_size=min(self._settings.issue_sample_size, take))
        issues = detector.detect(OrderFrames.from_records(orders, items, fees, refunds))[:take]
        result = OrderIssues(
            workspace_id=str(workspace_id),
            range=window.as_dict(),
            note=(
                "Structural checks over orders placed in range (orderedAt, else createdAt) and fees/refunds "
                "created in range; each issue carries up to a few sample order ids, newest first."
            ),
            limit=take,
            checked_orders=len(orders),
            issues=[OrderIssueView.from_issue(issue) for issue in issues],
        )
        logger.info(
            "Order issues checked",
            workspace_id=str(workspace_id),
            range=str(window),
            checked_orders=result.checked_orders,
            issues=len(result.issues),
            high=result.high_count,
        )
        return result

    async def stockout_risk(
        self,
        workspace_id: uuid.UUID,
        window: DateRange,
        horizon_days: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> StockoutRisk:
        horizon = self.thresholds.clamp_horizon(horizon_days)
        take = self._risk_limit(limit)
        async with self._session_factory() as session:
            rows = await self._inventory(session, workspace_id)
            stmt = (
                select(SkuDailyMetric.product_id, func.sum(SkuDailyMetric.units_sold))
                .where(
                    SkuDailyMetric.workspace_id == workspace_id,
                    SkuDailyMetric.day >= window.start,
                    SkuDailyMetric.day <= window.end,
                )
                .group_by(SkuDailyMetric.product_id)
            )
            units_sold = {pid: int(total or 0) for pid, total in (await session.execute(stmt)).all()}

        items = detect_stockouts(rows, units_sold, window.days_inclusive, horizon, self.thresholds)
        return StockoutRisk(
            workspace_id=str(workspace_id),
            range=window.as_dict(),
            note=(
                f"daysLeft = onHand / average daily units sold over {window.days_inclusive} calendar day(s). "
                f"onHand <= 0 or daysLeft <= {self.thresholds.stockout_high_days_left:g} is high; "
                f"daysLeft <= {horizon} is medium."
            ),
            horizon_days=horizon,
            limit=take,
            items=items[:take],
        )

    async def low_stock_risk(
        self,
        workspace_id: uuid.UUID,
        window: DateRange,
        threshold: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> LowStockRisk:
        level = self.thresholds.clamp_low_stock_threshold(threshold)
        take = self._risk_limit(limit)
        async with self._session_factory() as session:
            rows = await self._inventory(session, workspace_id)

        return LowStockRisk(
            workspace_id=str(workspace_id),
            range=window.as_dict(),
            note=f"Current snapshot rows with 0 < onHand < {level}; high at or below {math.ceil(level / 2)}.",
            threshold=level,
            limit=take,
            items=detect_low_stock(rows, level)[:take],
        )

    async def _spike(self, workspace_id: uuid.UUID, ranges: ComparativeRange, kind: str) -> SpikeRisk:
        if not ranges.is_comparative:
            ranges = ComparativeRange.with_preceding(ranges.primary)
        current, previous = await asyncio.gather(
            self.range_money(workspace_id, ranges.primary),
            self.range_money(workspace_id, ranges.comparison),
        )
        if kind == "refund":
            now, before = current.refund_rate, previous.refund_rate
            medium, high = self.thresholds.refund_spike_medium, self.thresholds.refund_spike_high
        else:
            now, before = current.fee_rate, previous.fee_rate
            medium, high = self.thresholds.fee_spike_medium, self.thresholds.fee_spike_high

        rate = value_delta(now, before)
        return SpikeRisk(
            workspace_id=str(workspace_id),
            range=ranges.primary.as_dict(),
            note=(
                f"{kind.capitalize()} rate = linked {kind}s / order revenue per range. "
                f"Increase over {medium:g} is medium, over {high:g} is high."
            ),
            kind=kind,
            compare_to=ranges.comparison.as_dict(),
            rate=rate,
            previous_rate=before,
            risk=classify_spike(rate.delta, medium, high),
        )

    async def refund_spike(self, workspace_id: uuid.UUID, ranges: ComparativeRange) -> SpikeRisk:
        return await self._spike(workspace_id, ranges, "refund")

    async def fee_spike(self, workspace_id: uuid.UUID, ranges: ComparativeRange) -> SpikeRisk:
        return await self._spike(workspace_id, ranges, "fee")

    async def margin_leakage(self, workspace_id: uuid.UUID, ranges: ComparativeRange) -> MarginLeakage:
        if ranges.is_comparative:
            current, previous = await asyncio.gather(
                self.range_money(workspace_id, ranges.primary),
                self.range_money(workspace_id, ranges.comparison),
            )
            margin = value_delta(current.margin_pct, previous.margin_pct)
        else:
            current = await self.range_money(workspace_id, ranges.primary)
            margin = ValueDelta(value=current.margin_pct)

        return MarginLeakage(
            workspace_id=str(workspace_id),
            range=ranges.primary.as_dict(),
            note=(
                "marginPct = (revenue - refunds - fees) / revenue, using refunds and fees linked to in-range orders. "
                f"Below {self.thresholds.margin_high:g} is high, below {self.thresholds.margin_medium:g} is medium."
            ),
            compare_to=ranges.comparison.as_dict() if ranges.comparison else None,
            revenue=current.revenue,
            refunds_amount=current.refunds_amount,
            fees_amount=current.fees_amount,
            margin_pct=margin,
            risk=classify_margin(current.margin_pct, self.thresholds),
            drivers=[
                MarginDriver(label="refundsAmount", impact=-current.refunds_amount),
                MarginDriver(label="feesAmount", impact=-current.fees_amount),
            ],
        )

    async def ops_risk(self, workspace_id: uuid.UUID, window: DateRange) -> OpsRisk:
        issues, stockouts, low_stock = await asyncio.gather(
            self.order_issues(workspace_id, window, limit=self._settings.default_risk_limit),
            self.stockout_risk(workspace_id, window, self.thresholds.default_horizon_days, self._settings.default_risk_limit),
            self.low_stock_risk(
                workspace_id, window, self.thresholds.default_low_stock_threshold, self._settings.default_risk_limit
            ),
        )
        overall, signals = combine_ops_risk(issues.issues, stockouts.items, low_stock.items)
        logger.info(
            "Ops risk evaluated",
            workspace_id=str(workspace_id),
            range=str(window),
            risk=overall.value,
            signals={s.code: s.value for s in signals},
        )
        return OpsRisk(
            workspace_id=str(workspace_id),
            range=window.as_dict(),
            note=(
                "Combines order data issues, stockout risk and low-stock risk: high if any high-severity order "
                "issue or stockout exists, medium if only low-stock items are high, else low."
            ),
            risk=overall,
            signals=signals,
        )
