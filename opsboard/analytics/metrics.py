"""
Metric Vocabulary

Closed enumerations for every string-keyed axis of the engine (trend keys,
delta keys, breakdown dimensions, mover metrics, severities), each paired
with an explicit accessor so an unknown key can never silently aggregate
to an empty result.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from opsboard.analytics.numbers import ZERO, mean, safe_div


class Severity(str, Enum):
    """Severity / impact level shared by risks and opportunities"""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 1, Severity.MEDIUM: 2, Severity.HIGH: 3}


class TrendMetric(str, Enum):
    """Keys that can be requested per trend point"""
    REVENUE = "revenue"
    ORDERS = "orders"
    UNITS = "units"
    REFUNDS_AMOUNT = "refundsAmount"
    FEES_AMOUNT = "feesAmount"
    COGS_AMOUNT = "cogsAmount"
    GROSS_MARGIN_AMOUNT = "grossMarginAmount"
    GROSS_MARGIN_PERCENT = "grossMarginPercent"
    STOCKOUTS_COUNT = "stockoutsCount"
    LOW_STOCK_COUNT = "lowStockCount"


DEFAULT_TREND_METRICS: Sequence[TrendMetric] = (
    TrendMetric.REVENUE,
    TrendMetric.ORDERS,
    TrendMetric.UNITS,
    TrendMetric.REFUNDS_AMOUNT,
    TrendMetric.FEES_AMOUNT,
    TrendMetric.GROSS_MARGIN_PERCENT,
)


def resolve_trend_metrics(keys: Optional[Iterable[str]]) -> List[TrendMetric]:
    """Known keys in request order (deduplicated); the default six when none survive."""
    resolved: List[TrendMetric] = []
    for key in keys or ():
        try:
            metric = TrendMetric(key)
        except ValueError:
            continue
        if metric not in resolved:
            resolved.append(metric)
    return resolved or list(DEFAULT_TREND_METRICS)


class DeltaMetric(str, Enum):
    """KPIs compared between two ranges"""
    REVENUE = "revenue"
    ORDERS = "orders"
    UNITS = "units"
    REFUNDS_AMOUNT = "refundsAmount"
    FEES_AMOUNT = "feesAmount"
    COGS_AMOUNT = "cogsAmount"
    GROSS_MARGIN_AMOUNT = "grossMarginAmount"
    STOCKOUTS_COUNT = "stockoutsCount"
    LOW_STOCK_COUNT = "lowStockCount"
    AVG_ORDER_VALUE = "avgOrderValue"
    REFUND_RATE = "refundRate"
    FEE_RATE = "feeRate"
    GROSS_MARGIN_PERCENT = "grossMarginPercent"
    COGS_RATE = "cogsRate"


class BreakdownDimension(str, Enum):
    """Grouping axes for breakdowns"""
    SKU = "sku"
    CHANNEL = "channel"
    PLATFORM = "platform"  # same grouping key as channel for now
    LOCATION = "location"


class MoverMetric(str, Enum):
    """Per-SKU values rankable as top movers"""
    UNITS_SOLD = "unitsSold"
    REVENUE = "revenue"
    REFUNDS = "refunds"
    FEES = "fees"
    MARGIN = "margin"  # revenue - refunds - fees


class Direction(str, Enum):
    UP = "up"
    DOWN = "down"


# =============================================================================
# TOTALS
# =============================================================================

@dataclass
class DayFigures:
    """
    One day of workspace figures, read from a DailyMetric row or derived
    from raw transactions with the same rules as the materializer.
    """
    day: date
    revenue: Decimal = ZERO
    orders: int = 0
    units: int = 0
    refunds_amount: Decimal = ZERO
    fees_amount: Decimal = ZERO
    cogs_amount: Decimal = ZERO
    gross_margin_amount: Decimal = ZERO
    gross_margin_percent: Decimal = ZERO
    stockouts_count: int = 0
    low_stock_count: int = 0


@dataclass
class KpiTotals:
    """Summed figures over a range plus ratios derived from the sums"""
    revenue: Decimal = ZERO
    orders: int = 0
    units: int = 0
    refunds_amount: Decimal = ZERO
    fees_amount: Decimal = ZERO
    cogs_amount: Decimal = ZERO
    gross_margin_amount: Decimal = ZERO
    stockouts_count: int = 0
    low_stock_count: int = 0
    days: int = 0
    daily_gross_margin_percents: List[Decimal] = field(default_factory=list, repr=False)

    @classmethod
    def fold(cls, days: Iterable[DayFigures]) -> "KpiTotals":
        totals = cls()
        for d in days:
            totals.revenue += d.revenue
            totals.orders += d.orders
            totals.units += d.units
            totals.refunds_amount += d.refunds_amount
            totals.fees_amount += d.fees_amount
            totals.cogs_amount += d.cogs_amount
            totals.gross_margin_amount += d.gross_margin_amount
            totals.stockouts_count += d.stockouts_count
            totals.low_stock_count += d.low_stock_count
            totals.daily_gross_margin_percents.append(d.gross_margin_percent)
            totals.days += 1
        return totals

    @property
    def avg_order_value(self) -> Optional[Decimal]:
        return safe_div(self.revenue, self.orders)

    @property
    def revenue_per_unit(self) -> Optional[Decimal]:
        return safe_div(self.revenue, self.units)

    @property
    def refund_rate(self) -> Optional[Decimal]:
        return safe_div(self.refunds_amount, self.revenue)

    @property
    def fee_rate(self) -> Optional[Decimal]:
        return safe_div(self.fees_amount, self.revenue)

    @property
    def cogs_rate(self) -> Optional[Decimal]:
        return safe_div(self.cogs_amount, self.revenue)

    @property
    def gross_margin_percent(self) -> Optional[Decimal]:
        """Totals-based margin on the 0-100 scale."""
        ratio = safe_div(self.gross_margin_amount, self.revenue)
        return None if ratio is None else ratio * 100

    @property
    def avg_daily_gross_margin_percent(self) -> Optional[Decimal]:
        """Unweighted mean of each day's stored percentage."""
        return mean(self.daily_gross_margin_percents)


DAY_ACCESSORS: Dict[TrendMetric, Callable[[DayFigures], object]] = {
    TrendMetric.REVENUE: lambda d: d.revenue,
    TrendMetric.ORDERS: lambda d: d.orders,
    TrendMetric.UNITS: lambda d: d.units,
    TrendMetric.REFUNDS_AMOUNT: lambda d: d.refunds_amount,
    TrendMetric.FEES_AMOUNT: lambda d: d.fees_amount,
    TrendMetric.COGS_AMOUNT: lambda d: d.cogs_amount,
    TrendMetric.GROSS_MARGIN_AMOUNT: lambda d: d.gross_margin_amount,
    TrendMetric.GROSS_MARGIN_PERCENT: lambda d: d.gross_margin_percent,
    TrendMetric.STOCKOUTS_COUNT: lambda d: d.stockouts_count,
    TrendMetric.LOW_STOCK_COUNT: lambda d: d.low_stock_count,
}

TOTALS_ACCESSORS: Dict[DeltaMetric, Callable[[KpiTotals], object]] = {
    DeltaMetric.REVENUE: lambda t: t.revenue,
    DeltaMetric.ORDERS: lambda t: t.orders,
    DeltaMetric.UNITS: lambda t: t.units,
    DeltaMetric.REFUNDS_AMOUNT: lambda t: t.refunds_amount,
    DeltaMetric.FEES_AMOUNT: lambda t: t.fees_amount,
    DeltaMetric.COGS_AMOUNT: lambda t: t.cogs_amount,
    DeltaMetric.GROSS_MARGIN_AMOUNT: lambda t: t.gross_margin_amount,
    DeltaMetric.STOCKOUTS_COUNT: lambda t: t.stockouts_count,
    DeltaMetric.LOW_STOCK_COUNT: lambda t: t.low_stock_count,
    DeltaMetric.AVG_ORDER_VALUE: lambda t: t.avg_order_value,
    DeltaMetric.REFUND_RATE: lambda t: t.refund_rate,
    DeltaMetric.FEE_RATE: lambda t: t.fee_rate,
    DeltaMetric.GROSS_MARGIN_PERCENT: lambda t: t.gross_margin_percent,
    DeltaMetric.COGS_RATE: lambda t: t.cogs_rate,
}


# =============================================================================
# PER-SKU
# =============================================================================

@dataclass
class SkuAggregate:
    """Per-SKU sums over a range of SkuDailyMetric rows"""
    sku: str
    product_id: object = None
    units_sold: int = 0
    revenue: Decimal = ZERO
    refunds_amount: Decimal = ZERO
    fees_amount: Decimal = ZERO
    stock_end: Optional[int] = None
    daily_avg_prices: List[Decimal] = field(default_factory=list, repr=False)

    @property
    def margin(self) -> Decimal:
        return self.revenue - self.refunds_amount - self.fees_amount

    @property
    def avg_price(self) -> Optional[Decimal]:
        return mean(self.daily_avg_prices)


MOVER_ACCESSORS: Dict[MoverMetric, Callable[[SkuAggregate], Decimal]] = {
    MoverMetric.UNITS_SOLD: lambda a: Decimal(a.units_sold),
    MoverMetric.REVENUE: lambda a: a.revenue,
    MoverMetric.REFUNDS: lambda a: a.refunds_amount,
    MoverMetric.FEES: lambda a: a.fees_amount,
    MoverMetric.MARGIN: lambda a: a.margin,
}
