"""
Order Data-Quality Checks

Structural checks over the orders, line items, fees and refunds of a date
range, run as polars frame operations in the style of a validation suite.

Checks:
- Orders without line items
- Fees / refunds not linked to an order
- Negative money fields on orders
- Currency mismatch between an order and its fees/refunds
- Refund totals exceeding the order total

Money is carried as integer minor units (1/10000) so comparisons are exact.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Callable, List, Optional, Sequence

import polars as pl
import structlog

from opsboard.analytics.metrics import Severity
from opsboard.analytics.queries import ItemRecord, MoneyRecord, OrderRecord

logger = structlog.get_logger(__name__)

MINOR_UNITS = Decimal("10000")
MONEY_COLUMNS = ("total", "subtotal", "tax", "shipping")

ORDER_SCHEMA = {
    "id": pl.String,
    "position": pl.Int64,
    "currency": pl.String,
    "total": pl.Int64,
    "subtotal": pl.Int64,
    "tax": pl.Int64,
    "shipping": pl.Int64,
}
ITEM_SCHEMA = {"order_id": pl.String, "quantity": pl.Int64}
MONEY_SCHEMA = {
    "id": pl.String,
    "order_id": pl.String,
    "amount": pl.Int64,
    "currency": pl.String,
}


def to_minor(amount: Decimal) -> int:
    return int((amount * MINOR_UNITS).to_integral_value())


@dataclass
class OrderFrames:
    """The four inputs of the check suite. Orders keep their listing order in ``position``."""
    orders: pl.DataFrame
    items: pl.DataFrame
    fees: pl.DataFrame
    refunds: pl.DataFrame

    @classmethod
    def from_records(
        cls,
        orders: Sequence[OrderRecord],
        items: Sequence[ItemRecord],
        fees: Sequence[MoneyRecord],
        refunds: Sequence[MoneyRecord],
    ) -> "OrderFrames":
        def money_frame(records: Sequence[MoneyRecord]) -> pl.DataFrame:
            return pl.DataFrame(
                {
                    "id": [str(r.id) for r in records],
                    "order_id": [str(r.order_id) if r.order_id else None for r in records],
                    "amount": [to_minor(r.amount) for r in records],
                    "currency": [r.currency for r in records],
                },
                schema=MONEY_SCHEMA,
            )

        return cls(
            orders=pl.DataFrame(
                {
                    "id": [str(o.id) for o in orders],
                    "position": list(range(len(orders))),
                    "currency": [o.currency for o in orders],
                    "total": [to_minor(o.total) for o in orders],
                    "subtotal": [to_minor(o.subtotal) for o in orders],
                    "tax": [to_minor(o.tax) for o in orders],
                    "shipping": [to_minor(o.shipping) for o in orders],
                },
                schema=ORDER_SCHEMA,
            ),
            items=pl.DataFrame(
                {
                    "order_id": [str(i.order_id) for i in items],
                    "quantity": [i.quantity for i in items],
                },
                schema=ITEM_SCHEMA,
            ),
            fees=money_frame(fees),
            refunds=money_frame(refunds),
        )


@dataclass
class OrderIssue:
    """One failed structural check"""
    code: str
    severity: Severity
    count: int
    message: str
    sample_order_ids: List[str] = field(default_factory=list)


def _sample(frame: pl.DataFrame, column: str, size: int) -> List[str]:
    if frame.height == 0 or size <= 0:
        return []
    return frame.sort("position").get_column(column).head(size).to_list()


class OrderIssueDetector:
    """
    Runs a suite of structural checks and returns only the failing ones.

    Example:
        detector = OrderIssueDetector(sample_size=5)
        detector.add_missing_items_check().add_negative_money_check()
        issues = detector.detect(frames)
    """

    def __init__(self, sample_size: int = 5):
        self.sample_size = sample_size
        self._checks: List[Callable[[OrderFrames], Optional[OrderIssue]]] = []

    def add_missing_items_check(self, severity: Severity = Severity.HIGH) -> "OrderIssueDetector":
        """Orders with zero line items"""
        def check(frames: OrderFrames) -> Optional[OrderIssue]:
            missing = frames.orders.join(
                frames.items.select("order_id").unique(),
                left_on="id",
                right_on="order_id",
                how="anti",
            )
            if missing.height == 0:
                return None
            return OrderIssue(
                code="orders_missing_items",
                severity=severity,
                count=missing.height,
                message=f"{missing.height} order(s) have no line items",
                sample_order_ids=_sample(missing, "id", self.sample_size),
            )

        self._checks.append(check)
        return self

    def add_unlinked_check(self, source: str, severity: Severity = Severity.MEDIUM) -> "OrderIssueDetector":
        """Fees or refunds (``source``) without an order link"""
        def check(frames: OrderFrames) -> Optional[OrderIssue]:
            unlinked = getattr(frames, source).filter(pl.col("order_id").is_null()).height
            if unlinked == 0:
                return None
            return OrderIssue(
                code=f"{source}_without_order",
                severity=severity,
                count=unlinked,
                message=f"{unlinked} {source[:-1]} record(s) are not linked to an order",
            )

        self._checks.append(check)
        return self

    def add_negative_money_check(self, severity: Severity = Severity.HIGH) -> "OrderIssueDetector":
        """Orders with a negative total, subtotal, tax or shipping"""
        def check(frames: OrderFrames) -> Optional[OrderIssue]:
            negative = frames.orders.filter(pl.any_horizontal([pl.col(c) < 0 for c in MONEY_COLUMNS]))
            if negative.height == 0:
                return None
            return OrderIssue(
                code="negative_money_fields",
                severity=severity,
                count=negative.height,
                message=f"{negative.height} order(s) have negative total/subtotal/tax/shipping",
                sample_order_ids=_sample(negative, "id", self.sample_size),
            )

        self._checks.append(check)
        return self

    def add_currency_mismatch_check(self, severity: Severity = Severity.HIGH) -> "OrderIssueDetector":
        """Orders whose linked fees or refunds use another currency"""
        def check(frames: OrderFrames) -> Optional[OrderIssue]:
            linked = pl.concat(
                [
                    frames.fees.select("order_id", "currency"),
                    frames.refunds.select("order_id", "currency"),
                ]
            ).filter(pl.col("order_id").is_not_null())
            mismatched = (
                linked.join(
                    frames.orders.select("id", "currency", "position"),
                    left_on="order_id",
                    right_on="id",
                    how="inner",
                    suffix="_order",
                )
                .filter(pl.col("currency") != pl.col("currency_order"))
                .select("order_id", "position")
                .unique()
            )
            if mismatched.height == 0:
                return None
            return OrderIssue(
                code="currency_mismatch",
                severity=severity,
                count=mismatched.height,
                message=f"{mismatched.height} order(s) have fees or refunds in a different currency",
                sample_order_ids=_sample(mismatched, "order_id", self.sample_size),
            )

        self._checks.append(check)
        return self

    def add_refunds_exceed_total_check(self, severity: Severity = Severity.HIGH) -> "OrderIssueDetector":
        """Orders refunded for more than their total"""
        def check(frames: OrderFrames) -> Optional[OrderIssue]:
            exceeded = (
                frames.refunds.filter(pl.col("order_id").is_not_null())
                .group_by("order_id")
                .agg(pl.col("amount").sum().alias("refunded"))
                .join(
                    frames.orders.select("id", "total", "position"),
                    left_on="order_id",
                    right_on="id",
                    how="inner",
                )
                .filter(pl.col("refunded") > pl.col("total"))
            )
            if exceeded.height == 0:
                return None
            return OrderIssue(
                code="refunds_exceed_order_total",
                severity=severity,
                count=exceeded.height,
                message=f"{exceeded.height} order(s) have refunds above the order total",
                sample_order_ids=_sample(exceeded, "order_id", self.sample_size),
            )

        self._checks.append(check)
        return self

    def detect(self, frames: OrderFrames) -> List[OrderIssue]:
        issues = [issue for issue in (check(frames) for check in self._checks) if issue is not None]
        logger.debug(
            "Order checks complete",
            orders=frames.orders.height,
            checks=len(self._checks),
            failed=len(issues),
        )
        return issues


def create_order_issue_detector(sample_size: int = 5) -> OrderIssueDetector:
    """Full structural check suite for orders"""
    return (
        OrderIssueDetector(sample_size=sample_size)
        .add_missing_items_check()
        .add_unlinked_check("fees")
        .add_unlinked_check("refunds")
        .add_negative_money_check()
        .add_currency_mismatch_check()
        .add_refunds_exceed_total_check()
    )
