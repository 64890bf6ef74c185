"""
Unit Tests - Order Data-Quality Checks
"""
import uuid
from datetime import datetime
from decimal import Decimal

import pytest

from opsboard.analytics.metrics import Severity
from opsboard.analytics.queries import ItemRecord, MoneyRecord, OrderRecord
from opsboard.analytics.risk import OrderIssueView
from opsboard.quality.order_issues import OrderFrames, OrderIssueDetector, create_order_issue_detector, to_minor

AT = datetime(2025, 1, 1, 12, 0)


def order(total: str = "100", currency: str = "USD", tax: str = "0") -> OrderRecord:
    return OrderRecord(
        id=uuid.uuid4(),
        channel="shopify",
        currency=currency,
        effective_at=AT,
        total=Decimal(total),
        subtotal=Decimal(total),
        tax=Decimal(tax),
        shipping=Decimal("0"),
    )


def item(o: OrderRecord, quantity: int = 1) -> ItemRecord:
    return ItemRecord(order_id=o.id, product_id=uuid.uuid4(), location_id=None, quantity=quantity, total=o.total)


def money(amount: str, o: OrderRecord = None, currency: str = "USD") -> MoneyRecord:
    return MoneyRecord(
        id=uuid.uuid4(),
        order_id=o.id if o is not None else None,
        amount=Decimal(amount),
        currency=currency,
        created_at=AT,
    )


@pytest.fixture
def detector() -> OrderIssueDetector:
    return create_order_issue_detector(sample_size=5)


class TestOrderIssueDetector:
    """Tests for the structural order checks"""

    def test_clean_orders_pass(self, detector):
        """Test clean, fully linked orders produce no issues"""
        a, b = order(), order("50")
        frames = OrderFrames.from_records([a, b], [item(a), item(b)], [money("3", a)], [money("10", b)])

        assert detector.detect(frames) == []

    def test_empty_inputs_pass(self, detector):
        """Test an empty range produces no issues"""
        assert detector.detect(OrderFrames.from_records([], [], [], [])) == []

    def test_missing_items(self, detector):
        """Test orders without line items are reported high with samples in order"""
        orders = [order() for _ in range(7)]
        frames = OrderFrames.from_records(orders, [item(orders[0])], [], [])

        issues = detector.detect(frames)

        assert len(issues) == 1
        issue = issues[0]
        assert issue.code == "orders_missing_items"
        assert issue.severity == Severity.HIGH
        assert issue.count == 6
        assert issue.sample_order_ids == [str(o.id) for o in orders[1:6]]

    def test_unlinked_fees_and_refunds(self, detector):
        """Test unlinked fees and refunds are medium issues"""
        a = order()
        frames = OrderFrames.from_records([a], [item(a)], [money("1"), money("2")], [money("5")])

        issues = {i.code: i for i in detector.detect(frames)}

        assert issues["fees_without_order"].count == 2
        assert issues["fees_without_order"].severity == Severity.MEDIUM
        assert issues["refunds_without_order"].count == 1

    def test_negative_money(self, detector):
        """Test a negative tax is flagged"""
        bad = order(tax="-0.01")
        frames = OrderFrames.from_records([bad], [item(bad)], [], [])

        issues = detector.detect(frames)

        assert [i.code for i in issues] == ["negative_money_fields"]
        assert issues[0].sample_order_ids == [str(bad.id)]

    def test_currency_mismatch_counts_orders_once(self, detector):
        """Test an order with several foreign-currency records counts once"""
        a = order(currency="USD")
        frames = OrderFrames.from_records(
            [a], [item(a)], [money("1", a, "EUR")], [money("2", a, "EUR"), money("3", a, "GBP")]
        )

        issues = {i.code: i for i in detector.detect(frames)}

        assert issues["currency_mismatch"].count == 1
        assert issues["currency_mismatch"].sample_order_ids == [str(a.id)]

    def test_refunds_exceed_total(self, detector):
        """Test refunds summing above the order total are flagged; equal is fine"""
        over, exact = order("100"), order("40")
        frames = OrderFrames.from_records(
            [over, exact],
            [item(over), item(exact)],
            [],
            [money("60", over), money("40.01", over), money("40", exact)],
        )

        issues = {i.code: i for i in detector.detect(frames)}

        assert issues["refunds_exceed_order_total"].count == 1
        assert issues["refunds_exceed_order_total"].sample_order_ids == [str(over.id)]

    def test_custom_suite(self):
        """Test a suite built from selected checks only runs those"""
        a = order()
        frames = OrderFrames.from_records([a], [], [money("1")], [])

        issues = OrderIssueDetector(sample_size=0).add_missing_items_check(Severity.MEDIUM).detect(frames)

        assert [(i.code, i.severity, i.sample_order_ids) for i in issues] == [
            ("orders_missing_items", Severity.MEDIUM, [])
        ]

    def test_issue_view_uses_wire_names(self):
        """Test the serialized issue uses camelCase keys"""
        a = order()
        issue = create_order_issue_detector().detect(OrderFrames.from_records([a], [], [], []))[0]

        body = OrderIssueView.from_issue(issue).model_dump(mode="json", by_alias=True)

        assert body["sampleOrderIds"] == [str(a.id)]
        assert body["severity"] == "high"

    def test_minor_units_are_exact(self):
        """Test money converts to exact integer minor units"""
        assert to_minor(Decimal("12.3456")) == 123456
        assert to_minor(Decimal("0.1")) + to_minor(Decimal("0.2")) == to_minor(Decimal("0.3"))
