"""
Unit Tests - Safe Division, Allocation and Deltas
"""
from decimal import Decimal

import pytest

from opsboard.analytics.deltas import compare_totals, value_delta
from opsboard.analytics.metrics import DeltaMetric, KpiTotals
from opsboard.analytics.numbers import allocate_proportionally, fmt_pct, mean, safe_div


class TestSafeDivision:
    """Tests for safe_div"""

    @pytest.mark.parametrize("numerator", [Decimal("5"), 0, -3, 1.5])
    def test_zero_denominator_is_null(self, numerator):
        """Test division by zero yields None"""
        assert safe_div(numerator, 0) is None

    def test_zero_numerator_is_zero(self):
        """Test 0 / y is 0 for finite non-zero y"""
        assert safe_div(0, Decimal("7")) == 0

    @pytest.mark.parametrize(
        "numerator,denominator",
        [
            (Decimal("NaN"), 1),
            (1, Decimal("Infinity")),
            (float("inf"), 2),
            (1, float("nan")),
            (None, 1),
            (1, None),
        ],
    )
    def test_non_finite_inputs_are_null(self, numerator, denominator):
        """Test non-finite or missing operands yield None"""
        assert safe_div(numerator, denominator) is None

    def test_exact_decimal_result(self):
        """Test ratios stay exact decimals"""
        assert safe_div(Decimal("10"), Decimal("4")) == Decimal("2.5")


class TestAllocation:
    """Tests for allocate_proportionally"""

    def test_equal_weights_hand_out_leftover_in_order(self):
        """Test the leftover quantum goes to the first key on a remainder tie"""
        parts = allocate_proportionally(Decimal("10"), {"a": 1, "b": 1, "c": 1})

        assert parts == {"a": Decimal("3.3334"), "b": Decimal("3.3333"), "c": Decimal("3.3333")}

    @pytest.mark.parametrize(
        "total,weights",
        [
            (Decimal("7.77"), {"x": Decimal("19.99"), "y": Decimal("5.01"), "z": Decimal("0.33")}),
            (Decimal("0.0005"), {"x": 3, "y": 7}),
            (Decimal("1234.5678"), {n: n + 1 for n in range(17)}),
        ],
    )
    def test_parts_sum_to_total(self, total, weights):
        """Test allocated parts always sum exactly to the total"""
        parts = allocate_proportionally(total, weights)

        assert sum(parts.values()) == total.quantize(Decimal("0.0001"))
        assert set(parts) == set(weights)

    def test_proportional_split(self):
        """Test a 2:1 weight split gives a 2:1 allocation"""
        parts = allocate_proportionally(Decimal("30"), {"a": 2, "b": 1})

        assert parts == {"a": Decimal("20.0000"), "b": Decimal("10.0000")}

    def test_zero_weights_allocate_nothing(self):
        """Test zero total weight allocates zero everywhere"""
        parts = allocate_proportionally(Decimal("12"), {"a": 0, "b": 0})

        assert parts == {"a": Decimal("0"), "b": Decimal("0")}


class TestDeltas:
    """Tests for the delta engine"""

    def test_delta_and_pct(self):
        """Test delta = a - b and deltaPct = delta / b"""
        change = value_delta(Decimal("150"), Decimal("100"))

        assert change.value == Decimal("150")
        assert change.delta == Decimal("50")
        assert change.delta_pct == Decimal("0.5")

    def test_null_current(self):
        """Test a null current value nulls delta and deltaPct"""
        change = value_delta(None, Decimal("5"))

        assert change.value is None
        assert change.delta is None
        assert change.delta_pct is None

    def test_zero_previous(self):
        """Test deltaPct is null when previous is zero"""
        change = value_delta(Decimal("5"), 0)

        assert change.delta == Decimal("5")
        assert change.delta_pct is None

    def test_compare_totals_covers_every_metric(self):
        """Test every delta metric is present and ratios null out on empty ranges"""
        current = KpiTotals(revenue=Decimal("200"), orders=4, refunds_amount=Decimal("10"))
        previous = KpiTotals()

        metrics = compare_totals(current, previous)

        assert set(metrics) == set(DeltaMetric)
        assert metrics[DeltaMetric.REVENUE].delta == Decimal("200")
        assert metrics[DeltaMetric.REVENUE].delta_pct is None
        assert metrics[DeltaMetric.AVG_ORDER_VALUE].value == Decimal("50")
        assert metrics[DeltaMetric.REFUND_RATE].delta is None


class TestFormatting:
    """Tests for helpers used in plain-language output"""

    def test_mean_skips_non_finite(self):
        """Test the mean ignores missing values"""
        assert mean([Decimal("1"), None, Decimal("3")]) == Decimal("2")
        assert mean([]) is None

    def test_fmt_pct(self):
        """Test ratios and pre-scaled values format as percentages"""
        assert fmt_pct(Decimal("0.0333")) == "3.33%"
        assert fmt_pct(Decimal("95"), scale=1) == "95.00%"
        assert fmt_pct(None) == "n/a"
