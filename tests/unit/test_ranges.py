"""
Unit Tests - Range Normalizer
"""
from datetime import date, datetime, timedelta

import pytest

from opsboard.analytics.ranges import ComparativeRange, DateRange, InvalidRangeError, parse_day


class TestDateRange:
    """Tests for DateRange"""

    def test_parse_inclusive_range(self):
        """Test a week-long range covers seven days and ends at the following midnight"""
        window = DateRange.parse("2025-01-01", "2025-01-07")

        assert window.days_inclusive == 7
        assert window.start_at == datetime(2025, 1, 1)
        assert window.end_at == datetime(2025, 1, 8)

    @pytest.mark.parametrize(
        "start,end",
        [("2024-02-27", "2024-03-02"), ("2025-01-01", "2025-01-01"), ("2024-12-01", "2025-01-31")],
    )
    def test_end_is_start_plus_days(self, start, end):
        """Test the exclusive end always equals start plus daysInclusive days"""
        window = DateRange.parse(start, end)

        assert window.days_inclusive >= 1
        assert window.end_at == window.start_at + timedelta(days=window.days_inclusive)

    @pytest.mark.parametrize("value", ["2025-1-01", "01/02/2025", "2025-02-30", "", "2025-01-01T00:00:00", None])
    def test_malformed_dates_rejected(self, value):
        """Test malformed or impossible dates raise InvalidRangeError"""
        with pytest.raises(InvalidRangeError):
            parse_day(value)

    def test_invalid_range_error_is_value_error(self):
        """Test the error names the offending field"""
        with pytest.raises(ValueError, match="to"):
            DateRange.parse("2025-01-01", "not-a-date")

    def test_reversed_range_is_empty(self):
        """Test a reversed range covers no days but still counts one day"""
        window = DateRange.parse("2025-01-10", "2025-01-01")

        assert window.end < window.start
        assert list(window.days()) == []
        assert window.days_inclusive == 1

    def test_preceding_range(self):
        """Test the preceding range has the same length and ends the day before"""
        window = DateRange.parse("2025-01-08", "2025-01-14")

        previous = window.preceding()

        assert previous == DateRange(date(2025, 1, 1), date(2025, 1, 7))
        assert previous.days_inclusive == window.days_inclusive

    def test_following_days(self):
        """Test following days start the day after the range"""
        window = DateRange.parse("2025-01-01", "2025-01-07")

        assert window.following_days(3) == [date(2025, 1, 8), date(2025, 1, 9), date(2025, 1, 10)]

    def test_as_dict(self):
        """Test the echoed range uses from/to keys"""
        assert DateRange.parse("2025-01-01", "2025-01-02").as_dict() == {"from": "2025-01-01", "to": "2025-01-02"}


class TestComparativeRange:
    """Tests for ComparativeRange"""

    def test_single_period(self):
        """Test no compare bounds gives a single-period range"""
        ranges = ComparativeRange.parse("2025-01-01", "2025-01-07")

        assert not ranges.is_comparative
        assert ranges.comparison is None

    def test_explicit_comparison(self):
        """Test compare bounds are parsed into the comparison range"""
        ranges = ComparativeRange.parse("2025-02-01", "2025-02-28", "2025-01-01", "2025-01-31")

        assert ranges.is_comparative
        assert ranges.comparison == DateRange(date(2025, 1, 1), date(2025, 1, 31))
        assert ranges.as_dict()["compareTo"] == {"from": "2025-01-01", "to": "2025-01-31"}

    def test_half_comparison_rejected(self):
        """Test a lone compareFrom is rejected"""
        with pytest.raises(InvalidRangeError):
            ComparativeRange.parse("2025-02-01", "2025-02-28", compare_from="2025-01-01")

    def test_with_preceding(self):
        """Test the default comparison is the preceding period"""
        primary = DateRange.parse("2025-01-08", "2025-01-14")

        ranges = ComparativeRange.with_preceding(primary)

        assert ranges.comparison == primary.preceding()
