"""
Range Normalizer

Converts inclusive calendar-day ranges (YYYY-MM-DD, UTC) into half-open
timestamp windows [start_at, end_at) and derives comparison ranges.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Iterator, List, Optional, Union

_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class InvalidRangeError(ValueError):
    """Raised when a range bound is not a valid YYYY-MM-DD calendar date."""

    def __init__(self, value: object, field: str = "date"):
        self.value = value
        self.field = field
        super().__init__(f"Invalid {field}: {value!r} (expected YYYY-MM-DD)")


def parse_day(value: Union[str, date], field: str = "date") -> date:
    """Parse a strict YYYY-MM-DD string (or pass a date through)."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not _DATE_RE.match(value):
        raise InvalidRangeError(value, field)
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise InvalidRangeError(value, field) from None


def utc_midnight(day: date) -> datetime:
    """Naive UTC midnight at the start of ``day``."""
    return datetime.combine(day, time.min)


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of UTC calendar days."""

    start: date
    end: date

    @classmethod
    def parse(cls, start: Union[str, date], end: Union[str, date]) -> "DateRange":
        return cls(parse_day(start, "from"), parse_day(end, "to"))

    @classmethod
    def single_day(cls, day: date) -> "DateRange":
        return cls(day, day)

    @property
    def start_at(self) -> datetime:
        return utc_midnight(self.start)

    @property
    def end_at(self) -> datetime:
        """Exclusive upper bound: midnight after the last day."""
        return utc_midnight(self.end + timedelta(days=1))

    @property
    def days_inclusive(self) -> int:
        """Calendar days covered, never less than 1 (a reversed range counts as 1)."""
        seconds = (self.end_at - self.start_at).total_seconds()
        return max(1, round(seconds / 86400))

    def days(self) -> Iterator[date]:
        """Each calendar day in the range, oldest first."""
        current = self.start
        while current <= self.end:
            yield current
            current += timedelta(days=1)

    def preceding(self) -> "DateRange":
        """Same-length range ending the day before ``start``."""
        span = timedelta(days=self.days_inclusive)
        return DateRange(self.start - span, self.end - span)

    def following_days(self, count: int) -> List[date]:
        """``count`` consecutive days starting the day after ``end``."""
        return [self.end + timedelta(days=offset) for offset in range(1, count + 1)]

    def as_dict(self) -> dict:
        return {"from": self.start.isoformat(), "to": self.end.isoformat()}

    def __str__(self) -> str:
        return f"{self.start.isoformat()}..{self.end.isoformat()}"


@dataclass(frozen=True)
class ComparativeRange:
    """
    A primary range paired with an optional comparison range.

    Computations take this one value and branch once on
    ``is_comparative`` instead of each threading a nullable argument.
    """

    primary: DateRange
    comparison: Optional[DateRange] = None

    @classmethod
    def parse(
        cls,
        start: Union[str, date],
        end: Union[str, date],
        compare_from: Optional[Union[str, date]] = None,
        compare_to: Optional[Union[str, date]] = None,
    ) -> "ComparativeRange":
        primary = DateRange.parse(start, end)
        if compare_from is None and compare_to is None:
            return cls(primary)
        if compare_from is None or compare_to is None:
            raise InvalidRangeError(compare_from or compare_to, "compare range")
        return cls(primary, DateRange(parse_day(compare_from, "compareFrom"), parse_day(compare_to, "compareTo")))

    @classmethod
    def with_preceding(cls, primary: DateRange) -> "ComparativeRange":
        return cls(primary, primary.preceding())

    @property
    def is_comparative(self) -> bool:
        return self.comparison is not None

    def as_dict(self) -> dict:
        data = {"range": self.primary.as_dict()}
        if self.comparison is not None:
            data["compareTo"] = self.comparison.as_dict()
        return data
