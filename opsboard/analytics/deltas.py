"""
Delta/Comparison Engine

delta = current - previous (null if either side is null);
deltaPct = delta / previous (null if previous is null, non-finite or 0).
"""

from typing import Dict, Optional

from opsboard.analytics.metrics import TOTALS_ACCESSORS, DeltaMetric, KpiTotals
from opsboard.analytics.numbers import Number, is_finite, safe_delta, safe_delta_pct, to_decimal
from opsboard.analytics.results import ValueDelta


def value_delta(current: Optional[Number], previous: Optional[Number]) -> ValueDelta:
    delta = safe_delta(current, previous)
    return ValueDelta(
        value=to_decimal(current) if is_finite(current) else None,
        delta=delta,
        delta_pct=safe_delta_pct(delta, previous),
    )


def compare_totals(current: KpiTotals, previous: KpiTotals) -> Dict[DeltaMetric, ValueDelta]:
    """{value, delta, deltaPct} for every delta metric."""
    return {
        metric: value_delta(accessor(current), accessor(previous))
        for metric, accessor in TOTALS_ACCESSORS.items()
    }
