"""
Workspace Analytics Engine

Range normalization, rollup materialization, KPI aggregation, breakdowns,
deltas, top movers, risk detection, planning synthesis and forecasts.
"""
from .ranges import ComparativeRange, DateRange, InvalidRangeError

__all__ = ["ComparativeRange", "DateRange", "InvalidRangeError"]
