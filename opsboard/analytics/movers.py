"""
Top-Movers Ranker

Ranks SKUs by a per-SKU metric, either by its value in one range or by
its change against a comparison range.
"""

import asyncio
import uuid
from decimal import Decimal
from typing import Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsboard.analytics.breakdown import fetch_sku_aggregates
from opsboard.analytics.metrics import MOVER_ACCESSORS, Direction, MoverMetric, SkuAggregate
from opsboard.analytics.deltas import value_delta
from opsboard.analytics.ranges import ComparativeRange, DateRange
from opsboard.analytics.results import ApiModel, RangedResult
from opsboard.config import AnalyticsSettings, get_settings

POSITIVE_INFINITY = Decimal("Infinity")
NEGATIVE_INFINITY = Decimal("-Infinity")


class Mover(ApiModel):
    sku: str
    product_id: Optional[str] = None
    value: Optional[Decimal] = None
    prev_value: Optional[Decimal] = None
    delta: Optional[Decimal] = None
    delta_pct: Optional[Decimal] = None


class TopMovers(RangedResult):
    compare_to: Optional[Dict[str, str]] = None
    metric: MoverMetric
    direction: Direction
    limit: int
    items: List[Mover]


def rank_movers(
    current: Dict[str, SkuAggregate],
    previous: Optional[Dict[str, SkuAggregate]],
    metric: MoverMetric,
    direction: Direction,
    limit: int,
) -> List[Mover]:
    """
    Sort by delta when ``previous`` is given, else by value. ``up`` sorts
    descending and ``down`` ascending; a missing sort key always lands at the
    end. A SKU seen in only one range has zero activity in the other.
    """
    accessor = MOVER_ACCESSORS[metric]
    comparative = previous is not None
    keys = set(current) | (set(previous) if comparative else set())

    movers = []
    for sku in sorted(keys):
        agg = current.get(sku) or SkuAggregate(sku=sku)
        value = accessor(agg)
        if comparative:
            prev_agg = previous.get(sku) or SkuAggregate(sku=sku)
            prev_value = accessor(prev_agg)
            change = value_delta(value, prev_value)
            delta, delta_pct = change.delta, change.delta_pct
        else:
            prev_agg = None
            prev_value = delta = delta_pct = None
        product_id = agg.product_id or (prev_agg.product_id if prev_agg else None)
        movers.append(
            Mover(
                sku=sku,
                product_id=str(product_id) if product_id else None,
                value=value,
                prev_value=prev_value,
                delta=delta,
                delta_pct=delta_pct,
            )
        )

    descending = direction is Direction.UP
    missing = NEGATIVE_INFINITY if descending else POSITIVE_INFINITY

    def sort_key(mover: Mover) -> Decimal:
        key = mover.delta if comparative else mover.value
        return missing if key is None else key

    movers.sort(key=sort_key, reverse=descending)
    return movers[:limit]


class TopMoversRanker:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[AnalyticsSettings] = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or get_settings().analytics

    async def _aggregates(self, workspace_id: uuid.UUID, window: DateRange) -> Dict[str, SkuAggregate]:
        async with self._session_factory() as session:
            return await fetch_sku_aggregates(session, workspace_id, window)

    async def top_movers(
        self,
        workspace_id: uuid.UUID,
        ranges: ComparativeRange,
        metric: MoverMetric = MoverMetric.REVENUE,
        direction: Direction = Direction.UP,
        limit: Optional[int] = None,
    ) -> TopMovers:
        take = self._settings.clamp_limit(limit)
        if ranges.is_comparative:
            current, previous = await asyncio.gather(
                self._aggregates(workspace_id, ranges.primary),
                self._aggregates(workspace_id, ranges.comparison),
            )
            note = (
                f"SKUs ranked by change in {metric.value} versus the comparison range "
                f"({direction.value}); a SKU absent from one range counts as zero there."
            )
        else:
            current, previous = await self._aggregates(workspace_id, ranges.primary), None
            note = f"SKUs ranked by {metric.value} in the range ({direction.value}); pass compareFrom/compareTo to rank by change."

        return TopMovers(
            workspace_id=str(workspace_id),
            range=ranges.primary.as_dict(),
            compare_to=ranges.comparison.as_dict() if ranges.comparison else None,
            note=note,
            metric=metric,
            direction=direction,
            limit=take,
            items=rank_movers(current, previous, metric, direction, take),
        )
