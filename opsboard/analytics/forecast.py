"""
Naive Forecasts

Per-calendar-day averages over a training range, repeated for each day of
the horizon. Workspace forecasts use DailyMetric (revenue, orders, units);
SKU forecasts use SkuDailyMetric (revenue, units). Results are persisted
as immutable Forecast records.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional, Union

import structlog
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsboard.analytics.numbers import quantize_money, to_decimal
from opsboard.analytics.ranges import DateRange
from opsboard.analytics.results import ApiModel, NotFoundCode, NotFoundResult
from opsboard.config import AnalyticsSettings, get_settings
from opsboard.database.models import DailyMetric, Forecast, Product, SkuDailyMetric, utcnow

logger = structlog.get_logger(__name__)

METHOD = "naive_daily_avg_v1"


class ForecastPoint(ApiModel):
    date: str
    revenue: Decimal
    orders: Optional[Decimal] = None
    units: Decimal


class ForecastResult(ApiModel):
    method: str
    level: str
    sku: Optional[str] = None
    product_id: Optional[str] = None
    horizon_days: int
    start: str
    daily_average: Dict[str, Optional[Decimal]]
    totals: Dict[str, Optional[Decimal]]
    points: List[ForecastPoint]


class ForecastView(ApiModel):
    id: str
    workspace_id: str
    range: Dict[str, str]
    result: Dict[str, Any]
    assumptions: Dict[str, Any]
    created_at: datetime
    note: str = (
        "Immutable forecast snapshot. Each future day repeats the per-calendar-day average of the range "
        "(total / days in range); days without data count as zero."
    )

    @classmethod
    def from_row(cls, row: Forecast) -> "ForecastView":
        return cls(
            id=str(row.id),
            workspace_id=str(row.workspace_id),
            range={"from": row.range_from.isoformat(), "to": row.range_to.isoformat()},
            result=row.result,
            assumptions=row.assumptions,
            created_at=row.created_at,
        )


def project(
    window: DateRange,
    horizon_days: int,
    totals: Dict[str, Optional[Decimal]],
) -> Dict[str, Any]:
    """Daily averages (total / calendar days in range), horizon points and horizon totals."""
    days = window.days_inclusive
    average = {k: (None if v is None else quantize_money(to_decimal(v) / days)) for k, v in totals.items()}
    horizon_totals = {k: (None if v is None else quantize_money(v * horizon_days)) for k, v in average.items()}
    points = [
        ForecastPoint(
            date=day.isoformat(),
            revenue=average["revenue"],
            orders=average.get("orders"),
            units=average["units"],
        )
        for day in window.following_days(horizon_days)
    ]
    return {"daily_average": average, "totals": horizon_totals, "points": points}


class ForecastService:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        settings: Optional[AnalyticsSettings] = None,
    ):
        self._session_factory = session_factory
        self._settings = settings or get_settings().analytics

    def clamp_horizon(self, horizon_days: Optional[int]) -> int:
        value = self._settings.forecast_default_horizon if horizon_days is None else horizon_days
        return max(1, min(self._settings.forecast_max_horizon, value))

    async def _resolve_product(
        self, session: AsyncSession, workspace_id: uuid.UUID, sku: Optional[str], product_id: Optional[uuid.UUID]
    ) -> Union[Product, NotFoundResult]:
        if product_id is not None:
            product = (
                await session.execute(select(Product).where(Product.workspace_id == workspace_id, Product.id == product_id))
            ).scalar_one_or_none()
            if product is None:
                return NotFoundResult(code=NotFoundCode.PRODUCT_NOT_FOUND, message=f"Product {product_id} not found")
            return product
        product = (
            await session.execute(select(Product).where(Product.workspace_id == workspace_id, Product.sku == sku))
        ).scalar_one_or_none()
        if product is None:
            return NotFoundResult(code=NotFoundCode.SKU_NOT_FOUND, message=f"SKU {sku!r} not found")
        return product

    async def create_forecast(
        self,
        workspace_id: uuid.UUID,
        window: DateRange,
        horizon_days: Optional[int] = None,
        sku: Optional[str] = None,
        product_id: Optional[uuid.UUID] = None,
    ) -> Union[ForecastView, NotFoundResult]:
        horizon = self.clamp_horizon(horizon_days)
        product: Optional[Product] = None

        async with self._session_factory() as session:
            if sku is not None or product_id is not None:
                resolved = await self._resolve_product(session, workspace_id, sku, product_id)
                if isinstance(resolved, NotFoundResult):
                    return resolved
                product = resolved
                stmt = select(
                    func.sum(SkuDailyMetric.revenue),
                    func.sum(SkuDailyMetric.units_sold),
                    func.count(SkuDailyMetric.id),
                ).where(
                    SkuDailyMetric.workspace_id == workspace_id,
                    SkuDailyMetric.product_id == product.id,
                    SkuDailyMetric.day >= window.start,
                    SkuDailyMetric.day <= window.end,
                )
                revenue, units, days_with_data = (await session.execute(stmt)).one()
                totals = {"revenue": to_decimal(revenue), "orders": None, "units": to_decimal(units)}
            else:
                stmt = select(
                    func.sum(DailyMetric.revenue),
                    func.sum(DailyMetric.orders_count),
                    func.sum(DailyMetric.units),
                    func.count(DailyMetric.id),
                ).where(
                    DailyMetric.workspace_id == workspace_id,
                    DailyMetric.day >= window.start,
                    DailyMetric.day <= window.end,
                )
                revenue, orders, units, days_with_data = (await session.execute(stmt)).one()
                totals = {"revenue": to_decimal(revenue), "orders": to_decimal(orders), "units": to_decimal(units)}

            projection = project(window, horizon, totals)
            start = window.following_days(1)[0]
            result = ForecastResult(
                method=METHOD,
                level="sku" if product else "workspace",
                sku=product.sku if product else None,
                product_id=str(product.id) if product else None,
                horizon_days=horizon,
                start=start.isoformat(),
                **projection,
            )
            assumptions = {
                "method": METHOD,
                "trainingWindow": {
                    **window.as_dict(),
                    "daysInRange": window.days_inclusive,
                    "daysWithData": int(days_with_data or 0),
                },
                "notes": (
                    "Average per calendar day in the training window (days without data count as zero), "
                    "repeated for every day of the horizon. No seasonality or trend."
                ),
            }

            record = Forecast(
                id=uuid.uuid4(),
                workspace_id=workspace_id,
                method=METHOD,
                horizon_days=horizon,
                range_from=window.start,
                range_to=window.end,
                sku=product.sku if product else None,
                product_id=product.id if product else None,
                result=result.model_dump(mode="json", by_alias=True),
                assumptions=assumptions,
                created_at=utcnow(),
            )
            session.add(record)
            await session.commit()

        logger.info(
            "Forecast created",
            workspace_id=str(workspace_id),
            forecast_id=str(record.id),
            level=result.level,
            horizon_days=horizon,
        )
        return ForecastView.from_row(record)

    async def get_forecast(self, workspace_id: uuid.UUID, forecast_id: uuid.UUID) -> Union[ForecastView, NotFoundResult]:
        async with self._session_factory() as session:
            row = (
                await session.execute(
                    select(Forecast).where(Forecast.workspace_id == workspace_id, Forecast.id == forecast_id)
                )
            ).scalar_one_or_none()
        if row is None:
            return NotFoundResult(code=NotFoundCode.FORECAST_NOT_FOUND, message=f"Forecast {forecast_id} not found")
        return ForecastView.from_row(row)
