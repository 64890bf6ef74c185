"""
Test Suite Configuration
"""
import uuid
from datetime import date, datetime
from decimal import Decimal
from typing import AsyncGenerator, List, Optional, Sequence, Tuple

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from opsboard.config import AnalyticsSettings, RiskThresholds, Settings
from opsboard.database.connection import build_session_factory
from opsboard.database.models import (
    Base,
    DailyMetric,
    Fee,
    Inventory,
    Location,
    Order,
    OrderItem,
    Product,
    Refund,
    SkuDailyMetric,
)
from opsboard.main import app
from opsboard.serving.api.routes.deps import session_factory_dependency


@pytest.fixture(scope="session")
def test_settings() -> Settings:
    """Create test settings"""
    return Settings(
        app_env="testing",
        debug=True,
    )


@pytest.fixture
def thresholds() -> RiskThresholds:
    return RiskThresholds()


@pytest.fixture
def analytics_settings() -> AnalyticsSettings:
    return AnalyticsSettings()


@pytest.fixture
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """
    File-backed SQLite per test. Services open one session per call and
    gather them, so every connection must see the same database.
    """
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'opsboard.db'}", echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return build_session_factory(test_engine)


@pytest.fixture
def workspace_id() -> uuid.UUID:
    return uuid.uuid4()


class WorkspaceBuilder:
    """
    Stage transactional rows for one workspace and write them in one go.

    Example:
        mug = builder.product("MUG")
        builder.order(datetime(2025, 1, 1, 10), items=[(mug, 2, "10")])
        await builder.save()
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession], workspace_id: uuid.UUID):
        self._session_factory = session_factory
        self.workspace_id = workspace_id
        self._pending: List[object] = []

    def product(self, sku: str, name: Optional[str] = None) -> Product:
        product = Product(id=uuid.uuid4(), workspace_id=self.workspace_id, sku=sku, name=name or sku.title())
        self._pending.append(product)
        return product

    def location(self, code: str) -> Location:
        location = Location(id=uuid.uuid4(), workspace_id=self.workspace_id, code=code, name=code.title())
        self._pending.append(location)
        return location

    def order(
        self,
        at: datetime,
        items: Sequence[Tuple] = (),
        channel: Optional[str] = "shopify",
        total: Optional[str] = None,
        currency: str = "USD",
        created_only: bool = False,
        **money: str,
    ) -> Order:
        """
        ``items`` are (product, quantity, unit_price[, location]) tuples. The
        order total defaults to the sum of the line totals. ``at`` sets both
        timestamps; ``created_only`` leaves ordered_at empty.
        """
        order_id = uuid.uuid4()
        line_sum = Decimal("0")
        lines = []
        for n, item in enumerate(items):
            product, quantity, unit_price = item[0], item[1], Decimal(str(item[2]))
            location = item[3] if len(item) > 3 else None
            line_total = unit_price * quantity
            line_sum += line_total
            lines.append(
                OrderItem(
                    id=uuid.uuid4(),
                    order_id=order_id,
                    product_id=product.id,
                    location_id=location.id if location is not None else None,
                    line_key=f"line-{n + 1}",
                    quantity=quantity,
                    unit_price=unit_price,
                    total=line_total,
                )
            )
        order = Order(
            id=order_id,
            workspace_id=self.workspace_id,
            channel=channel,
            status="paid",
            currency=currency,
            ordered_at=None if created_only else at,
            created_at=at,
            total=Decimal(total) if total is not None else line_sum,
            subtotal=Decimal(money.get("subtotal", str(line_sum))),
            tax=Decimal(money.get("tax", "0")),
            shipping=Decimal(money.get("shipping", "0")),
        )
        self._pending.append(order)
        self._pending.extend(lines)
        return order

    def fee(self, amount: str, order: Optional[Order] = None, at: Optional[datetime] = None, currency: str = "USD") -> Fee:
        fee = Fee(
            id=uuid.uuid4(),
            workspace_id=self.workspace_id,
            order_id=order.id if order is not None else None,
            fee_type="payment_processing",
            amount=Decimal(amount),
            currency=currency,
            created_at=at or order.created_at,
        )
        self._pending.append(fee)
        return fee

    def refund(self, amount: str, order: Optional[Order] = None, at: Optional[datetime] = None, currency: str = "USD") -> Refund:
        refund = Refund(
            id=uuid.uuid4(),
            workspace_id=self.workspace_id,
            order_id=order.id if order is not None else None,
            reason="damaged",
            amount=Decimal(amount),
            currency=currency,
            created_at=at or order.created_at,
        )
        self._pending.append(refund)
        return refund

    def inventory(self, product: Product, location: Location, on_hand: int) -> Inventory:
        row = Inventory(
            id=uuid.uuid4(),
            workspace_id=self.workspace_id,
            product_id=product.id,
            location_id=location.id,
            on_hand=on_hand,
            updated_at=datetime(2025, 1, 31, 12, 0),
        )
        self._pending.append(row)
        return row

    def daily_metric(self, day: date, revenue: str, refunds: str = "0", fees: str = "0", orders: int = 1) -> DailyMetric:
        """A stored rollup row, margin derived the way the materializer derives it."""
        revenue_, refunds_, fees_ = Decimal(revenue), Decimal(refunds), Decimal(fees)
        margin = revenue_ - refunds_ - fees_
        metric = DailyMetric(
            id=uuid.uuid4(),
            workspace_id=self.workspace_id,
            day=day,
            revenue=revenue_,
            orders_count=orders,
            units=orders,
            refunds_amount=refunds_,
            fees_amount=fees_,
            cogs_amount=Decimal("0"),
            gross_margin_amount=margin,
            gross_margin_percent=(margin / revenue_ * 100) if revenue_ else Decimal("0"),
            stockouts_count=0,
            low_stock_count=0,
        )
        self._pending.append(metric)
        return metric

    def sku_metric(self, product: Product, day: date, units: int, revenue: str, stock_end: int = 0) -> SkuDailyMetric:
        revenue_ = Decimal(revenue)
        metric = SkuDailyMetric(
            id=uuid.uuid4(),
            workspace_id=self.workspace_id,
            product_id=product.id,
            day=day,
            units_sold=units,
            revenue=revenue_,
            refunds_amount=Decimal("0"),
            fees_amount=Decimal("0"),
            avg_price=(revenue_ / units) if units else Decimal("0"),
            stock_end=stock_end,
        )
        self._pending.append(metric)
        return metric

    async def save(self) -> None:
        async with self._session_factory() as session:
            async with session.begin():
                session.add_all(self._pending)
        self._pending = []


@pytest.fixture
def builder(session_factory, workspace_id) -> WorkspaceBuilder:
    return WorkspaceBuilder(session_factory, workspace_id)


@pytest.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """API client bound to the test database; the app lifespan is not run."""
    app.dependency_overrides[session_factory_dependency] = lambda: session_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()
