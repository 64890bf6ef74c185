"""
Database Models - Operational Store and Rollups

This module defines the data models consumed and produced by the analytics
engine. Every row is scoped to a workspace (tenant).

Transactional Tables (owned by ingestion, read-only here):
- Product, Location: catalog and fulfilment locations
- Order, OrderItem: sales with per-line location tags
- Fee, Refund: money movements, optionally linked to an order
- Inventory: current on-hand snapshot per (location, product)

Rollup Tables (written by the rollup materializer):
- DailyMetric: one row per (workspace, day)
- SkuDailyMetric: one row per (workspace, product, day)

Output Records (immutable snapshots):
- Forecast, Plan

Timestamps are stored as naive UTC datetimes.
"""

from datetime import datetime, date, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional, List
import uuid

from sqlalchemy import (
    JSON,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    """Naive UTC timestamp used for created/updated columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


Money = Numeric(14, 4)
JSONDocument = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    """Base class for all database models"""
    pass


# =============================================================================
# ENUMERATIONS
# =============================================================================

class OrderStatus(str, Enum):
    """Order status enumeration"""
    PENDING = "pending"
    PAID = "paid"
    FULFILLED = "fulfilled"
    CANCELLED = "cancelled"
    REFUNDED = "refunded"


class PlanStatus(str, Enum):
    """Plan lifecycle; plans are created as drafts and never updated here"""
    DRAFT = "draft"


# =============================================================================
# CATALOG
# =============================================================================

class Product(Base):
    """Sellable product, identified by SKU within a workspace"""
    __tablename__ = "products"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    sku: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow)

    order_items: Mapped[List["OrderItem"]] = relationship(back_populates="product")

    __table_args__ = (
        UniqueConstraint("workspace_id", "sku", name="uq_products_workspace_sku"),
    )


class Location(Base):
    """Warehouse, store or fulfilment location"""
    __tablename__ = "locations"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    code: Mapped[str] = mapped_column(String(64), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    __table_args__ = (
        UniqueConstraint("workspace_id", "code", name="uq_locations_workspace_code"),
    )


# =============================================================================
# TRANSACTIONS
# =============================================================================

class Order(Base):
    """
    Sales order.

    An order belongs to a reporting window by ordered_at when present,
    otherwise by created_at.
    """
    __tablename__ = "orders"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    channel: Mapped[Optional[str]] = mapped_column(String(50))
    status: Mapped[str] = mapped_column(String(30), default=OrderStatus.PAID.value)
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    ordered_at: Mapped[Optional[datetime]] = mapped_column(DateTime)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    total: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    subtotal: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    tax: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    shipping: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    items: Mapped[List["OrderItem"]] = relationship(back_populates="order")

    __table_args__ = (
        Index("ix_orders_workspace_ordered", "workspace_id", "ordered_at"),
        Index("ix_orders_workspace_created", "workspace_id", "created_at"),
    )


class OrderItem(Base):
    """Order line, optionally tagged with the location it ships from"""
    __tablename__ = "order_items"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    order_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("orders.id"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id"), nullable=False)
    location_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("locations.id"))
    line_key: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[int] = mapped_column(Integer, default=0)
    unit_price: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))

    order: Mapped["Order"] = relationship(back_populates="items")
    product: Mapped["Product"] = relationship(back_populates="order_items")

    __table_args__ = (
        UniqueConstraint("order_id", "line_key", name="uq_order_items_line"),
        Index("ix_order_items_product", "product_id"),
    )


class Fee(Base):
    """Processing/marketplace fee; attributed to windows by its own created_at"""
    __tablename__ = "fees"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("orders.id"))
    fee_type: Mapped[Optional[str]] = mapped_column(String(50))
    amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_fees_workspace_created", "workspace_id", "created_at"),
    )


class Refund(Base):
    """Refund; attributed to windows by its own created_at"""
    __tablename__ = "refunds"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    order_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, ForeignKey("orders.id"))
    reason: Mapped[Optional[str]] = mapped_column(String(200))
    amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    currency: Mapped[str] = mapped_column(String(3), default="USD")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_refunds_workspace_created", "workspace_id", "created_at"),
    )


class Inventory(Base):
    """Current on-hand quantity; negative values indicate bad upstream data"""
    __tablename__ = "inventory"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    location_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("locations.id"), nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id"), nullable=False)
    on_hand: Mapped[int] = mapped_column(Integer, default=0)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, onupdate=utcnow)

    __table_args__ = (
        UniqueConstraint("workspace_id", "location_id", "product_id", name="uq_inventory_slot"),
    )


# =============================================================================
# ROLLUPS
# =============================================================================

class DailyMetric(Base):
    """
    Workspace-level daily rollup.

    gross_margin_amount = revenue - refunds - fees - cogs
    gross_margin_percent = gross_margin_amount / revenue * 100, or 0 without revenue
    """
    __tablename__ = "daily_metrics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)

    revenue: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    orders_count: Mapped[int] = mapped_column(Integer, default=0)
    units: Mapped[int] = mapped_column(Integer, default=0)
    refunds_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    fees_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    cogs_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    gross_margin_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    gross_margin_percent: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    stockouts_count: Mapped[int] = mapped_column(Integer, default=0)
    low_stock_count: Mapped[int] = mapped_column(Integer, default=0)

    __table_args__ = (
        UniqueConstraint("workspace_id", "day", name="uq_daily_metrics_workspace_day"),
    )


class SkuDailyMetric(Base):
    """Per-product daily rollup; refunds/fees are allocated by revenue share"""
    __tablename__ = "sku_daily_metrics"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    product_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("products.id"), nullable=False)
    day: Mapped[date] = mapped_column(Date, nullable=False)

    units_sold: Mapped[int] = mapped_column(Integer, default=0)
    revenue: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    refunds_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    fees_amount: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    avg_price: Mapped[Decimal] = mapped_column(Money, default=Decimal("0"))
    stock_end: Mapped[int] = mapped_column(Integer, default=0)

    product: Mapped["Product"] = relationship()

    __table_args__ = (
        UniqueConstraint("workspace_id", "product_id", "day", name="uq_sku_daily_metrics_key"),
        Index("ix_sku_daily_metrics_workspace_day", "workspace_id", "day"),
    )


# =============================================================================
# OUTPUT RECORDS
# =============================================================================

class Forecast(Base):
    """Persisted forecast result and the assumptions used to produce it"""
    __tablename__ = "forecasts"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    method: Mapped[str] = mapped_column(String(50), nullable=False)
    horizon_days: Mapped[int] = mapped_column(Integer, nullable=False)
    range_from: Mapped[date] = mapped_column(Date, nullable=False)
    range_to: Mapped[date] = mapped_column(Date, nullable=False)
    sku: Mapped[Optional[str]] = mapped_column(String(64))
    product_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid)
    result: Mapped[dict] = mapped_column(JSONDocument, nullable=False)
    assumptions: Mapped[dict] = mapped_column(JSONDocument, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_forecasts_workspace_created", "workspace_id", "created_at"),
    )


class Plan(Base):
    """Persisted planning output"""
    __tablename__ = "plans"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    workspace_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    title: Mapped[Optional[str]] = mapped_column(String(200))
    status: Mapped[str] = mapped_column(String(20), default=PlanStatus.DRAFT.value)
    range_from: Mapped[date] = mapped_column(Date, nullable=False)
    range_to: Mapped[date] = mapped_column(Date, nullable=False)
    result: Mapped[dict] = mapped_column(JSONDocument, nullable=False)
    assumptions: Mapped[dict] = mapped_column(JSONDocument, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_plans_workspace_created", "workspace_id", "created_at"),
    )
