"""
Synthetic Demo Workspace

Generates a reproducible commerce workspace for local development and demos:
- Products and stock locations
- Orders across channels with line items spread over locations
- Payment fees, refunds and the occasional unlinked adjustment
- An inventory snapshot with a few stockouts and low-stock positions

The same seed always yields the same workspace, ids included.
"""

import random
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import Any, Dict, List, Optional

import polars as pl
from faker import Faker
import structlog

logger = structlog.get_logger(__name__)

CENT = Decimal("0.01")

# (channel, weight); the empty channel ends up in the UNKNOWN bucket
CHANNELS = [
    ("shopify", 0.45),
    ("amazon", 0.30),
    ("etsy", 0.12),
    ("wholesale", 0.08),
    ("", 0.05),
]

CATEGORIES = ["Mug", "Tote", "Poster", "Candle", "Notebook", "Hoodie", "Cap", "Sticker Pack"]

LOCATION_CODES = ["WH-EAST", "WH-WEST", "STORE-01"]

REFUND_REASONS = ["damaged", "late_delivery", "wrong_item", "changed_mind"]


def _money(value: float) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


@dataclass
class DemoDataset:
    """Rows per table, as dicts ready for a bulk insert"""
    workspace_id: uuid.UUID
    start: date
    end: date
    products: List[Dict[str, Any]] = field(default_factory=list)
    locations: List[Dict[str, Any]] = field(default_factory=list)
    orders: List[Dict[str, Any]] = field(default_factory=list)
    order_items: List[Dict[str, Any]] = field(default_factory=list)
    fees: List[Dict[str, Any]] = field(default_factory=list)
    refunds: List[Dict[str, Any]] = field(default_factory=list)
    inventory: List[Dict[str, Any]] = field(default_factory=list)

    TABLES = ("products", "locations", "orders", "order_items", "fees", "refunds", "inventory")

    def counts(self) -> Dict[str, int]:
        return {name: len(getattr(self, name)) for name in self.TABLES}

    def to_frames(self) -> Dict[str, pl.DataFrame]:
        """Tables as polars frames, ids and money as strings."""
        def plain(value: Any) -> Any:
            if isinstance(value, (uuid.UUID, Decimal)):
                return str(value)
            return value

        return {
            name: pl.DataFrame([{k: plain(v) for k, v in row.items()} for row in getattr(self, name)])
            for name in self.TABLES
        }

    def save_csv(self, output_dir: Path) -> None:
        output_dir.mkdir(parents=True, exist_ok=True)
        for name, frame in self.to_frames().items():
            if frame.width == 0:
                logger.info("Skipped empty demo table", table=name)
                continue
            frame.write_csv(output_dir / f"{name}.csv")
            logger.info("Saved demo table", table=name, rows=frame.height, path=str(output_dir / f"{name}.csv"))


class DemoWorkspaceGenerator:
    """
    Build one demo workspace over a range of days.

    Example:
        generator = DemoWorkspaceGenerator(seed=42)
        dataset = generator.generate(end=date(2025, 1, 31), days=30)
    """

    def __init__(
        self,
        seed: int = 42,
        workspace_id: Optional[uuid.UUID] = None,
        n_products: int = 24,
        orders_per_day: tuple = (8, 20),
    ):
        self.rng = random.Random(seed)
        self.fake = Faker()
        self.fake.seed_instance(seed)
        self.workspace_id = workspace_id or self._uuid()
        self.n_products = n_products
        self.orders_per_day = orders_per_day

    def _uuid(self) -> uuid.UUID:
        return uuid.UUID(int=self.rng.getrandbits(128), version=4)

    def _products(self) -> List[Dict[str, Any]]:
        products = []
        for n in range(1, self.n_products + 1):
            category = self.rng.choice(CATEGORIES)
            products.append({
                "id": self._uuid(),
                "workspace_id": self.workspace_id,
                "sku": f"SKU-{n:04d}",
                "name": f"{self.fake.color_name()} {self.fake.word().title()} {category}",
                "price": _money(self.rng.uniform(8, 90)),
            })
        return products

    def _locations(self) -> List[Dict[str, Any]]:
        return [
            {
                "id": self._uuid(),
                "workspace_id": self.workspace_id,
                "code": code,
                "name": f"{self.fake.city()} {'Store' if code.startswith('STORE') else 'Warehouse'}",
            }
            for code in LOCATION_CODES
        ]

    def _order_day(self, dataset: DemoDataset, day: date, products: List[Dict[str, Any]]) -> None:
        channels = [c for c, _ in CHANNELS]
        weights = [w for _, w in CHANNELS]
        midnight = datetime.combine(day, time.min)

        for _ in range(self.rng.randint(*self.orders_per_day)):
            order_id = self._uuid()
            ordered_at = midnight + timedelta(seconds=self.rng.randint(0, 86399))
            subtotal = Decimal("0")

            for line in range(self.rng.choice([1, 1, 1, 2, 2, 3])):
                product = self.rng.choice(products)
                quantity = self.rng.choice([1, 1, 1, 2, 2, 3, 4])
                location = None if self.rng.random() < 0.05 else self.rng.choice(dataset.locations)
                line_total = product["price"] * quantity
                subtotal += line_total
                dataset.order_items.append({
                    "id": self._uuid(),
                    "order_id": order_id,
                    "product_id": product["id"],
                    "location_id": location["id"] if location else None,
                    "line_key": f"{order_id.hex[:8]}-{line + 1}",
                    "quantity": quantity,
                    "unit_price": product["price"],
                    "total": line_total,
                })

            tax = _money(float(subtotal) * self.rng.uniform(0.05, 0.09))
            shipping = Decimal("0") if subtotal > 75 else self.rng.choice([Decimal("4.99"), Decimal("7.99")])
            total = subtotal + tax + shipping
            dataset.orders.append({
                "id": order_id,
                "workspace_id": self.workspace_id,
                "channel": self.rng.choices(channels, weights=weights)[0],
                "status": "paid",
                "currency": "USD",
                "ordered_at": ordered_at,
                "created_at": ordered_at + timedelta(seconds=self.rng.randint(1, 120)),
                "total": total,
                "subtotal": subtotal,
                "tax": tax,
                "shipping": shipping,
            })

            # card processing fee on every order
            dataset.fees.append({
                "id": self._uuid(),
                "workspace_id": self.workspace_id,
                "order_id": order_id,
                "fee_type": "payment_processing",
                "amount": _money(float(total) * 0.029 + 0.30),
                "currency": "USD",
                "created_at": ordered_at + timedelta(minutes=5),
            })

            if self.rng.random() < 0.04:
                dataset.refunds.append({
                    "id": self._uuid(),
                    "workspace_id": self.workspace_id,
                    "order_id": order_id,
                    "reason": self.rng.choice(REFUND_REASONS),
                    "amount": _money(float(subtotal) * self.rng.choice([0.25, 0.5, 1.0])),
                    "currency": "USD",
                    "created_at": ordered_at + timedelta(hours=self.rng.randint(1, 20)),
                })

        if self.rng.random() < 0.15:
            dataset.fees.append({
                "id": self._uuid(),
                "workspace_id": self.workspace_id,
                "order_id": None,
                "fee_type": "marketplace_adjustment",
                "amount": _money(self.rng.uniform(1, 15)),
                "currency": "USD",
                "created_at": midnight + timedelta(hours=23),
            })

    def _inventory(self, dataset: DemoDataset, products: List[Dict[str, Any]], as_of: datetime) -> None:
        for product in products:
            for location in dataset.locations:
                roll = self.rng.random()
                if roll < 0.06:
                    on_hand = 0
                elif roll < 0.16:
                    on_hand = self.rng.randint(1, 9)
                else:
                    on_hand = self.rng.randint(10, 150)
                dataset.inventory.append({
                    "id": self._uuid(),
                    "workspace_id": self.workspace_id,
                    "location_id": location["id"],
                    "product_id": product["id"],
                    "on_hand": on_hand,
                    "updated_at": as_of,
                })

    def generate(self, end: date, days: int = 30) -> DemoDataset:
        """Generate ``days`` days of activity ending on ``end`` (inclusive)."""
        start = end - timedelta(days=days - 1)
        dataset = DemoDataset(workspace_id=self.workspace_id, start=start, end=end)

        products = self._products()
        dataset.locations = self._locations()
        for offset in range(days):
            self._order_day(dataset, start + timedelta(days=offset), products)
        self._inventory(dataset, products, datetime.combine(end, time(23, 59)))

        dataset.products = [{k: v for k, v in p.items() if k != "price"} for p in products]
        logger.info("Demo workspace generated", workspace_id=str(self.workspace_id), **dataset.counts())
        return dataset
