"""
Demo Seeding

Inserts a generated demo workspace and materializes its rollups, so the
API has both rollup-backed days and raw tables to read from.

Usage:
    python -m opsboard.ingestion.seed_db --days 30 --create-schema
"""

import argparse
import asyncio
import uuid
from datetime import date, timedelta
from typing import Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsboard.analytics.ranges import DateRange
from opsboard.analytics.rollups import RollupMaterializer
from opsboard.config.logging import configure_logging
from opsboard.data.generators import DemoDataset, DemoWorkspaceGenerator
from opsboard.database.bulk import insert_ignore
from opsboard.database.connection import close_database, get_engine, get_session_factory, init_database
from opsboard.database.models import Base, Fee, Inventory, Location, Order, OrderItem, Product, Refund

logger = structlog.get_logger(__name__)

# Parents before children
LOAD_ORDER = [
    (Product, "products"),
    (Location, "locations"),
    (Order, "orders"),
    (OrderItem, "order_items"),
    (Fee, "fees"),
    (Refund, "refunds"),
    (Inventory, "inventory"),
]


async def load_dataset(session_factory: async_sessionmaker[AsyncSession], dataset: DemoDataset) -> Dict[str, int]:
    """Insert every table of the dataset in one transaction; existing rows are left alone."""
    counts = {}
    async with session_factory() as session:
        async with session.begin():
            for model, name in LOAD_ORDER:
                counts[name] = await insert_ignore(session, model, getattr(dataset, name))
    return counts


async def seed_demo_workspace(
    session_factory: async_sessionmaker[AsyncSession],
    end: Optional[date] = None,
    days: int = 30,
    seed: int = 42,
    workspace_id: Optional[uuid.UUID] = None,
) -> DemoDataset:
    """Generate, load and materialize a demo workspace. Returns the dataset."""
    end = end or date.today() - timedelta(days=1)
    dataset = DemoWorkspaceGenerator(seed=seed, workspace_id=workspace_id).generate(end=end, days=days)

    counts = await load_dataset(session_factory, dataset)
    logger.info("Demo data loaded", workspace_id=str(dataset.workspace_id), **counts)

    results = await RollupMaterializer(session_factory).materialize_range(
        dataset.workspace_id, DateRange(dataset.start, dataset.end)
    )
    logger.info("Demo rollups materialized", workspace_id=str(dataset.workspace_id), days=len(results))
    return dataset


async def main(args: argparse.Namespace) -> None:
    configure_logging()
    await init_database(args.database_url)
    try:
        if args.create_schema:
            async with get_engine().begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            logger.info("Schema created")

        end = date.fromisoformat(args.end) if args.end else None
        dataset = await seed_demo_workspace(get_session_factory(), end=end, days=args.days, seed=args.seed)
        logger.info(
            "Database seeding completed",
            workspace_id=str(dataset.workspace_id),
            start=dataset.start.isoformat(),
            end=dataset.end.isoformat(),
        )
    finally:
        await close_database()


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed a demo commerce workspace")
    parser.add_argument("--days", type=int, default=30, help="Days of order history (default: 30)")
    parser.add_argument("--end", help="Last seeded day, YYYY-MM-DD (default: yesterday)")
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument("--database-url", help="Async SQLAlchemy URL (default: configured database)")
    parser.add_argument("--create-schema", action="store_true", help="Create tables before seeding")
    return parser.parse_args(argv)


def cli() -> None:
    asyncio.run(main(parse_args()))


if __name__ == "__main__":
    cli()
