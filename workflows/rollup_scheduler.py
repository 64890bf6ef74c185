"""
Nightly Rollup Scheduler

Uses APScheduler to re-materialize the most recent days for every
workspace with orders. Re-running a day replaces its rollups, so late
orders, fees and refunds are picked up on the next run.

Usage:
    python -m workflows.rollup_scheduler           # run forever on the cron schedule
    python -m workflows.rollup_scheduler --once    # materialize once and exit
"""

import argparse
import asyncio
import uuid
from datetime import date, timedelta
from typing import Dict, List, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from opsboard.analytics.ranges import DateRange
from opsboard.analytics.rollups import RollupMaterializer
from opsboard.config import SchedulerSettings, get_settings
from opsboard.config.logging import configure_logging
from opsboard.database.connection import close_database, get_session_factory, init_database
from opsboard.database.models import Order, utcnow

logger = structlog.get_logger(__name__)


def lookback_range(today: date, lookback_days: int) -> DateRange:
    """The ``lookback_days`` days ending yesterday."""
    end = today - timedelta(days=1)
    return DateRange(end - timedelta(days=lookback_days - 1), end)


async def active_workspaces(session_factory: async_sessionmaker[AsyncSession]) -> List[uuid.UUID]:
    async with session_factory() as session:
        rows = await session.execute(select(Order.workspace_id).distinct().order_by(Order.workspace_id))
        return list(rows.scalars().all())


async def materialize_recent(
    session_factory: async_sessionmaker[AsyncSession],
    window: DateRange,
    workspace_ids: Optional[List[uuid.UUID]] = None,
) -> Dict[str, int]:
    """
    Materialize ``window`` for each workspace. Workspaces run concurrently;
    one workspace failing does not stop the others.

    Returns:
        Days materialized per workspace id (failed workspaces are omitted)
    """
    workspace_ids = workspace_ids if workspace_ids is not None else await active_workspaces(session_factory)
    materializer = RollupMaterializer(session_factory)

    results = await asyncio.gather(
        *(materializer.materialize_range(ws, window) for ws in workspace_ids),
        return_exceptions=True,
    )

    summary = {}
    for workspace_id, result in zip(workspace_ids, results):
        if isinstance(result, Exception):
            logger.error(
                "Rollup run failed",
                workspace_id=str(workspace_id),
                range=str(window),
                error=str(result),
                error_type=type(result).__name__,
            )
            continue
        summary[str(workspace_id)] = len(result)

    logger.info(
        "Rollup run complete",
        range=str(window),
        workspaces=len(workspace_ids),
        succeeded=len(summary),
    )
    return summary


async def nightly_rollups(lookback_days: int) -> None:
    """Scheduled job body; rollup days are UTC days"""
    window = lookback_range(utcnow().date(), lookback_days)
    await materialize_recent(get_session_factory(), window)


def build_scheduler(settings: SchedulerSettings) -> AsyncIOScheduler:
    scheduler = AsyncIOScheduler(timezone=settings.timezone)
    scheduler.add_job(
        nightly_rollups,
        trigger=CronTrigger(hour=settings.rollup_hour, minute=settings.rollup_minute, timezone=settings.timezone),
        kwargs={"lookback_days": settings.lookback_days},
        id="nightly_rollups",
        name="Nightly DailyMetric/SkuDailyMetric rollups",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


async def main(args: argparse.Namespace) -> None:
    settings = get_settings()
    configure_logging()
    await init_database()

    try:
        if args.once:
            await nightly_rollups(args.lookback_days or settings.scheduler.lookback_days)
            return

        scheduler = build_scheduler(settings.scheduler)
        scheduler.start()
        logger.info(
            "Rollup scheduler started",
            hour=settings.scheduler.rollup_hour,
            minute=settings.scheduler.rollup_minute,
            timezone=settings.scheduler.timezone,
        )
        try:
            await asyncio.Event().wait()
        finally:
            scheduler.shutdown(wait=False)
    finally:
        await close_database()


def cli() -> None:
    parser = argparse.ArgumentParser(description="Nightly rollup materialization")
    parser.add_argument("--once", action="store_true", help="Run one materialization and exit")
    parser.add_argument("--lookback-days", type=int, help="Override SCHEDULER_LOOKBACK_DAYS")
    asyncio.run(main(parser.parse_args()))


if __name__ == "__main__":
    cli()
