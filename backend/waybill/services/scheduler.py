"""Background task scheduler — runs the daily aggregate reconciliation.

Uses FastAPI's lifespan context to start/stop an asyncio background loop.
No external dependencies (no Celery, no APScheduler) — just a simple
asyncio.sleep loop that fires once per day at the configured hour.

Configuration (.env):
    RECONCILIATION_ENABLED=true
    RECONCILIATION_HOUR=2   (run at 02:00 UTC daily)
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI

from waybill.config import settings
from waybill.database import async_session
from waybill.services.aggregates import ReconciliationSummary, reconcile_aggregates
from waybill.utils.cache import close_redis

logger = logging.getLogger("waybill.scheduler")


async def run_daily_reconciliation() -> ReconciliationSummary | None:
    """Recompute the counters of every open manifest, all tenants."""
    logger.info("Starting aggregate reconciliation run")

    async with async_session() as db:
        try:
            summary = await reconcile_aggregates(db)
            await db.commit()
        except Exception:
            await db.rollback()
            logger.exception("Aggregate reconciliation failed")
            return None

    logger.info(
        "Aggregate reconciliation complete: %d manifests checked, %d corrected",
        summary.checked, summary.corrected,
    )
    return summary


def seconds_until_next_run(target_hour: int, now: datetime | None = None) -> float:
    """Seconds from ``now`` until the next target_hour:00 UTC."""
    now = now or datetime.now(timezone.utc)
    next_run = now.replace(hour=target_hour, minute=0, second=0, microsecond=0)
    if next_run <= now:
        next_run += timedelta(days=1)
    return (next_run - now).total_seconds()


async def _scheduler_loop() -> None:
    """Sleep loop that fires reconciliation once per day."""
    while True:
        wait_seconds = seconds_until_next_run(settings.reconciliation_hour)
        logger.info("Next reconciliation run in %.0f seconds", wait_seconds)

        await asyncio.sleep(wait_seconds)

        try:
            await run_daily_reconciliation()
        except Exception:
            logger.exception("Unhandled error in daily reconciliation")

        # Small buffer to avoid running twice in the same minute
        await asyncio.sleep(60)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """FastAPI lifespan: start the scheduler on startup, cancel on shutdown."""
    task = None
    if settings.reconciliation_enabled:
        task = asyncio.create_task(_scheduler_loop())
        logger.info("Reconciliation scheduler started")
    try:
        yield
    finally:
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            logger.info("Reconciliation scheduler stopped")
        await close_redis()
