"""
Risk Queue Worker — periodic per-facility risk queue snapshot.

Read-only: computes the queue from current item state and logs the
per-severity summary for dashboards and alerting to pick up.
"""

import asyncio
import uuid
from collections import Counter

import structlog

from workers.celery_app import celery_app

logger = structlog.get_logger()


async def summarize_risk_queue(db, facility_id: uuid.UUID) -> dict:
    from alerts.engine import compute_risk_queue
    from inventory.repository import InventoryRepository

    queue = await compute_risk_queue(facility_id, InventoryRepository(db))
    by_rule = Counter(r.rule for r in queue)
    by_severity = Counter(r.severity for r in queue)
    return {
        "total": len(queue),
        "by_severity": {s: by_severity.get(s, 0) for s in ("RED", "ORANGE", "YELLOW")},
        "by_rule": dict(sorted(by_rule.items())),
    }


@celery_app.task(
    name="workers.risk_queue.snapshot_risk_queue",
    bind=True,
    max_retries=1,
    default_retry_delay=30,
)
def snapshot_risk_queue(self, facility_id: str):
    """Compute one facility's risk queue and log the summary."""
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

    logger.info("risk_queue.snapshot_started", facility_id=facility_id)

    async def _snapshot():
        from core.config import get_settings

        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession)
            async with async_session() as db:
                return await summarize_risk_queue(db, uuid.UUID(facility_id))
        finally:
            await engine.dispose()

    try:
        summary = asyncio.run(_snapshot())
    except Exception as exc:
        logger.error("risk_queue.snapshot_failed", facility_id=facility_id, error=str(exc))
        raise

    logger.info(
        "risk_queue.snapshot_complete",
        facility_id=facility_id,
        total=summary["total"],
        by_severity=summary["by_severity"],
        by_rule=summary["by_rule"],
    )
    return {"status": "success", "facility_id": facility_id, **summary}
