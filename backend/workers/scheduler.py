"""Facility-aware scheduler helpers for Celery beat fan-out."""

from __future__ import annotations

import asyncio
import uuid
from datetime import datetime, timezone

import structlog
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from workers.celery_app import celery_app

logger = structlog.get_logger()

DEFAULT_ACTIVE_STATUSES = ("active", "demo")


@celery_app.task(
    name="workers.scheduler.dispatch_active_facilities",
    bind=True,
    max_retries=2,
    default_retry_delay=60,
    acks_late=True,
)
def dispatch_active_facilities(
    self,
    task_name: str,
    task_kwargs: dict | None = None,
    statuses: list[str] | None = None,
    facility_ids: list[str] | None = None,
):
    """
    Dispatch a facility-scoped task across all active facilities.

    A facility whose send fails is skipped and reported in
    `failed_facility_ids`; retrying the whole run would re-send to the
    facilities that already received the task. Pass `facility_ids` to
    re-run only those.
    """
    from core.config import get_settings
    from db.models import Facility

    run_id = self.request.id or "manual"
    payload = dict(task_kwargs or {})
    selected_statuses = tuple(statuses or DEFAULT_ACTIVE_STATUSES)

    if not task_name.startswith("workers."):
        return {"status": "failed", "reason": "invalid_task_name", "task_name": task_name}
    if task_name not in celery_app.tasks:
        return {"status": "failed", "reason": "unknown_task", "task_name": task_name}

    async def _load_facilities() -> list[str]:
        settings = get_settings()
        engine = create_async_engine(settings.database_url)
        try:
            async_session = async_sessionmaker(engine, class_=AsyncSession)
            async with async_session() as db:
                query = (
                    select(Facility.facility_id)
                    .where(Facility.status.in_(selected_statuses))
                    .order_by(Facility.created_at)
                )
                if facility_ids:
                    query = query.where(Facility.facility_id.in_([uuid.UUID(f) for f in facility_ids]))
                result = await db.execute(query)
                return [str(row.facility_id) for row in result.all()]
        finally:
            await engine.dispose()

    try:
        facilities = asyncio.run(_load_facilities())
    except Exception as exc:  # noqa: BLE001
        logger.error("scheduler.dispatch_failed", task_name=task_name, error=str(exc), exc_info=True)
        raise self.retry(exc=exc)

    dispatched = 0
    failed: list[str] = []
    for facility_id in facilities:
        kwargs = dict(payload)
        kwargs["facility_id"] = facility_id
        try:
            celery_app.send_task(task_name, kwargs=kwargs)
        except Exception as exc:  # noqa: BLE001
            logger.warning(
                "scheduler.dispatch_skipped",
                task_name=task_name,
                facility_id=facility_id,
                error=str(exc),
            )
            failed.append(facility_id)
            continue
        dispatched += 1

    summary = {
        "status": "partial" if failed else "success",
        "task_name": task_name,
        "facility_count": len(facilities),
        "dispatched_count": dispatched,
        "failed_facility_ids": failed,
        "statuses": list(selected_statuses),
        "triggered_at": datetime.now(timezone.utc).isoformat(),
        "run_id": run_id,
    }
    if failed:
        logger.warning("scheduler.dispatch_partial", **summary)
    else:
        logger.info("scheduler.dispatch_complete", **summary)
    return summary
