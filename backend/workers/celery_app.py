"""
Celery Application Configuration
"""

from celery import Celery
from celery.schedules import crontab

from core.config import get_settings

settings = get_settings()

celery_app = Celery(
    "asc_inventory",
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=["workers.scheduler", "workers.risk_queue"],
)

celery_app.conf.update(
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    timezone="UTC",
    enable_utc=True,
    task_track_started=True,
    worker_prefetch_multiplier=1,
    task_routes={
        "workers.risk_queue.*": {"queue": "risk"},
        "workers.scheduler.*": {"queue": "scheduler"},
    },
    # ── Celery Beat Schedule ─────────────────────────────────────────
    # Facility-scoped jobs fan out via workers.scheduler.dispatch_active_facilities.
    beat_schedule={
        "risk-queue-snapshot-hourly": {
            "task": "workers.scheduler.dispatch_active_facilities",
            "schedule": crontab(minute=settings.risk_queue_snapshot_cron_minute),
            "kwargs": {"task_name": "workers.risk_queue.snapshot_risk_queue"},
            "options": {"queue": "scheduler"},
        },
    },
)
