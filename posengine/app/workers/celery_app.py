"""Celery application instance.

Used on terminals without a long-running API process, so queued sales still
reach the remote store. Start the worker::

    celery -A posengine.app.workers.celery_app worker --loglevel=info
    celery -A posengine.app.workers.celery_app beat --loglevel=info
"""

from __future__ import annotations

from celery import Celery

from posengine.app.core.config import settings

celery = Celery(
    "posengine",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["posengine.app.workers.tasks.sync"],
)

celery.conf.update(
    task_serializer="json",
    result_serializer="json",
    accept_content=["json"],
    enable_utc=True,
    task_track_started=True,
    task_acks_late=True,
    worker_prefetch_multiplier=1,
)

# Beat schedule: periodic tasks
celery.conf.beat_schedule = {
    "drain-pending-transactions": {
        "task": "posengine.app.workers.tasks.sync.drain_pending_transactions",
        "schedule": settings.SYNC_INTERVAL_SECONDS,
    },
}
