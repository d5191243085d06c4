# backend/rentflow/workers/celery_app.py
from __future__ import annotations

from celery import Celery

from ..config import settings

celery_app = Celery(
    "rentflow",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
    include=["rentflow.workers.tasks"],
)

celery_app.conf.update(
    task_acks_late=True,
    worker_prefetch_multiplier=1,
    task_reject_on_worker_lost=True,
    task_track_started=True,
    task_serializer="json",
    accept_content=["json"],
    timezone="UTC",
)

celery_app.conf.task_routes = {
    "rentflow.workers.tasks.deliver_notification": {"queue": "notifications"},
    "rentflow.workers.tasks.run_lifecycle_sweep": {"queue": "lifecycle"},
}

# celery -A rentflow.workers.celery_app beat
celery_app.conf.beat_schedule = {
    "lifecycle-sweep": {
        "task": "rentflow.workers.tasks.run_lifecycle_sweep",
        "schedule": float(settings.sweep_interval_seconds),
    },
}
