# backend/rentflow/workers/tasks.py
from __future__ import annotations

import logging
import random
from typing import Any

import httpx

from ..config import settings
from ..db import SessionLocal
from ..middleware.request_id import outbound_headers
from ..services.lifecycle_orchestrator import LifecycleOrchestrator
from ..services.lifecycle_sweep import run_sweep
from ..services.notifications import CeleryNotifier
from .celery_app import celery_app

log = logging.getLogger("rentflow.workers")


def _backoff_seconds(retries: int, *, base: int = 5, cap: int = 120) -> int:
    """Exponential backoff (base * 2^retries, capped) with +/- 20% jitter."""
    delay = min(cap, base * (2 ** max(0, int(retries))))
    jitter = int(delay * 0.2)
    if jitter > 0:
        delay = max(1, delay + random.randint(-jitter, jitter))
    return delay


@celery_app.task(
    bind=True,
    max_retries=settings.notification_max_retries,
    name="rentflow.workers.tasks.deliver_notification",
)
def deliver_notification(
    self, event_type: str, recipients: list[int], payload: dict[str, Any], request_id: str | None = None
) -> dict:
    """
    Delivers one lifecycle notification.

    With notification_webhook_url set the message is POSTed there (one call
    per event, all recipients in the body); otherwise it is only logged.
    Transport errors retry with backoff; a final failure is logged and dropped.
    """
    body = {"event_type": event_type, "recipients": list(recipients), "payload": payload}
    url = settings.notification_webhook_url
    if not url:
        log.info("notification_delivered", extra={"action": event_type, "contract_id": payload.get("contract_id")})
        return {"ok": True, "delivered": False, "recipients": len(recipients)}

    try:
        headers = outbound_headers(request_id or self.request.id)
        r = httpx.post(url, json=body, headers=headers, timeout=settings.notification_timeout_seconds)
        r.raise_for_status()
    except httpx.HTTPError as e:
        retries = int(getattr(self.request, "retries", 0) or 0)
        if retries >= int(self.max_retries or 0):
            log.error(
                "notification_dropped",
                extra={"action": event_type, "contract_id": payload.get("contract_id")},
            )
            return {"ok": False, "error": str(e), "retries": retries}
        raise self.retry(exc=e, countdown=_backoff_seconds(retries))

    log.info("notification_delivered", extra={"action": event_type, "contract_id": payload.get("contract_id")})
    return {"ok": True, "delivered": True, "recipients": len(recipients)}


@celery_app.task(name="rentflow.workers.tasks.run_lifecycle_sweep")
def run_lifecycle_sweep() -> dict:
    """Periodic sweep, scheduled by celery beat (see celery_app.beat_schedule)."""
    db = SessionLocal()
    try:
        orch = LifecycleOrchestrator(db, notifier=CeleryNotifier())
        return {"ok": True, "sweep": run_sweep(orch).as_dict()}
    finally:
        db.close()
