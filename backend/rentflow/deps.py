# backend/rentflow/deps.py
from __future__ import annotations

from fastapi import Depends
from sqlalchemy.orm import Session

from .clients.stripe_client import PaymentProvider, StripeClient
from .db import get_db
from .services.documents import DocumentRenderer, default_renderer
from .services.lifecycle_orchestrator import LifecycleOrchestrator
from .services.notifications import CeleryNotifier, LoggingNotifier, Notifier
from .config import settings


def get_payment_provider() -> PaymentProvider:
    return StripeClient()


def get_notifier() -> Notifier:
    # Without a broker configured the API still works; events are only logged.
    if settings.celery_broker_url and (settings.app_env or "").lower() in ("prod", "production", "staging"):
        return CeleryNotifier()
    return LoggingNotifier()


def get_renderer() -> DocumentRenderer | None:
    return default_renderer()


def get_orchestrator(
    db: Session = Depends(get_db),
    provider: PaymentProvider = Depends(get_payment_provider),
    notifier: Notifier = Depends(get_notifier),
    renderer: DocumentRenderer | None = Depends(get_renderer),
) -> LifecycleOrchestrator:
    return LifecycleOrchestrator(db, payment_provider=provider, notifier=notifier, renderer=renderer)
