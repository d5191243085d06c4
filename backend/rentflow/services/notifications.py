# backend/rentflow/services/notifications.py
from __future__ import annotations

import logging
from typing import Any, Protocol

from ..middleware.request_id import get_request_id

log = logging.getLogger("rentflow.notifications")


class Notifier(Protocol):
    def notify(self, event_type: str, recipients: list[int], payload: dict[str, Any]) -> None: ...


class LoggingNotifier:
    def notify(self, event_type: str, recipients: list[int], payload: dict[str, Any]) -> None:
        log.info(
            "notification",
            extra={"action": event_type, "contract_id": payload.get("contract_id")},
        )


class CeleryNotifier:
    """Enqueues delivery on the notifications queue; the worker does the sending."""

    def notify(self, event_type: str, recipients: list[int], payload: dict[str, Any]) -> None:
        from ..workers.tasks import deliver_notification

        deliver_notification.delay(
            event_type=event_type, recipients=list(recipients), payload=payload, request_id=get_request_id()
        )


class RecordingNotifier:
    """Keeps notifications in memory (CLI dry-runs, tests)."""

    def __init__(self) -> None:
        self.sent: list[tuple[str, list[int], dict[str, Any]]] = []

    def notify(self, event_type: str, recipients: list[int], payload: dict[str, Any]) -> None:
        self.sent.append((event_type, list(recipients), dict(payload)))

    def types(self) -> list[str]:
        return [t for t, _, _ in self.sent]


def safe_notify(notifier: Notifier, event_type: str, recipients: list[int], payload: dict[str, Any]) -> None:
    """Fire-and-forget: a failing sink never fails the transition that triggered it."""
    try:
        notifier.notify(event_type, recipients, payload)
    except Exception:
        log.exception("notification_failed", extra={"action": event_type, "contract_id": payload.get("contract_id")})
