# backend/rentflow/domain/errors.py
from __future__ import annotations

from typing import Any, Optional


class LifecycleError(Exception):
    """
    Base for every recoverable-by-caller rejection in the lifecycle core.

    Each subclass carries a stable machine code (for the UI to branch on) and
    the HTTP status the API layer maps it to. The message is the human reason.
    """

    code = "lifecycle_error"
    http_status = 400
    retryable = False

    def __init__(self, message: str, *, details: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = dict(details or {})

    def as_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "error": self.code,
            "detail": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            out["context"] = self.details
        return out


class InvalidTransition(LifecycleError):
    code = "invalid_transition"
    http_status = 409


class Forbidden(LifecycleError):
    code = "forbidden"
    http_status = 403


class AlreadySigned(LifecycleError):
    code = "already_signed"
    http_status = 409


class ChecklistFrozen(LifecycleError):
    code = "checklist_frozen"
    http_status = 409


class OutOfOrder(LifecycleError):
    code = "out_of_order"
    http_status = 409


class PaymentMismatch(LifecycleError):
    code = "payment_mismatch"
    http_status = 422


class DuplicatePending(LifecycleError):
    code = "duplicate_pending"
    http_status = 409


class ConcurrentModification(LifecycleError):
    """Optimistic-lock race lost. Reload, re-validate and resubmit."""

    code = "concurrent_modification"
    http_status = 409
    retryable = True


class NotFound(LifecycleError):
    code = "not_found"
    http_status = 404


class ValidationFailed(LifecycleError):
    code = "validation_failed"
    http_status = 422


class PaymentProviderError(LifecycleError):
    code = "payment_provider_error"
    http_status = 502


class DocumentRenderError(LifecycleError):
    code = "document_render_failed"
    http_status = 502
    retryable = True
