# backend/rentflow/clients/stripe_client.py
from __future__ import annotations

import hashlib
import hmac
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Protocol

import httpx

from ..config import settings
from ..domain.errors import PaymentProviderError

log = logging.getLogger("rentflow.stripe")


@dataclass(frozen=True)
class ProviderIntent:
    id: str
    amount: int
    currency: str
    status: str
    client_secret: Optional[str] = None
    metadata: dict[str, str] = field(default_factory=dict)

    @property
    def succeeded(self) -> bool:
        return self.status == "succeeded"


class PaymentProvider(Protocol):
    def create_payment_intent(self, *, amount: int, currency: str, metadata: dict[str, Any]) -> ProviderIntent: ...

    def retrieve_payment_intent(self, intent_id: str) -> ProviderIntent: ...


def _intent_from_json(data: dict[str, Any]) -> ProviderIntent:
    return ProviderIntent(
        id=str(data.get("id") or ""),
        amount=int(data.get("amount") or 0),
        currency=str(data.get("currency") or "").lower(),
        status=str(data.get("status") or ""),
        client_secret=data.get("client_secret"),
        metadata={str(k): str(v) for k, v in (data.get("metadata") or {}).items()},
    )


class StripeClient:
    """
    Thin Stripe REST client (payment intents only).

    Stripe takes form-encoded bodies; nested keys use bracket syntax
    (metadata[contract_id]=...).
    """

    def __init__(
        self,
        *,
        secret_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        self.secret_key = secret_key if secret_key is not None else settings.stripe_secret_key
        self.base = (base_url or settings.stripe_base_url).rstrip("/")
        self.timeout = float(timeout if timeout is not None else settings.stripe_timeout_seconds)
        self.transport = transport

    def enabled(self) -> bool:
        return bool(self.secret_key)

    def _client(self) -> httpx.Client:
        if not self.secret_key:
            raise PaymentProviderError("Payments are not configured (stripe_secret_key not set)")
        return httpx.Client(
            base_url=self.base,
            timeout=self.timeout,
            headers={"Authorization": f"Bearer {self.secret_key}"},
            transport=self.transport,
        )

    def _request(self, method: str, path: str, *, data: Optional[dict[str, Any]] = None) -> dict[str, Any]:
        try:
            with self._client() as client:
                r = client.request(method, path, data=data)
                r.raise_for_status()
                return r.json()
        except httpx.HTTPStatusError as e:
            err = {}
            try:
                err = (e.response.json() or {}).get("error") or {}
            except ValueError:
                pass
            log.warning("stripe_request_failed", extra={"action": f"{method} {path}"})
            raise PaymentProviderError(
                err.get("message") or f"Payment provider returned {e.response.status_code}",
                details={"status_code": e.response.status_code, "type": err.get("type")},
            ) from e
        except httpx.HTTPError as e:
            log.warning("stripe_unreachable", extra={"action": f"{method} {path}"})
            raise PaymentProviderError("Payment provider is unreachable", details={"error": str(e)}) from e

    def create_payment_intent(self, *, amount: int, currency: str, metadata: dict[str, Any]) -> ProviderIntent:
        form: dict[str, Any] = {
            "amount": str(int(amount)),
            "currency": currency.lower(),
            "automatic_payment_methods[enabled]": "true",
        }
        for k, v in (metadata or {}).items():
            form[f"metadata[{k}]"] = str(v)

        intent = _intent_from_json(self._request("POST", "/payment_intents", data=form))
        log.info("stripe_intent_created", extra={"payment_intent_id": intent.id})
        return intent

    def retrieve_payment_intent(self, intent_id: str) -> ProviderIntent:
        return _intent_from_json(self._request("GET", f"/payment_intents/{intent_id}"))


# -----------------------------------------------------------------------------
# Webhook signatures
# -----------------------------------------------------------------------------
# Stripe-Signature: t=<unix ts>,v1=<hex hmac>[,v1=...]
# signed payload = "<t>.<raw body>", HMAC-SHA256 with the endpoint secret
# -----------------------------------------------------------------------------


class WebhookSignatureError(ValueError):
    pass


def _parse_signature_header(header: str) -> tuple[Optional[str], list[str]]:
    ts: Optional[str] = None
    sigs: list[str] = []
    for part in (header or "").split(","):
        k, _, v = part.strip().partition("=")
        if k == "t":
            ts = v
        elif k == "v1" and v:
            sigs.append(v)
    return ts, sigs


def compute_signature(secret: str, timestamp: str, payload: bytes) -> str:
    signed = timestamp.encode("utf-8") + b"." + payload
    return hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()


def verify_webhook_signature(
    payload: bytes,
    header: Optional[str],
    *,
    secret: Optional[str] = None,
    tolerance_seconds: Optional[int] = None,
    now: Optional[float] = None,
) -> None:
    secret = secret if secret is not None else settings.stripe_webhook_secret
    if not secret:
        raise WebhookSignatureError("Webhook secret is not configured")

    ts, sigs = _parse_signature_header(header or "")
    if not ts or not sigs:
        raise WebhookSignatureError("Missing or malformed Stripe-Signature header")

    try:
        ts_int = int(ts)
    except ValueError as e:
        raise WebhookSignatureError("Invalid signature timestamp") from e

    tolerance = int(tolerance_seconds if tolerance_seconds is not None else settings.stripe_webhook_tolerance_seconds)
    current = int(now if now is not None else time.time())
    if abs(current - ts_int) > tolerance:
        raise WebhookSignatureError("Signature timestamp outside the tolerance window")

    expected = compute_signature(secret, ts, payload)
    if not any(hmac.compare_digest(expected, s) for s in sigs):
        raise WebhookSignatureError("Signature does not match payload")
