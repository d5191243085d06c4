# backend/rentflow/services/documents.py
from __future__ import annotations

import logging
from typing import Optional, Protocol

import httpx

from ..config import settings
from ..domain.errors import DocumentRenderError
from ..middleware.request_id import outbound_headers
from ..models import Contract

log = logging.getLogger("rentflow.documents")


class DocumentRenderer(Protocol):
    def render_contract_pdf(self, contract: Contract) -> str: ...


def contract_document_payload(contract: Contract) -> dict:
    return {
        "contract_id": contract.id,
        "language": contract.language,
        "property_id": contract.property_id,
        "tenant_id": contract.tenant_id,
        "landlord_id": contract.landlord_id,
        "start_date": contract.start_date.isoformat() if contract.start_date else None,
        "end_date": contract.end_date.isoformat() if contract.end_date else None,
        "monthly_rent": contract.monthly_rent,
        "security_deposit": contract.security_deposit,
        "currency": contract.currency,
        "terms": contract.terms,
        "special_conditions": contract.special_conditions,
        "tenant_signed_at": contract.tenant_signed_at.isoformat() if contract.tenant_signed_at else None,
        "landlord_signed_at": contract.landlord_signed_at.isoformat() if contract.landlord_signed_at else None,
    }


class HttpDocumentRenderer:
    """POSTs the contract to the rendering service; expects {"url": ...} back."""

    def __init__(self, *, base_url: Optional[str] = None, transport: Optional[httpx.BaseTransport] = None) -> None:
        self.base = (base_url or settings.document_renderer_url or "").rstrip("/")
        self.transport = transport

    def enabled(self) -> bool:
        return bool(self.base)

    def render_contract_pdf(self, contract: Contract) -> str:
        try:
            with httpx.Client(timeout=settings.document_renderer_timeout_seconds, transport=self.transport) as client:
                r = client.post(
                    f"{self.base}/contracts/render", json=contract_document_payload(contract), headers=outbound_headers()
                )
                r.raise_for_status()
                url = (r.json() or {}).get("url")
        except httpx.HTTPStatusError as e:
            log.warning("document_render_failed", extra={"contract_id": contract.id})
            raise DocumentRenderError(
                f"Document renderer returned {e.response.status_code}",
                details={"status_code": e.response.status_code},
            ) from e
        except httpx.HTTPError as e:
            log.warning("document_renderer_unreachable", extra={"contract_id": contract.id})
            raise DocumentRenderError("Document renderer is unreachable", details={"error": str(e)}) from e
        except ValueError as e:
            raise DocumentRenderError("Document renderer returned invalid JSON") from e
        if not url:
            raise DocumentRenderError("Document renderer returned no url", details={"contract_id": contract.id})
        return str(url)


def default_renderer() -> Optional[DocumentRenderer]:
    r = HttpDocumentRenderer()
    return r if r.enabled() else None
