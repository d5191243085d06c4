# backend/rentflow/middleware/request_id.py
from __future__ import annotations

import re
import uuid
from contextvars import ContextVar
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-ID"

# Ids are echoed into logs, error bodies and outbound calls.
_SAFE_ID = re.compile(r"^[A-Za-z0-9._:-]{1,128}$")

request_id_ctx: ContextVar[str | None] = ContextVar("request_id", default=None)


def get_request_id() -> str | None:
    return request_id_ctx.get()


def clean_request_id(raw: Optional[str]) -> str:
    """Keep a caller-supplied id when it is safe to echo, otherwise mint one."""
    rid = (raw or "").strip()
    if rid and _SAFE_ID.match(rid):
        return rid
    return str(uuid.uuid4())


def outbound_headers(request_id: Optional[str] = None) -> dict[str, str]:
    """
    Correlation header for calls made on behalf of a lifecycle action
    (document renderer, notification webhook). Workers pass the id they were
    enqueued with since the context var does not cross the broker.
    """
    rid = request_id or get_request_id()
    return {REQUEST_ID_HEADER: rid} if rid else {}


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Sets a per-request id and returns it in response headers.

    Accepts an incoming X-Request-ID (or X-Request-Id) when it is a short
    token, otherwise generates a UUID4. The id lands in a ContextVar and on
    request.state, where logging, error bodies and notifications pick it up.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        rid = clean_request_id(request.headers.get("X-Request-ID") or request.headers.get("X-Request-Id"))

        request.state.request_id = rid
        token = request_id_ctx.set(rid)
        try:
            resp = await call_next(request)
            resp.headers[REQUEST_ID_HEADER] = rid
            return resp
        finally:
            request_id_ctx.reset(token)
