# backend/rentflow/middleware/structured_logging.py
from __future__ import annotations

import json
import logging
import time
from typing import Callable, Optional

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from ..config import settings

log = logging.getLogger("rentflow.request")


def _json_log(payload: dict) -> None:
    # One JSON line per request.
    try:
        log.info(json.dumps(payload, default=str))
    except Exception:
        log.info(str(payload))


class StructuredLoggingMiddleware(BaseHTTPMiddleware):
    """
    Emits one structured log line per request with:
      request_id, actor id/role hint, method, path, status_code, latency_ms

    Must be added before RequestIDMiddleware so it runs inside it and sees
    request.state.request_id.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        t0 = time.time()

        # Header hints only; the authenticated actor is resolved inside handlers.
        user_id = request.headers.get(settings.dev_header_user_id)
        user_role = request.headers.get(settings.dev_header_user_role)

        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        finally:
            latency_ms = int((time.time() - t0) * 1000)
            request_id: Optional[str] = getattr(request.state, "request_id", None)

            _json_log(
                {
                    "event": "http_request",
                    "request_id": request_id,
                    "method": request.method,
                    "path": request.url.path,
                    "query": str(request.url.query) if request.url.query else "",
                    "status_code": status_code,
                    "latency_ms": latency_ms,
                    "user_id": user_id,
                    "user_role": user_role,
                }
            )
