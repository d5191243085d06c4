# backend/rentflow/main.py
from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import settings
from .db import Base, engine
from .domain.errors import LifecycleError
from .logging_config import configure_logging
from .middleware.request_id import RequestIDMiddleware, get_request_id
from .middleware.structured_logging import StructuredLoggingMiddleware

from .routers.checklists import router as checklists_router
from .routers.contracts import router as contracts_router
from .routers.key_collections import router as key_collections_router
from .routers.modifications import router as modifications_router
from .routers.ops import router as ops_router
from .routers.payments import router as payments_router

from . import models  # noqa: F401

API_PREFIX = "/api"

log = logging.getLogger("rentflow")


def _cors_origins() -> list[str]:
    val = getattr(settings, "cors_allow_origins", ["*"])
    if isinstance(val, str):
        v = val.strip()
        return ["*"] if v == "*" else [x.strip() for x in v.split(",") if x.strip()]
    if isinstance(val, list) and val:
        return val
    return ["*"]


async def lifecycle_error_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    body = exc.as_dict()
    rid = get_request_id()
    if rid:
        body["request_id"] = rid
    if exc.http_status >= 500:
        log.error("lifecycle_error", extra={"action": exc.code})
    return JSONResponse(body, status_code=exc.http_status)


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(title="Rentflow Lifecycle API", version=settings.app_version)

    # Last added runs first: request id is bound before the access log line.
    app.add_middleware(StructuredLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=_cors_origins(),
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(LifecycleError, lifecycle_error_handler)

    app.include_router(ops_router, prefix=API_PREFIX)
    app.include_router(contracts_router, prefix=API_PREFIX)
    app.include_router(payments_router, prefix=API_PREFIX)
    app.include_router(key_collections_router, prefix=API_PREFIX)
    app.include_router(checklists_router, prefix=API_PREFIX)
    app.include_router(modifications_router, prefix=API_PREFIX)

    if settings.database_url.startswith("sqlite") and settings.app_env in ("local", "dev", "test"):
        # Local sqlite runs without migrations; real databases go through alembic.
        Base.metadata.create_all(bind=engine)

    return app


app = create_app()
