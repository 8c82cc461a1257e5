# =============================================================================
# FastAPI Application — Factory, Lifespan and Error Boundary
# =============================================================================
#
# LIFESPAN:
#   startup  → build RecordStore (ensure unique indexes)
#            → build BlobStoreClient (ensure container)
#            → keep both on app.state for the dependencies in app/api/deps.py
#   shutdown → close both clients
#
# ERROR BOUNDARY:
# Every failure leaves the API as a JSON body with at least a `message`:
#   AgentRecordsError        → its own status, {"message", "error"?}
#   RequestValidationError   → 400, "Missing required field: <name>" or
#                              "Invalid request body", with details
#   unknown route            → 404, {"message": "Route not found"}
#   anything else            → 500, {"message": "Internal Server Error"}
# No exception escapes to crash the worker process.
#
# Run locally with:
#   uvicorn app.main:app --reload
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from app.api import agents, health, users
from app.config import Settings, settings
from app.db.store import RecordStore
from app.errors import AgentRecordsError
from app.services.blob_store import BlobStoreClient

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # Suppress noisy third-party loggers
    for noisy in ("azure", "pymongo", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    app_settings: Settings = app.state.settings

    record_store = RecordStore.from_settings(app_settings)
    try:
        blob_store = BlobStoreClient.from_settings(app_settings)
        try:
            await record_store.ensure_indexes()
            await blob_store.ensure_container()

            app.state.record_store = record_store
            app.state.blob_store = blob_store
            logger.info(
                "%s %s started (db=%s, container=%s)",
                app_settings.app_name, app_settings.app_version,
                app_settings.mongo_db_name, app_settings.azure_container_name,
            )
            yield
        finally:
            await blob_store.close()
    finally:
        await record_store.close()
        logger.info("%s stopped", app_settings.app_name)


# ---------------------------------------------------------------------------
# Exception Handlers
# ---------------------------------------------------------------------------


def _error_body(message: str, error: object | None = None) -> dict:
    body: dict = {"message": message}
    if error is not None:
        body["error"] = error
    return body


async def handle_domain_error(request: Request, exc: AgentRecordsError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(
            "%s %s failed: %s (cause: %s)",
            request.method, request.url.path, exc.message, exc.cause,
        )
    cause = str(exc.cause) if exc.cause is not None else None
    return JSONResponse(status_code=exc.status_code, content=_error_body(exc.message, cause))


async def handle_request_validation(
    request: Request, exc: RequestValidationError,
) -> JSONResponse:
    errors = exc.errors()
    message = "Invalid request body"
    if errors:
        first = errors[0]
        field_name = first["loc"][-1] if first.get("loc") else None
        if first.get("type") in ("missing", "string_too_short") and field_name:
            message = f"Missing required field: {field_name}"
    details = [
        {"loc": list(e.get("loc", ())), "msg": e.get("msg"), "type": e.get("type")}
        for e in errors
    ]
    return JSONResponse(status_code=400, content=_error_body(message, details))


async def handle_http_error(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    message = "Route not found" if exc.status_code == 404 else str(exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content=_error_body(message),
        headers=getattr(exc, "headers", None),
    )


async def handle_unexpected(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content=_error_body("Internal Server Error", str(exc)),
    )


# ---------------------------------------------------------------------------
# Application Factory
# ---------------------------------------------------------------------------


def create_app(app_settings: Settings = settings) -> FastAPI:
    configure_logging(app_settings.log_level)

    app = FastAPI(
        title=app_settings.app_name,
        version=app_settings.app_version,
        debug=app_settings.debug,
        lifespan=lifespan,
    )
    app.state.settings = app_settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_allowed_origins,
        allow_methods=["GET", "POST", "PUT", "DELETE"],
        allow_headers=["*"],
        allow_credentials=True,
    )

    app.add_exception_handler(AgentRecordsError, handle_domain_error)
    app.add_exception_handler(RequestValidationError, handle_request_validation)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(Exception, handle_unexpected)

    app.include_router(health.router)
    app.include_router(agents.router)
    app.include_router(users.router)
    return app


app = create_app()
