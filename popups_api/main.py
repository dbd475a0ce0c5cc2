"""
popups_api/main.py – FastAPI application factory for the popups lightweight API.

Features
────────
• Structured logging via structlog
• Request-ID middleware (X-Request-ID header)
• Referer check on every /v1/ request, before routing or body parsing
• Basic rate limiting on the data endpoints (slowapi, per client IP)
• Every data response is a single JSON object with status 200 or 400
"""
from __future__ import annotations

import logging
import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncIterator

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded
from starlette.middleware.base import BaseHTTPMiddleware

from popups_api.config import settings
from popups_api.context import INVALID_REFERER
from popups_api.exceptions import StoreError
from popups_api.outcome import Failure, to_response
from popups_api.routes._common import is_trusted, limiter
from popups_api.routes.campaigns import router as campaigns_router
from popups_api.routes.clients import router as clients_router
from popups_api.routes.health import router as health_router

# ── Logging setup ─────────────────────────────────────────────────────────────


def _configure_logging() -> None:
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.dev.ConsoleRenderer()
            if settings.debug
            else structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(
            getattr(logging, settings.log_level.upper(), logging.INFO)
        ),
        logger_factory=structlog.PrintLoggerFactory(),
    )
    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
    )


_configure_logging()
logger = structlog.get_logger(__name__)

# ── Request-ID middleware ─────────────────────────────────────────────────────


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Attaches a unique request ID to each incoming request.
    Reads X-Request-ID from the client if present, otherwise generates one.
    Echoes the request ID in the response header.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
        request.state.request_id = request_id
        structlog.contextvars.bind_contextvars(request_id=request_id)

        start = time.perf_counter()
        response: Response = await call_next(request)
        duration_ms = round((time.perf_counter() - start) * 1000, 1)

        response.headers["X-Request-ID"] = request_id
        response.headers["X-Response-Time-Ms"] = str(duration_ms)

        logger.info(
            "request completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            duration_ms=duration_ms,
        )
        structlog.contextvars.clear_contextvars()
        return response


# ── Referer check middleware ──────────────────────────────────────────────────

DATA_PATH_PREFIX = "/v1/"


class RefererCheckMiddleware(BaseHTTPMiddleware):
    """
    Rejects untrusted data requests before routing, so neither body validation
    nor any store dependency runs for them.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        if request.url.path.startswith(DATA_PATH_PREFIX) and not is_trusted(request):
            logger.info(
                "untrusted request rejected",
                path=request.url.path,
                referer=request.headers.get("referer"),
            )
            return to_response(Failure(INVALID_REFERER))
        return await call_next(request)


# ── Error handlers ────────────────────────────────────────────────────────────


async def _validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    logger.info("request rejected", path=request.url.path, errors=len(exc.errors()))
    return to_response(Failure("invalid_request"))


def _rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    logger.warning("rate limit exceeded", path=request.url.path, limit=str(exc.detail))
    return to_response(Failure("rate_limited"))


def _store_error_handler(request: Request, exc: StoreError) -> JSONResponse:
    logger.error("store unavailable", path=request.url.path, operation=exc.operation, error=str(exc))
    return to_response(Failure("store_error"))


# ── Lifespan ──────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    logger.info(
        "Popups API starting",
        name=settings.app_name,
        version=settings.app_version,
        cache_group=settings.cache_group,
        debug_counters=settings.popups_debug,
    )
    yield
    logger.info("Popups API shutting down")


# ── Application factory ───────────────────────────────────────────────────────


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description=(
            "Request-scoped campaign and client state for the popups plugin.\n\n"
            "Reads go through a process cache before the durable store; "
            "known-missing records are cached too. Requests must carry a "
            "Referer pointing at this host."
        ),
        openapi_tags=[
            {"name": "Campaigns", "description": "Per-client campaign state."},
            {"name": "Clients", "description": "Cross-campaign client state."},
            {"name": "Health", "description": "Liveness and readiness probes."},
        ],
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # ── Middleware (order matters – the last one added runs first) ────────────
    app.add_middleware(RefererCheckMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Error handlers ────────────────────────────────────────────────────────
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_handler)
    app.add_exception_handler(RequestValidationError, _validation_error_handler)
    app.add_exception_handler(StoreError, _store_error_handler)

    # ── Routers ───────────────────────────────────────────────────────────────
    app.include_router(health_router)
    app.include_router(campaigns_router)
    app.include_router(clients_router)

    return app


app = create_app()
