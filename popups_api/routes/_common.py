"""
popups_api/routes/_common.py – helpers shared by the data endpoints.
"""
from __future__ import annotations

import logging
import uuid
from typing import Callable

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.util import get_remote_address

from popups_api.config import settings
from popups_api.context import RequestContext
from popups_api.exceptions import InvalidIdentifierError, SerializationError, StoreError
from popups_api.outcome import to_response
from popups_api.services.referer import verify_referer
from popups_api.services.repository import CampaignClientRepository

logger = logging.getLogger(__name__)

# ── Rate limiter ──────────────────────────────────────────────────────────────

limiter = Limiter(key_func=get_remote_address)


def data_rate_limit() -> str:
    """Per-client limit for the data endpoints, read on every request."""
    return f"{settings.rate_limit_per_minute}/minute"


# ── Request helpers ───────────────────────────────────────────────────────────


def get_request_id(request: Request) -> str:
    return request.state.request_id if hasattr(request.state, "request_id") else str(uuid.uuid4())


def is_trusted(request: Request) -> bool:
    return verify_referer(
        request.headers.get("referer"),
        request.headers.get("host"),
        settings.trusted_referer_hosts,
    )


def open_context(request: Request, repository: CampaignClientRepository) -> RequestContext:
    """Build the request's context; untrusted requests come back concluded."""
    return RequestContext(
        repository,
        referer=request.headers.get("referer"),
        host=request.headers.get("host"),
        debug=settings.popups_debug,
        extra_hosts=settings.trusted_referer_hosts,
    )


def run(
    request: Request,
    repository: CampaignClientRepository,
    handler: Callable[[RequestContext], None],
) -> JSONResponse:
    """Run ``handler`` inside a fresh context and emit its single outcome.

    The handler fills ``ctx.response``; it does not conclude the request.
    Domain errors become 400 outcomes.
    """
    ctx = open_context(request, repository)
    if ctx.outcome is not None:
        return to_response(ctx.outcome)

    request_id = get_request_id(request)
    try:
        handler(ctx)
    except InvalidIdentifierError as exc:
        logger.info("Invalid identifier: %s", exc, extra={"request_id": request_id})
        return to_response(ctx.error(f"invalid_{exc.field}"))
    except SerializationError as exc:
        logger.error("Unserializable payload: %s", exc, extra={"request_id": request_id})
        return to_response(ctx.error("invalid_payload"))
    except StoreError:
        logger.exception("Store operation failed", extra={"request_id": request_id})
        return to_response(ctx.error("store_error"))

    return to_response(ctx.respond())
