"""
popups_api/routes/health.py – liveness and readiness endpoints.
"""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends

from popups_api.config import settings
from popups_api.exceptions import StoreError
from popups_api.models import HealthResponse, ReadinessResponse
from popups_api.services.repository import CampaignClientRepository, get_repository

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_PROBE_KEY = "__readiness_probe__"


@router.get(
    "/healthz",
    response_model=HealthResponse,
    summary="Liveness probe",
    description="Returns 200 as long as the application process is running.",
)
async def healthz() -> HealthResponse:
    return HealthResponse(status="ok", version=settings.app_version)


@router.get(
    "/readyz",
    response_model=ReadinessResponse,
    summary="Readiness probe",
    description=(
        "Returns 200 when the service is ready to handle requests. "
        "Checks that the durable store answers a point read."
    ),
)
def readyz(
    repository: CampaignClientRepository = Depends(get_repository),
) -> ReadinessResponse:
    checks: dict = {}

    # Read the durable store directly so the probe never lands in the cache
    try:
        repository.transients.durable.read(_PROBE_KEY)
        checks["durable_store"] = "ok"
    except StoreError as exc:
        logger.warning("Readiness probe failed: %s", exc)
        checks["durable_store"] = "unavailable"

    checks["cache_group"] = settings.cache_group

    return ReadinessResponse(ready=checks["durable_store"] == "ok", checks=checks)
