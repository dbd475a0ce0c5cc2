"""
popups_api/routes/campaigns.py – per-(client, campaign) state endpoints.
"""
import logging

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse

from popups_api.context import RequestContext
from popups_api.models import CampaignEventRequest, CampaignViewRequest
from popups_api.routes._common import data_rate_limit, get_request_id, limiter, run
from popups_api.services.repository import CampaignClientRepository, get_repository

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/campaigns", tags=["Campaigns"])

_RESPONSES = {
    200: {"description": "Campaign record for the client."},
    400: {"description": "Untrusted referer, invalid identifier or store error."},
}


@router.get(
    "/{campaign_id}",
    summary="Read a client's campaign record",
    responses=_RESPONSES,
)
@limiter.limit(data_rate_limit)
def read_campaign(
    campaign_id: str,
    request: Request,
    cid: str = Query(..., min_length=1, description="Client ID."),
    repository: CampaignClientRepository = Depends(get_repository),
) -> JSONResponse:
    def handler(ctx: RequestContext) -> None:
        ctx.response["campaign"] = ctx.get_campaign_data(cid, campaign_id).model_dump()

    return run(request, repository, handler)


@router.post(
    "/{campaign_id}/view",
    summary="Record that a client was shown a campaign",
    description="Increments the view count and stamps last_viewed.",
    responses=_RESPONSES,
)
@limiter.limit(data_rate_limit)
def record_view(
    campaign_id: str,
    payload: CampaignViewRequest,
    request: Request,
    repository: CampaignClientRepository = Depends(get_repository),
) -> JSONResponse:
    logger.info(
        "POST /view",
        extra={"request_id": get_request_id(request), "campaign_id": campaign_id},
    )

    def handler(ctx: RequestContext) -> None:
        record = ctx.repository.record_view(
            payload.cid, campaign_id, ctx.counters, now=payload.timestamp
        )
        ctx.response["campaign"] = record.model_dump()

    return run(request, repository, handler)


@router.post(
    "/{campaign_id}/suppress",
    summary="Suppress a campaign for a client permanently",
    responses=_RESPONSES,
)
@limiter.limit(data_rate_limit)
def suppress_campaign(
    campaign_id: str,
    payload: CampaignEventRequest,
    request: Request,
    repository: CampaignClientRepository = Depends(get_repository),
) -> JSONResponse:
    def handler(ctx: RequestContext) -> None:
        record = ctx.repository.suppress_campaign(payload.cid, campaign_id, ctx.counters)
        ctx.response["campaign"] = record.model_dump()

    return run(request, repository, handler)
