"""
popups_api/routes/clients.py – cross-campaign client state endpoints.
"""
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from popups_api.context import RequestContext
from popups_api.models import CLIENT_NEWSLETTER_FLAG, ClientDataRequest
from popups_api.routes._common import data_rate_limit, limiter, run
from popups_api.services.repository import CampaignClientRepository, get_repository

router = APIRouter(prefix="/v1/clients", tags=["Clients"])

_RESPONSES = {
    200: {"description": "Client record."},
    400: {"description": "Untrusted referer, invalid identifier or store error."},
}


@router.get("/{client_id}", summary="Read a client's record", responses=_RESPONSES)
@limiter.limit(data_rate_limit)
def read_client(
    client_id: str,
    request: Request,
    repository: CampaignClientRepository = Depends(get_repository),
) -> JSONResponse:
    def handler(ctx: RequestContext) -> None:
        ctx.response["client"] = ctx.get_client_data(client_id)

    return run(request, repository, handler)


@router.post(
    "/{client_id}",
    summary="Replace a client's record",
    description="Stores the request body as the client's record, overwriting it.",
    responses=_RESPONSES,
)
@limiter.limit(data_rate_limit)
def save_client(
    client_id: str,
    payload: ClientDataRequest,
    request: Request,
    repository: CampaignClientRepository = Depends(get_repository),
) -> JSONResponse:
    def handler(ctx: RequestContext) -> None:
        record = payload.model_dump()
        ctx.save_client_data(client_id, record)
        ctx.response["client"] = {CLIENT_NEWSLETTER_FLAG: False, **record}

    return run(request, repository, handler)


@router.post(
    "/{client_id}/newsletter-suppression",
    summary="Suppress newsletter campaigns for a client",
    responses=_RESPONSES,
)
@limiter.limit(data_rate_limit)
def suppress_newsletter(
    client_id: str,
    request: Request,
    repository: CampaignClientRepository = Depends(get_repository),
) -> JSONResponse:
    def handler(ctx: RequestContext) -> None:
        ctx.response["client"] = ctx.repository.suppress_newsletter_campaigns(
            client_id, ctx.counters
        )

    return run(request, repository, handler)
