"""
popups_api/models.py – Pydantic v2 records and request / response schemas.
"""
from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


# ── Stored records ────────────────────────────────────────────────────────────


class CampaignRecord(BaseModel):
    """Per-(client, campaign) state."""

    count: int = Field(default=0, ge=0, description="Number of times the campaign was shown.")
    last_viewed: int = Field(default=0, ge=0, description="Unix timestamp of the last view.")
    suppress_forever: bool = Field(
        default=False,
        description=(
            "Set by permanent dismissal, by a newsletter signup on a newsletter "
            "campaign, or by a UTM suppression."
        ),
    )


CLIENT_NEWSLETTER_FLAG = "suppressed_newsletter_campaign"


def default_client_record() -> dict[str, Any]:
    return {CLIENT_NEWSLETTER_FLAG: False}


# ── Request-scoped counters ───────────────────────────────────────────────────


class DebugCounters(BaseModel):
    read_query_count: int = 0
    write_query_count: int = 0
    cache_count: int = 0
    read_empty_transients: int = 0
    write_empty_transients: int = 0
    write_read_query_count: int = 0
    start_time: float = 0.0
    end_time: Optional[float] = None
    duration: Optional[float] = None


# ── Request bodies ────────────────────────────────────────────────────────────


class CampaignEventRequest(BaseModel):
    cid: str = Field(..., min_length=1, examples=["abc123"])


class CampaignViewRequest(CampaignEventRequest):
    timestamp: Optional[int] = Field(
        default=None,
        ge=0,
        description="Unix timestamp of the view. Defaults to the server time.",
    )


class ClientDataRequest(BaseModel):
    """Arbitrary client data; stored as-is."""

    model_config = ConfigDict(extra="allow")


# ── Health ────────────────────────────────────────────────────────────────────


class HealthResponse(BaseModel):
    status: str
    version: str


class ReadinessResponse(BaseModel):
    ready: bool
    checks: dict[str, Any]
