"""
popups_api/services/repository.py – campaign and client records over transients.

Key families
────────────
• campaign_key(client_id, campaign_id) → "<client>-<campaign>-popup"
• client_key(client_id)                → "<client>-popups"

Client ids may not contain "-", which keeps both families injective and
disjoint: a client key has exactly one "-", a campaign key at least two.

Reads never report "no record": a missing campaign comes back as the zero
record and a missing client as ``{"suppressed_newsletter_campaign": False}``.
Writes always overwrite the whole record. Read-modify-write helpers are
last-writer-wins; concurrent views of one campaign can lose increments.
"""
from __future__ import annotations

import logging
import threading
import time
from collections.abc import Mapping
from typing import Any, Optional, Union

from popups_api.config import settings
from popups_api.exceptions import InvalidIdentifierError
from popups_api.models import (
    CLIENT_NEWSLETTER_FLAG,
    CampaignRecord,
    DebugCounters,
    default_client_record,
)
from popups_api.services.cache import InMemoryProcessCache
from popups_api.services.durable_store import SQLDurableStore
from popups_api.services.transients import TransientStore

logger = logging.getLogger(__name__)

CampaignId = Union[int, str]


# ── Keys ──────────────────────────────────────────────────────────────────────


def _check_client_id(client_id: str) -> str:
    if not isinstance(client_id, str) or not client_id:
        raise InvalidIdentifierError("client_id", "client_id must be a non-empty string")
    if "-" in client_id:
        raise InvalidIdentifierError("client_id", f"client_id may not contain '-': {client_id!r}")
    return client_id


def campaign_key(client_id: str, campaign_id: CampaignId) -> str:
    _check_client_id(client_id)
    if isinstance(campaign_id, bool) or campaign_id is None or str(campaign_id) == "":
        raise InvalidIdentifierError("campaign_id", f"invalid campaign_id: {campaign_id!r}")
    return f"{client_id}-{campaign_id}-popup"


def client_key(client_id: str) -> str:
    return f"{_check_client_id(client_id)}-popups"


# ── Coercion ──────────────────────────────────────────────────────────────────


def _to_int(value: Any) -> int:
    """Cast loosely: numbers truncate, numeric strings parse, anything else is 0."""
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        try:
            return int(text)
        except ValueError:
            pass
        try:
            return int(float(text))
        except (ValueError, OverflowError):
            return 0
    return 0


def coerce_campaign_record(raw: Any) -> CampaignRecord:
    """Build a ``CampaignRecord`` from whatever was stored.

    Empty or missing fields take their defaults. ``count`` and ``last_viewed``
    are cast to non-negative ints and ``suppress_forever`` to bool, so a stored
    ``{"count": "3"}`` reads back as ``count=3`` instead of failing validation.
    Anything that is not a mapping reads as the zero record.
    """
    if not isinstance(raw, Mapping):
        return CampaignRecord()
    count = raw.get("count")
    last_viewed = raw.get("last_viewed")
    suppress = raw.get("suppress_forever")
    return CampaignRecord(
        count=max(_to_int(count), 0) if count else 0,
        last_viewed=max(_to_int(last_viewed), 0) if last_viewed else 0,
        suppress_forever=bool(_to_int(suppress)) if isinstance(suppress, str) else bool(suppress),
    )


# ── Repository ────────────────────────────────────────────────────────────────


class CampaignClientRepository:
    """Typed campaign / client records stored as transients."""

    def __init__(self, transients: TransientStore) -> None:
        self._transients = transients

    @property
    def transients(self) -> TransientStore:
        return self._transients

    # ── Campaign data ────────────────────────────────────────────────────────

    def get_campaign_data(
        self, client_id: str, campaign_id: CampaignId, counters: DebugCounters
    ) -> CampaignRecord:
        data = self._transients.get(campaign_key(client_id, campaign_id), counters)
        return coerce_campaign_record(data)

    def save_campaign_data(
        self,
        client_id: str,
        campaign_id: CampaignId,
        record: Union[CampaignRecord, Mapping[str, Any]],
        counters: DebugCounters,
    ) -> None:
        if isinstance(record, CampaignRecord):
            payload: Any = record.model_dump()
        else:
            payload = dict(record)
        self._transients.set(campaign_key(client_id, campaign_id), payload, counters)

    def record_view(
        self,
        client_id: str,
        campaign_id: CampaignId,
        counters: DebugCounters,
        now: Optional[int] = None,
    ) -> CampaignRecord:
        """Bump the view count and stamp ``last_viewed``."""
        record = self.get_campaign_data(client_id, campaign_id, counters)
        updated = record.model_copy(
            update={
                "count": record.count + 1,
                "last_viewed": int(time.time()) if now is None else now,
            }
        )
        self.save_campaign_data(client_id, campaign_id, updated, counters)
        return updated

    def suppress_campaign(
        self, client_id: str, campaign_id: CampaignId, counters: DebugCounters
    ) -> CampaignRecord:
        record = self.get_campaign_data(client_id, campaign_id, counters)
        if record.suppress_forever:
            return record
        updated = record.model_copy(update={"suppress_forever": True})
        self.save_campaign_data(client_id, campaign_id, updated, counters)
        logger.info(
            "Campaign suppressed",
            extra={"client_id": client_id, "campaign_id": str(campaign_id)},
        )
        return updated

    # ── Client data ──────────────────────────────────────────────────────────

    def get_client_data(self, client_id: str, counters: DebugCounters) -> dict[str, Any]:
        data = self._transients.get(client_key(client_id), counters)
        if not data:
            return default_client_record()
        if not isinstance(data, Mapping):
            logger.warning(
                "Client data is not a mapping; using defaults",
                extra={"client_id": client_id, "type": type(data).__name__},
            )
            return default_client_record()
        record = dict(data)
        record.setdefault(CLIENT_NEWSLETTER_FLAG, False)
        return record

    def save_client_data(
        self, client_id: str, record: Mapping[str, Any], counters: DebugCounters
    ) -> None:
        self._transients.set(client_key(client_id), dict(record), counters)

    def suppress_newsletter_campaigns(
        self, client_id: str, counters: DebugCounters
    ) -> dict[str, Any]:
        record = self.get_client_data(client_id, counters)
        if record.get(CLIENT_NEWSLETTER_FLAG):
            return record
        record[CLIENT_NEWSLETTER_FLAG] = True
        self.save_client_data(client_id, record, counters)
        return record


# ── Module-level singleton (lazy init) ────────────────────────────────────────

_repository_instance: Optional[CampaignClientRepository] = None
_repository_lock = threading.Lock()


def get_repository() -> CampaignClientRepository:
    """Return the shared repository (created on first call).

    The process cache and durable store behind it outlive any single request
    and are shared by all of them. Route handlers run in a threadpool, so the
    first build happens under a lock.
    """
    global _repository_instance
    if _repository_instance is not None:
        return _repository_instance
    with _repository_lock:
        if _repository_instance is None:
            transients = TransientStore(
                cache=InMemoryProcessCache(
                    group=settings.cache_group,
                    ttl_seconds=settings.cache_ttl_seconds,
                ),
                durable=SQLDurableStore.from_url(settings.database_url),
                prefix=settings.transient_prefix,
            )
            _repository_instance = CampaignClientRepository(transients)
            logger.info(
                "Repository initialised",
                extra={"cache_group": settings.cache_group, "durable": type(transients.durable).__name__},
            )
    return _repository_instance
