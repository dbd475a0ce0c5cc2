"""
popups_api/context.py – per-request state and lifecycle.

A ``RequestContext`` is built once per inbound request. It decides whether
the request is trusted, owns the request's ``DebugCounters`` and response
payload, and concludes exactly once through ``respond()`` or ``error()``.
Once concluded, no further store work is allowed and the payload is frozen.
"""
from __future__ import annotations

import copy
import logging
import time
from collections.abc import Iterable, Mapping
from types import MappingProxyType
from typing import Any, Callable, Optional, Union

from popups_api.exceptions import RequestConcludedError
from popups_api.models import CampaignRecord, DebugCounters
from popups_api.outcome import Failure, RequestOutcome, Success
from popups_api.services.referer import verify_referer
from popups_api.services.repository import CampaignClientRepository, CampaignId
from popups_api.services.transients import TransientStore

logger = logging.getLogger(__name__)

INVALID_REFERER = "invalid_referer"


class RequestContext:
    """One inbound request: trust decision, counters, payload and outcome.

    Args:
        repository:  Campaign/client records, wired over a ``TransientStore``.
        referer:     The request's Referer header, if any.
        host:        The request's Host header, if any.
        debug:       Attach the debug counters to successful responses.
        extra_hosts: Additional trusted referer hostnames.
        clock:       Returns the current time in seconds (float).
    """

    def __init__(
        self,
        repository: CampaignClientRepository,
        referer: Optional[str],
        host: Optional[str],
        *,
        debug: bool = False,
        extra_hosts: Iterable[str] = (),
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._repository = repository
        self._debug = debug
        self._clock = clock
        self._outcome: Optional[RequestOutcome] = None
        self.response: Union[dict[str, Any], Mapping[str, Any]] = {}
        self.counters = DebugCounters(start_time=clock())

        self.trusted = verify_referer(referer, host, extra_hosts)
        if not self.trusted:
            logger.info("Rejected request with untrusted referer", extra={"referer": referer, "host": host})
            self.error(INVALID_REFERER)

    # ── Lifecycle ────────────────────────────────────────────────────────────

    @property
    def outcome(self) -> Optional[RequestOutcome]:
        return self._outcome

    @property
    def concluded(self) -> bool:
        return self._outcome is not None

    def _ensure_open(self) -> None:
        if self._outcome is not None:
            raise RequestConcludedError(f"Request already concluded with {self._outcome!r}")

    def _conclude(self, outcome: RequestOutcome) -> RequestOutcome:
        self._ensure_open()
        self._outcome = outcome
        self.response = MappingProxyType(copy.deepcopy(dict(self.response)))
        return outcome

    def respond(self) -> Success:
        """Finish the request successfully with the accumulated payload."""
        self._ensure_open()
        self.counters.end_time = self._clock()
        self.counters.duration = self.counters.end_time - self.counters.start_time
        payload = copy.deepcopy(dict(self.response))
        if self._debug:
            payload["debug"] = self.counters.model_dump()
        self.response = payload
        outcome = Success(payload)
        self._conclude(outcome)
        return outcome

    def error(self, code: str) -> Failure:
        """Finish the request with a 400 error code."""
        outcome = Failure(code)
        self._conclude(outcome)
        return outcome

    # ── Collaborators ────────────────────────────────────────────────────────

    @property
    def repository(self) -> CampaignClientRepository:
        self._ensure_open()
        return self._repository

    @property
    def transients(self) -> TransientStore:
        self._ensure_open()
        return self._repository.transients

    # ── Data access with this request's counters ─────────────────────────────

    def get_transient(self, name: str) -> Any:
        return self.transients.get(name, self.counters)

    def set_transient(self, name: str, value: Any) -> None:
        self.transients.set(name, value, self.counters)

    def get_campaign_data(self, client_id: str, campaign_id: CampaignId) -> CampaignRecord:
        return self.repository.get_campaign_data(client_id, campaign_id, self.counters)

    def save_campaign_data(
        self,
        client_id: str,
        campaign_id: CampaignId,
        record: Union[CampaignRecord, Mapping[str, Any]],
    ) -> None:
        self.repository.save_campaign_data(client_id, campaign_id, record, self.counters)

    def get_client_data(self, client_id: str) -> dict[str, Any]:
        return self.repository.get_client_data(client_id, self.counters)

    def save_client_data(self, client_id: str, record: Mapping[str, Any]) -> None:
        self.repository.save_client_data(client_id, record, self.counters)
