"""
tests/test_models.py – unit tests for Pydantic v2 records.
"""
from __future__ import annotations

import pytest
from pydantic import ValidationError

from popups_api.models import (
    CampaignRecord,
    CampaignViewRequest,
    ClientDataRequest,
    DebugCounters,
    default_client_record,
)


class TestCampaignRecord:
    def test_defaults(self):
        assert CampaignRecord().model_dump() == {
            "count": 0,
            "last_viewed": 0,
            "suppress_forever": False,
        }

    def test_negative_count_raises(self):
        with pytest.raises(ValidationError):
            CampaignRecord(count=-1)


class TestDebugCounters:
    def test_all_counters_start_at_zero(self):
        counters = DebugCounters(start_time=5.0)
        dumped = counters.model_dump()
        assert dumped.pop("start_time") == 5.0
        assert dumped.pop("end_time") is None
        assert dumped.pop("duration") is None
        assert set(dumped.values()) == {0}


class TestRequests:
    def test_view_timestamp_optional(self):
        assert CampaignViewRequest(cid="abc").timestamp is None

    def test_empty_cid_raises(self):
        with pytest.raises(ValidationError):
            CampaignViewRequest(cid="")

    def test_client_data_keeps_extra_fields(self):
        body = ClientDataRequest.model_validate({"segment": "donor", "visits": 3})
        assert body.model_dump() == {"segment": "donor", "visits": 3}


def test_default_client_record_is_fresh():
    first = default_client_record()
    first["suppressed_newsletter_campaign"] = True
    assert default_client_record() == {"suppressed_newsletter_campaign": False}
