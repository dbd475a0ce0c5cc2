"""
tests/test_context.py – RequestContext lifecycle and debug counters.
"""
from __future__ import annotations

from unittest.mock import MagicMock

import pytest

from popups_api.context import INVALID_REFERER, RequestContext
from popups_api.exceptions import RequestConcludedError
from popups_api.models import CampaignRecord
from popups_api.outcome import Failure, Success, to_response

REFERER = "https://news.example.com/2024/article/"
HOST = "news.example.com"


class FakeClock:
    def __init__(self, *ticks: float) -> None:
        self._ticks = list(ticks)

    def __call__(self) -> float:
        return self._ticks.pop(0)


def _context(repository, **kwargs) -> RequestContext:
    kwargs.setdefault("referer", REFERER)
    kwargs.setdefault("host", HOST)
    return RequestContext(repository, **kwargs)


class TestTrust:
    def test_trusted_request_is_open(self, repository):
        ctx = _context(repository)
        assert ctx.trusted is True
        assert ctx.outcome is None
        assert not ctx.concluded

    def test_untrusted_request_concludes_immediately(self):
        repository = MagicMock()
        ctx = _context(repository, referer="https://elsewhere.example.org/")
        assert ctx.trusted is False
        assert ctx.outcome == Failure(INVALID_REFERER)
        assert ctx.outcome.status_code == 400
        assert ctx.outcome.body == {"error": "invalid_referer"}
        assert repository.mock_calls == []

    def test_missing_referer_is_untrusted(self, repository):
        ctx = _context(repository, referer=None)
        assert ctx.outcome == Failure("invalid_referer")

    def test_untrusted_request_cannot_touch_stores(self, repository, durable):
        ctx = _context(repository, host=None)
        with pytest.raises(RequestConcludedError):
            ctx.get_campaign_data("abc123", 42)
        with pytest.raises(RequestConcludedError):
            ctx.transients
        assert durable.read_calls == 0
        assert durable.write_calls == 0

    def test_untrusted_request_cannot_respond(self, repository):
        ctx = _context(repository, referer=None)
        with pytest.raises(RequestConcludedError):
            ctx.respond()


class TestCounters:
    def test_initial_counters(self, repository):
        ctx = _context(repository, clock=FakeClock(10.5))
        assert ctx.counters.start_time == 10.5
        assert ctx.counters.read_query_count == 0
        assert ctx.counters.end_time is None
        assert ctx.counters.duration is None

    def test_example_scenario(self, repository):
        ctx = _context(repository)
        assert ctx.get_campaign_data("abc123", 42) == CampaignRecord()
        assert ctx.counters.read_query_count == 1

        saved = CampaignRecord(count=1, last_viewed=1700000000, suppress_forever=False)
        ctx.save_campaign_data("abc123", 42, saved)
        cache_count = ctx.counters.cache_count

        assert ctx.get_campaign_data("abc123", 42) == saved
        assert ctx.counters.cache_count == cache_count + 1
        assert ctx.counters.read_query_count == 1

    def test_requests_have_separate_counters(self, repository):
        first = _context(repository)
        first.get_client_data("abc123")
        second = _context(repository)
        second.get_client_data("abc123")
        assert first.counters.read_query_count == 1
        assert second.counters.read_query_count == 0
        assert second.counters.read_empty_transients == 1

    def test_transient_passthroughs(self, repository):
        ctx = _context(repository)
        ctx.set_transient("abc-custom", {"a": 1})
        assert ctx.get_transient("abc-custom") == {"a": 1}
        assert ctx.counters.write_query_count == 1
        assert ctx.counters.cache_count == 1


class TestConclusion:
    def test_respond_without_debug(self, repository):
        ctx = _context(repository, clock=FakeClock(1.0, 1.25))
        ctx.response["campaign"] = {"count": 1}
        outcome = ctx.respond()
        assert outcome == Success({"campaign": {"count": 1}})
        assert outcome.status_code == 200
        assert ctx.counters.end_time == 1.25
        assert ctx.counters.duration == 0.25

    def test_respond_with_debug(self, repository):
        ctx = _context(repository, debug=True, clock=FakeClock(1.0, 3.0))
        ctx.get_client_data("abc123")
        outcome = ctx.respond()
        debug = outcome.payload["debug"]
        assert debug["read_query_count"] == 1
        assert debug["write_empty_transients"] == 1
        assert debug["start_time"] == 1.0
        assert debug["end_time"] == 3.0
        assert debug["duration"] == 2.0
        assert set(debug) == {
            "read_query_count",
            "write_query_count",
            "cache_count",
            "read_empty_transients",
            "write_empty_transients",
            "write_read_query_count",
            "start_time",
            "end_time",
            "duration",
        }

    def test_error(self, repository):
        ctx = _context(repository)
        ctx.response["partial"] = True
        outcome = ctx.error("store_error")
        assert outcome == Failure("store_error")
        assert outcome.body == {"error": "store_error"}

    @pytest.mark.parametrize("first", ["respond", "error"])
    @pytest.mark.parametrize("second", ["respond", "error"])
    def test_only_one_conclusion(self, repository, first, second):
        ctx = _context(repository)
        getattr(ctx, first)(*(["x"] if first == "error" else []))
        with pytest.raises(RequestConcludedError):
            getattr(ctx, second)(*(["x"] if second == "error" else []))

    def test_payload_is_frozen_after_conclusion(self, repository):
        ctx = _context(repository)
        ctx.response["a"] = 1
        ctx.respond()
        with pytest.raises(TypeError):
            ctx.response["b"] = 2
        assert dict(ctx.response) == {"a": 1}

    def test_nested_payload_is_detached_after_conclusion(self, repository):
        ctx = _context(repository)
        campaign = {"count": 1}
        ctx.response["campaign"] = campaign
        outcome = ctx.respond()
        ctx.response["campaign"]["count"] = 99
        campaign["count"] = 42
        assert outcome.body == {"campaign": {"count": 1}}
        assert ctx.outcome.body == {"campaign": {"count": 1}}

    def test_no_store_work_after_conclusion(self, repository, durable):
        ctx = _context(repository)
        ctx.respond()
        with pytest.raises(RequestConcludedError):
            ctx.save_client_data("abc123", {"x": 1})
        assert durable.write_calls == 0

    def test_to_response(self):
        response = to_response(Failure("invalid_referer"))
        assert response.status_code == 400
        assert response.body == b'{"error":"invalid_referer"}'
