import asyncio
import logging

import httpx
import pytest

from polysight.external import POLYMARKET_BREAKER, upstream_states
from polysight.polymarket.client import GammaClient, UpstreamError


def test_events_request_params(upstream):
    upstream.route("/events", [{"id": "e1", "markets": []}])

    events = asyncio.run(GammaClient().fetch_events(tag_id=2, order="volume24hr", limit=50))

    assert events == [{"id": "e1", "markets": []}]
    path, params = upstream.calls[0]
    assert path == "/events"
    assert params == {
        "closed": "false",
        "limit": "50",
        "order": "volume24hr",
        "ascending": "false",
        "tag_id": "2",
    }


def test_markets_request_is_active_only(upstream):
    upstream.route("/markets", {"data": [{"id": "m1"}]})

    markets = asyncio.run(GammaClient().fetch_markets())

    assert markets == [{"id": "m1"}]
    params = upstream.calls[0][1]
    assert params["active"] == "true"
    assert "tag_id" not in params


def test_tags_drop_non_objects(upstream):
    upstream.route("/tags", [{"id": 1, "slug": "sports"}, "junk", None])

    assert asyncio.run(GammaClient().fetch_tags()) == [{"id": 1, "slug": "sports"}]


def test_error_status_raises_upstream_error(upstream):
    upstream.route("/events", 500)

    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(GammaClient().fetch_events())

    assert exc_info.value.reason == "status_500"


def test_network_error_raises_upstream_error(monkeypatch):
    class FailingAsyncClient:
        def __init__(self, *args, **kwargs):
            pass

        async def __aenter__(self):
            return self

        async def __aexit__(self, exc_type, exc, tb):
            return False

        async def get(self, url, params=None):
            raise httpx.ConnectTimeout("timed out", request=httpx.Request("GET", url))

    monkeypatch.setattr(httpx, "AsyncClient", FailingAsyncClient)

    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(GammaClient().fetch_tags())

    assert exc_info.value.reason == "ConnectTimeout"


def test_breaker_opens_after_repeated_failures(upstream, monkeypatch):
    monkeypatch.setattr(POLYMARKET_BREAKER, "max_failures", 2)
    upstream.route("/events", 503)
    client = GammaClient()

    for _ in range(2):
        with pytest.raises(UpstreamError):
            asyncio.run(client.fetch_events())
    with pytest.raises(UpstreamError) as exc_info:
        asyncio.run(client.fetch_events())

    assert exc_info.value.reason == "circuit_open"
    assert len(upstream.calls) == 2
    assert upstream_states()["polymarket"] == "open"


def test_open_breaker_reports_half_open_after_reset_window(monkeypatch):
    monkeypatch.setattr(POLYMARKET_BREAKER, "max_failures", 1)
    POLYMARKET_BREAKER.record_failure()
    assert POLYMARKET_BREAKER.state() == "open"

    monkeypatch.setattr(POLYMARKET_BREAKER, "reset_seconds", 0)
    assert POLYMARKET_BREAKER.state() == "half_open"
    assert POLYMARKET_BREAKER.allow() is True
    assert POLYMARKET_BREAKER.state() == "closed"


def test_failed_upstream_response_is_logged(upstream, caplog):
    upstream.route("/tags", 503)

    with caplog.at_level(logging.WARNING, logger="polysight.upstream"):
        with pytest.raises(UpstreamError):
            asyncio.run(GammaClient().fetch_tags())

    messages = [r.getMessage() for r in caplog.records if r.name == "polysight.upstream"]
    assert len(messages) == 1
    assert messages[0].startswith("upstream_error upstream=polymarket fetch=tags path=")
    assert "status=503" in messages[0]
