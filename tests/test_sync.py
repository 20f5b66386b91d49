import asyncio
import json
from datetime import datetime, timezone

import pytest

from polysight import models
from polysight.core.categories import tag_categories
from polysight.core.tags import CATEGORIES
from polysight.errors import InvalidCategory
from polysight.jobs import tasks


class FakeRedis:
    def __init__(self):
        self.store = {}

    def get(self, key):
        return self.store.get(key)

    def set(self, key, value, nx=False, ex=None):
        if nx and key in self.store:
            return None
        self.store[key] = value
        return True

    def delete(self, key):
        self.store.pop(key, None)


@pytest.fixture()
def fake_redis(monkeypatch):
    fake = FakeRedis()
    monkeypatch.setattr(tasks, "redis_conn", fake)
    return fake


def _raw(market_id: str, prices: str = '["0.3","0.7"]') -> dict:
    return {
        "id": market_id,
        "conditionId": f"0x{market_id}",
        "question": f"Question {market_id}",
        "outcomes": '["Yes","No"]',
        "outcomePrices": prices,
        "volume": "1000",
    }


def _routes(upstream):
    upstream.route("/tags", [{"id": 901, "slug": "earnings"}])
    upstream.route(
        "/events",
        [
            {
                "id": "e1",
                "title": "Event one",
                "tags": [{"id": 2}],
                "markets": [_raw("m1"), _raw("m2", prices='["1","0"]')],
            },
            {"id": "e2", "title": "All resolved", "markets": [_raw("m3", prices='["0","1"]')]},
        ],
    )
    upstream.route("/markets", [_raw("m1"), _raw("m4")])


def test_sync_category_upserts_idempotently(db_session, upstream, fake_redis):
    _routes(upstream)

    first = asyncio.run(tasks.run_sync(db_session, category="politics"))
    second = asyncio.run(tasks.run_sync(db_session, category="politics"))

    assert first["ok"] is True
    assert second["categories"] == first["categories"]
    assert first["categories"]["politics"] == {"events": 1, "markets": 2, "price_history": 4, "direct_markets": 1}
    assert db_session.query(models.Market).count() == 2
    assert db_session.query(models.MarketEvent).count() == 1
    assert db_session.query(models.MarketPriceHistory).count() == 4
    assert {m.category for m in db_session.query(models.Market)} == {"politics"}

    categories = {c.slug: c for c in db_session.query(models.Category)}
    assert categories["politics"].tag_id == "2"
    assert categories["earnings"].tag_id == "901"
    assert categories["trending"].is_sort is True

    assert tasks.SYNC_LOCK_KEY not in fake_redis.store
    assert json.loads(fake_redis.store[tasks.SYNC_LAST_RESULT_KEY])["ok"] is True


def test_sync_lock_skips_run(db_session, upstream, fake_redis):
    fake_redis.store[tasks.SYNC_LOCK_KEY] = "locked"

    result = asyncio.run(tasks.run_sync(db_session))

    assert result["reason"] == "sync_locked"
    assert upstream.calls == []


def test_unknown_category_is_rejected(db_session, fake_redis):
    with pytest.raises(InvalidCategory):
        asyncio.run(tasks.run_sync(db_session, category="trending"))
    with pytest.raises(InvalidCategory):
        asyncio.run(tasks.run_sync(db_session, category="gardening"))


def test_sync_reports_failure_when_every_category_fails(db_session, upstream, fake_redis):
    upstream.route("/tags", [])
    upstream.route("/events", 500)

    result = asyncio.run(tasks.run_sync(db_session, category="crypto", sync_categories=False))

    assert result["ok"] is False
    assert result["error"] == "sync_failed"
    assert result["categories"]["crypto"] == {"error": "status_500"}


def test_sync_keeps_events_when_direct_markets_fail(db_session, upstream, fake_redis):
    upstream.route("/tags", [])
    upstream.route(
        "/events",
        [{"id": "e1", "title": "Event one", "markets": [_raw("m1"), _raw("m2", prices='["1","0"]')]}],
    )
    upstream.route("/markets", 500)

    result = asyncio.run(tasks.run_sync(db_session, category="politics", sync_categories=False))

    assert result["ok"] is True
    assert result["categories"]["politics"] == {"events": 1, "markets": 1, "price_history": 2, "direct_markets": 0}
    assert db_session.query(models.Market).count() == 1
    assert db_session.query(models.MarketEvent).count() == 1


def test_category_rows_add_tag_categories_after_static_ones():
    tags = [
        {"id": 2, "slug": "politics", "label": "Politics"},
        {"id": 450, "slug": "nfl", "label": "NFL"},
        {"id": 11, "slug": "ukraine", "label": "Ukraine"},
        {"id": 12, "slug": "trump", "label": "Trump"},
        {"id": 13, "slug": "ai", "label": "ai"},
        {"id": 14, "slug": "fed-rate-cuts", "label": "fed rate cuts"},
        {"id": 15, "slug": "featured", "label": "featured"},
        {"slug": "no-id", "label": "no id"},
        {"id": 16, "slug": "box office", "label": "Box Office"},
    ]

    rows = tasks.category_rows(tags, datetime.now(timezone.utc))
    extra = [row for row in rows if row["order_index"] >= 100]

    assert [(row["id"], row["slug"], row["label"], row["order_index"]) for row in extra] == [
        ("450", "nfl", "NFL", 100),
        ("13", "ai", "Ai", 101),
        ("16", "box-office", "Box Office", 102),
    ]
    assert all(row["is_category"] and not row["is_sort"] for row in extra)
    assert len(rows) == len(CATEGORIES) + 3


def test_tag_categories_stop_at_limit():
    tags = [{"id": i, "slug": f"topic{i}", "label": f"topic {i}"} for i in range(1, 15)]

    picked = tag_categories(tags, seen=set())

    assert len(picked) == 10
    assert [c.order_index for c in picked] == list(range(100, 110))
