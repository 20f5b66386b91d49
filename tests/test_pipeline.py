import asyncio
from datetime import datetime, timedelta, timezone

import pytest

from polysight.core import store
from polysight.core.normalize import normalize_market
from polysight.core.pipeline import MarketPipeline, MarketQuery, parse_query
from polysight.errors import FetchError, InvalidQuery

NOW = datetime(2025, 10, 15, 12, 0, tzinfo=timezone.utc)


def _raw(market_id: str, question: str, volume: float = 100.0, prices: str = '["0.4","0.6"]', **extra) -> dict:
    data = {
        "id": market_id,
        "question": question,
        "slug": market_id,
        "outcomes": '["Yes","No"]',
        "outcomePrices": prices,
        "volume": str(volume),
        "volume24hr": volume / 10,
        "active": True,
        "closed": False,
    }
    data.update(extra)
    return data


def _event(event_id: str, markets: list[dict], tags=None, **extra) -> dict:
    data = {
        "id": event_id,
        "title": f"Event {event_id}",
        "slug": f"event-{event_id}",
        "tags": tags or [],
        "markets": markets,
    }
    data.update(extra)
    return data


def _run(query: MarketQuery, db=None):
    pipeline = MarketPipeline(now_fn=lambda: NOW)
    return asyncio.run(pipeline.run(query, db))


def test_volume_sort_returns_top_markets_in_order(upstream):
    volumes = [100, 50, 200, 10, 5, 1, 0.5, 0.2, 0.1, 0]
    markets = [_raw(f"m{i}", f"Q{i}", volume=v) for i, v in enumerate(volumes)]
    markets[-1]["closed"] = True
    upstream.route("/events", [_event("e1", markets)])
    upstream.route("/markets", [])

    result = _run(MarketQuery(kind="volume", limit=5))

    assert [m.volume for m in result.markets] == [200, 100, 50, 10, 5]
    assert [m.id for m in result.markets] == ["m2", "m0", "m1", "m3", "m4"]
    assert result.source == "live"
    events_params = dict(upstream.calls)["/events"]
    assert events_params["order"] == "volume"
    assert events_params["closed"] == "false"


def test_resolved_prices_are_excluded(upstream):
    upstream.route(
        "/events",
        [_event("e1", [_raw("done", "Resolved", prices='["0","1"]'), _raw("live", "Live")])],
    )
    upstream.route("/markets", [])

    result = _run(MarketQuery(kind="trending"))

    assert [m.id for m in result.markets] == ["live"]


def test_duplicate_ids_across_sources_are_returned_once(upstream):
    upstream.route("/events", [_event("e1", [_raw("m1", "Q1")])])
    upstream.route("/markets", [_raw("m1", "Q1"), _raw("m2", "Q2", volume=50)])

    result = _run(MarketQuery(kind="trending"))

    assert [m.id for m in result.markets] == ["m1", "m2"]


def test_static_category_uses_tag_without_lookup(upstream):
    upstream.route(
        "/events",
        [_event("e1", [_raw("p1", "Will the bill pass?")], tags=[{"id": "2", "slug": "politics"}])],
    )
    upstream.route("/markets", [_raw("c1", "Crypto question", tags=[{"id": 21}])])

    result = _run(MarketQuery(kind="politics"))

    assert "/tags" not in upstream.paths()
    assert all(params.get("tag_id") == "2" for _, params in upstream.calls)
    assert [m.id for m in result.markets] == ["p1"]
    assert result.markets[0].category == "politics"


def test_category_parameter_with_lookup(upstream):
    upstream.route("/tags", [{"id": 900, "slug": "earnings-calls"}, {"id": 901, "slug": "earnings"}])
    upstream.route("/events", [_event("e1", [_raw("q1", "Beat estimates?")], tags=[{"id": 901}])])
    upstream.route("/markets", [])

    result = _run(parse_query("category", category="earnings"))

    assert [m.id for m in result.markets] == ["q1"]
    assert dict(upstream.calls)["/events"]["tag_id"] == "901"


def test_unresolved_category_is_empty_with_message(upstream):
    upstream.route("/tags", [{"id": 3, "slug": "sports"}])

    result = _run(parse_query("category", category="gardening"))

    assert result.markets == []
    assert "gardening" in result.message
    assert upstream.paths() == ["/tags"]


def test_tag_id_override_skips_resolution(upstream):
    upstream.route("/events", [_event("e1", [_raw("x1", "Q")], tags=[{"id": 777}])])
    upstream.route("/markets", [])

    result = _run(MarketQuery(kind="category", category="gardening", tag_id=777))

    assert [m.id for m in result.markets] == ["x1"]
    assert "/tags" not in upstream.paths()


def test_stale_category_markets_are_dropped(upstream):
    old_end = (NOW - timedelta(days=3)).isoformat()
    upstream.route(
        "/events",
        [
            _event(
                "e1",
                [_raw("old", "Who wins the 2024 race?"), _raw("ended", "Q", endDate=old_end), _raw("ok", "Q")],
                tags=[{"id": 2}],
            )
        ],
    )
    upstream.route("/markets", [])

    result = _run(MarketQuery(kind="politics"))

    assert [m.id for m in result.markets] == ["ok"]


def test_min_volume_filters_markets(upstream):
    upstream.route("/events", [_event("e1", [_raw("big", "Q", volume=5000), _raw("small", "Q", volume=10)])])
    upstream.route("/markets", [])

    result = _run(MarketQuery(kind="trending", min_volume=1000))

    assert [m.id for m in result.markets] == ["big"]


def test_partial_failure_keeps_other_sources(upstream):
    upstream.route("/events", 500)
    upstream.route("/markets", [_raw("m1", "Q")])

    result = _run(MarketQuery(kind="trending"))

    assert [m.id for m in result.markets] == ["m1"]


def test_total_failure_raises_fetch_error(upstream):
    upstream.route("/events", 502)
    upstream.route("/markets", 503)

    with pytest.raises(FetchError):
        _run(MarketQuery(kind="trending"))


def _nfl_routes(upstream, events_by_tag):
    upstream.route("/tags", [{"id": 450, "slug": "nfl"}, {"id": 745, "slug": "nba"}])
    upstream.route("/events", lambda params: events_by_tag.get(params.get("tag_id"), []))
    upstream.route("/markets", [])


def test_nfl_games_for_current_week(upstream):
    sports = [{"id": 1, "label": "Sports"}]
    events = [
        _event(
            "g1",
            [_raw("kc-buf", "Chiefs vs Bills", gameStartTime="2025-10-16T20:15:00Z")],
            tags=sports,
            title="Chiefs vs Bills",
        ),
        _event("g2", [_raw("phi-dal", "Eagles vs Cowboys Week 6")], tags=sports),
        _event("p1", [_raw("mvp", "Will Patrick Mahomes win MVP?")], tags=sports),
        _event("n1", [_raw("lal-bos", "Lakers vs Celtics")], tags=sports, title="NBA: Lakers vs Celtics"),
        _event("old", [_raw("past", "Jets vs Dolphins", gameStartTime="2025-10-12T17:00:00Z")], tags=sports),
    ]
    _nfl_routes(upstream, {"1": events})

    result = _run(MarketQuery(kind="nfl", sport_type="games"))

    assert sorted(m.id for m in result.markets) == ["kc-buf", "phi-dal"]
    assert {m.sports_week for m in result.markets} == {6}
    assert result.week == 6
    assert {params.get("tag_id") for path, params in upstream.calls if path == "/events"} == {"450", "1"}


def test_nfl_games_fall_back_to_broad_pass(upstream):
    sports = [{"id": 1}]
    events = [_event("g1", [_raw("later", "Chiefs vs Bills Week 10")], tags=sports)]
    _nfl_routes(upstream, {"1": events})

    result = _run(MarketQuery(kind="nfl", sport_type="games", week=6))

    assert [m.id for m in result.markets] == ["later"]
    assert result.markets[0].sports_week == 10


def test_nfl_props_exclude_games(upstream):
    nfl_tag = [{"id": 450}]
    events = [
        _event("g1", [_raw("game", "Chiefs vs Bills")], tags=nfl_tag),
        _event("p1", [_raw("prop", "Will the Chiefs make the playoffs?")], tags=nfl_tag),
    ]
    _nfl_routes(upstream, {"450": events})

    result = _run(MarketQuery(kind="nfl", sport_type="props"))

    assert [m.id for m in result.markets] == ["prop"]


def test_games_for_other_sports_are_empty(upstream):
    result = _run(MarketQuery(kind="nba", sport_type="games"))

    assert result.markets == []
    assert result.message
    assert upstream.calls == []


def test_kalshi_prices_from_cents(upstream):
    upstream.route(
        "/markets",
        {
            "markets": [
                {"ticker": "KX-1", "title": "Fed cut?", "yes_bid": 30, "no_bid": 70, "status": "open", "volume": 10},
                {"ticker": "KX-2", "title": "No quotes", "yes_bid": 0, "status": "active", "volume": 5},
                {"ticker": "KX-3", "title": "Done", "yes_bid": 99, "no_bid": 1, "status": "settled"},
            ]
        },
    )

    result = _run(MarketQuery(kind="politics", platform="kalshi"))

    assert [m.id for m in result.markets] == ["KX-1", "KX-2"]
    assert result.markets[0].outcome_prices == pytest.approx([0.3, 0.7])
    assert result.markets[1].outcome_prices == pytest.approx([0.5, 0.5])
    assert all(m.platform == "kalshi" for m in result.markets)
    params = dict(upstream.calls)["/markets"]
    assert params["status"] == "open"
    assert params["category"] == "politics"


def test_fresh_store_rows_are_served_without_upstream(upstream, db_session):
    market = normalize_market(_raw("stored", "Stored question", tags=[{"id": 2}]))
    store.upsert_markets(db_session, [store.market_row(market, "politics", NOW - timedelta(seconds=30))])
    db_session.commit()

    result = _run(MarketQuery(kind="politics"), db=db_session)

    assert result.source == "database"
    assert [m.id for m in result.markets] == ["stored"]
    assert upstream.calls == []


def test_stale_store_rows_fall_back_to_live(upstream, db_session):
    market = normalize_market(_raw("stored", "Stored question", tags=[{"id": 2}]))
    store.upsert_markets(db_session, [store.market_row(market, "politics", NOW - timedelta(minutes=10))])
    db_session.commit()
    upstream.route("/events", [_event("e1", [_raw("live", "Q")], tags=[{"id": 2}])])
    upstream.route("/markets", [])

    result = _run(MarketQuery(kind="politics"), db=db_session)

    assert result.source == "live"
    assert [m.id for m in result.markets] == ["live"]


@pytest.mark.parametrize(
    "kwargs",
    [
        {"kind": "trending", "platform": "manifold"},
        {"kind": "nfl", "sport_type": "parlays"},
        {"kind": "nfl", "week": "23"},
        {"kind": "nfl", "week": "abc"},
        {"kind": "trending", "min_volume": "lots"},
        {"kind": "trending", "limit": "ten"},
        {"kind": "category"},
    ],
)
def test_invalid_parameters(kwargs):
    kind = kwargs.pop("kind")
    with pytest.raises(InvalidQuery):
        parse_query(kind, **kwargs)


def test_parse_query_defaults_and_clamps():
    query = parse_query(None, limit="50000")
    assert query.kind == "trending"
    assert query.platform == "polymarket"
    assert query.limit == 10000
    assert parse_query("Politics").target == "politics"
