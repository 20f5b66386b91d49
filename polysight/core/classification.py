"""
Market acceptance rules, one named predicate per rule.

A stage takes a canonical market and the request's ``FilterContext`` and
returns True to keep it. Stages are composed per request kind in
``core.pipeline``; each one is usable and testable on its own.
"""

import logging
import re
from collections import Counter
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Callable, Iterable, NamedTuple

from ..polymarket.schemas import Market
from . import nfl
from .normalize import tag_ids, tag_texts

logger = logging.getLogger(__name__)

END_DATE_GRACE = timedelta(days=1)
MAX_MARKET_AGE = timedelta(days=365)
STRICT_WEEK_TOLERANCE = 2
BROAD_WEEK_TOLERANCE = 4
STRICT_PAST_GAME_GRACE = timedelta(hours=2)
BROAD_PAST_GAME_GRACE = timedelta(hours=3)

_YEAR_RE = re.compile(r"\b((?:19|20)\d{2})\b")


@dataclass(frozen=True)
class FilterContext:
    now: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    tag_ids: frozenset[int] = frozenset()
    target_week: int | None = None
    week_tolerance: int = STRICT_WEEK_TOLERANCE
    past_game_grace: timedelta = STRICT_PAST_GAME_GRACE
    min_volume: float | None = None


class Stage(NamedTuple):
    name: str
    predicate: Callable[[Market, FilterContext], bool]


def has_identity(market: Market, ctx: FilterContext) -> bool:
    return bool(market.dedupe_key)


def is_live(market: Market, ctx: FilterContext) -> bool:
    return not market.closed and market.active


def is_recent(market: Market, ctx: FilterContext) -> bool:
    end = market.end_date or market.event_end_date
    if end is not None and end < ctx.now - END_DATE_GRACE:
        return False
    if market.created_at is not None and market.created_at < ctx.now - MAX_MARKET_AGE:
        return False
    years = [int(y) for y in _YEAR_RE.findall(f"{market.question} {market.event_title or ''}")]
    if any(year < ctx.now.year for year in years):
        return False
    return True


def has_category_tag(market: Market, ctx: FilterContext) -> bool:
    if not ctx.tag_ids:
        return False
    return bool((tag_ids(market.tags) | tag_ids(market.event_tags)) & ctx.tag_ids)


def is_nfl_content(market: Market, ctx: FilterContext) -> bool:
    return nfl_rejection_reason(market) is None


def nfl_rejection_reason(market: Market) -> str | None:
    slugs = tuple(s for s in (market.slug, market.event_slug) if s)
    return nfl.nfl_content_verdict(market.text, slugs)


def market_week(market: Market) -> int | None:
    week = nfl.extract_week(
        market.question,
        market.event_title or "",
        market.slug,
        market.event_slug or "",
    )
    if week is not None:
        return week
    return nfl.extract_week_from_tags(tag_texts(market.tags) + tag_texts(market.event_tags))


def in_target_week(market: Market, ctx: FilterContext) -> bool:
    if ctx.target_week is None:
        return True
    week = market_week(market)
    if week is not None:
        return abs(week - ctx.target_week) <= ctx.week_tolerance
    start = market.start_ts
    if start is None:
        return False
    window_start, window_end = nfl.week_window(ctx.target_week, ctx.now)
    return window_start <= start < window_end


def is_upcoming_or_live_game(market: Market, ctx: FilterContext) -> bool:
    start = market.start_ts
    if start is None:
        return True
    return start >= ctx.now - ctx.past_game_grace


def is_game_market(market: Market, ctx: FilterContext) -> bool:
    return not nfl.is_prop_question(market.question)


def is_prop_market(market: Market, ctx: FilterContext) -> bool:
    return nfl.is_prop_question(market.question)


def is_not_season_award(market: Market, ctx: FilterContext) -> bool:
    question = (market.question or "").lower()
    return not any(term in question for term in ("mvp", "leader", "award"))


def has_live_price(market: Market, ctx: FilterContext) -> bool:
    prices = market.outcome_prices
    if not prices or len(prices) != len(market.outcomes):
        return False
    if any(p < 0.0 or p > 1.0 for p in prices):
        return False
    return any(0.0 < p < 1.0 for p in prices)


def meets_min_volume(market: Market, ctx: FilterContext) -> bool:
    if ctx.min_volume is None:
        return True
    return market.volume >= ctx.min_volume


IDENTITY = Stage("identity", has_identity)
LIVENESS = Stage("liveness", is_live)
RECENCY = Stage("recency", is_recent)
CATEGORY_TAGS = Stage("category_tags", has_category_tag)
NFL_CONTENT = Stage("nfl_content", is_nfl_content)
WEEK = Stage("week", in_target_week)
PAST_GAME = Stage("past_game", is_upcoming_or_live_game)
GAME_MARKET = Stage("game_market", is_game_market)
PROP_MARKET = Stage("prop_market", is_prop_market)
NOT_SEASON_AWARD = Stage("not_season_award", is_not_season_award)
PRICE = Stage("price", has_live_price)
MIN_VOLUME = Stage("min_volume", meets_min_volume)


def apply_stages(
    markets: Iterable[Market],
    stages: Iterable[Stage],
    ctx: FilterContext,
) -> tuple[list[Market], Counter]:
    """Keep markets passing every stage; count rejections by the first failing stage."""
    stage_list = list(stages)
    kept: list[Market] = []
    rejected: Counter = Counter()
    for market in markets:
        failed = next((stage.name for stage in stage_list if not stage.predicate(market, ctx)), None)
        if failed is None:
            kept.append(market)
        else:
            rejected[failed] += 1
    logger.debug(
        "classification_summary stages=%s kept=%s rejected=%s",
        ",".join(stage.name for stage in stage_list),
        len(kept),
        dict(rejected),
    )
    return kept, rejected
