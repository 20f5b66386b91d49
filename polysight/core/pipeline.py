"""
One parameterized market listing pipeline.

A ``MarketQuery`` is resolved into a ``Plan``: the upstream sources to
fetch, the tag ids to match and the ordered classification stages. Every
request kind (sort mode, category, sport, NFL games/props, Kalshi) runs the
same fetch -> normalize -> classify -> rank sequence with its own plan.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Awaitable, Callable

from sqlalchemy.orm import Session

from ..errors import FetchError, InvalidQuery
from ..kalshi.client import KalshiClient
from ..polymarket.client import EVENT_ORDER_FIELDS, MARKET_ORDER_FIELDS, GammaClient
from ..polymarket.schemas import Market
from ..settings import settings
from . import classification as cls
from . import nfl, ranking, store
from .normalize import flatten_events, normalize_market
from .tags import (
    CATEGORY_ALIASES,
    CATEGORY_TAG_IDS,
    SORT_KINDS,
    SPORT_BY_SLUG,
    SPORTS_TAG_ID,
    normalize_slug,
    resolve_sport_tag_id,
    resolve_tag_id,
)

logger = logging.getLogger(__name__)

PLATFORMS = ("polymarket", "kalshi")
SPORT_TYPES = ("games", "props")

SORT_STAGES = (cls.IDENTITY, cls.LIVENESS, cls.PRICE, cls.MIN_VOLUME)
CATEGORY_STAGES = (cls.IDENTITY, cls.LIVENESS, cls.RECENCY, cls.CATEGORY_TAGS, cls.PRICE, cls.MIN_VOLUME)
SPORT_STAGES = (cls.IDENTITY, cls.LIVENESS, cls.CATEGORY_TAGS, cls.PRICE, cls.MIN_VOLUME)
NFL_STAGES = (cls.IDENTITY, cls.LIVENESS, cls.CATEGORY_TAGS, cls.NFL_CONTENT, cls.PRICE, cls.MIN_VOLUME)
NFL_GAME_STAGES = (
    cls.IDENTITY,
    cls.LIVENESS,
    cls.CATEGORY_TAGS,
    cls.NFL_CONTENT,
    cls.WEEK,
    cls.PAST_GAME,
    cls.GAME_MARKET,
    cls.PRICE,
    cls.MIN_VOLUME,
)
KALSHI_STAGES = (cls.IDENTITY, cls.LIVENESS, cls.PRICE, cls.MIN_VOLUME)
KALSHI_NFL_GAME_STAGES = (
    cls.IDENTITY,
    cls.LIVENESS,
    cls.NFL_CONTENT,
    cls.NOT_SEASON_AWARD,
    cls.PRICE,
    cls.MIN_VOLUME,
)

GAMES_NFL_ONLY_MESSAGE = "Games are currently only available for NFL"
NO_TAG_MESSAGE = "No upstream tag found for {slug}"


@dataclass(frozen=True)
class MarketQuery:
    kind: str = "trending"
    category: str | None = None
    sport_type: str | None = None
    platform: str = "polymarket"
    week: int | None = None
    limit: int = 10
    min_volume: float | None = None
    tag_id: int | None = None

    @property
    def target(self) -> str:
        """Slug the query is about: the explicit category for kind=category, else the kind."""
        if self.kind == "category":
            return normalize_slug(self.category)
        return normalize_slug(self.kind)

    @property
    def is_nfl_games(self) -> bool:
        return self.target == "nfl" and self.sport_type == "games"

    def cache_parts(self) -> list[tuple[str, str]]:
        return [
            ("platform", self.platform),
            ("kind", self.target),
            ("sport_type", self.sport_type or ""),
            ("week", str(self.week or "")),
            ("limit", str(self.limit)),
            ("min_volume", "" if self.min_volume is None else str(self.min_volume)),
            ("tag_id", "" if self.tag_id is None else str(self.tag_id)),
        ]


@dataclass
class MarketResult:
    markets: list[Market]
    kind: str
    platform: str
    source: str
    message: str | None = None
    week: int | None = None

    def payload(self) -> dict:
        meta: dict = {
            "total": len(self.markets),
            "kind": self.kind,
            "platform": self.platform,
            "source": self.source,
        }
        if self.week is not None:
            meta["week"] = self.week
        if self.message:
            meta["message"] = self.message
        return {
            "markets": [m.model_dump(mode="json", by_alias=True) for m in self.markets],
            "meta": meta,
        }


@dataclass
class Plan:
    stages: tuple[cls.Stage, ...]
    ctx: cls.FilterContext
    sources: list[tuple[str, Callable[[], Awaitable[list[Market]]]]] = field(default_factory=list)
    broad_ctx: cls.FilterContext | None = None
    store_category: str | None = None
    use_store: bool = False
    category_label: str | None = None
    message: str | None = None


def parse_query(
    kind: str | None,
    category: str | None = None,
    sport_type: str | None = None,
    platform: str | None = None,
    week=None,
    limit=None,
    min_volume=None,
    tag_id=None,
) -> MarketQuery:
    """Validate raw request parameters into a ``MarketQuery``."""
    kind_value = normalize_slug(kind) or "trending"
    platform_value = (platform or "polymarket").strip().lower()
    if platform_value not in PLATFORMS:
        raise InvalidQuery(f"Unknown platform: {platform}")
    sport_type_value = (sport_type or "").strip().lower() or None
    if sport_type_value is not None and sport_type_value not in SPORT_TYPES:
        raise InvalidQuery(f"Unknown sportType: {sport_type}")
    if kind_value == "category" and not normalize_slug(category):
        raise InvalidQuery("kind=category requires a category parameter")

    week_value = None
    if week not in (None, ""):
        try:
            week_value = int(week)
        except (TypeError, ValueError):
            raise InvalidQuery(f"Invalid week: {week}") from None
        if not nfl.MIN_WEEK <= week_value <= nfl.MAX_WEEK:
            raise InvalidQuery(f"week must be between {nfl.MIN_WEEK} and {nfl.MAX_WEEK}")

    min_volume_value = None
    if min_volume not in (None, ""):
        try:
            min_volume_value = float(min_volume)
        except (TypeError, ValueError):
            raise InvalidQuery(f"Invalid minVolume: {min_volume}") from None
        if min_volume_value != min_volume_value:
            raise InvalidQuery(f"Invalid minVolume: {min_volume}")

    limit_value = settings.MARKETS_DEFAULT_LIMIT
    if limit not in (None, ""):
        try:
            limit_value = int(limit)
        except (TypeError, ValueError):
            raise InvalidQuery(f"Invalid limit: {limit}") from None

    tag_id_value = None
    if tag_id not in (None, ""):
        try:
            tag_id_value = int(tag_id)
        except (TypeError, ValueError):
            raise InvalidQuery(f"Invalid tagId: {tag_id}") from None

    return MarketQuery(
        kind=kind_value,
        category=normalize_slug(category) or None,
        sport_type=sport_type_value,
        platform=platform_value,
        week=week_value,
        limit=ranking.clamp_limit(limit_value),
        min_volume=min_volume_value,
        tag_id=tag_id_value,
    )


class MarketPipeline:
    def __init__(
        self,
        gamma: GammaClient | None = None,
        kalshi: KalshiClient | None = None,
        now_fn: Callable[[], datetime] | None = None,
    ) -> None:
        self.gamma = gamma or GammaClient()
        self.kalshi = kalshi or KalshiClient()
        self._now_fn = now_fn or (lambda: datetime.now(timezone.utc))

    async def run(self, query: MarketQuery, db: Session | None = None) -> MarketResult:
        plan = await self.plan(query)
        if plan.message and not plan.sources and not plan.use_store:
            return MarketResult(
                markets=[],
                kind=query.target,
                platform=query.platform,
                source="none",
                message=plan.message,
            )

        source = "live"
        candidates: list[Market] = []
        if plan.use_store and db is not None:
            candidates = self._load_store(db, plan.store_category)
            if candidates:
                source = "database"
        if not candidates:
            candidates = await self._fetch(plan.sources)

        kept, rejected = cls.apply_stages(candidates, plan.stages, plan.ctx)
        if not kept and plan.broad_ctx is not None:
            logger.info("market_pipeline_broad_pass kind=%s strict_rejected=%s", query.target, dict(rejected))
            kept, rejected = cls.apply_stages(candidates, plan.stages, plan.broad_ctx)

        markets = ranking.rank(kept, query.kind if query.kind in SORT_KINDS else "trending", query.limit)
        markets = [self._attach(m, query, plan) for m in markets]
        logger.info(
            "market_pipeline_summary kind=%s platform=%s source=%s candidates=%s kept=%s returned=%s rejected=%s",
            query.target,
            query.platform,
            source,
            len(candidates),
            len(kept),
            len(markets),
            dict(rejected),
        )
        return MarketResult(
            markets=markets,
            kind=query.target,
            platform=query.platform,
            source=source,
            message=plan.message,
            week=plan.ctx.target_week,
        )

    async def plan(self, query: MarketQuery) -> Plan:
        now = self._now_fn()
        base_ctx = cls.FilterContext(now=now, min_volume=query.min_volume)
        target = query.target

        if query.platform == "kalshi":
            stages = KALSHI_NFL_GAME_STAGES if query.is_nfl_games else KALSHI_STAGES
            return Plan(
                stages=stages,
                ctx=base_ctx,
                sources=[("kalshi:markets", lambda: self.kalshi.fetch_markets(kind=target, limit=query.limit))],
                category_label=None if target in SORT_KINDS else target,
            )

        if target in SORT_KINDS:
            return Plan(
                stages=SORT_STAGES,
                ctx=base_ctx,
                sources=self._sources(order_kind=target),
                use_store=settings.STORE_READ_ENABLED,
            )

        if target in SPORT_BY_SLUG:
            return await self._sport_plan(query, base_ctx)

        tag_id = await self._category_tag_id(target, query.tag_id)
        if tag_id is None:
            return Plan(stages=CATEGORY_STAGES, ctx=base_ctx, message=NO_TAG_MESSAGE.format(slug=target))
        return Plan(
            stages=CATEGORY_STAGES,
            ctx=replace(base_ctx, tag_ids=frozenset({tag_id})),
            sources=self._sources(tag_ids=[tag_id]),
            use_store=settings.STORE_READ_ENABLED,
            store_category=target,
            category_label=target,
        )

    async def _sport_plan(self, query: MarketQuery, base_ctx: cls.FilterContext) -> Plan:
        sport = SPORT_BY_SLUG[query.target]
        if query.sport_type == "games" and sport.slug != "nfl":
            return Plan(stages=SPORT_STAGES, ctx=base_ctx, message=GAMES_NFL_ONLY_MESSAGE)

        if query.tag_id is not None:
            resolved = query.tag_id
        else:
            resolved = resolve_sport_tag_id(sport, await self._tags())

        if sport.slug == "nfl":
            ids = [t for t in (resolved, SPORTS_TAG_ID) if t is not None]
            ids = list(dict.fromkeys(ids))
        elif resolved is not None:
            ids = [resolved]
        else:
            return Plan(stages=SPORT_STAGES, ctx=base_ctx, message=NO_TAG_MESSAGE.format(slug=sport.slug))

        ctx = replace(base_ctx, tag_ids=frozenset(ids))
        if sport.slug != "nfl":
            stages = SPORT_STAGES + ((cls.PROP_MARKET,) if query.sport_type == "props" else ())
            return Plan(stages=stages, ctx=ctx, sources=self._sources(tag_ids=ids), category_label=sport.slug)

        if query.sport_type == "games":
            target_week = query.week or nfl.current_week(base_ctx.now)
            strict = replace(ctx, target_week=target_week)
            broad = replace(
                strict,
                week_tolerance=cls.BROAD_WEEK_TOLERANCE,
                past_game_grace=cls.BROAD_PAST_GAME_GRACE,
            )
            return Plan(
                stages=NFL_GAME_STAGES,
                ctx=strict,
                broad_ctx=broad,
                sources=self._sources(tag_ids=ids),
                category_label="nfl",
            )
        stages = NFL_STAGES + ((cls.PROP_MARKET,) if query.sport_type == "props" else ())
        return Plan(stages=stages, ctx=ctx, sources=self._sources(tag_ids=ids), category_label="nfl")

    async def _category_tag_id(self, slug: str, override: int | None) -> int | None:
        if override is not None:
            return override
        static = CATEGORY_TAG_IDS.get(slug)
        if static is not None:
            return static
        return resolve_tag_id(slug, await self._tags(), aliases=CATEGORY_ALIASES.get(slug, ()))

    async def _tags(self) -> list[dict]:
        try:
            return await self.gamma.fetch_tags()
        except Exception as exc:
            logger.warning("tag_lookup_failed error=%s", exc)
            return []

    def _sources(
        self,
        tag_ids: list[int] | None = None,
        order_kind: str | None = None,
    ) -> list[tuple[str, Callable[[], Awaitable[list[Market]]]]]:
        gamma = self.gamma
        sources: list[tuple[str, Callable[[], Awaitable[list[Market]]]]] = []

        async def events(tag_id=None, order=None) -> list[Market]:
            return flatten_events(await gamma.fetch_events(tag_id=tag_id, order=order))

        async def markets(tag_id=None, order=None) -> list[Market]:
            raw = await gamma.fetch_markets(tag_id=tag_id, order=order)
            return [normalize_market(m) for m in raw if isinstance(m, dict)]

        if order_kind is not None:
            event_order = EVENT_ORDER_FIELDS.get(order_kind)
            market_order = MARKET_ORDER_FIELDS.get(order_kind)
            sources.append((f"events:{order_kind}", lambda: events(order=event_order)))
            sources.append((f"markets:{order_kind}", lambda: markets(order=market_order)))
            return sources

        for tag_id in tag_ids or []:
            sources.append((f"events:tag={tag_id}", lambda t=tag_id: events(tag_id=t)))
        for tag_id in tag_ids or []:
            sources.append((f"markets:tag={tag_id}", lambda t=tag_id: markets(tag_id=t)))
        return sources

    async def _fetch(self, sources) -> list[Market]:
        if not sources:
            return []
        results = await asyncio.gather(*(factory() for _, factory in sources), return_exceptions=True)
        merged: list[Market] = []
        failures: list[str] = []
        for (name, _), result in zip(sources, results):
            if isinstance(result, Exception):
                logger.warning("upstream_source_failed source=%s error=%s", name, result)
                failures.append(name)
                continue
            if isinstance(result, BaseException):
                raise result
            merged.extend(result)
        if len(failures) == len(sources):
            raise FetchError("Failed to fetch markets from upstream", details={"sources": failures})
        return merged

    def _load_store(self, db: Session, category: str | None) -> list[Market]:
        try:
            return store.load_fresh_markets(db, category=category, now=self._now_fn())
        except Exception:
            logger.exception("store_read_failed category=%s", category)
            db.rollback()
            return []

    def _attach(self, market: Market, query: MarketQuery, plan: Plan) -> Market:
        update: dict = {}
        if plan.category_label:
            update["category"] = plan.category_label
        if query.is_nfl_games and query.platform == "polymarket":
            update["sports_week"] = cls.market_week(market) or plan.ctx.target_week
        return market.model_copy(update=update) if update else market
