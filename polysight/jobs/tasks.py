import json
import logging
import os
from datetime import datetime, timezone

import redis
from sqlalchemy.orm import Session

from ..core import store
from ..core.categories import tag_categories
from ..core.classification import IDENTITY, LIVENESS, PRICE, FilterContext, apply_stages
from ..core.normalize import flatten_events, normalize_market
from ..core.tags import CATEGORIES, CATEGORY_ALIASES, CATEGORY_BY_SLUG, normalize_slug, resolve_tag_id
from ..errors import InvalidCategory
from ..polymarket.client import GammaClient, UpstreamError
from ..settings import settings

logger = logging.getLogger(__name__)
redis_conn = redis.from_url(settings.REDIS_URL)
SYNC_LOCK_KEY = "lock:sync"
SYNC_LAST_TS_KEY = "sync:last_ts"
SYNC_LAST_RESULT_KEY = "sync:last_result"

SYNC_STAGES = (IDENTITY, LIVENESS, PRICE)


def sync_targets(category: str | None) -> list[str]:
    if category is None:
        return [c.slug for c in CATEGORIES if c.is_category]
    slug = normalize_slug(category)
    known = CATEGORY_BY_SLUG.get(slug)
    if known is None or not known.is_category:
        raise InvalidCategory(f"Unknown category: {category}", details={"category": category})
    return [slug]


async def run_sync(db: Session, category: str | None = None, sync_categories: bool = True) -> dict:
    targets = sync_targets(category)
    started_at = datetime.now(timezone.utc)
    result: dict = {"ok": False, "categories": {}}
    lock_value = f"{os.getpid()}:{started_at.isoformat()}"
    try:
        locked = redis_conn.set(SYNC_LOCK_KEY, lock_value, nx=True, ex=settings.SYNC_LOCK_TTL_SECONDS)
    except Exception:
        logger.exception("sync_lock_failed")
        locked = True
    if not locked:
        logger.info("sync_skipped reason=lock_held")
        result["reason"] = "sync_locked"
        return result

    try:
        client = GammaClient()
        tags: list[dict] = []
        if sync_categories or any(CATEGORY_BY_SLUG[slug].tag_id is None for slug in targets):
            try:
                tags = await client.fetch_tags()
            except UpstreamError as exc:
                logger.warning("sync_tags_failed reason=%s", exc.reason)

        tag_ids = {slug: _category_tag_id(slug, tags) for slug in targets}
        if sync_categories:
            result["category_rows"] = store.upsert_categories(db, category_rows(tags, started_at))
            db.commit()

        failures = 0
        for slug in targets:
            tag_id = tag_ids[slug]
            if tag_id is None:
                logger.warning("sync_category_skipped category=%s reason=no_tag", slug)
                result["categories"][slug] = {"skipped": "no_tag"}
                continue
            try:
                counts = await sync_category(db, client, slug, tag_id, started_at)
            except UpstreamError as exc:
                db.rollback()
                failures += 1
                logger.warning("sync_category_failed category=%s reason=%s", slug, exc.reason)
                result["categories"][slug] = {"error": exc.reason}
                continue
            result["categories"][slug] = counts

        result["ok"] = failures < len(targets)
        if not result["ok"]:
            result["error"] = "sync_failed"
        return result
    except Exception:
        logger.exception("sync_failed")
        db.rollback()
        result["error"] = "sync_failed"
        raise
    finally:
        result["ts"] = datetime.now(timezone.utc).isoformat()
        try:
            current = redis_conn.get(SYNC_LOCK_KEY)
            if current and _decode(current) == lock_value:
                redis_conn.delete(SYNC_LOCK_KEY)
        except Exception:
            logger.exception("sync_lock_release_failed")
        try:
            redis_conn.set(SYNC_LAST_TS_KEY, result["ts"])
            redis_conn.set(SYNC_LAST_RESULT_KEY, json.dumps(result, ensure_ascii=True))
        except Exception:
            logger.exception("sync_status_update_failed")


async def sync_category(
    db: Session,
    client: GammaClient,
    slug: str,
    tag_id: int,
    synced_at: datetime,
) -> dict:
    """Store live events for one tag, then the tag's markets that no event covered."""
    ctx = FilterContext(now=synced_at)
    events = await client.fetch_events(tag_id=tag_id)

    event_rows: list[dict] = []
    kept_markets = []
    covered: set[str] = set()
    for event in events:
        if not isinstance(event, dict):
            continue
        markets = flatten_events([event])
        covered.update(m.dedupe_key for m in markets)
        kept, _ = apply_stages(markets, SYNC_STAGES, ctx)
        if not kept:
            continue
        if event.get("id") is not None:
            event_rows.append(store.event_row(event, synced_at))
        kept_markets.extend(kept)

    try:
        direct = await client.fetch_markets(tag_id=tag_id)
    except UpstreamError as exc:
        logger.warning("sync_direct_markets_failed category=%s tag_id=%s reason=%s", slug, tag_id, exc.reason)
        direct = []
    uncovered = [
        market
        for market in (normalize_market(raw) for raw in direct if isinstance(raw, dict))
        if market.dedupe_key not in covered
    ]
    kept_direct, _ = apply_stages(uncovered, SYNC_STAGES, ctx)
    kept_markets.extend(kept_direct)

    history_rows = [row for m in kept_markets for row in store.price_history_rows(m, synced_at)]
    counts = {
        "events": store.upsert_events(db, event_rows),
        "markets": store.upsert_markets(db, [store.market_row(m, slug, synced_at) for m in kept_markets]),
        "price_history": store.upsert_price_history(db, history_rows),
        "direct_markets": len(kept_direct),
    }
    db.commit()
    logger.info(
        "sync_category_done category=%s tag_id=%s events=%s markets=%s direct=%s",
        slug,
        tag_id,
        counts["events"],
        counts["markets"],
        counts["direct_markets"],
    )
    return counts


def category_rows(tags: list[dict], synced_at: datetime) -> list[dict]:
    rows = []
    for category in CATEGORIES:
        tag_id = category.tag_id
        if tag_id is None and category.is_category:
            tag_id = resolve_tag_id(category.slug, tags, aliases=CATEGORY_ALIASES.get(category.slug, ()))
        rows.append(
            {
                "id": category.slug,
                "tag_id": str(tag_id) if tag_id is not None else None,
                "label": category.label,
                "slug": category.slug,
                "is_sort": category.is_sort,
                "is_category": category.is_category,
                "order_index": category.order_index,
                "synced_at": synced_at,
            }
        )
    for extra in tag_categories(tags, seen={c.slug for c in CATEGORIES}):
        rows.append(
            {
                "id": str(extra.tag_id),
                "tag_id": str(extra.tag_id),
                "label": extra.label,
                "slug": extra.slug,
                "is_sort": False,
                "is_category": True,
                "order_index": extra.order_index,
                "synced_at": synced_at,
            }
        )
    return rows


def _category_tag_id(slug: str, tags: list[dict]) -> int | None:
    static = CATEGORY_BY_SLUG[slug].tag_id
    if static is not None:
        return static
    return resolve_tag_id(slug, tags, aliases=CATEGORY_ALIASES.get(slug, ()))


def _decode(value) -> str:
    if isinstance(value, (bytes, bytearray)):
        return value.decode()
    return str(value)
