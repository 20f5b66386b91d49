import logging

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ...cache import build_cache_key_from_parts, etag_json_response, get_markets_cache
from ...core import store
from ...core.pipeline import MarketPipeline, parse_query
from ...db import get_db
from ...errors import MARKET_NOT_FOUND, PolysightError, error_response
from ...settings import settings

logger = logging.getLogger(__name__)

router = APIRouter()


def get_pipeline() -> MarketPipeline:
    return MarketPipeline()


@router.get("/markets")
async def list_markets(
    request: Request,
    kind: str | None = None,
    category: str | None = None,
    limit: str | None = None,
    sport_type: str | None = Query(default=None, alias="sportType"),
    platform: str | None = None,
    week: str | None = None,
    min_volume: str | None = Query(default=None, alias="minVolume"),
    tag_id: str | None = Query(default=None, alias="tagId"),
    db: Session = Depends(get_db),
    pipeline: MarketPipeline = Depends(get_pipeline),
):
    max_age = int(settings.MARKETS_CACHE_TTL_SECONDS)
    try:
        query = parse_query(
            kind,
            category=category,
            sport_type=sport_type,
            platform=platform,
            week=week,
            limit=limit,
            min_volume=min_volume,
            tag_id=tag_id,
        )
        cache = get_markets_cache() if query.limit <= settings.MARKETS_CACHE_MAX_LIMIT else None
        cache_key = build_cache_key_from_parts("markets", "/markets", query.cache_parts())
        if cache is not None:
            cached = cache.get(cache_key)
            if cached is not None:
                request.state.cache_status = "hit"
                request.state.market_source = cached.get("meta", {}).get("source", "none")
                return etag_json_response(request, cached, max_age=max_age)

        result = await pipeline.run(query, db)
    except PolysightError as exc:
        request.state.cache_status = "miss"
        logger.warning("markets_request_failed code=%s message=%s", exc.code, exc.message)
        return error_response(exc.code, exc.message, exc.status_code, exc.details, markets=[])

    payload = result.payload()
    request.state.cache_status = "miss" if cache is not None else "bypass"
    request.state.market_source = result.source
    if cache is not None:
        cache.set(cache_key, payload)
    return etag_json_response(request, payload, max_age=max_age)


@router.get("/markets/{market_id}")
def market_detail(market_id: str, request: Request, db: Session = Depends(get_db)):
    market = store.get_market(db, market_id)
    if market is None:
        return error_response(
            MARKET_NOT_FOUND,
            f"Market {market_id} not found",
            404,
            {"market_id": market_id},
        )
    request.state.market_source = "database"
    return {"market": market.model_dump(mode="json", by_alias=True)}
