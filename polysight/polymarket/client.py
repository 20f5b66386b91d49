import logging
import time
from typing import Any

import httpx

from ..external import POLYMARKET_BREAKER, POLYMARKET_SEMAPHORE, async_limited
from ..http_logging import log_upstream_response
from ..settings import settings

logger = logging.getLogger(__name__)

EVENT_ORDER_FIELDS = {
    "trending": "volume24hr",
    "breaking": "volume24hr",
    "volume": "volume",
    "new": "createdAt",
}
MARKET_ORDER_FIELDS = {
    "trending": "volume24hr",
    "breaking": "volume24hr",
    "volume": "volumeNum",
    "new": "createdAt",
}


class UpstreamError(Exception):
    """One upstream request failed: network, circuit open, non-2xx or malformed body."""

    def __init__(self, source: str, reason: str) -> None:
        super().__init__(f"{source}: {reason}")
        self.source = source
        self.reason = reason


class GammaClient:
    """
    Thin async client for the Polymarket Gamma catalog API.

    - GET /events?closed=false[&tag_id=N][&order=F&ascending=false]
    - GET /markets?closed=false&active=true[&tag_id=N][&order=F]
    - GET /tags
    Each event carries a ``markets`` list; list-valued market fields such as
    ``outcomePrices`` are usually JSON-encoded strings.
    """

    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.POLYMARKET_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS

    async def fetch_events(
        self,
        tag_id: int | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        params = _listing_params(limit or settings.POLY_EVENTS_LIMIT, order)
        if tag_id is not None:
            params["tag_id"] = str(tag_id)
        data = await self._get_json("/events", params, source=f"events:{tag_id or order or 'all'}")
        return _as_records(data, "events")

    async def fetch_markets(
        self,
        tag_id: int | None = None,
        order: str | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        params = _listing_params(limit or settings.POLY_MARKETS_LIMIT, order)
        params["active"] = "true"
        if tag_id is not None:
            params["tag_id"] = str(tag_id)
        data = await self._get_json("/markets", params, source=f"markets:{tag_id or order or 'all'}")
        return _as_records(data, "markets")

    async def fetch_tags(self) -> list[dict]:
        data = await self._get_json("/tags", {}, source="tags")
        return [tag for tag in _as_records(data, "tags") if isinstance(tag, dict)]

    async def _get_json(self, path: str, params: dict[str, str], source: str) -> Any:
        if not POLYMARKET_BREAKER.allow():
            raise UpstreamError(source, "circuit_open")
        url = f"{self.base_url}{path}"
        async with async_limited(POLYMARKET_SEMAPHORE):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    started = time.monotonic()
                    r = await client.get(url, params=params)
                    log_upstream_response(r, started, upstream="polymarket", fetch=source)
                    r.raise_for_status()
                    data = r.json()
            except httpx.HTTPStatusError as exc:
                POLYMARKET_BREAKER.record_failure()
                raise UpstreamError(source, f"status_{exc.response.status_code}") from exc
            except httpx.HTTPError as exc:
                POLYMARKET_BREAKER.record_failure()
                raise UpstreamError(source, type(exc).__name__) from exc
            except ValueError as exc:
                POLYMARKET_BREAKER.record_failure()
                raise UpstreamError(source, "malformed_json") from exc
        POLYMARKET_BREAKER.record_success()
        return data


def _listing_params(limit: int, order: str | None) -> dict[str, str]:
    params: dict[str, str] = {
        "closed": "false",
        "limit": str(max(int(limit), 1)),
    }
    if order:
        params["order"] = order
        params["ascending"] = "false"
    return params


def _as_records(data: Any, key: str) -> list:
    if isinstance(data, list):
        return data
    if isinstance(data, dict):
        records = data.get(key) or data.get("data") or []
        return records if isinstance(records, list) else []
    return []
