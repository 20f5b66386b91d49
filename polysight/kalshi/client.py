import logging
import time

import httpx

from ..core.normalize import parse_amount, parse_float, parse_ts
from ..core.tags import SORT_KINDS
from ..external import KALSHI_BREAKER, KALSHI_SEMAPHORE, async_limited
from ..http_logging import log_upstream_response
from ..polymarket.client import UpstreamError
from ..polymarket.schemas import Market
from ..settings import settings

logger = logging.getLogger(__name__)

DEFAULT_CENTS = 50.0
OPEN_STATUSES = {"open", "active", "initialized"}
CLOSED_STATUSES = {"closed", "resolved", "settled", "finalized", "determined"}
RESOLVED_STATUSES = {"resolved", "settled", "finalized", "determined"}


class KalshiClient:
    def __init__(self, base_url: str | None = None, timeout: float | None = None):
        self.base_url = (base_url or settings.KALSHI_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.HTTP_TIMEOUT_SECONDS

    async def fetch_markets(self, kind: str = "trending", limit: int = 1000) -> list[Market]:
        params: dict[str, str] = {
            "limit": str(min(max(int(limit), 1), settings.KALSHI_MAX_LIMIT)),
            "status": "open",
        }
        if kind and kind not in SORT_KINDS:
            params["category"] = kind

        if not KALSHI_BREAKER.allow():
            raise UpstreamError("kalshi:markets", "circuit_open")
        url = f"{self.base_url}/markets"
        async with async_limited(KALSHI_SEMAPHORE):
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    started = time.monotonic()
                    r = await client.get(url, params=params)
                    log_upstream_response(r, started, upstream="kalshi", fetch="markets")
                    r.raise_for_status()
                    data = r.json()
            except httpx.HTTPStatusError as exc:
                KALSHI_BREAKER.record_failure()
                raise UpstreamError("kalshi:markets", f"status_{exc.response.status_code}") from exc
            except httpx.HTTPError as exc:
                KALSHI_BREAKER.record_failure()
                raise UpstreamError("kalshi:markets", type(exc).__name__) from exc
            except ValueError as exc:
                KALSHI_BREAKER.record_failure()
                raise UpstreamError("kalshi:markets", "malformed_json") from exc
        KALSHI_BREAKER.record_success()

        if isinstance(data, list):
            raw_markets = data
        elif isinstance(data, dict):
            raw_markets = data.get("markets") or data.get("items") or []
        else:
            raw_markets = []
        markets = [normalize_kalshi_market(m) for m in raw_markets if isinstance(m, dict)]
        logger.info("kalshi_markets_fetched count=%s kind=%s", len(markets), kind)
        return markets


def normalize_kalshi_market(raw: dict) -> Market:
    """
    Map a Kalshi market onto the canonical schema.

    Kalshi quotes yes/no bids in integer cents. Each side falls back to 50
    when missing or zero, then the pair is renormalized to sum to 1.
    """
    yes = _cents(raw.get("yes_bid")) / 100.0
    no = _cents(raw.get("no_bid")) / 100.0
    total = yes + no
    yes_price = yes / total if total > 0 else 0.5
    no_price = no / total if total > 0 else 0.5

    status = str(raw.get("status") or "").lower()
    market_id = str(raw.get("ticker") or raw.get("market_id") or raw.get("event_ticker") or "")
    return Market(
        id=market_id,
        condition_id=_str_or_none(raw.get("event_ticker") or raw.get("market_id")),
        question=str(raw.get("title") or raw.get("event_title") or raw.get("subtitle") or "Unknown Market"),
        slug=str(raw.get("ticker") or raw.get("series_ticker") or ""),
        image=_str_or_none(raw.get("image_url")),
        outcomes=["Yes", "No"],
        outcome_prices=[yes_price, no_price],
        volume=parse_amount(raw.get("volume")),
        volume24hr=parse_amount(raw.get("volume_24h") or raw.get("volume")),
        liquidity=parse_amount(raw.get("liquidity")),
        active=status in OPEN_STATUSES,
        closed=status in CLOSED_STATUSES,
        resolved=status in RESOLVED_STATUSES,
        created_at=parse_ts(raw.get("created_time")),
        end_date=parse_ts(raw.get("close_time")),
        event_id=_str_or_none(raw.get("event_id")),
        event_title=_str_or_none(raw.get("event_title")),
        event_slug=_str_or_none(raw.get("series_ticker")),
        event_image=_str_or_none(raw.get("image_url")),
        event_start_date=parse_ts(raw.get("open_time")),
        event_end_date=parse_ts(raw.get("close_time")),
        platform="kalshi",
    )


def _cents(value) -> float:
    cents = parse_float(value)
    return cents if cents > 0 else DEFAULT_CENTS


def _str_or_none(value) -> str | None:
    if value is None or value == "":
        return None
    return str(value)
