from datetime import datetime, timezone
from typing import Iterable

from ..polymarket.schemas import Market

MIN_LIMIT = 1
MAX_LIMIT = 10000
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def dedupe(markets: Iterable[Market]) -> list[Market]:
    """Drop repeated ids, keeping the first occurrence."""
    seen: set[str] = set()
    unique: list[Market] = []
    for market in markets:
        key = market.dedupe_key
        if not key or key in seen:
            continue
        seen.add(key)
        unique.append(market)
    return unique


def clamp_limit(limit, default: int = 10) -> int:
    try:
        value = int(limit)
    except (TypeError, ValueError):
        value = default
    return min(max(value, MIN_LIMIT), MAX_LIMIT)


def sort_markets(markets: list[Market], kind: str) -> list[Market]:
    if kind == "volume":
        return sorted(markets, key=lambda m: m.volume, reverse=True)
    if kind == "new":
        return sorted(markets, key=_recency_key, reverse=True)
    return sorted(markets, key=lambda m: (m.volume24hr, m.volume), reverse=True)


def rank(markets: Iterable[Market], kind: str, limit: int) -> list[Market]:
    return sort_markets(dedupe(markets), kind)[: clamp_limit(limit)]


def _recency_key(market: Market) -> tuple[int, datetime]:
    ts = market.created_at or market.start_date or market.event_start_date
    if ts is None:
        return (0, _EPOCH)
    return (1, ts)
