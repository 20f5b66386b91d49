import hashlib
import json
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Callable

import redis
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from fastapi.encoders import jsonable_encoder

from .settings import settings

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache"


class MemoryResponseCache:
    """
    Bounded LRU with a per-entry TTL.

    Scoped to one process: separate instances never see each other's
    entries. Reads and writes happen on the event loop thread.
    """

    def __init__(
        self,
        capacity: int,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.capacity = max(int(capacity), 1)
        self.ttl_seconds = max(float(ttl_seconds), 0.0)
        self._clock = clock
        self._entries: OrderedDict[str, tuple[float, Any]] = OrderedDict()

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            self._entries.pop(key, None)
            return None
        self._entries.move_to_end(key)
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock() + self.ttl_seconds, value)
        self._entries.move_to_end(key)
        while len(self._entries) > self.capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("cache_evicted key=%s", evicted)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


class RedisResponseCache:
    def __init__(self, redis_conn, ttl_seconds: float) -> None:
        self.redis_conn = redis_conn
        self.ttl_ms = max(int(float(ttl_seconds) * 1000), 1)

    def get(self, key: str) -> Any | None:
        try:
            raw = self.redis_conn.get(key)
        except Exception:
            logger.exception("cache_read_failed key=%s", key)
            return None
        if not raw:
            return None
        try:
            if isinstance(raw, (bytes, bytearray)):
                raw = raw.decode()
            return json.loads(raw)
        except (UnicodeDecodeError, json.JSONDecodeError):
            return None

    def set(self, key: str, value: Any) -> None:
        try:
            self.redis_conn.set(
                key,
                json.dumps(jsonable_encoder(value), ensure_ascii=True),
                px=self.ttl_ms,
            )
        except Exception:
            logger.exception("cache_write_failed key=%s", key)

    def clear(self) -> None:
        pattern = f"{CACHE_PREFIX}:*"
        try:
            keys = list(self.redis_conn.scan_iter(match=pattern))
            if keys:
                self.redis_conn.delete(*keys)
        except Exception:
            logger.exception("cache_clear_failed")


_markets_cache: MemoryResponseCache | RedisResponseCache | None = None
_markets_cache_lock = threading.Lock()


def get_markets_cache() -> MemoryResponseCache | RedisResponseCache:
    global _markets_cache
    with _markets_cache_lock:
        if _markets_cache is None:
            if settings.MARKETS_CACHE_BACKEND == "redis":
                _markets_cache = RedisResponseCache(
                    redis.from_url(settings.REDIS_URL),
                    settings.MARKETS_CACHE_TTL_SECONDS,
                )
            else:
                _markets_cache = MemoryResponseCache(
                    settings.MARKETS_CACHE_CAPACITY,
                    settings.MARKETS_CACHE_TTL_SECONDS,
                )
        return _markets_cache


def reset_markets_cache() -> None:
    global _markets_cache
    with _markets_cache_lock:
        _markets_cache = None


def build_cache_key_from_parts(
    prefix: str,
    path: str,
    query_items: list[tuple[str, str]] | None = None,
) -> str:
    raw_parts = [f"path={path}"]
    if query_items:
        normalized = "&".join(f"{key}={value}" for key, value in sorted(query_items))
        raw_parts.append(f"query={normalized}")
    raw = "|".join(raw_parts)
    digest = hashlib.sha256(raw.encode("utf-8")).hexdigest()
    return f"{CACHE_PREFIX}:{prefix}:{digest}"


def apply_cache_headers(
    response: Response,
    *,
    etag: str | None,
    max_age: int,
    private: bool = False,
) -> None:
    scope = "private" if private else "public"
    response.headers["Cache-Control"] = f"{scope}, max-age={max(max_age, 0)}"
    if etag:
        response.headers["ETag"] = f"\"{etag}\""


def compute_etag(payload: Any) -> str:
    raw = json.dumps(jsonable_encoder(payload), ensure_ascii=True, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def etag_json_response(request: Request, payload: Any, *, max_age: int, private: bool = False) -> Response:
    normalized = jsonable_encoder(payload)
    etag = compute_etag(normalized)
    if _etag_matches(request.headers.get("if-none-match"), etag):
        response = Response(status_code=304)
    else:
        response = JSONResponse(content=normalized)
    apply_cache_headers(response, etag=etag, max_age=max_age, private=private)
    return response


def _etag_matches(header: str | None, etag: str) -> bool:
    if not header:
        return False
    candidates = [part.strip().removeprefix("W/").strip('"') for part in header.split(",")]
    return etag in candidates or "*" in candidates
