import asyncio
import logging
import threading
import time
from contextlib import asynccontextmanager

from .settings import settings

logger = logging.getLogger(__name__)


class CircuitBreaker:
    def __init__(self, name: str, max_failures: int, reset_seconds: int) -> None:
        self.name = name
        self.max_failures = max(int(max_failures), 1)
        self.reset_seconds = max(int(reset_seconds), 1)
        self._failures = 0
        self._opened_at: float | None = None
        self._lock = threading.Lock()

    def allow(self) -> bool:
        with self._lock:
            if self._opened_at is None:
                return True
            if time.monotonic() - self._opened_at >= self.reset_seconds:
                self._failures = 0
                self._opened_at = None
                return True
            return False

    def record_success(self) -> None:
        with self._lock:
            self._failures = 0
            self._opened_at = None

    def record_failure(self) -> None:
        with self._lock:
            self._failures += 1
            if self._failures >= self.max_failures:
                if self._opened_at is None:
                    self._opened_at = time.monotonic()
                    logger.warning("circuit_opened name=%s failures=%s", self.name, self._failures)

    def state(self) -> str:
        with self._lock:
            if self._opened_at is None:
                return "closed"
            if time.monotonic() - self._opened_at >= self.reset_seconds:
                return "half_open"
            return "open"


def _async_semaphore(limit: int | None) -> asyncio.Semaphore | None:
    if limit is None or limit <= 0:
        return None
    return asyncio.Semaphore(limit)


@asynccontextmanager
async def async_limited(semaphore: asyncio.Semaphore | None):
    if semaphore is None:
        yield
        return
    async with semaphore:
        yield


POLYMARKET_SEMAPHORE = _async_semaphore(settings.EXTERNAL_MAX_CONCURRENT_POLY_CALLS)
KALSHI_SEMAPHORE = _async_semaphore(settings.EXTERNAL_MAX_CONCURRENT_KALSHI_CALLS)

POLYMARKET_BREAKER = CircuitBreaker(
    "polymarket",
    settings.POLY_CIRCUIT_MAX_FAILURES,
    settings.POLY_CIRCUIT_RESET_SECONDS,
)
KALSHI_BREAKER = CircuitBreaker(
    "kalshi",
    settings.KALSHI_CIRCUIT_MAX_FAILURES,
    settings.KALSHI_CIRCUIT_RESET_SECONDS,
)

BREAKERS = {breaker.name: breaker for breaker in (POLYMARKET_BREAKER, KALSHI_BREAKER)}


def upstream_states() -> dict[str, str]:
    return {name: breaker.state() for name, breaker in BREAKERS.items()}
