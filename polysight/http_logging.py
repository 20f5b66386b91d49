import logging
import time

import httpx

from .settings import settings

logger = logging.getLogger("polysight.upstream")


def log_upstream_response(response: httpx.Response, started: float, *, upstream: str, fetch: str) -> None:
    """Warn about an upstream response that failed or came back slower than the threshold."""
    latency_ms = int((time.monotonic() - started) * 1000)
    slow_ms = int(max(settings.UPSTREAM_SLOW_SECONDS, 0.0) * 1000)
    slow = slow_ms > 0 and latency_ms >= slow_ms
    if response.is_success and not slow:
        return
    if response.is_success:
        outcome = "slow"
    else:
        outcome = "error_slow" if slow else "error"
    logger.warning(
        "upstream_%s upstream=%s fetch=%s path=%s status=%s latency_ms=%s",
        outcome,
        upstream,
        fetch,
        response.request.url.path,
        response.status_code,
        latency_ms,
    )
