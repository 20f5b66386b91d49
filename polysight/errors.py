from datetime import datetime, timezone
from typing import Any

from fastapi.responses import JSONResponse

INVALID_INPUT = "invalid_input"
INVALID_CATEGORY = "invalid_category"
FETCH_FAILED = "fetch_failed"
MARKET_NOT_FOUND = "market_not_found"
SYNC_FAILED = "sync_failed"
SYNC_LOCKED = "sync_locked"
UNAUTHORIZED = "unauthorized"
INTERNAL_ERROR = "internal_error"
METHOD_NOT_ALLOWED = "method_not_allowed"


class PolysightError(Exception):
    code = INTERNAL_ERROR
    status_code = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details


class FetchError(PolysightError):
    """Every upstream source of a request failed."""

    code = FETCH_FAILED
    status_code = 503


class InvalidCategory(PolysightError):
    code = INVALID_CATEGORY
    status_code = 400


class InvalidQuery(PolysightError):
    code = INVALID_INPUT
    status_code = 400


def error_payload(code: str, message: str, details: Any = None, **extra: Any) -> dict:
    payload = {
        "error": code,
        "message": message,
        "details": details,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
    payload.update(extra)
    return payload


def error_response(
    code: str,
    message: str,
    status_code: int,
    details: Any = None,
    **extra: Any,
) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=error_payload(code, message, details, **extra),
    )
