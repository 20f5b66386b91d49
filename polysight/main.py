import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api.router import api_router
from .errors import (
    INTERNAL_ERROR,
    INVALID_INPUT,
    METHOD_NOT_ALLOWED,
    UNAUTHORIZED,
    PolysightError,
    error_response,
)
from .logging import configure_logging
from .request_logging import RequestLoggingMiddleware
from .settings import settings

configure_logging()
logger = logging.getLogger(__name__)

_HTTP_ERROR_CODES = {
    401: UNAUTHORIZED,
    403: UNAUTHORIZED,
    404: "not_found",
    405: METHOD_NOT_ALLOWED,
}

app = FastAPI(
    title="Polysight",
    description="Live prediction-market feed for Polymarket and Kalshi.",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ALLOW_ORIGINS,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
)
app.add_middleware(RequestLoggingMiddleware)
app.include_router(api_router)


@app.exception_handler(PolysightError)
async def polysight_error_handler(request: Request, exc: PolysightError):
    logger.warning("request_failed path=%s code=%s message=%s", request.url.path, exc.code, exc.message)
    return error_response(exc.code, exc.message, exc.status_code, exc.details)


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    code = _HTTP_ERROR_CODES.get(exc.status_code, "http_error")
    return error_response(code, str(exc.detail), exc.status_code)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    details = [{"loc": list(err.get("loc", ())), "msg": err.get("msg")} for err in exc.errors()]
    return error_response(INVALID_INPUT, "Invalid request parameters", 400, details)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception("unhandled_error path=%s", request.url.path)
    return error_response(INTERNAL_ERROR, "Internal server error", 500)


def serve() -> None:
    import uvicorn

    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT, log_config=None)


if __name__ == "__main__":
    serve()
