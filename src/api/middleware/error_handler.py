"""
Global error handling middleware for the FastAPI application.

Typed translation failures keep their HTTP status and code; every error
leaves the API in the same ``{detail, code, timestamp}`` envelope.
"""

import logging
from datetime import UTC, datetime

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from src.core.exceptions import RateLimitedError, TransRelayError
from src.core.models import ErrorClassification, ErrorResponse
from src.services.recovery import decide_recovery

logger = logging.getLogger(__name__)


def _envelope(status_code: int, detail: str, code: str, timestamp: str | None = None, **kwargs):
    body = ErrorResponse(
        detail=detail,
        code=code,
        timestamp=timestamp or datetime.now(UTC).isoformat(),
    )
    return JSONResponse(status_code=status_code, content=body.model_dump(), **kwargs)


def _format_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(p) for p in error.get("loc", ()) if p != "body")
        parts.append(f"{location}: {error.get('msg', 'invalid')}" if location else error.get("msg", ""))
    return "; ".join(parts) or "Invalid request"


def register_error_handlers(app: FastAPI) -> None:
    """Attach exception handlers to the FastAPI application.

    1. ``TransRelayError``: domain status and code; rate limits add a
       ``Retry-After`` header matching the recovery delay.
    2. ``RequestValidationError``: 422 with field-level messages.
    3. ``Exception``: 500 without internals.
    """

    @app.exception_handler(TransRelayError)
    async def transrelay_error_handler(request: Request, exc: TransRelayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.warning("%s %s failed: %s", request.method, request.url.path, exc.detail)
        headers = None
        if isinstance(exc, RateLimitedError):
            delay = decide_recovery(ErrorClassification.api_limit).delay
            headers = {"Retry-After": str(int(delay))}
        return _envelope(exc.status_code, exc.detail, exc.code, exc.timestamp, headers=headers)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(
        _request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return _envelope(422, _format_validation_errors(exc), "VALIDATION_ERROR")

    @app.exception_handler(Exception)
    async def generic_error_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _envelope(500, "Internal server error", "INTERNAL_ERROR")
