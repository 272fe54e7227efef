"""API error handling middleware — consistent error responses.

Registers FastAPI exception handlers that convert domain exceptions into
standardised ``{"error": {"code": "...", "message": "..."}}`` JSON responses.

Status code mapping:
- ``SessionNotFoundError`` → 404 Not Found
- ``OriginNotAllowedError`` → 403 Forbidden
- ``RateLimitedError`` → 429 Too Many Requests, with ``Retry-After``
- ``ValueError`` → 400 Bad Request
- Any other ``Exception`` → 500 Internal Server Error
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from orion.api.models import ErrorDetail, ErrorResponse
from orion.api.security import OriginNotAllowedError, RateLimitedError, retry_after_header
from orion.core.sessions import SessionNotFoundError

logger = logging.getLogger(__name__)


async def _handle_session_not_found(
    request: Request,
    exc: SessionNotFoundError,
) -> JSONResponse:
    """Return 404 when a session id is unknown."""
    logger.info("Session not found: %s", exc.session_id)
    body = ErrorResponse(error=ErrorDetail(code="SESSION_NOT_FOUND", message=str(exc)))
    return JSONResponse(status_code=404, content=body.model_dump())


async def _handle_origin_not_allowed(
    request: Request,
    exc: OriginNotAllowedError,
) -> JSONResponse:
    """Return 403 for requests from origins outside the allowlist."""
    body = ErrorResponse(error=ErrorDetail(code="ORIGIN_NOT_ALLOWED", message=str(exc)))
    return JSONResponse(status_code=403, content=body.model_dump())


async def _handle_rate_limited(
    request: Request,
    exc: RateLimitedError,
) -> JSONResponse:
    """Return 429 once a client has spent its budget."""
    body = ErrorResponse(error=ErrorDetail(code="RATE_LIMITED", message=str(exc)))
    return JSONResponse(
        status_code=429,
        content=body.model_dump(),
        headers={"Retry-After": retry_after_header(exc)},
    )


async def _handle_value_error(
    request: Request,
    exc: ValueError,
) -> JSONResponse:
    """Return 400 for validation / value errors."""
    logger.info("Validation error: %s", exc)
    body = ErrorResponse(error=ErrorDetail(code="VALIDATION_ERROR", message=str(exc)))
    return JSONResponse(status_code=400, content=body.model_dump())


class CatchAllErrorMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that catches any unhandled exception and returns a 500."""

    async def dispatch(self, request: Request, call_next):
        try:
            return await call_next(request)
        except Exception:
            logger.error(
                "Unhandled exception on %s %s",
                request.method,
                request.url.path,
                exc_info=True,
            )
            body = ErrorResponse(
                error=ErrorDetail(code="INTERNAL_ERROR", message="Internal server error")
            )
            return JSONResponse(status_code=500, content=body.model_dump())


def register_error_handlers(app: FastAPI) -> None:
    """Attach all exception handlers to the FastAPI application."""
    app.add_exception_handler(SessionNotFoundError, _handle_session_not_found)  # type: ignore[arg-type]
    app.add_exception_handler(OriginNotAllowedError, _handle_origin_not_allowed)  # type: ignore[arg-type]
    app.add_exception_handler(RateLimitedError, _handle_rate_limited)  # type: ignore[arg-type]
    app.add_exception_handler(ValueError, _handle_value_error)  # type: ignore[arg-type]
    app.add_middleware(CatchAllErrorMiddleware)
