"""
api/errors.py -- Exception handlers and the uniform error envelope.

All handlers return the same ErrorResponse envelope so API clients can parse
errors uniformly without inspecting status codes to choose a schema:

    {"error": {"code": "...", "message": "...", "detail": null}}

Mapping:
  HerdCareError          -> its own status_code / code (auth/errors.py)
  RequestValidationError -> 400 validation_failed
  RateLimitExceeded      -> 429 rate_limited (+ Retry-After)
  HTTPException          -> its status code
  anything else          -> 500 internal_error, logged, no internals in the body

StorageUnavailable is a HerdCareError with status 500, so a database outage
can never masquerade as a 401/403.
"""

from __future__ import annotations

import logging

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from slowapi.errors import RateLimitExceeded

from api.models import ErrorDetail, ErrorResponse
from auth.errors import HerdCareError

logger = logging.getLogger("herdcare.api")


def error_response(status_code: int, code: str, message: str, detail: str | None = None) -> JSONResponse:
    resp = JSONResponse(
        status_code=status_code,
        content=ErrorResponse(error=ErrorDetail(code=code, message=message, detail=detail)).model_dump(),
    )
    return resp


def herdcare_error_response(exc: HerdCareError) -> JSONResponse:
    """Render a domain error. Auth responses must never be cached."""
    resp = error_response(exc.status_code, exc.code, exc.message)
    resp.headers["Cache-Control"] = "no-store"
    return resp


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(HerdCareError)
    async def herdcare_error_handler(request: Request, exc: HerdCareError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s %s (%s)", exc.code, request.method, request.url.path, exc.detail)
        return herdcare_error_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        """Return 400 with a structured error when the body or query params fail validation."""
        return error_response(400, "validation_failed", "Validation failed.", detail=str(exc.errors()))

    @app.exception_handler(RateLimitExceeded)
    async def rate_limit_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
        """Return 429; Retry-After tells clients how many seconds to wait."""
        retry_after = int(getattr(exc, "retry_after", 60))
        resp = error_response(429, "rate_limited", "Too many requests.", detail=str(exc))
        resp.headers["Retry-After"] = str(retry_after)
        return resp

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
        if isinstance(exc.detail, dict):
            return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})
        return error_response(exc.status_code, f"http_{exc.status_code}", str(exc.detail))

    @app.exception_handler(Exception)
    async def generic_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        """Catch-all for unexpected server errors.

        The exception goes to the log only, never to the response body.
        """
        logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
        return error_response(500, "internal_error", "An unexpected error occurred.")
