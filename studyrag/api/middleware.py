"""API middleware: CORS, request logging, and error handling.

Starlette middleware runs last-added-first.  ``main.py`` adds, in order,
:class:`ErrorHandlingMiddleware`, :class:`RequestLoggingMiddleware`, then
CORS, so a request passes through them as::

    client -> CORS -> RequestLogging -> ErrorHandling -> route

The request log therefore records the status code after a
``StudyRagError`` has been turned into its JSON error body.
"""

from __future__ import annotations

import time

import structlog
from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from studyrag.api.schemas import ErrorResponse
from studyrag.utils.errors import InvalidDocumentError, StoreError, StudyRagError
from studyrag.utils.logging import get_logger

_logger: structlog.BoundLogger = get_logger(__name__)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------


def configure_cors(app: FastAPI, *, allowed_origins: list[str] | None = None) -> None:
    """Add CORS middleware; defaults to ``["*"]`` for development."""
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins or ["*"],
        allow_credentials=True,  # cookies and Authorization headers
        allow_methods=["*"],  # the API routes GET, POST and DELETE
        allow_headers=["*"],
    )


# ---------------------------------------------------------------------------
# Request Logging
# ---------------------------------------------------------------------------


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log every HTTP request with method, path, status code, and duration."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        response: Response | None = None

        # For the SSE upload stream call_next returns once headers are sent,
        # so duration_ms is time to first byte, not the whole ingestion.
        try:
            response = await call_next(request)
            return response
        finally:
            # No response means the handler raised; Starlette answers 500.
            _logger.info(
                "http_request",
                method=request.method,
                path=str(request.url.path),
                status=response.status_code if response else 500,
                duration_ms=round((time.perf_counter() - start) * 1000, 2),
            )


# ---------------------------------------------------------------------------
# Error Handling
# ---------------------------------------------------------------------------


def _status_for(exc: StudyRagError) -> int:
    # Bad uploads are the caller's fault; an unreachable store is ours but
    # transient.  Everything else is a plain server error.
    if isinstance(exc, InvalidDocumentError):
        return 400
    if isinstance(exc, StoreError):
        return 503
    return 500


class ErrorHandlingMiddleware(BaseHTTPMiddleware):
    """Convert ``StudyRagError`` subclasses into structured JSON errors.

    Stack traces stay in the server log; the client only sees the error
    class name and its message.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)
        except StudyRagError as exc:
            # Full details go to the server log only.
            _logger.error(
                "application_error",
                error_type=type(exc).__name__,
                message=exc.message,
                provider=exc.provider_name,
                path=str(request.url.path),
            )
            # The client gets the class name and message, never a traceback.
            body = ErrorResponse(error=type(exc).__name__, detail=exc.message)
            return JSONResponse(status_code=_status_for(exc), content=body.model_dump())
