"""Global error hierarchy and FastAPI exception handlers.

All crawler-specific errors extend CrawlerError. The FastAPI exception handlers
catch these errors (plus Pydantic's RequestValidationError and unhandled exceptions)
and return a consistent JSON envelope: { success, data, error, meta }.

Only page-fetch errors (``NavigationError`` and its subclasses,
``TaskTimeoutError``) are ever raised across the task boundary; field-level
misses are absorbed inside the resolver cascade and never become exceptions.
"""

from __future__ import annotations

import logging
import traceback

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Error hierarchy
# ---------------------------------------------------------------------------


class CrawlerError(Exception):
    """Base error for all crawler-specific errors."""

    status_code: int = 500
    message: str = "Internal server error"

    def __init__(self, message: str | None = None, **kwargs: object) -> None:
        self.message = message or self.__class__.message
        self.details = kwargs
        super().__init__(self.message)


class ValidationError(CrawlerError):
    """Payload validation failures — includes field-level details."""

    status_code = 422
    message = "Validation error"


class NavigationError(CrawlerError):
    """Page could not be fetched (timeout, network failure, anti-automation block)."""

    status_code = 502
    message = "Page navigation failed"


class SessionClosedError(NavigationError):
    """The page session was torn down while an operation was in flight."""

    message = "Page session closed"


class TaskTimeoutError(CrawlerError):
    """Task execution exceeded the configured timeout."""

    status_code = 504
    message = "Task execution timed out"


class BrowserNotFoundError(CrawlerError):
    """No usable Chromium executable — blocks crawling until resolved."""

    status_code = 503
    message = "Browser executable not found"


class TaskNotFoundError(CrawlerError):
    """Task not found."""

    status_code = 404
    message = "Task not found"


class InvalidTransitionError(CrawlerError):
    """Requested status change is not allowed from the task's current state."""

    status_code = 409
    message = "Invalid task status transition"


class QueueRunningError(CrawlerError):
    """Operation refused while the orchestrator is running."""

    status_code = 409
    message = "Queue is running; pause it first"


class NothingToExportError(CrawlerError):
    """No completed tasks to export."""

    status_code = 404
    message = "No completed tasks to export"


class PersistenceError(CrawlerError):
    """Task store read/write failure."""

    status_code = 500
    message = "Task store operation failed"


# ---------------------------------------------------------------------------
# FastAPI exception handlers
# ---------------------------------------------------------------------------


def _envelope(
    status_code: int,
    error: str,
    meta: dict | None = None,
) -> JSONResponse:
    """Build a JSON envelope error response."""
    return JSONResponse(
        status_code=status_code,
        content={
            "success": False,
            "data": None,
            "error": error,
            "meta": meta,
        },
    )


async def _crawler_error_handler(_request: Request, exc: CrawlerError) -> JSONResponse:
    """Handle CrawlerError subclasses."""
    meta = exc.details if exc.details else None
    return _envelope(exc.status_code, exc.message, meta=meta)


async def _validation_error_handler(
    _request: Request, exc: RequestValidationError
) -> JSONResponse:
    """Handle FastAPI / Pydantic RequestValidationError (422)."""
    field_errors = [
        {
            "field": " -> ".join(str(loc) for loc in err["loc"]),
            "message": err["msg"],
            "type": err["type"],
        }
        for err in exc.errors()
    ]
    return _envelope(
        status_code=422,
        error="Validation error",
        meta={"fields": field_errors},
    )


async def _unhandled_error_handler(_request: Request, exc: Exception) -> JSONResponse:
    """Catch-all for unhandled exceptions — log traceback, return generic 500."""
    logger.error(
        "Unhandled exception: %s\n%s",
        exc,
        traceback.format_exc(),
    )
    return _envelope(status_code=500, error="Internal server error")


# ---------------------------------------------------------------------------
# Registration helper
# ---------------------------------------------------------------------------


def register_error_handlers(app: FastAPI) -> None:
    """Wire up all exception handlers on the FastAPI application."""
    app.add_exception_handler(CrawlerError, _crawler_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(RequestValidationError, _validation_error_handler)  # type: ignore[arg-type]
    app.add_exception_handler(Exception, _unhandled_error_handler)  # type: ignore[arg-type]
