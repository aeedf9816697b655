"""Middleware package — error hierarchy and exception handlers."""

from hotel_crawler.middleware.error_handler import (
    BrowserNotFoundError,
    CrawlerError,
    InvalidTransitionError,
    NavigationError,
    NothingToExportError,
    PersistenceError,
    QueueRunningError,
    SessionClosedError,
    TaskNotFoundError,
    TaskTimeoutError,
    ValidationError,
    register_error_handlers,
)

__all__ = [
    "BrowserNotFoundError",
    "CrawlerError",
    "InvalidTransitionError",
    "NavigationError",
    "NothingToExportError",
    "PersistenceError",
    "QueueRunningError",
    "SessionClosedError",
    "TaskNotFoundError",
    "TaskTimeoutError",
    "ValidationError",
    "register_error_handlers",
]
