"""Append-only task and global event streams.

Every operator-visible event lands in the owning task's log (unbounded for
the task's lifetime) and in a global stream capped to the most recent
entries. Events are forwarded to the Python logger as well, so the JSON
log output carries the same history.
"""

from __future__ import annotations

import logging
from collections import deque

from hotel_crawler.models.task import CrawlTask, LogEntry, LogSeverity, utcnow

logger = logging.getLogger(__name__)

_LEVELS = {
    LogSeverity.INFO: logging.INFO,
    LogSeverity.SUCCESS: logging.INFO,
    LogSeverity.WARNING: logging.WARNING,
    LogSeverity.ERROR: logging.ERROR,
}


class TaskLogSink:
    """Writes log entries; read access goes through copies."""

    def __init__(self, *, global_limit: int = 100) -> None:
        if global_limit < 1:
            raise ValueError("global_limit must be at least 1")
        self._global: deque[LogEntry] = deque(maxlen=global_limit)
        self._last_timestamp = None

    @property
    def global_limit(self) -> int:
        return self._global.maxlen or 0

    def append(
        self,
        task: CrawlTask | None,
        message: str,
        severity: LogSeverity = LogSeverity.INFO,
        **extra: object,
    ) -> LogEntry:
        """Record *message* for *task* (or globally only when ``None``)."""
        timestamp = utcnow()
        # Keep timestamps non-decreasing even if the wall clock steps back
        if self._last_timestamp is not None and timestamp < self._last_timestamp:
            timestamp = self._last_timestamp
        self._last_timestamp = timestamp

        entry = LogEntry(timestamp=timestamp, message=message, severity=severity)
        if task is not None:
            task.append_log(entry)
        self._global.append(entry)

        context: dict = dict(extra)
        if task is not None:
            context.setdefault("task_id", task.id)
            context.setdefault("target_url", task.url)
            context.setdefault("status", task.status.value)
        logger.log(_LEVELS[severity], message, extra=context)
        return entry

    def global_entries(self) -> list[LogEntry]:
        return list(self._global)

    def clear_global(self) -> None:
        self._global.clear()
