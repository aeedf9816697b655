"""Crawl task state and its status state machine.

A ``CrawlTask`` is owned by the orchestrator and only changes through the
transition methods below, which keep the terminal-state invariants:

- ``result`` is set iff ``status == COMPLETED``
- ``error`` is set iff ``status == ERROR``
- ``finished_at`` is set once on entering a terminal state and is never
  earlier than ``created_at``
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

from hotel_crawler.middleware.error_handler import InvalidTransitionError
from hotel_crawler.models.hotel import HotelRecord


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    """Lifecycle status of a crawl task."""

    IDLE = "IDLE"
    WAITING = "WAITING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    ERROR = "ERROR"


TERMINAL_STATUSES = frozenset({TaskStatus.COMPLETED, TaskStatus.ERROR})


class LogSeverity(str, Enum):
    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


@dataclass(frozen=True)
class LogEntry:
    """One immutable event in a task or global log stream."""

    timestamp: datetime
    message: str
    severity: LogSeverity = LogSeverity.INFO

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "message": self.message,
            "severity": self.severity.value,
        }


@dataclass
class CrawlTask:
    """In-memory state for one URL's crawl lifecycle."""

    id: str  # UUID
    url: str
    status: TaskStatus = TaskStatus.WAITING
    progress: int = 0
    logs: list[LogEntry] = field(default_factory=list)
    result: HotelRecord | None = None
    error: str | None = None
    created_at: datetime = field(default_factory=utcnow)
    finished_at: datetime | None = None

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def enqueue(self) -> None:
        """IDLE → WAITING."""
        self._require(TaskStatus.IDLE)
        self.status = TaskStatus.WAITING

    def start(self) -> None:
        """WAITING → PROCESSING."""
        self._require(TaskStatus.WAITING)
        self.status = TaskStatus.PROCESSING
        self.progress = 0

    def complete(self, record: HotelRecord, at: datetime | None = None) -> None:
        """PROCESSING → COMPLETED with *record*."""
        self._require(TaskStatus.PROCESSING)
        self.status = TaskStatus.COMPLETED
        self.result = record
        self.error = None
        self.progress = 100
        self.finished_at = self._finish_time(at)

    def fail(self, error: str, at: datetime | None = None) -> None:
        """PROCESSING → ERROR with a human-readable *error*."""
        self._require(TaskStatus.PROCESSING)
        self.status = TaskStatus.ERROR
        self.error = error or "Unknown error"
        self.result = None
        self.finished_at = self._finish_time(at)

    def reset(self) -> None:
        """COMPLETED/ERROR → WAITING, clearing the previous outcome."""
        if self.status not in TERMINAL_STATUSES:
            raise InvalidTransitionError(
                f"Only completed or failed tasks can be reset (task {self.id} is {self.status.value})",
                task_id=self.id,
                status=self.status.value,
            )
        self.status = TaskStatus.WAITING
        self.result = None
        self.error = None
        self.progress = 0
        self.finished_at = None

    def set_progress(self, value: int) -> None:
        """Raise progress of a running task; never decreases."""
        if self.status != TaskStatus.PROCESSING:
            return
        self.progress = max(self.progress, min(100, max(0, value)))

    def append_log(self, entry: LogEntry) -> None:
        self.logs.append(entry)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def snapshot(self) -> CrawlTask:
        """Return an independent copy for readers outside the scheduler."""
        clone = copy.copy(self)
        clone.logs = list(self.logs)
        return clone

    def to_dict(self, *, include_logs: bool = False) -> dict:
        data: dict = {
            "id": self.id,
            "url": self.url,
            "status": self.status.value,
            "progress": self.progress,
            "error": self.error,
            "created_at": self.created_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "result": self.result.model_dump(mode="json") if self.result else None,
        }
        if include_logs:
            data["logs"] = [entry.to_dict() for entry in self.logs]
        return data

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require(self, expected: TaskStatus) -> None:
        if self.status != expected:
            raise InvalidTransitionError(
                f"Task {self.id} is {self.status.value}, expected {expected.value}",
                task_id=self.id,
                status=self.status.value,
            )

    def _finish_time(self, at: datetime | None) -> datetime:
        finished = at or utcnow()
        return max(finished, self.created_at)


@dataclass(frozen=True)
class QueueStats:
    """Counts of tasks by status."""

    total: int = 0
    idle: int = 0
    waiting: int = 0
    processing: int = 0
    completed: int = 0
    error: int = 0

    @classmethod
    def from_tasks(cls, tasks: list[CrawlTask]) -> QueueStats:
        counts = {status: 0 for status in TaskStatus}
        for task in tasks:
            counts[task.status] += 1
        return cls(
            total=len(tasks),
            idle=counts[TaskStatus.IDLE],
            waiting=counts[TaskStatus.WAITING],
            processing=counts[TaskStatus.PROCESSING],
            completed=counts[TaskStatus.COMPLETED],
            error=counts[TaskStatus.ERROR],
        )

    def to_dict(self) -> dict:
        return {
            "total": self.total,
            "idle": self.idle,
            "waiting": self.waiting,
            "processing": self.processing,
            "completed": self.completed,
            "error": self.error,
        }
