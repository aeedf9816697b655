"""Persistence contract consumed by the orchestrator."""

from __future__ import annotations

from abc import ABC, abstractmethod

from hotel_crawler.models.task import CrawlTask, QueueStats


class TaskStore(ABC):
    """Asynchronous save/load/delete of task snapshots.

    Implementations raise ``PersistenceError`` on failure; callers decide
    whether that matters.
    """

    @abstractmethod
    async def save(self, task: CrawlTask) -> None:
        """Insert or replace *task* together with its logs."""

    @abstractmethod
    async def load_all(self, limit: int = 1000, offset: int = 0) -> list[CrawlTask]:
        """Return up to *limit* tasks, newest first."""

    @abstractmethod
    async def delete(self, task_id: str) -> bool:
        """Delete one task; False if it did not exist."""

    @abstractmethod
    async def delete_all(self) -> None:
        ...

    @abstractmethod
    async def stats(self) -> QueueStats:
        """Counts of persisted tasks by status."""

    async def close(self) -> None:
        return None
