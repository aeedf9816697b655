"""SQLAlchemy-backed task store (SQLite by default).

Tables:
- ``tasks``: one row per task; the hotel record is stored as JSON text.
- ``task_logs``: the task's log entries in append order.

SQLAlchemy sessions are synchronous, so every call runs in a worker
thread. Any ``SQLAlchemyError`` is re-raised as ``PersistenceError``.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from sqlalchemy import (
    DateTime,
    ForeignKey,
    Integer,
    String,
    Text,
    create_engine,
    delete,
    func,
    select,
)
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import (
    DeclarativeBase,
    Mapped,
    Session,
    mapped_column,
    relationship,
    selectinload,
    sessionmaker,
)

from hotel_crawler.middleware.error_handler import PersistenceError
from hotel_crawler.models.hotel import HotelRecord
from hotel_crawler.models.task import (
    CrawlTask,
    LogEntry,
    LogSeverity,
    QueueStats,
    TaskStatus,
)
from hotel_crawler.storage.base import TaskStore

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    pass


class TaskRow(Base):
    __tablename__ = "tasks"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    url: Mapped[str] = mapped_column(Text, nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    progress: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    finished_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    result_json: Mapped[str | None] = mapped_column(Text, nullable=True)

    logs: Mapped[list[LogRow]] = relationship(
        back_populates="task",
        cascade="all, delete-orphan",
        order_by="LogRow.position",
    )


class LogRow(Base):
    __tablename__ = "task_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    task_id: Mapped[str] = mapped_column(
        ForeignKey("tasks.id", ondelete="CASCADE"), nullable=False, index=True
    )
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    severity: Mapped[str] = mapped_column(String(16), nullable=False)

    task: Mapped[TaskRow] = relationship(back_populates="logs")


def _aware(value: datetime | None) -> datetime | None:
    # SQLite drops tzinfo; stored values are always UTC
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def task_to_row(task: CrawlTask) -> TaskRow:
    return TaskRow(
        id=task.id,
        url=task.url,
        status=task.status.value,
        progress=task.progress,
        error=task.error,
        created_at=task.created_at,
        finished_at=task.finished_at,
        result_json=task.result.model_dump_json() if task.result else None,
        logs=[
            LogRow(
                position=index,
                timestamp=entry.timestamp,
                message=entry.message,
                severity=entry.severity.value,
            )
            for index, entry in enumerate(task.logs)
        ],
    )


def row_to_task(row: TaskRow) -> CrawlTask:
    return CrawlTask(
        id=row.id,
        url=row.url,
        status=TaskStatus(row.status),
        progress=row.progress,
        logs=[
            LogEntry(
                timestamp=_aware(log.timestamp),
                message=log.message,
                severity=LogSeverity(log.severity),
            )
            for log in row.logs
        ],
        result=HotelRecord.model_validate_json(row.result_json) if row.result_json else None,
        error=row.error,
        created_at=_aware(row.created_at),
        finished_at=_aware(row.finished_at),
    )


class SQLAlchemyTaskStore(TaskStore):
    """Persists task snapshots through a SQLAlchemy 2.0 engine."""

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        connect_args = {}
        if database_url.startswith("sqlite"):
            # Sessions run in worker threads
            connect_args["check_same_thread"] = False
        self._engine = create_engine(database_url, echo=echo, connect_args=connect_args)
        self._session_factory: sessionmaker[Session] = sessionmaker(
            bind=self._engine, expire_on_commit=False
        )
        Base.metadata.create_all(self._engine)

    # ------------------------------------------------------------------
    # TaskStore
    # ------------------------------------------------------------------

    async def save(self, task: CrawlTask) -> None:
        await self._call(self._save, task)

    async def load_all(self, limit: int = 1000, offset: int = 0) -> list[CrawlTask]:
        return await self._call(self._load_all, limit, offset)

    async def delete(self, task_id: str) -> bool:
        return await self._call(self._delete, task_id)

    async def delete_all(self) -> None:
        await self._call(self._delete_all)

    async def stats(self) -> QueueStats:
        return await self._call(self._stats)

    async def close(self) -> None:
        await asyncio.to_thread(self._engine.dispose)

    # ------------------------------------------------------------------
    # Blocking implementations
    # ------------------------------------------------------------------

    async def _call(self, func, *args):
        try:
            return await asyncio.to_thread(func, *args)
        except SQLAlchemyError as exc:
            raise PersistenceError(f"Task store operation failed: {exc}") from exc

    def _save(self, task: CrawlTask) -> None:
        with self._session_factory.begin() as session:
            existing = session.get(TaskRow, task.id)
            if existing is not None:
                session.delete(existing)
                session.flush()
            session.add(task_to_row(task))

    def _load_all(self, limit: int, offset: int) -> list[CrawlTask]:
        with self._session_factory() as session:
            rows = session.scalars(
                select(TaskRow)
                .options(selectinload(TaskRow.logs))
                .order_by(TaskRow.created_at.desc(), TaskRow.id.desc())
                .limit(limit)
                .offset(offset)
            ).all()
            return [row_to_task(row) for row in rows]

    def _delete(self, task_id: str) -> bool:
        with self._session_factory.begin() as session:
            row = session.get(TaskRow, task_id)
            if row is None:
                return False
            session.delete(row)
            return True

    def _delete_all(self) -> None:
        with self._session_factory.begin() as session:
            session.execute(delete(LogRow))
            session.execute(delete(TaskRow))

    def _stats(self) -> QueueStats:
        with self._session_factory() as session:
            counts = dict(
                session.execute(
                    select(TaskRow.status, func.count()).group_by(TaskRow.status)
                ).all()
            )
        return QueueStats(
            total=sum(counts.values()),
            idle=counts.get(TaskStatus.IDLE.value, 0),
            waiting=counts.get(TaskStatus.WAITING.value, 0),
            processing=counts.get(TaskStatus.PROCESSING.value, 0),
            completed=counts.get(TaskStatus.COMPLETED.value, 0),
            error=counts.get(TaskStatus.ERROR.value, 0),
        )
