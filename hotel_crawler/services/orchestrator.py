"""Bounded-concurrency crawl orchestrator.

Owns the ordered task collection and advances tasks through
``IDLE → WAITING → PROCESSING → COMPLETED | ERROR``. A single scheduling
loop runs on a fixed tick while the orchestrator is running: it starts the
earliest WAITING tasks while fewer than ``concurrency`` slots are busy and
stops itself once nothing is waiting or processing.

A slot stays busy after its task finishes until the per-task delay has
elapsed, and every ``batch_size`` finished tasks hold new starts for
``batch_pause_seconds``. Both throttle the request rate against the site.

All state changes happen on the event loop. Readers outside the loop get
snapshots; persistence is fire-and-forget and never blocks scheduling.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING

import pydantic

from hotel_crawler.config.settings import CrawlConfig
from hotel_crawler.middleware.error_handler import (
    CrawlerError,
    InvalidTransitionError,
    QueueRunningError,
    TaskNotFoundError,
    ValidationError,
)
from hotel_crawler.models.task import (
    CrawlTask,
    LogEntry,
    LogSeverity,
    QueueStats,
    TaskStatus,
)
from hotel_crawler.validators.url_validator import parse_url_lines

if TYPE_CHECKING:
    from hotel_crawler.services.log_sink import TaskLogSink
    from hotel_crawler.services.task_runner import TaskRunner
    from hotel_crawler.storage.base import TaskStore

logger = logging.getLogger(__name__)

PROGRESS_STARTED = 10


def describe_error(exc: BaseException) -> str:
    """Human-readable error text for the task list."""
    if isinstance(exc, CrawlerError):
        return exc.message
    return str(exc) or exc.__class__.__name__


class CrawlOrchestrator:
    """Schedules crawl tasks.

    Parameters
    ----------
    runner:
        Executes one task in its own page session.
    log_sink:
        Receives every task and queue event.
    config:
        Initial pacing and browser options.
    store:
        Optional persistence; ``None`` keeps tasks in memory only.
    tick_interval_seconds:
        Period of the scheduling loop.
    clock:
        Monotonic clock, injectable for tests.
    """

    def __init__(
        self,
        *,
        runner: "TaskRunner",
        log_sink: "TaskLogSink",
        config: CrawlConfig,
        store: "TaskStore | None" = None,
        tick_interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._runner = runner
        self._sink = log_sink
        self._config = config
        self._store = store
        self._tick_interval = tick_interval_seconds
        self._clock = clock

        # Insertion order is queue-arrival order
        self._tasks: dict[str, CrawlTask] = {}

        self._running = False
        self._loop_task: asyncio.Task[None] | None = None

        # Tasks launched and not yet finished (the active count)
        self._inflight: dict[str, asyncio.Task[None]] = {}
        # Finished tasks whose post-task delay has not elapsed yet
        self._cooling = 0
        # Finished tasks since the last batch pause
        self._batch_finished = 0
        self._hold_until = 0.0

        # Pending store writes, and running post-task delays
        self._background: set[asyncio.Task] = set()
        self._cooldowns: set[asyncio.Task] = set()
        self._save_lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Queue contents
    # ------------------------------------------------------------------

    def add_urls(self, text: str, *, enqueue: bool = True) -> tuple[list[CrawlTask], list[str]]:
        """Add one task per valid URL line; returns ``(added, rejected)``.

        Tasks are added WAITING, or IDLE when *enqueue* is False.
        """
        valid, rejected = parse_url_lines(text)
        for line in rejected:
            self._log(None, f"Skipped invalid URL: {line}", LogSeverity.WARNING)

        added = []
        for url in valid:
            task = CrawlTask(
                id=str(uuid.uuid4()),
                url=url,
                status=TaskStatus.WAITING if enqueue else TaskStatus.IDLE,
            )
            self._tasks[task.id] = task
            self._log(task, f"Added to queue: {url}")
            added.append(task.snapshot())

        if added:
            self._log(None, f"Added {len(added)} URL(s) to the queue")
        return added, rejected

    def enqueue(self, task_id: str) -> CrawlTask:
        """IDLE → WAITING."""
        task = self._get(task_id)
        task.enqueue()
        self._log(task, "Queued for crawling")
        return task.snapshot()

    def reset(self, task_id: str) -> CrawlTask:
        """COMPLETED/ERROR → WAITING for a manual retry."""
        task = self._get(task_id)
        task.reset()
        self._log(task, "Reset for retry")
        return task.snapshot()

    def reset_many(self, task_ids: Iterable[str]) -> int:
        """Reset every terminal task among *task_ids*; others are skipped."""
        count = 0
        for task_id in task_ids:
            task = self._tasks.get(task_id)
            if task is not None and task.is_terminal:
                task.reset()
                self._log(task, "Reset for retry")
                count += 1
        if count:
            self._log(None, f"Reset {count} task(s)")
        return count

    def delete(self, task_id: str) -> None:
        """Remove a task. Processing tasks must be cancelled first."""
        task = self._get(task_id)
        if task.status == TaskStatus.PROCESSING:
            raise InvalidTransitionError(
                "Cannot delete a task while it is processing; cancel it first",
                task_id=task_id,
            )
        del self._tasks[task_id]
        self._spawn(self._store_delete(task_id))

    def delete_many(self, task_ids: Iterable[str]) -> int:
        count = 0
        for task_id in task_ids:
            task = self._tasks.get(task_id)
            if task is None or task.status == TaskStatus.PROCESSING:
                continue
            del self._tasks[task_id]
            self._spawn(self._store_delete(task_id))
            count += 1
        if count:
            self._log(None, f"Deleted {count} task(s)")
        return count

    def clear(self) -> int:
        """Remove every task. Refused while running or while crawls are in flight."""
        if self._running or self._inflight:
            raise QueueRunningError()
        count = len(self._tasks)
        self._tasks.clear()
        self._sink.clear_global()
        self._spawn(self._store_delete_all())
        self._log(None, f"Cleared {count} task(s)")
        return count

    # ------------------------------------------------------------------
    # Reads (snapshots only)
    # ------------------------------------------------------------------

    def list_tasks(self, status: TaskStatus | None = None) -> list[CrawlTask]:
        return [
            task.snapshot()
            for task in self._tasks.values()
            if status is None or task.status == status
        ]

    def get_task(self, task_id: str) -> CrawlTask:
        return self._get(task_id).snapshot()

    def get_logs(self, task_id: str) -> list[LogEntry]:
        return list(self._get(task_id).logs)

    def global_logs(self) -> list[LogEntry]:
        return self._sink.global_entries()

    def stats(self) -> QueueStats:
        return QueueStats.from_tasks(list(self._tasks.values()))

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def active_count(self) -> int:
        return len(self._inflight)

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    @property
    def config(self) -> CrawlConfig:
        return self._config

    def update_config(self, changes: dict) -> CrawlConfig:
        """Replace the config; takes effect at the next scheduling decision.

        An invalid update raises ``ValidationError`` and keeps the old config.
        """
        try:
            updated = CrawlConfig.model_validate({**self._config.model_dump(), **changes})
        except pydantic.ValidationError as exc:
            raise ValidationError(
                "Invalid crawl configuration",
                fields=[
                    {"field": ".".join(str(loc) for loc in err["loc"]), "message": err["msg"]}
                    for err in exc.errors()
                ],
            ) from exc
        self._config = updated
        self._log(None, f"Configuration updated: {', '.join(sorted(changes)) or 'no changes'}")
        return updated

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start scheduling. Raises ``BrowserNotFoundError`` before anything runs."""
        if self._running:
            return
        await self._runner.ensure_ready()
        self._running = True
        self._log(None, "Queue started")
        self._loop_task = asyncio.create_task(self._run_loop(), name="crawl-scheduler")

    async def pause(self) -> None:
        """Stop new starts; in-flight tasks run to completion."""
        if not self._running:
            return
        self._running = False
        await self._stop_loop()
        self._log(None, "Queue paused", LogSeverity.WARNING)

    async def cancel(self, task_id: str) -> bool:
        """Tear down the page session of a processing task.

        The crawl then fails at the task boundary; retry is a manual reset.
        Returns False when the browser was still launching: the session is
        closed as soon as it opens.
        """
        task = self._get(task_id)
        if task.status != TaskStatus.PROCESSING or task_id not in self._inflight:
            raise InvalidTransitionError(
                f"Only processing tasks can be cancelled (task is {task.status.value})",
                task_id=task_id,
                status=task.status.value,
            )
        self._log(task, "Cancelling crawl", LogSeverity.WARNING)
        closed = await self._runner.cancel(task_id)
        if not closed:
            self._log(task, "Browser still launching, crawl stops once it opens", LogSeverity.WARNING)
        return closed

    async def restore(self, limit: int = 1000) -> int:
        """Load persisted tasks, oldest first. Interrupted crawls come back WAITING."""
        if self._store is None:
            return 0
        try:
            stored = await self._store.load_all(limit, 0)
        except Exception:
            logger.exception("Failed to restore tasks from the store")
            return 0

        restored = 0
        for task in reversed(stored):
            if task.id in self._tasks:
                continue
            if task.status == TaskStatus.PROCESSING:
                task.status = TaskStatus.WAITING
                task.progress = 0
            self._tasks[task.id] = task
            restored += 1
        if restored:
            self._log(None, f"Restored {restored} task(s) from storage")
        return restored

    async def shutdown(self) -> None:
        """Stop the loop, abort in-flight crawls and flush pending saves."""
        self._running = False
        await self._stop_loop()

        inflight = list(self._inflight.values())
        for job in inflight:
            job.cancel()
        if inflight:
            await asyncio.gather(*inflight, return_exceptions=True)
        await self._runner.close_all()

        for job in list(self._cooldowns):
            job.cancel()
        pending = list(self._cooldowns | self._background)
        if pending:
            await asyncio.gather(*pending, return_exceptions=True)
        logger.info("Orchestrator shut down")

    # ------------------------------------------------------------------
    # Scheduling loop
    # ------------------------------------------------------------------

    async def _run_loop(self) -> None:
        while self._running:
            self.tick()
            if not self._running:
                break
            await asyncio.sleep(self._tick_interval)

    def tick(self) -> None:
        """One scheduling decision; public so tests can drive it directly."""
        if not self._running:
            return

        waiting = [t for t in self._tasks.values() if t.status == TaskStatus.WAITING]
        if not waiting and not self._inflight:
            self._running = False
            self._loop_task = None
            self._log(None, "All tasks finished", LogSeverity.SUCCESS)
            return

        if self._clock() < self._hold_until:
            return

        free = self._config.concurrency - len(self._inflight) - self._cooling
        for task in waiting[: max(free, 0)]:
            self._launch(task)

    def _launch(self, task: CrawlTask) -> None:
        task.start()
        task.set_progress(PROGRESS_STARTED)
        config = self._config
        self._log(task, f"Starting crawl: {task.url}")
        self._inflight[task.id] = asyncio.create_task(
            self._process(task, config), name=f"crawl-{task.id}"
        )

    async def _process(self, task: CrawlTask, config: CrawlConfig) -> None:
        started = time.monotonic()

        def log(message: str, severity: LogSeverity = LogSeverity.INFO) -> None:
            self._log(task, message, severity)

        try:
            record = await self._runner.run(
                task.id, task.url, config, log=log, progress=task.set_progress
            )
        except asyncio.CancelledError:
            # Shutdown; the last saved snapshot is PROCESSING and restores as WAITING
            raise
        except Exception as exc:
            message = describe_error(exc)
            task.fail(message)
            self._log(
                task,
                f"Crawl failed: {message}",
                LogSeverity.ERROR,
                error_reason=repr(exc),
                duration_ms=round((time.monotonic() - started) * 1000),
            )
        else:
            task.complete(record)
            fields = record.resolved_fields()
            self._log(
                task,
                f"Crawl completed: {record.name or task.url} ({len(fields)} fields)",
                LogSeverity.SUCCESS,
                duration_ms=round((time.monotonic() - started) * 1000),
                fields_extracted=len(fields),
            )
        finally:
            self._inflight.pop(task.id, None)

        self._after_task()

    def _after_task(self) -> None:
        config = self._config

        self._batch_finished += 1
        if config.batch_size and self._batch_finished >= config.batch_size:
            self._batch_finished = 0
            if config.batch_pause_seconds > 0:
                self._hold_until = self._clock() + config.batch_pause_seconds
                self._log(
                    None,
                    f"Batch of {config.batch_size} finished, pausing {config.batch_pause_seconds:g}s",
                    LogSeverity.WARNING,
                )

        if config.delay_per_task_seconds > 0:
            self._cooling += 1
            self._spawn(self._cool_down(config.delay_per_task_seconds), self._cooldowns)

    async def _cool_down(self, seconds: float) -> None:
        try:
            await asyncio.sleep(seconds)
        finally:
            self._cooling -= 1

    async def _stop_loop(self) -> None:
        loop_task, self._loop_task = self._loop_task, None
        if loop_task is None or loop_task is asyncio.current_task():
            return
        loop_task.cancel()
        try:
            await loop_task
        except asyncio.CancelledError:
            pass

    # ------------------------------------------------------------------
    # Logging and persistence
    # ------------------------------------------------------------------

    def _log(
        self,
        task: CrawlTask | None,
        message: str,
        severity: LogSeverity = LogSeverity.INFO,
        **extra: object,
    ) -> None:
        self._sink.append(task, message, severity, **extra)
        if task is not None and task.id in self._tasks:
            self._persist(task)

    def _persist(self, task: CrawlTask) -> None:
        if self._store is None:
            return
        self._spawn(self._store_save(task.snapshot()))

    def _spawn(self, coro, bucket: set[asyncio.Task] | None = None) -> None:
        bucket = self._background if bucket is None else bucket
        job = asyncio.get_running_loop().create_task(coro)
        bucket.add(job)
        job.add_done_callback(bucket.discard)

    async def _store_save(self, snapshot: CrawlTask) -> None:
        async with self._save_lock:
            try:
                await self._store.save(snapshot)
            except Exception:
                logger.warning(
                    "Failed to persist task",
                    exc_info=True,
                    extra={"task_id": snapshot.id, "status": snapshot.status.value},
                )

    async def _store_delete(self, task_id: str) -> None:
        if self._store is None:
            return
        async with self._save_lock:
            try:
                await self._store.delete(task_id)
            except Exception:
                logger.warning("Failed to delete task from store", exc_info=True, extra={"task_id": task_id})

    async def _store_delete_all(self) -> None:
        if self._store is None:
            return
        async with self._save_lock:
            try:
                await self._store.delete_all()
            except Exception:
                logger.warning("Failed to clear the task store", exc_info=True)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _get(self, task_id: str) -> CrawlTask:
        task = self._tasks.get(task_id)
        if task is None:
            raise TaskNotFoundError(f"Task {task_id} not found", task_id=task_id)
        return task
