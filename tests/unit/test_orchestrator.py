"""Unit tests for CrawlOrchestrator scheduling, control and persistence."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timedelta, timezone

import pytest

from conftest import FakeRunner, GatedLauncher, MemoryTaskStore, make_orchestrator, wait_until
from hotel_crawler.middleware.error_handler import (
    BrowserNotFoundError,
    InvalidTransitionError,
    QueueRunningError,
    TaskNotFoundError,
    TaskTimeoutError,
    ValidationError,
)
from hotel_crawler.models.task import CrawlTask, LogSeverity, TaskStatus
from hotel_crawler.services.record_assembler import RecordAssembler
from hotel_crawler.services.task_runner import TaskRunner

U1 = "https://www.booking.com/hotel/vn/one.html"
U2 = "https://www.booking.com/hotel/vn/two.html"
U3 = "https://www.booking.com/hotel/vn/three.html"


def _statuses(orch) -> list[TaskStatus]:
    return [task.status for task in orch.list_tasks()]


def _messages(orch) -> list[str]:
    return [entry.message for entry in orch.global_logs()]


# ---------------------------------------------------------------------------
# Queue contents
# ---------------------------------------------------------------------------


class TestAddUrls:
    @pytest.mark.asyncio
    async def test_adds_valid_lines_in_order(self, runner):
        orch = make_orchestrator(runner)

        added, rejected = orch.add_urls(f"{U1}\n\n  {U2}  \nnot a url\nftp://x.test/file\n")

        assert [t.url for t in added] == [U1, U2]
        assert rejected == ["not a url", "ftp://x.test/file"]
        assert _statuses(orch) == [TaskStatus.WAITING, TaskStatus.WAITING]
        assert "Skipped invalid URL: not a url" in _messages(orch)

    @pytest.mark.asyncio
    async def test_idle_when_not_enqueued(self, runner):
        orch = make_orchestrator(runner)
        (task,), _ = orch.add_urls(U1, enqueue=False)

        assert task.status == TaskStatus.IDLE
        assert orch.enqueue(task.id).status == TaskStatus.WAITING

    @pytest.mark.asyncio
    async def test_same_url_twice_makes_two_tasks(self, runner):
        orch = make_orchestrator(runner)
        orch.add_urls(f"{U1}\n{U1}")
        assert len({t.id for t in orch.list_tasks()}) == 2

    @pytest.mark.asyncio
    async def test_unknown_task(self, runner):
        orch = make_orchestrator(runner)
        with pytest.raises(TaskNotFoundError):
            orch.get_task("missing")


# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class TestScheduling:
    @pytest.mark.asyncio
    async def test_concurrency_bound_and_fifo(self, runner):
        orch = make_orchestrator(runner, concurrency=2)
        orch.add_urls(f"{U1}\n{U2}\n{U3}")

        await orch.start()
        await wait_until(lambda: len(runner.started) == 2)
        await asyncio.sleep(0.05)

        assert runner.started == [U1, U2]
        assert _statuses(orch) == [TaskStatus.PROCESSING, TaskStatus.PROCESSING, TaskStatus.WAITING]
        assert orch.active_count == 2

        runner.finish(U1)
        await wait_until(lambda: len(runner.started) == 3)
        assert orch.list_tasks()[0].status == TaskStatus.COMPLETED
        assert orch.active_count == 2

        runner.finish(U2)
        runner.finish(U3)
        await wait_until(lambda: not orch.is_running)

        assert _statuses(orch) == [TaskStatus.COMPLETED] * 3
        assert "All tasks finished" in _messages(orch)
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_completed_task_has_result_and_logs(self, runner):
        runner.auto_finish = True
        orch = make_orchestrator(runner)
        (task,), _ = orch.add_urls(U1)

        await orch.start()
        await wait_until(lambda: not orch.is_running)

        done = orch.get_task(task.id)
        assert done.status == TaskStatus.COMPLETED
        assert done.progress == 100
        assert done.result.url == U1
        assert done.error is None
        messages = [entry.message for entry in orch.get_logs(task.id)]
        assert messages[0] == f"Added to queue: {U1}"
        assert f"Navigating to {U1}" in messages
        assert messages[-1].startswith("Crawl completed")
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_delay_holds_the_slot(self, runner):
        orch = make_orchestrator(runner, concurrency=1, delay_per_task_seconds=0.3)
        orch.add_urls(f"{U1}\n{U2}")

        await orch.start()
        await wait_until(lambda: runner.started == [U1])
        runner.finish(U1)
        await wait_until(lambda: orch.list_tasks()[0].status == TaskStatus.COMPLETED)
        await asyncio.sleep(0.05)

        assert runner.started == [U1]
        assert orch.list_tasks()[1].status == TaskStatus.WAITING

        await wait_until(lambda: runner.started == [U1, U2])
        runner.finish(U2)
        await wait_until(lambda: not orch.is_running)
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_batch_pause(self, runner):
        now = [0.0]
        orch = make_orchestrator(
            runner, clock=lambda: now[0], concurrency=1, batch_size=1, batch_pause_seconds=30
        )
        orch.add_urls(f"{U1}\n{U2}")

        await orch.start()
        await wait_until(lambda: runner.started == [U1])
        runner.finish(U1)
        await wait_until(lambda: orch.active_count == 0)
        await asyncio.sleep(0.05)

        assert runner.started == [U1]
        assert "Batch of 1 finished, pausing 30s" in _messages(orch)

        now[0] = 31.0
        await wait_until(lambda: runner.started == [U1, U2])
        runner.finish(U2)
        await wait_until(lambda: not orch.is_running)
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_config_change_applies_to_next_decision(self, runner):
        orch = make_orchestrator(runner, concurrency=1)
        orch.add_urls(f"{U1}\n{U2}")

        await orch.start()
        await wait_until(lambda: runner.started == [U1])
        orch.update_config({"concurrency": 2})
        await wait_until(lambda: runner.started == [U1, U2])

        runner.finish(U1)
        runner.finish(U2)
        await wait_until(lambda: not orch.is_running)
        assert runner.configs[0].concurrency == 1
        assert runner.configs[1].concurrency == 2
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_start_with_nothing_waiting_stops_immediately(self, runner):
        orch = make_orchestrator(runner)
        await orch.start()
        await wait_until(lambda: not orch.is_running)
        assert runner.started == []

    @pytest.mark.asyncio
    async def test_start_without_browser_fails_before_running(self, runner):
        runner.ready_error = BrowserNotFoundError()
        orch = make_orchestrator(runner)
        orch.add_urls(U1)

        with pytest.raises(BrowserNotFoundError):
            await orch.start()

        assert not orch.is_running
        assert _statuses(orch) == [TaskStatus.WAITING]


# ---------------------------------------------------------------------------
# Failures
# ---------------------------------------------------------------------------


class TestFailures:
    @pytest.mark.asyncio
    async def test_navigation_failure_marks_error_and_frees_slot(self, runner):
        orch = make_orchestrator(runner, concurrency=1)
        orch.add_urls(f"{U1}\n{U2}")

        await orch.start()
        await wait_until(lambda: runner.started == [U1])
        runner.fail(U1)
        await wait_until(lambda: runner.started == [U1, U2])

        failed = orch.list_tasks()[0]
        assert failed.status == TaskStatus.ERROR
        assert failed.error == f"Navigation to {U1} timed out after 60000ms"
        assert failed.result is None
        assert failed.logs[-1].severity == LogSeverity.ERROR
        assert orch.active_count == 1

        runner.finish(U2)
        await wait_until(lambda: not orch.is_running)
        assert orch.active_count == 0
        assert orch.stats().error == 1
        assert orch.stats().completed == 1
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_timeout_marks_error(self, runner):
        orch = make_orchestrator(runner)
        (task,), _ = orch.add_urls(U1)

        await orch.start()
        await wait_until(lambda: runner.started == [U1])
        runner.fail(U1, TaskTimeoutError("Task timed out after 300s"))
        await wait_until(lambda: not orch.is_running)

        assert orch.get_task(task.id).error == "Task timed out after 300s"
        assert orch.active_count == 0
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_unexpected_exception_marks_error(self, runner):
        orch = make_orchestrator(runner)
        (task,), _ = orch.add_urls(U1)
        runner.outcomes[U1] = RuntimeError("")
        runner.auto_finish = True

        await orch.start()
        await wait_until(lambda: not orch.is_running)

        assert orch.get_task(task.id).error == "RuntimeError"
        await orch.shutdown()


# ---------------------------------------------------------------------------
# Operator controls
# ---------------------------------------------------------------------------


class TestControls:
    @pytest.mark.asyncio
    async def test_pause_lets_in_flight_finish(self, runner):
        orch = make_orchestrator(runner, concurrency=1)
        orch.add_urls(f"{U1}\n{U2}")

        await orch.start()
        await wait_until(lambda: runner.started == [U1])
        await orch.pause()
        assert not orch.is_running

        runner.finish(U1)
        await wait_until(lambda: orch.active_count == 0)
        await asyncio.sleep(0.05)

        assert _statuses(orch) == [TaskStatus.COMPLETED, TaskStatus.WAITING]
        assert runner.started == [U1]

        await orch.start()
        await wait_until(lambda: runner.started == [U1, U2])
        runner.finish(U2)
        await wait_until(lambda: not orch.is_running)
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_pause_with_two_in_flight_leaves_third_waiting(self, runner):
        orch = make_orchestrator(runner, concurrency=2)
        orch.add_urls(f"{U1}\n{U2}\n{U3}")

        await orch.start()
        await wait_until(lambda: runner.started == [U1, U2])
        await orch.pause()
        assert _statuses(orch) == [TaskStatus.PROCESSING, TaskStatus.PROCESSING, TaskStatus.WAITING]

        runner.finish(U1)
        runner.fail(U2)
        await wait_until(lambda: orch.active_count == 0)
        await asyncio.sleep(0.05)

        assert _statuses(orch) == [TaskStatus.COMPLETED, TaskStatus.ERROR, TaskStatus.WAITING]
        assert runner.started == [U1, U2]
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_reset_retries_failed_task(self, runner):
        runner.auto_finish = True
        runner.outcomes[U1] = TaskTimeoutError()
        orch = make_orchestrator(runner)
        (task,), _ = orch.add_urls(U1)

        await orch.start()
        await wait_until(lambda: not orch.is_running)
        assert orch.get_task(task.id).status == TaskStatus.ERROR

        reset = orch.reset(task.id)
        assert reset.status == TaskStatus.WAITING
        assert reset.error is None

        del runner.outcomes[U1]
        await orch.start()
        await wait_until(lambda: not orch.is_running)
        assert orch.get_task(task.id).status == TaskStatus.COMPLETED
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_reset_rejects_waiting(self, runner):
        orch = make_orchestrator(runner)
        (task,), _ = orch.add_urls(U1)
        with pytest.raises(InvalidTransitionError):
            orch.reset(task.id)

    @pytest.mark.asyncio
    async def test_bulk_reset_and_delete_skip_ineligible(self, runner):
        runner.auto_finish = True
        orch = make_orchestrator(runner)
        done, _ = orch.add_urls(U1)
        idle, _ = orch.add_urls(U2, enqueue=False)

        await orch.start()
        await wait_until(lambda: not orch.is_running)

        ids = [done[0].id, idle[0].id, "missing"]
        assert orch.reset_many(ids) == 1
        assert orch.delete_many(ids) == 2
        assert orch.list_tasks() == []
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_cancel_fails_processing_task(self, runner):
        orch = make_orchestrator(runner)
        (task,), _ = orch.add_urls(U1)

        await orch.start()
        await wait_until(lambda: runner.started == [U1])
        await orch.cancel(task.id)
        await wait_until(lambda: not orch.is_running)

        cancelled = orch.get_task(task.id)
        assert cancelled.status == TaskStatus.ERROR
        assert cancelled.error == "Page session closed during extraction"
        assert runner.cancelled == [task.id]
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_cancel_while_browser_launches_fails_task(self):
        launcher = GatedLauncher()
        task_runner = TaskRunner(
            launcher=launcher,
            assembler=RecordAssembler(page_settle_seconds=0, gallery_settle_seconds=0),
        )
        orch = make_orchestrator(task_runner)
        (task,), _ = orch.add_urls(U1)

        await orch.start()
        await launcher.launching.wait()
        assert orch.get_task(task.id).status == TaskStatus.PROCESSING

        assert await orch.cancel(task.id) is False
        launcher.release()
        await wait_until(lambda: not orch.is_running)

        cancelled = orch.get_task(task.id)
        assert cancelled.status == TaskStatus.ERROR
        assert cancelled.result is None
        assert cancelled.error == "Crawl cancelled before the page opened"
        assert launcher.sessions[0].closed
        assert launcher.sessions[0].navigations == []
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_cancel_requires_processing(self, runner):
        orch = make_orchestrator(runner)
        (task,), _ = orch.add_urls(U1)
        with pytest.raises(InvalidTransitionError):
            await orch.cancel(task.id)

    @pytest.mark.asyncio
    async def test_delete_processing_refused(self, runner):
        orch = make_orchestrator(runner)
        (task,), _ = orch.add_urls(U1)

        await orch.start()
        await wait_until(lambda: runner.started == [U1])
        with pytest.raises(InvalidTransitionError):
            orch.delete(task.id)

        runner.finish(U1)
        await wait_until(lambda: not orch.is_running)
        orch.delete(task.id)
        assert orch.list_tasks() == []
        await orch.shutdown()

    @pytest.mark.asyncio
    async def test_clear_refused_while_running_or_in_flight(self, runner, store):
        orch = make_orchestrator(runner, store=store)
        orch.add_urls(f"{U1}\n{U2}")

        await orch.start()
        await wait_until(lambda: len(runner.started) == 2)
        with pytest.raises(QueueRunningError):
            orch.clear()

        await orch.pause()
        with pytest.raises(QueueRunningError):
            orch.clear()

        runner.finish(U1)
        runner.finish(U2)
        await wait_until(lambda: orch.active_count == 0)

        assert orch.clear() == 2
        assert orch.list_tasks() == []
        await orch.shutdown()
        assert store.tasks == {}

    @pytest.mark.asyncio
    async def test_update_config_validation(self, runner):
        orch = make_orchestrator(runner, concurrency=2)

        with pytest.raises(ValidationError) as exc_info:
            orch.update_config({"concurrency": 0})

        assert exc_info.value.details["fields"][0]["field"] == "concurrency"
        assert orch.config.concurrency == 2
        assert orch.update_config({"concurrency": 4}).concurrency == 4
        assert orch.config.concurrency == 4


# ---------------------------------------------------------------------------
# Persistence
# ---------------------------------------------------------------------------


class TestPersistence:
    @pytest.mark.asyncio
    async def test_saves_final_state(self, runner, store):
        runner.auto_finish = True
        orch = make_orchestrator(runner, store=store)
        (task,), _ = orch.add_urls(U1)

        await orch.start()
        await wait_until(lambda: not orch.is_running)
        await orch.shutdown()

        saved = store.tasks[task.id]
        assert saved.status == TaskStatus.COMPLETED
        assert saved.result.url == U1
        assert store.saves > 1

    @pytest.mark.asyncio
    async def test_store_failure_does_not_block_crawling(self, runner, caplog):
        runner.auto_finish = True
        orch = make_orchestrator(runner, store=MemoryTaskStore(fail=True))
        (task,), _ = orch.add_urls(U1)

        with caplog.at_level(logging.WARNING, logger="hotel_crawler.services.orchestrator"):
            await orch.start()
            await wait_until(lambda: not orch.is_running)
            await orch.shutdown()

        assert orch.get_task(task.id).status == TaskStatus.COMPLETED
        assert "Failed to persist task" in caplog.text

    @pytest.mark.asyncio
    async def test_restore_oldest_first_and_requeues_interrupted(self, runner, store):
        base = datetime(2026, 3, 1, tzinfo=timezone.utc)
        store.tasks = {
            "a": CrawlTask(id="a", url=U1, status=TaskStatus.COMPLETED, progress=100, created_at=base),
            "b": CrawlTask(
                id="b", url=U2, status=TaskStatus.PROCESSING, progress=60,
                created_at=base + timedelta(minutes=1),
            ),
            "c": CrawlTask(id="c", url=U3, status=TaskStatus.IDLE, created_at=base + timedelta(minutes=2)),
        }
        orch = make_orchestrator(runner, store=store)

        assert await orch.restore() == 3

        tasks = orch.list_tasks()
        assert [t.id for t in tasks] == ["a", "b", "c"]
        assert tasks[1].status == TaskStatus.WAITING
        assert tasks[1].progress == 0
        assert tasks[2].status == TaskStatus.IDLE
        assert await orch.restore() == 0

    @pytest.mark.asyncio
    async def test_restore_failure_starts_empty(self, runner):
        orch = make_orchestrator(runner, store=MemoryTaskStore(fail=True))
        assert await orch.restore() == 0
        assert orch.list_tasks() == []


# ---------------------------------------------------------------------------
# Shutdown
# ---------------------------------------------------------------------------


class TestShutdown:
    @pytest.mark.asyncio
    async def test_shutdown_leaves_in_flight_restorable(self, runner, store):
        orch = make_orchestrator(runner, store=store)
        (task,), _ = orch.add_urls(U1)

        await orch.start()
        await wait_until(lambda: runner.started == [U1])
        await orch.shutdown()

        assert not orch.is_running
        assert orch.active_count == 0
        assert store.tasks[task.id].status == TaskStatus.PROCESSING

        fresh = make_orchestrator(FakeRunner(), store=store)
        await fresh.restore()
        assert fresh.get_task(task.id).status == TaskStatus.WAITING
