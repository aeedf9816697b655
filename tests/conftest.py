"""Shared fixtures, fakes and hypothesis strategies for the crawler test suite."""

from __future__ import annotations

import asyncio
import os
from collections.abc import Callable

import pytest
from hypothesis import strategies as st

from hotel_crawler.config.settings import CrawlConfig, CrawlerSettings
from hotel_crawler.middleware.error_handler import (
    NavigationError,
    PersistenceError,
    SessionClosedError,
)
from hotel_crawler.models.hotel import HotelRecord
from hotel_crawler.models.task import CrawlTask, QueueStats
from hotel_crawler.services.log_sink import TaskLogSink
from hotel_crawler.services.orchestrator import CrawlOrchestrator
from hotel_crawler.storage.base import TaskStore


# ---------------------------------------------------------------------------
# Keep the developer's environment out of settings tests
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for key in list(os.environ):
        if key.startswith("HOTEL_CRAWLER_"):
            monkeypatch.delenv(key)


@pytest.fixture
def settings(tmp_path) -> CrawlerSettings:
    """Test settings with fast pacing and a throwaway database."""
    return CrawlerSettings(
        database_url=f"sqlite:///{tmp_path / 'tasks.db'}",
        tick_interval_seconds=0.01,
        page_settle_seconds=0,
        gallery_settle_seconds=0,
        concurrency=2,
        delay_per_task_seconds=0,
        batch_size=0,
    )


# ---------------------------------------------------------------------------
# Scripted page session
# ---------------------------------------------------------------------------

def _freeze(arg):
    if isinstance(arg, list):
        return tuple(_freeze(a) for a in arg)
    return arg


class FakeSession:
    """Stands in for ``PageSession``; ``evaluate`` answers from a script table.

    Responses are keyed by ``(script, arg)``; a key of just ``script`` matches
    any argument. A response that is an exception instance is raised.
    """

    def __init__(self, responses: dict | None = None, *, url: str = "https://www.booking.com/hotel/x.html") -> None:
        self._responses: dict = {}
        for key, value in (responses or {}).items():
            self._responses[_freeze(key) if isinstance(key, tuple) else key] = value
        self.url = url
        self.closed = False
        self.navigations: list[str] = []
        self.navigate_errors: dict[str, Exception] = {}
        self.evaluations: list[tuple] = []
        self.scrolled = 0
        self.on_navigate: Callable[[str], None] | None = None

    def on(self, script: str, arg, value) -> "FakeSession":
        self._responses[(script, _freeze(arg))] = value
        return self

    def fail_navigation(self, fragment: str, error: Exception) -> "FakeSession":
        self.navigate_errors[fragment] = error
        return self

    async def navigate(self, url: str, **_kwargs) -> None:
        self._ensure_open()
        self.navigations.append(url)
        if self.on_navigate:
            self.on_navigate(url)
        for fragment, error in self.navigate_errors.items():
            if fragment in url:
                raise error
        self.url = url

    async def evaluate(self, script: str, arg=None):
        self._ensure_open()
        self.evaluations.append((script, arg))
        key = (script, _freeze(arg))
        if key in self._responses:
            value = self._responses[key]
        else:
            value = self._responses.get(script)
        if isinstance(value, BaseException):
            raise value
        return value

    async def settle(self, seconds: float) -> None:
        self._ensure_open()

    async def scroll_to_bottom(self, step_px: int = 100, interval_ms: int = 100) -> None:
        self._ensure_open()
        self.scrolled += 1

    async def close(self) -> None:
        self.closed = True

    def _ensure_open(self) -> None:
        if self.closed:
            raise SessionClosedError()


class FakeLauncher:
    """Hands out ``FakeSession`` objects built by *factory*."""

    def __init__(self, factory: Callable[[], FakeSession] | None = None, start_error: Exception | None = None) -> None:
        self._factory = factory or FakeSession
        self._start_error = start_error
        self.sessions: list[FakeSession] = []
        self.launch_kwargs: list[dict] = []
        self.ready = False

    async def start(self) -> None:
        if self._start_error is not None:
            raise self._start_error
        self.ready = True

    async def launch(self, **kwargs) -> FakeSession:
        await self.start()
        self.launch_kwargs.append(kwargs)
        session = self._factory()
        self.sessions.append(session)
        return session

    async def shutdown(self) -> None:
        self.ready = False


class GatedLauncher(FakeLauncher):
    """``launch`` blocks until ``release()``, like a slow browser start."""

    def __init__(self, factory: Callable[[], FakeSession] | None = None) -> None:
        super().__init__(factory)
        self.launching = asyncio.Event()
        self._gate = asyncio.Event()

    async def launch(self, **kwargs) -> FakeSession:
        self.launching.set()
        await self._gate.wait()
        return await super().launch(**kwargs)

    def release(self) -> None:
        self._gate.set()


# ---------------------------------------------------------------------------
# Controllable task runner for orchestrator tests
# ---------------------------------------------------------------------------

class FakeRunner:
    """Each crawl blocks until ``finish(url)`` unless ``auto_finish`` is set."""

    def __init__(self, *, auto_finish: bool = False, ready_error: Exception | None = None) -> None:
        self.auto_finish = auto_finish
        self.ready_error = ready_error
        self.outcomes: dict[str, object] = {}
        self.started: list[str] = []
        self.cancelled: list[str] = []
        self.held_cancels: set[str] = set()
        self.configs: list[CrawlConfig] = []
        self._gates: dict[str, asyncio.Event] = {}
        self._running: dict[str, str] = {}

    async def ensure_ready(self) -> None:
        if self.ready_error is not None:
            raise self.ready_error

    async def run(self, task_id, url, config, *, log=None, progress=None) -> HotelRecord:
        self.started.append(url)
        self.configs.append(config)
        if task_id in self.held_cancels:
            self.held_cancels.discard(task_id)
            raise SessionClosedError("Crawl cancelled before the page opened")
        self._running[task_id] = url
        try:
            if log:
                log(f"Navigating to {url}")
            if not self.auto_finish:
                await self._gate(url).wait()
            if progress:
                progress(60)
            outcome = self.outcomes.get(url, HotelRecord(url=url, name=f"Hotel {len(self.started)}"))
            if isinstance(outcome, BaseException):
                raise outcome
            return outcome
        finally:
            self._running.pop(task_id, None)

    def finish(self, url: str, outcome: object | None = None) -> None:
        if outcome is not None:
            self.outcomes[url] = outcome
        self._gate(url).set()

    def fail(self, url: str, error: Exception | None = None) -> None:
        self.finish(url, error or NavigationError(f"Navigation to {url} timed out after 60000ms"))

    async def cancel(self, task_id: str) -> bool:
        url = self._running.get(task_id)
        if url is None:
            self.held_cancels.add(task_id)
            return False
        self.cancelled.append(task_id)
        self.finish(url, SessionClosedError("Page session closed during extraction"))
        return True

    async def close_all(self) -> None:
        for task_id in list(self._running):
            await self.cancel(task_id)

    def _gate(self, url: str) -> asyncio.Event:
        if url not in self._gates:
            self._gates[url] = asyncio.Event()
        return self._gates[url]


# ---------------------------------------------------------------------------
# In-memory task store
# ---------------------------------------------------------------------------

class MemoryTaskStore(TaskStore):
    def __init__(self, *, fail: bool = False) -> None:
        self.tasks: dict[str, CrawlTask] = {}
        self.fail = fail
        self.saves = 0

    async def save(self, task: CrawlTask) -> None:
        if self.fail:
            raise PersistenceError("disk full")
        self.saves += 1
        self.tasks[task.id] = task.snapshot()

    async def load_all(self, limit: int = 1000, offset: int = 0) -> list[CrawlTask]:
        if self.fail:
            raise PersistenceError("disk full")
        ordered = sorted(self.tasks.values(), key=lambda t: t.created_at, reverse=True)
        return [t.snapshot() for t in ordered[offset: offset + limit]]

    async def delete(self, task_id: str) -> bool:
        return self.tasks.pop(task_id, None) is not None

    async def delete_all(self) -> None:
        self.tasks.clear()

    async def stats(self) -> QueueStats:
        return QueueStats.from_tasks(list(self.tasks.values()))


# ---------------------------------------------------------------------------
# Orchestrator fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture
def store() -> MemoryTaskStore:
    return MemoryTaskStore()


def make_orchestrator(
    runner: FakeRunner,
    *,
    store: TaskStore | None = None,
    clock: Callable[[], float] | None = None,
    **config: object,
) -> CrawlOrchestrator:
    values = {"concurrency": 2, "delay_per_task_seconds": 0, "batch_size": 0}
    values.update(config)
    kwargs = {"clock": clock} if clock else {}
    return CrawlOrchestrator(
        runner=runner,  # type: ignore[arg-type]
        log_sink=TaskLogSink(global_limit=100),
        config=CrawlConfig(**values),
        store=store,
        tick_interval_seconds=0.01,
        **kwargs,
    )


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    """Yield to the loop until *predicate* holds or fail after *timeout*."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


# ---------------------------------------------------------------------------
# Hypothesis strategies
# ---------------------------------------------------------------------------

review_scores = st.floats(min_value=0, max_value=10, allow_nan=False, allow_infinity=False)

listing_urls = st.builds(
    lambda slug, cc: f"https://www.booking.com/hotel/{cc}/{slug}.html",
    st.text(alphabet="abcdefghijklmnopqrstuvwxyz-", min_size=1, max_size=20),
    st.sampled_from(["vn", "fr", "us", "jp"]),
)

log_messages = st.text(min_size=1, max_size=80)
