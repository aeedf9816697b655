"""Task runner — executes one crawl task in its own page session.

Launches a fresh browser session, hands it to the record assembler under
the task-level timeout, and always closes the session afterwards. Sessions
are tracked by task id so an operator can cancel an in-flight crawl; a
cancel that arrives before the session exists is held until launch returns.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from hotel_crawler.middleware.error_handler import SessionClosedError, TaskTimeoutError

if TYPE_CHECKING:
    from hotel_crawler.browser.session import BrowserLauncher, PageSession
    from hotel_crawler.config.settings import CrawlConfig
    from hotel_crawler.models.hotel import HotelRecord
    from hotel_crawler.services.record_assembler import (
        LogCallback,
        ProgressCallback,
        RecordAssembler,
    )

logger = logging.getLogger(__name__)


class TaskRunner:
    """Runs crawls; dependencies are injected so tests need no real browser."""

    def __init__(
        self,
        *,
        launcher: "BrowserLauncher",
        assembler: "RecordAssembler",
        task_timeout_seconds: float = 300.0,
    ) -> None:
        self._launcher = launcher
        self._assembler = assembler
        self._task_timeout = task_timeout_seconds
        self._sessions: dict[str, "PageSession"] = {}
        # Cancels requested before the task's session was open
        self._cancel_requested: set[str] = set()

    async def ensure_ready(self) -> None:
        """Verify the browser can be launched; raises ``BrowserNotFoundError``."""
        await self._launcher.start()

    async def run(
        self,
        task_id: str,
        url: str,
        config: "CrawlConfig",
        *,
        log: "LogCallback | None" = None,
        progress: "ProgressCallback | None" = None,
    ) -> "HotelRecord":
        """Crawl *url* and return its record.

        Raises ``NavigationError`` for page-fetch failures (``SessionClosedError``
        when cancelled) and ``TaskTimeoutError`` when the crawl exceeds the
        task timeout.
        """
        try:
            self._raise_if_cancelled(task_id, url)
            session = await self._launcher.launch(
                headless=config.headless, user_agent=config.user_agent
            )
        except BaseException:
            self._cancel_requested.discard(task_id)
            raise

        self._sessions[task_id] = session
        try:
            self._raise_if_cancelled(task_id, url)
            return await asyncio.wait_for(
                self._assembler.assemble(session, url, log=log, progress=progress),
                timeout=self._task_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise TaskTimeoutError(
                f"Task timed out after {self._task_timeout:g}s", url=url
            ) from exc
        finally:
            self._sessions.pop(task_id, None)
            self._cancel_requested.discard(task_id)
            await session.close()

    async def cancel(self, task_id: str) -> bool:
        """Cancel a crawl of *task_id*.

        Returns True when an open session was closed. Otherwise the request is
        held and the crawl stops as soon as its session has launched.
        """
        session = self._sessions.get(task_id)
        if session is None:
            logger.info("Cancel held until the page session opens", extra={"task_id": task_id})
            self._cancel_requested.add(task_id)
            return False
        logger.info("Closing page session", extra={"task_id": task_id})
        await session.close()
        return True

    async def close_all(self) -> None:
        for task_id in list(self._sessions):
            await self.cancel(task_id)

    @property
    def active_sessions(self) -> int:
        return len(self._sessions)

    @property
    def pending_cancels(self) -> int:
        return len(self._cancel_requested)

    def _raise_if_cancelled(self, task_id: str, url: str) -> None:
        if task_id in self._cancel_requested:
            raise SessionClosedError("Crawl cancelled before the page opened", url=url)
