"""Playwright page sessions and the launcher that creates them.

Each crawl task owns one ``PageSession``: an independent Chromium process
with a single tab. Nothing is shared between sessions, so an
anti-automation block or a crash in one task cannot affect its siblings.
Closing a session aborts its in-flight browser calls; every primitive
called afterwards raises :class:`SessionClosedError`.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from hotel_crawler.browser.executable import find_chrome_executable
from hotel_crawler.middleware.error_handler import (
    BrowserNotFoundError,
    NavigationError,
    SessionClosedError,
)

logger = logging.getLogger(__name__)

# Chromium flags for containerized / headless operation
CHROMIUM_ARGS: list[str] = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-accelerated-2d-canvas",
    "--disable-gpu",
    "--window-size=1920,1080",
]

VIEWPORT = {"width": 1920, "height": 1080}

# Scrolls in fixed steps until the document height is reached.
_AUTO_SCROLL_JS = """
async ([distance, interval]) => {
  await new Promise((resolve) => {
    let total = 0;
    const timer = setInterval(() => {
      const height = document.body ? document.body.scrollHeight : 0;
      window.scrollBy(0, distance);
      total += distance;
      if (total >= height) {
        clearInterval(timer);
        resolve();
      }
    }, interval);
  });
  window.scrollTo(0, 0);
}
"""


class PageSession:
    """One automated browser tab: navigate, evaluate, scroll, close."""

    def __init__(
        self,
        *,
        browser: Any,
        page: Any,
        navigation_timeout_ms: int = 60000,
    ) -> None:
        self._browser = browser
        self._page = page
        self._navigation_timeout_ms = navigation_timeout_ms
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def url(self) -> str:
        return self._page.url

    async def navigate(
        self,
        url: str,
        *,
        wait_until: str = "networkidle",
        timeout_ms: int | None = None,
    ) -> None:
        """Load *url*; raises :class:`NavigationError` on timeout, network or HTTP failure."""
        self._ensure_open()
        timeout = timeout_ms or self._navigation_timeout_ms
        try:
            response = await self._page.goto(url, wait_until=wait_until, timeout=timeout)
        except PlaywrightError as exc:
            if self._closed:
                raise SessionClosedError(f"Session closed while loading {url}") from exc
            if isinstance(exc, PlaywrightTimeoutError):
                raise NavigationError(
                    f"Navigation to {url} timed out after {timeout}ms", url=url
                ) from exc
            raise NavigationError(f"Navigation to {url} failed: {exc.message}", url=url) from exc

        if response is not None and response.status >= 400:
            raise NavigationError(
                f"Navigation to {url} returned HTTP {response.status}",
                url=url,
                http_status=response.status,
            )

    async def evaluate(self, script: str, arg: Any = None) -> Any:
        """Run *script* in the page and return its JSON-serialisable result."""
        self._ensure_open()
        try:
            return await self._page.evaluate(script, arg)
        except PlaywrightError as exc:
            if self._closed:
                raise SessionClosedError("Session closed during evaluate") from exc
            raise

    async def settle(self, seconds: float) -> None:
        """Wait inside the page so that closing the session aborts the wait."""
        self._ensure_open()
        if seconds <= 0:
            return
        try:
            await self._page.wait_for_timeout(seconds * 1000)
        except PlaywrightError as exc:
            raise SessionClosedError("Session closed during settle delay") from exc

    async def scroll_to_bottom(self, step_px: int = 100, interval_ms: int = 100) -> None:
        """Scroll incrementally to the bottom to trigger lazy loading, then back to top."""
        await self.evaluate(_AUTO_SCROLL_JS, [step_px, interval_ms])

    async def close(self) -> None:
        """Tear down the tab and its browser. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        try:
            await self._browser.close()
        except Exception:
            logger.debug("Error closing browser (may already be closed)", exc_info=True)

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError()


class BrowserLauncher:
    """Starts Playwright once and launches an isolated browser per session.

    Lifecycle
    ---------
    1. ``start()`` — start Playwright and verify a usable Chromium exists.
    2. ``launch(headless, user_agent)`` — new browser + tab as a PageSession.
    3. ``shutdown()`` — stop the Playwright process.
    """

    def __init__(
        self,
        *,
        executable_path: str | None = None,
        use_system_chrome: bool = False,
        navigation_timeout_ms: int = 60000,
    ) -> None:
        self._configured_path = executable_path
        self._use_system_chrome = use_system_chrome
        self._navigation_timeout_ms = navigation_timeout_ms
        self._playwright: Any = None
        self._executable_path: str | None = None
        self._lock = asyncio.Lock()

    @property
    def ready(self) -> bool:
        return self._playwright is not None

    @property
    def executable_path(self) -> str | None:
        return self._executable_path

    async def start(self) -> None:
        """Start Playwright and resolve the browser executable.

        Raises :class:`BrowserNotFoundError` when no usable browser exists.
        """
        async with self._lock:
            if self._playwright is not None:
                return

            from playwright.async_api import async_playwright

            playwright = await async_playwright().start()
            try:
                self._executable_path = self._resolve_executable(playwright)
            except BrowserNotFoundError:
                await playwright.stop()
                raise
            self._playwright = playwright
            logger.info(
                "Browser launcher ready (executable=%s)",
                self._executable_path or "bundled chromium",
            )

    async def launch(self, *, headless: bool, user_agent: str) -> PageSession:
        """Launch a fresh browser with one tab and wrap it in a PageSession."""
        await self.start()

        launch_kwargs: dict = {"headless": headless, "args": CHROMIUM_ARGS}
        if self._executable_path:
            launch_kwargs["executable_path"] = self._executable_path

        try:
            browser = await self._playwright.chromium.launch(**launch_kwargs)
        except PlaywrightError as exc:
            raise NavigationError(f"Failed to launch browser: {exc.message}") from exc

        browser.on(
            "disconnected",
            lambda _browser: logger.debug("Browser disconnected"),
        )

        try:
            context = await browser.new_context(user_agent=user_agent, viewport=VIEWPORT)
            page = await context.new_page()
        except PlaywrightError as exc:
            await browser.close()
            raise NavigationError(f"Failed to open browser tab: {exc.message}") from exc

        return PageSession(
            browser=browser,
            page=page,
            navigation_timeout_ms=self._navigation_timeout_ms,
        )

    async def shutdown(self) -> None:
        """Stop Playwright. Sessions must be closed by their owners first."""
        if self._playwright is not None:
            await self._playwright.stop()
            self._playwright = None
            logger.info("Browser launcher shut down")

    def _resolve_executable(self, playwright: Any) -> str | None:
        """Return the executable to launch, ``None`` meaning bundled Chromium."""
        if self._configured_path:
            if not Path(self._configured_path).exists():
                raise BrowserNotFoundError(
                    f"Configured Chrome executable does not exist: {self._configured_path}"
                )
            return self._configured_path

        if self._use_system_chrome:
            found = find_chrome_executable()
            if found is None:
                raise BrowserNotFoundError(
                    "No Chrome or Chromium installation found on this system"
                )
            return found

        bundled = playwright.chromium.executable_path
        if not bundled or not Path(bundled).exists():
            raise BrowserNotFoundError(
                "Playwright Chromium is not installed; run `playwright install chromium`"
            )
        return None
