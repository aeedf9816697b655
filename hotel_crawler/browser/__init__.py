"""Browser sessions for crawl tasks."""

from hotel_crawler.browser.executable import find_chrome_executable
from hotel_crawler.browser.session import CHROMIUM_ARGS, BrowserLauncher, PageSession

__all__ = ["CHROMIUM_ARGS", "BrowserLauncher", "PageSession", "find_chrome_executable"]
