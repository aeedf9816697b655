"""Locate a locally installed Chrome/Chromium executable.

Used when the operator prefers the system browser over Playwright's bundled
Chromium. Returns ``None`` when nothing usable is found; callers turn that
into a configuration error before any task starts.
"""

from __future__ import annotations

import logging
import os
import shutil
import sys
from collections.abc import Callable, Mapping

logger = logging.getLogger(__name__)

_LINUX_CANDIDATES = [
    "/usr/bin/google-chrome",
    "/usr/bin/google-chrome-stable",
    "/usr/bin/chromium-browser",
    "/usr/bin/chromium",
    "/snap/bin/chromium",
    "/usr/local/bin/chrome",
]

_MAC_APP = "Applications/Google Chrome.app/Contents/MacOS/Google Chrome"

_WINDOWS_SUFFIX = os.path.join("Google", "Chrome", "Application", "chrome.exe")

_WHICH_NAMES = ("google-chrome", "google-chrome-stable", "chromium-browser", "chromium")


def candidate_paths(
    platform: str | None = None,
    env: Mapping[str, str] | None = None,
) -> list[str]:
    """Return the platform's usual Chrome install locations, most likely first."""
    platform = platform or sys.platform
    env = os.environ if env is None else env
    paths: list[str] = []

    if platform.startswith("win"):
        paths.append(os.path.join("C:\\Program Files", _WINDOWS_SUFFIX))
        paths.append(os.path.join("C:\\Program Files (x86)", _WINDOWS_SUFFIX))
        for var in ("LOCALAPPDATA", "PROGRAMFILES", "PROGRAMFILES(X86)"):
            base = env.get(var)
            if base:
                paths.append(os.path.join(base, _WINDOWS_SUFFIX))
    elif platform == "darwin":
        paths.append("/" + _MAC_APP)
        home = env.get("HOME")
        if home:
            paths.append(os.path.join(home, _MAC_APP))
    else:
        paths.extend(_LINUX_CANDIDATES)

    # Preserve order, drop duplicates
    return list(dict.fromkeys(paths))


def find_chrome_executable(
    platform: str | None = None,
    env: Mapping[str, str] | None = None,
    exists: Callable[[str], bool] = os.path.exists,
    which: Callable[[str], str | None] = shutil.which,
) -> str | None:
    """Return the first existing Chrome/Chromium executable, or ``None``."""
    platform = platform or sys.platform
    paths = candidate_paths(platform, env)

    if not platform.startswith("win") and platform != "darwin":
        for name in _WHICH_NAMES:
            found = which(name)
            if found:
                paths.insert(0, found)
                break

    for path in paths:
        if path and exists(path):
            logger.debug("Found Chrome executable at %s", path)
            return path

    logger.debug("No Chrome executable found (checked %d paths)", len(paths))
    return None
