"""URL validation for crawl targets."""

from __future__ import annotations

from urllib.parse import urlparse

_ALLOWED_SCHEMES = {"http", "https"}


def validate_url(url: str) -> bool:
    """Return True for an absolute http/https URL with a host."""
    try:
        parsed = urlparse(url)
        if parsed.scheme.lower() not in _ALLOWED_SCHEMES:
            return False
        if not parsed.hostname:
            return False
        # Raises ValueError on a malformed port
        parsed.port
        return True
    except ValueError:
        return False


def parse_url_lines(text: str) -> tuple[list[str], list[str]]:
    """Split newline-delimited input into ``(valid, rejected)`` URLs.

    Lines are trimmed and blank lines skipped; input order is preserved.
    """
    valid: list[str] = []
    rejected: list[str] = []
    for line in text.splitlines():
        url = line.strip()
        if not url:
            continue
        (valid if validate_url(url) else rejected).append(url)
    return valid, rejected
