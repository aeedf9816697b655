"""Field resolver cascade.

Each logical field of a hotel record is resolved by an ordered list of
strategies. A strategy is a plain coroutine function
``(ExtractionContext) -> value | None``; the first one that returns a
non-empty value wins. Structured-data strategies come first, then page
selectors from most specific to least, then page-wide heuristics.

Resolution never raises: a strategy that throws is treated as a miss, and a
field where every strategy misses resolves to ``None`` with a warning.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from hotel_crawler.browser.session import PageSession

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ExtractionContext:
    """Everything a strategy may look at for one page evaluation.

    ``structured`` is the lodging entity parsed once from the page's
    embedded JSON-LD (``{}`` when the page has none) and shared by all
    cascades. ``memo`` lets several fields share one page lookup, e.g. the
    breadcrumb trail used for city, region and country.
    """

    session: "PageSession"
    url: str
    structured: dict = field(default_factory=dict)
    _memo: dict[str, asyncio.Future] = field(default_factory=dict, repr=False)

    async def memo(self, key: str, factory: Callable[[], Awaitable[Any]]) -> Any:
        """Run *factory* once per page evaluation; concurrent callers share the result."""
        future = self._memo.get(key)
        if future is None:
            future = asyncio.ensure_future(factory())
            self._memo[key] = future
        return await asyncio.shield(future)


Strategy = Callable[[ExtractionContext], Awaitable[Any]]


def is_empty(value: Any) -> bool:
    """``None``, blank strings and empty collections do not count as a match."""
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple, set, frozenset, dict)):
        return len(value) == 0
    return False


class FieldResolver(Generic[T]):
    """An ordered strategy list for one logical field."""

    def __init__(
        self,
        name: str,
        strategies: Sequence[Strategy],
        *,
        warn_on_miss: bool = True,
    ) -> None:
        if not strategies:
            raise ValueError(f"Field '{name}' needs at least one strategy")
        self.name = name
        self.strategies = list(strategies)
        self.warn_on_miss = warn_on_miss

    async def resolve(self, ctx: ExtractionContext) -> T | None:
        """Return the first non-empty strategy result, or ``None``."""
        for index, strategy in enumerate(self.strategies):
            try:
                value = await strategy(ctx)
            except Exception:
                logger.debug(
                    "Strategy %d for field '%s' failed on %s",
                    index,
                    self.name,
                    ctx.url,
                    exc_info=True,
                )
                continue
            if not is_empty(value):
                return value

        if self.warn_on_miss:
            logger.warning(
                "No strategy resolved field '%s'",
                self.name,
                extra={"target_url": ctx.url},
            )
        return None


# ---------------------------------------------------------------------------
# Strategy factories
# ---------------------------------------------------------------------------


def from_structured(getter: Callable[[dict], Any]) -> Strategy:
    """Strategy reading a value out of the shared structured-data entity."""

    async def _strategy(ctx: ExtractionContext) -> Any:
        if not ctx.structured:
            return None
        return getter(ctx.structured)

    return _strategy


def first_match(
    selectors: Sequence[str],
    lookup: Callable[["PageSession", str], Awaitable[Any]],
    parse: Callable[[Any], Any] | None = None,
) -> Strategy:
    """Strategy trying *selectors* in order with *lookup*.

    A selector that matches but yields an empty (or unparsable) value does
    not stop the search; the next selector is tried.
    """

    async def _strategy(ctx: ExtractionContext) -> Any:
        for selector in selectors:
            try:
                raw = await lookup(ctx.session, selector)
            except Exception:
                logger.debug("Lookup failed for selector %r", selector, exc_info=True)
                continue
            value = parse(raw) if parse is not None else raw
            if not is_empty(value):
                return value
        return None

    return _strategy
