"""Record assembler — drives the field cascades for one listing page.

Pipeline: navigate → settle → lazy-load scroll → structured data →
independent fields concurrently → DOM-dependent fields sequentially →
gallery images (second navigation) → immutable ``HotelRecord``.

Navigation of the listing itself is the only step allowed to fail the
crawl. Field misses resolve to ``None``; a failed gallery navigation leaves
``images`` empty and keeps every other field.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from hotel_crawler.extractors import hotel
from hotel_crawler.extractors.cascade import ExtractionContext
from hotel_crawler.extractors.gallery import resolve_gallery_images
from hotel_crawler.extractors.structured_data import fetch_structured_data
from hotel_crawler.middleware.error_handler import CrawlerError, SessionClosedError
from hotel_crawler.models.hotel import HotelRecord
from hotel_crawler.models.task import LogSeverity, utcnow

if TYPE_CHECKING:
    from hotel_crawler.browser.session import PageSession

logger = logging.getLogger(__name__)

LogCallback = Callable[..., None]
ProgressCallback = Callable[[int], None]

# Progress milestones reported through the progress callback
PROGRESS_NAVIGATED = 30
PROGRESS_PARALLEL_FIELDS = 60
PROGRESS_SEQUENTIAL_FIELDS = 80


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


class RecordAssembler:
    """Builds one ``HotelRecord`` from an open page session."""

    def __init__(
        self,
        *,
        page_settle_seconds: float = 2.0,
        gallery_settle_seconds: float = 3.0,
        scroll_step_px: int = 100,
        scroll_interval_ms: int = 100,
    ) -> None:
        self._page_settle = page_settle_seconds
        self._gallery_settle = gallery_settle_seconds
        self._scroll_step = scroll_step_px
        self._scroll_interval = scroll_interval_ms

    async def assemble(
        self,
        session: "PageSession",
        url: str,
        *,
        log: LogCallback | None = None,
        progress: ProgressCallback | None = None,
    ) -> HotelRecord:
        """Crawl *url* in *session* and return the assembled record.

        Raises ``NavigationError`` (or ``SessionClosedError``) when the
        listing page cannot be loaded or the session is torn down.
        """
        log = log or _noop
        progress = progress or _noop
        started = time.monotonic()

        log(f"Navigating to {url}")
        await session.navigate(url)
        await session.settle(self._page_settle)
        await self._lazy_load(session, log)
        progress(PROGRESS_NAVIGATED)

        structured = await fetch_structured_data(session)
        if structured:
            log("Found structured listing data")
        else:
            log("No structured listing data, using page selectors", LogSeverity.WARNING)
        ctx = ExtractionContext(session=session, url=url, structured=structured)

        name, address, rating, city, region, country = await asyncio.gather(
            hotel.NAME.resolve(ctx),
            hotel.ADDRESS.resolve(ctx),
            hotel.resolve_rating(ctx),
            hotel.CITY.resolve(ctx),
            hotel.REGION.resolve(ctx),
            hotel.COUNTRY.resolve(ctx),
        )
        self._checkpoint(session)
        progress(PROGRESS_PARALLEL_FIELDS)

        about = await hotel.ABOUT.resolve(ctx)
        facilities = await hotel.FACILITIES.resolve(ctx)
        house_rules = await hotel.HOUSE_RULES.resolve(ctx)
        faqs = await hotel.FAQS.resolve(ctx)
        nearby = await hotel.NEARBY.resolve(ctx)
        self._checkpoint(session)
        progress(PROGRESS_SEQUENTIAL_FIELDS)

        images = await self._gallery(session, url, log)

        record = HotelRecord(
            url=url,
            name=name,
            address=address,
            rating=rating,
            facilities=facilities or (),
            faqs=faqs or (),
            about=about,
            house_rules=house_rules,
            images=images,
            city_name=city,
            region_name=region,
            country_name=country,
            nearby_places=nearby or (),
            crawled_at=utcnow(),
        )

        resolved = record.resolved_fields()
        missing = [
            field
            for field in type(record).model_fields
            if field not in resolved and field not in ("url", "crawled_at")
        ]
        if missing:
            log(f"Fields not found: {', '.join(missing)}", LogSeverity.WARNING)

        logger.debug(
            "Assembled record for %s in %.0fms",
            url,
            (time.monotonic() - started) * 1000,
            extra={"target_url": url, "fields_extracted": len(resolved)},
        )
        return record

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _lazy_load(self, session: "PageSession", log: LogCallback) -> None:
        """Scroll to the bottom and back so lazily rendered sections exist."""
        try:
            await session.scroll_to_bottom(self._scroll_step, self._scroll_interval)
        except SessionClosedError:
            raise
        except Exception as exc:
            log(f"Lazy-load scroll failed: {exc}", LogSeverity.WARNING)

    async def _gallery(self, session: "PageSession", url: str, log: LogCallback) -> tuple[str, ...]:
        log("Opening photo gallery")
        try:
            images = await resolve_gallery_images(
                session, url, settle_seconds=self._gallery_settle
            )
        except SessionClosedError:
            raise
        except Exception as exc:
            self._checkpoint(session)
            reason = exc.message if isinstance(exc, CrawlerError) else str(exc)
            log(f"Gallery unavailable, keeping fields without images: {reason}", LogSeverity.WARNING)
            return ()
        self._checkpoint(session)
        log(f"Collected {len(images)} images")
        return tuple(images)

    @staticmethod
    def _checkpoint(session: "PageSession") -> None:
        # A session closed mid-extraction fails the crawl, not just the fields.
        if session.closed:
            raise SessionClosedError("Page session closed during extraction")
