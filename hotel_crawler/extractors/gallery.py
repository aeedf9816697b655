"""Gallery images.

The full photo set is only rendered once the gallery overlay is open, so
images need a second navigation to the listing with the gallery tab
activated. This re-navigates the session and must run after every other
field has been resolved.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING
from urllib.parse import parse_qsl, urlencode, urljoin, urlsplit, urlunsplit

from hotel_crawler.extractors.cascade import ExtractionContext, FieldResolver
from hotel_crawler.extractors.dom import all_image_sources, dedupe, query_image_sources

if TYPE_CHECKING:
    from hotel_crawler.browser.session import PageSession

logger = logging.getLogger(__name__)

GALLERY_PARAM = ("activeTab", "photosGallery")

_PRIMARY_SELECTOR = 'picture[data-testid="lazy-image-image"] img'

_GALLERY_SELECTORS = [
    '[data-testid="gallery-image"] img',
    ".bh-photo-grid-item img",
    ".hotel-photo-carousel img",
    ".photo-gallery img",
    'img[data-testid="image"]',
    ".gallery-image img",
]

# Path fragments of listing photos on the image CDN
_PHOTO_PATH_TOKENS = ("/xdata/images/hotel/", "/images/hotel/", "/photo")


def gallery_url(url: str) -> str:
    """*url* with the gallery-activation query parameter set."""
    parts = urlsplit(url)
    key, value = GALLERY_PARAM
    query = [(k, v) for k, v in parse_qsl(parts.query, keep_blank_values=True) if k != key]
    query.append((key, value))
    return urlunsplit(parts._replace(query=urlencode(query)))


def normalize_image_urls(sources: list[str], base_url: str) -> tuple[str, ...]:
    """Absolute http(s) URLs in first-seen order, without duplicates."""
    absolute = []
    for src in sources:
        if not isinstance(src, str) or not src.strip():
            continue
        url = urljoin(base_url, src.strip())
        if urlsplit(url).scheme in ("http", "https"):
            absolute.append(url)
    return tuple(dedupe(absolute))


def is_photo_url(url: str) -> bool:
    path = urlsplit(url).path.lower()
    return any(token in path for token in _PHOTO_PATH_TOKENS)


async def _primary_images(ctx: ExtractionContext) -> tuple[str, ...]:
    return normalize_image_urls(await query_image_sources(ctx.session, _PRIMARY_SELECTOR), ctx.url)


async def _gallery_images(ctx: ExtractionContext) -> tuple[str, ...]:
    for selector in _GALLERY_SELECTORS:
        images = normalize_image_urls(await query_image_sources(ctx.session, selector), ctx.url)
        if images:
            return images
    return ()


async def _photo_heuristic(ctx: ExtractionContext) -> tuple[str, ...]:
    images = normalize_image_urls(await all_image_sources(ctx.session), ctx.url)
    return tuple(url for url in images if is_photo_url(url))


IMAGES = FieldResolver("images", [_primary_images, _gallery_images, _photo_heuristic])


async def resolve_gallery_images(
    session: "PageSession",
    url: str,
    *,
    settle_seconds: float = 3.0,
) -> tuple[str, ...]:
    """Open the gallery for *url* and collect its image URLs.

    Navigation failures propagate; the caller decides whether they matter.
    """
    target = gallery_url(url)
    await session.navigate(target)
    await session.settle(settle_seconds)
    ctx = ExtractionContext(session=session, url=target)
    return await IMAGES.resolve(ctx) or ()
