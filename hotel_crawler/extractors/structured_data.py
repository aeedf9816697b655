"""Schema.org lodging entity from a page's embedded JSON-LD.

The entity is located once per page and shared by every field cascade. The
getters below read one property each and return ``None`` when it is absent
or malformed, never raising.
"""

from __future__ import annotations

import json
import logging
import re
from typing import TYPE_CHECKING, Any

from hotel_crawler.extractors.dom import clean_text, ld_json_blocks
from hotel_crawler.middleware.error_handler import SessionClosedError

if TYPE_CHECKING:
    from hotel_crawler.browser.session import PageSession

logger = logging.getLogger(__name__)

LODGING_TYPES = frozenset({"Hotel", "LodgingBusiness"})

# Review scores on the listing site run from 0 to 10
MAX_SCORE = 10.0

_NUMBER = re.compile(r"\d+(?:[.,]\d+)?")


def _is_lodging(candidate: Any) -> bool:
    if not isinstance(candidate, dict):
        return False
    kind = candidate.get("@type")
    if isinstance(kind, str):
        return kind in LODGING_TYPES
    if isinstance(kind, list):
        return any(isinstance(k, str) and k in LODGING_TYPES for k in kind)
    return False


def _candidates(data: Any) -> list:
    roots = data if isinstance(data, list) else [data]
    found: list = []
    for root in roots:
        if not isinstance(root, dict):
            continue
        found.append(root)
        graph = root.get("@graph")
        if isinstance(graph, list):
            found.extend(graph)
    return found


def find_lodging_entity(blocks: list[str]) -> dict:
    """Return the first Hotel/LodgingBusiness object in *blocks*, or ``{}``.

    Unparsable blocks are skipped.
    """
    for block in blocks:
        try:
            data = json.loads(block)
        except (TypeError, ValueError):
            logger.debug("Skipping unparsable JSON-LD block")
            continue
        for candidate in _candidates(data):
            if _is_lodging(candidate):
                return candidate
    return {}


async def fetch_structured_data(session: "PageSession") -> dict:
    """Read every JSON-LD block on the page and locate the lodging entity."""
    try:
        blocks = await ld_json_blocks(session)
    except SessionClosedError:
        raise
    except Exception:
        logger.debug("JSON-LD lookup failed on %s", session.url, exc_info=True)
        return {}
    return find_lodging_entity(blocks)


# ---------------------------------------------------------------------------
# Property getters
# ---------------------------------------------------------------------------


def _text(value: Any) -> str | None:
    if isinstance(value, dict):
        value = value.get("name")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    return clean_text(value)


def parse_number(value: Any) -> float | None:
    """Parse ``9.3``, ``"9.3"`` or ``"8,7"`` into a float."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        match = _NUMBER.search(value)
        if match:
            return float(match.group(0).replace(",", "."))
    return None


def parse_count(value: Any) -> int | None:
    """Parse ``1234``, ``"1234"`` or ``"1,234"`` into an int."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    if isinstance(value, str):
        digits = re.sub(r"[,.\s]", "", value)
        if digits.isdigit():
            return int(digits)
    return None


def name(entity: dict) -> str | None:
    return _text(entity.get("name"))


def description(entity: dict) -> str | None:
    return _text(entity.get("description"))


def _address(entity: dict) -> Any:
    return entity.get("address")


def street_address(entity: dict) -> str | None:
    address = _address(entity)
    if isinstance(address, str):
        return clean_text(address)
    if isinstance(address, dict):
        return _text(address.get("streetAddress"))
    return None


def locality(entity: dict) -> str | None:
    address = _address(entity)
    return _text(address.get("addressLocality")) if isinstance(address, dict) else None


def region(entity: dict) -> str | None:
    address = _address(entity)
    return _text(address.get("addressRegion")) if isinstance(address, dict) else None


def country(entity: dict) -> str | None:
    address = _address(entity)
    return _text(address.get("addressCountry")) if isinstance(address, dict) else None


def rating_score(entity: dict) -> float | None:
    """Aggregate score on the 0-10 scale.

    Scores published on another scale are rescaled through ``bestRating``;
    anything still outside 0-10 is rejected.
    """
    rating = entity.get("aggregateRating")
    if not isinstance(rating, dict):
        return None
    score = parse_number(rating.get("ratingValue"))
    if score is None:
        return None
    best = parse_number(rating.get("bestRating"))
    if best and best != MAX_SCORE:
        score = round(score * MAX_SCORE / best, 1)
    if not 0 <= score <= MAX_SCORE:
        return None
    return score


def rating_review_count(entity: dict) -> int | None:
    rating = entity.get("aggregateRating")
    if not isinstance(rating, dict):
        return None
    count = parse_count(rating.get("reviewCount"))
    if count is None:
        count = parse_count(rating.get("ratingCount"))
    return count
