"""Hotel listing field resolvers.

Selector tables and parsers for every logical field of a ``HotelRecord``
except the image gallery (see ``extractors.gallery``). Selectors are listed
from the current markup to older layouts; class-name selectors track the
site's generated class names and are expected to drift.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from hotel_crawler.extractors import structured_data as sd
from hotel_crawler.extractors.cascade import (
    ExtractionContext,
    FieldResolver,
    first_match,
    from_structured,
)
from hotel_crawler.extractors.dom import (
    FAQ_ITEMS_JS,
    FAQ_LIST_JS,
    HOUSE_RULES_JS,
    NEARBY_JS,
    clean_text,
    dedupe,
    query_all_text,
    query_html,
    query_text,
)
from hotel_crawler.models.hotel import (
    Faq,
    HouseRules,
    NearbyCategory,
    NearbyItem,
    Rating,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# CSS selectors, most specific first
# ---------------------------------------------------------------------------
_SELECTORS = {
    "name": [
        "h2.pp-header__title",
        'h2[data-testid="property-name"]',
        ".hp__hotel-name",
        "h2.hp-hotel-name",
    ],
    "address": [
        '[data-testid="address"]',
        ".hp_address_subtitle",
        ".address",
        "span.hp_address_subtitle",
    ],
    "about_html": [
        'p[data-testid="property-description"]',
    ],
    "about_text": [
        "#property_description_content",
        ".hp-description",
        ".hotel-description",
    ],
    "facilities": [
        'div[data-testid="facility-group-container"] span.f6b6d2a959',
        '[data-testid="property-most-popular-facilities-wrapper"] .a815ec762e.ab06168e37',
        ".important_facility",
        ".hotel-facilities-group",
    ],
    "score": [
        '[data-testid="review-score-component"] div[aria-label]',
        ".b5cd09854e.d10a6220b4",
        ".a3b8729ab1.d86cee9b25",
    ],
    "review_count": [
        '[data-testid="review-score-component"]',
        ".d8eab2cf7f.c90c0a70d3",
    ],
    "category": [
        '[data-testid="review-score-component"]',
    ],
    "breadcrumbs": [
        "#breadcrumb li",
        'nav[aria-label="Breadcrumb"] li',
        '[data-testid="breadcrumbs"] li',
        ".bui-breadcrumb__item",
    ],
}

# (list container, question, answer)
_FAQ_LIST = ('div[data-testid="faqs-list"]', 'h3[data-testid="question"]', 'div[data-testid="answer"]')

# (item, question, answer)
_FAQ_ITEMS = [
    ('[data-testid="faq-item"]', "button, .faq-question, h3", '.faq-answer, [data-testid="faq-answer"], p'),
    (".faq-item", "button, .faq-question, h3", ".faq-answer, p"),
    (".hp-faq-item", ".hp-faq-question, h3", ".hp-faq-answer, p"),
]

# (rule section, value box, value line)
_HOUSE_RULES = (".b0400e5749", ".c92998be48", ".b99b6ef58f")

# (block, heading, item, name, distance, type)
_NEARBY = [
    (
        '[data-testid="poi-block"]',
        'h3, [role="heading"]',
        "li",
        '[data-testid="poi-name"], .aa225776f2, .dc5041d860',
        '[data-testid="poi-distance"], .a53cbfa6de, .b99b6ef58f',
        '[data-testid="poi-type"], .f0d4d6a2f5',
    ),
    (
        ".hp_location_block__section_container",
        ".hp_location_block__section_title, h3",
        ".bui-list__item",
        ".bui-list__description",
        ".bui-list__item-action",
        "",
    ),
]

# ---------------------------------------------------------------------------
# Rating
# ---------------------------------------------------------------------------

# Score thresholds used when the page shows a score but no label.
_CATEGORY_THRESHOLDS = [
    (9.0, "Excellent"),
    (8.0, "Very Good"),
    (7.0, "Good"),
    (6.0, "Pleasant"),
]

# Longest first so "Very Good" is matched before "Good".
_CATEGORY_LABELS = sorted(
    ["Exceptional", "Wonderful", "Superb", "Fabulous", "Excellent", "Very Good", "Good", "Pleasant", "Fair"],
    key=len,
    reverse=True,
)

_REVIEW_COUNT = re.compile(r"(\d{1,3}(?:[,.]\d{3})+|\d+)\s*reviews?\b", re.IGNORECASE)


def category_for_score(score: float) -> str:
    for threshold, label in _CATEGORY_THRESHOLDS:
        if score >= threshold:
            return label
    return "Fair"


def parse_score(text: str | None) -> float | None:
    """First number in *text* when it is a plausible 0-10 review score."""
    score = sd.parse_number(text)
    if score is None or not 0 <= score <= sd.MAX_SCORE:
        return None
    return score


def parse_review_count(text: str | None) -> int | None:
    """Count from ``"1,234 reviews"``; a bare number is not a review count."""
    if not text:
        return None
    match = _REVIEW_COUNT.search(text)
    if not match:
        return None
    return int(re.sub(r"[,.]", "", match.group(1)))


def parse_category(text: str | None) -> str | None:
    if not text:
        return None
    lowered = text.lower()
    for label in _CATEGORY_LABELS:
        if re.search(r"\b" + re.escape(label.lower()) + r"\b", lowered):
            return label
    return None


SCORE = FieldResolver(
    "rating.score",
    [
        from_structured(sd.rating_score),
        first_match(_SELECTORS["score"], query_text, parse_score),
    ],
)

REVIEW_COUNT = FieldResolver(
    "rating.review_count",
    [
        from_structured(sd.rating_review_count),
        first_match(_SELECTORS["review_count"], query_text, parse_review_count),
    ],
)

CATEGORY = FieldResolver(
    "rating.category",
    [first_match(_SELECTORS["category"], query_text, parse_category)],
    warn_on_miss=False,
)


async def resolve_rating(ctx: ExtractionContext) -> Rating | None:
    """Score and review count resolve independently, each preferring structured data.

    A missing label is derived from the score.
    """
    score = await SCORE.resolve(ctx)
    review_count = await REVIEW_COUNT.resolve(ctx)
    category = await CATEGORY.resolve(ctx)

    if category is None and score is not None:
        category = category_for_score(score)
    if score is None and review_count is None and category is None:
        return None
    return Rating(score=score, review_count=review_count, category=category)


# ---------------------------------------------------------------------------
# FAQs
# ---------------------------------------------------------------------------


def parse_faqs(pairs: list | None) -> tuple[Faq, ...]:
    """Build FAQ entries from raw ``[question, answer]`` pairs.

    Pairs missing either half are dropped; exact duplicates collapse.
    """
    faqs = []
    for pair in pairs or []:
        if not isinstance(pair, (list, tuple)) or len(pair) != 2:
            continue
        question, answer = clean_text(pair[0]), clean_text(pair[1])
        if question and answer:
            faqs.append(Faq(question=question, answer=answer))
    return tuple(dedupe(faqs))


def _faq_list(list_selector: str, question_selector: str, answer_selector: str):
    async def _strategy(ctx: ExtractionContext) -> tuple[Faq, ...]:
        raw = await ctx.session.evaluate(
            FAQ_LIST_JS, [list_selector, question_selector, answer_selector]
        )
        return parse_faqs(raw)

    return _strategy


def _faq_items(item_selector: str, question_selector: str, answer_selector: str):
    async def _strategy(ctx: ExtractionContext) -> tuple[Faq, ...]:
        raw = await ctx.session.evaluate(
            FAQ_ITEMS_JS, [item_selector, question_selector, answer_selector]
        )
        return parse_faqs(raw)

    return _strategy


FAQS = FieldResolver(
    "faqs",
    [_faq_list(*_FAQ_LIST)] + [_faq_items(*selectors) for selectors in _FAQ_ITEMS],
)

# ---------------------------------------------------------------------------
# House rules
# ---------------------------------------------------------------------------

# Heading text (exact) -> single-valued HouseRules attribute
_SINGLE_RULES = {
    "Check-in": "check_in",
    "Check-out": "check_out",
    "Cancellation/prepayment": "cancellation_policy",
    "Cancellation/ prepayment": "cancellation_policy",
    "Age restriction": "age_restriction",
    "Pets": "pets",
    "Cash": "cash_policy",
}

_CHILD_HEADINGS = frozenset({"Children and beds", "Child policies"})

_CARD_HEADINGS = frozenset({"Accepted payment methods", "Cards accepted at this hotel"})


def parse_house_rules(sections: list | None) -> HouseRules | None:
    """Map ``[heading, lines, labels]`` sections onto ``HouseRules``.

    Unknown headings are ignored. Returns ``None`` when nothing is recognised.
    """
    values: dict = {}
    for section in sections or []:
        if not isinstance(section, (list, tuple)) or len(section) != 3:
            continue
        heading = clean_text(section[0])
        lines = dedupe(text for text in map(clean_text, section[1] or []) if text)
        labels = dedupe(text for text in map(clean_text, section[2] or []) if text)
        if not heading:
            continue

        if heading in _SINGLE_RULES and lines:
            values.setdefault(_SINGLE_RULES[heading], " ".join(lines))
        elif heading in _CHILD_HEADINGS and lines:
            values.setdefault("child_policies", tuple(lines))
        elif heading in _CARD_HEADINGS and (labels or lines):
            values.setdefault("accepted_cards", tuple(labels or lines))

    return HouseRules(**values) if values else None


async def _house_rules_sections(ctx: ExtractionContext) -> HouseRules | None:
    raw = await ctx.session.evaluate(HOUSE_RULES_JS, list(_HOUSE_RULES))
    return parse_house_rules(raw)


HOUSE_RULES = FieldResolver("house_rules", [_house_rules_sections])

# ---------------------------------------------------------------------------
# Nearby places
# ---------------------------------------------------------------------------


def parse_nearby(blocks: list | None) -> tuple[NearbyCategory, ...]:
    """Build categories from ``[heading, [[name, distance, type], ...]]`` blocks.

    Items need a name and a distance; categories without items are dropped.
    """
    categories = []
    for block in blocks or []:
        if not isinstance(block, (list, tuple)) or len(block) != 2:
            continue
        heading = clean_text(block[0])
        if not heading:
            continue
        items = []
        for raw in block[1] or []:
            if not isinstance(raw, (list, tuple)) or len(raw) != 3:
                continue
            item_name, distance = clean_text(raw[0]), clean_text(raw[1])
            if item_name and distance:
                items.append(NearbyItem(name=item_name, distance=distance, type=clean_text(raw[2])))
        items = dedupe(items)
        if items:
            categories.append(NearbyCategory(category=heading, items=tuple(items)))
    return tuple(categories)


def _nearby_blocks(selectors: tuple):
    async def _strategy(ctx: ExtractionContext) -> tuple[NearbyCategory, ...]:
        raw = await ctx.session.evaluate(NEARBY_JS, list(selectors))
        return parse_nearby(raw)

    return _strategy


NEARBY = FieldResolver("nearby_places", [_nearby_blocks(selectors) for selectors in _NEARBY])

# ---------------------------------------------------------------------------
# Location (structured address, then breadcrumb trail)
# ---------------------------------------------------------------------------

_GENERIC_CRUMBS = frozenset(
    {"home", "hotels", "homes", "apartments", "accommodation", "accommodations", "properties"}
)


@dataclass(frozen=True)
class LocationTrail:
    country: str | None = None
    region: str | None = None
    city: str | None = None


def parse_breadcrumbs(crumbs: list[str] | None) -> LocationTrail | None:
    """Read country, region and city from a breadcrumb trail.

    The trail runs ``Home > Hotels > Country > Region > City > Hotel``: leading
    generic crumbs and the trailing hotel crumb are dropped; the first place
    is the country, the last the city and, with three or more places, the
    second is the region.
    """
    places = [
        text
        for text in (clean_text((crumb or "").strip(" ›>/")) for crumb in crumbs or [])
        if text
    ]
    while places and places[0].lower() in _GENERIC_CRUMBS:
        places.pop(0)
    places = places[:-1]
    if not places:
        return None
    return LocationTrail(
        country=places[0],
        region=places[1] if len(places) >= 3 else None,
        city=places[-1] if len(places) >= 2 else None,
    )


_breadcrumb_lookup = first_match(_SELECTORS["breadcrumbs"], query_all_text, parse_breadcrumbs)


async def _breadcrumb_trail(ctx: ExtractionContext) -> LocationTrail | None:
    return await ctx.memo("breadcrumbs", lambda: _breadcrumb_lookup(ctx))


def _from_breadcrumbs(attribute: str):
    async def _strategy(ctx: ExtractionContext) -> str | None:
        trail = await _breadcrumb_trail(ctx)
        return getattr(trail, attribute) if trail else None

    return _strategy


CITY = FieldResolver("city_name", [from_structured(sd.locality), _from_breadcrumbs("city")])
REGION = FieldResolver("region_name", [from_structured(sd.region), _from_breadcrumbs("region")])
COUNTRY = FieldResolver("country_name", [from_structured(sd.country), _from_breadcrumbs("country")])

# ---------------------------------------------------------------------------
# Plain text fields
# ---------------------------------------------------------------------------

NAME = FieldResolver(
    "name",
    [from_structured(sd.name), first_match(_SELECTORS["name"], query_text)],
)

ADDRESS = FieldResolver(
    "address",
    [from_structured(sd.street_address), first_match(_SELECTORS["address"], query_text)],
)

ABOUT = FieldResolver(
    "about",
    [
        from_structured(sd.description),
        first_match(_SELECTORS["about_html"], query_html),
        first_match(_SELECTORS["about_text"], query_text),
    ],
)


async def _facility_texts(ctx: ExtractionContext) -> tuple[str, ...]:
    texts = await first_match(_SELECTORS["facilities"], query_all_text)(ctx)
    return tuple(texts or ())


FACILITIES = FieldResolver("facilities", [_facility_texts])
