"""Hotel record output schema.

Every field is optional so that partial extractions succeed — a missing
field is ``None`` (or an empty tuple for collections) rather than a
validation failure. Records are frozen: a re-crawl builds a new one.
"""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class Rating(_Frozen):
    score: float | None = None
    review_count: int | None = None
    category: str | None = None


class Faq(_Frozen):
    question: str
    answer: str


class HouseRules(_Frozen):
    check_in: str | None = None
    check_out: str | None = None
    cancellation_policy: str | None = None
    pets: str | None = None
    age_restriction: str | None = None
    accepted_cards: tuple[str, ...] | None = None
    cash_policy: str | None = None
    child_policies: tuple[str, ...] | None = None


class NearbyItem(_Frozen):
    name: str
    distance: str
    type: str | None = None


class NearbyCategory(_Frozen):
    category: str
    items: tuple[NearbyItem, ...] = ()


class HotelRecord(_Frozen):
    """Output schema for one crawled hotel listing page."""

    url: str | None = None
    name: str | None = None
    address: str | None = None
    rating: Rating | None = None
    facilities: tuple[str, ...] = ()
    faqs: tuple[Faq, ...] = ()
    about: str | None = None
    house_rules: HouseRules | None = None
    images: tuple[str, ...] = ()
    city_name: str | None = None
    region_name: str | None = None
    country_name: str | None = None
    nearby_places: tuple[NearbyCategory, ...] = ()
    crawled_at: datetime | None = None

    def resolved_fields(self) -> list[str]:
        """Names of content fields that carry a value."""
        skip = {"url", "crawled_at"}
        return [
            name
            for name in type(self).model_fields
            if name not in skip and getattr(self, name) not in (None, ())
        ]
