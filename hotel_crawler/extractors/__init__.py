"""Field resolver cascades for hotel listing pages."""

from hotel_crawler.extractors.cascade import ExtractionContext, FieldResolver, is_empty
from hotel_crawler.extractors.gallery import resolve_gallery_images
from hotel_crawler.extractors.hotel import category_for_score, resolve_rating
from hotel_crawler.extractors.structured_data import fetch_structured_data

__all__ = [
    "ExtractionContext",
    "FieldResolver",
    "category_for_score",
    "fetch_structured_data",
    "is_empty",
    "resolve_gallery_images",
    "resolve_rating",
]
