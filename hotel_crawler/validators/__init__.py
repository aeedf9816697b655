"""Validators for crawl inputs."""

from hotel_crawler.validators.url_validator import parse_url_lines, validate_url

__all__ = ["parse_url_lines", "validate_url"]
