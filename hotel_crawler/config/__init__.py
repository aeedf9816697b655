"""Configuration module — process settings and runtime crawl config."""

from hotel_crawler.config.settings import DEFAULT_USER_AGENT, CrawlConfig, CrawlerSettings

__all__ = [
    "CrawlConfig",
    "CrawlerSettings",
    "DEFAULT_USER_AGENT",
]
