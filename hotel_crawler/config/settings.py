"""Pydantic settings and the runtime crawl configuration.

All environment variables use the HOTEL_CRAWLER_ prefix.
Example: HOTEL_CRAWLER_PORT=8010, HOTEL_CRAWLER_CONCURRENCY=3
"""

from __future__ import annotations

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class CrawlConfig(BaseModel):
    """Operator-tunable pacing and browser options.

    Read by the orchestrator at scheduling decision points only, so a
    replacement takes effect on the next tick and never mid-task.
    """

    concurrency: int = Field(default=2, ge=1, le=10)
    delay_per_task_seconds: float = Field(default=2.0, ge=0)
    batch_size: int = Field(default=10, ge=0)  # 0 disables batch pauses
    batch_pause_seconds: float = Field(default=30.0, ge=0)
    headless: bool = False
    user_agent: str = Field(default=DEFAULT_USER_AGENT, min_length=1)

    model_config = {"frozen": True}


class CrawlerSettings(BaseSettings):
    """Process configuration validated from environment variables."""

    # Service
    host: str = "127.0.0.1"
    port: int = 8010
    log_level: str = "INFO"

    # Persistence
    database_url: str = "sqlite:///hotel_crawler.db"
    restore_limit: int = Field(default=1000, ge=1)

    # Browser
    chrome_executable_path: str | None = None
    use_system_chrome: bool = False
    navigation_timeout_ms: int = Field(default=60000, ge=1000)
    task_timeout_seconds: int = Field(default=300, ge=5)
    page_settle_seconds: float = Field(default=2.0, ge=0)
    gallery_settle_seconds: float = Field(default=3.0, ge=0)
    scroll_step_px: int = Field(default=100, ge=1)
    scroll_interval_ms: int = Field(default=100, ge=0)

    # Scheduler
    tick_interval_seconds: float = Field(default=1.0, gt=0)
    global_log_limit: int = Field(default=100, ge=1)

    # Initial runtime config
    concurrency: int = Field(default=2, ge=1, le=10)
    delay_per_task_seconds: float = Field(default=2.0, ge=0)
    batch_size: int = Field(default=10, ge=0)
    batch_pause_seconds: float = Field(default=30.0, ge=0)
    headless: bool = False
    user_agent: str = DEFAULT_USER_AGENT

    model_config = {"env_prefix": "HOTEL_CRAWLER_"}

    def initial_crawl_config(self) -> CrawlConfig:
        """Build the runtime config the orchestrator starts with."""
        return CrawlConfig(
            concurrency=self.concurrency,
            delay_per_task_seconds=self.delay_per_task_seconds,
            batch_size=self.batch_size,
            batch_pause_seconds=self.batch_pause_seconds,
            headless=self.headless,
            user_agent=self.user_agent,
        )
