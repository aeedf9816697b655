"""Serve the control API: ``python -m hotel_crawler``."""

import uvicorn

from hotel_crawler.config.settings import CrawlerSettings


def main() -> None:
    settings = CrawlerSettings()
    uvicorn.run(
        "hotel_crawler.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
