"""FastAPI application entry point with lifespan management.

Startup: load settings, configure logging, open the task store, wire the
browser launcher, record assembler, task runner and orchestrator, restore
persisted tasks and mount the routers.
Shutdown: stop the scheduler, abort in-flight crawls, flush pending saves,
stop the browser launcher and close the store.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from hotel_crawler import __version__
from hotel_crawler.browser.session import BrowserLauncher
from hotel_crawler.config.settings import CrawlerSettings
from hotel_crawler.logging_config import configure_logging
from hotel_crawler.middleware.error_handler import register_error_handlers
from hotel_crawler.routers.export import create_export_router
from hotel_crawler.routers.health import create_health_router
from hotel_crawler.routers.queue import create_queue_router
from hotel_crawler.routers.tasks import create_tasks_router
from hotel_crawler.services.log_sink import TaskLogSink
from hotel_crawler.services.orchestrator import CrawlOrchestrator
from hotel_crawler.services.record_assembler import RecordAssembler
from hotel_crawler.services.task_runner import TaskRunner
from hotel_crawler.storage.sqlalchemy_store import SQLAlchemyTaskStore

logger = logging.getLogger(__name__)

# Shared state for the application, populated during lifespan startup
_state: dict = {}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown logic."""
    settings: CrawlerSettings = app.state.settings

    configure_logging(settings.log_level)
    logger.info("Starting hotel crawler on %s:%d", settings.host, settings.port)

    store = SQLAlchemyTaskStore(settings.database_url)

    launcher = BrowserLauncher(
        executable_path=settings.chrome_executable_path,
        use_system_chrome=settings.use_system_chrome,
        navigation_timeout_ms=settings.navigation_timeout_ms,
    )

    assembler = RecordAssembler(
        page_settle_seconds=settings.page_settle_seconds,
        gallery_settle_seconds=settings.gallery_settle_seconds,
        scroll_step_px=settings.scroll_step_px,
        scroll_interval_ms=settings.scroll_interval_ms,
    )

    runner = TaskRunner(
        launcher=launcher,
        assembler=assembler,
        task_timeout_seconds=settings.task_timeout_seconds,
    )

    orchestrator = CrawlOrchestrator(
        runner=runner,
        log_sink=TaskLogSink(global_limit=settings.global_log_limit),
        config=settings.initial_crawl_config(),
        store=store,
        tick_interval_seconds=settings.tick_interval_seconds,
    )
    await orchestrator.restore(settings.restore_limit)

    # Mount routers
    app.include_router(
        create_health_router(orchestrator=orchestrator, store=store, launcher=launcher)
    )
    app.include_router(create_tasks_router(orchestrator=orchestrator))
    app.include_router(create_queue_router(orchestrator=orchestrator))
    app.include_router(create_export_router(orchestrator=orchestrator))

    _state.update({
        "settings": settings,
        "store": store,
        "launcher": launcher,
        "orchestrator": orchestrator,
    })

    logger.info("Hotel crawler started successfully")

    yield

    # --- Shutdown ---
    logger.info("Shutting down hotel crawler…")
    await orchestrator.shutdown()
    await launcher.shutdown()
    await store.close()
    _state.clear()
    logger.info("Hotel crawler shut down")


def create_app(settings: CrawlerSettings | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    Loads ``CrawlerSettings`` eagerly so that an invalid environment
    variable fails at import time rather than on the first request.
    """
    settings = settings or CrawlerSettings()

    app = FastAPI(
        title="Hotel Crawler",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings

    register_error_handlers(app)

    return app


app = create_app()
