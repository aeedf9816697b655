"""Health endpoint.

- GET /health — service status, queue state and persisted task counts
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter

from hotel_crawler.models.api import ApiResponse

logger = logging.getLogger(__name__)


def create_health_router(
    *,
    orchestrator: Any = None,
    store: Any = None,
    launcher: Any = None,
) -> APIRouter:
    """Factory that creates the health router with injected dependencies."""

    health_router = APIRouter(tags=["health"])

    @health_router.get("/health")
    async def health() -> dict:
        """Service health check with queue and storage statistics."""
        persisted = None
        if store is not None:
            try:
                persisted = (await store.stats()).to_dict()
            except Exception:
                logger.warning("Task store stats unavailable", exc_info=True)

        return ApiResponse(
            success=True,
            data={
                "status": "healthy",
                "running": orchestrator.is_running if orchestrator else False,
                "browser_ready": launcher.ready if launcher else False,
                "queue": orchestrator.stats().to_dict() if orchestrator else {},
                "persisted": persisted,
            },
        ).model_dump()

    return health_router
