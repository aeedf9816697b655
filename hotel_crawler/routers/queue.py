"""Queue control and runtime configuration endpoints.

- POST /api/v1/queue/start — start scheduling (fails fast without a browser)
- POST /api/v1/queue/pause — stop new starts; in-flight crawls finish
- GET  /api/v1/queue/stats — counts by status
- GET  /api/v1/queue/logs — global event stream (most recent entries)
- GET  /api/v1/config — current crawl config
- PUT  /api/v1/config — partial config update, applied at the next tick
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter

from hotel_crawler.models.api import ApiResponse, ConfigUpdateRequest


def _queue_state(orchestrator: Any) -> dict:
    return {
        "running": orchestrator.is_running,
        "active": orchestrator.active_count,
        "stats": orchestrator.stats().to_dict(),
    }


def create_queue_router(*, orchestrator: Any = None) -> APIRouter:
    """Factory that creates the queue/config router with injected dependencies."""

    queue_router = APIRouter(prefix="/api/v1", tags=["queue"])

    @queue_router.post("/queue/start")
    async def start_queue() -> dict:
        await orchestrator.start()
        return ApiResponse(success=True, data=_queue_state(orchestrator)).model_dump()

    @queue_router.post("/queue/pause")
    async def pause_queue() -> dict:
        await orchestrator.pause()
        return ApiResponse(success=True, data=_queue_state(orchestrator)).model_dump()

    @queue_router.get("/queue/stats")
    async def queue_stats() -> dict:
        return ApiResponse(success=True, data=_queue_state(orchestrator)).model_dump()

    @queue_router.get("/queue/logs")
    async def queue_logs() -> dict:
        logs = orchestrator.global_logs()
        return ApiResponse(
            success=True,
            data={"logs": [entry.to_dict() for entry in logs], "count": len(logs)},
        ).model_dump()

    @queue_router.get("/config")
    async def get_config() -> dict:
        return ApiResponse(success=True, data=orchestrator.config.model_dump()).model_dump()

    @queue_router.put("/config")
    async def update_config(body: ConfigUpdateRequest) -> dict:
        config = orchestrator.update_config(body.changes())
        return ApiResponse(success=True, data=config.model_dump()).model_dump()

    return queue_router
