"""Task endpoints.

- POST   /api/v1/tasks — add newline-delimited URLs
- GET    /api/v1/tasks — list tasks (optional ?status=)
- DELETE /api/v1/tasks — clear the queue (refused while running)
- POST   /api/v1/tasks/bulk-delete — delete selected tasks
- POST   /api/v1/tasks/bulk-reset — reset selected finished tasks
- GET    /api/v1/tasks/{task_id} — task detail with logs
- GET    /api/v1/tasks/{task_id}/logs — task log stream
- DELETE /api/v1/tasks/{task_id} — delete one task
- POST   /api/v1/tasks/{task_id}/reset — COMPLETED/ERROR → WAITING
- POST   /api/v1/tasks/{task_id}/enqueue — IDLE → WAITING
- POST   /api/v1/tasks/{task_id}/cancel — close a processing task's session
"""

from __future__ import annotations

import logging
from typing import Any

from fastapi import APIRouter

from hotel_crawler.middleware.error_handler import ValidationError
from hotel_crawler.models.api import AddUrlsRequest, ApiResponse, BulkTaskRequest
from hotel_crawler.models.task import TaskStatus

logger = logging.getLogger(__name__)


def create_tasks_router(*, orchestrator: Any = None) -> APIRouter:
    """Factory that creates the tasks router with injected dependencies."""

    tasks_router = APIRouter(prefix="/api/v1/tasks", tags=["tasks"])

    @tasks_router.post("")
    async def add_tasks(body: AddUrlsRequest) -> dict:
        """Add one task per valid URL line; invalid lines are reported back."""
        added, rejected = orchestrator.add_urls(body.urls, enqueue=body.enqueue)
        if not added:
            raise ValidationError("No valid http(s) URLs provided", rejected=rejected)

        return ApiResponse(
            success=True,
            data={
                "added": [task.to_dict() for task in added],
                "rejected": rejected,
            },
        ).model_dump()

    @tasks_router.get("")
    async def list_tasks(status: TaskStatus | None = None) -> dict:
        tasks = orchestrator.list_tasks(status)
        return ApiResponse(
            success=True,
            data={"tasks": [task.to_dict() for task in tasks], "count": len(tasks)},
        ).model_dump()

    @tasks_router.delete("")
    async def clear_tasks() -> dict:
        removed = orchestrator.clear()
        return ApiResponse(success=True, data={"removed": removed}).model_dump()

    @tasks_router.post("/bulk-delete")
    async def bulk_delete(body: BulkTaskRequest) -> dict:
        deleted = orchestrator.delete_many(body.ids)
        return ApiResponse(success=True, data={"deleted": deleted}).model_dump()

    @tasks_router.post("/bulk-reset")
    async def bulk_reset(body: BulkTaskRequest) -> dict:
        reset = orchestrator.reset_many(body.ids)
        return ApiResponse(success=True, data={"reset": reset}).model_dump()

    @tasks_router.get("/{task_id}")
    async def get_task(task_id: str) -> dict:
        task = orchestrator.get_task(task_id)
        return ApiResponse(success=True, data=task.to_dict(include_logs=True)).model_dump()

    @tasks_router.get("/{task_id}/logs")
    async def get_task_logs(task_id: str) -> dict:
        logs = orchestrator.get_logs(task_id)
        return ApiResponse(
            success=True,
            data={"logs": [entry.to_dict() for entry in logs], "count": len(logs)},
        ).model_dump()

    @tasks_router.delete("/{task_id}")
    async def delete_task(task_id: str) -> dict:
        orchestrator.delete(task_id)
        return ApiResponse(success=True, data={"id": task_id, "deleted": True}).model_dump()

    @tasks_router.post("/{task_id}/reset")
    async def reset_task(task_id: str) -> dict:
        task = orchestrator.reset(task_id)
        return ApiResponse(success=True, data=task.to_dict()).model_dump()

    @tasks_router.post("/{task_id}/enqueue")
    async def enqueue_task(task_id: str) -> dict:
        task = orchestrator.enqueue(task_id)
        return ApiResponse(success=True, data=task.to_dict()).model_dump()

    @tasks_router.post("/{task_id}/cancel")
    async def cancel_task(task_id: str) -> dict:
        session_closed = await orchestrator.cancel(task_id)
        return ApiResponse(
            success=True,
            data={"id": task_id, "cancelled": True, "session_closed": session_closed},
        ).model_dump()

    return tasks_router
