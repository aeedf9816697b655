"""Request bodies and the JSON response envelope for the control surface.

All API responses are wrapped in the envelope for consistency:
{ success: bool, data: T | None, error: str | None, meta: dict | None }
"""

from __future__ import annotations

from typing import Generic, TypeVar

from pydantic import BaseModel, Field

T = TypeVar("T")


class ApiResponse(BaseModel, Generic[T]):
    """JSON envelope for all API responses."""

    success: bool
    data: T | None = None
    error: str | None = None
    meta: dict | None = None


class AddUrlsRequest(BaseModel):
    """Newline-delimited listing URLs, as pasted by the operator."""

    urls: str = Field(..., min_length=1)
    enqueue: bool = True  # False adds the tasks as IDLE


class BulkTaskRequest(BaseModel):
    """A selection of task ids for bulk delete/reset."""

    ids: list[str] = Field(..., min_length=1, max_length=1000)


class ConfigUpdateRequest(BaseModel):
    """Partial update of the runtime crawl config; omitted fields keep their value."""

    concurrency: int | None = Field(default=None, ge=1, le=10)
    delay_per_task_seconds: float | None = Field(default=None, ge=0)
    batch_size: int | None = Field(default=None, ge=0)
    batch_pause_seconds: float | None = Field(default=None, ge=0)
    headless: bool | None = None
    user_agent: str | None = Field(default=None, min_length=1)

    def changes(self) -> dict:
        return self.model_dump(exclude_none=True)
