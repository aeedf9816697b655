"""Export endpoints for completed crawl results.

- GET /api/v1/export/xlsx — spreadsheet download
- GET /api/v1/export/json — JSON download
"""

from __future__ import annotations

from datetime import date
from typing import Any

from fastapi import APIRouter
from fastapi.responses import Response

from hotel_crawler.exporters import export_json, export_xlsx

_XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _attachment(extension: str) -> dict:
    filename = f"hotel_crawl_result_{date.today().isoformat()}.{extension}"
    return {"Content-Disposition": f'attachment; filename="{filename}"'}


def create_export_router(*, orchestrator: Any = None) -> APIRouter:
    """Factory that creates the export router with injected dependencies."""

    export_router = APIRouter(prefix="/api/v1/export", tags=["export"])

    @export_router.get("/xlsx")
    async def export_spreadsheet() -> Response:
        content = export_xlsx(orchestrator.list_tasks())
        return Response(content=content, media_type=_XLSX_MEDIA_TYPE, headers=_attachment("xlsx"))

    @export_router.get("/json")
    async def export_records() -> Response:
        content = export_json(orchestrator.list_tasks())
        return Response(content=content, media_type="application/json", headers=_attachment("json"))

    return export_router
