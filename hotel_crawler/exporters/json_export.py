"""JSON export: ``{url, status, crawledAt, result}`` per completed task."""

from __future__ import annotations

import json

from hotel_crawler.exporters.tabular import completed_tasks
from hotel_crawler.models.task import CrawlTask


def build_entries(tasks: list[CrawlTask]) -> list[dict]:
    entries = []
    for task in completed_tasks(tasks):
        crawled = task.finished_at or task.result.crawled_at
        entries.append(
            {
                "url": task.url,
                "status": task.status.value,
                "crawledAt": crawled.isoformat() if crawled else None,
                "result": task.result.model_dump(mode="json"),
            }
        )
    return entries


def export_json(tasks: list[CrawlTask]) -> str:
    return json.dumps(build_entries(tasks), ensure_ascii=False, indent=2)
