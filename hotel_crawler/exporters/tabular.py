"""Spreadsheet export: one row per completed task."""

from __future__ import annotations

from io import BytesIO

from openpyxl import Workbook
from openpyxl.styles import Font

from hotel_crawler.middleware.error_handler import NothingToExportError
from hotel_crawler.models.task import CrawlTask, TaskStatus

SHEET_TITLE = "Hotel Data"

COLUMNS = [
    "URL",
    "Hotel Name",
    "Address",
    "City",
    "Region",
    "Country",
    "Rating Score",
    "Review Count",
    "Rating Category",
    "Facilities",
    "FAQ Count",
    "Check-in",
    "Check-out",
    "Pets",
    "Cancellation Policy",
    "Image Count",
    "First Image",
    "All Images (Comma Separated)",
    "Status",
    "Crawl Time",
]


def completed_tasks(tasks: list[CrawlTask]) -> list[CrawlTask]:
    completed = [t for t in tasks if t.status == TaskStatus.COMPLETED and t.result is not None]
    if not completed:
        raise NothingToExportError()
    return completed


def build_rows(tasks: list[CrawlTask]) -> list[list]:
    """Flatten completed tasks into rows matching ``COLUMNS``."""
    rows = []
    for task in completed_tasks(tasks):
        hotel = task.result
        rating = hotel.rating
        rules = hotel.house_rules
        crawled = task.finished_at or hotel.crawled_at
        rows.append(
            [
                task.url,
                hotel.name,
                hotel.address,
                hotel.city_name,
                hotel.region_name,
                hotel.country_name,
                rating.score if rating else None,
                rating.review_count if rating else None,
                rating.category if rating else None,
                ", ".join(hotel.facilities),
                len(hotel.faqs),
                rules.check_in if rules else None,
                rules.check_out if rules else None,
                rules.pets if rules else None,
                rules.cancellation_policy if rules else None,
                len(hotel.images),
                hotel.images[0] if hotel.images else "",
                ", ".join(hotel.images),
                task.status.value,
                crawled.strftime("%Y-%m-%d %H:%M:%S") if crawled else "",
            ]
        )
    return rows


def export_xlsx(tasks: list[CrawlTask]) -> bytes:
    """Workbook bytes with a header row and one row per completed task."""
    rows = build_rows(tasks)

    wb = Workbook()
    ws = wb.active
    ws.title = SHEET_TITLE
    ws.append(COLUMNS)
    for cell in ws[1]:
        cell.font = Font(bold=True)
    for row in rows:
        ws.append(row)
    ws.freeze_panes = "A2"

    buffer = BytesIO()
    wb.save(buffer)
    wb.close()
    return buffer.getvalue()
