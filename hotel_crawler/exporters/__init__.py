"""Export formatters for completed crawl results."""

from hotel_crawler.exporters.json_export import build_entries, export_json
from hotel_crawler.exporters.tabular import COLUMNS, build_rows, export_xlsx

__all__ = ["COLUMNS", "build_entries", "build_rows", "export_json", "export_xlsx"]
