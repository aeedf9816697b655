"""Public models for the hotel crawler."""

from hotel_crawler.models.api import (
    AddUrlsRequest,
    ApiResponse,
    BulkTaskRequest,
    ConfigUpdateRequest,
)
from hotel_crawler.models.hotel import (
    Faq,
    HotelRecord,
    HouseRules,
    NearbyCategory,
    NearbyItem,
    Rating,
)
from hotel_crawler.models.task import (
    CrawlTask,
    LogEntry,
    LogSeverity,
    QueueStats,
    TaskStatus,
)

__all__ = [
    "AddUrlsRequest",
    "ApiResponse",
    "BulkTaskRequest",
    "ConfigUpdateRequest",
    "CrawlTask",
    "Faq",
    "HotelRecord",
    "HouseRules",
    "LogEntry",
    "LogSeverity",
    "NearbyCategory",
    "NearbyItem",
    "QueueStats",
    "Rating",
    "TaskStatus",
]
