"""Task persistence."""

from hotel_crawler.storage.base import TaskStore
from hotel_crawler.storage.sqlalchemy_store import SQLAlchemyTaskStore

__all__ = ["SQLAlchemyTaskStore", "TaskStore"]
