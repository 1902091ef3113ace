"""Database layer for durable job storage."""

from .base import Base, DatabaseManager, TimestampMixin
from .models import ScheduledJobModel

__all__ = [
    "Base",
    "TimestampMixin",
    "DatabaseManager",
    "ScheduledJobModel",
]
