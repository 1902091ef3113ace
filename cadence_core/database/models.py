"""
Database Models

SQLAlchemy ORM models for scheduled jobs.
"""

from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy import JSON, DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin


class ScheduledJobModel(Base, TimestampMixin):
    """Scheduled job row."""

    __tablename__ = "scheduled_jobs"

    owner_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    node_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    due_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    payload: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    status: Mapped[str] = mapped_column(String(20), default="pending", nullable=False)

    # Transitions
    claimed_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    fired_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    canceled_at: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        Index("ix_scheduled_jobs_status_due_at", "status", "due_at"),
        Index("ix_scheduled_jobs_owner_status", "owner_id", "status"),
    )


__all__ = ["ScheduledJobModel"]
