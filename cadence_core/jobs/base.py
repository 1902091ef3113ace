"""
Job Base Types Module

This module defines the scheduled job record, its status machine and the
exceptions raised by job stores and executors.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional
from uuid import uuid4

from ..flows.base import ActionPayload


# =============================================================================
# Enums
# =============================================================================


class JobStatus(str, Enum):
    """Status of a scheduled job."""

    PENDING = "pending"
    CLAIMED = "claimed"  # Picked by a dispatcher, executor call in flight
    FIRED = "fired"
    CANCELED = "canceled"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.FIRED, JobStatus.CANCELED)


# =============================================================================
# Job Types
# =============================================================================


# last_error of jobs whose dispatcher never closed them out
CLAIM_EXPIRED = "claim expired"


def new_job_id() -> str:
    return f"job_{uuid4().hex}"


@dataclass(frozen=True)
class ScheduledJob:
    """
    A single action due at an absolute time.

    Immutable: stores hand out copies and apply transitions themselves.
    """

    id: str
    owner_id: Optional[str]
    node_id: Optional[str]
    due_at: datetime
    payload: ActionPayload
    status: JobStatus = JobStatus.PENDING

    created_at: datetime = field(default_factory=datetime.utcnow)
    claimed_at: Optional[datetime] = None
    fired_at: Optional[datetime] = None
    canceled_at: Optional[datetime] = None
    last_error: Optional[str] = None

    def with_status(self, status: JobStatus, **changes: Any) -> "ScheduledJob":
        return replace(self, status=status, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "node_id": self.node_id,
            "due_at": self.due_at.isoformat(),
            "payload": self.payload.to_dict(),
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "claimed_at": self.claimed_at.isoformat() if self.claimed_at else None,
            "fired_at": self.fired_at.isoformat() if self.fired_at else None,
            "canceled_at": self.canceled_at.isoformat() if self.canceled_at else None,
            "last_error": self.last_error,
        }


@dataclass
class DispatchOutcome:
    """Result of handing one job to the executor."""

    job: ScheduledJob
    success: bool
    exception: Optional[Exception] = None
    duration_ms: float = 0.0

    @property
    def error(self) -> Optional[str]:
        if self.exception is None:
            return None
        return f"{type(self.exception).__name__}: {self.exception}"

    @property
    def timed_out(self) -> bool:
        return isinstance(self.exception, ExecutorTimeoutError)


# =============================================================================
# Exceptions
# =============================================================================


class JobStoreError(Exception):
    """Base exception for job store errors."""

    pass


class JobNotFoundError(JobStoreError):
    """Job not found."""

    pass


class ExecutorError(Exception):
    """The executor reported a delivery failure."""

    pass


class ExecutorTimeoutError(ExecutorError):
    """The executor did not answer in time."""

    pass


class ClaimExpiredError(ExecutorError):
    """The dispatcher holding the claim never reported back."""

    pass


__all__ = [
    "CLAIM_EXPIRED",
    "JobStatus",
    "ScheduledJob",
    "DispatchOutcome",
    "new_job_id",
    "JobStoreError",
    "JobNotFoundError",
    "ExecutorError",
    "ExecutorTimeoutError",
    "ClaimExpiredError",
]
