"""
Job Store.

The store exclusively owns ScheduledJob records. Every status change goes
through one of its operations, each of which is a conditional transition:

    pending -> claimed -> fired
    pending -> canceled

Fired and canceled are terminal.
"""

import asyncio
from abc import ABC, abstractmethod
from collections import defaultdict
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from ..flows.base import ActionPayload, JobRequest
from .base import (
    CLAIM_EXPIRED,
    JobNotFoundError,
    JobStatus,
    JobStoreError,
    ScheduledJob,
    new_job_id,
)

logger = structlog.get_logger(__name__)

Clock = Callable[[], datetime]


class JobStore(ABC):
    """Durable storage for scheduled jobs."""

    def __init__(self, clock: Clock = datetime.utcnow):
        self.clock = clock

    @abstractmethod
    async def schedule_many(self, requests: Sequence[JobRequest]) -> List[str]:
        """Insert pending jobs atomically. Returns their ids in order."""

    @abstractmethod
    async def replace_for_owner(
        self,
        owner_id: str,
        requests: Sequence[JobRequest],
    ) -> Tuple[int, List[str]]:
        """
        Cancel the owner's pending jobs and insert new ones in one unit.

        Returns:
            (number canceled, new job ids)
        """

    @abstractmethod
    async def cancel_all(self, owner_id: str) -> int:
        """Cancel every pending job of an owner. Returns the count canceled."""

    @abstractmethod
    async def claim_due(
        self,
        now: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[ScheduledJob]:
        """Move due pending jobs to claimed and return the ones this caller won."""

    @abstractmethod
    async def mark_fired(
        self,
        job_id: str,
        error: Optional[str] = None,
    ) -> ScheduledJob:
        """Close out a claimed job."""

    @abstractmethod
    async def expire_stale_claims(self, claimed_before: datetime) -> List[ScheduledJob]:
        """
        Close out jobs claimed before a cutoff and never finished.

        They become fired with ``last_error="claim expired"`` and are
        returned so the caller can report them like any other fired job.
        """

    @abstractmethod
    async def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        """Get job by ID."""

    @abstractmethod
    async def list_jobs(
        self,
        owner_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
    ) -> List[ScheduledJob]:
        """List jobs ordered by due time."""

    async def schedule(
        self,
        owner_id: Optional[str],
        node_id: Optional[str],
        due_at: datetime,
        payload: ActionPayload,
    ) -> str:
        """Insert one pending job."""
        ids = await self.schedule_many([
            JobRequest(owner_id=owner_id, node_id=node_id, due_at=due_at, payload=payload)
        ])
        return ids[0]

    async def count_active(self, owner_id: str) -> int:
        """Count the owner's pending and claimed jobs."""
        jobs = await self.list_jobs(owner_id=owner_id)
        return len([j for j in jobs if not j.status.is_terminal])

    async def close(self) -> None:
        """Release resources."""
        return None


class InMemoryJobStore(JobStore):
    """
    Process-local job store.

    Jobs do not survive a restart. Used in tests and for single-process
    development setups.
    """

    def __init__(self, clock: Clock = datetime.utcnow):
        super().__init__(clock)
        self._jobs: Dict[str, ScheduledJob] = {}
        self._jobs_by_owner: Dict[str, List[str]] = defaultdict(list)
        self._lock = asyncio.Lock()

    def _insert(self, requests: Sequence[JobRequest]) -> List[str]:
        now = self.clock()
        ids = []
        for request in requests:
            job = ScheduledJob(
                id=new_job_id(),
                owner_id=request.owner_id,
                node_id=request.node_id,
                due_at=request.due_at,
                payload=request.payload,
                created_at=now,
            )
            self._jobs[job.id] = job
            if job.owner_id is not None:
                self._jobs_by_owner[job.owner_id].append(job.id)
            ids.append(job.id)
        return ids

    def _cancel(self, owner_id: str) -> int:
        now = self.clock()
        canceled = 0
        for job_id in self._jobs_by_owner.get(owner_id, []):
            job = self._jobs[job_id]
            if job.status == JobStatus.PENDING:
                self._jobs[job_id] = job.with_status(JobStatus.CANCELED, canceled_at=now)
                canceled += 1
        return canceled

    async def schedule_many(self, requests: Sequence[JobRequest]) -> List[str]:
        async with self._lock:
            return self._insert(requests)

    async def replace_for_owner(
        self,
        owner_id: str,
        requests: Sequence[JobRequest],
    ) -> Tuple[int, List[str]]:
        async with self._lock:
            canceled = self._cancel(owner_id)
            return canceled, self._insert(requests)

    async def cancel_all(self, owner_id: str) -> int:
        async with self._lock:
            return self._cancel(owner_id)

    async def claim_due(
        self,
        now: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[ScheduledJob]:
        now = now or self.clock()
        async with self._lock:
            due = sorted(
                (
                    j for j in self._jobs.values()
                    if j.status == JobStatus.PENDING and j.due_at <= now
                ),
                key=lambda j: j.due_at,
            )[:limit]

            claimed = []
            for job in due:
                job = job.with_status(JobStatus.CLAIMED, claimed_at=self.clock())
                self._jobs[job.id] = job
                claimed.append(job)
            return claimed

    async def mark_fired(
        self,
        job_id: str,
        error: Optional[str] = None,
    ) -> ScheduledJob:
        async with self._lock:
            job = self._jobs.get(job_id)
            if not job:
                raise JobNotFoundError(f"Job {job_id} not found")
            if job.status != JobStatus.CLAIMED:
                raise JobStoreError(
                    f"Job {job_id} is {job.status.value}, expected claimed"
                )

            job = job.with_status(JobStatus.FIRED, fired_at=self.clock(), last_error=error)
            self._jobs[job_id] = job
            return job

    async def expire_stale_claims(self, claimed_before: datetime) -> List[ScheduledJob]:
        async with self._lock:
            now = self.clock()
            expired = []
            for job in list(self._jobs.values()):
                if (
                    job.status == JobStatus.CLAIMED
                    and job.claimed_at is not None
                    and job.claimed_at < claimed_before
                ):
                    job = job.with_status(
                        JobStatus.FIRED, fired_at=now, last_error=CLAIM_EXPIRED
                    )
                    self._jobs[job.id] = job
                    expired.append(job)
            return expired

    async def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        return self._jobs.get(job_id)

    async def list_jobs(
        self,
        owner_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
    ) -> List[ScheduledJob]:
        if owner_id is not None:
            jobs = [self._jobs[i] for i in self._jobs_by_owner.get(owner_id, [])]
        else:
            jobs = list(self._jobs.values())

        if status is not None:
            jobs = [j for j in jobs if j.status == status]

        return sorted(jobs, key=lambda j: (j.due_at, j.created_at))


__all__ = ["Clock", "JobStore", "InMemoryJobStore"]
