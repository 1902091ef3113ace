"""
SQL Job Store.

Durable job store on SQLAlchemy's async engine. Claims and cancels are
conditional UPDATEs on ``status``, so several dispatcher processes can
share one table without firing a job twice.
"""

from datetime import datetime
from typing import List, Optional, Sequence, Tuple

import structlog
from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..database.base import DatabaseManager
from ..database.models import ScheduledJobModel
from ..flows.base import ActionPayload, JobRequest
from .base import (
    CLAIM_EXPIRED,
    JobNotFoundError,
    JobStatus,
    JobStoreError,
    ScheduledJob,
    new_job_id,
)
from .store import Clock, JobStore

logger = structlog.get_logger(__name__)


def _to_job(row: ScheduledJobModel) -> ScheduledJob:
    return ScheduledJob(
        id=row.id,
        owner_id=row.owner_id,
        node_id=row.node_id,
        due_at=row.due_at,
        payload=ActionPayload.from_dict(row.payload or {}),
        status=JobStatus(row.status),
        created_at=row.created_at,
        claimed_at=row.claimed_at,
        fired_at=row.fired_at,
        canceled_at=row.canceled_at,
        last_error=row.last_error,
    )


class SqlJobStore(JobStore):
    """Job store backed by the ``scheduled_jobs`` table."""

    def __init__(self, db: DatabaseManager, clock: Clock = datetime.utcnow):
        super().__init__(clock)
        self.db = db

    async def initialize(self) -> None:
        """Create the table if missing."""
        await self.db.create_all()

    async def close(self) -> None:
        await self.db.close()

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def _add(self, session: AsyncSession, requests: Sequence[JobRequest]) -> List[str]:
        now = self.clock()
        ids = []
        for request in requests:
            row = ScheduledJobModel(
                id=new_job_id(),
                owner_id=request.owner_id,
                node_id=request.node_id,
                due_at=request.due_at,
                payload=request.payload.to_dict(),
                status=JobStatus.PENDING.value,
                created_at=now,
                updated_at=now,
            )
            session.add(row)
            ids.append(row.id)
        return ids

    async def _cancel(self, session: AsyncSession, owner_id: str) -> int:
        now = self.clock()
        result = await session.execute(
            update(ScheduledJobModel)
            .where(
                ScheduledJobModel.owner_id == owner_id,
                ScheduledJobModel.status == JobStatus.PENDING.value,
            )
            .values(status=JobStatus.CANCELED.value, canceled_at=now, updated_at=now)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount or 0

    async def schedule_many(self, requests: Sequence[JobRequest]) -> List[str]:
        async with self.db.session() as session:
            return self._add(session, requests)

    async def replace_for_owner(
        self,
        owner_id: str,
        requests: Sequence[JobRequest],
    ) -> Tuple[int, List[str]]:
        async with self.db.session() as session:
            canceled = await self._cancel(session, owner_id)
            ids = self._add(session, requests)
            return canceled, ids

    async def cancel_all(self, owner_id: str) -> int:
        async with self.db.session() as session:
            return await self._cancel(session, owner_id)

    async def claim_due(
        self,
        now: Optional[datetime] = None,
        limit: int = 100,
    ) -> List[ScheduledJob]:
        now = now or self.clock()

        async with self.db.session() as session:
            result = await session.execute(
                select(ScheduledJobModel.id)
                .where(
                    ScheduledJobModel.status == JobStatus.PENDING.value,
                    ScheduledJobModel.due_at <= now,
                )
                .order_by(ScheduledJobModel.due_at)
                .limit(limit)
            )
            candidates = list(result.scalars().all())

            won: List[str] = []
            claimed_at = self.clock()
            for job_id in candidates:
                # Another dispatcher may have taken it since the select
                claim = await session.execute(
                    update(ScheduledJobModel)
                    .where(
                        ScheduledJobModel.id == job_id,
                        ScheduledJobModel.status == JobStatus.PENDING.value,
                    )
                    .values(
                        status=JobStatus.CLAIMED.value,
                        claimed_at=claimed_at,
                        updated_at=claimed_at,
                    )
                    .execution_options(synchronize_session=False)
                )
                if claim.rowcount == 1:
                    won.append(job_id)

            if not won:
                return []

            rows = await session.execute(
                select(ScheduledJobModel)
                .where(ScheduledJobModel.id.in_(won))
                .order_by(ScheduledJobModel.due_at)
            )
            return [_to_job(row) for row in rows.scalars().all()]

    async def mark_fired(
        self,
        job_id: str,
        error: Optional[str] = None,
    ) -> ScheduledJob:
        async with self.db.session() as session:
            row = await session.get(ScheduledJobModel, job_id)
            if row is None:
                raise JobNotFoundError(f"Job {job_id} not found")
            if row.status != JobStatus.CLAIMED.value:
                raise JobStoreError(f"Job {job_id} is {row.status}, expected claimed")

            now = self.clock()
            row.status = JobStatus.FIRED.value
            row.fired_at = now
            row.updated_at = now
            row.last_error = error
            await session.flush()
            return _to_job(row)

    async def expire_stale_claims(self, claimed_before: datetime) -> List[ScheduledJob]:
        now = self.clock()

        async with self.db.session() as session:
            result = await session.execute(
                select(ScheduledJobModel.id).where(
                    ScheduledJobModel.status == JobStatus.CLAIMED.value,
                    ScheduledJobModel.claimed_at < claimed_before,
                )
            )
            candidates = list(result.scalars().all())

            expired: List[str] = []
            for job_id in candidates:
                # The owning dispatcher may have finished since the select
                closed = await session.execute(
                    update(ScheduledJobModel)
                    .where(
                        ScheduledJobModel.id == job_id,
                        ScheduledJobModel.status == JobStatus.CLAIMED.value,
                    )
                    .values(
                        status=JobStatus.FIRED.value,
                        fired_at=now,
                        updated_at=now,
                        last_error=CLAIM_EXPIRED,
                    )
                    .execution_options(synchronize_session=False)
                )
                if closed.rowcount == 1:
                    expired.append(job_id)

            if not expired:
                return []

            rows = await session.execute(
                select(ScheduledJobModel)
                .where(ScheduledJobModel.id.in_(expired))
                .order_by(ScheduledJobModel.due_at)
            )
            return [_to_job(row) for row in rows.scalars().all()]

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    async def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        async with self.db.session() as session:
            row = await session.get(ScheduledJobModel, job_id)
            return _to_job(row) if row else None

    async def list_jobs(
        self,
        owner_id: Optional[str] = None,
        status: Optional[JobStatus] = None,
    ) -> List[ScheduledJob]:
        query = select(ScheduledJobModel)
        if owner_id is not None:
            query = query.where(ScheduledJobModel.owner_id == owner_id)
        if status is not None:
            query = query.where(ScheduledJobModel.status == status.value)
        query = query.order_by(ScheduledJobModel.due_at, ScheduledJobModel.created_at)

        async with self.db.session() as session:
            result = await session.execute(query)
            return [_to_job(row) for row in result.scalars().all()]


__all__ = ["SqlJobStore"]
