"""Unit tests for job stores (in-memory and SQL)."""

import asyncio
from datetime import timedelta

import pytest

from cadence_core.database.base import to_async_url
from cadence_core.flows.base import ActionPayload, JobRequest
from cadence_core.jobs.base import JobNotFoundError, JobStatus, JobStoreError
from cadence_core.jobs.sql_store import SqlJobStore

from helpers import ANCHOR, hours


PAYLOAD = ActionPayload(recipient="lead@example.com", subject="Hello", body="<p>Hi</p>")


def request_for(owner_id, node_id, offset=timedelta(0)):
    return JobRequest(owner_id=owner_id, node_id=node_id, due_at=ANCHOR + offset, payload=PAYLOAD)


@pytest.fixture(params=["memory", "sql"])
def store(request, job_store, sql_store):
    return job_store if request.param == "memory" else sql_store


class TestJobStore:
    """Behaviour shared by every JobStore."""

    @pytest.mark.asyncio
    async def test_schedule(self, store):
        """Test scheduling one job."""
        job_id = await store.schedule("flow_1", "A", ANCHOR + hours(1), PAYLOAD)

        job = await store.get_job(job_id)
        assert job.owner_id == "flow_1"
        assert job.node_id == "A"
        assert job.due_at == ANCHOR + hours(1)
        assert job.payload == PAYLOAD
        assert job.status == JobStatus.PENDING

    @pytest.mark.asyncio
    async def test_schedule_many_keeps_order(self, store):
        """Test batch insert returns ids in request order."""
        ids = await store.schedule_many([
            request_for("flow_1", "A"),
            request_for("flow_1", "B", hours(1)),
        ])

        assert len(ids) == 2
        assert [(await store.get_job(i)).node_id for i in ids] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_get_missing_job(self, store):
        """Test unknown job id."""
        assert await store.get_job("job_missing") is None

    @pytest.mark.asyncio
    async def test_cancel_all_scoped_to_owner(self, store):
        """Test cancel only touches the owner's pending jobs."""
        await store.schedule_many([
            request_for("flow_1", "A"),
            request_for("flow_1", "B", hours(1)),
            request_for("flow_2", "C"),
        ])

        assert await store.cancel_all("flow_1") == 2

        flow_1 = await store.list_jobs(owner_id="flow_1")
        flow_2 = await store.list_jobs(owner_id="flow_2")
        assert {j.status for j in flow_1} == {JobStatus.CANCELED}
        assert all(j.canceled_at is not None for j in flow_1)
        assert [j.status for j in flow_2] == [JobStatus.PENDING]

    @pytest.mark.asyncio
    async def test_cancel_all_is_idempotent(self, store):
        """Test a second cancel cancels nothing."""
        await store.schedule_many([request_for("flow_1", "A")])

        assert await store.cancel_all("flow_1") == 1
        assert await store.cancel_all("flow_1") == 0

    @pytest.mark.asyncio
    async def test_cancel_leaves_fired_jobs(self, store):
        """Test cancellation cannot undo execution."""
        await store.schedule_many([
            request_for("flow_1", "A"),
            request_for("flow_1", "B", hours(2)),
        ])
        [claimed] = await store.claim_due(ANCHOR)
        await store.mark_fired(claimed.id)

        assert await store.cancel_all("flow_1") == 1

        fired = await store.get_job(claimed.id)
        assert fired.status == JobStatus.FIRED

    @pytest.mark.asyncio
    async def test_claim_due_only_due_jobs(self, store):
        """Test only jobs due at or before now are claimed."""
        await store.schedule_many([
            request_for("flow_1", "now"),
            request_for("flow_1", "later", hours(1)),
        ])

        claimed = await store.claim_due(ANCHOR)

        assert [j.node_id for j in claimed] == ["now"]
        assert claimed[0].status == JobStatus.CLAIMED
        assert claimed[0].claimed_at is not None

    @pytest.mark.asyncio
    async def test_claim_is_exclusive(self, store):
        """Test a claimed job is never handed out twice."""
        await store.schedule_many([request_for("flow_1", "A")])

        first = await store.claim_due(ANCHOR)
        second = await store.claim_due(ANCHOR + hours(5))

        assert len(first) == 1
        assert second == []

    @pytest.mark.asyncio
    async def test_claim_respects_limit(self, store):
        """Test batch size limit, earliest first."""
        await store.schedule_many([
            request_for("flow_1", "c", timedelta(minutes=3)),
            request_for("flow_1", "a", timedelta(minutes=1)),
            request_for("flow_1", "b", timedelta(minutes=2)),
        ])

        claimed = await store.claim_due(ANCHOR + hours(1), limit=2)

        assert [j.node_id for j in claimed] == ["a", "b"]

    @pytest.mark.asyncio
    async def test_canceled_jobs_are_not_claimed(self, store):
        """Test cancel wins over a later claim."""
        await store.schedule_many([request_for("flow_1", "A")])
        await store.cancel_all("flow_1")

        assert await store.claim_due(ANCHOR + hours(1)) == []

    @pytest.mark.asyncio
    async def test_mark_fired(self, store):
        """Test closing out a claimed job with an error."""
        await store.schedule_many([request_for("flow_1", "A")])
        [job] = await store.claim_due(ANCHOR)

        fired = await store.mark_fired(job.id, error="ExecutorError: bounced")

        assert fired.status == JobStatus.FIRED
        assert fired.fired_at is not None
        assert fired.last_error == "ExecutorError: bounced"

    @pytest.mark.asyncio
    async def test_mark_fired_requires_claim(self, store):
        """Test pending jobs cannot be fired without a claim."""
        job_id = await store.schedule("flow_1", "A", ANCHOR, PAYLOAD)

        with pytest.raises(JobStoreError):
            await store.mark_fired(job_id)

    @pytest.mark.asyncio
    async def test_mark_fired_unknown(self, store):
        """Test firing an unknown job."""
        with pytest.raises(JobNotFoundError):
            await store.mark_fired("job_missing")

    @pytest.mark.asyncio
    async def test_replace_for_owner(self, store):
        """Test cancel-and-insert as one operation."""
        await store.schedule_many([request_for("flow_1", "old")])

        canceled, ids = await store.replace_for_owner(
            "flow_1", [request_for("flow_1", "new")]
        )

        assert canceled == 1
        pending = await store.list_jobs(owner_id="flow_1", status=JobStatus.PENDING)
        assert [j.id for j in pending] == ids
        assert pending[0].node_id == "new"

    @pytest.mark.asyncio
    async def test_expire_stale_claims(self, store, clock):
        """Test abandoned claims are closed out, never re-fired."""
        await store.schedule_many([request_for("flow_1", "A")])
        [job] = await store.claim_due(ANCHOR)

        clock.advance(minutes=30)
        assert await store.expire_stale_claims(ANCHOR - timedelta(minutes=1)) == []
        [returned] = await store.expire_stale_claims(clock() - timedelta(minutes=10))

        assert returned.id == job.id
        assert returned.status == JobStatus.FIRED
        assert returned.last_error == "claim expired"
        assert returned.node_id == "A"

        expired = await store.get_job(job.id)
        assert expired.status == JobStatus.FIRED
        assert await store.expire_stale_claims(clock()) == []

    @pytest.mark.asyncio
    async def test_count_active(self, store):
        """Test pending and claimed jobs count as active."""
        await store.schedule_many([
            request_for("flow_1", "A"),
            request_for("flow_1", "B", hours(1)),
            request_for("flow_1", "C", hours(2)),
        ])
        [job] = await store.claim_due(ANCHOR)
        assert await store.count_active("flow_1") == 3

        await store.mark_fired(job.id)
        assert await store.count_active("flow_1") == 2

    @pytest.mark.asyncio
    async def test_unowned_jobs(self, store):
        """Test jobs scheduled outside any flow."""
        job_id = await store.schedule(None, None, ANCHOR, PAYLOAD)

        [job] = await store.claim_due(ANCHOR)
        assert job.id == job_id
        assert job.owner_id is None


class TestInMemoryJobStore:
    """Tests specific to InMemoryJobStore."""

    @pytest.mark.asyncio
    async def test_concurrent_claims_are_disjoint(self, job_store):
        """Test concurrent claimers never share a job."""
        await job_store.schedule_many(
            [request_for("flow_1", f"n{i}") for i in range(20)]
        )

        results = await asyncio.gather(
            *(job_store.claim_due(ANCHOR, limit=7) for _ in range(4))
        )

        claimed = [j.id for batch in results for j in batch]
        assert len(claimed) == 20
        assert len(set(claimed)) == 20


class TestSqlJobStore:
    """Tests specific to SqlJobStore."""

    @pytest.mark.asyncio
    async def test_jobs_survive_new_store(self, db, clock):
        """Test jobs persist across store instances."""
        first = SqlJobStore(db, clock=clock)
        job_id = await first.schedule("flow_1", "A", ANCHOR + hours(1), PAYLOAD)

        second = SqlJobStore(db, clock=clock)
        job = await second.get_job(job_id)

        assert job is not None
        assert job.payload.subject == "Hello"

    @pytest.mark.asyncio
    async def test_second_dispatcher_store_cannot_reclaim(self, db, clock):
        """Test two stores sharing a table fire a job at most once."""
        a = SqlJobStore(db, clock=clock)
        b = SqlJobStore(db, clock=clock)
        await a.schedule_many([request_for("flow_1", "A")])

        assert len(await a.claim_due(ANCHOR)) == 1
        assert await b.claim_due(ANCHOR) == []


class TestDatabaseManager:
    """Tests for DatabaseManager."""

    def test_async_url(self):
        """Test sync URLs are rewritten to async drivers."""
        assert to_async_url("postgresql://u:p@db/jobs") == "postgresql+asyncpg://u:p@db/jobs"
        assert to_async_url("sqlite:///./jobs.db") == "sqlite+aiosqlite:///./jobs.db"
        assert to_async_url("sqlite+aiosqlite:///x.db") == "sqlite+aiosqlite:///x.db"

    @pytest.mark.asyncio
    async def test_health_check(self, db):
        """Test a live database answers."""
        assert await db.health_check() is True

    @pytest.mark.asyncio
    async def test_rollback_on_error(self, db):
        """Test a failing block leaves nothing behind."""
        store = SqlJobStore(db)

        with pytest.raises(RuntimeError):
            async with db.session() as session:
                store._add(session, [request_for("flow_1", "A")])
                await session.flush()
                raise RuntimeError("abort")

        assert await store.list_jobs(owner_id="flow_1") == []
