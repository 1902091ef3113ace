"""
Jobs Module

Durable storage and dispatch of scheduled actions.

Example usage:

    from cadence_core.jobs import InMemoryJobStore, JobDispatcher
    from cadence_core.executors import CallbackExecutor

    store = InMemoryJobStore()
    dispatcher = JobDispatcher(store, CallbackExecutor(send))
    await dispatcher.start()

    await store.schedule("flow_1", "node_a", due_at, payload)
    canceled = await store.cancel_all("flow_1")
"""

from .base import (
    CLAIM_EXPIRED,
    JobStatus,
    ScheduledJob,
    DispatchOutcome,
    JobStoreError,
    JobNotFoundError,
    ExecutorError,
    ExecutorTimeoutError,
    ClaimExpiredError,
)
from .store import JobStore, InMemoryJobStore
from .sql_store import SqlJobStore
from .dispatcher import JobDispatcher, DispatcherMetrics


__all__ = [
    "CLAIM_EXPIRED",
    "JobStatus",
    "ScheduledJob",
    "DispatchOutcome",
    "JobStore",
    "InMemoryJobStore",
    "SqlJobStore",
    "JobDispatcher",
    "DispatcherMetrics",
    "JobStoreError",
    "JobNotFoundError",
    "ExecutorError",
    "ExecutorTimeoutError",
    "ClaimExpiredError",
]
