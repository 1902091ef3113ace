"""Shared pytest fixtures for testing."""

from typing import AsyncGenerator

import pytest
import pytest_asyncio

from cadence_core.config import DispatcherConfig
from cadence_core.database.base import DatabaseManager
from cadence_core.flows.base import FlowDocument
from cadence_core.jobs.sql_store import SqlJobStore
from cadence_core.jobs.store import InMemoryJobStore
from cadence_core.lifecycle.controller import FlowLifecycleController
from cadence_core.lifecycle.store import InMemoryFlowStore

from helpers import FakeClock, RecordingExecutor, action, edges, wait


# =============================================================================
# Store Fixtures
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def job_store(clock: FakeClock) -> InMemoryJobStore:
    return InMemoryJobStore(clock=clock)


@pytest.fixture
def flow_store() -> InMemoryFlowStore:
    return InMemoryFlowStore()


@pytest_asyncio.fixture
async def db(tmp_path) -> AsyncGenerator[DatabaseManager, None]:
    """File-backed SQLite database with the schema created."""
    manager = DatabaseManager(f"sqlite+aiosqlite:///{tmp_path / 'jobs.db'}")
    await manager.create_all()
    yield manager
    await manager.close()


@pytest.fixture
def sql_store(db: DatabaseManager, clock: FakeClock) -> SqlJobStore:
    return SqlJobStore(db, clock=clock)


# =============================================================================
# Engine Fixtures
# =============================================================================


@pytest.fixture
def executor() -> RecordingExecutor:
    return RecordingExecutor()


@pytest.fixture
def dispatcher_config() -> DispatcherConfig:
    return DispatcherConfig(
        poll_interval_s=0.01,
        executor_timeout_s=0.5,
        batch_size=50,
        max_concurrent=5,
        claim_timeout_s=600,
    )


@pytest.fixture
def controller(
    flow_store: InMemoryFlowStore,
    job_store: InMemoryJobStore,
    clock: FakeClock,
) -> FlowLifecycleController:
    return FlowLifecycleController(flow_store, job_store, clock=clock)


# =============================================================================
# Test Data Fixtures
# =============================================================================


@pytest.fixture
def sequence_flow() -> FlowDocument:
    """Action A, wait 1h, Action B."""
    return FlowDocument(
        id="flow_sequence",
        nodes=[action("A"), wait("W", "1h"), action("B")],
        edges=edges("A->W", "W->B"),
    )
