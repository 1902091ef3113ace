"""
Cadence Core

Flow scheduling engine: compiles a node/edge messaging sequence into
absolute-time jobs and fires them from a durable job store.

Example usage:

    from cadence_core import FlowSchedulingService, InMemoryFlowStore
    from cadence_core.jobs import InMemoryJobStore
    from cadence_core.executors import CallbackExecutor

    service = FlowSchedulingService(
        flow_store=InMemoryFlowStore(),
        job_store=InMemoryJobStore(),
        executor=CallbackExecutor(send),
    )
    async with service:
        result = await service.activate("flow_123")
        print(f"Scheduled {result.job_count} jobs")
"""

from .config import Settings, get_settings
from .lifecycle import FlowLifecycleController, FlowStore, InMemoryFlowStore
from .service import FlowSchedulingService, create_service

__version__ = "1.0.0"

__all__ = [
    "Settings",
    "get_settings",
    "FlowLifecycleController",
    "FlowStore",
    "InMemoryFlowStore",
    "FlowSchedulingService",
    "create_service",
]
