"""
Flow Scheduling Service.

Composition root: wires a job store, dispatcher and lifecycle controller
together with an explicit start/stop lifecycle. Nothing here is a module
level singleton; build one service per process (or per test).
"""

from datetime import datetime
from typing import Any, Dict, Optional

import structlog

from .config import Settings, get_settings
from .core.logging import configure_logging
from .database.base import DatabaseManager
from .executors.base import ActionExecutor
from .executors.smtp import SmtpEmailExecutor
from .flows.compiler import GraphCompiler
from .flows.traversal import TraversalScheduler
from .jobs.dispatcher import JobDispatcher
from .jobs.sql_store import SqlJobStore
from .jobs.store import Clock, JobStore
from .lifecycle.controller import ActivationResult, FlowLifecycleController
from .lifecycle.store import FlowStore

logger = structlog.get_logger(__name__)


class FlowSchedulingService:
    """
    Main scheduling service.

    Usage:
        service = FlowSchedulingService(flow_store, job_store, executor)
        await service.start()

        await service.activate("flow_123")
        await service.deactivate("flow_123")

        await service.stop()
    """

    def __init__(
        self,
        flow_store: FlowStore,
        job_store: JobStore,
        executor: ActionExecutor,
        settings: Optional[Settings] = None,
        clock: Clock = datetime.utcnow,
    ):
        self.settings = settings or get_settings()
        self.flow_store = flow_store
        self.job_store = job_store

        self.controller = FlowLifecycleController(
            flow_store=flow_store,
            job_store=job_store,
            compiler=GraphCompiler(),
            traversal=TraversalScheduler(
                fan_in_policy=self.settings.traversal.fan_in_policy,
                max_jobs=self.settings.traversal.max_jobs,
                max_visits=self.settings.traversal.max_visits,
            ),
            clock=clock,
        )
        self.dispatcher = JobDispatcher(
            store=job_store,
            executor=executor,
            config=self.settings.dispatcher,
            clock=clock,
        )
        self.dispatcher.on_fired(self.controller.handle_fired)

        self._started = False

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start dispatching."""
        if self._started:
            return
        if isinstance(self.job_store, SqlJobStore):
            await self.job_store.initialize()
        await self.dispatcher.start()
        self._started = True
        logger.info("scheduling_service_started", service=self.settings.service_name)

    async def stop(self) -> None:
        """Stop dispatching and release the job store."""
        if not self._started:
            return
        await self.dispatcher.stop()
        await self.job_store.close()
        self._started = False
        logger.info("scheduling_service_stopped", service=self.settings.service_name)

    async def __aenter__(self) -> "FlowSchedulingService":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.stop()

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    async def activate(self, flow_id: str) -> ActivationResult:
        return await self.controller.activate(flow_id)

    async def deactivate(self, flow_id: str) -> int:
        return await self.controller.deactivate(flow_id)

    async def on_edit(self, flow_id: str) -> int:
        return await self.controller.on_edit(flow_id)

    async def delete(self, flow_id: str) -> int:
        return await self.controller.delete(flow_id)

    async def schedule_single(self, *args: Any, **kwargs: Any) -> Dict[str, Any]:
        return await self.controller.schedule_single(*args, **kwargs)

    def get_status(self) -> Dict[str, Any]:
        """Get service status."""
        return {
            "service": self.settings.service_name,
            "running": self._started,
            "dispatcher": self.dispatcher.get_metrics(),
        }


def create_service(
    flow_store: FlowStore,
    settings: Optional[Settings] = None,
    executor: Optional[ActionExecutor] = None,
) -> FlowSchedulingService:
    """
    Build a service from settings: SQL job store, SMTP executor, logging.

    Args:
        flow_store: Access to flow documents
        settings: Settings (defaults to environment)
        executor: Executor override (defaults to SMTP)
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level, settings.log_format)

    db = DatabaseManager.from_config(settings.storage)

    return FlowSchedulingService(
        flow_store=flow_store,
        job_store=SqlJobStore(db),
        executor=executor or SmtpEmailExecutor(settings.smtp),
        settings=settings,
    )


__all__ = ["FlowSchedulingService", "create_service"]
