"""
Flow Lifecycle Controller.

Drives a flow's execution status and keeps its scheduled jobs in step:

    draft/completed/failed --activate--> scheduled --first fire--> running
    running --last fire--> completed
    scheduled/running --deactivate or edit--> draft
    activate with a compile error --> failed (no jobs kept)

Operations on one flow id are serialized; different flows run in parallel.
"""

import asyncio
import weakref
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Set, Union

import structlog

from ..flows.base import (
    ActionPayload,
    ExecutionStatus,
    FlowDocument,
    FlowNotFoundError,
    GraphCompileError,
    InvalidTransitionError,
)
from ..flows.compiler import GraphCompiler
from ..flows.duration import resolve_duration_ms
from ..flows.traversal import TraversalScheduler
from ..jobs.base import DispatchOutcome
from ..jobs.store import Clock, JobStore
from .store import FlowStore

logger = structlog.get_logger(__name__)


ALLOWED_TRANSITIONS: Dict[ExecutionStatus, Set[ExecutionStatus]] = {
    ExecutionStatus.DRAFT: {
        ExecutionStatus.DRAFT,
        ExecutionStatus.SCHEDULED,
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
    },
    ExecutionStatus.SCHEDULED: set(ExecutionStatus),
    ExecutionStatus.RUNNING: set(ExecutionStatus),
    ExecutionStatus.COMPLETED: {
        ExecutionStatus.DRAFT,
        ExecutionStatus.SCHEDULED,
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
    },
    ExecutionStatus.FAILED: {
        ExecutionStatus.DRAFT,
        ExecutionStatus.SCHEDULED,
        ExecutionStatus.COMPLETED,
        ExecutionStatus.FAILED,
    },
}


@dataclass
class ActivationResult:
    """Outcome of a successful activation."""

    flow_id: str
    status: ExecutionStatus
    anchor_time: datetime
    job_ids: List[str] = field(default_factory=list)
    canceled: int = 0

    @property
    def job_count(self) -> int:
        return len(self.job_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "flow_id": self.flow_id,
            "status": self.status.value,
            "anchor_time": self.anchor_time.isoformat(),
            "job_ids": self.job_ids,
            "canceled": self.canceled,
        }


class FlowLifecycleController:
    """
    Orchestrates activation and deactivation of flows.

    Activation compiles the graph, plans jobs anchored at "now" and
    persists them in one store call that also cancels whatever the flow
    still had pending. Either every job is stored or none is.
    """

    def __init__(
        self,
        flow_store: FlowStore,
        job_store: JobStore,
        compiler: Optional[GraphCompiler] = None,
        traversal: Optional[TraversalScheduler] = None,
        clock: Clock = datetime.utcnow,
    ):
        self.flow_store = flow_store
        self.job_store = job_store
        self.compiler = compiler or GraphCompiler()
        self.traversal = traversal or TraversalScheduler()
        self.clock = clock

        # Entries drop out once no operation holds or awaits the lock
        self._locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, flow_id: str) -> asyncio.Lock:
        lock = self._locks.get(flow_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[flow_id] = lock
        return lock

    async def _transition(
        self,
        flow: FlowDocument,
        target: ExecutionStatus,
        is_active: bool,
    ) -> FlowDocument:
        if target not in ALLOWED_TRANSITIONS[flow.status]:
            raise InvalidTransitionError(flow.id, flow.status, target)
        return await self.flow_store.set_status(flow.id, target, is_active=is_active)

    # -------------------------------------------------------------------------
    # Lifecycle Operations
    # -------------------------------------------------------------------------

    async def activate(self, flow_id: str) -> ActivationResult:
        """
        Activate a flow and schedule its actions.

        An already active flow has its pending jobs replaced, never doubled.

        Raises:
            FlowNotFoundError: Unknown flow
            GraphCompileError: The graph cannot be scheduled; status is
                set to failed and no jobs are kept
        """
        async with self._lock_for(flow_id):
            flow = await self.flow_store.get_flow(flow_id)
            anchor_time = self.clock()

            try:
                graph = self.compiler.compile(flow.nodes, flow.edges)
                requests = self.traversal.plan(graph, anchor_time, owner_id=flow.id)
            except GraphCompileError as e:
                canceled = await self.job_store.cancel_all(flow.id)
                await self._transition(flow, ExecutionStatus.FAILED, is_active=False)
                logger.error(
                    "flow_activation_failed",
                    flow_id=flow.id,
                    error=str(e),
                    error_type=type(e).__name__,
                    canceled=canceled,
                )
                raise

            canceled, job_ids = await self.job_store.replace_for_owner(flow.id, requests)

            # Nothing to fire means nothing left to wait for
            status = ExecutionStatus.SCHEDULED if job_ids else ExecutionStatus.COMPLETED
            await self._transition(flow, status, is_active=bool(job_ids))

            logger.info(
                "flow_activated",
                flow_id=flow.id,
                jobs=len(job_ids),
                canceled=canceled,
                status=status.value,
            )

            return ActivationResult(
                flow_id=flow.id,
                status=status,
                anchor_time=anchor_time,
                job_ids=job_ids,
                canceled=canceled,
            )

    async def deactivate(self, flow_id: str) -> int:
        """
        Deactivate a flow: cancel its pending jobs and return it to draft.

        Jobs already fired, or claimed by a dispatcher, are left alone.

        Returns:
            Number of jobs canceled
        """
        async with self._lock_for(flow_id):
            flow = await self.flow_store.get_flow(flow_id)
            canceled = await self.job_store.cancel_all(flow.id)
            await self._transition(flow, ExecutionStatus.DRAFT, is_active=False)

        logger.info("flow_deactivated", flow_id=flow_id, canceled=canceled)
        return canceled

    async def on_edit(self, flow_id: str) -> int:
        """
        Handle an edit to a flow.

        An active flow is deactivated; the caller must activate again to
        pick up the new graph. Inactive flows are left as they are.

        Returns:
            Number of jobs canceled
        """
        async with self._lock_for(flow_id):
            flow = await self.flow_store.get_flow(flow_id)
            if not flow.status.is_active and not flow.is_active:
                return 0

            canceled = await self.job_store.cancel_all(flow.id)
            await self._transition(flow, ExecutionStatus.DRAFT, is_active=False)

        logger.info("flow_edited_while_active", flow_id=flow_id, canceled=canceled)
        return canceled

    async def delete(self, flow_id: str) -> int:
        """
        Cancel everything a flow has pending before its document is removed.

        Returns:
            Number of jobs canceled
        """
        async with self._lock_for(flow_id):
            canceled = await self.job_store.cancel_all(flow_id)

        logger.info("jobs_canceled", flow_id=flow_id, canceled=canceled, reason="delete")
        return canceled

    async def schedule_single(
        self,
        recipient: str,
        subject: str,
        body: str,
        delay: Union[str, int] = "1h",
    ) -> Dict[str, Any]:
        """
        Schedule one action outside any flow.

        Args:
            recipient: Recipient address
            subject: Subject line
            body: Message body
            delay: Duration token or milliseconds

        Returns:
            Dict with job_id and due_at

        Raises:
            ValueError: A field is missing or the delay is out of range
        """
        if not recipient or not subject or not body:
            raise ValueError("Please provide recipient, subject, and body")

        try:
            due_at = self.clock() + timedelta(milliseconds=resolve_duration_ms(delay))
        except OverflowError:
            raise ValueError(f"Delay {delay!r} is out of range") from None

        job_id = await self.job_store.schedule(
            owner_id=None,
            node_id=None,
            due_at=due_at,
            payload=ActionPayload(recipient=recipient, subject=subject, body=body),
        )

        logger.info("single_job_scheduled", job_id=job_id, due_at=due_at.isoformat())

        return {"scheduled": True, "job_id": job_id, "due_at": due_at}

    # -------------------------------------------------------------------------
    # Dispatch Feedback
    # -------------------------------------------------------------------------

    async def handle_fired(self, outcome: DispatchOutcome) -> None:
        """
        Dispatcher callback: record node completion and advance status.

        The first fired job moves a scheduled flow to running; once the
        flow has nothing pending or claimed it is completed.
        """
        job = outcome.job
        if job.owner_id is None:
            return

        async with self._lock_for(job.owner_id):
            try:
                flow = await self.flow_store.get_flow(job.owner_id)
            except FlowNotFoundError:
                logger.warning("fired_job_flow_missing", job_id=job.id, flow_id=job.owner_id)
                return

            if job.node_id is not None:
                await self.flow_store.mark_node_completed(flow.id, job.node_id)

            if not flow.status.is_active:
                return

            if await self.job_store.count_active(flow.id) == 0:
                await self._transition(flow, ExecutionStatus.COMPLETED, is_active=False)
                logger.info("flow_completed", flow_id=flow.id)
            elif flow.status == ExecutionStatus.SCHEDULED:
                await self._transition(flow, ExecutionStatus.RUNNING, is_active=True)


__all__ = ["ALLOWED_TRANSITIONS", "ActivationResult", "FlowLifecycleController"]
