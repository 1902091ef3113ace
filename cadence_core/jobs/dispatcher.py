"""
Job Dispatcher.

Background loop that claims due jobs, hands each to the executor under a
timeout, and closes it out as fired whatever the outcome. A job is
dispatched at most once; failed deliveries are logged, not retried.
"""

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Awaitable, Callable, Dict, List, Optional

import structlog

from ..config import DispatcherConfig
from ..executors.base import ActionExecutor
from .base import (
    CLAIM_EXPIRED,
    ClaimExpiredError,
    DispatchOutcome,
    ExecutorError,
    ExecutorTimeoutError,
    ScheduledJob,
)
from .store import Clock, JobStore

logger = structlog.get_logger(__name__)

FiredCallback = Callable[[DispatchOutcome], Awaitable[Any]]


@dataclass
class DispatcherMetrics:
    """Dispatcher counters."""

    ticks: int = 0
    jobs_fired: int = 0
    jobs_failed: int = 0
    jobs_timed_out: int = 0
    stale_claims_expired: int = 0
    tick_errors: int = 0
    total_duration_ms: float = 0.0


class JobDispatcher:
    """
    Fires due jobs from a JobStore.

    Usage:
        dispatcher = JobDispatcher(store, executor, DispatcherConfig())
        dispatcher.on_fired(callback)
        await dispatcher.start()
        ...
        await dispatcher.stop()

    Several dispatchers may share one store: the store's claim step
    decides which of them fires a given job.
    """

    def __init__(
        self,
        store: JobStore,
        executor: ActionExecutor,
        config: Optional[DispatcherConfig] = None,
        clock: Clock = datetime.utcnow,
    ):
        self.store = store
        self.executor = executor
        self.config = config or DispatcherConfig()
        self.clock = clock

        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._on_fired: List[FiredCallback] = []
        self._metrics = DispatcherMetrics()

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    async def start(self) -> None:
        """Start the dispatch loop."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._dispatch_loop())
        logger.info(
            "dispatcher_started",
            poll_interval_s=self.config.poll_interval_s,
            batch_size=self.config.batch_size,
        )

    async def stop(self) -> None:
        """Stop the dispatch loop. In-flight executor calls are cancelled."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("dispatcher_stopped")

    @property
    def is_running(self) -> bool:
        return self._running

    def on_fired(self, callback: FiredCallback) -> None:
        """Register a callback run after each job is closed out."""
        self._on_fired.append(callback)

    # -------------------------------------------------------------------------
    # Dispatch
    # -------------------------------------------------------------------------

    async def _dispatch_loop(self) -> None:
        """Main dispatch loop."""
        while self._running:
            try:
                await self.tick()
            except asyncio.CancelledError:
                break
            except Exception as e:
                self._metrics.tick_errors += 1
                logger.error("dispatch_tick_error", error=str(e), exc_info=True)

            try:
                await asyncio.sleep(self.config.poll_interval_s)
            except asyncio.CancelledError:
                break

    async def tick(self, now: Optional[datetime] = None) -> List[DispatchOutcome]:
        """
        Run one dispatch pass.

        Args:
            now: Cutoff for due jobs (defaults to the clock)

        Returns:
            One outcome per job this dispatcher claimed
        """
        now = now or self.clock()
        self._metrics.ticks += 1

        cutoff = now - timedelta(seconds=self.config.claim_timeout_s)
        expired = await self.store.expire_stale_claims(cutoff)
        if expired:
            self._metrics.stale_claims_expired += len(expired)
            logger.warning(
                "stale_claims_expired",
                count=len(expired),
                job_ids=[job.id for job in expired],
            )
            # Expired jobs go through the same callbacks as fired ones
            for job in expired:
                await self._notify(
                    DispatchOutcome(
                        job=job,
                        success=False,
                        exception=ClaimExpiredError(CLAIM_EXPIRED),
                    )
                )

        jobs = await self.store.claim_due(now, limit=self.config.batch_size)
        if not jobs:
            return []

        semaphore = asyncio.Semaphore(self.config.max_concurrent)

        async def run(job: ScheduledJob) -> Optional[DispatchOutcome]:
            async with semaphore:
                return await self._dispatch(job)

        results = await asyncio.gather(*(run(job) for job in jobs))
        return [r for r in results if r is not None]

    async def _dispatch(self, job: ScheduledJob) -> Optional[DispatchOutcome]:
        """Execute one claimed job and close it out."""
        started = time.monotonic()
        outcome = DispatchOutcome(job=job, success=False)

        try:
            ok = await asyncio.wait_for(
                self.executor.execute(job.payload),
                timeout=self.config.executor_timeout_s,
            )
            outcome.success = bool(ok)
            if not outcome.success:
                outcome.exception = ExecutorError("executor reported failure")
        except asyncio.TimeoutError:
            outcome.exception = ExecutorTimeoutError(
                f"no answer after {self.config.executor_timeout_s}s"
            )
        except Exception as e:
            outcome.exception = e

        outcome.duration_ms = (time.monotonic() - started) * 1000
        self._metrics.total_duration_ms += outcome.duration_ms

        try:
            outcome.job = await self.store.mark_fired(job.id, error=outcome.error)
        except Exception as e:
            logger.error("job_close_failed", job_id=job.id, error=str(e))
            return None

        if outcome.success:
            self._metrics.jobs_fired += 1
            logger.info(
                "job_fired",
                job_id=job.id,
                owner_id=job.owner_id,
                node_id=job.node_id,
                duration_ms=round(outcome.duration_ms, 2),
            )
        elif outcome.timed_out:
            self._metrics.jobs_timed_out += 1
            logger.error(
                "job_executor_timeout",
                job_id=job.id,
                owner_id=job.owner_id,
                node_id=job.node_id,
                timeout_s=self.config.executor_timeout_s,
            )
        else:
            self._metrics.jobs_failed += 1
            logger.error(
                "job_executor_failed",
                job_id=job.id,
                owner_id=job.owner_id,
                node_id=job.node_id,
                error=outcome.error,
            )

        await self._notify(outcome)
        return outcome

    async def _notify(self, outcome: DispatchOutcome) -> None:
        """Run on_fired callbacks. Their errors are logged, never raised."""
        for callback in self._on_fired:
            try:
                await callback(outcome)
            except Exception as e:
                logger.error("fired_callback_error", job_id=outcome.job.id, error=str(e))

    # -------------------------------------------------------------------------
    # Metrics
    # -------------------------------------------------------------------------

    def get_metrics(self) -> Dict[str, Any]:
        """Get dispatcher metrics."""
        handled = (
            self._metrics.jobs_fired
            + self._metrics.jobs_failed
            + self._metrics.jobs_timed_out
        )
        return {
            "running": self._running,
            "ticks": self._metrics.ticks,
            "jobs_fired": self._metrics.jobs_fired,
            "jobs_failed": self._metrics.jobs_failed,
            "jobs_timed_out": self._metrics.jobs_timed_out,
            "stale_claims_expired": self._metrics.stale_claims_expired,
            "tick_errors": self._metrics.tick_errors,
            "avg_duration_ms": (
                self._metrics.total_duration_ms / handled if handled else 0.0
            ),
        }


__all__ = ["JobDispatcher", "DispatcherMetrics", "FiredCallback"]
