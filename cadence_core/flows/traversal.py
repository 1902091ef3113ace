"""
Traversal Scheduler.

Walks a compiled FlowGraph from every entry node, accumulating wait time
along each path, and emits one JobRequest per Action node visit. Performs
no I/O: the returned list fully describes what should be persisted.
"""

from datetime import datetime, timedelta
from typing import Dict, FrozenSet, List, Optional, Tuple

import structlog

from ..config import FanInPolicy
from .base import (
    CycleDetectedError,
    DelayOutOfRangeError,
    FlowGraph,
    JobLimitExceededError,
    JobRequest,
    NodeKind,
    VisitLimitExceededError,
)
from .duration import resolve_duration_ms

logger = structlog.get_logger(__name__)


class TraversalScheduler:
    """
    Converts a FlowGraph plus an anchor time into job requests.

    Each entry node starts its own walk with zero delay. Wait nodes add
    their duration for everything below them; Action nodes emit a job at
    ``anchor + delay`` and pass the delay on unchanged; Source nodes pass
    through. A node reachable via several paths is visited once per path.

    The walk is bounded twice: by ``max_jobs`` emitted requests and by
    ``max_visits`` node visits. Visits default to ten per allowed job.
    """

    def __init__(
        self,
        fan_in_policy: FanInPolicy = FanInPolicy.EVERY_PATH,
        max_jobs: int = 10000,
        max_visits: Optional[int] = None,
    ):
        self.fan_in_policy = fan_in_policy
        self.max_jobs = max_jobs
        self.max_visits = max_visits if max_visits is not None else max_jobs * 10

    def plan(
        self,
        graph: FlowGraph,
        anchor_time: datetime,
        owner_id: Optional[str] = None,
    ) -> List[JobRequest]:
        """
        Plan the jobs for a graph.

        Args:
            graph: Compiled graph
            anchor_time: Activation instant all delays are relative to
            owner_id: Flow id stamped on every request

        Returns:
            Job requests in depth-first visit order

        Raises:
            CycleDetectedError: A node repeats on one path
            JobLimitExceededError: More than ``max_jobs`` requests
            VisitLimitExceededError: More than ``max_visits`` node visits
            DelayOutOfRangeError: A due time past the latest representable date
        """
        emitted: List[JobRequest] = []
        # Used by the dedupe policies, keyed by (entry id, node id)
        chosen: Dict[Tuple[str, str], JobRequest] = {}
        visits = 0

        for entry_id in graph.entry_ids:
            # (node id, accumulated delay ms, path so far, nodes on path)
            stack: List[Tuple[str, int, Tuple[str, ...], FrozenSet[str]]] = [
                (entry_id, 0, (entry_id,), frozenset((entry_id,)))
            ]

            while stack:
                node_id, delay_ms, path, on_path = stack.pop()
                node = graph.nodes[node_id]

                visits += 1
                if visits > self.max_visits:
                    raise VisitLimitExceededError(self.max_visits)

                if node.kind == NodeKind.WAIT:
                    delay_ms += resolve_duration_ms(node.delay, node_id=node_id)

                elif node.kind == NodeKind.ACTION and node.action is not None:
                    try:
                        due_at = anchor_time + timedelta(milliseconds=delay_ms)
                    except OverflowError:
                        raise DelayOutOfRangeError(node_id, delay_ms) from None

                    request = JobRequest(
                        owner_id=owner_id,
                        node_id=node_id,
                        due_at=due_at,
                        payload=node.action,
                        delay_ms=delay_ms,
                    )
                    self._emit(request, entry_id, emitted, chosen)

                    if len(emitted) + len(chosen) > self.max_jobs:
                        raise JobLimitExceededError(self.max_jobs)

                # Reversed so children are walked in edge order
                for child_id in reversed(graph.children_of(node_id)):
                    if child_id in on_path:
                        raise CycleDetectedError(path + (child_id,))
                    stack.append(
                        (child_id, delay_ms, path + (child_id,), on_path | {child_id})
                    )

        requests = emitted if self.fan_in_policy == FanInPolicy.EVERY_PATH else list(chosen.values())

        logger.info(
            "jobs_planned",
            owner_id=owner_id,
            jobs=len(requests),
            entries=len(graph.entry_ids),
            fan_in_policy=self.fan_in_policy.value,
        )

        return requests

    def _emit(
        self,
        request: JobRequest,
        entry_id: str,
        emitted: List[JobRequest],
        chosen: Dict[Tuple[str, str], JobRequest],
    ) -> None:
        if self.fan_in_policy == FanInPolicy.EVERY_PATH:
            emitted.append(request)
            return

        key = (entry_id, request.node_id)
        existing = chosen.get(key)

        if existing is None:
            chosen[key] = request
        elif self.fan_in_policy == FanInPolicy.MIN_DELAY and request.delay_ms < existing.delay_ms:
            chosen[key] = request


__all__ = ["TraversalScheduler"]
