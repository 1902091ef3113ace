"""Test helpers shared by fixtures and test modules."""

from datetime import datetime, timedelta
from typing import List, Optional

from cadence_core.executors.base import CallbackExecutor
from cadence_core.flows.base import ActionPayload, FlowEdge, FlowNode, NodeKind


ANCHOR = datetime(2024, 3, 1, 9, 0, 0)


class FakeClock:
    """Settable clock."""

    def __init__(self, now: datetime = ANCHOR):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingExecutor(CallbackExecutor):
    """Executor that records payloads and returns a fixed result."""

    def __init__(self, result: bool = True):
        self.result = result
        self.calls: List[ActionPayload] = []
        super().__init__(self._record)

    async def _record(self, payload: ActionPayload) -> bool:
        self.calls.append(payload)
        return self.result


def action(node_id: str, recipient: str = "lead@example.com") -> FlowNode:
    return FlowNode(
        id=node_id,
        kind=NodeKind.ACTION,
        action=ActionPayload(
            recipient=recipient,
            subject=f"Subject {node_id}",
            body=f"<p>Body {node_id}</p>",
        ),
    )


def wait(node_id: str, delay: Optional[str]) -> FlowNode:
    return FlowNode(id=node_id, kind=NodeKind.WAIT, delay=delay)


def source(node_id: str, tag: str = "csv") -> FlowNode:
    return FlowNode(id=node_id, kind=NodeKind.SOURCE, tag=tag)


def edges(*pairs: str) -> List[FlowEdge]:
    """Build edges from "a->b" strings."""
    result = []
    for i, pair in enumerate(pairs):
        src, dst = pair.split("->")
        result.append(FlowEdge(id=f"e{i}", source=src.strip(), target=dst.strip()))
    return result


def hours(n: float) -> timedelta:
    return timedelta(hours=n)
