"""
Flow Base Types Module

This module defines the node/edge data model, the compiled graph, the
flow execution status and the exceptions raised while compiling a flow.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple


# =============================================================================
# Enums
# =============================================================================


class NodeKind(str, Enum):
    """Kinds of flow nodes."""

    ACTION = "action"
    WAIT = "wait"
    SOURCE = "source"


class ExecutionStatus(str, Enum):
    """Execution status attached to a flow document."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_active(self) -> bool:
        return self in (ExecutionStatus.SCHEDULED, ExecutionStatus.RUNNING)


# =============================================================================
# Node and Edge Types
# =============================================================================


@dataclass(frozen=True)
class ActionPayload:
    """What an Action node sends. Recipient may be resolved at dispatch time."""

    recipient: str = ""
    subject: str = ""
    body: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {
            "recipient": self.recipient,
            "subject": self.subject,
            "body": self.body,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ActionPayload":
        return cls(
            recipient=data.get("recipient") or "",
            subject=data.get("subject") or "",
            body=data.get("body") or "",
        )


@dataclass(frozen=True)
class FlowNode:
    """A node in a flow graph."""

    id: str
    kind: NodeKind

    # Action nodes
    action: Optional[ActionPayload] = None

    # Wait nodes
    delay: Optional[str] = None

    # Source nodes (opaque)
    tag: Optional[str] = None

    # Display metadata, never read by the engine
    label: Optional[str] = None
    position: Optional[Tuple[float, float]] = None


@dataclass(frozen=True)
class FlowEdge:
    """A directed edge between two nodes."""

    id: str
    source: str
    target: str


@dataclass
class FlowGraph:
    """
    Adjacency structure built from a flow's nodes and edges.

    Request-scoped: rebuilt on every activation and never persisted.
    """

    nodes: Dict[str, FlowNode] = field(default_factory=dict)
    children: Dict[str, List[str]] = field(default_factory=dict)
    entry_ids: List[str] = field(default_factory=list)

    def children_of(self, node_id: str) -> List[str]:
        return self.children.get(node_id, [])

    @property
    def edge_count(self) -> int:
        return sum(len(c) for c in self.children.values())


@dataclass
class FlowDocument:
    """The parts of a stored flow the engine consumes."""

    id: str
    nodes: List[FlowNode] = field(default_factory=list)
    edges: List[FlowEdge] = field(default_factory=list)
    status: ExecutionStatus = ExecutionStatus.DRAFT
    is_active: bool = False
    completed_nodes: List[str] = field(default_factory=list)
    updated_at: datetime = field(default_factory=datetime.utcnow)


# =============================================================================
# Traversal Output
# =============================================================================


@dataclass(frozen=True)
class JobRequest:
    """A request to schedule one action, produced by traversal."""

    owner_id: Optional[str]
    node_id: Optional[str]
    due_at: datetime
    payload: ActionPayload
    delay_ms: int = 0


# =============================================================================
# Exceptions
# =============================================================================


class FlowError(Exception):
    """Base exception for flow errors."""

    pass


class GraphCompileError(FlowError):
    """A flow graph cannot be scheduled. Fatal to the activation."""

    pass


class DuplicateNodeIdError(GraphCompileError):
    """Two nodes share an id."""

    def __init__(self, node_id: str):
        super().__init__(f"Duplicate node ID: {node_id}")
        self.node_id = node_id


class NoEntryNodeError(GraphCompileError):
    """Every node has an incoming edge."""

    def __init__(self, node_count: int):
        super().__init__(
            f"Flow has no entry node ({node_count} nodes, all with incoming edges)"
        )
        self.node_count = node_count


class CycleDetectedError(GraphCompileError):
    """A node is reachable from itself."""

    def __init__(self, path: Sequence[str]):
        super().__init__(f"Cycle detected: {' -> '.join(path)}")
        self.path: Tuple[str, ...] = tuple(path)


class JobLimitExceededError(GraphCompileError):
    """Traversal would emit more jobs than allowed for one activation."""

    def __init__(self, limit: int):
        super().__init__(f"Flow would schedule more than {limit} jobs")
        self.limit = limit


class VisitLimitExceededError(JobLimitExceededError):
    """Traversal would walk more node visits than allowed for one activation."""

    def __init__(self, limit: int):
        GraphCompileError.__init__(
            self, f"Flow traversal would visit more than {limit} nodes"
        )
        self.limit = limit


class DelayOutOfRangeError(GraphCompileError):
    """Accumulated wait time puts a job past the latest representable date."""

    def __init__(self, node_id: str, delay_ms: int):
        super().__init__(f"Delay of {delay_ms}ms at node {node_id} is out of range")
        self.node_id = node_id
        self.delay_ms = delay_ms


class InvalidFlowDocumentError(FlowError):
    """The flow document failed validation."""

    pass


class FlowNotFoundError(FlowError):
    """The flow store has no such flow."""

    pass


class InvalidTransitionError(FlowError):
    """Lifecycle transition not allowed from the current status."""

    def __init__(self, flow_id: str, current: ExecutionStatus, target: ExecutionStatus):
        super().__init__(
            f"Flow {flow_id} cannot move from {current.value} to {target.value}"
        )
        self.flow_id = flow_id
        self.current = current
        self.target = target


__all__ = [
    "NodeKind",
    "ExecutionStatus",
    "ActionPayload",
    "FlowNode",
    "FlowEdge",
    "FlowGraph",
    "FlowDocument",
    "JobRequest",
    "FlowError",
    "GraphCompileError",
    "DuplicateNodeIdError",
    "NoEntryNodeError",
    "CycleDetectedError",
    "JobLimitExceededError",
    "VisitLimitExceededError",
    "DelayOutOfRangeError",
    "InvalidFlowDocumentError",
    "FlowNotFoundError",
    "InvalidTransitionError",
]
