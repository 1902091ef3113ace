"""
Flows Module

Compiles a flow's node/edge graph into absolute-time job requests.

Example usage:

    from datetime import datetime
    from cadence_core.flows import (
        GraphCompiler,
        TraversalScheduler,
        parse_flow_document,
    )

    flow = parse_flow_document({
        "id": "flow_1",
        "nodes": [
            {"id": "a", "type": "coldEmail",
             "data": {"email": {"to": "x@example.com", "subject": "Hi", "body": "..."}}},
            {"id": "w", "type": "wait", "data": {"delay": "1h"}},
            {"id": "b", "type": "coldEmail",
             "data": {"email": {"subject": "Following up", "body": "..."}}},
        ],
        "edges": [
            {"id": "e1", "source": "a", "target": "w"},
            {"id": "e2", "source": "w", "target": "b"},
        ],
    })

    graph = GraphCompiler().compile(flow.nodes, flow.edges)
    requests = TraversalScheduler().plan(graph, datetime.utcnow(), owner_id=flow.id)
"""

from .base import (
    # Enums
    NodeKind,
    ExecutionStatus,
    # Types
    ActionPayload,
    FlowNode,
    FlowEdge,
    FlowGraph,
    FlowDocument,
    JobRequest,
    # Exceptions
    FlowError,
    GraphCompileError,
    DuplicateNodeIdError,
    NoEntryNodeError,
    CycleDetectedError,
    JobLimitExceededError,
    VisitLimitExceededError,
    DelayOutOfRangeError,
    InvalidFlowDocumentError,
    FlowNotFoundError,
    InvalidTransitionError,
)
from .compiler import GraphCompiler, compile_graph
from .duration import resolve_duration, resolve_duration_ms
from .schema import FlowDocumentSchema, parse_flow_document
from .traversal import TraversalScheduler


__all__ = [
    # Enums
    "NodeKind",
    "ExecutionStatus",
    # Types
    "ActionPayload",
    "FlowNode",
    "FlowEdge",
    "FlowGraph",
    "FlowDocument",
    "JobRequest",
    # Compilation
    "GraphCompiler",
    "compile_graph",
    "TraversalScheduler",
    "resolve_duration",
    "resolve_duration_ms",
    # Documents
    "FlowDocumentSchema",
    "parse_flow_document",
    # Exceptions
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
