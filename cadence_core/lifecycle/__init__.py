"""Flow lifecycle: activation, deactivation and status tracking."""

from .controller import ALLOWED_TRANSITIONS, ActivationResult, FlowLifecycleController
from .store import FlowStore, InMemoryFlowStore

__all__ = [
    "ALLOWED_TRANSITIONS",
    "ActivationResult",
    "FlowLifecycleController",
    "FlowStore",
    "InMemoryFlowStore",
]
