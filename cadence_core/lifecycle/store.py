"""
Flow store contract.

The flow document (name, ownership, nodes and edges) lives outside the
engine. The controller only reads the graph and writes status and node
completion back through this interface.
"""

import asyncio
from abc import ABC, abstractmethod
from dataclasses import replace
from datetime import datetime
from typing import Dict, List

from ..flows.base import ExecutionStatus, FlowDocument, FlowNotFoundError


class FlowStore(ABC):
    """Access to stored flow documents."""

    @abstractmethod
    async def get_flow(self, flow_id: str) -> FlowDocument:
        """
        Get a flow.

        Raises:
            FlowNotFoundError: No such flow
        """

    @abstractmethod
    async def set_status(
        self,
        flow_id: str,
        status: ExecutionStatus,
        is_active: bool,
    ) -> FlowDocument:
        """Persist an execution-status transition."""

    @abstractmethod
    async def mark_node_completed(self, flow_id: str, node_id: str) -> None:
        """Record that an action node has fired."""


class InMemoryFlowStore(FlowStore):
    """Process-local flow store."""

    def __init__(self):
        self._flows: Dict[str, FlowDocument] = {}
        self._lock = asyncio.Lock()

    async def save(self, flow: FlowDocument) -> FlowDocument:
        """Insert or replace a flow."""
        async with self._lock:
            flow = replace(flow, updated_at=datetime.utcnow())
            self._flows[flow.id] = flow
            return flow

    async def delete(self, flow_id: str) -> bool:
        async with self._lock:
            return self._flows.pop(flow_id, None) is not None

    async def list_flows(self) -> List[FlowDocument]:
        return list(self._flows.values())

    async def get_flow(self, flow_id: str) -> FlowDocument:
        flow = self._flows.get(flow_id)
        if flow is None:
            raise FlowNotFoundError(f"Flow not found with id of {flow_id}")
        return flow

    async def set_status(
        self,
        flow_id: str,
        status: ExecutionStatus,
        is_active: bool,
    ) -> FlowDocument:
        async with self._lock:
            flow = await self.get_flow(flow_id)
            flow = replace(
                flow,
                status=status,
                is_active=is_active,
                updated_at=datetime.utcnow(),
            )
            self._flows[flow_id] = flow
            return flow

    async def mark_node_completed(self, flow_id: str, node_id: str) -> None:
        async with self._lock:
            flow = await self.get_flow(flow_id)
            if node_id not in flow.completed_nodes:
                self._flows[flow_id] = replace(
                    flow,
                    completed_nodes=flow.completed_nodes + [node_id],
                    updated_at=datetime.utcnow(),
                )


__all__ = ["FlowStore", "InMemoryFlowStore"]
