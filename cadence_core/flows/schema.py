"""
Flow document schema.

Validates the stored flow document shape (as produced by the flow editor)
and converts it to engine types.
"""

from typing import Any, Dict, List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from .base import (
    ActionPayload,
    ExecutionStatus,
    FlowDocument,
    FlowEdge,
    FlowNode,
    InvalidFlowDocumentError,
    NodeKind,
)


# Editor node types and their engine kinds
NODE_TYPE_ALIASES: Dict[str, NodeKind] = {
    "coldEmail": NodeKind.ACTION,
    "action": NodeKind.ACTION,
    "wait": NodeKind.WAIT,
    "leadSource": NodeKind.SOURCE,
    "source": NodeKind.SOURCE,
}


class Position(BaseModel):
    """Canvas position."""

    x: float = 0
    y: float = 0


class EmailData(BaseModel):
    """Email block of an action node."""

    model_config = ConfigDict(extra="ignore")

    to: Optional[str] = None
    subject: Optional[str] = None
    body: Optional[str] = None


class NodeData(BaseModel):
    """Type-specific node data."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    label: Optional[str] = None
    delay: Optional[str] = None
    email: Optional[EmailData] = None
    lead_source: Optional[str] = Field(default=None, alias="leadSource")


class NodeSchema(BaseModel):
    """A node as stored in the flow document."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    type: NodeKind
    position: Optional[Position] = None
    data: NodeData = Field(default_factory=NodeData)

    @field_validator("type", mode="before")
    @classmethod
    def normalize_type(cls, value: Any) -> Any:
        if isinstance(value, str) and value in NODE_TYPE_ALIASES:
            return NODE_TYPE_ALIASES[value]
        return value

    def to_node(self) -> FlowNode:
        action = None
        if self.type == NodeKind.ACTION and self.data.email is not None:
            action = ActionPayload(
                recipient=self.data.email.to or "",
                subject=self.data.email.subject or "",
                body=self.data.email.body or "",
            )

        return FlowNode(
            id=self.id,
            kind=self.type,
            action=action,
            delay=self.data.delay if self.type == NodeKind.WAIT else None,
            tag=self.data.lead_source if self.type == NodeKind.SOURCE else None,
            label=self.data.label,
            position=(self.position.x, self.position.y) if self.position else None,
        )


class EdgeSchema(BaseModel):
    """An edge as stored in the flow document."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., min_length=1)
    source: str
    target: str
    type: Optional[str] = None
    animated: Optional[bool] = None

    def to_edge(self) -> FlowEdge:
        return FlowEdge(id=self.id, source=self.source, target=self.target)


class FlowDocumentSchema(BaseModel):
    """The scheduling-relevant part of a stored flow."""

    model_config = ConfigDict(extra="ignore")

    id: str = Field(..., validation_alias=AliasChoices("id", "_id"))
    nodes: List[NodeSchema] = Field(default_factory=list)
    edges: List[EdgeSchema] = Field(default_factory=list)
    status: ExecutionStatus = Field(
        default=ExecutionStatus.DRAFT,
        validation_alias=AliasChoices("status", "executionStatus"),
    )
    is_active: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_active", "isActive"),
    )
    completed_nodes: List[str] = Field(
        default_factory=list,
        validation_alias=AliasChoices("completed_nodes", "completedNodes"),
    )

    def to_document(self) -> FlowDocument:
        return FlowDocument(
            id=self.id,
            nodes=[n.to_node() for n in self.nodes],
            edges=[e.to_edge() for e in self.edges],
            status=self.status,
            is_active=self.is_active,
            completed_nodes=list(self.completed_nodes),
        )


def parse_flow_document(data: Dict[str, Any]) -> FlowDocument:
    """
    Parse a stored flow document.

    Raises:
        InvalidFlowDocumentError: The document does not validate
    """
    try:
        return FlowDocumentSchema.model_validate(data).to_document()
    except ValidationError as e:
        raise InvalidFlowDocumentError(str(e)) from e


__all__ = [
    "NODE_TYPE_ALIASES",
    "Position",
    "EmailData",
    "NodeData",
    "NodeSchema",
    "EdgeSchema",
    "FlowDocumentSchema",
    "parse_flow_document",
]
