"""Render primitives consumed by the node-graph canvas."""

from pydantic import Field

from learnpath.schemas.roadmap import (
    CamelModel,
    ConnectionType,
    NodeColor,
    NodeType,
    ProgressSummary,
)


class XYPosition(CamelModel):
    x: float
    y: float


class FlowNodeData(CamelModel):
    label: str
    description: str | None = None
    node_type: NodeType
    color: NodeColor
    accent: str
    icon: str | None = None
    is_optional: bool = False
    is_recommended: bool = False
    is_container: bool = False
    is_completed: bool = False
    post_count: int = 0
    width: float
    height: float


class FlowNodeStyle(CamelModel):
    width: float
    height: float


class FlowNode(CamelModel):
    """A canvas node.

    ``parent_node`` makes ``position`` relative to the parent's origin, so
    the parent must precede the node in any list handed to the canvas.
    """

    id: str
    type: str
    position: XYPosition
    data: FlowNodeData
    style: FlowNodeStyle | None = None
    drag_handle: str | None = None
    parent_node: str | None = None
    extent: str | None = None
    expand_parent: bool | None = None


class EdgeStyle(CamelModel):
    stroke: str
    stroke_width: int = 2
    stroke_dasharray: str | None = None


class FlowEdgeData(CamelModel):
    connection_type: ConnectionType


class FlowEdge(CamelModel):
    id: str
    source: str
    target: str
    type: str
    animated: bool = False
    style: EdgeStyle
    label: str | None = None
    data: FlowEdgeData


class FlowView(CamelModel):
    """Everything the public viewer needs to draw one roadmap."""

    roadmap_id: str
    nodes: list[FlowNode] = Field(default_factory=list)
    edges: list[FlowEdge] = Field(default_factory=list)
    progress: ProgressSummary
