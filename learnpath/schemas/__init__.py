"""Pydantic schemas."""

from learnpath.schemas.flow import (
    EdgeStyle,
    FlowEdge,
    FlowEdgeData,
    FlowNode,
    FlowNodeData,
    FlowNodeStyle,
    FlowView,
    XYPosition,
)
from learnpath.schemas.roadmap import (
    ConnectionCreate,
    ConnectionType,
    ConnectionUpdate,
    ExternalPost,
    NodeColor,
    NodeConnection,
    NodeCreate,
    NodePost,
    NodePostLink,
    NodeType,
    NodeUpdate,
    PostStatus,
    ProgressSummary,
    Roadmap,
    RoadmapCreate,
    RoadmapGraph,
    RoadmapNode,
    RoadmapUpdate,
)

__all__ = [
    "Roadmap",
    "RoadmapNode",
    "NodeConnection",
    "NodePost",
    "ExternalPost",
    "NodeType",
    "NodeColor",
    "ConnectionType",
    "PostStatus",
    "ProgressSummary",
    "RoadmapCreate",
    "RoadmapUpdate",
    "NodeCreate",
    "NodeUpdate",
    "ConnectionCreate",
    "ConnectionUpdate",
    "NodePostLink",
    "RoadmapGraph",
    "XYPosition",
    "FlowNode",
    "FlowNodeData",
    "FlowNodeStyle",
    "FlowEdge",
    "FlowEdgeData",
    "EdgeStyle",
    "FlowView",
]
