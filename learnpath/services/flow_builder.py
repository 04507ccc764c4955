"""Roadmap entities to canvas render primitives.

Everything here is deterministic and side-effect free. The canvas resolves a
child's position relative to a parent it has already registered, so
``order_for_render`` must emit every container before anything nested in
it; the rest is attribute mapping.
"""

from collections.abc import Collection, Iterable, Mapping, Sequence

from learnpath.schemas.flow import (
    EdgeStyle,
    FlowEdge,
    FlowEdgeData,
    FlowNode,
    FlowNodeData,
    FlowNodeStyle,
    XYPosition,
)
from learnpath.schemas.roadmap import ConnectionType, NodeConnection, RoadmapNode
from learnpath.services.graph_model import FALLBACK_NODE_COLOR, NODE_COLOR_ACCENTS

CONTAINER_NODE_TYPE = "containerNode"
ROADMAP_NODE_TYPE = "roadmapNode"
CONTAINER_DRAG_HANDLE = ".drag-handle"

EDGE_STROKE_WIDTH = 2
EDGE_STYLES: dict[ConnectionType, tuple[str, str, bool, str | None]] = {
    # type: (routing, stroke, animated, dasharray)
    ConnectionType.DEFAULT: ("smoothstep", "#6b7280", False, None),
    ConnectionType.OPTIONAL: ("step", "#9ca3af", False, "5,5"),
    ConnectionType.RECOMMENDED: ("smoothstep", "#8b5cf6", True, None),
}


def node_to_flow_node(
    node: RoadmapNode, post_count: int = 0, is_completed: bool = False
) -> FlowNode:
    """Map one node onto a canvas node."""
    flow_node = FlowNode(
        id=node.id,
        type=CONTAINER_NODE_TYPE if node.is_container else ROADMAP_NODE_TYPE,
        position=XYPosition(x=node.position_x, y=node.position_y),
        data=FlowNodeData(
            label=node.title,
            description=node.description,
            node_type=node.node_type,
            color=node.color,
            accent=NODE_COLOR_ACCENTS.get(node.color, NODE_COLOR_ACCENTS[FALLBACK_NODE_COLOR]),
            icon=node.icon,
            is_optional=node.is_optional,
            is_recommended=node.is_recommended,
            is_container=node.is_container,
            is_completed=is_completed,
            post_count=post_count,
            width=node.width,
            height=node.height,
        ),
    )

    if node.is_container:
        flow_node.style = FlowNodeStyle(width=node.width, height=node.height)
        flow_node.drag_handle = CONTAINER_DRAG_HANDLE

    if node.parent_id:
        flow_node.parent_node = node.parent_id
        flow_node.extent = "parent"
        flow_node.expand_parent = True

    return flow_node


def connection_to_flow_edge(connection: NodeConnection) -> FlowEdge:
    """Map one connection onto a styled canvas edge."""
    routing, stroke, animated, dasharray = EDGE_STYLES[connection.connection_type]
    return FlowEdge(
        id=connection.id,
        source=connection.from_node_id,
        target=connection.to_node_id,
        type=routing,
        animated=animated,
        style=EdgeStyle(
            stroke=stroke,
            stroke_width=EDGE_STROKE_WIDTH,
            stroke_dasharray=dasharray,
        ),
        label=connection.label,
        data=FlowEdgeData(connection_type=connection.connection_type),
    )


def containment_depths(nodes: Sequence[RoadmapNode]) -> dict[str, int]:
    """Depth of every node below the top level (top-level nodes are 0).

    A parent outside ``nodes`` counts as the top level. A malformed parent
    cycle is cut where it closes, so every node still gets a finite depth.
    """
    parents = {node.id: node.parent_id for node in nodes}
    depths: dict[str, int] = {}

    for node in nodes:
        chain: list[str] = []
        on_chain: set[str] = set()
        current: str | None = node.id
        base = 0
        while current is not None and current in parents:
            if current in depths:
                base = depths[current] + 1
                break
            if current in on_chain:
                break
            chain.append(current)
            on_chain.add(current)
            current = parents[current]
        for offset, node_id in enumerate(reversed(chain)):
            depths[node_id] = base + offset
    return depths


def order_for_render(nodes: Iterable[RoadmapNode]) -> list[RoadmapNode]:
    """Order nodes so each parent precedes all of its descendants.

    Stable sort on (depth, containers first, order_index):
    top-level containers first, then top-level nodes, then each deeper
    level in turn. Equal keys keep their input order.
    """
    items = list(nodes)
    depths = containment_depths(items)
    return sorted(
        items,
        key=lambda node: (depths[node.id], 0 if node.is_container else 1, node.order_index),
    )


def build_flow_nodes(
    nodes: Iterable[RoadmapNode],
    post_counts: Mapping[str, int] | None = None,
    completed: Collection[str] = frozenset(),
) -> list[FlowNode]:
    """Render-ordered canvas nodes with post counts and completion flags."""
    post_counts = post_counts or {}
    return [
        node_to_flow_node(node, post_counts.get(node.id, 0), node.id in completed)
        for node in order_for_render(nodes)
    ]


def build_flow_edges(connections: Iterable[NodeConnection]) -> list[FlowEdge]:
    return [connection_to_flow_edge(connection) for connection in connections]
