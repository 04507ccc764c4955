"""Builders for in-memory entities."""

from learnpath.schemas.roadmap import NodeConnection, RoadmapNode


def make_node(node_id: str, roadmap_id: str = "r1", **fields) -> RoadmapNode:
    fields.setdefault("title", node_id.upper())
    return RoadmapNode(id=node_id, roadmap_id=roadmap_id, **fields)


def make_container(node_id: str, roadmap_id: str = "r1", **fields) -> RoadmapNode:
    fields.setdefault("width", 300)
    fields.setdefault("height", 200)
    return make_node(node_id, roadmap_id, is_container=True, **fields)


def make_connection(connection_id: str, source: str, target: str, **fields) -> NodeConnection:
    return NodeConnection(id=connection_id, from_node_id=source, to_node_id=target, **fields)
