"""Row to entity transforms and graph integrity checks.

Pure functions: no I/O, no session access. Storage rows arrive as ORM
instances (snake_case columns, free-form strings); entities leave with
closed enums and ``None`` for absent optionals.
"""

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import TypeVar

from learnpath.core.exceptions import GraphIntegrityError
from learnpath.core.logging import get_logger
from learnpath.models import NodeConnection as NodeConnectionRow
from learnpath.models import NodePost as NodePostRow
from learnpath.models import Post as PostRow
from learnpath.models import Roadmap as RoadmapRow
from learnpath.models import RoadmapNode as RoadmapNodeRow
from learnpath.schemas.roadmap import (
    ConnectionType,
    ExternalPost,
    NodeColor,
    NodeConnection,
    NodePost,
    NodeType,
    PostStatus,
    Roadmap,
    RoadmapNode,
)

logger = get_logger(__name__)

E = TypeVar("E", bound=Enum)

# Single fallback per enum, used when storage holds a value outside the set.
FALLBACK_NODE_TYPE = NodeType.TOPIC
FALLBACK_NODE_COLOR = NodeColor.YELLOW
FALLBACK_CONNECTION_TYPE = ConnectionType.DEFAULT

# Accent colour per palette key; every NodeColor member has an entry.
NODE_COLOR_ACCENTS: dict[NodeColor, str] = {
    NodeColor.YELLOW: "#facc15",
    NodeColor.PURPLE: "#a855f7",
    NodeColor.GRAY: "#9ca3af",
    NodeColor.GREEN: "#22c55e",
    NodeColor.BLUE: "#3b82f6",
    NodeColor.ORANGE: "#f97316",
}


def narrow_enum(enum_cls: type[E], value: str | None, fallback: E) -> E:
    """Coerce a stored string into ``enum_cls``, using ``fallback`` on a miss."""
    if value is None:
        return fallback
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning(
            "Unknown enum value in storage",
            enum=enum_cls.__name__,
            value=value,
            fallback=fallback.value,
        )
        return fallback


def _blank_to_none(value: str | None) -> str | None:
    return value or None


def transform_roadmap(row: RoadmapRow) -> Roadmap:
    return Roadmap(
        id=row.id,
        title=row.title,
        slug=row.slug,
        description=_blank_to_none(row.description),
        icon=_blank_to_none(row.icon),
        is_published=bool(row.is_published),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def transform_node(row: RoadmapNodeRow) -> RoadmapNode:
    return RoadmapNode(
        id=row.id,
        title=row.title,
        description=_blank_to_none(row.description),
        node_type=narrow_enum(NodeType, row.node_type, FALLBACK_NODE_TYPE),
        color=narrow_enum(NodeColor, row.color, FALLBACK_NODE_COLOR),
        icon=_blank_to_none(row.icon),
        position_x=row.position_x,
        position_y=row.position_y,
        width=row.width,
        height=row.height,
        parent_id=_blank_to_none(row.parent_id),
        roadmap_id=row.roadmap_id,
        order_index=row.order_index,
        is_optional=bool(row.is_optional),
        is_recommended=bool(row.is_recommended),
        is_container=bool(row.is_container),
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def transform_connection(row: NodeConnectionRow) -> NodeConnection:
    return NodeConnection(
        id=row.id,
        from_node_id=row.from_node_id,
        to_node_id=row.to_node_id,
        connection_type=narrow_enum(
            ConnectionType, row.connection_type, FALLBACK_CONNECTION_TYPE
        ),
        label=_blank_to_none(row.label),
        created_at=row.created_at,
    )


def transform_node_post(row: NodePostRow) -> NodePost:
    return NodePost(
        id=row.id,
        node_id=row.node_id,
        post_id=row.post_id,
        order_index=row.order_index,
    )


def transform_post(
    row: PostRow, default_author: str | None = None, default_read_time: int | None = None
) -> ExternalPost:
    """Build the read-only post view, filling author/read time defaults."""
    return ExternalPost(
        id=row.id,
        title=row.title,
        slug=row.slug,
        excerpt=_blank_to_none(row.excerpt),
        status=narrow_enum(PostStatus, row.status, PostStatus.DRAFT),
        read_time=row.read_time or default_read_time,
        author=row.author or default_author,
        category_id=_blank_to_none(row.category_id),
        published_at=row.published_at,
    )


# ============================================================================
# Integrity checks
# ============================================================================


def check_parent(
    nodes: Mapping[str, RoadmapNode],
    *,
    node_id: str | None,
    parent_id: str,
    roadmap_id: str,
) -> None:
    """Validate that ``parent_id`` may contain the node ``node_id``.

    Args:
        nodes: Every node of the roadmap, keyed by id
        node_id: The node being placed (None for a node not yet created)
        parent_id: Proposed parent
        roadmap_id: Roadmap the node belongs to

    Raises:
        GraphIntegrityError: if the parent is missing, is not a container,
            belongs to another roadmap, is the node itself, or is one of the
            node's descendants.
    """
    if node_id is not None and parent_id == node_id:
        raise GraphIntegrityError(f"Node {node_id} cannot be its own parent")

    parent = nodes.get(parent_id)
    if parent is None:
        raise GraphIntegrityError(f"Parent node {parent_id} not found")
    if parent.roadmap_id != roadmap_id:
        raise GraphIntegrityError(f"Parent node {parent_id} belongs to another roadmap")
    if not parent.is_container:
        raise GraphIntegrityError(f"Parent node {parent_id} is not a container")

    if node_id is None:
        return

    seen: set[str] = set()
    current: RoadmapNode | None = parent
    while current is not None and current.parent_id is not None:
        if current.parent_id == node_id:
            raise GraphIntegrityError(
                f"Placing node {node_id} inside {parent_id} would create a cycle"
            )
        if current.id in seen:
            break
        seen.add(current.id)
        current = nodes.get(current.parent_id)


def check_container_flag(nodes: Iterable[RoadmapNode], node_id: str) -> None:
    """A node that still has children must remain a container."""
    children = [n.id for n in nodes if n.parent_id == node_id]
    if children:
        raise GraphIntegrityError(
            f"Node {node_id} still contains {len(children)} node(s) and must stay a container"
        )


def descendant_ids(nodes: Iterable[RoadmapNode], node_id: str) -> set[str]:
    """Ids of every node nested (at any depth) inside ``node_id``."""
    children: dict[str, list[str]] = {}
    for node in nodes:
        if node.parent_id is not None:
            children.setdefault(node.parent_id, []).append(node.id)

    found: set[str] = set()
    stack = list(children.get(node_id, []))
    while stack:
        current = stack.pop()
        if current in found:
            continue
        found.add(current)
        stack.extend(children.get(current, []))
    return found
