"""Storage operations for roadmaps, nodes, connections and node-post links.

Functions take an open ``AsyncSession`` and leave committing to the caller
(e.g. via ``get_db_session``). Writes validate graph invariants against the
stored rows before touching them.
"""

import re
import time
import unicodedata
from collections.abc import Sequence

from sqlalchemy import delete, or_, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.core.exceptions import (
    ConnectionNotFoundError,
    GraphIntegrityError,
    NodeNotFoundError,
)
from learnpath.core.logging import get_logger
from learnpath.models import NodeConnection, NodePost, Post, Roadmap, RoadmapNode
from learnpath.schemas.roadmap import (
    ConnectionCreate,
    ConnectionType,
    NodeColor,
    NodeCreate,
    NodeType,
    RoadmapCreate,
)
from learnpath.services.graph_model import (
    check_container_flag,
    check_parent,
    transform_node,
)

logger = get_logger(__name__)

NODE_SIZE = (200.0, 50.0)
CONTAINER_SIZE = (300.0, 200.0)


def fallback_slug() -> str:
    """Timestamp-derived slug used when neither slug nor title is usable."""
    return f"roadmap-{int(time.time() * 1000)}"


def slugify(title: str | None) -> str:
    """Lowercase, hyphen-separated ASCII slug for ``title``; may be empty."""
    if not title:
        return ""
    ascii_title = unicodedata.normalize("NFKD", title).encode("ascii", "ignore").decode()
    return re.sub(r"[^a-z0-9]+", "-", ascii_title.lower()).strip("-")


# ============================================================================
# Reads
# ============================================================================


async def list_roadmaps(db: AsyncSession, published_only: bool = False) -> list[Roadmap]:
    """List roadmaps, newest first."""
    stmt = select(Roadmap).order_by(Roadmap.created_at.desc())
    if published_only:
        stmt = stmt.where(Roadmap.is_published.is_(True))
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_roadmap(db: AsyncSession, roadmap_id: str) -> Roadmap | None:
    return await db.get(Roadmap, roadmap_id)


async def get_roadmap_by_slug(db: AsyncSession, slug: str) -> Roadmap | None:
    result = await db.execute(select(Roadmap).where(Roadmap.slug == slug))
    return result.scalar_one_or_none()


async def list_nodes(db: AsyncSession, roadmap_id: str) -> list[RoadmapNode]:
    """Nodes of a roadmap ordered by ``order_index``, then insertion."""
    result = await db.execute(
        select(RoadmapNode)
        .where(RoadmapNode.roadmap_id == roadmap_id)
        .order_by(RoadmapNode.order_index, RoadmapNode.created_at)
    )
    return list(result.scalars().all())


async def list_connections_from(
    db: AsyncSession, node_ids: Sequence[str]
) -> list[NodeConnection]:
    """Connections whose source node is one of ``node_ids``."""
    if not node_ids:
        return []
    result = await db.execute(
        select(NodeConnection)
        .where(NodeConnection.from_node_id.in_(node_ids))
        .order_by(NodeConnection.created_at)
    )
    return list(result.scalars().all())


async def list_node_posts(
    db: AsyncSession, node_ids: Sequence[str]
) -> list[tuple[NodePost, Post]]:
    """Node-post links joined with their posts; dangling links are skipped."""
    if not node_ids:
        return []
    result = await db.execute(
        select(NodePost, Post)
        .join(Post, Post.id == NodePost.post_id)
        .where(NodePost.node_id.in_(node_ids))
        .order_by(NodePost.order_index, NodePost.created_at)
    )
    return [(link, post) for link, post in result.all()]


# ============================================================================
# Roadmaps
# ============================================================================


async def insert_roadmap(db: AsyncSession, data: RoadmapCreate) -> Roadmap:
    roadmap = Roadmap(
        title=data.title or "New Roadmap",
        slug=data.slug or slugify(data.title) or fallback_slug(),
        description=data.description,
        icon=data.icon,
        is_published=data.is_published,
    )
    db.add(roadmap)
    await db.flush()
    await db.refresh(roadmap)
    logger.info("Roadmap inserted", roadmap_id=roadmap.id, slug=roadmap.slug)
    return roadmap


async def update_roadmap(db: AsyncSession, roadmap_id: str, values: dict) -> int:
    """Write the given columns; returns the number of rows touched."""
    if not values:
        return 0
    result = await db.execute(update(Roadmap).where(Roadmap.id == roadmap_id).values(**values))
    return result.rowcount


async def delete_roadmap(db: AsyncSession, roadmap_id: str) -> list[str]:
    """Delete a roadmap and everything hanging off its nodes.

    Returns:
        Ids of the deleted nodes.
    """
    result = await db.execute(select(RoadmapNode.id).where(RoadmapNode.roadmap_id == roadmap_id))
    deleted_ids = list(result.scalars().all())
    node_ids = select(RoadmapNode.id).where(RoadmapNode.roadmap_id == roadmap_id)
    await db.execute(delete(NodePost).where(NodePost.node_id.in_(node_ids)))
    await db.execute(
        delete(NodeConnection).where(
            or_(
                NodeConnection.from_node_id.in_(node_ids),
                NodeConnection.to_node_id.in_(node_ids),
            )
        )
    )
    await db.execute(
        update(RoadmapNode).where(RoadmapNode.roadmap_id == roadmap_id).values(parent_id=None)
    )
    await db.execute(delete(RoadmapNode).where(RoadmapNode.roadmap_id == roadmap_id))
    await db.execute(delete(Roadmap).where(Roadmap.id == roadmap_id))
    logger.info("Roadmap deleted", roadmap_id=roadmap_id, nodes=len(deleted_ids))
    return deleted_ids


# ============================================================================
# Nodes
# ============================================================================


async def _roadmap_nodes_by_id(db: AsyncSession, roadmap_id: str) -> dict:
    return {row.id: transform_node(row) for row in await list_nodes(db, roadmap_id)}


async def insert_node(db: AsyncSession, data: NodeCreate) -> RoadmapNode:
    """Insert a node, filling defaults for every absent attribute.

    Raises:
        GraphIntegrityError: if ``parent_id`` does not name a container of
            the same roadmap.
    """
    if data.parent_id is not None:
        nodes = await _roadmap_nodes_by_id(db, data.roadmap_id)
        check_parent(nodes, node_id=None, parent_id=data.parent_id, roadmap_id=data.roadmap_id)

    default_width, default_height = CONTAINER_SIZE if data.is_container else NODE_SIZE
    node = RoadmapNode(
        roadmap_id=data.roadmap_id,
        parent_id=data.parent_id,
        title=data.title or "New Node",
        description=data.description,
        node_type=(data.node_type or NodeType.TOPIC).value,
        color=(data.color or NodeColor.YELLOW).value,
        icon=data.icon,
        position_x=data.position_x if data.position_x is not None else 0,
        position_y=data.position_y if data.position_y is not None else 0,
        width=data.width if data.width is not None else default_width,
        height=data.height if data.height is not None else default_height,
        order_index=data.order_index if data.order_index is not None else 0,
        is_optional=data.is_optional,
        is_recommended=data.is_recommended,
        is_container=data.is_container,
    )
    db.add(node)
    await db.flush()
    await db.refresh(node)
    logger.info("Node inserted", node_id=node.id, roadmap_id=node.roadmap_id)
    return node


async def update_node(db: AsyncSession, node_id: str, values: dict) -> int:
    """Write the given columns of one node; returns rows touched.

    Raises:
        NodeNotFoundError: if no node has this id.
        GraphIntegrityError: if a new ``parent_id`` is invalid, or a node
            that still has children is turned into a plain node.
    """
    row = await db.get(RoadmapNode, node_id)
    if row is None:
        raise NodeNotFoundError(node_id)
    if not values:
        return 0

    needs_parent_check = values.get("parent_id") is not None
    needs_flag_check = values.get("is_container") is False
    if needs_parent_check or needs_flag_check:
        nodes = await _roadmap_nodes_by_id(db, row.roadmap_id)
        if needs_parent_check:
            check_parent(
                nodes,
                node_id=node_id,
                parent_id=values["parent_id"],
                roadmap_id=row.roadmap_id,
            )
        if needs_flag_check:
            check_container_flag(nodes.values(), node_id)

    result = await db.execute(
        update(RoadmapNode).where(RoadmapNode.id == node_id).values(**values)
    )
    return result.rowcount


async def delete_node(db: AsyncSession, node_id: str) -> list[str]:
    """Delete a node with its connections and post links.

    Children of a deleted container are moved to the top level.

    Returns:
        Ids of the detached children.
    """
    children = await db.execute(select(RoadmapNode.id).where(RoadmapNode.parent_id == node_id))
    child_ids = list(children.scalars().all())
    if child_ids:
        await db.execute(
            update(RoadmapNode).where(RoadmapNode.id.in_(child_ids)).values(parent_id=None)
        )

    await db.execute(
        delete(NodeConnection).where(
            or_(NodeConnection.from_node_id == node_id, NodeConnection.to_node_id == node_id)
        )
    )
    await db.execute(delete(NodePost).where(NodePost.node_id == node_id))
    await db.execute(delete(RoadmapNode).where(RoadmapNode.id == node_id))
    logger.info("Node deleted", node_id=node_id, detached_children=len(child_ids))
    return child_ids


# ============================================================================
# Connections
# ============================================================================


async def insert_connection(db: AsyncSession, data: ConnectionCreate) -> NodeConnection:
    """Insert a connection between two nodes of the same roadmap.

    Raises:
        GraphIntegrityError: if an endpoint is missing or the endpoints
            belong to different roadmaps.
    """
    source = await db.get(RoadmapNode, data.from_node_id)
    target = await db.get(RoadmapNode, data.to_node_id)
    if source is None or target is None:
        missing = data.from_node_id if source is None else data.to_node_id
        raise GraphIntegrityError(f"Connection endpoint {missing} not found")
    if source.roadmap_id != target.roadmap_id:
        raise GraphIntegrityError("Connection endpoints belong to different roadmaps")

    connection = NodeConnection(
        from_node_id=data.from_node_id,
        to_node_id=data.to_node_id,
        connection_type=(data.connection_type or ConnectionType.DEFAULT).value,
        label=data.label,
    )
    db.add(connection)
    await db.flush()
    await db.refresh(connection)
    logger.info(
        "Connection inserted",
        connection_id=connection.id,
        connection_type=connection.connection_type,
    )
    return connection


async def update_connection(db: AsyncSession, connection_id: str, values: dict) -> int:
    if await db.get(NodeConnection, connection_id) is None:
        raise ConnectionNotFoundError(connection_id)
    if not values:
        return 0
    result = await db.execute(
        update(NodeConnection).where(NodeConnection.id == connection_id).values(**values)
    )
    return result.rowcount


async def delete_connection(db: AsyncSession, connection_id: str) -> None:
    await db.execute(delete(NodeConnection).where(NodeConnection.id == connection_id))


# ============================================================================
# Node-post links
# ============================================================================


async def insert_node_post(
    db: AsyncSession, node_id: str, post_id: str, order_index: int = 0
) -> tuple[NodePost, Post]:
    """Link a post to a node. Existing links are not deduplicated.

    Raises:
        GraphIntegrityError: if the node or the post does not exist.
    """
    if await db.get(RoadmapNode, node_id) is None:
        raise GraphIntegrityError(f"Node {node_id} not found")
    post = await db.get(Post, post_id)
    if post is None:
        raise GraphIntegrityError(f"Post {post_id} not found")

    link = NodePost(node_id=node_id, post_id=post_id, order_index=order_index)
    db.add(link)
    await db.flush()
    await db.refresh(link)
    return link, post


async def delete_node_posts(db: AsyncSession, node_id: str, post_id: str) -> int:
    """Remove every link between ``node_id`` and ``post_id``."""
    result = await db.execute(
        delete(NodePost).where(NodePost.node_id == node_id, NodePost.post_id == post_id)
    )
    return result.rowcount
