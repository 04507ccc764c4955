"""Roadmap graph store.

One ``RoadmapGraphStore`` holds the graph a viewer or editor is working on:
the roadmap list, the current roadmap with its nodes, connections and linked
posts, and the active progress viewer. Every mutation awaits its storage
write first and touches in-memory state only after the write committed; a
failed write leaves state exactly as it was and records ``error``.
"""

from sqlalchemy.exc import SQLAlchemyError

from learnpath.core.auth import ANONYMOUS_VIEWER, normalize_viewer_key
from learnpath.core.config import get_settings
from learnpath.core.database import SessionFactory, get_db_session
from learnpath.core.exceptions import (
    ConnectionNotFoundError,
    GraphIntegrityError,
    NodeNotFoundError,
    RoadmapNotFoundError,
)
from learnpath.core.logging import get_logger
from learnpath.models import Roadmap as RoadmapRow
from learnpath.schemas.flow import FlowEdge, FlowNode, FlowView
from learnpath.schemas.roadmap import (
    ConnectionCreate,
    ConnectionUpdate,
    ExternalPost,
    NodeConnection,
    NodeCreate,
    NodeUpdate,
    ProgressSummary,
    Roadmap,
    RoadmapCreate,
    RoadmapGraph,
    RoadmapNode,
    RoadmapUpdate,
)
from learnpath.services import post_service, roadmap_service
from learnpath.services.flow_builder import build_flow_edges, build_flow_nodes
from learnpath.services.graph_model import (
    transform_connection,
    transform_node,
    transform_post,
    transform_roadmap,
)
from learnpath.services.progress_tracker import ProgressTracker

logger = get_logger(__name__)

# Failures recorded on the store instead of raised.
STORE_ERRORS = (
    SQLAlchemyError,
    GraphIntegrityError,
    NodeNotFoundError,
    ConnectionNotFoundError,
)


class RoadmapGraphStore:
    """In-memory roadmap graph kept consistent with confirmed writes."""

    def __init__(
        self,
        tracker: ProgressTracker,
        session_factory: SessionFactory | None = None,
        viewer_key: str = ANONYMOUS_VIEWER,
    ) -> None:
        self._tracker = tracker
        self._session_factory = session_factory
        self._settings = get_settings()

        self.roadmaps: list[Roadmap] = []
        self.current_roadmap: Roadmap | None = None
        self.nodes: list[RoadmapNode] = []
        self.connections: list[NodeConnection] = []
        self.node_posts: dict[str, list[ExternalPost]] = {}
        self.is_loading = False
        self.error: str | None = None
        self.last_exception: Exception | None = None

        self.viewer_key = normalize_viewer_key(viewer_key)
        self._tracker.load(self.viewer_key)

    def _session(self):
        return get_db_session(self._session_factory)

    def _fail(self, action: str, exc: Exception, **fields: object) -> None:
        self.error = str(exc)
        self.last_exception = exc
        logger.error(f"Error {action}", error=str(exc), **fields)

    def _clear_error(self) -> None:
        self.error = None
        self.last_exception = None

    def _to_post(self, row) -> ExternalPost:
        return transform_post(
            row,
            default_author=self._settings.DEFAULT_POST_AUTHOR,
            default_read_time=self._settings.DEFAULT_READ_TIME,
        )

    def get_node(self, node_id: str) -> RoadmapNode | None:
        return next((n for n in self.nodes if n.id == node_id), None)

    # ========================================================================
    # Fetch
    # ========================================================================

    async def fetch_roadmaps(self, published_only: bool = False) -> list[Roadmap]:
        """Load the roadmap list, newest first."""
        self.is_loading = True
        self._clear_error()
        try:
            async with self._session() as db:
                rows = await roadmap_service.list_roadmaps(db, published_only=published_only)
        except SQLAlchemyError as exc:
            self._fail("fetching roadmaps", exc)
            return self.roadmaps
        finally:
            self.is_loading = False

        self.roadmaps = [transform_roadmap(row) for row in rows]
        return self.roadmaps

    async def fetch_roadmap_by_slug(self, slug: str) -> RoadmapGraph | None:
        """Load a roadmap and its whole graph by slug.

        Raises:
            RoadmapNotFoundError: if no roadmap has this slug.
        """
        return await self._fetch_graph(slug, field="slug")

    async def fetch_roadmap_by_id(self, roadmap_id: str) -> RoadmapGraph | None:
        """Load a roadmap and its whole graph by id.

        Raises:
            RoadmapNotFoundError: if no roadmap has this id.
        """
        return await self._fetch_graph(roadmap_id, field="id")

    async def _fetch_graph(self, key: str, field: str) -> RoadmapGraph | None:
        self.is_loading = True
        self._clear_error()
        try:
            async with self._session() as db:
                if field == "slug":
                    row = await roadmap_service.get_roadmap_by_slug(db, key)
                else:
                    row = await roadmap_service.get_roadmap(db, key)
                if row is None:
                    raise RoadmapNotFoundError(key, field=field)
                graph = await self._load_graph(db, row)
        except RoadmapNotFoundError as exc:
            self._fail("fetching roadmap", exc, **{field: key})
            raise
        except SQLAlchemyError as exc:
            self._fail("fetching roadmap", exc, **{field: key})
            return None
        finally:
            self.is_loading = False

        self.current_roadmap = graph.roadmap
        self.nodes = graph.nodes
        self.connections = graph.connections
        self.node_posts = graph.node_posts
        logger.info(
            "Roadmap loaded",
            roadmap_id=graph.roadmap.id,
            nodes=len(graph.nodes),
            connections=len(graph.connections),
        )
        return graph

    async def _load_graph(self, db, row: RoadmapRow) -> RoadmapGraph:
        roadmap = transform_roadmap(row)
        nodes = [transform_node(n) for n in await roadmap_service.list_nodes(db, roadmap.id)]
        node_ids = [n.id for n in nodes]
        connections = [
            transform_connection(c)
            for c in await roadmap_service.list_connections_from(db, node_ids)
        ]

        node_posts: dict[str, list[ExternalPost]] = {}
        for link, post in await roadmap_service.list_node_posts(db, node_ids):
            node_posts.setdefault(link.node_id, []).append(self._to_post(post))

        return RoadmapGraph(
            roadmap=roadmap,
            nodes=nodes,
            connections=connections,
            node_posts=node_posts,
        )

    # ========================================================================
    # Roadmaps
    # ========================================================================

    async def create_roadmap(self, data: RoadmapCreate) -> Roadmap | None:
        try:
            async with self._session() as db:
                row = await roadmap_service.insert_roadmap(db, data)
                roadmap = transform_roadmap(row)
        except SQLAlchemyError as exc:
            self._fail("creating roadmap", exc)
            return None

        self.roadmaps = [roadmap, *self.roadmaps]
        return roadmap

    async def update_roadmap(self, roadmap_id: str, patch: RoadmapUpdate) -> bool:
        """Apply a partial update; only fields present in ``patch`` change."""
        try:
            async with self._session() as db:
                await roadmap_service.update_roadmap(db, roadmap_id, patch.row_values())
        except SQLAlchemyError as exc:
            self._fail("updating roadmap", exc, roadmap_id=roadmap_id)
            return False

        changes = patch.changes()
        self.roadmaps = [
            r.model_copy(update=changes) if r.id == roadmap_id else r for r in self.roadmaps
        ]
        if self.current_roadmap is not None and self.current_roadmap.id == roadmap_id:
            self.current_roadmap = self.current_roadmap.model_copy(update=changes)
        return True

    async def delete_roadmap(self, roadmap_id: str) -> bool:
        """Delete a roadmap with its graph and purge its local progress."""
        try:
            async with self._session() as db:
                node_ids = await roadmap_service.delete_roadmap(db, roadmap_id)
        except SQLAlchemyError as exc:
            self._fail("deleting roadmap", exc, roadmap_id=roadmap_id)
            return False

        self.roadmaps = [r for r in self.roadmaps if r.id != roadmap_id]
        if self.current_roadmap is not None and self.current_roadmap.id == roadmap_id:
            self.current_roadmap = None
            self.nodes = []
            self.connections = []
            self.node_posts = {}
        self._tracker.purge_roadmap(roadmap_id, node_ids)
        return True

    # ========================================================================
    # Nodes
    # ========================================================================

    async def create_node(self, data: NodeCreate) -> RoadmapNode | None:
        try:
            async with self._session() as db:
                row = await roadmap_service.insert_node(db, data)
                node = transform_node(row)
        except STORE_ERRORS as exc:
            self._fail("creating node", exc, roadmap_id=data.roadmap_id)
            return None

        self.nodes = [*self.nodes, node]
        return node

    async def update_node(self, node_id: str, patch: NodeUpdate) -> bool:
        """Apply a partial update; only fields present in ``patch`` change."""
        try:
            async with self._session() as db:
                await roadmap_service.update_node(db, node_id, patch.row_values())
        except STORE_ERRORS as exc:
            self._fail("updating node", exc, node_id=node_id)
            return False

        changes = patch.changes()
        self.nodes = [n.model_copy(update=changes) if n.id == node_id else n for n in self.nodes]
        return True

    async def delete_node(self, node_id: str) -> bool:
        """Delete a node, its connections and post links; detach its children."""
        try:
            async with self._session() as db:
                child_ids = set(await roadmap_service.delete_node(db, node_id))
        except SQLAlchemyError as exc:
            self._fail("deleting node", exc, node_id=node_id)
            return False

        # Children known only in memory are detached as well.
        child_ids.update(n.id for n in self.nodes if n.parent_id == node_id)
        self.nodes = [
            n.model_copy(update={"parent_id": None}) if n.id in child_ids else n
            for n in self.nodes
            if n.id != node_id
        ]
        self.connections = [
            c for c in self.connections if c.from_node_id != node_id and c.to_node_id != node_id
        ]
        self.node_posts = {k: v for k, v in self.node_posts.items() if k != node_id}
        return True

    # ========================================================================
    # Connections
    # ========================================================================

    async def create_connection(self, data: ConnectionCreate) -> NodeConnection | None:
        try:
            async with self._session() as db:
                row = await roadmap_service.insert_connection(db, data)
                connection = transform_connection(row)
        except STORE_ERRORS as exc:
            self._fail(
                "creating connection",
                exc,
                from_node_id=data.from_node_id,
                to_node_id=data.to_node_id,
            )
            return None

        self.connections = [*self.connections, connection]
        return connection

    async def update_connection(self, connection_id: str, patch: ConnectionUpdate) -> bool:
        try:
            async with self._session() as db:
                await roadmap_service.update_connection(db, connection_id, patch.row_values())
        except STORE_ERRORS as exc:
            self._fail("updating connection", exc, connection_id=connection_id)
            return False

        changes = patch.changes()
        self.connections = [
            c.model_copy(update=changes) if c.id == connection_id else c
            for c in self.connections
        ]
        return True

    async def delete_connection(self, connection_id: str) -> bool:
        try:
            async with self._session() as db:
                await roadmap_service.delete_connection(db, connection_id)
        except SQLAlchemyError as exc:
            self._fail("deleting connection", exc, connection_id=connection_id)
            return False

        self.connections = [c for c in self.connections if c.id != connection_id]
        return True

    # ========================================================================
    # Node posts
    # ========================================================================

    async def link_post_to_node(self, node_id: str, post_id: str) -> bool:
        try:
            async with self._session() as db:
                _, post_row = await roadmap_service.insert_node_post(db, node_id, post_id)
                post = self._to_post(post_row)
        except STORE_ERRORS as exc:
            self._fail("linking post", exc, node_id=node_id, post_id=post_id)
            return False

        self.node_posts = {
            **self.node_posts,
            node_id: [*self.node_posts.get(node_id, []), post],
        }
        logger.info("Post linked", node_id=node_id, post_id=post_id)
        return True

    async def unlink_post_from_node(self, node_id: str, post_id: str) -> bool:
        try:
            async with self._session() as db:
                await roadmap_service.delete_node_posts(db, node_id, post_id)
        except SQLAlchemyError as exc:
            self._fail("unlinking post", exc, node_id=node_id, post_id=post_id)
            return False

        self.node_posts = {
            **self.node_posts,
            node_id: [p for p in self.node_posts.get(node_id, []) if p.id != post_id],
        }
        logger.info("Post unlinked", node_id=node_id, post_id=post_id)
        return True

    async def list_linkable_posts(self) -> list[ExternalPost]:
        """Published posts an editor may link to a node."""
        try:
            async with self._session() as db:
                rows = await post_service.list_published_posts(db)
                posts = [self._to_post(row) for row in rows]
        except SQLAlchemyError as exc:
            self._fail("listing posts", exc)
            return []
        return posts

    def get_node_posts(self, node_id: str) -> list[ExternalPost]:
        return list(self.node_posts.get(node_id, []))

    # ========================================================================
    # Progress
    # ========================================================================

    def switch_viewer(self, viewer_key: str | None) -> None:
        """Swap the active completion set to another viewer identity."""
        self.viewer_key = normalize_viewer_key(viewer_key)
        self._tracker.switch_viewer(self.viewer_key)

    def _roadmap_node_ids(self, roadmap_id: str) -> list[str]:
        return [n.id for n in self.nodes if n.roadmap_id == roadmap_id]

    def toggle_node_completed(self, node_id: str) -> bool:
        """Flip completion of a node for the active viewer.

        Returns:
            True if the node is now completed.
        """
        node = self.get_node(node_id)
        if node is not None:
            roadmap_id = node.roadmap_id
        elif self.current_roadmap is not None:
            roadmap_id = self.current_roadmap.id
        else:
            logger.warning("Cannot toggle node outside a loaded roadmap", node_id=node_id)
            return False
        return self._tracker.toggle(
            self.viewer_key, node_id, roadmap_id, self._roadmap_node_ids(roadmap_id)
        )

    def is_node_completed(self, node_id: str) -> bool:
        return self._tracker.is_completed(self.viewer_key, node_id)

    def get_progress(self, roadmap_id: str) -> ProgressSummary:
        return self._tracker.get_progress(self.viewer_key, roadmap_id, self.nodes)

    def reset_progress(self, roadmap_id: str) -> None:
        self._tracker.reset(self.viewer_key, roadmap_id, self._roadmap_node_ids(roadmap_id))

    # ========================================================================
    # Render surface
    # ========================================================================

    def get_flow_nodes(self) -> list[FlowNode]:
        """Canvas nodes, every container ahead of the nodes it contains."""
        post_counts = {node_id: len(posts) for node_id, posts in self.node_posts.items()}
        return build_flow_nodes(
            self.nodes,
            post_counts=post_counts,
            completed=self._tracker.completed_nodes(self.viewer_key),
        )

    def get_flow_edges(self) -> list[FlowEdge]:
        return build_flow_edges(self.connections)

    def get_flow_view(self) -> FlowView | None:
        if self.current_roadmap is None:
            return None
        return FlowView(
            roadmap_id=self.current_roadmap.id,
            nodes=self.get_flow_nodes(),
            edges=self.get_flow_edges(),
            progress=self.get_progress(self.current_roadmap.id),
        )
