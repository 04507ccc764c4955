"""Editor interaction controller over the graph store.

Canvas events come in here: clicks drive the selection state machine,
drag and resize gestures are committed once when they end, and a connect
drag creates a default connection.
"""

import random
from dataclasses import dataclass
from enum import Enum

from learnpath.core.exceptions import InvalidTransitionError
from learnpath.core.logging import get_logger
from learnpath.schemas.roadmap import (
    ConnectionCreate,
    ConnectionType,
    ExternalPost,
    NodeConnection,
    NodeCreate,
    NodeType,
    NodeUpdate,
    RoadmapNode,
)
from learnpath.services.graph_model import descendant_ids
from learnpath.services.graph_store import RoadmapGraphStore
from learnpath.services.roadmap_service import CONTAINER_SIZE, NODE_SIZE

logger = get_logger(__name__)


class SelectionState(str, Enum):
    NONE = "none"
    SELECTED = "selected"  # a node is selected
    EDITING = "editing"  # property form open for the selected node
    EDGE_SELECTED = "edge_selected"


@dataclass
class EditorSelection:
    """What the editor canvas currently has selected."""

    state: SelectionState = SelectionState.NONE
    node_id: str | None = None
    edge_id: str | None = None

    def click_node(self, node_id: str) -> None:
        self.state = SelectionState.SELECTED
        self.node_id = node_id
        self.edge_id = None

    def open_editor(self) -> None:
        if self.state is not SelectionState.SELECTED:
            raise InvalidTransitionError(f"Cannot open the node form from '{self.state.value}'")
        self.state = SelectionState.EDITING

    def click_edge(self, edge_id: str) -> None:
        self.state = SelectionState.EDGE_SELECTED
        self.node_id = None
        self.edge_id = edge_id

    def clear(self) -> None:
        self.state = SelectionState.NONE
        self.node_id = None
        self.edge_id = None

    @property
    def has_node(self) -> bool:
        return self.state in (SelectionState.SELECTED, SelectionState.EDITING)


class RoadmapEditor:
    """Thin controller translating canvas gestures into store calls."""

    def __init__(self, store: RoadmapGraphStore, rng: random.Random | None = None) -> None:
        self.store = store
        self.selection = EditorSelection()
        self._rng = rng or random.Random()

    @property
    def selected_node(self) -> RoadmapNode | None:
        if not self.selection.has_node or self.selection.node_id is None:
            return None
        return self.store.get_node(self.selection.node_id)

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def click_node(self, node_id: str, open_form: bool = True) -> RoadmapNode | None:
        """Select a node and, by default, open its property form."""
        node = self.store.get_node(node_id)
        if node is None:
            logger.warning("Clicked node is not loaded", node_id=node_id)
            return None
        self.selection.click_node(node_id)
        if open_form:
            self.selection.open_editor()
        return node

    def click_edge(self, edge_id: str) -> None:
        self.selection.click_edge(edge_id)

    def click_pane(self) -> None:
        self.selection.clear()

    # ------------------------------------------------------------------
    # Gestures
    # ------------------------------------------------------------------

    async def add_node(
        self, node_type: NodeType = NodeType.TOPIC, is_container: bool = False
    ) -> RoadmapNode | None:
        """Drop a new node near the top-left of the canvas."""
        roadmap = self.store.current_roadmap
        if roadmap is None:
            return None
        width, height = CONTAINER_SIZE if is_container else NODE_SIZE
        return await self.store.create_node(
            NodeCreate(
                roadmap_id=roadmap.id,
                title="New Group" if is_container else f"New {node_type.value}",
                node_type=node_type,
                position_x=250 + self._rng.random() * 100,
                position_y=100 + self._rng.random() * 100,
                width=width,
                height=height,
                is_container=is_container,
            )
        )

    async def on_node_moved(self, node_id: str, x: float, y: float, dragging: bool) -> bool:
        """Persist a node position once the drag gesture has ended."""
        if dragging:
            return False
        return await self.store.update_node(node_id, NodeUpdate(position_x=x, position_y=y))

    async def on_node_resized(
        self, node_id: str, width: float, height: float, resizing: bool
    ) -> bool:
        """Persist a node size once the resize gesture has ended."""
        if resizing:
            return False
        return await self.store.update_node(node_id, NodeUpdate(width=width, height=height))

    async def on_connect(self, source: str | None, target: str | None) -> NodeConnection | None:
        if not source or not target:
            return None
        return await self.store.create_connection(
            ConnectionCreate(
                from_node_id=source,
                to_node_id=target,
                connection_type=ConnectionType.DEFAULT,
            )
        )

    # ------------------------------------------------------------------
    # Property panel
    # ------------------------------------------------------------------

    async def save_selected(self, form: NodeUpdate) -> bool:
        if self.selection.state is not SelectionState.EDITING or self.selection.node_id is None:
            raise InvalidTransitionError("No node form is open")
        return await self.store.update_node(self.selection.node_id, form)

    async def delete_selected(self) -> bool:
        """Delete the selected node or edge and clear the selection."""
        if self.selection.has_node and self.selection.node_id is not None:
            deleted = await self.store.delete_node(self.selection.node_id)
        elif self.selection.state is SelectionState.EDGE_SELECTED and self.selection.edge_id:
            deleted = await self.store.delete_connection(self.selection.edge_id)
        else:
            raise InvalidTransitionError("Nothing is selected")
        if deleted:
            self.selection.clear()
        return deleted

    async def toggle_post(self, post_id: str) -> bool:
        """Link ``post_id`` to the selected node, or unlink it if already linked."""
        node = self.selected_node
        if node is None:
            raise InvalidTransitionError("No node is selected")
        linked = any(p.id == post_id for p in self.store.get_node_posts(node.id))
        if linked:
            return await self.store.unlink_post_from_node(node.id, post_id)
        return await self.store.link_post_to_node(node.id, post_id)

    def parent_candidates(self) -> list[RoadmapNode]:
        """Containers the selected node may be moved into."""
        node = self.selected_node
        excluded: set[str] = set()
        if node is not None:
            excluded = {node.id} | descendant_ids(self.store.nodes, node.id)
        return [n for n in self.store.nodes if n.is_container and n.id not in excluded]

    async def linkable_posts(self) -> list[ExternalPost]:
        return await self.store.list_linkable_posts()
