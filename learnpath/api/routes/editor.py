"""Editor routes: roadmap, node, connection and post-link management."""

from fastapi import APIRouter, HTTPException, Response, status

from learnpath.api.deps import StoreDep, raise_for_store_error
from learnpath.core.exceptions import RoadmapNotFoundError
from learnpath.core.logging import get_logger
from learnpath.schemas import (
    ConnectionCreate,
    ConnectionUpdate,
    ExternalPost,
    NodeConnection,
    NodeCreate,
    NodePostLink,
    NodeUpdate,
    Roadmap,
    RoadmapCreate,
    RoadmapGraph,
    RoadmapNode,
    RoadmapUpdate,
)
from learnpath.services.graph_store import RoadmapGraphStore

logger = get_logger(__name__)
router = APIRouter(prefix="/editor", tags=["editor"])


async def _load(store: RoadmapGraphStore, roadmap_id: str) -> RoadmapGraph:
    try:
        graph = await store.fetch_roadmap_by_id(roadmap_id)
    except RoadmapNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Roadmap not found"
        ) from None
    raise_for_store_error(store)
    if graph is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load roadmap",
        )
    return graph


def _node_or_404(store: RoadmapGraphStore, node_id: str) -> RoadmapNode:
    node = store.get_node(node_id)
    if node is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Node not found")
    return node


def _connection_or_404(store: RoadmapGraphStore, connection_id: str) -> NodeConnection:
    connection = next((c for c in store.connections if c.id == connection_id), None)
    if connection is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Connection not found")
    return connection


# ============================================================================
# Roadmaps
# ============================================================================


@router.get("/roadmaps", response_model=list[Roadmap])
async def list_roadmaps(store: StoreDep) -> list[Roadmap]:
    """List every roadmap including drafts."""
    roadmaps = await store.fetch_roadmaps()
    raise_for_store_error(store)
    return roadmaps


@router.post("/roadmaps", response_model=Roadmap, status_code=status.HTTP_201_CREATED)
async def create_roadmap(data: RoadmapCreate, store: StoreDep) -> Roadmap:
    roadmap = await store.create_roadmap(data)
    raise_for_store_error(store)
    if roadmap is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create roadmap",
        )
    return roadmap


@router.get("/roadmaps/{roadmap_id}", response_model=RoadmapGraph)
async def get_roadmap(roadmap_id: str, store: StoreDep) -> RoadmapGraph:
    return await _load(store, roadmap_id)


@router.patch("/roadmaps/{roadmap_id}", response_model=Roadmap)
async def update_roadmap(roadmap_id: str, data: RoadmapUpdate, store: StoreDep) -> Roadmap:
    await _load(store, roadmap_id)
    await store.update_roadmap(roadmap_id, data)
    raise_for_store_error(store)
    if store.current_roadmap is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Roadmap not found")
    return store.current_roadmap


@router.delete("/roadmaps/{roadmap_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_roadmap(roadmap_id: str, store: StoreDep) -> Response:
    await _load(store, roadmap_id)
    await store.delete_roadmap(roadmap_id)
    raise_for_store_error(store)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Nodes
# ============================================================================


@router.post(
    "/roadmaps/{roadmap_id}/nodes",
    response_model=RoadmapNode,
    status_code=status.HTTP_201_CREATED,
)
async def create_node(roadmap_id: str, data: NodeCreate, store: StoreDep) -> RoadmapNode:
    await _load(store, roadmap_id)
    if data.roadmap_id != roadmap_id:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="roadmapId does not match the URL",
        )
    node = await store.create_node(data)
    raise_for_store_error(store)
    if node is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create node",
        )
    return node


@router.patch("/roadmaps/{roadmap_id}/nodes/{node_id}", response_model=RoadmapNode)
async def update_node(
    roadmap_id: str, node_id: str, data: NodeUpdate, store: StoreDep
) -> RoadmapNode:
    """Partially update a node; fields absent from the body are untouched."""
    await _load(store, roadmap_id)
    _node_or_404(store, node_id)
    await store.update_node(node_id, data)
    raise_for_store_error(store)
    return _node_or_404(store, node_id)


@router.delete(
    "/roadmaps/{roadmap_id}/nodes/{node_id}", status_code=status.HTTP_204_NO_CONTENT
)
async def delete_node(roadmap_id: str, node_id: str, store: StoreDep) -> Response:
    await _load(store, roadmap_id)
    _node_or_404(store, node_id)
    await store.delete_node(node_id)
    raise_for_store_error(store)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Connections
# ============================================================================


@router.post(
    "/roadmaps/{roadmap_id}/connections",
    response_model=NodeConnection,
    status_code=status.HTTP_201_CREATED,
)
async def create_connection(
    roadmap_id: str, data: ConnectionCreate, store: StoreDep
) -> NodeConnection:
    await _load(store, roadmap_id)
    if store.get_node(data.from_node_id) is None or store.get_node(data.to_node_id) is None:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Connection endpoints must be nodes of this roadmap",
        )
    connection = await store.create_connection(data)
    raise_for_store_error(store)
    if connection is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create connection",
        )
    return connection


@router.patch(
    "/roadmaps/{roadmap_id}/connections/{connection_id}", response_model=NodeConnection
)
async def update_connection(
    roadmap_id: str, connection_id: str, data: ConnectionUpdate, store: StoreDep
) -> NodeConnection:
    await _load(store, roadmap_id)
    _connection_or_404(store, connection_id)
    await store.update_connection(connection_id, data)
    raise_for_store_error(store)
    return _connection_or_404(store, connection_id)


@router.delete(
    "/roadmaps/{roadmap_id}/connections/{connection_id}",
    status_code=status.HTTP_204_NO_CONTENT,
)
async def delete_connection(roadmap_id: str, connection_id: str, store: StoreDep) -> Response:
    await _load(store, roadmap_id)
    _connection_or_404(store, connection_id)
    await store.delete_connection(connection_id)
    raise_for_store_error(store)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ============================================================================
# Post links
# ============================================================================


@router.get("/posts", response_model=list[ExternalPost])
async def list_linkable_posts(store: StoreDep) -> list[ExternalPost]:
    """Published posts available for linking."""
    posts = await store.list_linkable_posts()
    raise_for_store_error(store)
    return posts


@router.post(
    "/roadmaps/{roadmap_id}/nodes/{node_id}/posts",
    response_model=list[ExternalPost],
    status_code=status.HTTP_201_CREATED,
)
async def link_post(
    roadmap_id: str, node_id: str, data: NodePostLink, store: StoreDep
) -> list[ExternalPost]:
    await _load(store, roadmap_id)
    _node_or_404(store, node_id)
    await store.link_post_to_node(node_id, data.post_id)
    raise_for_store_error(store)
    return store.get_node_posts(node_id)


@router.delete(
    "/roadmaps/{roadmap_id}/nodes/{node_id}/posts/{post_id}",
    response_model=list[ExternalPost],
)
async def unlink_post(
    roadmap_id: str, node_id: str, post_id: str, store: StoreDep
) -> list[ExternalPost]:
    await _load(store, roadmap_id)
    _node_or_404(store, node_id)
    await store.unlink_post_from_node(node_id, post_id)
    raise_for_store_error(store)
    return store.get_node_posts(node_id)
