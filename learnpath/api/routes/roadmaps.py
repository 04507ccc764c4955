"""Public roadmap routes: published roadmaps, flow view and viewer progress."""

from fastapi import APIRouter, HTTPException, status

from learnpath.api.deps import StoreDep, raise_for_store_error
from learnpath.core.exceptions import RoadmapNotFoundError
from learnpath.core.logging import get_logger
from learnpath.schemas import ExternalPost, FlowView, ProgressSummary, Roadmap
from learnpath.services.graph_store import RoadmapGraphStore

logger = get_logger(__name__)
router = APIRouter(prefix="/roadmaps", tags=["roadmaps"])


async def _load_published(store: RoadmapGraphStore, slug: str) -> Roadmap:
    """Load a roadmap by slug; drafts are reported as missing."""
    try:
        graph = await store.fetch_roadmap_by_slug(slug)
    except RoadmapNotFoundError:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND, detail="Roadmap not found"
        ) from None
    raise_for_store_error(store)
    if graph is None or not graph.roadmap.is_published:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Roadmap not found")
    return graph.roadmap


@router.get("", response_model=list[Roadmap])
async def list_roadmaps(store: StoreDep) -> list[Roadmap]:
    """List published roadmaps, newest first."""
    roadmaps = await store.fetch_roadmaps(published_only=True)
    raise_for_store_error(store)
    return roadmaps


@router.get("/{slug}", response_model=Roadmap)
async def get_roadmap(slug: str, store: StoreDep) -> Roadmap:
    return await _load_published(store, slug)


@router.get("/{slug}/flow", response_model=FlowView, response_model_exclude_none=True)
async def get_roadmap_flow(slug: str, store: StoreDep) -> FlowView:
    """Canvas nodes and edges plus the viewer's progress."""
    await _load_published(store, slug)
    view = store.get_flow_view()
    if view is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Roadmap not found")
    return view


@router.get("/{slug}/nodes/{node_id}/posts", response_model=list[ExternalPost])
async def get_node_posts(slug: str, node_id: str, store: StoreDep) -> list[ExternalPost]:
    await _load_published(store, slug)
    if store.get_node(node_id) is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Node not found")
    return store.get_node_posts(node_id)


@router.get("/{slug}/progress", response_model=ProgressSummary)
async def get_progress(slug: str, store: StoreDep) -> ProgressSummary:
    roadmap = await _load_published(store, slug)
    return store.get_progress(roadmap.id)


@router.post("/{slug}/progress/{node_id}", response_model=ProgressSummary)
async def toggle_node_completed(slug: str, node_id: str, store: StoreDep) -> ProgressSummary:
    """Flip completion of a node for the requesting viewer."""
    roadmap = await _load_published(store, slug)
    node = store.get_node(node_id)
    if node is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Node not found")
    if node.is_container:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail="Container nodes cannot be completed",
        )
    completed = store.toggle_node_completed(node_id)
    logger.info("Node completion toggled", node_id=node_id, completed=completed)
    return store.get_progress(roadmap.id)


@router.delete("/{slug}/progress", response_model=ProgressSummary)
async def reset_progress(slug: str, store: StoreDep) -> ProgressSummary:
    roadmap = await _load_published(store, slug)
    store.reset_progress(roadmap.id)
    return store.get_progress(roadmap.id)
