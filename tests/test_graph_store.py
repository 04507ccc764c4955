"""Tests for RoadmapGraphStore against an in-memory database."""

import pytest
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from learnpath.core.database import get_db_session
from learnpath.core.exceptions import (
    GraphIntegrityError,
    NodeNotFoundError,
    RoadmapNotFoundError,
)
from learnpath.models import Post
from learnpath.schemas.roadmap import (
    ConnectionCreate,
    ConnectionType,
    ConnectionUpdate,
    NodeCreate,
    NodeUpdate,
    RoadmapCreate,
    RoadmapUpdate,
)
from learnpath.services import roadmap_service
from learnpath.services.graph_store import RoadmapGraphStore
from learnpath.services.progress_tracker import ProgressTracker


async def _add_post(
    session_factory: async_sessionmaker[AsyncSession], slug: str, status: str = "published"
) -> str:
    async with get_db_session(session_factory) as db:
        post = Post(title=slug.title(), slug=slug, status=status)
        db.add(post)
        await db.flush()
        return post.id


async def _seed_roadmap(store: RoadmapGraphStore, slug: str = "backend"):
    roadmap = await store.create_roadmap(RoadmapCreate(title="Backend", slug=slug))
    assert roadmap is not None
    await store.fetch_roadmap_by_id(roadmap.id)
    return roadmap


# ============================================================================
# Fetch
# ============================================================================


@pytest.mark.asyncio
async def test_fetch_by_slug_assembles_graph(
    store: RoadmapGraphStore,
    tracker: ProgressTracker,
    session_factory: async_sessionmaker[AsyncSession],
) -> None:
    roadmap = await _seed_roadmap(store)
    a = await store.create_node(NodeCreate(roadmap_id=roadmap.id, title="A"))
    b = await store.create_node(NodeCreate(roadmap_id=roadmap.id, title="B"))
    await store.create_connection(ConnectionCreate(from_node_id=a.id, to_node_id=b.id))
    post_id = await _add_post(session_factory, "intro")
    assert await store.link_post_to_node(a.id, post_id)

    fresh = RoadmapGraphStore(tracker, session_factory=session_factory)
    graph = await fresh.fetch_roadmap_by_slug("backend")

    assert graph is not None
    assert fresh.current_roadmap.id == roadmap.id
    assert {n.title for n in fresh.nodes} == {"A", "B"}
    assert [(c.from_node_id, c.to_node_id) for c in fresh.connections] == [(a.id, b.id)]
    assert [p.id for p in fresh.get_node_posts(a.id)] == [post_id]
    assert fresh.get_node_posts(a.id)[0].author == "Kerem Pakten"
    assert fresh.get_node_posts(b.id) == []
    assert fresh.is_loading is False
    assert fresh.error is None


@pytest.mark.asyncio
async def test_fetch_unknown_slug_raises(store: RoadmapGraphStore) -> None:
    with pytest.raises(RoadmapNotFoundError):
        await store.fetch_roadmap_by_slug("nope")
    assert store.error is not None
    assert store.current_roadmap is None
    assert store.is_loading is False


@pytest.mark.asyncio
async def test_fetch_roadmaps_filters_drafts(store: RoadmapGraphStore) -> None:
    await store.create_roadmap(RoadmapCreate(title="Draft", slug="draft"))
    await store.create_roadmap(RoadmapCreate(title="Live", slug="live", is_published=True))

    assert {r.slug for r in await store.fetch_roadmaps()} == {"draft", "live"}
    assert [r.slug for r in await store.fetch_roadmaps(published_only=True)] == ["live"]


# ============================================================================
# Writes
# ============================================================================


@pytest.mark.asyncio
async def test_delete_node_drops_connections_and_posts(
    store: RoadmapGraphStore, session_factory: async_sessionmaker[AsyncSession]
) -> None:
    roadmap = await _seed_roadmap(store)
    n1 = await store.create_node(NodeCreate(roadmap_id=roadmap.id))
    n2 = await store.create_node(NodeCreate(roadmap_id=roadmap.id))
    n3 = await store.create_node(NodeCreate(roadmap_id=roadmap.id))
    await store.create_connection(ConnectionCreate(from_node_id=n1.id, to_node_id=n2.id))
    keep = await store.create_connection(ConnectionCreate(from_node_id=n2.id, to_node_id=n3.id))
    await store.link_post_to_node(n1.id, await _add_post(session_factory, "p"))

    assert await store.delete_node(n1.id)

    assert [n.id for n in store.nodes] == [n2.id, n3.id]
    assert [c.id for c in store.connections] == [keep.id]
    assert n1.id not in store.node_posts

    await store.fetch_roadmap_by_id(roadmap.id)
    assert [c.id for c in store.connections] == [keep.id]


@pytest.mark.asyncio
async def test_partial_update_keeps_other_fields(store: RoadmapGraphStore) -> None:
    roadmap = await _seed_roadmap(store)
    node = await store.create_node(
        NodeCreate(roadmap_id=roadmap.id, title="Old", color="blue", position_x=10)
    )

    assert await store.update_node(node.id, NodeUpdate(title="New"))

    updated = store.get_node(node.id)
    assert updated.title == "New"
    assert updated.color == "blue"
    assert updated.position_x == 10


@pytest.mark.asyncio
async def test_sequential_position_updates_both_persist(store: RoadmapGraphStore) -> None:
    roadmap = await _seed_roadmap(store)
    node = await store.create_node(NodeCreate(roadmap_id=roadmap.id))

    assert await store.update_node(node.id, NodeUpdate(position_x=120))
    assert await store.update_node(node.id, NodeUpdate(position_y=80))

    await store.fetch_roadmap_by_id(roadmap.id)
    stored = store.get_node(node.id)
    assert (stored.position_x, stored.position_y) == (120, 80)


@pytest.mark.asyncio
async def test_update_roadmap_patches_current(store: RoadmapGraphStore) -> None:
    roadmap = await _seed_roadmap(store)

    assert await store.update_roadmap(roadmap.id, RoadmapUpdate(is_published=True))

    assert store.current_roadmap.is_published is True
    assert store.current_roadmap.title == "Backend"
    assert store.roadmaps[0].is_published is True


@pytest.mark.asyncio
async def test_duplicate_slug_leaves_state_unchanged(store: RoadmapGraphStore) -> None:
    await store.create_roadmap(RoadmapCreate(slug="taken"))
    before = list(store.roadmaps)

    assert await store.create_roadmap(RoadmapCreate(slug="taken")) is None

    assert store.roadmaps == before
    assert isinstance(store.last_exception, IntegrityError)
    assert store.error


@pytest.mark.asyncio
async def test_failed_write_leaves_nodes_unchanged(
    store: RoadmapGraphStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    roadmap = await _seed_roadmap(store)
    node = await store.create_node(NodeCreate(roadmap_id=roadmap.id, title="Stable"))
    before = list(store.nodes)

    async def broken_update(*args, **kwargs):
        raise SQLAlchemyError("database is locked")

    monkeypatch.setattr(roadmap_service, "update_node", broken_update)

    assert await store.update_node(node.id, NodeUpdate(title="Lost")) is False
    assert store.nodes == before
    assert store.error == "database is locked"


@pytest.mark.asyncio
async def test_update_unknown_node_is_reported(store: RoadmapGraphStore) -> None:
    roadmap = await _seed_roadmap(store)
    await store.create_node(NodeCreate(roadmap_id=roadmap.id))
    before = list(store.nodes)

    assert await store.update_node("ghost", NodeUpdate(title="X")) is False

    assert isinstance(store.last_exception, NodeNotFoundError)
    assert store.error == "Node 'ghost' not found"
    assert store.nodes == before


@pytest.mark.asyncio
async def test_title_only_roadmap_gets_title_slug(store: RoadmapGraphStore) -> None:
    roadmap = await store.create_roadmap(RoadmapCreate(title="Data Engineering"))

    assert roadmap.slug == "data-engineering"
    graph = await store.fetch_roadmap_by_slug("data-engineering")
    assert graph.roadmap.id == roadmap.id


@pytest.mark.asyncio
async def test_invalid_parent_is_reported(store: RoadmapGraphStore) -> None:
    roadmap = await _seed_roadmap(store)
    plain = await store.create_node(NodeCreate(roadmap_id=roadmap.id))

    child = await store.create_node(NodeCreate(roadmap_id=roadmap.id, parent_id=plain.id))

    assert child is None
    assert isinstance(store.last_exception, GraphIntegrityError)
    assert len(store.nodes) == 1


@pytest.mark.asyncio
async def test_delete_container_detaches_children(store: RoadmapGraphStore) -> None:
    roadmap = await _seed_roadmap(store)
    box = await store.create_node(NodeCreate(roadmap_id=roadmap.id, is_container=True))
    child = await store.create_node(NodeCreate(roadmap_id=roadmap.id, parent_id=box.id))

    assert await store.delete_node(box.id)
    assert store.get_node(child.id).parent_id is None

    await store.fetch_roadmap_by_id(roadmap.id)
    assert store.get_node(child.id).parent_id is None


@pytest.mark.asyncio
async def test_connection_update_and_delete(store: RoadmapGraphStore) -> None:
    roadmap = await _seed_roadmap(store)
    a = await store.create_node(NodeCreate(roadmap_id=roadmap.id))
    b = await store.create_node(NodeCreate(roadmap_id=roadmap.id))
    conn = await store.create_connection(ConnectionCreate(from_node_id=a.id, to_node_id=b.id))

    assert await store.update_connection(
        conn.id, ConnectionUpdate(connection_type="optional", label="later")
    )
    assert store.connections[0].connection_type is ConnectionType.OPTIONAL
    assert store.connections[0].label == "later"

    assert await store.delete_connection(conn.id)
    assert store.connections == []


@pytest.mark.asyncio
async def test_delete_roadmap_clears_current_and_progress(
    store: RoadmapGraphStore, tracker: ProgressTracker
) -> None:
    roadmap = await _seed_roadmap(store)
    node = await store.create_node(NodeCreate(roadmap_id=roadmap.id))
    assert store.toggle_node_completed(node.id)

    assert await store.delete_roadmap(roadmap.id)

    assert store.current_roadmap is None
    assert store.nodes == []
    assert store.roadmaps == []
    assert tracker.completed_nodes(store.viewer_key) == frozenset()


# ============================================================================
# Node posts
# ============================================================================


@pytest.mark.asyncio
async def test_link_and_unlink_post(
    store: RoadmapGraphStore, session_factory: async_sessionmaker[AsyncSession]
) -> None:
    roadmap = await _seed_roadmap(store)
    node = await store.create_node(NodeCreate(roadmap_id=roadmap.id))
    post_id = await _add_post(session_factory, "guide")

    assert await store.link_post_to_node(node.id, post_id)
    assert [p.slug for p in store.get_node_posts(node.id)] == ["guide"]

    assert await store.unlink_post_from_node(node.id, post_id)
    assert store.get_node_posts(node.id) == []


@pytest.mark.asyncio
async def test_link_unknown_post_is_reported(store: RoadmapGraphStore) -> None:
    roadmap = await _seed_roadmap(store)
    node = await store.create_node(NodeCreate(roadmap_id=roadmap.id))

    assert await store.link_post_to_node(node.id, "no-such-post") is False

    assert isinstance(store.last_exception, GraphIntegrityError)
    assert store.node_posts == {}
    await store.fetch_roadmap_by_id(roadmap.id)
    assert store.get_node_posts(node.id) == []


@pytest.mark.asyncio
async def test_linkable_posts_are_published_only(
    store: RoadmapGraphStore, session_factory: async_sessionmaker[AsyncSession]
) -> None:
    await _add_post(session_factory, "live")
    await _add_post(session_factory, "wip", status="draft")

    assert [p.slug for p in await store.list_linkable_posts()] == ["live"]


# ============================================================================
# Progress and rendering
# ============================================================================


@pytest.mark.asyncio
async def test_toggle_single_node(store: RoadmapGraphStore) -> None:
    roadmap = await _seed_roadmap(store)
    node = await store.create_node(NodeCreate(roadmap_id=roadmap.id))

    assert store.toggle_node_completed(node.id) is True
    assert store.is_node_completed(node.id)
    progress = store.get_progress(roadmap.id)
    assert (progress.completed, progress.total, progress.percentage) == (1, 1, 100)

    assert store.toggle_node_completed(node.id) is False
    assert store.get_progress(roadmap.id).percentage == 0


@pytest.mark.asyncio
async def test_switch_viewer_swaps_completions(store: RoadmapGraphStore) -> None:
    roadmap = await _seed_roadmap(store)
    node = await store.create_node(NodeCreate(roadmap_id=roadmap.id))
    store.toggle_node_completed(node.id)

    store.switch_viewer("someone-else")
    assert not store.is_node_completed(node.id)

    store.switch_viewer(None)
    assert store.viewer_key == "anonymous"
    assert store.is_node_completed(node.id)


@pytest.mark.asyncio
async def test_optional_connection_renders_dashed_step(store: RoadmapGraphStore) -> None:
    roadmap = await _seed_roadmap(store)
    a = await store.create_node(NodeCreate(roadmap_id=roadmap.id))
    b = await store.create_node(NodeCreate(roadmap_id=roadmap.id))
    await store.create_connection(
        ConnectionCreate(from_node_id=a.id, to_node_id=b.id, connection_type="optional")
    )

    (edge,) = store.get_flow_edges()
    assert edge.type == "step"
    assert edge.style.stroke_dasharray == "5,5"
    assert edge.animated is False


@pytest.mark.asyncio
async def test_flow_view_puts_container_first(store: RoadmapGraphStore) -> None:
    roadmap = await _seed_roadmap(store)
    box = await store.create_node(
        NodeCreate(roadmap_id=roadmap.id, is_container=True, order_index=5)
    )
    child = await store.create_node(
        NodeCreate(roadmap_id=roadmap.id, parent_id=box.id, order_index=0)
    )

    view = store.get_flow_view()

    assert view.roadmap_id == roadmap.id
    assert [n.id for n in view.nodes] == [box.id, child.id]
    assert view.nodes[1].parent_node == box.id
    assert view.progress.total == 1


@pytest.mark.asyncio
async def test_flow_view_requires_current_roadmap(store: RoadmapGraphStore) -> None:
    assert store.get_flow_view() is None
