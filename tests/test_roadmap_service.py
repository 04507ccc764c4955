"""Tests for roadmap_service storage operations."""

import pytest
from pydantic import ValidationError
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from learnpath.core.exceptions import (
    ConnectionNotFoundError,
    GraphIntegrityError,
    NodeNotFoundError,
)
from learnpath.models import NodeConnection, NodePost, Post, RoadmapNode
from learnpath.schemas.roadmap import (
    ConnectionCreate,
    NodeCreate,
    RoadmapCreate,
    RoadmapUpdate,
)
from learnpath.services import roadmap_service


async def _count(db: AsyncSession, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


@pytest.mark.asyncio
async def test_insert_roadmap_defaults(test_session: AsyncSession) -> None:
    roadmap = await roadmap_service.insert_roadmap(test_session, RoadmapCreate())
    assert roadmap.title == "New Roadmap"
    assert roadmap.slug.startswith("roadmap-")
    assert roadmap.slug[len("roadmap-") :].isdigit()
    assert roadmap.is_published is False


@pytest.mark.asyncio
async def test_insert_roadmap_derives_slug_from_title(test_session: AsyncSession) -> None:
    roadmap = await roadmap_service.insert_roadmap(
        test_session, RoadmapCreate(title="Data  Engineering / 2024", slug="  ")
    )
    assert roadmap.slug == "data-engineering-2024"


@pytest.mark.parametrize(
    ("title", "expected"),
    [
        ("Data Engineering", "data-engineering"),
        ("  C++ Basics!  ", "c-basics"),
        ("Café Déjà Vu", "cafe-deja-vu"),
        ("???", ""),
        (None, ""),
    ],
)
def test_slugify(title: str | None, expected: str) -> None:
    assert roadmap_service.slugify(title) == expected


@pytest.mark.parametrize("slug", ["a b/c", "..", "x\n", "über", "a?b"])
def test_roadmap_payloads_reject_unsafe_slugs(slug: str) -> None:
    with pytest.raises(ValidationError):
        RoadmapCreate(slug=slug)
    with pytest.raises(ValidationError):
        RoadmapUpdate(slug=slug)


def test_roadmap_payloads_accept_url_safe_slugs() -> None:
    assert RoadmapCreate(slug="python-3.12_intro~v2").slug == "python-3.12_intro~v2"
    assert RoadmapUpdate(slug="backend").slug == "backend"


@pytest.mark.asyncio
async def test_insert_node_defaults(test_session: AsyncSession) -> None:
    roadmap = await roadmap_service.insert_roadmap(test_session, RoadmapCreate(slug="r"))

    node = await roadmap_service.insert_node(test_session, NodeCreate(roadmap_id=roadmap.id))
    assert (node.title, node.node_type, node.color) == ("New Node", "topic", "yellow")
    assert (node.width, node.height) == (200, 50)
    assert (node.position_x, node.position_y, node.order_index) == (0, 0, 0)

    box = await roadmap_service.insert_node(
        test_session, NodeCreate(roadmap_id=roadmap.id, is_container=True)
    )
    assert (box.width, box.height) == (300, 200)


@pytest.mark.asyncio
async def test_insert_node_rejects_plain_parent(test_session: AsyncSession) -> None:
    roadmap = await roadmap_service.insert_roadmap(test_session, RoadmapCreate(slug="r"))
    plain = await roadmap_service.insert_node(test_session, NodeCreate(roadmap_id=roadmap.id))

    with pytest.raises(GraphIntegrityError, match="not a container"):
        await roadmap_service.insert_node(
            test_session, NodeCreate(roadmap_id=roadmap.id, parent_id=plain.id)
        )


@pytest.mark.asyncio
async def test_update_node_rejects_cycle(test_session: AsyncSession) -> None:
    roadmap = await roadmap_service.insert_roadmap(test_session, RoadmapCreate(slug="r"))
    outer = await roadmap_service.insert_node(
        test_session, NodeCreate(roadmap_id=roadmap.id, is_container=True)
    )
    inner = await roadmap_service.insert_node(
        test_session,
        NodeCreate(roadmap_id=roadmap.id, is_container=True, parent_id=outer.id),
    )

    with pytest.raises(GraphIntegrityError, match="cycle"):
        await roadmap_service.update_node(test_session, outer.id, {"parent_id": inner.id})

    with pytest.raises(GraphIntegrityError, match="must stay a container"):
        await roadmap_service.update_node(test_session, outer.id, {"is_container": False})


@pytest.mark.asyncio
async def test_update_missing_node_raises(test_session: AsyncSession) -> None:
    with pytest.raises(NodeNotFoundError):
        await roadmap_service.update_node(test_session, "missing", {"title": "x"})
    with pytest.raises(ConnectionNotFoundError):
        await roadmap_service.update_connection(test_session, "missing", {"label": "x"})


@pytest.mark.asyncio
async def test_insert_connection_requires_same_roadmap(test_session: AsyncSession) -> None:
    first = await roadmap_service.insert_roadmap(test_session, RoadmapCreate(slug="one"))
    second = await roadmap_service.insert_roadmap(test_session, RoadmapCreate(slug="two"))
    a = await roadmap_service.insert_node(test_session, NodeCreate(roadmap_id=first.id))
    b = await roadmap_service.insert_node(test_session, NodeCreate(roadmap_id=second.id))

    with pytest.raises(GraphIntegrityError, match="different roadmaps"):
        await roadmap_service.insert_connection(
            test_session, ConnectionCreate(from_node_id=a.id, to_node_id=b.id)
        )
    with pytest.raises(GraphIntegrityError, match="not found"):
        await roadmap_service.insert_connection(
            test_session, ConnectionCreate(from_node_id=a.id, to_node_id="ghost")
        )


@pytest.mark.asyncio
async def test_delete_node_removes_rows_without_db_cascade(test_session: AsyncSession) -> None:
    roadmap = await roadmap_service.insert_roadmap(test_session, RoadmapCreate(slug="r"))
    box = await roadmap_service.insert_node(
        test_session, NodeCreate(roadmap_id=roadmap.id, is_container=True)
    )
    child = await roadmap_service.insert_node(
        test_session, NodeCreate(roadmap_id=roadmap.id, parent_id=box.id)
    )
    other = await roadmap_service.insert_node(test_session, NodeCreate(roadmap_id=roadmap.id))
    await roadmap_service.insert_connection(
        test_session, ConnectionCreate(from_node_id=box.id, to_node_id=other.id)
    )
    await roadmap_service.insert_connection(
        test_session, ConnectionCreate(from_node_id=other.id, to_node_id=box.id)
    )
    post = Post(title="P", slug="p", status="published")
    test_session.add(post)
    await test_session.flush()
    await roadmap_service.insert_node_post(test_session, box.id, post.id)

    detached = await roadmap_service.delete_node(test_session, box.id)

    assert detached == [child.id]
    assert await _count(test_session, NodeConnection) == 0
    assert await _count(test_session, NodePost) == 0
    await test_session.refresh(child)
    assert child.parent_id is None


@pytest.mark.asyncio
async def test_delete_roadmap_removes_graph(test_session: AsyncSession) -> None:
    roadmap = await roadmap_service.insert_roadmap(test_session, RoadmapCreate(slug="r"))
    keep = await roadmap_service.insert_roadmap(test_session, RoadmapCreate(slug="keep"))
    a = await roadmap_service.insert_node(test_session, NodeCreate(roadmap_id=roadmap.id))
    b = await roadmap_service.insert_node(test_session, NodeCreate(roadmap_id=roadmap.id))
    await roadmap_service.insert_node(test_session, NodeCreate(roadmap_id=keep.id))
    await roadmap_service.insert_connection(
        test_session, ConnectionCreate(from_node_id=a.id, to_node_id=b.id)
    )

    deleted = await roadmap_service.delete_roadmap(test_session, roadmap.id)

    assert sorted(deleted) == sorted([a.id, b.id])
    assert await _count(test_session, RoadmapNode) == 1
    assert await _count(test_session, NodeConnection) == 0
    assert await roadmap_service.get_roadmap(test_session, roadmap.id) is None


@pytest.mark.asyncio
async def test_duplicate_links_are_kept(test_session: AsyncSession) -> None:
    roadmap = await roadmap_service.insert_roadmap(test_session, RoadmapCreate(slug="r"))
    node = await roadmap_service.insert_node(test_session, NodeCreate(roadmap_id=roadmap.id))
    post = Post(title="P", slug="p", status="published")
    test_session.add(post)
    await test_session.flush()

    await roadmap_service.insert_node_post(test_session, node.id, post.id)
    await roadmap_service.insert_node_post(test_session, node.id, post.id)
    assert len(await roadmap_service.list_node_posts(test_session, [node.id])) == 2

    assert await roadmap_service.delete_node_posts(test_session, node.id, post.id) == 2


@pytest.mark.asyncio
async def test_insert_node_post_requires_existing_post(test_session: AsyncSession) -> None:
    roadmap = await roadmap_service.insert_roadmap(test_session, RoadmapCreate(slug="r"))
    node = await roadmap_service.insert_node(test_session, NodeCreate(roadmap_id=roadmap.id))

    with pytest.raises(GraphIntegrityError, match="Post no-such-post not found"):
        await roadmap_service.insert_node_post(test_session, node.id, "no-such-post")
    with pytest.raises(GraphIntegrityError, match="Node ghost not found"):
        await roadmap_service.insert_node_post(test_session, "ghost", "no-such-post")
    assert await _count(test_session, NodePost) == 0
