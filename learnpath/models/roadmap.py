"""Roadmap graph models: roadmaps, nodes, connections and node-post links."""

import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from learnpath.core.database import Base


def _uuid() -> str:
    return str(uuid.uuid4())


class Roadmap(Base):
    """A named learning path, public once published."""

    __tablename__ = "roadmaps"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    title: Mapped[str] = mapped_column(String)
    slug: Mapped[str] = mapped_column(String, unique=True)
    description: Mapped[str | None] = mapped_column(Text)
    icon: Mapped[str | None] = mapped_column(String)
    is_published: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class RoadmapNode(Base):
    """A topic, resource or container box positioned on the canvas."""

    __tablename__ = "roadmap_nodes"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    roadmap_id: Mapped[str] = mapped_column(ForeignKey("roadmaps.id"), index=True)
    parent_id: Mapped[str | None] = mapped_column(ForeignKey("roadmap_nodes.id"))

    # Content
    title: Mapped[str] = mapped_column(String)
    description: Mapped[str | None] = mapped_column(Text)
    node_type: Mapped[str] = mapped_column(String, default="topic")  # main, topic, subtopic, resource
    color: Mapped[str] = mapped_column(String, default="yellow")
    icon: Mapped[str | None] = mapped_column(String)

    # Geometry
    position_x: Mapped[float] = mapped_column(Float, default=0)
    position_y: Mapped[float] = mapped_column(Float, default=0)
    width: Mapped[float] = mapped_column(Float, default=200)
    height: Mapped[float] = mapped_column(Float, default=50)
    order_index: Mapped[int] = mapped_column(Integer, default=0)

    # Flags
    is_optional: Mapped[bool] = mapped_column(Boolean, default=False)
    is_recommended: Mapped[bool] = mapped_column(Boolean, default=False)
    is_container: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=datetime.utcnow, onupdate=datetime.utcnow
    )


class NodeConnection(Base):
    """Directed, typed edge between two nodes of one roadmap."""

    __tablename__ = "node_connections"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    from_node_id: Mapped[str] = mapped_column(ForeignKey("roadmap_nodes.id"), index=True)
    to_node_id: Mapped[str] = mapped_column(ForeignKey("roadmap_nodes.id"), index=True)
    connection_type: Mapped[str] = mapped_column(String, default="default")  # default, optional, recommended
    label: Mapped[str | None] = mapped_column(String)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)


class NodePost(Base):
    """Many-to-many link between a node and a blog post."""

    __tablename__ = "node_posts"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    node_id: Mapped[str] = mapped_column(ForeignKey("roadmap_nodes.id"), index=True)
    post_id: Mapped[str] = mapped_column(ForeignKey("posts.id"))
    order_index: Mapped[int] = mapped_column(Integer, default=0)

    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)
