"""Roadmap graph entities and request schemas.

Entities use snake_case attribute names and serialize with camelCase
aliases, so API payloads keep the shape the canvas clients expect.
"""

import re
from datetime import datetime
from enum import Enum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model accepting both field names and camelCase aliases."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class NodeType(str, Enum):
    """Role of a node in the learning path."""

    MAIN = "main"
    TOPIC = "topic"
    SUBTOPIC = "subtopic"
    RESOURCE = "resource"


class NodeColor(str, Enum):
    """Palette keys available to nodes."""

    YELLOW = "yellow"
    PURPLE = "purple"
    GRAY = "gray"
    GREEN = "green"
    BLUE = "blue"
    ORANGE = "orange"


class ConnectionType(str, Enum):
    """Kind of association between two nodes."""

    DEFAULT = "default"
    OPTIONAL = "optional"
    RECOMMENDED = "recommended"


class PostStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"


# ============================================================================
# Entities
# ============================================================================


class Roadmap(CamelModel):
    """A learning path."""

    id: str
    title: str
    slug: str
    description: str | None = None
    icon: str | None = None
    is_published: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class RoadmapNode(CamelModel):
    """A node of a roadmap graph."""

    id: str
    title: str
    description: str | None = None
    node_type: NodeType = NodeType.TOPIC
    color: NodeColor = NodeColor.YELLOW
    icon: str | None = None
    position_x: float = 0
    position_y: float = 0
    width: float = 200
    height: float = 50
    parent_id: str | None = None
    roadmap_id: str
    order_index: int = 0
    is_optional: bool = False
    is_recommended: bool = False
    is_container: bool = False
    created_at: datetime | None = None
    updated_at: datetime | None = None


class NodeConnection(CamelModel):
    """A directed edge between two nodes."""

    id: str
    from_node_id: str
    to_node_id: str
    connection_type: ConnectionType = ConnectionType.DEFAULT
    label: str | None = None
    created_at: datetime | None = None


class NodePost(CamelModel):
    """Link between a node and a post."""

    id: str
    node_id: str
    post_id: str
    order_index: int = 0


class ExternalPost(CamelModel):
    """Read-only view of a blog post supplied by the content subsystem."""

    id: str
    title: str
    slug: str
    excerpt: str | None = None
    status: PostStatus = PostStatus.DRAFT
    read_time: int | None = None
    author: str | None = None
    category_id: str | None = None
    published_at: datetime | None = None


class ProgressSummary(CamelModel):
    """Completion summary of one roadmap for one viewer."""

    completed: int
    total: int
    percentage: int = Field(ge=0, le=100)


# ============================================================================
# Create / partial update payloads
# ============================================================================


class PartialUpdate(CamelModel):
    """Patch payload where an absent field means "leave unchanged".

    An explicit ``null`` clears a nullable field; it is rejected for fields
    listed in ``required_fields``.
    """

    required_fields: ClassVar[frozenset[str]] = frozenset()

    @model_validator(mode="after")
    def reject_null_for_required(self) -> "PartialUpdate":
        nulls = sorted(
            name
            for name in self.model_fields_set & self.required_fields
            if getattr(self, name) is None
        )
        if nulls:
            raise ValueError(f"Fields cannot be null: {', '.join(nulls)}")
        return self

    def changes(self) -> dict[str, object]:
        """Fields present in the patch, as entity values."""
        return self.model_dump(exclude_unset=True)

    def row_values(self) -> dict[str, object]:
        """Fields present in the patch, as storage column values."""
        return self.model_dump(exclude_unset=True, mode="json")


# URL path segment built from unreserved characters, not made of dots only.
SLUG_PATTERN = re.compile(r"(?!\.+\Z)[A-Za-z0-9._~-]+")


def check_slug(value: str | None) -> str | None:
    if value is not None and not SLUG_PATTERN.fullmatch(value):
        raise ValueError("Slug may only contain letters, digits, '-', '_', '.' and '~'")
    return value


class RoadmapCreate(CamelModel):
    title: str | None = None
    slug: str | None = None
    description: str | None = None
    icon: str | None = None
    is_published: bool = False

    @field_validator("slug", mode="before")
    @classmethod
    def blank_slug_is_absent(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, value: str | None) -> str | None:
        return check_slug(value)


class RoadmapUpdate(PartialUpdate):
    required_fields: ClassVar[frozenset[str]] = frozenset({"title", "slug", "is_published"})

    title: str | None = None
    slug: str | None = None
    description: str | None = None
    icon: str | None = None
    is_published: bool | None = None

    @field_validator("slug")
    @classmethod
    def validate_slug(cls, value: str | None) -> str | None:
        return check_slug(value)


class NodeCreate(CamelModel):
    roadmap_id: str
    title: str | None = None
    description: str | None = None
    node_type: NodeType | None = None
    color: NodeColor | None = None
    icon: str | None = None
    position_x: float | None = None
    position_y: float | None = None
    width: float | None = None
    height: float | None = None
    parent_id: str | None = None
    order_index: int | None = None
    is_optional: bool = False
    is_recommended: bool = False
    is_container: bool = False


class NodeUpdate(PartialUpdate):
    required_fields: ClassVar[frozenset[str]] = frozenset(
        {
            "title",
            "node_type",
            "color",
            "position_x",
            "position_y",
            "width",
            "height",
            "order_index",
            "is_optional",
            "is_recommended",
            "is_container",
        }
    )

    title: str | None = None
    description: str | None = None
    node_type: NodeType | None = None
    color: NodeColor | None = None
    icon: str | None = None
    position_x: float | None = None
    position_y: float | None = None
    width: float | None = None
    height: float | None = None
    parent_id: str | None = None
    order_index: int | None = None
    is_optional: bool | None = None
    is_recommended: bool | None = None
    is_container: bool | None = None


class ConnectionCreate(CamelModel):
    from_node_id: str
    to_node_id: str
    connection_type: ConnectionType = ConnectionType.DEFAULT
    label: str | None = None


class ConnectionUpdate(PartialUpdate):
    required_fields: ClassVar[frozenset[str]] = frozenset({"connection_type"})

    connection_type: ConnectionType | None = None
    label: str | None = None


class NodePostLink(CamelModel):
    post_id: str


class RoadmapGraph(CamelModel):
    """A roadmap with its full node and connection set."""

    roadmap: Roadmap
    nodes: list[RoadmapNode]
    connections: list[NodeConnection]
    node_posts: dict[str, list[ExternalPost]]
