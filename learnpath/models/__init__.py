"""Database models."""

from learnpath.models.post import Category, Post
from learnpath.models.roadmap import NodeConnection, NodePost, Roadmap, RoadmapNode

__all__ = [
    "Roadmap",
    "RoadmapNode",
    "NodeConnection",
    "NodePost",
    "Post",
    "Category",
]
