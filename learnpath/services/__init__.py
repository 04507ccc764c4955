"""Service layer modules."""

from learnpath.services import (
    editor,
    flow_builder,
    graph_model,
    graph_store,
    post_service,
    progress_tracker,
    roadmap_service,
)

__all__ = [
    "editor",
    "flow_builder",
    "graph_model",
    "graph_store",
    "post_service",
    "progress_tracker",
    "roadmap_service",
]
