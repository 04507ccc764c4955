"""Viewer identity.

Progress is tracked per viewer. An identified viewer sends its id in the
``X-Viewer-Id`` header; requests without it share the anonymous identity.
Authentication itself is handled upstream of this service.
"""

from typing import Annotated

from fastapi import Depends, Header

from learnpath.core.logging import bind_viewer

ANONYMOUS_VIEWER = "anonymous"


def normalize_viewer_key(viewer_id: str | None) -> str:
    """Map an optional user id onto a progress viewer key."""
    if viewer_id is None:
        return ANONYMOUS_VIEWER
    viewer_id = viewer_id.strip()
    return viewer_id or ANONYMOUS_VIEWER


def get_viewer_key(x_viewer_id: Annotated[str | None, Header()] = None) -> str:
    """Resolve the viewer key for an HTTP request."""
    viewer_key = normalize_viewer_key(x_viewer_id)
    bind_viewer(viewer_key)
    return viewer_key


ViewerKeyDep = Annotated[str, Depends(get_viewer_key)]
