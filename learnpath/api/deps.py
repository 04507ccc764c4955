"""API dependencies."""

from functools import lru_cache
from typing import Annotated

from fastapi import Depends, HTTPException, status
from sqlalchemy.exc import IntegrityError

from learnpath.core.auth import ViewerKeyDep
from learnpath.core.config import get_settings
from learnpath.core.database import SessionFactory, get_session_factory
from learnpath.core.exceptions import GraphIntegrityError
from learnpath.core.local_storage import JsonFileStorage
from learnpath.services.graph_store import RoadmapGraphStore
from learnpath.services.progress_tracker import ProgressTracker


@lru_cache
def get_progress_tracker() -> ProgressTracker:
    """Process-wide tracker over the configured progress directory."""
    return ProgressTracker(JsonFileStorage(get_settings().PROGRESS_STORAGE_DIR))


def get_store(
    viewer_key: ViewerKeyDep,
    session_factory: Annotated[SessionFactory, Depends(get_session_factory)],
    tracker: Annotated[ProgressTracker, Depends(get_progress_tracker)],
) -> RoadmapGraphStore:
    """A fresh graph store per request, bound to the requesting viewer."""
    return RoadmapGraphStore(tracker, session_factory=session_factory, viewer_key=viewer_key)


StoreDep = Annotated[RoadmapGraphStore, Depends(get_store)]


def raise_for_store_error(store: RoadmapGraphStore) -> None:
    """Turn the store's last recorded failure into an HTTP error."""
    if store.error is None:
        return
    if isinstance(store.last_exception, LookupError):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=store.error)
    if isinstance(store.last_exception, GraphIntegrityError):
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=store.error,
        )
    if isinstance(store.last_exception, IntegrityError):
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Conflicts with an existing record",
        )
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail="Storage operation failed",
    )
