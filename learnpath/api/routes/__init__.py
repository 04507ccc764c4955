"""API routes."""

from learnpath.api.routes import editor, roadmaps

__all__ = ["roadmaps", "editor"]
