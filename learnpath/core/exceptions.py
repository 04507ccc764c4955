"""Domain exceptions."""


class LearnPathError(Exception):
    """Base class for roadmap graph errors."""


class RoadmapNotFoundError(LearnPathError, LookupError):
    """Raised when a roadmap cannot be found by slug or id."""

    def __init__(self, key: str, field: str = "id") -> None:
        self.key = key
        self.field = field
        super().__init__(f"Roadmap with {field} '{key}' not found")


class GraphIntegrityError(LearnPathError, ValueError):
    """Raised when a write would break a containment or endpoint invariant."""


class InvalidTransitionError(LearnPathError, ValueError):
    """Raised when the editor selection receives an event it cannot handle."""


class NodeNotFoundError(LearnPathError, LookupError):
    def __init__(self, node_id: str) -> None:
        self.key = node_id
        super().__init__(f"Node '{node_id}' not found")


class ConnectionNotFoundError(LearnPathError, LookupError):
    def __init__(self, connection_id: str) -> None:
        self.key = connection_id
        super().__init__(f"Connection '{connection_id}' not found")
