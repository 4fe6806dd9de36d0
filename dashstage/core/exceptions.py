"""
Core Exceptions

Error taxonomy for the layout and session engine.

Structural errors (everything deriving from LayoutError) mean the caller fed
the engine input that violates the tree's invariants; they propagate to the
caller. CollaboratorError describes a failure reported by the Dashboard API
and is delivered as a result value, never raised across that boundary.
"""


class LayoutError(Exception):
    """Base class for invariant violations against a workspace layout."""

    def __init__(self, message: str = "Invalid layout operation"):
        self.message = message
        super().__init__(self.message)


class StructureError(LayoutError):
    """
    Raised when a layout breaks a structural invariant.

    Covers a missing or duplicated root, colliding ids, a parent id that
    points at no node, and parent chains that loop back on themselves.
    """


class NodeNotFoundError(LayoutError):
    """Raised when an id (or widget uuid) lookup misses."""

    def __init__(self, node_id: object, message: str | None = None):
        self.node_id = node_id
        super().__init__(message or f"Layout node not found: {node_id}")


class IllegalTargetError(LayoutError):
    """
    Raised when a node cannot be attached where it was dropped.

    Usage:
        layout = drop(layout, node_id=7, target_id=3)
        # Raises IllegalTargetError if 3 is inside 7, is not a container,
        # or carries a workspace-name the dragged node may not live in
    """


class SpanOutOfBoundsError(LayoutError):
    """Raised when a grid span or cell falls outside the declared rows x cols."""


class UnknownCellError(LayoutError):
    """Raised when a grid cell key is not present in the grid."""

    def __init__(self, cell_key: str, message: str | None = None):
        self.cell_key = cell_key
        super().__init__(message or f"Unknown grid cell: {cell_key}")


class EditModeError(LayoutError):
    """Raised when a structural edit reaches a tab that is not being edited."""


class CollaboratorError(Exception):
    """
    A failure surfaced by the external Dashboard API.

    Always recoverable: the session turns it into an ApiFailure result and
    degrades locally (empty lists, unchanged edit state).
    """

    def __init__(self, message: str = "Dashboard API call failed", event: str | None = None):
        self.message = message
        self.event = event
        super().__init__(self.message)
