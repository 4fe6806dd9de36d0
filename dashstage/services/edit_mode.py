"""
Edit-Mode State Machine

Preview <-> Editing for the active workspace. begin_edit() captures a deep
snapshot of the workspace; cancel() hands it back for restoring; a
successful save discards it. A failed save keeps Editing so the user can
retry.
"""

import logging
from enum import Enum

from dashstage.models.contracts.workspaces import Workspace

logger = logging.getLogger(__name__)


class EditMode(str, Enum):
    PREVIEW = "preview"
    EDITING = "editing"


class EditModeMachine:
    """
    Mode and snapshot of the tab being edited.

    Out-of-state calls (begin_edit while Editing, cancel or save while
    Preview) are no-ops and return False/None.
    """

    def __init__(self, initial: EditMode = EditMode.PREVIEW):
        self.mode = initial
        self.tab_id: int | None = None
        self._snapshot: Workspace | None = None
        self.save_request_id: str | None = None

    @property
    def editing(self) -> bool:
        return self.mode == EditMode.EDITING

    @property
    def saving(self) -> bool:
        return self.save_request_id is not None

    @property
    def snapshot(self) -> Workspace | None:
        return self._snapshot

    def begin_edit(self, tab_id: int, workspace: Workspace) -> bool:
        """Enter Editing for tab_id, keeping a deep copy of `workspace`."""
        if self.editing:
            return False
        self.mode = EditMode.EDITING
        self.tab_id = tab_id
        self._snapshot = workspace.model_copy(deep=True)
        logger.info(f"Editing workspace {workspace.id} (tab {tab_id})")
        return True

    def cancel(self) -> Workspace | None:
        """
        Leave Editing and return the snapshot the caller must restore.

        Returns None when not editing.
        """
        if not self.editing:
            return None
        restored = self._snapshot
        logger.info(f"Cancelled editing of tab {self.tab_id}")
        self._reset()
        return restored

    def start_save(self, request_id: str) -> bool:
        """Record an outstanding save; the mode stays Editing until it completes."""
        if not self.editing:
            return False
        self.save_request_id = request_id
        return True

    def complete_save(self, request_id: str) -> bool:
        """Save succeeded: back to Preview, snapshot discarded."""
        if not self.editing or self.save_request_id != request_id:
            return False
        logger.info(f"Saved tab {self.tab_id}, back to preview")
        self._reset()
        return True

    def fail_save(self, request_id: str) -> bool:
        """Save failed: stay in Editing with the unsaved edits intact."""
        if self.save_request_id != request_id:
            return False
        self.save_request_id = None
        return True

    def force_preview(self) -> None:
        """Drop to Preview without restoring (tab switch, open or close)."""
        if self.editing:
            logger.info(f"Leaving edit mode of tab {self.tab_id}")
        self._reset()

    def _reset(self) -> None:
        self.mode = EditMode.PREVIEW
        self.tab_id = None
        self._snapshot = None
        self.save_request_id = None
