"""
Workspace Session Manager

Owns the open tabs, the active tab and the edit mode of the active
workspace, and routes every edit into the active tab's workspace:

- Tabs: open, close, switch, refresh a tab's cached workspace
- Edit mode: begin, cancel (restore snapshot), save through the Dashboard API
- Field and structural edits on the active workspace
- Catalog calls: list/delete workspaces, list/save menu items

The session manager is the only writer of the tab list and of each tab's
workspace. Collaborator results arrive later through the
DashboardApiClient; each continuation first checks that its tab still
exists.
"""

import logging
from functools import partial
from typing import Any, Callable

from dashstage.config import get_settings
from dashstage.core.exceptions import EditModeError, IllegalTargetError, NodeNotFoundError, StructureError
from dashstage.models.contracts.dashboard_api import ApiResult, DispatchOutcome
from dashstage.models.contracts.layout import Direction, LayoutNode
from dashstage.models.contracts.templates import GridTemplate
from dashstage.models.contracts.workspaces import Tab, Workspace, timestamp_ms
from dashstage.services import drag_drop, grid_algebra, provider_binding
from dashstage.services.dashboard_api import DashboardApiClient
from dashstage.services.edit_mode import EditMode, EditModeMachine
from dashstage.services.layout_tree import LayoutTree, component_id
from dashstage.services.widget_registry import (
    WidgetRegistry,
    get_widget_registry,
    node_from_definition,
)
from dashstage.services.workspace_builder import (
    build_workspace,
    rebuild_workspaces,
    workspace_to_payload,
)

logger = logging.getLogger(__name__)

# Fields update_node() must not touch: tree structure goes through
# drop/change_order, provider selections and uuids through select_provider
PROTECTED_FIELDS = frozenset([
    "id", "parent", "order", "has_children", "kind", "uuid", "selected_providers",
])


class SessionManager:
    """
    Tab and edit session of one dashboard window.

    Args:
        client: Dispatch layer for the Dashboard API
        registry: Widget registry used by add_widget (process-wide by default)
        on_event: Receives every collaborator ApiResult
    """

    def __init__(
        self,
        client: DashboardApiClient,
        registry: WidgetRegistry | None = None,
        on_event: Callable[[ApiResult], None] | None = None,
    ):
        self.client = client
        self.registry = registry or get_widget_registry()
        self.on_event = on_event
        self.tabs: list[Tab] = []
        self.active_tab_id: int | None = None
        self.edit_mode = EditModeMachine()
        self.workspaces: list[Workspace] = []
        self.menu_items: list[dict[str, Any]] = []

    # ==========================================================================
    # Accessors
    # ==========================================================================

    @property
    def mode(self) -> EditMode:
        return self.edit_mode.mode

    @property
    def active_tab(self) -> Tab | None:
        return self.get_tab(self.active_tab_id) if self.active_tab_id is not None else None

    @property
    def active_workspace(self) -> Workspace | None:
        tab = self.active_tab
        return tab.workspace if tab else None

    def get_tab(self, tab_id: int) -> Tab | None:
        for tab in self.tabs:
            if tab.id == tab_id:
                return tab
        return None

    def _report(self, result: ApiResult) -> None:
        if self.on_event is not None:
            self.on_event(result)

    # ==========================================================================
    # Tabs
    # ==========================================================================

    def open_tab(self, workspace: Workspace, preview: bool | None = None) -> Tab:
        """
        Open (or re-activate) the tab of a workspace.

        The tab becomes active in Preview, or in Editing when preview=False
        (settings.initial_preview when None).
        """
        tab = self.get_tab(workspace.id)
        if tab is None:
            tab = Tab(id=workspace.id, name=workspace.name or "Untitled", workspace=workspace)
            self.tabs.append(tab)
            logger.info(f"Opened tab {tab.id} ({tab.name})")

        self.active_tab_id = tab.id
        self.edit_mode.force_preview()

        if preview is None:
            preview = get_settings().initial_preview
        if not preview:
            self.edit_mode.begin_edit(tab.id, tab.workspace)
        return tab

    def close_tab(self, tab_id: int) -> None:
        """Close a tab, discarding its unsaved edits; the last remaining tab becomes active."""
        tab = self.get_tab(tab_id)
        if tab is None:
            return
        self.tabs.remove(tab)
        if self.edit_mode.tab_id == tab_id:
            self.edit_mode.force_preview()
        if self.active_tab_id == tab_id:
            self.active_tab_id = self.tabs[-1].id if self.tabs else None
        logger.info(f"Closed tab {tab_id}, active tab is now {self.active_tab_id}")

    def switch_tab(self, tab_id: int) -> Tab:
        tab = self.get_tab(tab_id)
        if tab is None:
            raise NodeNotFoundError(tab_id, f"No open tab with id {tab_id}")
        self.active_tab_id = tab_id
        self.edit_mode.force_preview()
        logger.info(f"Switched to tab {tab_id}")
        return tab

    def update_tab_workspace(self, workspace: Workspace) -> bool:
        """Replace the cached workspace (and name) of the tab showing it."""
        tab = self.get_tab(workspace.id)
        if tab is None:
            return False
        tab.workspace = workspace
        tab.name = workspace.name or "Untitled"
        return True

    # ==========================================================================
    # Edit mode
    # ==========================================================================

    def begin_edit(self) -> bool:
        tab = self._require_active_tab()
        return self.edit_mode.begin_edit(tab.id, tab.workspace)

    def cancel_edit(self) -> bool:
        """Leave Editing and restore the workspace captured by begin_edit()."""
        snapshot = self.edit_mode.cancel()
        if snapshot is None:
            return False
        self.update_tab_workspace(snapshot)
        return True

    def save(self) -> DispatchOutcome | None:
        """
        Persist the workspace being edited.

        Returns None when not editing. On success the tab's workspace is
        replaced by its rebuilt copy from the echoed list and the mode
        returns to Preview; on failure the mode stays Editing.
        """
        if not self.edit_mode.editing or self.edit_mode.saving:
            return None
        tab = self.get_tab(self.edit_mode.tab_id)
        if tab is None:
            return None

        workspace = tab.workspace
        payload = workspace_to_payload(workspace)
        payload["version"] = max(timestamp_ms(), workspace.version + 1)

        outcome = self.client.dispatch(
            "workspace",
            "save",
            self.client.api.save_workspace,
            payload,
            handler=partial(self._on_save_result, workspace.id),
        )
        if outcome.accepted:
            self.edit_mode.start_save(outcome.request_id)
        else:
            logger.error(f"Could not dispatch save of workspace {workspace.id}: {outcome.error.message}")
        return outcome

    def _on_save_result(self, workspace_id: int, result: ApiResult) -> None:
        self._report(result)
        if not result.ok:
            self.edit_mode.fail_save(result.request_id)
            return

        self.workspaces = rebuild_workspaces(result.payload)
        if self.get_tab(workspace_id) is None:
            logger.warning(f"Ignoring save result for closed tab {workspace_id}")
            self.edit_mode.fail_save(result.request_id)
            return

        saved = next((ws for ws in self.workspaces if ws.id == workspace_id), None)
        if saved is not None:
            self.update_tab_workspace(saved)
        else:
            logger.warning(f"Saved workspace {workspace_id} missing from the echoed list")
        self.edit_mode.complete_save(result.request_id)

    # ==========================================================================
    # Edits on the active workspace
    # ==========================================================================

    def _require_active_tab(self) -> Tab:
        tab = self.active_tab
        if tab is None:
            raise EditModeError("No active tab")
        return tab

    def _require_editing(self) -> Tab:
        tab = self._require_active_tab()
        if not self.edit_mode.editing or self.edit_mode.tab_id != tab.id:
            raise EditModeError(f"Tab {tab.id} is not in edit mode")
        if self.edit_mode.saving:
            raise EditModeError(f"Tab {tab.id} is being saved")
        return tab

    def _edit_workspace(self, edit: Callable[[Workspace], Workspace]) -> Workspace:
        tab = self._require_editing()
        updated = edit(tab.workspace)
        self.update_tab_workspace(updated)
        return updated

    def rename(self, name: str) -> Workspace:
        return self._edit_workspace(lambda ws: ws.model_copy(update={"name": name}))

    def change_folder(self, menu_id: int) -> Workspace:
        return self._edit_workspace(lambda ws: ws.model_copy(update={"menu_id": int(menu_id)}))

    def change_theme(self, theme_key: str | None) -> Workspace:
        return self._edit_workspace(
            lambda ws: ws.model_copy(update={"theme_key": theme_key or None})
        )

    def set_scrollable(self, enabled: bool) -> Workspace:
        """Set the scrollable hint of the root node."""

        def edit(tree: LayoutTree) -> LayoutTree:
            root = tree.root_of()
            return tree.replace(root.id, root.model_copy(update={"scrollable": enabled}))

        return self.apply_edit(edit)

    def apply_edit(self, edit: Callable[[LayoutTree], LayoutTree]) -> Workspace:
        """
        Run a tree transformation on the active workspace.

        The result is normalized and bindings of removed widgets are pruned.
        If `edit` raises, the workspace is left untouched.
        """

        def run(workspace: Workspace) -> Workspace:
            tree = LayoutTree.normalize(edit(LayoutTree(workspace.layout)))
            updated = workspace.model_copy(update={"layout": tree.to_list()})
            return provider_binding.prune_bindings(updated)

        return self._edit_workspace(run)

    def add_widget(
        self,
        parent_id: int,
        component: str,
        user_config_values: dict[str, Any] | None = None,
        cell_key: str | None = None,
    ) -> LayoutNode:
        """
        Add a registered component under parent_id.

        Raises:
            NodeNotFoundError: If the component is not registered
            IllegalTargetError: If the parent cannot hold this component
        """
        tab = self._require_editing()
        definition = self.registry.get(component)
        if definition is None:
            raise NodeNotFoundError(component, f"Widget not registered: {component}")
        node = node_from_definition(definition, user_config_values)
        added: list[LayoutNode] = []

        def edit(tree: LayoutTree) -> LayoutTree:
            parent = tree.find_by_id(parent_id)
            if parent.workspace not in drag_drop.legal_targets(node, tree):
                raise IllegalTargetError(
                    f"{component} cannot be placed in a '{parent.workspace}' container"
                )
            tree, child = tree.add_child(parent_id, node, cell_key)
            child = child.model_copy(update={"uuid": f"{tab.id}-{component}-{child.id}"})
            added.append(child)
            return tree.replace(child.id, child)

        self.apply_edit(edit)
        logger.debug(f"Added {component} as node {added[0].id}")
        return added[0]

    def remove_node(self, node_id: int) -> Workspace:
        return self.apply_edit(lambda tree: tree.remove(node_id))

    def drop(self, node_id: int, target_id: int) -> Workspace:
        return self.apply_edit(lambda tree: drag_drop.drop(tree, node_id, target_id))

    def change_order(self, node_id: int, position: int) -> Workspace:
        return self.apply_edit(lambda tree: drag_drop.change_order(tree, node_id, position))

    def change_direction(self, node_id: int, direction: Direction) -> Workspace:
        return self.apply_edit(lambda tree: drag_drop.change_direction(tree, node_id, direction))

    def update_node(self, node_id: int, **fields: Any) -> Workspace:
        """
        Replace configuration fields of one node (userPrefs, width, ...).

        Raises:
            StructureError: When asked to change a structural field, the uuid
                or the provider selections
        """
        protected = PROTECTED_FIELDS & set(fields)
        if protected:
            raise StructureError(f"Cannot update protected fields: {sorted(protected)}")

        def edit(tree: LayoutTree) -> LayoutTree:
            node = tree.find_by_id(node_id)
            updated = LayoutNode.model_validate({**node.model_dump(), **fields})
            return tree.replace(node_id, updated)

        return self.apply_edit(edit)

    def update_grid(self, node_id: int, operation: Callable[..., Any], *args: Any) -> Workspace:
        """
        Apply a grid_algebra operation to a grid node.

        Operations that displace components (delete_row, delete_column,
        merge_cells) also remove the displaced nodes from the layout.
        """

        def edit(tree: LayoutTree) -> LayoutTree:
            result = operation(tree.find_by_id(node_id), *args)
            displaced: list = []
            if isinstance(result, tuple):
                result, displaced = result
            tree = tree.replace(node_id, result)
            for component in displaced:
                child_id = component_id(component)
                if child_id is not None and child_id in tree:
                    tree = tree.remove(child_id)
            return tree

        return self.apply_edit(edit)

    def select_provider(self, widget_uuid: str, provider_type: str, provider_name: str) -> Workspace:
        """
        Bind a provider to a widget of the active workspace.

        Allowed in both modes. In Preview the workspace is persisted right
        away with a bumped version; in Editing the binding is saved with the
        other edits.

        Raises:
            EditModeError: If the active tab is being saved
        """
        tab = self._require_active_tab()
        if self.edit_mode.saving and self.edit_mode.tab_id == tab.id:
            raise EditModeError(f"Tab {tab.id} is being saved")
        updated = provider_binding.bind(tab.workspace, widget_uuid, provider_type, provider_name)

        if self.edit_mode.editing and self.edit_mode.tab_id == tab.id:
            self.update_tab_workspace(updated)
            return updated

        updated = updated.model_copy(
            update={"version": max(timestamp_ms(), updated.version + 1)}
        )
        self.update_tab_workspace(updated)
        self.client.dispatch(
            "workspace",
            "save",
            self.client.api.save_workspace,
            workspace_to_payload(updated),
            handler=partial(self._on_provider_save_result, updated.id),
        )
        return updated

    def _on_provider_save_result(self, workspace_id: int, result: ApiResult) -> None:
        self._on_catalog_result(result)
        if not result.ok:
            return

        if self.get_tab(workspace_id) is None:
            return
        if self.edit_mode.editing and self.edit_mode.tab_id == workspace_id:
            logger.warning(f"Not applying stored copy of workspace {workspace_id}: tab is being edited")
            return
        saved = next((ws for ws in self.workspaces if ws.id == workspace_id), None)
        if saved is not None:
            self.update_tab_workspace(saved)

    # ==========================================================================
    # Catalog
    # ==========================================================================

    def create_from_template(
        self,
        template: GridTemplate,
        name: str | None = None,
        theme_key: str | None = None,
        menu_id: int | None = None,
    ) -> Tab:
        """
        Create a new workspace from a grid template and open it in Editing.

        The id is the current timestamp, bumped past every known workspace
        id so two creations within the same millisecond never collide.
        """
        root = grid_algebra.instantiate(template, menu_id)
        known_ids = [tab.id for tab in self.tabs] + [ws.id for ws in self.workspaces]
        raw: dict[str, Any] = {
            "id": max(timestamp_ms(), max(known_ids, default=0) + 1),
            "layout": [root],
            "themeKey": theme_key,
            "menuId": (root.model_extra or {}).get("menuId", get_settings().default_menu_id),
        }
        if name:
            raw["name"] = name
        workspace = build_workspace(raw)
        return self.open_tab(workspace, preview=False)

    def load_workspaces(self) -> DispatchOutcome:
        return self.client.dispatch(
            "workspace", "list", self.client.api.list_workspaces, handler=self._on_catalog_result
        )

    def _on_catalog_result(self, result: ApiResult) -> None:
        self._report(result)
        if result.ok:
            if "workspaces" in result.payload:
                self.workspaces = rebuild_workspaces(result.payload)
        elif result.event == "WORKSPACE_LIST_ERROR":
            self.workspaces = []

    def delete_workspace(self, workspace_id: int) -> DispatchOutcome:
        return self.client.dispatch(
            "workspace",
            "delete",
            self.client.api.delete_workspace,
            workspace_id,
            handler=partial(self._on_delete_result, workspace_id),
        )

    def _on_delete_result(self, workspace_id: int, result: ApiResult) -> None:
        self._report(result)
        if not result.ok:
            return
        if "workspaces" in result.payload:
            self.workspaces = rebuild_workspaces(result.payload)
        else:
            self.workspaces = [ws for ws in self.workspaces if ws.id != workspace_id]
        self.close_tab(workspace_id)

    def list_menu_items(self) -> DispatchOutcome:
        return self.client.dispatch(
            "menu_item", "list", self.client.api.list_menu_items, handler=self._on_menu_result
        )

    def save_menu_item(self, menu_item: dict[str, Any]) -> DispatchOutcome:
        return self.client.dispatch(
            "menu_item",
            "save",
            self.client.api.save_menu_item,
            menu_item,
            handler=self._on_menu_result,
        )

    def _on_menu_result(self, result: ApiResult) -> None:
        self._report(result)
        if result.ok:
            self.menu_items = list(result.payload.get("menuItems", []))
        elif result.event == "MENU_ITEM_LIST_ERROR":
            self.menu_items = []
