"""
Workspace Reconstruction

Turns stored workspace payloads (as listed or echoed by the Dashboard API)
into validated Workspace models, and back:
- Rebuild every node with the layout defaults of stored dashboards
- Repair grids and normalize the node tree
- Serialize a workspace to its camelCase wire payload
"""

import logging
from typing import Any

from pydantic import ValidationError

from dashstage.config import get_settings
from dashstage.core.exceptions import LayoutError
from dashstage.models.contracts.layout import LayoutNode
from dashstage.models.contracts.workspaces import Workspace, timestamp_ms
from dashstage.services import grid_algebra
from dashstage.services.layout_templates import get_template
from dashstage.services.layout_tree import ROOT_PARENT, LayoutTree

logger = logging.getLogger(__name__)

WORKSPACE_TYPES = frozenset(["layout", "widget", "workspace"])


def _as_dict(item: LayoutNode | dict[str, Any]) -> dict[str, Any]:
    if isinstance(item, LayoutNode):
        return item.model_dump(by_alias=True)
    return dict(item)


# =============================================================================
# Nodes
# =============================================================================


def _nearest_container_workspace(raw: dict[str, Any], by_id: dict[Any, dict[str, Any]]) -> str:
    seen = set()
    parent_id = raw.get("parent", ROOT_PARENT)
    while parent_id != ROOT_PARENT and parent_id not in seen:
        seen.add(parent_id)
        parent = by_id.get(parent_id)
        if parent is None:
            break
        if parent.get("type") != "widget" and parent.get("kind") != "widget":
            return parent.get("workspace") or "layout"
        parent_id = parent.get("parent", ROOT_PARENT)
    return "layout"


def build_node(
    raw: LayoutNode | dict[str, Any],
    layout_raw: list[LayoutNode | dict[str, Any]],
    workspace_id: int,
) -> LayoutNode:
    """
    Rebuild one stored node.

    Kind comes from the legacy type tag, flat grid payloads are folded into
    `cells`, a missing uuid becomes "<workspaceId>-<component>-<id>" and a
    missing parentWorkspaceName is taken from the nearest containing node.
    """
    data = _as_dict(raw)
    data.setdefault("id", 1)
    data.setdefault("parent", ROOT_PARENT)

    component = data.get("componentName") or data.get("component") or "Container"
    if not data.get("uuid"):
        data["uuid"] = f"{workspace_id}-{component}-{data['id']}"

    parent_workspace = data.get("parentWorkspaceName", data.get("parent_workspace_name"))
    if parent_workspace is None:
        by_id = {}
        for item in layout_raw:
            item_data = _as_dict(item)
            by_id[item_data.get("id")] = item_data
        data["parentWorkspaceName"] = _nearest_container_workspace(data, by_id)
        data.pop("parent_workspace_name", None)

    return LayoutNode.model_validate(data)


def _repair_grid(node: LayoutNode, workspace_id: int) -> LayoutNode:
    if node.kind != "grid" or node.grid is None:
        return node
    repaired = grid_algebra.normalize_grid(node.grid)
    if repaired == node.grid:
        return node
    logger.warning(f"Repaired grid of node {node.id} in workspace {workspace_id}")
    return node.model_copy(update={"grid": repaired})


# =============================================================================
# Workspaces
# =============================================================================


def default_layout(menu_id: int | None = None) -> list[LayoutNode]:
    """Layout of a workspace stored without one: a single 1x1 grid root."""
    return [grid_algebra.instantiate(get_template("single"), menu_id)]


def build_workspace(raw: Workspace | dict[str, Any]) -> Workspace:
    """
    Rebuild a stored workspace.

    Raises:
        StructureError: If the stored layout violates the tree invariants
    """
    if isinstance(raw, Workspace):
        data = raw.model_dump(by_alias=True)
    else:
        data = dict(raw)

    workspace_id = data.get("id") or timestamp_ms()
    data["id"] = workspace_id
    data.setdefault("menuId", data.pop("menu_id", get_settings().default_menu_id))
    if data.get("type") not in WORKSPACE_TYPES:
        data["type"] = "workspace"

    layout_raw = data.get("layout") or []
    if layout_raw:
        nodes = [build_node(item, layout_raw, workspace_id) for item in layout_raw]
    else:
        nodes = default_layout(data["menuId"])

    nodes = [_repair_grid(node, workspace_id) for node in nodes]
    data["layout"] = LayoutTree.normalize(nodes).to_list()
    return Workspace.model_validate(data)


def rebuild_workspaces(payload: dict[str, Any] | list[Any]) -> list[Workspace]:
    """
    Rebuild every workspace of a list result or a save echo.

    A stored workspace that cannot be rebuilt is skipped with a warning so
    one bad record never blocks the rest of the catalog.
    """
    items = payload.get("workspaces", []) if isinstance(payload, dict) else payload
    workspaces = []
    for item in items or []:
        try:
            workspaces.append(build_workspace(item))
        except (LayoutError, ValidationError) as e:
            item_id = item.get("id") if isinstance(item, dict) else getattr(item, "id", None)
            logger.warning(f"Skipping stored workspace {item_id}: {e}")
    return workspaces


def workspace_to_payload(workspace: Workspace) -> dict[str, Any]:
    """camelCase wire dict sent to the Dashboard API on save."""
    return workspace.model_dump(mode="json", by_alias=True)
