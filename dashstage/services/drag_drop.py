"""
Drag-and-Drop Reparenting

Decides where a dragged node may be dropped and performs the move as one
tree transition: either the returned tree has the node under its new parent
with consistent sibling orders and grid cells, or an error is raised and the
caller keeps the old tree.
"""

import logging

from dashstage.core.exceptions import IllegalTargetError
from dashstage.models.contracts.layout import Direction, LayoutNode
from dashstage.services import grid_algebra
from dashstage.services.layout_tree import ROOT_PARENT, LayoutTree, clear_cells_referencing

logger = logging.getLogger(__name__)

# Drag type every container advertises
LAYOUT_DRAG_TAG = "layout"


def _required_workspace(node: LayoutNode) -> str:
    return node.parent_workspace_name or LAYOUT_DRAG_TAG


def drag_tag(node: LayoutNode) -> str:
    """Drag type a node advertises to drop surfaces."""
    if node.kind == "container":
        return LAYOUT_DRAG_TAG
    return _required_workspace(node)


def legal_targets(node: LayoutNode, tree: LayoutTree) -> set[str]:
    """
    Workspace-names of the containers `node` may be dropped into.

    Containers may go into any container or grid of the workspace. Widgets
    (and grids) may only go into containers declaring the workspace-name
    they are tagged with.
    """
    if node.kind == "container":
        return {n.workspace for n in tree if n.accepts_children}
    return {_required_workspace(node)}


def move(tree: LayoutTree, node_id: int, new_parent_id: int) -> LayoutTree:
    """
    Detach node_id from its parent and append it as the last child of
    new_parent_id.

    The old siblings are renumbered 1..n, a grid cell of the old parent that
    showed the node is cleared, and a grid new parent shows the node in its
    next free cell.

    Raises:
        NodeNotFoundError: If node_id does not exist
        IllegalTargetError: If new_parent_id is missing, is a widget, is the
            node itself or one of its descendants, or is a full grid; or if
            node_id is the root
    """
    node = tree.find_by_id(node_id)
    if node.parent == ROOT_PARENT:
        raise IllegalTargetError("The root node cannot be moved")
    if new_parent_id not in tree:
        raise IllegalTargetError(f"Drop target {new_parent_id} does not exist")
    if new_parent_id == node_id or new_parent_id in tree.descendants_of(node_id):
        raise IllegalTargetError(
            f"Moving node {node_id} under {new_parent_id} would create a cycle"
        )
    if not tree.find_by_id(new_parent_id).accepts_children:
        raise IllegalTargetError(f"Widget {new_parent_id} cannot hold children")

    old_parent_id = node.parent
    old_parent = tree.find_by_id(old_parent_id)
    if old_parent.kind == "grid":
        tree = tree.replace(old_parent_id, clear_cells_referencing(old_parent, {node_id}))

    new_order = max(
        (child.order for child in tree.children_of(new_parent_id) if child.id != node_id),
        default=0,
    ) + 1
    tree = tree.replace(
        node_id, node.model_copy(update={"parent": new_parent_id, "order": new_order})
    )
    tree = tree.renumber(old_parent_id)

    new_parent = tree.find_by_id(new_parent_id)
    if new_parent.kind == "grid":
        free_cell = grid_algebra.next_available_cell(new_parent.grid)
        if free_cell is None:
            raise IllegalTargetError(f"Grid {new_parent_id} has no free cell for node {node_id}")
        tree = tree.replace(
            new_parent_id, grid_algebra.set_cell_component(new_parent, free_cell, node_id)
        )

    logger.debug(f"Moved node {node_id} from {old_parent_id} to {new_parent_id}")
    return tree


def drop(tree: LayoutTree, node_id: int, target_id: int) -> LayoutTree:
    """Validate a drop against legal_targets(), then move."""
    node = tree.find_by_id(node_id)
    if target_id not in tree:
        raise IllegalTargetError(f"Drop target {target_id} does not exist")
    target = tree.find_by_id(target_id)
    if not target.accepts_children:
        raise IllegalTargetError(f"Cannot drop onto widget {target_id}")

    allowed = legal_targets(node, tree)
    if target.workspace not in allowed:
        raise IllegalTargetError(
            f"Node {node_id} ({drag_tag(node)}) cannot be dropped into a "
            f"'{target.workspace}' container"
        )
    return move(tree, node_id, target_id)


def change_order(tree: LayoutTree, node_id: int, position: int) -> LayoutTree:
    """Move a node to a 1-based position among its siblings."""
    node = tree.find_by_id(node_id)
    siblings = [child.id for child in tree.children_of(node.parent) if child.id != node_id]
    index = min(max(position, 1), len(siblings) + 1) - 1
    siblings.insert(index, node_id)
    logger.debug(f"Node {node_id} now at position {index + 1} under {node.parent}")
    return tree.renumber(node.parent, siblings)


def change_direction(tree: LayoutTree, node_id: int, direction: Direction) -> LayoutTree:
    """Set the flow direction of a container or grid."""
    if direction not in ("row", "col"):
        raise ValueError(f"Unknown direction: {direction}")
    node = tree.find_by_id(node_id)
    if node.kind == "widget":
        raise IllegalTargetError(f"Widget {node_id} has no direction")
    if node.direction == direction:
        return tree
    return tree.replace(node_id, node.model_copy(update={"direction": direction}))
