"""
Layout Tree

Immutable view over one workspace's flattened node sequence. Builds an id
index and a parent -> ordered children index once, so lookups and child
listings never rescan the sequence. Every mutation returns a new tree;
untouched nodes are shared between the old and new tree and must not be
modified in place.
"""

import logging
from collections import deque
from typing import Iterable, Iterator

from dashstage.config import get_settings
from dashstage.core.exceptions import IllegalTargetError, NodeNotFoundError, StructureError
from dashstage.models.contracts.layout import LayoutNode, parse_cell_key
from dashstage.services import grid_algebra

logger = logging.getLogger(__name__)

ROOT_PARENT = 0


class LayoutTree:
    """
    Arena of layout nodes with derived indexes.

    Construct with LayoutTree.normalize() for untrusted input. The plain
    constructor only indexes; it assumes ids are already unique.
    """

    def __init__(self, nodes: Iterable[LayoutNode]):
        self._nodes: tuple[LayoutNode, ...] = ()
        self._by_id: dict[int, LayoutNode] = {}
        self._children: dict[int, list[int]] = {}
        self._index(tuple(nodes))

    def _index(self, nodes: tuple[LayoutNode, ...]) -> None:
        children: dict[int, list[tuple[int, int, int]]] = {}
        for position, node in enumerate(nodes):
            children.setdefault(node.parent, []).append((node.order, position, node.id))

        synced = []
        for node in nodes:
            count = len(children.get(node.id, ()))
            if node.has_children != count:
                node = node.model_copy(update={"has_children": count})
            synced.append(node)

        self._nodes = tuple(synced)
        self._by_id = {node.id: node for node in self._nodes}
        self._children = {
            parent: [node_id for _, _, node_id in sorted(entries)]
            for parent, entries in children.items()
        }

    # ==========================================================================
    # Construction
    # ==========================================================================

    @classmethod
    def normalize(
        cls,
        nodes: Iterable[LayoutNode],
        tie_break: str | None = None,
    ) -> "LayoutTree":
        """
        Validate a raw node sequence and return a canonical tree.

        Sibling orders are renumbered to 1..n. Siblings sharing an order keep
        their input order ("stable") or the later one wins the lower rank
        ("last_write_wins"). Widgets lose any direction and has_children is
        recomputed.

        Raises:
            StructureError: On duplicate ids, zero or several roots, a parent
                that points at no node, a widget with children, or a cycle.
        """
        tie_break = tie_break or get_settings().order_tie_break
        nodes = list(nodes)

        by_id: dict[int, LayoutNode] = {}
        for node in nodes:
            if node.id == ROOT_PARENT:
                raise StructureError("Node id 0 is reserved for the root's parent")
            if node.id in by_id:
                raise StructureError(f"Duplicate layout node id: {node.id}")
            by_id[node.id] = node

        roots = [node for node in nodes if node.parent == ROOT_PARENT]
        if len(roots) != 1:
            raise StructureError(f"Layout must have exactly one root, found {len(roots)}")

        for node in nodes:
            if node.parent == ROOT_PARENT:
                continue
            parent = by_id.get(node.parent)
            if parent is None:
                raise StructureError(
                    f"Node {node.id} references missing parent {node.parent}"
                )
            if not parent.accepts_children:
                raise StructureError(f"Widget {parent.id} cannot have child {node.id}")

        groups: dict[int, list[tuple[int, int, LayoutNode]]] = {}
        for position, node in enumerate(nodes):
            rank = position if tie_break == "stable" else -position
            groups.setdefault(node.parent, []).append((node.order, rank, node))

        reachable = {roots[0].id}
        queue = deque([roots[0].id])
        while queue:
            current = queue.popleft()
            for _, _, child in groups.get(current, ()):
                if child.id not in reachable:
                    reachable.add(child.id)
                    queue.append(child.id)
        if len(reachable) != len(nodes):
            looped = sorted(set(by_id) - reachable)
            raise StructureError(f"Layout nodes form a cycle: {looped}")

        canonical: dict[int, LayoutNode] = {}
        for parent_id, entries in groups.items():
            entries.sort(key=lambda entry: (entry[0], entry[1]))
            for order, (_, _, node) in enumerate(entries, start=1):
                update: dict = {}
                if node.order != order:
                    update["order"] = order
                if node.kind == "widget" and node.direction is not None:
                    update["direction"] = None
                canonical[node.id] = node.model_copy(update=update) if update else node

        # Keep the input sequence so re-normalizing is a no-op
        return cls(canonical[node.id] for node in nodes)

    # ==========================================================================
    # Queries
    # ==========================================================================

    def __iter__(self) -> Iterator[LayoutNode]:
        return iter(self._nodes)

    def __len__(self) -> int:
        return len(self._nodes)

    def __contains__(self, node_id: object) -> bool:
        return node_id in self._by_id

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LayoutTree):
            return NotImplemented
        return self._nodes == other._nodes

    def find_by_id(self, node_id: int) -> LayoutNode:
        node = self._by_id.get(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return node

    def find_by_uuid(self, uuid: str) -> LayoutNode:
        for node in self._nodes:
            if node.uuid == uuid:
                return node
        raise NodeNotFoundError(uuid, f"No layout node with uuid: {uuid}")

    def children_of(self, node_id: int) -> list[LayoutNode]:
        """Direct children of a node, ascending by order. 0 yields the root."""
        if node_id != ROOT_PARENT and node_id not in self._by_id:
            raise NodeNotFoundError(node_id)
        return [self._by_id[child] for child in self._children.get(node_id, ())]

    def count_children(self, node_id: int) -> int:
        if node_id != ROOT_PARENT and node_id not in self._by_id:
            raise NodeNotFoundError(node_id)
        return len(self._children.get(node_id, ()))

    def root_of(self) -> LayoutNode:
        roots = self._children.get(ROOT_PARENT, [])
        if len(roots) != 1:
            raise StructureError(f"Layout must have exactly one root, found {len(roots)}")
        return self._by_id[roots[0]]

    def descendants_of(self, node_id: int) -> list[int]:
        """Ids of every node below node_id, breadth first."""
        self.find_by_id(node_id)
        found: list[int] = []
        queue = deque(self._children.get(node_id, ()))
        while queue:
            current = queue.popleft()
            if current == node_id or current in found:
                raise StructureError(f"Layout nodes form a cycle at {current}")
            found.append(current)
            queue.extend(self._children.get(current, ()))
        return found

    def ancestors_of(self, node_id: int) -> list[int]:
        """Ids from the direct parent up to the root."""
        node = self.find_by_id(node_id)
        chain: list[int] = []
        while node.parent != ROOT_PARENT:
            if node.parent in chain or node.parent == node_id:
                raise StructureError(f"Layout nodes form a cycle at {node.parent}")
            chain.append(node.parent)
            node = self.find_by_id(node.parent)
        return chain

    def next_id(self) -> int:
        return max(self._by_id, default=ROOT_PARENT) + 1

    def next_order(self, parent_id: int) -> int:
        siblings = self._children.get(parent_id, ())
        return max((self._by_id[s].order for s in siblings), default=0) + 1

    def to_list(self) -> list[LayoutNode]:
        return list(self._nodes)

    # ==========================================================================
    # Mutations (each returns a new tree)
    # ==========================================================================

    def replace(self, node_id: int, node: LayoutNode) -> "LayoutTree":
        """Swap the node at node_id for `node`, keeping its sequence position."""
        self.find_by_id(node_id)
        if node.id != node_id:
            raise StructureError(
                f"Replacement for node {node_id} carries a different id ({node.id})"
            )
        return LayoutTree(node if n.id == node_id else n for n in self._nodes)

    def with_updates(self, updates: dict[int, LayoutNode]) -> "LayoutTree":
        """Replace several nodes at once."""
        for node_id, node in updates.items():
            self.find_by_id(node_id)
            if node.id != node_id:
                raise StructureError(
                    f"Replacement for node {node_id} carries a different id ({node.id})"
                )
        return LayoutTree(updates.get(n.id, n) for n in self._nodes)

    def renumber(self, parent_id: int, ordered_ids: list[int] | None = None) -> "LayoutTree":
        """Assign orders 1..n to a parent's children, optionally in a new sequence."""
        current = self._children.get(parent_id, [])
        ordered = current if ordered_ids is None else ordered_ids
        if sorted(ordered) != sorted(current):
            raise StructureError(f"Reordering must list exactly the children of {parent_id}")
        updates = {
            child_id: self._by_id[child_id].model_copy(update={"order": order})
            for order, child_id in enumerate(ordered, start=1)
            if self._by_id[child_id].order != order
        }
        return self.with_updates(updates) if updates else self

    def add_child(
        self,
        parent_id: int,
        node: LayoutNode,
        cell_key: str | None = None,
    ) -> tuple["LayoutTree", LayoutNode]:
        """
        Append a node as the last child of parent_id.

        The node receives a fresh id and the next sibling order. Under a grid
        parent it is placed in cell_key, or the next free visible cell.

        Returns:
            The new tree and the node as stored in it.

        Raises:
            NodeNotFoundError: If the parent does not exist
            IllegalTargetError: If the parent is a widget or the grid has no free cell
        """
        parent = self.find_by_id(parent_id)
        if not parent.accepts_children:
            raise IllegalTargetError(f"Widget {parent_id} cannot hold children")

        new_id = self.next_id()
        child = node.model_copy(
            update={
                "id": new_id,
                "parent": parent_id,
                "order": self.next_order(parent_id),
                "parent_workspace_name": parent.workspace,
            },
            deep=True,
        )

        nodes = list(self._nodes)
        if parent.kind == "grid":
            target_cell = cell_key or grid_algebra.next_available_cell(parent.grid)
            if target_cell is None:
                raise IllegalTargetError(f"Grid {parent_id} has no free cell for node {new_id}")
            placed = grid_algebra.set_cell_component(parent, target_cell, new_id)
            nodes = [placed if n.id == parent_id else n for n in nodes]

        nodes.append(child)
        logger.debug(f"Added node {new_id} ({child.component}) under {parent_id}")
        tree = LayoutTree(nodes)
        return tree, tree.find_by_id(new_id)

    def remove(self, node_id: int) -> "LayoutTree":
        """
        Remove a node and its whole subtree.

        Grid cells that referenced a removed node are cleared and the
        remaining siblings are renumbered contiguously.

        Raises:
            StructureError: When asked to remove the root
        """
        node = self.find_by_id(node_id)
        if node.parent == ROOT_PARENT:
            raise StructureError("The root node cannot be removed")

        removed = {node_id, *self.descendants_of(node_id)}
        kept = [n for n in self._nodes if n.id not in removed]

        parent = self._by_id[node.parent]
        if parent.kind == "grid":
            parent = clear_cells_referencing(parent, removed)
            kept = [parent if n.id == parent.id else n for n in kept]

        logger.debug(f"Removed node {node_id} and {len(removed) - 1} descendant(s)")
        return LayoutTree(kept).renumber(node.parent)


def clear_cells_referencing(grid_node: LayoutNode, node_ids: set[int]) -> LayoutNode:
    """Empty every cell of grid_node whose component is one of node_ids."""
    if grid_node.grid is None:
        return grid_node
    updated = grid_node
    for key, cell in grid_node.grid.cells.items():
        if parse_cell_key(key) is None or cell.component is None:
            continue
        if component_id(cell.component) in node_ids:
            updated = grid_algebra.set_cell_component(updated, key, None)
    return updated


def cell_of(grid_node: LayoutNode, node_id: int) -> str | None:
    """Key of the cell rendering node_id, if any."""
    if grid_node.grid is None:
        return None
    for key in grid_node.grid.keys_row_major():
        cell = grid_node.grid.cells.get(key)
        if cell is not None and component_id(cell.component) == node_id:
            return key
    return None


def component_id(component: int | str | None) -> int | None:
    """Node id referenced by a grid cell component, if it is one."""
    if isinstance(component, int):
        return component
    if isinstance(component, str) and component.isdigit():
        return int(component)
    return None
