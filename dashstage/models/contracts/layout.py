"""
Layout Contract Models

Pydantic models for one workspace's flattened node tree:
- LayoutNode: one grid, container or widget, addressed by id and parent id
- GridSpec / GridCell / CellSpan: the cell map carried by grid nodes

Wire names are camelCase (selectedProviders, userPrefs, parentWorkspaceName);
Python attributes are snake_case. Both spellings are accepted on input.
"""

from __future__ import annotations

import re
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


# -----------------------------------------------------------------------------
# Literal Types
# -----------------------------------------------------------------------------

NodeKind = Literal["grid", "container", "widget"]

Direction = Literal["row", "col"]

SplitDirection = Literal["horizontal", "vertical"]

# Legacy type tags that denote a container in stored layouts
CONTAINER_TAGS = frozenset(["layout", "workspace", "container"])

CELL_KEY_PATTERN = re.compile(r"^(\d+)\.(\d+)$")


def cell_key(row: int, col: int) -> str:
    """Build the "row.col" key of a grid cell."""
    return f"{row}.{col}"


def parse_cell_key(key: str) -> tuple[int, int] | None:
    """Split a "row.col" key into integers, or None if it is not a cell key."""
    match = CELL_KEY_PATTERN.match(key)
    if match is None:
        return None
    return int(match.group(1)), int(match.group(2))


class ContractModel(BaseModel):
    """Base for contract models: camelCase on the wire, snake_case in Python."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# -----------------------------------------------------------------------------
# Grid
# -----------------------------------------------------------------------------


class CellSpan(ContractModel):
    """Number of rows and columns a merged cell covers, origin included."""

    row: int = Field(default=1, ge=1)
    col: int = Field(default=1, ge=1)


class GridCell(ContractModel):
    """One "row.col" entry of a grid."""

    component: int | str | None = Field(
        default=None, description="Id of the layout node rendered in this cell"
    )
    hide: bool = Field(default=False, description="Covered by another cell's span")
    span: CellSpan | None = Field(default=None, description="Merged region, if any")


class GridSpec(ContractModel):
    """Cell map of a grid node."""

    rows: int = Field(default=1, ge=1)
    cols: int = Field(default=1, ge=1)
    gap: str = Field(default="gap-2", description="Gap class between cells")
    cells: dict[str, GridCell] = Field(default_factory=dict)
    row_heights: dict[str, int] | None = Field(
        default=None, description="Row number -> height multiplier (absent means 1)"
    )

    @model_validator(mode="before")
    @classmethod
    def fold_flat_cells(cls, data: Any) -> Any:
        """Accept stored grids whose cell keys sit next to rows/cols."""
        if not isinstance(data, dict):
            return data
        flat = {
            k: v for k, v in data.items()
            if isinstance(k, str) and CELL_KEY_PATTERN.match(k)
        }
        if not flat:
            return data
        folded = {k: v for k, v in data.items() if k not in flat}
        cells = dict(flat)
        cells.update(folded.get("cells") or {})
        folded["cells"] = cells
        return folded

    def keys_row_major(self) -> list[str]:
        """All in-bounds cell keys, row by row."""
        return [
            cell_key(r, c)
            for r in range(1, self.rows + 1)
            for c in range(1, self.cols + 1)
        ]


# -----------------------------------------------------------------------------
# Layout node
# -----------------------------------------------------------------------------


class LayoutNode(ContractModel):
    """
    One element of a workspace's tree.

    Nodes live in a flat sequence; `parent` holds the owning node's id and 0
    marks the root. Unknown keys from stored layouts (listeners, events, ...)
    are kept and written back untouched.
    """

    model_config = ConfigDict(
        alias_generator=to_camel, populate_by_name=True, extra="allow"
    )

    id: int = Field(description="Unique within the workspace")
    parent: int = Field(default=0, description="Owning node id, 0 for the root")
    order: int = Field(default=1, description="Rank among siblings")
    kind: NodeKind = Field(default="container")
    direction: Direction | None = Field(
        default=None, description="Flow direction, containers and grids only"
    )
    component: str = Field(default="Container", description="Registry component name")
    workspace: str = Field(
        default="layout", description="Workspace-name this node declares"
    )
    parent_workspace_name: str | None = Field(
        default=None, description="Workspace-name of the container this node must live in"
    )
    uuid: str | None = Field(default=None, description="Stable widget instance id")
    grid: GridSpec | None = None
    scrollable: bool = False
    width: str = "w-full"
    height: str = "h-full"
    selected_providers: dict[str, str] = Field(default_factory=dict)
    user_prefs: dict[str, Any] = Field(default_factory=dict)
    has_children: int = Field(default=0, description="Derived child count")

    @model_validator(mode="before")
    @classmethod
    def map_legacy_tags(cls, data: Any) -> Any:
        """Derive `kind` from the legacy type/component/grid tag combination."""
        if not isinstance(data, dict):
            return data
        data = dict(data)
        legacy_type = data.pop("type", None)
        if "componentName" in data:
            data["component"] = data.pop("componentName")
        if "kind" not in data:
            if legacy_type == "widget":
                data["kind"] = "widget"
            elif legacy_type == "grid" or data.get("grid") is not None:
                data["kind"] = "grid"
            else:
                data["kind"] = "container"
        scrollable = data.get("scrollable")
        if isinstance(scrollable, str):
            data["scrollable"] = scrollable.lower() != "false"
        return data

    @model_validator(mode="after")
    def enforce_kind_fields(self) -> LayoutNode:
        """Direction only on containers/grids, grid payload only on grids."""
        if self.kind == "widget":
            self.direction = None
            self.grid = None
        else:
            if self.direction is None:
                self.direction = "col"
            if self.kind == "grid" and self.grid is None:
                self.grid = GridSpec(cells={"1.1": GridCell()})
            elif self.kind == "container":
                self.grid = None
        return self

    @property
    def accepts_children(self) -> bool:
        return self.kind != "widget"
