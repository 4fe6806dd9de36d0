"""
Grid Template Algebra

Builds and edits the cell map of grid nodes:
- Instantiate a grid node from a declarative template
- Assign components to cells, merge and split spans
- Add/delete rows and columns, row height multipliers
- Normalize (repair) and validate persisted grids

Every function returns a new node or grid; inputs are never modified.
"""

import logging

from dashstage.config import get_settings
from dashstage.core.exceptions import (
    SpanOutOfBoundsError,
    StructureError,
    UnknownCellError,
)
from dashstage.models.contracts.layout import (
    CellSpan,
    GridCell,
    GridSpec,
    LayoutNode,
    SplitDirection,
    cell_key,
    parse_cell_key,
)
from dashstage.models.contracts.templates import GridTemplate

logger = logging.getLogger(__name__)

ROOT_GRID_COMPONENT = "LayoutGridContainer"


# =============================================================================
# Helpers
# =============================================================================


def _span_of(cell: GridCell) -> tuple[int, int]:
    if cell.span is None:
        return 1, 1
    return cell.span.row, cell.span.col


def _set_span(cell: GridCell, rows: int, cols: int) -> None:
    cell.span = None if rows <= 1 and cols <= 1 else CellSpan(row=rows, col=cols)


def _grid_of(node: LayoutNode) -> GridSpec:
    """Deep copy of the node's grid, or StructureError for non-grid nodes."""
    if node.kind != "grid" or node.grid is None:
        raise StructureError(f"Layout node {node.id} is not a grid")
    return node.grid.model_copy(deep=True)


def _with_grid(node: LayoutNode, grid: GridSpec) -> LayoutNode:
    return node.model_copy(update={"grid": grid})


def _require_cell(grid: GridSpec, key: str) -> GridCell:
    cell = grid.cells.get(key)
    if cell is None or parse_cell_key(key) is None:
        raise UnknownCellError(key)
    return cell


def _check_region(grid: GridSpec, row: int, col: int, rows: int, cols: int) -> None:
    if row < 1 or col < 1 or row > grid.rows or col > grid.cols:
        raise SpanOutOfBoundsError(
            f"Cell {cell_key(row, col)} is outside a {grid.rows}x{grid.cols} grid"
        )
    if row + rows - 1 > grid.rows or col + cols - 1 > grid.cols:
        raise SpanOutOfBoundsError(
            f"Span {rows}x{cols} at {cell_key(row, col)} exceeds a "
            f"{grid.rows}x{grid.cols} grid"
        )


def _region(row: int, col: int, rows: int, cols: int) -> set[tuple[int, int]]:
    return {
        (r, c)
        for r in range(row, row + rows)
        for c in range(col, col + cols)
    }


def _covered_by_others(grid: GridSpec, exclude: str) -> set[tuple[int, int]]:
    """Positions covered by every span except the one anchored at `exclude`."""
    covered: set[tuple[int, int]] = set()
    for key, cell in grid.cells.items():
        if key == exclude or cell.span is None:
            continue
        rc = parse_cell_key(key)
        if rc is None:
            continue
        covered |= _region(rc[0], rc[1], cell.span.row, cell.span.col)
    return covered


# =============================================================================
# Template instantiation
# =============================================================================


def instantiate(template: GridTemplate, menu_id: int | None = None) -> LayoutNode:
    """
    Build the root grid node of a new workspace from a template.

    Every declared cell becomes an entry keyed "row.col" carrying
    {component: None, hide: cell.hide, span: cell.span}. Coverage is not
    inferred: covered cells must be declared hidden by the template.

    Raises:
        SpanOutOfBoundsError: If a cell or span leaves the template bounds,
            or two spans overlap.
    """
    settings = get_settings()
    grid = GridSpec(rows=template.rows, cols=template.cols, gap=settings.default_grid_gap)

    for cell in template.cells:
        row, col = parse_cell_key(cell.key)  # type: ignore[misc]
        span = cell.span
        _check_region(grid, row, col, span.row if span else 1, span.col if span else 1)
        grid.cells[cell.key] = GridCell(
            component=None,
            hide=cell.hide,
            span=span.model_copy() if span else None,
        )

    validate_grid(grid)

    return LayoutNode(
        id=1,
        parent=0,
        order=1,
        kind="grid",
        component=ROOT_GRID_COMPONENT,
        workspace="layout",
        width="w-full",
        height="h-full",
        scrollable=False,
        grid=grid,
        menuId=menu_id if menu_id is not None else settings.default_menu_id,
    )


# =============================================================================
# Cell edits
# =============================================================================


def set_cell_component(node: LayoutNode, key: str, component: int | str | None) -> LayoutNode:
    """Assign a node id (or None to clear) to one cell."""
    grid = _grid_of(node)
    _require_cell(grid, key).component = component
    return _with_grid(node, grid)


def merge_span(node: LayoutNode, key: str, span: CellSpan) -> LayoutNode:
    """
    Set a cell's span, hiding the cells it newly covers and revealing the
    ones it no longer covers.

    Raises:
        UnknownCellError: If key is not a cell of the grid
        SpanOutOfBoundsError: If the span leaves the grid or overlaps another span
    """
    grid = _grid_of(node)
    cell = _require_cell(grid, key)
    row, col = parse_cell_key(key)  # type: ignore[misc]
    _check_region(grid, row, col, span.row, span.col)

    new_region = _region(row, col, span.row, span.col)
    if new_region & _covered_by_others(grid, exclude=key):
        raise SpanOutOfBoundsError(f"Span {span.row}x{span.col} at {key} overlaps another span")
    for other_key, other in grid.cells.items():
        rc = parse_cell_key(other_key)
        if other_key != key and other.span is not None and rc in new_region:
            raise SpanOutOfBoundsError(
                f"Span {span.row}x{span.col} at {key} covers the merged cell {other_key}"
            )

    old_rows, old_cols = _span_of(cell)
    for r, c in _region(row, col, old_rows, old_cols) - new_region:
        covered = grid.cells.get(cell_key(r, c))
        if covered is not None:
            covered.hide = False

    for r, c in new_region - {(row, col)}:
        covered = grid.cells.setdefault(cell_key(r, c), GridCell())
        covered.hide = True

    _set_span(cell, span.row, span.col)
    cell.hide = False
    return _with_grid(node, grid)


def split_span(node: LayoutNode, key: str) -> LayoutNode:
    """Remove a cell's span and reveal every cell it covered."""
    grid = _grid_of(node)
    cell = _require_cell(grid, key)
    if cell.span is None:
        return _with_grid(node, grid)

    row, col = parse_cell_key(key)  # type: ignore[misc]
    for r, c in _region(row, col, cell.span.row, cell.span.col):
        covered = grid.cells.get(cell_key(r, c))
        if covered is not None:
            covered.hide = False
    cell.span = None
    return _with_grid(node, grid)


def merge_cells(node: LayoutNode, keys: list[str]) -> tuple[LayoutNode, list[int | str]]:
    """
    Merge the bounding box of the selected cells (their spans included)
    into its top-left cell, which shows the first selected cell's component.

    Returns:
        The new node and the components displaced from the other cells.
    """
    if not keys:
        raise UnknownCellError("", "No cells selected to merge")

    grid = _grid_of(node)
    min_row = min_col = None
    max_row = max_col = 0
    for key in keys:
        cell = _require_cell(grid, key)
        row, col = parse_cell_key(key)  # type: ignore[misc]
        rows, cols = _span_of(cell)
        min_row = row if min_row is None else min(min_row, row)
        min_col = col if min_col is None else min(min_col, col)
        max_row = max(max_row, row + rows - 1)
        max_col = max(max_col, col + cols - 1)

    origin = cell_key(min_row, min_col)
    kept = grid.cells[keys[0]].component
    displaced: list[int | str] = []
    region = _region(min_row, min_col, max_row - min_row + 1, max_col - min_col + 1)
    for r, c in sorted(region):
        key = cell_key(r, c)
        cell = grid.cells.setdefault(key, GridCell())
        if cell.component is not None and key != keys[0]:
            displaced.append(cell.component)
        cell.component = None
        cell.span = None
        cell.hide = key != origin

    grid.cells[origin].component = kept
    logger.debug(f"Merged {len(keys)} cell(s) of node {node.id} into {origin}")
    _set_span(grid.cells[origin], max_row - min_row + 1, max_col - min_col + 1)
    return _with_grid(node, normalize_grid(grid)), displaced


def split_cell(
    node: LayoutNode,
    key: str,
    direction: SplitDirection,
    count: int = 2,
) -> LayoutNode:
    """
    Split a cell into `count` cells side by side (horizontal) or stacked
    (vertical).

    When the cell's span along the split axis is divisible by `count` the
    cell is subdivided in place. Otherwise the grid resolution along that
    axis is multiplied by `count` and every visible cell is rescaled so the
    rest of the layout keeps its proportions.
    """
    max_count = get_settings().max_split_count
    if count < 2 or count > max_count:
        raise ValueError(f"Split count must be between 2 and {max_count}, got {count}")
    if direction not in ("horizontal", "vertical"):
        raise ValueError(f"Unknown split direction: {direction}")

    grid = _grid_of(node)
    target = _require_cell(grid, key)
    if target.hide:
        raise UnknownCellError(key, f"Cell {key} is covered by another cell and cannot be split")

    row, col = parse_cell_key(key)  # type: ignore[misc]
    span_rows, span_cols = _span_of(target)
    component = target.component
    horizontal = direction == "horizontal"
    along = span_cols if horizontal else span_rows

    if along % count == 0:
        sub = along // count
        for r, c in _region(row, col, span_rows, span_cols):
            covered = grid.cells.get(cell_key(r, c))
            if covered is not None:
                covered.hide = False
        target.span = None
        for i in range(count):
            if horizontal:
                piece_key = cell_key(row, col + i * sub)
                rows, cols = span_rows, sub
            else:
                piece_key = cell_key(row + i * sub, col)
                rows, cols = sub, span_cols
            piece = GridCell(component=component if i == 0 else None)
            _set_span(piece, rows, cols)
            grid.cells[piece_key] = piece
        return _with_grid(node, normalize_grid(grid))

    # Rescale the whole axis
    logger.debug(f"Rescaling grid of node {node.id} by {count} to split cell {key}")
    visible = []
    for vkey in grid.keys_row_major():
        cell = grid.cells.get(vkey)
        if cell is not None and not cell.hide:
            r, c = parse_cell_key(vkey)  # type: ignore[misc]
            visible.append((r, c, cell))
    grid.cells = {}

    if horizontal:
        grid.cols = grid.cols * count
    else:
        old_heights = grid.row_heights or {}
        grid.rows = grid.rows * count
        scaled_heights = {
            str((int(k) - 1) * count + i): v
            for k, v in old_heights.items()
            for i in range(1, count + 1)
        }
        grid.row_heights = scaled_heights or None

    for r, c, cell in visible:
        rows, cols = _span_of(cell)
        if horizontal:
            new_key = cell_key(r, (c - 1) * count + 1)
            cols *= count
        else:
            new_key = cell_key((r - 1) * count + 1, c)
            rows *= count
        moved = cell.model_copy(deep=True)
        moved.hide = False
        _set_span(moved, rows, cols)
        grid.cells[new_key] = moved

    for i in range(count):
        if horizontal:
            piece_key = cell_key(row, (col - 1) * count + 1 + i * span_cols)
            rows, cols = span_rows, span_cols
        else:
            piece_key = cell_key((row - 1) * count + 1 + i * span_rows, col)
            rows, cols = span_rows, span_cols
        piece = GridCell(component=component if i == 0 else None)
        _set_span(piece, rows, cols)
        grid.cells[piece_key] = piece

    return _with_grid(node, normalize_grid(grid))


def move_component_to_cell(node: LayoutNode, source_key: str, target_key: str) -> LayoutNode:
    """Move the component of one cell into another cell of the same grid."""
    grid = _grid_of(node)
    source = _require_cell(grid, source_key)
    target = _require_cell(grid, target_key)
    target.component = source.component
    if source_key != target_key:
        source.component = None
    return _with_grid(node, grid)


def change_row_height(node: LayoutNode, row: int, multiplier: int) -> LayoutNode:
    """Set a row's height multiplier; 1 restores the default height."""
    grid = _grid_of(node)
    if row < 1 or row > grid.rows:
        raise SpanOutOfBoundsError(f"Row {row} is outside a {grid.rows}-row grid")
    max_height = get_settings().max_row_height
    if multiplier < 1 or multiplier > max_height:
        raise ValueError(f"Row height multiplier must be between 1 and {max_height}")

    heights = dict(grid.row_heights or {})
    if multiplier == 1:
        heights.pop(str(row), None)
    else:
        heights[str(row)] = multiplier
    grid.row_heights = heights or None
    return _with_grid(node, grid)


def next_available_cell(grid: GridSpec) -> str | None:
    """First visible, empty cell in row-major order."""
    for key in grid.keys_row_major():
        cell = grid.cells.get(key)
        if cell is not None and not cell.hide and cell.component is None:
            return key
    return None


# =============================================================================
# Rows and columns
# =============================================================================


def _shift_cells(grid: GridSpec, axis: str, start: int, delta: int) -> None:
    """Move every cell whose row (or col) is >= start by delta positions."""
    moved: dict[str, GridCell] = {}
    for key, cell in grid.cells.items():
        rc = parse_cell_key(key)
        if rc is None:
            continue
        r, c = rc
        if axis == "row" and r >= start:
            r += delta
        elif axis == "col" and c >= start:
            c += delta
        moved[cell_key(r, c)] = cell
    grid.cells = moved


def _release_axis(grid: GridSpec, axis: str, index: int) -> None:
    """Shrink spans crossing a row (or col) about to be deleted; reveal cells of spans anchored in it."""
    for key, cell in list(grid.cells.items()):
        rc = parse_cell_key(key)
        if rc is None or cell.span is None:
            continue
        rows, cols = _span_of(cell)
        start, length = (rc[0], rows) if axis == "row" else (rc[1], cols)
        if start == index:
            for r, c in _region(rc[0], rc[1], rows, cols):
                covered = grid.cells.get(cell_key(r, c))
                if covered is not None:
                    covered.hide = False
        elif start < index < start + length:
            if axis == "row":
                _set_span(cell, rows - 1, cols)
            else:
                _set_span(cell, rows, cols - 1)


def _shift_row_heights(grid: GridSpec, start: int, delta: int, drop: int | None = None) -> None:
    if not grid.row_heights:
        return
    shifted = {}
    for key, multiplier in grid.row_heights.items():
        row = int(key)
        if row == drop:
            continue
        shifted[str(row + delta if row >= start else row)] = multiplier
    grid.row_heights = shifted or None


def add_row(node: LayoutNode, after_row: int = 0) -> LayoutNode:
    """Insert an empty row after `after_row` (0 inserts at the top)."""
    grid = _grid_of(node)
    if after_row < 0 or after_row > grid.rows:
        raise SpanOutOfBoundsError(f"Cannot insert after row {after_row} of {grid.rows}")
    new_row = after_row + 1
    _shift_cells(grid, "row", new_row, 1)
    _shift_row_heights(grid, new_row, 1)
    grid.rows += 1
    for c in range(1, grid.cols + 1):
        grid.cells[cell_key(new_row, c)] = GridCell()
    return _with_grid(node, normalize_grid(grid))


def delete_row(node: LayoutNode, row: int) -> tuple[LayoutNode, list[int | str]]:
    """
    Delete a row.

    Returns:
        The new node and the components that lived in the deleted row, so the
        caller can remove them from the layout.
    """
    grid = _grid_of(node)
    if grid.rows <= 1:
        raise SpanOutOfBoundsError("Cannot delete the only row of a grid")
    if row < 1 or row > grid.rows:
        raise SpanOutOfBoundsError(f"Row {row} is outside a {grid.rows}-row grid")

    _release_axis(grid, "row", row)
    removed: list[int | str] = []
    for c in range(1, grid.cols + 1):
        cell = grid.cells.pop(cell_key(row, c), None)
        if cell is not None and cell.component is not None:
            removed.append(cell.component)
    _shift_cells(grid, "row", row + 1, -1)
    _shift_row_heights(grid, row + 1, -1, drop=row)
    grid.rows -= 1
    return _with_grid(node, normalize_grid(grid)), removed


def add_column(node: LayoutNode, after_col: int = 0) -> LayoutNode:
    """Insert an empty column after `after_col` (0 inserts at the left)."""
    grid = _grid_of(node)
    if after_col < 0 or after_col > grid.cols:
        raise SpanOutOfBoundsError(f"Cannot insert after column {after_col} of {grid.cols}")
    new_col = after_col + 1
    _shift_cells(grid, "col", new_col, 1)
    grid.cols += 1
    for r in range(1, grid.rows + 1):
        grid.cells[cell_key(r, new_col)] = GridCell()
    return _with_grid(node, normalize_grid(grid))


def delete_column(node: LayoutNode, col: int) -> tuple[LayoutNode, list[int | str]]:
    """Delete a column; returns the new node and the displaced components."""
    grid = _grid_of(node)
    if grid.cols <= 1:
        raise SpanOutOfBoundsError("Cannot delete the only column of a grid")
    if col < 1 or col > grid.cols:
        raise SpanOutOfBoundsError(f"Column {col} is outside a {grid.cols}-column grid")

    _release_axis(grid, "col", col)
    removed: list[int | str] = []
    for r in range(1, grid.rows + 1):
        cell = grid.cells.pop(cell_key(r, col), None)
        if cell is not None and cell.component is not None:
            removed.append(cell.component)
    _shift_cells(grid, "col", col + 1, -1)
    grid.cols -= 1
    return _with_grid(node, normalize_grid(grid)), removed


# =============================================================================
# Repair and validation
# =============================================================================


def _fill_and_clamp(grid: GridSpec) -> None:
    for key in grid.keys_row_major():
        if key not in grid.cells:
            grid.cells[key] = GridCell()

    for key in list(grid.cells):
        rc = parse_cell_key(key)
        if rc is None or rc[0] > grid.rows or rc[1] > grid.cols or rc[0] < 1 or rc[1] < 1:
            del grid.cells[key]

    for key in grid.keys_row_major():
        cell = grid.cells[key]
        if cell.span is not None:
            r, c = parse_cell_key(key)  # type: ignore[misc]
            _set_span(
                cell,
                min(cell.span.row, grid.rows - r + 1),
                min(cell.span.col, grid.cols - c + 1),
            )


def _covered_positions(grid: GridSpec) -> set[tuple[int, int]]:
    covered: set[tuple[int, int]] = set()
    for key, cell in grid.cells.items():
        rc = parse_cell_key(key)
        if rc is None or cell.span is None:
            continue
        covered |= _region(rc[0], rc[1], cell.span.row, cell.span.col) - {rc}
    return covered


def _orphaned(grid: GridSpec, positions: list[tuple[int, int]]) -> bool:
    """Every position holds a hidden, span-less cell that no span covers."""
    covered = _covered_positions(grid)
    for position in positions:
        cell = grid.cells.get(cell_key(*position))
        if cell is None or not cell.hide or cell.span is not None or position in covered:
            return False
    return True


def _compact(grid: GridSpec) -> None:
    """Drop orphaned hidden columns (right to left), then rows (bottom to top)."""
    for c in range(grid.cols, 0, -1):
        if grid.cols <= 1:
            break
        if not _orphaned(grid, [(r, c) for r in range(1, grid.rows + 1)]):
            continue
        for r in range(1, grid.rows + 1):
            del grid.cells[cell_key(r, c)]
        _shift_cells(grid, "col", c + 1, -1)
        grid.cols -= 1

    for r in range(grid.rows, 0, -1):
        if grid.rows <= 1:
            break
        if not _orphaned(grid, [(r, c) for c in range(1, grid.cols + 1)]):
            continue
        for c in range(1, grid.cols + 1):
            del grid.cells[cell_key(r, c)]
        _shift_cells(grid, "row", r + 1, -1)
        _shift_row_heights(grid, r + 1, -1, drop=r)
        grid.rows -= 1


def _rebuild_hide(grid: GridSpec) -> None:
    for key in grid.keys_row_major():
        grid.cells[key].hide = False

    covered: set[tuple[int, int]] = set()
    for key in grid.keys_row_major():
        cell = grid.cells[key]
        if cell.span is None:
            continue
        row, col = parse_cell_key(key)  # type: ignore[misc]
        region = _region(row, col, cell.span.row, cell.span.col)
        if region & covered:
            # An earlier span already owns part of this region
            cell.span = None
            continue
        for r, c in region - {(row, col)}:
            covered_cell = grid.cells[cell_key(r, c)]
            covered_cell.hide = True
            covered_cell.span = None
        covered |= region


def normalize_grid(grid: GridSpec) -> GridSpec:
    """
    Repair a grid: fill missing cells, drop out-of-bounds keys, clamp spans,
    compact orphaned rows/columns, and rebuild hide flags from spans.

    A row or column is orphaned when all its cells are flagged hidden but no
    span covers them. Spans that overlap an earlier span (row-major) are
    dropped. Idempotent; returns a new grid.
    """
    repaired = grid.model_copy(deep=True)
    _fill_and_clamp(repaired)
    _compact(repaired)
    _fill_and_clamp(repaired)
    _rebuild_hide(repaired)
    return repaired


def validate_grid(grid: GridSpec) -> None:
    """
    Check that every cell key and span sits inside rows x cols and that no
    two spans overlap.

    Raises:
        UnknownCellError: If a key is not of the form "row.col"
        SpanOutOfBoundsError: On out-of-bounds keys/spans or overlapping spans
    """
    claimed: dict[tuple[int, int], str] = {}
    for key in sorted(grid.cells):
        rc = parse_cell_key(key)
        if rc is None:
            raise UnknownCellError(key, f"Malformed grid cell key: {key}")
        cell = grid.cells[key]
        rows, cols = _span_of(cell)
        _check_region(grid, rc[0], rc[1], rows, cols)
        if cell.span is None:
            continue
        for position in _region(rc[0], rc[1], rows, cols):
            if position in claimed:
                raise SpanOutOfBoundsError(
                    f"Span at {key} overlaps the span at {claimed[position]}"
                )
            claimed[position] = key
