"""
Unit tests for the grid template algebra.

Tests cover:
- Template instantiation (declared cells, bounds, overlap)
- set_cell_component / merge_span / split_span
- merge_cells / split_cell
- Row and column insertion/deletion, row heights
- normalize_grid repair and validate_grid
"""

import pytest
from pydantic import ValidationError

from dashstage.core.exceptions import SpanOutOfBoundsError, StructureError, UnknownCellError
from dashstage.models.contracts.layout import CellSpan, GridCell, GridSpec, LayoutNode
from dashstage.models.contracts.templates import GridTemplate
from dashstage.services import grid_algebra
from dashstage.services.layout_templates import get_template, list_templates


# ── helpers ──────────────────────────────────────────────────────────

def _make_grid_node(template_id: str = "two-by-two") -> LayoutNode:
    return grid_algebra.instantiate(get_template(template_id))


def _visible(node: LayoutNode) -> list[str]:
    return [k for k in node.grid.keys_row_major() if not node.grid.cells[k].hide]


# ── instantiate ──────────────────────────────────────────────────────

class TestInstantiate:
    def test_header_template_cells(self):
        template = GridTemplate.model_validate({
            "rows": 2,
            "cols": 2,
            "cells": [
                {"key": "1.1", "span": {"row": 1, "col": 2}},
                {"key": "1.2", "hide": True},
                {"key": "2.1"},
                {"key": "2.2"},
            ],
        })

        node = grid_algebra.instantiate(template, menu_id=3)
        cells = node.grid.cells

        assert node.kind == "grid"
        assert node.parent == 0
        assert cells["1.1"] == GridCell(component=None, hide=False, span=CellSpan(row=1, col=2))
        assert cells["1.2"] == GridCell(component=None, hide=True)
        assert cells["2.1"] == GridCell(component=None, hide=False)
        assert cells["2.2"] == GridCell(component=None, hide=False)

    def test_root_node_defaults(self):
        node = _make_grid_node("single")
        assert node.id == 1
        assert node.component == "LayoutGridContainer"
        assert node.workspace == "layout"
        assert node.grid.gap == "gap-2"
        assert node.model_extra["menuId"] == 1

    def test_menu_id_is_kept(self):
        node = grid_algebra.instantiate(get_template("single"), menu_id=7)
        assert node.model_extra["menuId"] == 7

    def test_undeclared_cells_are_not_invented(self):
        template = GridTemplate(rows=1, cols=2, cells=[{"key": "1.1"}])
        node = grid_algebra.instantiate(template)
        assert set(node.grid.cells) == {"1.1"}

    def test_span_out_of_bounds(self):
        template = GridTemplate(rows=1, cols=2, cells=[{"key": "1.2", "span": {"row": 1, "col": 2}}])
        with pytest.raises(SpanOutOfBoundsError):
            grid_algebra.instantiate(template)

    def test_cell_out_of_bounds(self):
        template = GridTemplate(rows=1, cols=1, cells=[{"key": "2.1"}])
        with pytest.raises(SpanOutOfBoundsError):
            grid_algebra.instantiate(template)

    def test_overlapping_spans(self):
        template = GridTemplate(
            rows=2,
            cols=2,
            cells=[
                {"key": "1.1", "span": {"row": 2, "col": 2}},
                {"key": "2.2", "span": {"row": 1, "col": 1}},
                {"key": "1.2", "span": {"row": 2, "col": 1}},
            ],
        )
        with pytest.raises(SpanOutOfBoundsError, match="overlaps"):
            grid_algebra.instantiate(template)

    def test_zero_rows_rejected_by_contract(self):
        with pytest.raises(ValidationError):
            GridTemplate(rows=0, cols=1)

    def test_malformed_cell_key_rejected_by_contract(self):
        with pytest.raises(ValidationError):
            GridTemplate(rows=1, cols=1, cells=[{"key": "top-left"}])

    @pytest.mark.parametrize("template", list_templates(), ids=lambda t: t.id)
    def test_every_catalog_template_instantiates(self, template):
        node = grid_algebra.instantiate(template)
        grid_algebra.validate_grid(node.grid)
        assert len(node.grid.cells) == template.rows * template.cols


# ── cell edits ───────────────────────────────────────────────────────

class TestCellEdits:
    def test_set_cell_component(self):
        node = _make_grid_node()
        updated = grid_algebra.set_cell_component(node, "2.1", 5)

        assert updated.grid.cells["2.1"].component == 5
        assert node.grid.cells["2.1"].component is None

    def test_set_unknown_cell(self):
        with pytest.raises(UnknownCellError) as exc_info:
            grid_algebra.set_cell_component(_make_grid_node(), "3.3", 5)
        assert exc_info.value.cell_key == "3.3"

    def test_grid_operations_need_grid_node(self):
        with pytest.raises(StructureError):
            grid_algebra.set_cell_component(LayoutNode(id=1), "1.1", 2)

    def test_merge_span_hides_covered_cells(self):
        node = grid_algebra.merge_span(_make_grid_node(), "1.1", CellSpan(row=1, col=2))

        assert node.grid.cells["1.1"].span == CellSpan(row=1, col=2)
        assert node.grid.cells["1.2"].hide is True
        assert _visible(node) == ["1.1", "2.1", "2.2"]

    def test_shrinking_span_reveals_cells(self):
        node = grid_algebra.merge_span(_make_grid_node("three-by-three"), "1.1", CellSpan(row=2, col=2))
        node = grid_algebra.merge_span(node, "1.1", CellSpan(row=1, col=2))

        assert node.grid.cells["1.2"].hide is True
        assert node.grid.cells["2.1"].hide is False
        assert node.grid.cells["2.2"].hide is False

    def test_split_span_reveals_cells(self):
        node = grid_algebra.merge_span(_make_grid_node(), "1.1", CellSpan(row=2, col=2))
        node = grid_algebra.split_span(node, "1.1")

        assert node.grid.cells["1.1"].span is None
        assert _visible(node) == ["1.1", "1.2", "2.1", "2.2"]

    def test_split_span_without_span_is_noop(self):
        node = _make_grid_node()
        assert grid_algebra.split_span(node, "2.2").grid == node.grid

    def test_merge_span_out_of_bounds(self):
        with pytest.raises(SpanOutOfBoundsError):
            grid_algebra.merge_span(_make_grid_node(), "1.2", CellSpan(row=1, col=2))

    def test_merge_span_overlap_rejected(self):
        node = grid_algebra.merge_span(_make_grid_node("three-by-three"), "1.1", CellSpan(row=2, col=2))
        with pytest.raises(SpanOutOfBoundsError):
            grid_algebra.merge_span(node, "2.2", CellSpan(row=2, col=2))

    def test_merge_span_covering_another_origin_rejected(self):
        node = grid_algebra.merge_span(_make_grid_node("three-by-three"), "2.2", CellSpan(row=1, col=2))
        with pytest.raises(SpanOutOfBoundsError):
            grid_algebra.merge_span(node, "1.1", CellSpan(row=2, col=2))

    def test_merge_span_unknown_cell(self):
        with pytest.raises(UnknownCellError):
            grid_algebra.merge_span(_make_grid_node(), "9.9", CellSpan(row=1, col=1))

    def test_move_component_to_cell(self):
        node = grid_algebra.set_cell_component(_make_grid_node(), "1.1", 4)
        node = grid_algebra.move_component_to_cell(node, "1.1", "2.2")

        assert node.grid.cells["1.1"].component is None
        assert node.grid.cells["2.2"].component == 4

    def test_next_available_cell_skips_hidden_and_filled(self):
        node = grid_algebra.merge_span(_make_grid_node(), "1.1", CellSpan(row=1, col=2))
        node = grid_algebra.set_cell_component(node, "1.1", 2)
        assert grid_algebra.next_available_cell(node.grid) == "2.1"

    def test_next_available_cell_none_when_full(self):
        node = grid_algebra.set_cell_component(_make_grid_node("single"), "1.1", 2)
        assert grid_algebra.next_available_cell(node.grid) is None


# ── merge / split cells ──────────────────────────────────────────────

class TestMergeAndSplitCells:
    def test_merge_cells_returns_displaced_components(self):
        node = grid_algebra.set_cell_component(_make_grid_node(), "1.1", 2)
        node = grid_algebra.set_cell_component(node, "2.1", 3)

        merged, displaced = grid_algebra.merge_cells(node, ["1.1", "2.1"])

        assert displaced == [3]
        assert merged.grid.cells["1.1"].span == CellSpan(row=2, col=1)
        assert merged.grid.cells["1.1"].component == 2
        assert merged.grid.cells["2.1"].hide is True

    def test_merge_cells_anchors_at_top_left(self):
        node = grid_algebra.set_cell_component(_make_grid_node(), "2.2", 6)
        node = grid_algebra.set_cell_component(node, "1.2", 7)

        merged, displaced = grid_algebra.merge_cells(node, ["2.2", "1.1"])

        cells = merged.grid.cells
        assert displaced == [7]
        assert cells["1.1"].span == CellSpan(row=2, col=2)
        assert cells["1.1"].component == 6
        assert cells["2.2"].component is None
        assert _visible(merged) == ["1.1"]

    def test_merge_cells_unknown_key(self):
        with pytest.raises(UnknownCellError):
            grid_algebra.merge_cells(_make_grid_node(), ["1.1", "4.4"])

    def test_split_in_place_when_span_divisible(self):
        node = grid_algebra.set_cell_component(_make_grid_node("header-two-cols"), "1.1", 9)

        split = grid_algebra.split_cell(node, "1.1", "horizontal", 2)

        assert split.grid.cols == 2
        assert split.grid.cells["1.1"].span is None
        assert split.grid.cells["1.1"].component == 9
        assert split.grid.cells["1.2"].hide is False
        assert split.grid.cells["1.2"].component is None

    def test_split_rescales_grid_when_not_divisible(self):
        node = grid_algebra.set_cell_component(_make_grid_node("two-columns"), "1.2", 4)

        split = grid_algebra.split_cell(node, "1.1", "horizontal", 2)
        grid = split.grid

        assert (grid.rows, grid.cols) == (1, 4)
        assert grid.cells["1.1"].span is None
        assert grid.cells["1.2"].hide is False
        assert grid.cells["1.3"].component == 4
        assert grid.cells["1.3"].span == CellSpan(row=1, col=2)
        assert grid.cells["1.4"].hide is True

    def test_vertical_split_adds_rows(self):
        split = grid_algebra.split_cell(_make_grid_node("single"), "1.1", "vertical", 3)
        assert (split.grid.rows, split.grid.cols) == (3, 1)
        assert _visible(split) == ["1.1", "2.1", "3.1"]

    def test_split_count_bounds(self):
        with pytest.raises(ValueError):
            grid_algebra.split_cell(_make_grid_node(), "1.1", "horizontal", 1)
        with pytest.raises(ValueError):
            grid_algebra.split_cell(_make_grid_node(), "1.1", "horizontal", 5)

    def test_split_hidden_cell_rejected(self):
        with pytest.raises(UnknownCellError):
            grid_algebra.split_cell(_make_grid_node("header-two-cols"), "1.2", "vertical", 2)


# ── rows and columns ─────────────────────────────────────────────────

class TestRowsAndColumns:
    def test_add_row_in_the_middle(self):
        node = grid_algebra.set_cell_component(_make_grid_node(), "2.1", 3)
        grown = grid_algebra.add_row(node, after_row=1)

        assert grown.grid.rows == 3
        assert grown.grid.cells["2.1"].component is None
        assert grown.grid.cells["3.1"].component == 3

    def test_delete_row_returns_components(self):
        node = grid_algebra.set_cell_component(_make_grid_node(), "1.2", 7)
        node = grid_algebra.set_cell_component(node, "2.2", 8)

        shrunk, removed = grid_algebra.delete_row(node, 1)

        assert removed == [7]
        assert shrunk.grid.rows == 1
        assert shrunk.grid.cells["1.2"].component == 8

    def test_delete_only_row_rejected(self):
        with pytest.raises(SpanOutOfBoundsError):
            grid_algebra.delete_row(_make_grid_node("two-columns"), 1)

    def test_add_and_delete_column(self):
        node = grid_algebra.set_cell_component(_make_grid_node("two-columns"), "1.2", 5)
        grown = grid_algebra.add_column(node, after_col=0)
        assert grown.grid.cols == 3
        assert grown.grid.cells["1.3"].component == 5

        shrunk, removed = grid_algebra.delete_column(grown, 3)
        assert removed == [5]
        assert shrunk.grid.cols == 2

    def test_delete_only_column_rejected(self):
        with pytest.raises(SpanOutOfBoundsError):
            grid_algebra.delete_column(_make_grid_node("two-rows"), 1)

    def test_delete_row_shrinks_crossing_span(self):
        node = grid_algebra.merge_span(_make_grid_node("three-by-three"), "1.1", CellSpan(row=3, col=1))
        shrunk, _ = grid_algebra.delete_row(node, 2)

        assert shrunk.grid.rows == 2
        assert shrunk.grid.cells["1.1"].span == CellSpan(row=2, col=1)
        assert shrunk.grid.cells["2.1"].hide is True

    def test_delete_row_holding_span_origin_reveals_cells(self):
        shrunk, _ = grid_algebra.delete_row(_make_grid_node("header-two-cols"), 1)

        assert shrunk.grid.rows == 1
        assert _visible(shrunk) == ["1.1", "1.2"]

    def test_delete_column_under_span(self):
        node = _make_grid_node("sidebar-content")
        shrunk, _ = grid_algebra.delete_column(node, 1)

        assert shrunk.grid.cols == 1
        assert _visible(shrunk) == ["1.1", "2.1"]

    def test_delete_row_shifts_row_heights(self):
        node = grid_algebra.change_row_height(_make_grid_node("three-by-three"), 3, 2)
        shrunk, _ = grid_algebra.delete_row(node, 1)
        assert shrunk.grid.row_heights == {"2": 2}

    def test_change_row_height(self):
        node = grid_algebra.change_row_height(_make_grid_node(), 2, 3)
        assert node.grid.row_heights == {"2": 3}

        reset = grid_algebra.change_row_height(node, 2, 1)
        assert reset.grid.row_heights is None

    def test_change_row_height_limits(self):
        with pytest.raises(ValueError):
            grid_algebra.change_row_height(_make_grid_node(), 1, 4)
        with pytest.raises(SpanOutOfBoundsError):
            grid_algebra.change_row_height(_make_grid_node(), 3, 2)


# ── normalize / validate ─────────────────────────────────────────────

class TestNormalizeGrid:
    def test_fills_missing_cells_and_drops_out_of_bounds(self):
        grid = GridSpec(rows=2, cols=2, cells={"1.1": GridCell(component=3), "5.5": GridCell()})
        repaired = grid_algebra.normalize_grid(grid)

        assert set(repaired.cells) == {"1.1", "1.2", "2.1", "2.2"}
        assert repaired.cells["1.1"].component == 3

    def test_clamps_spans_and_rebuilds_hides(self):
        grid = GridSpec(
            rows=2,
            cols=2,
            cells={"1.1": GridCell(span=CellSpan(row=1, col=5)), "2.1": GridCell(hide=True)},
        )
        repaired = grid_algebra.normalize_grid(grid)

        assert repaired.cells["1.1"].span == CellSpan(row=1, col=2)
        assert repaired.cells["1.2"].hide is True
        assert repaired.cells["2.1"].hide is False

    def test_keeps_column_covered_by_spans(self):
        grid = GridSpec(
            rows=2,
            cols=2,
            cells={
                "1.1": GridCell(span=CellSpan(row=1, col=2)),
                "2.1": GridCell(span=CellSpan(row=1, col=2)),
            },
        )
        repaired = grid_algebra.normalize_grid(grid)

        assert repaired.cols == 2
        assert repaired.cells["1.2"].hide is True
        assert repaired.cells["2.2"].hide is True

    def test_compacts_orphaned_hidden_column(self):
        grid = GridSpec(
            rows=2,
            cols=3,
            cells={
                "1.1": GridCell(component=5),
                "1.3": GridCell(hide=True),
                "2.3": GridCell(hide=True),
            },
        )
        repaired = grid_algebra.normalize_grid(grid)

        assert repaired.cols == 2
        assert "1.3" not in repaired.cells
        assert repaired.cells["1.1"].component == 5

    def test_compacts_orphaned_hidden_row(self):
        grid = GridSpec(
            rows=2,
            cols=1,
            cells={"1.1": GridCell(), "2.1": GridCell(hide=True)},
        )
        repaired = grid_algebra.normalize_grid(grid)

        assert repaired.rows == 1
        assert list(repaired.cells) == ["1.1"]

    def test_overlapping_later_span_is_dropped(self):
        grid = GridSpec(
            rows=2,
            cols=2,
            cells={
                "1.2": GridCell(span=CellSpan(row=2, col=1)),
                "2.1": GridCell(span=CellSpan(row=1, col=2)),
            },
        )
        repaired = grid_algebra.normalize_grid(grid)

        assert repaired.cells["1.2"].span == CellSpan(row=2, col=1)
        assert repaired.cells["2.1"].span is None
        grid_algebra.validate_grid(repaired)

    def test_drops_span_anchored_in_covered_cell(self):
        grid = GridSpec(
            rows=2,
            cols=3,
            cells={
                "1.1": GridCell(span=CellSpan(row=2, col=2)),
                "2.2": GridCell(span=CellSpan(row=1, col=2)),
            },
        )
        repaired = grid_algebra.normalize_grid(grid)

        assert repaired.cells["2.2"].span is None
        assert repaired.cells["2.2"].hide is True

    def test_idempotent(self):
        grid = GridSpec(
            rows=3,
            cols=3,
            cells={"1.1": GridCell(span=CellSpan(row=1, col=3)), "9.9": GridCell()},
        )
        once = grid_algebra.normalize_grid(grid)
        assert grid_algebra.normalize_grid(once) == once

    def test_flat_stored_grid_is_folded(self):
        grid = GridSpec.model_validate({"rows": 1, "cols": 2, "1.1": {"component": 2}, "1.2": {}})
        assert grid.cells["1.1"].component == 2
        assert "1.2" in grid.cells


class TestValidateGrid:
    def test_valid_grid_passes(self):
        grid_algebra.validate_grid(_make_grid_node("sidebar-content").grid)

    def test_out_of_bounds_key(self):
        grid = GridSpec(rows=1, cols=1, cells={"1.1": GridCell(), "1.2": GridCell()})
        with pytest.raises(SpanOutOfBoundsError):
            grid_algebra.validate_grid(grid)

    def test_malformed_key(self):
        grid = GridSpec(rows=1, cols=1, cells={"a.b": GridCell()})
        with pytest.raises(UnknownCellError):
            grid_algebra.validate_grid(grid)

    def test_overlap(self):
        grid = GridSpec(
            rows=2,
            cols=2,
            cells={
                "1.1": GridCell(span=CellSpan(row=2, col=1)),
                "2.1": GridCell(span=CellSpan(row=1, col=2)),
            },
        )
        with pytest.raises(SpanOutOfBoundsError, match="overlaps"):
            grid_algebra.validate_grid(grid)
