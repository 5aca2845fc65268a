"""Tests for the layout diagnostics."""
import pytest

from shelfcut import cutting, diagnostics
from shelfcut.contracts import Bounds, SimulatorConfig
from shelfcut.tree import Forest, IdAllocator

from conftest import make_node


class TestClearance:
    """Parts closer than the minimum clearance."""

    def test_two_mm_gap_warns(self, forest_with_parts):
        forest = forest_with_parts(400, [(0, 0, 100, 50), (102, 0, 100, 50)])
        assert diagnostics.has_clearance_issue(forest, "root")

    def test_ten_mm_gap_is_fine(self, forest_with_parts):
        forest = forest_with_parts(400, [(0, 0, 100, 50), (110, 0, 100, 50)])
        assert not diagnostics.has_clearance_issue(forest, "root")

    def test_touching_parts_warn(self, forest_with_parts):
        forest = forest_with_parts(400, [(0, 0, 100, 50), (100, 0, 100, 50)])
        assert diagnostics.has_clearance_issue(forest, "root")

    def test_gap_along_depth(self):
        a = Bounds(0, 0, 100, 50)
        assert diagnostics.pair_too_close(a, Bounds(0, 53, 100, 50), 4.0)
        assert not diagnostics.pair_too_close(a, Bounds(0, 60, 100, 50), 4.0)

    def test_overlapping_parts_do_not_warn(self):
        assert not diagnostics.pair_too_close(Bounds(0, 0, 100, 50), Bounds(50, 0, 100, 50), 4.0)

    def test_diagonal_neighbours_do_not_warn(self):
        # No overlap on either orthogonal axis.
        assert not diagnostics.pair_too_close(Bounds(0, 0, 100, 50), Bounds(101, 51, 10, 10), 4.0)

    def test_inactive_parts_ignored(self, forest_with_parts):
        forest = forest_with_parts(400, [(0, 0, 100, 50), (102, 0, 100, 50)])
        forest.node("leaf_1").is_active = False
        assert not diagnostics.has_clearance_issue(forest, "root")

    def test_threshold_from_config(self, forest_with_parts):
        forest = forest_with_parts(400, [(0, 0, 100, 50), (102, 0, 100, 50)])
        assert not diagnostics.has_clearance_issue(
            forest, "root", SimulatorConfig(min_clearance_mm=1.0)
        )

    def test_unknown_board_is_silent(self, forest_with_parts):
        forest = forest_with_parts(400, [(0, 0, 100, 50), (102, 0, 100, 50)])
        assert not diagnostics.has_clearance_issue(forest, "missing")
        assert not diagnostics.has_efficiency_warning(forest, "missing")


class TestWorkEfficiency:
    def test_parts_missing_right_edge_warn(self, forest_with_parts):
        forest = forest_with_parts(300, [(0, 0, 100, 50), (100, 0, 100, 50)])
        assert diagnostics.has_efficiency_warning(forest, "root")

    def test_parts_on_both_edges_are_fine(self, forest_with_parts):
        forest = forest_with_parts(300, [(0, 0, 100, 50), (100, 0, 100, 50), (200, 0, 100, 50)])
        assert not diagnostics.has_efficiency_warning(forest, "root")

    def test_single_part_never_warns(self, forest_with_parts):
        forest = forest_with_parts(300, [(50, 0, 100, 50)])
        assert not diagnostics.has_efficiency_warning(forest, "root")

    def test_edge_tolerance(self, forest_with_parts):
        forest = forest_with_parts(300, [(0.005, 0, 100, 50), (200, 0, 99.995, 50)])
        assert not diagnostics.has_efficiency_warning(forest, "root")

    def test_unknown_root(self):
        assert not diagnostics.has_efficiency_warning(Forest(), "nope")


class TestCollectWarnings:
    def test_rules_reported_per_board(self, forest_with_parts):
        forest = forest_with_parts(300, [(0, 0, 100, 50), (100, 0, 100, 50)])
        warnings = diagnostics.collect_layout_warnings(forest)
        assert sorted(w.rule_name for w in warnings) == ["clearance", "work_efficiency"]
        assert all(w.severity == "warning" and w.root_id == "root" for w in warnings)

    def test_uncut_board_is_clean(self):
        forest = Forest()
        forest.add_root(make_node("board", 0, 0, 300, 200, root=True))
        assert diagnostics.collect_layout_warnings(forest) == []


class TestCutPreview:
    @pytest.mark.parametrize(
        "width, expected",
        [
            (300.0, (4.0, 296.0, 150.0)),
            (7.0, (4.0, 4.0, 4.0)),
            (5.0, (4.0, 4.0, 4.0)),
            (2.0, (4.0, 4.0, 4.0)),
            (101.0, (4.0, 97.0, 51.0)),
        ],
    )
    def test_cut_value_range(self, width, expected):
        node = make_node("n", 0, 0, width, 50)
        band = diagnostics.cut_value_range(node, "width")
        assert (band.minimum, band.maximum, band.default) == expected

    def test_cut_position_from_either_edge(self):
        node = make_node("n", 100, 20, 200, 50)
        assert diagnostics.cut_position(node, "width", "start", 30) == 130
        assert diagnostics.cut_position(node, "width", "end", 30) == 270
        assert diagnostics.cut_position(node, "depth", "start", 10) == 30


class TestCutLines:
    def test_orientation_and_position(self):
        forest = Forest()
        forest.add_root(make_node("board", 0, 0, 300, 200, root=True))
        ids = IdAllocator()
        first = cutting.cut(forest, {}, "board", "width", "start", 120, new_id=ids.next_id).first
        cutting.cut(forest, {}, first.id, "depth", "start", 80, new_id=ids.next_id)

        lines = {line.parent_id: line for line in diagnostics.cut_lines(forest, "board")}
        vertical = lines["board"]
        assert vertical.orientation == "vertical"
        assert vertical.position == 120
        assert vertical.length == 200
        horizontal = lines[first.id]
        assert horizontal.orientation == "horizontal"
        assert horizontal.position == 80
        assert horizontal.length == 120
