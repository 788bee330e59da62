"""
Tests for refinement box selection.
"""

import numpy as np
import pytest

from hfitting.discretization.hierarchy import HierarchicalGrid, iter_boxes
from hfitting.fitting.refinement import (
    select_refine_threshold, locate_cell, CellSet, resolve_level,
    build_box, collect_boxes
)
from hfitting.errors import InvalidInputError


def _refined_grid():
    """4x4 grid refined to level 2 in one corner and level 1 in another."""
    grid = HierarchicalGrid.uniform((4, 4))
    grid.refine_elements([1, 0, 0, 3, 2])
    grid.refine_elements([2, 0, 0, 2, 3])
    grid.refine_elements([1, 6, 6, 8, 8])
    return grid


class TestRefineThreshold:
    """Tests for threshold selection."""

    @pytest.mark.parametrize("p", [0.0, 0.1, 0.25, 0.5, 0.73, 0.9, 1.0])
    def test_matches_full_sort(self, p):
        rng = np.random.default_rng(42)
        for n in (1, 2, 7, 100):
            errors = rng.random(n)
            expected = np.sort(errors)[min(int(n * (1 - p)), n - 1)]
            assert select_refine_threshold(errors, p) == expected

    def test_extremes(self):
        errors = [0.3, 0.1, 0.7, 0.2]
        assert select_refine_threshold(errors, 0.0) == 0.7
        assert select_refine_threshold(errors, 1.0) == 0.1

    def test_median(self):
        assert select_refine_threshold([0.5, 0.9, 0.05, 0.05], 0.5) == 0.5

    def test_does_not_modify_input(self):
        errors = np.array([0.4, 0.1, 0.9, 0.3, 0.2])
        original = errors.copy()
        select_refine_threshold(errors, 0.4)
        np.testing.assert_array_equal(errors, original)

    def test_empty(self):
        with pytest.raises(InvalidInputError):
            select_refine_threshold([], 0.5)


class TestLocateCell:
    """Tests for cell location."""

    @pytest.fixture
    def grid(self):
        """Breaks {0, .5, 1} and {0, .25, .5, .75, 1} at level 0."""
        return HierarchicalGrid.uniform((2, 4))

    def test_interior(self, grid):
        assert locate_cell(grid, (0.1, 0.1), 0) == (0, 0)
        assert locate_cell(grid, (0.6, 0.6), 0) == (1, 2)

    def test_break_points_are_half_open(self, grid):
        assert locate_cell(grid, (0.5, 0.25), 0) == (1, 1)
        assert locate_cell(grid, (0.0, 0.0), 0) == (0, 0)

    def test_domain_end_is_closed(self, grid):
        assert locate_cell(grid, (1.0, 1.0), 0) == (1, 3)

    def test_finer_level(self, grid):
        assert locate_cell(grid, (0.6, 0.6), 1) == (2, 4)
        assert locate_cell(grid, (1.0, 1.0), 2) == (7, 15)

    def test_outside_domain(self, grid):
        with pytest.raises(InvalidInputError):
            locate_cell(grid, (1.0001, 0.5), 0)
        with pytest.raises(InvalidInputError):
            locate_cell(grid, (0.5, -0.1), 0)

    def test_dimension_mismatch(self, grid):
        with pytest.raises(InvalidInputError):
            locate_cell(grid, (0.5,), 0)


class TestCellSet:
    """Tests for the per-pass cell set."""

    def test_insert_once(self):
        cells = CellSet()
        assert cells.insert((1, 2))
        assert not cells.insert((1, 2))
        assert cells.insert((2, 1))
        assert len(cells) == 2

    def test_membership_by_value(self):
        cells = CellSet()
        cells.insert([3, 4])
        assert (3, 4) in cells
        assert np.array([3, 4]) in cells
        assert (4, 3) not in cells


class TestResolveLevel:
    """Tests for level resolution."""

    def test_unrefined_grid(self, grid_2x2):
        assert resolve_level(grid_2x2, (1, 0), 0) == 1

    def test_one_level_at_a_time(self, grid_2x2):
        grid_2x2.refine_elements([1, 0, 0, 1, 1])

        assert resolve_level(grid_2x2, (0, 0), 1) == 2
        assert resolve_level(grid_2x2, (3, 3), 1) == 1

    def test_deep_grid(self):
        grid = _refined_grid()
        max_lvl = grid.max_level

        assert max_lvl == 2
        assert resolve_level(grid, (0, 0), max_lvl) == 3
        assert resolve_level(grid, (5, 0), max_lvl) == 2
        assert resolve_level(grid, (15, 0), max_lvl) == 1


class TestBuildBox:
    """Tests for box construction."""

    def test_coarsening(self):
        assert build_box((5, 3), 1, 3, (1, 1), (5, 5)) == [1, 0, 0, 3, 2]

    def test_same_level(self):
        assert build_box((2, 3), 2, 2, (0, 2), (9, 9)) == [2, 2, 1, 3, 6]

    def test_refining(self):
        assert build_box((3, 1), 2, 1, (0, 0), (9, 9)) == [2, 6, 2, 7, 3]

    def test_clamped(self):
        assert build_box((0, 7), 3, 3, (2, 2), (9, 9)) == [3, 0, 5, 3, 8]

    def test_three_dimensions(self):
        box = build_box((1, 2, 3), 1, 1, (1, 0, 2), (5, 5, 5))
        assert box == [1, 0, 2, 1, 3, 3, 4]
        assert len(box) == 2 * 3 + 1


class TestCollectBoxes:
    """Tests for the full box selection pass."""

    def test_corner_scenario(self, grid_2x2, corner_params):
        """Only the two worst of four samples produce boxes."""
        errors = np.array([0.5, 0.9, 0.05, 0.05])
        threshold = select_refine_threshold(errors, 0.5)

        boxes = collect_boxes(grid_2x2, corner_params, errors, threshold, [0, 0])

        assert threshold == 0.5
        assert boxes == [1, 0, 0, 1, 1,
                         1, 2, 0, 3, 1]

    def test_threshold_is_inclusive(self, grid_2x2, corner_params):
        errors = np.array([0.5, 0.9, 0.05, 0.05])
        boxes = collect_boxes(grid_2x2, corner_params, errors, 0.9, [0, 0])
        assert boxes == [1, 2, 0, 3, 1]

    def test_no_boxes_above_maximum(self, grid_2x2, corner_params):
        errors = np.array([0.5, 0.9, 0.05, 0.05])
        assert collect_boxes(grid_2x2, corner_params, errors, 1.0, [0, 0]) == []

    def test_one_box_per_cell(self, grid_2x2):
        params = np.array([[0.1, 0.1], [0.2, 0.3], [0.4, 0.05], [0.7, 0.7]])
        errors = np.ones(4)

        boxes = collect_boxes(grid_2x2, params, errors, 0.0, [0, 0])

        assert list(iter_boxes(boxes, 2)) == [
            (1, (0, 0), (1, 1)),
            (1, (2, 2), (3, 3)),
        ]

    def test_identical_boxes_from_distinct_cells_are_kept(self, grid_2x2):
        grid_2x2.refine_elements([2, 0, 0, 1, 1])
        params = np.array([[0.3, 0.3], [0.4, 0.4]])

        boxes = collect_boxes(grid_2x2, params, np.ones(2), 0.0, [0, 0])

        assert boxes == [1, 1, 1, 2, 2,
                         1, 1, 1, 2, 2]

    def test_deterministic_and_pure(self):
        grid = _refined_grid()
        rng = np.random.default_rng(7)
        params = rng.random((300, 2))
        errors = rng.random(300)
        before = grid.active_functions()

        first = collect_boxes(grid, params, errors, 0.6, [1, 2])
        second = collect_boxes(grid, params, errors, 0.6, [1, 2])

        assert first == second
        assert grid.active_functions() == before
        assert grid.max_level == 2

    def test_boxes_are_clamped(self):
        grid = _refined_grid()
        rng = np.random.default_rng(3)
        params = rng.random((500, 2))
        params[:4] = [[0.0, 0.0], [1.0, 1.0], [0.0, 1.0], [1.0, 0.0]]
        errors = rng.random(500)
        errors[:4] = 1.0

        boxes = collect_boxes(grid, params, errors, 0.5, [3, 2])

        assert len(boxes) > 0
        for level, lower, upper in iter_boxes(boxes, 2):
            for d in range(2):
                assert 0 <= lower[d] < upper[d] <= grid.num_breaks(level, d) - 1

    def test_extension_never_shrinks_boxes(self):
        grid = _refined_grid()
        rng = np.random.default_rng(11)
        params = rng.random((200, 2))
        errors = rng.random(200)

        widths = []
        for ext in ([0, 0], [1, 0], [1, 1], [3, 2]):
            boxes = list(iter_boxes(collect_boxes(grid, params, errors, 0.7, ext), 2))
            widths.append(np.array([[u - l for l, u in zip(lo, up)] for _, lo, up in boxes]))

        for smaller, larger in zip(widths, widths[1:]):
            assert smaller.shape == larger.shape
            assert np.all(larger >= smaller)

    def test_length_mismatch(self, grid_2x2, corner_params):
        with pytest.raises(InvalidInputError):
            collect_boxes(grid_2x2, corner_params, np.ones(3), 0.5, [0, 0])

    def test_point_outside_domain(self, grid_2x2):
        with pytest.raises(InvalidInputError):
            collect_boxes(grid_2x2, np.array([[1.5, 0.5]]), np.ones(1), 0.0, [0, 0])
