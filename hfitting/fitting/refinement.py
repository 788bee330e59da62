"""
Selection of refinement boxes from a point-wise error field.

Given the errors of a fit, every sample whose error reaches a threshold
marks the finest-level cell containing its parameter value. Each marked
cell becomes one box:

    1. locate_cell      finest-level cell of the parameter value
    2. CellSet          skip cells already handled in this pass
    3. resolve_level    level the box is inserted at (one level deeper
                        than the leaf currently covering the cell)
    4. build_box        reproject the cell onto that level, widen it by
                        the extension and clamp it to the grid

Boxes are flat records [level, lower..., upper...] with exclusive upper
bounds, the format HierarchicalGrid.refine_elements() consumes.

Level reprojection uses bit shifts and is only valid because consecutive
levels are related by dyadic refinement (see discretization.hierarchy).
"""

import numpy as np
from typing import List, Sequence, Set, Tuple

from ..discretization.hierarchy import HierarchicalGrid
from ..errors import InvalidInputError

Cell = Tuple[int, ...]


def select_refine_threshold(errors: Sequence[float], ref_percentage: float) -> float:
    """
    Error value above which the given fraction of samples lies.

    Returns the entry of rank floor(N * (1 - ref_percentage)) of the errors
    sorted ascending, found by partial selection on a copy. A percentage
    of 0 gives the maximum, 1 gives the minimum.

    Parameters:
        errors: Point-wise errors (not modified)
        ref_percentage: Fraction of samples to refine, in [0, 1]

    Returns:
        Threshold value
    """
    errors = np.asarray(errors, dtype=np.float64)
    n = errors.size
    if n == 0:
        raise InvalidInputError("Cannot select a threshold from an empty error field")

    i = min(int(n * (1.0 - ref_percentage)), n - 1)
    return float(np.partition(errors, i)[i])


def locate_cell(basis: HierarchicalGrid, parameter: Sequence[float], level: int) -> Cell:
    """
    Cell of a parameter value at one level of the grid.

    Each direction is searched by KnotVector.find_element(), so intervals
    are half-open except the last one, which is closed at the domain end.

    Raises:
        InvalidInputError: if the parameter lies outside the grid or has
                           the wrong number of coordinates
    """
    return basis.locate(parameter, level)


class CellSet:
    """Finest-level cells already turned into a box during one pass."""

    def __init__(self):
        self._cells: Set[Cell] = set()

    def __contains__(self, cell) -> bool:
        return tuple(cell) in self._cells

    def __len__(self) -> int:
        return len(self._cells)

    def insert(self, cell: Sequence[int]) -> bool:
        """Add a cell; returns False if it was already present."""
        cell = tuple(cell)
        if cell in self._cells:
            return False
        self._cells.add(cell)
        return True


def resolve_level(basis: HierarchicalGrid, cell: Sequence[int], max_level: int) -> int:
    """
    Level at which a marked finest-level cell gets refined.

    This is one level deeper than the leaf currently covering the cell,
    so repeated marking refines one level at a time.
    """
    upper = tuple(i + 1 for i in cell)
    return basis.query_level(cell, upper, max_level) + 1


def build_box(cell: Sequence[int], level: int, max_level: int,
              extension: Sequence[int], num_breaks: Sequence[int]) -> List[int]:
    """
    Refinement box around a finest-level cell.

    Parameters:
        cell: Finest-level cell index
        level: Level of the box
        max_level: Level of `cell`
        extension: Extra cells added on each side, per direction
        num_breaks: Number of break points at `level`, per direction

    Returns:
        Flat record [level, lower..., upper...]
    """
    dim = len(cell)
    box = [0] * (2 * dim + 1)
    box[0] = level
    for d in range(dim):
        if level < max_level:
            index = cell[d] >> (max_level - level)
        else:
            index = cell[d] << (level - max_level)

        n_cells = num_breaks[d] - 1
        box[1 + d] = max(0, index - extension[d])
        box[1 + dim + d] = min(n_cells, index + extension[d] + 1)
    return box


def collect_boxes(basis: HierarchicalGrid, param_values: np.ndarray,
                  errors: Sequence[float], threshold: float,
                  extension: Sequence[int]) -> List[int]:
    """
    Refinement boxes for all samples with error >= threshold.

    Samples are visited in order and boxes are appended in discovery order.
    A finest-level cell produces at most one box; distinct cells that
    end up with identical boxes are all kept. The basis is not modified.

    Parameters:
        basis: Hierarchical grid
        param_values: Parameter values, shape (n_points, dim)
        errors: Point-wise errors, one per sample
        threshold: Samples with error >= threshold are marked
        extension: Extension per direction

    Returns:
        Flat box list
    """
    if len(errors) != len(param_values):
        raise InvalidInputError(
            f"Got {len(errors)} errors for {len(param_values)} parameter values"
        )

    max_lvl = basis.max_level

    cells = CellSet()
    boxes: List[int] = []
    for index in np.flatnonzero(np.asarray(errors) >= threshold):
        cell = locate_cell(basis, param_values[index], max_lvl)
        if not cells.insert(cell):
            continue

        level = resolve_level(basis, cell, max_lvl)
        num_breaks = [basis.num_breaks(level, d) for d in range(basis.dim)]
        boxes.extend(build_box(cell, level, max_lvl, extension, num_breaks))

    return boxes
