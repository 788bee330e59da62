"""
Hierarchical dyadic grids.

A hierarchical grid is a sequence of nested tensor-product grids
G_0 ⊂ G_1 ⊂ ... where G_{l+1} is obtained from G_l by dyadic refinement
in every direction, together with nested subdomains

    Omega_0 ⊇ Omega_1 ⊇ Omega_2 ⊇ ...

Omega_0 is the whole parametric domain. Omega_l (l >= 1) is a union of
level-l cells and marks the region where the hierarchy has been refined
to (at least) level l.

Key concepts:
1. Cell index: tuple of d integers addressing a cell of one level
2. Dyadic invariant: cell i of level l covers cells 2i and 2i+1 of level
   l+1 in every direction. Moving an index from level a to a coarser level
   b is a right shift by (a - b); moving to a finer level is a left shift.
   All structural queries below rely on this.
3. Leaf: the deepest level l for which a point lies inside Omega_l. The
   level-l cell containing the point owns it.

Only the structure is stored here; what a basis function looks like on
top of it is left to the fitting classes.
"""

from __future__ import annotations

import itertools
import numpy as np
from typing import List, Dict, Set, Tuple, Sequence, Iterator, Optional, Union
from dataclasses import dataclass, field

from .knot_vector import KnotVector, make_uniform_breaks, refine_knot_vector_dyadic
from ..errors import InvalidInputError


Cell = Tuple[int, ...]


def iter_boxes(boxes: Sequence[int], dim: int) -> Iterator[Tuple[int, Cell, Cell]]:
    """
    Split a flat box list into (level, lower, upper) records.

    The flat format stores each box as 2*dim+1 consecutive integers:
    level, lower[0..dim-1], upper[0..dim-1]. Upper bounds are exclusive.

    Raises:
        InvalidInputError: if the list length is not a multiple of 2*dim+1
    """
    stride = 2 * dim + 1
    if len(boxes) % stride != 0:
        raise InvalidInputError(
            f"Box list of length {len(boxes)} is not a multiple of {stride}"
        )
    for k in range(0, len(boxes), stride):
        level = int(boxes[k])
        lower = tuple(int(v) for v in boxes[k + 1:k + 1 + dim])
        upper = tuple(int(v) for v in boxes[k + 1 + dim:k + stride])
        yield level, lower, upper


@dataclass
class Hierarchy1D:
    """
    1D hierarchical knot vector structure.

    Manages multiple levels of nested knot vectors. Levels are created
    lazily by dyadic refinement of the finest existing level.

    Attributes:
        degree: Polynomial degree (same for all levels)
        knot_vectors: List of knot vectors, one per materialised level
    """
    degree: int
    knot_vectors: List[KnotVector] = field(default_factory=list)

    @classmethod
    def from_knot_vector(cls, kv: KnotVector) -> 'Hierarchy1D':
        """Create hierarchy from initial (level 0) knot vector."""
        return cls(degree=kv.degree, knot_vectors=[kv])

    @property
    def n_levels(self) -> int:
        """Number of materialised levels."""
        return len(self.knot_vectors)

    def add_level(self) -> None:
        """Add a new level using dyadic refinement."""
        self.knot_vectors.append(refine_knot_vector_dyadic(self.knot_vectors[-1]))

    def ensure_level(self, level: int) -> None:
        """Ensure hierarchy has at least the specified level."""
        while self.n_levels <= level:
            self.add_level()

    def get_knot_vector(self, level: int) -> KnotVector:
        """Get knot vector at specified level, creating it if needed."""
        self.ensure_level(level)
        return self.knot_vectors[level]

    def breaks(self, level: int) -> np.ndarray:
        """Break points at specified level."""
        return self.get_knot_vector(level).unique_knots

    def n_elements(self, level: int) -> int:
        """Number of cells at specified level, without materialising it."""
        return self.knot_vectors[0].n_elements << level

    def n_breaks(self, level: int) -> int:
        """Number of break points at specified level."""
        return self.n_elements(level) + 1


class HierarchicalGrid:
    """
    d-dimensional hierarchical grid with nested refined subdomains.

    This is the structural side of a hierarchical tensor basis. It answers
    "at which level does this region currently live?" and grows when
    refinement boxes are applied.

    Example:
        grid = HierarchicalGrid.uniform((4, 4))
        grid.refine_elements([1, 0, 0, 2, 2])   # level 1, cells [0,2) x [0,2)
        grid.max_level                           # -> 1
        grid.query_level((0, 0), (1, 1), 1)      # -> 1
    """

    def __init__(self, knot_vectors: Sequence[KnotVector]):
        """
        Initialize grid from level-0 knot vectors, one per direction.

        Parameters:
            knot_vectors: Level-0 knot vectors
        """
        if len(knot_vectors) == 0:
            raise ValueError("Need at least one knot vector")
        self.hierarchies = [Hierarchy1D.from_knot_vector(kv) for kv in knot_vectors]

        # Omega_l for l >= 1, stored as sets of level-l cell indices
        self._domains: Dict[int, Set[Cell]] = {}

    @classmethod
    def uniform(cls, n_elements: Union[int, Sequence[int]], dim: Optional[int] = None,
                degree: int = 0,
                domain: Tuple[float, float] = (0.0, 1.0)) -> 'HierarchicalGrid':
        """
        Create a grid with uniform level-0 cells.

        Parameters:
            n_elements: Cells per direction (a single int is repeated dim times)
            dim: Number of directions when n_elements is an int
            degree: Degree stored with the knot vectors
            domain: Parametric interval used in every direction
        """
        if isinstance(n_elements, int):
            n_elements = (n_elements,) * (dim or 1)
        return cls([make_uniform_breaks(n, degree, domain) for n in n_elements])

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def dim(self) -> int:
        """Number of parametric directions."""
        return len(self.hierarchies)

    @property
    def max_level(self) -> int:
        """Deepest level with a non-empty refined domain (0 if unrefined)."""
        return max((lvl for lvl, cells in self._domains.items() if cells), default=0)

    @property
    def domain(self) -> List[Tuple[float, float]]:
        """Parametric domain per direction."""
        return [h.knot_vectors[0].domain for h in self.hierarchies]

    def breaks(self, level: int, direction: int) -> np.ndarray:
        """Break points at a level in one direction."""
        return self.hierarchies[direction].breaks(level)

    def num_breaks(self, level: int, direction: int) -> int:
        """Number of break points at a level in one direction."""
        return self.hierarchies[direction].n_breaks(level)

    def n_elements_per_dir(self, level: int) -> Tuple[int, ...]:
        """Number of cells per direction at a level."""
        return tuple(h.n_elements(level) for h in self.hierarchies)

    def n_refined_cells(self, level: int) -> int:
        """Number of level-`level` cells inside Omega_level."""
        if level == 0:
            return int(np.prod(self.n_elements_per_dir(0)))
        return len(self._domains.get(level, ()))

    # -------------------------------------------------------------------------
    # Structural queries
    # -------------------------------------------------------------------------

    def _leaf_level(self, cell: Cell, level: int) -> int:
        """Deepest l <= level whose domain contains the level-`level` cell."""
        for lvl in range(level, 0, -1):
            shift = level - lvl
            if tuple(i >> shift for i in cell) in self._domains.get(lvl, ()):
                return lvl
        return 0

    def _check_box(self, lower: Cell, upper: Cell, level: int) -> None:
        if len(lower) != self.dim or len(upper) != self.dim:
            raise InvalidInputError(
                f"Box corners must have {self.dim} entries, got {len(lower)} and {len(upper)}"
            )
        n_elem = self.n_elements_per_dir(level)
        for d in range(self.dim):
            if not (0 <= lower[d] < upper[d] <= n_elem[d]):
                raise InvalidInputError(
                    f"Invalid box range [{lower[d]}, {upper[d]}) in direction {d} "
                    f"at level {level} ({n_elem[d]} cells)"
                )

    def query_level(self, lower: Sequence[int], upper: Sequence[int], level: int) -> int:
        """
        Deepest level present inside a box.

        Parameters:
            lower: Lower cell index (inclusive) at `level`
            upper: Upper cell index (exclusive) at `level`
            level: Resolution of the box and upper bound for the search

        Returns:
            The deepest level l <= `level` of the leaves intersecting the box
        """
        lower = tuple(int(i) for i in lower)
        upper = tuple(int(i) for i in upper)
        self._check_box(lower, upper, level)

        result = 0
        for cell in itertools.product(*(range(lo, up) for lo, up in zip(lower, upper))):
            result = max(result, self._leaf_level(cell, level))
            if result == level:
                break
        return result

    def leaf_level(self, cell: Sequence[int]) -> int:
        """Level of the leaf owning a cell of the finest level."""
        return self._leaf_level(tuple(int(i) for i in cell), self.max_level)

    def locate(self, point: Sequence[float], level: int) -> Cell:
        """Index of the level-`level` cell containing a parameter point."""
        if len(point) != self.dim:
            raise InvalidInputError(
                f"Point has {len(point)} coordinates, grid has {self.dim} directions"
            )
        return tuple(
            h.get_knot_vector(level).find_element(float(x))
            for h, x in zip(self.hierarchies, point)
        )

    def active_function(self, point: Sequence[float]) -> Tuple[int, Cell]:
        """(level, cell index) of the leaf containing a parameter point."""
        max_lvl = self.max_level
        cell = self.locate(point, max_lvl)
        lvl = self._leaf_level(cell, max_lvl)
        shift = max_lvl - lvl
        return lvl, tuple(i >> shift for i in cell)

    def _children(self, cell: Cell) -> Iterator[Cell]:
        return itertools.product(*((2 * i, 2 * i + 1) for i in cell))

    def active_functions(self) -> List[Tuple[int, Cell]]:
        """
        All leaf functions, ordered by level then cell index.

        A level-l cell of Omega_l is active unless every one of its children
        belongs to Omega_{l+1}.
        """
        active = []
        level0 = itertools.product(*(range(n) for n in self.n_elements_per_dir(0)))
        for lvl in range(self.max_level + 1):
            cells = level0 if lvl == 0 else sorted(self._domains.get(lvl, ()))
            finer = self._domains.get(lvl + 1, set())
            for cell in cells:
                if not all(c in finer for c in self._children(cell)):
                    active.append((lvl, cell))
        return active

    @property
    def n_active_functions(self) -> int:
        """Number of leaf functions."""
        return len(self.active_functions())

    # -------------------------------------------------------------------------
    # Refinement
    # -------------------------------------------------------------------------

    def insert_box(self, lower: Sequence[int], upper: Sequence[int], level: int) -> None:
        """
        Add all level-`level` cells of a box to Omega_level.

        Ancestors are added to every coarser domain so the subdomains stay
        nested. Inserting an already present region has no effect.
        """
        lower = tuple(int(i) for i in lower)
        upper = tuple(int(i) for i in upper)
        self._check_box(lower, upper, level)
        if level == 0:
            return

        for h in self.hierarchies:
            h.ensure_level(level)

        for cell in itertools.product(*(range(lo, up) for lo, up in zip(lower, upper))):
            for lvl in range(level, 0, -1):
                ancestor = tuple(i >> (level - lvl) for i in cell)
                cells = self._domains.setdefault(lvl, set())
                if ancestor in cells:
                    break
                cells.add(ancestor)

    def refine_elements(self, boxes: Sequence[int]) -> None:
        """
        Apply a flat list of refinement boxes.

        Parameters:
            boxes: Flat list of (level, lower..., upper...) records, see iter_boxes
        """
        records = list(iter_boxes(boxes, self.dim))
        for level, lower, upper in records:
            self._check_box(lower, upper, level)
        for level, lower, upper in records:
            self.insert_box(lower, upper, level)

    def __repr__(self) -> str:
        return (f"HierarchicalGrid(dim={self.dim}, "
                f"cells={self.n_elements_per_dir(0)}, max_level={self.max_level})")
