"""
Knot vector utilities for hierarchical fitting.

A knot vector is a non-decreasing sequence of real numbers that defines
the parametric domain of a B-spline basis. For refinement we only need
its break points (the unique knots) and the cells between them.

Mathematical background:
- Open knot vectors have p+1 repeated knots at each end
- The number of basis functions n = len(knots) - p - 1
- Cells (elements) are the non-zero measure intervals [b_i, b_{i+1}]
- Dyadic refinement inserts the midpoint of every cell, doubling the
  number of cells. The hierarchy relies on this to map cell indices
  between levels with bit shifts.
"""

import numpy as np
from typing import List, Tuple
from dataclasses import dataclass

from ..errors import InvalidInputError


@dataclass
class KnotVector:
    """
    Represents a univariate knot vector.

    Attributes:
        knots: The knot values (non-decreasing sequence)
        degree: Polynomial degree p

    Properties computed:
        unique_knots: Break points
        n_elements: Number of non-zero measure knot spans
        elements: List of (start, end) parametric coordinates for each element
    """
    knots: np.ndarray
    degree: int

    def __post_init__(self):
        self.knots = np.asarray(self.knots, dtype=np.float64)
        self._validate()
        self._unique_knots = np.unique(self.knots)

    def _validate(self):
        """Validate knot vector properties."""
        if self.degree < 0:
            raise ValueError(f"Degree must be non-negative, got {self.degree}.")
        if len(self.knots) < 2 * (self.degree + 1):
            raise ValueError(
                f"Knot vector too short for degree {self.degree}. "
                f"Need at least {2 * (self.degree + 1)} knots, got {len(self.knots)}."
            )
        if not np.all(np.diff(self.knots) >= 0):
            raise ValueError("Knot vector must be non-decreasing.")
        if self.knots[0] == self.knots[-1]:
            raise ValueError("Knot vector must span a non-empty domain.")

    @property
    def n_basis(self) -> int:
        """Number of basis functions."""
        return len(self.knots) - self.degree - 1

    @property
    def unique_knots(self) -> np.ndarray:
        """Unique knot values (breakpoints)."""
        return self._unique_knots.copy()

    @property
    def n_breaks(self) -> int:
        """Number of break points."""
        return len(self._unique_knots)

    @property
    def n_elements(self) -> int:
        """Number of non-zero measure knot spans (elements)."""
        return len(self._unique_knots) - 1

    @property
    def elements(self) -> List[Tuple[float, float]]:
        """List of element intervals as (xi_start, xi_end) tuples."""
        b = self._unique_knots
        return [(b[i], b[i + 1]) for i in range(len(b) - 1)]

    @property
    def domain(self) -> Tuple[float, float]:
        """Parametric domain (first unique knot, last unique knot)."""
        return (self._unique_knots[0], self._unique_knots[-1])

    def find_element(self, xi: float) -> int:
        """
        Find which element contains parameter value xi.

        Uses half-open interval convention [xi_start, xi_end) for interior
        boundaries. The last element includes its right boundary (closed at
        domain end).

        Parameters:
            xi: Parameter value

        Returns:
            Element index (0-based)

        Raises:
            InvalidInputError: if xi lies outside the domain
        """
        b = self._unique_knots
        if not (b[0] <= xi <= b[-1]):
            raise InvalidInputError(
                f"Parameter {xi} outside domain {self.domain}"
            )
        e = int(np.searchsorted(b, xi, side='right')) - 1
        return min(e, len(b) - 2)


def make_open_knot_vector(n_basis: int, degree: int,
                          domain: Tuple[float, float] = (0.0, 1.0)) -> KnotVector:
    """
    Create an open (clamped) uniform knot vector.

    Parameters:
        n_basis: Number of basis functions desired
        degree: Polynomial degree p
        domain: Parametric domain (start, end)

    Returns:
        KnotVector with uniform internal knots
    """
    p = degree
    n_internal = n_basis + p + 1 - 2 * (p + 1)

    if n_internal < 0:
        raise ValueError(
            f"Cannot create knot vector: n_basis={n_basis} too small for degree={degree}"
        )

    a, b = domain
    knots = [a] * (p + 1)
    if n_internal > 0:
        knots.extend(np.linspace(a, b, n_internal + 2)[1:-1])
    knots.extend([b] * (p + 1))

    return KnotVector(np.array(knots), degree)


def make_uniform_breaks(n_elements: int, degree: int = 0,
                        domain: Tuple[float, float] = (0.0, 1.0)) -> KnotVector:
    """
    Create an open knot vector with n_elements uniform cells.

    Convenience wrapper around make_open_knot_vector that is parametrised
    by the number of cells instead of the number of basis functions.
    """
    if n_elements < 1:
        raise ValueError(f"Need at least one element, got {n_elements}")
    return make_open_knot_vector(n_elements + degree, degree, domain)


def refine_knot_vector_dyadic(kv: KnotVector) -> KnotVector:
    """
    Refine a knot vector by inserting midpoints of all non-zero spans.

    This is the standard refinement for hierarchical B-splines: every
    cell of level l is split into exactly two cells of level l+1, so
    cell i at level l covers cells 2i and 2i+1 at level l+1.

    Parameters:
        kv: Original knot vector

    Returns:
        Refined knot vector
    """
    midpoints = [0.5 * (xi_start + xi_end) for xi_start, xi_end in kv.elements]
    new_knots = np.sort(np.concatenate([kv.knots, midpoints]))
    return KnotVector(new_knots, kv.degree)
