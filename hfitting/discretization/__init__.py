"""
Discretization module: break points and hierarchical grids.
"""

from .knot_vector import (
    KnotVector, make_open_knot_vector, make_uniform_breaks, refine_knot_vector_dyadic
)
from .hierarchy import Hierarchy1D, HierarchicalGrid, iter_boxes
