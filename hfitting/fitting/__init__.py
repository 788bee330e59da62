"""
Fitting module: least-squares fitters and adaptive refinement.

Provides:
- Fitting: Abstract fitter with point-wise error bookkeeping
- CellwiseConstantFitting: Degree-0 hierarchical least squares
- HierarchicalFitting: Error-driven refinement loop
- Box selection helpers (threshold, cell location, box building)
"""

from .base import Fitting
from .cellwise import CellwiseConstantFitting
from .refinement import (
    select_refine_threshold, locate_cell, CellSet, resolve_level,
    build_box, collect_boxes
)
from .hfitting import HierarchicalFitting, StopReason
