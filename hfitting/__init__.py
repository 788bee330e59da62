"""
hfitting - Adaptive hierarchical fitting of point clouds

Fits scattered, parametrized data with a hierarchical multi-resolution
basis and refines the basis locally where the fit is poor.

Key modules:
- discretization: Knot vectors, hierarchical dyadic grids
- fitting: Least-squares fitters, refinement box selection, refinement loop
- io: Run configuration

Quick start:
    import numpy as np
    from hfitting import HierarchicalGrid, CellwiseConstantFitting, HierarchicalFitting

    params = np.random.rand(1000, 2)
    values = np.sin(8 * params[:, 0]) * params[:, 1]

    grid = HierarchicalGrid.uniform((4, 4))
    fitter = CellwiseConstantFitting(params, values, grid)
    hfit = HierarchicalFitting(fitter, ref_percentage=0.1, extension=[1, 1],
                               smoothing=1e-8)
    hfit.iterative_refine(iterations=5, tolerance=1e-2)

    print(hfit.stop_reason, fitter.max_error, grid.max_level)
"""

__version__ = "0.1.0"

from .errors import HFittingError, ConfigurationError, InvalidInputError, NumericalFailure
from .discretization.knot_vector import KnotVector, make_open_knot_vector, make_uniform_breaks
from .discretization.hierarchy import HierarchicalGrid, iter_boxes
from .fitting.base import Fitting
from .fitting.cellwise import CellwiseConstantFitting
from .fitting.hfitting import HierarchicalFitting, StopReason
from .io.config import RefinementConfig, load_config
