"""
Cell-wise constant least-squares fitting.

The approximation space consists of one indicator function per active
leaf of the hierarchical grid (degree-0 hierarchical splines). A refined
region replaces the coarse function by finer ones, so refining where the
error is large directly increases local resolution.

Least-squares system:
    A_{kj} = 1 if sample k lies in the support of function j, else 0
    (A^T A + lambda I) c = A^T f

A^T A is diagonal (the sample counts per function), so the system is
singular exactly when a function has no samples and lambda == 0.
"""

import logging

import numpy as np
from scipy import sparse
from scipy.sparse.linalg import spsolve
from typing import Dict, List, Tuple

from .base import Fitting
from ..errors import ConfigurationError, NumericalFailure

logger = logging.getLogger(__name__)


class CellwiseConstantFitting(Fitting):
    """
    Fitter with one constant per active leaf function.

    Example usage:
        grid = HierarchicalGrid.uniform((4, 4))
        fitter = CellwiseConstantFitting(params, values, grid)
        coeffs = fitter.compute(smoothing=1e-6)
        errors = fitter.compute_errors()
    """

    def __init__(self, param_values: np.ndarray, points: np.ndarray, basis):
        super().__init__(param_values, points, basis)
        self._function_index: Dict[Tuple[int, Tuple[int, ...]], int] = {}

        # Storage for assembled system
        self.A = None
        self.M = None
        self.rhs = None

    def _owner_columns(self, params: np.ndarray) -> List[int]:
        columns = []
        for u in params:
            key = self.basis.active_function(u)
            if key not in self._function_index:
                raise RuntimeError(
                    f"Function {key} is not part of the last fit. "
                    f"Call compute() after refining the basis."
                )
            columns.append(self._function_index[key])
        return columns

    def assemble(self, smoothing: float = 0.0) -> None:
        """Assemble the collocation matrix and the normal equations."""
        if smoothing < 0:
            raise ConfigurationError(f"Smoothing parameter must be non-negative, got {smoothing}")

        functions = self.basis.active_functions()
        self._function_index = {f: j for j, f in enumerate(functions)}
        n_func = len(functions)

        rows = np.arange(self.n_points)
        cols = self._owner_columns(self.param_values)
        self.A = sparse.csr_matrix(
            (np.ones(self.n_points), (rows, cols)),
            shape=(self.n_points, n_func)
        )
        self.M = (self.A.T @ self.A + smoothing * sparse.identity(n_func)).tocsc()
        self.rhs = self.A.T @ self.points

    def solve(self) -> np.ndarray:
        """
        Solve the normal equations.

        Returns:
            Coefficient array, shape (n_functions, n_values)
        """
        if self.M is None or self.rhs is None:
            raise RuntimeError("System not assembled. Call assemble() first.")

        n_empty = int(np.count_nonzero(self.M.diagonal() == 0))
        if n_empty:
            raise NumericalFailure(
                f"Singular fitting system: {n_empty} active functions contain no samples"
            )

        coeffs = spsolve(self.M, self.rhs)
        coeffs = np.asarray(coeffs).reshape(self.M.shape[0], self.points.shape[1])
        if not np.all(np.isfinite(coeffs)):
            raise NumericalFailure("Fitting system produced non-finite coefficients")

        self.result = coeffs
        return coeffs

    def compute(self, smoothing: float = 0.0) -> np.ndarray:
        self.assemble(smoothing)
        coeffs = self.solve()
        logger.debug(f"Fitted {coeffs.shape[0]} functions to {self.n_points} points")
        return coeffs

    def evaluate(self, params: np.ndarray) -> np.ndarray:
        if self.result is None:
            raise RuntimeError("Nothing fitted yet. Call compute() first.")
        params = np.asarray(params, dtype=np.float64)
        if params.ndim == 1:
            params = params[:, np.newaxis]
        return self.result[self._owner_columns(params)]
