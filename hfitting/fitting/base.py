"""
Base fitting class.

This module defines the abstract interface for least-squares fitting of
parametrized point clouds and the point-wise error bookkeeping shared by
all fitters.

Design principles:
1. A fitter owns the samples (parameter values and points) and borrows
   the hierarchical grid it fits on
2. compute() rebuilds the approximation from the current grid structure
3. compute_errors() replaces the error field wholesale; it is never
   mutated in place

The refinement loop is:
    fitter.compute(smoothing)
    fitter.compute_errors()
    # ... mark cells with large errors, refine the grid, repeat
"""

import numpy as np
from typing import Optional
from abc import ABC, abstractmethod

from ..discretization.hierarchy import HierarchicalGrid
from ..errors import InvalidInputError


class Fitting(ABC):
    """
    Abstract base class for fitting a point cloud on a hierarchical grid.

    Subclasses implement a specific approximation space by overriding:
    - compute: Builds and solves the fitting system
    - evaluate: Evaluates the fitted function at parameter values
    """

    def __init__(self, param_values: np.ndarray, points: np.ndarray,
                 basis: HierarchicalGrid):
        """
        Initialize fitter with samples.

        Parameters:
            param_values: Parameter values, shape (n_points, dim)
            points: Values to be fitted, shape (n_points, n_values) or (n_points,)
            basis: Hierarchical grid the approximation lives on
        """
        param_values = np.asarray(param_values, dtype=np.float64)
        points = np.asarray(points, dtype=np.float64)
        if param_values.ndim == 1:
            param_values = param_values[:, np.newaxis]
        if points.ndim == 1:
            points = points[:, np.newaxis]

        if param_values.shape[1] != basis.dim:
            raise InvalidInputError(
                f"Parameter values have {param_values.shape[1]} coordinates, "
                f"basis has {basis.dim} directions"
            )
        if param_values.shape[0] != points.shape[0]:
            raise InvalidInputError(
                f"Got {param_values.shape[0]} parameter values for {points.shape[0]} points"
            )

        self.param_values = param_values
        self.points = points
        self.basis = basis

        self.result: Optional[np.ndarray] = None  # Fitted coefficients

        self._point_errors = np.empty(0)
        self._max_error = 0.0
        self._min_error = 0.0

    @abstractmethod
    def compute(self, smoothing: float = 0.0) -> np.ndarray:
        """
        Recompute the approximation from the current basis structure.

        Parameters:
            smoothing: Smoothing (regularisation) parameter, >= 0

        Returns:
            Coefficient array, stored in self.result

        Raises:
            NumericalFailure: if the fitting system cannot be solved
        """
        pass

    @abstractmethod
    def evaluate(self, params: np.ndarray) -> np.ndarray:
        """
        Evaluate the fitted function.

        Parameters:
            params: Parameter values, shape (n, dim)

        Returns:
            Values, shape (n, n_values)
        """
        pass

    def compute_errors(self) -> np.ndarray:
        """
        Compute point-wise errors of the most recent fit.

        The error of a sample is the largest absolute deviation over the
        value components.

        Returns:
            The new error field
        """
        if self.result is None:
            raise RuntimeError("Nothing fitted yet. Call compute() first.")

        values = self.evaluate(self.param_values)
        errors = np.max(np.abs(values - self.points), axis=1)

        self._point_errors = errors
        self._max_error = float(errors.max()) if errors.size else 0.0
        self._min_error = float(errors.min()) if errors.size else 0.0
        return errors

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def n_points(self) -> int:
        """Number of samples."""
        return self.points.shape[0]

    @property
    def point_errors(self) -> np.ndarray:
        """Point-wise errors of the last compute_errors() call."""
        return self._point_errors.copy()

    @property
    def has_errors(self) -> bool:
        """Whether an error field has been computed."""
        return self._point_errors.size != 0

    @property
    def max_error(self) -> float:
        """Largest point-wise error."""
        return self._max_error

    @property
    def min_error(self) -> float:
        """Smallest point-wise error."""
        return self._min_error

    def l2_error(self) -> float:
        """Root mean square of the point-wise errors."""
        if not self.has_errors:
            return 0.0
        return float(np.sqrt(np.mean(self._point_errors ** 2)))
