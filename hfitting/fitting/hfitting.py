"""
Adaptive hierarchical fitting.

HierarchicalFitting drives a fitter through repeated rounds of

    fit -> measure errors -> mark cells -> refine the grid

until the maximum error drops below a tolerance, no cell can be marked,
or the iteration budget is spent. Cell marking and box construction live
in refinement.py; this module only orchestrates them.

Example:
    grid = HierarchicalGrid.uniform((4, 4))
    fitter = CellwiseConstantFitting(params, values, grid)
    hfit = HierarchicalFitting(fitter, ref_percentage=0.1, extension=[1, 1])
    hfit.iterative_refine(iterations=5, tolerance=1e-3)
    hfit.stop_reason    # StopReason.TOLERANCE_REACHED, ...
"""

import enum
import logging

from typing import List, Optional, Sequence

from .base import Fitting
from .refinement import select_refine_threshold, collect_boxes
from ..errors import ConfigurationError
from ..io.config import RefinementConfig, validate_ref_percentage, validate_extension

logger = logging.getLogger(__name__)


class StopReason(enum.Enum):
    """Why the refinement loop stopped."""
    TOLERANCE_REACHED = "tolerance reached"
    NO_BOXES = "no more boxes to insert"
    MAX_ITERATIONS = "iteration budget exhausted"


class HierarchicalFitting:
    """
    Error-driven refinement of the grid underneath a fitter.

    The fitter's basis must provide dim, max_level, breaks(level, dir),
    num_breaks(level, dir), query_level(lower, upper, level) and
    refine_elements(boxes), as HierarchicalGrid does.

    Not reentrant: one instance must not be driven by two callers at once.
    """

    def __init__(self, fitting: Fitting, ref_percentage: float,
                 extension: Sequence[int], smoothing: float = 0.0):
        """
        Parameters:
            fitting: Fitter holding the samples and the hierarchical grid
            ref_percentage: Fraction of samples to refine, in [0, 1]
            extension: Cells added around each marked cell, per direction
            smoothing: Smoothing parameter passed to fitting.compute()
        """
        if smoothing < 0:
            raise ConfigurationError(f"Smoothing parameter must be non-negative, got {smoothing}")

        self.fitting = fitting
        self._ref = validate_ref_percentage(ref_percentage)
        self._ext = validate_extension(extension, self.basis.dim)
        self.smoothing = smoothing

        self._stop_reason: Optional[StopReason] = None

    @classmethod
    def from_config(cls, fitting: Fitting, config: RefinementConfig) -> 'HierarchicalFitting':
        """Create from a RefinementConfig; an empty extension means no extension."""
        extension = config.extension or [0] * fitting.basis.dim
        return cls(fitting, config.ref_percentage, extension, config.smoothing)

    # -------------------------------------------------------------------------
    # Properties
    # -------------------------------------------------------------------------

    @property
    def basis(self):
        """The hierarchical grid being refined."""
        return self.fitting.basis

    @property
    def ref_percentage(self) -> float:
        """Fraction of samples refined when no explicit threshold is given."""
        return self._ref

    @ref_percentage.setter
    def ref_percentage(self, value: float) -> None:
        self._ref = validate_ref_percentage(value)

    @property
    def extension(self) -> List[int]:
        """Cells added around each marked cell, per direction."""
        return list(self._ext)

    @extension.setter
    def extension(self, value: Sequence[int]) -> None:
        self._ext = validate_extension(value, self.basis.dim)

    @property
    def stop_reason(self) -> Optional[StopReason]:
        """Reason the last next_iteration()/iterative_refine() call stopped."""
        return self._stop_reason

    # -------------------------------------------------------------------------
    # Refinement
    # -------------------------------------------------------------------------

    def refine_threshold(self, errors: Sequence[float]) -> float:
        """Error threshold selecting ref_percentage of the samples."""
        return select_refine_threshold(errors, self._ref)

    def get_boxes(self, errors: Sequence[float], threshold: float) -> List[int]:
        """
        Refinement boxes for all samples with error >= threshold.

        Does not modify the basis.

        Returns:
            Flat list of (level, lower..., upper...) records
        """
        return collect_boxes(self.basis, self.fitting.param_values,
                             errors, threshold, self._ext)

    def _fit(self) -> None:
        self.fitting.compute(self.smoothing)
        self.fitting.compute_errors()

    def next_iteration(self, tolerance: float, err_threshold: float = -1) -> bool:
        """
        One step of iterative_refine().

        Without an error field this only performs the first fit. Otherwise
        the grid is refined around badly fitted samples and the fit is
        recomputed.

        Parameters:
            tolerance: Stop if the maximum error is at most this value
            err_threshold: Refine samples with error >= err_threshold;
                           negative to derive it from ref_percentage

        Returns:
            False if the tolerance was reached or no box was found
            (see stop_reason), True if a fit was performed
        """
        if self.fitting.has_errors:
            if self.fitting.max_error <= tolerance:
                logger.debug("Tolerance reached.")
                self._stop_reason = StopReason.TOLERANCE_REACHED
                return False

            errors = self.fitting.point_errors
            threshold = err_threshold if err_threshold >= 0 else self.refine_threshold(errors)

            boxes = self.get_boxes(errors, threshold)
            if len(boxes) == 0:
                logger.debug(f"No boxes found for threshold {threshold:.6e}.")
                self._stop_reason = StopReason.NO_BOXES
                return False

            self.basis.refine_elements(boxes)
            logger.debug(f"Inserted {len(boxes) // (2 * self.basis.dim + 1)} boxes.")

        self._fit()
        self._stop_reason = None
        return True

    def iterative_refine(self, iterations: int, tolerance: float,
                         err_threshold: float = -1) -> None:
        """
        Iteratively refine the basis.

        Parameters:
            iterations: Maximum number of iterations
            tolerance: (>= 0) stop once the maximum error is at most this value
            err_threshold: If non-negative, all samples with errors at least
                           this large are refined; if negative, ref_percentage
                           of the samples are refined. 0 refines everywhere.
        """
        if not self.fitting.has_errors:
            self._fit()

        for i in range(iterations):
            new_iteration = self.next_iteration(tolerance, err_threshold)
            if self.fitting.max_error <= tolerance:
                logger.debug(f"Tolerance reached at iteration: {i}")
                self._stop_reason = StopReason.TOLERANCE_REACHED
                break
            if not new_iteration:
                logger.debug(f"No more boxes to insert at iteration: {i}")
                self._stop_reason = StopReason.NO_BOXES
                break
        else:
            # Only reachable with a zero budget when the baseline fit suffices
            if self.fitting.max_error <= tolerance:
                self._stop_reason = StopReason.TOLERANCE_REACHED
            else:
                self._stop_reason = StopReason.MAX_ITERATIONS

        logger.info(
            f"Refinement stopped ({self._stop_reason.value}): max error "
            f"{self.fitting.max_error:.6e}, max level {self.basis.max_level}"
        )

    def run(self, config: RefinementConfig) -> Optional[StopReason]:
        """Run iterative_refine() with the budget and thresholds of a config."""
        self.iterative_refine(config.iterations, config.tolerance, config.err_threshold)
        return self._stop_reason
