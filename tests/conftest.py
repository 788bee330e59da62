"""
Pytest configuration and shared fixtures for hfitting tests.
"""

import pytest
import numpy as np
import sys
from pathlib import Path

# Add the parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from hfitting.discretization.hierarchy import HierarchicalGrid
from hfitting.fitting.base import Fitting


class ScriptedFitting(Fitting):
    """
    Fitter whose error fields are given up front.

    Each compute_errors() call installs the next error array of the script
    (the last one is repeated). compute() only counts calls.
    """

    def __init__(self, param_values, basis, error_script):
        params = np.asarray(param_values, dtype=np.float64)
        super().__init__(params, np.zeros(len(params)), basis)
        self.error_script = [np.asarray(e, dtype=np.float64) for e in error_script]
        self.n_compute = 0
        self.n_compute_errors = 0

    def compute(self, smoothing=0.0):
        self.n_compute += 1
        self.result = np.zeros((1, 1))
        return self.result

    def evaluate(self, params):
        return np.zeros((len(params), 1))

    def compute_errors(self):
        errors = self.error_script[min(self.n_compute_errors, len(self.error_script) - 1)]
        self.n_compute_errors += 1
        self._point_errors = errors.copy()
        self._max_error = float(errors.max())
        self._min_error = float(errors.min())
        return errors


@pytest.fixture
def grid_2x2():
    """2D grid with 2x2 level-0 cells on [0,1]^2."""
    return HierarchicalGrid.uniform((2, 2))


@pytest.fixture
def corner_params():
    """One parameter value near each corner of [0,1]^2."""
    return np.array([[0.1, 0.1], [0.9, 0.1], [0.1, 0.9], [0.9, 0.9]])


@pytest.fixture
def scripted_fitting():
    """Factory for ScriptedFitting instances."""
    return ScriptedFitting
