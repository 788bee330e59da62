"""
Configuration of adaptive fitting runs.

Settings can be given directly or loaded from a JSON file:

    {
      "ref_percentage": 0.1,
      "extension": [1, 1],
      "smoothing": 1e-6,
      "iterations": 8,
      "tolerance": 1e-3,
      "err_threshold": -1
    }

A negative err_threshold means "derive the threshold from ref_percentage".
All values are validated when the configuration is created, so an
invalid file is rejected before any fitting starts.
"""

import json
import math
import numbers
from pathlib import Path
from dataclasses import dataclass, field, asdict, fields
from typing import Dict, Any, List, Optional, Sequence, Union

from ..errors import ConfigurationError


def validate_ref_percentage(ref_percentage: float) -> float:
    """Check that a refinement percentage lies in [0, 1]."""
    try:
        value = float(ref_percentage)
    except (TypeError, ValueError):
        raise ConfigurationError(
            f"Refinement percentage must be a number, got {ref_percentage!r}"
        ) from None
    if not (0.0 <= value <= 1.0):
        raise ConfigurationError(
            f"Refinement percentage must be between 0 and 1, got {ref_percentage}"
        )
    return value


def validate_extension(extension: Sequence[int], dim: Optional[int] = None) -> List[int]:
    """
    Check a cell extension.

    Parameters:
        extension: Non-negative integer per direction
        dim: Expected number of directions (not checked if None)

    Returns:
        The extension as a list of ints
    """
    values = list(extension)
    if dim is not None and len(values) != dim:
        raise ConfigurationError(
            f"Extension has {len(values)} entries, expected {dim}"
        )
    for v in values:
        if isinstance(v, bool) or not isinstance(v, numbers.Number):
            raise ConfigurationError(f"Extension entries must be integers, got {v!r}")
        try:
            is_integer = int(v) == v
        except (TypeError, ValueError, OverflowError):
            is_integer = False
        if not is_integer:
            raise ConfigurationError(f"Extension entries must be integers, got {v!r}")
        if v < 0:
            raise ConfigurationError(f"Extension must be non-negative, got {v}")
    return [int(v) for v in values]


def _as_float(value: Any, name: str) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise ConfigurationError(f"{name} must be a number, got {value!r}")
    return float(value)


@dataclass
class RefinementConfig:
    """
    Settings of an adaptive fitting run.

    Attributes:
        ref_percentage: Fraction of samples (by error rank) to refine, in [0, 1]
        extension: Cells added around each marked cell, per direction
        smoothing: Smoothing parameter passed to the fitter
        iterations: Maximum number of refinement iterations
        tolerance: Stop once the maximum error is at most this value
        err_threshold: Explicit error threshold, negative to use ref_percentage
    """
    ref_percentage: float = 0.1
    extension: List[int] = field(default_factory=list)
    smoothing: float = 0.0
    iterations: int = 1
    tolerance: float = 1e-3
    err_threshold: float = -1.0

    def __post_init__(self):
        self._validate()

    def _validate(self):
        """Validate all settings."""
        self.ref_percentage = validate_ref_percentage(self.ref_percentage)
        self.extension = validate_extension(self.extension)

        self.smoothing = _as_float(self.smoothing, "Smoothing parameter")
        if math.isnan(self.smoothing) or self.smoothing < 0:
            raise ConfigurationError(
                f"Smoothing parameter must be non-negative, got {self.smoothing}"
            )

        if isinstance(self.iterations, bool) or not isinstance(self.iterations, numbers.Integral):
            raise ConfigurationError(
                f"Number of iterations must be an integer, got {self.iterations!r}"
            )
        self.iterations = int(self.iterations)
        if self.iterations < 0:
            raise ConfigurationError(
                f"Number of iterations must be non-negative, got {self.iterations}"
            )

        self.tolerance = _as_float(self.tolerance, "Tolerance")
        if math.isnan(self.tolerance) or self.tolerance < 0:
            raise ConfigurationError(
                f"Tolerance must be non-negative, got {self.tolerance}"
            )

        self.err_threshold = _as_float(self.err_threshold, "Error threshold")
        if math.isnan(self.err_threshold):
            raise ConfigurationError("Error threshold must not be NaN")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def config_from_dict(data: Dict[str, Any]) -> RefinementConfig:
    """Create a configuration from a dictionary, rejecting unknown keys."""
    known = {f.name for f in fields(RefinementConfig)}
    unknown = set(data) - known
    if unknown:
        raise ConfigurationError(f"Unknown configuration keys: {sorted(unknown)}")
    return RefinementConfig(**data)


def load_config(filename: Union[str, Path]) -> RefinementConfig:
    """
    Load a refinement configuration from a JSON file.

    Parameters:
        filename: Path to the JSON file

    Returns:
        Validated RefinementConfig
    """
    with open(filename) as f:
        try:
            data = json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"Invalid JSON in {filename}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError(f"Expected a JSON object in {filename}")
    return config_from_dict(data)
