"""
Exceptions raised by hfitting.

ConfigurationError and InvalidInputError derive from ValueError so callers
that already guard against bad arguments keep working.
"""


class HFittingError(Exception):
    """Base class for all hfitting errors."""


class ConfigurationError(HFittingError, ValueError):
    """Invalid refinement percentage, extension or other setting."""


class InvalidInputError(HFittingError, ValueError):
    """Malformed data, e.g. a parameter value outside the domain."""


class NumericalFailure(HFittingError, ArithmeticError):
    """The fitting system could not be solved (singular or non-finite)."""
