"""
Exception types raised by the RHVAE components.

The concrete errors also derive from ``ValueError`` so callers that already guard model
construction or forward passes with ``except ValueError`` keep working.
"""


class RHVAEError(Exception):
    """Base class for RHVAE errors."""


class DimensionMismatchError(RHVAEError, ValueError):
    """Shapes disagree with the declared latent or data dimensionality."""


class InvalidArgumentError(RHVAEError, ValueError):
    """An argument is outside its admissible set (e.g. ``var`` or ``beta_zero``)."""


class NumericalDegeneracyError(RHVAEError, ValueError):
    """A configuration would make the inverse metric lose positive-definiteness."""
