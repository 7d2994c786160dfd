"""
Riemannian Hamiltonian VAE in PyTorch.
"""

from .exceptions import RHVAEError, DimensionMismatchError, InvalidArgumentError, NumericalDegeneracyError
from .config import get_default_config, validate_config
from .models import RHVAE, ModelFactory
from .models.components import (
    MetricState,
    PhaseSpace,
    quadratic_tempering,
    null_tempering,
    spherical_logprior,
    riemannian_logprior,
)

__version__ = "0.1.0"

__all__ = [
    'RHVAE',
    'ModelFactory',
    'MetricState',
    'PhaseSpace',
    'quadratic_tempering',
    'null_tempering',
    'spherical_logprior',
    'riemannian_logprior',
    'get_default_config',
    'validate_config',
    'RHVAEError',
    'DimensionMismatchError',
    'InvalidArgumentError',
    'NumericalDegeneracyError',
]
