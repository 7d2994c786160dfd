"""
RHVAE Components Package

Components:
- metric_network: network producing the lower-triangular metric factors
- metric_tensor: centroid-based inverse metric G^{-1}(z)
- hamiltonian: Hamiltonian and its gradients
- leapfrog: generalized leapfrog integrator with tempering
- tempering: inverse-temperature schedules
- loss_manager: Riemannian Hamiltonian ELBO
- encoder_manager / decoder_manager: Gaussian encoder and decoder variants
- centroids: centroid selection from data
"""

from .metric_network import MetricNetwork, vec_to_ltri
from .metric_tensor import MetricState, MetricTensor, fill_batch, vec_mat_vec_batched
from .hamiltonian import Hamiltonian, spherical_logprior, riemannian_logprior
from .leapfrog import (
    PhaseSpace,
    GeneralizedLeapfrog,
    TemperedLeapfrogIntegrator,
    general_leapfrog_tempering_step,
)
from .tempering import quadratic_tempering, null_tempering
from .loss_manager import LossManager
from .encoder_manager import EncoderManager, GaussianLogEncoder, GaussianLinearEncoder
from .decoder_manager import DecoderManager, SimpleGaussianDecoder, GaussianLogDecoder, GaussianLinearDecoder
from .centroids import centroids_kmeans, centroids_random

__all__ = [
    'MetricNetwork',
    'vec_to_ltri',
    'MetricState',
    'MetricTensor',
    'fill_batch',
    'vec_mat_vec_batched',
    'Hamiltonian',
    'spherical_logprior',
    'riemannian_logprior',
    'PhaseSpace',
    'GeneralizedLeapfrog',
    'TemperedLeapfrogIntegrator',
    'general_leapfrog_tempering_step',
    'quadratic_tempering',
    'null_tempering',
    'LossManager',
    'EncoderManager',
    'GaussianLogEncoder',
    'GaussianLinearEncoder',
    'DecoderManager',
    'SimpleGaussianDecoder',
    'GaussianLogDecoder',
    'GaussianLinearDecoder',
    'centroids_kmeans',
    'centroids_random',
]
