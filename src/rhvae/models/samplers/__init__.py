"""
Riemannian VAE Samplers Module
==============================

Sampling strategies using the learned latent-space metric.

Available Samplers:
- RiemannianHMCSampler: Hamiltonian Monte Carlo on the Riemannian prior
"""

from .base_sampler import BaseRiemannianSampler
from .hmc_sampler import RiemannianHMCSampler

__all__ = [
    'BaseRiemannianSampler',
    'RiemannianHMCSampler',
]
