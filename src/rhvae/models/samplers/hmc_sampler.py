"""
Riemannian HMC Sampler
======================

Hamiltonian Monte Carlo on the Riemannian prior of an RHVAE,

    π(z) ∝ √det G^{-1}(z),

with tempered leapfrog trajectories and a Metropolis correction.
"""

import math
import torch
from typing import Dict, Any

from .base_sampler import BaseRiemannianSampler
from ..components.tempering import quadratic_tempering, validate_beta_zero, validate_n_steps
from ...exceptions import InvalidArgumentError


class RiemannianHMCSampler(BaseRiemannianSampler):
    """Hamiltonian Monte Carlo sampler for the learned Riemannian prior."""

    def __init__(self, model, mcmc_steps_nbr: int = 100, n_lf: int = 15, eps_lf: float = 0.03, beta_zero: float = 1.0):
        super().__init__(model)
        if mcmc_steps_nbr < 1:
            raise InvalidArgumentError(f"mcmc_steps_nbr must be >= 1, got {mcmc_steps_nbr}")
        validate_n_steps(n_lf)
        validate_beta_zero(beta_zero)

        self.mcmc_steps_nbr = mcmc_steps_nbr
        self.n_lf = n_lf
        self.eps_lf = eps_lf
        self.beta_zero = beta_zero
        self.acceptance_rate = None

    def log_pi(self, z: torch.Tensor) -> torch.Tensor:
        """log √det G^{-1}(z), up to a constant."""
        return 0.5 * self.model.metric_tensor.compute_log_det_inverse_metric(z)

    def grad_log_pi(self, z: torch.Tensor) -> torch.Tensor:
        with torch.enable_grad():
            z = z.detach().requires_grad_(True)
            (grad,) = torch.autograd.grad(self.log_pi(z).sum(), z)
        return grad

    def _energy(self, z: torch.Tensor, rho: torch.Tensor) -> torch.Tensor:
        return -self.log_pi(z) + 0.5 * torch.sum(rho ** 2, dim=-1)

    @torch.no_grad()
    def sample(self, n_samples: int) -> torch.Tensor:
        """
        Run the chain from N(0, I) initial points.

        Returns:
            Samples [n_samples, latent_dim]
        """
        dtype = self.model.metric_tensor.centroids.dtype
        z_current = torch.randn(n_samples, self.model.latent_dim, device=self.device, dtype=dtype)
        sqrt_beta_zero = math.sqrt(self.beta_zero)

        n_accepted = 0
        for _ in range(self.mcmc_steps_nbr):
            gamma = torch.randn_like(z_current)
            rho = gamma / sqrt_beta_zero
            H0 = self._energy(z_current, rho)

            z = z_current
            beta_prev = self.beta_zero
            for k in range(1, self.n_lf + 1):
                rho_ = rho + 0.5 * self.eps_lf * self.grad_log_pi(z)
                z = z + self.eps_lf * rho_
                rho__ = rho_ + 0.5 * self.eps_lf * self.grad_log_pi(z)

                # Tempering
                beta_k = quadratic_tempering(self.beta_zero, k, self.n_lf)
                rho = math.sqrt(beta_prev / beta_k) * rho__
                beta_prev = beta_k

            H = self._energy(z, rho)

            # Metropolis acceptance
            alpha = torch.exp(torch.clamp(H0 - H, max=0.0))
            accept = torch.rand_like(alpha) < alpha
            z_current = torch.where(accept.unsqueeze(-1), z, z_current)
            n_accepted += int(accept.sum().item())

        self.acceptance_rate = n_accepted / (self.mcmc_steps_nbr * n_samples)
        return z_current

    def sample_prior(self, num_samples: int, method: str = 'hmc') -> torch.Tensor:
        """
        Sample from the Riemannian prior.

        Args:
            num_samples: Number of samples to generate
            method: 'hmc' or 'standard'

        Returns:
            Prior samples [num_samples, latent_dim]
        """
        if method == 'hmc':
            return self.sample(num_samples)
        if method == 'standard':
            dtype = self.model.metric_tensor.centroids.dtype
            return torch.randn(num_samples, self.model.latent_dim, device=self.device, dtype=dtype)
        raise InvalidArgumentError(f"Unknown sampling method '{method}'. Expected one of {list(self.get_sampling_methods())}")

    def get_sampling_methods(self) -> Dict[str, str]:
        return {
            'hmc': 'Hamiltonian Monte Carlo sampling on manifold',
            'standard': 'Standard Gaussian sampling (no Riemannian)',
        }

    def get_hmc_parameters(self) -> Dict[str, Any]:
        return {
            'mcmc_steps_nbr': self.mcmc_steps_nbr,
            'n_lf': self.n_lf,
            'eps_lf': self.eps_lf,
            'beta_zero': self.beta_zero,
            'acceptance_rate': self.acceptance_rate,
        }
