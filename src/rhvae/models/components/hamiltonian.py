"""
Hamiltonian Evaluator
=====================

Energy of a phase-space point (z, ρ) for a data point x:

    H_x(z, ρ) = -log p(x|z) - log p(z) + ½(D log 2π - log|G^{-1}(z)|) + ½ ρᵀ G^{-1}(z) ρ

The last two terms are the Riemannian momentum log-prior. Every function works
on batches row by row: inputs are [batch_size, latent_dim] (or a single
[latent_dim] point) and energies come back as [batch_size] (or []).
"""

import math
import torch
from typing import Callable

from .metric_tensor import vec_mat_vec_batched
from ...exceptions import DimensionMismatchError, InvalidArgumentError


LOG_2PI = math.log(2.0 * math.pi)

POSITION_VARS = ('z', 'position')
MOMENTUM_VARS = ('rho', 'momentum')


def spherical_logprior(z: torch.Tensor, sigma: float = 1.0) -> torch.Tensor:
    """Isotropic Gaussian log-density N(0, σ²I)."""
    D = z.shape[-1]
    return -0.5 * torch.sum((z / sigma) ** 2, dim=-1) - 0.5 * D * (2.0 * math.log(sigma) + LOG_2PI)


def riemannian_logprior(
    z: torch.Tensor,
    rho: torch.Tensor,
    G_inv: Callable[[torch.Tensor], torch.Tensor],
) -> torch.Tensor:
    """
    Momentum log-prior with covariance given by the metric at ``z``.

    Args:
        z: Latent coordinates [batch_size, latent_dim]
        rho: Momentum [batch_size, latent_dim]
        G_inv: Callable returning G^{-1}(z) [batch_size, latent_dim, latent_dim]

    Returns:
        [batch_size]
    """
    if z.shape != rho.shape:
        raise DimensionMismatchError(f"Position shape {tuple(z.shape)} != momentum shape {tuple(rho.shape)}")

    G_inv_z = G_inv(z)
    # G^{-1} is SPD, Cholesky gives a stable log-determinant
    L = torch.linalg.cholesky(G_inv_z)
    logdet_G_inv = 2.0 * torch.log(torch.diagonal(L, dim1=-2, dim2=-1)).sum(-1)

    D = z.shape[-1]
    return 0.5 * (D * LOG_2PI - logdet_G_inv) + 0.5 * vec_mat_vec_batched(rho, G_inv_z, rho)


class Hamiltonian:
    """
    Callable Hamiltonian bound to a decoder and an inverse-metric function.

    Args:
        decoder: Module exposing ``log_likelihood(x, z)``
        G_inv: Callable z -> G^{-1}(z)
        position_logprior: log p(z), defaults to ``spherical_logprior``
        momentum_logprior: (z, ρ, G_inv) -> log-prior, defaults to ``riemannian_logprior``
    """

    def __init__(
        self,
        decoder,
        G_inv: Callable[[torch.Tensor], torch.Tensor],
        position_logprior: Callable[[torch.Tensor], torch.Tensor] = spherical_logprior,
        momentum_logprior: Callable = riemannian_logprior,
    ):
        self.decoder = decoder
        self.G_inv = G_inv
        self.position_logprior = position_logprior
        self.momentum_logprior = momentum_logprior

    def __call__(self, x: torch.Tensor, z: torch.Tensor, rho: torch.Tensor) -> torch.Tensor:
        # Potential energy U(z|x)
        loglikelihood = self.decoder.log_likelihood(x, z)
        U = -loglikelihood - self.position_logprior(z)

        # Kinetic energy
        kinetic = self.momentum_logprior(z, rho, self.G_inv)
        return U + kinetic

    def grad(self, x: torch.Tensor, z: torch.Tensor, rho: torch.Tensor, var: str) -> torch.Tensor:
        """
        Gradient of H with respect to the position or the momentum.

        Rows of a batch do not interact, so the gradient of ``H.sum()`` is the
        per-row gradient. The graph is kept when grad mode is enabled, which
        lets the outer loss differentiate through the integrator.

        Args:
            var: ``'z'``/``'position'`` or ``'rho'``/``'momentum'``

        Returns:
            Gradient with the shape of ``z``
        """
        if var in POSITION_VARS:
            wrt_position = True
        elif var in MOMENTUM_VARS:
            wrt_position = False
        else:
            raise InvalidArgumentError(
                f"var must be one of {POSITION_VARS + MOMENTUM_VARS}, got {var!r}"
            )

        create_graph = torch.is_grad_enabled()
        with torch.enable_grad():
            z = z if z.requires_grad else z.detach().requires_grad_(True)
            rho = rho if rho.requires_grad else rho.detach().requires_grad_(True)
            H = self(x, z, rho)
            target = z if wrt_position else rho
            (grad,) = torch.autograd.grad(H.sum(), target, create_graph=create_graph)
        return grad
