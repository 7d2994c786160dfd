"""
Generalized Leapfrog Integrator
===============================

Implicit leapfrog for the non-separable Hamiltonian of the RHVAE. Each half
step is solved by fixed-point iteration with a fixed budget of ``steps``
iterations (no convergence test):

    ρ̃ = ρ - ε/2 ∇_z H(z, ρ̃)                       (momentum half step)
    z̄ = z + ε/2 (∇_ρ H(z, ρ̃) + ∇_ρ H(z̄, ρ̃))       (position full step)
    ρ̄ = ρ̃ - ε/2 ∇_z H(z̄, ρ̄)                       (momentum half step)

``TemperedLeapfrogIntegrator`` chains K such steps, rescaling the momentum
between steps according to a tempering schedule.
"""

import math
import torch
from typing import Callable, NamedTuple, Optional, Tuple, Union

from .hamiltonian import Hamiltonian
from .tempering import quadratic_tempering, validate_beta_zero, validate_n_steps
from ...exceptions import DimensionMismatchError, InvalidArgumentError


StepSize = Union[float, torch.Tensor]


class PhaseSpace(NamedTuple):
    """Initial and final phase-space points of one tempered integration."""
    z_init: torch.Tensor
    rho_init: torch.Tensor
    z_final: torch.Tensor
    rho_final: torch.Tensor


def _half_step(epsilon: StepSize, like: torch.Tensor) -> StepSize:
    if isinstance(epsilon, torch.Tensor):
        if epsilon.dim() > 0 and epsilon.shape[-1] != like.shape[-1]:
            raise DimensionMismatchError(
                f"Step size vector of length {epsilon.shape[-1]} != latent_dim {like.shape[-1]}"
            )
        epsilon = epsilon.to(device=like.device, dtype=like.dtype)
    return 0.5 * epsilon


class GeneralizedLeapfrog:
    """
    One generalized leapfrog step for a given Hamiltonian.

    Args:
        hamiltonian: Object exposing ``grad(x, z, rho, var)``
        steps: Fixed-point iterations per implicit sub-step
    """

    def __init__(self, hamiltonian: Hamiltonian, steps: int = 3):
        if int(steps) != steps or steps < 1:
            raise InvalidArgumentError(f"steps must be an integer >= 1, got {steps}")
        self.hamiltonian = hamiltonian
        self.steps = int(steps)

    def rho_step(self, x: torch.Tensor, z: torch.Tensor, rho: torch.Tensor, epsilon: StepSize) -> torch.Tensor:
        """Implicit momentum half step."""
        half_eps = _half_step(epsilon, z)
        rho_tilde = rho
        for _ in range(self.steps):
            rho_tilde = rho - half_eps * self.hamiltonian.grad(x, z, rho_tilde, 'z')
        return rho_tilde

    def z_step(self, x: torch.Tensor, z: torch.Tensor, rho: torch.Tensor, epsilon: StepSize) -> torch.Tensor:
        """Implicit position full step."""
        half_eps = _half_step(epsilon, z)
        grad_at_start = self.hamiltonian.grad(x, z, rho, 'rho')
        z_bar = z
        for _ in range(self.steps):
            z_bar = z + half_eps * (grad_at_start + self.hamiltonian.grad(x, z_bar, rho, 'rho'))
        return z_bar

    def step(
        self, x: torch.Tensor, z: torch.Tensor, rho: torch.Tensor, epsilon: StepSize
    ) -> Tuple[torch.Tensor, torch.Tensor]:
        """
        Full step (z, ρ) -> (z̄, ρ̄).

        Args:
            x: Data [batch_size, input_dim]
            z: Position [batch_size, latent_dim]
            rho: Momentum [batch_size, latent_dim]
            epsilon: Scalar step size or per-dimension [latent_dim] tensor

        Returns:
            (z_bar, rho_bar)
        """
        if z.shape != rho.shape:
            raise DimensionMismatchError(f"Position shape {tuple(z.shape)} != momentum shape {tuple(rho.shape)}")
        rho_tilde = self.rho_step(x, z, rho, epsilon)
        z_bar = self.z_step(x, z, rho_tilde, epsilon)
        rho_bar = self.rho_step(x, z_bar, rho_tilde, epsilon)
        return z_bar, rho_bar


class TemperedLeapfrogIntegrator:
    """K generalized leapfrog steps with momentum tempering in between."""

    def __init__(self, hamiltonian: Hamiltonian, steps: int = 3):
        self.leapfrog = GeneralizedLeapfrog(hamiltonian, steps=steps)

    def integrate(
        self,
        x: torch.Tensor,
        z0: torch.Tensor,
        K: int = 3,
        epsilon: StepSize = 0.001,
        beta_zero: float = 0.3,
        tempering_schedule: Callable[[float, int, int], float] = quadratic_tempering,
        gamma: Optional[torch.Tensor] = None,
    ) -> PhaseSpace:
        """
        Run the tempered integration from ``z0``.

        The initial momentum is ρ₀ = γ/√β₀ with γ ~ N(0, I) unless ``gamma`` is
        given. After step k the momentum is scaled by √(β_{k-1}/β_k).

        Returns:
            PhaseSpace(z_init, rho_init, z_final, rho_final)
        """
        validate_n_steps(K)
        validate_beta_zero(beta_zero)

        if gamma is None:
            gamma = torch.randn_like(z0)
        elif gamma.shape != z0.shape:
            raise DimensionMismatchError(f"gamma shape {tuple(gamma.shape)} != z0 shape {tuple(z0.shape)}")

        rho0 = gamma / math.sqrt(beta_zero)

        z, rho = z0, rho0
        for k in range(1, K + 1):
            z, rho = self.leapfrog.step(x, z, rho, epsilon)

            beta_prev = tempering_schedule(beta_zero, k - 1, K)
            beta_k = tempering_schedule(beta_zero, k, K)
            rho = rho * math.sqrt(beta_prev / beta_k)

        return PhaseSpace(z_init=z0, rho_init=rho0, z_final=z, rho_final=rho)


def general_leapfrog_tempering_step(
    hamiltonian: Hamiltonian,
    x: torch.Tensor,
    z0: torch.Tensor,
    K: int = 3,
    epsilon: StepSize = 0.001,
    beta_zero: float = 0.3,
    steps: int = 3,
    tempering_schedule: Callable[[float, int, int], float] = quadratic_tempering,
    gamma: Optional[torch.Tensor] = None,
) -> PhaseSpace:
    """Functional wrapper around ``TemperedLeapfrogIntegrator.integrate``."""
    integrator = TemperedLeapfrogIntegrator(hamiltonian, steps=steps)
    return integrator.integrate(
        x, z0, K=K, epsilon=epsilon, beta_zero=beta_zero,
        tempering_schedule=tempering_schedule, gamma=gamma,
    )
