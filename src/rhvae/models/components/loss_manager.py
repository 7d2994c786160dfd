"""
LossManager: Riemannian Hamiltonian ELBO
========================================

Assembles the ELBO of the RHVAE from the encoder output, the decoder output
and the phase-space trajectory of the tempered leapfrog integrator:

    log p̄ = log p(x|z_K) + log p(z_K) + log p(ρ_K | z_K)
    log q̄ = log q(z_0|x) + log p(ρ_0 | z_0) - D/2 log β₀
    ELBO  = log p̄ - log q̄

The training loss is -mean(ELBO) over the batch.
"""

import math
import torch
import torch.nn as nn
from typing import Callable, Dict, Any
import numpy as np

from pythae.models.base.base_utils import ModelOutput

from .hamiltonian import spherical_logprior, riemannian_logprior
from .tempering import validate_beta_zero

GInvFn = Callable[[torch.Tensor], torch.Tensor]


class LossManager(nn.Module):
    """
    Args:
        decoder_loglikelihood: (x, decoder_output) -> log p(x|z)
        encoder_logdensity: (z, encoder_output) -> log q(z|x)
        position_logprior: log p(z), defaults to the standard normal
    """

    def __init__(
        self,
        decoder_loglikelihood: Callable[[torch.Tensor, ModelOutput], torch.Tensor],
        encoder_logdensity: Callable[[torch.Tensor, ModelOutput], torch.Tensor],
        position_logprior: Callable[[torch.Tensor], torch.Tensor] = spherical_logprior,
    ):
        super().__init__()
        self.decoder_loglikelihood = decoder_loglikelihood
        self.encoder_logdensity = encoder_logdensity
        self.position_logprior = position_logprior

        # Loss tracking
        self.loss_history = {
            'log_p_bar': [],
            'log_q_bar': [],
            'elbo': [],
            'total': []
        }

    def log_p_bar(self, x: torch.Tensor, outputs: ModelOutput, G_inv: GInvFn) -> torch.Tensor:
        """
        Numerator of the marginal likelihood estimator.

        Args:
            x: Data [batch_size, input_dim]
            outputs: ModelOutput(encoder, decoder, phase_space)
            G_inv: Inverse metric function used during integration

        Returns:
            [batch_size]
        """
        z_K = outputs.phase_space.z_final
        rho_K = outputs.phase_space.rho_final

        log_p_x_given_z = self.decoder_loglikelihood(x, outputs.decoder)
        log_p_z = self.position_logprior(z_K)
        log_p_rho = riemannian_logprior(z_K, rho_K, G_inv)

        return log_p_x_given_z + log_p_z + log_p_rho

    def log_q_bar(self, outputs: ModelOutput, G_inv: GInvFn, beta_zero: float) -> torch.Tensor:
        """
        Denominator of the marginal likelihood estimator.

        Returns:
            [batch_size]
        """
        validate_beta_zero(beta_zero)
        z_0 = outputs.phase_space.z_init
        rho_0 = outputs.phase_space.rho_init

        log_q_z = self.encoder_logdensity(z_0, outputs.encoder)
        log_p_rho = riemannian_logprior(z_0, rho_0, G_inv)

        return log_q_z + log_p_rho - 0.5 * z_0.shape[-1] * math.log(beta_zero)

    def riemannian_hamiltonian_elbo(
        self, x: torch.Tensor, outputs: ModelOutput, G_inv: GInvFn, beta_zero: float
    ) -> torch.Tensor:
        """Per-sample ELBO [batch_size]."""
        return self.log_p_bar(x, outputs, G_inv) - self.log_q_bar(outputs, G_inv, beta_zero)

    def compute_total_loss(
        self,
        x: torch.Tensor,
        outputs: ModelOutput,
        G_inv: GInvFn,
        beta_zero: float,
        track: bool = True,
    ) -> Dict[str, Any]:
        """
        Compute the negative ELBO and its components.

        Args:
            x: Data [batch_size, input_dim]
            outputs: ModelOutput(encoder, decoder, phase_space)
            G_inv: Inverse metric function used during integration
            beta_zero: Initial inverse temperature
            track: Whether to append the batch means to the loss history

        Returns:
            Dictionary containing all loss components and total
        """
        log_p = self.log_p_bar(x, outputs, G_inv)
        log_q = self.log_q_bar(outputs, G_inv, beta_zero)
        elbo = log_p - log_q
        total_loss = -elbo.mean()

        if track:
            self.loss_history['log_p_bar'].append(log_p.mean().item())
            self.loss_history['log_q_bar'].append(log_q.mean().item())
            self.loss_history['elbo'].append(elbo.mean().item())
            self.loss_history['total'].append(total_loss.item())

        return {
            'total_loss': total_loss,
            'elbo': elbo,
            'log_p_bar': log_p,
            'log_q_bar': log_q,
            'beta_zero': beta_zero,
        }

    def get_loss_summary(self) -> Dict[str, Any]:
        """
        Get summary statistics of loss history.

        Returns:
            Dictionary with loss statistics
        """
        summary = {}
        for loss_name, history in self.loss_history.items():
            if len(history) > 0:
                summary[f'{loss_name}_mean'] = np.mean(history)
                summary[f'{loss_name}_std'] = np.std(history)
                summary[f'{loss_name}_min'] = np.min(history)
                summary[f'{loss_name}_max'] = np.max(history)
                summary[f'{loss_name}_recent'] = history[-10:]

        return summary

    def reset_history(self):
        """Reset loss history."""
        for key in self.loss_history:
            self.loss_history[key] = []

    def get_config(self) -> Dict[str, Any]:
        return {
            'position_logprior': getattr(self.position_logprior, '__name__', repr(self.position_logprior)),
            'n_tracked': len(self.loss_history['total']),
        }
