"""
EncoderManager: Gaussian Encoder Variants
=========================================

Encoders map data to the parameters of a diagonal Gaussian posterior q(z|x).
Two parameterizations are provided:
- ``log``: GaussianLogEncoder returns (mu, log_sigma)
- ``linear``: GaussianLinearEncoder returns (mu, sigma), sigma kept positive with softplus

Each variant knows how to draw a reparameterized sample and how to evaluate
its own log-density, so callers dispatch on the encoder instance rather than
on output keys.
"""

import math
import torch
import torch.nn as nn
import torch.nn.functional as F
from typing import Dict, Any, Optional, Sequence, Union
from omegaconf import DictConfig

from pythae.models.nn import BaseEncoder
from pythae.models.base.base_utils import ModelOutput

from .metric_network import get_activation
from ...exceptions import DimensionMismatchError


def _build_mlp(n_input: int, hidden_dims: Sequence[int], activation: Union[str, nn.Module]) -> nn.Sequential:
    layers = []
    in_features = n_input
    for h_dim in hidden_dims:
        layers.extend([nn.Linear(in_features, h_dim), get_activation(activation)])
        in_features = h_dim
    return nn.Sequential(*layers)


class GaussianEncoder(BaseEncoder):
    """Shared MLP trunk and mean head for the Gaussian encoder variants."""

    def __init__(self, input_dim: int, latent_dim: int, hidden_dims: Sequence[int] = (256, 256), activation='relu'):
        super().__init__()
        self.input_dim = input_dim
        self.latent_dim = latent_dim

        hidden_dims = list(hidden_dims)
        self.mlp = _build_mlp(input_dim, hidden_dims, activation)
        last_dim = hidden_dims[-1] if hidden_dims else input_dim
        self.mu = nn.Linear(last_dim, latent_dim)

    def _hidden(self, x: torch.Tensor) -> torch.Tensor:
        if x.shape[-1] != self.input_dim:
            raise DimensionMismatchError(f"Input dimension {x.shape[-1]} != encoder input_dim {self.input_dim}")
        return self.mlp(x)

    def scale(self, output: ModelOutput) -> torch.Tensor:
        raise NotImplementedError

    def log_scale(self, output: ModelOutput) -> torch.Tensor:
        raise NotImplementedError

    def reparameterize(self, output: ModelOutput) -> torch.Tensor:
        """Draw z = mu + sigma * eps with eps ~ N(0, I)."""
        eps = torch.randn_like(output.mu)
        return output.mu + self.scale(output) * eps

    def log_density(self, z: torch.Tensor, output: ModelOutput) -> torch.Tensor:
        """
        Log-density of z under the diagonal Gaussian posterior.

        Returns:
            log_q: [batch_size] (or [] for a single sample)
        """
        if z.shape != output.mu.shape:
            raise DimensionMismatchError(f"z shape {tuple(z.shape)} != posterior mean shape {tuple(output.mu.shape)}")
        log_sigma = self.log_scale(output)
        return (
            -0.5 * torch.sum(((z - output.mu) / self.scale(output)) ** 2, dim=-1)
            - torch.sum(log_sigma, dim=-1)
            - 0.5 * z.shape[-1] * math.log(2.0 * math.pi)
        )


class GaussianLogEncoder(GaussianEncoder):
    """Encoder returning the posterior mean and log standard deviation."""

    def __init__(self, input_dim: int, latent_dim: int, hidden_dims: Sequence[int] = (256, 256), activation='relu'):
        super().__init__(input_dim, latent_dim, hidden_dims, activation)
        last_dim = hidden_dims[-1] if len(hidden_dims) else input_dim
        self.log_sigma = nn.Linear(last_dim, latent_dim)

    def forward(self, x: torch.Tensor) -> ModelOutput:
        hidden = self._hidden(x)
        return ModelOutput(mu=self.mu(hidden), log_sigma=self.log_sigma(hidden))

    def scale(self, output: ModelOutput) -> torch.Tensor:
        return torch.exp(output.log_sigma)

    def log_scale(self, output: ModelOutput) -> torch.Tensor:
        return output.log_sigma


class GaussianLinearEncoder(GaussianEncoder):
    """Encoder returning the posterior mean and standard deviation."""

    def __init__(self, input_dim: int, latent_dim: int, hidden_dims: Sequence[int] = (256, 256), activation='relu'):
        super().__init__(input_dim, latent_dim, hidden_dims, activation)
        last_dim = hidden_dims[-1] if len(hidden_dims) else input_dim
        self.sigma = nn.Linear(last_dim, latent_dim)

    def forward(self, x: torch.Tensor) -> ModelOutput:
        hidden = self._hidden(x)
        return ModelOutput(mu=self.mu(hidden), sigma=F.softplus(self.sigma(hidden)))

    def scale(self, output: ModelOutput) -> torch.Tensor:
        return output.sigma

    def log_scale(self, output: ModelOutput) -> torch.Tensor:
        return torch.log(output.sigma)


ENCODER_VARIANTS = {
    'log': GaussianLogEncoder,
    'linear': GaussianLinearEncoder,
}


class EncoderManager(nn.Module):
    def __init__(
        self,
        input_dim: int,
        latent_dim: int,
        variant: str = "log",
        config: Optional[Union[DictConfig, Dict[str, Any]]] = None,
        verbose: bool = True,
    ):
        super().__init__()
        self.input_dim = input_dim
        self.latent_dim = latent_dim
        self.variant = variant
        self.config = config or {}

        self.encoder = self._create_encoder()

        if verbose:
            print(f"✅ Created {variant.upper()} Gaussian encoder: {self._get_parameter_count()} parameters")

    def _create_encoder(self) -> GaussianEncoder:
        """Create encoder based on the posterior parameterization."""
        key = self.variant.lower()
        if key not in ENCODER_VARIANTS:
            raise ValueError(f"Unknown encoder variant: {self.variant}. Expected one of {sorted(ENCODER_VARIANTS)}")
        return ENCODER_VARIANTS[key](
            self.input_dim,
            self.latent_dim,
            hidden_dims=list(self.config.get('hidden_dims', [256, 256])),
            activation=self.config.get('activation', 'relu'),
        )

    def forward(self, x: torch.Tensor) -> ModelOutput:
        """Forward pass through encoder."""
        return self.encoder(x)

    def encode(self, x: torch.Tensor) -> ModelOutput:
        """Encode input to posterior parameters."""
        return self.encoder(x)

    def get_architecture_info(self) -> Dict[str, Any]:
        """Get information about the encoder architecture."""
        return {
            'variant': self.variant,
            'input_dim': self.input_dim,
            'latent_dim': self.latent_dim,
            'parameter_count': self._get_parameter_count(),
            'config': dict(self.config) if self.config else {}
        }

    def _get_parameter_count(self) -> int:
        """Get total number of parameters."""
        return sum(p.numel() for p in self.parameters())

    def get_config(self) -> Dict[str, Any]:
        """Get encoder configuration."""
        return {
            'variant': self.variant,
            'input_dim': self.input_dim,
            'latent_dim': self.latent_dim,
            'config': dict(self.config) if self.config else {}
        }
