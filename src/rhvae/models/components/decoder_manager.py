"""
DecoderManager: Gaussian Decoder Variants
=========================================

Decoders map latent codes to a Gaussian output distribution p(x|z). Three
parameterizations are supported, each evaluating its own log-likelihood:
- ``simple``: SimpleGaussianDecoder, mean only with unit standard deviation
- ``log``: GaussianLogDecoder, mean and learned log standard deviation
- ``linear``: GaussianLinearDecoder, mean and learned standard deviation (softplus)
"""

import math
import torch
import torch.nn as nn
import torch.nn.functional as F
from typing import Dict, Any, Optional, Sequence, Union
from omegaconf import DictConfig

from pythae.models.nn import BaseDecoder
from pythae.models.base.base_utils import ModelOutput

from .encoder_manager import _build_mlp
from .metric_network import get_activation
from ...exceptions import DimensionMismatchError


LOG_2PI = math.log(2.0 * math.pi)


class GaussianDecoder(BaseDecoder):
    """Shared MLP trunk and mean head for the Gaussian decoder variants."""

    def __init__(
        self,
        latent_dim: int,
        output_dim: int,
        hidden_dims: Sequence[int] = (256, 256),
        activation='relu',
        output_activation='identity',
    ):
        super().__init__()
        self.latent_dim = latent_dim
        self.output_dim = output_dim

        hidden_dims = list(hidden_dims)
        self.mlp = _build_mlp(latent_dim, hidden_dims, activation)
        self.last_dim = hidden_dims[-1] if hidden_dims else latent_dim
        self.mu = nn.Sequential(nn.Linear(self.last_dim, output_dim), get_activation(output_activation))

    def _hidden(self, z: torch.Tensor) -> torch.Tensor:
        if z.shape[-1] != self.latent_dim:
            raise DimensionMismatchError(f"Latent dimension {z.shape[-1]} != decoder latent_dim {self.latent_dim}")
        return self.mlp(z)

    def _check_target(self, x: torch.Tensor, output: ModelOutput) -> None:
        if x.shape != output.mu.shape:
            raise DimensionMismatchError(
                f"Data shape {tuple(x.shape)} != decoder output shape {tuple(output.mu.shape)}"
            )

    def log_likelihood_from_output(self, x: torch.Tensor, output: ModelOutput) -> torch.Tensor:
        raise NotImplementedError

    def log_likelihood(self, x: torch.Tensor, z: torch.Tensor) -> torch.Tensor:
        """
        log p(x|z) for each sample.

        Args:
            x: Data [output_dim] or [batch_size, output_dim]
            z: Latent codes [latent_dim] or [batch_size, latent_dim]

        Returns:
            log_likelihood: [] or [batch_size]
        """
        return self.log_likelihood_from_output(x, self(z))


class SimpleGaussianDecoder(GaussianDecoder):
    """Gaussian decoder with fixed unit standard deviation."""

    def forward(self, z: torch.Tensor) -> ModelOutput:
        return ModelOutput(mu=self.mu(self._hidden(z)))

    def log_likelihood_from_output(self, x: torch.Tensor, output: ModelOutput) -> torch.Tensor:
        self._check_target(x, output)
        return -0.5 * torch.sum((x - output.mu) ** 2, dim=-1) - 0.5 * x.shape[-1] * LOG_2PI


class GaussianLogDecoder(GaussianDecoder):
    """Gaussian decoder predicting the mean and the log standard deviation."""

    def __init__(self, latent_dim: int, output_dim: int, **kwargs):
        super().__init__(latent_dim, output_dim, **kwargs)
        self.log_sigma = nn.Linear(self.last_dim, output_dim)

    def forward(self, z: torch.Tensor) -> ModelOutput:
        hidden = self._hidden(z)
        return ModelOutput(mu=self.mu(hidden), log_sigma=self.log_sigma(hidden))

    def log_likelihood_from_output(self, x: torch.Tensor, output: ModelOutput) -> torch.Tensor:
        self._check_target(x, output)
        sigma = torch.exp(output.log_sigma)
        return (
            -0.5 * torch.sum(((x - output.mu) / sigma) ** 2, dim=-1)
            - torch.sum(output.log_sigma, dim=-1)
            - 0.5 * x.shape[-1] * LOG_2PI
        )


class GaussianLinearDecoder(GaussianDecoder):
    """Gaussian decoder predicting the mean and the standard deviation."""

    def __init__(self, latent_dim: int, output_dim: int, **kwargs):
        super().__init__(latent_dim, output_dim, **kwargs)
        self.sigma = nn.Linear(self.last_dim, output_dim)

    def forward(self, z: torch.Tensor) -> ModelOutput:
        hidden = self._hidden(z)
        return ModelOutput(mu=self.mu(hidden), sigma=F.softplus(self.sigma(hidden)))

    def log_likelihood_from_output(self, x: torch.Tensor, output: ModelOutput) -> torch.Tensor:
        self._check_target(x, output)
        return (
            -0.5 * torch.sum(((x - output.mu) / output.sigma) ** 2, dim=-1)
            - torch.sum(torch.log(output.sigma), dim=-1)
            - 0.5 * x.shape[-1] * LOG_2PI
        )


DECODER_VARIANTS = {
    'simple': SimpleGaussianDecoder,
    'log': GaussianLogDecoder,
    'linear': GaussianLinearDecoder,
}


class DecoderManager(nn.Module):
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

        self.decoder = self._create_decoder()

        if verbose:
            print(f"✅ Created {variant.upper()} Gaussian decoder: {self._get_parameter_count()} parameters")

    def _create_decoder(self) -> GaussianDecoder:
        """Create decoder based on the output parameterization."""
        key = self.variant.lower()
        if key not in DECODER_VARIANTS:
            raise ValueError(f"Unknown decoder variant: {self.variant}. Expected one of {sorted(DECODER_VARIANTS)}")
        return DECODER_VARIANTS[key](
            self.latent_dim,
            self.input_dim,
            hidden_dims=list(self.config.get('hidden_dims', [256, 256])),
            activation=self.config.get('activation', 'relu'),
            output_activation=self.config.get('output_activation', 'identity'),
        )

    def forward(self, z: torch.Tensor) -> ModelOutput:
        """Forward pass through decoder."""
        return self.decoder(z)

    def decode(self, z: torch.Tensor) -> torch.Tensor:
        """Decode latent to the output mean."""
        return self.decoder(z).mu

    def get_architecture_info(self) -> Dict[str, Any]:
        """Get information about the decoder architecture."""
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
        """Get decoder configuration."""
        return {
            'variant': self.variant,
            'input_dim': self.input_dim,
            'latent_dim': self.latent_dim,
            'config': dict(self.config) if self.config else {}
        }
