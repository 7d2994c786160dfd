"""
Base Riemannian Sampler
=======================

Abstract base class for samplers drawing latent codes with the learned metric.
"""

import torch
from abc import ABC, abstractmethod
from typing import Dict, Any


class BaseRiemannianSampler(ABC):
    """
    Abstract base class for Riemannian sampling strategies.

    All samplers should inherit from this class and implement ``sample_prior``.
    """

    def __init__(self, model):
        """
        Args:
            model: RHVAE providing ``G_inv``, ``metric_tensor`` and ``latent_dim``
        """
        if not self.validate_metric_availability(model):
            raise TypeError(f"{type(model).__name__} does not expose a Riemannian metric")
        self.model = model

    @property
    def device(self) -> torch.device:
        return self.model.device

    @abstractmethod
    def sample_prior(self, num_samples: int, method: str = 'hmc') -> torch.Tensor:
        """
        Sample from the Riemannian prior.

        Args:
            num_samples: Number of samples to generate
            method: Prior sampling method to use

        Returns:
            Prior samples [num_samples, latent_dim]
        """

    @staticmethod
    def validate_metric_availability(model) -> bool:
        """Check that the model has the metric tensor components."""
        required_attrs = ['metric_tensor', 'G_inv', 'latent_dim']
        return all(hasattr(model, attr) for attr in required_attrs)

    def get_sampling_methods(self) -> Dict[str, str]:
        return {
            'standard': 'Standard Gaussian sampling (no Riemannian)',
        }

    def get_sampler_info(self) -> Dict[str, Any]:
        """
        Get information about this sampler.

        Returns:
            Dictionary with sampler information
        """
        return {
            'sampler_type': self.__class__.__name__,
            'available_methods': list(self.get_sampling_methods().keys()),
            'n_centroids': self.model.metric_tensor.n_centroids,
            'device': str(self.device)
        }
