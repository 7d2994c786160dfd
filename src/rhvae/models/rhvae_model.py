"""
Riemannian Hamiltonian VAE
==========================

VAE whose posterior sample is refined by tempered Hamiltonian dynamics on a
learned latent-space metric:

- encoder q(z|x) provides z₀
- a metric network evaluated at fixed data-space centroids gives the local
  quadratic forms M_i = L_i L_iᵀ of the inverse metric G^{-1}(z)
- K generalized leapfrog steps with tempering move (z₀, ρ₀) to (z_K, ρ_K)
- the decoder is evaluated at z_K and the ELBO combines both ends of the
  trajectory
"""

import functools
import torch
import torch.nn as nn
from typing import Any, Callable, Dict, Optional
from omegaconf import DictConfig

from pythae.models.base.base_utils import ModelOutput

from .components.encoder_manager import EncoderManager, GaussianEncoder
from .components.decoder_manager import DecoderManager, GaussianDecoder
from .components.metric_network import MetricNetwork
from .components.metric_tensor import MetricState, MetricTensor
from .components.hamiltonian import Hamiltonian
from .components.leapfrog import StepSize, general_leapfrog_tempering_step
from .components.tempering import quadratic_tempering, null_tempering
from .components.loss_manager import LossManager
from .components.centroids import centroids_kmeans, centroids_random
from .samplers.hmc_sampler import RiemannianHMCSampler
from ..config import (
    DEFAULT_K,
    DEFAULT_EPSILON,
    DEFAULT_BETA_ZERO,
    DEFAULT_STEPS,
    DEFAULT_TEMPERATURE,
    DEFAULT_REGULARIZATION,
    to_container,
    validate_config,
)
from ..exceptions import DimensionMismatchError, InvalidArgumentError


class RHVAE(nn.Module):
    """
    Riemannian Hamiltonian VAE.

    Args:
        encoder: Gaussian encoder exposing ``reparameterize`` and ``log_density``
        decoder: Gaussian decoder exposing ``log_likelihood``
        metric_network: Network mapping data points to lower-triangular factors
        centroids_data: Data-space centroids [n_centroids, input_dim], fixed
        temperature: Kernel bandwidth T
        regularization: λ in G^{-1}(z) = Σ_i w_i(z) M_i + λI
    """

    def __init__(
        self,
        encoder: GaussianEncoder,
        decoder: GaussianDecoder,
        metric_network: MetricNetwork,
        centroids_data: torch.Tensor,
        temperature: float = DEFAULT_TEMPERATURE,
        regularization: float = DEFAULT_REGULARIZATION,
        verbose: bool = True,
    ):
        super().__init__()
        self._check_components(encoder, decoder, metric_network, centroids_data)

        self.encoder = encoder
        self.decoder = decoder
        self.metric_network = metric_network
        self.register_buffer('centroids_data', centroids_data.detach().clone())

        self.metric_tensor = MetricTensor(
            latent_dim=encoder.latent_dim,
            temperature=temperature,
            regularization=regularization,
            n_centroids=centroids_data.shape[0],
        )
        self.loss_manager = LossManager(
            decoder_loglikelihood=self.decoder.log_likelihood_from_output,
            encoder_logdensity=self.encoder.log_density,
        )

        # Cache consistent with the freshly initialized networks
        self.update_metric_()

        if verbose:
            n_params = sum(p.numel() for p in self.parameters())
            print(f"✅ Created RHVAE: {n_params} parameters, {self.metric_tensor.n_centroids} centroids, "
                  f"latent_dim={self.latent_dim}")

    @staticmethod
    def _check_components(encoder, decoder, metric_network, centroids_data):
        if decoder.latent_dim != encoder.latent_dim:
            raise DimensionMismatchError(
                f"Decoder latent_dim {decoder.latent_dim} != encoder latent_dim {encoder.latent_dim}"
            )
        if decoder.output_dim != encoder.input_dim:
            raise DimensionMismatchError(
                f"Decoder output_dim {decoder.output_dim} != encoder input_dim {encoder.input_dim}"
            )
        if metric_network.n_input != encoder.input_dim or metric_network.latent_dim != encoder.latent_dim:
            raise DimensionMismatchError(
                f"Metric network maps {metric_network.n_input} -> {metric_network.latent_dim}, "
                f"expected {encoder.input_dim} -> {encoder.latent_dim}"
            )
        if centroids_data.dim() != 2 or centroids_data.shape[1] != encoder.input_dim:
            raise DimensionMismatchError(
                f"centroids_data must have shape [n_centroids, {encoder.input_dim}], got {tuple(centroids_data.shape)}"
            )
        if centroids_data.shape[0] < 1:
            raise InvalidArgumentError("At least one centroid is required")

    @property
    def latent_dim(self) -> int:
        return self.encoder.latent_dim

    @property
    def input_dim(self) -> int:
        return self.encoder.input_dim

    @property
    def device(self) -> torch.device:
        return self.centroids_data.device

    @property
    def temperature(self) -> float:
        return self.metric_tensor.temperature

    @property
    def regularization(self) -> float:
        return self.metric_tensor.regularization

    # ------------------------------------------------------------------
    # Metric
    # ------------------------------------------------------------------

    def update_metric(self) -> MetricState:
        """
        Recompute (centroids_latent, M) from the current encoder and metric
        network. Does not touch the cache; the result stays attached to the
        autograd graph when grad mode is on.
        """
        centroids_latent = self.encoder(self.centroids_data).mu
        L = self.metric_network(self.centroids_data, matrix=True)
        M = L @ L.transpose(-2, -1)
        return MetricState(centroids_latent=centroids_latent, M=M)

    def update_metric_(self, state: Optional[MetricState] = None) -> None:
        """Refresh the cached metric in place (from ``state`` or recomputed)."""
        if state is None:
            with torch.no_grad():
                state = self.update_metric()
        self.metric_tensor.update_(state)

    def G_inv(self, z: torch.Tensor, metric: Optional[MetricState] = None) -> torch.Tensor:
        """Differentiable inverse metric; ``metric`` defaults to the cache."""
        return self.metric_tensor.compute_inverse_metric(z, metric)

    def G_inv_fast(self, z: torch.Tensor, metric: Optional[MetricState] = None) -> torch.Tensor:
        """Inference-only inverse metric."""
        return self.metric_tensor.compute_inverse_metric_fast(z, metric)

    def G(self, z: torch.Tensor, metric: Optional[MetricState] = None) -> torch.Tensor:
        return self.metric_tensor.compute_metric(z, metric)

    # ------------------------------------------------------------------
    # Hamiltonian
    # ------------------------------------------------------------------

    def _G_inv_fn(self, metric: Optional[MetricState]) -> Callable[[torch.Tensor], torch.Tensor]:
        return functools.partial(self.G_inv, metric=metric)

    def _hamiltonian(self, metric: Optional[MetricState] = None) -> Hamiltonian:
        return Hamiltonian(self.decoder, self._G_inv_fn(metric))

    def hamiltonian(
        self, x: torch.Tensor, z: torch.Tensor, rho: torch.Tensor, metric: Optional[MetricState] = None
    ) -> torch.Tensor:
        """H_x(z, ρ), one value per row."""
        return self._hamiltonian(metric)(x, z, rho)

    def grad_hamiltonian(
        self,
        x: torch.Tensor,
        z: torch.Tensor,
        rho: torch.Tensor,
        var: str,
        metric: Optional[MetricState] = None,
    ) -> torch.Tensor:
        """∇_z H or ∇_ρ H depending on ``var``."""
        return self._hamiltonian(metric).grad(x, z, rho, var)

    # ------------------------------------------------------------------
    # Forward / loss
    # ------------------------------------------------------------------

    def forward(
        self,
        x: torch.Tensor,
        K: int = DEFAULT_K,
        epsilon: StepSize = DEFAULT_EPSILON,
        beta_zero: float = DEFAULT_BETA_ZERO,
        steps: int = DEFAULT_STEPS,
        tempering_schedule: Callable[[float, int, int], float] = quadratic_tempering,
        latent: bool = False,
        metric: Optional[MetricState] = None,
        z0: Optional[torch.Tensor] = None,
        gamma: Optional[torch.Tensor] = None,
    ) -> ModelOutput:
        """
        Encode, integrate the tempered Hamiltonian dynamics and decode z_K.

        Args:
            x: Data [input_dim] or [batch_size, input_dim]
            K: Number of leapfrog steps
            epsilon: Leapfrog step size, scalar or [latent_dim]
            beta_zero: Initial inverse temperature
            steps: Fixed-point iterations per implicit sub-step
            tempering_schedule: (beta_zero, k, K) -> β_k
            latent: Return encoder, decoder and phase-space outputs together
            metric: Metric snapshot; defaults to the cache
            z0: Initial position; sampled from q(z|x) when omitted
            gamma: Standard normal draw for the initial momentum

        Returns:
            Decoder ModelOutput, or ModelOutput(encoder, decoder, phase_space)
        """
        encoder_output = self.encoder(x)
        if z0 is None:
            z0 = self.encoder.reparameterize(encoder_output)

        phase_space = general_leapfrog_tempering_step(
            self._hamiltonian(metric), x, z0,
            K=K, epsilon=epsilon, beta_zero=beta_zero, steps=steps,
            tempering_schedule=tempering_schedule, gamma=gamma,
        )

        decoder_output = self.decoder(phase_space.z_final)

        if latent:
            return ModelOutput(encoder=encoder_output, decoder=decoder_output, phase_space=phase_space)
        return decoder_output

    def loss_function(
        self,
        x: torch.Tensor,
        metric: Optional[MetricState] = None,
        track: bool = True,
        **forward_kwargs,
    ) -> Dict[str, Any]:
        """
        Negative ELBO and its components.

        A fresh differentiable metric snapshot is used when ``metric`` is not
        given, so the metric network and encoder receive gradients through
        G^{-1}.
        """
        if metric is None:
            metric = self.update_metric()
        forward_kwargs.pop('latent', None)
        beta_zero = forward_kwargs.get('beta_zero', DEFAULT_BETA_ZERO)

        outputs = self(x, latent=True, metric=metric, **forward_kwargs)
        return self.loss_manager.compute_total_loss(
            x, outputs, self._G_inv_fn(metric), beta_zero, track=track
        )

    def elbo_loss(self, x: torch.Tensor, metric: Optional[MetricState] = None, **forward_kwargs) -> torch.Tensor:
        """Scalar -mean(ELBO) for optimization."""
        return self.loss_function(x, metric=metric, track=False, **forward_kwargs)['total_loss']

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    def sample_prior(self, num_samples: int, **sampler_kwargs) -> torch.Tensor:
        """Latent codes from the Riemannian prior ∝ √det G^{-1}(z)."""
        return RiemannianHMCSampler(self, **sampler_kwargs).sample(num_samples)

    @torch.no_grad()
    def generate(self, num_samples: int, **sampler_kwargs) -> torch.Tensor:
        """Decoder means at latent codes drawn from the Riemannian prior."""
        z = self.sample_prior(num_samples, **sampler_kwargs)
        return self.decoder(z).mu

    def get_config(self) -> Dict[str, Any]:
        return {
            'input_dim': self.input_dim,
            'latent_dim': self.latent_dim,
            'encoder': type(self.encoder).__name__,
            'decoder': type(self.decoder).__name__,
            'metric_network': self.metric_network.get_config(),
            'metric': self.metric_tensor.get_config(),
        }


TEMPERING_FUNCTIONS = {
    'quadratic': quadratic_tempering,
    'null': null_tempering,
}


class ModelFactory:
    """Factory for creating models from configurations."""

    @staticmethod
    def create_model(
        config: DictConfig,
        centroids_data: Optional[torch.Tensor] = None,
        data: Optional[torch.Tensor] = None,
        verbose: bool = True,
    ) -> RHVAE:
        """
        Create an RHVAE from configuration.

        Args:
            config: Config as returned by ``get_default_config``
            centroids_data: Data-space centroids; selected from ``data`` when omitted
            data: Training samples used for centroid selection
        """
        validate_config(config)
        model_cfg = config.model

        if centroids_data is None:
            if data is None:
                raise InvalidArgumentError("Either centroids_data or data must be given")
            n_centroids = config.metric.n_centroids
            if config.metric.get('centroid_method', 'kmeans') == 'kmeans':
                centroids_data = centroids_kmeans(data, n_centroids)
            else:
                centroids_data = centroids_random(data, n_centroids)

        encoder_manager = EncoderManager(
            model_cfg.input_dim, model_cfg.latent_dim,
            variant=model_cfg.encoder.variant,
            config=to_container(model_cfg.encoder),
            verbose=verbose,
        )
        decoder_manager = DecoderManager(
            model_cfg.input_dim, model_cfg.latent_dim,
            variant=model_cfg.decoder.variant,
            config=to_container(model_cfg.decoder),
            verbose=verbose,
        )
        metric_hidden = list(model_cfg.metric_network.hidden_dims)
        metric_network = MetricNetwork(
            model_cfg.input_dim, model_cfg.latent_dim,
            hidden_dims=metric_hidden,
            activations=[model_cfg.metric_network.activation] * len(metric_hidden),
        )

        return RHVAE(
            encoder_manager.encoder,
            decoder_manager.decoder,
            metric_network,
            centroids_data,
            temperature=config.metric.temperature,
            regularization=config.metric.regularization,
            verbose=verbose,
        )

    @staticmethod
    def forward_kwargs(config: DictConfig) -> Dict[str, Any]:
        """Keyword arguments for ``RHVAE.forward`` / ``elbo_loss`` from the ``hamiltonian`` group."""
        ham = config.hamiltonian
        return {
            'K': ham.K,
            'epsilon': ham.epsilon,
            'beta_zero': ham.beta_zero,
            'steps': ham.steps,
            'tempering_schedule': TEMPERING_FUNCTIONS[ham.tempering],
        }
