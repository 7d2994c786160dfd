"""
Configuration for the Riemannian Hamiltonian VAE.
Contains model defaults and the omegaconf config used by ``ModelFactory``.
"""

from typing import Any, Dict, Optional
from omegaconf import DictConfig, OmegaConf

from .exceptions import InvalidArgumentError, NumericalDegeneracyError

# Model defaults
DEFAULT_LATENT_DIM = 2
DEFAULT_ENCODER_VARIANT = "log"
DEFAULT_DECODER_VARIANT = "simple"
DEFAULT_HIDDEN_DIMS = [256, 256]
DEFAULT_METRIC_HIDDEN_DIMS = [128, 128]
DEFAULT_ACTIVATION = "relu"

# Metric defaults
DEFAULT_TEMPERATURE = 0.8
DEFAULT_REGULARIZATION = 0.01
DEFAULT_N_CENTROIDS = 64
DEFAULT_CENTROID_METHOD = "kmeans"

# Hamiltonian dynamics defaults
DEFAULT_K = 3
DEFAULT_EPSILON = 0.001
DEFAULT_BETA_ZERO = 0.3
DEFAULT_STEPS = 3
DEFAULT_TEMPERING = "quadratic"

TEMPERING_SCHEDULES = ("quadratic", "null")
CENTROID_METHODS = ("kmeans", "random")


def get_default_config(input_dim: int, **overrides: Any) -> DictConfig:
    """
    Build the default configuration.

    Args:
        input_dim: Data dimensionality
        **overrides: Dotted-key overrides, e.g. ``{"metric.temperature": 0.5}``

    Returns:
        DictConfig with ``model``, ``metric`` and ``hamiltonian`` groups
    """
    config = OmegaConf.create({
        'model': {
            'input_dim': input_dim,
            'latent_dim': DEFAULT_LATENT_DIM,
            'encoder': {
                'variant': DEFAULT_ENCODER_VARIANT,
                'hidden_dims': list(DEFAULT_HIDDEN_DIMS),
                'activation': DEFAULT_ACTIVATION,
            },
            'decoder': {
                'variant': DEFAULT_DECODER_VARIANT,
                'hidden_dims': list(DEFAULT_HIDDEN_DIMS),
                'activation': DEFAULT_ACTIVATION,
                'output_activation': 'identity',
            },
            'metric_network': {
                'hidden_dims': list(DEFAULT_METRIC_HIDDEN_DIMS),
                'activation': DEFAULT_ACTIVATION,
            },
        },
        'metric': {
            'temperature': DEFAULT_TEMPERATURE,
            'regularization': DEFAULT_REGULARIZATION,
            'n_centroids': DEFAULT_N_CENTROIDS,
            'centroid_method': DEFAULT_CENTROID_METHOD,
        },
        'hamiltonian': {
            'K': DEFAULT_K,
            'epsilon': DEFAULT_EPSILON,
            'beta_zero': DEFAULT_BETA_ZERO,
            'steps': DEFAULT_STEPS,
            'tempering': DEFAULT_TEMPERING,
        },
    })
    for key, value in overrides.items():
        OmegaConf.update(config, key, value, merge=False)
    return config


def validate_config(config: DictConfig) -> None:
    """Raise on values the model cannot be built or run with."""
    for group in ('model', 'metric', 'hamiltonian'):
        if group not in config:
            raise InvalidArgumentError(f"Missing config group '{group}'")

    model = config.model
    if model.input_dim < 1 or model.latent_dim < 1:
        raise InvalidArgumentError(
            f"input_dim and latent_dim must be >= 1, got {model.input_dim} and {model.latent_dim}"
        )

    metric = config.metric
    if not metric.regularization > 0:
        raise NumericalDegeneracyError(f"regularization must be > 0, got {metric.regularization}")
    if not metric.temperature > 0:
        raise InvalidArgumentError(f"temperature must be > 0, got {metric.temperature}")
    if metric.get('centroid_method', DEFAULT_CENTROID_METHOD) not in CENTROID_METHODS:
        raise InvalidArgumentError(
            f"Unknown centroid_method '{metric.centroid_method}'. Expected one of {CENTROID_METHODS}"
        )

    ham = config.hamiltonian
    if ham.K < 1 or ham.steps < 1:
        raise InvalidArgumentError(f"K and steps must be >= 1, got K={ham.K}, steps={ham.steps}")
    if not 0.0 < ham.beta_zero <= 1.0:
        raise InvalidArgumentError(f"beta_zero must lie in (0, 1], got {ham.beta_zero}")
    if ham.tempering not in TEMPERING_SCHEDULES:
        raise InvalidArgumentError(
            f"Unknown tempering schedule '{ham.tempering}'. Expected one of {TEMPERING_SCHEDULES}"
        )


def to_container(config: Optional[DictConfig]) -> Dict[str, Any]:
    """Plain-dict view of a config (empty for None)."""
    if config is None:
        return {}
    return OmegaConf.to_container(config, resolve=True)
