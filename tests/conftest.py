"""
Shared fixtures for the RHVAE test-suite.
"""

import pytest
import torch

from rhvae.models import RHVAE
from rhvae.models.components.encoder_manager import ENCODER_VARIANTS
from rhvae.models.components.decoder_manager import DECODER_VARIANTS
from rhvae.models.components.metric_network import MetricNetwork
from rhvae.models.components.metric_tensor import MetricState

INPUT_DIM = 4
LATENT_DIM = 2


def build_model(
    dtype=torch.float64,
    n_centroids=5,
    encoder="log",
    decoder="simple",
    temperature=0.8,
    regularization=0.01,
    seed=0,
):
    torch.manual_seed(seed)
    enc = ENCODER_VARIANTS[encoder](INPUT_DIM, LATENT_DIM, hidden_dims=[16])
    dec = DECODER_VARIANTS[decoder](LATENT_DIM, INPUT_DIM, hidden_dims=[16])
    metric_network = MetricNetwork(INPUT_DIM, LATENT_DIM, hidden_dims=[8])
    centroids_data = torch.randn(n_centroids, INPUT_DIM)

    model = RHVAE(
        enc, dec, metric_network, centroids_data,
        temperature=temperature, regularization=regularization, verbose=False,
    ).to(dtype)
    model.update_metric_()
    return model


@pytest.fixture
def model():
    return build_model()


@pytest.fixture
def make_model():
    return build_model


@pytest.fixture
def batch():
    torch.manual_seed(123)
    x = torch.randn(6, INPUT_DIM, dtype=torch.float64)
    z = torch.randn(6, LATENT_DIM, dtype=torch.float64)
    rho = torch.randn(6, LATENT_DIM, dtype=torch.float64)
    return x, z, rho


@pytest.fixture
def four_centroid_state():
    """Unit quadratic forms at (±1, 0) and (0, ±1)."""
    centroids = torch.tensor([[1.0, 0.0], [-1.0, 0.0], [0.0, 1.0], [0.0, -1.0]], dtype=torch.float64)
    M = torch.eye(2, dtype=torch.float64).repeat(4, 1, 1)
    return MetricState(centroids_latent=centroids, M=M)


@pytest.fixture
def random_state():
    torch.manual_seed(7)
    centroids = torch.randn(3, LATENT_DIM, dtype=torch.float64)
    L = torch.tril(torch.randn(3, LATENT_DIM, LATENT_DIM, dtype=torch.float64))
    return MetricState(centroids_latent=centroids, M=L @ L.transpose(-2, -1))
