"""
Tests for the metric network and lower-triangular assembly.
"""

import pytest
import torch

from rhvae.exceptions import DimensionMismatchError
from rhvae.models.components.metric_network import MetricNetwork, vec_to_ltri, get_activation


def test_vec_to_ltri_row_major_ordering():
    diag = torch.tensor([1.0, 2.0, 3.0])
    lower = torch.tensor([4.0, 5.0, 6.0])

    L = vec_to_ltri(diag, lower)

    expected = torch.tensor([
        [1.0, 0.0, 0.0],
        [4.0, 2.0, 0.0],
        [5.0, 6.0, 3.0],
    ])
    assert torch.equal(L, expected)


def test_vec_to_ltri_batched_matches_single():
    torch.manual_seed(0)
    diag = torch.randn(5, 4)
    lower = torch.randn(5, 6)

    L = vec_to_ltri(diag, lower)

    assert L.shape == (5, 4, 4)
    for i in range(5):
        assert torch.equal(L[i], vec_to_ltri(diag[i], lower[i]))
    assert torch.equal(L, torch.tril(L))


def test_vec_to_ltri_one_dimensional():
    L = vec_to_ltri(torch.tensor([2.0]), torch.zeros(0))
    assert torch.equal(L, torch.tensor([[2.0]]))


def test_vec_to_ltri_length_mismatch():
    with pytest.raises(DimensionMismatchError):
        vec_to_ltri(torch.ones(3), torch.ones(4))
    with pytest.raises(DimensionMismatchError):
        vec_to_ltri(torch.ones(2, 3), torch.ones(3, 3))


def test_vec_to_ltri_gradient_reaches_entries():
    diag = torch.randn(2, 3, requires_grad=True)
    lower = torch.randn(2, 3, requires_grad=True)

    vec_to_ltri(diag, lower).sum().backward()

    assert torch.equal(diag.grad, torch.ones_like(diag))
    assert torch.equal(lower.grad, torch.ones_like(lower))


def test_metric_network_outputs():
    torch.manual_seed(0)
    net = MetricNetwork(n_input=5, latent_dim=3, hidden_dims=[16, 8], activations=['relu', 'tanh'])
    x = torch.randn(7, 5)

    out = net(x)
    assert out.diag.shape == (7, 3)
    assert out.lower.shape == (7, 3)

    L = net(x, matrix=True)
    assert L.shape == (7, 3, 3)
    assert torch.equal(L, torch.tril(L))
    assert torch.allclose(torch.diagonal(L, dim1=-2, dim2=-1), out.diag)

    assert net(x[0], matrix=True).shape == (3, 3)


def test_metric_network_rejects_bad_input():
    net = MetricNetwork(n_input=5, latent_dim=3)
    with pytest.raises(DimensionMismatchError):
        net(torch.randn(2, 4))


def test_metric_network_activation_count_mismatch():
    with pytest.raises(ValueError):
        MetricNetwork(n_input=5, latent_dim=3, hidden_dims=[16, 8], activations=['relu'])


def test_get_activation():
    assert isinstance(get_activation('ReLU'), torch.nn.ReLU)
    assert isinstance(get_activation(torch.nn.Tanh), torch.nn.Tanh)
    with pytest.raises(ValueError):
        get_activation('swishy')
