"""
Tests for the Riemannian prior samplers.
"""

import pytest
import torch

from rhvae.exceptions import InvalidArgumentError
from rhvae.models.samplers import BaseRiemannianSampler, RiemannianHMCSampler


def test_hmc_sample_shape_and_acceptance(model):
    torch.manual_seed(0)
    sampler = RiemannianHMCSampler(model, mcmc_steps_nbr=5, n_lf=4, eps_lf=0.03, beta_zero=0.5)

    z = sampler.sample(12)

    assert z.shape == (12, 2)
    assert z.dtype == torch.float64
    assert torch.isfinite(z).all()
    assert 0.0 <= sampler.acceptance_rate <= 1.0
    assert sampler.get_hmc_parameters()['acceptance_rate'] == sampler.acceptance_rate


def test_log_pi_gradient_matches_finite_differences(model):
    sampler = RiemannianHMCSampler(model)
    z = torch.randn(5, 2, dtype=torch.float64)
    h = 1e-6

    grad = sampler.grad_log_pi(z)

    for d in range(2):
        shift = torch.zeros_like(z)
        shift[:, d] = h
        with torch.no_grad():
            fd = (sampler.log_pi(z + shift) - sampler.log_pi(z - shift)) / (2 * h)
        assert torch.allclose(grad[:, d], fd, atol=1e-6)


def test_log_pi_is_half_log_det(model):
    sampler = RiemannianHMCSampler(model)
    z = torch.randn(5, 2, dtype=torch.float64)

    with torch.no_grad():
        expected = 0.5 * torch.logdet(model.G_inv(z))
        assert torch.allclose(sampler.log_pi(z), expected)


def test_sample_prior_methods(model):
    sampler = RiemannianHMCSampler(model, mcmc_steps_nbr=1, n_lf=2)

    assert sampler.sample_prior(3, method='hmc').shape == (3, 2)
    assert sampler.sample_prior(3, method='standard').shape == (3, 2)
    with pytest.raises(InvalidArgumentError):
        sampler.sample_prior(3, method='geodesic')

    info = sampler.get_sampler_info()
    assert info['sampler_type'] == 'RiemannianHMCSampler'
    assert set(info['available_methods']) == {'hmc', 'standard'}
    assert info['n_centroids'] == 5


def test_model_sample_prior(model):
    z = model.sample_prior(4, mcmc_steps_nbr=2, n_lf=3)
    assert z.shape == (4, 2)


def test_invalid_sampler_arguments(model):
    with pytest.raises(InvalidArgumentError):
        RiemannianHMCSampler(model, beta_zero=0.0)
    with pytest.raises(InvalidArgumentError):
        RiemannianHMCSampler(model, n_lf=0)
    with pytest.raises(InvalidArgumentError):
        RiemannianHMCSampler(model, mcmc_steps_nbr=0)


def test_sampler_requires_metric():
    assert not BaseRiemannianSampler.validate_metric_availability(torch.nn.Linear(2, 2))
    with pytest.raises(TypeError):
        RiemannianHMCSampler(torch.nn.Linear(2, 2))
