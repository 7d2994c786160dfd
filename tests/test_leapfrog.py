"""
Tests for the generalized leapfrog integrator and the tempered orchestrator.
"""

import math

import pytest
import torch

from rhvae.exceptions import DimensionMismatchError, InvalidArgumentError
from rhvae.models.components.leapfrog import (
    GeneralizedLeapfrog,
    PhaseSpace,
    TemperedLeapfrogIntegrator,
    general_leapfrog_tempering_step,
)
from rhvae.models.components.tempering import null_tempering, quadratic_tempering


@pytest.fixture
def leapfrog(model):
    return GeneralizedLeapfrog(model._hamiltonian(), steps=5)


def test_step_is_reversible(leapfrog, batch):
    x, z, rho = batch
    eps = 1e-4

    with torch.no_grad():
        z1, rho1 = leapfrog.step(x, z, rho, eps)
        z_back, rho_back = leapfrog.step(x, z1, rho1, -eps)

    assert not torch.allclose(z1, z)
    # Both momentum sub-steps are implicit, so the round trip is exact only up to O(eps²)
    assert torch.allclose(z_back, z, atol=1e-5)
    assert torch.allclose(rho_back, rho, atol=1e-5)
    assert (z_back - z).abs().max() < (z1 - z).abs().max()


def test_step_conserves_energy(model, leapfrog, batch):
    x, z, rho = batch

    with torch.no_grad():
        z1, rho1 = leapfrog.step(x, z, rho, 1e-4)
        dH = model.hamiltonian(x, z1, rho1) - model.hamiltonian(x, z, rho)

    assert torch.all(dH.abs() < 1e-2)


def test_step_batch_matches_rows(leapfrog, batch):
    x, z, rho = batch

    with torch.no_grad():
        z1, rho1 = leapfrog.step(x, z, rho, 1e-2)
        for i in range(z.shape[0]):
            zi, rhoi = leapfrog.step(x[i], z[i], rho[i], 1e-2)
            assert torch.allclose(z1[i], zi, atol=1e-12)
            assert torch.allclose(rho1[i], rhoi, atol=1e-12)


def test_vector_step_size_matches_scalar(leapfrog, batch):
    x, z, rho = batch
    eps_vec = torch.full((z.shape[1],), 1e-3, dtype=torch.float64)

    with torch.no_grad():
        z_s, rho_s = leapfrog.step(x, z, rho, 1e-3)
        z_v, rho_v = leapfrog.step(x, z, rho, eps_vec)

    assert torch.allclose(z_s, z_v)
    assert torch.allclose(rho_s, rho_v)

    with pytest.raises(DimensionMismatchError):
        leapfrog.step(x, z, rho, torch.ones(z.shape[1] + 1, dtype=torch.float64))


def test_rho_step_fixed_point_budget(model, batch):
    x, z, rho = batch
    eps = 1e-2
    one_iteration = GeneralizedLeapfrog(model._hamiltonian(), steps=1)

    with torch.no_grad():
        rho_tilde = one_iteration.rho_step(x, z, rho, eps)
        expected = rho - 0.5 * eps * model.grad_hamiltonian(x, z, rho, 'z')

    assert torch.allclose(rho_tilde, expected)


def test_z_step_solves_implicit_equation(model, batch):
    x, z, rho = batch
    eps = 1e-3
    integrator = GeneralizedLeapfrog(model._hamiltonian(), steps=10)

    with torch.no_grad():
        z_bar = integrator.z_step(x, z, rho, eps)
        residual = z_bar - z - 0.5 * eps * (
            model.grad_hamiltonian(x, z, rho, 'rho') + model.grad_hamiltonian(x, z_bar, rho, 'rho')
        )

    assert residual.abs().max() < 1e-12


def test_invalid_fixed_point_steps(model):
    with pytest.raises(InvalidArgumentError):
        GeneralizedLeapfrog(model._hamiltonian(), steps=0)


def test_integrate_initial_momentum(model, batch):
    x, z, _ = batch
    gamma = torch.randn_like(z)

    with torch.no_grad():
        phase = TemperedLeapfrogIntegrator(model._hamiltonian()).integrate(x, z, K=2, beta_zero=0.3, gamma=gamma)

    assert isinstance(phase, PhaseSpace)
    assert phase.z_init is z
    assert torch.allclose(phase.rho_init, gamma / math.sqrt(0.3))
    assert phase.z_final.shape == z.shape
    assert phase.rho_final.shape == z.shape


def test_null_tempering_equals_plain_leapfrog(model, leapfrog, batch):
    x, z, rho = batch
    beta_zero = 0.5
    gamma = rho * math.sqrt(beta_zero)

    with torch.no_grad():
        phase = general_leapfrog_tempering_step(
            model._hamiltonian(), x, z, K=3, epsilon=1e-2, beta_zero=beta_zero, steps=5,
            tempering_schedule=null_tempering, gamma=gamma,
        )
        z_k, rho_k = z, rho
        for _ in range(3):
            z_k, rho_k = leapfrog.step(x, z_k, rho_k, 1e-2)

    assert torch.allclose(phase.z_final, z_k)
    assert torch.allclose(phase.rho_final, rho_k)


def test_single_step_tempering_rescales_momentum(model, leapfrog, batch):
    x, z, rho = batch
    beta_zero = 0.3
    gamma = rho * math.sqrt(beta_zero)

    with torch.no_grad():
        phase = general_leapfrog_tempering_step(
            model._hamiltonian(), x, z, K=1, epsilon=1e-2, beta_zero=beta_zero, steps=5, gamma=gamma,
        )
        z1, rho1 = leapfrog.step(x, z, rho, 1e-2)

    assert torch.allclose(phase.z_final, z1)
    # β_0 = beta_zero, β_1 = 1
    assert torch.allclose(phase.rho_final, rho1 * math.sqrt(beta_zero))


def test_integrate_batch_matches_rows(model, batch):
    x, z, _ = batch
    gamma = torch.randn_like(z)
    hamiltonian = model._hamiltonian()

    with torch.no_grad():
        phase = general_leapfrog_tempering_step(hamiltonian, x, z, K=3, epsilon=1e-2, gamma=gamma)
        for i in range(z.shape[0]):
            row = general_leapfrog_tempering_step(hamiltonian, x[i], z[i], K=3, epsilon=1e-2, gamma=gamma[i])
            assert torch.allclose(phase.z_final[i], row.z_final, atol=1e-12)
            assert torch.allclose(phase.rho_final[i], row.rho_final, atol=1e-12)


def test_integrate_rejects_bad_arguments(model, batch):
    x, z, _ = batch
    hamiltonian = model._hamiltonian()

    with pytest.raises(InvalidArgumentError):
        general_leapfrog_tempering_step(hamiltonian, x, z, K=0)
    with pytest.raises(InvalidArgumentError):
        general_leapfrog_tempering_step(hamiltonian, x, z, beta_zero=0.0)
    with pytest.raises(DimensionMismatchError):
        general_leapfrog_tempering_step(hamiltonian, x, z, gamma=torch.zeros(6, 3, dtype=torch.float64))


def test_integration_keeps_graph_for_training(model, batch):
    x, _, _ = batch
    metric = model.update_metric()
    output = model.encoder(x)
    z0 = model.encoder.reparameterize(output)

    phase = general_leapfrog_tempering_step(
        model._hamiltonian(metric), x, z0, K=2, epsilon=1e-2, tempering_schedule=quadratic_tempering,
    )
    phase.z_final.sum().backward()

    assert any(p.grad is not None and p.grad.abs().sum() > 0 for p in model.metric_network.parameters())
    assert any(p.grad is not None and p.grad.abs().sum() > 0 for p in model.decoder.parameters())
