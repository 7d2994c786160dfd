"""
Tests for the Gaussian encoder and decoder variants and their managers.
"""

import pytest
import torch
from torch.distributions import Normal

from rhvae.exceptions import DimensionMismatchError
from rhvae.models.components.encoder_manager import EncoderManager, GaussianLogEncoder, GaussianLinearEncoder
from rhvae.models.components.decoder_manager import (
    DecoderManager,
    SimpleGaussianDecoder,
    GaussianLogDecoder,
    GaussianLinearDecoder,
)


@pytest.fixture
def data():
    torch.manual_seed(0)
    return torch.randn(5, 6), torch.randn(5, 2)


def test_simple_decoder_loglikelihood(data):
    x, z = data
    decoder = SimpleGaussianDecoder(2, 6, hidden_dims=[8])

    output = decoder(z)
    expected = Normal(output.mu, 1.0).log_prob(x).sum(-1)

    assert torch.allclose(decoder.log_likelihood(x, z), expected, atol=1e-5)
    assert torch.allclose(decoder.log_likelihood_from_output(x, output), expected, atol=1e-5)


def test_log_decoder_loglikelihood(data):
    x, z = data
    decoder = GaussianLogDecoder(2, 6, hidden_dims=[8])

    output = decoder(z)
    expected = Normal(output.mu, output.log_sigma.exp()).log_prob(x).sum(-1)

    assert torch.allclose(decoder.log_likelihood(x, z), expected, atol=1e-5)


def test_linear_decoder_loglikelihood(data):
    x, z = data
    decoder = GaussianLinearDecoder(2, 6, hidden_dims=[8])

    output = decoder(z)
    assert torch.all(output.sigma > 0)
    expected = Normal(output.mu, output.sigma).log_prob(x).sum(-1)

    assert torch.allclose(decoder.log_likelihood(x, z), expected, atol=1e-5)


def test_decoder_shape_mismatch(data):
    x, z = data
    decoder = SimpleGaussianDecoder(2, 6, hidden_dims=[8])

    with pytest.raises(DimensionMismatchError):
        decoder.log_likelihood(x[:, :5], z)
    with pytest.raises(DimensionMismatchError):
        decoder.log_likelihood(x, torch.randn(5, 3))


@pytest.mark.parametrize("encoder_cls", [GaussianLogEncoder, GaussianLinearEncoder])
def test_encoder_log_density(encoder_cls, data):
    x, _ = data
    encoder = encoder_cls(6, 2, hidden_dims=[8])

    output = encoder(x)
    z = encoder.reparameterize(output)
    expected = Normal(output.mu, encoder.scale(output)).log_prob(z).sum(-1)

    assert z.shape == (5, 2)
    assert torch.allclose(encoder.log_density(z, output), expected, atol=1e-5)


def test_encoder_rejects_bad_input(data):
    x, _ = data
    encoder = GaussianLogEncoder(6, 2, hidden_dims=[8])

    with pytest.raises(DimensionMismatchError):
        encoder(x[:, :4])
    with pytest.raises(DimensionMismatchError):
        encoder.log_density(torch.zeros(5, 3), encoder(x))


def test_managers_create_variants(capsys):
    enc = EncoderManager(6, 2, variant="linear", config={'hidden_dims': [8], 'activation': 'tanh'})
    dec = DecoderManager(6, 2, variant="log", config={'hidden_dims': [8, 8]})

    assert isinstance(enc.encoder, GaussianLinearEncoder)
    assert isinstance(dec.decoder, GaussianLogDecoder)
    assert "Created LINEAR Gaussian encoder" in capsys.readouterr().out

    x = torch.randn(3, 6)
    assert enc.encode(x).mu.shape == (3, 2)
    assert dec.decode(torch.randn(3, 2)).shape == (3, 6)
    assert enc.get_architecture_info()['parameter_count'] == sum(p.numel() for p in enc.parameters())
    assert dec.get_config()['variant'] == "log"


def test_managers_reject_unknown_variant():
    with pytest.raises(ValueError):
        EncoderManager(6, 2, variant="flow", verbose=False)
    with pytest.raises(ValueError):
        DecoderManager(6, 2, variant="bernoulli", verbose=False)
