"""
Metric Network Module

Small feed-forward network producing the Cholesky-like factor ``L`` used to
build one local quadratic form ``M = L L^T`` per centroid.

The network has a shared MLP trunk and two linear heads:
- ``diag``: the ``D`` diagonal entries of ``L``
- ``lower``: the ``D(D-1)/2`` strictly-lower-triangular entries of ``L``,
  stored row by row (``(1,0), (2,0), (2,1), (3,0), ...``)
"""

import torch
import torch.nn as nn
from typing import Callable, Dict, Any, List, Optional, Sequence, Union

from pythae.models.base.base_utils import ModelOutput

from ...exceptions import DimensionMismatchError


_ACTIVATIONS = {
    'relu': nn.ReLU,
    'tanh': nn.Tanh,
    'sigmoid': nn.Sigmoid,
    'softplus': nn.Softplus,
    'elu': nn.ELU,
    'leaky_relu': nn.LeakyReLU,
    'identity': nn.Identity,
}


def get_activation(activation: Union[str, nn.Module, Callable]) -> nn.Module:
    """Resolve an activation given by name into a module instance."""
    if isinstance(activation, nn.Module):
        return activation
    if isinstance(activation, str):
        key = activation.lower()
        if key not in _ACTIVATIONS:
            raise ValueError(f"Unknown activation: {activation}. Expected one of {sorted(_ACTIVATIONS)}")
        return _ACTIVATIONS[key]()
    if isinstance(activation, type) and issubclass(activation, nn.Module):
        return activation()
    raise ValueError(f"Unsupported activation: {activation!r}")


def vec_to_ltri(diag: torch.Tensor, lower: torch.Tensor) -> torch.Tensor:
    """
    Assemble lower-triangular matrices from their diagonal and strict lower part.

    Args:
        diag: Diagonal entries [D] or [B, D]
        lower: Strictly-lower entries in row-major order [D(D-1)/2] or [B, D(D-1)/2]

    Returns:
        L: Lower-triangular matrix [D, D] or [B, D, D]
    """
    if diag.dim() != lower.dim():
        raise DimensionMismatchError(
            f"diag and lower must have the same number of dimensions, got {diag.dim()} and {lower.dim()}"
        )
    if diag.dim() == 2 and diag.shape[0] != lower.shape[0]:
        raise DimensionMismatchError(
            f"Batch size mismatch between diag ({diag.shape[0]}) and lower ({lower.shape[0]})"
        )

    n = diag.shape[-1]
    n_lower = n * (n - 1) // 2
    if lower.shape[-1] != n_lower:
        raise DimensionMismatchError(
            f"Dimension mismatch between 'diag' ({n}) and 'lower' ({lower.shape[-1]} != {n_lower})"
        )

    # tril_indices with offset -1 walks the strict lower triangle row by row
    rows, cols = torch.tril_indices(n, n, offset=-1, device=diag.device)
    diag_idx = torch.arange(n, device=diag.device) * (n + 1)
    index = torch.cat([diag_idx, rows * n + cols])

    values = torch.cat([diag, lower], dim=-1)
    batch_shape = values.shape[:-1]
    L = values.new_zeros(*batch_shape, n * n).scatter(-1, index.expand(*batch_shape, -1), values)
    return L.reshape(*batch_shape, n, n)


class MetricNetwork(nn.Module):
    """
    MLP mapping an input point to the entries of a lower-triangular matrix ``L``.

    In the RHVAE the network is evaluated on the data-space centroids, and the
    resulting ``L_i L_i^T`` are the local quadratic forms of the inverse metric.
    """

    def __init__(
        self,
        n_input: int,
        latent_dim: int,
        hidden_dims: Sequence[int] = (128, 128),
        activations: Optional[Sequence[Union[str, nn.Module]]] = None,
        output_activation: Union[str, nn.Module] = 'identity',
    ):
        super().__init__()
        hidden_dims = list(hidden_dims)
        if len(hidden_dims) == 0:
            raise ValueError("MetricNetwork needs at least one hidden layer")
        if activations is None:
            activations = ['relu'] * len(hidden_dims)
        activations = list(activations)
        if len(activations) != len(hidden_dims):
            raise ValueError("Each hidden layer needs exactly one activation function")

        self.n_input = n_input
        self.latent_dim = latent_dim
        self.hidden_dims = hidden_dims

        layers: List[nn.Module] = []
        in_features = n_input
        for h_dim, activation in zip(hidden_dims, activations):
            layers.extend([nn.Linear(in_features, h_dim), get_activation(activation)])
            in_features = h_dim
        self.mlp = nn.Sequential(*layers)

        self.diag = nn.Sequential(nn.Linear(in_features, latent_dim), get_activation(output_activation))
        self.lower = nn.Sequential(
            nn.Linear(in_features, latent_dim * (latent_dim - 1) // 2),
            get_activation(output_activation),
        )

    def forward(self, x: torch.Tensor, matrix: bool = False) -> Union[ModelOutput, torch.Tensor]:
        """
        Evaluate the network.

        Args:
            x: Input points [n_input] or [B, n_input]
            matrix: Return the assembled lower-triangular ``L`` instead of its entries

        Returns:
            ModelOutput(diag, lower) or L [D, D] / [B, D, D]
        """
        if x.shape[-1] != self.n_input:
            raise DimensionMismatchError(f"Input dimension {x.shape[-1]} != n_input {self.n_input}")

        hidden = self.mlp(x)
        diag_out = self.diag(hidden)
        lower_out = self.lower(hidden)

        if matrix:
            return vec_to_ltri(diag_out, lower_out)
        return ModelOutput(diag=diag_out, lower=lower_out)

    def get_config(self) -> Dict[str, Any]:
        return {
            'n_input': self.n_input,
            'latent_dim': self.latent_dim,
            'hidden_dims': self.hidden_dims,
        }
