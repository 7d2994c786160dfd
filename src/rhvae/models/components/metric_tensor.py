"""
Riemannian Metric Tensor Module

Centroid-based inverse metric of the Riemannian Hamiltonian VAE:

    G^{-1}(z) = Σ_i M_i * exp(-||z - c_i||² / T²) + λI
    G(z) = [G^{-1}(z)]^{-1}

Where:
- z: latent coordinates [batch_size, latent_dim]
- c_i: centroids in latent space [n_centroids, latent_dim]
- M_i = L_i L_i^T: local quadratic forms [n_centroids, latent_dim, latent_dim]
- T: temperature (kernel bandwidth)
- λ: regularization

The cached (centroids, M) pair is a value snapshot (``MetricState``). The
differentiable path takes the snapshot as an argument and never writes to the
cache; ``update_`` refreshes the cache in place outside of autograd.
"""

import torch
import torch.nn as nn
from typing import NamedTuple, Optional, Dict, Any

from ...exceptions import DimensionMismatchError, InvalidArgumentError, NumericalDegeneracyError


class MetricState(NamedTuple):
    """Snapshot of the centroid cache."""
    centroids_latent: torch.Tensor  # [n_centroids, latent_dim]
    M: torch.Tensor  # [n_centroids, latent_dim, latent_dim]


class _FillBatch(torch.autograd.Function):
    """Broadcast one matrix over a batch; the adjoint sums over the batch."""

    @staticmethod
    def forward(ctx, matrix: torch.Tensor, batch_size: int) -> torch.Tensor:
        return matrix.unsqueeze(0).expand(batch_size, *matrix.shape).clone()

    @staticmethod
    def backward(ctx, grad_output: torch.Tensor):
        return grad_output.sum(dim=0), None


def fill_batch(matrix: torch.Tensor, batch_size: int) -> torch.Tensor:
    """Stack ``batch_size`` copies of ``matrix`` along a new leading dimension."""
    return _FillBatch.apply(matrix, batch_size)


def validate_metric_hyperparameters(temperature: float, regularization: float) -> None:
    if not regularization > 0:
        raise NumericalDegeneracyError(
            f"regularization must be > 0 for G^-1 to stay positive-definite, got {regularization}"
        )
    if not temperature > 0:
        raise InvalidArgumentError(f"temperature must be > 0, got {temperature}")


class MetricTensor(nn.Module):
    """
    Riemannian metric tensor computation module.

    Holds the current ``MetricState`` as buffers so it follows the model across
    devices. Every compute method accepts an explicit ``state`` to evaluate a
    snapshot that is still attached to the autograd graph.
    """

    def __init__(
        self,
        latent_dim: int,
        temperature: float = 0.8,
        regularization: float = 0.01,
        n_centroids: int = 0,
    ):
        super().__init__()
        validate_metric_hyperparameters(temperature, regularization)

        self.latent_dim = latent_dim
        self.temperature = float(temperature)
        self.regularization = float(regularization)

        # Identity quadratic forms until the first refresh
        self.register_buffer('centroids', torch.zeros(n_centroids, latent_dim))
        self.register_buffer(
            'metric_matrices',
            torch.eye(latent_dim).unsqueeze(0).repeat(n_centroids, 1, 1),
        )

    @property
    def state(self) -> MetricState:
        """Current cached snapshot."""
        return MetricState(centroids_latent=self.centroids, M=self.metric_matrices)

    @property
    def n_centroids(self) -> int:
        return self.centroids.shape[0]

    def _validate_state(self, state: MetricState) -> None:
        centroids, M = state
        if centroids.dim() != 2 or centroids.shape[1] != self.latent_dim:
            raise DimensionMismatchError(
                f"Centroids shape {tuple(centroids.shape)} incompatible with latent_dim {self.latent_dim}"
            )
        if M.shape != (centroids.shape[0], self.latent_dim, self.latent_dim):
            raise DimensionMismatchError(
                f"Metric matrices shape {tuple(M.shape)} != "
                f"({centroids.shape[0]}, {self.latent_dim}, {self.latent_dim})"
            )

    @torch.no_grad()
    def update_(self, state: MetricState) -> None:
        """
        Refresh the cached snapshot in place.

        Args:
            state: New (centroids_latent, M); stored as detached copies
        """
        self._validate_state(state)
        centroids, M = state
        self.centroids = centroids.detach().clone().to(self.centroids.device, self.centroids.dtype)
        self.metric_matrices = M.detach().clone().to(self.metric_matrices.device, self.metric_matrices.dtype)

    def _check_latent(self, z: torch.Tensor) -> None:
        if z.dim() not in (1, 2) or z.shape[-1] != self.latent_dim:
            raise DimensionMismatchError(
                f"Expected latent points of shape [{self.latent_dim}] or [B, {self.latent_dim}], got {tuple(z.shape)}"
            )

    def compute_inverse_metric(self, z: torch.Tensor, state: Optional[MetricState] = None) -> torch.Tensor:
        """
        Compute inverse metric tensor G^{-1}(z) (differentiable).

        Args:
            z: Latent coordinates [latent_dim] or [batch_size, latent_dim]
            state: Snapshot to evaluate; defaults to the cached one

        Returns:
            G_inv: [latent_dim, latent_dim] or [batch_size, latent_dim, latent_dim]
        """
        self._check_latent(z)
        if state is None:
            state = self.state
        else:
            self._validate_state(state)
        centroids, M = state

        single = z.dim() == 1
        if single:
            z = z.unsqueeze(0)
        batch_size = z.shape[0]

        # Distances to all centroids
        diff = centroids.unsqueeze(0) - z.unsqueeze(1)  # [batch_size, n_centroids, latent_dim]
        distances_sq = torch.sum(diff ** 2, dim=-1)  # [batch_size, n_centroids]
        weights = torch.exp(-distances_sq / (self.temperature ** 2))

        # Weighted sum of local quadratic forms
        weighted_matrices = weights.unsqueeze(-1).unsqueeze(-1) * M.unsqueeze(0)
        G_inv = weighted_matrices.sum(dim=1)  # [batch_size, latent_dim, latent_dim]

        reg = self.regularization * torch.eye(self.latent_dim, device=z.device, dtype=z.dtype)
        G_inv = G_inv + fill_batch(reg, batch_size)

        return G_inv.squeeze(0) if single else G_inv

    @torch.no_grad()
    def compute_inverse_metric_fast(self, z: torch.Tensor, state: Optional[MetricState] = None) -> torch.Tensor:
        """
        Inference-only G^{-1}(z): accumulates one centroid at a time into a
        preallocated buffer. Not differentiable.
        """
        self._check_latent(z)
        if state is None:
            state = self.state
        else:
            self._validate_state(state)
        centroids, M = state

        single = z.dim() == 1
        if single:
            z = z.unsqueeze(0)

        distances_sq = torch.cdist(z, centroids.to(z.dtype)) ** 2  # [batch_size, n_centroids]
        weights = torch.exp(-distances_sq / (self.temperature ** 2))

        G_inv = z.new_zeros(z.shape[0], self.latent_dim, self.latent_dim)
        for i in range(centroids.shape[0]):
            G_inv.add_(weights[:, i, None, None] * M[i])
        G_inv.diagonal(dim1=-2, dim2=-1).add_(self.regularization)

        return G_inv.squeeze(0) if single else G_inv

    def compute_metric(self, z: torch.Tensor, state: Optional[MetricState] = None) -> torch.Tensor:
        """
        Compute metric tensor G(z) = [G^{-1}(z)]^{-1}.
        """
        return torch.linalg.inv(self.compute_inverse_metric(z, state))

    def compute_log_det_inverse_metric(self, z: torch.Tensor, state: Optional[MetricState] = None) -> torch.Tensor:
        """
        Compute log|G^{-1}(z)| via Cholesky (G^{-1} is SPD).

        Returns:
            log_det: [] or [batch_size]
        """
        G_inv = self.compute_inverse_metric(z, state)
        L = torch.linalg.cholesky(G_inv)
        return 2.0 * torch.log(torch.diagonal(L, dim1=-2, dim2=-1)).sum(-1)

    def compute_riemannian_distance_squared(
        self,
        z1: torch.Tensor,
        z2: torch.Tensor,
        state: Optional[MetricState] = None,
    ) -> torch.Tensor:
        """
        Squared Riemannian distance between nearby points.

        For points close together:
        d²(z1, z2) ≈ (z1 - z2)ᵀ G((z1+z2)/2) (z1 - z2)

        Args:
            z1, z2: Latent coordinates [batch_size, latent_dim]

        Returns:
            distance_sq: [batch_size]
        """
        z_mid = 0.5 * (z1 + z2)
        G_mid = self.compute_metric(z_mid, state)
        diff = z1 - z2
        return vec_mat_vec_batched(diff, G_mid, diff)

    def diagnose_metric_properties(self, z: torch.Tensor, verbose: bool = False) -> Dict[str, Any]:
        """
        Analyze metric tensor properties for debugging.

        Args:
            z: Sample points [batch_size, latent_dim]
            verbose: Whether to print diagnostic information

        Returns:
            diagnostics: Dictionary of metric properties
        """
        with torch.no_grad():
            G_inv = self.compute_inverse_metric(z)
            eigenvals = torch.linalg.eigvalsh(G_inv)  # ascending, [batch_size, latent_dim]
            log_det = torch.log(eigenvals).sum(-1)

            diagnostics = {
                'eigenvals_G_inv_min': eigenvals[..., 0].min().item(),
                'eigenvals_G_inv_max': eigenvals[..., -1].max().item(),
                'condition_number_G_inv': (eigenvals[..., -1] / eigenvals[..., 0]).max().item(),
                'log_det_G_inv_mean': log_det.mean().item(),
                'trace_G_inv_mean': torch.diagonal(G_inv, dim1=-2, dim2=-1).sum(-1).mean().item(),
                'is_symmetric': bool(torch.allclose(G_inv, G_inv.transpose(-2, -1))),
                'batch_size': z.shape[0] if z.dim() == 2 else 1,
                'n_centroids': self.n_centroids,
                'temperature': self.temperature,
                'regularization': self.regularization,
            }

            if verbose:
                print(f"🔍 METRIC DIAGNOSTICS:")
                print(f"   G^-1 eigenvalues: min={diagnostics['eigenvals_G_inv_min']:.3e}, "
                      f"max={diagnostics['eigenvals_G_inv_max']:.3e}")
                print(f"   G^-1 condition number: {diagnostics['condition_number_G_inv']:.2e}")
                print(f"   log|G^-1|: mean={diagnostics['log_det_G_inv_mean']:.3e}")
                print(f"   Batch size: {diagnostics['batch_size']}, Centroids: {diagnostics['n_centroids']}")

            return diagnostics

    def get_config(self) -> Dict[str, Any]:
        """Get metric tensor configuration."""
        return {
            'latent_dim': self.latent_dim,
            'temperature': self.temperature,
            'regularization': self.regularization,
            'n_centroids': self.n_centroids,
        }


def vec_mat_vec_batched(v: torch.Tensor, M: torch.Tensor, w: torch.Tensor) -> torch.Tensor:
    """Batched ``v^T M w``: [B, D] x [B, D, D] x [B, D] -> [B] (or unbatched -> [])."""
    return torch.einsum('...i,...ij,...j->...', v, M, w)
