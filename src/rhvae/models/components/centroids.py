"""
Centroid selection for the RHVAE metric.

Down-samples the training data to the ``centroids_data`` points at which the
metric network is evaluated.
"""

import warnings
import torch
from typing import Optional, Tuple, Union
from sklearn.cluster import KMeans

from ...exceptions import InvalidArgumentError


def _check_data(data: torch.Tensor, n_centroids: int) -> int:
    if data.dim() != 2:
        raise InvalidArgumentError(f"Expected data of shape [n_samples, n_features], got {tuple(data.shape)}")
    if n_centroids < 1:
        raise InvalidArgumentError(f"n_centroids must be >= 1, got {n_centroids}")
    n_samples = data.shape[0]
    if n_centroids > n_samples:
        warnings.warn(
            f"Requested {n_centroids} centroids but only {n_samples} samples available; using {n_samples}"
        )
        return n_samples
    return n_centroids


def centroids_kmeans(
    data: torch.Tensor,
    n_centroids: int,
    assign: bool = False,
    random_state: Optional[int] = None,
) -> Union[torch.Tensor, Tuple[torch.Tensor, torch.Tensor]]:
    """
    K-means cluster centres of ``data``.

    Args:
        data: Samples [n_samples, n_features], one row per sample
        n_centroids: Number of clusters
        assign: Also return the cluster index of every sample
        random_state: Seed forwarded to ``KMeans``

    Returns:
        centroids [n_centroids, n_features], plus assignments [n_samples] if ``assign``
    """
    n_centroids = _check_data(data, n_centroids)
    array = data.detach().cpu().numpy()

    kmeans = KMeans(n_clusters=n_centroids, n_init=10, random_state=random_state).fit(array)
    centroids = torch.as_tensor(kmeans.cluster_centers_, dtype=data.dtype, device=data.device)

    if assign:
        labels = torch.as_tensor(kmeans.labels_, dtype=torch.long, device=data.device)
        return centroids, labels
    return centroids


def centroids_random(
    data: torch.Tensor,
    n_centroids: int,
    generator: Optional[torch.Generator] = None,
) -> torch.Tensor:
    """Uniformly sampled rows of ``data`` (without replacement)."""
    n_centroids = _check_data(data, n_centroids)
    idx = torch.randperm(data.shape[0], generator=generator)[:n_centroids]
    return data[idx.to(data.device)].clone()
