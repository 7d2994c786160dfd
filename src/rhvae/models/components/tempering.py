"""
Tempering schedules for the tempered leapfrog integrator.

A schedule maps ``(beta_zero, k, K)`` to the inverse temperature β_k used after
the k-th leapfrog step. Momentum is rescaled by √(β_{k-1}/β_k) between steps.
"""

import math

from ...exceptions import InvalidArgumentError


def validate_beta_zero(beta_zero: float) -> None:
    if not 0.0 < beta_zero <= 1.0:
        raise InvalidArgumentError(f"beta_zero must lie in (0, 1], got {beta_zero}")


def validate_n_steps(K: int) -> None:
    if int(K) != K or K < 1:
        raise InvalidArgumentError(f"Number of leapfrog steps K must be an integer >= 1, got {K}")


def quadratic_tempering(beta_zero: float, k: int, K: int) -> float:
    """
    Quadratic schedule from ``beta_zero`` at k=0 to 1 at k=K:

        β_k = 1 / ((1 - 1/√β₀)(k/K)² + 1/√β₀)²

    The endpoints are returned exactly.
    """
    if k <= 0:
        return float(beta_zero)
    if k >= K:
        return 1.0
    inv_sqrt_beta = 1.0 / math.sqrt(beta_zero)
    return 1.0 / ((1.0 - inv_sqrt_beta) * (k / K) ** 2 + inv_sqrt_beta) ** 2


def null_tempering(beta_zero: float, k: int, K: int) -> float:
    """Constant schedule; leaves the momentum unscaled."""
    return float(beta_zero)
