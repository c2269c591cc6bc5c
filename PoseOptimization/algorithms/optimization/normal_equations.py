"""
Normal-Equation Accumulation and Solve

    H = sum_i w_i J_i^T J_i        (6 x 6)
    g = sum_i w_i J_i^T r_i        (6,)
    (H + lambda * diag(H)) delta = -g

Accumulation can be split over worker threads. Partial sums are reduced
in chunk order so the result does not depend on thread scheduling.
"""

import numpy as np
from concurrent.futures import ThreadPoolExecutor
from scipy.linalg import cho_factor, cho_solve, LinAlgError
from typing import Tuple

POSE_DOF = 6
MIN_CHUNK_SIZE = 2048


class SingularSystemError(ValueError):
    """Raised when the normal equations cannot be solved for a unique increment."""
    pass


def _accumulate_chunk(jacobians: np.ndarray,
                      residuals: np.ndarray,
                      weights: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    H = np.einsum('n,nki,nkj->ij', weights, jacobians, jacobians)
    g = np.einsum('n,nki,nk->i', weights, jacobians, residuals)
    return H, g


def accumulate_normal_equations(jacobians: np.ndarray,
                                residuals: np.ndarray,
                                weights: np.ndarray,
                                num_threads: int = 1) -> Tuple[np.ndarray, np.ndarray]:
    """
    Build the weighted Gauss-Newton system.

    Args:
        jacobians: Per-correspondence Jacobians (N, 2, 6)
        residuals: Per-correspondence residuals (N, 2)
        weights: Per-correspondence weights (N,); 0 excludes a correspondence
        num_threads: Worker threads for the accumulation

    Returns:
        Tuple of (H (6, 6), g (6,))
    """
    jacobians = np.asarray(jacobians, dtype=np.float64)
    residuals = np.asarray(residuals, dtype=np.float64)
    weights = np.asarray(weights, dtype=np.float64)

    # Zero-weight rows contribute nothing
    used = weights > 0
    jacobians = jacobians[used]
    residuals = residuals[used]
    weights = weights[used]

    n = weights.shape[0]
    if n == 0:
        return np.zeros((POSE_DOF, POSE_DOF)), np.zeros(POSE_DOF)

    num_chunks = min(num_threads, max(1, n // MIN_CHUNK_SIZE))
    if num_chunks <= 1:
        return _accumulate_chunk(jacobians, residuals, weights)

    bounds = np.linspace(0, n, num_chunks + 1, dtype=int)
    with ThreadPoolExecutor(max_workers=num_chunks) as executor:
        futures = [
            executor.submit(_accumulate_chunk,
                            jacobians[start:stop], residuals[start:stop], weights[start:stop])
            for start, stop in zip(bounds[:-1], bounds[1:])
        ]
        partials = [future.result() for future in futures]

    H = np.zeros((POSE_DOF, POSE_DOF))
    g = np.zeros(POSE_DOF)
    for H_part, g_part in partials:
        H += H_part
        g += g_part
    return H, g


def is_rank_deficient(H: np.ndarray) -> bool:
    """True when the approximate Hessian does not constrain all 6 DoF."""
    if not np.all(np.isfinite(H)):
        return True
    return np.linalg.matrix_rank(H) < POSE_DOF


def solve_normal_equations(H: np.ndarray,
                           g: np.ndarray,
                           damping: float = 0.0) -> np.ndarray:
    """
    Solve (H + damping * diag(H)) delta = -g with a Cholesky factorisation.

    Args:
        H: Approximate Hessian (6, 6)
        g: Gradient (6,)
        damping: Levenberg-Marquardt damping factor

    Returns:
        delta (6,)

    Raises:
        SingularSystemError: If H is rank deficient, the factorisation
            fails or the increment is not finite
    """
    if is_rank_deficient(H):
        raise SingularSystemError("Normal equations are rank deficient")

    H_damped = H + damping * np.diag(np.diag(H))
    try:
        factor = cho_factor(H_damped)
        delta = cho_solve(factor, -g)
    except (LinAlgError, ValueError) as e:
        raise SingularSystemError(f"Cholesky solve failed: {e}") from e

    if not np.all(np.isfinite(delta)):
        raise SingularSystemError("Normal equations produced a non-finite increment")
    return delta
