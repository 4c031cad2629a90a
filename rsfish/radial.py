"""
Radial-symmetry centre estimate: weighted least-squares intersection of
gradient lines.

Each gradient sample defines a line through its position p_i along its
unit gradient u_i.  The point x minimising

    sum_i w_i * || (I - u_i u_i^T) (x - p_i) ||^2

solves the d×d normal equations

    [sum_i w_i (I - u_i u_i^T)] x = sum_i w_i (I - u_i u_i^T) p_i

Positions are centred on their weighted mean before solving.  If all lines
are (nearly) parallel the matrix is singular; this is detected from the
ratio of its extreme eigenvalues and reported as DegenerateFitError.
"""
from __future__ import annotations

from typing import Tuple

import numpy as np

from .errors import DegenerateFitError, InsufficientSamplesError
from .gradients import GradientSet


MIN_CONDITION = 1e-6   # smallest accepted lambda_min / lambda_max


def _unit(vectors: np.ndarray) -> np.ndarray:
    norms = np.linalg.norm(vectors, axis=-1, keepdims=True)
    return vectors / np.where(norms > 0, norms, 1.0)


def fit_batch(
    positions: np.ndarray,
    gradients: np.ndarray,
    weights: np.ndarray,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Solve many independent intersection problems at once.

    Parameters
    ----------
    positions, gradients : ndarray, shape (m, k, d)
        m problems of k samples each.
    weights : ndarray, shape (m, k)

    Returns
    -------
    points : ndarray, shape (m, d)
        Solutions (meaningless where ``valid`` is False).
    valid : ndarray of bool, shape (m,)
        False where the system failed the conditioning check.
    """
    m, _, d = positions.shape
    u = _unit(gradients)
    wsum = weights.sum(axis=1)
    safe_wsum = np.where(wsum > 0, wsum, 1.0)
    centroid = np.einsum("mk,mki->mi", weights, positions) / safe_wsum[:, None]
    q = positions - centroid[:, None, :]

    eye = np.eye(d)
    A = wsum[:, None, None] * eye - np.einsum("mk,mki,mkj->mij", weights, u, u)
    uq = np.einsum("mki,mki->mk", u, q)
    b = np.einsum("mk,mki->mi", weights, q - u * uq[..., None])

    lam = np.linalg.eigvalsh(A)
    valid = (lam[:, -1] > 0) & (lam[:, 0] > MIN_CONDITION * lam[:, -1])

    A_safe = np.where(valid[:, None, None], A, eye)
    x = np.linalg.solve(A_safe, b[..., None])[..., 0]
    return x + centroid, valid


def line_distances(samples: GradientSet, point: np.ndarray) -> np.ndarray:
    """Perpendicular distance from ``point`` to every gradient line, shape (n,)."""
    return batch_line_distances(samples, np.asarray(point, dtype=np.float64)[None, :])[0]


def batch_line_distances(samples: GradientSet, points: np.ndarray) -> np.ndarray:
    """Distances from each of m points to each of n gradient lines, shape (m, n)."""
    u = _unit(samples.gradients)
    q = points[:, None, :] - samples.positions[None, :, :]
    uq = np.einsum("mnd,nd->mn", q, u)
    perp = q - uq[..., None] * u[None, :, :]
    return np.linalg.norm(perp, axis=2)


def weighted_residual(weights: np.ndarray, distances: np.ndarray) -> float:
    total = float(weights.sum())
    if total <= 0:
        return float(distances.mean()) if distances.size else 0.0
    return float((weights * distances).sum() / total)


def fit_radial_symmetry(samples: GradientSet) -> Tuple[np.ndarray, float]:
    """
    Intersect all gradient lines of a sample set.

    Returns
    -------
    position : ndarray, shape (d,)
        Isotropic-frame least-squares intersection.
    residual : float
        Weighted mean perpendicular distance of the samples to ``position``.

    Raises
    ------
    InsufficientSamplesError
        Fewer than d samples.
    DegenerateFitError
        Singular or ill-conditioned system.
    """
    n, d = len(samples), samples.ndim
    if n < d:
        raise InsufficientSamplesError(f"{n} gradient samples, need at least {d}")

    points, valid = fit_batch(
        samples.positions[None], samples.gradients[None], samples.weights[None]
    )
    if not valid[0]:
        raise DegenerateFitError("gradient lines are (nearly) parallel")
    position = points[0]
    residual = weighted_residual(samples.weights, line_distances(samples, position))
    return position, residual
