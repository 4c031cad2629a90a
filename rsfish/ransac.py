"""
RANSAC refinement of radial-symmetry fits.

One consensus search runs the cycle

  SAMPLING  draw ``iterations`` minimal subsets (d samples, no repeats)
  FITTING   intersect each subset's gradient lines
  SCORING   count samples whose line passes within ``max_error`` of the fit

and keeps the best trial: most inliers, then lowest weighted residual, then
earliest trial.  The decision is

  ACCEPT    inlier ratio >= ``inlier_ratio`` → refit on all inliers
  REJECT    otherwise → no fit for this peak

Single consensus stops after one decision.  Multiconsensus removes the
accepted inliers from a candidate pool and searches again, so several
overlapping spots can be peeled off one support region.  From the third
spot on, a new consensus must also reach

  mean(counts) - n * std(counts),   n = n2 + (n1 - n2) / (k - 1)

where ``counts`` are the inlier counts accepted so far and k = len(counts):
the first bound uses the permissive factor n1 and it tightens towards n2.

All random draws come from a caller-supplied ``numpy.random.Generator``;
``peak_rng`` derives an isolated one per peak from the run seed.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence

import numpy as np

from .errors import DegenerateFitError, InsufficientSamplesError
from .gradients import GradientSet
from .radial import batch_line_distances, fit_batch, fit_radial_symmetry

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConsensusSet:
    """Best trial of one consensus search (indices into the searched set)."""
    inliers: np.ndarray
    residual: float
    position: np.ndarray


@dataclass(frozen=True)
class Fit:
    """An accepted localisation (isotropic frame)."""
    position: np.ndarray
    inliers: np.ndarray     # indices into the peak's full GradientSet
    residual: float

    @property
    def num_inliers(self) -> int:
        return int(self.inliers.size)


def peak_rng(seed: int, coordinates: Sequence[int]) -> np.random.Generator:
    """Independent generator for one peak, derived from the run seed."""
    entropy = [int(seed)] + [int(c) for c in coordinates]
    return np.random.default_rng(np.random.SeedSequence(entropy))


def find_consensus(
    samples: GradientSet,
    rng: np.random.Generator,
    max_error: float,
    iterations: int,
) -> Optional[ConsensusSet]:
    """
    Run SAMPLING → FITTING → SCORING over ``iterations`` trials.

    Returns None if there are fewer than d samples or every trial was
    degenerate.
    """
    n, d = len(samples), samples.ndim
    if n < d:
        return None

    draws = np.argsort(rng.random((iterations, n)), axis=1)[:, :d]
    points, valid = fit_batch(
        samples.positions[draws], samples.gradients[draws], samples.weights[draws]
    )
    if not valid.any():
        return None
    trials = np.flatnonzero(valid)
    points = points[valid]

    dist = batch_line_distances(samples, points)
    inlier_mask = dist <= max_error
    counts = inlier_mask.sum(axis=1)
    w_in = inlier_mask * samples.weights[None, :]
    w_total = w_in.sum(axis=1)
    residuals = (w_in * dist).sum(axis=1) / np.where(w_total > 0, w_total, 1.0)

    best = np.lexsort((trials, residuals, -counts))[0]
    return ConsensusSet(
        inliers=np.flatnonzero(inlier_mask[best]),
        residual=float(residuals[best]),
        position=points[best],
    )


def fit_all(samples: GradientSet) -> List[Fit]:
    """No RANSAC: one fit on every sample, no outlier rejection."""
    position, residual = fit_radial_symmetry(samples)
    return [Fit(position, np.arange(len(samples)), residual)]


def ransac_refine(
    samples: GradientSet,
    rng: np.random.Generator,
    max_error: float,
    inlier_ratio: float,
    iterations: int,
) -> List[Fit]:
    """
    Single-consensus RANSAC.

    Returns a list with one Fit on ACCEPT, an empty list on REJECT.
    Raises DegenerateFitError if the refit on the inliers is singular.
    """
    n, d = len(samples), samples.ndim
    if n < d:
        raise InsufficientSamplesError(f"{n} gradient samples, need at least {d}")

    consensus = find_consensus(samples, rng, max_error, iterations)
    if consensus is None:
        return []
    n_in = consensus.inliers.size
    if n_in < d or n_in < inlier_ratio * n:
        return []

    position, residual = fit_radial_symmetry(samples.subset(consensus.inliers))
    return [Fit(position, consensus.inliers, residual)]


def _stdev_factor(n1: float, n2: float, k: int) -> float:
    return n2 + (n1 - n2) / (k - 1)


def multiconsensus_refine(
    samples: GradientSet,
    rng: np.random.Generator,
    max_error: float,
    inlier_ratio: float,
    iterations: int,
    min_num_inliers: int,
    n_times_stdev1: float,
    n_times_stdev2: float,
) -> List[Fit]:
    """
    Multiconsensus RANSAC: peel off several spots from one sample set.

    The candidate pool is an index array into ``samples``; each accepted
    consensus is deleted from it, so the returned fits have disjoint
    inlier sets.  The loop ends when the pool is smaller than
    ``min_num_inliers`` or a consensus fails the acceptance checks.
    """
    d = samples.ndim
    pool = np.arange(len(samples))
    fits: List[Fit] = []
    counts: List[int] = []

    while pool.size >= max(min_num_inliers, d):
        current = samples.subset(pool)
        consensus = find_consensus(current, rng, max_error, iterations)
        if consensus is None:
            break

        n_in = consensus.inliers.size
        if n_in < max(min_num_inliers, d) or n_in < inlier_ratio * pool.size:
            break
        if len(counts) >= 2:
            n_sd = _stdev_factor(n_times_stdev1, n_times_stdev2, len(counts))
            bound = float(np.mean(counts)) - n_sd * float(np.std(counts))
            if n_in < bound:
                logger.debug("multiconsensus: %d inliers below bound %.1f", n_in, bound)
                break

        try:
            position, residual = fit_radial_symmetry(current.subset(consensus.inliers))
        except (DegenerateFitError, InsufficientSamplesError):
            break

        fits.append(Fit(position, pool[consensus.inliers], residual))
        counts.append(int(n_in))
        pool = np.delete(pool, consensus.inliers)

    return fits


def refine(
    samples: GradientSet,
    mode: str,
    rng: Optional[np.random.Generator] = None,
    max_error: float = 1.5,
    inlier_ratio: float = 0.1,
    iterations: int = 1000,
    min_num_inliers: int = 20,
    n_times_stdev1: float = 8.0,
    n_times_stdev2: float = 6.0,
) -> List[Fit]:
    """
    Dispatch on the RANSAC mode ("off", "ransac" or "multiconsensus").

    Degenerate or under-sampled single fits raise; the caller decides to
    drop the peak.
    """
    if mode == "off":
        return fit_all(samples)
    if rng is None:
        raise ValueError("a random generator is required for RANSAC")
    if mode == "ransac":
        return ransac_refine(samples, rng, max_error, inlier_ratio, iterations)
    if mode == "multiconsensus":
        return multiconsensus_refine(
            samples, rng, max_error, inlier_ratio, iterations,
            min_num_inliers, n_times_stdev1, n_times_stdev2,
        )
    raise ValueError(f"Unknown RANSAC mode: {mode!r}")
