"""
Local background estimate for intensity measurement.

The background is measured on the outer shell of the (2r+1)^d support box
(the voxels at Chebyshev distance exactly r from the peak), so the spot
itself does not bias it.  Methods:

  none            0.0
  mean / median   plain statistic of the shell
  ransac_mean     robust constant fit, then mean of the inliers
  ransac_median   robust constant fit, then median of the inliers

The robust fit uses the same accept/reject rule as spot RANSAC, scored on
intensity deviation: every shell value is a one-sample hypothesis, its
inliers are the values within ``max_error`` of it, and the best hypothesis
(most inliers, then lowest mean absolute deviation) is accepted when its
inlier ratio reaches ``inlier_ratio``.  If no hypothesis is accepted the
plain statistic of the same kind is returned.
"""
from __future__ import annotations

import logging
from typing import Sequence

import numpy as np

from .field import ScalarField

logger = logging.getLogger(__name__)


def shell_values(field: ScalarField, center: Sequence[int], radius: int) -> np.ndarray:
    """Intensities on the boundary of the support box (mirror-extended)."""
    patch = field.patch(center, radius)
    mask = np.ones(patch.shape, dtype=bool)
    mask[(slice(1, -1),) * patch.ndim] = False
    return patch[mask]


def robust_constant(
    values: np.ndarray,
    max_error: float,
    inlier_ratio: float,
) -> np.ndarray | None:
    """
    Inliers of the best constant hypothesis, or None if none is accepted.

    Inlier counts and absolute deviations come from the sorted values and
    their prefix sums, so memory stays linear in the number of values.
    """
    if values.size == 0:
        return None
    # Shift to the minimum so the prefix sums stay small.
    hyp = values - values.min()
    ordered = np.sort(hyp)
    csum = np.concatenate(([0.0], np.cumsum(ordered)))

    lo = np.searchsorted(ordered, hyp - max_error, side="left")
    mid = np.searchsorted(ordered, hyp, side="left")
    hi = np.searchsorted(ordered, hyp + max_error, side="right")
    counts = hi - lo

    below = hyp * (mid - lo) - (csum[mid] - csum[lo])
    above = (csum[hi] - csum[mid]) - hyp * (hi - mid)
    mad = (below + above) / counts

    best = np.lexsort((np.arange(values.size), mad, -counts))[0]
    if counts[best] < inlier_ratio * values.size:
        return None
    keep = (hyp >= hyp[best] - max_error) & (hyp <= hyp[best] + max_error)
    return values[keep]


def estimate_background(
    field: ScalarField,
    center: Sequence[int],
    radius: int,
    method: str = "none",
    max_error: float = 0.05,
    inlier_ratio: float = 0.75,
) -> float:
    """
    Background level around a peak.

    Parameters
    ----------
    field : ScalarField
        Field the intensity is measured on.
    center : sequence of int
        Peak coordinates.
    radius : int
        Support radius.
    method : str
        "none", "mean", "median", "ransac_mean" or "ransac_median".
    max_error : float
        Robust-fit tolerance, in the field's intensity units.
    inlier_ratio : float
        Minimum fraction of shell values that must agree.
    """
    if method == "none":
        return 0.0

    values = shell_values(field, center, radius)
    use_median = method.endswith("median")
    stat = np.median if use_median else np.mean

    if method in ("mean", "median"):
        return float(stat(values))
    if method in ("ransac_mean", "ransac_median"):
        inliers = robust_constant(values, max_error, inlier_ratio)
        if inliers is None:
            logger.debug("robust background rejected at %s, using plain %s",
                         tuple(center), "median" if use_median else "mean")
            return float(stat(values))
        return float(stat(inliers))
    raise ValueError(f"Unknown background method: {method!r}")
