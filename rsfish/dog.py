"""
DoG (Difference-of-Gaussians) response for spot detection.

  response = G(sigma) * I - G(k * sigma) * I,   k = DOG_K = 1.6

Bright spots give a POSITIVE response at their centre.  For 3-D volumes the
anisotropy factor rescales the axis-0 (z) sigma *before* the kernels are
built (sigma_z = sigma / anisotropy), so kernel support always matches the
voxel spacing.

The response is computed once per (image, sigma, anisotropy) and returned as
a read-only ScalarField shared by every threshold branch.

Optionally data-parallel: the volume is cut into slabs along its longest
axis, each slab is padded by the Gaussian kernel radius (halo) and filtered
independently.  Because every output sample only sees inputs inside its
halo, the tiled result is identical to the single-pass result.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Tuple

import numpy as np
from scipy.ndimage import gaussian_filter

from .errors import ConfigurationError
from .field import BOUNDARY_MODE, ScalarField

logger = logging.getLogger(__name__)

DOG_K = 1.6           # ratio between the two Gaussian scales
_TRUNCATE = 4.0       # kernel half-width in sigmas (scipy default)


def dog_sigmas(
    sigma: float,
    ndim: int,
    anisotropy: float = 1.0,
) -> Tuple[Tuple[float, ...], Tuple[float, ...]]:
    """
    Per-axis sigmas of the two Gaussians.

    Returns
    -------
    sigma1, sigma2 : tuple of float, length ndim
        Smaller and larger scale; sigma2 = DOG_K * sigma1 on every axis.
    """
    if sigma <= 0:
        raise ConfigurationError("sigma must be positive")
    if anisotropy <= 0:
        raise ConfigurationError("anisotropy must be positive")
    sigma1 = [float(sigma)] * ndim
    if ndim == 3:
        sigma1[0] = sigma / anisotropy
    sigma2 = [s * DOG_K for s in sigma1]
    return tuple(sigma1), tuple(sigma2)


def _kernel_radius(sigma: float) -> int:
    # Same rounding as scipy.ndimage.gaussian_filter1d.
    return int(_TRUNCATE * float(sigma) + 0.5)


def _dog_block(data: np.ndarray, sigma1, sigma2) -> np.ndarray:
    g1 = gaussian_filter(data, sigma=sigma1, mode=BOUNDARY_MODE, truncate=_TRUNCATE)
    g2 = gaussian_filter(data, sigma=sigma2, mode=BOUNDARY_MODE, truncate=_TRUNCATE)
    return g1 - g2


def _slab_bounds(n: int, n_slabs: int) -> List[Tuple[int, int]]:
    """Split ``range(n)`` into at most ``n_slabs`` contiguous non-empty pieces."""
    edges = np.linspace(0, n, min(n_slabs, n) + 1).astype(int)
    return [(int(a), int(b)) for a, b in zip(edges[:-1], edges[1:]) if b > a]


def compute_dog(
    field: ScalarField,
    sigma: float,
    anisotropy: float = 1.0,
    workers: int = 1,
) -> ScalarField:
    """
    Compute the DoG response of a field.

    Parameters
    ----------
    field : ScalarField
    sigma : float
        Base (smaller) Gaussian sigma in voxels along y/x.
    anisotropy : float
        Axis-0 scale factor for 3-D fields (ignored for 2-D).
    workers : int
        Number of slabs / threads.  1 = single pass.

    Returns
    -------
    response : ScalarField
        Same extent as ``field``, read-only.
    """
    field = ScalarField.wrap(field)
    sigma1, sigma2 = dog_sigmas(sigma, field.ndim, anisotropy)
    data = field.data

    if workers <= 1:
        out = _dog_block(data, sigma1, sigma2)
    else:
        axis = int(np.argmax(data.shape))
        halo = _kernel_radius(sigma2[axis])
        bounds = _slab_bounds(data.shape[axis], workers)
        n = data.shape[axis]

        def run(bound):
            start, stop = bound
            lo = max(0, start - halo)
            hi = min(n, stop + halo)
            block = np.take(data, np.arange(lo, hi), axis=axis)
            res = _dog_block(block, sigma1, sigma2)
            return np.take(res, np.arange(start - lo, stop - lo), axis=axis)

        with ThreadPoolExecutor(max_workers=workers) as executor:
            slabs = list(executor.map(run, bounds))
        out = np.concatenate(slabs, axis=axis)
        logger.debug("DoG computed in %d slabs along axis %d (halo %d)",
                     len(bounds), axis, halo)

    out.flags.writeable = False
    return ScalarField.wrap(out)
