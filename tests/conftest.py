"""
Shared fixtures for rsfish tests.

Provides synthetic images with Gaussian spots at known sub-pixel centres and
synthetic gradient sets whose lines radiate from known points.

Spot placement rules:
  - Centres at least 15 voxels apart so neighbouring spots do not leak into
    each other's support region
  - Centres at least 5 voxels from every border
  - Sub-pixel offsets away from .5 so the DoG maximum is a unique voxel
"""
from __future__ import annotations

import numpy as np
import pytest

from rsfish.gradients import GradientSet, axis_scale


def make_blob(
    image: np.ndarray,
    center,
    sigma,
    amplitude: float = 1.0,
) -> None:
    """
    Add a Gaussian spot to ``image`` in-place.

    ``center`` is in native axis order; ``sigma`` is a scalar or one value
    per axis.
    """
    sigma = np.broadcast_to(np.asarray(sigma, dtype=np.float64), (image.ndim,))
    grids = np.meshgrid(*[np.arange(n) for n in image.shape], indexing="ij")
    r2 = sum(((g - c) / s) ** 2 for g, c, s in zip(grids, center, sigma))
    image += amplitude * np.exp(-0.5 * r2)


def radiating_samples(
    center,
    extent: int = 2,
    skip_center: bool = True,
    inward: bool = True,
) -> GradientSet:
    """
    Gradient samples on the integer grid ``center + [-extent, extent]^d``
    whose lines all pass exactly through ``center``.
    """
    center = np.asarray(center, dtype=np.float64)
    d = center.size
    offsets = np.indices((2 * extent + 1,) * d).reshape(d, -1).T - extent
    if skip_center:
        offsets = offsets[np.any(offsets != 0, axis=1)]
    positions = center + offsets
    gradients = -offsets.astype(np.float64) if inward else offsets.astype(np.float64)
    return GradientSet(
        origins=np.floor(positions).astype(np.int64),
        positions=positions,
        gradients=gradients,
        weights=np.linalg.norm(gradients, axis=1),
        scale=axis_scale(d),
    )


def concat_samples(*sets: GradientSet) -> GradientSet:
    return GradientSet(
        origins=np.concatenate([s.origins for s in sets]),
        positions=np.concatenate([s.positions for s in sets]),
        gradients=np.concatenate([s.gradients for s in sets]),
        weights=np.concatenate([s.weights for s in sets]),
        scale=sets[0].scale,
    )


FIVE_SPOTS = [
    (7.3, 12.4, 14.7),
    (8.6, 20.2, 45.3),
    (6.8, 44.6, 13.2),
    (9.2, 48.7, 50.4),
    (8.1, 31.3, 30.6),
]


@pytest.fixture
def five_spot_volume():
    """
    64×64×16 (x, y, z) volume, array shape (16, 64, 64), with five
    isotropic Gaussian spots (sigma 1.5) on a zero background.
    Returns (volume, centres) with centres in (z, y, x) order.
    """
    volume = np.zeros((16, 64, 64), dtype=np.float64)
    for c in FIVE_SPOTS:
        make_blob(volume, c, 1.5, amplitude=1.0)
    return volume, FIVE_SPOTS


@pytest.fixture
def two_level_volume():
    """
    Volume with one bright and one dim spot (amplitude 1.0 and 0.2).
    Returns (volume, bright_centre, dim_centre).
    """
    volume = np.zeros((16, 48, 48), dtype=np.float64)
    bright = (8.2, 14.3, 15.6)
    dim = (7.7, 33.4, 32.1)
    make_blob(volume, bright, 1.5, amplitude=1.0)
    make_blob(volume, dim, 1.5, amplitude=0.2)
    return volume, bright, dim


@pytest.fixture
def noisy_image():
    """
    2-D 96×96 image: six spots on a noisy offset background.
    Returns (image, centres).
    """
    rng = np.random.default_rng(42)
    image = rng.normal(100.0, 1.0, size=(96, 96))
    centres = [
        (15.3, 18.6), (20.7, 70.2), (48.4, 47.9),
        (75.6, 20.3), (80.2, 78.8), (50.1, 15.4),
    ]
    for c in centres:
        make_blob(image, c, 1.5, amplitude=60.0)
    return image, centres
