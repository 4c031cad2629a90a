"""
Gradient sampling in the support region of a peak.

Gradients are taken from the *intensity* field (not the DoG response).  For
a support radius r the (2r+1)^d voxel block around the peak contains (2r)^d
elementary cubes of 2^d voxels; one gradient is computed per cube, located
at its centre (lower corner voxel + 0.5):

  dI/dx_k = mean over the 2^(d-1) voxel pairs of the cube of
            I(.., x_k + 1, ..) - I(.., x_k, ..)

This places the samples symmetrically around the peak, and for a Gaussian
spot the gradient direction is much closer to radial than with central
differences.

Samples live in an isotropic frame: for 3-D data axis 0 positions are
multiplied by the anisotropy factor and axis-0 gradient components divided
by it.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Sequence

import numpy as np

from .field import ScalarField


_MIN_ABS_GRADIENT = 1e-12
_MIN_REL_GRADIENT = 1e-6


@dataclass(frozen=True)
class GradientSet:
    """
    A batch of gradient samples for one peak.

    Attributes
    ----------
    origins : ndarray, shape (n, d), int
        Lower-corner voxel of the cube each gradient was computed on.
    positions : ndarray, shape (n, d)
        Gradient location in the isotropic frame.
    gradients : ndarray, shape (n, d)
        Gradient vectors in the isotropic frame.
    weights : ndarray, shape (n,)
        Gradient magnitudes.
    scale : ndarray, shape (d,)
        Voxel → isotropic frame factor per axis.
    """
    origins: np.ndarray
    positions: np.ndarray
    gradients: np.ndarray
    weights: np.ndarray
    scale: np.ndarray

    def __len__(self) -> int:
        return int(self.weights.shape[0])

    @property
    def ndim(self) -> int:
        return int(self.positions.shape[1])

    def subset(self, index) -> "GradientSet":
        """Samples selected by an integer index array or boolean mask."""
        return GradientSet(
            origins=self.origins[index],
            positions=self.positions[index],
            gradients=self.gradients[index],
            weights=self.weights[index],
            scale=self.scale,
        )

    def to_voxel(self, position: np.ndarray) -> np.ndarray:
        """Map an isotropic-frame position back to voxel coordinates."""
        return np.asarray(position, dtype=np.float64) / self.scale


def axis_scale(ndim: int, anisotropy: float = 1.0) -> np.ndarray:
    scale = np.ones(ndim, dtype=np.float64)
    if ndim == 3:
        scale[0] = anisotropy
    return scale


def cube_gradients(patch: np.ndarray) -> List[np.ndarray]:
    """
    Per-axis gradients at the centres of all elementary cubes of a block.

    For a block of shape (m_0, ..., m_{d-1}) each returned array has shape
    (m_0 - 1, ..., m_{d-1} - 1).
    """
    d = patch.ndim
    grads = []
    for axis in range(d):
        g = np.diff(patch, axis=axis)
        for other in range(d):
            if other == axis:
                continue
            lo = [slice(None)] * d
            hi = [slice(None)] * d
            lo[other] = slice(0, -1)
            hi[other] = slice(1, None)
            g = 0.5 * (g[tuple(lo)] + g[tuple(hi)])
        grads.append(g)
    return grads


def sample_gradients(
    field: ScalarField,
    center: Sequence[int],
    radius: int,
    anisotropy: float = 1.0,
) -> GradientSet:
    """
    Gather gradient samples around an integer peak location.

    Parameters
    ----------
    field : ScalarField
        Intensity field (normalised image, never the DoG response).
    center : sequence of int
        Peak coordinates.
    radius : int
        Support radius (>= 1); the block spans center - r .. center + r.
    anisotropy : float
        Axis-0 scale for 3-D fields.

    Returns
    -------
    GradientSet
        Samples with a non-negligible gradient only.
    """
    d = field.ndim
    center = np.asarray(center, dtype=np.int64)
    patch = field.patch(center, radius)
    grads = cube_gradients(patch)

    grid = np.indices((2 * radius,) * d).reshape(d, -1).T
    origins = grid + (center - radius)
    gradients = np.stack([g.ravel() for g in grads], axis=1)

    scale = axis_scale(d, anisotropy)
    positions = (origins + 0.5) * scale
    gradients = gradients / scale

    magnitudes = np.linalg.norm(gradients, axis=1)
    if magnitudes.size == 0 or magnitudes.max() <= _MIN_ABS_GRADIENT:
        keep = np.zeros(magnitudes.shape, dtype=bool)
    else:
        keep = magnitudes > max(_MIN_ABS_GRADIENT, _MIN_REL_GRADIENT * magnitudes.max())

    return GradientSet(
        origins=origins[keep],
        positions=positions[keep],
        gradients=gradients[keep],
        weights=magnitudes[keep],
        scale=scale,
    )
