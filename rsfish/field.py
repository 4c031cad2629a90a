"""
ScalarField — read-only view over a 2-D / 3-D intensity array.

Out-of-bounds reads follow the mirror policy: indices reflect about the
edge sample without repeating it (``d c b | a b c d | c b a``), which is
scipy.ndimage's ``mode="mirror"``.  Every stage that reads beyond the
image (DoG, gradient sampling, background, interpolation) uses the same
policy.
"""
from __future__ import annotations

from typing import Sequence, Tuple

import numpy as np
from scipy.ndimage import map_coordinates

from .errors import ConfigurationError


BOUNDARY_MODE = "mirror"


def mirror_index(idx: np.ndarray, n: int) -> np.ndarray:
    """
    Map integer indices onto ``[0, n)`` with mirror (no edge repeat) reflection.

    >>> mirror_index(np.array([-2, -1, 0, 3, 4, 5]), 4).tolist()
    [2, 1, 0, 3, 2, 1]
    """
    idx = np.asarray(idx, dtype=np.int64)
    if n == 1:
        return np.zeros_like(idx)
    period = 2 * (n - 1)
    idx = np.mod(idx, period)
    return np.where(idx >= n, period - idx, idx)


class ScalarField:
    """
    Immutable n-dimensional field of real intensities.

    Parameters
    ----------
    data : array_like, 2-D or 3-D
        Intensities in native axis order ((y, x) or (z, y, x)).  The array is
        copied to float64 and flagged read-only.
    """

    def __init__(self, data: np.ndarray):
        arr = np.array(data, dtype=np.float64)
        if arr.ndim not in (2, 3):
            raise ValueError(f"Expected a 2-D or 3-D field, got shape {arr.shape}")
        if arr.size == 0:
            raise ValueError("Field is empty")
        arr.flags.writeable = False
        self._data = arr

    @classmethod
    def wrap(cls, data: np.ndarray) -> "ScalarField":
        """Wrap an array that is already float64 and read-only, without copying."""
        if isinstance(data, ScalarField):
            return data
        if data.dtype == np.float64 and not data.flags.writeable:
            field = cls.__new__(cls)
            if data.ndim not in (2, 3):
                raise ValueError(f"Expected a 2-D or 3-D field, got shape {data.shape}")
            if data.size == 0:
                raise ValueError("Field is empty")
            field._data = data
            return field
        return cls(data)

    @property
    def data(self) -> np.ndarray:
        return self._data

    @property
    def ndim(self) -> int:
        return self._data.ndim

    @property
    def shape(self) -> Tuple[int, ...]:
        return self._data.shape

    def __repr__(self) -> str:
        return f"ScalarField(shape={self.shape})"

    def min_max(self) -> Tuple[float, float]:
        return float(self._data.min()), float(self._data.max())

    def normalized(self, vmin: float, vmax: float) -> "ScalarField":
        """Return a new field scaled so that vmin → 0 and vmax → 1."""
        span = float(vmax) - float(vmin)
        if span <= 0:
            raise ConfigurationError(
                f"Cannot normalise: intensity range [{vmin}, {vmax}] is empty"
            )
        out = (self._data - float(vmin)) / span
        out.flags.writeable = False
        return ScalarField.wrap(out)

    def patch(self, center: Sequence[int], radius: int) -> np.ndarray:
        """
        Return the (2r+1)^d block centred on an integer coordinate.

        Positions outside the field are filled by mirror reflection.
        """
        index = [
            mirror_index(np.arange(c - radius, c + radius + 1), n)
            for c, n in zip(center, self.shape)
        ]
        return self._data[np.ix_(*index)]

    def interpolate(self, position: Sequence[float]) -> float:
        """Linearly interpolate the field at a real-valued position."""
        coords = np.asarray(position, dtype=np.float64).reshape(self.ndim, 1)
        return float(map_coordinates(self._data, coords, order=1, mode=BOUNDARY_MODE)[0])
