"""
Peak extraction on the DoG response and multi-threshold re-filtering.

Peaks are extracted once at the lowest requested threshold.  Each Peak
keeps its DoG response value, so every higher threshold is a plain filter
over that list and the response field is never scanned again.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence, Tuple

import numpy as np
from scipy.ndimage import maximum_filter

from .field import BOUNDARY_MODE, ScalarField


@dataclass(frozen=True)
class Peak:
    """Integer location of a DoG extremum plus its response value."""
    coordinates: Tuple[int, ...]
    dog_value: float

    @property
    def ndim(self) -> int:
        return len(self.coordinates)


def _neighbour_footprint(shape: Sequence[int]) -> np.ndarray:
    """3^d neighbourhood without its centre; singleton axes are not spanned."""
    fp_shape = tuple(3 if n > 1 else 1 for n in shape)
    footprint = np.ones(fp_shape, dtype=bool)
    footprint[tuple(s // 2 for s in fp_shape)] = False
    return footprint


def find_peaks(response: ScalarField, threshold: float = 0.0) -> List[Peak]:
    """
    Find strict local maxima of the response above a threshold.

    A voxel is a peak if its value is > threshold and strictly greater than
    every neighbour within a 1-voxel (Chebyshev) radius.  Plateaus (ties)
    produce no peak.

    Parameters
    ----------
    response : ScalarField
        DoG response.
    threshold : float
        Use 0.0 or the lowest of a threshold set to get a superset that
        ``filter_peaks`` can narrow down.

    Returns
    -------
    peaks : list of Peak
        In C (row-major) order of their coordinates.
    """
    response = ScalarField.wrap(response)
    data = response.data
    footprint = _neighbour_footprint(data.shape)
    if not footprint.any():
        return []

    neighbour_max = maximum_filter(data, footprint=footprint, mode=BOUNDARY_MODE)
    is_peak = (data > neighbour_max) & (data > threshold)

    idx = np.argwhere(is_peak)
    values = data[is_peak]
    return [
        Peak(tuple(int(c) for c in coords), float(v))
        for coords, v in zip(idx, values)
    ]


def filter_peaks(peaks: Iterable[Peak], threshold: float) -> List[Peak]:
    """Keep peaks whose stored DoG value exceeds ``threshold`` (order kept)."""
    return [p for p in peaks if p.dog_value > threshold]


def split_by_threshold(
    peaks: Sequence[Peak],
    thresholds: Sequence[float],
) -> List[List[Peak]]:
    """
    Filter one superset of peaks for each threshold.

    Returns one list per threshold, in the order the thresholds were given.
    For t1 < t2 the peaks kept at t2 are a subset of those kept at t1.
    """
    return [filter_peaks(peaks, t) for t in thresholds]
