"""
I/O helpers: read images (TIFF), write / read spot tables (CSV).

The CSV layout follows the RS-FISH convention: one row per spot with
columns ``x, y, z, t, c, intensity`` (``z`` only for 3-D images).  Spot
positions are stored internally in native array order ((y, x) or
(z, y, x)); the reordering to x, y, z happens here.
"""
from __future__ import annotations

import csv
from pathlib import Path
from typing import List, Sequence

import numpy as np


# --------------------------------------------------------------------------- #
# Reading
# --------------------------------------------------------------------------- #

def read_image(path: str | Path) -> np.ndarray:
    """
    Load a 2-D image or 3-D stack as a float64 array.

    Supports TIFF (.tif, .tiff).  Singleton axes are dropped.
    Returns shape (ny, nx) or (nz, ny, nx).
    """
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix not in {".tif", ".tiff"}:
        raise ValueError(f"Unsupported file format: {suffix!r}. Use .tif/.tiff")

    try:
        import tifffile
    except ImportError:
        raise ImportError("tifffile is required to read TIFF files: pip install tifffile")

    data = np.squeeze(tifffile.imread(str(path))).astype(np.float64)
    if data.ndim not in (2, 3):
        raise ValueError(f"Expected a 2-D image or 3-D stack, got shape {data.shape}")
    return data


# --------------------------------------------------------------------------- #
# Writing — CSV
# --------------------------------------------------------------------------- #

def spot_fields(ndim: int) -> List[str]:
    return ["x", "y", "z", "t", "c", "intensity"] if ndim == 3 else \
        ["x", "y", "t", "c", "intensity"]


def _spot_row(spot, swap_xy: bool) -> dict:
    pos = spot.position
    x, y = pos[-1], pos[-2]
    if swap_xy:
        x, y = y, x
    row = {"x": x, "y": y, "t": 1, "c": 1, "intensity": spot.intensity}
    if len(pos) == 3:
        row["z"] = pos[0]
    return row


def write_spots_csv(
    spots: Sequence,
    path: str | Path,
    swap_xy: bool = False,
    ndim: int | None = None,
) -> None:
    """
    Write spots to CSV.

    Parameters
    ----------
    spots : sequence of Spot
    path : str or Path
    swap_xy : bool
        Exchange the x and y columns (some source formats expect this).
    ndim : int or None
        Dimensionality for the header when ``spots`` is empty (default 3).
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    if ndim is None:
        ndim = len(spots[0].position) if spots else 3
    fields = spot_fields(ndim)
    with open(path, "w", newline="") as fh:
        writer = csv.DictWriter(fh, fieldnames=fields)
        writer.writeheader()
        for s in spots:
            row = _spot_row(s, swap_xy)
            writer.writerow({k: row.get(k, "") for k in fields})


def read_spots_csv(path: str | Path) -> List[dict]:
    """Read a spots CSV back into a list of dicts with float values."""
    path = Path(path)
    rows = []
    with open(path, newline="") as fh:
        reader = csv.DictReader(fh)
        for row in reader:
            rows.append({k: float(v) for k, v in row.items()})
    return rows


def threshold_csv_path(outdir: str | Path, stem: str, threshold: float) -> Path:
    """Output path for one threshold branch, e.g. ``embryo_t0.007.csv``."""
    return Path(outdir) / f"{stem}_t{threshold:g}.csv"
