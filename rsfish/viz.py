"""
Visualisation helpers: spot overlays and per-threshold spot counts.

All figures are saved as PNG (300 DPI) by default.
"""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Sequence

import numpy as np
import matplotlib
matplotlib.use("Agg")   # figures are only ever written to disk
import matplotlib.pyplot as plt


def save_figure(
    fig: plt.Figure,
    name: str,
    outdir: str | Path,
    formats: Sequence[str] = ("png",),
    dpi: int = 300,
) -> Dict[str, Path]:
    """
    Write ``fig`` once per format as ``<outdir>/<name>.<fmt>`` and close it.

    Returns
    -------
    dict
        Format → written path.
    """
    target = Path(outdir)
    target.mkdir(parents=True, exist_ok=True)
    written = {}
    try:
        for fmt in formats:
            written[fmt] = target / f"{name}.{fmt}"
            fig.savefig(written[fmt], dpi=dpi, bbox_inches="tight")
    finally:
        plt.close(fig)
    return written


def plot_spots_overlay(
    image: np.ndarray,
    spots: Sequence,
    outdir: str | Path,
    name: str = "spots_overlay",
    formats: Sequence[str] = ("png",),
    dpi: int = 300,
    cmap: str = "viridis",
) -> Dict[str, Path]:
    """
    Render the image (max projection along axis 0 for stacks) with spot
    markers coloured by intensity.  Returns the written paths by format.
    """
    image = np.asarray(image)
    proj = image.max(axis=0) if image.ndim == 3 else image

    fig, ax = plt.subplots(figsize=(6, 6 * proj.shape[0] / max(proj.shape[1], 1)))
    p2, p98 = np.percentile(proj, (2, 98))
    ax.imshow(proj, cmap="gray", vmin=p2, vmax=p98,
              origin="upper", interpolation="nearest")

    if len(spots) > 0:
        ys = [s.position[-2] for s in spots]
        xs = [s.position[-1] for s in spots]
        intensities = [s.intensity for s in spots]
        sc = ax.scatter(xs, ys, c=intensities, cmap=cmap, s=18,
                        marker="x", linewidths=0.8)
        fig.colorbar(sc, ax=ax, fraction=0.046, pad=0.04, label="intensity")

    ax.set_xlim(-0.5, proj.shape[1] - 0.5)
    ax.set_ylim(proj.shape[0] - 0.5, -0.5)
    ax.set_title(f"{len(spots)} spots")
    ax.set_axis_off()

    return save_figure(fig, name, outdir, formats=formats, dpi=dpi)


def plot_threshold_counts(
    results: Sequence,
    outdir: str | Path,
    name: str = "threshold_counts",
    formats: Sequence[str] = ("png",),
    dpi: int = 300,
) -> Dict[str, Path]:
    """Number of peaks and spots for each threshold of a multi-threshold run."""
    ordered = sorted(results, key=lambda r: r.threshold)
    thresholds = [r.threshold for r in ordered]
    n_spots = [len(r.spots) for r in ordered]
    n_peaks = [r.n_peaks for r in ordered]

    fig, ax = plt.subplots(figsize=(5, 3.5))
    ax.plot(thresholds, n_peaks, "o--", color="0.5", label="DoG peaks")
    ax.plot(thresholds, n_spots, "o-", color="C0", label="spots")
    ax.set_xlabel("DoG threshold")
    ax.set_ylabel("count")
    ax.legend(frameon=False)
    fig.tight_layout()

    return save_figure(fig, name, outdir, formats=formats, dpi=dpi)
