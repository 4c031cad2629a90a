"""
Orchestrator: ties all stages together into localize_spots() and process_image().

Stages per image:
  1. Normalise intensities to [0, 1] (detection and gradients use this field;
     intensities are measured on the raw one)
  2. DoG response — computed ONCE, read-only, shared by all thresholds
  3. Peak extraction — ONCE, at the lowest requested threshold
  4. Per threshold (independent branches, optionally on a thread pool):
       a. filter peaks by their stored DoG value
       b. gather gradient samples in the support region
       c. radial-symmetry fit (plain, RANSAC or multiconsensus RANSAC)
       d. support-region check
       e. background estimate + intensity measurement
  5. Results in the order the thresholds were requested
"""
from __future__ import annotations

import logging
import time
import traceback
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .background import estimate_background
from .config import RadialSymConfig
from .dog import compute_dog
from .errors import DegenerateFitError, InsufficientSamplesError, WorkerTaskError
from .field import ScalarField
from .gradients import sample_gradients
from .peaks import Peak, find_peaks, split_by_threshold
from .ransac import peak_rng, refine

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Spot:
    """One accepted localisation, position in native axis order."""
    position: Tuple[float, ...]
    num_inliers: int
    residual: float
    intensity: float
    dog_value: float
    background: float = 0.0


@dataclass(frozen=True)
class ThresholdResult:
    """Spots found at one DoG threshold (or the error that stopped the branch)."""
    threshold: float
    spots: Tuple[Spot, ...]
    n_peaks: int = 0
    error: Optional[WorkerTaskError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_error(self) -> None:
        if self.error is not None:
            raise self.error


@dataclass(frozen=True)
class DetectionContext:
    """Read-only artefacts shared by every threshold branch."""
    raw: ScalarField
    normalized: ScalarField
    response: ScalarField
    peaks: Tuple[Peak, ...]
    intensity_range: Tuple[float, float]
    seed: int


def resolve_seed(seed: Optional[int]) -> int:
    """Return ``seed`` or, when None, a fresh run-specific seed."""
    if seed is not None:
        return int(seed)
    return int(np.random.SeedSequence().entropy)


def prepare(image, cfg: RadialSymConfig) -> DetectionContext:
    """Normalise, compute the DoG response and extract the superset of peaks."""
    raw = ScalarField.wrap(image)

    vmin, vmax = cfg.min_intensity, cfg.max_intensity
    if vmin is None or vmax is None:
        img_min, img_max = raw.min_max()
        vmin = img_min if vmin is None else vmin
        vmax = img_max if vmax is None else vmax
    seed = resolve_seed(cfg.seed)

    if vmax <= vmin:
        # Blank image (or nothing above a fixed minimum): no spots to find.
        logger.warning(
            "intensity range [%g, %g] of %s is empty, skipping detection",
            vmin, vmax, raw.shape,
        )
        blank = np.zeros(raw.shape)
        blank.flags.writeable = False
        blank = ScalarField.wrap(blank)
        return DetectionContext(
            raw=raw,
            normalized=blank,
            response=blank,
            peaks=(),
            intensity_range=(float(vmin), float(vmax)),
            seed=seed,
        )
    normalized = raw.normalized(vmin, vmax)

    t0 = time.perf_counter()
    response = compute_dog(normalized, cfg.sigma, cfg.dog_anisotropy, workers=cfg.workers)
    peaks = tuple(find_peaks(response, cfg.min_threshold))
    logger.info(
        "DoG sigma=%g on %s: %d peaks above %g (%.2fs), seed=%d",
        cfg.sigma, raw.shape, len(peaks), cfg.min_threshold,
        time.perf_counter() - t0, seed,
    )
    return DetectionContext(
        raw=raw,
        normalized=normalized,
        response=response,
        peaks=peaks,
        intensity_range=(float(vmin), float(vmax)),
        seed=seed,
    )


def refine_peak(
    ctx: DetectionContext,
    peak: Peak,
    cfg: RadialSymConfig,
) -> List[Spot]:
    """
    Localise the spot(s) seeded by one peak.

    Returns an empty list when the peak is rejected (RANSAC reject,
    degenerate system, too few samples, fit outside the support region or
    intensity below ``cfg.intensity_threshold``).
    """
    radius = cfg.support_radius
    center = np.asarray(peak.coordinates, dtype=np.float64)
    samples = sample_gradients(ctx.normalized, peak.coordinates, radius, cfg.anisotropy)
    rng = peak_rng(ctx.seed, peak.coordinates) if cfg.ransac != "off" else None

    try:
        fits = refine(
            samples, cfg.ransac, rng,
            max_error=cfg.max_error,
            inlier_ratio=cfg.inlier_ratio,
            iterations=cfg.ransac_iterations,
            min_num_inliers=cfg.min_num_inliers,
            n_times_stdev1=cfg.n_times_stdev1,
            n_times_stdev2=cfg.n_times_stdev2,
        )
    except (DegenerateFitError, InsufficientSamplesError) as e:
        logger.debug("peak %s rejected: %s", peak.coordinates, e)
        return []
    if not fits:
        return []

    vmin, vmax = ctx.intensity_range
    background = estimate_background(
        ctx.raw, peak.coordinates, radius,
        method=cfg.background,
        max_error=cfg.background_max_error * (vmax - vmin),
        inlier_ratio=cfg.background_inlier_ratio,
    )

    spots = []
    for fit in fits:
        position = samples.to_voxel(fit.position)
        if np.any(np.abs(position - center) > radius):
            logger.debug("peak %s: fit %s left the support region",
                         peak.coordinates, np.round(position, 2).tolist())
            continue
        intensity = ctx.raw.interpolate(position) - background
        if intensity < cfg.intensity_threshold:
            continue
        spots.append(Spot(
            position=tuple(float(v) for v in position),
            num_inliers=fit.num_inliers,
            residual=float(fit.residual),
            intensity=float(intensity),
            dog_value=peak.dog_value,
            background=float(background),
        ))
    return spots


def _run_branch(
    ctx: DetectionContext,
    peaks: Sequence[Peak],
    threshold: float,
    cfg: RadialSymConfig,
) -> ThresholdResult:
    """One threshold branch; failures are attached to the result, not raised."""
    try:
        spots: List[Spot] = []
        for peak in peaks:
            spots.extend(refine_peak(ctx, peak, cfg))
        logger.info("threshold %g: %d peaks → %d spots", threshold, len(peaks), len(spots))
        return ThresholdResult(threshold=threshold, spots=tuple(spots), n_peaks=len(peaks))
    except Exception as e:
        tb = traceback.format_exc()
        logger.error("threshold %g failed: %s", threshold, e)
        err = WorkerTaskError(threshold, str(e), tb)
        err.__cause__ = e
        return ThresholdResult(threshold=threshold, spots=(), n_peaks=len(peaks), error=err)


def localize_spots(
    image,
    cfg: Optional[RadialSymConfig] = None,
) -> List[ThresholdResult]:
    """
    Run detection and localisation for every configured threshold.

    Parameters
    ----------
    image : ndarray, shape (ny, nx) or (nz, ny, nx), or ScalarField
    cfg : RadialSymConfig or None (uses defaults)

    Returns
    -------
    results : list of ThresholdResult
        One per ``cfg.thresholds`` entry, in the requested order.
    """
    if cfg is None:
        cfg = RadialSymConfig()

    ctx = prepare(image, cfg)
    branches = split_by_threshold(ctx.peaks, cfg.thresholds)

    if cfg.workers > 1 and len(cfg.thresholds) > 1:
        with ThreadPoolExecutor(max_workers=cfg.workers) as executor:
            futures = [
                executor.submit(_run_branch, ctx, peaks, t, cfg)
                for t, peaks in zip(cfg.thresholds, branches)
            ]
            results = [f.result() for f in futures]
    else:
        results = [
            _run_branch(ctx, peaks, t, cfg)
            for t, peaks in zip(cfg.thresholds, branches)
        ]
    return results


def detect_spots(image, cfg: Optional[RadialSymConfig] = None) -> Tuple[Spot, ...]:
    """Single-threshold convenience: spots at the first configured threshold."""
    if cfg is None:
        cfg = RadialSymConfig()
    result = localize_spots(image, cfg.with_threshold(cfg.thresholds[0]))[0]
    result.raise_for_error()
    return result.spots


def spots_to_array(spots: Sequence[Spot], ndim: Optional[int] = None) -> np.ndarray:
    """
    Stack spots into an array.

    Parameters
    ----------
    spots : sequence of Spot
    ndim : int or None
        Spot dimensionality; required when ``spots`` is empty.

    Returns
    -------
    ndarray, shape (N, d + 4)
        Columns: position (native axis order)..., intensity, residual,
        num_inliers, dog_value
    """
    if not spots:
        if ndim is None:
            raise ValueError("ndim is required to shape an empty spot array")
        return np.empty((0, ndim + 4), dtype=np.float64)
    return np.array([
        list(s.position) + [s.intensity, s.residual, s.num_inliers, s.dog_value]
        for s in spots
    ], dtype=np.float64)


def process_image(
    path: str | Path,
    outdir: str | Path,
    cfg: Optional[RadialSymConfig] = None,
    verbose: bool = True,
) -> dict:
    """
    Full pipeline for one image file: read → localise → write outputs.

    Writes one CSV per threshold (``<stem>_t<threshold>.csv``) and, when
    enabled, an overlay figure for the first threshold plus a spot-count
    plot when several thresholds were requested.

    Returns
    -------
    result : dict
        {"path": str, "time_s": float, "n_spots": {threshold: int},
         "csv": {threshold: str}, "figures": list of str,
         "errors": {threshold: str}, "results": list of ThresholdResult}
    """
    from .io import read_image, threshold_csv_path, write_spots_csv

    path = Path(path)
    outdir = Path(outdir)
    if cfg is None:
        cfg = RadialSymConfig()

    t0 = time.perf_counter()
    if verbose:
        print(f"  Reading: {path.name}")
    image = read_image(path)

    results = localize_spots(image, cfg)

    csv_paths = {}
    figures = []
    errors = {}
    for r in results:
        if not r.ok:
            errors[r.threshold] = str(r.error)
            if verbose:
                print(f"  threshold {r.threshold:g}: ERROR {r.error}")
            continue
        if cfg.write_csv:
            csv_path = threshold_csv_path(outdir, path.stem, r.threshold)
            write_spots_csv(r.spots, csv_path, swap_xy=cfg.swap_xy)
            csv_paths[r.threshold] = str(csv_path)
        if verbose:
            print(f"  threshold {r.threshold:g}: {len(r.spots)} spots "
                  f"({r.n_peaks} peaks)")

    if cfg.write_overlay and results and results[0].ok:
        from .viz import plot_spots_overlay, plot_threshold_counts
        overlay = plot_spots_overlay(
            image, results[0].spots, outdir,
            name=f"{path.stem}_spots_overlay",
            formats=cfg.figure_formats, dpi=cfg.figure_dpi,
        )
        figures.extend(str(p) for p in overlay.values())
        if len(results) > 1:
            counts = plot_threshold_counts(
                [r for r in results if r.ok], outdir,
                name=f"{path.stem}_threshold_counts",
                formats=cfg.figure_formats, dpi=cfg.figure_dpi,
            )
            figures.extend(str(p) for p in counts.values())

    elapsed = time.perf_counter() - t0
    if verbose:
        print(f"  done ({elapsed:.1f}s)")

    return {
        "path": str(path),
        "time_s": round(elapsed, 2),
        "n_spots": {r.threshold: len(r.spots) for r in results},
        "csv": csv_paths,
        "figures": figures,
        "errors": errors,
        "results": results,
    }
