"""
RadialSymConfig — all tunable parameters for rsfish in one dataclass.
"""
from __future__ import annotations
from dataclasses import dataclass, replace
from typing import Optional, Tuple

from .errors import ConfigurationError


RANSAC_MODES = ("off", "ransac", "multiconsensus")
BACKGROUND_METHODS = ("none", "mean", "median", "ransac_mean", "ransac_median")


@dataclass(frozen=True)
class RadialSymConfig:
    # ------------------------------------------------------------------ #
    # Anisotropy (axis 0 of a 3-D volume relative to the other two axes)
    # ------------------------------------------------------------------ #
    anisotropy: float = 1.0
    use_anisotropy_for_dog: bool = True

    # ------------------------------------------------------------------ #
    # DoG detection
    # ------------------------------------------------------------------ #
    sigma: float = 1.5
    thresholds: Tuple[float, ...] = (0.007,)   # requested order is kept

    # ------------------------------------------------------------------ #
    # Intensity normalisation for detection (None → computed from image)
    # ------------------------------------------------------------------ #
    min_intensity: Optional[float] = None
    max_intensity: Optional[float] = None

    # ------------------------------------------------------------------ #
    # Radial symmetry + RANSAC
    # ------------------------------------------------------------------ #
    ransac: str = "ransac"          # "off", "ransac" or "multiconsensus"
    support_radius: int = 3
    inlier_ratio: float = 0.1
    max_error: float = 1.5
    ransac_iterations: int = 1000

    # ------------------------------------------------------------------ #
    # Multiconsensus RANSAC only
    # ------------------------------------------------------------------ #
    min_num_inliers: int = 20
    n_times_stdev1: float = 8.0     # initial bound: avg - n1 * stdev
    n_times_stdev2: float = 6.0     # final bound:   avg - n2 * stdev

    # ------------------------------------------------------------------ #
    # Background subtraction
    # ------------------------------------------------------------------ #
    background: str = "none"
    background_max_error: float = 0.05      # fraction of the intensity range
    background_inlier_ratio: float = 0.75

    # ------------------------------------------------------------------ #
    # Spot filter
    # ------------------------------------------------------------------ #
    intensity_threshold: float = 0.0

    # ------------------------------------------------------------------ #
    # Execution
    # ------------------------------------------------------------------ #
    workers: int = 1
    seed: Optional[int] = None

    # ------------------------------------------------------------------ #
    # Output (process_image only)
    # ------------------------------------------------------------------ #
    write_csv: bool = True
    write_overlay: bool = False
    swap_xy: bool = False
    figure_dpi: int = 300
    figure_formats: Tuple[str, ...] = ("png",)

    def __post_init__(self):
        # Accept any iterable of thresholds but store a tuple of floats.
        if isinstance(self.thresholds, (int, float)):
            object.__setattr__(self, "thresholds", (float(self.thresholds),))
        else:
            object.__setattr__(
                self, "thresholds", tuple(float(t) for t in self.thresholds)
            )

        if self.sigma <= 0:
            raise ConfigurationError("sigma must be positive")
        if self.anisotropy <= 0:
            raise ConfigurationError("anisotropy must be positive")
        if not self.thresholds:
            raise ConfigurationError("at least one threshold is required")
        if any(t <= 0 for t in self.thresholds):
            raise ConfigurationError("all thresholds must be positive")
        if self.ransac not in RANSAC_MODES:
            raise ConfigurationError(
                f"ransac must be one of {RANSAC_MODES}, got {self.ransac!r}"
            )
        if int(self.support_radius) != self.support_radius or self.support_radius < 1:
            raise ConfigurationError("support_radius must be an integer >= 1")
        if not (0.0 <= self.inlier_ratio <= 1.0):
            raise ConfigurationError("inlier_ratio must be in [0, 1]")
        if self.max_error <= 0:
            raise ConfigurationError("max_error must be positive")
        if self.ransac_iterations < 1:
            raise ConfigurationError("ransac_iterations must be >= 1")
        if self.min_num_inliers < 1:
            raise ConfigurationError("min_num_inliers must be >= 1")
        if self.n_times_stdev1 < 0 or self.n_times_stdev2 < 0:
            raise ConfigurationError("n_times_stdev1/2 must be >= 0")
        if self.background not in BACKGROUND_METHODS:
            raise ConfigurationError(
                f"background must be one of {BACKGROUND_METHODS}, got {self.background!r}"
            )
        if self.background_max_error <= 0:
            raise ConfigurationError("background_max_error must be positive")
        if not (0.0 <= self.background_inlier_ratio <= 1.0):
            raise ConfigurationError("background_inlier_ratio must be in [0, 1]")
        if self.workers < 1:
            raise ConfigurationError("workers must be >= 1")
        if self.seed is not None and self.seed < 0:
            raise ConfigurationError("seed must be a non-negative integer")
        if (self.min_intensity is not None and self.max_intensity is not None
                and self.max_intensity <= self.min_intensity):
            raise ConfigurationError("max_intensity must be greater than min_intensity")

        object.__setattr__(self, "support_radius", int(self.support_radius))

    @property
    def dog_anisotropy(self) -> float:
        """Anisotropy applied to the DoG kernel (1.0 when disabled)."""
        return self.anisotropy if self.use_anisotropy_for_dog else 1.0

    @property
    def min_threshold(self) -> float:
        return min(self.thresholds)

    def with_threshold(self, threshold: float) -> "RadialSymConfig":
        """Return a copy of this config restricted to a single threshold."""
        return replace(self, thresholds=(threshold,))
