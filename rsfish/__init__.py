"""
rsfish — radial-symmetry localisation of diffraction-limited spots (smFISH).

Quick start:
    from rsfish import RadialSymConfig, localize_spots, process_image
    from rsfish.io import read_image

    cfg = RadialSymConfig(sigma=1.5, thresholds=(0.005, 0.007, 0.01),
                          ransac="ransac", workers=4, seed=42)
    image = read_image("embryo.tif")
    results = localize_spots(image, cfg)        # one ThresholdResult per threshold
    for r in results:
        print(r.threshold, len(r.spots))
    # or: process one file end-to-end (one CSV per threshold)
    result = process_image("embryo.tif", outdir="outputs/", cfg=cfg)
"""

__version__ = "0.1.0"

from .config import RadialSymConfig
from .errors import (
    ConfigurationError,
    DegenerateFitError,
    InsufficientSamplesError,
    RadialSymError,
    WorkerTaskError,
)
from .pipeline import (
    Spot,
    ThresholdResult,
    detect_spots,
    localize_spots,
    process_image,
    spots_to_array,
)

__all__ = [
    "RadialSymConfig",
    "Spot",
    "ThresholdResult",
    "localize_spots",
    "detect_spots",
    "process_image",
    "spots_to_array",
    "RadialSymError",
    "ConfigurationError",
    "DegenerateFitError",
    "InsufficientSamplesError",
    "WorkerTaskError",
    "__version__",
]
