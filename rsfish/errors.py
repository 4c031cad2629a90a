"""
Exception taxonomy for rsfish.

ConfigurationError is fatal and raised before any computation starts.
DegenerateFitError and InsufficientSamplesError are recovered per peak
(the peak simply yields no spot).  WorkerTaskError is attached to the
ThresholdResult of the branch that failed.
"""
from __future__ import annotations


class RadialSymError(Exception):
    """Base class for all rsfish errors."""


class ConfigurationError(RadialSymError, ValueError):
    """Invalid configuration (non-positive sigma, empty threshold set, ...)."""


class DegenerateFitError(RadialSymError):
    """The gradient-intersection system is singular or ill-conditioned."""


class InsufficientSamplesError(RadialSymError):
    """The support region produced too few usable gradient samples."""


class WorkerTaskError(RadialSymError):
    """
    Unexpected failure inside one threshold branch.

    Carries the threshold of the failed branch and the formatted traceback
    of the original exception (also available as ``__cause__``).
    """

    def __init__(self, threshold: float, message: str, traceback_text: str = ""):
        super().__init__(f"threshold {threshold:g}: {message}")
        self.threshold = threshold
        self.traceback_text = traceback_text
