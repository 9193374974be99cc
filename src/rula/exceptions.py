"""
Error taxonomy for the RULA scoring engine.

    ConfigurationError  fatal; aborts the whole run
    FrameDataError      per-frame; normally converted to NaN, raised only in strict mode
    AggregationError    per-trial; surfaced as a flagged summary row
"""


class RulaError(Exception):
    """Base class for all scoring-engine errors."""


class ConfigurationError(RulaError):
    """Missing joint/segment, malformed lookup table, unknown region or bad setting."""


class FrameDataError(RulaError):
    """NaN or out-of-physical-range frame values encountered in strict mode."""

    def __init__(self, message: str, frame_indices=None):
        super().__init__(message)
        self.frame_indices = list(frame_indices) if frame_indices is not None else []


class AggregationError(RulaError):
    """A score series has no valid (non-NaN) samples to aggregate."""

    def __init__(self, message: str, reason: str = "no valid scores"):
        super().__init__(message)
        self.reason = reason
