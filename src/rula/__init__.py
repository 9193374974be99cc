"""
RULA scoring engine.

Maps per-frame joint angles and segment positions through RULA steps 1-15 and
Tables A/B/C into a per-frame final score (1-7).
"""

from .config import Breakpoints, ScoringConfig
from .exceptions import AggregationError, ConfigurationError, FrameDataError, RulaError
from .results import ScoreSeries, StepResult, TrialResult
from .schema import JOINT_NAMES, SEGMENT_NAMES, SIDES, TrialData
from .tables import TABLE_A, TABLE_B, TABLE_C, LookupTable, lookup

__all__ = [
    "Breakpoints",
    "ScoringConfig",
    "RulaError",
    "ConfigurationError",
    "FrameDataError",
    "AggregationError",
    "ScoreSeries",
    "StepResult",
    "TrialResult",
    "TrialData",
    "JOINT_NAMES",
    "SEGMENT_NAMES",
    "SIDES",
    "LookupTable",
    "lookup",
    "TABLE_A",
    "TABLE_B",
    "TABLE_C",
]
