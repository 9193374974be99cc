"""
Utility functions for RULA score aggregation and persistence.
"""

from .io_utils import (
    load_config,
    save_trial_result,
    load_trial_result,
)
from .metrics import (
    SummaryStatistic,
    percentile_stats,
    relative_histogram,
    action_level_shares,
    summarize_scores,
    step_statistics,
)

__all__ = [
    'load_config',
    'save_trial_result',
    'load_trial_result',
    'SummaryStatistic',
    'percentile_stats',
    'relative_histogram',
    'action_level_shares',
    'summarize_scores',
    'step_statistics',
]
