"""
Aggregation statistics for RULA score series.

NaN frames are excluded everywhere; percentiles use numpy's default linear
interpolation.
"""

import logging
from typing import Dict

import numpy as np
from pydantic import BaseModel, Field

from src.rula.exceptions import AggregationError
from src.rula.results import TrialResult

logger = logging.getLogger(__name__)

FINAL_SCORE_BINS = 7

ACTION_LEVELS: Dict[str, tuple] = {
    "acceptable": (1, 2),
    "investigate": (3, 4),
    "change_soon": (5, 6),
    "immediate": (7, 7),
}


class SummaryStatistic(BaseModel):
    """Median/IQR and relative histogram of one trial's final score."""
    median: float
    q1: float
    q3: float
    histogram: list[float] = Field(description="Percent of valid frames per score 1-7")
    action_levels: dict[str, float] = Field(default_factory=dict)
    n_valid: int
    n_frames: int

    @property
    def valid_pct(self) -> float:
        return 100.0 * self.n_valid / self.n_frames if self.n_frames else 0.0

    @property
    def iqr(self) -> float:
        return self.q3 - self.q1


def valid_values(values) -> np.ndarray:
    arr = np.asarray(values, dtype=np.float64).reshape(-1)
    return arr[~np.isnan(arr)]


def percentile_stats(values) -> Dict[str, float]:
    """
    Median, 25th and 75th percentile of the non-NaN values.

    Args:
        values: Score series (NaN allowed).

    Returns:
        Dict with ``median``, ``q1``, ``q3`` and ``n_valid``; the statistics are
        NaN when there are no valid values.
    """
    vals = valid_values(values)
    if vals.size == 0:
        return {'median': np.nan, 'q1': np.nan, 'q3': np.nan, 'n_valid': 0}
    q1, median, q3 = np.percentile(vals, [25, 50, 75])
    return {'median': float(median), 'q1': float(q1), 'q3': float(q3), 'n_valid': int(vals.size)}


def relative_histogram(values, n_bins: int = FINAL_SCORE_BINS) -> np.ndarray:
    """
    Percentage of valid frames per score 1..n_bins; higher scores fold into the last bin.

    Returns:
        np.ndarray of shape (n_bins,) summing to 100 (all zeros if nothing is valid).
    """
    vals = valid_values(values)
    if vals.size == 0:
        return np.zeros(n_bins, dtype=np.float64)
    capped = np.minimum(vals, n_bins)
    edges = np.arange(0.5, n_bins + 1.0, 1.0)
    counts, _ = np.histogram(capped, bins=edges)
    return counts.astype(np.float64) / vals.size * 100.0


def action_level_shares(histogram) -> Dict[str, float]:
    """Collapse a 7-bin score histogram into the four RULA action levels."""
    hist = np.asarray(histogram, dtype=np.float64)
    return {
        level: float(hist[lo - 1:hi].sum())
        for level, (lo, hi) in ACTION_LEVELS.items()
    }


def summarize_scores(values) -> SummaryStatistic:
    """
    Summary statistic of a final-score series.

    Raises:
        AggregationError: If the series has no valid (non-NaN) frame.
    """
    arr = np.asarray(values, dtype=np.float64).reshape(-1)
    stats = percentile_stats(arr)
    if stats['n_valid'] == 0:
        raise AggregationError(
            f"No valid scores among {arr.size} frame(s).", reason="no valid scores"
        )
    hist = relative_histogram(arr)
    return SummaryStatistic(
        median=stats['median'],
        q1=stats['q1'],
        q3=stats['q3'],
        histogram=[float(h) for h in hist],
        action_levels=action_level_shares(hist),
        n_valid=stats['n_valid'],
        n_frames=int(arr.size),
    )


def step_statistics(result: TrialResult, totals_only: bool = False) -> Dict[str, Dict[str, float]]:
    """
    Percentile statistics for every retained series of a trial.

    Args:
        result (TrialResult): Scored trial.
        totals_only (bool): Only the ``<step>.total`` series.

    Returns:
        Dict mapping series name to :func:`percentile_stats` output.
    """
    out = {}
    for name, values in result.series().items():
        if totals_only and not name.endswith('.total'):
            continue
        out[name] = percentile_stats(values)
    return out
