"""
Per-trial summaries and the cross-trial summary table.

Each trial ends in one of three states:

    ok       every frame scored
    partial  some frames NaN; ``valid_pct`` says how many scored
    failed   nothing to aggregate; ``reason`` says why

Failed trials keep their row in the table (flagged) but are left out of the
group-level statistics.
"""

import logging
import time
from concurrent.futures import FIRST_COMPLETED, Future, ProcessPoolExecutor, wait
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np
import pandas as pd
from pydantic import BaseModel, Field

from src.rula.config import ScoringConfig
from src.rula.exceptions import AggregationError, ConfigurationError, FrameDataError
from src.rula.results import TrialResult
from src.rula.schema import TrialData
from src.utils.metrics import FINAL_SCORE_BINS, SummaryStatistic, step_statistics, summarize_scores

from .config import FULL_COVERAGE, RULA_MAX_WORKERS
from .scoring import score_trial

logger = logging.getLogger(__name__)

STATUS_OK = "ok"
STATUS_PARTIAL = "partial"
STATUS_FAILED = "failed"

HIST_COLUMNS = [f"hist_{score}" for score in range(1, FINAL_SCORE_BINS + 1)]

# Seconds between checks on pool futures while a timeout applies
POLL_INTERVAL_S = 0.05


class TrialSummary(BaseModel):
    """Reportable outcome of one trial."""
    subject_id: str
    trial_name: str
    conditions: dict[str, str] = Field(default_factory=dict)
    status: str = Field(description="'ok', 'partial' or 'failed'")
    reason: Optional[str] = None
    valid_pct: float = 0.0
    n_frames: int = 0
    final: Optional[SummaryStatistic] = None
    steps: dict[str, dict[str, float]] = Field(
        default_factory=dict, description="Series name -> median/q1/q3/n_valid"
    )

    @property
    def message(self) -> str:
        if self.status == STATUS_OK:
            return "trial scored successfully"
        if self.status == STATUS_PARTIAL:
            return f"trial scored with partial coverage ({self.valid_pct:.1f}% valid frames)"
        return f"trial failed to score ({self.reason})"


def summarize_trial(result: TrialResult, all_series: bool = False) -> TrialSummary:
    """Summarize one scored trial without raising on empty results.

    Args:
        result: Scored trial.
        all_series: Include part series (flags, bands) in ``steps``, not only totals.
    """
    base = dict(
        subject_id=result.subject_id,
        trial_name=result.trial_name,
        conditions=result.conditions,
        n_frames=result.n_frames,
        valid_pct=100.0 * result.valid_fraction,
    )
    try:
        final = summarize_scores(result.final)
    except AggregationError as exc:
        logger.warning(f"Trial '{result.trial_name}' skipped: {exc}")
        return TrialSummary(status=STATUS_FAILED, reason=exc.reason, **base)

    status = STATUS_OK if result.valid_fraction >= FULL_COVERAGE else STATUS_PARTIAL
    return TrialSummary(
        status=status,
        final=final,
        steps=step_statistics(result, totals_only=not all_series),
        **base,
    )


def failed_summary(trial_name: str, subject_id: str, reason: str, conditions=None) -> TrialSummary:
    """Row for a trial that could not be scored at all."""
    return TrialSummary(
        subject_id=subject_id,
        trial_name=trial_name,
        conditions=dict(conditions or {}),
        status=STATUS_FAILED,
        reason=reason,
    )


def summarize_trials(
    trials: Iterable[TrialData],
    config: Optional[ScoringConfig] = None,
    max_workers: Optional[int] = None,
    timeout_s: Optional[float] = None,
    all_series: bool = False,
) -> List[TrialSummary]:
    """Score and summarize a batch of trials, one summary per trial in input order.

    A trial rejected in strict mode, or one that runs past ``timeout_s`` in the
    process pool, becomes a ``failed`` row and the batch carries on.

    Args:
        trials: Trials to score.
        config: Shared scoring configuration.
        max_workers: Worker processes; defaults to ``RULA_MAX_WORKERS``.
            ``0``/``1`` scores in-process (no timeout applies).
        timeout_s: Per-trial wall-clock limit when a pool is used, counted
            from when the trial is handed to a worker. Trials still queued
            behind busy workers are never timed out. A worker already running
            an expired trial is not interrupted; its result is discarded.
        all_series: Passed to :func:`summarize_trial`.

    Raises:
        ConfigurationError: Aborts the whole batch.
    """
    trials = list(trials)
    config = (config or ScoringConfig()).validate_breakpoints()
    workers = RULA_MAX_WORKERS if max_workers is None else max_workers

    def _failed(trial: TrialData, reason: str) -> TrialSummary:
        logger.warning(f"Trial '{trial.trial_name}' failed: {reason}")
        return failed_summary(trial.trial_name, trial.subject_id, reason, trial.conditions)

    summaries: List[TrialSummary] = []
    if workers <= 1 or len(trials) <= 1:
        for trial in trials:
            try:
                result = score_trial(trial, config)
            except FrameDataError as exc:
                summaries.append(_failed(trial, f"invalid frames: {exc}"))
                continue
            summaries.append(summarize_trial(result, all_series))
        return summaries

    logger.info(f"Scoring {len(trials)} trial(s) with {workers} worker process(es)")
    pool = ProcessPoolExecutor(max_workers=workers)
    results: List[Optional[TrialSummary]] = [None] * len(trials)
    started_at: Dict[Future, float] = {}
    poll_s = None if timeout_s is None else min(POLL_INTERVAL_S, timeout_s)
    try:
        index = {pool.submit(score_trial, trial, config): i for i, trial in enumerate(trials)}
        pending = set(index)
        while pending:
            done, pending = wait(pending, timeout=poll_s, return_when=FIRST_COMPLETED)
            for future in done:
                trial = trials[index[future]]
                try:
                    result = future.result()
                except FrameDataError as exc:
                    results[index[future]] = _failed(trial, f"invalid frames: {exc}")
                    continue
                results[index[future]] = summarize_trial(result, all_series)
            for future in _expired(pending, started_at, time.monotonic(), timeout_s):
                pending.discard(future)
                trial = trials[index[future]]
                results[index[future]] = _failed(trial, f"timed out after {timeout_s:g}s")
    finally:
        pool.shutdown(wait=False, cancel_futures=True)
    return results


def _expired(
    pending: Iterable[Future],
    started_at: Dict[Future, float],
    now: float,
    timeout_s: Optional[float],
) -> List[Future]:
    """Futures that have been running for longer than ``timeout_s``.

    ``started_at`` is updated with the first poll time at which each future was
    seen running. A future still waiting for a worker never expires.
    """
    if timeout_s is None:
        return []
    expired = []
    for future in pending:
        if future.running():
            started_at.setdefault(future, now)
        start = started_at.get(future)
        if start is not None and now - start > timeout_s:
            expired.append(future)
    return expired


def _column_prefix(series_name: str) -> str:
    key, _, part = series_name.partition(".")
    return key if part == "total" else f"{key}_{part}"


def summary_table(summaries: Iterable[TrialSummary]) -> pd.DataFrame:
    """One row per trial: identifiers, status, final-score statistics and
    median/Q1/Q3 of every step."""
    rows = []
    for s in summaries:
        row = {
            "subject_id": s.subject_id,
            "trial_name": s.trial_name,
            **s.conditions,
            "status": s.status,
            "reason": s.reason,
            "valid_pct": s.valid_pct,
            "n_frames": s.n_frames,
            "n_valid": s.final.n_valid if s.final else 0,
            "final_median": s.final.median if s.final else np.nan,
            "final_q1": s.final.q1 if s.final else np.nan,
            "final_q3": s.final.q3 if s.final else np.nan,
        }
        hist = s.final.histogram if s.final else [np.nan] * FINAL_SCORE_BINS
        row.update(dict(zip(HIST_COLUMNS, hist)))
        for name, stats in s.steps.items():
            prefix = _column_prefix(name)
            row[f"{prefix}_median"] = stats["median"]
            row[f"{prefix}_q1"] = stats["q1"]
            row[f"{prefix}_q3"] = stats["q3"]
        rows.append(row)
    return pd.DataFrame(rows)


def _check_group_columns(table: pd.DataFrame, by: Sequence[str]) -> List[str]:
    by = [by] if isinstance(by, str) else list(by)
    missing = [c for c in by if c not in table.columns]
    if missing:
        raise ConfigurationError(f"Unknown grouping column(s): {missing}")
    return by


def group_summary(table: pd.DataFrame, by: Sequence[str] = ("subject_id",)) -> pd.DataFrame:
    """Median of every per-trial statistic within each group; failed trials excluded."""
    by = _check_group_columns(table, by)
    scored = table[table["status"] != STATUS_FAILED]
    numeric = [
        c for c in scored.select_dtypes(include="number").columns
        if c not in by and c not in ("n_frames", "n_valid")
    ]
    grouped = scored.groupby(by)
    out = grouped[numeric].median()
    out.insert(0, "n_trials", grouped.size())
    return out.reset_index()


def group_histogram(table: pd.DataFrame, by: Sequence[str] = ("subject_id",)) -> pd.DataFrame:
    """Pooled relative histogram per group, each trial weighted by its valid frames."""
    by = _check_group_columns(table, by)
    scored = table[(table["status"] != STATUS_FAILED) & (table["n_valid"] > 0)]
    weighted = scored[HIST_COLUMNS].mul(scored["n_valid"], axis=0)
    weighted[by] = scored[by]
    weighted["n_valid"] = scored["n_valid"]
    sums = weighted.groupby(by).sum()
    out = sums[HIST_COLUMNS].div(sums["n_valid"], axis=0)
    out["n_valid"] = sums["n_valid"]
    return out.reset_index()
