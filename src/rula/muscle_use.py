"""
Muscle-use and load adjustments: RULA steps 6, 7 (per arm) and 13, 14
(neck/trunk).

Muscle use is scored from the already-computed posture series:

    static      the same score held continuously longer than the threshold
    repetitive  the current score re-entered more often than the allowed rate
                within the trailing window

Each flag adds 1, so the muscle-use score is 0, 1 or 2.  Load/force is an
assessor-supplied constant.
"""

import logging

import numpy as np

from .config import ScoringConfig
from .results import ScoreSeries, StepResult

logger = logging.getLogger(__name__)


def _frame_interval(time_s: np.ndarray) -> float:
    if time_s.size < 2:
        return 0.0
    return float(np.median(np.diff(time_s)))


def band_runs(bands: np.ndarray) -> list[tuple[int, int, float]]:
    """Split a band series into runs of identical non-NaN values.

    Returns:
        List of ``(start, stop, value)`` with ``stop`` exclusive.  NaN frames
        end a run and never start one.
    """
    runs: list[tuple[int, int, float]] = []
    start = None
    current = np.nan
    for i, value in enumerate(bands):
        if np.isnan(value):
            if start is not None:
                runs.append((start, i, current))
                start = None
            continue
        if start is None:
            start, current = i, value
        elif value != current:
            runs.append((start, i, current))
            start, current = i, value
    if start is not None:
        runs.append((start, len(bands), current))
    return runs


def static_flags(bands, time_s, min_duration_s: float = 60.0) -> np.ndarray:
    """Flag every frame of a run that lasts longer than ``min_duration_s``.

    A run's duration is measured from its first to its last timestamp plus
    one frame interval.

    Returns:
        (N,) array of 0/1, NaN where the band is NaN.
    """
    bands = np.asarray(bands, dtype=np.float64)
    time_s = np.asarray(time_s, dtype=np.float64)
    dt = _frame_interval(time_s)

    flags = np.zeros(bands.shape[0], dtype=np.float64)
    for start, stop, _ in band_runs(bands):
        duration = time_s[stop - 1] - time_s[start] + dt
        if duration > min_duration_s:
            flags[start:stop] = 1.0
    flags[np.isnan(bands)] = np.nan
    return flags


def repetitive_flags(
    bands,
    time_s,
    window_s: float = 60.0,
    max_per_minute: float = 4.0,
) -> np.ndarray:
    """Flag frames whose current band recurs too often in the trailing window.

    For frame ``i`` the scan counts runs of the frame's band value that
    started within ``(t_i - window_s, t_i]``.  The frame is repetitive when
    that count exceeds ``max_per_minute`` scaled to the window length.

    The run starts form an arena ordered by time; two pointers walk it once
    (``head`` admits starts up to ``t_i``, ``tail`` evicts starts older than the
    window) while a per-band counter holds the occupancy, so the scan is
    linear in the number of frames.

    Returns:
        (N,) array of 0/1, NaN where the band is NaN.
    """
    bands = np.asarray(bands, dtype=np.float64)
    time_s = np.asarray(time_s, dtype=np.float64)
    limit = max_per_minute * window_s / 60.0

    starts = [(time_s[start], value) for start, _, value in band_runs(bands)]
    counts: dict[float, int] = {}
    head = tail = 0

    flags = np.full(bands.shape[0], np.nan, dtype=np.float64)
    for i, value in enumerate(bands):
        t = time_s[i]
        while head < len(starts) and starts[head][0] <= t:
            counts[starts[head][1]] = counts.get(starts[head][1], 0) + 1
            head += 1
        while tail < head and starts[tail][0] <= t - window_s:
            counts[starts[tail][1]] -= 1
            tail += 1
        if np.isnan(value):
            continue
        flags[i] = 1.0 if counts.get(value, 0) > limit else 0.0
    return flags


def muscle_use_step(
    step: int,
    key: str,
    label: str,
    scores: dict[str, np.ndarray],
    time_s: np.ndarray,
    config: ScoringConfig,
    side=None,
) -> StepResult:
    """Step 6 / 13: static + repetitive muscle use over one or more regions.

    With several regions (neck and trunk for step 13) a flag is raised when
    any region raises it; each region's own total is kept as a part.
    """
    static = None
    repetitive = None
    parts: dict[str, np.ndarray] = {}
    for region, series in scores.items():
        s_flag = static_flags(series, time_s, config.static_duration_s)
        r_flag = repetitive_flags(
            series, time_s, config.repetitive_window_s, config.repetitive_max_per_minute
        )
        if len(scores) > 1:
            parts[region] = s_flag + r_flag
        static = s_flag if static is None else np.fmax(static, s_flag)
        repetitive = r_flag if repetitive is None else np.fmax(repetitive, r_flag)

    # any NaN region makes the frame NaN
    invalid = np.zeros(time_s.shape[0], dtype=bool)
    for series in scores.values():
        invalid |= np.isnan(series)
    static[invalid] = np.nan
    repetitive[invalid] = np.nan
    total = static + repetitive

    parts = {"static": static, "repetitive": repetitive, **parts}
    if logger.isEnabledFor(logging.DEBUG):
        logger.debug(
            f"{key}: static {int(np.nansum(static))} frame(s), "
            f"repetitive {int(np.nansum(repetitive))} frame(s)."
        )
    return StepResult(
        step=step,
        key=key,
        label=label,
        side=side,
        total=ScoreSeries.build(f"{key}.total", total),
        parts={name: ScoreSeries.build(f"{key}.{name}", vals) for name, vals in parts.items()},
    )


def load_step(step: int, key: str, label: str, load: int, reference: np.ndarray, side=None) -> StepResult:
    """Step 7 / 14: constant load/force score, NaN wherever ``reference`` is NaN."""
    ref = np.asarray(reference, dtype=np.float64)
    total = np.where(np.isnan(ref), np.nan, float(load))
    return StepResult(
        step=step,
        key=key,
        label=label,
        side=side,
        total=ScoreSeries.build(f"{key}.total", total),
    )
