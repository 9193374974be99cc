"""
Tests for muscle-use and load adjustments (steps 6, 7, 13, 14).

Covers:
    - Run splitting on band changes and NaN gaps
    - Static-posture detection against the duration threshold
    - Repetition counting in the trailing window
    - Step assembly for one and several regions
"""

import sys
from pathlib import Path

import numpy as np

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.rula.config import ScoringConfig
from src.rula.muscle_use import band_runs, load_step, muscle_use_step, repetitive_flags, static_flags


def _alternating(n_seconds: int, period_s: int = 5) -> np.ndarray:
    """1 Hz series switching between 1 and 2 every ``period_s`` seconds."""
    t = np.arange(n_seconds)
    return ((t // period_s) % 2 + 1).astype(np.float64)


# ============================================================================
# Runs
# ============================================================================

class TestBandRuns:

    def test_runs_split_on_change(self):
        runs = band_runs(np.array([1.0, 1.0, 2.0, 2.0, 2.0, 1.0]))
        assert runs == [(0, 2, 1.0), (2, 5, 2.0), (5, 6, 1.0)]

    def test_nan_ends_run(self):
        runs = band_runs(np.array([1.0, np.nan, 1.0, 1.0]))
        assert runs == [(0, 1, 1.0), (2, 4, 1.0)]

    def test_all_nan(self):
        assert band_runs(np.full(3, np.nan)) == []


# ============================================================================
# Static
# ============================================================================

class TestStaticFlags:

    def test_long_hold_is_static(self):
        flags = static_flags(np.ones(100), np.arange(100.0), min_duration_s=60.0)
        assert np.all(flags == 1)

    def test_short_hold_is_not_static(self):
        flags = static_flags(np.ones(30), np.arange(30.0), min_duration_s=60.0)
        assert np.all(flags == 0)

    def test_hold_exactly_at_threshold_is_not_static(self):
        flags = static_flags(np.ones(60), np.arange(60.0), min_duration_s=60.0)
        assert np.all(flags == 0)

    def test_only_the_long_run_is_flagged(self):
        bands = np.concatenate([np.full(70, 2.0), np.full(10, 3.0)])
        flags = static_flags(bands, np.arange(80.0), min_duration_s=60.0)
        assert np.all(flags[:70] == 1)
        assert np.all(flags[70:] == 0)

    def test_nan_gap_breaks_hold(self):
        bands = np.ones(100)
        bands[50] = np.nan
        flags = static_flags(bands, np.arange(100.0), min_duration_s=60.0)
        assert np.isnan(flags[50])
        assert np.nansum(flags) == 0


# ============================================================================
# Repetitive
# ============================================================================

class TestRepetitiveFlags:

    def test_constant_posture_is_not_repetitive(self):
        flags = repetitive_flags(np.ones(200), np.arange(200.0), window_s=60.0, max_per_minute=4.0)
        assert np.all(flags == 0)

    def test_frequent_reentry_is_repetitive(self):
        # each band re-entered every 10 s -> 6 entries per minute
        bands = _alternating(120)
        flags = repetitive_flags(bands, np.arange(120.0), window_s=60.0, max_per_minute=4.0)
        assert flags[0] == 0
        assert flags[-1] == 1

    def test_rate_at_limit_is_not_repetitive(self):
        # each band re-entered every 15 s -> 4 entries per minute
        bands = _alternating(120, period_s=15)
        flags = repetitive_flags(bands, np.arange(120.0), window_s=60.0, max_per_minute=4.0)
        assert np.all(flags == 0)

    def test_nan_frames_stay_nan(self):
        bands = _alternating(120)
        bands[30] = np.nan
        flags = repetitive_flags(bands, np.arange(120.0))
        assert np.isnan(flags[30])
        assert not np.isnan(flags[31])


# ============================================================================
# Steps 6/7 and 13/14
# ============================================================================

class TestMuscleUseStep:

    def test_single_region(self):
        time_s = np.arange(120.0)
        scores = {"arm": np.full(120, 3.0)}
        step = muscle_use_step(6, "step6_right", "Muscle Use (Right)", scores, time_s,
                               ScoringConfig(), side="right")
        assert step.key == "step6_right"
        assert set(step.parts) == {"static", "repetitive"}
        assert np.all(step.total.values == 1)

    def test_regions_are_ored(self):
        time_s = np.arange(120.0)
        scores = {"neck": np.full(120, 2.0), "trunk": _alternating(120)}
        step = muscle_use_step(13, "step13", "Muscle Use (Neck/Trunk)", scores, time_s, ScoringConfig())
        assert set(step.parts) == {"static", "repetitive", "neck", "trunk"}
        # neck held for the whole trial, trunk repetitive at the end
        assert np.all(step.parts["static"].values == 1)
        assert step.parts["repetitive"].values[-1] == 1
        assert step.total.values[-1] == 2

    def test_nan_in_any_region(self):
        time_s = np.arange(10.0)
        neck = np.ones(10)
        trunk = np.ones(10)
        trunk[4] = np.nan
        step = muscle_use_step(13, "step13", "Muscle Use", {"neck": neck, "trunk": trunk},
                               time_s, ScoringConfig())
        assert np.isnan(step.total.values[4])
        assert step.total.values[3] == 0

    def test_load_step(self):
        ref = np.array([3.0, np.nan, 2.0])
        step = load_step(7, "step7_left", "Load/Force (Left)", 2, ref, side="left")
        np.testing.assert_array_equal(step.total.values[[0, 2]], [2, 2])
        assert np.isnan(step.total.values[1])
        assert step.side == "left"
