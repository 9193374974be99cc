"""
End-to-end tests for the trial orchestrator (steps 1-15 + final score).

Covers:
    - Worked reference trial and neutral posture
    - Worse-side selection for the final score
    - NaN / out-of-range frame handling and strict mode
    - Missing joints, missing positions and config errors
    - Timing source selection and multi-trial scoring
"""

import sys
from pathlib import Path

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.pipelines.scoring import score_trial, score_trials
from src.rula.config import ScoringConfig
from src.rula.exceptions import ConfigurationError, FrameDataError
from src.rula.schema import JOINT_NAMES, TrialData
from src.rula.tables import TABLE_C
from src.utils.metrics import percentile_stats

from synthetic import make_arrays, make_trial, reference_trial


# ============================================================================
# Reference trials
# ============================================================================

class TestReferenceTrial:

    def test_intermediate_steps(self):
        result = score_trial(reference_trial())
        assert np.all(result.step("step1_right").total.values == 2)
        assert np.all(result.step("step2_right").total.values == 2)
        assert np.all(result.step("step5_right").total.values == 3)
        assert np.all(result.step("step8_right").total.values == 3)
        assert np.all(result.step("step8_left").total.values == 1)
        assert np.all(result.step("step9").total.values == 2)
        assert np.all(result.step("step10").total.values == 1)
        assert np.all(result.step("step11").total.values == 1)
        assert np.all(result.step("step12").total.values == 2)
        assert np.all(result.step("step15").total.values == 2)

    def test_final_score(self):
        result = score_trial(reference_trial())
        assert result.final.shape == (100,)
        assert np.all(result.final == 3)
        stats = percentile_stats(result.final)
        assert stats["median"] == 3.0
        assert stats["q1"] == 3.0
        assert stats["q3"] == 3.0

    def test_neutral_posture(self):
        result = score_trial(make_trial())
        assert np.all(result.final == 2)
        assert result.valid_fraction == 1.0
        assert not result.invalid_frames.any()

    def test_every_step_is_retained(self):
        result = score_trial(make_trial(n_frames=10))
        expected = {f"step{n}_{side}" for n in range(1, 9) for side in ("right", "left")}
        expected |= {f"step{n}" for n in range(9, 16)}
        assert set(result.steps) == expected
        assert list(result.steps)[:2] == ["step1_right", "step1_left"]
        for name, values in result.series().items():
            assert values.shape == (10,), name

    def test_result_is_read_only(self):
        result = score_trial(make_trial(n_frames=5))
        with pytest.raises(ValueError):
            result.final[0] = 7.0

    def test_load_adds_to_step_eight(self):
        config = ScoringConfig(arm_load=2, neck_trunk_load=1)
        result = score_trial(reference_trial(), config)
        assert np.all(result.step("step8_right").total.values == 5)
        assert np.all(result.step("step15").total.values == 3)
        # Table C(5, 3)
        assert np.all(result.final == 4)

    def test_unsupported_legs(self):
        result = score_trial(make_trial(), ScoringConfig(leg_support="unsupported"))
        assert np.all(result.step("step11").total.values == 2)
        # Table B(1, 2, 2)
        assert np.all(result.step("step12").total.values == 3)


# ============================================================================
# Worse side
# ============================================================================

class TestWorseSide:

    def test_final_uses_worse_arm(self):
        flexion = np.linspace(-30.0, 120.0, 50)
        trial = make_trial(
            n_frames=50,
            angles={
                ("jLeftShoulder", "flexion"): flexion,
                ("jRightShoulder", "flexion"): flexion[::-1],
            },
        )
        result = score_trial(trial)
        right = result.step("step8_right").total.values
        left = result.step("step8_left").total.values
        arm_max = result.final_score.parts["arm_max"].values
        np.testing.assert_array_equal(arm_max, np.maximum(right, left))
        np.testing.assert_array_equal(
            result.final, TABLE_C.lookup(arm_max, result.step("step15").total.values)
        )

    def test_per_side_final_scores(self):
        result = score_trial(reference_trial())
        assert np.all(result.final_score.parts["right"].values == 3)
        assert np.all(result.final_score.parts["left"].values == 2)


# ============================================================================
# Invalid frames
# ============================================================================

class TestInvalidFrames:

    def _trial_with_bad_frames(self):
        flexion = np.full(40, 30.0)
        flexion[10] = np.nan
        elbow = np.full(40, 80.0)
        elbow[20] = 500.0
        return make_trial(
            n_frames=40,
            angles={("jRightShoulder", "flexion"): flexion, ("jLeftElbow", "flexion"): elbow},
        )

    def test_bad_frames_are_nan_everywhere(self):
        result = score_trial(self._trial_with_bad_frames())
        for name, values in result.series().items():
            assert np.isnan(values[10]), name
            assert np.isnan(values[20]), name
        assert np.count_nonzero(np.isnan(result.final)) == 2
        assert result.invalid_frames[10] and result.invalid_frames[20]

    def test_valid_fraction(self):
        result = score_trial(self._trial_with_bad_frames())
        assert result.valid_fraction == pytest.approx(38 / 40)

    def test_nan_hand_position_invalidates_frame(self):
        joint_angle, position, orientation = make_arrays(n_frames=10)
        position[3, :] = np.nan
        trial = TrialData.from_arrays(joint_angle, position, orientation, frame_rate=60.0)
        result = score_trial(trial)
        assert np.isnan(result.final[3])
        assert np.count_nonzero(np.isnan(result.final)) == 1

    def test_unused_joint_does_not_invalidate(self):
        knee = np.zeros(10)
        knee[5] = np.nan
        result = score_trial(make_trial(n_frames=10, angles={("jRightKnee", "flexion"): knee}))
        assert not np.isnan(result.final).any()

    def test_strict_mode_raises(self):
        config = ScoringConfig(strict_frames=True)
        with pytest.raises(FrameDataError) as exc_info:
            score_trial(self._trial_with_bad_frames(), config)
        assert exc_info.value.frame_indices == [10, 20]

    def test_all_frames_invalid(self):
        trial = make_trial(n_frames=5, angles={("jT1C7", "flexion"): np.nan})
        result = score_trial(trial)
        assert np.isnan(result.final).all()
        assert result.valid_fraction == 0.0


# ============================================================================
# Configuration errors
# ============================================================================

class TestConfigurationErrors:

    def test_missing_required_joint(self):
        joint_angle, position, orientation = make_arrays(n_frames=5)
        keep = [i for i, name in enumerate(JOINT_NAMES) if name != "jRightElbow"]
        cols = [3 * i + k for i in keep for k in range(3)]
        trial = TrialData.from_arrays(
            joint_angle[:, cols],
            position,
            orientation,
            joint_names=[JOINT_NAMES[i] for i in keep],
        )
        with pytest.raises(ConfigurationError, match="jRightElbow"):
            score_trial(trial)

    def test_missing_positions(self):
        joint_angle, _, _ = make_arrays(n_frames=5)
        trial = TrialData.from_arrays(joint_angle)
        with pytest.raises(ConfigurationError):
            score_trial(trial)

    def test_bad_breakpoints(self):
        config = ScoringConfig(breakpoints={"neck_flexion": [0.0, 20.0, 10.0]})
        with pytest.raises(ConfigurationError):
            score_trial(make_trial(n_frames=5), config)

    def test_array_width_mismatch(self):
        with pytest.raises(ConfigurationError):
            TrialData.from_arrays(np.zeros((5, 10)))


# ============================================================================
# Time base and batches
# ============================================================================

class TestTimingAndBatches:

    def test_timestamps_win_over_frame_rate(self):
        joint_angle, position, orientation = make_arrays(n_frames=4)
        trial = TrialData.from_arrays(
            joint_angle, position, orientation,
            time_ms=[1000.0, 1010.0, 1020.0, 1030.0], frame_rate=60.0,
        )
        result = score_trial(trial)
        np.testing.assert_allclose(result.time_s, [0.0, 0.01, 0.02, 0.03])

    def test_default_rate_without_timing(self):
        joint_angle, position, orientation = make_arrays(n_frames=3)
        trial = TrialData.from_arrays(joint_angle, position, orientation)
        result = score_trial(trial, ScoringConfig(default_frame_rate=100.0))
        np.testing.assert_allclose(result.time_s, [0.0, 0.01, 0.02])

    def test_long_static_hold_raises_muscle_use(self):
        # 70 s at 10 Hz in the same posture
        trial = make_trial(n_frames=700, frame_rate=10.0)
        result = score_trial(trial)
        assert np.all(result.step("step6_right").total.values == 1)
        assert np.all(result.step("step13").total.values == 1)
        assert np.all(result.step("step8_right").total.values == 2)

    def test_score_trials_in_order(self):
        trials = [reference_trial(n_frames=20), make_trial(n_frames=20, trial_name="P01_01-02-2024-2")]
        results = score_trials(trials)
        assert [r.trial_name for r in results] == ["P01_01-02-2024-1", "P01_01-02-2024-2"]
        assert np.all(results[0].final == 3)
        assert np.all(results[1].final == 2)
