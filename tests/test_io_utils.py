"""
Tests for YAML loading and TrialResult persistence.
"""

import sys
from pathlib import Path

import numpy as np
import pytest

PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from src.pipelines.scoring import score_trial
from src.utils.io_utils import load_config, load_trial_result, save_trial_result

from synthetic import make_trial, reference_trial


class TestResultPersistence:

    def test_round_trip_is_bit_identical(self, tmp_path):
        flexion = np.linspace(-30.0, 120.0, 30)
        flexion[7] = np.nan
        trial = make_trial(
            n_frames=30,
            angles={("jRightShoulder", "flexion"): flexion},
            conditions={"task": "assembly"},
        )
        result = score_trial(trial)
        written = save_trial_result(result, tmp_path / "trial.npz")
        loaded = load_trial_result(written)

        original = result.series()
        restored = loaded.series()
        assert set(restored) == set(original)
        for name, values in original.items():
            assert restored[name].tobytes() == values.tobytes(), name
        assert loaded.time_s.tobytes() == result.time_s.tobytes()
        np.testing.assert_array_equal(loaded.invalid_frames, result.invalid_frames)

    def test_metadata_restored(self, tmp_path):
        result = score_trial(reference_trial(n_frames=10))
        loaded = load_trial_result(save_trial_result(result, str(tmp_path / "ref")))
        assert loaded.subject_id == result.subject_id
        assert loaded.trial_name == result.trial_name
        assert list(loaded.steps) == list(result.steps)
        step = loaded.step("step1_right")
        assert step.cap == (1, 6)
        assert step.limits["flexion"] == [-20.0, 20.0, 45.0, 90.0]
        assert loaded.final_score.key == "final_score"

    def test_loaded_arrays_are_read_only(self, tmp_path):
        result = score_trial(make_trial(n_frames=5))
        loaded = load_trial_result(save_trial_result(result, tmp_path / "t.npz"))
        with pytest.raises(ValueError):
            loaded.final[0] = 1.0

    def test_nested_directory_created(self, tmp_path):
        result = score_trial(make_trial(n_frames=5))
        written = save_trial_result(result, tmp_path / "a" / "b" / "t.npz")
        assert Path(written).exists()


class TestLoadConfig:

    def test_yaml_mapping(self, tmp_path):
        path = tmp_path / "cfg.yaml"
        path.write_text("scoring:\n  arm_load: 2\n")
        assert load_config(str(path)) == {"scoring": {"arm_load": 2}}
