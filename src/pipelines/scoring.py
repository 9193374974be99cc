"""
Trial orchestrator: runs RULA steps 1→15 and the final Table C lookup.

    Steps 1-4   upper arm, lower arm, wrist, wrist twist        (per side)
    Step 5      Table A                                          (per side)
    Steps 6-8   muscle use, load, wrist/arm score                (per side)
    Steps 9-11  neck, trunk, legs
    Step 12     Table B
    Steps 13-15 muscle use, load, neck/trunk/leg score
    Final       Table C(max(step 8 right, step 8 left), step 15)

Trials are independent; :func:`score_trials` optionally fans them out over a
process pool.
"""

import logging
import time
from concurrent.futures import ProcessPoolExecutor
from typing import Iterable, List, Optional

import numpy as np

from src.rula.classifier import (
    leg_step,
    lower_arm_step,
    neck_step,
    trunk_step,
    upper_arm_step,
    wrist_step,
    wrist_twist_step,
)
from src.rula.combiners import arm_posture_step, final_score_step, neck_trunk_leg_step, sum_step
from src.rula.config import ScoringConfig
from src.rula.muscle_use import load_step, muscle_use_step
from src.rula.results import StepResult, TrialResult, frozen_array
from src.rula.schema import SIDES, TrialData, invalid_frame_mask, mask_frames

logger = logging.getLogger(__name__)


def score_side(trial: TrialData, side: str, time_s: np.ndarray, config: ScoringConfig) -> List[StepResult]:
    """Steps 1-8 for one arm."""
    s1 = upper_arm_step(trial, side, config)
    s2 = lower_arm_step(trial, side, config)
    s3 = wrist_step(trial, side, config)
    s4 = wrist_twist_step(trial, side, config)
    s5 = arm_posture_step(side, s1, s2, s3, s4)
    title = side.capitalize()
    s6 = muscle_use_step(
        6, f"step6_{side}", f"Muscle Use ({title})",
        {"arm": s5.total.values}, time_s, config, side=side,
    )
    s7 = load_step(7, f"step7_{side}", f"Load/Force ({title})", config.arm_load, s5.total.values, side=side)
    s8 = sum_step(8, f"step8_{side}", f"Wrist/Arm Score ({title})", s5, s6, s7, side=side)
    return [s1, s2, s3, s4, s5, s6, s7, s8]


def score_neck_trunk_legs(trial: TrialData, time_s: np.ndarray, config: ScoringConfig) -> List[StepResult]:
    """Steps 9-15."""
    s9 = neck_step(trial, config)
    s10 = trunk_step(trial, config)
    # the sum is NaN wherever neck or trunk is
    s11 = leg_step(s9.total.values + s10.total.values, config)
    s12 = neck_trunk_leg_step(s9, s10, s11)
    s13 = muscle_use_step(
        13, "step13", "Muscle Use (Neck/Trunk)",
        {"neck": s9.total.values, "trunk": s10.total.values}, time_s, config,
    )
    s14 = load_step(14, "step14", "Load/Force (Neck/Trunk)", config.neck_trunk_load, s12.total.values)
    s15 = sum_step(15, "step15", "Neck/Trunk/Leg Score", s12, s13, s14)
    return [s9, s10, s11, s12, s13, s14, s15]


def score_trial(trial: TrialData, config: Optional[ScoringConfig] = None) -> TrialResult:
    """Score one trial through RULA steps 1-15.

    Frames whose required inputs are NaN or out of physical range are blanked
    before scoring, so every step (and the final score) is NaN for them.

    Args:
        trial: Validated trial arrays.
        config: Scoring assumptions; defaults to :class:`ScoringConfig()`.

    Returns:
        Immutable :class:`TrialResult` with every step retained.

    Raises:
        ConfigurationError: Missing joint/segment or malformed configuration.
        FrameDataError: Invalid frames while ``config.strict_frames`` is set.
    """
    config = (config or ScoringConfig()).validate_breakpoints()
    t0 = time.time()

    invalid = invalid_frame_mask(trial, max_abs_angle=config.max_abs_angle, strict=config.strict_frames)
    clean = mask_frames(trial, invalid)
    time_s = trial.time_seconds(config.default_frame_rate)

    steps: dict[str, StepResult] = {}
    arm_totals = {}
    for side in SIDES:
        side_steps = score_side(clean, side, time_s, config)
        for step in side_steps:
            steps[step.key] = step
        arm_totals[side] = side_steps[-1]
    for step in score_neck_trunk_legs(clean, time_s, config):
        steps[step.key] = step

    final = final_score_step(arm_totals["right"], arm_totals["left"], steps["step15"])

    invalid_mask = np.array(invalid, dtype=bool)
    invalid_mask.setflags(write=False)
    result = TrialResult(
        subject_id=trial.subject_id,
        trial_name=trial.trial_name,
        conditions=dict(trial.conditions),
        n_frames=trial.n_frames,
        time_s=frozen_array(time_s),
        invalid_frames=invalid_mask,
        steps=_ordered(steps),
        final_score=final,
    )
    logger.info(
        f"Scored trial '{trial.trial_name}' ({trial.n_frames} frames, "
        f"{100.0 * result.valid_fraction:.1f}% valid) in {time.time() - t0:.2f}s"
    )
    return result


def _ordered(steps: dict[str, StepResult]) -> dict[str, StepResult]:
    """Order steps by number, right before left."""
    side_rank = {"right": 0, "left": 1, None: 2}
    keys = sorted(steps, key=lambda k: (steps[k].step, side_rank.get(steps[k].side, 2)))
    return {k: steps[k] for k in keys}


def _score_one(args):
    trial, config = args
    return score_trial(trial, config)


def score_trials(
    trials: Iterable[TrialData],
    config: Optional[ScoringConfig] = None,
    max_workers: Optional[int] = None,
) -> List[TrialResult]:
    """Score several independent trials, optionally in a process pool.

    Args:
        trials: Trials to score.
        config: Shared scoring configuration.
        max_workers: ``None``/``0``/``1`` scores in-process; larger values use a
            :class:`ProcessPoolExecutor` with that many workers.

    Returns:
        Results in input order.
    """
    trials = list(trials)
    config = (config or ScoringConfig()).validate_breakpoints()
    if not max_workers or max_workers <= 1 or len(trials) <= 1:
        return [score_trial(t, config) for t in trials]

    logger.info(f"Scoring {len(trials)} trial(s) with {max_workers} worker process(es)")
    with ProcessPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(_score_one, [(t, config) for t in trials]))
