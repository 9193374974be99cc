"""
Posture classification: RULA steps 1-4 (arm and wrist, per side) and
steps 9-11 (neck, trunk, legs).

Every angle is binned against an ascending breakpoint list into a 1-based band
(closed-open intervals, ties go to the higher band), the band is mapped to the
published bend-zone score, and posture flags add +1.  NaN in, NaN out.
"""

import logging
from typing import Sequence

import numpy as np

from .config import ScoringConfig
from .exceptions import ConfigurationError
from .results import ScoreSeries, StepResult
from .schema import (
    NECK_JOINTS,
    SIDE_HAND_SEGMENT,
    SIDE_JOINTS,
    TRUNK_JOINTS,
    TRUNK_SEGMENT,
    TrialData,
    check_side,
)

logger = logging.getLogger(__name__)

# Band -> score, one entry per band (len(breakpoints) + 1)
UPPER_ARM_SCORES = (2, 1, 2, 3, 4)      # ext >20 | ±20 | 20-45 | 45-90 | >90
ELBOW_SCORES = (2, 1, 2)                # <60 | 60-100 | >100
WRIST_FLEXION_SCORES = (3, 2, 1, 2, 3)  # >15 ext | 5-15 | neutral | 5-15 | >15 flex
WRIST_TWIST_SCORES = (2, 1, 2)          # near end of range | mid range | near end
NECK_SCORES = (4, 1, 2, 3)              # extension | 0-10 | 10-20 | >20
TRUNK_SCORES = (1, 2, 3, 4)             # upright | 0-20 | 20-60 | >60
# Ties go to the upper band, so a trunk at exactly 0 deg is band 2 and scores 2.

# Documented (floor, ceiling) per step
STEP_CAPS: dict[int, tuple[int, int]] = {
    1: (1, 6),
    2: (1, 3),
    3: (1, 4),
    4: (1, 2),
    9: (1, 6),
    10: (1, 6),
}

STEP_LABELS: dict[int, str] = {
    1: "Upper Arm",
    2: "Lower Arm",
    3: "Wrist",
    4: "Wrist Twist",
    9: "Neck",
    10: "Trunk",
    11: "Legs",
}


# ---------------------------------------------------------------------------
# Banding primitives
# ---------------------------------------------------------------------------

def check_breakpoints(breakpoints: Sequence[float]) -> np.ndarray:
    bp = np.asarray(breakpoints, dtype=np.float64).reshape(-1)
    if bp.size == 0:
        raise ConfigurationError("Breakpoint list must not be empty.")
    if np.any(np.diff(bp) <= 0) or np.isnan(bp).any():
        raise ConfigurationError(f"Breakpoints must be strictly ascending, got {list(bp)}.")
    return bp


def classify_bands(values, breakpoints: Sequence[float]) -> np.ndarray:
    """Assign each value its 1-based band.

    Values below the first breakpoint fall in band 1, values at or above the
    last in band ``len(breakpoints) + 1``; a value equal to a breakpoint goes
    to the band above it.  NaN stays NaN.

    Returns:
        Float array with band numbers (NaN where the input is NaN).
    """
    bp = check_breakpoints(breakpoints)
    vals = np.asarray(values, dtype=np.float64)
    bands = np.searchsorted(bp, vals, side="right").astype(np.float64) + 1.0
    bands[np.isnan(vals)] = np.nan
    return bands


def map_bands(bands: np.ndarray, scores: Sequence[int]) -> np.ndarray:
    """Replace band numbers with bend-zone scores (NaN preserved)."""
    table = np.asarray(scores, dtype=np.float64)
    nan_mask = np.isnan(bands)
    idx = np.where(nan_mask, 1, bands).astype(np.intp) - 1
    if idx.size and (idx.min() < 0 or idx.max() >= table.size):
        raise ConfigurationError(
            f"Band numbers exceed the {table.size}-entry score map; "
            "breakpoint list and score map disagree."
        )
    out = table[idx]
    out[nan_mask] = np.nan
    return out


def flag_outside(values, limits: Sequence[float]) -> np.ndarray:
    """1 where the value lies outside ``[lo, hi)``, else 0."""
    if len(limits) != 2:
        raise ConfigurationError(f"Range flag needs exactly [lo, hi], got {list(limits)}.")
    bands = classify_bands(values, limits)
    flag = (bands != 2).astype(np.float64)
    flag[np.isnan(bands)] = np.nan
    return flag


def flag_above(values, threshold: Sequence[float]) -> np.ndarray:
    """1 where the value is at or above the (single) threshold, else 0."""
    bands = classify_bands(values, threshold)
    flag = (bands >= 2).astype(np.float64)
    flag[np.isnan(bands)] = np.nan
    return flag


def apply_cap(raw: np.ndarray, step: int) -> np.ndarray:
    lo, hi = STEP_CAPS[step]
    with np.errstate(invalid="ignore"):
        clipped = int(np.count_nonzero((raw < lo) | (raw > hi)))
    if clipped:
        logger.debug(f"Step {step}: {clipped} frame(s) clipped to [{lo}, {hi}].")
    return np.clip(raw, lo, hi)


def _step_result(step, key, side, total, parts, limits) -> StepResult:
    label = STEP_LABELS[step]
    if side:
        label = f"{label} ({side.capitalize()})"
    return StepResult(
        step=step,
        key=key,
        label=label,
        side=side,
        total=ScoreSeries.build(f"{key}.total", total),
        parts={name: ScoreSeries.build(f"{key}.{name}", vals) for name, vals in parts.items()},
        limits={name: [float(b) for b in bp] for name, bp in limits.items()},
        cap=STEP_CAPS.get(step),
    )


# ---------------------------------------------------------------------------
# Geometry helpers
# ---------------------------------------------------------------------------

def segment_yaw_degrees(quats) -> np.ndarray:
    """Heading (rotation about the vertical axis) of (w, x, y, z) quaternions."""
    q = np.asarray(quats, dtype=np.float64)
    qw, qx, qy, qz = q[:, 0], q[:, 1], q[:, 2], q[:, 3]
    return np.degrees(np.arctan2(2.0 * (qw * qz + qx * qy), 1.0 - 2.0 * (qy ** 2 + qz ** 2)))


def forearm_offset(trial: TrialData, side: str) -> np.ndarray:
    """Signed lateral hand offset from the T8 landmark in the trunk heading frame.

    The horizontal hand–T8 vector is rotated by the trunk yaw so its second
    component is the lateral offset (positive toward the subject's left).
    The sign is then set per side so that positive means away from the body
    toward the arm's own side, and negative means across the midline.

    Returns:
        (N,) offset in metres.
    """
    check_side(side)
    hand = trial.segment_position(SIDE_HAND_SEGMENT[side])
    t8 = trial.segment_position(TRUNK_SEGMENT)
    dx = hand[:, 0] - t8[:, 0]
    dy = hand[:, 1] - t8[:, 1]

    quats = trial.segment_orientation(TRUNK_SEGMENT)
    yaw = segment_yaw_degrees(quats) if quats is not None else np.zeros(trial.n_frames)
    theta = np.radians(-yaw)
    lateral = dx * np.sin(theta) + dy * np.cos(theta)
    return -lateral if side == "right" else lateral


# ---------------------------------------------------------------------------
# Steps 1-4 (per side)
# ---------------------------------------------------------------------------

def upper_arm_step(trial: TrialData, side: str, config: ScoringConfig) -> StepResult:
    """Step 1: upper arm position, abduction and shoulder elevation."""
    check_side(side)
    joints = SIDE_JOINTS[side]
    bp = config.breakpoints

    flex = trial.joint_angle_of(joints["shoulder"], "flexion")
    abd = trial.joint_angle_of(joints["shoulder"], "abduction")
    ele = trial.joint_angle_of(joints["t4shoulder"], "abduction")

    flex_ext = map_bands(classify_bands(flex, bp.upper_arm_flexion), UPPER_ARM_SCORES)
    abducted = flag_above(abd, bp.upper_arm_abduction)
    raised = flag_above(ele, bp.shoulder_elevation)
    raw = flex_ext + abducted + raised - (1.0 if config.arm_supported else 0.0)

    return _step_result(
        1, f"step1_{side}", side,
        total=apply_cap(raw, 1),
        parts={"flexion": flex_ext, "abduction": abducted, "elevation": raised, "raw": raw},
        limits={
            "flexion": bp.upper_arm_flexion,
            "abduction": bp.upper_arm_abduction,
            "elevation": bp.shoulder_elevation,
        },
    )


def lower_arm_step(trial: TrialData, side: str, config: ScoringConfig) -> StepResult:
    """Step 2: elbow flexion plus working across the midline / out to the side."""
    check_side(side)
    bp = config.breakpoints

    flex = trial.joint_angle_of(SIDE_JOINTS[side]["elbow"], "flexion")
    flex_ext = map_bands(classify_bands(flex, bp.elbow_flexion), ELBOW_SCORES)
    offset = forearm_offset(trial, side)
    off_center = flag_outside(offset, bp.forearm_offset)
    raw = flex_ext + off_center

    return _step_result(
        2, f"step2_{side}", side,
        total=apply_cap(raw, 2),
        parts={"flexion": flex_ext, "off_center": off_center, "offset": offset, "raw": raw},
        limits={"flexion": bp.elbow_flexion, "off_center": bp.forearm_offset},
    )


def wrist_step(trial: TrialData, side: str, config: ScoringConfig) -> StepResult:
    """Step 3: wrist flexion/extension plus radial/ulnar deviation."""
    check_side(side)
    wrist = SIDE_JOINTS[side]["wrist"]
    bp = config.breakpoints

    flex = trial.joint_angle_of(wrist, "flexion")
    dev = trial.joint_angle_of(wrist, "abduction")
    flex_ext = map_bands(classify_bands(flex, bp.wrist_flexion), WRIST_FLEXION_SCORES)
    deviated = flag_outside(dev, bp.wrist_deviation)
    raw = flex_ext + deviated

    return _step_result(
        3, f"step3_{side}", side,
        total=apply_cap(raw, 3),
        parts={"flexion": flex_ext, "deviation": deviated, "raw": raw},
        limits={"flexion": bp.wrist_flexion, "deviation": bp.wrist_deviation},
    )


def wrist_twist_step(trial: TrialData, side: str, config: ScoringConfig) -> StepResult:
    """Step 4: pronation/supination, mid range (1) or near end of range (2)."""
    check_side(side)
    bp = config.breakpoints

    twist = trial.joint_angle_of(SIDE_JOINTS[side]["wrist"], "rotation")
    score = map_bands(classify_bands(twist, bp.wrist_twist), WRIST_TWIST_SCORES)

    return _step_result(
        4, f"step4_{side}", side,
        total=apply_cap(score, 4),
        parts={"twist": score},
        limits={"twist": bp.wrist_twist},
    )


# ---------------------------------------------------------------------------
# Steps 9-11
# ---------------------------------------------------------------------------

def neck_step(trial: TrialData, config: ScoringConfig) -> StepResult:
    """Step 9: neck position from the summed T1C7 + C1Head angles."""
    bp = config.breakpoints

    flex = trial.summed_joint_angle(NECK_JOINTS, "flexion")
    twist = trial.summed_joint_angle(NECK_JOINTS, "rotation")
    lat = trial.summed_joint_angle(NECK_JOINTS, "abduction")

    flex_ext = map_bands(classify_bands(flex, bp.neck_flexion), NECK_SCORES)
    twisted = flag_outside(twist, bp.neck_twist)
    bent = flag_outside(lat, bp.neck_lateral)
    raw = flex_ext + twisted + bent

    return _step_result(
        9, "step9", None,
        total=apply_cap(raw, 9),
        parts={"flexion": flex_ext, "twist": twisted, "lateral": bent, "raw": raw},
        limits={"flexion": bp.neck_flexion, "twist": bp.neck_twist, "lateral": bp.neck_lateral},
    )


def trunk_step(trial: TrialData, config: ScoringConfig) -> StepResult:
    """Step 10: trunk position from the four summed lumbar/thoracic joints."""
    bp = config.breakpoints

    flex = trial.summed_joint_angle(TRUNK_JOINTS, "flexion")
    twist = trial.summed_joint_angle(TRUNK_JOINTS, "rotation")
    lat = trial.summed_joint_angle(TRUNK_JOINTS, "abduction")

    flex_ext = map_bands(classify_bands(flex, bp.trunk_flexion), TRUNK_SCORES)
    twisted = flag_outside(twist, bp.trunk_twist)
    bent = flag_outside(lat, bp.trunk_lateral)
    raw = flex_ext + twisted + bent

    return _step_result(
        10, "step10", None,
        total=apply_cap(raw, 10),
        parts={"flexion": flex_ext, "twist": twisted, "lateral": bent, "raw": raw},
        limits={"flexion": bp.trunk_flexion, "twist": bp.trunk_twist, "lateral": bp.trunk_lateral},
    )


def leg_step(reference: np.ndarray, config: ScoringConfig) -> StepResult:
    """Step 11: constant leg score, NaN wherever ``reference`` is NaN."""
    ref = np.asarray(reference, dtype=np.float64)
    total = np.where(np.isnan(ref), np.nan, float(config.leg_score))
    return _step_result(11, "step11", None, total=total, parts={}, limits={})
