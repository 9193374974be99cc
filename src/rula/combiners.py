"""
Score combination: RULA steps 5, 8, 12, 15 and the final Table C score.
"""

import numpy as np

from .results import ScoreSeries, StepResult
from .tables import TABLE_A, TABLE_B, TABLE_C, LookupTable


def _combined(step: int, key: str, label: str, total, side=None, parts=None) -> StepResult:
    return StepResult(
        step=step,
        key=key,
        label=label,
        side=side,
        total=ScoreSeries.build(f"{key}.total", total),
        parts={
            name: ScoreSeries.build(f"{key}.{name}", vals)
            for name, vals in (parts or {}).items()
        },
    )


def arm_posture_step(
    side: str,
    upper_arm: StepResult,
    lower_arm: StepResult,
    wrist: StepResult,
    wrist_twist: StepResult,
    table: LookupTable = TABLE_A,
) -> StepResult:
    """Step 5: Table A wrist/arm posture score for one side."""
    total = table.lookup(
        upper_arm.total.values,
        lower_arm.total.values,
        wrist.total.values,
        wrist_twist.total.values,
    )
    return _combined(5, f"step5_{side}", f"Wrist/Arm Posture Score ({side.capitalize()})", total, side)


def sum_step(step: int, key: str, label: str, *components: StepResult, side=None) -> StepResult:
    """Steps 8 and 15: plain sum of posture, muscle-use and load scores."""
    total = np.zeros_like(components[0].total.values)
    for comp in components:
        total = total + comp.total.values
    return _combined(step, key, label, total, side)


def neck_trunk_leg_step(
    neck: StepResult,
    trunk: StepResult,
    legs: StepResult,
    table: LookupTable = TABLE_B,
) -> StepResult:
    """Step 12: Table B neck/trunk/leg posture score."""
    total = table.lookup(neck.total.values, trunk.total.values, legs.total.values)
    return _combined(12, "step12", "Trunk/Neck/Leg Posture Score", total)


def worse_side(right: np.ndarray, left: np.ndarray) -> np.ndarray:
    """Frame-wise maximum of the two sides; NaN on either side gives NaN."""
    return np.maximum(right, left)


def final_score_step(
    arm_right: StepResult,
    arm_left: StepResult,
    neck_trunk_leg: StepResult,
    table: LookupTable = TABLE_C,
) -> StepResult:
    """Final RULA score from Table C.

    ``total`` uses the worse of the two step-8 wrist/arm scores; the per-side
    scores and the worse-side input are kept as parts.
    """
    ntl = neck_trunk_leg.total.values
    arm_max = worse_side(arm_right.total.values, arm_left.total.values)
    together = table.lookup(arm_max, ntl)
    parts = {
        "right": table.lookup(arm_right.total.values, ntl),
        "left": table.lookup(arm_left.total.values, ntl),
        "arm_max": arm_max,
    }
    return _combined(0, "final_score", "Final RULA Score", together, parts=parts)
