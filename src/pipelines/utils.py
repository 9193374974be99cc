"""
Shared helpers for reporting and visualisation consumers.

- Trial name parsing and subject labels
- Step catalogue (keys and labels for every retained series)
- Reference breakpoints per joint/dimension for plotting
"""

import logging
import re
from typing import Optional

from src.rula.config import ScoringConfig
from src.rula.schema import DIMENSIONS, SIDE_JOINTS, SIDES

logger = logging.getLogger(__name__)

_TRIAL_PATTERN = re.compile(r"^(P\d+)[_-](\d{2}-\d{2}-\d{4})[-_](\d+)$")


# ---------------------------------------------------------------------------
# Names and labels
# ---------------------------------------------------------------------------

def parse_trial_metadata(name: str) -> dict:
    """Split ``P07_12-03-2024-2[_processed][.ext]`` into subject, date and trial number.

    Returns:
        Dict with ``subject``, ``date``, ``trial_number`` and ``is_valid``.
    """
    base = re.sub(r"\.[^.]+$", "", str(name))
    base = re.sub(r"_processed$", "", base)
    match = _TRIAL_PATTERN.match(base)
    if not match:
        return {"subject": "", "date": "", "trial_number": "", "is_valid": False}
    subject, date, number = match.groups()
    return {"subject": subject, "date": date, "trial_number": number, "is_valid": True}


def format_subject_label(subject_key: str) -> str:
    """``'P7'`` / ``'Subject 7'`` / ``'7'`` -> ``'Subject #07'``."""
    key = str(subject_key).strip()
    number: Optional[str] = None
    for pattern in (r"Subject\s*#?\s*(\d+)", r"P(\d+)", r"(\d+)"):
        match = re.search(pattern, key)
        if match:
            number = match.group(1)
            break
    if number is None:
        return f"Subject {key}"
    return f"Subject #{int(number):02d}"


def format_trial_label(trial_name: str) -> str:
    meta = parse_trial_metadata(trial_name)
    if not meta["is_valid"]:
        return str(trial_name)
    return f"Trial #{int(meta['trial_number']):02d}"


# ---------------------------------------------------------------------------
# Step catalogue
# ---------------------------------------------------------------------------
_SIDED_STEPS = [
    (1, "Upper Arm"),
    (2, "Lower Arm"),
    (3, "Wrist"),
    (4, "Wrist Twist"),
    (5, "Wrist/Arm Posture Score"),
    (6, "Muscle Use"),
    (7, "Load/Force"),
    (8, "Wrist/Arm Score"),
]
_CENTRAL_STEPS = [
    (9, "Neck"),
    (10, "Trunk"),
    (11, "Legs"),
    (12, "Trunk/Neck/Leg Posture Score"),
    (13, "Muscle Use (Neck/Trunk)"),
    (14, "Load/Force (Neck/Trunk)"),
    (15, "Neck/Trunk/Leg Score"),
]


def step_definitions() -> list[dict]:
    """Every step key with its display label, step number and side."""
    defs = []
    for number, label in _SIDED_STEPS:
        for side in SIDES:
            defs.append({
                "key": f"step{number}_{side}",
                "label": f"Step {number} - {label} ({side.capitalize()})",
                "step": number,
                "side": side,
            })
    for number, label in _CENTRAL_STEPS:
        defs.append({"key": f"step{number}", "label": f"Step {number} - {label}", "step": number, "side": None})
    defs.append({"key": "final_score", "label": "Final RULA Score", "step": 0, "side": None})
    return defs


# ---------------------------------------------------------------------------
# Plotting reference bands
# ---------------------------------------------------------------------------

def visualization_thresholds(config: Optional[ScoringConfig] = None) -> dict:
    """Breakpoints per joint and dimension for drawing reference bands.

    Neck and trunk bands apply to summed joint angles, so they are attached to
    the first joint of each chain (``jT1C7``, ``jL5S1``) as approximate guides.

    Returns:
        ``{joint: {dimension: [breakpoints]}}`` with empty lists where no band applies.
    """
    bp = (config or ScoringConfig()).breakpoints
    empty = {dim: [] for dim in DIMENSIONS}
    out: dict[str, dict[str, list]] = {}
    for side in SIDES:
        joints = SIDE_JOINTS[side]
        out[joints["shoulder"]] = {
            **empty, "abduction": list(bp.upper_arm_abduction), "flexion": list(bp.upper_arm_flexion),
        }
        out[joints["t4shoulder"]] = {**empty, "abduction": list(bp.shoulder_elevation)}
        out[joints["elbow"]] = {**empty, "flexion": list(bp.elbow_flexion)}
        out[joints["wrist"]] = {
            "abduction": list(bp.wrist_deviation),
            "rotation": list(bp.wrist_twist),
            "flexion": list(bp.wrist_flexion),
        }
    out["jT1C7"] = {
        "abduction": list(bp.neck_lateral), "rotation": list(bp.neck_twist), "flexion": list(bp.neck_flexion),
    }
    out["jL5S1"] = {
        "abduction": list(bp.trunk_lateral), "rotation": list(bp.trunk_twist), "flexion": list(bp.trunk_flexion),
    }
    return out
