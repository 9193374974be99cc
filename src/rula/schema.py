"""
Joint/segment data contract for RULA scoring.

A trial arrives from the ingestion side as flat per-frame arrays:

    joint_angle   (N, 3·J)  degrees, triplets ordered (abduction, rotation, flexion)
    position      (N, 3·S)  metres
    orientation   (N, 4·S)  quaternions ordered (w, x, y, z)
    time_ms       (N,)      optional explicit timestamps in milliseconds

Joint and segment naming follows the Xsens MVN skeleton.  The scoring engine
addresses columns by name only, so any ingestion layout works as long as the
names it declares cover the required joints and segments.
"""

import logging
from typing import Iterable, Optional

import numpy as np
from pydantic import BaseModel, Field

from .exceptions import ConfigurationError, FrameDataError

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Naming scheme
# ---------------------------------------------------------------------------
DIMENSIONS: tuple[str, ...] = ("abduction", "rotation", "flexion")

JOINT_NAMES: tuple[str, ...] = (
    "jL5S1", "jL4L3", "jL1T12", "jT9T8", "jT1C7", "jC1Head",
    "jRightT4Shoulder", "jRightShoulder", "jRightElbow", "jRightWrist",
    "jLeftT4Shoulder", "jLeftShoulder", "jLeftElbow", "jLeftWrist",
    "jRightHip", "jRightKnee", "jRightAnkle", "jRightBallFoot",
    "jLeftHip", "jLeftKnee", "jLeftAnkle", "jLeftBallFoot",
)

SEGMENT_NAMES: tuple[str, ...] = (
    "Pelvis", "L5", "L3", "T12", "T8", "Neck", "Head",
    "RightShoulder", "RightUpperArm", "RightForeArm", "RightHand",
    "LeftShoulder", "LeftUpperArm", "LeftForeArm", "LeftHand",
    "RightUpperLeg", "RightLowerLeg", "RightFoot", "RightToe",
    "LeftUpperLeg", "LeftLowerLeg", "LeftFoot", "LeftToe",
)

SIDES: tuple[str, ...] = ("right", "left")

# side -> role -> joint name
SIDE_JOINTS: dict[str, dict[str, str]] = {
    "right": {
        "t4shoulder": "jRightT4Shoulder",
        "shoulder": "jRightShoulder",
        "elbow": "jRightElbow",
        "wrist": "jRightWrist",
    },
    "left": {
        "t4shoulder": "jLeftT4Shoulder",
        "shoulder": "jLeftShoulder",
        "elbow": "jLeftElbow",
        "wrist": "jLeftWrist",
    },
}
SIDE_HAND_SEGMENT: dict[str, str] = {"right": "RightHand", "left": "LeftHand"}

NECK_JOINTS: tuple[str, ...] = ("jT1C7", "jC1Head")
TRUNK_JOINTS: tuple[str, ...] = ("jL5S1", "jL4L3", "jL1T12", "jT9T8")
TRUNK_SEGMENT: str = "T8"

DEFAULT_FRAME_RATE: float = 60.0


def check_side(side: str) -> str:
    """Return ``side`` unchanged if it is a known side tag."""
    if side not in SIDES:
        raise ConfigurationError(f"Unknown side '{side}'; expected one of {SIDES}.")
    return side


def required_joints() -> list[str]:
    """All joints the scoring steps read, in schema order."""
    needed = set(TRUNK_JOINTS) | set(NECK_JOINTS)
    for side in SIDES:
        needed |= set(SIDE_JOINTS[side].values())
    return [name for name in JOINT_NAMES if name in needed]


def required_segments() -> list[str]:
    return [TRUNK_SEGMENT] + [SIDE_HAND_SEGMENT[side] for side in SIDES]


def _readonly(arr: Optional[np.ndarray]) -> Optional[np.ndarray]:
    if arr is None:
        return None
    out = np.array(arr, dtype=np.float64, copy=True)
    out.setflags(write=False)
    return out


# ---------------------------------------------------------------------------
# Trial record
# ---------------------------------------------------------------------------

class TrialData(BaseModel):
    """One recording: per-frame arrays plus identifying metadata.

    Build through :meth:`from_arrays`, which copies the arrays into read-only
    float64 buffers and checks them against the declared naming scheme.
    """
    subject_id: str = Field(default="unknown", description="Subject identifier")
    trial_name: str = Field(default="", description="Trial / file name")
    conditions: dict[str, str] = Field(default_factory=dict)

    joint_angle: np.ndarray = Field(description="(N, 3·J) joint angles in degrees")
    position: Optional[np.ndarray] = Field(default=None, description="(N, 3·S) metres")
    orientation: Optional[np.ndarray] = Field(default=None, description="(N, 4·S) quaternions")
    time_ms: Optional[np.ndarray] = Field(default=None, description="(N,) timestamps in ms")
    frame_rate: Optional[float] = Field(default=None, description="Sampling rate in Hz")

    joint_names: list[str] = Field(default_factory=lambda: list(JOINT_NAMES))
    segment_names: list[str] = Field(default_factory=lambda: list(SEGMENT_NAMES))

    class Config:
        arbitrary_types_allowed = True
        frozen = True

    @classmethod
    def from_arrays(
        cls,
        joint_angle,
        position=None,
        orientation=None,
        time_ms=None,
        frame_rate: Optional[float] = None,
        subject_id: str = "unknown",
        trial_name: str = "",
        conditions: Optional[dict] = None,
        joint_names: Optional[Iterable[str]] = None,
        segment_names: Optional[Iterable[str]] = None,
    ) -> "TrialData":
        """Validate and freeze ingestion arrays into a :class:`TrialData`.

        Raises:
            ConfigurationError: If an array's width does not match the declared
                joint/segment count or the arrays disagree on frame count.
        """
        joints = list(joint_names) if joint_names is not None else list(JOINT_NAMES)
        segments = list(segment_names) if segment_names is not None else list(SEGMENT_NAMES)

        angles = _readonly(joint_angle)
        if angles.ndim != 2:
            raise ConfigurationError(
                f"joint_angle must be 2-dimensional (frames × 3·joints), got shape {angles.shape}."
            )
        n_frames = angles.shape[0]
        if angles.shape[1] != len(DIMENSIONS) * len(joints):
            raise ConfigurationError(
                f"joint_angle has {angles.shape[1]} columns but the schema declares "
                f"{len(joints)} joints × {len(DIMENSIONS)} dimensions."
            )

        pos = _readonly(position)
        if pos is not None and pos.shape != (n_frames, 3 * len(segments)):
            raise ConfigurationError(
                f"position must have shape ({n_frames}, {3 * len(segments)}), got {pos.shape}."
            )
        quat = _readonly(orientation)
        if quat is not None and quat.shape != (n_frames, 4 * len(segments)):
            raise ConfigurationError(
                f"orientation must have shape ({n_frames}, {4 * len(segments)}), got {quat.shape}."
            )
        stamps = _readonly(time_ms)
        if stamps is not None:
            stamps = stamps.reshape(-1)
            if stamps.shape[0] != n_frames:
                raise ConfigurationError(
                    f"time_ms has {stamps.shape[0]} samples but joint_angle has {n_frames} frames."
                )
        if frame_rate is not None and not frame_rate > 0:
            raise ConfigurationError(f"frame_rate must be positive, got {frame_rate}.")

        return cls(
            subject_id=str(subject_id),
            trial_name=str(trial_name),
            conditions={str(k): str(v) for k, v in (conditions or {}).items()},
            joint_angle=angles,
            position=pos,
            orientation=quat,
            time_ms=stamps,
            frame_rate=frame_rate,
            joint_names=joints,
            segment_names=segments,
        )

    # -- shape ---------------------------------------------------------------

    @property
    def n_frames(self) -> int:
        return int(self.joint_angle.shape[0])

    # -- joints --------------------------------------------------------------

    def joint_index(self, name: str) -> int:
        """0-based joint index; missing joints are a configuration error."""
        try:
            return self.joint_names.index(name)
        except ValueError:
            raise ConfigurationError(
                f"Required joint '{name}' is not present in the trial schema."
            ) from None

    def joint_columns(self, name: str) -> list[int]:
        base = self.joint_index(name) * len(DIMENSIONS)
        return [base + k for k in range(len(DIMENSIONS))]

    def joint_angle_of(self, name: str, dimension: str) -> np.ndarray:
        if dimension not in DIMENSIONS:
            raise ConfigurationError(
                f"Unknown dimension '{dimension}'; expected one of {DIMENSIONS}."
            )
        col = self.joint_index(name) * len(DIMENSIONS) + DIMENSIONS.index(dimension)
        return self.joint_angle[:, col]

    def summed_joint_angle(self, names: Iterable[str], dimension: str) -> np.ndarray:
        """Sum one dimension across several joints (e.g. neck + head flexion)."""
        total = np.zeros(self.n_frames, dtype=np.float64)
        for name in names:
            total = total + self.joint_angle_of(name, dimension)
        return total

    # -- segments ------------------------------------------------------------

    def segment_index(self, name: str) -> int:
        try:
            return self.segment_names.index(name)
        except ValueError:
            raise ConfigurationError(
                f"Required segment '{name}' is not present in the trial schema."
            ) from None

    def segment_position(self, name: str) -> np.ndarray:
        if self.position is None:
            raise ConfigurationError(
                f"Segment positions are required for '{name}' but the trial has none."
            )
        base = self.segment_index(name) * 3
        return self.position[:, base:base + 3]

    def segment_orientation(self, name: str) -> Optional[np.ndarray]:
        """(N, 4) quaternion for a segment, or ``None`` if orientations are absent."""
        if self.orientation is None:
            return None
        base = self.segment_index(name) * 4
        return self.orientation[:, base:base + 4]

    # -- time ----------------------------------------------------------------

    def time_seconds(self, default_rate: float = DEFAULT_FRAME_RATE) -> np.ndarray:
        """Per-frame time in seconds, starting at zero.

        Explicit timestamps win over the frame rate; without either the
        default rate is assumed.
        """
        if self.time_ms is not None and self.n_frames > 0:
            return (self.time_ms - self.time_ms[0]) * 1e-3
        rate = self.frame_rate
        if rate is None:
            logger.warning(
                f"Trial '{self.trial_name}' has neither timestamps nor a frame rate; "
                f"assuming {default_rate:.1f} Hz."
            )
            rate = default_rate
        return np.arange(self.n_frames, dtype=np.float64) / float(rate)


# ---------------------------------------------------------------------------
# Frame validity
# ---------------------------------------------------------------------------

def invalid_frame_mask(
    trial: TrialData,
    max_abs_angle: float = 180.0,
    strict: bool = False,
    need_positions: bool = True,
) -> np.ndarray:
    """Flag frames whose required inputs are NaN or physically impossible.

    Only the joints and segments the scoring steps read are inspected.

    Args:
        trial: Trial to inspect.
        max_abs_angle: Largest plausible absolute joint angle in degrees.
        strict: Raise instead of flagging.
        need_positions: Also inspect the trunk/hand segment columns.

    Returns:
        Boolean mask of shape (N,), True where the frame must score as NaN.

    Raises:
        FrameDataError: In strict mode, if any frame is invalid.
        ConfigurationError: If a required joint or segment is missing.
    """
    cols: list[int] = []
    for name in required_joints():
        cols.extend(trial.joint_columns(name))
    angles = trial.joint_angle[:, cols]
    with np.errstate(invalid="ignore"):
        bad = np.isnan(angles).any(axis=1) | (np.abs(angles) > max_abs_angle).any(axis=1)

    if need_positions and trial.position is not None:
        for name in required_segments():
            bad |= np.isnan(trial.segment_position(name)).any(axis=1)
            quat = trial.segment_orientation(name)
            if quat is not None:
                bad |= np.isnan(quat).any(axis=1)

    n_bad = int(bad.sum())
    if n_bad:
        idx = np.flatnonzero(bad)
        if strict:
            raise FrameDataError(
                f"Trial '{trial.trial_name}': {n_bad} frame(s) contain NaN or "
                f"out-of-range values (first at frame {int(idx[0])}).",
                frame_indices=idx,
            )
        logger.warning(
            f"Trial '{trial.trial_name}': {n_bad} of {trial.n_frames} frame(s) have NaN or "
            "out-of-range inputs; they will score as NaN."
        )
    return bad


def mask_frames(trial: TrialData, mask: np.ndarray) -> TrialData:
    """Return a copy of ``trial`` with every array row under ``mask`` set to NaN."""
    mask = np.asarray(mask, dtype=bool)
    if not mask.any():
        return trial

    def _blank(arr: Optional[np.ndarray]) -> Optional[np.ndarray]:
        if arr is None:
            return None
        out = np.array(arr, dtype=np.float64, copy=True)
        out[mask] = np.nan
        out.setflags(write=False)
        return out

    return trial.model_copy(update={
        "joint_angle": _blank(trial.joint_angle),
        "position": _blank(trial.position),
        "orientation": _blank(trial.orientation),
    })
