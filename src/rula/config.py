"""
Scoring configuration for the RULA engine.

Everything the published method leaves to the assessor (leg support, external
load, muscle-use thresholds) and every bend-zone breakpoint set is carried in a
:class:`ScoringConfig` and passed explicitly to each step.  There is no global
settings state.
"""

from typing import Literal

from pydantic import BaseModel, Field

from .exceptions import ConfigurationError


class Breakpoints(BaseModel):
    """Ascending bend-zone breakpoints (degrees, metres for the forearm offset)."""
    upper_arm_flexion: list[float] = Field(default_factory=lambda: [-20.0, 20.0, 45.0, 90.0])
    upper_arm_abduction: list[float] = Field(default_factory=lambda: [45.0])
    shoulder_elevation: list[float] = Field(default_factory=lambda: [10.0])
    elbow_flexion: list[float] = Field(default_factory=lambda: [60.0, 100.0])
    forearm_offset: list[float] = Field(default_factory=lambda: [0.0, 0.35])
    wrist_flexion: list[float] = Field(default_factory=lambda: [-15.0, -5.0, 5.0, 15.0])
    wrist_deviation: list[float] = Field(default_factory=lambda: [-10.0, 10.0])
    wrist_twist: list[float] = Field(default_factory=lambda: [-45.0, 45.0])
    neck_flexion: list[float] = Field(default_factory=lambda: [0.0, 10.0, 20.0])
    neck_twist: list[float] = Field(default_factory=lambda: [-10.0, 10.0])
    neck_lateral: list[float] = Field(default_factory=lambda: [-10.0, 10.0])
    trunk_flexion: list[float] = Field(default_factory=lambda: [0.0, 20.0, 60.0])
    trunk_twist: list[float] = Field(default_factory=lambda: [-10.0, 10.0])
    trunk_lateral: list[float] = Field(default_factory=lambda: [-10.0, 10.0])

    class Config:
        extra = "forbid"


# Breakpoint count each band -> score map is written for.
BREAKPOINT_COUNTS: dict[str, int] = {
    name: len(field.default_factory()) for name, field in Breakpoints.model_fields.items()
}


class ScoringConfig(BaseModel):
    """Per-deployment scoring assumptions."""
    leg_support: Literal["supported", "unsupported"] = Field(
        default="supported",
        description="Step 11: legs supported and balanced (1) or not (2)",
    )
    arm_supported: bool = Field(
        default=False, description="Step 1: arm supported / person leaning (-1)"
    )
    arm_load: int = Field(default=0, ge=0, le=3, description="Step 7 load/force score")
    neck_trunk_load: int = Field(default=0, ge=0, le=3, description="Step 14 load/force score")

    static_duration_s: float = Field(default=60.0, gt=0, description="Static posture threshold")
    repetitive_window_s: float = Field(default=60.0, gt=0, description="Rolling window length")
    repetitive_max_per_minute: float = Field(
        default=4.0, ge=0, description="Repetitions per minute above which use is repetitive"
    )

    max_abs_angle: float = Field(default=180.0, gt=0, description="Physical joint-angle limit")
    strict_frames: bool = Field(default=False, description="Raise on invalid frames")
    default_frame_rate: float = Field(default=60.0, gt=0)

    breakpoints: Breakpoints = Field(default_factory=Breakpoints)

    class Config:
        extra = "forbid"

    @property
    def leg_score(self) -> int:
        return 1 if self.leg_support == "supported" else 2

    def validate_breakpoints(self) -> "ScoringConfig":
        """Check every breakpoint list is strictly ascending with the expected length.

        Raises:
            ConfigurationError: On the first malformed list.
        """
        for name, expected in BREAKPOINT_COUNTS.items():
            values = getattr(self.breakpoints, name)
            if len(values) != expected:
                raise ConfigurationError(
                    f"Breakpoints '{name}' need {expected} value(s), got {len(values)}."
                )
            if any(hi <= lo for lo, hi in zip(values, values[1:])):
                raise ConfigurationError(
                    f"Breakpoints '{name}' must be strictly ascending, got {values}."
                )
        return self
