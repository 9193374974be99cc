"""
Result records produced by the scoring engine.

A :class:`TrialResult` bundles every step's :class:`StepResult` (per side for
steps 1-8) and the final Table C score.  Arrays are stored read-only; a
result is never modified after the orchestrator builds it.
"""

from typing import Optional

import numpy as np
from pydantic import BaseModel, Field


def frozen_array(values) -> np.ndarray:
    """Copy ``values`` into a read-only float64 array."""
    arr = np.array(values, dtype=np.float64, copy=True)
    arr.setflags(write=False)
    return arr


class ScoreSeries(BaseModel):
    """A named per-frame score (NaN where the frame could not be scored)."""
    name: str
    values: np.ndarray

    class Config:
        arbitrary_types_allowed = True
        frozen = True

    @classmethod
    def build(cls, name: str, values) -> "ScoreSeries":
        return cls(name=name, values=frozen_array(values))

    def __len__(self) -> int:
        return int(self.values.shape[0])

    @property
    def valid(self) -> np.ndarray:
        """Values with NaN frames removed."""
        return self.values[~np.isnan(self.values)]


class StepResult(BaseModel):
    """Output of one RULA step for one side or region."""
    step: int = Field(description="RULA step number (1-15, 0 for the final score)")
    key: str = Field(description="Catalogue key, e.g. 'step1_right'")
    label: str = Field(default="")
    side: Optional[str] = Field(default=None, description="'right', 'left' or None")
    total: ScoreSeries
    parts: dict[str, ScoreSeries] = Field(default_factory=dict)
    limits: dict[str, list[float]] = Field(
        default_factory=dict,
        description="Breakpoints per part, for plotting reference bands",
    )
    cap: Optional[tuple[int, int]] = Field(
        default=None, description="Documented (floor, ceiling) the total was clipped to"
    )

    class Config:
        frozen = True

    def series(self) -> dict[str, np.ndarray]:
        out = {f"{self.key}.total": self.total.values}
        for part, s in self.parts.items():
            out[f"{self.key}.{part}"] = s.values
        return out


class TrialResult(BaseModel):
    """Complete RULA record for one trial."""
    subject_id: str = "unknown"
    trial_name: str = ""
    conditions: dict[str, str] = Field(default_factory=dict)
    n_frames: int
    time_s: np.ndarray
    invalid_frames: np.ndarray = Field(description="Boolean mask of frames scored as NaN")
    steps: dict[str, StepResult]
    final_score: StepResult = Field(description="Table C score; total = worse side")

    class Config:
        arbitrary_types_allowed = True
        frozen = True

    def step(self, key: str) -> StepResult:
        if key == "final_score":
            return self.final_score
        try:
            return self.steps[key]
        except KeyError:
            raise KeyError(f"Trial '{self.trial_name}' has no step '{key}'.") from None

    @property
    def final(self) -> np.ndarray:
        return self.final_score.total.values

    @property
    def valid_fraction(self) -> float:
        if self.n_frames == 0:
            return 0.0
        return float(np.count_nonzero(~np.isnan(self.final))) / self.n_frames

    def series(self) -> dict[str, np.ndarray]:
        """Every retained series keyed ``'<step key>.<part>'``."""
        out: dict[str, np.ndarray] = {}
        for step in self.steps.values():
            out.update(step.series())
        out.update(self.final_score.series())
        return out
