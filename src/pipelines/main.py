"""
FastAPI read service for RULA scores.

Endpoints:
    GET  /health
    POST /api/trial/score     score one trial and return its summary
    GET  /api/steps           step catalogue (keys/labels for visualisers)
    GET  /api/thresholds      plotting reference breakpoints per joint

Run:
    cd <project_root>
    uvicorn src.pipelines.main:app --host 0.0.0.0 --port 8000 --reload
"""

import logging
import math
import sys
import time
from pathlib import Path
from typing import Optional

import numpy as np
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

# ---------------------------------------------------------------------------
# Ensure project root is on sys.path so ``src.*`` imports work when running
# with ``uvicorn src.pipelines.main:app`` from the project root.
# ---------------------------------------------------------------------------
_PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
if str(_PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(_PROJECT_ROOT))

from src.pipelines.config import load_scoring_config
from src.pipelines.scoring import score_trial
from src.pipelines.summary import STATUS_FAILED, summarize_trial
from src.pipelines.utils import step_definitions, visualization_thresholds
from src.rula.exceptions import ConfigurationError, FrameDataError
from src.rula.schema import TrialData

logger = logging.getLogger("rula_service")
logging.basicConfig(level=logging.INFO, format="%(levelname)s | %(name)s | %(message)s")


# ============================================================================
# Pydantic request / response models
# ============================================================================

class TrialRequest(BaseModel):
    subject_id: str = "unknown"
    trial_name: str = ""
    conditions: dict[str, str] = Field(default_factory=dict)
    joint_angle: list[list[Optional[float]]] = Field(
        ..., description="frames × (3·joints) degrees; null for missing samples"
    )
    position: Optional[list[list[Optional[float]]]] = Field(
        default=None, description="frames × (3·segments) metres"
    )
    orientation: Optional[list[list[Optional[float]]]] = Field(
        default=None, description="frames × (4·segments) quaternions (w, x, y, z)"
    )
    time_ms: Optional[list[float]] = None
    frame_rate: Optional[float] = None
    joint_names: Optional[list[str]] = None
    segment_names: Optional[list[str]] = None
    config: Optional[dict] = Field(default=None, description="Scoring config overrides")
    include_series: bool = False


class FinalScoreSummary(BaseModel):
    median: float
    q1: float
    q3: float
    histogram: list[float]
    action_levels: dict[str, float]
    n_valid: int


class TrialScoreResponse(BaseModel):
    subject_id: str
    trial_name: str
    status: str
    message: str
    valid_pct: float
    n_frames: int
    final: FinalScoreSummary
    steps: dict[str, dict[str, Optional[float]]]
    series: Optional[dict[str, list[Optional[float]]]] = None


class ErrorResponse(BaseModel):
    error_code: str
    message: str


def _none_if_nan(value):
    if isinstance(value, float) and math.isnan(value):
        return None
    return value


def _as_array(rows) -> Optional[np.ndarray]:
    if rows is None:
        return None
    return np.array(rows, dtype=np.float64)


# ============================================================================
# App
# ============================================================================

app = FastAPI(
    title="RULA Scoring API",
    version="1.0.0",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.get("/health")
async def health():
    return {"status": "ok"}


@app.get("/api/steps")
async def steps():
    return {"steps": step_definitions()}


@app.get("/api/thresholds")
def thresholds():
    try:
        config = load_scoring_config()
    except ConfigurationError as exc:
        return JSONResponse(
            status_code=500,
            content={"error_code": "INVALID_CONFIGURATION", "message": str(exc)},
        )
    return {"thresholds": visualization_thresholds(config)}


@app.post(
    "/api/trial/score",
    response_model=TrialScoreResponse,
    responses={
        400: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
)
def score_trial_endpoint(request: TrialRequest):
    """Validate → score steps 1-15 → summarize.

    NOTE: Sync on purpose; FastAPI runs it in a threadpool so long trials do
    not block the event loop.
    """
    t0 = time.time()

    # ── Input contract & configuration ───────────────────────────────────
    try:
        config = load_scoring_config(overrides=request.config)
        trial = TrialData.from_arrays(
            joint_angle=_as_array(request.joint_angle),
            position=_as_array(request.position),
            orientation=_as_array(request.orientation),
            time_ms=_as_array(request.time_ms),
            frame_rate=request.frame_rate,
            subject_id=request.subject_id,
            trial_name=request.trial_name,
            conditions=request.conditions,
            joint_names=request.joint_names,
            segment_names=request.segment_names,
        )
    except ConfigurationError as exc:
        return JSONResponse(
            status_code=400,
            content={"error_code": "INVALID_CONFIGURATION", "message": str(exc)},
        )
    except ValueError as exc:
        return JSONResponse(
            status_code=400,
            content={"error_code": "INVALID_REQUEST", "message": str(exc)},
        )

    # ── Scoring ──────────────────────────────────────────────────────────
    try:
        result = score_trial(trial, config)
    except ConfigurationError as exc:
        return JSONResponse(
            status_code=400,
            content={"error_code": "INVALID_CONFIGURATION", "message": str(exc)},
        )
    except FrameDataError as exc:
        return JSONResponse(
            status_code=422,
            content={"error_code": "INVALID_FRAMES", "message": str(exc)},
        )
    except Exception as exc:
        logger.exception(f"Scoring failed for trial '{request.trial_name}'")
        return JSONResponse(
            status_code=500,
            content={"error_code": "ANALYSIS_FAILED", "message": f"Scoring error: {exc}"},
        )

    # ── Summary ──────────────────────────────────────────────────────────
    summary = summarize_trial(result)
    if summary.status == STATUS_FAILED:
        return JSONResponse(
            status_code=422,
            content={"error_code": "NO_VALID_SCORES", "message": summary.message},
        )

    series = None
    if request.include_series:
        series = {
            name: [_none_if_nan(float(v)) for v in values]
            for name, values in result.series().items()
        }

    logger.info(
        f"Trial '{result.trial_name}' scored in {time.time() - t0:.2f}s: "
        f"status={summary.status} median={summary.final.median:.1f}"
    )
    return TrialScoreResponse(
        subject_id=summary.subject_id,
        trial_name=summary.trial_name,
        status=summary.status,
        message=summary.message,
        valid_pct=summary.valid_pct,
        n_frames=summary.n_frames,
        final=FinalScoreSummary(**summary.final.model_dump(include={
            "median", "q1", "q3", "histogram", "action_levels", "n_valid",
        })),
        steps={
            name: {k: _none_if_nan(float(v)) for k, v in stats.items()}
            for name, stats in summary.steps.items()
        },
        series=series,
    )
