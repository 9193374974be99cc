"""
Configuration constants for the RULA scoring pipeline.

Centralizes project paths, environment variable loading and the loader that
turns a YAML file into a validated :class:`ScoringConfig`.
"""

import os
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from src.rula.config import ScoringConfig
from src.rula.exceptions import ConfigurationError
from src.utils.io_utils import load_config

# ---------------------------------------------------------------------------
# Project paths
# ---------------------------------------------------------------------------
PROJECT_ROOT = Path(__file__).resolve().parent.parent.parent
_ENV_PATH = PROJECT_ROOT / ".env"
load_dotenv(_ENV_PATH)

DEFAULT_CONFIG_PATH = PROJECT_ROOT / "config" / "rula_scoring.yaml"
RULA_CONFIG_PATH = Path(os.environ.get("RULA_CONFIG_PATH", str(DEFAULT_CONFIG_PATH)))

# ---------------------------------------------------------------------------
# Environment overrides
# ---------------------------------------------------------------------------
# "supported" / "unsupported"; empty means use the YAML value
RULA_LEG_SUPPORT: str = os.environ.get("RULA_LEG_SUPPORT", "")
# 0 or unset scores trials in-process
RULA_MAX_WORKERS: int = int(os.environ.get("RULA_MAX_WORKERS", "0") or 0)

# ---------------------------------------------------------------------------
# Reporting
# ---------------------------------------------------------------------------
# below this share of valid frames a trial is reported as "partial"
FULL_COVERAGE: float = 1.0


def load_scoring_config(
    config_path: Optional[Path] = None,
    overrides: Optional[dict] = None,
) -> ScoringConfig:
    """Build the scoring configuration from YAML, environment and overrides.

    Precedence (lowest first): model defaults, the YAML file, ``RULA_*``
    environment variables, explicit ``overrides``.  A missing file falls back
    to the defaults.

    Args:
        config_path: YAML file; defaults to ``RULA_CONFIG_PATH``.
        overrides: Extra top-level keys (e.g. from an API request).

    Returns:
        Validated :class:`ScoringConfig`.

    Raises:
        ConfigurationError: On unknown keys, invalid values or malformed
            breakpoint lists.
    """
    path = Path(config_path) if config_path is not None else RULA_CONFIG_PATH
    raw: dict = {}
    if path.exists():
        raw = load_config(str(path)) or {}
        if not isinstance(raw, dict):
            raise ConfigurationError(f"Scoring config {path} must be a mapping.")
        raw = dict(raw.get("scoring", raw))

    if RULA_LEG_SUPPORT:
        raw["leg_support"] = RULA_LEG_SUPPORT
    if overrides:
        breakpoints = overrides.get("breakpoints")
        raw.update({k: v for k, v in overrides.items() if k != "breakpoints"})
        if breakpoints:
            raw["breakpoints"] = {**raw.get("breakpoints", {}), **breakpoints}

    try:
        config = ScoringConfig(**raw)
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid scoring configuration ({path}): {exc}") from exc
    return config.validate_breakpoints()
