"""
I/O utilities: YAML configuration loading and TrialResult persistence.
"""

import json
import logging
import os
from typing import Dict

import numpy as np
import yaml

from src.rula.results import ScoreSeries, StepResult, TrialResult, frozen_array

logger = logging.getLogger(__name__)

_META_KEY = "__meta__"
_RESULT_FORMAT_VERSION = 1


def load_config(config_path: str) -> Dict:
    """
    Loads a configuration mapping from a YAML file.

    Args:
        config_path (str): Path to the YAML configuration file.

    Returns:
        Dict: The loaded configuration.
    """
    with open(config_path, 'r') as f:
        config = yaml.safe_load(f)
    return config


def _step_meta(step: StepResult) -> Dict:
    return {
        'step': step.step,
        'key': step.key,
        'label': step.label,
        'side': step.side,
        'parts': list(step.parts.keys()),
        'limits': step.limits,
        'cap': list(step.cap) if step.cap is not None else None,
    }


def _step_from_meta(meta: Dict, arrays) -> StepResult:
    key = meta['key']
    return StepResult(
        step=meta['step'],
        key=key,
        label=meta['label'],
        side=meta['side'],
        total=ScoreSeries(name=f"{key}.total", values=frozen_array(arrays[f"{key}.total"])),
        parts={
            part: ScoreSeries(name=f"{key}.{part}", values=frozen_array(arrays[f"{key}.{part}"]))
            for part in meta['parts']
        },
        limits=meta['limits'],
        cap=tuple(meta['cap']) if meta['cap'] is not None else None,
    )


def save_trial_result(result: TrialResult, path: str) -> str:
    """
    Save every series of a TrialResult to a compressed ``.npz`` archive.

    Float64 arrays are stored unchanged, so :func:`load_trial_result` gives
    bit-identical series back.

    Args:
        result (TrialResult): Scored trial.
        path (str): Destination file (``.npz`` is appended by numpy if missing).

    Returns:
        str: Path actually written.
    """
    meta = {
        'version': _RESULT_FORMAT_VERSION,
        'subject_id': result.subject_id,
        'trial_name': result.trial_name,
        'conditions': result.conditions,
        'n_frames': result.n_frames,
        'steps': [_step_meta(s) for s in result.steps.values()],
        'final_score': _step_meta(result.final_score),
    }
    arrays = dict(result.series())
    arrays['time_s'] = result.time_s
    arrays['invalid_frames'] = result.invalid_frames.astype(bool)
    arrays[_META_KEY] = np.array(json.dumps(meta))

    directory = os.path.dirname(os.path.abspath(path))
    os.makedirs(directory, exist_ok=True)
    np.savez_compressed(path, **arrays)
    written = path if str(path).endswith('.npz') else f"{path}.npz"
    logger.info(f"Saved trial result '{result.trial_name}' to {written}")
    return written


def load_trial_result(path: str) -> TrialResult:
    """
    Load a TrialResult written by :func:`save_trial_result`.

    Args:
        path (str): ``.npz`` archive.

    Returns:
        TrialResult: The reconstructed, read-only result.
    """
    with np.load(path, allow_pickle=False) as archive:
        arrays = {name: archive[name] for name in archive.files}

    meta = json.loads(str(arrays.pop(_META_KEY)))
    if meta.get('version') != _RESULT_FORMAT_VERSION:
        raise ValueError(f"Unsupported trial result format in {path}: {meta.get('version')}")

    steps = {}
    for step_meta in meta['steps']:
        step = _step_from_meta(step_meta, arrays)
        steps[step.key] = step

    invalid = np.array(arrays['invalid_frames'], dtype=bool)
    invalid.setflags(write=False)
    return TrialResult(
        subject_id=meta['subject_id'],
        trial_name=meta['trial_name'],
        conditions=meta['conditions'],
        n_frames=meta['n_frames'],
        time_s=frozen_array(arrays['time_s']),
        invalid_frames=invalid,
        steps=steps,
        final_score=_step_from_meta(meta['final_score'], arrays),
    )
