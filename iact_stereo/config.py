"""Analysis configuration: cleaning levels and reconstruction policy values.

Defaults live in module level dicts. A JSON file can override any of them::

    {
        "min_pixels": 6,
        "cleaning_levels": {"FlashCam": [4, 8, 2]}
    }
"""

from __future__ import annotations

import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

# camera name -> (boundary_threshold, core_threshold, min_core_neighbors), p.e.
CLEANING_LEVELS = {
    "default": (4.0, 8.0, 0),
    "ASTRICam": (2.0, 4.0, 2),
    "CHEC": (2.0, 4.0, 2),
    "DigiCam": (2.0, 4.0, 2),
    "FlashCam": (4.0, 8.0, 2),
    "LSTCam": (3.5, 7.5, 2),
    "NectarCam": (3.0, 5.0, 2),
    "SCTCam": (3.0, 6.0, 2),
}

DEFAULT_CONFIG = {
    # images with fewer surviving pixels get invalid Moments
    "min_pixels": 5,
    # reconstructed directions further away from the pointing are rejected
    "max_direction_offset_deg": 20.0,
    # relative eigenvalue tolerance below which the shower planes coincide
    "plane_tolerance": 1e-9,
    # height of the observation plane for the impact point (m)
    "observation_level": 0.0,
    # aggregation window per event (s)
    "window_seconds": 5.0,
    "cleaning_levels": CLEANING_LEVELS,
}


def load_config(path=None) -> dict:
    """Return the default configuration, updated with the values in *path*.

    Unknown keys are rejected so typos do not silently fall back to defaults.
    """
    if path is None:
        return resolve_config()

    with open(Path(path), "r") as f:
        overrides = json.load(f)
    config = resolve_config(overrides)
    logger.info("Loaded configuration from %s", path)
    return config


def resolve_config(config: dict | None = None) -> dict:
    """Defaults updated with the (possibly partial) *config* dict.

    Cleaning levels are merged per camera name. Resolving an already
    resolved config returns an equal dict.
    """
    merged = dict(DEFAULT_CONFIG)
    merged["cleaning_levels"] = dict(CLEANING_LEVELS)
    if not config:
        return merged

    unknown = set(config) - set(DEFAULT_CONFIG)
    if unknown:
        raise ValueError(f"Unknown configuration keys: {sorted(unknown)}")

    for name, level in config.get("cleaning_levels", {}).items():
        merged["cleaning_levels"][name] = _check_level(name, level)
    merged.update((key, value) for key, value in config.items() if key != "cleaning_levels")
    return merged


def cleaning_levels_for(camera_name: str, config: dict | None = None) -> tuple:
    """(boundary, core, min_core_neighbors) for a camera, falling back to ``default``."""
    levels = resolve_config(config)["cleaning_levels"]
    return tuple(levels.get(camera_name, levels["default"]))


def _check_level(name, level) -> tuple:
    if len(level) != 3:
        raise ValueError(f"Cleaning level for {name} needs (boundary, core, min_neighbors), got {level}")
    boundary, core, min_neighbors = float(level[0]), float(level[1]), int(level[2])
    if boundary > core:
        raise ValueError(f"Cleaning level for {name}: boundary {boundary} > core {core}")
    return boundary, core, min_neighbors
