"""Channel preset files.

A preset file is a JSON object mapping channel names to their instrument
settings, e.g.

{"bf": {"exposure_ms": 10, "led": "white", "power": 0.5},
 "gfp": {"exposure_ms": 100, "led": "blue", "power": 1.0}}
"""

from __future__ import annotations

import os

from loguru import logger

from mdscope.types import PresetMap
from mdscope.util import load_json, save_json


def load_presets(path: str | None) -> PresetMap:
    """Read a preset file. No path gives an empty map."""
    if not path:
        return PresetMap()
    path = os.path.expanduser(path)
    if not os.path.exists(path):
        raise FileNotFoundError(f"Preset file {path} not found")
    data = load_json(path)
    if not isinstance(data, dict):
        raise ValueError(f"Preset file {path} must hold a JSON object")
    presets = PresetMap.from_dict(data)
    logger.debug("Loaded {} channel presets from {}", len(presets), path)
    return presets


def save_presets(path: str, presets: PresetMap) -> None:
    save_json(os.path.expanduser(path), presets.to_dict())
