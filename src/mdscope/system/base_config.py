"""Base configuration class for mdscope scopes."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from mdscope.types import FILE_ORDER, PERSIST
from mdscope.util import DEFAULT_FILE_PREFIX, DEFAULT_POLL_INTERVAL, DEFAULT_SAVE_DIR


class ConfigVersion(str, Enum):
    """Configuration version enumeration.

    Versions:
    - CURRENT: INI format (v1)
    """

    CURRENT = "v1"


@dataclass
class ScopeConfig:
    """Scope configuration loaded from an INI file.

    Attributes
    ----------
    scope_name : str
        Name of the scope configuration (the INI section).
    save_dir : str
        Root directory for datasets.
    file_prefix : str
        Dataset and frame file prefix.
    file_order : str
        Frame file naming convention, see `FILE_ORDER`.
    persist : str
        How frames are written during acquisition, see `PERSIST`.
    keep_in_memory : bool
        Keep acquired frames in memory as well.
    poll_interval_s : float
        Sleep between time-gate checks while waiting.
    track_focus : bool
        Correct focus drift from the most recent z-stack at each new position.
    presets_path : str | None
        JSON file of channel presets.
    driver_type : str
        Device class name of the stage/camera driver.
    driver_config : dict[str, Any]
        Keyword arguments for the driver.
    """

    scope_name: str
    save_dir: str = DEFAULT_SAVE_DIR
    file_prefix: str = DEFAULT_FILE_PREFIX
    file_order: str = FILE_ORDER.INDEXED
    persist: str = PERSIST.PER_FRAME
    keep_in_memory: bool = True
    poll_interval_s: float = DEFAULT_POLL_INTERVAL
    track_focus: bool = False
    presets_path: str | None = None
    driver_type: str = "MockStageCamera"
    driver_config: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self):
        if self.file_order not in (FILE_ORDER.INDEXED, FILE_ORDER.LINEAR):
            raise ValueError(f"Invalid file order: {self.file_order}")
        if self.persist not in (PERSIST.NONE, PERSIST.PER_FRAME, PERSIST.APPEND_RAW):
            raise ValueError(f"Invalid persist mode: {self.persist}")
        if self.poll_interval_s <= 0:
            raise ValueError(f"Poll interval must be positive, got {self.poll_interval_s}")
