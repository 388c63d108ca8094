# -*- coding: utf-8 -*-
"""
Utility functions and constants for mdscope.

- Logging configuration and management (loguru)
- Acquisition-order index algebra
- Focus metrics for z-stacks
- Dataset directories and JSON serialisation

Examples
--------
Mapping a frame counter to its coordinate:
```python
from mdscope.util import to_coordinate
to_coordinate("ZCXYT", (3, 2, 1, 1), 4)  # FrameCoordinate(1, 2, 1, 1)
```

See Also
--------
mdscope.util.logging : Logging configuration
mdscope.util.indexing : Counter <-> coordinate mapping
mdscope.util.focus : Focus metrics
"""

from .defaults import (
    DEFAULT_FILE_PREFIX,
    DEFAULT_LOGLEVEL,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_SAVE_DIR,
    SINGLE_LINE_ERR_LOG,
    TEST_LOGLEVEL,
    USER_DIR,
)
from .focus import FOCUS_METHOD, best_focus_index, focus_curve
from .indexing import axis_nesting, iter_coordinates, to_coordinate, to_counter
from .normalisation import rescale_intensity, to_uint16
from .logging import (
    DATASET_LOG_SUFFIX,
    add_dataset_log,
    clear_log,
    format_error_response,
    get_log_filename,
    log_default_path,
    remove_dataset_log,
    shutdown_log,
    start_log,
)
from .save import NumpyEncoder, get_command_string, get_dataset_dir, load_json, save_json

__all__ = [
    "DEFAULT_FILE_PREFIX",
    "DEFAULT_LOGLEVEL",
    "DEFAULT_POLL_INTERVAL",
    "DEFAULT_SAVE_DIR",
    "SINGLE_LINE_ERR_LOG",
    "TEST_LOGLEVEL",
    "USER_DIR",
    "FOCUS_METHOD",
    "best_focus_index",
    "focus_curve",
    "axis_nesting",
    "iter_coordinates",
    "to_coordinate",
    "to_counter",
    "clear_log",
    "format_error_response",
    "get_log_filename",
    "add_dataset_log",
    "remove_dataset_log",
    "DATASET_LOG_SUFFIX",
    "log_default_path",
    "shutdown_log",
    "start_log",
    "rescale_intensity",
    "to_uint16",
    "NumpyEncoder",
    "get_command_string",
    "get_dataset_dir",
    "load_json",
    "save_json",
]
