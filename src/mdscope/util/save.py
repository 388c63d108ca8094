# -*- coding: utf-8 -*-
"""Helpers for dataset directories and JSON serialisation.

Directory Structure
-----------------
Each acquisition run gets its own directory:
<save_dir>/<prefix>-<YYYY>-<MM>-<DD>-<HH>-<MM>-<SS>/

holding the metadata journal, the store state and the frames:
<prefix>_metadata.json, <prefix>_store.json, <prefix>_sl1_ch1_p1_t1.tiff, ...
"""

from __future__ import annotations

import os
import sys
from datetime import datetime

import numpy as np
import simplejson as json
from loguru import logger


def get_command_string() -> str:
    """Get the original command string that was used to run this script."""
    return " ".join(sys.argv)


class NumpyEncoder(json.JSONEncoder):
    """Special json encoder for numpy types"""

    # o = an object to be encoded
    def default(self, o):
        if isinstance(o, np.integer):
            return int(o)
        if isinstance(o, np.floating):
            return float(o)
        if isinstance(o, np.ndarray):
            return o.tolist()
        return json.JSONEncoder.default(self, o)


def dumps(obj) -> str:
    """Compact JSON text for `obj`, numpy-aware."""
    return json.dumps(obj, cls=NumpyEncoder)


def get_dataset_dir(save_dir: str, prefix: str, timestamp: datetime | None = None) -> str:
    """Create (if needed) and return a timestamped dataset directory.

    Parameters
    ----------
    save_dir : str
        Root directory for all datasets.
    prefix : str
        Dataset name prefix, e.g. "UVM".
    timestamp : datetime, optional
        Time to stamp the directory with, by default now.

    Returns
    -------
    str
        Absolute path to the dataset directory.
    """
    timestamp = timestamp or datetime.now()
    name = f"{prefix}-{timestamp.strftime('%Y-%m-%d-%H-%M-%S')}"
    path = os.path.abspath(os.path.join(save_dir, name))
    os.makedirs(path, exist_ok=True)
    logger.debug("Dataset directory: {}", path)
    return path


def save_json(path: str, obj) -> None:
    with open(path, "w") as f:
        json.dump(obj, f, cls=NumpyEncoder, indent=4)


def load_json(path: str):
    with open(path, "r") as f:
        return json.load(f)
