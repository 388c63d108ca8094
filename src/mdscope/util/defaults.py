# -*- coding: utf-8 -*-

import pathlib

DEFAULT_LOGLEVEL = "INFO"
TEST_LOGLEVEL = "TRACE"
SINGLE_LINE_ERR_LOG = False  # reformat tracebacks into a single line

USER_DIR = pathlib.Path.home() / ".mdscope"
DEFAULT_POLL_INTERVAL = 0.1  # seconds, between time-gate checks while waiting
DEFAULT_FILE_PREFIX = "UVM"
DEFAULT_SAVE_DIR = "./mdscope_output/"
