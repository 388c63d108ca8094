# -*- coding: utf-8 -*-
"""
Log configuration for mdscope sessions, via loguru.

A session log (`start_log`) collects everything, by default in
~/.mdscope/mdscope.log. Each acquisition also gets its own log next to its
frames (`add_dataset_log`), so a dataset directory carries the record of how it
was acquired.
"""

import os
import sys
import traceback

from loguru import logger

from .defaults import DEFAULT_LOGLEVEL, SINGLE_LINE_ERR_LOG, USER_DIR

DATASET_LOG_SUFFIX = "_acquisition.log"

_session_log_path = ""


def format_error_response():
    err_str = traceback.format_exc()
    if SINGLE_LINE_ERR_LOG:
        return "\t".join(line.strip() for line in err_str.splitlines())
    else:
        return err_str


def start_log(
    log_to_file=True,
    log_to_stdout=False,
    log_path=None,
    clear_prev=True,
    log_level=DEFAULT_LOGLEVEL,
):
    """(Re)start the session log.

    Removes every existing sink, including loguru's default stderr one.

    Parameters
    ----------
    log_to_file : bool
        Log to `log_path`.
    log_to_stdout : bool
        Log to stderr, coloured.
    log_path : str, optional
        Log file, by default `log_default_path()`.
    clear_prev : bool
        Delete the previous log file first.
    log_level : str
        Minimum level for all sinks.
    """
    global _session_log_path
    if not log_path:
        log_path = log_default_path()
    else:
        log_path = os.path.abspath(log_path)

    if clear_prev:
        clear_log(log_path)

    logger.remove()

    if log_to_file:
        os.makedirs(os.path.dirname(log_path), exist_ok=True)
        logger.add(log_path, level=log_level, enqueue=True, colorize=False)
        _session_log_path = log_path
    else:
        _session_log_path = ""
    if log_to_stdout:
        logger.add(sys.stderr, level=log_level, enqueue=True, colorize=True)
    if log_to_file:
        logger.info("Log started at {}", log_path)
    else:
        logger.info("Log started.")


def add_dataset_log(directory: str, prefix: str, log_level=DEFAULT_LOGLEVEL) -> int:
    """Also log to `<directory>/<prefix>_acquisition.log`.

    Returns
    -------
    int
        loguru handler id, for `remove_dataset_log`.
    """
    path = os.path.join(directory, prefix + DATASET_LOG_SUFFIX)
    handler_id = logger.add(path, level=log_level, enqueue=True, colorize=False)
    logger.debug("Dataset log at {}", path)
    return handler_id


def remove_dataset_log(handler_id: int) -> None:
    """Flush and close a sink added by `add_dataset_log`."""
    logger.complete()
    try:
        logger.remove(handler_id)
    except ValueError:
        # already removed, e.g. by start_log/shutdown_log
        pass


def log_default_path() -> str:
    return str(USER_DIR.joinpath("mdscope.log"))


def clear_log(log_path: str):
    """
    Delete the log file at `log_path`, if there is one.

    Arguments
    ---------
    log_path : str
        The path to the log file, see log_default_path().
    """
    if os.path.exists(log_path):
        try:
            os.remove(log_path)
        except PermissionError:
            logger.error(
                f"Could not clear log file {log_path}. Permission denied. Continuing."
            )


def shutdown_log():
    try:
        logger.info("Closing down log.")
        logger.complete()
        logger.remove()
    except Exception:
        logger.exception("Error shutting down log - skipping.")


def get_log_filename() -> str:
    """Session log file, empty if the session only logs to the console."""
    return _session_log_path
