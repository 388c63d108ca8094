"""Refocusing: reduce each z-stack to the slices around best focus."""

from __future__ import annotations

import itertools
from typing import NamedTuple

import numpy as np
from loguru import logger

from mdscope.util import best_focus_index, to_uint16

from .kinds import RETURN_METHOD, Parfocal


class RefocusResult(NamedTuple):
    images: np.ndarray
    best_focus: np.ndarray  # (C, P, T), 0-based slice of best focus
    focus_valid: np.ndarray  # (C, P, T), False where the window hit a stack edge


def focus_window(centre: int, radius: int, n_slices: int) -> tuple[int, int, bool]:
    """Slices [lo, hi] (0-based, inclusive) around `centre`, shifted inward at edges.

    Returns
    -------
    tuple[int, int, bool]
        (lo, hi, valid); `valid` is False if the window had to be shifted.
    """
    width = 2 * radius + 1
    if width > n_slices:
        raise ValueError(f"Refocus radius {radius} needs {width} slices, stack has {n_slices}")
    lo, hi = centre - radius, centre + radius
    if lo < 0:
        return 0, width - 1, False
    if hi > n_slices - 1:
        return n_slices - width, n_slices - 1, False
    return lo, hi, True


def refocus(
    images: np.ndarray,
    method: str,
    radius: int,
    return_method: str = RETURN_METHOD.AVERAGE,
    parfocal: Parfocal | None = None,
) -> RefocusResult:
    """Refocus a (rows, cols, S, C, P, T) buffer.

    Parameters
    ----------
    images : np.ndarray
        6-D image buffer.
    method : str
        Focus metric, see `mdscope.util.FOCUS_METHOD`.
    radius : int
        Slices kept either side of best focus.
    return_method : str
        `average` collapses the window to one slice, `all` keeps `2 * radius + 1`.
    parfocal : Parfocal, optional
        Use one master channel's best focus plus per-channel offsets. Ignored
        for single-channel data.

    Returns
    -------
    RefocusResult
    """
    if return_method not in (RETURN_METHOD.AVERAGE, RETURN_METHOD.ALL):
        raise ValueError(f"Invalid return method: {return_method}")
    if radius < 0:
        raise ValueError(f"Refocus radius must be >= 0, got {radius}")
    rows, cols, n_slices, n_c, n_p, n_t = images.shape
    width = 2 * radius + 1
    if width > n_slices:
        raise ValueError(f"Refocus radius {radius} needs {width} slices, stack has {n_slices}")

    if parfocal is not None and n_c == 1:
        logger.warning("Parfocal refocusing ignored for single-channel data.")
        parfocal = None
    if parfocal is not None:
        if len(parfocal.offsets) != n_c:
            raise ValueError(
                f"Parfocal needs {n_c} channel offsets, got {len(parfocal.offsets)}"
            )
        if not 0 <= parfocal.master_channel < n_c:
            raise ValueError(f"Parfocal master channel {parfocal.master_channel} out of range")

    out_slices = 1 if return_method == RETURN_METHOD.AVERAGE else width
    out = np.zeros((rows, cols, out_slices, n_c, n_p, n_t), dtype=np.uint16)
    best = np.zeros((n_c, n_p, n_t), dtype=int)
    valid = np.ones((n_c, n_p, n_t), dtype=bool)

    for p, t in itertools.product(range(n_p), range(n_t)):
        master_best = None
        if parfocal is not None:
            master_best = best_focus_index(
                images[:, :, :, parfocal.master_channel, p, t], method
            )
        for c in range(n_c):
            if master_best is not None:
                centre = master_best + int(parfocal.offsets[c])
            else:
                centre = best_focus_index(images[:, :, :, c, p, t], method)
            lo, hi, ok = focus_window(centre, radius, n_slices)
            best[c, p, t] = centre
            valid[c, p, t] = ok
            window = images[:, :, lo : hi + 1, c, p, t]
            if return_method == RETURN_METHOD.AVERAGE:
                out[:, :, 0, c, p, t] = to_uint16(np.mean(window, axis=2))
            else:
                out[:, :, :, c, p, t] = window

    n_invalid = int(np.count_nonzero(~valid))
    if n_invalid:
        logger.warning("Refocus window hit the stack edge for {} stacks.", n_invalid)
    return RefocusResult(out, best, valid)
