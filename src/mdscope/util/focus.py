"""Focus metrics for z-stacks.

A focus curve scores each slice of a (rows, cols, slices) stack. Scores are
divided by the slice's mean intensity, so illumination drift along the stack
does not move the best slice, then scaled to a unit maximum.
"""

from __future__ import annotations

import types

import numpy as np
from scipy import ndimage

FOCUS_METHOD = types.SimpleNamespace()
FOCUS_METHOD.GRADIENT = "gradient"
FOCUS_METHOD.GRADIENT_INV = "gradient_inv"
FOCUS_METHOD.STDEV = "stdev"
FOCUS_METHOD.STDEV_INV = "stdev_inv"
FOCUS_METHOD.SOBEL = "sobel"


def gradient_energy(image: np.ndarray) -> float:
    """Summed gradient magnitude."""
    gy, gx = np.gradient(np.asarray(image, dtype=float))
    return float(np.sum(np.hypot(gx, gy)))


def sobel_energy(image: np.ndarray) -> float:
    """Summed squared Sobel response."""
    im = np.asarray(image, dtype=float)
    return float(np.sum(ndimage.sobel(im, axis=0) ** 2 + ndimage.sobel(im, axis=1) ** 2))


def _slice_score(image: np.ndarray, method: str) -> float:
    match method:
        case FOCUS_METHOD.GRADIENT | FOCUS_METHOD.GRADIENT_INV:
            return gradient_energy(image)
        case FOCUS_METHOD.STDEV | FOCUS_METHOD.STDEV_INV:
            return float(np.std(np.asarray(image, dtype=float)))
        case FOCUS_METHOD.SOBEL:
            return sobel_energy(image)
        case _:
            raise ValueError(f"Invalid focus method: {method}")


def focus_curve(stack: np.ndarray, method: str = FOCUS_METHOD.GRADIENT) -> np.ndarray:
    """Normalised focus score for each slice of a (rows, cols, slices) stack.

    Parameters
    ----------
    stack : np.ndarray
        Image stack, slices along the last axis.
    method : str
        One of `FOCUS_METHOD`. The `_inv` variants negate the score to reward
        low contrast, which is where thin phase objects are in focus under
        brightfield. A flat slice (score 0) ranks best.

    Returns
    -------
    np.ndarray
        1D array of scores scaled so the largest has magnitude 1. For the
        `_inv` variants that largest score is -1, or 0 for a flat slice.
    """
    stack = np.asarray(stack)
    if stack.ndim == 2:
        stack = stack[..., np.newaxis]
    scores = np.empty(stack.shape[-1])
    for s in range(stack.shape[-1]):
        image = stack[..., s]
        mean = float(np.mean(image))
        scores[s] = _slice_score(image, method) / (abs(mean) if mean else 1.0)
    if method.endswith("_inv"):
        scores = -scores
    peak = abs(np.max(scores))
    return scores / peak if peak else scores


def best_focus_index(stack: np.ndarray, method: str = FOCUS_METHOD.GRADIENT) -> int:
    """0-based index of the best-focused slice (first one on ties)."""
    return int(np.argmax(focus_curve(stack, method)))
