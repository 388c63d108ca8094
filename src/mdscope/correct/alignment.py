"""Drift correction along the time axis and within z-stacks."""

from __future__ import annotations

import itertools

import numpy as np
from scipy import ndimage

from mdscope.types import CorrectionError
from mdscope.util import best_focus_index, to_uint16

from .registration import estimate_shift


def shift_image(image: np.ndarray, shift: np.ndarray) -> np.ndarray:
    return ndimage.shift(np.asarray(image, dtype=float), shift, order=1, mode="nearest")


def central_crop(image: np.ndarray) -> np.ndarray:
    """Central half (in each dimension) of a 2D image."""
    rows, cols = image.shape[:2]
    return image[rows // 4 : rows - rows // 4, cols // 4 : cols - cols // 4]


def align_time_series(
    images: np.ndarray,
    force_stack_alignment: bool = False,
    use_best_focus: bool = True,
    method: str = "gradient",
) -> np.ndarray:
    """Register every time point of a (rows, cols, S, C, P, T) buffer to the first."""
    n_slices, n_c, n_p, n_t = images.shape[2:]
    if n_slices > 1 and not force_stack_alignment:
        raise CorrectionError(
            "Time alignment of z-stacks needs force_stack_alignment=True "
            + "(or refocus to a single slice first)."
        )
    out = images.copy()
    for c, p in itertools.product(range(n_c), range(n_p)):
        first = images[:, :, :, c, p, 0]
        if n_slices > 1 and use_best_focus:
            reference = first[:, :, best_focus_index(first, method)]
            for t in range(1, n_t):
                stack = images[:, :, :, c, p, t]
                shift = estimate_shift(reference, stack[:, :, best_focus_index(stack, method)])
                for s in range(n_slices):
                    out[:, :, s, c, p, t] = to_uint16(shift_image(stack[:, :, s], shift))
        else:
            for s, t in itertools.product(range(n_slices), range(1, n_t)):
                image = images[:, :, s, c, p, t]
                shift = estimate_shift(first[:, :, s], image)
                out[:, :, s, c, p, t] = to_uint16(shift_image(image, shift))
    return out


def align_z_stacks(
    images: np.ndarray, auto_crop: bool = True, method: str = "gradient"
) -> np.ndarray:
    """Register every slice of each stack to the stack's best-focused slice."""
    n_slices, n_c, n_p, n_t = images.shape[2:]
    out = images.copy()
    for c, p, t in itertools.product(range(n_c), range(n_p), range(n_t)):
        stack = images[:, :, :, c, p, t]
        best = best_focus_index(stack, method)
        template = stack[:, :, best]
        if auto_crop:
            template = central_crop(template)
        for s in range(n_slices):
            if s == best:
                continue
            moving = central_crop(stack[:, :, s]) if auto_crop else stack[:, :, s]
            shift = estimate_shift(template, moving)
            out[:, :, s, c, p, t] = to_uint16(shift_image(stack[:, :, s], shift))
    return out
