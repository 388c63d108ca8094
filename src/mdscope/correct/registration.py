"""Channel registration with per-channel affine transforms."""

from __future__ import annotations

import itertools
from typing import Sequence

import numpy as np
from loguru import logger
from scipy import ndimage
from skimage.registration import phase_cross_correlation

from mdscope.util import to_uint16


def translation_matrix(shift: Sequence[float]) -> np.ndarray:
    """Homogeneous 3x3 matrix moving (row, col) pixel coordinates by `shift`."""
    matrix = np.eye(3)
    matrix[:2, 2] = shift
    return matrix


def estimate_shift(
    reference: np.ndarray, moving: np.ndarray, upsample_factor: int = 10
) -> np.ndarray:
    """(row, col) shift that registers `moving` onto `reference`.

    Plain (unnormalised) cross-correlation of the zero-mean images.
    """
    reference = np.asarray(reference, dtype=float)
    moving = np.asarray(moving, dtype=float)
    shift, _, _ = phase_cross_correlation(
        reference - reference.mean(),
        moving - moving.mean(),
        upsample_factor=upsample_factor,
        normalization=None,
    )
    return np.asarray(shift, dtype=float)


def estimate_channel_transforms(images: np.ndarray, fixed_channel: int = 0) -> list[np.ndarray]:
    """Translation transforms for every channel of a (rows, cols, S, C, P, T) buffer.

    Estimated on the central slice of the first position and time point.
    """
    n_slices, n_c = images.shape[2], images.shape[3]
    if not 0 <= fixed_channel < n_c:
        raise ValueError(f"Fixed channel {fixed_channel} out of range for {n_c} channels")
    centre = n_slices // 2
    fixed = images[:, :, centre, fixed_channel, 0, 0]
    transforms = []
    for c in range(n_c):
        if c == fixed_channel:
            transforms.append(np.eye(3))
            continue
        shift = estimate_shift(fixed, images[:, :, centre, c, 0, 0])
        logger.debug("Channel {} registration shift {}", c, shift)
        transforms.append(translation_matrix(shift))
    return transforms


def apply_transform(image: np.ndarray, matrix: np.ndarray) -> np.ndarray:
    """Resample a 2D image under a homogeneous 3x3 (row, col) transform."""
    matrix = np.asarray(matrix, dtype=float)
    if np.allclose(matrix, np.eye(3)):
        return np.asarray(image, dtype=float)
    # affine_transform maps output coordinates to input coordinates
    return ndimage.affine_transform(
        np.asarray(image, dtype=float), np.linalg.inv(matrix), order=1, mode="nearest"
    )


def register_channels(images: np.ndarray, transforms: Sequence[np.ndarray]) -> np.ndarray:
    """Apply `transforms[c]` to every (S, P, T) image of channel `c`."""
    n_slices, n_c, n_p, n_t = images.shape[2:]
    if len(transforms) != n_c:
        raise ValueError(f"Need {n_c} channel transforms, got {len(transforms)}")
    for matrix in transforms:
        if np.shape(matrix) != (3, 3):
            raise ValueError(f"Channel transforms must be 3x3, got {np.shape(matrix)}")
    out = np.empty_like(images)
    for s, c, p, t in itertools.product(range(n_slices), range(n_c), range(n_p), range(n_t)):
        out[:, :, s, c, p, t] = to_uint16(
            apply_transform(images[:, :, s, c, p, t], transforms[c])
        )
    return out
