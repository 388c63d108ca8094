"""Principal component projection of z-stacks."""

from __future__ import annotations

import numpy as np


def principal_axes(data: np.ndarray) -> np.ndarray:
    """Principal axes (columns) of (samples, variables) data.

    Signs follow the usual convention: the largest-magnitude entry of each
    axis is positive.
    """
    centred = data - data.mean(axis=0)
    _, _, vt = np.linalg.svd(centred, full_matrices=False)
    coeffs = vt.T
    signs = np.sign(coeffs[np.argmax(np.abs(coeffs), axis=0), np.arange(coeffs.shape[1])])
    signs[signs == 0] = 1
    return coeffs * signs


def project_stack(
    stack: np.ndarray, coeffs: np.ndarray | None = None
) -> tuple[np.ndarray, np.ndarray]:
    """Project a (rows, cols, slices) stack onto principal axes across slices.

    Parameters
    ----------
    stack : np.ndarray
        Image stack, slices along the last axis.
    coeffs : np.ndarray, optional
        (slices, k) axes to reuse; computed from the stack if None.

    Returns
    -------
    tuple[np.ndarray, np.ndarray]
        The (rows, cols, k) projection (float) and the coefficients used.
    """
    rows, cols, n_slices = stack.shape
    data = np.asarray(stack, dtype=float).reshape(-1, n_slices)
    if coeffs is None:
        coeffs = principal_axes(data)
    elif coeffs.shape[0] != n_slices:
        raise ValueError(
            f"PCA coefficients are for {coeffs.shape[0]} slices, stack has {n_slices}"
        )
    return (data @ coeffs).reshape(rows, cols, -1), coeffs
