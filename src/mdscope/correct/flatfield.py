"""Flat-field correction with a per-channel 2D polynomial illumination model."""

from __future__ import annotations

from typing import Any, Sequence

import numpy as np
from loguru import logger

from mdscope.types import IncompatibleCorrection


def _design_matrix(yy: np.ndarray, xx: np.ndarray, order: int) -> np.ndarray:
    terms = [
        (xx**i) * (yy**j) for i in range(order + 1) for j in range(order + 1 - i)
    ]
    return np.stack([t.ravel() for t in terms], axis=1)


def _grid(shape: tuple[int, int], step: int = 1) -> tuple[np.ndarray, np.ndarray]:
    rows, cols = shape
    y = np.linspace(-1.0, 1.0, rows)[::step]
    x = np.linspace(-1.0, 1.0, cols)[::step]
    return np.meshgrid(y, x, indexing="ij")


class PolynomialFlatField:
    """Illumination profile per channel, fitted to a reference image.

    The model is only valid for the instrument settings it was fitted under:
    `correct_image` refuses settings that differ in any of `fields_to_check`.

    Parameters
    ----------
    order : int
        Polynomial order of the surface.
    fields_to_check : Sequence[str]
        Preset settings that must match between fit and correction.
    grid_step : int
        Subsampling of the reference image for the fit.
    """

    def __init__(
        self,
        order: int = 2,
        fields_to_check: Sequence[str] = ("exposure_ms", "led", "power"),
        grid_step: int = 4,
    ):
        self.order = order
        self.fields_to_check = tuple(fields_to_check)
        self.grid_step = max(1, int(grid_step))
        self.coefficients: dict[str | None, np.ndarray] = {}
        self.fit_settings: dict[str | None, dict[str, Any]] = {}

    def fit(
        self, channel: str | None, reference: np.ndarray, settings: dict[str, Any] | None = None
    ) -> np.ndarray:
        """Fit the illumination surface of `channel` to a (rows, cols) reference image."""
        reference = np.asarray(reference, dtype=float)
        yy, xx = _grid(reference.shape, self.grid_step)
        sample = reference[:: self.grid_step, :: self.grid_step]
        coeffs, *_ = np.linalg.lstsq(
            _design_matrix(yy, xx, self.order), sample.ravel(), rcond=None
        )
        self.coefficients[channel] = coeffs
        self.fit_settings[channel] = dict(settings or {})
        logger.info("Fitted flat field for channel {}", channel)
        return coeffs

    def surface(self, channel: str | None, shape: tuple[int, int]) -> np.ndarray:
        """Illumination surface of `channel`, normalised to unit mean."""
        if channel not in self.coefficients:
            raise IncompatibleCorrection(f"No flat field fitted for channel {channel}")
        yy, xx = _grid(shape)
        surf = (_design_matrix(yy, xx, self.order) @ self.coefficients[channel]).reshape(shape)
        mean = np.mean(surf)
        if mean <= 0:
            raise IncompatibleCorrection(f"Flat field for channel {channel} is not positive")
        surf = surf / mean
        return np.clip(surf, 1e-3, None)

    def check_settings(self, channel: str | None, settings: dict[str, Any]) -> None:
        fitted = self.fit_settings.get(channel, {})
        for key in self.fields_to_check:
            if key in fitted and settings.get(key) != fitted[key]:
                raise IncompatibleCorrection(
                    f"Flat field for channel {channel} was fitted with {key}="
                    + f"{fitted[key]}, images have {key}={settings.get(key)}"
                )

    def correct_image(
        self, stack: np.ndarray, channel: str | None, settings: dict[str, Any]
    ) -> np.ndarray:
        """Divide a (rows, cols) image or (rows, cols, slices) stack by the surface."""
        self.check_settings(channel, settings)
        stack = np.asarray(stack, dtype=float)
        surf = self.surface(channel, stack.shape[:2])
        if stack.ndim == 3:
            surf = surf[:, :, np.newaxis]
        return stack / surf
