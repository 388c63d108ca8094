from __future__ import annotations

from typing import Any

import numpy as np
import numpy.random
from loguru import logger
from scipy import ndimage

from mdscope.device.device import Device


class MockStageCamera(Device):  # implements StageCameraProtocol
    """Simulated stage, illumination and camera.

    Frames show a fixed random bead pattern, blurred in proportion to the
    distance of the stage z from `focal_plane_um`, with Poisson-like noise.
    Each channel scales the brightness by its preset's `intensity` setting.
    """

    required_config = {
        "frame_shape": (tuple, list),
        "focal_plane_um": (int, float),
        "blur_per_um": (int, float),
    }

    def __init__(self, **config_kwargs):
        self.frame_shape = (64, 64)
        self.focal_plane_um = 0.0
        self.blur_per_um = 1.0
        self.noise = True
        self.seed = 0
        super().__init__(**config_kwargs)
        self.frame_shape = tuple(self.frame_shape)
        self._position_um = (0.0, 0.0, 0.0)
        self._channel = None
        self._settings: dict[str, Any] = {}
        self._connected = False
        self._n_moves = 0
        self._n_channel_changes = 0
        self._n_frames = 0

        self.__rng = numpy.random.default_rng(self.seed)
        pattern = np.zeros(self.frame_shape)
        n_beads = max(1, self.frame_shape[0] * self.frame_shape[1] // 40)
        rows = self.__rng.integers(0, self.frame_shape[0], n_beads)
        cols = self.__rng.integers(0, self.frame_shape[1], n_beads)
        pattern[rows, cols] = 1.0
        self._pattern = ndimage.gaussian_filter(pattern, 1.0)
        self._pattern /= self._pattern.max()

    def is_connected(self) -> bool:
        return self._connected

    def open(self) -> tuple[bool, str]:
        self._connected = True
        logger.info("Connected to MockStageCamera")
        return True, "Connected to MockStageCamera"

    def close(self):
        self._connected = False
        logger.info("Disconnected from {}", "MockStageCamera")

    def move_to(self, position_um: tuple[float, float, float]) -> None:
        self._position_um = tuple(float(v) for v in position_um)
        self._n_moves += 1
        logger.trace("Mock stage moved to {}", self._position_um)

    def select_channel(self, channel: str | None, settings: dict[str, Any]) -> None:
        self._channel = channel
        self._settings = dict(settings)
        self._n_channel_changes += 1
        logger.trace("Mock illumination set to channel {}", channel)

    def get_position(self) -> tuple[float, float, float]:
        return self._position_um

    def capture_frame(self) -> np.ndarray:
        defocus = abs(self._position_um[2] - self.focal_plane_um)
        image = self._pattern
        sigma = defocus * self.blur_per_um
        if sigma > 0:
            image = ndimage.gaussian_filter(image, sigma)
        intensity = float(self._settings.get("intensity", 1.0))
        frame = 1000.0 + 20000.0 * intensity * image
        if self.noise:
            frame = frame + self.__rng.normal(0.0, np.sqrt(frame))
        self._n_frames += 1
        return np.clip(np.round(frame), 0, 65535).astype(np.uint16)
