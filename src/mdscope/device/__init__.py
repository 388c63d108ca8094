"""
Hardware devices: the Device base class and a mock stage/camera driver.
"""

from .device import Device
from .mock import MockStageCamera

DEVICE_TYPES = {"MockStageCamera": MockStageCamera}


def get_valid_device_types() -> dict[str, type[Device]]:
    return dict(DEVICE_TYPES)


__all__ = ["Device", "MockStageCamera", "DEVICE_TYPES", "get_valid_device_types"]
