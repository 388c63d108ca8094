"""Device base class.

Drivers serving an `AcquisitionEngine` inherit from `Device` for configuration
validation and connection handling, and implement the methods of
`mdscope.types.StageCameraProtocol`:

- move_to(position_um)
- select_channel(channel, settings)
- capture_frame()

Example
-------
```python
class MyScope(Device):
    required_config = {"port": str, "frame_shape": tuple}

    def open(self) -> tuple[bool, str]:
        ...
        return True, "Connected"

    def move_to(self, position_um): ...
    def select_channel(self, channel, settings): ...
    def capture_frame(self): ...
```

Config keys arrive as keyword arguments (the `driver.*` keys of a scope
configuration) and become attributes of the same name.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from loguru import logger


class Device:
    """Base class for stage/camera drivers.

    Attributes
    ----------
    required_config : dict[str, type | tuple[type, ...]]
        Config keys that must be set once `__init__` has applied the keyword
        arguments (subclass defaults count), and their accepted types.
    """

    required_config: dict[str, type | tuple[type, ...]] = {}

    def __init__(self, **config_kwargs):
        for key, value in config_kwargs.items():
            setattr(self, key, value)
        for key, expected in self.required_config.items():
            self._check_config(key, expected)

    def _check_config(self, key: str, expected: type | tuple[type, ...]) -> None:
        name = self.__class__.__name__
        if not hasattr(self, key):
            msg = f"Device {name} missing required config key: {key}"
        elif not isinstance(getattr(self, key), expected):
            msg = (
                f"Device {name} config key {key} has wrong type: "
                + f"{type(getattr(self, key)).__name__} (expected {expected})"
            )
        else:
            return
        logger.error(msg)
        raise ValueError(msg)

    def __repr__(self):
        state = "connected" if self.is_connected() else "disconnected"
        return f"{self.__class__.__name__}({state})"

    def open(self) -> tuple[bool, str]:
        raise NotImplementedError()

    def close(self):
        raise NotImplementedError()

    def is_connected(self) -> bool:
        raise NotImplementedError()

    def get_all_attrs(self) -> dict[str, Any]:
        """Managed attributes (single leading underscore), without the underscore."""
        mangled = tuple(f"_{cls.__name__}__" for cls in type(self).__mro__)
        return {
            key[1:]: value
            for key, value in self.__dict__.items()
            if key.startswith("_") and not key.startswith(mangled)
        }

    def unroll_metadata(self) -> dict[str, Any]:
        """Config and managed state for the dataset's scope file.

        Arrays are summarised by shape and dtype.
        """
        metadata = {key: getattr(self, key) for key in self.required_config}
        for key, value in self.get_all_attrs().items():
            if isinstance(value, np.ndarray):
                value = {"shape": value.shape, "dtype": str(value.dtype)}
            metadata[key] = value
        return metadata
