"""Protocols for the collaborators injected into mdscope components.

Devices and numerical collaborators do not inherit from these classes, they only
need to implement the methods. `@runtime_checkable` allows `isinstance()`
checks where a component validates what it was given.

- `StageCameraProtocol`: the hardware driver serving acquisition requests.
- `DeconvolverProtocol`: per-channel deconvolution of a z-stack.
- `PhaseSolverProtocol`: phase retrieval (e.g. TIE) from a z-stack.
- `FlatFieldProtocol`: per-channel flat-field model.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

import numpy as np


@runtime_checkable
class StageCameraProtocol(Protocol):
    """Stage, illumination and camera driver.

    All calls are synchronous: a call returns once the hardware has settled.
    """

    def move_to(self, position_um: tuple[float, float, float]) -> None: ...

    def select_channel(self, channel: str | None, settings: dict[str, Any]) -> None: ...

    def capture_frame(self) -> np.ndarray: ...


@runtime_checkable
class DeconvolverProtocol(Protocol):
    def correct_image(
        self,
        stack: np.ndarray,
        channel: str | None,
        z_step_um: float,
        settings: dict[str, Any],
        edge_taper: bool,
    ) -> np.ndarray:
        """Deconvolve a (rows, cols, slices) stack, returning the same shape."""
        ...


@runtime_checkable
class PhaseSolverProtocol(Protocol):
    def solve(self, stack: np.ndarray, background: np.ndarray | None) -> np.ndarray:
        """Return a (rows, cols, n) stack of phase images from a (rows, cols, slices) stack."""
        ...


@runtime_checkable
class FlatFieldProtocol(Protocol):
    def correct_image(
        self, stack: np.ndarray, channel: str | None, settings: dict[str, Any]
    ) -> np.ndarray: ...
