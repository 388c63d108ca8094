"""The corrections a `CorrectionPipeline` can run, one dataclass per kind.

Each kind carries its own parameters; `name` is what the correction log
records and `requires_zstack` whether it needs more than one slice.
"""

from __future__ import annotations

import types
from dataclasses import dataclass
from typing import ClassVar, Sequence

import numpy as np

from mdscope.types import DeconvolverProtocol, FlatFieldProtocol, PhaseSolverProtocol
from mdscope.util import FOCUS_METHOD

RETURN_METHOD = types.SimpleNamespace()
RETURN_METHOD.AVERAGE = "average"
RETURN_METHOD.ALL = "all"


@dataclass(frozen=True, kw_only=True)
class Correction:
    name: ClassVar[str] = ""
    requires_zstack: ClassVar[bool] = False


@dataclass(frozen=True, kw_only=True)
class FlatField(Correction):
    """Divide out the illumination profile. Uses the pipeline's model if `model` is None."""

    name: ClassVar[str] = "FlatField"
    model: FlatFieldProtocol | None = None


@dataclass(frozen=True, kw_only=True)
class Deconvolution(Correction):
    """Deconvolve each z-stack. `z_step_um` defaults to the plan's slice spacing."""

    name: ClassVar[str] = "Deconvolution"
    deconvolver: DeconvolverProtocol
    z_step_um: float | None = None
    edge_taper: bool = True
    max_workers: int | None = None


@dataclass(frozen=True)
class Parfocal:
    """Parfocal refocusing.

    Best focus is found on `master_channel` only. Every channel `c` then uses
    the master's best slice plus `offsets[c]` (channel indices 0-based, as in
    the image buffer).
    """

    master_channel: int
    offsets: Sequence[int]


@dataclass(frozen=True, kw_only=True)
class Refocus(Correction):
    """Keep the `2 * radius + 1` slices around best focus.

    `return_method` is `average` (collapse to one slice) or `all`.
    """

    name: ClassVar[str] = "Refocus"
    requires_zstack: ClassVar[bool] = True
    method: str = FOCUS_METHOD.GRADIENT
    radius: int = 0
    return_method: str = RETURN_METHOD.AVERAGE
    parfocal: Parfocal | None = None


@dataclass(frozen=True, kw_only=True)
class Alignment(Correction):
    """Remove drift along the time axis by registering every time point to the first.

    Data with more than one slice needs `force_stack_alignment`. Stacks are then
    either shifted as a whole by the shift of their best-focused slice
    (`use_best_focus`) or aligned slice by slice.
    """

    name: ClassVar[str] = "Alignment"
    force_stack_alignment: bool = False
    use_best_focus: bool = True
    method: str = FOCUS_METHOD.GRADIENT


@dataclass(frozen=True, kw_only=True)
class ZStackAlignment(Correction):
    """Align every slice of each stack to its best-focused slice."""

    name: ClassVar[str] = "ZStackAlignment"
    requires_zstack: ClassVar[bool] = True
    auto_crop: bool = True
    method: str = FOCUS_METHOD.GRADIENT


@dataclass(frozen=True, kw_only=True)
class ChannelRegistration(Correction):
    """Register channels with per-channel 3x3 affine transforms.

    Transforms map a channel's pixel (row, col, 1) coordinates onto the fixed
    channel. If `transforms` is None they are estimated (translation only) on
    the central slice of the first position and time point.
    """

    name: ClassVar[str] = "ChannelRegistration"
    fixed_channel: int = 0
    transforms: Sequence[np.ndarray] | None = None


@dataclass(frozen=True, kw_only=True)
class PCA(Correction):
    """Project each z-stack onto its principal components across slices."""

    name: ClassVar[str] = "PCA"
    requires_zstack: ClassVar[bool] = True
    use_existing_coeffs: bool = False
    max_workers: int | None = None


@dataclass(frozen=True, kw_only=True)
class PhaseRetrieval(Correction):
    """Phase images from each z-stack via an injected solver (e.g. TIE).

    `focus_radius` refocuses (`all` slices within the radius) first.
    """

    name: ClassVar[str] = "PhaseRetrieval"
    requires_zstack: ClassVar[bool] = True
    solver: PhaseSolverProtocol
    use_background: bool = False
    focus_radius: int | None = None
