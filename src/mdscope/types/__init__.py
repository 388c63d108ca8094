"""
Shared types: configuration records, frame coordinates, protocols, messages and
exceptions.

The mdscope.types package is the foundation the other packages build on:

1. Configuration (config.py)
    - `AcquisitionPlan`: immutable description of an acquisition
    - `ChannelPreset` / `PresetMap`: read-only channel configuration injected
      into the engine, store and correction pipeline

2. Frames (frame.py)
    - `AxisSizes`, `FrameCoordinate` (1-based) and the journal `MetadataRecord`

3. Protocols (protocols.py)
    - Duck-typed interfaces for the hardware driver and numerical collaborators

4. Notifications (messages.py) and exceptions (validation.py)

Examples
--------
```python
from mdscope.types import AcquisitionPlan, ACQ_ORDER
plan = AcquisitionPlan(
    positions_um=[(0, 0, 10)],
    z_offsets_um=[-1, 0, 1],
    channels=["bf"],
    frame_shape=(64, 64),
    acquisition_order=ACQ_ORDER.ZCXYT,
)
plan.sizes  # AxisSizes(slices=3, channels=1, positions=1, times=1)
```
"""

from .config import AcquisitionPlan, ChannelPreset, PresetMap
from .consts import (
    ACQ_ORDER,
    AXES,
    AXIS_LABELS,
    FILE_ORDER,
    FILE_TYPE,
    JOURNAL_SUFFIX,
    ORDER_NESTING,
    PERSIST,
    RAW_DTYPE,
    RAW_EXT,
    STATE_SUFFIX,
    TIFF_EXT,
    UINT16_MAX,
)
from .frame import AxisSizes, FrameCoordinate, MetadataRecord
from .messages import FocusUpdate, FrameStored, Notification, RunComplete, StateUpdate
from .protocols import (
    DeconvolverProtocol,
    FlatFieldProtocol,
    PhaseSolverProtocol,
    StageCameraProtocol,
)
from .validation import (
    ConfirmationRequired,
    CoordinateOutOfRange,
    CorrectionError,
    DuplicateFrame,
    FrameShapeMismatch,
    IllegalStateTransition,
    IncompatibleCorrection,
    InvalidIndexSet,
    JournalUnreadable,
    MDScopeError,
    MissingZStack,
    UnknownOrder,
    UnknownPreset,
    validate_order,
)

__all__ = [
    "AcquisitionPlan",
    "ChannelPreset",
    "PresetMap",
    "ACQ_ORDER",
    "AXES",
    "AXIS_LABELS",
    "FILE_ORDER",
    "FILE_TYPE",
    "JOURNAL_SUFFIX",
    "ORDER_NESTING",
    "PERSIST",
    "RAW_DTYPE",
    "RAW_EXT",
    "STATE_SUFFIX",
    "TIFF_EXT",
    "UINT16_MAX",
    "AxisSizes",
    "FrameCoordinate",
    "MetadataRecord",
    "Notification",
    "StateUpdate",
    "FrameStored",
    "FocusUpdate",
    "RunComplete",
    "StageCameraProtocol",
    "DeconvolverProtocol",
    "PhaseSolverProtocol",
    "FlatFieldProtocol",
    "MDScopeError",
    "UnknownOrder",
    "CoordinateOutOfRange",
    "IllegalStateTransition",
    "FrameShapeMismatch",
    "InvalidIndexSet",
    "MissingZStack",
    "ConfirmationRequired",
    "DuplicateFrame",
    "JournalUnreadable",
    "UnknownPreset",
    "IncompatibleCorrection",
    "CorrectionError",
    "validate_order",
]
