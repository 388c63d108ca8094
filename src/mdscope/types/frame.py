"""Frame coordinates, axis sizes and per-frame metadata records."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, NamedTuple

from mashumaro import DataClassDictMixin


class AxisSizes(NamedTuple):
    """Cardinality of each acquisition axis."""

    slices: int = 1
    channels: int = 1
    positions: int = 1
    times: int = 1

    @property
    def n_frames(self) -> int:
        return self.slices * self.channels * self.positions * self.times

    def of(self, axis: str) -> int:
        """Size of the named axis (`slice`, `channel`, `position` or `time`)."""
        return self[_AXIS_INDEX[axis]]


class FrameCoordinate(NamedTuple):
    """1-based (slice, channel, position, time) index of a frame."""

    slice: int
    channel: int
    position: int
    time: int

    def of(self, axis: str) -> int:
        return self[_AXIS_INDEX[axis]]


_AXIS_INDEX = {"slice": 0, "channel": 1, "position": 2, "time": 3}


@dataclass(kw_only=True)
class MetadataRecord(DataClassDictMixin):
    """One journal entry, written for every acquired frame.

    `preset` holds the resolved channel configuration at acquisition time,
    `position_um` the planned stage position, `slice_um` the slice offset and
    `focus_offset_um` the focus-tracking correction in effect. The commanded z
    is their sum. `time_s` is the elapsed time since the start of the run.
    """

    slice_number: int
    channel_number: int
    position_number: int
    time_number: int
    channel: str | None = None
    preset: dict[str, Any] = field(default_factory=dict)
    position_um: tuple[float, float, float] = (0.0, 0.0, 0.0)
    slice_um: float = 0.0
    focus_offset_um: float = 0.0
    time_s: float = 0.0
    frame_shape: tuple[int, int] = (0, 0)

    @property
    def coordinate(self) -> FrameCoordinate:
        return FrameCoordinate(
            self.slice_number,
            self.channel_number,
            self.position_number,
            self.time_number,
        )
