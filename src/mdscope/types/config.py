"""Configuration types: acquisition plans and channel presets."""

from __future__ import annotations

import dataclasses
import types
from dataclasses import dataclass, field
from typing import Any, Mapping

import numpy as np
from mashumaro import DataClassDictMixin

from .consts import ACQ_ORDER
from .frame import AxisSizes
from .validation import ConfirmationRequired, UnknownPreset, validate_order


@dataclass(frozen=True, kw_only=True, repr=False)
class AcquisitionPlan(DataClassDictMixin):
    """Immutable description of a multi-dimensional acquisition.

    Empty sequences describe a singleton axis: e.g. no z offsets means a single
    slice at offset 0, no positions means a single position at the origin.

    Attributes
    ----------
    positions_um : tuple[tuple[float, float, float], ...]
        Stage positions (x, y, z) in micrometres.
    z_offsets_um : tuple[float, ...]
        Slice offsets relative to each position's z, in micrometres.
    time_delays_s : tuple[float, ...]
        Requested delay of each time point from the start of the run. Must be
        non-decreasing.
    channels : tuple[str, ...]
        Channel names, each resolved against a `PresetMap`.
    frame_shape : tuple[int, int]
        (rows, cols) of each frame.
    acquisition_order : str
        One of the `ACQ_ORDER` tags.
    """

    positions_um: tuple[tuple[float, float, float], ...] = ()
    z_offsets_um: tuple[float, ...] = ()
    time_delays_s: tuple[float, ...] = ()
    channels: tuple[str, ...] = ()
    frame_shape: tuple[int, int]
    acquisition_order: str = ACQ_ORDER.ZCXYT

    def __post_init__(self):
        validate_order(self.acquisition_order)
        positions = tuple(tuple(float(v) for v in pos) for pos in self.positions_um)
        for pos in positions:
            if len(pos) != 3:
                raise ValueError(f"Positions need 3 components (x, y, z), got {pos}")
        delays = tuple(float(d) for d in self.time_delays_s)
        if any(b < a for a, b in zip(delays, delays[1:])):
            raise ValueError(f"Time delays must be non-decreasing, got {delays}")
        shape = tuple(int(n) for n in self.frame_shape)
        if len(shape) != 2 or min(shape) < 1:
            raise ValueError(f"Invalid frame shape {self.frame_shape}")
        object.__setattr__(self, "positions_um", positions)
        object.__setattr__(self, "time_delays_s", delays)
        object.__setattr__(
            self, "z_offsets_um", tuple(float(z) for z in self.z_offsets_um)
        )
        object.__setattr__(self, "channels", tuple(str(c) for c in self.channels))
        object.__setattr__(self, "frame_shape", shape)

    def __repr__(self):
        return (
            f"{self.__class__.__name__}(order={self.acquisition_order}, "
            + f"sizes={tuple(self.sizes)}, frame_shape={self.frame_shape})"
        )

    @property
    def sizes(self) -> AxisSizes:
        return AxisSizes(
            max(1, len(self.z_offsets_um)),
            max(1, len(self.channels)),
            max(1, len(self.positions_um)),
            max(1, len(self.time_delays_s)),
        )

    @property
    def n_frames(self) -> int:
        return self.sizes.n_frames

    @property
    def z_step_um(self) -> float:
        """Spacing of the first two slices, 0 for a single slice."""
        if len(self.z_offsets_um) < 2:
            return 0.0
        return self.z_offsets_um[1] - self.z_offsets_um[0]

    # 1-based accessors, tolerant of singleton (empty) axes

    def position_um(self, position: int) -> tuple[float, float, float]:
        if not self.positions_um:
            return (0.0, 0.0, 0.0)
        return self.positions_um[position - 1]

    def z_offset_um(self, slice_: int) -> float:
        if not self.z_offsets_um:
            return 0.0
        return self.z_offsets_um[slice_ - 1]

    def time_delay_s(self, time: int) -> float:
        if not self.time_delays_s:
            return 0.0
        return self.time_delays_s[time - 1]

    def channel_name(self, channel: int) -> str | None:
        if not self.channels:
            return None
        return self.channels[channel - 1]


@dataclass(frozen=True, kw_only=True)
class ChannelPreset(DataClassDictMixin):
    """Instrument settings applied when acquiring a channel (exposure, LED etc.)."""

    name: str
    settings: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PresetMap:
    """Read-only mapping of channel name to preset, plus per-channel backgrounds.

    Passed to the engine, store and correction pipeline at construction.
    Changes produce a new map (see `with_background`).
    """

    presets: Mapping[str, ChannelPreset] = field(default_factory=dict)
    backgrounds: Mapping[str, np.ndarray] = field(default_factory=dict)

    def __post_init__(self):
        object.__setattr__(
            self, "presets", types.MappingProxyType(dict(self.presets))
        )
        object.__setattr__(
            self, "backgrounds", types.MappingProxyType(dict(self.backgrounds))
        )

    def __contains__(self, name) -> bool:
        return name in self.presets

    def __len__(self) -> int:
        return len(self.presets)

    @property
    def channels(self) -> tuple[str, ...]:
        return tuple(self.presets)

    def resolve(self, channel: str | None) -> ChannelPreset:
        """Preset for `channel`; an empty preset when the plan names no channels."""
        if channel is None:
            return ChannelPreset(name="")
        try:
            return self.presets[channel]
        except KeyError:
            raise UnknownPreset(
                f"No preset for channel '{channel}'. "
                + f"Available: {', '.join(self.presets) or '<none>'}"
            ) from None

    def background(self, channel: str | None) -> np.ndarray | None:
        if channel is None:
            return None
        return self.backgrounds.get(channel)

    def with_background(
        self, channel: str, image: np.ndarray, overwrite: bool = False
    ) -> PresetMap:
        """Return a new map with `image` as the background for `channel`."""
        if channel in self.backgrounds and not overwrite:
            raise ConfirmationRequired(
                f"Background image for channel '{channel}' already exists, "
                + "pass overwrite=True to replace it."
            )
        backgrounds = dict(self.backgrounds)
        backgrounds[channel] = np.asarray(image)
        return dataclasses.replace(self, backgrounds=backgrounds)

    @classmethod
    def from_dict(cls, d: Mapping[str, Mapping[str, Any]]) -> PresetMap:
        """Build from `{preset_name: {setting: value}}`, the presets file format."""
        return cls(
            presets={
                name: ChannelPreset(name=name, settings=dict(settings))
                for name, settings in d.items()
            }
        )

    def to_dict(self) -> dict[str, dict[str, Any]]:
        return {name: dict(p.settings) for name, p in self.presets.items()}
