"""Rebuild a dataset's acquisition structure from its metadata journal.

The journal records each frame's coordinate but not the plan. The acquisition
order is recovered from how long each axis index stays at its first value
(its run length): faster axes change sooner. Axes that never change are
singletons. Axis sizes are the distinct index counts.

A run that stopped early has fewer records than the product of those sizes.
Only the slowest-varying changing axis can be incomplete, so it alone is
reduced, by `ceil(missing / product(other sizes))`. The result is then a
best guess and flagged `exact=False`.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Sequence

from loguru import logger

from mdscope.types import (
    AXES,
    AXIS_LABELS,
    ORDER_NESTING,
    AcquisitionPlan,
    AxisSizes,
    JournalUnreadable,
    PresetMap,
    UnknownOrder,
)

RECORD_FIELDS = {
    "slice": "slice_number",
    "channel": "channel_number",
    "position": "position_number",
    "time": "time_number",
}


@dataclass
class ReconstructedDataset:
    """Acquisition structure recovered from a journal.

    Attributes
    ----------
    acquisition_order : str
        Supported order tag consistent with the journal, or the raw inferred
        axis labels (fastest first) if no supported tag fits.
    sizes : AxisSizes
        Recovered axis sizes.
    exact : bool
        False when the journal was truncated or inconsistent.
    warnings : list[str]
        Everything that was guessed.
    """

    acquisition_order: str
    sizes: AxisSizes
    n_records: int
    channels: tuple[str | None, ...] = ()
    positions_um: tuple[tuple[float, float, float], ...] = ()
    z_offsets_um: tuple[float, ...] = ()
    time_delays_s: tuple[float, ...] = ()
    frame_shape: tuple[int, int] | None = None
    presets: dict[str, dict[str, Any]] = field(default_factory=dict)
    exact: bool = True
    warnings: list[str] = field(default_factory=list)

    @property
    def n_frames(self) -> int:
        return self.sizes.n_frames

    @property
    def order_supported(self) -> bool:
        return self.acquisition_order in ORDER_NESTING

    def to_plan(self, frame_shape: tuple[int, int] | None = None) -> AcquisitionPlan:
        """Acquisition plan matching the recovered structure."""
        if not self.order_supported:
            raise UnknownOrder(
                f"Journal order '{self.acquisition_order}' is not a supported order"
            )
        frame_shape = frame_shape or self.frame_shape
        if frame_shape is None:
            raise ValueError("Frame shape unknown, pass it explicitly")
        channels = ()
        if self.sizes.channels > 1 or any(self.channels):
            channels = tuple(
                c if c is not None else f"ch{i + 1}" for i, c in enumerate(self.channels)
            )
        return AcquisitionPlan(
            positions_um=self.positions_um if self.sizes.positions > 1 else (),
            z_offsets_um=self.z_offsets_um if self.sizes.slices > 1 else (),
            time_delays_s=self.time_delays_s if self.sizes.times > 1 else (),
            channels=channels,
            frame_shape=frame_shape,
            acquisition_order=self.acquisition_order,
        )

    def to_presets(self) -> PresetMap:
        return PresetMap.from_dict(self.presets)


def run_length(values: Sequence[int]) -> float:
    """Number of leading entries equal to the first, `inf` if all are equal."""
    first = values[0]
    for i, v in enumerate(values):
        if v != first:
            return i
    return math.inf


def match_order(axes_fastest_first: Sequence[str]) -> str | None:
    """First supported order tag whose nesting agrees with the given axes."""
    wanted = list(axes_fastest_first)
    for tag, nesting in ORDER_NESTING.items():
        if [a for a in nesting if a in wanted] == wanted:
            return tag
    return None


def reconstruct_from_journal(
    records: Sequence[Mapping[str, Any]],
    overrides: Mapping[str, Sequence[int]] | None = None,
    frame_shape: tuple[int, int] | None = None,
) -> ReconstructedDataset:
    """Recover order, axis sizes and axis values from journal records.

    Parameters
    ----------
    records : Sequence[Mapping[str, Any]]
        Journal records in acquisition order.
    overrides : Mapping[str, Sequence[int]], optional
        Per-axis index sequences (keyed by `slice`, `channel`, `position`,
        `time`) to use instead of the record fields, for journals written
        without them.
    frame_shape : tuple[int, int], optional
        Used when the records do not carry a frame shape.

    Raises
    ------
    JournalUnreadable
        If there are no records.
    """
    if not records:
        raise JournalUnreadable("Cannot reconstruct a dataset from an empty journal")
    overrides = overrides or {}
    n = len(records)
    notes = []

    values = {}
    for axis in AXES:
        key = RECORD_FIELDS[axis]
        if axis in overrides:
            vals = [int(v) for v in overrides[axis]]
            if len(vals) != n:
                raise ValueError(
                    f"Override for {axis} has {len(vals)} entries, journal has {n}"
                )
        elif all(key in r for r in records):
            vals = [int(r[key]) for r in records]
        else:
            notes.append(f"No '{key}' in journal records, assuming a single {axis}.")
            vals = [1] * n
        values[axis] = vals

    runs = {axis: run_length(values[axis]) for axis in AXES}
    # stable: singletons keep the default Z, C, XY, T order
    ordered = sorted(AXES, key=lambda a: runs[a])
    changing = [a for a in ordered if runs[a] != math.inf]
    order = match_order(changing)
    if order is None:
        order = "".join(AXIS_LABELS[a] for a in ordered)
        notes.append(f"Inferred order {order} is not a supported acquisition order.")

    counts = {axis: len(set(values[axis])) for axis in AXES}
    expected = math.prod(counts.values())
    delta = expected - n
    if delta > 0 and changing:
        slowest = changing[-1]
        others = math.prod(counts[a] for a in AXES if a != slowest)
        reduced = max(1, counts[slowest] - math.ceil(delta / others))
        notes.append(
            f"Journal has {n} of {expected} records, reducing {slowest} "
            + f"from {counts[slowest]} to {reduced}."
        )
        counts[slowest] = reduced
    elif delta < 0:
        notes.append(
            f"Journal has {n} records, more than the {expected} its indices span."
        )

    sizes = AxisSizes(counts["slice"], counts["channel"], counts["position"], counts["time"])
    result = ReconstructedDataset(
        acquisition_order=order,
        sizes=sizes,
        n_records=n,
        channels=tuple(
            _first_value(records, values["channel"], i, "channel")
            for i in range(1, sizes.channels + 1)
        ),
        positions_um=tuple(
            tuple(_first_value(records, values["position"], i, "position_um") or (0.0, 0.0, 0.0))
            for i in range(1, sizes.positions + 1)
        ),
        z_offsets_um=tuple(
            float(_first_value(records, values["slice"], i, "slice_um") or 0.0)
            for i in range(1, sizes.slices + 1)
        ),
        time_delays_s=tuple(
            _first_time(records, values["time"], i) for i in range(1, sizes.times + 1)
        ),
        frame_shape=_frame_shape(records, frame_shape),
        presets=_presets(records),
        exact=not notes,
        warnings=notes,
    )
    for note in notes:
        logger.warning("Journal reconstruction: {}", note)
    return result


def _first_value(records, indices, index, key):
    for record, i in zip(records, indices):
        if i == index:
            return record.get(key)
    return None


def _first_time(records, indices, index) -> float:
    times = [float(r.get("time_s", 0.0)) for r, i in zip(records, indices) if i == index]
    return min(times) if times else 0.0


def _frame_shape(records, default):
    shape = records[0].get("frame_shape")
    if shape and min(shape) > 0:
        return (int(shape[0]), int(shape[1]))
    return default


def _presets(records) -> dict[str, dict[str, Any]]:
    presets = {}
    for r in records:
        name = r.get("channel")
        if name is not None and name not in presets:
            presets[name] = dict(r.get("preset") or {})
    return presets
