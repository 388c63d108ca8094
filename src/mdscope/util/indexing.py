"""Acquisition-order index algebra.

An acquisition visits every (slice, channel, position, time) coordinate exactly
once. The order tag fixes which axis varies fastest: the frame counter `k`
(1-based) is a mixed-radix number whose digits, fastest first, are the
(0-based) indices along the axes named by the tag.

For `ZCXYT` with sizes (3, 2, 1, 1):

    k:     1        2        3        4        5        6
    coord: (1,1,1,1) (2,1,1,1) (3,1,1,1) (1,2,1,1) (2,2,1,1) (3,2,1,1)

All functions are pure.
"""

from __future__ import annotations

from typing import Iterator

from mdscope.types import (
    ORDER_NESTING,
    AxisSizes,
    CoordinateOutOfRange,
    FrameCoordinate,
    validate_order,
)


def axis_nesting(order: str) -> tuple[str, str, str, str]:
    """Axis names for `order`, fastest-varying first."""
    return ORDER_NESTING[validate_order(order)]


def _check_sizes(sizes: AxisSizes) -> AxisSizes:
    sizes = AxisSizes(*sizes)
    if min(sizes) < 1:
        raise CoordinateOutOfRange(f"Axis sizes must be positive, got {tuple(sizes)}")
    return sizes


def to_coordinate(order: str, sizes: AxisSizes, k: int) -> FrameCoordinate:
    """Coordinate of the `k`-th frame (1-based) of an acquisition.

    Parameters
    ----------
    order : str
        Acquisition order tag, see `mdscope.types.ACQ_ORDER`.
    sizes : AxisSizes
        (slices, channels, positions, times).
    k : int
        Frame counter in [1, N].

    Returns
    -------
    FrameCoordinate
        1-based (slice, channel, position, time).

    Raises
    ------
    UnknownOrder
        If `order` is not a supported tag.
    CoordinateOutOfRange
        If `k` is outside [1, N].
    """
    nesting = axis_nesting(order)
    sizes = _check_sizes(sizes)
    if not 1 <= k <= sizes.n_frames:
        raise CoordinateOutOfRange(
            f"Counter {k} outside [1, {sizes.n_frames}] for sizes {tuple(sizes)}"
        )
    rem = k - 1
    idx = {}
    for axis in nesting:
        rem, digit = divmod(rem, sizes.of(axis))
        idx[axis] = digit + 1
    return FrameCoordinate(idx["slice"], idx["channel"], idx["position"], idx["time"])


def to_counter(order: str, sizes: AxisSizes, coordinate: FrameCoordinate) -> int:
    """Inverse of `to_coordinate`: the 1-based counter of `coordinate`."""
    nesting = axis_nesting(order)
    sizes = _check_sizes(sizes)
    coordinate = FrameCoordinate(*coordinate)
    k = 0
    stride = 1
    for axis in nesting:
        i = coordinate.of(axis)
        n = sizes.of(axis)
        if not 1 <= i <= n:
            raise CoordinateOutOfRange(
                f"{axis} index {i} outside [1, {n}] for coordinate {tuple(coordinate)}"
            )
        k += (i - 1) * stride
        stride *= n
    return k + 1


def iter_coordinates(order: str, sizes: AxisSizes) -> Iterator[FrameCoordinate]:
    """All coordinates of an acquisition, in acquisition order."""
    sizes = _check_sizes(sizes)
    for k in range(1, sizes.n_frames + 1):
        yield to_coordinate(order, sizes, k)
