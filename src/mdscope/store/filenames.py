"""Frame file naming conventions.

- `indexed` (default): <prefix>_sl<S>_ch<C>_p<P>_t<T>.<ext>
- `linear` (legacy): <prefix><k - 1>.<ext>, with `k` the frame counter under
  the dataset's acquisition order and axis sizes.
"""

from __future__ import annotations

from loguru import logger

from mdscope.types import (
    FILE_ORDER,
    TIFF_EXT,
    AxisSizes,
    CoordinateOutOfRange,
    FrameCoordinate,
)
from mdscope.util.indexing import to_counter


def indexed_filename(prefix: str, coordinate: FrameCoordinate, ext: str = TIFF_EXT) -> str:
    s, c, p, t = coordinate
    return f"{prefix}_sl{s}_ch{c}_p{p}_t{t}.{ext}"


def linear_filename(prefix: str, counter: int, ext: str = TIFF_EXT) -> str:
    return f"{prefix}{counter - 1}.{ext}"


def get_filename(
    file_order: str,
    prefix: str,
    coordinate: FrameCoordinate,
    acquisition_order: str | None = None,
    sizes: AxisSizes | None = None,
    ext: str = TIFF_EXT,
) -> str:
    """Filename of the frame at `coordinate`.

    For the `linear` convention a frame counter that cannot be computed, either
    because the coordinate lies outside `sizes` or because no order and sizes
    are given, is not fatal: a warning is logged and the first frame's name is
    returned.
    """
    match file_order:
        case FILE_ORDER.INDEXED:
            return indexed_filename(prefix, coordinate, ext)
        case FILE_ORDER.LINEAR:
            counter = 1
            if acquisition_order is None or sizes is None:
                logger.warning("No acquisition order and sizes, using default name.")
            else:
                try:
                    counter = to_counter(acquisition_order, sizes, coordinate)
                except CoordinateOutOfRange as e:
                    logger.warning(
                        "Could not compute frame counter ({}), using default name.", e
                    )
            return linear_filename(prefix, counter, ext)
        case _:
            raise ValueError(f"Invalid file order: {file_order}")
