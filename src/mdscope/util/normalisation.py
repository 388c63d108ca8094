import numpy as np


def rescale_intensity(data: np.ndarray, n_bits: int = 16) -> np.ndarray:
    """Stretch `data` linearly onto [0, 2**n_bits - 1] and return it as uint16.

    A constant array maps to zeros.
    """
    if not 1 <= n_bits <= 16:
        raise ValueError(f"n_bits must be in [1, 16], got {n_bits}")
    data = np.asarray(data, dtype=float)
    lo = np.nanmin(data)
    span = np.nanmax(data) - lo
    if not span:
        return np.zeros(data.shape, dtype=np.uint16)
    top = 2**n_bits - 1
    return np.round((data - lo) / span * top).astype(np.uint16)


def to_uint16(data: np.ndarray) -> np.ndarray:
    """Clip to the uint16 range and convert."""
    return np.clip(np.round(data), 0, 65535).astype(np.uint16)
