"""Named constants shared across the acquisition, store and correction layers."""

import types

# ---------------------------
# Acquisition orders
# ---------------------------

# each tag lists its axes from fastest- to slowest-varying
ACQ_ORDER = types.SimpleNamespace()
ACQ_ORDER.ZCXYT = "ZCXYT"
ACQ_ORDER.CZXYT = "CZXYT"
ACQ_ORDER.TCZXY = "TCZXY"
ACQ_ORDER.TZCXY = "TZCXY"
ACQ_ORDER.ZXYCT = "ZXYCT"
ACQ_ORDER.ZXYTC = "ZXYTC"
ACQ_ORDER.T = "T"

AXES = ("slice", "channel", "position", "time")
AXIS_LABELS = {"slice": "Z", "channel": "C", "position": "XY", "time": "T"}

ORDER_NESTING: dict[str, tuple[str, str, str, str]] = {
    ACQ_ORDER.ZCXYT: ("slice", "channel", "position", "time"),
    ACQ_ORDER.CZXYT: ("channel", "slice", "position", "time"),
    ACQ_ORDER.TCZXY: ("time", "channel", "slice", "position"),
    ACQ_ORDER.TZCXY: ("time", "slice", "channel", "position"),
    ACQ_ORDER.ZXYCT: ("slice", "position", "channel", "time"),
    ACQ_ORDER.ZXYTC: ("slice", "position", "time", "channel"),
    # time series: time fastest, the remaining axes nest as in TCZXY
    ACQ_ORDER.T: ("time", "channel", "slice", "position"),
}

# ---------------------------
# Persistence & file naming
# ---------------------------

PERSIST = types.SimpleNamespace()
PERSIST.NONE = "none"
PERSIST.PER_FRAME = "perFrame"
PERSIST.APPEND_RAW = "appendRaw"

FILE_ORDER = types.SimpleNamespace()
FILE_ORDER.INDEXED = "indexed"
FILE_ORDER.LINEAR = "linear"

FILE_TYPE = types.SimpleNamespace()
FILE_TYPE.TIFF = "tiff"
FILE_TYPE.RAW = "raw"

TIFF_EXT = "tiff"
RAW_EXT = "dat"
JOURNAL_SUFFIX = "_metadata.json"
STATE_SUFFIX = "_store.json"

# samples are little-endian unsigned 16-bit
RAW_DTYPE = "<u2"
UINT16_MAX = 65535
