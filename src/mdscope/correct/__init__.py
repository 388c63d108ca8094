"""
Image corrections applied after acquisition.

Examples
--------
```python
from mdscope.correct import CorrectionPipeline, Refocus

pipeline = CorrectionPipeline(store)
pipeline.run(Refocus(radius=1, return_method="average"))
pipeline.export_corrected("./corrected", "UVM", write_valid_focus_only=True)
```

See Also
--------
mdscope.correct.kinds : The available corrections and their parameters
"""

from .flatfield import PolynomialFlatField
from .kinds import (
    PCA,
    RETURN_METHOD,
    Alignment,
    ChannelRegistration,
    Correction,
    Deconvolution,
    FlatField,
    Parfocal,
    PhaseRetrieval,
    Refocus,
    ZStackAlignment,
)
from .pipeline import CorrectionPipeline
from .refocus import RefocusResult, focus_window, refocus

__all__ = [
    "PolynomialFlatField",
    "PCA",
    "RETURN_METHOD",
    "Alignment",
    "ChannelRegistration",
    "Correction",
    "Deconvolution",
    "FlatField",
    "Parfocal",
    "PhaseRetrieval",
    "Refocus",
    "ZStackAlignment",
    "CorrectionPipeline",
    "RefocusResult",
    "focus_window",
    "refocus",
]
