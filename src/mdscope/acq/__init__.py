"""
Multi-dimensional acquisition: the request/acknowledge state machine and the
loop that serves it with a stage/camera driver.

Examples
--------
```python
from mdscope.acq import AcquisitionEngine, run_acquisition
from mdscope.store import IndexedImageStore

store = IndexedImageStore(plan.frame_shape, directory="./data", prefix="UVM")
engine = AcquisitionEngine(store, presets, persist="perFrame")
run_acquisition(engine, plan, driver)
```
"""

from .engine import ACQ_STATE, AcquisitionEngine, FrameRequest
from .runner import run_acquisition

__all__ = ["ACQ_STATE", "AcquisitionEngine", "FrameRequest", "run_acquisition"]
