# -*- coding: utf-8 -*-
"""# mdscope

Multi-dimensional microscope acquisition and post-processing.

mdscope drives a stage and camera through z-stacks over channels, stage
positions and time points, stores every frame with an incremental metadata
journal, and corrects the acquired images afterwards (flat-field,
deconvolution, refocusing, alignment, registration, PCA and phase retrieval).

- `mdscope.acq`: acquisition state machine and driver loop
- `mdscope.store`: indexed image store, journal and dataset reconstruction
- `mdscope.correct`: correction pipeline and export
- `mdscope.system`: scope configuration and orchestration
- `mdscope.cli`: the `mdscope` command
"""

from ._version import __version__
