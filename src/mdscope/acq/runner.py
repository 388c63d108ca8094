"""Driver loop serving an acquisition engine's requests in real time."""

from __future__ import annotations

import threading
import time
from typing import TYPE_CHECKING, Callable

from loguru import logger
from tqdm import tqdm

from mdscope.types import AcquisitionPlan, StageCameraProtocol
from mdscope.util import DEFAULT_POLL_INTERVAL

from .engine import ACQ_STATE, AcquisitionEngine

if TYPE_CHECKING:
    from mdscope.store import IndexedImageStore


def run_acquisition(
    engine: AcquisitionEngine,
    plan: AcquisitionPlan,
    driver: StageCameraProtocol,
    *,
    poll_interval_s: float = DEFAULT_POLL_INTERVAL,
    track_focus: bool = False,
    stop_event: threading.Event | None = None,
    sleep: Callable[[float], None] = time.sleep,
    progress: bool = False,
) -> IndexedImageStore:
    """Run `plan` to completion (or until `stop_event` is set).

    The stage is only moved when the requested position changes and the
    channel only switched when the requested channel changes. With
    `track_focus`, the engine's focus offset is updated from the most recent
    z-stack each time the XY position changes.

    Returns
    -------
    IndexedImageStore
        The engine's store, holding the acquired frames.
    """
    if not isinstance(driver, StageCameraProtocol):
        raise TypeError(f"{driver!r} does not implement the stage/camera protocol")
    engine.start(plan)
    last_position = None
    last_channel = None
    last_xy = None
    acquired = 0

    with tqdm(total=plan.n_frames, desc="Acquiring", disable=not progress) as bar:
        while engine.state != ACQ_STATE.IDLE:
            if stop_event is not None and stop_event.is_set():
                engine.stop()
                break
            match engine.state:
                case ACQ_STATE.FRAME_REQUEST:
                    req = engine.request
                    xy = req.position_um[:2]
                    if (
                        track_focus
                        and last_xy is not None
                        and xy != last_xy
                        and engine.z_stack_buffer is not None
                    ):
                        engine.track_focus()
                        req = engine.request
                    if req.position_um != last_position:
                        driver.move_to(req.position_um)
                        last_position = req.position_um
                    if acquired == 0 or req.channel != last_channel:
                        driver.select_channel(req.channel, req.settings)
                        last_channel = req.channel
                    frame = driver.capture_frame()
                    last_xy = xy
                    engine.submit_frame(frame)
                    acquired += 1
                    bar.update(1)
                case ACQ_STATE.WAITING:
                    if engine.poll_wait() == ACQ_STATE.WAITING:
                        sleep(poll_interval_s)
                case _:
                    raise RuntimeError(f"Unexpected acquisition state {engine.state}")

    logger.info(
        "Acquisition loop finished after {} frames{}.",
        acquired,
        " (stopped)" if engine.aborted else "",
    )
    return engine.store
