"""Acquisition state machine.

The engine does not talk to hardware. It tells a driver what to acquire next
(`request`) and accepts the acquired frames (`submit_frame`):

    Idle --start--> FrameRequest --submit_frame--> Busy --+--> FrameRequest
                         ^                                |--> Waiting --poll_wait--+
                         +--------------------------------+------------------------+
                                                          +--> Idle (run complete)

`Waiting` is left only once the time gate opens: the time since the last frame
must reach the difference between the requested delays of the next and the
last frame's time points. Calling an operation from any other state raises
`IllegalStateTransition`. `stop()` returns to `Idle` from anywhere.
"""

from __future__ import annotations

import math
import time
import types
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, NamedTuple

import numpy as np
from loguru import logger

from mdscope.types import (
    PERSIST,
    AcquisitionPlan,
    FocusUpdate,
    FrameCoordinate,
    FrameStored,
    IllegalStateTransition,
    MetadataRecord,
    MissingZStack,
    PresetMap,
    RunComplete,
    StateUpdate,
)
from mdscope.util import FOCUS_METHOD, focus_curve, to_coordinate

if TYPE_CHECKING:
    from queue import Queue

    from mdscope.store import IndexedImageStore
    from mdscope.types import Notification

# ----------------
# Available States
# ----------------

ACQ_STATE = types.SimpleNamespace()
ACQ_STATE.IDLE = "Idle"
ACQ_STATE.FRAME_REQUEST = "FrameRequest"
ACQ_STATE.BUSY = "Busy"
ACQ_STATE.WAITING = "Waiting"


class FrameRequest(NamedTuple):
    """What the driver must do for the next frame.

    `position_um` is the commanded stage position: the planned position with
    the slice offset and the cumulative focus offset added to z.
    """

    counter: int
    coordinate: FrameCoordinate
    channel: str | None
    settings: dict[str, Any]
    position_um: tuple[float, float, float]


class AcquisitionEngine:
    """Drives one acquisition run at a time against an image store.

    Parameters
    ----------
    store : IndexedImageStore
        Receives every frame and its metadata record.
    presets : PresetMap, optional
        Channel presets, resolved for every request and recorded with every
        frame.
    persist : str
        Store persistence mode, see `PERSIST`.
    keep_in_memory : bool
        Keep frames in the store's in-memory buffer as well.
    notif_queue : Queue, optional
        Receives `StateUpdate`, `FrameStored`, `FocusUpdate` and `RunComplete`
        notifications via `put_nowait`.
    clock : Callable[[], float]
        Monotonic time source, in seconds.
    focus_metric : Callable[[np.ndarray], np.ndarray], optional
        Scores each slice of a (rows, cols, slices) stack. Defaults to the
        mean-normalised Sobel gradient energy.
    """

    state: str = ACQ_STATE.IDLE

    def __init__(
        self,
        store: IndexedImageStore,
        presets: PresetMap | None = None,
        *,
        persist: str = PERSIST.NONE,
        keep_in_memory: bool = True,
        notif_queue: Queue[Notification] | None = None,
        clock: Callable[[], float] = time.monotonic,
        focus_metric: Callable[[np.ndarray], np.ndarray] | None = None,
    ):
        if persist not in (PERSIST.NONE, PERSIST.PER_FRAME, PERSIST.APPEND_RAW):
            raise ValueError(f"Invalid persist mode: {persist}")
        self.store = store
        self.presets = presets if presets is not None else store.presets
        self.persist = persist
        self.keep_in_memory = keep_in_memory
        self.notif_queue = notif_queue
        self.clock = clock
        self.focus_metric = focus_metric or partial(
            focus_curve, method=FOCUS_METHOD.SOBEL
        )

        self.state = ACQ_STATE.IDLE
        self.plan: AcquisitionPlan | None = None
        self.counter = 0
        self.request: FrameRequest | None = None
        self.focus_offset_um = 0.0
        self.z_stack_buffer: np.ndarray | None = None
        self.aborted = False
        self._t_start = 0.0
        self._t_last_frame = 0.0
        self._last_time_index = 1

    # ----------------------------------------------------------------------------------
    # State handling
    # ----------------------------------------------------------------------------------

    def _notify(self, notif: Notification) -> None:
        if self.notif_queue is not None:
            self.notif_queue.put_nowait(notif)

    def _change_state(self, next_state: str) -> None:
        if self.state != next_state:
            logger.info("Acquisition state: {} -> {}", self.state, next_state)
            self._notify(
                StateUpdate(old_state=self.state, new_state=next_state, counter=self.counter)
            )
        self.state = next_state

    def _expect(self, operation: str, *states: str) -> None:
        if self.state not in states:
            logger.error(
                "Acquisition engine cannot {} in state {} (needs {}).",
                operation,
                self.state,
                " or ".join(states),
            )
            raise IllegalStateTransition(
                f"Cannot {operation} in state {self.state}, needs {' or '.join(states)}."
            )

    @property
    def n_frames(self) -> int:
        return self.plan.n_frames if self.plan is not None else 0

    @property
    def progress(self) -> float:
        """Fraction of the run's frames acquired so far."""
        if not self.n_frames:
            return 0.0
        return min(self.counter - 1, self.n_frames) / self.n_frames

    # ----------------------------------------------------------------------------------
    # API
    # ----------------------------------------------------------------------------------

    def start(self, plan: AcquisitionPlan) -> FrameRequest:
        """Begin a run. Legal only from Idle."""
        self._expect("start", ACQ_STATE.IDLE)
        for channel in plan.channels:
            self.presets.resolve(channel)
        self.store.set_plan(plan, self.presets)
        self.plan = plan
        self.counter = 1
        self.focus_offset_um = 0.0
        self.aborted = False
        ns = plan.sizes.slices
        self.z_stack_buffer = (
            np.zeros((*plan.frame_shape, ns), dtype=np.uint16) if ns > 1 else None
        )
        self._t_start = self.clock()
        self._t_last_frame = self._t_start
        self._last_time_index = 1
        logger.info("Starting acquisition of {} frames: {}", plan.n_frames, plan)
        self._prepare_request()
        self._change_state(ACQ_STATE.FRAME_REQUEST)
        return self.request

    def submit_frame(self, pixels: np.ndarray) -> str:
        """Hand over the frame for the current request. Returns the new state."""
        self._expect("submit a frame", ACQ_STATE.FRAME_REQUEST)
        self._change_state(ACQ_STATE.BUSY)
        req = self.request
        now = self.clock()
        record = MetadataRecord(
            slice_number=req.coordinate.slice,
            channel_number=req.coordinate.channel,
            position_number=req.coordinate.position,
            time_number=req.coordinate.time,
            channel=req.channel,
            preset=dict(req.settings),
            position_um=self.plan.position_um(req.coordinate.position),
            slice_um=self.plan.z_offset_um(req.coordinate.slice),
            focus_offset_um=self.focus_offset_um,
            time_s=now - self._t_start,
            frame_shape=self.store.frame_shape,
        )
        try:
            filename = self.store.ingest(
                req.coordinate,
                pixels,
                record,
                persist=self.persist,
                keep_in_memory=self.keep_in_memory,
            )
        except Exception:
            logger.exception("Failed to store frame {}, aborting run.", req.counter)
            self.aborted = True
            self._change_state(ACQ_STATE.IDLE)
            raise
        self._notify(
            FrameStored(counter=req.counter, coordinate=tuple(req.coordinate), filename=filename)
        )
        if self.z_stack_buffer is not None:
            self.z_stack_buffer[..., req.coordinate.slice - 1] = pixels
        self._t_last_frame = now
        self._last_time_index = req.coordinate.time
        self.counter += 1

        if self.counter > self.plan.n_frames:
            self.request = None
            logger.info("Acquisition complete: {} frames.", self.plan.n_frames)
            self._change_state(ACQ_STATE.IDLE)
            self._notify(RunComplete(n_frames=self.plan.n_frames))
            return self.state

        self._prepare_request()
        if self.time_gate_open():
            self._change_state(ACQ_STATE.FRAME_REQUEST)
        else:
            self._change_state(ACQ_STATE.WAITING)
        return self.state

    def poll_wait(self) -> str:
        """Re-check the time gate while Waiting. Returns the new state."""
        self._expect("poll the time gate", ACQ_STATE.WAITING)
        if self.time_gate_open():
            self._change_state(ACQ_STATE.FRAME_REQUEST)
        return self.state

    def time_gate_open(self) -> bool:
        """Whether the pending request's time point may be acquired now."""
        if self.request is None:
            return False
        required = self.plan.time_delay_s(
            self.request.coordinate.time
        ) - self.plan.time_delay_s(self._last_time_index)
        return self.clock() - self._t_last_frame >= required

    def track_focus(
        self, z_stack_buffer: np.ndarray | None = None, z_step_um: float | None = None
    ) -> float:
        """Update the cumulative focus offset from a z-stack.

        The offset moves by `z_step_um * (best - middle)`, with `best` the
        best-focused slice and `middle = ceil(n_slices / 2)` (both 1-based).

        Parameters
        ----------
        z_stack_buffer : np.ndarray, optional
            (rows, cols, slices) stack, by default the most recent z-stack.
        z_step_um : float, optional
            Slice spacing, by default that of the plan.

        Returns
        -------
        float
            The new cumulative focus offset.
        """
        self._expect(
            "track focus", ACQ_STATE.IDLE, ACQ_STATE.FRAME_REQUEST, ACQ_STATE.WAITING
        )
        stack = z_stack_buffer if z_stack_buffer is not None else self.z_stack_buffer
        if stack is None or np.ndim(stack) != 3 or np.shape(stack)[-1] < 2:
            raise MissingZStack("Focus tracking needs a z-stack of at least 2 slices")
        if z_step_um is None:
            z_step_um = self.plan.z_step_um if self.plan is not None else 0.0
        scores = np.asarray(self.focus_metric(stack))
        best = int(np.argmax(scores)) + 1
        middle = math.ceil(stack.shape[-1] / 2)
        self.focus_offset_um += z_step_um * (best - middle)
        logger.info(
            "Focus tracking: best slice {} of {}, offset now {} um.",
            best,
            stack.shape[-1],
            self.focus_offset_um,
        )
        self._notify(FocusUpdate(best_slice=best, offset_um=self.focus_offset_um))
        if self.request is not None:
            self._prepare_request()
        return self.focus_offset_um

    def stop(self) -> None:
        """Abandon the run. Frames and journal records already written are kept."""
        if self.state == ACQ_STATE.IDLE:
            return
        logger.warning("Acquisition stopped at frame {} of {}.", self.counter, self.n_frames)
        self.aborted = True
        self.request = None
        self._change_state(ACQ_STATE.IDLE)
        self._notify(RunComplete(n_frames=self.counter - 1, aborted=True))

    # ----------------------------------------------------------------------------------

    def _prepare_request(self) -> None:
        plan = self.plan
        coord = to_coordinate(plan.acquisition_order, plan.sizes, self.counter)
        channel = plan.channel_name(coord.channel)
        preset = self.presets.resolve(channel)
        x, y, z = plan.position_um(coord.position)
        z += plan.z_offset_um(coord.slice) + self.focus_offset_um
        self.request = FrameRequest(
            counter=self.counter,
            coordinate=coord,
            channel=channel,
            settings=dict(preset.settings),
            position_um=(x, y, z),
        )
