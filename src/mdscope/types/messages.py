"""Notifications published by the acquisition engine."""

from __future__ import annotations

from dataclasses import dataclass

from mashumaro import DataClassDictMixin


@dataclass
class Notification(DataClassDictMixin):
    """Base class for notifications put on an engine's notification queue."""

    def __repr__(self):
        fields = ", ".join(f"{key}={val}" for key, val in self.__dict__.items())
        return f"{self.__class__.__name__}({fields})"


@dataclass(repr=False)
class StateUpdate(Notification):
    old_state: str
    new_state: str
    counter: int


@dataclass(repr=False)
class FrameStored(Notification):
    counter: int
    coordinate: tuple[int, int, int, int]
    filename: str | None = None


@dataclass(repr=False)
class FocusUpdate(Notification):
    """Focus tracking result: best slice (1-based) and cumulative offset."""

    best_slice: int
    offset_um: float


@dataclass(repr=False)
class RunComplete(Notification):
    n_frames: int
    aborted: bool = False
