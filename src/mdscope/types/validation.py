"""Exceptions and validation helpers.

Errors fall into four groups:

1. Fatal programming/protocol errors (illegal state transitions, frame shape
   mismatches, unknown acquisition orders). These propagate.
2. Recoverable data errors (truncated journals, ambiguous metadata). These are
   logged as warnings and handled by best-effort inference, so they mostly do
   not surface as exceptions.
3. Confirmation-gated operations, which raise `ConfirmationRequired` unless the
   caller passes the explicit override flag.
4. Out-of-range requests (`CoordinateOutOfRange`, `InvalidIndexSet`), which
   fail locally with a descriptive message.
"""

from __future__ import annotations

from .consts import ORDER_NESTING


class MDScopeError(Exception):
    """Base exception for mdscope errors."""

    pass


class UnknownOrder(MDScopeError, ValueError):
    """Raised when an acquisition order tag is outside the supported set."""

    pass


class CoordinateOutOfRange(MDScopeError, IndexError):
    """Raised when a counter or coordinate lies outside the plan's axis sizes."""

    pass


class IllegalStateTransition(MDScopeError, RuntimeError):
    """Raised when an acquisition engine operation is called from the wrong state."""

    pass


class FrameShapeMismatch(MDScopeError, ValueError):
    """Raised when a frame does not match the store's frame shape."""

    pass


class DuplicateFrame(MDScopeError, ValueError):
    """Raised when a store is given a frame it already holds."""

    pass


class InvalidIndexSet(MDScopeError, IndexError):
    """Raised when a requested slice/channel/position/time subset is invalid."""

    pass


class MissingZStack(MDScopeError):
    """Raised when a correction needs a z-stack but the data has a single slice."""

    pass


class ConfirmationRequired(MDScopeError):
    """Raised when an operation would overwrite state without an explicit override."""

    pass


class JournalUnreadable(MDScopeError):
    """Raised when a metadata journal cannot be parsed, even after repair."""

    pass


class UnknownPreset(MDScopeError, KeyError):
    """Raised when a channel has no entry in the preset map."""

    pass


class IncompatibleCorrection(MDScopeError):
    """Raised when a correction model was built for different instrument settings."""

    pass


class CorrectionError(MDScopeError):
    """Base exception for correction pipeline failures."""

    pass


def validate_order(order: str) -> str:
    """Check `order` is a supported acquisition order tag and return it."""
    if order not in ORDER_NESTING:
        raise UnknownOrder(
            f"Unknown acquisition order '{order}'. "
            + f"Supported orders: {', '.join(ORDER_NESTING)}"
        )
    return order
