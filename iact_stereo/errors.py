"""Error taxonomy for the image analysis and stereo reconstruction chain.

Only `UnknownTelescope` ever reaches the caller. `InsufficientSignal` and
`DegenerateGeometry` are raised by internal helpers and turned into records
flagged invalid (with an `InvalidReason`) at the public functions.
"""

from __future__ import annotations

from enum import Enum


class InvalidReason(str, Enum):
    INSUFFICIENT_SIGNAL = "InsufficientSignal"
    DEGENERATE_GEOMETRY = "DegenerateGeometry"


class ReconstructionError(Exception):
    """Base class for all errors of this package."""


class UnknownTelescope(ReconstructionError, KeyError):
    """Telescope id is not part of the telescope array."""

    def __init__(self, telescope_id):
        self.telescope_id = telescope_id
        super().__init__(f"Unknown telescope id: {telescope_id!r}")

    def __str__(self) -> str:
        # KeyError would repr() the message otherwise
        return self.args[0]

    def __reduce__(self):
        return type(self), (self.telescope_id,)


class InsufficientSignal(ReconstructionError):
    reason = InvalidReason.INSUFFICIENT_SIGNAL


class DegenerateGeometry(ReconstructionError):
    reason = InvalidReason.DEGENERATE_GEOMETRY
