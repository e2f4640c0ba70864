"""Records passed between the stages of the analysis.

RawImage -> ShowerImage -> Moments per telescope, then Moments of one event
-> ReconstructedEvent.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Optional

import numpy as np
import pandas as pd

from .errors import InvalidReason
from .instrument import CameraGeometry

__all__ = [
    "MonteCarloTruth",
    "ArrayEvent",
    "RawImage",
    "ShowerImage",
    "Moments",
    "ReconstructedEvent",
    "moments_to_frame",
    "events_to_frame",
]


@dataclass(frozen=True)
class MonteCarloTruth:
    """Simulated shower parameters (angles in rad, core in m, energy in TeV)."""
    alt: float
    az: float
    core_x: float = np.nan
    core_y: float = np.nan
    energy: float = np.nan


@dataclass(frozen=True, eq=False)
class RawImage:
    event_id: int
    telescope_id: int
    image: np.ndarray

    def __post_init__(self):
        image = np.array(self.image, dtype=np.float64)
        image.setflags(write=False)
        object.__setattr__(self, "image", image)


@dataclass(frozen=True, eq=False)
class ArrayEvent:
    """All images of one triggered event plus the array pointing (rad)."""
    event_id: int
    pointing_alt: float
    pointing_az: float
    images: dict = field(default_factory=dict)
    mc: Optional[MonteCarloTruth] = None

    @property
    def n_triggered(self) -> int:
        return len(self.images)

    def raw_images(self):
        for telescope_id, image in self.images.items():
            yield RawImage(self.event_id, telescope_id, image)


@dataclass(frozen=True, eq=False)
class ShowerImage:
    """Pixels of a RawImage that survived cleaning."""
    event_id: int
    telescope_id: int
    geometry: CameraGeometry
    mask: np.ndarray
    intensities: np.ndarray

    @classmethod
    def from_mask(cls, raw: RawImage, geometry: CameraGeometry, mask) -> "ShowerImage":
        mask = np.array(mask, dtype=bool)
        mask.setflags(write=False)
        intensities = raw.image[mask]
        intensities.setflags(write=False)
        return cls(raw.event_id, raw.telescope_id, geometry, mask, intensities)

    @property
    def n_pixels(self) -> int:
        return int(self.mask.sum())

    @property
    def is_empty(self) -> bool:
        return self.n_pixels == 0

    @property
    def pixel_ids(self) -> np.ndarray:
        return self.geometry.pix_id[self.mask]

    @property
    def pix_x(self) -> np.ndarray:
        return self.geometry.pix_x[self.mask]

    @property
    def pix_y(self) -> np.ndarray:
        return self.geometry.pix_y[self.mask]

    def to_image(self) -> np.ndarray:
        """Full camera image with the discarded pixels set to zero."""
        image = np.zeros(self.geometry.n_pixels)
        image[self.mask] = self.intensities
        return image


@dataclass(frozen=True)
class Moments:
    """Hillas parameters of one cleaned image.

    Lengths in metres in the camera plane, `phi` in [0, pi) radians.
    When `valid` is False every float field is NaN and `reason` tells why.
    """
    event_id: int
    telescope_id: int
    n_pixels: int
    cen_x: float
    cen_y: float
    size: float
    width: float
    length: float
    skewness: float
    kurtosis: float
    phi: float
    miss: float
    r: float
    valid: bool = True
    reason: Optional[InvalidReason] = None

    @classmethod
    def invalid(cls, event_id, telescope_id, n_pixels=0,
                reason=InvalidReason.INSUFFICIENT_SIGNAL) -> "Moments":
        nan = float("nan")
        return cls(event_id, telescope_id, int(n_pixels),
                   nan, nan, nan, nan, nan, nan, nan, nan, nan, nan,
                   valid=False, reason=InvalidReason(reason))

    def as_dict(self) -> dict:
        d = asdict(self)
        d["reason"] = self.reason.value if self.reason else None
        return d


@dataclass(frozen=True)
class ReconstructedEvent:
    """Stereo reconstruction result for one event.

    `direction` points from the ground towards the shower origin (ground
    frame), `impact` is the shower core on the observation plane.
    """
    event_id: int
    direction: tuple
    impact: tuple
    alt: float
    az: float
    n_telescopes: int
    valid: bool = True
    reason: Optional[InvalidReason] = None
    residual: float = float("nan")

    @classmethod
    def invalid(cls, event_id, n_telescopes=0,
                reason=InvalidReason.DEGENERATE_GEOMETRY) -> "ReconstructedEvent":
        nan = float("nan")
        return cls(event_id, (nan, nan, nan), (nan, nan), nan, nan, int(n_telescopes),
                   valid=False, reason=InvalidReason(reason))

    def as_dict(self) -> dict:
        return {
            "event_id": self.event_id,
            "direction_x": self.direction[0],
            "direction_y": self.direction[1],
            "direction_z": self.direction[2],
            "impact_x": self.impact[0],
            "impact_y": self.impact[1],
            "alt": self.alt,
            "az": self.az,
            "n_telescopes": self.n_telescopes,
            "valid": self.valid,
            "reason": self.reason.value if self.reason else None,
            "residual": self.residual,
        }


def moments_to_frame(moments) -> pd.DataFrame:
    """Table with one row per Moments record."""
    columns = [f.name for f in Moments.__dataclass_fields__.values()]
    return pd.DataFrame([m.as_dict() for m in moments], columns=columns)


def events_to_frame(events) -> pd.DataFrame:
    """Table with one row per ReconstructedEvent."""
    rows = [e.as_dict() for e in events]
    columns = list(ReconstructedEvent.invalid(0).as_dict())
    return pd.DataFrame(rows, columns=columns)
