"""IACT Stereo: image cleaning, Hillas parametrization and stereoscopic reconstruction.

Submodules:
  - instrument: camera geometries and the telescope array registry.
  - cleaning: tail-cut image cleaning.
  - hillas: Hillas (moment) parametrization of cleaned images.
  - stereo: direction and impact reconstruction from several telescopes.
  - coordinates: ground, pointing and camera frames.
  - containers: records passed between the steps.
  - pipeline: full chain, parallel processing, event aggregation, CSV output.
  - classifier: gamma/hadron scoring with a pre-trained model.
  - event_source: JSON event files.
  - simulation: toy shower images.
  - analysis: resolution plots.
  - config: cleaning levels and reconstruction settings.
"""

from .cleaning import clean_event, clean_image, tailcuts_clean
from .config import load_config
from .containers import ArrayEvent, Moments, RawImage, ReconstructedEvent, ShowerImage
from .errors import DegenerateGeometry, InsufficientSignal, InvalidReason, UnknownTelescope
from .hillas import hillas_parameters
from .instrument import CameraGeometry, PixelType, TelescopeArray, TelescopeDescriptor, TelescopeType
from .pipeline import EventAggregator, process_event, process_events, write_events_csv
from .stereo import StereoReconstructor, reconstruct_event

__version__ = "0.1.0"

__all__ = [
    "ArrayEvent",
    "CameraGeometry",
    "DegenerateGeometry",
    "EventAggregator",
    "InsufficientSignal",
    "InvalidReason",
    "Moments",
    "PixelType",
    "RawImage",
    "ReconstructedEvent",
    "ShowerImage",
    "StereoReconstructor",
    "TelescopeArray",
    "TelescopeDescriptor",
    "TelescopeType",
    "UnknownTelescope",
    "clean_event",
    "clean_image",
    "hillas_parameters",
    "load_config",
    "process_event",
    "process_events",
    "reconstruct_event",
    "tailcuts_clean",
    "write_events_csv",
]
