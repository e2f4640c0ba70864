"""Tail-cut image cleaning.

Core pixels are above the (high) core threshold. Boundary pixels are above
the (low) boundary threshold and touch at least one core pixel. Everything
else is treated as night sky background and dropped.
"""

import logging

import numpy as np

from .config import cleaning_levels_for
from .containers import ArrayEvent, RawImage, ShowerImage
from .errors import UnknownTelescope
from .instrument import CameraGeometry, TelescopeArray

logger = logging.getLogger(__name__)

__all__ = ["tailcuts_clean", "clean_image", "clean_event"]


def tailcuts_clean(geometry: CameraGeometry, image, core_threshold: float,
                   boundary_threshold: float, min_core_neighbors: int = 0) -> np.ndarray:
    """Boolean signal mask for `image`.

    Parameters
    ----------
    geometry : CameraGeometry
        Supplies the pixel adjacency.
    image : array_like
        One intensity per pixel, aligned with the geometry.
    core_threshold, boundary_threshold : float
        Intensity cuts, ``boundary_threshold <= core_threshold``. Equal
        thresholds mean single-threshold cleaning.
    min_core_neighbors : int
        Core pixels with fewer core neighbors than this are dropped before
        the boundary is added (removes isolated noise spikes). 0 disables it.

    Returns
    -------
    ndarray of bool
        True for pixels kept as signal.
    """
    image = np.asanyarray(image, dtype=np.float64)
    if image.shape != (geometry.n_pixels,):
        raise ValueError(
            f"Image has shape {image.shape}, camera {geometry.name} has {geometry.n_pixels} pixels"
        )
    if boundary_threshold > core_threshold:
        raise ValueError(
            f"boundary_threshold ({boundary_threshold}) must not exceed core_threshold ({core_threshold})"
        )

    adjacency = geometry.adjacency
    core = image >= core_threshold
    if min_core_neighbors > 0:
        n_core_neighbors = adjacency @ core.astype(np.int64)
        core &= n_core_neighbors >= min_core_neighbors

    touches_core = (adjacency @ core.astype(np.int64)) > 0
    boundary = (image >= boundary_threshold) & touches_core
    return core | boundary


def clean_image(raw: RawImage, geometry: CameraGeometry, core_threshold: float,
                boundary_threshold: float, min_core_neighbors: int = 0) -> ShowerImage:
    """Apply `tailcuts_clean` and keep the surviving pixels. May return an empty image."""
    mask = tailcuts_clean(geometry, raw.image, core_threshold, boundary_threshold, min_core_neighbors)
    shower = ShowerImage.from_mask(raw, geometry, mask)
    if shower.is_empty:
        logger.debug("Event %s, telescope %s: no pixel survived cleaning", raw.event_id, raw.telescope_id)
    return shower


def clean_event(event: ArrayEvent, array: TelescopeArray, config: dict = None, unknown: list = None):
    """Yield one ShowerImage per triggered telescope of `event`.

    Thresholds are looked up per camera name in the configuration.
    An image of a telescope not in `array` raises UnknownTelescope, unless
    a list is passed as `unknown`: then its telescope id is appended there,
    the image is skipped and the remaining images are still cleaned.
    """
    for raw in event.raw_images():
        try:
            geometry = array.camera(raw.telescope_id)
        except UnknownTelescope:
            if unknown is None:
                raise
            logger.error("Event %s: image of unknown telescope %s skipped", raw.event_id, raw.telescope_id)
            unknown.append(raw.telescope_id)
            continue
        boundary, core, min_neighbors = cleaning_levels_for(geometry.name, config)
        yield clean_image(raw, geometry, core, boundary, min_neighbors)
