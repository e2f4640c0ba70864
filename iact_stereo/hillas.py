"""Hillas parametrization of cleaned shower images.

Reference: Hillas (1985); Appendix of Weekes et al. (1989),
http://adsabs.harvard.edu/abs/1989ApJ...342..379W

The ellipse axes come from an eigen-decomposition of the intensity weighted
covariance matrix of the pixel positions instead of the closed-form slope
`a` of the paper, so vertical and perfectly round images need no special case.
"""

import logging

import numpy as np

from .containers import Moments, ShowerImage
from .errors import InsufficientSignal

logger = logging.getLogger(__name__)

__all__ = ["hillas_parameters", "hillas_parameters_from_images", "MIN_PIXELS"]

MIN_PIXELS = 5


def _normalize_phi(phi: float) -> float:
    """Map an axis angle to [0, pi); the axis has no direction."""
    phi = float(np.mod(phi, np.pi))
    # np.mod can round tiny negative angles up to exactly pi
    if phi >= np.pi:
        phi -= np.pi
    return phi


def _moments(x, y, w, min_pixels):
    if len(w) < min_pixels:
        raise InsufficientSignal(f"{len(w)} pixels, need at least {min_pixels}")
    size = w.sum()
    if not size > 0:
        raise InsufficientSignal(f"image size {size} is not positive")

    cen_x = np.sum(w * x) / size
    cen_y = np.sum(w * y) / size
    dx = x - cen_x
    dy = y - cen_y

    cov = np.array([
        [np.sum(w * dx * dx), np.sum(w * dx * dy)],
        [np.sum(w * dx * dy), np.sum(w * dy * dy)],
    ]) / size
    # eigh returns eigenvalues in ascending order
    eig_vals, eig_vecs = np.linalg.eigh(cov)
    width = np.sqrt(max(eig_vals[0], 0.0))
    length = np.sqrt(max(eig_vals[1], 0.0))
    if not length > 0:
        raise InsufficientSignal("all signal in a single point, no image axis")

    phi = _normalize_phi(np.arctan2(eig_vecs[1, 1], eig_vecs[0, 1]))
    cos_phi, sin_phi = np.cos(phi), np.sin(phi)

    # coordinate along the major axis, sign fixed by the normalized phi
    longitudinal = dx * cos_phi + dy * sin_phi
    skewness = np.sum(w * longitudinal ** 3) / size / length ** 3
    kurtosis = np.sum(w * longitudinal ** 4) / size / length ** 4

    miss = abs(cen_x * sin_phi - cen_y * cos_phi)
    r = np.hypot(cen_x, cen_y)

    return dict(
        cen_x=float(cen_x), cen_y=float(cen_y), size=float(size),
        width=float(width), length=float(length),
        skewness=float(skewness), kurtosis=float(kurtosis),
        phi=phi, miss=float(miss), r=float(r),
    )


def hillas_parameters(image: ShowerImage, min_pixels: int = MIN_PIXELS) -> Moments:
    """Compute the Hillas parameters of a cleaned image.

    Parameters
    ----------
    image : ShowerImage
        Output of the cleaning, possibly empty.
    min_pixels : int
        Images with fewer pixels are flagged invalid.

    Returns
    -------
    Moments
        Flagged invalid (all float fields NaN) when the image has too few
        pixels, no positive total intensity or no extent.
    """
    x = image.pix_x
    y = image.pix_y
    w = np.asanyarray(image.intensities, dtype=np.float64)
    try:
        params = _moments(x, y, w, min_pixels)
    except InsufficientSignal as e:
        logger.debug("Event %s, telescope %s: invalid moments (%s)", image.event_id, image.telescope_id, e)
        return Moments.invalid(image.event_id, image.telescope_id, len(w), e.reason)
    return Moments(image.event_id, image.telescope_id, len(w), **params)


def hillas_parameters_from_images(images, min_pixels: int = MIN_PIXELS) -> list:
    """Moments for each ShowerImage of an event, invalid ones included."""
    return [hillas_parameters(image, min_pixels) for image in images]
