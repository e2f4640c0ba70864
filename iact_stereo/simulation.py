"""Toy shower images for tests and benchmarks.

The shower axis is a straight line through the core point along the arrival
direction. Each telescope sees it as a line in its camera; the image is an
elliptical Gaussian centred on the projection of the shower maximum, with its
major axis along that line, plus optional Gaussian pixel noise.
"""

import numpy as np

from .containers import ArrayEvent, MonteCarloTruth
from .coordinates import altaz_to_vector, direction_to_camera
from .instrument import TelescopeArray, TelescopeDescriptor

__all__ = ["project_shower_axis", "shower_image", "toy_event"]

SHOWER_MAX_HEIGHT = 10000.0
SHOWER_START_HEIGHT = 14000.0
SHOWER_END_HEIGHT = 6000.0


def _camera_point(telescope, point, pointing_alt, pointing_az):
    sight = np.asarray(point, dtype=np.float64) - np.asarray(telescope.position)
    sight /= np.linalg.norm(sight)
    x, y = direction_to_camera(sight, telescope.focal_length, pointing_alt, pointing_az,
                               rotation=telescope.camera.cam_rotation)
    return float(x), float(y)


def project_shower_axis(telescope: TelescopeDescriptor, shower_alt, shower_az, core,
                        pointing_alt, pointing_az):
    """Camera positions of the shower maximum, shower start and shower end.

    `core` is the (x, y, z) impact point on the ground.
    """
    d = altaz_to_vector(shower_alt, shower_az)
    core = np.asarray(core, dtype=np.float64)
    points = []
    for height in (SHOWER_MAX_HEIGHT, SHOWER_START_HEIGHT, SHOWER_END_HEIGHT):
        t = (height - core[2]) / d[2]
        points.append(_camera_point(telescope, core + t * d, pointing_alt, pointing_az))
    return points


def shower_image(telescope: TelescopeDescriptor, shower_alt, shower_az, core, pointing_alt,
                 pointing_az, intensity=1000.0, width=None, noise=0.0, rng=None):
    """Pixel intensities of a toy shower seen by one telescope.

    Parameters
    ----------
    intensity : float
        Total number of photo-electrons before noise.
    width : float, optional
        Gaussian width across the axis in metres, default one pixel pitch.
    noise : float
        Standard deviation of Gaussian noise added to every pixel.
    """
    geometry = telescope.camera
    (mx, my), (sx, sy), (ex, ey) = project_shower_axis(
        telescope, shower_alt, shower_az, core, pointing_alt, pointing_az
    )
    pitch = np.sqrt(geometry.pix_area[0])
    axis = np.array([sx - ex, sy - ey])
    sigma_l = max(0.5 * np.linalg.norm(axis), 2.0 * pitch)
    sigma_w = pitch if width is None else width
    axis /= np.linalg.norm(axis)

    dx = geometry.pix_x - mx
    dy = geometry.pix_y - my
    along = dx * axis[0] + dy * axis[1]
    across = -dx * axis[1] + dy * axis[0]
    amplitude = intensity * geometry.pix_area / (2 * np.pi * sigma_l * sigma_w)
    image = amplitude * np.exp(-0.5 * (along / sigma_l) ** 2 - 0.5 * (across / sigma_w) ** 2)

    if noise > 0:
        rng = rng or np.random.default_rng()
        image = image + rng.normal(0.0, noise, size=image.shape)
    return image


def toy_event(event_id, array: TelescopeArray, shower_alt, shower_az, core_x, core_y,
              pointing_alt=None, pointing_az=None, telescope_ids=None, intensity=1000.0,
              noise=0.0, energy=np.nan, rng=None) -> ArrayEvent:
    """ArrayEvent with toy images for the selected telescopes.

    The array points at the shower direction unless a pointing is given.
    Telescopes whose image centre falls outside the camera do not trigger.
    """
    pointing_alt = shower_alt if pointing_alt is None else pointing_alt
    pointing_az = shower_az if pointing_az is None else pointing_az
    core = (core_x, core_y, 0.0)

    images = {}
    for tel_id in (telescope_ids or array.telescope_ids):
        telescope = array.telescope(tel_id)
        (mx, my), _, _ = project_shower_axis(telescope, shower_alt, shower_az, core,
                                             pointing_alt, pointing_az)
        camera_radius = np.hypot(telescope.camera.pix_x, telescope.camera.pix_y).max()
        if not np.hypot(mx, my) < camera_radius:
            continue
        images[tel_id] = shower_image(telescope, shower_alt, shower_az, core, pointing_alt,
                                      pointing_az, intensity=intensity, noise=noise, rng=rng)

    mc = MonteCarloTruth(alt=shower_alt, az=shower_az, core_x=core_x, core_y=core_y, energy=energy)
    return ArrayEvent(event_id, pointing_alt, pointing_az, images, mc)
