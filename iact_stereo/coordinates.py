"""Frames used by the reconstruction.

Ground frame: x points north, y west, z up (metres). Azimuth is counted from
north towards east, altitude from the horizon, both in radians.

Camera frame: pixel positions in metres in the focal plane. A camera point is
mapped to a sky direction with a gnomonic (tangent plane) projection around
the pointing direction, after undoing the camera rotation::

    fov_lat =  x_rot / focal_length   (towards higher altitude)
    fov_lon = -y_rot / focal_length   (towards lower azimuth)

Straight lines in the camera are therefore great circles on the sky, which is
what makes the image axis define a plane containing the shower axis.
"""

import numpy as np

__all__ = [
    "altaz_to_vector",
    "vector_to_altaz",
    "pointing_basis",
    "camera_to_direction",
    "direction_to_camera",
    "angular_separation",
]


def altaz_to_vector(alt, az):
    """Unit vector(s) in the ground frame for altitude / azimuth in radians."""
    alt = np.asanyarray(alt, dtype=np.float64)
    az = np.asanyarray(az, dtype=np.float64)
    return np.stack([
        np.cos(alt) * np.cos(az),
        -np.cos(alt) * np.sin(az),
        np.sin(alt),
    ], axis=-1)


def vector_to_altaz(vector):
    """Altitude and azimuth (radians, azimuth in [0, 2 pi)) of a ground frame vector."""
    v = np.asanyarray(vector, dtype=np.float64)
    v = v / np.linalg.norm(v, axis=-1, keepdims=True)
    alt = np.arcsin(np.clip(v[..., 2], -1.0, 1.0))
    az = np.mod(np.arctan2(-v[..., 1], v[..., 0]), 2 * np.pi)
    return alt, az


def pointing_basis(alt, az):
    """Pointing vector and the two unit vectors spanning the tangent plane.

    Returns
    -------
    p, e_alt, e_az : ndarray
        Pointing direction, direction of increasing altitude and direction of
        increasing azimuth, all orthonormal.
    """
    p = altaz_to_vector(alt, az)
    e_alt = np.array([-np.sin(alt) * np.cos(az), np.sin(alt) * np.sin(az), np.cos(alt)])
    e_az = np.array([-np.sin(az), -np.cos(az), 0.0])
    return p, e_alt, e_az


def camera_to_direction(x, y, focal_length, alt, az, rotation=0.0):
    """Sky directions (unit vectors, shape (..., 3)) of camera points."""
    x = np.asanyarray(x, dtype=np.float64)
    y = np.asanyarray(y, dtype=np.float64)
    c, s = np.cos(rotation), np.sin(rotation)
    x_rot = c * x - s * y
    y_rot = s * x + c * y

    p, e_alt, e_az = pointing_basis(alt, az)
    fov_lat = (x_rot / focal_length)[..., np.newaxis]
    fov_lon = (-y_rot / focal_length)[..., np.newaxis]
    u = p + fov_lat * e_alt + fov_lon * e_az
    return u / np.linalg.norm(u, axis=-1, keepdims=True)


def direction_to_camera(direction, focal_length, alt, az, rotation=0.0):
    """Inverse of `camera_to_direction`.

    Directions in the hemisphere behind the telescope have no image; their
    coordinates come out as NaN.
    """
    u = np.asanyarray(direction, dtype=np.float64)
    p, e_alt, e_az = pointing_basis(alt, az)
    along = u @ p
    with np.errstate(divide="ignore", invalid="ignore"):
        t = u / np.where(along > 0, along, np.nan)[..., np.newaxis]
    x_rot = focal_length * (t @ e_alt)
    y_rot = -focal_length * (t @ e_az)

    c, s = np.cos(rotation), np.sin(rotation)
    x = c * x_rot + s * y_rot
    y = -s * x_rot + c * y_rot
    return x, y


def angular_separation(v1, v2):
    """Angle in radians between two (arrays of) vectors.

    Uses atan2 of cross and dot products, which stays accurate for small angles.
    """
    v1 = np.asanyarray(v1, dtype=np.float64)
    v2 = np.asanyarray(v2, dtype=np.float64)
    cross = np.linalg.norm(np.cross(v1, v2), axis=-1)
    dot = np.sum(v1 * v2, axis=-1)
    return np.arctan2(cross, dot)
