"""Stereoscopic reconstruction of the shower direction and impact point.

Every image axis, seen through its telescope's optics, spans a plane through
the telescope that contains the shower axis. The shower direction lies in all
of these planes, the impact point lies on all of their ground traces.

Direction: the unit vector ``d`` minimizing ``sum_i w_i (n_i . d)**2`` with
``n_i`` the plane normals, i.e. the eigenvector with the smallest eigenvalue
of ``sum_i w_i n_i n_i^T``. For two telescopes this is ``n_1 x n_2``.

Impact: weighted least squares for the point ``(x, y, h)`` on the observation
plane satisfying ``n_i . (point - T_i) = 0`` for every telescope position T_i.

Weights: ``w_i = size_i * (1 - width_i / length_i)``. Bright, elongated
images constrain the axis best; round images carry no axis information.
"""

import logging
from itertools import combinations

import numpy as np

from .config import resolve_config
from .containers import Moments, ReconstructedEvent
from .coordinates import altaz_to_vector, angular_separation, camera_to_direction, vector_to_altaz
from .errors import DegenerateGeometry, InsufficientSignal
from .instrument import TelescopeArray

logger = logging.getLogger(__name__)

__all__ = ["StereoReconstructor", "reconstruct_event", "image_weight", "stereo_angles"]


def image_weight(moments: Moments) -> float:
    """Contribution of one image to the fit."""
    return moments.size * (1.0 - moments.width / moments.length)


class StereoReconstructor:
    """Combine the Moments of one event into a ReconstructedEvent.

    Parameters
    ----------
    array : TelescopeArray
        Supplies positions, focal lengths and camera rotations.
    config : dict, optional
        Uses ``max_direction_offset_deg``, ``plane_tolerance`` and
        ``observation_level``; defaults from `iact_stereo.config`.
    """

    def __init__(self, array: TelescopeArray, config: dict = None):
        config = resolve_config(config)
        self.array = array
        self.max_offset = np.deg2rad(config["max_direction_offset_deg"])
        self.plane_tolerance = config["plane_tolerance"]
        self.observation_level = config["observation_level"]

    def reconstruct(self, moments, pointing_alt: float, pointing_az: float,
                    reference=None) -> ReconstructedEvent:
        """Reconstruct one event.

        Parameters
        ----------
        moments : iterable of Moments
            All images of one event; invalid ones are ignored.
        pointing_alt, pointing_az : float
            Array pointing in radians.
        reference : (alt, az), optional
            Known direction (e.g. simulated) used to fill `residual`.

        Returns
        -------
        ReconstructedEvent
            Flagged invalid when fewer than two usable images exist or the
            geometry does not determine a direction. Never raises for
            numerical reasons; raises UnknownTelescope when a valid Moments
            belongs to a telescope outside the array. Invalid Moments are
            not looked up.
        """
        moments = list(moments)
        event_ids = {m.event_id for m in moments}
        if len(event_ids) > 1:
            raise ValueError(f"Moments of several events passed together: {sorted(event_ids)}")
        event_id = event_ids.pop() if event_ids else None

        used = [(m, self.array.telescope(m.telescope_id)) for m in moments if m.valid]

        try:
            direction, impact = self._fit(used, pointing_alt, pointing_az)
        except (InsufficientSignal, DegenerateGeometry) as e:
            logger.debug("Event %s: invalid reconstruction (%s)", event_id, e)
            return ReconstructedEvent.invalid(event_id, len(used), e.reason)

        alt, az = vector_to_altaz(direction)
        residual = np.nan
        if reference is not None:
            residual = float(angular_separation(direction, altaz_to_vector(*reference)))

        return ReconstructedEvent(
            event_id=event_id,
            direction=tuple(float(v) for v in direction),
            impact=(float(impact[0]), float(impact[1])),
            alt=float(alt),
            az=float(az),
            n_telescopes=len(used),
            residual=residual,
        )

    __call__ = reconstruct

    def plane_normal(self, moments: Moments, telescope, pointing_alt, pointing_az) -> np.ndarray:
        """Unit normal of the plane spanned by the image axis and the telescope."""
        step = 0.01 * telescope.focal_length
        xs = moments.cen_x + np.array([0.0, step * np.cos(moments.phi)])
        ys = moments.cen_y + np.array([0.0, step * np.sin(moments.phi)])
        u = camera_to_direction(xs, ys, telescope.focal_length, pointing_alt, pointing_az,
                                rotation=telescope.camera.cam_rotation)
        normal = np.cross(u[0], u[1])
        return normal / np.linalg.norm(normal)

    # FIT ============================================================

    def _fit(self, used, pointing_alt, pointing_az):
        if len(used) < 2:
            raise InsufficientSignal(f"{len(used)} valid images, need at least 2")

        normals = np.array([self.plane_normal(m, t, pointing_alt, pointing_az) for m, t in used])
        weights = np.array([image_weight(m) for m, _ in used])
        positions = np.array([t.position for _, t in used])
        if not np.all(np.isfinite(normals)) or not weights.sum() > 0:
            raise DegenerateGeometry("no image carries axis information")

        direction = self._fit_direction(normals, weights, pointing_alt, pointing_az)
        impact = self._fit_impact(normals, weights, positions)
        return direction, impact

    def _fit_direction(self, normals, weights, pointing_alt, pointing_az):
        matrix = np.einsum("i,ij,ik->jk", weights, normals, normals)
        eig_vals, eig_vecs = np.linalg.eigh(matrix)
        if not eig_vals[2] > 0 or eig_vals[1] < self.plane_tolerance * eig_vals[2]:
            raise DegenerateGeometry("shower planes coincide")

        direction = eig_vecs[:, 0]
        pointing = altaz_to_vector(pointing_alt, pointing_az)
        if direction @ pointing < 0:
            direction = -direction

        # parallel image axes cross at infinity, i.e. 90 deg off the pointing
        offset = angular_separation(direction, pointing)
        if offset > self.max_offset:
            raise DegenerateGeometry(
                f"direction {np.rad2deg(offset):.1f} deg off pointing, image axes (nearly) parallel"
            )
        return direction

    def _fit_impact(self, normals, weights, positions):
        h = self.observation_level
        a = normals[:, :2]
        b = np.einsum("ij,ij->i", normals, positions) - normals[:, 2] * h

        lhs = np.einsum("i,ij,ik->jk", weights, a, a)
        rhs = np.einsum("i,ij,i->j", weights, a, b)
        det = np.linalg.det(lhs)
        if not abs(det) > self.plane_tolerance * np.trace(lhs) ** 2:
            raise DegenerateGeometry("ground traces of the shower planes are parallel")
        return np.linalg.solve(lhs, rhs)


def reconstruct_event(moments, array: TelescopeArray, pointing_alt: float, pointing_az: float,
                      reference=None, config: dict = None) -> ReconstructedEvent:
    """Shortcut for ``StereoReconstructor(array, config).reconstruct(...)``."""
    return StereoReconstructor(array, config).reconstruct(moments, pointing_alt, pointing_az, reference)


def stereo_angles(moments, array: TelescopeArray, pointing_alt: float, pointing_az: float) -> list:
    """Angles (rad, in [0, pi/2]) between the shower planes of all valid image pairs.

    Small angles mean the planes nearly coincide and the direction is poorly
    constrained.
    """
    reco = StereoReconstructor(array)
    normals = [
        reco.plane_normal(m, array.telescope(m.telescope_id), pointing_alt, pointing_az)
        for m in moments if m.valid
    ]
    angles = []
    for n1, n2 in combinations(normals, 2):
        angle = float(angular_separation(n1, n2))
        angles.append(min(angle, np.pi - angle))
    return angles
