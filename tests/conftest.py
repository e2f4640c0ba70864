import numpy as np
import pytest

from iact_stereo.containers import Moments, RawImage, ShowerImage
from iact_stereo.instrument import CameraGeometry, TelescopeArray, TelescopeDescriptor, TelescopeType
from iact_stereo.simulation import project_shower_axis

POINTING_ALT = np.deg2rad(70.0)
POINTING_AZ = 0.0
SHOWER_ALT = np.deg2rad(70.5)
SHOWER_AZ = np.deg2rad(1.0)
CORE = (30.0, -20.0, 0.0)


@pytest.fixture(scope="session")
def hex_camera():
    return CameraGeometry.hexagonal("HexCam", n_rings=30, pitch=0.05)


@pytest.fixture(scope="session")
def rect_camera():
    return CameraGeometry.rectangular("RectCam", n_x=10, n_y=8, pitch=0.05)


@pytest.fixture(scope="session")
def array(hex_camera):
    """Four telescopes on a 120 m square around the origin."""
    positions = {1: (120.0, 0.0, 0.0), 2: (0.0, 120.0, 0.0), 3: (-120.0, 0.0, 0.0), 4: (0.0, -120.0, 0.0)}
    telescopes = [
        TelescopeDescriptor(tel_id, TelescopeType.MST, hex_camera, pos, focal_length=28.0)
        for tel_id, pos in positions.items()
    ]
    return TelescopeArray(telescopes, name="toy")


def gaussian_image(geometry, cen_x, cen_y, phi, sigma_l, sigma_w, total=1000.0):
    """Elliptical Gaussian with major axis at angle phi, sampled at the pixel centres."""
    dx = geometry.pix_x - cen_x
    dy = geometry.pix_y - cen_y
    along = dx * np.cos(phi) + dy * np.sin(phi)
    across = -dx * np.sin(phi) + dy * np.cos(phi)
    amplitude = total * geometry.pix_area / (2 * np.pi * sigma_l * sigma_w)
    return amplitude * np.exp(-0.5 * (along / sigma_l) ** 2 - 0.5 * (across / sigma_w) ** 2)


def full_shower_image(geometry, image, event_id=1, telescope_id=1):
    """ShowerImage keeping every pixel of `image`."""
    raw = RawImage(event_id, telescope_id, image)
    return ShowerImage.from_mask(raw, geometry, np.ones(geometry.n_pixels, dtype=bool))


def exact_moments(array, telescope_id, event_id=1, shower_alt=SHOWER_ALT, shower_az=SHOWER_AZ,
                  core=CORE, size=1000.0, length=0.1, width=0.02):
    """Moments whose axis is the exact camera projection of the shower axis."""
    telescope = array.telescope(telescope_id)
    (mx, my), (sx, sy), (ex, ey) = project_shower_axis(
        telescope, shower_alt, shower_az, core, POINTING_ALT, POINTING_AZ
    )
    phi = np.mod(np.arctan2(sy - ey, sx - ex), np.pi)
    return Moments(
        event_id=event_id, telescope_id=telescope_id, n_pixels=50,
        cen_x=mx, cen_y=my, size=size, width=width, length=length,
        skewness=0.0, kurtosis=3.0, phi=phi,
        miss=abs(mx * np.sin(phi) - my * np.cos(phi)), r=np.hypot(mx, my),
    )


def line_moments(telescope_id, cen_x, cen_y, phi, event_id=1, size=1000.0, length=0.1, width=0.02):
    return Moments(
        event_id=event_id, telescope_id=telescope_id, n_pixels=50,
        cen_x=cen_x, cen_y=cen_y, size=size, width=width, length=length,
        skewness=0.0, kurtosis=3.0, phi=phi,
        miss=abs(cen_x * np.sin(phi) - cen_y * np.cos(phi)), r=np.hypot(cen_x, cen_y),
    )
