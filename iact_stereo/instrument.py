"""Camera geometries, telescope descriptions and the telescope array registry."""

from __future__ import annotations

import gzip
import json
import logging
from dataclasses import dataclass
from enum import Enum
from functools import cached_property
from types import MappingProxyType
from typing import Iterable

import numpy as np
import pandas as pd
from scipy.sparse import csr_matrix
from scipy.spatial import cKDTree

from .errors import UnknownTelescope

logger = logging.getLogger(__name__)

__all__ = [
    "PixelType",
    "TelescopeType",
    "CameraGeometry",
    "TelescopeDescriptor",
    "TelescopeArray",
    "compute_neighbors",
]


class PixelType(Enum):
    HEXAGONAL = "hexagonal"
    RECTANGULAR = "rectangular"


class TelescopeType(Enum):
    LST = 0
    MST = 1
    SST = 2


# neighbor search radius in units of the pixel pitch:
# 6 neighbors on a hex grid, 4 (no diagonals) on a square grid
_NEIGHBOR_RADIUS = {
    PixelType.HEXAGONAL: 1.4,
    PixelType.RECTANGULAR: 1.1,
}


def _readonly(values, dtype=np.float64) -> np.ndarray:
    arr = np.array(values, dtype=dtype)
    arr.setflags(write=False)
    return arr


def compute_neighbors(pix_x, pix_y, pix_type: PixelType) -> tuple:
    """Neighbor index arrays for every pixel, found by a radius search around each pixel."""
    points = np.column_stack([pix_x, pix_y])
    if len(points) < 2:
        return tuple(_readonly([], dtype=np.int64) for _ in range(len(points)))

    tree = cKDTree(points)
    dist, _ = tree.query(points, k=2)
    pitch = dist[:, 1].min()
    found = tree.query_ball_point(points, r=_NEIGHBOR_RADIUS[pix_type] * pitch)
    return tuple(
        _readonly(sorted(j for j in idx if j != i), dtype=np.int64)
        for i, idx in enumerate(found)
    )


@dataclass(frozen=True, eq=False)
class CameraGeometry:
    """Pixel layout of one camera type.

    Positions are in metres in the focal plane, rotations in radians.
    All arrays are read-only after construction.
    """
    name: str
    pix_x: np.ndarray
    pix_y: np.ndarray
    pix_area: np.ndarray
    pix_type: PixelType
    neighbors: tuple = None
    pix_id: np.ndarray = None
    cam_rotation: float = 0.0
    pix_rotation: float = 0.0

    def __post_init__(self):
        pix_x = _readonly(self.pix_x)
        pix_y = _readonly(self.pix_y)
        if pix_x.shape != pix_y.shape or pix_x.ndim != 1:
            raise ValueError(f"{self.name}: pix_x and pix_y must be 1d arrays of equal length")
        n = len(pix_x)

        pix_type = PixelType(self.pix_type)
        pix_area = np.broadcast_to(np.asarray(self.pix_area, dtype=np.float64), (n,))
        pix_id = _readonly(np.arange(n) if self.pix_id is None else self.pix_id, dtype=np.int64)
        if pix_id.shape != (n,):
            raise ValueError(f"{self.name}: got {pix_id.size} pixel ids for {n} pixels")
        if self.neighbors is None:
            neighbors = compute_neighbors(pix_x, pix_y, pix_type)
        else:
            neighbors = tuple(_readonly(nb, dtype=np.int64) for nb in self.neighbors)
        if len(neighbors) != n:
            raise ValueError(f"{self.name}: got {len(neighbors)} neighbor lists for {n} pixels")

        object.__setattr__(self, "pix_x", pix_x)
        object.__setattr__(self, "pix_y", pix_y)
        object.__setattr__(self, "pix_area", _readonly(pix_area))
        object.__setattr__(self, "pix_id", pix_id)
        object.__setattr__(self, "pix_type", pix_type)
        object.__setattr__(self, "neighbors", neighbors)
        object.__setattr__(self, "cam_rotation", float(self.cam_rotation))
        object.__setattr__(self, "pix_rotation", float(self.pix_rotation))

    @property
    def n_pixels(self) -> int:
        return len(self.pix_x)

    def __len__(self):
        return self.n_pixels

    def __repr__(self):
        return f"CameraGeometry(name={self.name!r}, pix_type={self.pix_type.value}, n_pixels={self.n_pixels})"

    @cached_property
    def adjacency(self) -> csr_matrix:
        """Symmetric boolean pixel adjacency matrix built from the neighbor lists."""
        rows = np.repeat(np.arange(self.n_pixels), [len(nb) for nb in self.neighbors])
        cols = np.concatenate(self.neighbors) if rows.size else np.array([], dtype=np.int64)
        data = np.ones(len(rows))
        matrix = csr_matrix((data, (rows, cols)), shape=(self.n_pixels, self.n_pixels))
        return ((matrix + matrix.T) > 0).tocsr()

    # CONSTRUCTORS ============================================================

    @classmethod
    def hexagonal(cls, name: str, n_rings: int, pitch: float, **kwargs) -> "CameraGeometry":
        """Hexagonal camera: a centre pixel plus `n_rings` rings, 1 + 3n(n+1) pixels."""
        q, r = [], []
        for i in range(-n_rings, n_rings + 1):
            for j in range(max(-n_rings, -i - n_rings), min(n_rings, -i + n_rings) + 1):
                q.append(i)
                r.append(j)
        q = np.array(q, dtype=np.float64)
        r = np.array(r, dtype=np.float64)
        pix_x = pitch * (q + r / 2.0)
        pix_y = pitch * np.sqrt(3) / 2.0 * r
        area = np.sqrt(3) / 2.0 * pitch ** 2
        return cls(name, pix_x, pix_y, area, PixelType.HEXAGONAL, **kwargs)

    @classmethod
    def rectangular(cls, name: str, n_x: int, n_y: int, pitch: float, **kwargs) -> "CameraGeometry":
        """Square pixel grid of n_x * n_y pixels centred on the optical axis."""
        xs = (np.arange(n_x) - (n_x - 1) / 2.0) * pitch
        ys = (np.arange(n_y) - (n_y - 1) / 2.0) * pitch
        pix_x, pix_y = np.meshgrid(xs, ys)
        return cls(name, pix_x.ravel(), pix_y.ravel(), pitch ** 2, PixelType.RECTANGULAR, **kwargs)

    @classmethod
    def from_dict(cls, name: str, data: dict) -> "CameraGeometry":
        """Build a geometry from a dict as stored in an array definition file.

        Angles in the dict are in degrees. `neighbors` and `pix_area` are optional.
        """
        pix_x = np.asarray(data["pix_x"], dtype=np.float64)
        pix_type = PixelType(data.get("pix_type", "hexagonal").lower())
        if "pix_area" in data:
            pix_area = data["pix_area"]
        else:
            points = np.column_stack([pix_x, data["pix_y"]])
            pitch = cKDTree(points).query(points, k=2)[0][:, 1].min()
            pix_area = pitch ** 2 * (np.sqrt(3) / 2.0 if pix_type is PixelType.HEXAGONAL else 1.0)
        return cls(
            name=name,
            pix_x=pix_x,
            pix_y=data["pix_y"],
            pix_area=pix_area,
            pix_type=pix_type,
            neighbors=data.get("neighbors"),
            pix_id=data.get("pix_id"),
            cam_rotation=np.deg2rad(data.get("cam_rotation", 0.0)),
            pix_rotation=np.deg2rad(data.get("pix_rotation", 0.0)),
        )

    def to_dict(self) -> dict:
        """Inverse of `from_dict`."""
        return {
            "pix_id": self.pix_id.tolist(),
            "pix_x": self.pix_x.tolist(),
            "pix_y": self.pix_y.tolist(),
            "pix_area": self.pix_area.tolist(),
            "pix_type": self.pix_type.value,
            "neighbors": [nb.tolist() for nb in self.neighbors],
            "cam_rotation": float(np.rad2deg(self.cam_rotation)),
            "pix_rotation": float(np.rad2deg(self.pix_rotation)),
        }


@dataclass(frozen=True, eq=False)
class TelescopeDescriptor:
    telescope_id: int
    telescope_type: TelescopeType
    camera: CameraGeometry
    position: tuple = (0.0, 0.0, 0.0)
    focal_length: float = 28.0

    def __post_init__(self):
        object.__setattr__(self, "telescope_type", TelescopeType(self.telescope_type))
        object.__setattr__(self, "position", tuple(float(v) for v in self.position))
        if len(self.position) != 3:
            raise ValueError(f"Telescope {self.telescope_id}: position needs x, y, z")
        if self.focal_length <= 0:
            raise ValueError(f"Telescope {self.telescope_id}: focal length must be positive")


class TelescopeArray:
    """Read-only registry: telescope id -> TelescopeDescriptor.

    Built once and passed to whatever needs it. Lookups never mutate, so one
    instance can be shared between threads.
    """

    def __init__(self, telescopes: Iterable[TelescopeDescriptor], name: str = ""):
        table = {}
        for tel in telescopes:
            if tel.telescope_id in table:
                raise ValueError(f"Duplicate telescope id {tel.telescope_id}")
            table[tel.telescope_id] = tel
        self._telescopes = MappingProxyType(table)
        self.name = name

    def telescope(self, telescope_id) -> TelescopeDescriptor:
        try:
            return self._telescopes[telescope_id]
        except KeyError:
            raise UnknownTelescope(telescope_id) from None

    def camera(self, telescope_id) -> CameraGeometry:
        return self.telescope(telescope_id).camera

    @property
    def telescope_ids(self) -> list:
        return sorted(self._telescopes)

    def __contains__(self, telescope_id):
        return telescope_id in self._telescopes

    def __iter__(self):
        return iter(self._telescopes.values())

    def __len__(self):
        return len(self._telescopes)

    def __reduce__(self):
        # mappingproxy cannot be pickled, rebuild from the descriptors
        return self.__class__, (list(self), self.name)

    def __repr__(self):
        return f"TelescopeArray(name={self.name!r}, n_telescopes={len(self)})"

    def to_frame(self) -> pd.DataFrame:
        """One row per telescope: id, type, camera, position and focal length."""
        rows = [
            {
                "telescope_id": t.telescope_id,
                "telescope_type": t.telescope_type.name,
                "camera": t.camera.name,
                "pos_x": t.position[0],
                "pos_y": t.position[1],
                "pos_z": t.position[2],
                "focal_length": t.focal_length,
            }
            for t in self
        ]
        return pd.DataFrame(rows).sort_values("telescope_id", ignore_index=True)

    @classmethod
    def from_dict(cls, data: dict, name: str = "") -> "TelescopeArray":
        """Build the array from ``{"cameras": {name: {...}}, "telescopes": [{...}]}``."""
        cameras = {
            cam_name: CameraGeometry.from_dict(cam_name, cam)
            for cam_name, cam in data["cameras"].items()
        }
        telescopes = []
        for entry in data["telescopes"]:
            if entry["camera"] not in cameras:
                raise ValueError(f"Telescope {entry['id']} uses undefined camera {entry['camera']!r}")
            telescopes.append(TelescopeDescriptor(
                telescope_id=int(entry["id"]),
                telescope_type=TelescopeType[entry["type"].upper()],
                camera=cameras[entry["camera"]],
                position=entry["position"],
                focal_length=float(entry["focal_length"]),
            ))
        return cls(telescopes, name=name or data.get("name", ""))

    @classmethod
    def from_json(cls, path) -> "TelescopeArray":
        """Load an array definition from a (optionally gzipped) JSON file."""
        path = str(path)
        opener = gzip.open if path.endswith(".gz") else open
        with opener(path, "rt") as f:
            data = json.load(f)
        array = cls.from_dict(data)
        logger.info("Loaded %d telescopes with %d camera types from %s",
                    len(array), len(data["cameras"]), path)
        return array

    def to_dict(self) -> dict:
        cameras = {t.camera.name: t.camera.to_dict() for t in self}
        telescopes = [
            {
                "id": t.telescope_id,
                "type": t.telescope_type.name,
                "camera": t.camera.name,
                "position": list(t.position),
                "focal_length": t.focal_length,
            }
            for t in sorted(self, key=lambda t: t.telescope_id)
        ]
        return {"name": self.name, "cameras": cameras, "telescopes": telescopes}

    def to_json(self, path):
        path = str(path)
        opener = gzip.open if path.endswith(".gz") else open
        with opener(path, "wt") as f:
            json.dump(self.to_dict(), f)
        logger.info("Saved array definition with %d telescopes to %s", len(self), path)
