"""Tests for camera geometries and the telescope array registry."""

import dataclasses
import pickle

import numpy as np
import pytest

from iact_stereo.errors import UnknownTelescope
from iact_stereo.instrument import (
    CameraGeometry,
    PixelType,
    TelescopeArray,
    TelescopeDescriptor,
    TelescopeType,
)


class TestHexagonalCamera:

    def test_pixel_count(self):
        for n_rings in (0, 1, 2, 5):
            cam = CameraGeometry.hexagonal("Hex", n_rings=n_rings, pitch=0.05)
            assert cam.n_pixels == 1 + 3 * n_rings * (n_rings + 1)

    def test_centre_pixel_has_six_neighbors(self):
        cam = CameraGeometry.hexagonal("Hex", n_rings=3, pitch=0.05)
        centre = np.argmin(np.hypot(cam.pix_x, cam.pix_y))
        assert len(cam.neighbors[centre]) == 6
        dist = np.hypot(cam.pix_x[cam.neighbors[centre]], cam.pix_y[cam.neighbors[centre]])
        assert dist == pytest.approx(0.05)

    def test_corner_pixel_has_three_neighbors(self):
        cam = CameraGeometry.hexagonal("Hex", n_rings=3, pitch=0.05)
        corner = np.argmax(cam.pix_x)
        assert len(cam.neighbors[corner]) == 3

    def test_pixel_area(self):
        cam = CameraGeometry.hexagonal("Hex", n_rings=1, pitch=0.1)
        assert cam.pix_area == pytest.approx(np.sqrt(3) / 2 * 0.01)
        assert cam.pix_type is PixelType.HEXAGONAL


class TestRectangularCamera:

    def test_four_connectivity(self, rect_camera):
        counts = sorted({len(nb) for nb in rect_camera.neighbors})
        assert counts == [2, 3, 4]

    def test_corner_has_two_neighbors(self, rect_camera):
        corner = np.argmin(rect_camera.pix_x + rect_camera.pix_y)
        assert len(rect_camera.neighbors[corner]) == 2

    def test_centred(self, rect_camera):
        assert rect_camera.pix_x.mean() == pytest.approx(0.0)
        assert rect_camera.pix_y.mean() == pytest.approx(0.0)
        assert rect_camera.n_pixels == 80


class TestGeometryInvariants:

    def test_neighbors_symmetric(self, hex_camera):
        for i, nb in enumerate(hex_camera.neighbors[:200]):
            for j in nb:
                assert i in hex_camera.neighbors[j]

    def test_adjacency_matches_neighbors(self, rect_camera):
        adj = rect_camera.adjacency
        assert (adj != adj.T).nnz == 0
        assert adj.sum() == sum(len(nb) for nb in rect_camera.neighbors)

    def test_arrays_read_only(self, hex_camera):
        with pytest.raises(ValueError):
            hex_camera.pix_x[0] = 1.0

    def test_frozen(self, hex_camera):
        with pytest.raises(dataclasses.FrozenInstanceError):
            hex_camera.name = "other"

    def test_explicit_neighbors_are_kept(self):
        cam = CameraGeometry("Line", [0.0, 1.0, 2.0], [0.0, 0.0, 0.0], 1.0, "rectangular",
                             neighbors=[[1], [0, 2], [1]])
        assert [nb.tolist() for nb in cam.neighbors] == [[1], [0, 2], [1]]

    def test_neighbor_count_mismatch(self):
        with pytest.raises(ValueError):
            CameraGeometry("Bad", [0.0, 1.0], [0.0, 0.0], 1.0, PixelType.RECTANGULAR, neighbors=[[1]])

    def test_dict_round_trip(self, rect_camera):
        cam = CameraGeometry.from_dict("RectCam", rect_camera.to_dict())
        np.testing.assert_array_equal(cam.pix_x, rect_camera.pix_x)
        assert [nb.tolist() for nb in cam.neighbors] == [nb.tolist() for nb in rect_camera.neighbors]
        assert cam.pix_type is PixelType.RECTANGULAR

    def test_from_dict_without_area_and_neighbors(self):
        cam = CameraGeometry.from_dict("Sq", {
            "pix_x": [0.0, 0.1, 0.0, 0.1], "pix_y": [0.0, 0.0, 0.1, 0.1],
            "pix_type": "RECTANGULAR", "cam_rotation": 90.0,
        })
        assert cam.pix_area == pytest.approx(0.01)
        assert cam.cam_rotation == pytest.approx(np.pi / 2)
        assert all(len(nb) == 2 for nb in cam.neighbors)


class TestTelescopeArray:

    def test_lookup(self, array, hex_camera):
        tel = array.telescope(2)
        assert tel.telescope_id == 2
        assert tel.position == (0.0, 120.0, 0.0)
        assert array.camera(2) is hex_camera
        assert 2 in array and 99 not in array
        assert len(array) == 4
        assert array.telescope_ids == [1, 2, 3, 4]

    def test_unknown_telescope(self, array):
        with pytest.raises(UnknownTelescope) as info:
            array.telescope(99)
        assert info.value.telescope_id == 99
        assert isinstance(info.value, KeyError)
        assert "99" in str(info.value)

    def test_duplicate_id(self, hex_camera):
        tel = TelescopeDescriptor(1, TelescopeType.LST, hex_camera, (0, 0, 0))
        with pytest.raises(ValueError):
            TelescopeArray([tel, tel])

    def test_registry_is_read_only(self, array):
        with pytest.raises(TypeError):
            array._telescopes[5] = array.telescope(1)

    def test_pickle(self, array):
        clone = pickle.loads(pickle.dumps(array))
        assert clone.telescope_ids == array.telescope_ids
        np.testing.assert_array_equal(clone.camera(1).pix_x, array.camera(1).pix_x)

    def test_to_frame(self, array):
        df = array.to_frame()
        assert list(df["telescope_id"]) == [1, 2, 3, 4]
        assert set(df["telescope_type"]) == {"MST"}

    @pytest.mark.parametrize("filename", ["array.json", "array.json.gz"])
    def test_json_round_trip(self, tmp_path, rect_camera, filename):
        original = TelescopeArray([
            TelescopeDescriptor(1, TelescopeType.LST, rect_camera, (10.0, 0.0, 2.0), focal_length=28.0),
            TelescopeDescriptor(7, TelescopeType.SST, rect_camera, (-10.0, 5.0, 0.0), focal_length=5.6),
        ], name="small")
        path = tmp_path / filename
        original.to_json(path)

        loaded = TelescopeArray.from_json(path)
        assert loaded.name == "small"
        assert loaded.telescope_ids == [1, 7]
        assert loaded.telescope(7).telescope_type is TelescopeType.SST
        assert loaded.telescope(7).focal_length == pytest.approx(5.6)
        assert loaded.camera(1).n_pixels == rect_camera.n_pixels

    def test_undefined_camera(self):
        data = {"cameras": {}, "telescopes": [{"id": 1, "type": "MST", "camera": "Nope",
                                                "position": [0, 0, 0], "focal_length": 16}]}
        with pytest.raises(ValueError):
            TelescopeArray.from_dict(data)


class TestPixelIds:

    def test_pix_id_count_mismatch(self):
        with pytest.raises(ValueError):
            CameraGeometry("Bad", [0.0, 1.0, 2.0], [0.0, 0.0, 0.0], 1.0, PixelType.RECTANGULAR, pix_id=[0, 1])

    def test_from_dict_with_bad_pix_id(self, rect_camera):
        data = rect_camera.to_dict()
        data["pix_id"] = data["pix_id"][:-1]
        with pytest.raises(ValueError):
            CameraGeometry.from_dict("RectCam", data)

    def test_unknown_telescope_pickles(self):
        error = pickle.loads(pickle.dumps(UnknownTelescope(42)))
        assert error.telescope_id == 42
        assert "42" in str(error)
