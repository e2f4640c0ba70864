"""Tests for the resolution summary and plots."""

import dataclasses

import numpy as np
import pytest

from iact_stereo.analysis import ResolutionAnalyzer, angular_resolution, plot_camera_image
from iact_stereo.cleaning import clean_event
from iact_stereo.hillas import hillas_parameters
from iact_stereo.containers import ArrayEvent
from iact_stereo.pipeline import process_event
from iact_stereo.simulation import toy_event

from conftest import CORE, POINTING_ALT, POINTING_AZ, SHOWER_ALT, SHOWER_AZ


@pytest.fixture(scope="module")
def results(array):
    events = [
        toy_event(i, array, SHOWER_ALT, SHOWER_AZ, CORE[0] + 10 * i, CORE[1],
                  pointing_alt=POINTING_ALT, pointing_az=POINTING_AZ, intensity=2000.0)
        for i in range(1, 4)
    ]
    events.append(ArrayEvent(4, POINTING_ALT, POINTING_AZ, images={}))
    return [process_event(e, array) for e in events]


def test_angular_resolution():
    residuals = np.deg2rad(np.linspace(0.01, 1.0, 100))
    assert angular_resolution(residuals) == pytest.approx(np.quantile(np.linspace(0.01, 1.0, 100), 0.68))
    assert angular_resolution(residuals, containment=1.0) == pytest.approx(1.0)


def test_angular_resolution_ignores_nan():
    assert angular_resolution([np.nan, np.deg2rad(0.2)]) == pytest.approx(0.2)
    assert np.isnan(angular_resolution([np.nan]))
    assert np.isnan(angular_resolution([]))


def test_summary(results):
    summary = ResolutionAnalyzer(results).summary()
    assert summary["n_events"] == 4
    assert summary["n_valid"] == 3
    assert summary["r68_deg"] < 0.5
    assert summary["median_telescopes"] == 4


def test_summary_without_valid_events(array):
    result = process_event(ArrayEvent(1, POINTING_ALT, POINTING_AZ, images={}), array)
    summary = ResolutionAnalyzer([result]).summary()
    assert summary["n_valid"] == 0
    assert np.isnan(summary["r68_deg"])


def test_plots_written(results, tmp_path):
    scored = [dataclasses.replace(r, gammaness=0.2 * i) for i, r in enumerate(results)]
    analyzer = ResolutionAnalyzer(scored)
    files = {
        "theta2": tmp_path / "theta2.png",
        "multiplicity": tmp_path / "sub" / "multiplicity.png",
        "gammaness": tmp_path / "gammaness.png",
    }
    analyzer.plot_theta2(out_png=str(files["theta2"]))
    analyzer.plot_resolution_vs_multiplicity(out_png=str(files["multiplicity"]))
    analyzer.plot_gammaness(out_png=str(files["gammaness"]))
    for path in files.values():
        assert path.stat().st_size > 0


def test_camera_image_plot(array, tmp_path):
    event = toy_event(1, array, SHOWER_ALT, SHOWER_AZ, CORE[0], CORE[1],
                      pointing_alt=POINTING_ALT, pointing_az=POINTING_AZ, intensity=2000.0)
    image = next(clean_event(event, array))
    out = tmp_path / "camera.png"
    plot_camera_image(image, hillas_parameters(image), out_png=str(out), raw=event.images[image.telescope_id])
    assert out.stat().st_size > 0
