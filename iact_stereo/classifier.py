"""Apply a pre-trained gamma/hadron classifier to image Moments.

The model file is a joblib dump of ``{"classifier": clf, "features": [...]}``
where ``clf`` is a scikit-learn style estimator with ``predict_proba`` and
class 1 meaning gamma. Training happens elsewhere.
"""

import logging

import joblib
import numpy as np
import pandas as pd

from .instrument import TelescopeArray

logger = logging.getLogger(__name__)

__all__ = ["FEATURES", "GammaClassifier", "feature_frame"]

FEATURES = [
    "n_triggered",
    "n_pixels",
    "width",
    "length",
    "skewness",
    "kurtosis",
    "phi",
    "miss",
    "size",
    "telescope_type",
]


def feature_frame(moments, array: TelescopeArray, n_triggered: int = None) -> pd.DataFrame:
    """Feature table for the valid Moments of one event, one row per image.

    `n_triggered` defaults to the number of Moments passed in.
    """
    moments = list(moments)
    n_triggered = len(moments) if n_triggered is None else n_triggered
    rows = []
    for m in moments:
        if not m.valid:
            continue
        rows.append({
            "n_triggered": n_triggered,
            "n_pixels": m.n_pixels,
            "width": m.width,
            "length": m.length,
            "skewness": m.skewness,
            "kurtosis": m.kurtosis,
            "phi": m.phi,
            "miss": m.miss,
            "size": m.size,
            "telescope_type": array.telescope(m.telescope_id).telescope_type.value,
        })
    return pd.DataFrame(rows, columns=FEATURES)


class GammaClassifier:
    """Per-image gammaness, averaged per event."""

    def __init__(self, classifier, array: TelescopeArray, features=None):
        self.classifier = classifier
        self.array = array
        self.features = list(features or FEATURES)
        unknown = set(self.features) - set(FEATURES)
        if unknown:
            raise ValueError(f"Classifier expects unknown features: {sorted(unknown)}")

    @classmethod
    def load(cls, path, array: TelescopeArray) -> "GammaClassifier":
        data = joblib.load(path)
        logger.info("Loaded classifier %s from %s", type(data["classifier"]).__name__, path)
        return cls(data["classifier"], array, data.get("features"))

    def save(self, path):
        joblib.dump({"classifier": self.classifier, "features": self.features}, path)
        logger.info("Classifier saved to %s", path)

    def predict_images(self, moments, n_triggered: int = None) -> np.ndarray:
        """Gammaness of every valid image (invalid Moments are skipped)."""
        df = feature_frame(moments, self.array, n_triggered)
        if df.empty:
            return np.array([])
        return self.classifier.predict_proba(df[self.features].to_numpy())[:, 1]

    def predict_event(self, moments, n_triggered: int = None) -> float:
        """Mean gammaness of the event, NaN if no image is usable."""
        proba = self.predict_images(moments, n_triggered)
        return float(proba.mean()) if proba.size else float("nan")
