import os

import matplotlib
matplotlib.use("Agg")  # headless: plots are only written to files

import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from matplotlib.patches import Ellipse

from .containers import Moments, ShowerImage, events_to_frame

__all__ = ["ResolutionAnalyzer", "angular_resolution", "plot_camera_image"]


def angular_resolution(residuals, containment: float = 0.68) -> float:
    """Containment radius (deg) of the angular residuals (rad), NaN if there are none."""
    residuals = np.asarray(residuals, dtype=np.float64)
    residuals = residuals[np.isfinite(residuals)]
    if residuals.size == 0:
        return float("nan")
    return float(np.rad2deg(np.quantile(residuals, containment)))


class ResolutionAnalyzer:
    """Quality plots of reconstructed events against the simulated truth."""

    def __init__(self, results):
        self.results = list(results)
        self.events = events_to_frame(r.event for r in self.results)
        self.events["gammaness"] = [r.gammaness for r in self.results]

    @property
    def valid(self) -> pd.DataFrame:
        return self.events[self.events["valid"].astype(bool)]

    def summary(self) -> dict:
        valid = self.valid
        return {
            "n_events": len(self.events),
            "n_valid": len(valid),
            "r68_deg": angular_resolution(valid["residual"]),
            "median_telescopes": float(valid["n_telescopes"].median()) if len(valid) else float("nan"),
        }

    def plot_theta2(self, out_png: str = "plots/theta2.png", theta2_max: float = 0.25, nbins: int = 50):
        theta2 = np.rad2deg(self.valid["residual"].dropna().to_numpy()) ** 2
        r68 = angular_resolution(self.valid["residual"])
        fig = plt.figure(figsize=(8, 5))
        plt.hist(theta2, bins=np.linspace(0.0, theta2_max, nbins), alpha=0.7, label=f"{len(theta2)} events")
        if np.isfinite(r68):
            plt.axvline(r68 ** 2, color="black", linestyle="--", label=f"68% containment: {r68:.3f} deg")
        plt.xlabel(r"$\theta^2$ (deg$^2$)")
        plt.ylabel("Counts")
        plt.legend()
        plt.grid(True, linestyle=":", alpha=0.6)
        fig.tight_layout()
        os.makedirs(os.path.dirname(out_png) or ".", exist_ok=True)
        fig.savefig(out_png, dpi=150)
        plt.close(fig)

    def plot_resolution_vs_multiplicity(self, out_png: str = "plots/resolution_vs_multiplicity.png"):
        df = self.valid.dropna(subset=["residual"]).copy()
        df["residual_deg"] = np.rad2deg(df["residual"])
        fig = plt.figure(figsize=(8, 5))
        sns.boxplot(data=df, x="n_telescopes", y="residual_deg", color="tab:blue")
        plt.xlabel("Telescopes in fit")
        plt.ylabel("Angular residual (deg)")
        plt.grid(True, alpha=0.3)
        fig.tight_layout()
        os.makedirs(os.path.dirname(out_png) or ".", exist_ok=True)
        fig.savefig(out_png, dpi=150)
        plt.close(fig)

    def plot_gammaness(self, out_png: str = "plots/gammaness.png"):
        values = self.valid["gammaness"].dropna()
        fig = plt.figure(figsize=(8, 5))
        sns.histplot(values, bins=np.linspace(0, 1, 41), stat="count", alpha=0.6)
        plt.xlabel("Classifier output (P(gamma))")
        plt.ylabel("Counts")
        plt.grid(True)
        fig.tight_layout()
        os.makedirs(os.path.dirname(out_png) or ".", exist_ok=True)
        fig.savefig(out_png, dpi=150)
        plt.close(fig)


def plot_camera_image(image: ShowerImage, moments: Moments = None, out_png: str = "plots/camera.png",
                      raw=None):
    """Scatter plot of a camera image with the Hillas ellipse (1 and 2 sigma) on top.

    `raw` (full camera intensities) is drawn in grey below the cleaned pixels.
    """
    geometry = image.geometry
    fig, ax = plt.subplots(figsize=(7, 6))
    marker_size = 4000 * geometry.pix_area / np.ptp(geometry.pix_x) ** 2
    if raw is not None:
        ax.scatter(geometry.pix_x, geometry.pix_y, c=raw, s=marker_size, cmap="Greys", marker="h")
    sc = ax.scatter(image.pix_x, image.pix_y, c=image.intensities, s=marker_size[image.mask],
                    cmap="viridis", marker="h")
    fig.colorbar(sc, ax=ax, label="Intensity (p.e.)")

    if moments is not None and moments.valid:
        for n_sigma in (1, 2):
            ax.add_patch(Ellipse(
                (moments.cen_x, moments.cen_y),
                width=2 * n_sigma * moments.length,
                height=2 * n_sigma * moments.width,
                angle=np.rad2deg(moments.phi),
                fill=False, color="red", linewidth=1.5,
            ))
        ax.set_title(f"event {moments.event_id}, tel {moments.telescope_id}: size={moments.size:.0f}")

    ax.set_xlabel("x (m)")
    ax.set_ylabel("y (m)")
    ax.set_aspect("equal")
    fig.tight_layout()
    os.makedirs(os.path.dirname(out_png) or ".", exist_ok=True)
    fig.savefig(out_png, dpi=150)
    plt.close(fig)
