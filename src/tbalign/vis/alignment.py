"""Draws the alignment correlation distributions and their fits."""

import numpy as np
from matplotlib.figure import Figure

from tbalign.utils.logger import logger

__all__ = ["draw_alignment"]


def draw_alignment(calibrator, file_name, num_points=500):
    """Render the X and Y correlation distributions of a calibrator, stacked
    vertically, with the fitted models overlaid.

    Parameters
    ----------
    calibrator : AlignmentCalibrator
        Calibrator whose distributions are drawn
    file_name : str
        Path to the output image (format deduced from the extension)
    num_points : int, default 500
        Number of points used to draw each fitted model
    """
    if calibrator.hist_x is None or calibrator.hist_y is None:
        logger.warning(
            "Sensor %s has no distribution to draw (loaded calibration).",
            calibrator.sensor_id,
        )
        return

    # Detached figure, rendered without going through the pyplot backend
    fig = Figure(figsize=(4, 6))
    axes = fig.subplots(2, 1)
    panels = (
        (axes[0], calibrator.hist_x, calibrator.fit_x, "$\\Delta x$"),
        (axes[1], calibrator.hist_y, calibrator.fit_y, "$\\Delta y$"),
    )
    for ax, hist, fit, label in panels:
        ax.stairs(hist.counts, hist.edges, color="k", linewidth=0.8)
        if fit is not None and fit.success:
            model = hist.fits[-1][0]
            x = np.linspace(*fit.fit_range, num_points)
            ax.plot(x, model(x, *fit.params), color="tab:red", linewidth=1.0)

        ax.set_title(hist.title, fontsize=9)
        ax.set_xlabel(label)
        ax.set_ylabel("Entries")

    fig.tight_layout()
    fig.savefig(file_name)
