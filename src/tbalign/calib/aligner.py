"""Alignment of a sensor module with respect to the reference telescope.

The alignment is extracted from the distributions of the differences between
the positions predicted by the telescope tracks and the positions of the hits
observed in the sensor. The two axes are treated differently:
- X: the residuals are smeared by the resolution only, the distribution is
  fitted with a Gaussian. Its mean is the offset and its width is the cut.
- Y: the residuals are bounded by the geometric acceptance of the sensor, the
  distribution is fitted with a plateau. The center of the plateau is the
  offset and its half-width is the cut.
"""

import os

import numpy as np

from tbalign.errors import (
    FitConvergenceFailure,
    PersistenceFailure,
    PreconditionViolation,
)
from tbalign.math import Histogram1D, gaussian, plateau_model
from tbalign.utils.logger import logger

__all__ = ["AlignmentCalibrator"]


class AlignmentCalibrator:
    """Accumulates the correlation samples of one sensor, derives its offset
    and its matching cuts and classifies candidate track/hit pairs.

    Attributes
    ----------
    sensor_id : int
        ID of the sensor being aligned
    nsigma : float
        Multiplier applied to the X cut when testing correlations
    calculated : bool
        Whether the offset and the cuts have been computed or loaded
    hist_x : Histogram1D
        Distribution of the X residuals
    hist_y : Histogram1D
        Distribution of the Y residuals
    fit_x : FitResult
        Result of the Gaussian fit of the X distribution
    fit_y : FitResult
        Result of the plateau fit of the Y distribution
    """

    # Binning of the correlation distributions
    num_bins_x = 1000
    num_bins_y = 250
    span = (-5.0, 5.0)

    # Minimum fraction of entries per bin before the distribution gets rebinned
    bin_ratio = 0.1

    # Half-width of the fit ranges, in units of the distribution RMS
    nrms_x = 1.0
    nrms_y = 3.0

    # Minimum half-width of the fit ranges, in bins
    min_half_bins = 4

    def __init__(self, sensor_id=None, nsigma=1.0, backend=Histogram1D):
        """Initialize an empty calibrator.

        Parameters
        ----------
        sensor_id : int, optional
            ID of the sensor being aligned (used for logging only)
        nsigma : float, default 1.0
            Multiplier applied to the X cut when testing correlations
        backend : type, default Histogram1D
            Binned distribution class, built as `backend(name, bins, low, high)`
        """
        self.sensor_id = sensor_id
        self.nsigma = nsigma
        self.backend = backend

        self.hist_x = None
        self.hist_y = None
        self.fit_x = None
        self.fit_y = None

        self.calculated = False
        self._offset = np.zeros(3, dtype=np.float64)
        self._cuts = np.zeros(2, dtype=np.float64)

    def __repr__(self):
        """Short description of the calibrator state."""
        if not self.calculated:
            return f"AlignmentCalibrator(sensor_id={self.sensor_id}, calculated=False)"

        return (
            f"AlignmentCalibrator(sensor_id={self.sensor_id}, "
            f"offset={self._offset.tolist()}, cuts={self._cuts.tolist()})"
        )

    def init_distributions(self, name_x, name_y):
        """Allocate the empty correlation distributions.

        Parameters
        ----------
        name_x : str
            Name of the X residual distribution
        name_y : str
            Name of the Y residual distribution
        """
        if self.hist_x is not None or self.hist_y is not None:
            raise PreconditionViolation(
                f"The distributions of sensor {self.sensor_id} are already initialized."
            )

        self.hist_x = self.backend(name_x, self.num_bins_x, *self.span)
        self.hist_x.title = "Alignment correlation on X axis"
        self.hist_y = self.backend(name_y, self.num_bins_y, *self.span)
        self.hist_y.title = "Alignment correlation on Y axis"

    def fill(self, dx, dy):
        """Add one or more correlation samples.

        Parameters
        ----------
        dx : Union[float, np.ndarray]
            Predicted minus observed position along X
        dy : Union[float, np.ndarray]
            Predicted minus observed position along Y
        """
        if self.calculated:
            raise PreconditionViolation(
                f"Cannot fill sensor {self.sensor_id} once its alignment is final."
            )
        if self.hist_x is None:
            raise PreconditionViolation(
                f"The distributions of sensor {self.sensor_id} are not initialized."
            )

        self.hist_x.fill(dx)
        self.hist_y.fill(dy)

    def calculate_alignment(self):
        """Fit the correlation distributions, derive the offset and the cuts.

        Calling this method again once the alignment is calculated (or
        loaded) does nothing.
        """
        if self.calculated:
            return
        if self.hist_x is None:
            raise PreconditionViolation(
                f"The distributions of sensor {self.sensor_id} are not initialized."
            )

        mean_x, sigma_x = self.align_gaussian(self.hist_x)
        low_y, high_y = self.align_plateau(self.hist_y)

        self._offset = np.array([mean_x, (low_y + high_y) / 2, 0.0])
        self._cuts = np.array([sigma_x, (high_y - low_y) / 2])
        self.calculated = True

        logger.info(
            "Sensor %s alignment: offset = (%.4f, %.4f, %.4f), cuts = (%.4f, %.4f)",
            self.sensor_id,
            *self._offset,
            *self._cuts,
        )

    def rebin_if_necessary(self, hist):
        """Merge bins of a sparsely populated distribution.

        A distribution is sparse when `entries * bin_ratio * 2 < num_bins`. It
        then gets rebinned by `floor(num_bins / (entries * bin_ratio))`.

        Parameters
        ----------
        hist : Histogram1D
            Distribution to rebin in place

        Returns
        -------
        bool
            Whether the distribution was rebinned
        """
        if hist.entries == 0 or hist.entries * self.bin_ratio * 2 >= hist.num_bins:
            return False

        factor = int(np.floor(hist.num_bins / (hist.entries * self.bin_ratio)))
        num_bins = hist.num_bins
        hist.rebin(factor)
        logger.debug(
            "Rebinned %s (%d entries) from %d to %d bins",
            hist.name,
            hist.entries,
            num_bins,
            hist.num_bins,
        )

        return True

    def align_gaussian(self, hist):
        """Fit a Gaussian around the peak of a distribution.

        The fit range extends at least `min_half_bins` bins on each side of the
        peak, and the fitted width is bounded below by the RMS of a uniform
        distribution over one bin.

        Parameters
        ----------
        hist : Histogram1D
            Correlation distribution

        Returns
        -------
        mean : float
            Fitted mean
        sigma : float
            Fitted standard deviation
        """
        # Locate the peak once the distribution is populated enough
        self.rebin_if_necessary(hist)
        peak = hist.centers[hist.maximum_bin]
        rms = hist.rms

        # The width cannot be resolved below the quantization of one bin
        min_sigma = hist.width / np.sqrt(12.0)
        p0 = (hist.maximum, peak, max(rms, 2.0 * min_sigma))
        bounds = ((0.0, -np.inf, min_sigma), (np.inf, np.inf, np.inf))

        half = max(self.nrms_x * rms, self.min_half_bins * hist.width)
        fit_range = (peak - half, peak + half)
        self.fit_x = hist.fit(gaussian, p0, fit_range, bounds)
        if not self.fit_x.success:
            raise FitConvergenceFailure(hist.name, self.fit_x.message)

        _, mean, sigma = self.fit_x.params

        return mean, abs(sigma)

    def align_plateau(self, hist):
        """Fit a symmetric plateau to a distribution.

        The plateau is centered on the distribution mean. Its ends are
        initialized at the edges of a uniform distribution with the same RMS.
        The fit range extends at least `min_half_bins` bins on each side of the
        mean.

        Parameters
        ----------
        hist : Histogram1D
            Correlation distribution

        Returns
        -------
        low : float
            Lower edge of the plateau (lower end minus one falloff width)
        high : float
            Upper edge of the plateau (upper end plus one falloff width)
        """
        self.rebin_if_necessary(hist)
        mean = hist.mean
        rms = hist.rms

        half_width = np.sqrt(3.0) * rms
        p0 = (
            mean - half_width,
            mean + half_width,
            hist.maximum,
            hist.width,
            hist.maximum,
        )
        min_sigma = hist.width / np.sqrt(12.0)
        bounds = (
            (-np.inf, -np.inf, 0.0, min_sigma, 0.0),
            (np.inf, np.inf, np.inf, np.inf, np.inf),
        )

        half = max(self.nrms_y * rms, self.min_half_bins * hist.width)
        fit_range = (mean - half, mean + half)
        self.fit_y = hist.fit(plateau_model, p0, fit_range, bounds)
        if not self.fit_y.success:
            raise FitConvergenceFailure(hist.name, self.fit_y.message)

        x0, x1, _, sigma, _ = self.fit_y.params
        if x1 < x0:
            x0, x1 = x1, x0

        return x0 - abs(sigma), x1 + abs(sigma)

    def _check_calculated(self):
        if not self.calculated:
            raise PreconditionViolation(
                f"The alignment of sensor {self.sensor_id} has not been "
                "calculated or loaded yet."
            )

    @property
    def offset(self):
        """(3) array of (x, y, z) offsets. The z offset is always 0."""
        self._check_calculated()
        return self._offset.copy()

    @property
    def cuts(self):
        """(2) array of (x, y) matching cuts."""
        self._check_calculated()
        return self._cuts.copy()

    def get_offset(self):
        """Returns the (x, y, z) offset of the sensor.

        Returns
        -------
        np.ndarray
            (3) array of offsets
        """
        return self.offset

    def get_cuts(self):
        """Returns the (x, y) matching cuts of the sensor.

        Returns
        -------
        np.ndarray
            (2) array of cuts
        """
        return self.cuts

    def is_correlated(self, a, b):
        """Checks whether two 2D positions are within the matching cuts.

        Only the X cut is scaled by `nsigma`.

        Parameters
        ----------
        a : np.ndarray
            (2) or (N, 2) first position(s)
        b : np.ndarray
            (2) or (N, 2) second position(s)

        Returns
        -------
        Union[bool, np.ndarray]
            Whether the positions are correlated
        """
        self._check_calculated()
        diff = np.abs(np.asarray(a, dtype=np.float64) - np.asarray(b, dtype=np.float64))
        result = (diff[..., 0] < self._cuts[0] * self.nsigma) & (
            diff[..., 1] < self._cuts[1]
        )

        return bool(result) if np.ndim(result) == 0 else result

    def is_correlated_x(self, x1, x2):
        """Checks whether two X coordinates are within the X cut (times nsigma)."""
        self._check_calculated()
        return bool(abs(x1 - x2) < self._cuts[0] * self.nsigma)

    def is_correlated_y(self, y1, y2):
        """Checks whether two Y coordinates are within the Y cut."""
        self._check_calculated()
        return bool(abs(y1 - y2) < self._cuts[1])

    def correct(self, points):
        """Shift predicted positions by the sensor offset.

        Parameters
        ----------
        points : np.ndarray
            (2) or (N, 2) predicted position(s)

        Returns
        -------
        np.ndarray
            (2) or (N, 2) offset-corrected position(s)
        """
        self._check_calculated()
        return np.asarray(points, dtype=np.float64) - self._offset[:2]

    def matches(self, track, hit):
        """Checks whether a predicted track position matches an observed hit,
        once the sensor offset is applied.

        Parameters
        ----------
        track : np.ndarray
            (2) or (N, 2) predicted position(s)
        hit : np.ndarray
            (2) or (N, 2) observed position(s)

        Returns
        -------
        Union[bool, np.ndarray]
            Whether the positions are correlated
        """
        return self.is_correlated(self.correct(track), hit)

    def persist(self, path):
        """Store the offset and the cuts to a text file.

        The file contains a single line: `offset_x offset_y offset_z cut_x cut_y`.

        Parameters
        ----------
        path : str
            Path to the calibration file
        """
        self._check_calculated()
        values = [*self._offset, *self._cuts]
        with open(path, "w", encoding="utf-8") as out_file:
            out_file.write(" ".join(repr(float(v)) for v in values) + "\n")

        logger.debug("Stored the alignment of sensor %s to %s", self.sensor_id, path)

    def load(self, path):
        """Load the offset and the cuts from a text file.

        On success, the calibrator is marked as calculated and never fits its
        distributions.

        Parameters
        ----------
        path : str
            Path to the calibration file

        Returns
        -------
        bool
            `False` if the file does not exist or cannot be read

        Raises
        ------
        PersistenceFailure
            If the file exists but does not contain exactly five floats
        """
        logger.info("Alignment data filename: %s", path)
        if not os.path.isfile(path):
            return False

        try:
            with open(path, "r", encoding="utf-8") as in_file:
                fields = in_file.read().split()
        except OSError:
            return False

        if len(fields) != 5:
            raise PersistenceFailure(
                f"Calibration file {path} must contain 5 values, got {len(fields)}."
            )
        try:
            values = [float(v) for v in fields]
        except ValueError as err:
            raise PersistenceFailure(
                f"Calibration file {path} could not be parsed: {err}"
            ) from err

        self._offset = np.array(values[:3])
        self._cuts = np.array(values[3:])
        self.calculated = True

        return True

    def save_image(self, path):
        """Render the correlation distributions and their fits to an image.

        Parameters
        ----------
        path : str
            Path to the output image
        """
        from tbalign.vis import draw_alignment

        draw_alignment(self, path)
