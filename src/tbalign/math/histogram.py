"""Binned one-dimensional distribution with least-squares fitting.

This is the only place where the calibration touches a numerical fitting
backend. It exposes the following capabilities:
- create an empty distribution (name, number of bins, range)
- fill it with values
- rebin it by an integer factor
- fit a model over a range, which returns the parameters and a success flag
"""

import warnings
from dataclasses import dataclass, field

import numpy as np
from scipy.optimize import OptimizeWarning, curve_fit

__all__ = ["Histogram1D", "FitResult"]


@dataclass
class FitResult:
    """Outcome of a distribution fit.

    Attributes
    ----------
    params : np.ndarray
        (P) array of best-fit parameters (initial parameters if it failed)
    errors : np.ndarray
        (P) array of parameter uncertainties (infinite if the covariance
        could not be estimated)
    success : bool
        Whether the fit converged to usable parameters
    chi2 : float
        Chi-square of the fit
    ndf : int
        Number of degrees of freedom of the fit
    fit_range : Tuple[float, float]
        Range of abscissas over which the fit was performed
    message : str
        Reason of the failure, or warnings raised by a successful fit
    """

    params: np.ndarray
    errors: np.ndarray = None
    success: bool = False
    chi2: float = np.nan
    ndf: int = 0
    fit_range: tuple = None
    message: str = ""


@dataclass(eq=False)
class Histogram1D:
    """Fixed-width binned distribution.

    The number of entries, the mean and the RMS are computed from the filled
    values themselves, not from the bin centers, so they are not affected by
    rebinning. Values outside of the range are counted as underflow/overflow
    and do not contribute to the mean or the RMS.

    Attributes
    ----------
    name : str
        Name of the distribution
    num_bins : int
        Number of bins
    low : float
        Lower edge of the first bin
    high : float
        Upper edge of the last bin
    title : str
        Human-readable description of the distribution
    counts : np.ndarray
        (B) array of bin contents
    underflow : float
        Number of values below the range
    overflow : float
        Number of values above the range
    entries : int
        Number of fill calls (values), including the out-of-range ones
    fits : List[Tuple[callable, FitResult]]
        Fits performed on this distribution, in order
    """

    name: str
    num_bins: int
    low: float
    high: float
    title: str = ""
    counts: np.ndarray = None
    underflow: float = 0.0
    overflow: float = 0.0
    entries: int = 0
    fits: list = field(default_factory=list)

    def __post_init__(self):
        """Check the binning, allocate the bin contents."""
        assert self.num_bins > 0, "A distribution needs at least one bin."
        assert self.high > self.low, "The range of a distribution must be positive."
        if self.counts is None:
            self.counts = np.zeros(self.num_bins, dtype=np.float64)

        # Sums of the in-range values, used for the statistics
        self._sumw = 0.0
        self._sumwx = 0.0
        self._sumwx2 = 0.0

    @property
    def width(self):
        """Width of each bin."""
        return (self.high - self.low) / self.num_bins

    @property
    def edges(self):
        """(B + 1) array of bin edges."""
        return np.linspace(self.low, self.high, self.num_bins + 1)

    @property
    def centers(self):
        """(B) array of bin centers."""
        return self.low + (np.arange(self.num_bins) + 0.5) * self.width

    @property
    def mean(self):
        """Mean of the in-range filled values."""
        if self._sumw == 0.0:
            return 0.0

        return self._sumwx / self._sumw

    @property
    def rms(self):
        """Standard deviation of the in-range filled values."""
        if self._sumw == 0.0:
            return 0.0

        var = self._sumwx2 / self._sumw - self.mean**2

        return np.sqrt(max(var, 0.0))

    @property
    def maximum_bin(self):
        """Index of the bin with the largest content."""
        return int(np.argmax(self.counts))

    @property
    def maximum(self):
        """Largest bin content."""
        return float(np.max(self.counts))

    def fill(self, values, weight=1.0):
        """Add one or more values to the distribution.

        Parameters
        ----------
        values : Union[float, np.ndarray]
            Value or (N) array of values
        weight : float, default 1.0
            Weight given to each of the values
        """
        values = np.atleast_1d(np.asarray(values, dtype=np.float64)).ravel()
        self.entries += len(values)

        # Sort out of range values
        under = values < self.low
        over = values >= self.high
        self.underflow += weight * np.sum(under)
        self.overflow += weight * np.sum(over)

        inside = values[~(under | over)]
        if len(inside) == 0:
            return

        index = ((inside - self.low) / self.width).astype(np.int64)
        index = np.minimum(index, self.num_bins - 1)
        np.add.at(self.counts, index, weight)

        self._sumw += weight * len(inside)
        self._sumwx += weight * np.sum(inside)
        self._sumwx2 += weight * np.sum(inside**2)

    def rebin(self, factor):
        """Merge groups of `factor` adjacent bins.

        If the number of bins is not a multiple of `factor`, the leftover bins
        at the upper end are moved to the overflow and the upper edge of the
        range is lowered accordingly.

        Parameters
        ----------
        factor : int
            Number of bins to merge in each group

        Returns
        -------
        Histogram1D
            This distribution, rebinned in place
        """
        factor = int(factor)
        assert factor > 0, "The rebinning factor must be a positive integer."
        factor = min(factor, self.num_bins)

        num_bins = self.num_bins // factor
        num_used = num_bins * factor
        self.overflow += np.sum(self.counts[num_used:])
        self.high = self.low + num_used * self.width
        self.counts = self.counts[:num_used].reshape(num_bins, factor).sum(axis=1)
        self.num_bins = num_bins

        return self

    def fit(self, model, p0, fit_range=None, bounds=None, maxfev=10000):
        """Least-squares fit of a model to the bin contents.

        The bin uncertainties are taken as the square root of the contents,
        with a floor of one count so that empty bins constrain the model too.

        Parameters
        ----------
        model : callable
            Function of the form `f(x, *params)`
        p0 : List[float]
            Initial parameter values
        fit_range : Tuple[float, float], optional
            Range of bin centers to include in the fit. If not specified,
            the whole distribution is used.
        bounds : Tuple[List[float], List[float]], optional
            Lower and upper bounds on the parameters
        maxfev : int, default 10000
            Maximum number of model evaluations

        Returns
        -------
        FitResult
            Fit parameters and success flag
        """
        p0 = np.asarray(p0, dtype=np.float64)
        if fit_range is None:
            fit_range = (self.low, self.high)

        # Restrict the fit to the requested range
        x = self.centers
        mask = (x >= fit_range[0]) & (x <= fit_range[1])
        x, y = x[mask], self.counts[mask]
        result = FitResult(params=p0, fit_range=tuple(fit_range))
        if np.sum(y) <= 0.0:
            result.message = "no entries in the fit range"
            self.fits.append((model, result))
            return result

        if len(x) <= len(p0):
            result.message = (
                f"not enough bins in the fit range ({len(x)}) "
                f"to constrain {len(p0)} parameters"
            )
            self.fits.append((model, result))
            return result

        # Run the fit, an estimation failure is a convergence failure. An
        # undetermined covariance only leaves the uncertainties infinite.
        sigma = np.sqrt(np.maximum(y, 1.0))
        kwargs = {} if bounds is None else {"bounds": bounds}
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always", OptimizeWarning)
            warnings.simplefilter("ignore", RuntimeWarning)
            try:
                params, cov = curve_fit(
                    model,
                    x,
                    y,
                    p0=p0,
                    sigma=sigma,
                    absolute_sigma=True,
                    maxfev=maxfev,
                    **kwargs,
                )

            except (RuntimeError, ValueError) as err:
                result.message = str(err)
                self.fits.append((model, result))
                return result

        if not np.all(np.isfinite(params)):
            result.message = "non-finite parameters"
            self.fits.append((model, result))
            return result

        residuals = (y - model(x, *params)) / sigma
        result.params = params
        result.errors = np.sqrt(np.abs(np.diag(cov)))
        result.success = True
        result.chi2 = float(np.sum(residuals**2))
        result.ndf = len(x) - len(params)
        result.message = "; ".join(
            str(w.message) for w in caught if issubclass(w.category, OptimizeWarning)
        )
        self.fits.append((model, result))

        return result
