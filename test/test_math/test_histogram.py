"""Tests for the binned distribution and its fitting backend."""

import numpy as np
import pytest

from tbalign.math import Histogram1D, gaussian


class TestHistogram1D:
    """Test the filling and the rebinning of a distribution."""

    def test_binning(self):
        """Check the bin edges, centers and width."""
        hist = Histogram1D("test", 10, -5.0, 5.0)

        assert hist.width == pytest.approx(1.0)
        assert len(hist.edges) == 11
        np.testing.assert_allclose(hist.centers, np.arange(-4.5, 5.0, 1.0))
        assert hist.counts.shape == (10,)

    def test_invalid_binning(self):
        """A distribution needs bins and a positive range."""
        with pytest.raises(AssertionError):
            Histogram1D("test", 0, -1.0, 1.0)
        with pytest.raises(AssertionError):
            Histogram1D("test", 10, 1.0, -1.0)

    def test_fill(self):
        """Values are sorted in bins, underflow and overflow."""
        hist = Histogram1D("test", 10, -5.0, 5.0)
        hist.fill([-6.0, -4.5, 0.2, 0.7, 5.0, 12.0])
        hist.fill(1.5)

        assert hist.entries == 7
        assert hist.underflow == 1
        assert hist.overflow == 2
        assert hist.counts[0] == 1
        assert hist.counts[5] == 2
        assert hist.counts[6] == 1
        assert np.sum(hist.counts) == 4
        assert hist.maximum_bin == 5
        assert hist.maximum == 2

    def test_statistics(self):
        """Mean and RMS are computed from the in-range values."""
        hist = Histogram1D("test", 100, -5.0, 5.0)
        hist.fill([1.0, 2.0, 3.0, 100.0])

        assert hist.mean == pytest.approx(2.0)
        assert hist.rms == pytest.approx(np.sqrt(2.0 / 3.0))

    def test_empty_statistics(self):
        """An empty distribution has null statistics."""
        hist = Histogram1D("test", 10, 0.0, 1.0)

        assert hist.mean == 0.0
        assert hist.rms == 0.0

    def test_rebin(self):
        """Rebinning merges adjacent bins."""
        hist = Histogram1D("test", 10, 0.0, 10.0)
        hist.fill(np.arange(10) + 0.5)
        hist.rebin(2)

        assert hist.num_bins == 5
        assert hist.width == pytest.approx(2.0)
        np.testing.assert_array_equal(hist.counts, 2.0)

    def test_rebin_leftover(self):
        """Leftover bins are moved to the overflow, the range is reduced."""
        hist = Histogram1D("test", 10, 0.0, 10.0)
        hist.fill(np.arange(10) + 0.5)
        hist.rebin(3)

        assert hist.num_bins == 3
        assert hist.high == pytest.approx(9.0)
        assert hist.overflow == 1
        np.testing.assert_array_equal(hist.counts, 3.0)

    def test_rebin_statistics(self):
        """Rebinning does not change the mean or the RMS."""
        rng = np.random.default_rng(seed=1)
        hist = Histogram1D("test", 1000, -5.0, 5.0)
        hist.fill(rng.normal(0.3, 0.2, size=1000))
        mean, rms = hist.mean, hist.rms
        hist.rebin(20)

        assert hist.mean == mean
        assert hist.rms == rms

    def test_rebin_too_large(self):
        """A rebinning factor larger than the number of bins merges all."""
        hist = Histogram1D("test", 4, 0.0, 4.0)
        hist.fill([0.5, 1.5, 2.5])
        hist.rebin(10)

        assert hist.num_bins == 1
        assert hist.counts[0] == 3


class TestHistogramFit:
    """Test the least-squares fitting of a distribution."""

    def test_gaussian_fit(self):
        """A Gaussian sample is fitted back to its parameters."""
        rng = np.random.default_rng(seed=2)
        hist = Histogram1D("test", 200, -5.0, 5.0)
        hist.fill(rng.normal(1.0, 0.5, size=20000))

        result = hist.fit(gaussian, (hist.maximum, 0.5, 1.0))

        assert result.success
        assert result.params[1] == pytest.approx(1.0, abs=0.02)
        assert abs(result.params[2]) == pytest.approx(0.5, abs=0.02)
        assert result.ndf == 200 - 3
        assert np.all(result.errors > 0.0)
        assert hist.fits[-1][1] is result

    def test_fit_range(self):
        """The fit range is recorded in the result."""
        rng = np.random.default_rng(seed=3)
        hist = Histogram1D("test", 100, -5.0, 5.0)
        hist.fill(rng.normal(0.0, 1.0, size=5000))

        result = hist.fit(gaussian, (hist.maximum, 0.0, 1.0), (-2.0, 2.0))

        assert result.success
        assert result.fit_range == (-2.0, 2.0)
        assert result.ndf == 40 - 3

    def test_empty_fit(self):
        """Fitting an empty range fails without raising."""
        hist = Histogram1D("test", 100, -5.0, 5.0)
        hist.fill(np.full(100, 3.0))

        result = hist.fit(gaussian, (1.0, 0.0, 1.0), (-1.0, 1.0))

        assert not result.success
        assert "no entries" in result.message
        np.testing.assert_array_equal(result.params, [1.0, 0.0, 1.0])

    def test_too_few_bins(self):
        """Fitting fewer bins than parameters fails without raising."""
        hist = Histogram1D("test", 2, -1.0, 1.0)
        hist.fill([-0.5, 0.5, 0.5])

        result = hist.fit(gaussian, (2.0, 0.0, 1.0))

        assert not result.success
        assert "not enough bins" in result.message

    def test_bounded_fit(self):
        """Bounds are applied to the fitted parameters."""
        rng = np.random.default_rng(seed=4)
        hist = Histogram1D("test", 10, -5.0, 5.0)
        hist.fill(rng.normal(0.5, 0.01, size=500))

        min_sigma = hist.width / np.sqrt(12.0)
        bounds = ((0.0, -np.inf, min_sigma), (np.inf, np.inf, np.inf))
        result = hist.fit(gaussian, (hist.maximum, 0.5, 2.0 * min_sigma), None, bounds)

        assert result.success
        assert result.params[2] >= min_sigma
        assert result.params[0] >= 0.0

    def test_undetermined_covariance(self):
        """A fit with finite parameters succeeds without a covariance."""

        def constant(x, level, slope):
            return level + 0.0 * slope * x

        hist = Histogram1D("test", 10, 0.0, 10.0)
        hist.fill(np.repeat(np.arange(10) + 0.5, 5))

        result = hist.fit(constant, (1.0, 1.0))

        assert result.success
        assert np.all(np.isfinite(result.params))
        assert result.params[0] == pytest.approx(5.0, rel=1e-3)
        assert not np.all(np.isfinite(result.errors))
        assert "Covariance" in result.message
