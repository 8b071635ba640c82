"""Tests for the alignment calibrator of a single sensor."""

import numpy as np
import pytest

from tbalign.calib import AlignmentCalibrator
from tbalign.errors import (
    FitConvergenceFailure,
    PersistenceFailure,
    PreconditionViolation,
)


@pytest.fixture(name="calibrator")
def fixture_calibrator():
    """Empty calibrator with initialized distributions."""
    calibrator = AlignmentCalibrator(sensor_id=0)
    calibrator.init_distributions("align_x", "align_y")

    return calibrator


@pytest.fixture(name="aligned")
def fixture_aligned(calibrator, samples):
    """Calibrator aligned on the default correlation samples."""
    calibrator.fill(*samples)
    calibrator.calculate_alignment()

    return calibrator


class TestAlignmentCalibrator:
    """Test the lifecycle of a calibrator."""

    def test_init_distributions(self, calibrator):
        """Distributions use the default binning, only once."""
        assert calibrator.hist_x.num_bins == 1000
        assert calibrator.hist_y.num_bins == 250
        assert calibrator.hist_x.low == -5.0 and calibrator.hist_x.high == 5.0
        assert calibrator.hist_x.name == "align_x"

        with pytest.raises(PreconditionViolation):
            calibrator.init_distributions("again_x", "again_y")

    def test_fill_uninitialized(self):
        """Filling requires the distributions."""
        calibrator = AlignmentCalibrator()
        with pytest.raises(PreconditionViolation):
            calibrator.fill(0.0, 0.0)

    def test_fill(self, calibrator):
        """Each sample goes to both distributions."""
        calibrator.fill(0.1, 0.2)
        calibrator.fill(np.array([0.1, 0.3]), np.array([-0.1, 0.0]))

        assert calibrator.hist_x.entries == 3
        assert calibrator.hist_y.entries == 3

    def test_not_calculated(self, calibrator):
        """Nothing can be classified before the alignment is known."""
        assert not calibrator.calculated
        with pytest.raises(PreconditionViolation):
            _ = calibrator.offset
        with pytest.raises(PreconditionViolation):
            calibrator.get_cuts()
        with pytest.raises(PreconditionViolation):
            calibrator.is_correlated((0.0, 0.0), (0.0, 0.0))

    def test_alignment(self, aligned):
        """Gaussian X and uniform Y samples give back their parameters."""
        offset, cuts = aligned.get_offset(), aligned.get_cuts()

        assert aligned.calculated
        assert offset.shape == (3,) and cuts.shape == (2,)
        assert offset[0] == pytest.approx(0.2, abs=0.01)
        assert offset[1] == pytest.approx(0.0, abs=0.03)
        assert offset[2] == 0.0
        assert cuts[0] == pytest.approx(0.05, abs=0.01)
        assert cuts[1] == pytest.approx(0.3, abs=0.05)
        assert aligned.fit_x.success and aligned.fit_y.success

    def test_matches(self, aligned):
        """A track shifted by the offset matches the hit, a far one does not."""
        assert aligned.matches((0.21, 0.0), (0.0, 0.0)) is True
        assert aligned.matches((2.0, 2.0), (0.0, 0.0)) is False

    def test_fill_after_calculation(self, aligned):
        """The distributions are frozen once the alignment is final."""
        with pytest.raises(PreconditionViolation):
            aligned.fill(0.0, 0.0)

    def test_idempotent(self, aligned):
        """Calculating the alignment again changes nothing."""
        offset = aligned.offset
        num_fits = len(aligned.hist_x.fits)
        aligned.calculate_alignment()

        np.testing.assert_array_equal(aligned.offset, offset)
        assert len(aligned.hist_x.fits) == num_fits

    def test_copies(self, aligned):
        """The offset and cuts cannot be modified from the outside."""
        offset = aligned.offset
        offset[0] = 100.0

        assert aligned.offset[0] != 100.0

    def test_gaussian_recovery(self, calibrator):
        """The X offset and cut follow the Gaussian mean and width."""
        rng = np.random.default_rng(seed=4)
        dx = rng.normal(-0.5, 0.1, size=20000)
        calibrator.fill(dx, rng.uniform(-0.3, 0.3, size=20000))
        calibrator.calculate_alignment()

        assert calibrator.offset[0] == pytest.approx(-0.5, abs=0.01)
        assert calibrator.cuts[0] == pytest.approx(0.1, abs=0.01)

    def test_plateau_recovery(self, calibrator):
        """The Y offset and cut follow the center and half-width of the
        uniform distribution."""
        rng = np.random.default_rng(seed=5)
        dy = rng.uniform(-1.02, 0.62, size=20000)
        calibrator.fill(rng.normal(0.0, 0.05, size=20000), dy)
        calibrator.calculate_alignment()

        assert calibrator.offset[1] == pytest.approx(-0.2, abs=0.05)
        assert calibrator.cuts[1] == pytest.approx(0.82, abs=0.05)

    def test_rebin(self, calibrator):
        """Sparse distributions are rebinned before being fitted."""
        rng = np.random.default_rng(seed=6)
        calibrator.fill(
            rng.normal(0.0, 0.5, size=500), rng.uniform(-1.5, 1.5, size=500)
        )
        calibrator.calculate_alignment()

        assert calibrator.calculated
        assert calibrator.hist_x.num_bins == 50
        assert calibrator.hist_y.num_bins == 50
        assert calibrator.offset[0] == pytest.approx(0.0, abs=0.2)
        assert calibrator.cuts[1] == pytest.approx(1.5, abs=0.3)

    @pytest.mark.parametrize(
        "num_samples, sigma",
        [
            (1000, 0.05),
            (1500, 0.05),
            (2000, 0.05),
            (3000, 0.05),
            (1000, 0.1),
            (2000, 0.1),
        ],
    )
    def test_sparse_gaussian(self, calibrator, num_samples, sigma):
        """Narrow distributions are still fitted once they are rebinned."""
        rng = np.random.default_rng(seed=num_samples)
        calibrator.fill(
            rng.normal(0.2, sigma, size=num_samples),
            rng.uniform(-0.3, 0.3, size=num_samples),
        )
        calibrator.calculate_alignment()

        assert calibrator.hist_x.num_bins < 1000
        assert calibrator.offset[0] == pytest.approx(0.2, abs=0.03)
        assert 0.5 * sigma < calibrator.cuts[0] < 2.0 * sigma
        assert calibrator.cuts[1] == pytest.approx(0.3, abs=0.1)

    def test_unresolved_gaussian(self, calibrator):
        """A Gaussian narrower than one rebinned bin is fitted with a width
        bounded by the bin quantization."""
        rng = np.random.default_rng(seed=8)
        calibrator.fill(
            rng.normal(0.2, 0.05, size=500), rng.uniform(-0.3, 0.3, size=500)
        )
        calibrator.calculate_alignment()

        width = calibrator.hist_x.width
        assert width == pytest.approx(0.2)
        assert calibrator.offset[0] == pytest.approx(0.2, abs=0.05)
        assert 0.99 * width / np.sqrt(12.0) <= calibrator.cuts[0] < 0.1

    def test_sparse_plateau(self, calibrator):
        """A narrow plateau spanning a few rebinned bins is still fitted."""
        rng = np.random.default_rng(seed=9)
        calibrator.fill(
            rng.normal(0.0, 0.5, size=600), rng.uniform(-0.3, 0.3, size=600)
        )
        calibrator.calculate_alignment()

        fit_range = calibrator.fit_y.fit_range
        assert calibrator.hist_y.num_bins == 62
        assert fit_range[1] - fit_range[0] >= 7.9 * calibrator.hist_y.width
        assert calibrator.offset[1] == pytest.approx(0.0, abs=0.1)
        assert 0.15 < calibrator.cuts[1] < 0.45

    def test_no_rebin(self, calibrator):
        """Populated distributions keep their binning."""
        assert not calibrator.rebin_if_necessary(calibrator.hist_x)

        calibrator.fill(np.zeros(10000), np.zeros(10000))

        assert not calibrator.rebin_if_necessary(calibrator.hist_x)
        assert not calibrator.rebin_if_necessary(calibrator.hist_y)

    def test_fit_failure(self, calibrator):
        """A distribution with no entry in the fit range cannot be aligned."""
        calibrator.fill(np.full(10, 20.0), np.full(10, 20.0))
        with pytest.raises(FitConvergenceFailure, match="align_x"):
            calibrator.calculate_alignment()

        assert not calibrator.calculated


class TestCorrelation:
    """Test the correlation predicates against known cuts."""

    @pytest.fixture(name="loaded")
    def fixture_loaded(self, tmp_path):
        """Calibrator loaded with an offset (1, -1, 0) and cuts (0.1, 0.5)."""
        path = tmp_path / "calib.txt"
        path.write_text("1.0 -1.0 0.0 0.1 0.5\n")
        calibrator = AlignmentCalibrator(sensor_id=3, nsigma=2.0)
        assert calibrator.load(str(path))

        return calibrator

    def test_axes(self, loaded):
        """Only the X cut is scaled by nsigma."""
        assert loaded.is_correlated_x(0.0, 0.19)
        assert not loaded.is_correlated_x(0.0, 0.21)
        assert loaded.is_correlated_y(0.0, 0.49)
        assert not loaded.is_correlated_y(0.0, 0.5)

    def test_strict(self, loaded):
        """Positions exactly at the cut are not correlated."""
        assert loaded.is_correlated((0.0, 0.0), (0.0, 0.49)) is True
        assert loaded.is_correlated((0.0, 0.0), (0.0, 0.5)) is False

    def test_vectorized(self, loaded):
        """Arrays of positions are classified element-wise."""
        a = np.zeros((3, 2))
        b = np.array([[0.1, 0.1], [0.3, 0.0], [0.0, -0.6]])
        result = loaded.is_correlated(a, b)

        np.testing.assert_array_equal(result, [True, False, False])

    def test_correct(self, loaded):
        """Predicted positions are shifted by the in-plane offset."""
        np.testing.assert_allclose(loaded.correct((1.0, 1.0)), (0.0, 2.0))
        assert loaded.matches((1.05, -1.2), (0.0, 0.0))
        assert not loaded.matches((0.0, 0.0), (0.0, 0.0))


class TestPersistence:
    """Test the storage of the calibration to text files."""

    def test_round_trip(self, aligned, tmp_path):
        """A persisted calibration is loaded back exactly."""
        path = str(tmp_path / "calib.txt")
        aligned.persist(path)

        loaded = AlignmentCalibrator()
        assert loaded.load(path)
        assert loaded.calculated
        np.testing.assert_array_equal(loaded.offset, aligned.offset)
        np.testing.assert_array_equal(loaded.cuts, aligned.cuts)

    def test_format(self, tmp_path):
        """The file holds one line with five values."""
        src = tmp_path / "src.txt"
        src.write_text("0.5 0.25 0.0 0.125 1.5\n")
        calibrator = AlignmentCalibrator()
        calibrator.load(str(src))

        path = tmp_path / "out.txt"
        calibrator.persist(str(path))

        assert path.read_text() == "0.5 0.25 0.0 0.125 1.5\n"

    def test_persist_uncalculated(self, calibrator, tmp_path):
        """Only a final alignment can be persisted."""
        with pytest.raises(PreconditionViolation):
            calibrator.persist(str(tmp_path / "calib.txt"))

    def test_missing(self, calibrator, tmp_path):
        """A missing file is not an error, the calibrator stays usable."""
        assert not calibrator.load(str(tmp_path / "missing.txt"))
        assert not calibrator.calculated

        calibrator.fill(0.0, 0.0)

    @pytest.mark.parametrize("content", ["1.0 2.0 3.0\n", "1 2 3 4 five\n", ""])
    def test_malformed(self, content, tmp_path):
        """A file which does not hold five numbers is a persistence failure."""
        path = tmp_path / "calib.txt"
        path.write_text(content)

        calibrator = AlignmentCalibrator()
        with pytest.raises(PersistenceFailure):
            calibrator.load(str(path))
        assert not calibrator.calculated

    def test_loaded_never_fits(self, calibrator, tmp_path):
        """A loaded calibration is final, its distributions are never fitted."""
        path = tmp_path / "calib.txt"
        path.write_text("0.0 0.0 0.0 0.1 0.1\n")
        calibrator.load(str(path))
        calibrator.calculate_alignment()

        assert calibrator.fit_x is None
        assert len(calibrator.hist_x.fits) == 0
