"""Sensor detection efficiency measurement.

This module uses the alignment cuts of each sensor to decide whether the
sensor detected the particle predicted by each telescope track:
- A track is efficient if at least one hit of the same sensor in the same
  event is correlated with its offset-corrected position
- Efficient and total track counts are accumulated in spatial regions of the
  sensor to build an efficiency map
"""

import numpy as np

from tbalign.errors import PreconditionViolation
from tbalign.io.write import CSVWriter
from tbalign.utils.logger import logger

__all__ = ["EfficiencyMap", "EfficiencyAna"]


class EfficiencyMap:
    """Counts of efficient and total tracks in a regular 2D grid of regions.

    Attributes
    ----------
    bins : Tuple[int, int]
        Number of regions along x and y
    ranges : Tuple[Tuple[float, float], Tuple[float, float]]
        (low, high) boundaries of the grid along x and y
    total : np.ndarray
        (Bx, By) number of tracks in each region
    hits : np.ndarray
        (Bx, By) number of efficient tracks in each region
    num_total : int
        Number of tracks, including those outside of the grid
    num_hits : int
        Number of efficient tracks, including those outside of the grid
    """

    def __init__(self, bins=(10, 10), ranges=((-5.0, 5.0), (-5.0, 5.0))):
        """Initialize empty counters.

        Parameters
        ----------
        bins : Union[int, Tuple[int, int]], default (10, 10)
            Number of regions along x and y
        ranges : Tuple[Tuple[float, float], Tuple[float, float]]
            (low, high) boundaries of the grid along x and y
        """
        if np.isscalar(bins):
            bins = (bins, bins)
        assert len(bins) == 2 and len(ranges) == 2, "The map must be two-dimensional."
        for low, high in ranges:
            assert high > low, "The range of each axis must be positive."

        self.bins = tuple(int(b) for b in bins)
        self.ranges = tuple((float(low), float(high)) for low, high in ranges)
        self.total = np.zeros(self.bins, dtype=np.int64)
        self.hits = np.zeros(self.bins, dtype=np.int64)
        self.num_total = 0
        self.num_hits = 0

    def region_index(self, points):
        """Region indexes of a set of positions.

        Parameters
        ----------
        points : np.ndarray
            (N, 2) positions

        Returns
        -------
        index : np.ndarray
            (N, 2) region index along x and y
        inside : np.ndarray
            (N) mask of the positions that fall inside the grid
        """
        points = np.asarray(points, dtype=np.float64).reshape(-1, 2)
        index = np.empty(points.shape, dtype=np.int64)
        inside = np.ones(len(points), dtype=bool)
        for axis, ((low, high), num_bins) in enumerate(zip(self.ranges, self.bins)):
            coords = points[:, axis]
            inside &= (coords >= low) & (coords < high)
            index[:, axis] = np.minimum(
                np.floor((coords - low) / (high - low) * num_bins), num_bins - 1
            )

        return index, inside

    def fill(self, points, efficient):
        """Count a set of tracks.

        Parameters
        ----------
        points : np.ndarray
            (N, 2) positions of the tracks in the sensor
        efficient : np.ndarray
            (N) whether each track was matched to a hit
        """
        efficient = np.atleast_1d(np.asarray(efficient, dtype=bool))
        index, inside = self.region_index(points)
        assert len(index) == len(efficient), "Need one efficiency flag per track."

        self.num_total += len(efficient)
        self.num_hits += int(np.sum(efficient))

        index, efficient = index[inside], efficient[inside]
        np.add.at(self.total, (index[:, 0], index[:, 1]), 1)
        np.add.at(self.hits, (index[efficient, 0], index[efficient, 1]), 1)

    @property
    def efficiency(self):
        """(Bx, By) efficiency of each region (NaN where there is no track)."""
        with np.errstate(divide="ignore", invalid="ignore"):
            return np.where(self.total > 0, self.hits / self.total, np.nan)

    @property
    def overall(self):
        """Efficiency over all the tracks (NaN if there is none)."""
        if self.num_total == 0:
            return np.nan

        return self.num_hits / self.num_total

    def centers(self, axis):
        """(B) array of region centers along one axis."""
        (low, high), num_bins = self.ranges[axis], self.bins[axis]
        width = (high - low) / num_bins

        return low + (np.arange(num_bins) + 0.5) * width


class EfficiencyAna:
    """Accumulates the efficiency map of every sensor over the event stream.

    Typical configuration should look like:

    .. code-block:: yaml

        efficiency:
          bins: [10, 10]
          ranges: [[-5, 5], [-5, 5]]
          file_name: efficiency.csv
    """

    name = "efficiency"

    def __init__(
        self,
        manager,
        bins=(10, 10),
        ranges=((-5.0, 5.0), (-5.0, 5.0)),
        file_name=None,
        overwrite=False,
    ):
        """Initialize the analysis.

        Parameters
        ----------
        manager : AlignmentManager
            Calibrators providing the offsets and the cuts of each sensor
        bins : Union[int, Tuple[int, int]], default (10, 10)
            Number of regions along x and y
        ranges : Tuple[Tuple[float, float], Tuple[float, float]]
            (low, high) boundaries of the grid along x and y
        file_name : str, optional
            Path to the output CSV file. If not specified, nothing is written
        overwrite : bool, default False
            If `True`, overwrite the CSV file if it already exists
        """
        self.manager = manager
        self.bins = bins
        self.ranges = ranges
        self.maps = {}

        self.writer = None
        if file_name is not None:
            self.writer = CSVWriter(file_name, overwrite=overwrite)

    def process(self, pair):
        """Classify the tracks of one event pair, update the counters.

        Parameters
        ----------
        pair : EventPair
            Synchronized track predictions and hits of one event
        """
        for sensor_id, tracks in pair.tracks.items():
            if len(tracks) == 0:
                continue

            # Correlation testing is only defined once the sensor is calibrated
            if sensor_id not in self.manager or not self.manager[sensor_id].calculated:
                raise PreconditionViolation(
                    f"Event {pair.event} has tracks in sensor {sensor_id}, "
                    "which has no alignment calibration."
                )
            calibrator = self.manager[sensor_id]

            # A track is efficient if it matches any hit of the sensor
            corrected = calibrator.correct(tracks)
            hits = pair.get_hits(sensor_id)
            if len(hits):
                matches = calibrator.is_correlated(
                    corrected[:, None, :], hits[None, :, :]
                )
                efficient = np.any(matches, axis=1)
            else:
                efficient = np.zeros(len(tracks), dtype=bool)

            if sensor_id not in self.maps:
                self.maps[sensor_id] = EfficiencyMap(self.bins, self.ranges)
            self.maps[sensor_id].fill(corrected, efficient)

    def finalize(self):
        """Log the overall efficiencies, write the regions to the CSV file.

        Returns
        -------
        Dict[int, float]
            Overall efficiency of each sensor
        """
        result = {}
        for sensor_id in sorted(self.maps):
            eff_map = self.maps[sensor_id]
            result[sensor_id] = eff_map.overall
            logger.info(
                "Sensor %d efficiency: %d / %d = %.4f",
                sensor_id,
                eff_map.num_hits,
                eff_map.num_total,
                eff_map.overall,
            )

            if self.writer is None:
                continue
            x_centers, y_centers = eff_map.centers(0), eff_map.centers(1)
            efficiency = eff_map.efficiency
            for i, j in np.ndindex(*eff_map.bins):
                self.writer.append(
                    {
                        "sensor": sensor_id,
                        "ix": i,
                        "iy": j,
                        "x": x_centers[i],
                        "y": y_centers[j],
                        "total": eff_map.total[i, j],
                        "hits": eff_map.hits[i, j],
                        "efficiency": efficiency[i, j],
                    }
                )

        return result
