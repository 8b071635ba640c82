"""Holds the alignment calibrators of all the sensors of a run."""

import glob
import os
import re

from tbalign.math import Histogram1D
from tbalign.utils.logger import logger

from .aligner import AlignmentCalibrator

__all__ = ["AlignmentManager"]


class AlignmentManager:
    """Explicit mapping from sensor IDs to their alignment calibrators.

    The manager is owned by the driver and shared by the alignment pass (which
    fills and fits the calibrators) and by the efficiency pass (which only
    reads their cuts). It also knows where the calibration of each sensor is
    persisted:

    .. code-block:: text

        <calib_dir>/<prefix>_run<run_id:06d>_sensor<sensor_id:02d>.txt
    """

    def __init__(
        self,
        nsigma=1.0,
        calib_dir="calib",
        prefix="alignment",
        run_id=None,
        sensors=None,
        backend=Histogram1D,
    ):
        """Initialize the manager.

        Parameters
        ----------
        nsigma : float, default 1.0
            Multiplier applied to the X cut of every calibrator
        calib_dir : str, default 'calib'
            Directory where the calibration files live
        prefix : str, default 'alignment'
            Prefix of the calibration file names
        run_id : int, optional
            ID of the run being calibrated
        sensors : List[int], optional
            Sensor IDs to create calibrators for upfront
        backend : type, default Histogram1D
            Binned distribution class used by the calibrators
        """
        self.nsigma = nsigma
        self.calib_dir = calib_dir
        self.prefix = prefix
        self.run_id = run_id
        self.backend = backend

        self.calibrators = {}
        self.expected = sorted(sensors) if sensors is not None else None
        if sensors is not None:
            for sensor_id in sensors:
                self.get(sensor_id)

    def __len__(self):
        return len(self.calibrators)

    def __contains__(self, sensor_id):
        return sensor_id in self.calibrators

    def __getitem__(self, sensor_id):
        return self.calibrators[sensor_id]

    def __iter__(self):
        return iter(sorted(self.calibrators))

    def items(self):
        """List of (sensor ID, calibrator) pairs, ordered by sensor ID."""
        return [(k, self.calibrators[k]) for k in sorted(self.calibrators)]

    def get(self, sensor_id):
        """Fetch the calibrator of a sensor, create it if it does not exist.

        Parameters
        ----------
        sensor_id : int
            Sensor ID

        Returns
        -------
        AlignmentCalibrator
            Calibrator of the sensor
        """
        if sensor_id not in self.calibrators:
            calibrator = AlignmentCalibrator(sensor_id, self.nsigma, self.backend)
            calibrator.init_distributions(
                f"align_x_sensor{sensor_id:02d}", f"align_y_sensor{sensor_id:02d}"
            )
            self.calibrators[sensor_id] = calibrator

        return self.calibrators[sensor_id]

    @property
    def calibrated(self):
        """Whether every calibrator has a final offset and cuts."""
        return len(self.calibrators) > 0 and all(
            c.calculated for c in self.calibrators.values()
        )

    def pending(self):
        """List of the sensor IDs which are not calibrated yet."""
        return [k for k, c in self.items() if not c.calculated]

    def calculate(self):
        """Calculate the alignment of every calibrator which received samples.

        Calibrators which never received a sample are left uncalibrated.
        """
        for sensor_id, calibrator in self.items():
            if calibrator.calculated:
                continue
            if calibrator.hist_x is None or calibrator.hist_x.entries == 0:
                logger.warning(
                    "Sensor %d received no correlation sample, not aligned.",
                    sensor_id,
                )
                continue

            calibrator.calculate_alignment()

    def file_path(self, sensor_id):
        """Path to the calibration file of a sensor.

        Parameters
        ----------
        sensor_id : int
            Sensor ID

        Returns
        -------
        str
            Path to the calibration file
        """
        run = f"_run{self.run_id:06d}" if self.run_id is not None else ""
        file_name = f"{self.prefix}{run}_sensor{sensor_id:02d}.txt"

        return os.path.join(self.calib_dir, file_name)

    def discover(self):
        """Find the sensor IDs which have a calibration file for this run.

        Returns
        -------
        List[int]
            Sorted list of sensor IDs
        """
        pattern = re.compile(r".*_sensor(\d+)\.txt$")
        paths = glob.glob(self.file_path(0).replace("_sensor00.txt", "_sensor*.txt"))
        sensor_ids = []
        for path in paths:
            match = pattern.match(path)
            if match:
                sensor_ids.append(int(match.group(1)))

        return sorted(sensor_ids)

    def persist(self):
        """Write the calibration file of every calibrated sensor."""
        os.makedirs(self.calib_dir, exist_ok=True)
        for sensor_id, calibrator in self.items():
            if calibrator.calculated:
                calibrator.persist(self.file_path(sensor_id))

    def load(self, sensor_ids=None):
        """Attempt to load the calibration of a set of sensors.

        Parameters
        ----------
        sensor_ids : List[int], optional
            Sensors to load. If not specified, uses the expected sensors or,
            if there are none, the sensors with a calibration file on disk.

        Returns
        -------
        List[int]
            Sensor IDs for which the calibration could not be loaded
        """
        if sensor_ids is None:
            sensor_ids = self.expected if self.expected is not None else self.discover()

        missing = []
        for sensor_id in sensor_ids:
            if not self.get(sensor_id).load(self.file_path(sensor_id)):
                missing.append(sensor_id)

        return missing
