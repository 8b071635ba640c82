"""tbalign driver class.

Takes care of everything in one centralized place:
- Event stream loading
- Alignment pass (or loading of a persisted alignment)
- Alignment fits and persistence
- Efficiency pass
- Writing output to file
"""

import os
from enum import Enum

import yaml

from .ana import EfficiencyAna
from .calib import AlignmentManager
from .errors import PersistenceFailure, PreconditionViolation
from .io import HDF5Writer, reader_factory
from .utils.logger import logger
from .utils.stopwatch import StopwatchManager
from .version import __version__

__all__ = ["Driver", "DriverState"]


class DriverState(Enum):
    """Stages of the two-pass analysis, in the order they are reached."""

    IDLE = 0
    ALIGNMENT = 1
    CALIBRATED = 2
    EFFICIENCY = 3
    FINISHED = 4


class Driver:
    """Central tbalign driver.

    Processes the global configuration and runs the two analysis passes:
      1. Alignment pass: fill the correlation distributions of each sensor,
         fit them, persist the offsets and the cuts. This pass is skipped if
         the calibration of every sensor can be loaded and the alignment is
         not forced.
      2. Efficiency pass: match the track predictions to the sensor hits
         using the cuts, accumulate the per-region efficiency counters.

    The efficiency pass never starts before every calibrator which received
    samples has its final cuts.

    It takes a configuration dictionary of the form:

    .. code-block:: yaml

        base:
          <Base driver configuration>
        io:
          <Event stream configuration>
        align:
          <Alignment configuration>
        efficiency:
          <Efficiency measurement configuration>
    """

    def __init__(self, cfg, source=None):
        """Initializes the class attributes.

        Parameters
        ----------
        cfg : dict
            Global configuration dictionary
        source : Iterable[EventPair], optional
            Event-pair stream. If not specified, a reader is built from the
            `io.reader` configuration block.
        """
        # Initialize the timers
        self.watch = StopwatchManager()
        self.watch.initialize(["alignment", "fit", "efficiency"])

        # Process the full configuration dictionary and store it
        base, io, align, efficiency = self.process_config(**cfg)

        # Initialize the base driver configuration parameters
        self.initialize_base(**base)

        # Initialize the event stream
        if source is None:
            assert (
                io is not None and "reader" in io
            ), "Must provide an event source or an `io.reader` configuration."
            source = reader_factory(io["reader"])
        self.source = source

        # Initialize the alignment calibrators
        self.initialize_align(**align)

        # Store the efficiency measurement configuration
        self.efficiency_cfg = efficiency
        self.efficiency = None

        self.state = DriverState.IDLE

    def process_config(self, io=None, base=None, align=None, efficiency=None):
        """Reads the configuration and dumps it to the logger.

        Parameters
        ----------
        io : dict, optional
            Event stream configuration dictionary
        base : dict, optional
            Base driver configuration dictionary
        align : dict, optional
            Alignment configuration dictionary
        efficiency : dict, optional
            Efficiency measurement configuration dictionary

        Returns
        -------
        Tuple[dict]
            Processed configuration blocks
        """
        base = {} if base is None else base
        align = {} if align is None else align
        efficiency = {} if efficiency is None else efficiency

        # Set the verbosity of the logger
        verbosity = base.get("verbosity", "info")
        logger.setLevel(verbosity.upper())

        # Rebuild global configuration dictionary
        self.cfg = {"base": base, "align": align, "efficiency": efficiency}
        if io is not None:
            self.cfg["io"] = io

        # Log environment information and configuration
        logger.info("Release version: %s\n", __version__)
        logger.info(yaml.dump(self.cfg, default_flow_style=None, sort_keys=False))

        return base, io, align, efficiency

    def initialize_base(
        self,
        run_id=None,
        log_dir="logs",
        overwrite_log=False,
        parent_path=None,
        verbosity="info",
    ):
        """Initialize the base driver parameters.

        Parameters
        ----------
        run_id : int, optional
            ID of the run being analyzed, used to name the output files
        log_dir : str, default 'logs'
            Path to the directory where the outputs will be written to
        overwrite_log : bool, default False
            If True, overwrite the output CSV files if they already exist
        parent_path : str, optional
            Path to the parent directory of the configuration file. Relative
            output and calibration paths are resolved with respect to it.
        verbosity : str, default 'info'
            Verbosity level to pass to the `logging` module. Pick one of
            'debug', 'info', 'warning', 'error', 'critical'.
        """
        self.run_id = run_id
        self.parent_path = parent_path
        self.log_dir = self.resolve_path(log_dir)
        self.overwrite_log = overwrite_log

    def initialize_align(
        self,
        force=False,
        fallback=True,
        nsigma=1.0,
        calib_dir="calib",
        prefix="alignment",
        sensors=None,
        draw=False,
        save_histograms=False,
    ):
        """Initialize the alignment calibrators.

        Parameters
        ----------
        force : bool, default False
            If `True`, always compute the alignment from the data, even if a
            persisted calibration exists
        fallback : bool, default True
            If `True`, compute the alignment of the sensors whose calibration
            could not be loaded. If `False`, a missing calibration is fatal.
        nsigma : float, default 1.0
            Multiplier applied to the X cut when matching tracks and hits
        calib_dir : str, default 'calib'
            Directory where the calibration files live
        prefix : str, default 'alignment'
            Prefix of the calibration file names
        sensors : List[int], optional
            Sensor IDs expected in the run. If not specified, sensors are
            discovered from the calibration files or from the event stream.
        draw : bool, default False
            If `True`, render an image of the distributions of each sensor
        save_histograms : bool, default False
            If `True`, store the distributions of each sensor to HDF5
        """
        self.force = force
        self.fallback = fallback
        self.draw = draw
        self.save_histograms = save_histograms
        self.manager = AlignmentManager(
            nsigma=nsigma,
            calib_dir=self.resolve_path(calib_dir),
            prefix=prefix,
            run_id=self.run_id,
            sensors=sensors,
        )

    def resolve_path(self, path):
        """Resolve a relative path with respect to the configuration directory.

        Parameters
        ----------
        path : str
            Absolute path, or path relative to the configuration directory

        Returns
        -------
        str
            Resolved path (unchanged if there is no configuration directory)
        """
        if self.parent_path is None or os.path.isabs(path):
            return path

        return os.path.join(self.parent_path, path)

    def output_path(self, name, ext):
        """Path to an output file of this run in the log directory.

        Parameters
        ----------
        name : str
            Base name of the output
        ext : str
            Extension of the output file

        Returns
        -------
        str
            Path to the output file
        """
        os.makedirs(self.log_dir, exist_ok=True)
        run = f"_run{self.run_id:06d}" if self.run_id is not None else ""

        return os.path.join(self.log_dir, f"{name}{run}.{ext}")

    def run(self):
        """Run both passes in order.

        Returns
        -------
        Dict[int, float]
            Overall efficiency of each sensor
        """
        self.align()
        result = self.measure_efficiency()

        for key, total in self.watch.times_sum().items():
            logger.info(
                "Total %s time: %.2f s (CPU: %.2f s)", key, total.wall, total.cpu
            )

        return result

    def align(self):
        """Produce the final offset and cuts of every sensor.

        Loads the persisted calibrations when allowed, and runs the alignment
        pass over the event stream for the sensors which could not be loaded.
        """
        if self.state != DriverState.IDLE:
            raise PreconditionViolation(
                f"The alignment can only be run once, driver is {self.state.name}."
            )
        self.state = DriverState.ALIGNMENT

        # Attempt to load the persisted calibrations first
        if not self.force:
            sensor_ids = self.manager.expected
            if sensor_ids is None:
                sensor_ids = self.manager.discover()

            missing = self.manager.load(sensor_ids)
            if self.manager.calibrated:
                logger.info(
                    "Loaded the alignment of %d sensor(s), skipping alignment pass.",
                    len(sensor_ids),
                )
                self.state = DriverState.CALIBRATED
                return

            if not self.fallback:
                raise PersistenceFailure(
                    f"Missing calibration for sensor(s) {missing or 'all'} "
                    f"of run {self.run_id} and fitting from data is disabled."
                )

        # The stream is traversed twice, it must be re-iterable
        if iter(self.source) is self.source:
            raise ValueError(
                "The event source is a one-shot iterator and cannot be "
                "traversed by both the alignment and the efficiency passes."
            )

        self.alignment_pass()
        self.finish_alignment()

    def alignment_pass(self):
        """Fill the correlation distributions from the event stream."""
        logger.info("Starting the alignment pass.")
        self.watch.start("alignment")
        num_events, num_samples = 0, 0
        for pair in self.source:
            num_events += 1
            for sensor_id in pair.sensors:
                residuals = pair.residuals(sensor_id)
                if len(residuals) == 0:
                    continue

                calibrator = self.manager.get(sensor_id)
                if calibrator.calculated:
                    continue

                calibrator.fill(residuals[:, 0], residuals[:, 1])
                num_samples += len(residuals)

        self.watch.stop("alignment")
        logger.info(
            "Alignment pass: %d event(s), %d correlation sample(s) (%.2f s)",
            num_events,
            num_samples,
            self.watch.time("alignment").wall,
        )

    def finish_alignment(self):
        """Fit the distributions, persist the results and check that the
        efficiency pass can start."""
        self.watch.start("fit")
        self.manager.calculate()
        self.watch.stop("fit")
        logger.info("Alignment fits done (%.2f s)", self.watch.time("fit").wall)

        self.manager.persist()

        # Optional diagnostic outputs
        if self.draw:
            for sensor_id, calibrator in self.manager.items():
                if calibrator.calculated:
                    path = self.manager.file_path(sensor_id)
                    calibrator.save_image(os.path.splitext(path)[0] + ".png")
        if self.save_histograms:
            HDF5Writer(self.output_path("alignment", "h5")).write(self.manager)

        # At least one sensor must have usable cuts for the efficiency pass
        if not any(c.calculated for _, c in self.manager.items()):
            raise PreconditionViolation(
                "No sensor could be aligned, the efficiency pass has no cuts."
            )

        pending = self.manager.pending()
        if pending:
            logger.warning("Sensor(s) %s could not be aligned.", pending)

        self.state = DriverState.CALIBRATED

    def measure_efficiency(self):
        """Run the efficiency pass over the event stream.

        Returns
        -------
        Dict[int, float]
            Overall efficiency of each sensor
        """
        if self.state != DriverState.CALIBRATED:
            raise PreconditionViolation(
                "The efficiency pass requires the alignment to be final, "
                f"driver is {self.state.name}."
            )
        self.state = DriverState.EFFICIENCY

        cfg = dict(self.efficiency_cfg)
        if "file_name" not in cfg:
            cfg["file_name"] = self.output_path("efficiency", "csv")
        cfg.setdefault("overwrite", self.overwrite_log)
        self.efficiency = EfficiencyAna(self.manager, **cfg)

        logger.info("Starting the efficiency pass.")
        self.watch.start("efficiency")
        for pair in self.source:
            self.efficiency.process(pair)

        result = self.efficiency.finalize()
        self.watch.stop("efficiency")
        logger.info(
            "Efficiency pass done (%.2f s)", self.watch.time("efficiency").wall
        )

        self.state = DriverState.FINISHED

        return result
