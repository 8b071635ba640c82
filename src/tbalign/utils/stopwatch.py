"""Wall/CPU time bookkeeping used to profile the analysis passes."""

import time
from dataclasses import dataclass


@dataclass
class Time:
    """Simple dataclass to hold time information.

    Attributes
    ----------
    wall : float, optional
         Wall time
    cpu : float, optional
         CPU time
    """

    wall: float = None
    cpu: float = None

    def __add__(self, other):
        return Time(wall=self.wall + other.wall, cpu=self.cpu + other.cpu)

    def __sub__(self, other):
        return Time(wall=self.wall - other.wall, cpu=self.cpu - other.cpu)

    @classmethod
    def current(cls):
        """Returns the current time (wall and cpu).

        Returns
        -------
        Time
           Current time
        """
        return cls(time.time(), time.process_time())


class Stopwatch:
    """Holds the timing information of one process.

    A stopwatch can be started and stopped several times. The duration of the
    last start/stop cycle is available as `time` and the sum of all the
    cycles as `time_sum`.
    """

    def __init__(self):
        """Give default values to the underlying class attributes."""
        self._start = None
        self._time = None
        self._total = Time(0.0, 0.0)

    @property
    def running(self):
        """Whether the stopwatch is currently running."""
        return self._start is not None

    def start(self):
        """Start the watch."""
        if self.running:
            raise ValueError("Cannot restart a watch that has not been stopped.")

        self._start = Time.current()

    def stop(self):
        """Stop the watch, record the elapsed time."""
        if not self.running:
            raise ValueError("Cannot stop a watch that has not been started.")

        self._time = Time.current() - self._start
        self._total = self._total + self._time
        self._start = None

    @property
    def time(self):
        """Time between the last start and the last stop."""
        if self._time is None:
            raise ValueError("Cannot get time of watch that has not been stopped.")

        return self._time

    @property
    def time_sum(self):
        """Sum of times between all watch starts and stops."""
        return self._total


class StopwatchManager:
    """Simple class to organize various time measurements."""

    def __init__(self):
        """Initalize the basic private stopwatch attributes."""
        self._watch = {}

    def initialize(self, key):
        """Initialize one or more stopwatches. If one already exists, it is
        reset.

        Parameters
        ----------
        key : Union[str, List[str]]
            Key or list of keys to initialize a `Stopwatch` for
        """
        keys = [key] if isinstance(key, str) else key
        for k in keys:
            self._watch[k] = Stopwatch()

    def _get(self, key):
        if key not in self._watch:
            raise KeyError(f"No stopwatch initialized under the name: {key}")

        return self._watch[key]

    def start(self, key):
        """Starts the stopwatch of a given key.

        Parameters
        ----------
        key : str
            Key for which to start the clock
        """
        self._get(key).start()

    def stop(self, key):
        """Stops the stopwatch of a given key.

        Parameters
        ----------
        key : str
            Key for which to stop the clock
        """
        self._get(key).stop()

    def time(self, key):
        """Returns the time recorded between the last start and stop.

        Parameters
        ----------
        key : str
            Key for which to return the time

        Returns
        -------
        Time
            Execution time of the last iteration of a process
        """
        return self._get(key).time

    def times_sum(self):
        """Returns the summed times of each of the stopwatches.

        Returns
        -------
        Dict[str, Time]
            Execution time of all iterations of each process so far
        """
        return {key: value.time_sum for key, value in self._watch.items()}
