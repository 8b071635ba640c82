"""Contains the event-pair reader base class and the stream synchronization.

Event-pair readers turn two tables of positions into a stream of
:class:`EventPair` objects:
- a track table, with one row per track prediction in a sensor plane
- a hit table, with one row per hit observed in a sensor

Both tables have four columns: `event sensor x y`.
"""

import glob

import numpy as np

from tbalign.data import EventPair
from tbalign.utils.logger import logger

__all__ = ["ReaderBase", "group_events", "synchronize"]


def group_events(table):
    """Group the rows of a position table by event number.

    Parameters
    ----------
    table : np.ndarray
        (N, 4) array of `event sensor x y` rows

    Yields
    ------
    event : int
        Event number, in increasing order
    positions : Dict[int, np.ndarray]
        Maps each sensor ID onto a (K, 2) array of positions
    """
    if len(table) == 0:
        return

    # Stable sort by event, then by sensor, keeps the row order within a group
    order = np.lexsort((table[:, 1], table[:, 0]))
    table = table[order]
    events, starts = np.unique(table[:, 0].astype(np.int64), return_index=True)
    ends = np.append(starts[1:], len(table))
    for event, start, end in zip(events, starts, ends):
        rows = table[start:end]
        sensors, sensor_starts = np.unique(
            rows[:, 1].astype(np.int64), return_index=True
        )
        sensor_ends = np.append(sensor_starts[1:], len(rows))
        positions = {}
        for sensor, s_start, s_end in zip(sensors, sensor_starts, sensor_ends):
            positions[int(sensor)] = rows[s_start:s_end, 2:4]

        yield int(event), positions


def synchronize(track_events, hit_events, how="left"):
    """Merge a track stream and a hit stream on their event number.

    Both streams must be sorted by increasing event number.

    Parameters
    ----------
    track_events : Iterable[Tuple[int, dict]]
        Stream of (event, positions) track predictions
    hit_events : Iterable[Tuple[int, dict]]
        Stream of (event, positions) observed hits
    how : str, default 'left'
        If 'left', every track event is produced, with no hits if the sensor
        stream has nothing for it. If 'inner', only events present in both
        streams are produced.

    Yields
    ------
    EventPair
        Synchronized track predictions and hits of one event
    """
    assert how in ("left", "inner"), f"Synchronization mode not recognized: {how}"
    hit_iter = iter(hit_events)
    hit = next(hit_iter, None)
    for event, tracks in track_events:
        # Skip the sensor events which have no track counterpart
        while hit is not None and hit[0] < event:
            hit = next(hit_iter, None)

        if hit is not None and hit[0] == event:
            yield EventPair(event, tracks, hit[1])
            hit = next(hit_iter, None)
        elif how == "left":
            yield EventPair(event, tracks, {})


class ReaderBase:
    """Parent reader class which provides common functions between all readers.

    Readers are re-iterable: every call to `iter` reads the files again from
    the start, so that the same reader can serve several analysis passes.

    Attributes
    ----------
    name : str
        Name of the reader, as requested in the configuration
    how : str
        Synchronization mode of the track and hit streams
    n_entry : int
        Maximum number of event pairs to produce per pass
    n_skip : int
        Number of event pairs to skip at the start of each pass
    """

    name = ""

    def __init__(self, how="left", n_entry=None, n_skip=None):
        """Store the stream parameters.

        Parameters
        ----------
        how : str, default 'left'
            Synchronization mode of the track and hit streams
        n_entry : int, optional
            Maximum number of event pairs to produce per pass
        n_skip : int, optional
            Number of event pairs to skip at the start of each pass
        """
        assert n_entry is None or n_entry > 0, "`n_entry` must be positive."
        assert n_skip is None or n_skip >= 0, "`n_skip` must not be negative."
        self.how = how
        self.n_entry = n_entry
        self.n_skip = n_skip or 0

    def __iter__(self):
        """Produce the synchronized event pairs from the start of the files.

        Yields
        ------
        EventPair
            Synchronized track predictions and hits of one event
        """
        stream = synchronize(
            group_events(self.read_tracks()), group_events(self.read_hits()), self.how
        )
        count = 0
        for i, pair in enumerate(stream):
            if i < self.n_skip:
                continue
            if self.n_entry is not None and count >= self.n_entry:
                break
            count += 1

            yield pair

    def read_tracks(self):
        """Placeholder to be defined by the daughter class."""
        raise NotImplementedError

    def read_hits(self):
        """Placeholder to be defined by the daughter class."""
        raise NotImplementedError

    @staticmethod
    def process_file_paths(file_keys):
        """Expand a file path or a list of glob patterns into existing files.

        Parameters
        ----------
        file_keys : Union[str, List[str]]
            Path(s) or glob pattern(s) to the input files

        Returns
        -------
        List[str]
            Sorted list of file paths
        """
        assert file_keys is not None, "No input file provided, abort."
        if isinstance(file_keys, str):
            file_keys = [file_keys]

        file_paths = []
        for file_key in file_keys:
            paths = glob.glob(file_key)
            assert paths, f"File key {file_key} yielded no compatible path."
            file_paths.extend(paths)

        file_paths = sorted(file_paths)
        logger.info(
            "Will load %d file(s):\n - %s", len(file_paths), "\n - ".join(file_paths)
        )

        return file_paths

    @staticmethod
    def check_table(table, path):
        """Check that a position table has the expected shape.

        Parameters
        ----------
        table : np.ndarray
            Table of positions
        path : str
            Path of the file it was read from

        Returns
        -------
        np.ndarray
            (N, 4) table of positions
        """
        table = np.asarray(table, dtype=np.float64)
        if table.size == 0:
            return np.empty((0, 4), dtype=np.float64)

        assert table.ndim == 2 and table.shape[1] == 4, (
            f"The position table in {path} must have 4 columns "
            f"(event, sensor, x, y), got shape {table.shape}."
        )

        return table
