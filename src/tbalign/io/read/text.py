"""Contains a reader class dedicated to loading positions from text files."""

import warnings

import numpy as np

from .base import ReaderBase

__all__ = ["TextReader"]


class TextReader(ReaderBase):
    """Reads track predictions and hits from whitespace-separated text files.

    Each line of the files holds one position: `event sensor x y`. Lines
    starting with `#` are ignored.

    Typical configuration should look like:

    .. code-block:: yaml

        io:
          reader:
            name: text
            track_file: run000001_tracks.txt
            hit_file: run000001_hits.txt
    """

    name = "text"

    def __init__(self, track_file, hit_file, **kwargs):
        """Initialize the text reader.

        Parameters
        ----------
        track_file : Union[str, List[str]]
            Path(s) to the track prediction files
        hit_file : Union[str, List[str]]
            Path(s) to the sensor hit files
        **kwargs : dict, optional
            Additional arguments to pass to :class:`ReaderBase`
        """
        super().__init__(**kwargs)
        self.track_paths = self.process_file_paths(track_file)
        self.hit_paths = self.process_file_paths(hit_file)

    def read_tracks(self):
        """(N, 4) table of the track predictions in all the track files."""
        return self.load(self.track_paths)

    def read_hits(self):
        """(M, 4) table of the hits in all the hit files."""
        return self.load(self.hit_paths)

    def load(self, paths):
        """Concatenate the position tables of a list of files.

        Parameters
        ----------
        paths : List[str]
            List of text file paths

        Returns
        -------
        np.ndarray
            (N, 4) table of positions
        """
        tables = []
        for path in paths:
            # An empty file is a valid (empty) table
            with warnings.catch_warnings():
                warnings.simplefilter("ignore", UserWarning)
                table = np.loadtxt(path, dtype=np.float64, comments="#", ndmin=2)
            tables.append(self.check_table(table, path))

        return np.concatenate(tables) if tables else np.empty((0, 4))
