"""Contains a reader class dedicated to loading positions from HDF5 files."""

import h5py
import numpy as np

from .base import ReaderBase

__all__ = ["HDF5Reader"]


class HDF5Reader(ReaderBase):
    """Reads track predictions and hits from HDF5 files.

    The files must contain two (N, 4) datasets, whose rows are
    `event sensor x y`:
      - `tracks`: the positions predicted by the telescope tracks
      - `hits`: the positions of the hits observed in the sensors

    Typical configuration should look like:

    .. code-block:: yaml

        io:
          reader:
            name: hdf5
            file_keys: run000001.h5
    """

    name = "hdf5"

    def __init__(self, file_keys, track_key="tracks", hit_key="hits", **kwargs):
        """Initalize the HDF5 file reader.

        Parameters
        ----------
        file_keys : Union[str, List[str]]
            Path(s) to the HDF5 files to be read
        track_key : str, default 'tracks'
            Name of the track prediction dataset
        hit_key : str, default 'hits'
            Name of the sensor hit dataset
        **kwargs : dict, optional
            Additional arguments to pass to :class:`ReaderBase`
        """
        super().__init__(**kwargs)
        self.file_paths = self.process_file_paths(file_keys)
        self.track_key = track_key
        self.hit_key = hit_key

        # Check that the files have the expected datasets upfront
        for path in self.file_paths:
            with h5py.File(path, "r") as in_file:
                for key in (track_key, hit_key):
                    assert key in in_file, f"File {path} has no `{key}` dataset."

    def read_tracks(self):
        """(N, 4) table of the track predictions in all the files."""
        return self.load(self.track_key)

    def read_hits(self):
        """(M, 4) table of the hits in all the files."""
        return self.load(self.hit_key)

    def load(self, key):
        """Concatenate one dataset across all the files.

        Parameters
        ----------
        key : str
            Name of the dataset

        Returns
        -------
        np.ndarray
            (N, 4) table of positions
        """
        tables = []
        for path in self.file_paths:
            with h5py.File(path, "r") as in_file:
                tables.append(self.check_table(in_file[key][()], path))

        return np.concatenate(tables)
