"""Module to store the alignment correlation distributions to HDF5."""

import h5py
import numpy as np

from tbalign.utils.logger import logger
from tbalign.version import __version__

__all__ = ["HDF5Writer"]


class HDF5Writer:
    """Writes the correlation distributions of every calibrator to one file.

    The file is organized as one group per sensor, each holding one group
    per axis with the bin contents, the bin edges and the fit parameters:

    .. code-block:: text

        sensor_00/
          x/  counts, edges, (params)   attrs: entries, underflow, overflow
          y/  counts, edges, (params)
          attrs: offset, cuts (when calibrated)
    """

    def __init__(self, file_name="alignment.h5"):
        """Store the output file name.

        Parameters
        ----------
        file_name : str, default 'alignment.h5'
            Name of the output HDF5 file
        """
        self.file_name = file_name

    def write(self, manager):
        """Store the distributions of all the calibrators of a manager.

        Parameters
        ----------
        manager : AlignmentManager
            Manager holding the calibrators
        """
        with h5py.File(self.file_name, "w") as out_file:
            out_file.attrs["version"] = __version__
            for sensor_id, calibrator in manager.items():
                group = out_file.create_group(f"sensor_{sensor_id:02d}")
                if calibrator.calculated:
                    group.attrs["offset"] = calibrator.offset
                    group.attrs["cuts"] = calibrator.cuts

                for axis, hist, fit in (
                    ("x", calibrator.hist_x, calibrator.fit_x),
                    ("y", calibrator.hist_y, calibrator.fit_y),
                ):
                    if hist is None:
                        continue
                    sub = group.create_group(axis)
                    sub.attrs["name"] = hist.name
                    sub.attrs["entries"] = hist.entries
                    sub.attrs["underflow"] = hist.underflow
                    sub.attrs["overflow"] = hist.overflow
                    sub.create_dataset("counts", data=hist.counts)
                    sub.create_dataset("edges", data=hist.edges)
                    if fit is not None and fit.success:
                        sub.create_dataset("params", data=np.asarray(fit.params))

        logger.info("Stored the correlation distributions to %s", self.file_name)
