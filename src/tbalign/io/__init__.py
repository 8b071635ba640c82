"""I/O tools for the telescope/sensor event streams and the analysis outputs.

- `read`: readers producing synchronized track/hit event pairs
- `write`: CSV and HDF5 writers of the analysis outputs
"""

from .factories import reader_factory
from .read import HDF5Reader, TextReader, synchronize
from .write import CSVWriter, HDF5Writer
