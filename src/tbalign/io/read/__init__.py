"""Event-pair readers."""

from .base import ReaderBase, group_events, synchronize
from .hdf5 import HDF5Reader
from .text import TextReader
