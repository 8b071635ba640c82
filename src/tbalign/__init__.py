"""Top-level module of the tbalign source code."""

# Import main workflow entry point
from .driver import Driver
from .version import __version__

# Import commonly used data structures
from .calib import AlignmentCalibrator, AlignmentManager
from .data import EventPair
