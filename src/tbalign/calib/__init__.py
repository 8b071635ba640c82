"""Alignment calibration of the sensor modules.

This submodule extracts, for each sensor:
- the (x, y, z) offset of the sensor with respect to the telescope tracks
- the (x, y) cuts within which a track and a hit are considered matched
"""

from .aligner import AlignmentCalibrator
from .manager import AlignmentManager
