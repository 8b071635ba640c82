"""Numerical tools used by the alignment calibration.

- `models`: fit model functions (Gaussian, plateau)
- `histogram`: binned distribution with rebinning and least-squares fitting
"""

from .histogram import FitResult, Histogram1D
from .models import gaussian, plateau, plateau_model
