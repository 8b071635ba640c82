"""Typed exceptions raised by the alignment and efficiency modules.

The taxonomy follows the failure modes of a calibration run:
- Caller errors (state accessed before it exists)
- Fits which do not return usable parameters
- Calibration files which cannot be used

None of them is retried, any of them aborts the current run.
"""

__all__ = [
    "AlignmentError",
    "PreconditionViolation",
    "FitConvergenceFailure",
    "PersistenceFailure",
]


class AlignmentError(Exception):
    """Base exception for all alignment errors."""


class PreconditionViolation(AlignmentError):
    """Raised when a calibrator state is accessed before it was initialized,
    calculated or loaded."""


class FitConvergenceFailure(AlignmentError):
    """Raised when a distribution fit returns no usable parameters."""

    def __init__(self, name, reason):
        """Initialize with the name of the distribution which failed.

        Parameters
        ----------
        name : str
            Name of the distribution that could not be fitted
        reason : str
            Short description of the failure
        """
        self.name = name
        self.reason = reason
        super().__init__(f"Fit of distribution `{name}` failed: {reason}")


class PersistenceFailure(AlignmentError):
    """Raised when a calibration file is malformed or missing when needed."""
