"""Module which stores the tbalign version."""

__version__ = "0.1.0"
