"""Data structures exchanged between the readers and the analysis passes."""

from .event import EventPair
