"""Diagnostic drawings of the alignment procedure."""

from .alignment import draw_alignment
