"""Utility functions shared by all the tbalign modules."""
