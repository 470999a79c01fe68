"""Lookout: privacy-friendly website analytics core."""

__version__ = "0.1.0"
