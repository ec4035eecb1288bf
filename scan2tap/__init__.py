"""Scan2Tap digital business card backend."""

__version__ = "0.1.0"
