"""Scheduled alert delivery pipeline."""

__version__ = "0.1.0"
