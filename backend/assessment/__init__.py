"""Adaptive assessment engine: computerized adaptive testing sessions."""

__version__ = "0.1.0"
