"""
Core module for application configuration and utilities.

The CAT engine lives in ``assessment.core.cat``; import it directly rather
than through this package to keep settings importable without the engine.
"""
from .config import settings

__all__ = ["settings"]
