"""
Models package for the assessment backend.
"""
from .base import Base, create_db_engine, create_session_factory
from .models import CATSessionEventRecord, CATSessionRecord

__all__ = [
    "Base",
    "create_db_engine",
    "create_session_factory",
    "CATSessionRecord",
    "CATSessionEventRecord",
]
