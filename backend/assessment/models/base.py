"""
Database configuration and session management.
"""
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy.pool import StaticPool

from assessment.core.config import settings


class Base(DeclarativeBase):
    """
    SQLAlchemy 2.0 declarative base class with type annotation support.

    Using DeclarativeBase instead of declarative_base() enables proper
    type checking for model attributes when using Mapped[] annotations.
    """

    pass


def create_db_engine(database_url: str | None = None) -> Engine:
    """
    Create a sync engine for the session event store.

    In-memory SQLite URLs share a single connection so every session sees the
    same database.
    """
    url = database_url or settings.DATABASE_URL
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=False, **kwargs)
    return create_engine(url, echo=False, pool_pre_ping=True)


def create_session_factory(
    database_url: str | None = None, create_tables: bool = True
) -> sessionmaker:
    """Build a sessionmaker bound to a new engine, creating tables if asked."""
    engine = create_db_engine(database_url)
    if create_tables:
        Base.metadata.create_all(bind=engine)
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)
