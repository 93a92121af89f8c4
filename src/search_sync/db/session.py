"""
Database Session Management

Provides the SQLAlchemy engine and session factory for the primary store.
"""

from __future__ import annotations

from typing import Generator
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from ..config import settings


# Create engine
engine = create_engine(
    settings.database_url,
    echo=False,  # Set True for SQL debugging
    pool_pre_ping=True,
)

# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    class_=Session,
    expire_on_commit=False,
    autoflush=False,
)


def get_session() -> Generator[Session, None, None]:
    """
    Yield a session that commits on success and rolls back on error.

    Usage:
        with contextlib.contextmanager(get_session)() as session:
            ...
    """
    with SessionLocal() as session:
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
