"""
Database Package

Provides SQLAlchemy session management, content model capabilities and
read access to the primary store.
"""

from .session import get_session, engine, SessionLocal
from .models import (
    Searchable,
    Versioned,
    PageLike,
    accessor,
    FileLike,
    StoredFile,
    FileField,
)
from .store import (
    ContentStore,
    SqlAlchemyContentStore,
    ReadingMode,
    reading_mode,
    current_reading_mode,
)

__all__ = [
    "get_session",
    "engine",
    "SessionLocal",
    "Searchable",
    "Versioned",
    "PageLike",
    "accessor",
    "FileLike",
    "StoredFile",
    "FileField",
    "ContentStore",
    "SqlAlchemyContentStore",
    "ReadingMode",
    "reading_mode",
    "current_reading_mode",
]
