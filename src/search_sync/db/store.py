"""
Content Store

Read access to the primary object store used by the synchronization layer.

Reading Modes
-------------
- STAGE : every row, drafts included
- LIVE  : only published rows of versioned models

The active mode is carried in a ContextVar and scoped with `reading_mode()`,
which restores the previous mode on every exit path. Store calls take the
mode explicitly; when omitted they use the active one.
"""

from __future__ import annotations

import contextvars
from contextlib import contextmanager
from enum import Enum
from typing import TYPE_CHECKING, Any, Iterator, List, Optional, Protocol, Sequence

from sqlalchemy import select
from sqlalchemy.orm import Session

if TYPE_CHECKING:
    from ..content.models import ContentModel


# ---------------------------------------------------------------------
# Reading Mode
# ---------------------------------------------------------------------

class ReadingMode(str, Enum):
    STAGE = "Stage.Stage"
    LIVE = "Stage.Live"


_reading_mode: contextvars.ContextVar[ReadingMode] = contextvars.ContextVar(
    "search_sync_reading_mode",
    default=ReadingMode.STAGE,
)


def current_reading_mode() -> ReadingMode:
    return _reading_mode.get()


@contextmanager
def reading_mode(mode: ReadingMode) -> Iterator[ReadingMode]:
    """
    Activate `mode` for the duration of the block.

    The previous mode is restored even when the block raises.
    """
    token = _reading_mode.set(mode)
    try:
        yield mode
    finally:
        _reading_mode.reset(token)


# ---------------------------------------------------------------------
# Store Interface
# ---------------------------------------------------------------------

class ContentStore(Protocol):
    def get(
        self,
        model: "ContentModel",
        key: Sequence[Any],
        mode: Optional[ReadingMode] = None,
    ) -> Optional[Any]: ...

    def all(
        self,
        model: "ContentModel",
        mode: Optional[ReadingMode] = None,
    ) -> List[Any]: ...


# ---------------------------------------------------------------------
# SQLAlchemy Store
# ---------------------------------------------------------------------

class SqlAlchemyContentStore:
    """
    ContentStore backed by a SQLAlchemy session.
    """

    def __init__(self, session: Session) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session

    def _select(self, model: "ContentModel", mode: Optional[ReadingMode]):
        mode = mode or current_reading_mode()
        stmt = select(model.cls)

        if mode is ReadingMode.LIVE and model.versioned:
            stmt = stmt.where(model.cls.published.is_(True))

        return stmt

    def get(
        self,
        model: "ContentModel",
        key: Sequence[Any],
        mode: Optional[ReadingMode] = None,
    ) -> Optional[Any]:
        """
        Force-read one instance by primary key, bypassing the identity map.

        Returns None when no row is visible in the given mode.
        """
        criteria = {
            name: value
            for name, value in zip(model.primary_key, key)
        }

        stmt = (
            self._select(model, mode)
            .filter_by(**criteria)
            .execution_options(populate_existing=True)
        )

        return self._session.scalars(stmt).first()

    def all(
        self,
        model: "ContentModel",
        mode: Optional[ReadingMode] = None,
    ) -> List[Any]:
        """
        Return every instance of a model (subclasses included) visible in the mode.
        """
        return list(self._session.scalars(self._select(model, mode)))
