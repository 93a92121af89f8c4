"""
Content Model Capabilities

Defines the building blocks content models are declared with:

- `Searchable`  : marks a mapped class as participating in search sync
- `Versioned`   : adds a publication flag (draft / published)
- `PageLike`    : a versioned page with a "show in search" visibility flag
- `accessor`    : registers a method as a named, indexable field
- `FileField`   : column type storing a path, loaded as a `StoredFile`

Configuration is declared with class attributes on the mapped class:

    class Article(Searchable, Base):
        __indexed_fields__ = ["Title", "Author", {"Body": {"type": "text", "analyzer": "english"}}]
        __dependent_classes__ = ["Index"]

Capabilities are resolved once by the content registry, never probed per call.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Optional, Protocol, runtime_checkable

from sqlalchemy import Boolean, String
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.types import TypeDecorator


ACCESSOR_ATTR = "__search_accessor__"


# ---------------------------------------------------------------------
# Capability Mixins
# ---------------------------------------------------------------------

class Searchable:
    """
    Indexable capability.

    Subclasses may declare `__indexed_fields__` and `__dependent_classes__`.
    """

    __indexed_fields__: Any = ()
    __dependent_classes__: Any = ()


class Versioned:
    """
    Publication capability: a record is either a draft or published.

    In LIVE reading mode only published rows are visible.
    """

    published: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    def is_published(self) -> bool:
        return bool(self.published)

    def publish(self) -> None:
        self.published = True

    def unpublish(self) -> None:
        self.published = False


class PageLike(Versioned):
    """
    A versioned page whose search visibility is controlled by `show_in_search`.
    """

    show_in_search: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)


# ---------------------------------------------------------------------
# Accessors
# ---------------------------------------------------------------------

def accessor(
    name: Optional[str] = None,
    data_type: Optional[str] = None,
) -> Callable[[Callable[[Any], Any]], Callable[[Any], Any]]:
    """
    Register a zero-argument method as an indexable field.

    Parameters
    ----------
    name : Optional[str]
        Field name the accessor is exposed under. Defaults to the method
        name with any leading ``get_`` removed.

    data_type : Optional[str]
        Primitive data type of the returned value (e.g. ``"Varchar"``).
        When given, the accessor joins the model's field map and its search
        type can be derived like a column's.
    """

    def decorator(func: Callable[[Any], Any]) -> Callable[[Any], Any]:
        field_name = name or func.__name__.removeprefix("get_")
        setattr(func, ACCESSOR_ATTR, (field_name, data_type))
        return func

    return decorator


# ---------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------

@runtime_checkable
class FileLike(Protocol):
    """Anything exposing bytes on storage."""

    @property
    def full_path(self) -> str: ...

    def exists(self) -> bool: ...

    def read_bytes(self) -> bytes: ...


class StoredFile:
    """
    A file on local storage referenced by path.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = str(path)

    @property
    def full_path(self) -> str:
        return str(Path(self.path).resolve())

    def exists(self) -> bool:
        return bool(self.path) and Path(self.path).is_file()

    def read_bytes(self) -> bytes:
        return Path(self.path).read_bytes()

    def __eq__(self, other: object) -> bool:
        return isinstance(other, StoredFile) and other.path == self.path

    def __hash__(self) -> int:
        return hash(self.path)

    def __repr__(self) -> str:
        return f"StoredFile({self.path!r})"


class FileField(TypeDecorator):
    """
    Column type persisting a `StoredFile` as its path.
    """

    impl = String(1024)
    cache_ok = True

    # Primitive data type reported to the type mapper
    data_type = "File"

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, StoredFile):
            return value.path
        return str(value)

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return StoredFile(value)
