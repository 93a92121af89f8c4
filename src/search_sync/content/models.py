"""
Content Data Models

This module defines the data model shared by schema building, document
synthesis and synchronization:

- `IndexedField`  : one normalized entry of a model's `__indexed_fields__`
- `Relation`      : one named relationship of a content model
- `ContentModel`  : the introspected, immutable description of a mapped class
- `FieldSpec`     : a (field name, search type descriptor) pair
- `SearchDocument`: the denormalized record pushed to the search engine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..core.errors import SearchConfigError
from .types import FieldKind


SHOW_IN_SEARCH = "show_in_search"


# ---------------------------------------------------------------------
# Configuration Entries
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class IndexedField:
    """
    A single `__indexed_fields__` entry.

    Positional entries (bare names) carry empty params; keyed entries carry
    inline overrides such as ``{"type": "text", "analyzer": "english"}`` or,
    for relations, per related field overrides ``{"Name": {"type": "keyword"}}``.
    """

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)
    positional: bool = True

    @property
    def explicit_type(self) -> Optional[str]:
        value = self.params.get("type")
        return value if isinstance(value, str) else None

    @property
    def hints(self) -> Dict[str, Any]:
        """Scalar indexing hints other than the type."""
        return {
            k: v
            for k, v in self.params.items()
            if k != "type" and not isinstance(v, Mapping)
        }

    def override_for(self, related_field: str) -> Optional[Mapping[str, Any]]:
        """Explicit descriptor supplied for a related model's field, if any."""
        value = self.params.get(related_field)
        if isinstance(value, Mapping) and isinstance(value.get("type"), str):
            return value
        return None


def normalize_indexed_fields(raw: Any) -> Tuple[IndexedField, ...]:
    """
    Normalize `__indexed_fields__` into ordered `IndexedField` entries.

    Accepted shapes::

        ["Title", "Author"]
        ["Title", {"Body": {"type": "text"}}]
        {"Title": None, "Body": {"type": "text"}}

    Raises
    ------
    SearchConfigError
        If an entry is neither a name nor a name -> params mapping.
    """
    if not raw:
        return ()

    entries: List[IndexedField] = []

    def keyed(name: Any, params: Any) -> IndexedField:
        if not isinstance(name, str):
            raise SearchConfigError(f"Indexed field name must be a string, got {name!r}")
        if params is None:
            return IndexedField(name=name)
        if not isinstance(params, Mapping):
            raise SearchConfigError(f"Parameters for indexed field '{name}' must be a mapping")
        return IndexedField(name=name, params=dict(params), positional=False)

    if isinstance(raw, Mapping):
        for name, params in raw.items():
            entries.append(keyed(name, params))
        return tuple(entries)

    if isinstance(raw, str):
        raw = [raw]

    for item in raw:
        if isinstance(item, str):
            entries.append(IndexedField(name=item))
        elif isinstance(item, Mapping):
            for name, params in item.items():
                entries.append(keyed(name, params))
        else:
            raise SearchConfigError(f"Unsupported indexed field entry: {item!r}")

    return tuple(entries)


# ---------------------------------------------------------------------
# Content Model Description
# ---------------------------------------------------------------------

class RelationKind(str, Enum):
    HAS_MANY = "has_many"
    HAS_ONE = "has_one"
    MANY_MANY = "many_many"


@dataclass(frozen=True)
class Relation:
    name: str
    kind: RelationKind
    target: str
    uselist: bool


@dataclass(frozen=True, eq=False)
class ContentModel:
    """
    Introspected description of one mapped content class.

    Built once by the content registry; all capability checks read these
    flags instead of probing instances.
    """

    type_name: str
    cls: type
    fields: Mapping[str, str]
    columns: FrozenSet[str]
    primary_key: Tuple[str, ...]
    relations: Mapping[str, Relation]
    accessors: Mapping[str, Callable[[Any], Any]]
    indexed_fields: Tuple[IndexedField, ...] = ()
    dependent_classes: Tuple[str, ...] = ()
    searchable: bool = False
    versioned: bool = False
    page_like: bool = False

    def has_field(self, name: str) -> bool:
        """Own column, accessor, or declared fixed field."""
        return name in self.fields or name in self.accessors

    @property
    def has_show_in_search(self) -> bool:
        return self.has_field(SHOW_IN_SEARCH)

    def read(self, instance: Any, name: str) -> Any:
        """
        Read a field, accessor or relation value from an instance.
        """
        getter = self.accessors.get(name)
        if getter is not None:
            return getter(instance)
        return getattr(instance, name, None)


# ---------------------------------------------------------------------
# Field Specification
# ---------------------------------------------------------------------

class FieldSpec(BaseModel):
    """
    A schema field: name plus search type descriptor.

    Flattened relation fields remember where they came from so documents
    can be synthesized without re-parsing the field name.
    """

    name: str = Field(..., min_length=1)
    kind: FieldKind
    options: Dict[str, Any] = Field(default_factory=dict)
    relation: Optional[str] = None
    related_field: Optional[str] = None

    model_config = ConfigDict(frozen=True, extra="forbid")

    @property
    def descriptor(self) -> Dict[str, Any]:
        """Mapping definition sent to the search engine."""
        return {"type": self.kind.value, **self.options}


# ---------------------------------------------------------------------
# Search Document
# ---------------------------------------------------------------------

class SearchDocument(BaseModel):
    """
    A search document keyed by the content instance identifier.

    `data` holds field values; `files` holds single-valued attachments as
    file paths, read and encoded when the document is sent.
    """

    id: str = Field(..., min_length=1)
    type_name: str
    data: Dict[str, Any] = Field(default_factory=dict)
    files: Dict[str, str] = Field(default_factory=dict)

    def set(self, name: str, value: Any) -> None:
        self.data[name] = value

    def add_file(self, name: str, path: str) -> None:
        self.files[name] = path

    def get(self, name: str, default: Any = None) -> Any:
        if name in self.data:
            return self.data[name]
        return self.files.get(name, default)

    @property
    def field_names(self) -> FrozenSet[str]:
        return frozenset(self.data) | frozenset(self.files)

    def __contains__(self, name: object) -> bool:
        return name in self.data or name in self.files
