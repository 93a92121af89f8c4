"""
Content Model Registry

This module introspects every mapped class of a SQLAlchemy declarative base
once and exposes immutable `ContentModel` descriptions of them.

Resolved at build time
----------------------
- Field map: column attributes (declared + inherited) -> data type string,
  plus accessors declared with a data type
- Relationships classified as has_many / has_one / many_many
- Accessor registry (methods decorated with `@accessor`)
- Capability flags: searchable, versioned, page-like
- `__indexed_fields__` / `__dependent_classes__` configuration

Thread Safety
-------------
- The lazy build is protected by an RLock
- Descriptions are immutable once built
"""

from __future__ import annotations

import importlib
import logging
from threading import RLock
from types import FunctionType
from typing import Any, Callable, Dict, List, Optional, Tuple

from sqlalchemy import inspect
from sqlalchemy.orm import Mapper, RelationshipDirection, configure_mappers

from ..core.errors import SearchConfigError
from ..db.models import ACCESSOR_ATTR, PageLike, Searchable, Versioned
from .models import ContentModel, Relation, RelationKind, normalize_indexed_fields
from .types import data_type_name

logger = logging.getLogger("search_sync.registry")


_DIRECTIONS = {
    RelationshipDirection.ONETOMANY: RelationKind.HAS_MANY,
    RelationshipDirection.MANYTOONE: RelationKind.HAS_ONE,
    RelationshipDirection.MANYTOMANY: RelationKind.MANY_MANY,
}


# ---------------------------------------------------------------------
# Introspection Helpers
# ---------------------------------------------------------------------

def _collect_accessors(cls: type) -> Tuple[Dict[str, Callable[[Any], Any]], Dict[str, str]]:
    accessors: Dict[str, Callable[[Any], Any]] = {}
    data_types: Dict[str, str] = {}

    # Walk base classes first so subclasses override
    for klass in reversed(cls.__mro__):
        for value in vars(klass).values():
            if not isinstance(value, FunctionType):
                continue
            marker = getattr(value, ACCESSOR_ATTR, None)
            if marker is None:
                continue
            name, data_type = marker
            accessors[name] = value
            if data_type:
                data_types[name] = data_type

    return accessors, data_types


def _dependent_classes(cls: type) -> Tuple[str, ...]:
    raw = getattr(cls, "__dependent_classes__", None) or ()
    if isinstance(raw, str):
        raw = (raw,)
    return tuple(raw)


def _describe(mapper: Mapper) -> ContentModel:
    cls = mapper.class_

    fields: Dict[str, str] = {}
    for attr in mapper.column_attrs:
        fields[attr.key] = data_type_name(attr.columns[0].type)

    columns = frozenset(fields)

    accessors, accessor_types = _collect_accessors(cls)
    for name, data_type in accessor_types.items():
        fields.setdefault(name, data_type)

    relations: Dict[str, Relation] = {}
    for rel in mapper.relationships:
        relations[rel.key] = Relation(
            name=rel.key,
            kind=_DIRECTIONS[rel.direction],
            target=rel.mapper.class_.__name__,
            uselist=bool(rel.uselist),
        )

    primary_key = tuple(
        mapper.get_property_by_column(column).key
        for column in mapper.primary_key
    )

    searchable = issubclass(cls, Searchable)

    return ContentModel(
        type_name=cls.__name__,
        cls=cls,
        fields=fields,
        columns=columns,
        primary_key=primary_key,
        relations=relations,
        accessors=accessors,
        indexed_fields=normalize_indexed_fields(getattr(cls, "__indexed_fields__", ())) if searchable else (),
        dependent_classes=_dependent_classes(cls) if searchable else (),
        searchable=searchable,
        versioned=issubclass(cls, Versioned),
        page_like=issubclass(cls, PageLike),
    )


def import_base(path: str) -> Any:
    """
    Import a declarative base from a ``"package.module:Base"`` path.
    """
    module_name, _, attr = path.partition(":")
    if not module_name or not attr:
        raise SearchConfigError(f"Content base must look like 'module:Base', got '{path}'")

    try:
        module = importlib.import_module(module_name)
        return getattr(module, attr)
    except (ImportError, AttributeError) as exc:
        raise SearchConfigError(f"Cannot import content base '{path}'") from exc


# ---------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------

class ContentRegistry:
    """
    Registry of content model descriptions for one declarative base.
    """

    def __init__(self, base: Any) -> None:
        """
        Parameters
        ----------
        base : Any
            A SQLAlchemy `DeclarativeBase` subclass (or anything exposing a
            `registry` with mappers).
        """
        self._base = base
        self._models: Optional[Dict[str, ContentModel]] = None
        self._by_class: Dict[type, ContentModel] = {}
        self._lock = RLock()

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _ensure_built(self) -> Dict[str, ContentModel]:
        with self._lock:
            if self._models is not None:
                return self._models

            configure_mappers()

            models: Dict[str, ContentModel] = {}
            for mapper in self._base.registry.mappers:
                model = _describe(mapper)
                if model.type_name in models:
                    raise SearchConfigError(f"Duplicate content type name '{model.type_name}'")
                models[model.type_name] = model
                self._by_class[model.cls] = model

            logger.debug(
                "Registered %d content models (%d searchable)",
                len(models),
                sum(1 for m in models.values() if m.searchable),
            )

            self._models = models
            return models

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def get(self, type_name: str) -> Optional[ContentModel]:
        return self._ensure_built().get(type_name)

    def models(self) -> List[ContentModel]:
        return list(self._ensure_built().values())

    def searchable_models(self) -> List[ContentModel]:
        return [m for m in self.models() if m.searchable]

    def model_for(self, instance: Any) -> ContentModel:
        """
        Return the description of an instance's concrete mapped class.

        Raises
        ------
        SearchConfigError
            If the instance is not of a class mapped on this base.
        """
        self._ensure_built()
        model = self._by_class.get(type(instance))
        if model is None:
            raise SearchConfigError(f"{type(instance).__name__} is not a registered content model")
        return model

    def find(self, instance: Any) -> Optional[ContentModel]:
        self._ensure_built()
        return self._by_class.get(type(instance))

    def is_searchable(self, instance: Any) -> bool:
        model = self.find(instance)
        return bool(model and model.searchable)

    def identity_key(self, instance: Any) -> Tuple[Any, ...]:
        """
        Primary key values of an instance.

        Persistent, detached and deleted instances report their identity
        key; transient ones their current primary key attributes.
        """
        state = inspect(instance)
        key = state.identity
        if key is None:
            key = state.mapper.primary_key_from_instance(instance)

        if not key or any(v is None for v in key):
            raise SearchConfigError(f"{type(instance).__name__} instance has no identity")

        return tuple(key)

    def identify(self, instance: Any) -> str:
        """Document identifier of an instance."""
        return "-".join(str(v) for v in self.identity_key(instance))
