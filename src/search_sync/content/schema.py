"""
Schema Builder

Derives the indexable field set of a content model:

1. The published flag, always, as boolean
2. Own fields listed in `__indexed_fields__`, in configuration order
3. One-hop relation fields flattened as ``relation_relatedField``

Resolution Order
----------------
Own fields:
    explicit ``type`` in the entry  >  column / accessor data type

Relation fields (for each entry of the related model's configuration):
    (a) override on the referencing entry keyed by the related field name
    (b) override on the related entry keyed by its own name
    (c) bare ``type`` on the related entry
    (d) the related model's data type through the type mapper

An entry naming an own field (or carrying an explicit type) is never
expanded as a relation, and a flattened name colliding with an own field
is dropped.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from ..config import settings
from .models import ContentModel, FieldSpec, IndexedField
from .registry import ContentRegistry
from .types import FieldKind, map_primitive_type

logger = logging.getLogger("search_sync.schema")


def _from_descriptor(
    name: str,
    descriptor: Mapping[str, Any],
    relation: Optional[str] = None,
    related_field: Optional[str] = None,
) -> Optional[FieldSpec]:
    kind = FieldKind.parse(descriptor.get("type"))
    if kind is None:
        logger.warning("Unknown search type %r for field '%s', skipped", descriptor.get("type"), name)
        return None

    options = {
        k: v
        for k, v in descriptor.items()
        if k != "type" and not isinstance(v, Mapping)
    }

    return FieldSpec(
        name=name,
        kind=kind,
        options=options,
        relation=relation,
        related_field=related_field,
    )


class SchemaBuilder:
    """
    Builds (and memoizes) the field specifications of content models.

    Content model configuration is static for the life of the process, so
    schemas are computed once per type.
    """

    def __init__(
        self,
        registry: ContentRegistry,
        published_field: Optional[str] = None,
        separator: Optional[str] = None,
    ) -> None:
        self._registry = registry
        self.published_field = published_field or settings.published_field
        self.separator = separator or settings.relation_separator
        self._cache: Dict[str, List[FieldSpec]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def build(self, model: ContentModel) -> List[FieldSpec]:
        """
        Return the ordered field specifications for a content model.
        """
        cached = self._cache.get(model.type_name)
        if cached is not None:
            return list(cached)

        fields: Dict[str, FieldSpec] = {
            self.published_field: FieldSpec(name=self.published_field, kind=FieldKind.BOOLEAN),
        }

        for spec in self._own_fields(model):
            fields.setdefault(spec.name, spec)

        for spec in self._relation_fields(model):
            if spec.name in fields:
                logger.warning(
                    "Relation field '%s' on %s collides with an existing field, skipped",
                    spec.name,
                    model.type_name,
                )
                continue
            fields[spec.name] = spec

        result = list(fields.values())
        self._cache[model.type_name] = result
        return list(result)

    def mapping(self, model: ContentModel) -> Dict[str, Dict[str, Any]]:
        """
        Return ``{field name: descriptor}`` for the search engine.
        """
        return {spec.name: spec.descriptor for spec in self.build(model)}

    def flattened_name(self, relation: str, related_field: str) -> str:
        return f"{relation}{self.separator}{related_field}"

    # ------------------------------------------------------------------
    # Own Fields
    # ------------------------------------------------------------------

    def _is_own(self, model: ContentModel, entry: IndexedField) -> bool:
        return entry.explicit_type is not None or model.has_field(entry.name)

    def _own_fields(self, model: ContentModel) -> List[FieldSpec]:
        result: List[FieldSpec] = []

        for entry in model.indexed_fields:
            if entry.explicit_type is not None:
                spec = _from_descriptor(entry.name, entry.params)
                if spec is not None:
                    result.append(spec)
                continue

            if entry.name not in model.fields:
                if entry.name not in model.relations:
                    logger.debug("No field '%s' on %s, skipped", entry.name, model.type_name)
                continue

            kind = map_primitive_type(model.fields[entry.name])
            if kind is None:
                logger.debug(
                    "Unmapped data type %r for %s.%s, skipped",
                    model.fields[entry.name],
                    model.type_name,
                    entry.name,
                )
                continue

            result.append(FieldSpec(name=entry.name, kind=kind, options=entry.hints))

        return result

    # ------------------------------------------------------------------
    # Relation Fields
    # ------------------------------------------------------------------

    def _relation_fields(self, model: ContentModel) -> List[FieldSpec]:
        result: List[FieldSpec] = []

        for entry in model.indexed_fields:
            if self._is_own(model, entry):
                continue

            relation = model.relations.get(entry.name)
            if relation is None:
                continue

            related = self._registry.get(relation.target)
            if related is None or not related.searchable:
                logger.debug(
                    "Relation %s.%s targets non-searchable %s, skipped",
                    model.type_name,
                    entry.name,
                    relation.target,
                )
                continue

            for related_entry in related.indexed_fields:
                spec = self._resolve_related(entry, related, related_entry)
                if spec is not None:
                    result.append(spec)

        return result

    def _resolve_related(
        self,
        entry: IndexedField,
        related: ContentModel,
        related_entry: IndexedField,
    ) -> Optional[FieldSpec]:
        related_name = related_entry.name
        name = self.flattened_name(entry.name, related_name)
        origin = {"relation": entry.name, "related_field": related_name}

        override = entry.override_for(related_name)
        if override is not None:
            return _from_descriptor(name, override, **origin)

        override = related_entry.override_for(related_name)
        if override is not None:
            return _from_descriptor(name, override, **origin)

        if related_entry.explicit_type is not None:
            return _from_descriptor(name, related_entry.params, **origin)

        data_type = related.fields.get(related_name)
        kind = map_primitive_type(data_type)
        if kind is None:
            return None

        return FieldSpec(name=name, kind=kind, options=related_entry.hints, **origin)
