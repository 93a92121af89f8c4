"""
Document Synthesis

Assembles the search document of one content instance from its schema.

For each field specification:

- Own field (column or accessor): read directly and formatted by kind
- Flattened relation field: resolved through the relation
    * single related instance -> scalar, or a file reference by path for
      attachments
    * list of related instances -> list of scalars, attachments embedded as
      base64; set only when at least one value resolved
- Attachment fields only take file-like values that exist on storage, or
  raw column values; accessor results of any other shape are omitted
- Anything unresolved is omitted; synthesis never fails on missing data
"""

from __future__ import annotations

import base64
import logging
from typing import Any, List, Optional, Tuple

from ..config import settings
from ..db.models import FileLike
from .models import ContentModel, FieldSpec, SearchDocument
from .registry import ContentRegistry
from .types import MISSING, FieldKind

logger = logging.getLogger("search_sync.document")


class DocumentSynthesizer:
    """
    Builds `SearchDocument` instances from content instances.
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

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def is_live(self, model: ContentModel, instance: Any) -> bool:
        """
        Publication state: page-like versioned records report whether they
        are published, everything else is live.
        """
        if model.versioned and model.page_like:
            return bool(instance.is_published())
        return True

    def synthesize(self, instance: Any, schema: List[FieldSpec]) -> SearchDocument:
        """
        Build the search document of an instance.

        Parameters
        ----------
        instance : Any
            A mapped content instance with an identity.

        schema : List[FieldSpec]
            Field specifications produced by the schema builder for the
            instance's model.
        """
        model = self._registry.model_for(instance)

        document = SearchDocument(
            id=self._registry.identify(instance),
            type_name=model.type_name,
        )
        document.set(self.published_field, self.is_live(model, instance))

        for spec in schema:
            if spec.name == self.published_field:
                continue

            if model.has_field(spec.name):
                self._set_own(document, model, instance, spec)
                continue

            relation, related_field = self._split(spec)
            if relation is None or relation not in model.relations:
                continue

            related = model.read(instance, relation)

            if model.relations[relation].uselist:
                self._set_many(document, spec, related, related_field)
            else:
                self._set_one(document, spec, related, related_field)

        return document

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    def _split(self, spec: FieldSpec) -> Tuple[Optional[str], Optional[str]]:
        if spec.relation is not None:
            return spec.relation, spec.related_field

        relation, sep, related_field = spec.name.partition(self.separator)
        if not sep or not relation or not related_field:
            return None, None

        return relation, related_field

    def _set_own(
        self,
        document: SearchDocument,
        model: ContentModel,
        instance: Any,
        spec: FieldSpec,
    ) -> None:
        value = model.read(instance, spec.name)

        if spec.kind is FieldKind.ATTACHMENT and isinstance(value, FileLike):
            if value.exists():
                document.add_file(spec.name, value.full_path)
            return

        if spec.kind is FieldKind.ATTACHMENT and spec.name not in model.columns:
            return

        formatted = spec.kind.format(value)
        if formatted is not MISSING:
            document.set(spec.name, formatted)

    def _related_value(self, spec: FieldSpec, related: Any, related_field: str) -> Any:
        """
        Read `related_field` from a related instance.

        Returns MISSING when the related model does not expose the field, or
        when an attachment field resolves to something other than a column
        value or a file-like object.
        """
        related_model = self._registry.model_for(related)

        if related_model.has_field(related_field):
            value = related_model.read(related, related_field)
        elif spec.kind is FieldKind.ATTACHMENT and related_field in related_model.relations:
            value = related_model.read(related, related_field)
        else:
            return MISSING

        if spec.kind is FieldKind.ATTACHMENT:
            if isinstance(value, FileLike):
                return value
            if related_field not in related_model.columns:
                return MISSING

        return value

    def _set_one(
        self,
        document: SearchDocument,
        spec: FieldSpec,
        related: Any,
        related_field: str,
    ) -> None:
        if related is None:
            return

        value = self._related_value(spec, related, related_field)
        if value is MISSING:
            return

        if spec.kind is FieldKind.ATTACHMENT and isinstance(value, FileLike):
            if value.exists():
                document.add_file(spec.name, value.full_path)
            return

        formatted = spec.kind.format(value)
        if formatted is not MISSING:
            document.set(spec.name, formatted)

    def _set_many(
        self,
        document: SearchDocument,
        spec: FieldSpec,
        related: Any,
        related_field: str,
    ) -> None:
        if not related:
            return

        values: List[Any] = []

        for item in related:
            value = self._related_value(spec, item, related_field)
            if value is MISSING:
                continue

            if spec.kind is FieldKind.ATTACHMENT and isinstance(value, FileLike):
                if value.exists():
                    values.append(base64.b64encode(value.read_bytes()).decode("ascii"))
                continue

            formatted = spec.kind.format(value)
            if formatted is not MISSING and formatted is not None:
                values.append(formatted)

        if values:
            document.set(spec.name, values)
