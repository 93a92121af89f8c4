"""
Search Service

Drives the search engine on behalf of the content layer:

- define()  : create indexes and push mappings for every searchable model
- refresh() : re-push every visible searchable instance, then refresh
- index()   : upsert the document of one instance
- remove()  : delete the document of one instance (idempotent)

Each searchable model gets its own index named ``{prefix}-{type name}``.
Calls are synchronous; failures propagate as `SearchServiceError`.
"""

from __future__ import annotations

import base64
import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional

from pydantic_core import to_jsonable_python
from sqlalchemy.orm import Session

from ..config import settings
from ..core.errors import SearchServiceError
from ..content.document import DocumentSynthesizer
from ..content.models import ContentModel, SearchDocument
from ..content.registry import ContentRegistry
from ..content.schema import SchemaBuilder
from ..db.store import SqlAlchemyContentStore
from .client import ElasticsearchClient

logger = logging.getLogger("search_sync.service")


def is_visible(model: ContentModel, instance: Any) -> bool:
    """
    Visibility rule for a written or reindexed instance.

    - page-like: `show_in_search`
    - otherwise, when the model exposes `show_in_search`: that flag
    - otherwise: always visible
    """
    if model.page_like:
        return bool(instance.show_in_search)
    if model.has_show_in_search:
        return bool(model.read(instance, "show_in_search"))
    return True


def is_indexable(model: ContentModel, instance: Any) -> bool:
    """
    Visibility rule for dependent reindexing: page-like records
    follow `show_in_search`, everything else is indexed.
    """
    if model.page_like:
        return bool(instance.show_in_search)
    return True


class SearchService:
    """
    Search engine facade used by lifecycle hooks and the reindex task.
    """

    def __init__(
        self,
        client: ElasticsearchClient,
        registry: ContentRegistry,
        session_factory: Optional[Callable[[], Session]] = None,
        index_prefix: Optional[str] = None,
        bulk_size: Optional[int] = None,
        schema_builder: Optional[SchemaBuilder] = None,
        synthesizer: Optional[DocumentSynthesizer] = None,
    ) -> None:
        """
        Parameters
        ----------
        client : ElasticsearchClient
            REST client for the cluster.

        registry : ContentRegistry
            Content model descriptions.

        session_factory : Optional[Callable[[], Session]]
            Opens sessions on the primary store; required by refresh().

        index_prefix : Optional[str]
            Defaults to settings.index_prefix.

        bulk_size : Optional[int]
            Documents per bulk request. Defaults to settings.bulk_size.
        """
        self._client = client
        self._registry = registry
        self._session_factory = session_factory
        self.index_prefix = index_prefix or settings.index_prefix
        self.bulk_size = bulk_size or settings.bulk_size

        self.schema = schema_builder or SchemaBuilder(registry)
        self.synthesizer = synthesizer or DocumentSynthesizer(registry)

        self._buffer: Optional[List[Dict[str, Any]]] = None

    @property
    def registry(self) -> ContentRegistry:
        return self._registry

    # ------------------------------------------------------------------
    # Documents
    # ------------------------------------------------------------------

    def index_name(self, model: ContentModel) -> str:
        return f"{self.index_prefix}-{model.type_name.lower()}"

    def document_for(self, instance: Any) -> SearchDocument:
        model = self._registry.model_for(instance)
        return self.synthesizer.synthesize(instance, self.schema.build(model))

    def _source(self, document: SearchDocument) -> Dict[str, Any]:
        """
        JSON body of a document. File references are read and base64 encoded.
        """
        source = dict(document.data)

        for name, path in document.files.items():
            try:
                payload = Path(path).read_bytes()
            except OSError as exc:
                raise SearchServiceError(f"Cannot read attachment '{path}' for field '{name}'") from exc
            source[name] = base64.b64encode(payload).decode("ascii")

        return to_jsonable_python(source)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def define(self) -> None:
        """
        Create missing indexes and push the mapping of every searchable model.

        Safe to run repeatedly.
        """
        for model in self._registry.searchable_models():
            properties = self.schema.mapping(model)
            if not properties:
                continue

            index = self.index_name(model)

            if not self._client.index_exists(index):
                logger.info("Creating index %s", index)
                self._client.create_index(index)

            logger.info("Defining mapping for %s (%d fields)", model.type_name, len(properties))
            self._client.put_mapping(index, properties)

    def index(self, instance: Any) -> None:
        """
        Upsert the document of an instance (buffered inside `bulk()`).
        """
        model = self._registry.model_for(instance)
        document = self.document_for(instance)
        index = self.index_name(model)
        source = self._source(document)

        if self._buffer is not None:
            self._buffer.append({"index": {"_index": index, "_id": document.id}})
            self._buffer.append(source)
            if len(self._buffer) >= self.bulk_size * 2:
                self._flush()
            return

        logger.debug("Indexing %s/%s", index, document.id)
        self._client.put_document(index, document.id, source)

    def remove(self, instance: Any) -> None:
        """
        Delete the document of an instance. Already-absent documents are ignored.
        """
        model = self._registry.model_for(instance)
        index = self.index_name(model)
        doc_id = self._registry.identify(instance)

        logger.debug("Removing %s/%s", index, doc_id)
        if not self._client.delete_document(index, doc_id):
            logger.debug("Document %s/%s was not indexed", index, doc_id)

    def refresh(self) -> int:
        """
        Re-push every visible searchable instance, then refresh the indexes.

        Returns the number of documents sent.

        Raises
        ------
        SearchServiceError
            If no session factory was configured or any request fails.
        """
        if self._session_factory is None:
            raise SearchServiceError("refresh() requires a session factory")

        count = 0

        with self._session_factory() as session:
            store = SqlAlchemyContentStore(session)

            with self.bulk():
                for model in self._registry.searchable_models():
                    for instance in store.all(model):
                        # Subclass instances are sent with their own model
                        if self._registry.model_for(instance) is not model:
                            continue
                        if not is_visible(model, instance):
                            continue
                        self.index(instance)
                        count += 1

        for model in self._registry.searchable_models():
            if self._client.index_exists(self.index_name(model)):
                self._client.refresh(self.index_name(model))

        logger.info("Refreshed %d documents", count)
        return count

    @contextmanager
    def bulk(self) -> Iterator[None]:
        """
        Buffer `index()` calls and send them as bulk requests.

        The buffer is flushed on normal exit and discarded on error.
        """
        if self._buffer is not None:
            yield
            return

        self._buffer = []
        try:
            yield
            self._flush()
        finally:
            self._buffer = None

    def _flush(self) -> None:
        if not self._buffer:
            return
        actions, self._buffer = self._buffer, []
        self._client.bulk(actions)
