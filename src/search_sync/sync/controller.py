"""
Sync Controller

Decides what happens in the search index when a content instance changes:

| Event                    | Action                                          |
|--------------------------|-------------------------------------------------|
| after write              | index or remove the live variant, then dependents |
| after delete             | remove, then dependents                         |
| many-to-many add/remove  | dependents only                                 |

Dependent propagation re-indexes every instance of each type named in the
model's `__dependent_classes__`. It is synchronous and not transactional:
a failure part way leaves earlier dependents updated.
"""

from __future__ import annotations

import logging
from typing import Any, Optional

from ..content.models import ContentModel
from ..content.registry import ContentRegistry
from ..db.store import ContentStore, ReadingMode, current_reading_mode, reading_mode
from ..search.service import SearchService, is_indexable, is_visible

logger = logging.getLogger("search_sync.sync")


class SyncController:
    """
    Applies lifecycle events of content instances to the search index.
    """

    def __init__(
        self,
        service: SearchService,
        registry: ContentRegistry,
        store: ContentStore,
    ) -> None:
        self._service = service
        self._registry = registry
        self._store = store

    # ------------------------------------------------------------------
    # Lifecycle Events
    # ------------------------------------------------------------------

    def on_after_write(self, instance: Any) -> None:
        """
        Index or remove the live variant of a written instance, then
        update dependents.

        The LIVE reading mode is active only for the duration of the call.
        """
        model = self._registry.model_for(instance)
        key = self._registry.identity_key(instance)

        with reading_mode(ReadingMode.LIVE) as mode:
            live = self._store.get(model, key, mode=mode)
            target = live if live is not None else instance

            if is_visible(model, target):
                self._service.index(target)
            else:
                self._service.remove(target)

            self.update_dependent_classes(model, mode=mode)

    def on_after_delete(self, instance: Any) -> None:
        model = self._registry.model_for(instance)
        self._service.remove(instance)
        self.update_dependent_classes(model)

    def on_many_many_changed(self, instance: Any) -> None:
        """Update dependents after a many-to-many add or remove."""
        self.update_dependent_classes(self._registry.model_for(instance))

    # ------------------------------------------------------------------
    # Dependents
    # ------------------------------------------------------------------

    def update_dependent_classes(
        self,
        model: ContentModel,
        mode: Optional[ReadingMode] = None,
    ) -> int:
        """
        Re-index every instance of the model's dependent classes.

        Returns the number of index/remove calls made.
        """
        mode = mode or current_reading_mode()
        calls = 0

        for type_name in model.dependent_classes:
            dependent = self._registry.get(type_name)
            if dependent is None:
                logger.debug("Unknown dependent class '%s' on %s, skipped", type_name, model.type_name)
                continue

            for obj in self._store.all(dependent, mode=mode):
                if not self._registry.is_searchable(obj):
                    continue

                if is_indexable(self._registry.model_for(obj), obj):
                    self._service.index(obj)
                else:
                    self._service.remove(obj)
                calls += 1

        if calls:
            logger.debug("Updated %d dependent record(s) of %s", calls, model.type_name)

        return calls
