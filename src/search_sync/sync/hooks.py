"""
Session Hooks

Wires SQLAlchemy session events to the sync controller.

- after_flush    : record searchable writes, deletes and many-to-many changes
- after_commit   : dispatch the recorded events on a fresh session
- after_rollback : discard them

Only committed changes reach the search index. Search engine errors raised
during dispatch propagate out of `Session.commit()`; the database changes
are already committed at that point.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Tuple

from sqlalchemy import event, inspect
from sqlalchemy.orm import Session

from ..content.models import ContentModel, RelationKind
from ..content.registry import ContentRegistry
from ..db.store import ReadingMode, SqlAlchemyContentStore
from ..search.service import SearchService
from .controller import SyncController

logger = logging.getLogger("search_sync.hooks")

PENDING_KEY = "search_sync_pending"

IdentityKey = Tuple[str, Tuple[Any, ...]]


@dataclass
class PendingChanges:
    """Searchable changes recorded since the last commit, keyed by identity."""

    writes: Dict[IdentityKey, Any] = field(default_factory=dict)
    deletes: Dict[IdentityKey, Any] = field(default_factory=dict)
    many_many: Dict[IdentityKey, Any] = field(default_factory=dict)

    def __bool__(self) -> bool:
        return bool(self.writes or self.deletes or self.many_many)


class SessionSyncHooks:
    """
    Installs search synchronization on a `Session` class or `sessionmaker`.
    """

    def __init__(
        self,
        registry: ContentRegistry,
        service: SearchService,
        session_factory: Callable[[], Session],
    ) -> None:
        """
        Parameters
        ----------
        registry : ContentRegistry
            Content model descriptions.

        service : SearchService
            Search engine facade.

        session_factory : Callable[[], Session]
            Opens the session dispatch reads from. Dispatch sessions only
            read, so this may be the factory the hooks are installed on.
        """
        self._registry = registry
        self._service = service
        self._session_factory = session_factory

    def install(self, target: Any) -> None:
        event.listen(target, "after_flush", self._after_flush)
        event.listen(target, "after_commit", self._after_commit)
        event.listen(target, "after_rollback", self._after_rollback)

    def uninstall(self, target: Any) -> None:
        event.remove(target, "after_flush", self._after_flush)
        event.remove(target, "after_commit", self._after_commit)
        event.remove(target, "after_rollback", self._after_rollback)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def _identity(self, model: ContentModel, instance: Any) -> IdentityKey:
        return model.type_name, self._registry.identity_key(instance)

    def _searchable_model(self, instance: Any) -> ContentModel | None:
        if not self._registry.is_searchable(instance):
            return None
        return self._registry.model_for(instance)

    def _after_flush(self, session: Session, flush_context: Any) -> None:
        pending: PendingChanges = session.info.setdefault(PENDING_KEY, PendingChanges())

        for instance in session.new:
            model = self._searchable_model(instance)
            if model is not None:
                pending.writes[self._identity(model, instance)] = instance

        for instance in session.dirty:
            model = self._registry.find(instance)
            if model is None:
                continue

            if model.searchable and session.is_modified(instance, include_collections=False):
                pending.writes[self._identity(model, instance)] = instance

            self._record_many_many(pending, model, instance)

        for instance in session.deleted:
            model = self._searchable_model(instance)
            if model is not None:
                key = self._identity(model, instance)
                pending.writes.pop(key, None)
                pending.deletes[key] = instance

    def _record_many_many(self, pending: PendingChanges, model: ContentModel, instance: Any) -> None:
        state = inspect(instance)

        for relation in model.relations.values():
            if relation.kind is not RelationKind.MANY_MANY:
                continue

            history = state.attrs[relation.name].history
            if not history.has_changes():
                continue

            for member in [instance, *history.added, *history.deleted]:
                member_model = self._searchable_model(member)
                if member_model is not None and member_model.dependent_classes:
                    pending.many_many[self._identity(member_model, member)] = member

    def _after_rollback(self, session: Session) -> None:
        session.info.pop(PENDING_KEY, None)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _after_commit(self, session: Session) -> None:
        pending: PendingChanges | None = session.info.pop(PENDING_KEY, None)
        if not pending:
            return

        self.dispatch(pending)

    def dispatch(self, pending: PendingChanges) -> None:
        """
        Apply recorded changes: deletes, then writes, then many-to-many.
        """
        with self._session_factory() as session:
            store = SqlAlchemyContentStore(session)
            controller = SyncController(self._service, self._registry, store)

            for instance in pending.deletes.values():
                controller.on_after_delete(instance)

            for (type_name, key), instance in pending.writes.items():
                model = self._registry.get(type_name)
                current = store.get(model, key, mode=ReadingMode.STAGE)
                if current is None:
                    logger.debug("%s %s vanished before sync, skipped", type_name, key)
                    continue
                controller.on_after_write(current)

            for instance in pending.many_many.values():
                controller.on_many_many_changed(instance)
